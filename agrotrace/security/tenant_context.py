"""Strict tenant isolation. No cross-tenant access. No FastAPI."""

from typing import Optional

from agrotrace.security.exceptions import TenantIsolationError


class TenantContext:
    """Validate that request tenant matches resource tenant. No cross-tenant access."""

    @staticmethod
    def validate_access(resource_tenant: Optional[int], request_tenant: Optional[int]) -> None:
        """
        If mismatch, raise TenantIsolationError.
        System resources (no tenant) are not readable through tenant requests.
        """
        if resource_tenant is None or request_tenant is None:
            raise TenantIsolationError(
                "Tenant isolation: resource_tenant and request_tenant must be set"
            )
        if resource_tenant != request_tenant:
            raise TenantIsolationError(
                f"Tenant isolation: access denied. "
                f"Resource tenant '{resource_tenant}' does not match request tenant '{request_tenant}'"
            )
