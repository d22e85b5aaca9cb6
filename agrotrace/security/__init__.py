"""Security: principal, RBAC, tenant isolation. No FastAPI."""

from agrotrace.security.principal import ANONYMOUS_PRINCIPAL, Principal
from agrotrace.security.rbac import RBACService, Role
from agrotrace.security.tenant_context import TenantContext

__all__ = [
    "ANONYMOUS_PRINCIPAL",
    "Principal",
    "RBACService",
    "Role",
    "TenantContext",
]
