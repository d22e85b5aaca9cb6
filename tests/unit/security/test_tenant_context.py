"""Security tests: tenant isolation enforced; cross-tenant access raises error."""

import pytest

from agrotrace.security.exceptions import TenantIsolationError
from agrotrace.security.principal import ANONYMOUS_PRINCIPAL, Principal
from agrotrace.security.tenant_context import TenantContext


def test_tenant_isolation_enforced_match_passes():
    TenantContext.validate_access(1, 1)


def test_cross_tenant_access_raises_error():
    with pytest.raises(TenantIsolationError) as exc_info:
        TenantContext.validate_access(1, 2)
    assert "'1'" in exc_info.value.message
    assert "'2'" in exc_info.value.message
    assert "denied" in exc_info.value.message.lower()


def test_system_resource_not_readable_by_tenant():
    with pytest.raises(TenantIsolationError):
        TenantContext.validate_access(None, 2)


def test_missing_request_tenant_raises():
    with pytest.raises(TenantIsolationError):
        TenantContext.validate_access(1, None)


def test_principal_authentication():
    assert Principal(user_id=7, email="ana@x.com").is_authenticated is True
    assert Principal(user_id=None).is_authenticated is False
    assert ANONYMOUS_PRINCIPAL.is_anonymous is True
    assert Principal(user_id=1, email="anonymousUser").is_authenticated is False
