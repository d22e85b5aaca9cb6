"""Security tests: RBAC permission matrix fully tested."""

import pytest

from agrotrace.security.exceptions import AuthorizationError
from agrotrace.security.rbac import RBACService, Role


@pytest.fixture
def rbac():
    return RBACService()


# Permission matrix:
# Role                View audit  Verify chain
# every role          ✓           ✓


@pytest.mark.parametrize("role", list(Role))
def test_every_role_may_view_and_verify(rbac, role):
    rbac.check_permission(role, "view_audit")
    rbac.check_permission(role, "verify_chain")


@pytest.mark.parametrize("action", ["delete_audit", "update_audit", ""])
def test_unknown_action_denied(rbac, action):
    with pytest.raises(AuthorizationError):
        rbac.check_permission(Role.ADMIN, action)


def test_role_name_is_case_insensitive(rbac):
    assert rbac.check_role_name(" operador_planta ", "view_audit") == Role.OPERADOR_PLANTA


@pytest.mark.parametrize("role_name", [None, "", "GUEST", "ROLE_ADMIN"])
def test_unknown_role_name_denied(rbac, role_name):
    with pytest.raises(AuthorizationError) as exc_info:
        rbac.check_role_name(role_name, "view_audit")
    assert "role" in exc_info.value.message.lower()
