"""Role-based access control for audit reads. No FastAPI."""

from enum import Enum

from agrotrace.security.exceptions import AuthorizationError


class Role(Enum):
    ADMIN = "ADMIN"
    PRODUCTOR = "PRODUCTOR"
    OPERADOR_PLANTA = "OPERADOR_PLANTA"
    OPERADOR_LOGISTICA = "OPERADOR_LOGISTICA"
    AUDITOR = "AUDITOR"


# Permission matrix:
# Role                View audit  Verify chain
# ADMIN               ✓           ✓
# PRODUCTOR           ✓           ✓
# OPERADOR_PLANTA     ✓           ✓
# OPERADOR_LOGISTICA  ✓           ✓
# AUDITOR             ✓           ✓
# Audit data is read-only for every role; there is no write action.

_ACTION_PERMISSIONS: dict[tuple[Role, str], bool] = {
    (role, action): True
    for role in Role
    for action in ("view_audit", "verify_chain")
}


class RBACService:
    """Check permission for role and action. Raise AuthorizationError if invalid."""

    def check_permission(self, role: Role, action: str) -> None:
        """Raises AuthorizationError if role does not have permission for action."""
        key = (role, action)
        if key not in _ACTION_PERMISSIONS or not _ACTION_PERMISSIONS[key]:
            raise AuthorizationError(
                f"Role {role.value} does not have permission for action '{action}'"
            )

    def check_role_name(self, role_name: str | None, action: str) -> Role:
        """Resolve a role header value and check it. Unknown roles are denied."""
        try:
            role = Role((role_name or "").strip().upper())
        except ValueError:
            raise AuthorizationError(f"Unknown role '{role_name}'") from None
        self.check_permission(role, action)
        return role
