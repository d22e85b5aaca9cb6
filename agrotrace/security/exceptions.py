"""Security-layer exceptions. Typed, no HTTP."""


class SecurityError(Exception):
    """Base for all security-layer errors."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class AuthenticationRequiredError(SecurityError):
    """Raised when a protected operation runs without an authenticated principal."""


class AuthorizationError(SecurityError):
    """Raised when role does not have permission for the action."""


class TenantIsolationError(SecurityError):
    """Raised when resource tenant does not match request tenant (cross-tenant access)."""
