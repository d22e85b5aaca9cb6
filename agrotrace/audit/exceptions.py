"""Audit-layer exceptions. Typed, no HTTP."""


class AuditError(Exception):
    """Base for all audit-layer errors."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class AuditStorageError(AuditError):
    """Raised when the audit store fails to persist or read. Nothing was appended."""


class ChainTailMismatchError(AuditError):
    """Raised by storage when the chain tail moved since it was read (compare-and-set lost)."""


class ChainContentionError(AuditError):
    """Raised when an append keeps losing the tail race after all retries."""


class ChainLockTimeoutError(AuditError):
    """Raised when the per-scope chain lock cannot be acquired in time."""


class ExcludedEntityError(AuditError):
    """Raised when a direct recorder call targets an entity type that is never audited."""
