"""Validators for audit query parameters. Pure functions, no infrastructure or DB access."""

from datetime import datetime, timezone
from typing import Optional

from agrotrace.domain.exceptions import DomainValidationError
from agrotrace.domain.models.audit_query import MAX_QUERY_LIMIT, AuditEventQuery


def validate_entity_id(entity_id: int) -> None:
    """Entity ids are positive database identities."""
    if entity_id is None or entity_id <= 0:
        raise DomainValidationError(f"entity_id must be a positive integer, got {entity_id}")


def validate_limit(limit: int) -> None:
    if not (1 <= limit <= MAX_QUERY_LIMIT):
        raise DomainValidationError(
            f"limit must be between 1 and {MAX_QUERY_LIMIT}, got {limit}"
        )


def validate_date_range(since: Optional[datetime], until: Optional[datetime]) -> None:
    """If both bounds are given, since must not be after until."""
    if since is None or until is None:
        return
    if _as_utc(since) > _as_utc(until):
        raise DomainValidationError("'since' must not be later than 'until'")


def validate_audit_query(query: AuditEventQuery) -> None:
    """Validate a full query. Raises DomainValidationError on the first violation."""
    if query.entity_id is not None:
        validate_entity_id(query.entity_id)
    if query.limit is not None:
        validate_limit(query.limit)
    validate_date_range(query.since, query.until)


def _as_utc(value: datetime) -> datetime:
    # Naive timestamps are UTC throughout the audit subsystem.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
