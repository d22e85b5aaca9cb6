"""Domain validators. Pure validation functions."""

from agrotrace.domain.validators.audit_query_validator import (
    validate_audit_query,
    validate_date_range,
    validate_entity_id,
    validate_limit,
)

__all__ = [
    "validate_audit_query",
    "validate_date_range",
    "validate_entity_id",
    "validate_limit",
]
