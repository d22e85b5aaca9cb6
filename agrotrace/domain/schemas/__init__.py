"""Domain schemas. Response models for the audit API."""

from agrotrace.domain.schemas.audit_event import (
    AuditEventResponse,
    AuditStatisticsResponse,
    ChainValidationResponse,
    EntityTypeCount,
)

__all__ = [
    "AuditEventResponse",
    "AuditStatisticsResponse",
    "ChainValidationResponse",
    "EntityTypeCount",
]
