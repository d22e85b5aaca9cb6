"""Canonical content and digest for audit events. Deterministic across storage round-trips."""

import hashlib
import hmac
import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from agrotrace.domain.models.audit_event import AuditEvent

DEFAULT_ALGORITHM = "sha256"
_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def canonical_timestamp(value: datetime) -> str:
    """UTC, microsecond precision. Naive values are taken as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(_TIMESTAMP_FORMAT)


def canonical_content(event: AuditEvent) -> str:
    """Fixed-field JSON of everything the hash covers, except id, self_hash and previous_hash."""
    payload: Dict[str, Any] = {
        "tenant_id": event.tenant_id,
        "tenant_name": event.tenant_name,
        "scope_key": event.scope_key,
        "entity_type": event.entity_type,
        "entity_id": event.entity_id,
        "entity_code": event.entity_code,
        "operation_type": event.operation_type.value,
        "description": event.description,
        "before_state": event.before_state,
        "after_state": event.after_state,
        "changed_fields": list(event.changed_fields) if event.changed_fields else None,
        "actor_id": event.actor_id,
        "actor_email": event.actor_email,
        "client_ip": event.client_ip,
        "user_agent": event.user_agent,
        "module": event.module.value,
        "criticality": event.criticality.value,
        "chained": event.chained,
        "occurred_at": canonical_timestamp(event.occurred_at),
    }
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def compute_hash(event: AuditEvent, algorithm: str = DEFAULT_ALGORITHM) -> str:
    """digest(canonical content || previous hash), hex encoded."""
    digest = hashlib.new(algorithm)
    digest.update(canonical_content(event).encode("utf-8"))
    digest.update(_previous(event.previous_hash).encode("utf-8"))
    return digest.hexdigest()


def verify_event_hash(event: AuditEvent, algorithm: str = DEFAULT_ALGORITHM) -> bool:
    if not event.self_hash:
        return False
    return hmac.compare_digest(compute_hash(event, algorithm), event.self_hash)


def _previous(previous_hash: Optional[str]) -> str:
    return previous_hash or ""
