"""Hashing tests: determinism, chaining input, tamper detection, timestamp canonicalization."""

import json
from dataclasses import replace
from datetime import datetime, timezone

import pytest

from agrotrace.audit.hashing import (
    canonical_content,
    canonical_timestamp,
    compute_hash,
    verify_event_hash,
)
from agrotrace.domain.models.audit_event import (
    AuditEvent,
    Criticality,
    OperationType,
    SystemModule,
)


def _event(**overrides) -> AuditEvent:
    fields = dict(
        tenant_id=1,
        scope_key="tenant:1",
        entity_type="LOTE",
        entity_id=42,
        entity_code="LOTE-001",
        operation_type=OperationType.CREATE,
        description="Creación de lote: LOTE-001",
        actor_id=7,
        module=SystemModule.PRODUCCION,
        criticality=Criticality.INFO,
        chained=True,
        occurred_at=datetime(2024, 3, 1, 12, 30, 15, 123456, tzinfo=timezone.utc),
        self_hash="",
    )
    fields.update(overrides)
    return AuditEvent(**fields)


def _sealed(**overrides) -> AuditEvent:
    event = _event(**overrides)
    return replace(event, self_hash=compute_hash(event))


def test_hash_is_deterministic():
    assert compute_hash(_event()) == compute_hash(_event())


def test_hash_is_sha256_hex():
    digest = compute_hash(_event())
    assert len(digest) == 64
    int(digest, 16)


def test_previous_hash_changes_digest():
    assert compute_hash(_event()) != compute_hash(_event(previous_hash="ab" * 32))


def test_storage_fields_do_not_affect_digest():
    """id and self_hash are assigned after hashing."""
    assert compute_hash(_event()) == compute_hash(_event(id=99, self_hash="ff" * 32))


def test_naive_timestamp_treated_as_utc():
    aware = _event()
    naive = _event(occurred_at=aware.occurred_at.replace(tzinfo=None))
    assert compute_hash(aware) == compute_hash(naive)


def test_canonical_timestamp_format():
    value = datetime(2024, 3, 1, 12, 30, 15, 5, tzinfo=timezone.utc)
    assert canonical_timestamp(value) == "2024-03-01T12:30:15.000005Z"


def test_canonical_content_is_sorted_compact_json():
    event = _event(changed_fields=("hectareas", "estado"))
    content = canonical_content(event)
    decoded = json.loads(content)
    assert list(decoded) == sorted(decoded)
    assert content == json.dumps(decoded, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    assert '"changed_fields":["hectareas","estado"]' in content
    assert '"actor_id":7,' in content


@pytest.mark.parametrize(
    "field, value",
    [
        ("actor_email", "mallory@example.com"),
        ("tenant_name", "Otra Empresa"),
        ("client_ip", "6.6.6.6"),
        ("user_agent", "curl/8.0"),
    ],
)
def test_request_origin_fields_are_covered(field, value):
    sealed = _sealed(
        actor_email="ana.perez@fincanorte.com",
        tenant_name="Finca Norte S.A.",
        client_ip="10.0.0.5",
        user_agent="pytest",
    )
    assert verify_event_hash(sealed) is True
    assert verify_event_hash(replace(sealed, **{field: value})) is False


def test_verify_event_hash_accepts_sealed_event():
    assert verify_event_hash(_sealed()) is True


def test_verify_event_hash_detects_tampered_content():
    tampered = replace(_sealed(), description="Creación de lote: LOTE-999")
    assert verify_event_hash(tampered) is False


def test_verify_event_hash_detects_rewritten_link():
    tampered = replace(_sealed(), previous_hash="00" * 32)
    assert verify_event_hash(tampered) is False


def test_verify_event_hash_rejects_missing_hash():
    assert verify_event_hash(_event(self_hash="")) is False


def test_algorithm_is_configurable():
    event = _event()
    sealed = replace(event, self_hash=compute_hash(event, "sha512"))
    assert len(sealed.self_hash) == 128
    assert verify_event_hash(sealed, "sha512") is True
    assert verify_event_hash(sealed) is False
