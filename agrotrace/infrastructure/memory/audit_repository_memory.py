"""In-memory audit repository. Same contract as the DB repository; process-local, for tests and single-node use."""

import itertools
from collections import Counter
from dataclasses import replace
from datetime import datetime, timezone
from typing import Dict, List, Optional

from agrotrace.audit.exceptions import ChainTailMismatchError
from agrotrace.audit.repository import ChainHead, ChainSnapshot
from agrotrace.domain.models.audit_event import AuditEvent
from agrotrace.domain.models.audit_query import AuditEventQuery


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class InMemoryAuditEventRepository:
    """Implements AuditEventRepository. No awaits inside append, so each append is atomic on the loop."""

    def __init__(self) -> None:
        self._events: Dict[int, AuditEvent] = {}
        self._heads: Dict[str, ChainHead] = {}
        self._ids = itertools.count(1)

    async def append(self, event: AuditEvent, expected_tail: Optional[str]) -> AuditEvent:
        if event.chained:
            head = self._heads.get(event.scope_key)
            current = head.last_hash if head else None
            if current != expected_tail:
                raise ChainTailMismatchError(
                    f"Chain {event.scope_key} tail moved since it was read"
                )
        stored = replace(event, id=next(self._ids))
        self._events[stored.id] = stored
        if stored.chained:
            self._heads[stored.scope_key] = ChainHead(
                scope_key=stored.scope_key,
                last_hash=stored.self_hash,
                last_event_id=stored.id,
                updated_at=datetime.now(timezone.utc),
            )
        return stored

    async def get_tail(self, scope_key: str) -> Optional[ChainHead]:
        return self._heads.get(scope_key)

    async def get(self, event_id: int) -> Optional[AuditEvent]:
        return self._events.get(event_id)

    async def list_events(self, query: AuditEventQuery) -> List[AuditEvent]:
        matches = [e for e in self._events.values() if _matches(e, query)]
        matches.sort(key=lambda e: (_as_utc(e.occurred_at), e.id), reverse=True)
        return matches[: query.limit]

    async def load_chain(self, scope_key: str) -> ChainSnapshot:
        head = self._heads.get(scope_key)
        events = sorted(
            (
                e
                for e in self._events.values()
                if e.scope_key == scope_key
                and e.chained
                and (head is None or e.id <= head.last_event_id)
            ),
            key=lambda e: e.id,
        )
        return ChainSnapshot(scope_key=scope_key, head=head, events=events)

    async def count_by_entity_type(self, tenant_id: Optional[int]) -> Dict[str, int]:
        return dict(
            Counter(e.entity_type for e in self._events.values() if e.tenant_id == tenant_id)
        )

    # Test helpers: simulate storage-level tampering. Not part of the repository contract.

    def overwrite(self, event: AuditEvent) -> None:
        self._events[event.id] = event

    def remove(self, event_id: int) -> None:
        self._events.pop(event_id, None)


def _matches(event: AuditEvent, query: AuditEventQuery) -> bool:
    if event.tenant_id != query.tenant_id:
        return False
    if query.entity_type is not None and event.entity_type != query.entity_type:
        return False
    if query.entity_id is not None and event.entity_id != query.entity_id:
        return False
    if query.entity_code is not None and event.entity_code != query.entity_code:
        return False
    if query.operation_type is not None and event.operation_type != query.operation_type:
        return False
    if query.module is not None and event.module != query.module:
        return False
    if query.criticality is not None and event.criticality != query.criticality:
        return False
    occurred = _as_utc(event.occurred_at)
    if query.since is not None and occurred < _as_utc(query.since):
        return False
    if query.until is not None and occurred > _as_utc(query.until):
        return False
    return True
