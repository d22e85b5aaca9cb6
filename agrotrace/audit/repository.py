"""Audit repository protocol. Audit layer depends on this; infrastructure implements it."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Protocol

from agrotrace.domain.models.audit_event import AuditEvent
from agrotrace.domain.models.audit_query import AuditEventQuery


@dataclass(frozen=True)
class ChainHead:
    """Tail pointer of one chain scope: the last appended chained event."""

    scope_key: str
    last_hash: str
    last_event_id: int
    updated_at: datetime


@dataclass(frozen=True)
class ChainSnapshot:
    """A chain read consistently: the head, and chained events up to it in ascending order."""

    scope_key: str
    head: Optional[ChainHead]
    events: List[AuditEvent] = field(default_factory=list)


class AuditEventRepository(Protocol):
    """Append-only store for audit events. No update or delete operations exist."""

    async def append(self, event: AuditEvent, expected_tail: Optional[str]) -> AuditEvent:
        """
        Persist event and return it with its id. For chained events the scope
        head is advanced in the same transaction, only if it still equals
        expected_tail; otherwise raise ChainTailMismatchError and persist nothing.
        """
        ...

    async def get_tail(self, scope_key: str) -> Optional[ChainHead]:
        """Current head of a scope, or None for an empty chain."""
        ...

    async def get(self, event_id: int) -> Optional[AuditEvent]:
        ...

    async def list_events(self, query: AuditEventQuery) -> List[AuditEvent]:
        """Events matching query, newest first."""
        ...

    async def load_chain(self, scope_key: str) -> ChainSnapshot:
        """Head first, then chained events with id <= head.last_event_id, ascending."""
        ...

    async def count_by_entity_type(self, tenant_id: Optional[int]) -> Dict[str, int]:
        ...
