"""Audit recorder: append-only hash chain, tenant-scoped queries and chain verification. No FastAPI."""

import asyncio
import json
import logging
import time
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Callable, List, Literal, Optional, Tuple

from agrotrace.audit.chain_lock import ChainLock
from agrotrace.audit.exceptions import (
    ChainContentionError,
    ChainTailMismatchError,
    ExcludedEntityError,
)
from agrotrace.audit.hashing import DEFAULT_ALGORITHM, compute_hash, verify_event_hash
from agrotrace.audit.repository import AuditEventRepository
from agrotrace.domain.models.audit_event import (
    AuditActor,
    AuditCommand,
    AuditEvent,
    Criticality,
    OperationType,
    SystemModule,
    criticality_for,
    is_excluded_type,
    module_for,
    normalize_entity_type,
)
from agrotrace.domain.models.audit_query import DEFAULT_QUERY_LIMIT, AuditEventQuery
from agrotrace.domain.schemas.audit_event import (
    AuditEventResponse,
    AuditStatisticsResponse,
    EntityTypeCount,
)
from agrotrace.domain.validators.audit_query_validator import (
    validate_audit_query,
    validate_entity_id,
)
from agrotrace.observability.metrics import (
    AUDIT_APPEND_LATENCY,
    AUDIT_CHAIN_CONTENTION,
    AUDIT_CHAIN_VERIFICATIONS,
    AUDIT_RECORDED,
    MetricsCollector,
)
from agrotrace.security.tenant_context import TenantContext

GLOBAL_SCOPE = "global"
SYSTEM_SCOPE = "system"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ChainVerification:
    """Detailed outcome of a chain walk. `valid` is the authoritative answer."""

    scope_key: str
    valid: bool
    checked_events: int
    broken_event_id: Optional[int] = None
    reason: Optional[str] = None


class AuditRecorder:
    """
    Appends audit events to per-scope hash chains and answers read/verify queries.

    Append: under the scope's chain lock, read the tail, hash the event over its
    canonical content plus the tail hash, and let storage compare-and-set the
    tail together with the row. A lost compare-and-set (another process
    appended) is retried a bounded number of times.
    """

    def __init__(
        self,
        repository: AuditEventRepository,
        chain_lock: ChainLock,
        *,
        chain_scope: Literal["tenant", "global"] = "tenant",
        chain_mode: Literal["all", "critical"] = "all",
        hash_algorithm: str = DEFAULT_ALGORITHM,
        max_append_retries: int = 5,
        retry_backoff_seconds: float = 0.01,
        metrics: Optional[MetricsCollector] = None,
        logger: Optional[logging.Logger] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._repository = repository
        self._lock = chain_lock
        self._chain_scope = chain_scope
        self._chain_mode = chain_mode
        self._algorithm = hash_algorithm
        self._max_retries = max_append_retries
        self._backoff = retry_backoff_seconds
        self._metrics = metrics or MetricsCollector()
        self._logger = logger or logging.getLogger(__name__)
        self._clock = clock

    # ------------------------------------------------------------------
    # Write side
    # ------------------------------------------------------------------

    def scope_key_for(self, tenant_id: Optional[int]) -> str:
        if self._chain_scope == "global":
            return GLOBAL_SCOPE
        if tenant_id is None:
            return SYSTEM_SCOPE
        return f"tenant:{tenant_id}"

    async def record_creation(
        self,
        *,
        entity_type: str,
        entity_id: Optional[int],
        entity_code: str,
        description: str,
        actor: AuditActor,
    ) -> AuditEvent:
        return await self.record(
            AuditCommand(
                operation=OperationType.CREATE,
                entity_type=entity_type,
                entity_id=entity_id,
                entity_code=entity_code,
                description=description,
                actor=actor,
            )
        )

    async def record_update(
        self,
        *,
        entity_type: str,
        entity_id: Optional[int],
        entity_code: str,
        description: str,
        before_state: Optional[str],
        after_state: Optional[str],
        actor: AuditActor,
        changed_fields: Optional[Tuple[str, ...]] = None,
    ) -> AuditEvent:
        return await self.record(
            AuditCommand(
                operation=OperationType.UPDATE,
                entity_type=entity_type,
                entity_id=entity_id,
                entity_code=entity_code,
                description=description,
                actor=actor,
                before_state=before_state,
                after_state=after_state,
                changed_fields=tuple(changed_fields) if changed_fields else None,
            )
        )

    async def record_deletion(
        self,
        *,
        entity_type: str,
        entity_id: Optional[int],
        entity_code: str,
        description: str,
        actor: AuditActor,
        before_state: Optional[str] = None,
    ) -> AuditEvent:
        return await self.record(
            AuditCommand(
                operation=OperationType.DELETE,
                entity_type=entity_type,
                entity_id=entity_id,
                entity_code=entity_code,
                description=description,
                actor=actor,
                before_state=before_state,
            )
        )

    async def record_shipment_close(
        self,
        *,
        shipment_id: int,
        shipment_code: str,
        pallet_count: int,
        net_weight_kg: float,
        closing_hash: str,
        closed_at: datetime,
        status: str,
        actor: AuditActor,
    ) -> AuditEvent:
        """Closing a shipment is a critical event and is always chained."""
        description = (
            f"Cierre de envío {shipment_code} con {pallet_count} pallets, "
            f"peso total: {net_weight_kg:.2f} kg"
        )
        after_state = json.dumps(
            {
                "estado": status,
                "fechaCierre": closed_at.isoformat(),
                "hashCierre": closing_hash,
            },
            sort_keys=True,
        )
        return await self.record(
            AuditCommand(
                operation=OperationType.CLOSE,
                entity_type="ENVIO",
                entity_id=shipment_id,
                entity_code=shipment_code,
                description=description,
                actor=actor,
                after_state=after_state,
            )
        )

    async def record(self, command: AuditCommand) -> AuditEvent:
        """Append one command to its scope's chain. Raises on storage failure or lost contention."""
        entity_type = normalize_entity_type(command.entity_type)
        if is_excluded_type(entity_type):
            raise ExcludedEntityError(f"Entity type {entity_type} is never audited")

        criticality = criticality_for(command.operation)
        chained = self._chain_mode == "all" or criticality == Criticality.CRITICAL
        scope_key = self.scope_key_for(command.actor.tenant_id)

        started = time.perf_counter()
        async with self._lock.hold(scope_key):
            for attempt in range(1, self._max_retries + 1):
                tail = await self._repository.get_tail(scope_key) if chained else None
                previous_hash = tail.last_hash if tail else None
                event = self._build_event(
                    command, entity_type, scope_key, criticality, chained, previous_hash
                )
                try:
                    stored = await self._repository.append(event, expected_tail=previous_hash)
                except ChainTailMismatchError:
                    self._metrics.increment(AUDIT_CHAIN_CONTENTION, scope=scope_key)
                    self._logger.warning(
                        "audit_chain_tail_moved",
                        extra={"scope_key": scope_key, "attempt": attempt},
                    )
                    await asyncio.sleep(self._backoff * attempt)
                    continue

                self._metrics.increment(AUDIT_RECORDED, operation=command.operation.value)
                self._metrics.observe_latency(
                    AUDIT_APPEND_LATENCY, (time.perf_counter() - started) * 1000
                )
                self._logger.info(
                    "audit_event_recorded",
                    extra={
                        "audit_event_id": stored.id,
                        "scope_key": scope_key,
                        "entity_type": stored.entity_type,
                        "entity_id": stored.entity_id,
                        "operation_type": stored.operation_type.value,
                        "chained": stored.chained,
                    },
                )
                return stored

        raise ChainContentionError(
            f"Could not append to chain {scope_key} after {self._max_retries} attempts"
        )

    def _build_event(
        self,
        command: AuditCommand,
        entity_type: str,
        scope_key: str,
        criticality: Criticality,
        chained: bool,
        previous_hash: Optional[str],
    ) -> AuditEvent:
        actor = command.actor
        draft = AuditEvent(
            tenant_id=actor.tenant_id,
            scope_key=scope_key,
            entity_type=entity_type,
            entity_id=command.entity_id,
            entity_code=command.entity_code,
            operation_type=command.operation,
            description=command.description,
            actor_id=actor.actor_id,
            module=module_for(entity_type),
            criticality=criticality,
            chained=chained,
            occurred_at=self._clock(),
            self_hash="",
            previous_hash=previous_hash,
            before_state=command.before_state,
            after_state=command.after_state,
            changed_fields=command.changed_fields,
            actor_email=actor.email,
            tenant_name=actor.tenant_name,
            client_ip=actor.client_ip,
            user_agent=actor.user_agent,
        )
        return replace(draft, self_hash=compute_hash(draft, self._algorithm))

    # ------------------------------------------------------------------
    # Read side (never mutates)
    # ------------------------------------------------------------------

    async def list_by_entity(
        self, tenant_id: Optional[int], entity_type: str, entity_id: int
    ) -> List[AuditEventResponse]:
        """All events of one entity within the caller's tenant, newest first."""
        validate_entity_id(entity_id)
        query = AuditEventQuery(
            tenant_id=tenant_id,
            entity_type=normalize_entity_type(entity_type),
            entity_id=entity_id,
            limit=None,
        )
        return self._to_responses(await self._repository.list_events(query))

    async def list_by_tenant(
        self,
        tenant_id: Optional[int],
        *,
        operation_type: Optional[OperationType] = None,
        module: Optional[SystemModule] = None,
        criticality: Optional[Criticality] = None,
        entity_code: Optional[str] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        limit: int = DEFAULT_QUERY_LIMIT,
    ) -> List[AuditEventResponse]:
        """All events of the caller's tenant, newest first, optionally filtered."""
        query = AuditEventQuery(
            tenant_id=tenant_id,
            operation_type=operation_type,
            module=module,
            criticality=criticality,
            entity_code=entity_code,
            since=since,
            until=until,
            limit=limit,
        )
        validate_audit_query(query)
        return self._to_responses(await self._repository.list_events(query))

    async def list_recent_critical(
        self, tenant_id: Optional[int], limit: int = 10
    ) -> List[AuditEventResponse]:
        return await self.list_by_tenant(
            tenant_id, criticality=Criticality.CRITICAL, limit=limit
        )

    async def count_by_entity_type(self, tenant_id: Optional[int]) -> AuditStatisticsResponse:
        counts = await self._repository.count_by_entity_type(tenant_id)
        return AuditStatisticsResponse(
            total_events=sum(counts.values()),
            by_entity_type=[
                EntityTypeCount(entity_type=entity_type, total=total)
                for entity_type, total in sorted(counts.items())
            ],
        )

    async def get_event(
        self, tenant_id: Optional[int], event_id: int
    ) -> Optional[AuditEventResponse]:
        """Single event by id. Raises TenantIsolationError if it belongs to another tenant."""
        event = await self._repository.get(event_id)
        if event is None:
            return None
        TenantContext.validate_access(event.tenant_id, tenant_id)
        return self._to_response(event)

    async def list_chain(self, tenant_id: Optional[int]) -> List[AuditEventResponse]:
        """The caller's chain in append order. With a global scope only the tenant's links are shown."""
        snapshot = await self._repository.load_chain(self.scope_key_for(tenant_id))
        events = snapshot.events
        if self._chain_scope == "global":
            events = [e for e in events if e.tenant_id == tenant_id]
        return self._to_responses(events)

    async def verify_chain_integrity(self, tenant_id: Optional[int]) -> bool:
        return (await self.verify_chain(tenant_id)).valid

    async def verify_chain(self, tenant_id: Optional[int]) -> ChainVerification:
        """
        Walk the chain from its first event. Every stored previous_hash must equal
        the prior event's self_hash, every self_hash must recompute, and the last
        event must be the one the tail pointer names. Any mismatch fails the whole chain.
        """
        scope_key = self.scope_key_for(tenant_id)
        snapshot = await self._repository.load_chain(scope_key)
        result = self._walk(scope_key, snapshot.events, snapshot.head)
        self._metrics.increment(
            AUDIT_CHAIN_VERIFICATIONS, result="valid" if result.valid else "broken"
        )
        if not result.valid:
            self._logger.warning(
                "audit_chain_integrity_violation",
                extra={
                    "scope_key": scope_key,
                    "broken_event_id": result.broken_event_id,
                    "reason": result.reason,
                    "checked_events": result.checked_events,
                },
            )
        return result

    def _walk(self, scope_key, events, head) -> ChainVerification:
        expected_previous: Optional[str] = None
        checked = 0
        for event in events:
            if event.previous_hash != expected_previous:
                return ChainVerification(scope_key, False, checked, event.id, "broken_link")
            if not verify_event_hash(event, self._algorithm):
                return ChainVerification(scope_key, False, checked, event.id, "hash_mismatch")
            expected_previous = event.self_hash
            checked += 1

        if head is None:
            if events:
                return ChainVerification(scope_key, False, checked, events[-1].id, "missing_tail")
            return ChainVerification(scope_key, True, 0)
        if not events:
            return ChainVerification(scope_key, False, 0, head.last_event_id, "tail_without_events")
        last = events[-1]
        if last.id != head.last_event_id or last.self_hash != head.last_hash:
            return ChainVerification(scope_key, False, checked, last.id, "tail_mismatch")
        return ChainVerification(scope_key, True, checked)

    def _to_response(self, event: AuditEvent) -> AuditEventResponse:
        return AuditEventResponse.from_event(
            event, integrity_verified=verify_event_hash(event, self._algorithm)
        )

    def _to_responses(self, events: List[AuditEvent]) -> List[AuditEventResponse]:
        return [self._to_response(e) for e in events]
