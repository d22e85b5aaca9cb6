"""DB-backed audit repository. Append-only audit_events plus a compare-and-set tail per chain scope."""

from dataclasses import replace
from datetime import datetime, timezone
from typing import Dict, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from agrotrace.audit.exceptions import AuditStorageError, ChainTailMismatchError
from agrotrace.audit.repository import ChainHead, ChainSnapshot
from agrotrace.domain.models.audit_event import (
    AuditEvent,
    Criticality,
    OperationType,
    SystemModule,
)
from agrotrace.domain.models.audit_query import AuditEventQuery
from agrotrace.infrastructure.database.models import AuditChainHeadRecord, AuditEventRecord


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; stored values are always UTC.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class DbAuditEventRepository:
    """Persists audit events with SQLAlchemy async. Implements AuditEventRepository protocol."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def append(self, event: AuditEvent, expected_tail: Optional[str]) -> AuditEvent:
        """Insert the row and, for chained events, advance the scope head in the same transaction."""
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    record = _to_record(event)
                    session.add(record)
                    await session.flush()
                    if event.chained:
                        await self._advance_head(session, event, record.id, expected_tail)
                return replace(event, id=record.id)
        except ChainTailMismatchError:
            raise
        except IntegrityError as e:
            # Another writer created the head for this scope first.
            raise ChainTailMismatchError(
                f"Chain {event.scope_key} was started concurrently"
            ) from e
        except SQLAlchemyError as e:
            raise AuditStorageError(f"Failed to append audit event: {e}") from e

    async def _advance_head(
        self,
        session: AsyncSession,
        event: AuditEvent,
        event_id: int,
        expected_tail: Optional[str],
    ) -> None:
        now = datetime.now(timezone.utc)
        if expected_tail is None:
            session.add(
                AuditChainHeadRecord(
                    scope_key=event.scope_key,
                    last_hash=event.self_hash,
                    last_event_id=event_id,
                    updated_at=now,
                )
            )
            await session.flush()
            return

        stmt = (
            update(AuditChainHeadRecord)
            .where(
                AuditChainHeadRecord.scope_key == event.scope_key,
                AuditChainHeadRecord.last_hash == expected_tail,
            )
            .values(last_hash=event.self_hash, last_event_id=event_id, updated_at=now)
        )
        result = await session.execute(stmt)
        if result.rowcount != 1:
            raise ChainTailMismatchError(
                f"Chain {event.scope_key} tail moved since it was read"
            )

    async def get_tail(self, scope_key: str) -> Optional[ChainHead]:
        try:
            async with self._session_factory() as session:
                head = await session.get(AuditChainHeadRecord, scope_key)
                return _to_head(head) if head else None
        except SQLAlchemyError as e:
            raise AuditStorageError(f"Failed to read chain tail: {e}") from e

    async def get(self, event_id: int) -> Optional[AuditEvent]:
        try:
            async with self._session_factory() as session:
                record = await session.get(AuditEventRecord, event_id)
                return _to_event(record) if record else None
        except SQLAlchemyError as e:
            raise AuditStorageError(f"Failed to read audit event: {e}") from e

    async def list_events(self, query: AuditEventQuery) -> List[AuditEvent]:
        stmt = select(AuditEventRecord).where(_tenant_clause(query.tenant_id))
        if query.entity_type is not None:
            stmt = stmt.where(AuditEventRecord.entity_type == query.entity_type)
        if query.entity_id is not None:
            stmt = stmt.where(AuditEventRecord.entity_id == query.entity_id)
        if query.entity_code is not None:
            stmt = stmt.where(AuditEventRecord.entity_code == query.entity_code)
        if query.operation_type is not None:
            stmt = stmt.where(AuditEventRecord.operation_type == query.operation_type.value)
        if query.module is not None:
            stmt = stmt.where(AuditEventRecord.module == query.module.value)
        if query.criticality is not None:
            stmt = stmt.where(AuditEventRecord.criticality == query.criticality.value)
        if query.since is not None:
            stmt = stmt.where(AuditEventRecord.occurred_at >= _as_utc(query.since))
        if query.until is not None:
            stmt = stmt.where(AuditEventRecord.occurred_at <= _as_utc(query.until))
        stmt = stmt.order_by(
            AuditEventRecord.occurred_at.desc(), AuditEventRecord.id.desc()
        ).limit(query.limit)
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return [_to_event(r) for r in result.scalars().all()]
        except SQLAlchemyError as e:
            raise AuditStorageError(f"Failed to query audit events: {e}") from e

    async def load_chain(self, scope_key: str) -> ChainSnapshot:
        """Head first; events appended after that read are outside the snapshot."""
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    head = await session.get(AuditChainHeadRecord, scope_key)
                    stmt = (
                        select(AuditEventRecord)
                        .where(
                            AuditEventRecord.scope_key == scope_key,
                            AuditEventRecord.chained.is_(True),
                        )
                        .order_by(AuditEventRecord.id.asc())
                    )
                    if head is not None:
                        stmt = stmt.where(AuditEventRecord.id <= head.last_event_id)
                    result = await session.execute(stmt)
                    events = [_to_event(r) for r in result.scalars().all()]
                return ChainSnapshot(
                    scope_key=scope_key,
                    head=_to_head(head) if head else None,
                    events=events,
                )
        except SQLAlchemyError as e:
            raise AuditStorageError(f"Failed to load chain {scope_key}: {e}") from e

    async def count_by_entity_type(self, tenant_id: Optional[int]) -> Dict[str, int]:
        stmt = (
            select(AuditEventRecord.entity_type, func.count(AuditEventRecord.id))
            .where(_tenant_clause(tenant_id))
            .group_by(AuditEventRecord.entity_type)
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return {entity_type: total for entity_type, total in result.all()}
        except SQLAlchemyError as e:
            raise AuditStorageError(f"Failed to count audit events: {e}") from e


def _tenant_clause(tenant_id: Optional[int]):
    if tenant_id is None:
        return AuditEventRecord.tenant_id.is_(None)
    return AuditEventRecord.tenant_id == tenant_id


def _to_record(event: AuditEvent) -> AuditEventRecord:
    return AuditEventRecord(
        tenant_id=event.tenant_id,
        tenant_name=event.tenant_name,
        scope_key=event.scope_key,
        entity_type=event.entity_type,
        entity_id=event.entity_id,
        entity_code=event.entity_code,
        operation_type=event.operation_type.value,
        description=event.description,
        before_state=event.before_state,
        after_state=event.after_state,
        changed_fields=list(event.changed_fields) if event.changed_fields is not None else None,
        actor_id=event.actor_id,
        actor_email=event.actor_email,
        client_ip=event.client_ip,
        user_agent=event.user_agent,
        module=event.module.value,
        criticality=event.criticality.value,
        chained=event.chained,
        self_hash=event.self_hash,
        previous_hash=event.previous_hash,
        occurred_at=event.occurred_at,
    )


def _to_event(record: AuditEventRecord) -> AuditEvent:
    return AuditEvent(
        id=record.id,
        tenant_id=record.tenant_id,
        tenant_name=record.tenant_name,
        scope_key=record.scope_key,
        entity_type=record.entity_type,
        entity_id=record.entity_id,
        entity_code=record.entity_code,
        operation_type=OperationType(record.operation_type),
        description=record.description,
        before_state=record.before_state,
        after_state=record.after_state,
        changed_fields=tuple(record.changed_fields) if record.changed_fields is not None else None,
        actor_id=record.actor_id,
        actor_email=record.actor_email,
        client_ip=record.client_ip,
        user_agent=record.user_agent,
        module=SystemModule(record.module),
        criticality=Criticality(record.criticality),
        chained=record.chained,
        self_hash=record.self_hash,
        previous_hash=record.previous_hash,
        occurred_at=_as_utc(record.occurred_at),
    )


def _to_head(record: AuditChainHeadRecord) -> ChainHead:
    return ChainHead(
        scope_key=record.scope_key,
        last_hash=record.last_hash,
        last_event_id=record.last_event_id,
        updated_at=_as_utc(record.updated_at),
    )
