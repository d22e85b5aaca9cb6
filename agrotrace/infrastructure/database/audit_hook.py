"""
SQLAlchemy session events feeding the change interceptor.

Changes are captured at flush time, while `new`, `dirty` and `deleted` and the
attribute history still describe the flush, and forwarded only after the
outermost transaction commits. Captures are owned by the innermost SAVEPOINT
open at flush time: releasing it hands them to the enclosing transaction,
rolling it back drops only them. Rolled-back writes are never audited.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Type

from sqlalchemy import event, inspect as sa_inspect
from sqlalchemy.orm import Session, SessionTransaction

from agrotrace.audit.entity_registry import EntityInfo
from agrotrace.audit.interceptor import ChangeInterceptor
from agrotrace.domain.models.audit_event import OperationType
from agrotrace.infrastructure.database.session import AuditedSession

logger = logging.getLogger(__name__)

PENDING_KEY = "agrotrace.audit.pending"


@dataclass(frozen=True)
class CapturedChange:
    operation: OperationType
    entity: Any
    info: EntityInfo
    before_state: Optional[str] = None
    after_state: Optional[str] = None
    changed_fields: Optional[Tuple[str, ...]] = None


class SessionAuditHook:
    """Installs flush/commit/rollback listeners on a Session class."""

    def __init__(self, interceptor: ChangeInterceptor) -> None:
        self._interceptor = interceptor
        self._installed: List[Type[Session]] = []

    def install(self, session_class: Type[Session] = AuditedSession) -> None:
        if session_class in self._installed:
            return
        for name, listener in self._listeners():
            event.listen(session_class, name, listener)
        self._installed.append(session_class)

    def uninstall(self) -> None:
        for session_class in self._installed:
            for name, listener in self._listeners():
                event.remove(session_class, name, listener)
        self._installed = []

    def _listeners(self):
        return (
            ("after_flush", self._after_flush),
            ("after_commit", self._after_commit),
            ("after_soft_rollback", self._after_soft_rollback),
            ("after_transaction_end", self._after_transaction_end),
        )

    def _after_flush(self, session: Session, flush_context: Any) -> None:
        try:
            captured = self._capture(session)
            if captured:
                owner = session.get_nested_transaction() or session.get_transaction()
                _pending(session).setdefault(owner, []).extend(captured)
        except Exception as e:
            logger.error("audit_capture_failed", extra={"error": str(e)}, exc_info=True)

    def _capture(self, session: Session) -> List[CapturedChange]:
        registry = self._interceptor.registry
        captured: List[CapturedChange] = []

        for obj in session.new:
            if registry.is_excluded(obj):
                continue
            captured.append(CapturedChange(OperationType.CREATE, obj, registry.extract(obj)))

        for obj in session.dirty:
            if registry.is_excluded(obj) or not session.is_modified(obj, include_collections=False):
                continue
            changed_fields, before_values = _column_changes(obj)
            if not changed_fields:
                continue
            captured.append(
                CapturedChange(
                    OperationType.UPDATE,
                    obj,
                    registry.extract(obj),
                    before_state=registry.render_state(obj, before_values),
                    after_state=registry.snapshot(obj),
                    changed_fields=tuple(changed_fields),
                )
            )

        for obj in session.deleted:
            if registry.is_excluded(obj):
                continue
            captured.append(
                CapturedChange(
                    OperationType.DELETE,
                    obj,
                    registry.extract(obj),
                    before_state=registry.snapshot(obj),
                )
            )
        return captured

    def _after_commit(self, session: Session) -> None:
        # Also fires when a SAVEPOINT is released; the outer transaction may still roll back.
        savepoint = session.get_nested_transaction()
        if savepoint is not None:
            released = _pending(session).pop(savepoint, None)
            if released:
                parent = _boundary(savepoint.parent)
                _pending(session).setdefault(parent, []).extend(released)
            return
        pending = session.info.pop(PENDING_KEY, {})
        for changes in pending.values():
            for change in changes:
                self._forward(change)

    def _forward(self, change: CapturedChange) -> None:
        # The interceptor never raises; its return value only matters to direct callers.
        if change.operation == OperationType.CREATE:
            self._interceptor.on_after_create(change.entity, info=change.info)
        elif change.operation == OperationType.UPDATE:
            self._interceptor.on_after_update(
                change.entity,
                before_state=change.before_state,
                after_state=change.after_state,
                changed_fields=change.changed_fields,
                info=change.info,
            )
        else:
            self._interceptor.on_before_delete(
                change.entity, before_state=change.before_state, info=change.info
            )

    def _after_soft_rollback(self, session: Session, previous_transaction: SessionTransaction) -> None:
        """Drop changes captured inside the rolled-back boundary; outer captures survive a SAVEPOINT rollback."""
        pending = session.info.get(PENDING_KEY)
        if not pending:
            return
        boundary = _boundary(previous_transaction)
        if boundary.parent is None:
            self._discard(session)
            return
        dropped = 0
        for owner in [t for t in pending if _within(t, boundary)]:
            dropped += len(pending.pop(owner))
        if dropped:
            logger.debug("audit_changes_discarded", extra={"count": dropped})

    def _after_transaction_end(self, session: Session, transaction: SessionTransaction) -> None:
        # Outermost transaction closed without commit (rollback or session.close()).
        if transaction.parent is None:
            self._discard(session)

    def _discard(self, session: Session) -> None:
        dropped = session.info.pop(PENDING_KEY, None)
        if dropped:
            logger.debug(
                "audit_changes_discarded",
                extra={"count": sum(len(changes) for changes in dropped.values())},
            )


def _pending(session: Session) -> Dict[SessionTransaction, List[CapturedChange]]:
    return session.info.setdefault(PENDING_KEY, {})


def _boundary(transaction: SessionTransaction) -> SessionTransaction:
    """Nearest enclosing SAVEPOINT or the outermost transaction; flush subtransactions are skipped."""
    while not transaction.nested and transaction.parent is not None:
        transaction = transaction.parent
    return transaction


def _within(transaction: Optional[SessionTransaction], boundary: SessionTransaction) -> bool:
    while transaction is not None:
        if transaction is boundary:
            return True
        transaction = transaction.parent
    return False


def _column_changes(obj: Any) -> Tuple[List[str], Dict[str, Any]]:
    """Changed column keys and the pre-flush value of every loaded column."""
    state = sa_inspect(obj)
    loaded = state.dict
    changed: List[str] = []
    before: Dict[str, Any] = {}
    for attr in state.mapper.column_attrs:
        history = state.attrs[attr.key].history
        if history.has_changes():
            changed.append(attr.key)
            before[attr.key] = history.deleted[0] if history.deleted else None
        elif attr.key in loaded:
            before[attr.key] = loaded[attr.key]
    return changed, before
