"""
Change interceptor: turns persistence lifecycle callbacks into audit commands.
Never raises into the persistence operation that triggered it.
"""

import logging
from typing import Any, Callable, Optional, Protocol, Sequence

from agrotrace.audit.actor import resolve_current_actor
from agrotrace.audit.entity_registry import DEFAULT_REGISTRY, EntityInfo, EntityRegistry
from agrotrace.domain.models.audit_event import AuditActor, AuditCommand, OperationType

_VERBS = {
    OperationType.CREATE: "Creación",
    OperationType.UPDATE: "Actualización",
    OperationType.DELETE: "Eliminación",
}


class AuditSink(Protocol):
    """Where intercepted commands go. Must not block the caller."""

    def submit_nowait(self, command: AuditCommand) -> bool: ...


def describe(operation: OperationType, entity_type: str, entity_code: str) -> str:
    """e.g. 'Creación de lote: LOTE-001'."""
    return f"{_VERBS[operation]} de {entity_type.lower()}: {entity_code}"


class ChangeInterceptor:
    """
    Entry points called after create, after update and before delete of a
    domain entity. Each returns True when a command was handed to the sink.

    Callers that capture changes at flush time may pass the already extracted
    `info`, since attributes can be expired by the time the change is forwarded.
    """

    def __init__(
        self,
        sink: AuditSink,
        *,
        actor_resolver: Callable[[], Optional[AuditActor]] = resolve_current_actor,
        registry: EntityRegistry = DEFAULT_REGISTRY,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._sink = sink
        self._resolve_actor = actor_resolver
        self._registry = registry
        self._logger = logger or logging.getLogger(__name__)

    @property
    def registry(self) -> EntityRegistry:
        return self._registry

    def on_after_create(self, entity: Any, *, info: Optional[EntityInfo] = None) -> bool:
        return self._intercept(OperationType.CREATE, entity, info=info)

    def on_after_update(
        self,
        entity: Any,
        *,
        before_state: Optional[str] = None,
        after_state: Optional[str] = None,
        changed_fields: Optional[Sequence[str]] = None,
        info: Optional[EntityInfo] = None,
    ) -> bool:
        return self._intercept(
            OperationType.UPDATE,
            entity,
            before_state=before_state,
            after_state=after_state,
            changed_fields=changed_fields,
            info=info,
        )

    def on_before_delete(
        self,
        entity: Any,
        *,
        before_state: Optional[str] = None,
        info: Optional[EntityInfo] = None,
    ) -> bool:
        return self._intercept(OperationType.DELETE, entity, before_state=before_state, info=info)

    def _intercept(
        self,
        operation: OperationType,
        entity: Any,
        *,
        before_state: Optional[str] = None,
        after_state: Optional[str] = None,
        changed_fields: Optional[Sequence[str]] = None,
        info: Optional[EntityInfo] = None,
    ) -> bool:
        try:
            if self._registry.is_excluded(entity):
                return False

            actor = self._resolve_actor()
            if actor is None:
                self._logger.warning(
                    "audit_actor_unresolved",
                    extra={
                        "operation_type": operation.value,
                        "entity_class": type(entity).__name__,
                    },
                )
                return False

            if info is None:
                info = self._registry.extract(entity)
            if operation == OperationType.UPDATE and after_state is None:
                after_state = self._registry.snapshot(entity)

            command = AuditCommand(
                operation=operation,
                entity_type=info.entity_type,
                entity_id=info.entity_id,
                entity_code=info.entity_code,
                description=describe(operation, info.entity_type, info.entity_code),
                actor=actor,
                before_state=before_state,
                after_state=after_state,
                changed_fields=tuple(changed_fields) if changed_fields else None,
            )
            return bool(self._sink.submit_nowait(command))
        except Exception as e:
            self._logger.error(
                "audit_interception_failed",
                extra={
                    "operation_type": operation.value,
                    "entity_class": type(entity).__name__,
                    "error": str(e),
                },
                exc_info=True,
            )
            return False
