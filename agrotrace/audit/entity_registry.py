"""
Static entity descriptor table: which audit type and natural key each domain
class maps to, plus safe field extraction and state snapshots.
"""

import json
import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Protocol, runtime_checkable

from sqlalchemy import inspect as sa_inspect

from agrotrace.domain.models.audit_event import is_excluded_type

logger = logging.getLogger(__name__)

UNKNOWN_CODE = "UNKNOWN"


@runtime_checkable
class Auditable(Protocol):
    """
    Explicit capability a domain class may implement instead of relying on the
    descriptor table. `__audit_entity_type__` names the audit type.
    """

    __audit_entity_type__: str

    def audit_natural_key(self) -> Optional[str]: ...


@dataclass(frozen=True)
class EntityDescriptor:
    entity_type: str
    natural_key: Optional[str] = None


@dataclass(frozen=True)
class EntityInfo:
    entity_type: str
    entity_id: Optional[int]
    entity_code: str


DEFAULT_DESCRIPTORS: Dict[str, EntityDescriptor] = {
    "Finca": EntityDescriptor("FINCA", "nombre"),
    "Lote": EntityDescriptor("LOTE", "codigo_lote"),
    "Cosecha": EntityDescriptor("COSECHA", "codigo_cosecha"),
    "ActividadAgronomica": EntityDescriptor("ACTIVIDAD"),
    "Certificacion": EntityDescriptor("CERTIFICACION", "numero_certificado"),
    "RecepcionPlanta": EntityDescriptor("RECEPCION", "codigo_recepcion"),
    "Clasificacion": EntityDescriptor("CLASIFICACION", "codigo_clasificacion"),
    "Etiqueta": EntityDescriptor("ETIQUETA", "codigo_etiqueta"),
    "Pallet": EntityDescriptor("PALLET", "codigo_pallet"),
    "ControlCalidad": EntityDescriptor("CONTROL_CALIDAD"),
    "Envio": EntityDescriptor("ENVIO", "codigo_envio"),
    "EventoLogistico": EntityDescriptor("EVENTO_LOGISTICO"),
    "DocumentoExportacion": EntityDescriptor("DOCUMENTO"),
    "User": EntityDescriptor("USER", "email"),
    # Infrastructure types; all excluded from auditing.
    "AuditEvent": EntityDescriptor("AUDIT_EVENT"),
    "AuditEventRecord": EntityDescriptor("AUDIT_EVENT"),
    "AuditChainHeadRecord": EntityDescriptor("AUDIT_CHAIN_HEAD"),
    "RefreshToken": EntityDescriptor("REFRESH_TOKEN"),
    "PasswordResetToken": EntityDescriptor("PASSWORD_RESET_TOKEN"),
}


class EntityRegistry:
    """Resolves audit type, id and natural key of domain entities without raising."""

    def __init__(self, descriptors: Optional[Mapping[str, EntityDescriptor]] = None) -> None:
        self._descriptors = dict(DEFAULT_DESCRIPTORS if descriptors is None else descriptors)

    def entity_type_of(self, entity: Any) -> str:
        if isinstance(entity, Auditable):
            declared = _read_attr(entity, "__audit_entity_type__", str)
            if declared:
                return declared.upper()
        class_name = type(entity).__name__
        descriptor = self._descriptors.get(class_name)
        return descriptor.entity_type if descriptor else class_name.upper()

    def is_excluded(self, entity: Any) -> bool:
        return is_excluded_type(self.entity_type_of(entity))

    def extract(self, entity: Any) -> EntityInfo:
        entity_type = self.entity_type_of(entity)
        entity_id = _read_attr(entity, "id", int)
        return EntityInfo(
            entity_type=entity_type,
            entity_id=entity_id,
            entity_code=self._entity_code(entity, entity_id),
        )

    def snapshot(self, entity: Any) -> str:
        """Deterministic JSON of the entity's loaded state. Never triggers lazy loads."""
        return self.render_state(entity, _loaded_state(entity))

    def render_state(self, entity: Any, values: Mapping[str, Any]) -> str:
        """Render values (e.g. pre-update column values) the same way snapshot() does."""
        state = {"entity": type(entity).__name__}
        state.update(values)
        return json.dumps(state, sort_keys=True, default=_json_default, ensure_ascii=False)

    def _entity_code(self, entity: Any, entity_id: Optional[int]) -> str:
        if isinstance(entity, Auditable):
            try:
                code = entity.audit_natural_key()
            except Exception as e:
                logger.debug("audit_natural_key_failed", extra={"error": str(e)})
                code = None
            return code if isinstance(code, str) and code else UNKNOWN_CODE

        descriptor = self._descriptors.get(type(entity).__name__)
        if descriptor is not None and descriptor.natural_key:
            code = _read_attr(entity, descriptor.natural_key, str)
            return code if code else UNKNOWN_CODE
        return f"ID-{entity_id}" if entity_id is not None else UNKNOWN_CODE


def _read_attr(entity: Any, name: str, expected: type) -> Optional[Any]:
    """getattr that never raises; values of the wrong type count as absent."""
    try:
        value = getattr(entity, name, None)
    except Exception as e:
        logger.debug(
            "audit_field_extraction_failed",
            extra={"field": name, "entity_class": type(entity).__name__, "error": str(e)},
        )
        return None
    if expected is int and isinstance(value, bool):
        return None
    return value if isinstance(value, expected) else None


def _loaded_state(entity: Any) -> Dict[str, Any]:
    try:
        insp = sa_inspect(entity, raiseerr=False)
        if insp is not None and hasattr(insp, "mapper"):
            loaded = insp.dict
            return {
                attr.key: loaded[attr.key]
                for attr in insp.mapper.column_attrs
                if attr.key in loaded
            }
        return {
            key: value
            for key, value in vars(entity).items()
            if not key.startswith("_")
        }
    except Exception as e:
        logger.debug("audit_snapshot_failed", extra={"entity_class": type(entity).__name__, "error": str(e)})
        return {}


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    return str(value)


DEFAULT_REGISTRY = EntityRegistry()
