"""EntityRegistry tests: descriptor lookup, safe extraction, snapshots, Auditable capability."""

import json
from datetime import date
from decimal import Decimal

from agrotrace.audit.entity_registry import DEFAULT_REGISTRY, EntityDescriptor, EntityRegistry


class Envio:
    def __init__(self, id, codigo_envio):
        self.id = id
        self.codigo_envio = codigo_envio
        self.fecha_salida = date(2024, 5, 1)
        self.peso_neto = Decimal("1234.50")
        self._cache = object()


class Finca:
    def __init__(self, id, nombre):
        self.id = id
        self.nombre = nombre


class Sensor:
    """Declares its own audit identity."""

    __audit_entity_type__ = "sensor"

    def __init__(self, id, serial):
        self.id = id
        self.serial = serial

    def audit_natural_key(self):
        return self.serial


class RefreshToken:
    id = 1


def test_extract_uses_natural_key():
    info = DEFAULT_REGISTRY.extract(Envio(9, "ENV-001"))
    assert (info.entity_type, info.entity_id, info.entity_code) == ("ENVIO", 9, "ENV-001")


def test_missing_natural_key_is_unknown():
    assert DEFAULT_REGISTRY.extract(Finca(1, None)).entity_code == "UNKNOWN"


def test_boolean_id_is_rejected():
    info = DEFAULT_REGISTRY.extract(Finca(True, "La Esperanza"))
    assert info.entity_id is None


def test_unmapped_class_uses_upper_class_name():
    class Bodega:
        id = 3

    info = DEFAULT_REGISTRY.extract(Bodega())
    assert info.entity_type == "BODEGA"
    assert info.entity_code == "ID-3"


def test_auditable_capability_takes_precedence():
    info = DEFAULT_REGISTRY.extract(Sensor(4, "SN-77"))
    assert info.entity_type == "SENSOR"
    assert info.entity_code == "SN-77"


def test_infrastructure_types_are_excluded():
    assert DEFAULT_REGISTRY.is_excluded(RefreshToken()) is True
    assert DEFAULT_REGISTRY.is_excluded(Finca(1, "x")) is False


def test_custom_descriptor_table():
    registry = EntityRegistry({"Finca": EntityDescriptor("PREDIO", "nombre")})
    assert registry.extract(Finca(1, "La Esperanza")).entity_type == "PREDIO"


def test_snapshot_is_deterministic_json_without_private_fields():
    envio = Envio(9, "ENV-001")

    first = DEFAULT_REGISTRY.snapshot(envio)
    assert first == DEFAULT_REGISTRY.snapshot(envio)

    state = json.loads(first)
    assert state == {
        "entity": "Envio",
        "id": 9,
        "codigo_envio": "ENV-001",
        "fecha_salida": "2024-05-01",
        "peso_neto": "1234.50",
    }
