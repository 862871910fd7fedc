"""
Serialización de agregados a documentos JSON.

Los agregados se guardan como documento junto a columnas indexadas; pydantic
TypeAdapter valida el documento al leerlo de vuelta a las dataclasses.
"""

from typing import Any

from pydantic import TypeAdapter

from pms.domain.entities.allotment import AllotmentConfig
from pms.domain.entities.audit import AuditEntry
from pms.domain.entities.inventory import InventoryDay
from pms.domain.entities.reservation import Reservation

_reservation = TypeAdapter(Reservation)
_inventory_day = TypeAdapter(InventoryDay)
_allotment = TypeAdapter(AllotmentConfig)
_audit_entry = TypeAdapter(AuditEntry)


def dump_reservation(reservation: Reservation) -> dict[str, Any]:
    return _reservation.dump_python(reservation, mode="json")


def load_reservation(document: dict[str, Any]) -> Reservation:
    return _reservation.validate_python(document)


def dump_inventory_day(day: InventoryDay) -> dict[str, Any]:
    return _inventory_day.dump_python(day, mode="json")


def load_inventory_day(document: dict[str, Any]) -> InventoryDay:
    return _inventory_day.validate_python(document)


def dump_allotment(config: AllotmentConfig) -> dict[str, Any]:
    return _allotment.dump_python(config, mode="json")


def load_allotment(document: dict[str, Any]) -> AllotmentConfig:
    return _allotment.validate_python(document)


def dump_audit_entry(entry: AuditEntry) -> dict[str, Any]:
    return _audit_entry.dump_python(entry, mode="json")


def load_audit_entry(document: dict[str, Any]) -> AuditEntry:
    return _audit_entry.validate_python(document)
