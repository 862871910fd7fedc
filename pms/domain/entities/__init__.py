"""Entidades del dominio hotelero."""

from pms.domain.entities.allotment import (
    AllocationRule,
    AllocationRuleType,
    AllotmentConfig,
    ChannelConfig,
    ChannelRestrictions,
)
from pms.domain.entities.audit import AuditEntry, AuditKind
from pms.domain.entities.inventory import ChannelBucket, InventoryDay, InventoryKey
from pms.domain.entities.reservation import (
    ActorSource,
    AmendmentRecord,
    AmendmentStatus,
    AmendmentType,
    PaymentStatus,
    Reservation,
    ReservationStatus,
)
from pms.domain.entities.sync_item import SyncItemStatus, SyncQueueItem

__all__ = [
    # Reservation
    "Reservation",
    "ReservationStatus",
    "PaymentStatus",
    "ActorSource",
    "AmendmentRecord",
    "AmendmentStatus",
    "AmendmentType",
    # Inventory
    "InventoryDay",
    "InventoryKey",
    "ChannelBucket",
    # Allotment
    "AllotmentConfig",
    "AllocationRule",
    "AllocationRuleType",
    "ChannelConfig",
    "ChannelRestrictions",
    # Audit
    "AuditEntry",
    "AuditKind",
    # Sync
    "SyncQueueItem",
    "SyncItemStatus",
]
