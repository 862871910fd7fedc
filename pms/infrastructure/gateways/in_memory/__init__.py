"""Implementaciones in-memory para testing."""

from pms.infrastructure.gateways.in_memory.allotment_repo import InMemoryAllotmentRepo
from pms.infrastructure.gateways.in_memory.channel_adapter import StubChannelAdapter
from pms.infrastructure.gateways.in_memory.inventory_repo import InMemoryInventoryRepo
from pms.infrastructure.gateways.in_memory.notification_dispatcher import RecordingNotificationDispatcher
from pms.infrastructure.gateways.in_memory.reservation_repo import InMemoryReservationRepo
from pms.infrastructure.gateways.in_memory.sync_queue import InMemorySyncQueue

__all__ = [
    # Repositories
    "InMemoryReservationRepo",
    "InMemoryInventoryRepo",
    "InMemoryAllotmentRepo",
    "InMemorySyncQueue",
    # Gateways
    "StubChannelAdapter",
    "RecordingNotificationDispatcher",
]
