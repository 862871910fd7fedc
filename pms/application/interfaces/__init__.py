"""Interfaces (Puertos) de la capa de aplicación."""

from pms.application.interfaces.allotment_repo import AllotmentRepo
from pms.application.interfaces.channel_adapter import ChannelAdapter, ChannelPushOutcome, ChannelPushResult
from pms.application.interfaces.clock import Clock, FakeClock, SystemClock
from pms.application.interfaces.inventory_repo import InventoryRepo
from pms.application.interfaces.notification_dispatcher import NotificationDispatcher
from pms.application.interfaces.reservation_repo import ReservationRepo
from pms.application.interfaces.sync_queue import SyncQueue

__all__ = [
    # Repositories
    "ReservationRepo",
    "InventoryRepo",
    "AllotmentRepo",
    "SyncQueue",
    # Gateways
    "ChannelAdapter",
    "ChannelPushOutcome",
    "ChannelPushResult",
    "NotificationDispatcher",
    # Utilities
    "Clock",
    "SystemClock",
    "FakeClock",
]
