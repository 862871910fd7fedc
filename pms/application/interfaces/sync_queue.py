from datetime import datetime

from pms.domain.entities.sync_item import SyncQueueItem


class SyncQueue:
    async def enqueue(self, item: SyncQueueItem) -> SyncQueueItem:
        raise NotImplementedError

    async def drop_pending(self, reservation_id: str, channel: str, below_priority: int, now: datetime) -> int:
        """Descarta elementos no iniciados de menor prioridad para la reservación."""
        raise NotImplementedError

    async def claim_ready(self, now: datetime, limit: int, worker_id: str) -> list[SyncQueueItem]:
        raise NotImplementedError

    async def update(self, item: SyncQueueItem) -> None:
        raise NotImplementedError

    async def list_for_reservation(self, reservation_id: str) -> list[SyncQueueItem]:
        raise NotImplementedError
