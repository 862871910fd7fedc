import copy
from datetime import datetime

from pms.application.interfaces.sync_queue import SyncQueue
from pms.domain.entities.sync_item import SyncItemStatus, SyncQueueItem


class InMemorySyncQueue(SyncQueue):
    def __init__(self) -> None:
        self.items: dict[int, SyncQueueItem] = {}
        self._next_id = 1

    async def enqueue(self, item: SyncQueueItem) -> SyncQueueItem:
        item.id = self._next_id
        self._next_id += 1
        self.items[item.id] = copy.deepcopy(item)
        return copy.deepcopy(item)

    async def drop_pending(self, reservation_id: str, channel: str, below_priority: int, now: datetime) -> int:
        dropped = 0
        for item in self.items.values():
            if (
                item.reservation_id == reservation_id
                and item.channel == channel
                and item.status in (SyncItemStatus.NEW, SyncItemStatus.RETRY)
                and item.priority < below_priority
            ):
                item.mark_superseded(now)
                dropped += 1
        return dropped

    async def claim_ready(self, now: datetime, limit: int, worker_id: str) -> list[SyncQueueItem]:
        ready = sorted((i for i in self.items.values() if i.is_ready(now)), key=lambda i: i.sort_key())
        claimed = []
        for item in ready[:limit]:
            item.claim(worker_id, now)
            claimed.append(copy.deepcopy(item))
        return claimed

    async def update(self, item: SyncQueueItem) -> None:
        if item.id not in self.items:
            raise KeyError(f"Sync item {item.id} not found")
        self.items[item.id] = copy.deepcopy(item)

    async def list_for_reservation(self, reservation_id: str) -> list[SyncQueueItem]:
        return [copy.deepcopy(i) for i in sorted(self.items.values(), key=lambda i: i.id) if i.reservation_id == reservation_id]
