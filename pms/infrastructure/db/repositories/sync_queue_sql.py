from datetime import datetime, timezone

from sqlalchemy import insert, select, update

from pms.application.interfaces.sync_queue import SyncQueue
from pms.domain.entities.reservation import ReservationStatus
from pms.domain.entities.sync_item import SyncItemStatus, SyncQueueItem
from pms.infrastructure.db.engine import session_scope, to_db_time
from pms.infrastructure.db.retry import with_deadlock_retry
from pms.infrastructure.db.tables import sync_queue

PENDING_STATUSES = (SyncItemStatus.NEW.value, SyncItemStatus.RETRY.value)


def _aware(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class SyncQueueSQL(SyncQueue):
    def __init__(self, session_maker) -> None:
        self._session_maker = session_maker

    @staticmethod
    def _to_entity(row) -> SyncQueueItem:
        return SyncQueueItem(
            id=row["id"],
            reservation_id=row["reservation_id"],
            channel=row["channel"],
            target_status=ReservationStatus(row["target_status"]),
            available_at=_aware(row["available_at"]),
            priority=row["priority"],
            status=SyncItemStatus(row["status"]),
            attempts=row["attempts"],
            max_attempts=row["max_attempts"],
            locked_by=row["locked_by"],
            last_error=row["last_error"],
            created_at=_aware(row["created_at"]),
            updated_at=_aware(row["updated_at"]),
        )

    @staticmethod
    def _values(item: SyncQueueItem) -> dict:
        return {
            "reservation_id": item.reservation_id,
            "channel": item.channel,
            "target_status": item.target_status.value,
            "priority": item.priority,
            "status": item.status.value,
            "attempts": item.attempts,
            "max_attempts": item.max_attempts,
            "available_at": to_db_time(item.available_at),
            "locked_by": item.locked_by,
            "last_error": item.last_error[:1000] if item.last_error else None,
            "created_at": to_db_time(item.created_at),
            "updated_at": to_db_time(item.updated_at),
        }

    @with_deadlock_retry()
    async def enqueue(self, item: SyncQueueItem) -> SyncQueueItem:
        async with session_scope(self._session_maker) as session:
            result = await session.execute(insert(sync_queue).values(**self._values(item)))
            item.id = result.inserted_primary_key[0]
        return item

    @with_deadlock_retry()
    async def drop_pending(self, reservation_id: str, channel: str, below_priority: int, now: datetime) -> int:
        stmt = (
            update(sync_queue)
            .where(
                sync_queue.c.reservation_id == reservation_id,
                sync_queue.c.channel == channel,
                sync_queue.c.status.in_(PENDING_STATUSES),
                sync_queue.c.priority < below_priority,
            )
            .values(status=SyncItemStatus.SUPERSEDED.value, locked_by=None, updated_at=to_db_time(now))
        )
        async with session_scope(self._session_maker) as session:
            result = await session.execute(stmt)
        return result.rowcount

    @with_deadlock_retry()
    async def claim_ready(self, now: datetime, limit: int, worker_id: str) -> list[SyncQueueItem]:
        stmt = (
            select(sync_queue)
            .where(sync_queue.c.status.in_(PENDING_STATUSES), sync_queue.c.available_at <= to_db_time(now))
            .order_by(sync_queue.c.priority.desc(), sync_queue.c.available_at, sync_queue.c.id)
            .limit(limit)
            .with_for_update(skip_locked=True)
        )
        async with session_scope(self._session_maker) as session:
            result = await session.execute(stmt)
            items = [self._to_entity(row) for row in result.mappings().all()]
            for item in items:
                item.claim(worker_id, now)
                await session.execute(
                    update(sync_queue)
                    .where(sync_queue.c.id == item.id)
                    .values(status=item.status.value, locked_by=worker_id, updated_at=to_db_time(now))
                )
        return items

    @with_deadlock_retry()
    async def update(self, item: SyncQueueItem) -> None:
        async with session_scope(self._session_maker) as session:
            await session.execute(update(sync_queue).where(sync_queue.c.id == item.id).values(**self._values(item)))

    async def list_for_reservation(self, reservation_id: str) -> list[SyncQueueItem]:
        stmt = select(sync_queue).where(sync_queue.c.reservation_id == reservation_id).order_by(sync_queue.c.id)
        async with session_scope(self._session_maker) as session:
            result = await session.execute(stmt)
            rows = result.mappings().all()
        return [self._to_entity(row) for row in rows]
