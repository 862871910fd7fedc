from datetime import date

from sqlalchemy import insert, select, update
from sqlalchemy.exc import IntegrityError

from pms.application.interfaces.inventory_repo import InventoryRepo
from pms.domain.entities.inventory import InventoryDay, InventoryKey
from pms.domain.errors import ConflictingVersionError
from pms.infrastructure.db.engine import session_scope, to_db_time
from pms.infrastructure.db.retry import with_deadlock_retry
from pms.infrastructure.db.tables import inventory_days
from pms.infrastructure.serialization import dump_inventory_day, load_inventory_day


class InventoryRepoSQL(InventoryRepo):
    def __init__(self, session_maker) -> None:
        self._session_maker = session_maker

    @staticmethod
    def _to_entity(row) -> InventoryDay:
        day = load_inventory_day(row["document"])
        day.version = row["version"]
        return day

    async def get(self, key: InventoryKey) -> InventoryDay | None:
        stmt = select(inventory_days.c.document, inventory_days.c.version).where(
            inventory_days.c.hotel_id == key.hotel_id,
            inventory_days.c.room_type_id == key.room_type_id,
            inventory_days.c.day == key.day,
        )
        async with session_scope(self._session_maker) as session:
            result = await session.execute(stmt)
            row = result.mappings().first()
        return self._to_entity(row) if row else None

    @with_deadlock_retry()
    async def save(self, day: InventoryDay, expected_version: int | None) -> InventoryDay:
        day.version = 0 if expected_version is None else expected_version + 1
        values = {"document": dump_inventory_day(day), "version": day.version, "updated_at": to_db_time(day.updated_at)}
        async with session_scope(self._session_maker) as session:
            if expected_version is None:
                try:
                    await session.execute(
                        insert(inventory_days).values(
                            hotel_id=day.hotel_id, room_type_id=day.room_type_id, day=day.day, **values
                        )
                    )
                    await session.flush()
                except IntegrityError as e:
                    raise ConflictingVersionError("inventory_day", str(day.key), expected_version) from e
            else:
                result = await session.execute(
                    update(inventory_days)
                    .where(
                        inventory_days.c.hotel_id == day.hotel_id,
                        inventory_days.c.room_type_id == day.room_type_id,
                        inventory_days.c.day == day.day,
                        inventory_days.c.version == expected_version,
                    )
                    .values(**values)
                )
                if result.rowcount == 0:
                    raise ConflictingVersionError("inventory_day", str(day.key), expected_version)
        return day

    async def list_range(self, hotel_id: str, room_type_id: str, start: date, end: date) -> list[InventoryDay]:
        stmt = (
            select(inventory_days.c.document, inventory_days.c.version)
            .where(
                inventory_days.c.hotel_id == hotel_id,
                inventory_days.c.room_type_id == room_type_id,
                inventory_days.c.day >= start,
                inventory_days.c.day <= end,
            )
            .order_by(inventory_days.c.day)
        )
        async with session_scope(self._session_maker) as session:
            result = await session.execute(stmt)
            rows = result.mappings().all()
        return [self._to_entity(row) for row in rows]
