from sqlalchemy import insert, select, update
from sqlalchemy.exc import IntegrityError

from pms.application.interfaces.allotment_repo import AllotmentRepo
from pms.domain.entities.allotment import AllotmentConfig
from pms.domain.errors import ConflictingVersionError
from pms.infrastructure.db.engine import session_scope, to_db_time
from pms.infrastructure.db.retry import with_deadlock_retry
from pms.infrastructure.db.tables import allotment_configs
from pms.infrastructure.serialization import dump_allotment, load_allotment


class AllotmentRepoSQL(AllotmentRepo):
    def __init__(self, session_maker) -> None:
        self._session_maker = session_maker

    @staticmethod
    def _to_entity(row) -> AllotmentConfig:
        config = load_allotment(row["document"])
        config.version = row["version"]
        return config

    async def get(self, hotel_id: str, room_type_id: str) -> AllotmentConfig | None:
        stmt = select(allotment_configs.c.document, allotment_configs.c.version).where(
            allotment_configs.c.hotel_id == hotel_id,
            allotment_configs.c.room_type_id == room_type_id,
        )
        async with session_scope(self._session_maker) as session:
            result = await session.execute(stmt)
            row = result.mappings().first()
        return self._to_entity(row) if row else None

    @with_deadlock_retry()
    async def save(self, config: AllotmentConfig, expected_version: int | None) -> AllotmentConfig:
        key = f"{config.hotel_id}/{config.room_type_id}"
        config.version = 0 if expected_version is None else expected_version + 1
        values = {"document": dump_allotment(config), "version": config.version, "updated_at": to_db_time(config.updated_at)}
        async with session_scope(self._session_maker) as session:
            if expected_version is None:
                try:
                    await session.execute(
                        insert(allotment_configs).values(
                            hotel_id=config.hotel_id, room_type_id=config.room_type_id, **values
                        )
                    )
                    await session.flush()
                except IntegrityError as e:
                    raise ConflictingVersionError("allotment", key, expected_version) from e
            else:
                result = await session.execute(
                    update(allotment_configs)
                    .where(
                        allotment_configs.c.hotel_id == config.hotel_id,
                        allotment_configs.c.room_type_id == config.room_type_id,
                        allotment_configs.c.version == expected_version,
                    )
                    .values(**values)
                )
                if result.rowcount == 0:
                    raise ConflictingVersionError("allotment", key, expected_version)
        return config

    async def list_for_hotel(self, hotel_id: str) -> list[AllotmentConfig]:
        stmt = (
            select(allotment_configs.c.document, allotment_configs.c.version)
            .where(allotment_configs.c.hotel_id == hotel_id)
            .order_by(allotment_configs.c.room_type_id)
        )
        async with session_scope(self._session_maker) as session:
            result = await session.execute(stmt)
            rows = result.mappings().all()
        return [self._to_entity(row) for row in rows]
