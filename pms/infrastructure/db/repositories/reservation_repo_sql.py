import logging
from datetime import datetime
from typing import Sequence

from sqlalchemy import insert, select, text, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from pms.application.interfaces.reservation_repo import ReservationRepo
from pms.domain.entities.audit import AuditEntry
from pms.domain.entities.reservation import HOLD_STATUSES, Reservation, ReservationStatus
from pms.domain.errors import ConflictingVersionError, ReservationAlreadyExistsError
from pms.infrastructure.db.engine import session_scope, to_db_time
from pms.infrastructure.db.retry import with_deadlock_retry
from pms.infrastructure.db.tables import reservation_audit, reservations
from pms.infrastructure.serialization import (
    dump_audit_entry,
    dump_reservation,
    load_audit_entry,
    load_reservation,
)

logger = logging.getLogger(__name__)


class ReservationRepoSQL(ReservationRepo):
    def __init__(self, session_maker) -> None:
        self._session_maker = session_maker

    def _columns(self, reservation: Reservation) -> dict:
        return {
            "booking_number": reservation.booking_number,
            "hotel_id": reservation.hotel_id,
            "status": reservation.status.value,
            "payment_status": reservation.payment_status.value,
            "source": reservation.source,
            "channel_booking_id": reservation.channel_booking_id,
            "check_in": to_db_time(reservation.check_in),
            "check_out": to_db_time(reservation.check_out),
            "reserved_until": to_db_time(reservation.reserved_until),
            "document": dump_reservation(reservation),
            "version": reservation.version,
            "updated_at": to_db_time(reservation.updated_at),
        }

    @staticmethod
    def _to_entity(row) -> Reservation:
        reservation = load_reservation(row["document"])
        reservation.version = row["version"]
        return reservation

    async def _fetch_one(self, *conditions) -> Reservation | None:
        stmt = select(reservations.c.document, reservations.c.version).where(*conditions).limit(1)
        async with session_scope(self._session_maker) as session:
            result = await session.execute(stmt)
            row = result.mappings().first()
        return self._to_entity(row) if row else None

    async def _fetch_many(self, stmt) -> list[Reservation]:
        async with session_scope(self._session_maker) as session:
            result = await session.execute(stmt)
            rows = result.mappings().all()
        return [self._to_entity(row) for row in rows]

    async def get(self, reservation_id: str) -> Reservation | None:
        return await self._fetch_one(reservations.c.id == reservation_id)

    async def get_by_booking_number(self, booking_number: str) -> Reservation | None:
        return await self._fetch_one(reservations.c.booking_number == booking_number)

    async def get_by_channel_reference(self, source: str, channel_booking_id: str) -> Reservation | None:
        return await self._fetch_one(
            reservations.c.source == source,
            reservations.c.channel_booking_id == channel_booking_id,
        )

    @with_deadlock_retry()
    async def add(self, reservation: Reservation) -> Reservation:
        reservation.version = 0
        values = self._columns(reservation)
        values["id"] = reservation.id
        values["created_at"] = to_db_time(reservation.created_at)
        try:
            async with session_scope(self._session_maker) as session:
                await session.execute(insert(reservations).values(**values))
        except IntegrityError as e:
            if await self.get_by_booking_number(reservation.booking_number) is not None:
                raise ReservationAlreadyExistsError("booking_number", reservation.booking_number) from e
            if reservation.channel_booking_id:
                raise ReservationAlreadyExistsError("channel_booking_id", reservation.channel_booking_id) from e
            raise ReservationAlreadyExistsError("id", reservation.id) from e
        return reservation

    @with_deadlock_retry()
    async def save(self, reservation: Reservation, expected_version: int) -> Reservation:
        reservation.version = expected_version + 1
        stmt = (
            update(reservations)
            .where(reservations.c.id == reservation.id, reservations.c.version == expected_version)
            .values(**self._columns(reservation))
        )
        async with session_scope(self._session_maker) as session:
            result = await session.execute(stmt)
            if result.rowcount == 0:
                reservation.version = expected_version
                raise ConflictingVersionError("reservation", reservation.id, expected_version)
        return reservation

    async def find_expired_holds(self, now: datetime, limit: int) -> list[Reservation]:
        stmt = (
            select(reservations.c.document, reservations.c.version)
            .where(
                reservations.c.status.in_([status.value for status in HOLD_STATUSES]),
                reservations.c.reserved_until.is_not(None),
                reservations.c.reserved_until < to_db_time(now),
            )
            .order_by(reservations.c.reserved_until)
            .limit(limit)
        )
        return await self._fetch_many(stmt)

    async def find_by_status_with_check_in_before(
        self, status: ReservationStatus, threshold: datetime, limit: int
    ) -> list[Reservation]:
        stmt = (
            select(reservations.c.document, reservations.c.version)
            .where(reservations.c.status == status.value, reservations.c.check_in < to_db_time(threshold))
            .order_by(reservations.c.check_in)
            .limit(limit)
        )
        return await self._fetch_many(stmt)

    async def find_by_status_with_check_out_before(
        self, status: ReservationStatus, threshold: datetime, limit: int
    ) -> list[Reservation]:
        stmt = (
            select(reservations.c.document, reservations.c.version)
            .where(reservations.c.status == status.value, reservations.c.check_out < to_db_time(threshold))
            .order_by(reservations.c.check_out)
            .limit(limit)
        )
        return await self._fetch_many(stmt)

    @with_deadlock_retry()
    async def append_audit(self, entries: Sequence[AuditEntry]) -> None:
        if not entries:
            return
        rows = [
            {
                "reservation_id": entry.reservation_id,
                "kind": entry.kind.value,
                "timestamp": to_db_time(entry.timestamp),
                "document": dump_audit_entry(entry),
            }
            for entry in entries
        ]
        async with session_scope(self._session_maker) as session:
            await session.execute(insert(reservation_audit), rows)

    async def list_audit(self, reservation_id: str) -> list[AuditEntry]:
        stmt = (
            select(reservation_audit.c.document)
            .where(reservation_audit.c.reservation_id == reservation_id)
            .order_by(reservation_audit.c.id)
        )
        async with session_scope(self._session_maker) as session:
            result = await session.execute(stmt)
            documents = result.scalars().all()
        return [load_audit_entry(document) for document in documents]

    async def is_available(self) -> bool:
        try:
            async with session_scope(self._session_maker) as session:
                await session.execute(text("SELECT 1"))
            return True
        except (SQLAlchemyError, OSError) as e:
            logger.warning("Database health check failed", extra={"error": str(e)})
            return False
