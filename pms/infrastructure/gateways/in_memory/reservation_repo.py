import copy
from datetime import datetime
from typing import Sequence

from pms.application.interfaces.reservation_repo import ReservationRepo
from pms.domain.entities.audit import AuditEntry
from pms.domain.entities.reservation import Reservation, ReservationStatus
from pms.domain.errors import ConflictingVersionError, ReservationAlreadyExistsError


class InMemoryReservationRepo(ReservationRepo):
    def __init__(self) -> None:
        self.reservations: dict[str, Reservation] = {}
        self.booking_numbers: dict[str, str] = {}
        self.channel_references: dict[tuple[str, str], str] = {}
        self.audit: list[AuditEntry] = []
        self.available = True

    async def get(self, reservation_id: str) -> Reservation | None:
        reservation = self.reservations.get(reservation_id)
        return copy.deepcopy(reservation) if reservation else None

    async def get_by_booking_number(self, booking_number: str) -> Reservation | None:
        reservation_id = self.booking_numbers.get(booking_number)
        return await self.get(reservation_id) if reservation_id else None

    async def get_by_channel_reference(self, source: str, channel_booking_id: str) -> Reservation | None:
        reservation_id = self.channel_references.get((source, channel_booking_id))
        return await self.get(reservation_id) if reservation_id else None

    async def add(self, reservation: Reservation) -> Reservation:
        if reservation.id in self.reservations:
            raise ReservationAlreadyExistsError("id", reservation.id)
        if reservation.booking_number in self.booking_numbers:
            raise ReservationAlreadyExistsError("booking_number", reservation.booking_number)
        channel_key = self._channel_key(reservation)
        if channel_key and channel_key in self.channel_references:
            raise ReservationAlreadyExistsError("channel_booking_id", channel_key[1])

        reservation.version = 0
        self.reservations[reservation.id] = copy.deepcopy(reservation)
        self.booking_numbers[reservation.booking_number] = reservation.id
        if channel_key:
            self.channel_references[channel_key] = reservation.id
        return copy.deepcopy(reservation)

    async def save(self, reservation: Reservation, expected_version: int) -> Reservation:
        current = self.reservations.get(reservation.id)
        if current is None or current.version != expected_version:
            raise ConflictingVersionError("reservation", reservation.id, expected_version)
        reservation.version = expected_version + 1
        self.reservations[reservation.id] = copy.deepcopy(reservation)
        return copy.deepcopy(reservation)

    async def find_expired_holds(self, now: datetime, limit: int) -> list[Reservation]:
        found = [
            r
            for r in self.reservations.values()
            if r.is_on_hold and r.reserved_until < now
        ]
        found.sort(key=lambda r: r.reserved_until)
        return [copy.deepcopy(r) for r in found[:limit]]

    async def find_by_status_with_check_in_before(
        self, status: ReservationStatus, threshold: datetime, limit: int
    ) -> list[Reservation]:
        found = [r for r in self.reservations.values() if r.status == status and r.check_in < threshold]
        found.sort(key=lambda r: r.check_in)
        return [copy.deepcopy(r) for r in found[:limit]]

    async def find_by_status_with_check_out_before(
        self, status: ReservationStatus, threshold: datetime, limit: int
    ) -> list[Reservation]:
        found = [r for r in self.reservations.values() if r.status == status and r.check_out < threshold]
        found.sort(key=lambda r: r.check_out)
        return [copy.deepcopy(r) for r in found[:limit]]

    async def append_audit(self, entries: Sequence[AuditEntry]) -> None:
        self.audit.extend(copy.deepcopy(list(entries)))

    async def list_audit(self, reservation_id: str) -> list[AuditEntry]:
        return [copy.deepcopy(e) for e in self.audit if e.reservation_id == reservation_id]

    async def is_available(self) -> bool:
        return self.available

    @staticmethod
    def _channel_key(reservation: Reservation) -> tuple[str, str] | None:
        if not reservation.channel_booking_id:
            return None
        return (reservation.source, reservation.channel_booking_id)
