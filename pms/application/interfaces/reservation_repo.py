from datetime import datetime
from typing import Sequence

from pms.domain.entities.audit import AuditEntry
from pms.domain.entities.reservation import Reservation, ReservationStatus


class ReservationRepo:
    async def get(self, reservation_id: str) -> Reservation | None:
        raise NotImplementedError

    async def get_by_booking_number(self, booking_number: str) -> Reservation | None:
        raise NotImplementedError

    async def get_by_channel_reference(self, source: str, channel_booking_id: str) -> Reservation | None:
        raise NotImplementedError

    async def add(self, reservation: Reservation) -> Reservation:
        """Inserta una reservación nueva (version 0); ReservationAlreadyExistsError si choca."""
        raise NotImplementedError

    async def save(self, reservation: Reservation, expected_version: int) -> Reservation:
        """Guarda con CAS; retorna la reservación con version = expected_version + 1."""
        raise NotImplementedError

    async def find_expired_holds(self, now: datetime, limit: int) -> list[Reservation]:
        raise NotImplementedError

    async def find_by_status_with_check_in_before(
        self, status: ReservationStatus, threshold: datetime, limit: int
    ) -> list[Reservation]:
        raise NotImplementedError

    async def find_by_status_with_check_out_before(
        self, status: ReservationStatus, threshold: datetime, limit: int
    ) -> list[Reservation]:
        raise NotImplementedError

    async def append_audit(self, entries: Sequence[AuditEntry]) -> None:
        raise NotImplementedError

    async def list_audit(self, reservation_id: str) -> list[AuditEntry]:
        raise NotImplementedError

    async def is_available(self) -> bool:
        raise NotImplementedError
