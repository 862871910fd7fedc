"""Factories y utilidades compartidas por las pruebas."""

import asyncio
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

from pms.api.dependencies import Container
from pms.application.schemas import CreateAllotmentRequest, CreateReservationRequest, PaymentRequest
from pms.domain.entities.reservation import GuestInfo, Reservation, RoomLine

HOTEL = "H1"
ROOM_TYPE = "STD"
GUEST_EMAIL = "ana.lopez@hotelmail.com"


def utc(year: int, month: int, day: int, hour: int = 0, minute: int = 0, second: int = 0) -> datetime:
    return datetime(year, month, day, hour, minute, second, tzinfo=timezone.utc)


NOW = utc(2025, 1, 1, 10)


def reservation_request(**overrides) -> CreateReservationRequest:
    """Reservación directa de 2 noches (10 al 12 de enero de 2025) por 10000."""
    data = {
        "hotel_id": HOTEL,
        "guest_id": "G1",
        "check_in": utc(2025, 1, 10, 14),
        "check_out": utc(2025, 1, 12, 11),
        "rooms": [{"room_type": ROOM_TYPE, "rate": "5000"}],
        "total_amount": Decimal("10000"),
        "guest_info": {"name": "Ana López", "email": GUEST_EMAIL},
    }
    data.update(overrides)
    return CreateReservationRequest.model_validate(data)


def make_reservation(**overrides) -> Reservation:
    """Agregado en memoria para probar la máquina de estados sin servicios."""
    data = dict(
        id="res-1",
        booking_number="BK20250101001",
        hotel_id=HOTEL,
        guest_id="G1",
        check_in=utc(2025, 1, 10, 14),
        check_out=utc(2025, 1, 12, 11),
        nights=2,
        rooms=[RoomLine(room_type=ROOM_TYPE, rate=Decimal("5000"), room_id="101")],
        total_amount=Decimal("10000"),
        guest_info=GuestInfo(name="Ana López", email=GUEST_EMAIL),
    )
    data.update(overrides)
    return Reservation(**data)


async def setup_allotment(
    container: Container,
    start: date,
    days: int,
    allocations: dict[str, int],
    total_inventory: int = 10,
    overbooking_allowed: bool = False,
    overbooking_limit: int = 0,
    room_type_id: str = ROOM_TYPE,
    channels: list[dict] | None = None,
) -> None:
    """Crea el allotment y asigna cupos a cada día del rango."""
    await container.allocation.create_allotment(
        CreateAllotmentRequest(
            hotel_id=HOTEL,
            room_type_id=room_type_id,
            total_inventory=total_inventory,
            overbooking_allowed=overbooking_allowed,
            overbooking_limit=overbooking_limit,
            channels=channels,
        )
    )
    for offset in range(days):
        await container.ledger.apply_allocations(HOTEL, room_type_id, start + timedelta(days=offset), allocations)


async def confirm_by_payment(container: Container, reservation_id: str) -> Reservation:
    """Paga el total; el workflow confirma la reservación."""
    reservation = await container.reservations.get(reservation_id)
    return await container.reservations.submit_payment(
        reservation_id, PaymentRequest(amount=reservation.total_amount, method="card")
    )


async def sold(container: Container, day: date, channel: str = "direct", room_type_id: str = ROOM_TYPE) -> int:
    inventory = await container.ledger.get_day(HOTEL, room_type_id, day)
    return inventory.channels[channel].sold if inventory else 0


async def settle(rounds: int = 100) -> None:
    """Cede el loop varias veces para que las tareas en segundo plano avancen."""
    for _ in range(rounds):
        await asyncio.sleep(0)
