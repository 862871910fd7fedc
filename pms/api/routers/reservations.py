from dataclasses import asdict

from fastapi import APIRouter, Depends, status
from fastapi.encoders import jsonable_encoder

from pms.api.dependencies import Container, get_container
from pms.application.schemas import (
    CancelReservationRequest,
    CreateReservationRequest,
    PaymentRequest,
    ReservationDetailsRequest,
    StatusChangeRequest,
)
from pms.infrastructure.serialization import dump_audit_entry, dump_reservation

router = APIRouter()


@router.post("/reservations", status_code=status.HTTP_201_CREATED)
async def create_reservation(
    payload: CreateReservationRequest,
    container: Container = Depends(get_container),
) -> dict:
    reservation = await container.reservations.create(payload)
    return dump_reservation(reservation)


@router.get("/reservations/{reservation_id}")
async def get_reservation(reservation_id: str, container: Container = Depends(get_container)) -> dict:
    return dump_reservation(await container.reservations.get(reservation_id))


@router.get("/reservations/by-booking-number/{booking_number}")
async def get_by_booking_number(booking_number: str, container: Container = Depends(get_container)) -> dict:
    return dump_reservation(await container.reservations.get_by_booking_number(booking_number))


@router.post("/reservations/{reservation_id}/status")
async def change_status(
    reservation_id: str,
    payload: StatusChangeRequest,
    container: Container = Depends(get_container),
) -> dict:
    reservation = await container.reservations.transition(reservation_id, payload.status, payload.to_context())
    return dump_reservation(reservation)


@router.post("/reservations/{reservation_id}/cancel")
async def cancel_reservation(
    reservation_id: str,
    payload: CancelReservationRequest,
    container: Container = Depends(get_container),
) -> dict:
    reservation = await container.reservations.cancel(reservation_id, payload.to_context())
    return dump_reservation(reservation)


@router.post("/reservations/{reservation_id}/payments")
async def submit_payment(
    reservation_id: str,
    payload: PaymentRequest,
    container: Container = Depends(get_container),
) -> dict:
    return dump_reservation(await container.reservations.submit_payment(reservation_id, payload))


@router.patch("/reservations/{reservation_id}/details")
async def update_details(
    reservation_id: str,
    payload: ReservationDetailsRequest,
    container: Container = Depends(get_container),
) -> dict:
    reservation = await container.reservations.update_details(
        reservation_id, guest_info=payload.guest_info, special_requests=payload.special_requests
    )
    return dump_reservation(reservation)


@router.get("/reservations/{reservation_id}/audit")
async def list_audit(reservation_id: str, container: Container = Depends(get_container)) -> list[dict]:
    await container.reservations.get(reservation_id)
    return [dump_audit_entry(entry) for entry in await container.reservations.list_audit(reservation_id)]


@router.get("/reservations/{reservation_id}/sync-items")
async def list_sync_items(reservation_id: str, container: Container = Depends(get_container)) -> list[dict]:
    await container.reservations.get(reservation_id)
    items = await container.sync_queue.list_for_reservation(reservation_id)
    return jsonable_encoder([asdict(item) for item in items])
