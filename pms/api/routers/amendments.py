from dataclasses import asdict

from fastapi import APIRouter, Depends, status
from fastapi.encoders import jsonable_encoder

from pms.api.dependencies import Container, get_container
from pms.application.schemas import AmendmentPayload, AmendmentResolutionRequest

router = APIRouter()


@router.post("/reservations/{reservation_id}/amendments", status_code=status.HTTP_202_ACCEPTED)
async def receive_amendment(
    reservation_id: str,
    payload: AmendmentPayload,
    container: Container = Depends(get_container),
) -> dict:
    receipt = await container.amendments.receive(reservation_id, payload)
    return jsonable_encoder(asdict(receipt))


@router.get("/reservations/{reservation_id}/amendments")
async def list_amendments(reservation_id: str, container: Container = Depends(get_container)) -> list[dict]:
    reservation = await container.reservations.get(reservation_id)
    return jsonable_encoder([asdict(record) for record in reservation.amendments])


@router.post("/reservations/{reservation_id}/amendments/{amendment_id}/resolution")
async def resolve_amendment(
    reservation_id: str,
    amendment_id: str,
    payload: AmendmentResolutionRequest,
    container: Container = Depends(get_container),
) -> dict:
    record = await container.amendments.resolve(reservation_id, amendment_id, payload.decision, payload.approver)
    return jsonable_encoder(asdict(record))
