from dataclasses import asdict
from datetime import date

from fastapi import APIRouter, Depends, Query, status
from fastapi.encoders import jsonable_encoder

from pms.api.dependencies import Container, get_container
from pms.application.schemas import (
    AllocationRuleRequest,
    ChannelQuantityRequest,
    ChannelRateRequest,
    CreateAllotmentRequest,
    DateRangeRequest,
    InitializeDaysRequest,
    PerformancePeriodRequest,
)
from pms.domain.entities.inventory import InventoryDay
from pms.infrastructure.serialization import dump_allotment, dump_inventory_day

router = APIRouter()


def _present_day(day: InventoryDay) -> dict:
    data = dump_inventory_day(day)
    data["free_stock"] = day.free_stock
    data["occupancy_rate"] = round(day.occupancy_rate, 2)
    for channel, bucket in day.channels.items():
        data["channels"][channel]["available"] = bucket.available
    return data


# === Allotments ===


@router.post("/allotments", status_code=status.HTTP_201_CREATED)
async def create_allotment(payload: CreateAllotmentRequest, container: Container = Depends(get_container)) -> dict:
    return dump_allotment(await container.allocation.create_allotment(payload))


@router.get("/allotments/{hotel_id}/{room_type_id}")
async def get_allotment(hotel_id: str, room_type_id: str, container: Container = Depends(get_container)) -> dict:
    return dump_allotment(await container.allocation.get_allotment(hotel_id, room_type_id))


@router.post("/allotments/{hotel_id}/{room_type_id}/days", status_code=status.HTTP_201_CREATED)
async def initialize_days(
    hotel_id: str,
    room_type_id: str,
    payload: InitializeDaysRequest,
    container: Container = Depends(get_container),
) -> list[dict]:
    days = await container.allocation.initialize_days(hotel_id, room_type_id, payload.start_date, payload.days)
    return [_present_day(day) for day in days]


@router.post("/allotments/{hotel_id}/{room_type_id}/rules", status_code=status.HTTP_201_CREATED)
async def add_rule(
    hotel_id: str,
    room_type_id: str,
    payload: AllocationRuleRequest,
    container: Container = Depends(get_container),
) -> dict:
    rule = await container.allocation.add_rule(hotel_id, room_type_id, payload)
    return jsonable_encoder(asdict(rule))


@router.post("/allotments/{hotel_id}/{room_type_id}/rules/{rule_id}/activate")
async def activate_rule(
    hotel_id: str, room_type_id: str, rule_id: str, container: Container = Depends(get_container)
) -> dict:
    return jsonable_encoder(asdict(await container.allocation.activate_rule(hotel_id, room_type_id, rule_id)))


@router.post("/allotments/{hotel_id}/{room_type_id}/rules/{rule_id}/deactivate")
async def deactivate_rule(
    hotel_id: str, room_type_id: str, rule_id: str, container: Container = Depends(get_container)
) -> dict:
    return jsonable_encoder(asdict(await container.allocation.deactivate_rule(hotel_id, room_type_id, rule_id)))


@router.post("/allotments/{hotel_id}/{room_type_id}/rules/{rule_id}/apply")
async def apply_rule(
    hotel_id: str,
    room_type_id: str,
    rule_id: str,
    payload: DateRangeRequest,
    container: Container = Depends(get_container),
) -> dict:
    result = await container.allocation.apply_rule(hotel_id, room_type_id, rule_id, payload.start_date, payload.end_date)
    return result.to_dict()


@router.post("/allotments/{hotel_id}/{room_type_id}/apply")
async def apply_active_rules(
    hotel_id: str,
    room_type_id: str,
    payload: DateRangeRequest,
    container: Container = Depends(get_container),
) -> dict:
    result = await container.allocation.apply_active_rules(hotel_id, room_type_id, payload.start_date, payload.end_date)
    return result.to_dict()


@router.post("/allotments/{hotel_id}/{room_type_id}/performance")
async def record_performance(
    hotel_id: str,
    room_type_id: str,
    payload: PerformancePeriodRequest,
    container: Container = Depends(get_container),
) -> dict:
    return dump_allotment(await container.allocation.record_performance(hotel_id, room_type_id, payload))


@router.get("/allotments/{hotel_id}/{room_type_id}/recommendations")
async def recommendations(hotel_id: str, room_type_id: str, container: Container = Depends(get_container)) -> list[dict]:
    items = await container.allocation.generate_recommendations(hotel_id, room_type_id)
    return [asdict(item) for item in items]


@router.post("/allotments/{hotel_id}/{room_type_id}/optimize", status_code=status.HTTP_201_CREATED)
async def propose_optimized_rule(
    hotel_id: str, room_type_id: str, container: Container = Depends(get_container)
) -> dict:
    rule = await container.allocation.propose_optimized_rule(hotel_id, room_type_id)
    return jsonable_encoder(asdict(rule))


# === Días de inventario ===


@router.get("/inventory/{hotel_id}/{room_type_id}")
async def list_days(
    hotel_id: str,
    room_type_id: str,
    start_date: date = Query(...),
    end_date: date = Query(...),
    container: Container = Depends(get_container),
) -> list[dict]:
    days = await container.ledger.list_days(hotel_id, room_type_id, start_date, end_date)
    return [_present_day(day) for day in days]


@router.post("/inventory/{hotel_id}/{room_type_id}/{day}/allocate")
async def allocate(
    hotel_id: str,
    room_type_id: str,
    day: date,
    payload: ChannelQuantityRequest,
    container: Container = Depends(get_container),
) -> dict:
    return _present_day(await container.ledger.allocate(hotel_id, room_type_id, day, payload.channel, payload.quantity))


@router.post("/inventory/{hotel_id}/{room_type_id}/{day}/block")
async def block(
    hotel_id: str,
    room_type_id: str,
    day: date,
    payload: ChannelQuantityRequest,
    container: Container = Depends(get_container),
) -> dict:
    return _present_day(await container.ledger.block(hotel_id, room_type_id, day, payload.channel, payload.quantity))


@router.post("/inventory/{hotel_id}/{room_type_id}/{day}/unblock")
async def unblock(
    hotel_id: str,
    room_type_id: str,
    day: date,
    payload: ChannelQuantityRequest,
    container: Container = Depends(get_container),
) -> dict:
    return _present_day(await container.ledger.unblock(hotel_id, room_type_id, day, payload.channel, payload.quantity))


@router.post("/inventory/{hotel_id}/{room_type_id}/{day}/rate")
async def update_rate(
    hotel_id: str,
    room_type_id: str,
    day: date,
    payload: ChannelRateRequest,
    container: Container = Depends(get_container),
) -> dict:
    return _present_day(await container.ledger.update_rate(hotel_id, room_type_id, day, payload.channel, payload.rate))
