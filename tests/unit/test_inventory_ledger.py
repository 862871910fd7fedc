"""
Tests del ledger de inventario.

Verifican la venta atómica de estancias, las restricciones por canal y que
los invariantes del día se mantienen con escritores concurrentes.
"""

import asyncio
from collections import Counter
from datetime import date

import pytest

from pms.application.services.inventory_ledger import StayRequest
from pms.domain.entities.inventory import InventoryKey
from pms.domain.errors import AllotmentNotFoundError, InsufficientInventoryError, PolicyViolationError
from tests.helpers import HOTEL, ROOM_TYPE, setup_allotment

DAY_1 = date(2025, 1, 10)
DAY_2 = date(2025, 1, 11)
DAY_3 = date(2025, 1, 12)


def stay(channel: str = "direct", *days: date, rooms: int = 1, **restrictions) -> StayRequest:
    return StayRequest(HOTEL, channel, Counter({(ROOM_TYPE, d): rooms for d in days}), **restrictions)


@pytest.mark.asyncio
class TestDayOperations:
    async def test_days_materialize_from_allotment(self, container):
        await setup_allotment(container, DAY_1, 0, {})
        day = await container.ledger.ensure_day(HOTEL, ROOM_TYPE, DAY_1)

        assert day.total_inventory == 10
        assert set(day.channels) == {"direct", "booking_com", "expedia"}
        assert all(bucket.allocated == 0 for bucket in day.channels.values())

    async def test_missing_allotment(self, container):
        with pytest.raises(AllotmentNotFoundError):
            await container.ledger.book(HOTEL, ROOM_TYPE, DAY_1, "direct", 1)

    async def test_book_and_release(self, container):
        await setup_allotment(container, DAY_1, 1, {"direct": 2})

        day = await container.ledger.book(HOTEL, ROOM_TYPE, DAY_1, "direct", 2)
        assert day.channels["direct"].available == 0

        day = await container.ledger.release(HOTEL, ROOM_TYPE, DAY_1, "direct", 1)
        assert day.channels["direct"].sold == 1

    async def test_inactive_channel_cannot_sell(self, container):
        await setup_allotment(container, DAY_1, 1, {"direct": 2, "airbnb": 1})
        with pytest.raises(InsufficientInventoryError):
            await container.ledger.book(HOTEL, ROOM_TYPE, DAY_1, "airbnb", 1)

    async def test_versions_increase_on_every_save(self, container):
        await setup_allotment(container, DAY_1, 1, {"direct": 3})
        first = await container.ledger.get_day(HOTEL, ROOM_TYPE, DAY_1)
        await container.ledger.book(HOTEL, ROOM_TYPE, DAY_1, "direct", 1)
        second = await container.ledger.get_day(HOTEL, ROOM_TYPE, DAY_1)
        assert second.version == first.version + 1

    async def test_overbooking_limit(self, container):
        await setup_allotment(
            container, DAY_1, 1, {"booking_com": 5}, total_inventory=10, overbooking_allowed=True, overbooking_limit=2
        )
        for _ in range(7):
            await container.ledger.book(HOTEL, ROOM_TYPE, DAY_1, "booking_com", 1)
        with pytest.raises(InsufficientInventoryError):
            await container.ledger.book(HOTEL, ROOM_TYPE, DAY_1, "booking_com", 1)

        bucket = (await container.ledger.get_day(HOTEL, ROOM_TYPE, DAY_1)).channels["booking_com"]
        assert (bucket.sold, bucket.overbooking) == (5, 2)


@pytest.mark.asyncio
class TestStayOperations:
    async def test_book_stay_sells_every_night(self, container):
        await setup_allotment(container, DAY_1, 2, {"direct": 1})
        await container.ledger.book_stay(stay("direct", DAY_1, DAY_2))

        days = await container.ledger.list_days(HOTEL, ROOM_TYPE, DAY_1, DAY_2)
        assert [d.channels["direct"].sold for d in days] == [1, 1]

    async def test_book_stay_is_all_or_nothing(self, container):
        await setup_allotment(container, DAY_1, 2, {"direct": 1})
        await container.ledger.apply_allocations(HOTEL, ROOM_TYPE, DAY_3, {"direct": 0})

        with pytest.raises(InsufficientInventoryError):
            await container.ledger.book_stay(stay("direct", DAY_1, DAY_2, DAY_3))

        days = await container.ledger.list_days(HOTEL, ROOM_TYPE, DAY_1, DAY_3)
        assert [d.channels["direct"].sold for d in days] == [0, 0, 0]

    async def test_release_stay(self, container):
        await setup_allotment(container, DAY_1, 2, {"direct": 2})
        request = stay("direct", DAY_1, DAY_2)
        await container.ledger.book_stay(request)
        await container.ledger.release_stay(request)

        days = await container.ledger.list_days(HOTEL, ROOM_TYPE, DAY_1, DAY_2)
        assert [d.channels["direct"].sold for d in days] == [0, 0]

    async def test_minimum_stay_restriction(self, container):
        channels = [
            {"channel_id": "direct", "channel_name": "Direct", "restrictions": {"minimum_stay": 3}},
        ]
        await setup_allotment(container, DAY_1, 2, {"direct": 2}, channels=channels)

        with pytest.raises(PolicyViolationError) as exc:
            await container.ledger.book_stay(stay("direct", DAY_1, DAY_2, stay_nights=2))
        assert exc.value.policy == "minimumStay"

        day = await container.ledger.get_day(HOTEL, ROOM_TYPE, DAY_1)
        assert day.channels["direct"].sold == 0

    async def test_closed_to_arrival(self, container):
        channels = [
            {"channel_id": "direct", "channel_name": "Direct", "restrictions": {"closed_to_arrival": True}},
        ]
        await setup_allotment(container, DAY_1, 1, {"direct": 2}, channels=channels)
        with pytest.raises(PolicyViolationError) as exc:
            await container.ledger.book_stay(stay("direct", DAY_1, arrival=DAY_1))
        assert exc.value.policy == "closedToArrival"

    async def test_stop_sell(self, container):
        channels = [
            {"channel_id": "direct", "channel_name": "Direct", "restrictions": {"stop_sell": True}},
        ]
        await setup_allotment(container, DAY_1, 1, {"direct": 2}, channels=channels)
        with pytest.raises(InsufficientInventoryError):
            await container.ledger.book_stay(stay("direct", DAY_1))

    async def test_concurrent_bookings_never_oversell(self, container):
        await setup_allotment(container, DAY_1, 1, {"direct": 3})

        async def attempt():
            try:
                await container.ledger.book_stay(stay("direct", DAY_1))
                return True
            except InsufficientInventoryError:
                return False

        results = await asyncio.gather(*(attempt() for _ in range(10)))

        assert results.count(True) == 3
        day = container.inventory_repo.days[InventoryKey(HOTEL, ROOM_TYPE, DAY_1)]
        assert day.channels["direct"].sold == 3
        assert day.channels["direct"].available == 0
        assert len(container.ledger._locks) == 0
