"""
Tests de la sincronización con canales externos.

Incluye el caso de uso ProcessSyncItem, el orden de la cola y el ciclo del
SyncWorker sobre el reloj fake.
"""

import asyncio
from datetime import date, timedelta
from decimal import Decimal

import pytest

from pms.application.interfaces.channel_adapter import ChannelAdapter
from pms.domain.entities.intents import SyncFailureAlert
from pms.domain.entities.reservation import ActorSource, ChannelSyncOutcome, ReservationStatus
from pms.domain.entities.sync_item import SyncItemStatus, SyncQueueItem
from pms.domain.value_objects.status_change_context import StatusChangeContext
from pms.infrastructure.gateways.channel_adapter_logging import LoggingChannelAdapter
from pms.infrastructure.gateways.in_memory import InMemorySyncQueue
from tests.helpers import NOW, reservation_request, settle, setup_allotment, utc

CHANNEL = "booking_com"


class RaisingAdapter(ChannelAdapter):
    def __init__(self, error: Exception) -> None:
        self.error = error

    async def push_status(self, reservation, status):
        raise self.error


async def confirmed_ota_reservation(container):
    await setup_allotment(container, date(2025, 1, 10), 2, {CHANNEL: 2})
    reservation = await container.reservations.create(
        reservation_request(source="ota-booking", channel_booking_id="BDC-1001", total_amount=Decimal("300"))
    )
    return await container.reservations.transition(
        reservation.id,
        ReservationStatus.CONFIRMED,
        StatusChangeContext(source=ActorSource.OTA, channel=CHANNEL, reason="Confirmed by channel"),
    )


async def items_for(container, reservation_id: str) -> list[SyncQueueItem]:
    return await container.sync_queue.list_for_reservation(reservation_id)


@pytest.mark.asyncio
class TestEnqueue:
    async def test_confirmation_enqueues_delayed_item(self, container):
        reservation = await confirmed_ota_reservation(container)

        [item] = await items_for(container, reservation.id)
        assert item.target_status == ReservationStatus.CONFIRMED
        assert item.channel == CHANNEL
        assert item.priority == 5
        assert item.available_at == NOW + timedelta(seconds=1)
        assert reservation.sync_status.needs_sync is True
        assert reservation.sync_status.channels[CHANNEL].status == ChannelSyncOutcome.PENDING

    async def test_item_is_not_ready_before_delay(self, container):
        await confirmed_ota_reservation(container)
        assert await container.sync_worker.process_batch() == 0

    async def test_cancellation_supersedes_pending_items(self, container, clock, booking_adapter):
        reservation = await confirmed_ota_reservation(container)
        await container.reservations.cancel(
            reservation.id, StatusChangeContext(source=ActorSource.STAFF, reason="Overbooking en recepción")
        )

        first, second = await items_for(container, reservation.id)
        assert first.status == SyncItemStatus.SUPERSEDED
        assert (second.target_status, second.priority) == (ReservationStatus.CANCELLED, 10)

        clock.advance(seconds=1)
        assert await container.sync_worker.process_batch() == 1
        assert booking_adapter.calls == [(reservation.id, ReservationStatus.CANCELLED)]


@pytest.mark.asyncio
class TestProcessSyncItem:
    async def test_success_clears_needs_sync(self, container, clock, booking_adapter):
        reservation = await confirmed_ota_reservation(container)
        clock.advance(seconds=1)

        assert await container.sync_worker.process_batch() == 1

        [item] = await items_for(container, reservation.id)
        assert item.status == SyncItemStatus.DONE
        current = await container.reservations.get(reservation.id)
        assert current.sync_status.needs_sync is False
        state = current.sync_status.channels[CHANNEL]
        assert (state.status, state.synced_status) == (ChannelSyncOutcome.SUCCESS, ReservationStatus.CONFIRMED)
        assert booking_adapter.calls == [(reservation.id, ReservationStatus.CONFIRMED)]

    async def test_transient_errors_back_off_then_fail(self, container, clock, booking_adapter, notifications):
        booking_adapter.fail_transient(times=3)
        reservation = await confirmed_ota_reservation(container)

        clock.advance(seconds=1)
        await container.sync_worker.process_batch()
        [item] = await items_for(container, reservation.id)
        assert (item.status, item.attempts) == (SyncItemStatus.RETRY, 1)
        assert item.available_at == clock.now() + timedelta(seconds=5)

        clock.advance(seconds=5)
        await container.sync_worker.process_batch()
        [item] = await items_for(container, reservation.id)
        assert (item.status, item.attempts) == (SyncItemStatus.RETRY, 2)
        assert item.available_at == clock.now() + timedelta(seconds=10)

        clock.advance(seconds=10)
        await container.sync_worker.process_batch()
        [item] = await items_for(container, reservation.id)
        assert (item.status, item.attempts) == (SyncItemStatus.FAILED, 3)

        alerts = notifications.of_type(SyncFailureAlert)
        assert [(a.channel, a.attempts) for a in alerts] == [(CHANNEL, 3)]
        current = await container.reservations.get(reservation.id)
        assert current.sync_status.needs_sync is True
        assert current.sync_status.channels[CHANNEL].status == ChannelSyncOutcome.FAILED

    async def test_permanent_error_fails_immediately(self, container, clock, booking_adapter, notifications):
        booking_adapter.fail_permanent("HTTP_400")
        reservation = await confirmed_ota_reservation(container)
        clock.advance(seconds=1)

        await container.sync_worker.process_batch()

        [item] = await items_for(container, reservation.id)
        assert (item.status, item.attempts) == (SyncItemStatus.FAILED, 1)
        assert item.last_error.startswith("HTTP_400")
        assert len(notifications.of_type(SyncFailureAlert)) == 1

    async def test_stale_item_is_superseded(self, container, clock, booking_adapter):
        reservation = await confirmed_ota_reservation(container)
        await container.reservations.transition(
            reservation.id,
            ReservationStatus.MODIFIED,
            StatusChangeContext(source=ActorSource.STAFF, reason="Ajuste manual", force_modified=True),
        )
        clock.advance(seconds=1)

        await container.sync_worker.process_batch()

        [item] = await items_for(container, reservation.id)
        assert item.status == SyncItemStatus.SUPERSEDED
        assert booking_adapter.calls == []

    async def test_unknown_reservation(self, container):
        item = await container.sync_queue.enqueue(
            SyncQueueItem.for_status("missing", CHANNEL, ReservationStatus.CONFIRMED, NOW)
        )
        result = await container.process_sync_item.execute(item)
        assert result == {"status": "failed", "attempts": 1}

    @pytest.mark.parametrize(
        "error, code",
        [(asyncio.TimeoutError(), "TIMEOUT"), (RuntimeError("socket closed"), "ADAPTER_ERROR")],
    )
    async def test_adapter_exceptions_are_transient(self, container, clock, error, code):
        container.adapter_selector.register(CHANNEL, RaisingAdapter(error))
        reservation = await confirmed_ota_reservation(container)
        clock.advance(seconds=1)

        await container.sync_worker.process_batch()

        [item] = await items_for(container, reservation.id)
        assert item.status == SyncItemStatus.RETRY
        assert item.last_error.startswith(code)


@pytest.mark.asyncio
class TestQueue:
    async def test_claim_orders_by_priority_then_availability(self):
        queue = InMemorySyncQueue()
        late = await queue.enqueue(SyncQueueItem.for_status("r1", CHANNEL, ReservationStatus.CONFIRMED, utc(2025, 1, 1, 9)))
        early = await queue.enqueue(SyncQueueItem.for_status("r2", CHANNEL, ReservationStatus.CONFIRMED, utc(2025, 1, 1, 8)))
        cancel = await queue.enqueue(SyncQueueItem.for_status("r3", CHANNEL, ReservationStatus.CANCELLED, utc(2025, 1, 1, 9, 30)))
        await queue.enqueue(SyncQueueItem.for_status("r4", CHANNEL, ReservationStatus.CONFIRMED, utc(2025, 1, 1, 11)))

        claimed = await queue.claim_ready(NOW, limit=10, worker_id="w1")

        assert [i.id for i in claimed] == [cancel.id, early.id, late.id]
        assert all(i.status == SyncItemStatus.PROCESSING and i.locked_by == "w1" for i in claimed)
        assert await queue.claim_ready(NOW, limit=10, worker_id="w2") == []

    async def test_claim_respects_limit(self):
        queue = InMemorySyncQueue()
        for n in range(3):
            await queue.enqueue(SyncQueueItem.for_status(f"r{n}", CHANNEL, ReservationStatus.CONFIRMED, NOW))
        assert len(await queue.claim_ready(NOW, limit=2, worker_id="w1")) == 2


class TestSelector:
    def test_unconfigured_channel_uses_default_adapter(self, container, booking_adapter):
        assert container.adapter_selector.for_channel("BOOKING_COM") is booking_adapter
        assert isinstance(container.adapter_selector.for_channel("airbnb"), LoggingChannelAdapter)


@pytest.mark.asyncio
class TestSyncWorker:
    async def test_worker_loop_follows_the_clock(self, container, clock, booking_adapter):
        worker = container.sync_worker
        await worker.start()
        await settle()
        assert worker.is_running
        assert clock.sleeping == 1

        reservation = await confirmed_ota_reservation(container)
        clock.advance(seconds=1)
        await settle()

        [item] = await items_for(container, reservation.id)
        assert item.status == SyncItemStatus.DONE
        assert booking_adapter.calls == [(reservation.id, ReservationStatus.CONFIRMED)]

        await worker.stop()
        assert worker.is_running is False

    async def test_stop_without_start(self, container):
        await container.sync_worker.stop()
        assert container.sync_worker.is_running is False
