import asyncio
import logging
from datetime import datetime

from pms.application.interfaces.channel_adapter import ChannelPushOutcome, ChannelPushResult
from pms.application.interfaces.clock import Clock
from pms.application.interfaces.sync_queue import SyncQueue
from pms.application.services.intent_dispatcher import IntentDispatcher
from pms.application.services.reservation_service import ReservationService
from pms.domain.entities.intents import SyncFailureAlert
from pms.domain.entities.sync_item import SyncItemStatus, SyncQueueItem
from pms.domain.errors import ReservationNotFoundError
from pms.infrastructure.gateways.channel_adapter_selector import ChannelAdapterSelector

BASE_BACKOFF_SECONDS = 5
CHANNEL_TIMEOUT_SECONDS = 30


class ProcessSyncItemUseCase:
    def __init__(
        self,
        sync_queue: SyncQueue,
        reservations: ReservationService,
        adapter_selector: ChannelAdapterSelector,
        dispatcher: IntentDispatcher,
        clock: Clock,
        timeout_seconds: float = CHANNEL_TIMEOUT_SECONDS,
        base_backoff_seconds: float = BASE_BACKOFF_SECONDS,
    ) -> None:
        self._queue = sync_queue
        self._reservations = reservations
        self._selector = adapter_selector
        self._dispatcher = dispatcher
        self._clock = clock
        self._timeout = timeout_seconds
        self._base_backoff = base_backoff_seconds
        self._logger = logging.getLogger(__name__)

    async def execute(self, item: SyncQueueItem, now: datetime | None = None) -> dict:
        now = now or self._clock.now()
        try:
            reservation = await self._reservations.get(item.reservation_id)
        except ReservationNotFoundError:
            item.mark_failed("reservation not found", now)
            await self._queue.update(item)
            self._logger.error("Sync item for unknown reservation", extra={"sync_item_id": item.id})
            return {"status": "failed", "attempts": item.attempts}

        if not reservation.sync_status.needs_sync or reservation.status != item.target_status:
            item.mark_superseded(now)
            await self._queue.update(item)
            self._logger.info(
                "Sync item skipped",
                extra={
                    "sync_item_id": item.id,
                    "reservation_id": item.reservation_id,
                    "target_status": item.target_status.value,
                    "current_status": reservation.status.value,
                    "needs_sync": reservation.sync_status.needs_sync,
                },
            )
            return {"status": "skipped"}

        result = await self._push(item, reservation)

        if result.ok:
            await self._reservations.record_channel_sync(
                item.reservation_id, item.channel, item.target_status, success=True
            )
            item.mark_done(now)
            await self._queue.update(item)
            self._logger.info(
                "Channel sync success",
                extra={
                    "sync_item_id": item.id,
                    "reservation_id": item.reservation_id,
                    "channel": item.channel,
                    "target_status": item.target_status.value,
                    "attempt": item.attempts + 1,
                },
            )
            return {"status": "synced", "attempts": item.attempts + 1}

        error = f"{result.error_code}: {result.error_message}" if result.error_message else str(result.error_code)
        if result.outcome == ChannelPushOutcome.TRANSIENT_ERROR:
            item.mark_retry(error, now, self._base_backoff)
        else:
            item.mark_failed(error, now)
        await self._queue.update(item)

        if item.status == SyncItemStatus.RETRY:
            self._logger.warning(
                "Channel sync retry scheduled",
                extra={
                    "sync_item_id": item.id,
                    "reservation_id": item.reservation_id,
                    "channel": item.channel,
                    "attempt": item.attempts,
                    "next_attempt_at": item.available_at.isoformat(),
                    "error_code": result.error_code,
                },
            )
            return {"status": "retry", "attempts": item.attempts, "next_attempt_at": item.available_at.isoformat()}

        await self._reservations.record_channel_sync(
            item.reservation_id, item.channel, item.target_status, success=False, error=error
        )
        await self._dispatcher.dispatch(
            [
                SyncFailureAlert(
                    reservation_id=reservation.id,
                    booking_number=reservation.booking_number,
                    channel=item.channel,
                    target_status=item.target_status.value,
                    error=error,
                    attempts=item.attempts,
                )
            ]
        )
        self._logger.error(
            "Channel sync failed permanently",
            extra={
                "sync_item_id": item.id,
                "reservation_id": item.reservation_id,
                "channel": item.channel,
                "attempt": item.attempts,
                "error_code": result.error_code,
            },
        )
        return {"status": "failed", "attempts": item.attempts}

    async def _push(self, item: SyncQueueItem, reservation) -> ChannelPushResult:
        adapter = self._selector.for_channel(item.channel)
        try:
            return await asyncio.wait_for(adapter.push_status(reservation, item.target_status), self._timeout)
        except asyncio.TimeoutError:
            return ChannelPushResult(
                outcome=ChannelPushOutcome.TRANSIENT_ERROR,
                error_code="TIMEOUT",
                error_message=f"channel did not answer within {self._timeout}s",
            )
        except Exception as exc:
            self._logger.exception(
                "Channel adapter raised", extra={"sync_item_id": item.id, "channel": item.channel}
            )
            return ChannelPushResult(
                outcome=ChannelPushOutcome.TRANSIENT_ERROR,
                error_code="ADAPTER_ERROR",
                error_message=str(exc),
            )
