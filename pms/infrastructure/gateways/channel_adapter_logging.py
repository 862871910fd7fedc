import logging

from pms.application.interfaces.channel_adapter import ChannelAdapter, ChannelPushOutcome, ChannelPushResult
from pms.domain.entities.reservation import Reservation, ReservationStatus

logger = logging.getLogger(__name__)


class LoggingChannelAdapter(ChannelAdapter):
    """Adapter por defecto para canales sin endpoint: registra el envío y lo da por bueno."""

    async def push_status(self, reservation: Reservation, status: ReservationStatus) -> ChannelPushResult:
        logger.info(
            "Channel status push (no endpoint configured)",
            extra={
                "reservation_id": reservation.id,
                "booking_number": reservation.booking_number,
                "channel": reservation.channel,
                "status": status.value,
            },
        )
        return ChannelPushResult(outcome=ChannelPushOutcome.OK)
