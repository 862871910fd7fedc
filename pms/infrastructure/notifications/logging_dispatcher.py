import dataclasses
import logging

from pms.application.interfaces.notification_dispatcher import NotificationDispatcher
from pms.domain.entities.intents import Intent

logger = logging.getLogger(__name__)


class LoggingNotificationDispatcher(NotificationDispatcher):
    """Dispatcher por defecto: publica cada intent en el log estructurado."""

    async def emit(self, intent: Intent) -> None:
        payload = {k: v for k, v in dataclasses.asdict(intent).items() if k not in ("reservation_id", "booking_number")}
        logger.info(
            f"Intent {intent.kind}",
            extra={
                "intent": intent.kind,
                "reservation_id": intent.reservation_id,
                "booking_number": intent.booking_number,
                "payload": payload,
            },
        )
