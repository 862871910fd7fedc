"""Entrega de intents a los colaboradores externos después de persistir."""

import logging
from typing import Iterable

from pms.application.interfaces.notification_dispatcher import NotificationDispatcher
from pms.domain.entities.intents import Intent

logger = logging.getLogger(__name__)


class IntentDispatcher:
    """
    Entrega intents uno por uno.

    Los cambios ya están confirmados cuando se despachan: un fallo del
    colaborador se registra y no revierte nada ni detiene los demás intents.
    """

    def __init__(self, notifications: NotificationDispatcher) -> None:
        self._notifications = notifications

    async def dispatch(self, intents: Iterable[Intent]) -> int:
        delivered = 0
        for intent in intents:
            try:
                await self._notifications.emit(intent)
                delivered += 1
            except Exception:
                logger.exception(
                    "Error entregando intent",
                    extra={"intent": intent.kind, "reservation_id": intent.reservation_id},
                )
        return delivered
