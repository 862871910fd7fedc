from pms.application.interfaces.notification_dispatcher import NotificationDispatcher
from pms.domain.entities.intents import Intent


class RecordingNotificationDispatcher(NotificationDispatcher):
    """Guarda los intents emitidos para inspeccionarlos en pruebas."""

    def __init__(self) -> None:
        self.intents: list[Intent] = []
        self.fail_kinds: set[str] = set()

    async def emit(self, intent: Intent) -> None:
        if intent.kind in self.fail_kinds:
            raise RuntimeError(f"dispatch of {intent.kind} failed")
        self.intents.append(intent)

    def of_type(self, intent_type: type) -> list:
        return [i for i in self.intents if isinstance(i, intent_type)]

    def for_reservation(self, reservation_id: str) -> list[Intent]:
        return [i for i in self.intents if i.reservation_id == reservation_id]

    def clear(self) -> None:
        self.intents.clear()
