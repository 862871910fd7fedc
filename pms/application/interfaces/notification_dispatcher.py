from pms.domain.entities.intents import Intent


class NotificationDispatcher:
    async def emit(self, intent: Intent) -> None:
        raise NotImplementedError
