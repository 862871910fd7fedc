from collections import deque

from pms.application.interfaces.channel_adapter import ChannelAdapter, ChannelPushOutcome, ChannelPushResult
from pms.domain.entities.reservation import Reservation, ReservationStatus


class StubChannelAdapter(ChannelAdapter):
    """
    Adapter de canal programable para pruebas.

    Responde con los resultados encolados en orden; cuando se agotan responde OK.
    """

    def __init__(self, results: list[ChannelPushResult] | None = None) -> None:
        self._results = deque(results or [])
        self.calls: list[tuple[str, ReservationStatus]] = []

    def queue(self, *results: ChannelPushResult) -> None:
        self._results.extend(results)

    def fail_transient(self, times: int = 1, error_code: str = "HTTP_503") -> None:
        self.queue(*[ChannelPushResult(ChannelPushOutcome.TRANSIENT_ERROR, error_code, "unavailable")] * times)

    def fail_permanent(self, error_code: str = "HTTP_400") -> None:
        self.queue(ChannelPushResult(ChannelPushOutcome.PERMANENT_ERROR, error_code, "rejected"))

    async def push_status(self, reservation: Reservation, status: ReservationStatus) -> ChannelPushResult:
        self.calls.append((reservation.id, status))
        if self._results:
            return self._results.popleft()
        return ChannelPushResult(outcome=ChannelPushOutcome.OK)
