from dataclasses import dataclass
from enum import Enum

from pms.domain.entities.reservation import Reservation, ReservationStatus


class ChannelPushOutcome(str, Enum):
    OK = "ok"
    TRANSIENT_ERROR = "transient_error"
    PERMANENT_ERROR = "permanent_error"


@dataclass
class ChannelPushResult:
    outcome: ChannelPushOutcome
    error_code: str | None = None
    error_message: str | None = None
    http_status: int | None = None

    @property
    def ok(self) -> bool:
        return self.outcome == ChannelPushOutcome.OK


class ChannelAdapter:
    async def push_status(self, reservation: Reservation, status: ReservationStatus) -> ChannelPushResult:
        raise NotImplementedError
