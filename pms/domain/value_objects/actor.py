"""Value Object Actor - quién origina un cambio sobre la reservación."""

from dataclasses import dataclass
from enum import Enum


class ActorSource(str, Enum):
    """Origen de un cambio sobre la reservación."""

    SYSTEM = "system"
    GUEST = "guest"
    OTA = "ota"
    ADMIN = "admin"
    STAFF = "staff"


@dataclass
class Actor:
    """Quién originó un cambio."""

    source: ActorSource = ActorSource.SYSTEM
    user_id: str | None = None
    user_name: str | None = None
    channel: str | None = None
