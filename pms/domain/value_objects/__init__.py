"""Value Objects del dominio hotelero."""

from pms.domain.value_objects.actor import Actor, ActorSource
from pms.domain.value_objects.identifiers import AmendmentId, BookingNumber
from pms.domain.value_objects.status_change_context import StatusChangeContext
from pms.domain.value_objects.stay_range import StayRange

__all__ = [
    "Actor",
    "ActorSource",
    "AmendmentId",
    "BookingNumber",
    "StatusChangeContext",
    "StayRange",
]
