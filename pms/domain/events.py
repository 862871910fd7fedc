"""Eventos que disparan reglas del motor de workflow."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import ClassVar

from pms.domain.entities.reservation import ActorSource, AmendmentStatus, PaymentStatus, ReservationStatus


class TriggerType(str, Enum):
    STATUS_CHANGE = "status_change"
    PAYMENT_STATUS_CHANGE = "payment_status_change"
    AMENDMENT_RESOLVED = "amendment_resolved"
    SCHEDULED_CHECK = "scheduled_check"


class ScheduledCheck(str, Enum):
    EXPIRED_HOLDS = "expired_holds"
    NO_SHOWS = "no_shows"
    OVERDUE_CHECKOUTS = "overdue_checkouts"


@dataclass(frozen=True)
class WorkflowEvent:
    trigger: ClassVar[TriggerType]

    reservation_id: str


@dataclass(frozen=True)
class StatusChangeEvent(WorkflowEvent):
    trigger: ClassVar[TriggerType] = TriggerType.STATUS_CHANGE

    old_status: ReservationStatus | None = None
    new_status: ReservationStatus = ReservationStatus.PENDING
    reason: str = ""
    source: ActorSource = ActorSource.SYSTEM
    automatic: bool = False
    skip_notifications: bool = False


@dataclass(frozen=True)
class PaymentStatusChangeEvent(WorkflowEvent):
    trigger: ClassVar[TriggerType] = TriggerType.PAYMENT_STATUS_CHANGE

    old_payment_status: PaymentStatus = PaymentStatus.PENDING
    new_payment_status: PaymentStatus = PaymentStatus.PENDING


@dataclass(frozen=True)
class AmendmentResolvedEvent(WorkflowEvent):
    trigger: ClassVar[TriggerType] = TriggerType.AMENDMENT_RESOLVED

    amendment_id: str = ""
    decision: AmendmentStatus = AmendmentStatus.APPROVED


@dataclass(frozen=True)
class ScheduledCheckEvent(WorkflowEvent):
    trigger: ClassVar[TriggerType] = TriggerType.SCHEDULED_CHECK

    check: ScheduledCheck = ScheduledCheck.EXPIRED_HOLDS
    now: datetime | None = None
