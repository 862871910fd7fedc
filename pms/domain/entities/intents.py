"""
Intents - efectos secundarios que el dominio solicita a colaboradores externos.

El dominio no envía correos, ni cobra, ni limpia habitaciones: emite intents
que el dispatcher entrega a quien corresponda después de persistir el cambio.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, ClassVar


@dataclass(frozen=True)
class Intent:
    """Clase base de todos los intents."""

    kind: ClassVar[str] = "intent"

    reservation_id: str
    booking_number: str


@dataclass(frozen=True)
class StatusChangeEmail(Intent):
    kind: ClassVar[str] = "status_change_email"

    recipient: str = ""
    template: str = ""
    subject: str = ""
    old_status: str | None = None
    new_status: str = ""
    reason: str = ""


@dataclass(frozen=True)
class StaffBroadcast(Intent):
    kind: ClassVar[str] = "staff_broadcast"

    event: str = ""
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class OverdueAlert(Intent):
    kind: ClassVar[str] = "overdue_alert"

    expected_check_out: str = ""
    hours_overdue: float = 0.0


@dataclass(frozen=True)
class RefundRequest(Intent):
    kind: ClassVar[str] = "refund_request"

    amount: Decimal = Decimal("0")
    currency: str = "USD"
    reason: str = ""


@dataclass(frozen=True)
class HousekeepingUpdate(Intent):
    kind: ClassVar[str] = "housekeeping_update"

    room_ids: tuple[str, ...] = ()
    room_status: str = ""


@dataclass(frozen=True)
class FinalBillingRequest(Intent):
    kind: ClassVar[str] = "final_billing_request"

    total_amount: Decimal = Decimal("0")
    total_paid: Decimal = Decimal("0")


@dataclass(frozen=True)
class AutomaticCheckoutRequest(Intent):
    kind: ClassVar[str] = "automatic_checkout_request"


@dataclass(frozen=True)
class PenaltyRequest(Intent):
    kind: ClassVar[str] = "penalty_request"

    penalty_type: str = "no_show"
    amount: Decimal = Decimal("0")


@dataclass(frozen=True)
class AmendmentReviewRequired(Intent):
    kind: ClassVar[str] = "amendment_review_required"

    amendment_id: str = ""
    amendment_type: str = ""
    priority: int = 5
    reason: str = ""


@dataclass(frozen=True)
class AmendmentDecision(Intent):
    kind: ClassVar[str] = "amendment_decision"

    amendment_id: str = ""
    external_id: str | None = None
    channel: str | None = None
    decision: str = ""
    rejection_reason: str | None = None


@dataclass(frozen=True)
class SyncFailureAlert(Intent):
    kind: ClassVar[str] = "sync_failure_alert"

    channel: str = ""
    target_status: str = ""
    error: str = ""
    attempts: int = 0
