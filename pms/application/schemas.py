from datetime import date
from decimal import Decimal
from typing import Any

from pydantic import AliasChoices, AwareDatetime, BaseModel, ConfigDict, EmailStr, Field, model_validator

from pms.domain.entities.allotment import (
    AllocationRule,
    AllocationRuleType,
    ChannelConfig,
    ChannelPerformance,
    ChannelRestrictions,
    PriorityAllocation,
    RuleConditions,
)
from pms.domain.entities.reservation import (
    ActorSource,
    AmendmentStatus,
    AmendmentType,
    GuestInfo,
    ReservationStatus,
    RoomLine,
)
from pms.domain.value_objects.status_change_context import StatusChangeContext


class StrictModel(BaseModel):
    model_config = ConfigDict(extra="forbid")


class AliasedModel(BaseModel):
    """Payloads de canales: acepta camelCase del canal o snake_case interno."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)


# === Reservaciones ===


class RoomLineInput(StrictModel):
    room_type: str
    rate: Decimal = Field(default=Decimal("0"), ge=0)
    room_id: str | None = None

    def to_domain(self) -> RoomLine:
        return RoomLine(room_type=self.room_type, rate=self.rate, room_id=self.room_id)


class GuestInfoInput(StrictModel):
    name: str | None = None
    email: EmailStr | None = None
    phone: str | None = None
    vip: bool = False

    def to_domain(self) -> GuestInfo:
        return GuestInfo(name=self.name, email=self.email, phone=self.phone, vip=self.vip)


class CreateReservationRequest(StrictModel):
    hotel_id: str
    guest_id: str
    check_in: AwareDatetime
    check_out: AwareDatetime
    rooms: list[RoomLineInput] = Field(..., min_length=1)
    total_amount: Decimal = Field(..., ge=0)
    currency: str = "USD"
    source: str = "direct"
    channel_booking_id: str | None = None
    corporate_party_id: str | None = None
    group_booking_id: str | None = None
    guest_info: GuestInfoInput = Field(default_factory=GuestInfoInput)
    special_requests: str | None = None
    raw_payload: dict[str, Any] | None = None


class StatusChangeRequest(StrictModel):
    """Transición solicitada por API; los campos desconocidos se rechazan."""

    status: ReservationStatus
    source: ActorSource = ActorSource.STAFF
    user_id: str | None = None
    user_name: str | None = None
    channel: str | None = None
    reason: str = ""
    automatic: bool = False
    bypass_amendment_check: bool = False
    early_check_in: bool = False
    bypass_cancellation_policy: bool = False
    manual_no_show: bool = False
    force_modified: bool = False
    skip_notifications: bool = False
    enable_automation: bool = True
    process_refund: bool = True
    apply_no_show_penalty: bool = False

    def to_context(self) -> StatusChangeContext:
        return StatusChangeContext(**self.model_dump(exclude={"status"}))


class PaymentRequest(StrictModel):
    amount: Decimal = Field(..., gt=0)
    method: str = "card"
    reference: str | None = None


class CancelReservationRequest(StrictModel):
    source: ActorSource = ActorSource.STAFF
    user_id: str | None = None
    user_name: str | None = None
    channel: str | None = None
    reason: str = ""
    bypass_cancellation_policy: bool = False
    process_refund: bool = True
    skip_notifications: bool = False

    def to_context(self) -> StatusChangeContext:
        return StatusChangeContext(**self.model_dump())


# === Enmiendas ===


class GuestInfoPatch(AliasedModel):
    name: str | None = None
    email: EmailStr | None = None
    phone: str | None = None
    vip: bool | None = None


class ReservationDetailsRequest(StrictModel):
    guest_info: GuestInfoPatch | None = None
    special_requests: str | None = None


class RequestedChanges(AliasedModel):
    check_in: AwareDatetime | None = Field(default=None, alias="checkIn")
    check_out: AwareDatetime | None = Field(default=None, alias="checkOut")
    guest_info: GuestInfoPatch | None = Field(default=None, alias="guestInfo")
    rooms: list[RoomLineInput] | None = None
    total_amount: Decimal | None = Field(default=None, ge=0, alias="totalAmount")
    special_requests: str | None = Field(default=None, alias="specialRequests")

    def as_record(self) -> dict[str, Any]:
        """Forma serializable para guardar en el registro de la enmienda."""
        return self.model_dump(mode="json", exclude_none=True)

    @classmethod
    def from_record(cls, data: dict[str, Any]) -> "RequestedChanges":
        return cls.model_validate(data)

    def changed_fields(self) -> set[str]:
        return set(self.model_dump(exclude_none=True))


class AmendmentPayload(AliasedModel):
    """Enmienda recibida de un canal."""

    external_id: str | None = Field(
        default=None, validation_alias=AliasChoices("externalAmendmentId", "externalId", "external_id")
    )
    amendment_type: AmendmentType = Field(..., alias="type")
    requested_changes: RequestedChanges = Field(default_factory=RequestedChanges, alias="requestedChanges")
    original_data: dict[str, Any] = Field(default_factory=dict, alias="originalData")
    reservation_ref: str | None = Field(default=None, alias="reservationRef")
    requires_manual_approval: bool = Field(default=False, alias="requiresManualApproval")
    notes: str | None = None
    channel: str | None = None
    bypass_policy: bool = Field(default=False, alias="bypassPolicy")
    timestamp: AwareDatetime | None = None


class ApproverInfo(AliasedModel):
    user_id: str | None = Field(default=None, alias="userId")
    user_name: str | None = Field(default=None, alias="userName")
    source: ActorSource = ActorSource.STAFF
    partial_changes: RequestedChanges | None = Field(default=None, alias="partialChanges")
    rejection_reason: str | None = Field(default=None, alias="rejectionReason")


class AmendmentResolutionRequest(AliasedModel):
    decision: AmendmentStatus
    approver: ApproverInfo = Field(default_factory=ApproverInfo)

    @model_validator(mode="after")
    def _decision_is_final(self) -> "AmendmentResolutionRequest":
        if self.decision == AmendmentStatus.PENDING:
            raise ValueError("decision must be approved, rejected or partially_approved")
        return self


# === Inventario ===


class ChannelRestrictionsInput(StrictModel):
    minimum_stay: int = Field(default=1, ge=1)
    maximum_stay: int = Field(default=30, ge=1)
    closed_to_arrival: bool = False
    closed_to_departure: bool = False
    stop_sell: bool = False


class ChannelConfigInput(StrictModel):
    channel_id: str
    channel_name: str
    is_active: bool = True
    priority: int = 0
    commission: Decimal = Decimal("0")
    markup: Decimal = Decimal("0")
    restrictions: ChannelRestrictionsInput = Field(default_factory=ChannelRestrictionsInput)

    def to_domain(self) -> ChannelConfig:
        return ChannelConfig(
            channel_id=self.channel_id,
            channel_name=self.channel_name,
            is_active=self.is_active,
            priority=self.priority,
            commission=self.commission,
            markup=self.markup,
            restrictions=ChannelRestrictions(**self.restrictions.model_dump()),
        )


class CreateAllotmentRequest(StrictModel):
    hotel_id: str
    room_type_id: str
    name: str = ""
    total_inventory: int = Field(..., ge=0)
    overbooking_allowed: bool = False
    overbooking_limit: int = Field(default=0, ge=0)
    channels: list[ChannelConfigInput] | None = None


class PriorityAllocationInput(StrictModel):
    channel_id: str
    priority: int = 0
    min_allocation: int = Field(default=0, ge=0)
    max_allocation: int | None = Field(default=None, ge=0)


class RuleConditionsInput(StrictModel):
    start_date: date | None = None
    end_date: date | None = None
    days_of_week: list[str] = Field(default_factory=list)


class AllocationRuleRequest(StrictModel):
    name: str
    rule_type: AllocationRuleType
    is_active: bool = True
    priority: int = 0
    conditions: RuleConditionsInput = Field(default_factory=RuleConditionsInput)
    fixed: dict[str, int] = Field(default_factory=dict)
    percentage: dict[str, float] = Field(default_factory=dict)
    priority_channels: list[PriorityAllocationInput] = Field(default_factory=list)

    def to_domain(self, rule_id: str) -> AllocationRule:
        return AllocationRule(
            rule_id=rule_id,
            name=self.name,
            rule_type=self.rule_type,
            is_active=self.is_active,
            priority=self.priority,
            conditions=RuleConditions(**self.conditions.model_dump()),
            fixed=dict(self.fixed),
            percentage=dict(self.percentage),
            priority_channels=[PriorityAllocation(**p.model_dump()) for p in self.priority_channels],
        )


class DateRangeRequest(StrictModel):
    start_date: date
    end_date: date

    @model_validator(mode="after")
    def _ordered(self) -> "DateRangeRequest":
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class ChannelQuantityRequest(StrictModel):
    channel: str
    quantity: int = Field(..., ge=0)


class ChannelRateRequest(StrictModel):
    channel: str
    rate: Decimal = Field(..., ge=0)


class ChannelPerformanceInput(StrictModel):
    channel_id: str
    utilization_rate: float = Field(..., ge=0)
    revenue: Decimal = Decimal("0")
    conversion_rate: float | None = None
    total_sold: int = 0

    def to_domain(self) -> ChannelPerformance:
        return ChannelPerformance(**self.model_dump())


class PerformancePeriodRequest(StrictModel):
    period_start: date
    period_end: date
    channels: list[ChannelPerformanceInput] = Field(..., min_length=1)


class InitializeDaysRequest(StrictModel):
    start_date: date
    days: int = Field(..., ge=1, le=730)
