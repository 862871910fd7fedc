"""
Procesador de enmiendas de canales (OTA).

Recibe solicitudes de cambio, las registra en la reservación y la pasa a
`modified`; al resolverlas aplica los cambios aprobados (fechas,
habitaciones, huésped, tarifa) con el inventario ajustado de forma atómica y
reconfirma cuando ya no quedan enmiendas pendientes.
"""

import copy
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from pms.application.interfaces.clock import Clock
from pms.application.schemas import AmendmentPayload, ApproverInfo, RequestedChanges
from pms.application.services.inventory_ledger import InventoryLedger, StayRequest
from pms.application.services.reservation_service import MutationPlan, ReservationService
from pms.domain.entities.audit import AuditEntry, AuditKind
from pms.domain.entities.intents import AmendmentDecision, AmendmentReviewRequired, StaffBroadcast
from pms.domain.entities.reservation import (
    Actor,
    ActorSource,
    AmendmentRecord,
    AmendmentStatus,
    AmendmentType,
    PaymentStatus,
    Reservation,
    ReservationStatus,
)
from pms.domain.errors import (
    AmendmentAlreadyResolvedError,
    AmendmentConflictError,
    AmendmentNotApplicableError,
    AmendmentNotFoundError,
    InvalidReservationDataError,
    PolicyViolationError,
)
from pms.domain.events import AmendmentResolvedEvent, PaymentStatusChangeEvent
from pms.domain.policy import ReservationPolicy
from pms.domain.value_objects.identifiers import AmendmentId
from pms.domain.value_objects.status_change_context import StatusChangeContext

logger = logging.getLogger(__name__)

AMENDABLE_STATUSES = frozenset({ReservationStatus.PENDING, ReservationStatus.CONFIRMED, ReservationStatus.MODIFIED})

AUTO_APPROVABLE_FIELDS = {
    AmendmentType.SPECIAL_REQUEST_CHANGE: {"special_requests"},
    AmendmentType.GUEST_DETAILS_CHANGE: {"guest_info"},
}

# Datos de contacto que siempre requieren revisión humana
SENSITIVE_GUEST_FIELDS = {"email", "phone"}

HIGH_VALUE_TOTAL = Decimal("1000")


@dataclass
class AmendmentReceipt:
    amendment_id: str
    status: AmendmentStatus
    duplicate: bool = False
    auto_approved: bool = False
    requires_manual_approval: bool = False
    review_priority: int | None = None


@dataclass
class _Classification:
    requires_manual_approval: bool
    flag_reason: str | None
    auto_approve: bool
    review_priority: int


class AmendmentProcessor:
    """Ciclo de vida de las enmiendas embebidas en la reservación."""

    def __init__(
        self,
        reservations: ReservationService,
        ledger: InventoryLedger,
        clock: Clock,
        policy: ReservationPolicy | None = None,
    ) -> None:
        self._reservations = reservations
        self._ledger = ledger
        self._clock = clock
        self._policy = policy or ReservationPolicy()

    # === Recepción ===

    async def receive(self, reservation_id: str, payload: AmendmentPayload) -> AmendmentReceipt:
        """
        Registra una enmienda y pasa la reservación a `modified`.

        Una enmienda con externalId ya recibido se ignora y retorna la existente.

        Raises:
            AmendmentNotApplicableError: La reservación no admite enmiendas
                (la enmienda queda registrada para revisión).
            PolicyViolationError: Las fechas solicitadas son inválidas.
            AmendmentConflictError: Choca con otra enmienda pendiente.
            InsufficientInventoryError: Las fechas o habitaciones nuevas no tienen
                cupo en el canal (no se registra nada).
        """
        reservation = await self._reservations.get(reservation_id)
        if payload.external_id:
            existing = reservation.find_amendment_by_external_id(payload.external_id)
            if existing is not None:
                logger.info(
                    "Enmienda duplicada ignorada",
                    extra={"reservation_id": reservation_id, "external_id": payload.external_id},
                )
                return AmendmentReceipt(amendment_id=existing.amendment_id, status=existing.status, duplicate=True)

        now = self._clock.now()
        amendment_id = str(AmendmentId.generate(now))

        if reservation.status not in AMENDABLE_STATUSES:
            await self._record_not_applicable(reservation_id, amendment_id, payload, now)
            raise AmendmentNotApplicableError(reservation_id, reservation.status.value, amendment_id)

        self._validate(reservation, payload, now)
        self._check_conflicts(reservation, payload)
        await self._check_availability(reservation, payload.requested_changes)
        classification = self._classify(reservation, payload, now)

        def mutator(r: Reservation, now: datetime) -> MutationPlan | None:
            if payload.external_id and r.find_amendment_by_external_id(payload.external_id):
                return None
            record = self._new_record(amendment_id, payload, r, now)
            record.requires_manual_approval = classification.requires_manual_approval
            record.flag_reason = classification.flag_reason
            if not classification.auto_approve:
                record.review_priority = classification.review_priority
            r.amendments.append(record)
            if payload.external_id:
                r.channel_amendment_refs.append(payload.external_id)
            r.refresh_amendment_flags()

            plan = MutationPlan(reservation=r)
            plan.audit.append(self._audit(r.id, AuditKind.AMENDMENT_RECEIVED, now, record, payload.channel))
            if r.status != ReservationStatus.MODIFIED:
                context = StatusChangeContext(
                    source=ActorSource.OTA,
                    channel=payload.channel or r.channel,
                    reason="OTA amendment received",
                    automatic=True,
                )
                self._reservations.plan_transition(r, ReservationStatus.MODIFIED, context, now, plan)
            if not classification.auto_approve:
                plan.intents.append(
                    AmendmentReviewRequired(
                        reservation_id=r.id,
                        booking_number=r.booking_number,
                        amendment_id=amendment_id,
                        amendment_type=record.amendment_type.value,
                        priority=classification.review_priority,
                        reason=classification.flag_reason or "manual review",
                    )
                )
            return plan

        saved = await self._reservations.mutate(reservation_id, mutator)
        record = saved.find_amendment(amendment_id)
        if record is None:
            existing = saved.find_amendment_by_external_id(payload.external_id or "")
            return AmendmentReceipt(amendment_id=existing.amendment_id, status=existing.status, duplicate=True)

        logger.info(
            "Enmienda recibida",
            extra={
                "reservation_id": reservation_id,
                "amendment_id": amendment_id,
                "amendment_type": payload.amendment_type.value,
                "auto_approve": classification.auto_approve,
            },
        )

        if classification.auto_approve:
            resolved = await self.resolve(
                reservation_id,
                amendment_id,
                AmendmentStatus.APPROVED,
                ApproverInfo(source=ActorSource.SYSTEM, user_name="auto-approval"),
            )
            return AmendmentReceipt(amendment_id=amendment_id, status=resolved.status, auto_approved=True)

        return AmendmentReceipt(
            amendment_id=amendment_id,
            status=record.status,
            requires_manual_approval=record.requires_manual_approval,
            review_priority=record.review_priority,
        )

    async def _record_not_applicable(
        self, reservation_id: str, amendment_id: str, payload: AmendmentPayload, now: datetime
    ) -> None:
        def mutator(r: Reservation, now: datetime) -> MutationPlan:
            record = self._new_record(amendment_id, payload, r, now)
            record.requires_manual_approval = True
            record.flag_reason = f"reservation not amendable in status '{r.status.value}'"
            r.amendments.append(record)
            if payload.external_id:
                r.channel_amendment_refs.append(payload.external_id)
            r.refresh_amendment_flags()
            audit = self._audit(r.id, AuditKind.AMENDMENT_RECEIVED, now, record, payload.channel)
            return MutationPlan(reservation=r, audit=[audit])

        await self._reservations.mutate(reservation_id, mutator)
        logger.warning(
            "Enmienda no aplicable registrada para revisión",
            extra={"reservation_id": reservation_id, "amendment_id": amendment_id},
        )

    # === Resolución ===

    async def resolve(
        self,
        reservation_id: str,
        amendment_id: str,
        decision: AmendmentStatus,
        approver: ApproverInfo,
    ) -> AmendmentRecord:
        """
        Aprueba, aprueba parcialmente o rechaza una enmienda pendiente.

        Raises:
            AmendmentNotFoundError, AmendmentAlreadyResolvedError,
            InsufficientInventoryError, PolicyViolationError.
        """
        if decision == AmendmentStatus.PENDING:
            raise InvalidReservationDataError("decision", "la decisión debe ser final")

        def mutator(r: Reservation, now: datetime) -> MutationPlan:
            record = r.find_amendment(amendment_id)
            if record is None:
                raise AmendmentNotFoundError(amendment_id)
            if not record.is_pending:
                raise AmendmentAlreadyResolvedError(amendment_id, record.status.value)
            if decision != AmendmentStatus.REJECTED and r.status not in AMENDABLE_STATUSES:
                raise AmendmentNotApplicableError(r.id, r.status.value, amendment_id)

            plan = MutationPlan(reservation=r)
            record.status = decision
            record.resolved_at = now
            record.approver = Actor(source=approver.source, user_id=approver.user_id, user_name=approver.user_name)

            if decision == AmendmentStatus.REJECTED:
                record.rejection_reason = approver.rejection_reason or "rejected"
                r.refresh_amendment_flags()
            else:
                approved = self._approved_changes(record, decision, approver)
                record.approved_changes = approved.as_record()
                r.refresh_amendment_flags()
                if record.amendment_type == AmendmentType.CANCELLATION_REQUEST:
                    context = StatusChangeContext(
                        source=ActorSource.OTA,
                        channel=record.requested_by_channel,
                        reason="OTA cancellation approved",
                        bypass_cancellation_policy=True,
                    )
                    self._reservations.plan_transition(r, ReservationStatus.CANCELLED, context, now, plan)
                else:
                    self._apply_changes(r, approved, now, plan)

            plan.audit.append(self._audit(r.id, AuditKind.AMENDMENT_RESOLVED, now, record, record.requested_by_channel))
            plan.intents.append(
                AmendmentDecision(
                    reservation_id=r.id,
                    booking_number=r.booking_number,
                    amendment_id=record.amendment_id,
                    external_id=record.external_id,
                    channel=record.requested_by_channel,
                    decision=decision.value,
                    rejection_reason=record.rejection_reason,
                )
            )
            plan.events.append(
                AmendmentResolvedEvent(reservation_id=r.id, amendment_id=record.amendment_id, decision=decision)
            )

            # Un hold sin pagar sigue en modified hasta el pago o su vencimiento
            if r.status == ReservationStatus.MODIFIED and not r.amendment_flags.has_pending:
                if not any(a.is_approved for a in r.amendments):
                    plan.intents.append(
                        StaffBroadcast(
                            reservation_id=r.id,
                            booking_number=r.booking_number,
                            event="amendments_rejected",
                            payload={"amendment_count": r.amendment_flags.amendment_count},
                        )
                    )
                elif not (r.is_on_hold and r.payment_status != PaymentStatus.PAID):
                    context = StatusChangeContext.system(
                        "All amendments processed, booking reconfirmed", bypass_amendment_check=True
                    )
                    self._reservations.plan_transition(r, ReservationStatus.CONFIRMED, context, now, plan)
            return plan

        saved = await self._reservations.mutate(reservation_id, mutator)
        logger.info(
            "Enmienda resuelta",
            extra={"reservation_id": reservation_id, "amendment_id": amendment_id, "decision": decision.value},
        )
        return saved.find_amendment(amendment_id)

    def _approved_changes(
        self, record: AmendmentRecord, decision: AmendmentStatus, approver: ApproverInfo
    ) -> RequestedChanges:
        requested = RequestedChanges.from_record(record.requested_changes)
        if decision == AmendmentStatus.APPROVED:
            return requested
        partial = approver.partial_changes
        if partial is None:
            raise InvalidReservationDataError("partial_changes", "una aprobación parcial requiere los cambios aprobados")
        requested_data = requested.as_record()
        for name, value in partial.as_record().items():
            if requested_data.get(name) != value:
                raise InvalidReservationDataError(
                    "partial_changes", f"'{name}' no coincide con lo solicitado en la enmienda"
                )
        return partial

    def _apply_changes(self, r: Reservation, changes: RequestedChanges, now: datetime, plan: MutationPlan) -> None:
        old_nights = r.inventory_nights()
        old_check_in, old_check_out = r.check_in, r.check_out

        if changes.check_in is not None or changes.check_out is not None:
            new_check_in = changes.check_in or r.check_in
            new_check_out = changes.check_out or r.check_out
            if changes.check_in is not None and new_check_in < now:
                raise PolicyViolationError("pastCheckIn", "la nueva fecha de llegada ya pasó")
            if new_check_out <= new_check_in:
                raise PolicyViolationError("invalidDates", "check_out debe ser posterior a check_in")
            r.change_stay(new_check_in, new_check_out)

        if changes.guest_info is not None:
            for name, value in changes.guest_info.model_dump(exclude_none=True).items():
                setattr(r.guest_info, name, value)

        if changes.rooms is not None:
            if not changes.rooms:
                raise InvalidReservationDataError("rooms", "la reservación requiere al menos una habitación")
            r.rooms = [line.to_domain() for line in changes.rooms]

        if changes.total_amount is not None:
            if changes.total_amount < r.payment_details.total_paid:
                raise InvalidReservationDataError("total_amount", "el nuevo total es menor a lo ya pagado")
            r.total_amount = changes.total_amount
            if r.payment_status in (PaymentStatus.PENDING, PaymentStatus.PAID):
                previous = r.payment_status
                r.recalculate_payment_status()
                if r.payment_status != previous:
                    plan.events.append(
                        PaymentStatusChangeEvent(
                            reservation_id=r.id, old_payment_status=previous, new_payment_status=r.payment_status
                        )
                    )

        if changes.special_requests is not None:
            r.special_requests = changes.special_requests

        if not r.inventory_committed:
            return
        new_nights = r.inventory_nights()
        to_book = new_nights - old_nights
        to_release = old_nights - new_nights
        dates_changed = (r.check_in, r.check_out) != (old_check_in, old_check_out)
        if to_book:
            plan.book = StayRequest(
                r.hotel_id,
                r.channel,
                to_book,
                stay_nights=r.nights if dates_changed else None,
                arrival=r.check_in.date() if r.check_in != old_check_in else None,
                departure=r.check_out.date() if r.check_out != old_check_out else None,
            )
        if to_release:
            plan.release = StayRequest(r.hotel_id, r.channel, to_release)

    # === Validación y clasificación ===

    def _validate(self, r: Reservation, payload: AmendmentPayload, now: datetime) -> None:
        changes = payload.requested_changes
        is_cancellation = payload.amendment_type == AmendmentType.CANCELLATION_REQUEST
        if not is_cancellation and r.check_in - now < self._policy.amendment_window:
            hours = self._policy.amendment_window.total_seconds() / 3600
            raise PolicyViolationError("amendmentWindow", f"no se aceptan enmiendas a menos de {hours:g}h del check-in")
        if changes.check_in is not None and changes.check_in < now:
            raise PolicyViolationError("pastCheckIn", "la nueva fecha de llegada ya pasó")
        new_check_in = changes.check_in or r.check_in
        new_check_out = changes.check_out or r.check_out
        if new_check_out <= new_check_in:
            raise PolicyViolationError("invalidDates", "check_out debe ser posterior a check_in")

    def _check_conflicts(self, r: Reservation, payload: AmendmentPayload) -> None:
        fields = payload.requested_changes.changed_fields()
        conflicts = []
        for pending in r.pending_amendments:
            if pending.amendment_type == AmendmentType.CANCELLATION_REQUEST:
                conflicts.append(f"{pending.amendment_id}: cancelación pendiente")
                continue
            overlap = fields & set(pending.requested_changes)
            if overlap:
                conflicts.append(f"{pending.amendment_id}: {', '.join(sorted(overlap))}")
        if conflicts:
            raise AmendmentConflictError(conflicts)

    async def _check_availability(self, r: Reservation, changes: RequestedChanges) -> None:
        """Las noches que la enmienda agregaría deben tener cupo hoy en el canal."""
        if changes.check_in is None and changes.check_out is None and not changes.rooms:
            return
        projected = copy.deepcopy(r)
        projected.change_stay(changes.check_in or r.check_in, changes.check_out or r.check_out)
        if changes.rooms:
            projected.rooms = [line.to_domain() for line in changes.rooms]
        needed = projected.inventory_nights()
        if r.inventory_committed:
            needed -= r.inventory_nights()
        await self._ledger.check_stay(StayRequest(r.hotel_id, r.channel, needed))

    def _classify(self, r: Reservation, payload: AmendmentPayload, now: datetime) -> _Classification:
        changes = payload.requested_changes
        manual = payload.requires_manual_approval
        reasons: list[str] = []

        if changes.total_amount is not None:
            change_pct = self._rate_change_pct(r.total_amount, changes.total_amount)
            if change_pct > self._policy.rate_change_review_threshold:
                manual = True
                reasons.append(f"rate change of {change_pct:.1f}%")

        if payload.amendment_type == AmendmentType.CANCELLATION_REQUEST:
            if r.check_in - now <= self._policy.cancellation_window and not payload.bypass_policy:
                manual = True
                reasons.append("cancellation inside policy window")

        auto = not manual and self._auto_approvable(payload)
        return _Classification(
            requires_manual_approval=manual,
            flag_reason="; ".join(reasons) or None,
            auto_approve=auto,
            review_priority=self.review_priority(r, now),
        )

    @staticmethod
    def _rate_change_pct(current: Decimal, requested: Decimal) -> float:
        if current == 0:
            return 0.0 if requested == 0 else 100.0
        return float(abs(requested - current) / current * 100)

    @staticmethod
    def _auto_approvable(payload: AmendmentPayload) -> bool:
        allowed = AUTO_APPROVABLE_FIELDS.get(payload.amendment_type)
        if allowed is None:
            return False
        changes = payload.requested_changes
        fields = changes.changed_fields()
        if not fields or not fields <= allowed:
            return False
        if changes.guest_info is not None:
            touched = set(changes.guest_info.model_dump(exclude_none=True))
            if touched & SENSITIVE_GUEST_FIELDS:
                return False
        return True

    def review_priority(self, r: Reservation, now: datetime) -> int:
        """Prioridad 1-10 para la cola de revisión manual."""
        hours_to_check_in = (r.check_in - now).total_seconds() / 3600
        if hours_to_check_in < 24:
            priority = 10
        elif hours_to_check_in < 72:
            priority = 8
        elif hours_to_check_in < 168:
            priority = 6
        else:
            priority = 5
        if r.total_amount > HIGH_VALUE_TOTAL:
            priority += 2
        if r.guest_info.vip:
            priority += 3
        return min(priority, 10)

    # === Helpers ===

    def _new_record(
        self, amendment_id: str, payload: AmendmentPayload, r: Reservation, now: datetime
    ) -> AmendmentRecord:
        original = payload.original_data or {
            "check_in": r.check_in.isoformat(),
            "check_out": r.check_out.isoformat(),
            "total_amount": str(r.total_amount),
            "rooms": [{"room_type": line.room_type, "room_id": line.room_id} for line in r.rooms],
        }
        return AmendmentRecord(
            amendment_id=amendment_id,
            amendment_type=payload.amendment_type,
            requested_at=now,
            requested_changes=payload.requested_changes.as_record(),
            original_data=original,
            external_id=payload.external_id,
            requested_by_channel=payload.channel or r.channel,
            notes=payload.notes,
        )

    @staticmethod
    def _audit(
        reservation_id: str, kind: AuditKind, now: datetime, record: AmendmentRecord, channel: str | None
    ) -> AuditEntry:
        return AuditEntry(
            reservation_id=reservation_id,
            kind=kind,
            timestamp=now,
            actor=Actor(source=ActorSource.OTA, channel=channel),
            details={
                "amendment_id": record.amendment_id,
                "amendment_type": record.amendment_type.value,
                "status": record.status.value,
                "external_id": record.external_id,
            },
        )
