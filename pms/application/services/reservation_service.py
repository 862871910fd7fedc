"""
Servicio de reservaciones.

Único punto de escritura del agregado Reservation: cada cambio se calcula
sobre una copia de trabajo, se guarda con CAS por versión y solo después se
despachan intents y se disparan las reglas de workflow.
"""

import copy
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Callable, Protocol
from uuid import uuid4

from pms.application.interfaces.clock import Clock
from pms.application.interfaces.reservation_repo import ReservationRepo
from pms.application.schemas import CreateReservationRequest, GuestInfoPatch, PaymentRequest
from pms.application.services.concurrency import retry_on_conflict
from pms.application.services.intent_dispatcher import IntentDispatcher
from pms.application.services.inventory_ledger import InventoryLedger, StayRequest
from pms.domain.entities.audit import AuditEntry, AuditKind
from pms.domain.entities.intents import Intent
from pms.domain.entities.reservation import (
    Actor,
    ActorSource,
    ChannelSyncOutcome,
    ChannelSyncState,
    LastStatusChange,
    PaymentEntry,
    PaymentStatus,
    Reservation,
    ReservationStatus,
    StatusHistoryEntry,
    channel_for_source,
)
from pms.domain.errors import (
    DomainError,
    InvalidReservationDataError,
    InvalidTransitionError,
    PolicyViolationError,
    ReservationAlreadyExistsError,
    ReservationNotFoundError,
)
from pms.domain.events import PaymentStatusChangeEvent, StatusChangeEvent, WorkflowEvent
from pms.domain.policy import ReservationPolicy
from pms.domain.state_machine import ReservationStateMachine
from pms.domain.value_objects.identifiers import BookingNumber
from pms.domain.value_objects.stay_range import StayRange
from pms.domain.value_objects.status_change_context import StatusChangeContext

logger = logging.getLogger(__name__)

BOOKING_NUMBER_ATTEMPTS = 5


class WorkflowTrigger(Protocol):
    async def process_trigger(self, event: WorkflowEvent, reservation: Reservation) -> list: ...


@dataclass
class MutationPlan:
    """Cambio calculado sobre una copia de trabajo, pendiente de guardar."""

    reservation: Reservation
    intents: list[Intent] = field(default_factory=list)
    events: list[WorkflowEvent] = field(default_factory=list)
    audit: list[AuditEntry] = field(default_factory=list)
    book: StayRequest | None = None
    release: StayRequest | None = None


Mutator = Callable[[Reservation, datetime], MutationPlan | None]


class ReservationService:
    """Casos de uso sobre el agregado Reservation."""

    def __init__(
        self,
        reservation_repo: ReservationRepo,
        ledger: InventoryLedger,
        state_machine: ReservationStateMachine,
        dispatcher: IntentDispatcher,
        clock: Clock,
        policy: ReservationPolicy | None = None,
        conflict_attempts: int = 3,
    ) -> None:
        self._repo = reservation_repo
        self._ledger = ledger
        self._state_machine = state_machine
        self._dispatcher = dispatcher
        self._clock = clock
        self._policy = policy or state_machine.policy
        self._conflict_attempts = conflict_attempts
        self._workflow: WorkflowTrigger | None = None

    def bind_workflow(self, workflow: WorkflowTrigger) -> None:
        """Conecta el motor de workflow que recibe los eventos post-commit."""
        self._workflow = workflow

    # === Consultas ===

    async def get(self, reservation_id: str) -> Reservation:
        reservation = await self._repo.get(reservation_id)
        if reservation is None:
            raise ReservationNotFoundError(reservation_id)
        return reservation

    async def get_by_booking_number(self, booking_number: str) -> Reservation:
        reservation = await self._repo.get_by_booking_number(booking_number)
        if reservation is None:
            raise ReservationNotFoundError(booking_number)
        return reservation

    async def get_by_channel_reference(self, source: str, channel_booking_id: str) -> Reservation:
        reservation = await self._repo.get_by_channel_reference(source, channel_booking_id)
        if reservation is None:
            raise ReservationNotFoundError(f"{source}:{channel_booking_id}")
        return reservation

    async def resolve_reference(self, reference: str) -> Reservation:
        """Busca por id interno, número de booking o referencia del canal."""
        reservation = await self._repo.get(reference)
        if reservation is None:
            reservation = await self._repo.get_by_booking_number(reference)
        if reservation is None:
            raise ReservationNotFoundError(reference)
        return reservation

    async def list_audit(self, reservation_id: str) -> list[AuditEntry]:
        await self.get(reservation_id)
        return await self._repo.list_audit(reservation_id)

    # === Creación ===

    async def create(self, request: CreateReservationRequest, actor: Actor | None = None) -> Reservation:
        """
        Crea una reservación.

        Las reservaciones corporativas nacen confirmadas y venden inventario
        al crearse; el resto queda pending con un hold de reservedUntil.

        Raises:
            InvalidReservationDataError: Si las fechas son inválidas.
            ReservationAlreadyExistsError: Si la referencia del canal ya existe.
            InsufficientInventoryError: Si una corporativa no tiene cupo.
        """
        now = self._clock.now()
        stay = StayRange(check_in=request.check_in, check_out=request.check_out)
        actor = actor or Actor(source=ActorSource.GUEST if request.source == "direct" else ActorSource.OTA)

        if request.channel_booking_id:
            existing = await self._repo.get_by_channel_reference(request.source, request.channel_booking_id)
            if existing is not None:
                raise ReservationAlreadyExistsError("channel_booking_id", request.channel_booking_id)

        reservation = Reservation(
            id=uuid4().hex,
            booking_number="",
            hotel_id=request.hotel_id,
            guest_id=request.guest_id,
            check_in=stay.check_in,
            check_out=stay.check_out,
            nights=stay.nights,
            rooms=[line.to_domain() for line in request.rooms],
            total_amount=request.total_amount,
            currency=request.currency,
            source=request.source,
            channel=channel_for_source(request.source),
            channel_booking_id=request.channel_booking_id,
            raw_payload=request.raw_payload,
            corporate_party_id=request.corporate_party_id,
            group_booking_id=request.group_booking_id,
            guest_info=request.guest_info.to_domain(),
            special_requests=request.special_requests,
            created_at=now,
            updated_at=now,
        )

        events: list[WorkflowEvent] = []
        booked: StayRequest | None = None
        if reservation.is_corporate:
            reason = "Corporate booking confirmed on creation"
            reservation.status = ReservationStatus.CONFIRMED
            reservation.inventory_committed = True
            reservation.request_channel_sync()
            booked = self.stay_request(reservation, with_restrictions=True)
            await self._ledger.book_stay(booked)
            events.append(
                StatusChangeEvent(
                    reservation_id=reservation.id,
                    old_status=None,
                    new_status=ReservationStatus.CONFIRMED,
                    reason=reason,
                    source=actor.source,
                )
            )
        else:
            reason = "Initial booking creation"
            reservation.reserved_until = now + self._policy.hold_duration

        reservation.status_history.append(
            StatusHistoryEntry(status=reservation.status, timestamp=now, actor=actor, reason=reason)
        )
        reservation.last_status_change = LastStatusChange(
            from_status=None, to_status=reservation.status, timestamp=now, reason=reason
        )

        try:
            saved = await self._insert_with_booking_number(reservation, now)
        except Exception:
            if booked is not None:
                await self._ledger.release_stay(booked)
            raise

        logger.info(
            "Reservación creada",
            extra={
                "reservation_id": saved.id,
                "booking_number": saved.booking_number,
                "status": saved.status.value,
                "channel": saved.channel,
            },
        )
        await self._run_events(saved, events)
        return await self.get(saved.id) if events else saved

    async def _insert_with_booking_number(self, reservation: Reservation, now: datetime) -> Reservation:
        for attempt in range(BOOKING_NUMBER_ATTEMPTS):
            reservation.booking_number = str(BookingNumber.generate(now.date()))
            try:
                return await self._repo.add(reservation)
            except ReservationAlreadyExistsError as e:
                if e.field != "booking_number" or attempt == BOOKING_NUMBER_ATTEMPTS - 1:
                    raise
                logger.warning("Colisión de booking_number, regenerando", extra={"attempt": attempt + 1})
        raise RuntimeError("BOOKING_NUMBER_ATTEMPTS debe ser mayor a cero")

    # === Transiciones ===

    async def transition(
        self,
        reservation_id: str,
        target: ReservationStatus,
        context: StatusChangeContext,
        now: datetime | None = None,
    ) -> Reservation:
        """
        Transiciona la reservación y persiste con CAS.

        Las transiciones rechazadas quedan en la auditoría. `now` fija el
        instante con el que se evalúan las reglas; por defecto, el reloj.

        Raises:
            InvalidTransitionError, PolicyViolationError, ConflictingVersionError,
            InsufficientInventoryError.
        """
        try:
            return await self.mutate(
                reservation_id, lambda r, at: self.plan_transition(r, target, context, at), now=now
            )
        except (InvalidTransitionError, PolicyViolationError) as e:
            await self._audit_rejection(reservation_id, target, context, e, now)
            raise

    async def cancel(
        self, reservation_id: str, context: StatusChangeContext, now: datetime | None = None
    ) -> Reservation:
        return await self.transition(reservation_id, ReservationStatus.CANCELLED, context, now)

    def plan_transition(
        self,
        reservation: Reservation,
        target: ReservationStatus,
        context: StatusChangeContext,
        now: datetime,
        plan: MutationPlan | None = None,
    ) -> MutationPlan:
        """Aplica la transición sobre la copia de trabajo y agrega sus efectos al plan."""
        outcome = self._state_machine.transition(reservation, target, context, now)
        plan = plan or MutationPlan(reservation=reservation)
        plan.intents.extend(outcome.intents)

        if outcome.archived_history:
            plan.audit.append(
                AuditEntry(
                    reservation_id=reservation.id,
                    kind=AuditKind.HISTORY_ARCHIVED,
                    timestamp=now,
                    details={"entries": [asdict(entry) for entry in outcome.archived_history]},
                )
            )

        if target == ReservationStatus.CONFIRMED and not reservation.inventory_committed:
            plan.book = self.stay_request(reservation, with_restrictions=True)
            reservation.inventory_committed = True
        elif target == ReservationStatus.CANCELLED and reservation.inventory_committed:
            plan.release = self.stay_request(reservation)
            reservation.inventory_committed = False

        plan.events.append(
            StatusChangeEvent(
                reservation_id=reservation.id,
                old_status=outcome.from_status,
                new_status=outcome.to_status,
                reason=context.reason,
                source=context.source,
                automatic=context.automatic,
                skip_notifications=context.skip_notifications,
            )
        )
        return plan

    def stay_request(self, reservation: Reservation, with_restrictions: bool = False) -> StayRequest:
        if not with_restrictions:
            return StayRequest(reservation.hotel_id, reservation.channel, reservation.inventory_nights())
        return StayRequest(
            reservation.hotel_id,
            reservation.channel,
            reservation.inventory_nights(),
            stay_nights=reservation.nights,
            arrival=reservation.check_in.date(),
            departure=reservation.check_out.date(),
        )

    # === Datos y pagos ===

    async def update_details(
        self,
        reservation_id: str,
        guest_info: GuestInfoPatch | None = None,
        special_requests: str | None = None,
    ) -> Reservation:
        """Actualiza datos del huésped o solicitudes especiales (no fechas ni habitaciones)."""

        def mutator(reservation: Reservation, now: datetime) -> MutationPlan:
            if reservation.is_terminal:
                raise PolicyViolationError("reservationClosed", f"estado '{reservation.status.value}'")
            if guest_info is not None:
                for name, value in guest_info.model_dump(exclude_none=True).items():
                    setattr(reservation.guest_info, name, value)
            if special_requests is not None:
                reservation.special_requests = special_requests
            return MutationPlan(reservation=reservation)

        return await self.mutate(reservation_id, mutator)

    async def submit_payment(self, reservation_id: str, payment: PaymentRequest) -> Reservation:
        """
        Registra un pago.

        El total pagado nunca excede el total; al cubrirlo exacto el pago
        pasa a paid y se dispara payment_status_change.
        """

        def mutator(reservation: Reservation, now: datetime) -> MutationPlan:
            if reservation.status in (ReservationStatus.CANCELLED, ReservationStatus.CHECKED_OUT):
                raise PolicyViolationError("reservationClosed", f"estado '{reservation.status.value}'")
            if reservation.payment_details.total_paid + payment.amount > reservation.total_amount:
                raise InvalidReservationDataError(
                    "amount",
                    f"el pago {payment.amount} excede el saldo pendiente {reservation.remaining_balance}",
                )
            previous = reservation.payment_status
            reservation.record_payment(
                PaymentEntry(method=payment.method, amount=payment.amount, paid_at=now, reference=payment.reference)
            )
            return self._payment_plan(reservation, previous)

        return await self.mutate(reservation_id, mutator)

    async def mark_payment_failed(self, reservation_id: str) -> Reservation:
        def mutator(reservation: Reservation, now: datetime) -> MutationPlan | None:
            if reservation.payment_status == PaymentStatus.FAILED:
                return None
            previous = reservation.payment_status
            reservation.payment_status = PaymentStatus.FAILED
            return self._payment_plan(reservation, previous)

        return await self.mutate(reservation_id, mutator)

    async def mark_refunded(self, reservation_id: str) -> Reservation:
        def mutator(reservation: Reservation, now: datetime) -> MutationPlan | None:
            if reservation.payment_status == PaymentStatus.REFUNDED:
                return None
            previous = reservation.payment_status
            reservation.payment_status = PaymentStatus.REFUNDED
            return self._payment_plan(reservation, previous)

        return await self.mutate(reservation_id, mutator)

    def _payment_plan(self, reservation: Reservation, previous: PaymentStatus) -> MutationPlan:
        plan = MutationPlan(reservation=reservation)
        if reservation.payment_status != previous:
            plan.events.append(
                PaymentStatusChangeEvent(
                    reservation_id=reservation.id,
                    old_payment_status=previous,
                    new_payment_status=reservation.payment_status,
                )
            )
        return plan

    # === Sincronización con canales ===

    async def mark_needs_sync(self, reservation_id: str) -> Reservation:
        def mutator(reservation: Reservation, now: datetime) -> MutationPlan | None:
            if not reservation.sync_channels():
                return None
            state = reservation.sync_status.channels.get(reservation.channel)
            if reservation.sync_status.needs_sync and state and state.target_status == reservation.status:
                return None
            reservation.request_channel_sync()
            return MutationPlan(reservation=reservation)

        return await self.mutate(reservation_id, mutator)

    async def record_channel_sync(
        self,
        reservation_id: str,
        channel: str,
        status: ReservationStatus,
        success: bool,
        error: str | None = None,
    ) -> Reservation:
        """Registra el resultado de empujar un estado al canal."""

        def mutator(reservation: Reservation, now: datetime) -> MutationPlan:
            state = reservation.sync_status.channels.setdefault(channel, ChannelSyncState())
            if success:
                state.status = ChannelSyncOutcome.SUCCESS
                state.synced_status = status
                state.synced_at = now
                state.error = None
            else:
                state.status = ChannelSyncOutcome.FAILED
                state.error = error
            reservation.sync_status.needs_sync = not reservation.channels_current()
            audit = AuditEntry(
                reservation_id=reservation.id,
                kind=AuditKind.CHANNEL_SYNC,
                timestamp=now,
                actor=Actor(source=ActorSource.SYSTEM, channel=channel),
                details={"status": status.value, "success": success, "error": error},
            )
            return MutationPlan(reservation=reservation, audit=[audit])

        return await self.mutate(reservation_id, mutator)

    # === Núcleo transaccional ===

    async def mutate(self, reservation_id: str, mutator: Mutator, now: datetime | None = None) -> Reservation:
        """
        Relee, modifica una copia, guarda con CAS y ejecuta efectos post-commit.

        Si otra escritura ganó la carrera, la operación completa se reintenta.
        """
        saved, plan = await retry_on_conflict(
            lambda: self._mutate_once(reservation_id, mutator, now), self._conflict_attempts
        )
        if plan is None:
            return saved
        await self._after_commit(saved, plan)
        if plan.events:
            return await self.get(reservation_id)
        return saved

    async def _mutate_once(
        self, reservation_id: str, mutator: Mutator, now: datetime | None = None
    ) -> tuple[Reservation, MutationPlan | None]:
        current = await self.get(reservation_id)
        working = copy.deepcopy(current)
        now = now or self._clock.now()
        plan = mutator(working, now)
        if plan is None:
            return current, None
        plan.reservation.updated_at = now

        if plan.book is not None:
            await self._ledger.book_stay(plan.book)
        try:
            saved = await self._repo.save(plan.reservation, expected_version=current.version)
        except Exception:
            if plan.book is not None:
                await self._ledger.release_stay(plan.book)
            raise
        return saved, plan

    async def _after_commit(self, saved: Reservation, plan: MutationPlan) -> None:
        if plan.release is not None:
            try:
                await self._ledger.release_stay(plan.release)
            except DomainError:
                logger.exception("Error liberando inventario", extra={"reservation_id": saved.id})
        if plan.audit:
            await self._repo.append_audit(plan.audit)
        if plan.intents:
            await self._dispatcher.dispatch(plan.intents)
        await self._run_events(saved, plan.events)

    async def _run_events(self, saved: Reservation, events: list[WorkflowEvent]) -> None:
        if self._workflow is None:
            return
        for event in events:
            current = await self._repo.get(saved.id) or saved
            await self._workflow.process_trigger(event, current)

    async def _audit_rejection(
        self,
        reservation_id: str,
        target: ReservationStatus,
        context: StatusChangeContext,
        error: DomainError,
        now: datetime | None = None,
    ) -> None:
        reservation = await self._repo.get(reservation_id)
        entry = AuditEntry(
            reservation_id=reservation_id,
            kind=AuditKind.TRANSITION_REJECTED,
            timestamp=now or self._clock.now(),
            actor=context.actor,
            details={
                "from_status": reservation.status.value if reservation else None,
                "to_status": target.value,
                "code": error.code,
                "message": error.message,
            },
        )
        await self._repo.append_audit([entry])
        logger.warning(
            "Transición rechazada",
            extra={"reservation_id": reservation_id, "to_status": target.value, "code": error.code},
        )
