"""
Máquina de estados de la reservación.

Valida transiciones contra la tabla permitida, aplica las reglas de negocio
de cada estado destino y produce los intents de entrada al estado. No
persiste: el servicio de reservaciones guarda el resultado con CAS.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime

from pms.domain.entities.intents import (
    AutomaticCheckoutRequest,
    FinalBillingRequest,
    HousekeepingUpdate,
    Intent,
    PenaltyRequest,
    RefundRequest,
)
from pms.domain.entities.reservation import (
    ActorSource,
    LastStatusChange,
    PaymentStatus,
    Reservation,
    ReservationStatus,
    StatusHistoryEntry,
)
from pms.domain.errors import InvalidTransitionError, PolicyViolationError
from pms.domain.policy import ReservationPolicy
from pms.domain.value_objects.status_change_context import StatusChangeContext

logger = logging.getLogger(__name__)

S = ReservationStatus

ALLOWED_TRANSITIONS: dict[ReservationStatus, frozenset[ReservationStatus]] = {
    S.PENDING: frozenset({S.CONFIRMED, S.CANCELLED, S.MODIFIED}),
    S.CONFIRMED: frozenset({S.CHECKED_IN, S.CANCELLED, S.NO_SHOW, S.MODIFIED}),
    S.MODIFIED: frozenset({S.CONFIRMED, S.CANCELLED, S.CHECKED_IN, S.NO_SHOW}),
    S.CHECKED_IN: frozenset({S.CHECKED_OUT}),
    S.CHECKED_OUT: frozenset(),
    S.CANCELLED: frozenset(),
    S.NO_SHOW: frozenset({S.CANCELLED}),
}

# Actores sujetos a la ventana de cancelación
POLICY_BOUND_ACTORS = frozenset({ActorSource.GUEST, ActorSource.OTA})


@dataclass
class TransitionOutcome:
    """Resultado de aplicar una transición sobre la reservación."""

    from_status: ReservationStatus
    to_status: ReservationStatus
    intents: list[Intent] = field(default_factory=list)
    archived_history: list[StatusHistoryEntry] = field(default_factory=list)


def can_transition(from_status: ReservationStatus, to_status: ReservationStatus) -> bool:
    return to_status in ALLOWED_TRANSITIONS.get(from_status, frozenset())


class ReservationStateMachine:
    """Aplica transiciones de estado sobre una copia de trabajo de la reservación."""

    def __init__(self, policy: ReservationPolicy | None = None):
        self._policy = policy or ReservationPolicy()

    @property
    def policy(self) -> ReservationPolicy:
        return self._policy

    def transition(
        self,
        reservation: Reservation,
        target: ReservationStatus,
        context: StatusChangeContext,
        now: datetime,
    ) -> TransitionOutcome:
        """
        Transiciona la reservación al estado destino.

        Modifica la instancia recibida; el llamador debe pasar una copia de
        trabajo y descartarla si se lanza una excepción.

        Raises:
            InvalidTransitionError: Si el par no está en la tabla.
            PolicyViolationError: Si una regla de negocio lo impide.
        """
        current = reservation.status
        if not can_transition(current, target):
            raise InvalidTransitionError(current.value, target.value)

        self._check_rules(reservation, target, context, now)

        reservation.status = target
        reservation.status_history.append(
            StatusHistoryEntry(
                status=target,
                timestamp=now,
                actor=context.actor,
                reason=context.reason,
                automatic=context.automatic,
            )
        )
        reservation.last_status_change = LastStatusChange(
            from_status=current, to_status=target, timestamp=now, reason=context.reason
        )
        reservation.updated_at = now

        outcome = TransitionOutcome(from_status=current, to_status=target)
        outcome.intents.extend(self._enter_state(reservation, target, context, now))
        outcome.archived_history = self._cap_history(reservation)

        logger.info(
            "Transición de reservación",
            extra={
                "reservation_id": reservation.id,
                "from_status": current.value,
                "to_status": target.value,
                "source": context.source.value,
                "automatic": context.automatic,
            },
        )
        return outcome

    # === Reglas por estado destino ===

    def _check_rules(
        self,
        reservation: Reservation,
        target: ReservationStatus,
        context: StatusChangeContext,
        now: datetime,
    ) -> None:
        if target == S.CONFIRMED:
            if reservation.payment_status == PaymentStatus.FAILED:
                raise PolicyViolationError("paymentFailed", "no se puede confirmar con pago fallido")
            if reservation.amendment_flags.has_pending and not context.bypass_amendment_check:
                raise PolicyViolationError("pendingAmendments", "hay enmiendas pendientes de resolver")

        elif target == S.CHECKED_IN:
            if now < reservation.check_in and not context.early_check_in:
                raise PolicyViolationError(
                    "earlyCheckIn", f"check-in permitido a partir de {reservation.check_in.isoformat()}"
                )

        elif target == S.CANCELLED:
            if context.source in POLICY_BOUND_ACTORS and not context.bypass_cancellation_policy:
                if reservation.check_in - now <= self._policy.cancellation_window:
                    hours = self._policy.cancellation_window.total_seconds() / 3600
                    raise PolicyViolationError(
                        "cancellationWindow", f"la cancelación requiere más de {hours:g}h antes del check-in"
                    )

        elif target == S.NO_SHOW:
            if not context.manual_no_show and now <= reservation.check_in + self._policy.no_show_grace:
                raise PolicyViolationError("noShowGrace", "el periodo de gracia aún no termina")

        elif target == S.MODIFIED:
            if not reservation.amendment_flags.has_pending and not context.force_modified:
                raise PolicyViolationError("noPendingAmendments", "no hay enmiendas pendientes")

    # === Efectos de entrada al estado ===

    def _enter_state(
        self,
        reservation: Reservation,
        target: ReservationStatus,
        context: StatusChangeContext,
        now: datetime,
    ) -> list[Intent]:
        intents: list[Intent] = []
        ids = {"reservation_id": reservation.id, "booking_number": reservation.booking_number}
        room_ids = tuple(line.room_id for line in reservation.rooms if line.room_id)

        if target == S.CONFIRMED:
            reservation.reserved_until = None
            reservation.amendment_flags.requires_reconfirmation = False
            reservation.request_channel_sync()

        elif target == S.CHECKED_IN:
            reservation.actual_check_in = now
            intents.append(HousekeepingUpdate(**ids, room_ids=room_ids, room_status="occupied"))

        elif target == S.CHECKED_OUT:
            reservation.actual_check_out = now
            intents.append(
                FinalBillingRequest(
                    **ids,
                    total_amount=reservation.total_amount,
                    total_paid=reservation.payment_details.total_paid,
                )
            )
            intents.append(HousekeepingUpdate(**ids, room_ids=room_ids, room_status="needs_cleaning"))
            if self._policy.automatic_checkout_enabled and context.enable_automation:
                intents.append(AutomaticCheckoutRequest(**ids))

        elif target == S.CANCELLED:
            reservation.reserved_until = None
            if reservation.payment_status == PaymentStatus.PAID and context.process_refund:
                intents.append(
                    RefundRequest(
                        **ids,
                        amount=reservation.payment_details.total_paid,
                        currency=reservation.currency,
                        reason=context.reason,
                    )
                )
            reservation.request_channel_sync()

        elif target == S.MODIFIED:
            reservation.amendment_flags.requires_reconfirmation = True
            reservation.request_channel_sync()

        elif target == S.NO_SHOW:
            reservation.no_show_recorded_at = now
            if self._policy.no_show_penalty_required or context.apply_no_show_penalty:
                intents.append(PenaltyRequest(**ids, amount=reservation.total_amount))

        return intents

    def _cap_history(self, reservation: Reservation) -> list[StatusHistoryEntry]:
        """Conserva las últimas N entradas; las anteriores se devuelven para auditoría."""
        cap = self._policy.status_history_cap
        if len(reservation.status_history) <= cap:
            return []
        archived = reservation.status_history[:-cap]
        reservation.status_history = reservation.status_history[-cap:]
        return archived
