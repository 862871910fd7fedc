"""Política de reservaciones: ventanas de tiempo y límites configurables."""

from dataclasses import dataclass
from datetime import timedelta


@dataclass(frozen=True)
class ReservationPolicy:
    """
    Parámetros de negocio del ciclo de vida de una reservación.

    Se construye desde Settings y se inyecta a la máquina de estados,
    al motor de workflow y al procesador de enmiendas.
    """

    hold_duration: timedelta = timedelta(minutes=15)
    cancellation_window: timedelta = timedelta(hours=24)
    no_show_grace: timedelta = timedelta(hours=2)
    auto_no_show_after: timedelta = timedelta(hours=6)
    overdue_checkout_after: timedelta = timedelta(hours=2)
    amendment_window: timedelta = timedelta(hours=2)
    rate_change_review_threshold: float = 20.0
    status_history_cap: int = 50
    automatic_checkout_enabled: bool = True
    no_show_penalty_required: bool = False

    @classmethod
    def from_settings(cls, settings) -> "ReservationPolicy":
        return cls(
            hold_duration=timedelta(minutes=settings.reservation_hold_minutes),
            cancellation_window=timedelta(hours=settings.cancellation_window_hours),
            no_show_grace=timedelta(hours=settings.no_show_grace_hours),
            auto_no_show_after=timedelta(hours=settings.auto_no_show_after_hours),
            overdue_checkout_after=timedelta(hours=settings.overdue_checkout_hours),
            amendment_window=timedelta(hours=settings.amendment_window_hours),
            rate_change_review_threshold=settings.rate_change_review_threshold,
            status_history_cap=settings.status_history_cap,
            automatic_checkout_enabled=settings.automatic_checkout_enabled,
            no_show_penalty_required=settings.no_show_penalty_required,
        )
