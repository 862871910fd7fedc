"""
Motor de workflow de reservaciones.

Evalúa reglas en orden de alta ante eventos (cambio de estado, cambio de
pago, enmienda resuelta) y ante revisiones periódicas (holds vencidos,
no-shows, salidas atrasadas). Las acciones llaman al servicio de
reservaciones, que a su vez vuelve a disparar eventos.
"""

import asyncio
import logging
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Awaitable, Callable

from pms.application.interfaces.clock import Clock
from pms.application.interfaces.reservation_repo import ReservationRepo
from pms.application.interfaces.sync_queue import SyncQueue
from pms.application.services.intent_dispatcher import IntentDispatcher
from pms.application.services.reservation_service import ReservationService
from pms.domain.entities.audit import AuditEntry, AuditKind
from pms.domain.entities.intents import Intent, OverdueAlert, StaffBroadcast, StatusChangeEmail
from pms.domain.entities.reservation import (
    Actor,
    ActorSource,
    PaymentStatus,
    Reservation,
    ReservationStatus,
)
from pms.domain.entities.sync_item import CANCELLATION_PRIORITY, SyncQueueItem
from pms.domain.events import (
    AmendmentResolvedEvent,
    PaymentStatusChangeEvent,
    ScheduledCheck,
    ScheduledCheckEvent,
    StatusChangeEvent,
    TriggerType,
    WorkflowEvent,
)
from pms.domain.policy import ReservationPolicy
from pms.domain.value_objects.status_change_context import StatusChangeContext

logger = logging.getLogger(__name__)

# Marca las tareas de revisión periódica; sus eventos se aceptan durante el apagado
_IN_SCHEDULED_SCAN: ContextVar[bool] = ContextVar("in_scheduled_scan", default=False)

SYNCED_STATUSES = frozenset({ReservationStatus.CONFIRMED, ReservationStatus.CANCELLED, ReservationStatus.NO_SHOW})

EMAIL_TEMPLATES = {
    ReservationStatus.CONFIRMED: ("reservation_confirmed", "Your reservation is confirmed"),
    ReservationStatus.CANCELLED: ("reservation_cancelled", "Your reservation has been cancelled"),
    ReservationStatus.MODIFIED: ("reservation_modified", "Your reservation has been modified"),
    ReservationStatus.NO_SHOW: ("reservation_no_show", "We missed you"),
}

RuleCondition = Callable[[Reservation, WorkflowEvent], bool]
RuleAction = Callable[[Reservation, WorkflowEvent], Awaitable[str]]


@dataclass
class WorkflowRule:
    rule_id: str
    trigger: TriggerType
    condition: RuleCondition
    action: RuleAction
    description: str = ""
    enabled: bool = True


@dataclass
class RuleResult:
    rule_id: str
    success: bool
    action: str | None = None
    error: str | None = None


@dataclass
class RuleStats:
    executions: int = 0
    failures: int = 0
    last_executed_at: datetime | None = None


@dataclass(frozen=True)
class WorkflowSchedule:
    """Intervalos y lotes de las revisiones periódicas."""

    expired_hold_interval: timedelta = timedelta(minutes=5)
    no_show_interval: timedelta = timedelta(minutes=30)
    overdue_checkout_interval: timedelta = timedelta(hours=1)
    expired_hold_batch_size: int = 100
    no_show_batch_size: int = 50
    overdue_checkout_batch_size: int = 50
    sync_delay: timedelta = timedelta(seconds=1)
    sync_max_attempts: int = 3
    shutdown_grace: timedelta = timedelta(seconds=10)

    @classmethod
    def from_settings(cls, settings) -> "WorkflowSchedule":
        return cls(
            expired_hold_interval=timedelta(seconds=settings.expired_hold_check_seconds),
            no_show_interval=timedelta(seconds=settings.no_show_check_seconds),
            overdue_checkout_interval=timedelta(seconds=settings.overdue_checkout_check_seconds),
            expired_hold_batch_size=settings.expired_hold_batch_size,
            no_show_batch_size=settings.no_show_batch_size,
            overdue_checkout_batch_size=settings.overdue_checkout_batch_size,
            sync_delay=timedelta(seconds=settings.sync_enqueue_delay_seconds),
            sync_max_attempts=settings.sync_max_attempts,
            shutdown_grace=timedelta(seconds=settings.shutdown_grace_seconds),
        )


class WorkflowEngine:
    """Reglas de automatización sobre el ciclo de vida de la reservación."""

    def __init__(
        self,
        reservations: ReservationService,
        reservation_repo: ReservationRepo,
        sync_queue: SyncQueue,
        dispatcher: IntentDispatcher,
        clock: Clock,
        policy: ReservationPolicy | None = None,
        schedule: WorkflowSchedule | None = None,
        register_defaults: bool = True,
    ) -> None:
        self._reservations = reservations
        self._repo = reservation_repo
        self._queue = sync_queue
        self._dispatcher = dispatcher
        self._clock = clock
        self._policy = policy or ReservationPolicy()
        self._schedule = schedule or WorkflowSchedule()
        self._rules: dict[str, WorkflowRule] = {}
        self._stats: dict[str, RuleStats] = {}
        self._accepting = True
        self._running = False
        self._tasks: dict[str, asyncio.Task] = {}
        self._busy: set[str] = set()
        if register_defaults:
            self._register_default_rules()

    @property
    def is_running(self) -> bool:
        return self._running

    # === Gestión de reglas ===

    def add_rule(self, rule: WorkflowRule) -> None:
        self._rules[rule.rule_id] = rule
        self._stats.setdefault(rule.rule_id, RuleStats())
        logger.info("Regla de workflow registrada", extra={"rule_id": rule.rule_id, "trigger": rule.trigger.value})

    def remove_rule(self, rule_id: str) -> bool:
        self._stats.pop(rule_id, None)
        return self._rules.pop(rule_id, None) is not None

    def enable_rule(self, rule_id: str) -> bool:
        return self._set_enabled(rule_id, True)

    def disable_rule(self, rule_id: str) -> bool:
        return self._set_enabled(rule_id, False)

    def _set_enabled(self, rule_id: str, enabled: bool) -> bool:
        rule = self._rules.get(rule_id)
        if rule is None:
            return False
        rule.enabled = enabled
        return True

    def rules(self) -> list[WorkflowRule]:
        return list(self._rules.values())

    def stats(self) -> dict:
        return {
            "running": self._running,
            "active_rules": sum(1 for rule in self._rules.values() if rule.enabled),
            "scheduled_tasks": sorted(self._tasks),
            "rules": {
                rule_id: {
                    "trigger": rule.trigger.value,
                    "enabled": rule.enabled,
                    "executions": self._stats[rule_id].executions,
                    "failures": self._stats[rule_id].failures,
                    "last_executed_at": self._stats[rule_id].last_executed_at,
                }
                for rule_id, rule in self._rules.items()
            },
        }

    # === Evaluación ===

    async def process_trigger(self, event: WorkflowEvent, reservation: Reservation) -> list[RuleResult]:
        """
        Evalúa las reglas del trigger del evento en orden de alta.

        El fallo de una regla se registra y no impide evaluar las siguientes.
        Tras `stop` solo se aceptan eventos de las revisiones que siguen en curso.
        """
        if not self._accepting and not _IN_SCHEDULED_SCAN.get():
            logger.debug("Workflow detenido, evento ignorado", extra={"reservation_id": event.reservation_id})
            return []

        results: list[RuleResult] = []
        for rule in list(self._rules.values()):
            if not rule.enabled or rule.trigger != event.trigger:
                continue
            try:
                if not rule.condition(reservation, event):
                    continue
                action = await rule.action(reservation, event)
                result = RuleResult(rule_id=rule.rule_id, success=True, action=action)
            except Exception as e:
                logger.exception(
                    "Error ejecutando regla de workflow",
                    extra={"rule_id": rule.rule_id, "reservation_id": reservation.id},
                )
                result = RuleResult(rule_id=rule.rule_id, success=False, error=str(e))

            results.append(result)
            self._record(rule.rule_id, result)
            await self._audit_rule(reservation.id, result)
            reservation = await self._repo.get(reservation.id) or reservation
        return results

    async def manual_trigger(self, reservation_id: str, event: WorkflowEvent) -> list[RuleResult]:
        reservation = await self._reservations.get(reservation_id)
        return await self.process_trigger(event, reservation)

    def _record(self, rule_id: str, result: RuleResult) -> None:
        stats = self._stats.setdefault(rule_id, RuleStats())
        stats.executions += 1
        stats.last_executed_at = self._clock.now()
        if not result.success:
            stats.failures += 1

    async def _audit_rule(self, reservation_id: str, result: RuleResult) -> None:
        entry = AuditEntry(
            reservation_id=reservation_id,
            kind=AuditKind.WORKFLOW_RULE_EXECUTED,
            timestamp=self._clock.now(),
            actor=Actor(source=ActorSource.SYSTEM, user_name="workflow"),
            details={
                "rule_id": result.rule_id,
                "success": result.success,
                "action": result.action,
                "error": result.error,
            },
        )
        await self._repo.append_audit([entry])

    # === Revisiones periódicas ===

    async def check_expired_holds(self, now: datetime | None = None) -> int:
        now = now or self._clock.now()
        if not await self._repo.is_available():
            logger.warning("Persistencia no disponible, se omite revisión de holds")
            return 0
        candidates = await self._repo.find_expired_holds(now, self._schedule.expired_hold_batch_size)
        return await self._run_scheduled(ScheduledCheck.EXPIRED_HOLDS, candidates, now)

    async def check_no_shows(self, now: datetime | None = None) -> int:
        now = now or self._clock.now()
        if not await self._repo.is_available():
            logger.warning("Persistencia no disponible, se omite revisión de no-shows")
            return 0
        threshold = now - self._policy.auto_no_show_after
        candidates = await self._repo.find_by_status_with_check_in_before(
            ReservationStatus.CONFIRMED, threshold, self._schedule.no_show_batch_size
        )
        return await self._run_scheduled(ScheduledCheck.NO_SHOWS, candidates, now)

    async def check_overdue_checkouts(self, now: datetime | None = None) -> int:
        now = now or self._clock.now()
        if not await self._repo.is_available():
            logger.warning("Persistencia no disponible, se omite revisión de salidas")
            return 0
        threshold = now - self._policy.overdue_checkout_after
        candidates = await self._repo.find_by_status_with_check_out_before(
            ReservationStatus.CHECKED_IN, threshold, self._schedule.overdue_checkout_batch_size
        )
        return await self._run_scheduled(ScheduledCheck.OVERDUE_CHECKOUTS, candidates, now)

    async def _run_scheduled(self, check: ScheduledCheck, candidates: list[Reservation], now: datetime) -> int:
        handled = 0
        for reservation in candidates:
            event = ScheduledCheckEvent(reservation_id=reservation.id, check=check, now=now)
            results = await self.process_trigger(event, reservation)
            if any(r.success for r in results):
                handled += 1
        if candidates:
            logger.info(
                "Revisión periódica completada",
                extra={"check": check.value, "candidates": len(candidates), "handled": handled},
            )
        return handled

    # === Ciclo de vida ===

    async def start(self) -> None:
        """Inicia los temporizadores de las revisiones periódicas."""
        if self._running:
            return
        self._running = True
        self._accepting = True
        jobs = {
            "expired_holds": (self._schedule.expired_hold_interval, self.check_expired_holds),
            "no_shows": (self._schedule.no_show_interval, self.check_no_shows),
            "overdue_checkouts": (self._schedule.overdue_checkout_interval, self.check_overdue_checkouts),
        }
        for name, (interval, job) in jobs.items():
            self._tasks[name] = asyncio.create_task(self._run_periodic(name, interval, job))
        logger.info("Workflow engine iniciado", extra={"rules": len(self._rules)})

    async def stop(self, grace: timedelta | None = None) -> None:
        """
        Detiene los temporizadores.

        Deja de aceptar eventos nuevos de inmediato. Las revisiones en curso
        tienen hasta `grace` para terminar; después se cancelan.
        """
        self._running = False
        self._accepting = False
        grace = grace if grace is not None else self._schedule.shutdown_grace
        for name, task in self._tasks.items():
            if name not in self._busy:
                task.cancel()
        tasks = list(self._tasks.values())
        if tasks:
            _, still_running = await asyncio.wait(tasks, timeout=grace.total_seconds())
            for task in still_running:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        self._busy.clear()
        logger.info("Workflow engine detenido")

    async def _run_periodic(self, name: str, interval: timedelta, job: Callable[[], Awaitable[int]]) -> None:
        _IN_SCHEDULED_SCAN.set(True)
        next_run = self._clock.now() + interval
        while self._running:
            await self._clock.sleep_until(next_run)
            if not self._running:
                break
            self._busy.add(name)
            try:
                await job()
            except Exception:
                logger.exception("Error en revisión periódica", extra={"check": name})
            finally:
                self._busy.discard(name)
            next_run = max(next_run + interval, self._clock.now())

    # === Reglas por defecto ===

    def _register_default_rules(self) -> None:
        self.add_rule(
            WorkflowRule(
                rule_id="auto_confirm_on_payment",
                trigger=TriggerType.PAYMENT_STATUS_CHANGE,
                condition=self._payment_completed,
                action=self._confirm_after_payment,
                description="Confirma reservaciones pending cuando el pago queda completo",
            )
        )
        self.add_rule(
            WorkflowRule(
                rule_id="auto_no_show",
                trigger=TriggerType.SCHEDULED_CHECK,
                condition=self._is_no_show_candidate,
                action=self._mark_no_show,
                description="Marca no-show a confirmadas sin llegada tras el umbral",
            )
        )
        self.add_rule(
            WorkflowRule(
                rule_id="auto_release_expired",
                trigger=TriggerType.SCHEDULED_CHECK,
                condition=self._is_expired_hold,
                action=self._release_expired_hold,
                description="Cancela reservaciones pending con hold vencido",
            )
        )
        self.add_rule(
            WorkflowRule(
                rule_id="auto_confirm_after_amendment",
                trigger=TriggerType.AMENDMENT_RESOLVED,
                condition=self._amendments_settled,
                action=self._reconfirm_after_amendments,
                description="Reconfirma cuando todas las enmiendas quedan resueltas",
            )
        )
        self.add_rule(
            WorkflowRule(
                rule_id="auto_sync_ota",
                trigger=TriggerType.STATUS_CHANGE,
                condition=self._needs_channel_sync,
                action=self._enqueue_channel_sync,
                description="Encola el envío del estado al canal externo",
            )
        )
        self.add_rule(
            WorkflowRule(
                rule_id="send_notifications",
                trigger=TriggerType.STATUS_CHANGE,
                condition=lambda r, e: not getattr(e, "skip_notifications", False),
                action=self._send_notifications,
                description="Notifica al huésped y al staff",
            )
        )
        self.add_rule(
            WorkflowRule(
                rule_id="overdue_checkout_alert",
                trigger=TriggerType.SCHEDULED_CHECK,
                condition=self._is_overdue_checkout,
                action=self._alert_overdue_checkout,
                description="Alerta de huéspedes que no han hecho check-out",
            )
        )

    # --- Condiciones ---

    def _payment_completed(self, reservation: Reservation, event: WorkflowEvent) -> bool:
        return (
            isinstance(event, PaymentStatusChangeEvent)
            and event.new_payment_status == PaymentStatus.PAID
            and (
                reservation.status == ReservationStatus.PENDING
                or (reservation.is_on_hold and not reservation.amendment_flags.has_pending)
            )
        )

    def _is_expired_hold(self, reservation: Reservation, event: WorkflowEvent) -> bool:
        if not isinstance(event, ScheduledCheckEvent) or event.check != ScheduledCheck.EXPIRED_HOLDS:
            return False
        now = event.now or self._clock.now()
        return reservation.is_on_hold and reservation.reserved_until < now

    def _is_no_show_candidate(self, reservation: Reservation, event: WorkflowEvent) -> bool:
        if not isinstance(event, ScheduledCheckEvent) or event.check != ScheduledCheck.NO_SHOWS:
            return False
        now = event.now or self._clock.now()
        return (
            reservation.status == ReservationStatus.CONFIRMED
            and now - reservation.check_in > self._policy.auto_no_show_after
        )

    def _is_overdue_checkout(self, reservation: Reservation, event: WorkflowEvent) -> bool:
        if not isinstance(event, ScheduledCheckEvent) or event.check != ScheduledCheck.OVERDUE_CHECKOUTS:
            return False
        now = event.now or self._clock.now()
        return (
            reservation.status == ReservationStatus.CHECKED_IN
            and now - reservation.check_out > self._policy.overdue_checkout_after
        )

    def _amendments_settled(self, reservation: Reservation, event: WorkflowEvent) -> bool:
        return (
            isinstance(event, AmendmentResolvedEvent)
            and reservation.status == ReservationStatus.MODIFIED
            and not reservation.amendment_flags.has_pending
            and any(a.is_approved for a in reservation.amendments)
            and (not reservation.is_on_hold or reservation.payment_status == PaymentStatus.PAID)
        )

    def _needs_channel_sync(self, reservation: Reservation, event: WorkflowEvent) -> bool:
        return (
            isinstance(event, StatusChangeEvent)
            and not reservation.is_direct
            and event.new_status in SYNCED_STATUSES
        )

    # --- Acciones ---

    async def _confirm_after_payment(self, reservation: Reservation, event: WorkflowEvent) -> str:
        await self._reservations.transition(
            reservation.id,
            ReservationStatus.CONFIRMED,
            StatusChangeContext.system("Payment received, auto-confirming reservation"),
        )
        return "confirmed"

    async def _release_expired_hold(self, reservation: Reservation, event: WorkflowEvent) -> str:
        assert isinstance(event, ScheduledCheckEvent)
        await self._reservations.transition(
            reservation.id,
            ReservationStatus.CANCELLED,
            StatusChangeContext.system("expired hold"),
            now=event.now,
        )
        return "cancelled"

    async def _mark_no_show(self, reservation: Reservation, event: WorkflowEvent) -> str:
        assert isinstance(event, ScheduledCheckEvent)
        await self._reservations.transition(
            reservation.id,
            ReservationStatus.NO_SHOW,
            StatusChangeContext.system("Guest did not arrive within the no-show window"),
            now=event.now,
        )
        return "no_show"

    async def _reconfirm_after_amendments(self, reservation: Reservation, event: WorkflowEvent) -> str:
        await self._reservations.transition(
            reservation.id,
            ReservationStatus.CONFIRMED,
            StatusChangeContext.system("All amendments processed, booking reconfirmed", bypass_amendment_check=True),
        )
        return "confirmed"

    async def _enqueue_channel_sync(self, reservation: Reservation, event: WorkflowEvent) -> str:
        assert isinstance(event, StatusChangeEvent)
        now = self._clock.now()
        await self._reservations.mark_needs_sync(reservation.id)
        if event.new_status == ReservationStatus.CANCELLED:
            dropped = await self._queue.drop_pending(reservation.id, reservation.channel, CANCELLATION_PRIORITY, now)
            if dropped:
                logger.info(
                    "Cancelación desplaza envíos pendientes",
                    extra={"reservation_id": reservation.id, "dropped": dropped},
                )
        item = await self._queue.enqueue(
            SyncQueueItem.for_status(
                reservation_id=reservation.id,
                channel=reservation.channel,
                target_status=event.new_status,
                available_at=now + self._schedule.sync_delay,
                max_attempts=self._schedule.sync_max_attempts,
            )
        )
        return f"sync_enqueued:{item.id}"

    async def _send_notifications(self, reservation: Reservation, event: WorkflowEvent) -> str:
        assert isinstance(event, StatusChangeEvent)
        ids = {"reservation_id": reservation.id, "booking_number": reservation.booking_number}
        old_status = event.old_status.value if event.old_status else None
        intents: list[Intent] = []

        template = EMAIL_TEMPLATES.get(event.new_status)
        if template and reservation.guest_info.email:
            name, subject = template
            intents.append(
                StatusChangeEmail(
                    **ids,
                    recipient=reservation.guest_info.email,
                    template=name,
                    subject=f"{subject} - {reservation.booking_number}",
                    old_status=old_status,
                    new_status=event.new_status.value,
                    reason=event.reason,
                )
            )
        intents.append(
            StaffBroadcast(
                **ids,
                event="reservation_status_changed",
                payload={
                    "hotel_id": reservation.hotel_id,
                    "old_status": old_status,
                    "new_status": event.new_status.value,
                    "reason": event.reason,
                    "automatic": event.automatic,
                },
            )
        )
        delivered = await self._dispatcher.dispatch(intents)
        return f"notifications:{delivered}"

    async def _alert_overdue_checkout(self, reservation: Reservation, event: WorkflowEvent) -> str:
        assert isinstance(event, ScheduledCheckEvent)
        now = event.now or self._clock.now()
        hours = (now - reservation.check_out).total_seconds() / 3600
        await self._dispatcher.dispatch(
            [
                OverdueAlert(
                    reservation_id=reservation.id,
                    booking_number=reservation.booking_number,
                    expected_check_out=reservation.check_out.isoformat(),
                    hours_overdue=round(hours, 2),
                )
            ]
        )
        return "overdue_alert"
