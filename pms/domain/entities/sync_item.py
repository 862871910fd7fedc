"""Entidad SyncQueueItem - envío pendiente de estado a un canal externo."""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from pms.domain.entities.reservation import ReservationStatus

CANCELLATION_PRIORITY = 10
DEFAULT_PRIORITY = 5


class SyncItemStatus(str, Enum):
    """Estados de un elemento en la cola de sincronización."""

    NEW = "NEW"
    PROCESSING = "PROCESSING"
    RETRY = "RETRY"
    DONE = "DONE"
    FAILED = "FAILED"
    SUPERSEDED = "SUPERSEDED"


@dataclass
class SyncQueueItem:
    """
    Solicitud de empujar el estado de una reservación a un canal.

    Se procesa en orden de prioridad descendente y luego por disponibilidad.
    """

    reservation_id: str
    channel: str
    target_status: ReservationStatus
    available_at: datetime
    priority: int = DEFAULT_PRIORITY
    id: int | None = None
    status: SyncItemStatus = SyncItemStatus.NEW
    attempts: int = 0
    max_attempts: int = 3
    locked_by: str | None = None
    last_error: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    # === Propiedades ===

    @property
    def is_final(self) -> bool:
        return self.status in (SyncItemStatus.DONE, SyncItemStatus.FAILED, SyncItemStatus.SUPERSEDED)

    @property
    def can_retry(self) -> bool:
        return self.attempts < self.max_attempts

    def is_ready(self, now: datetime) -> bool:
        return self.status in (SyncItemStatus.NEW, SyncItemStatus.RETRY) and self.available_at <= now

    def sort_key(self) -> tuple:
        return (-self.priority, self.available_at, self.id or 0)

    # === Métodos de negocio ===

    def claim(self, worker_id: str, now: datetime) -> None:
        self.status = SyncItemStatus.PROCESSING
        self.locked_by = worker_id
        self.updated_at = now

    def mark_done(self, now: datetime) -> None:
        self.status = SyncItemStatus.DONE
        self.locked_by = None
        self.updated_at = now

    def mark_superseded(self, now: datetime) -> None:
        self.status = SyncItemStatus.SUPERSEDED
        self.locked_by = None
        self.updated_at = now

    def mark_retry(self, error: str, now: datetime, base_backoff_seconds: float) -> None:
        """
        Registra un fallo transitorio con backoff exponencial.

        Con base de 5s: 5s, 10s, ... Al agotar los intentos queda FAILED.
        """
        self.attempts += 1
        self.last_error = error
        self.locked_by = None
        self.updated_at = now
        if not self.can_retry:
            self.status = SyncItemStatus.FAILED
            return
        self.status = SyncItemStatus.RETRY
        self.available_at = now + timedelta(seconds=base_backoff_seconds * (2 ** (self.attempts - 1)))

    def mark_failed(self, error: str, now: datetime) -> None:
        self.attempts += 1
        self.status = SyncItemStatus.FAILED
        self.last_error = error
        self.locked_by = None
        self.updated_at = now

    @classmethod
    def for_status(
        cls,
        reservation_id: str,
        channel: str,
        target_status: ReservationStatus,
        available_at: datetime,
        max_attempts: int = 3,
    ) -> "SyncQueueItem":
        """Factory: las cancelaciones tienen prioridad sobre cualquier otro estado."""
        priority = CANCELLATION_PRIORITY if target_status == ReservationStatus.CANCELLED else DEFAULT_PRIORITY
        return cls(
            reservation_id=reservation_id,
            channel=channel,
            target_status=target_status,
            available_at=available_at,
            priority=priority,
            max_attempts=max_attempts,
            created_at=available_at,
        )
