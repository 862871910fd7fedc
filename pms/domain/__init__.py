"""
Capa de Dominio - Núcleo de gestión hotelera.

Esta capa contiene la lógica de negocio pura, sin dependencias de frameworks.

Estructura:
- entities/: Entidades (Reservation, InventoryDay, AllotmentConfig, ...)
- value_objects/: Objetos de valor inmutables (StayRange, BookingNumber, ...)
- errors.py: Excepciones específicas del dominio
- policy.py: Parámetros de negocio (ventanas, holds, gracia)
- events.py: Eventos que disparan reglas de workflow
- state_machine.py: Máquina de estados de la reservación
"""

from pms.domain.entities import (
    AllotmentConfig,
    InventoryDay,
    Reservation,
    ReservationStatus,
    SyncQueueItem,
)
from pms.domain.errors import (
    AllocationRuleNotFoundError,
    AllotmentAlreadyExistsError,
    AllotmentNotFoundError,
    AmendmentAlreadyResolvedError,
    AmendmentConflictError,
    AmendmentNotApplicableError,
    AmendmentNotFoundError,
    ConflictingVersionError,
    DomainError,
    InsufficientInventoryError,
    InvalidAllocationError,
    InvalidReservationDataError,
    InvalidTransitionError,
    PolicyViolationError,
    ReservationAlreadyExistsError,
    ReservationNotFoundError,
)
from pms.domain.policy import ReservationPolicy
from pms.domain.state_machine import ReservationStateMachine
from pms.domain.value_objects import BookingNumber, StatusChangeContext, StayRange

__all__ = [
    # Entities
    "Reservation",
    "ReservationStatus",
    "InventoryDay",
    "AllotmentConfig",
    "SyncQueueItem",
    # Value Objects
    "StayRange",
    "BookingNumber",
    "StatusChangeContext",
    # Policy / State machine
    "ReservationPolicy",
    "ReservationStateMachine",
    # Errors
    "DomainError",
    "ReservationNotFoundError",
    "ReservationAlreadyExistsError",
    "InvalidReservationDataError",
    "InvalidTransitionError",
    "PolicyViolationError",
    "ConflictingVersionError",
    "InsufficientInventoryError",
    "InvalidAllocationError",
    "AllotmentNotFoundError",
    "AllotmentAlreadyExistsError",
    "AllocationRuleNotFoundError",
    "AmendmentNotFoundError",
    "AmendmentAlreadyResolvedError",
    "AmendmentNotApplicableError",
    "AmendmentConflictError",
]
