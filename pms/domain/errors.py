"""Excepciones de dominio para el núcleo de gestión hotelera."""


class DomainError(Exception):
    """Clase base para todos los errores de dominio."""

    def __init__(self, message: str, code: str | None = None):
        self.message = message
        self.code = code or self.__class__.__name__
        super().__init__(self.message)


# === Errores de Reservación ===


class ReservationNotFoundError(DomainError):
    """La reservación no existe."""

    def __init__(self, reference: str):
        super().__init__(
            message=f"Reservación no encontrada: {reference}",
            code="RESERVATION_NOT_FOUND",
        )
        self.reference = reference


class ReservationAlreadyExistsError(DomainError):
    """Ya existe una reservación con el mismo identificador único."""

    def __init__(self, field: str, value: str):
        super().__init__(
            message=f"Ya existe una reservación con {field}: {value}",
            code="RESERVATION_ALREADY_EXISTS",
        )
        self.field = field
        self.value = value


class InvalidReservationDataError(DomainError):
    """Los datos de la reservación violan un invariante del agregado."""

    def __init__(self, field: str, message: str):
        super().__init__(
            message=f"Dato inválido en '{field}': {message}",
            code="INVALID_RESERVATION_DATA",
        )
        self.field = field


class InvalidTransitionError(DomainError):
    """El par (origen, destino) no está en la tabla de transiciones."""

    def __init__(self, from_status: str, to_status: str):
        super().__init__(
            message=f"Transición no permitida: '{from_status}' -> '{to_status}'",
            code="INVALID_TRANSITION",
        )
        self.from_status = from_status
        self.to_status = to_status


class PolicyViolationError(DomainError):
    """Una regla de negocio impide la operación."""

    def __init__(self, policy: str, message: str):
        super().__init__(
            message=f"Política '{policy}' violada: {message}",
            code="POLICY_VIOLATION",
        )
        self.policy = policy


class ConflictingVersionError(DomainError):
    """Conflicto de concurrencia optimista (CAS por versión)."""

    def __init__(self, entity: str, key: str, expected_version: int | None):
        super().__init__(
            message=f"Conflicto de versión en {entity} {key}: versión esperada {expected_version}",
            code="CONFLICTING_VERSION",
        )
        self.entity = entity
        self.key = key
        self.expected_version = expected_version


# === Errores de Inventario ===


class InsufficientInventoryError(DomainError):
    """No hay habitaciones disponibles en el canal para la fecha."""

    def __init__(self, room_type_id: str, day: str, channel: str, requested: int, reason: str | None = None):
        detail = f" ({reason})" if reason else ""
        super().__init__(
            message=f"Inventario insuficiente para {room_type_id} el {day} en canal '{channel}': "
            f"solicitadas {requested}{detail}",
            code="INSUFFICIENT_INVENTORY",
        )
        self.room_type_id = room_type_id
        self.day = day
        self.channel = channel
        self.requested = requested


class InvalidAllocationError(DomainError):
    """La asignación de canal rompe los invariantes del día de inventario."""

    def __init__(self, message: str):
        super().__init__(message=message, code="INVALID_ALLOCATION")


class AllotmentNotFoundError(DomainError):
    """No existe configuración de allotment para el hotel y tipo de habitación."""

    def __init__(self, hotel_id: str, room_type_id: str):
        super().__init__(
            message=f"Allotment no configurado para hotel {hotel_id}, habitación {room_type_id}",
            code="ALLOTMENT_NOT_FOUND",
        )
        self.hotel_id = hotel_id
        self.room_type_id = room_type_id


class AllotmentAlreadyExistsError(DomainError):
    """Ya existe un allotment para el hotel y tipo de habitación."""

    def __init__(self, hotel_id: str, room_type_id: str):
        super().__init__(
            message=f"Ya existe un allotment para hotel {hotel_id}, habitación {room_type_id}",
            code="ALLOTMENT_ALREADY_EXISTS",
        )
        self.hotel_id = hotel_id
        self.room_type_id = room_type_id


class AllocationRuleNotFoundError(DomainError):
    """La regla de asignación no existe en el allotment."""

    def __init__(self, rule_id: str):
        super().__init__(
            message=f"Regla de asignación no encontrada: {rule_id}",
            code="ALLOCATION_RULE_NOT_FOUND",
        )
        self.rule_id = rule_id


# === Errores de Enmiendas ===


class AmendmentNotFoundError(DomainError):
    """La enmienda no existe en la reservación."""

    def __init__(self, amendment_id: str):
        super().__init__(
            message=f"Enmienda no encontrada: {amendment_id}",
            code="AMENDMENT_NOT_FOUND",
        )
        self.amendment_id = amendment_id


class AmendmentAlreadyResolvedError(DomainError):
    """La enmienda ya fue resuelta."""

    def __init__(self, amendment_id: str, current_status: str):
        super().__init__(
            message=f"La enmienda {amendment_id} ya fue resuelta con estado: {current_status}",
            code="AMENDMENT_ALREADY_RESOLVED",
        )
        self.amendment_id = amendment_id
        self.current_status = current_status


class AmendmentNotApplicableError(DomainError):
    """La reservación no admite enmiendas en su estado actual."""

    def __init__(self, reservation_id: str, status: str, amendment_id: str | None = None):
        super().__init__(
            message=f"La reservación {reservation_id} en estado '{status}' no admite enmiendas",
            code="AMENDMENT_NOT_APPLICABLE",
        )
        self.reservation_id = reservation_id
        self.status = status
        self.amendment_id = amendment_id


class AmendmentConflictError(DomainError):
    """La enmienda choca con otra enmienda pendiente."""

    def __init__(self, conflicts: list[str]):
        super().__init__(
            message="Conflicto con enmiendas pendientes: " + "; ".join(conflicts),
            code="AMENDMENT_CONFLICT",
        )
        self.conflicts = conflicts
