"""Entidad Reservation - Agregado raíz del dominio hotelero."""

from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from pms.domain.value_objects.actor import Actor, ActorSource
from pms.domain.value_objects.stay_range import StayRange


class ReservationStatus(str, Enum):
    """Estados posibles de una reservación."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    MODIFIED = "modified"
    CHECKED_IN = "checked_in"
    CHECKED_OUT = "checked_out"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


TERMINAL_STATUSES = frozenset({ReservationStatus.CHECKED_OUT, ReservationStatus.CANCELLED})

# Estados en los que un hold nunca confirmado puede vencer
HOLD_STATUSES = frozenset({ReservationStatus.PENDING, ReservationStatus.MODIFIED})


class PaymentStatus(str, Enum):
    """Estados de pago de una reservación."""

    PENDING = "pending"
    PAID = "paid"
    REFUNDED = "refunded"
    FAILED = "failed"


class AmendmentType(str, Enum):
    """Tipos de enmienda que puede solicitar un canal."""

    BOOKING_MODIFICATION = "booking_modification"
    DATES_CHANGE = "dates_change"
    RATE_CHANGE = "rate_change"
    ROOM_CHANGE = "room_change"
    CANCELLATION_REQUEST = "cancellation_request"
    SPECIAL_REQUEST_CHANGE = "special_request_change"
    GUEST_DETAILS_CHANGE = "guest_details_change"


class AmendmentStatus(str, Enum):
    """Estados del ciclo de vida de una enmienda."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    PARTIALLY_APPROVED = "partially_approved"


class ChannelSyncOutcome(str, Enum):
    """Resultado del último intento de sincronizar un canal."""

    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


# Canal de venta según el origen de la reservación
SOURCE_CHANNELS = {
    "ota-booking": "booking_com",
    "ota-expedia": "expedia",
    "ota-airbnb": "airbnb",
}

DIRECT_CHANNEL = "direct"


def channel_for_source(source: str) -> str:
    """Deriva el canal de inventario a partir del origen."""
    return SOURCE_CHANNELS.get(source, source)


@dataclass
class RoomLine:
    """Habitación reservada dentro de la reservación."""

    room_type: str
    rate: Decimal = Decimal("0")
    room_id: str | None = None


@dataclass
class GuestInfo:
    """Datos de contacto del huésped."""

    name: str | None = None
    email: str | None = None
    phone: str | None = None
    vip: bool = False


@dataclass
class PaymentEntry:
    """Pago aplicado a la reservación."""

    method: str
    amount: Decimal
    paid_at: datetime
    reference: str | None = None


@dataclass
class PaymentDetails:
    """Acumulado de pagos."""

    methods: list[PaymentEntry] = field(default_factory=list)
    total_paid: Decimal = Decimal("0")


@dataclass
class StatusHistoryEntry:
    """Entrada del historial de estados (append-only)."""

    status: ReservationStatus
    timestamp: datetime
    actor: Actor
    reason: str
    automatic: bool = False


@dataclass
class LastStatusChange:
    """Resumen del último cambio de estado."""

    from_status: ReservationStatus | None
    to_status: ReservationStatus
    timestamp: datetime
    reason: str


@dataclass
class AmendmentRecord:
    """Solicitud de cambio recibida de un canal, embebida en la reservación."""

    amendment_id: str
    amendment_type: AmendmentType
    requested_at: datetime
    requested_changes: dict[str, Any] = field(default_factory=dict)
    original_data: dict[str, Any] = field(default_factory=dict)
    external_id: str | None = None
    requested_by_channel: str | None = None
    status: AmendmentStatus = AmendmentStatus.PENDING
    approved_changes: dict[str, Any] | None = None
    approver: Actor | None = None
    resolved_at: datetime | None = None
    rejection_reason: str | None = None
    requires_manual_approval: bool = False
    flag_reason: str | None = None
    notes: str | None = None
    review_priority: int | None = None

    @property
    def is_pending(self) -> bool:
        return self.status == AmendmentStatus.PENDING

    @property
    def is_approved(self) -> bool:
        return self.status in (AmendmentStatus.APPROVED, AmendmentStatus.PARTIALLY_APPROVED)


@dataclass
class AmendmentFlags:
    """Banderas derivadas de las enmiendas."""

    has_pending: bool = False
    amendment_count: int = 0
    last_amendment_date: datetime | None = None
    requires_reconfirmation: bool = False


@dataclass
class ChannelSyncState:
    """Estado de sincronización con un canal externo."""

    status: ChannelSyncOutcome = ChannelSyncOutcome.PENDING
    target_status: ReservationStatus | None = None
    synced_status: ReservationStatus | None = None
    synced_at: datetime | None = None
    error: str | None = None


@dataclass
class SyncStatus:
    """Estado de sincronización con canales externos."""

    needs_sync: bool = False
    channels: dict[str, ChannelSyncState] = field(default_factory=dict)


@dataclass
class Reservation:
    """
    Entidad principal del dominio - Agregado Raíz.

    Representa una reservación de habitaciones de hotel con su historial de
    estados, enmiendas de canales, pagos y estado de sincronización.
    """

    # Identificadores
    id: str
    booking_number: str
    hotel_id: str
    guest_id: str

    # Estancia
    check_in: datetime
    check_out: datetime
    nights: int
    rooms: list[RoomLine]

    # Importes
    total_amount: Decimal
    currency: str = "USD"
    payment_status: PaymentStatus = PaymentStatus.PENDING
    payment_details: PaymentDetails = field(default_factory=PaymentDetails)

    # Estado
    status: ReservationStatus = ReservationStatus.PENDING
    status_history: list[StatusHistoryEntry] = field(default_factory=list)
    last_status_change: LastStatusChange | None = None
    reserved_until: datetime | None = None

    # Origen y canal
    source: str = DIRECT_CHANNEL
    channel: str = DIRECT_CHANNEL
    channel_booking_id: str | None = None
    channel_amendment_refs: list[str] = field(default_factory=list)
    raw_payload: dict[str, Any] | None = None

    # Referencias opcionales
    corporate_party_id: str | None = None
    group_booking_id: str | None = None

    # Huésped
    guest_info: GuestInfo = field(default_factory=GuestInfo)
    special_requests: str | None = None

    # Enmiendas
    amendments: list[AmendmentRecord] = field(default_factory=list)
    amendment_flags: AmendmentFlags = field(default_factory=AmendmentFlags)

    # Sincronización
    sync_status: SyncStatus = field(default_factory=SyncStatus)

    # Marcas operativas
    actual_check_in: datetime | None = None
    actual_check_out: datetime | None = None
    no_show_recorded_at: datetime | None = None
    inventory_committed: bool = False

    # Control de versiones (optimistic locking)
    version: int = 0

    # Timestamps
    created_at: datetime | None = None
    updated_at: datetime | None = None

    # === Propiedades ===

    @property
    def stay(self) -> StayRange:
        return StayRange(check_in=self.check_in, check_out=self.check_out)

    @property
    def is_corporate(self) -> bool:
        return bool(self.corporate_party_id)

    @property
    def is_direct(self) -> bool:
        return self.channel == DIRECT_CHANNEL

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_on_hold(self) -> bool:
        """Nunca confirmada y con reservedUntil vigente o vencido."""
        return self.status in HOLD_STATUSES and self.reserved_until is not None

    @property
    def pending_amendments(self) -> list[AmendmentRecord]:
        return [a for a in self.amendments if a.is_pending]

    @property
    def remaining_balance(self) -> Decimal:
        return self.total_amount - self.payment_details.total_paid

    def stay_dates(self) -> list[date]:
        return self.stay.dates()

    def inventory_nights(self) -> Counter:
        """
        Habitaciones-noche que ocupa la reservación.

        Returns:
            Counter con llave (room_type, fecha) y número de habitaciones.
        """
        dates = self.stay_dates()
        return Counter((line.room_type, day) for line in self.rooms for day in dates)

    def find_amendment(self, amendment_id: str) -> AmendmentRecord | None:
        for amendment in self.amendments:
            if amendment.amendment_id == amendment_id:
                return amendment
        return None

    def find_amendment_by_external_id(self, external_id: str) -> AmendmentRecord | None:
        for amendment in self.amendments:
            if amendment.external_id == external_id:
                return amendment
        return None

    def sync_channels(self) -> list[str]:
        """Canales externos que deben reflejar el estado de la reservación."""
        return [] if self.is_direct else [self.channel]

    def channels_current(self) -> bool:
        """True si todos los canales externos confirmaron el estado actual."""
        for channel in self.sync_channels():
            state = self.sync_status.channels.get(channel)
            if state is None or state.status != ChannelSyncOutcome.SUCCESS:
                return False
            if state.synced_status != self.status:
                return False
        return True

    # === Métodos de negocio ===

    def change_stay(self, check_in: datetime, check_out: datetime) -> None:
        """Actualiza fechas y recalcula noches (valida check_out > check_in)."""
        stay = StayRange(check_in=check_in, check_out=check_out)
        self.check_in = stay.check_in
        self.check_out = stay.check_out
        self.nights = stay.nights

    def record_payment(self, entry: PaymentEntry) -> None:
        """Agrega un pago y recalcula el estado de pago."""
        self.payment_details.methods.append(entry)
        self.payment_details.total_paid += entry.amount
        self.recalculate_payment_status()

    def recalculate_payment_status(self) -> None:
        """paid si y solo si total pagado == total de la reservación."""
        if self.payment_details.total_paid == self.total_amount:
            self.payment_status = PaymentStatus.PAID
        else:
            self.payment_status = PaymentStatus.PENDING

    def refresh_amendment_flags(self) -> None:
        self.amendment_flags.has_pending = any(a.is_pending for a in self.amendments)
        self.amendment_flags.amendment_count = len(self.amendments)
        if self.amendments:
            self.amendment_flags.last_amendment_date = max(a.requested_at for a in self.amendments)

    def request_channel_sync(self) -> None:
        """Marca los canales externos como pendientes de recibir el estado actual."""
        channels = self.sync_channels()
        if not channels:
            return
        self.sync_status.needs_sync = True
        for channel in channels:
            state = self.sync_status.channels.setdefault(channel, ChannelSyncState())
            state.status = ChannelSyncOutcome.PENDING
            state.target_status = self.status
