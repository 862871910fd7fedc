"""Entidad InventoryDay - inventario por (hotel, tipo de habitación, fecha) y canal."""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import NamedTuple

from pms.domain.errors import InsufficientInventoryError, InvalidAllocationError


class InventoryKey(NamedTuple):
    """Llave natural de un día de inventario."""

    hotel_id: str
    room_type_id: str
    day: date


@dataclass
class ChannelBucket:
    """
    Cupo de un canal para un día.

    Invariantes:
        available = allocated - sold - blocked >= 0
        sold + blocked <= allocated + overbooking
    """

    allocated: int = 0
    sold: int = 0
    blocked: int = 0
    overbooking: int = 0
    rate: Decimal | None = None
    last_updated: datetime | None = None

    @property
    def available(self) -> int:
        return self.allocated - self.sold - self.blocked

    @property
    def committed(self) -> int:
        """Habitaciones comprometidas que limitan cuánto puede reducirse el cupo."""
        return self.sold + self.blocked

    @property
    def utilization(self) -> float:
        """Porcentaje vendido sobre lo asignado (0 si no hay cupo)."""
        if self.allocated <= 0:
            return 0.0
        return self.sold / self.allocated * 100


@dataclass
class InventoryDay:
    """
    Inventario de un tipo de habitación para una fecha.

    La suma de cupos asignados nunca excede el inventario físico.
    """

    hotel_id: str
    room_type_id: str
    day: date
    total_inventory: int
    channels: dict[str, ChannelBucket] = field(default_factory=dict)
    version: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def key(self) -> InventoryKey:
        return InventoryKey(self.hotel_id, self.room_type_id, self.day)

    @property
    def total_allocated(self) -> int:
        return sum(bucket.allocated for bucket in self.channels.values())

    @property
    def total_sold(self) -> int:
        return sum(bucket.sold for bucket in self.channels.values())

    @property
    def free_stock(self) -> int:
        """Inventario físico aún no asignado a ningún canal."""
        return self.total_inventory - self.total_allocated

    @property
    def occupancy_rate(self) -> float:
        if self.total_inventory <= 0:
            return 0.0
        return self.total_sold / self.total_inventory * 100

    def bucket(self, channel: str) -> ChannelBucket:
        """Retorna el cupo del canal, creándolo vacío si no existe."""
        if channel not in self.channels:
            self.channels[channel] = ChannelBucket()
        return self.channels[channel]

    def _touch(self, bucket: ChannelBucket, now: datetime) -> None:
        bucket.last_updated = now
        self.updated_at = now

    # === Operaciones ===

    def allocate(self, channel: str, quantity: int, now: datetime) -> None:
        """
        Fija el cupo de un canal.

        Raises:
            InvalidAllocationError: Si la suma de cupos excede el inventario
                o el nuevo cupo queda por debajo de lo comprometido.
        """
        if quantity < 0:
            raise InvalidAllocationError(f"El cupo no puede ser negativo: {quantity}")
        bucket = self.bucket(channel)
        others = self.total_allocated - bucket.allocated
        if others + quantity > self.total_inventory:
            raise InvalidAllocationError(
                f"Cupo {quantity} para '{channel}' excede el inventario {self.total_inventory} "
                f"del {self.day} (ya asignado a otros canales: {others})"
            )
        if quantity < bucket.committed:
            raise InvalidAllocationError(
                f"Cupo {quantity} para '{channel}' menor a lo comprometido ({bucket.committed}) el {self.day}"
            )
        bucket.allocated = quantity
        self._touch(bucket, now)

    def apply_allocations(self, allocations: dict[str, int], now: datetime) -> None:
        """
        Aplica varios cupos a la vez (todo o nada).

        Canales no listados conservan su cupo actual.
        """
        proposed = {name: bucket.allocated for name, bucket in self.channels.items()}
        proposed.update(allocations)
        if any(quantity < 0 for quantity in proposed.values()):
            raise InvalidAllocationError(f"Cupos negativos en {self.day}: {allocations}")
        if sum(proposed.values()) > self.total_inventory:
            raise InvalidAllocationError(
                f"Cupos {allocations} exceden el inventario {self.total_inventory} del {self.day}"
            )
        for channel, quantity in allocations.items():
            current = self.channels.get(channel)
            if current is not None and quantity < current.committed:
                raise InvalidAllocationError(
                    f"Cupo {quantity} para '{channel}' menor a lo comprometido ({current.committed}) el {self.day}"
                )
        for channel, quantity in allocations.items():
            bucket = self.bucket(channel)
            bucket.allocated = quantity
            self._touch(bucket, now)

    def book(
        self,
        channel: str,
        rooms: int,
        now: datetime,
        overbooking_allowed: bool = False,
        overbooking_limit: int = 0,
    ) -> str:
        """
        Vende habitaciones en el canal.

        Returns:
            "sold" si se tomó del cupo, "overbooking" si se usó sobreventa.

        Raises:
            InsufficientInventoryError: Si no hay cupo ni sobreventa disponible.
        """
        if rooms <= 0:
            raise InvalidAllocationError(f"Cantidad de habitaciones inválida: {rooms}")
        bucket = self.bucket(channel)
        if bucket.available >= rooms:
            bucket.sold += rooms
            self._touch(bucket, now)
            return "sold"
        if overbooking_allowed and bucket.overbooking + rooms <= overbooking_limit:
            bucket.overbooking += rooms
            self._touch(bucket, now)
            return "overbooking"
        raise InsufficientInventoryError(self.room_type_id, self.day.isoformat(), channel, rooms)

    def release(self, channel: str, rooms: int, now: datetime) -> None:
        """Libera habitaciones: primero de la sobreventa y luego de lo vendido."""
        if rooms <= 0:
            return
        bucket = self.bucket(channel)
        from_overbooking = min(bucket.overbooking, rooms)
        bucket.overbooking -= from_overbooking
        bucket.sold = max(0, bucket.sold - (rooms - from_overbooking))
        self._touch(bucket, now)

    def revert_booking(self, channel: str, rooms: int, kind: str, now: datetime) -> None:
        """Deshace una venta exacta devuelta por book() (compensación)."""
        bucket = self.bucket(channel)
        if kind == "overbooking":
            bucket.overbooking = max(0, bucket.overbooking - rooms)
        else:
            bucket.sold = max(0, bucket.sold - rooms)
        self._touch(bucket, now)

    def block(self, channel: str, rooms: int, now: datetime) -> None:
        """Bloquea habitaciones del cupo (mantenimiento, grupos)."""
        bucket = self.bucket(channel)
        if rooms <= 0 or bucket.available < rooms:
            raise InsufficientInventoryError(
                self.room_type_id, self.day.isoformat(), channel, rooms, reason="bloqueo"
            )
        bucket.blocked += rooms
        self._touch(bucket, now)

    def unblock(self, channel: str, rooms: int, now: datetime) -> None:
        bucket = self.bucket(channel)
        bucket.blocked = max(0, bucket.blocked - rooms)
        self._touch(bucket, now)

    def update_rate(self, channel: str, rate: Decimal, now: datetime) -> None:
        if rate < 0:
            raise InvalidAllocationError(f"Tarifa negativa para '{channel}': {rate}")
        bucket = self.bucket(channel)
        bucket.rate = rate
        self._touch(bucket, now)
