"""
Ledger de inventario por (hotel, tipo de habitación, fecha) y canal.

Las mutaciones sobre una misma llave se serializan con un lock por llave y
se guardan con CAS por versión, de modo que los invariantes aritméticos del
día se mantienen aun con escritores concurrentes.
"""

import copy
import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable

from pms.application.interfaces.allotment_repo import AllotmentRepo
from pms.application.interfaces.clock import Clock
from pms.application.interfaces.inventory_repo import InventoryRepo
from pms.application.services.concurrency import KeyedLocks, retry_on_conflict
from pms.domain.entities.allotment import AllotmentConfig
from pms.domain.entities.inventory import ChannelBucket, InventoryDay, InventoryKey
from pms.domain.errors import (
    AllotmentNotFoundError,
    InsufficientInventoryError,
    PolicyViolationError,
)

logger = logging.getLogger(__name__)

DayMutation = Callable[[InventoryDay, AllotmentConfig, datetime], Any]


@dataclass(frozen=True)
class StayRequest:
    """
    Habitaciones-noche a vender o liberar para una reservación.

    nights: Counter con llave (room_type, fecha) y número de habitaciones.
    stay_nights/arrival/departure activan la validación de restricciones del canal.
    """

    hotel_id: str
    channel: str
    nights: Counter = field(default_factory=Counter)
    stay_nights: int | None = None
    arrival: date | None = None
    departure: date | None = None

    def keys(self) -> list[InventoryKey]:
        return sorted(InventoryKey(self.hotel_id, room_type, day) for room_type, day in self.nights)


class InventoryLedger:
    """Operaciones atómicas sobre días de inventario."""

    def __init__(
        self,
        inventory_repo: InventoryRepo,
        allotment_repo: AllotmentRepo,
        clock: Clock,
        locks: KeyedLocks | None = None,
        conflict_attempts: int = 3,
    ) -> None:
        self._inventory = inventory_repo
        self._allotments = allotment_repo
        self._clock = clock
        self._locks = locks or KeyedLocks()
        self._conflict_attempts = conflict_attempts

    # === Lectura ===

    async def get_day(self, hotel_id: str, room_type_id: str, day: date) -> InventoryDay | None:
        return await self._inventory.get(InventoryKey(hotel_id, room_type_id, day))

    async def list_days(self, hotel_id: str, room_type_id: str, start: date, end: date) -> list[InventoryDay]:
        return await self._inventory.list_range(hotel_id, room_type_id, start, end)

    # === Operaciones por día ===

    async def ensure_day(self, hotel_id: str, room_type_id: str, day: date) -> InventoryDay:
        """Materializa el día desde la configuración del allotment si no existe."""
        key = InventoryKey(hotel_id, room_type_id, day)
        existing = await self._inventory.get(key)
        if existing is not None:
            return existing
        saved, _ = await self._mutate(key, lambda d, c, now: None)
        return saved

    async def allocate(self, hotel_id: str, room_type_id: str, day: date, channel: str, quantity: int) -> InventoryDay:
        key = InventoryKey(hotel_id, room_type_id, day)
        saved, _ = await self._mutate(key, lambda d, c, now: d.allocate(channel, quantity, now))
        return saved

    async def apply_allocations(
        self, hotel_id: str, room_type_id: str, day: date, allocations: dict[str, int]
    ) -> InventoryDay:
        """Aplica los cupos de una regla a un día (todo o nada)."""
        key = InventoryKey(hotel_id, room_type_id, day)
        saved, _ = await self._mutate(key, lambda d, c, now: d.apply_allocations(allocations, now))
        return saved

    async def book(self, hotel_id: str, room_type_id: str, day: date, channel: str, rooms: int) -> InventoryDay:
        key = InventoryKey(hotel_id, room_type_id, day)
        saved, _ = await self._mutate(key, self._book_mutation(channel, rooms))
        return saved

    async def release(self, hotel_id: str, room_type_id: str, day: date, channel: str, rooms: int) -> InventoryDay:
        key = InventoryKey(hotel_id, room_type_id, day)
        saved, _ = await self._mutate(key, lambda d, c, now: d.release(channel, rooms, now))
        return saved

    async def block(self, hotel_id: str, room_type_id: str, day: date, channel: str, rooms: int) -> InventoryDay:
        key = InventoryKey(hotel_id, room_type_id, day)
        saved, _ = await self._mutate(key, lambda d, c, now: d.block(channel, rooms, now))
        return saved

    async def unblock(self, hotel_id: str, room_type_id: str, day: date, channel: str, rooms: int) -> InventoryDay:
        key = InventoryKey(hotel_id, room_type_id, day)
        saved, _ = await self._mutate(key, lambda d, c, now: d.unblock(channel, rooms, now))
        return saved

    async def update_rate(
        self, hotel_id: str, room_type_id: str, day: date, channel: str, rate: Decimal
    ) -> InventoryDay:
        key = InventoryKey(hotel_id, room_type_id, day)
        saved, _ = await self._mutate(key, lambda d, c, now: d.update_rate(channel, rate, now))
        return saved

    # === Operaciones por estancia ===

    async def check_stay(self, request: StayRequest) -> None:
        """
        Verifica que la estancia podría venderse ahora, sin tomar cupo.

        Aplica las mismas reglas que `book_stay` sobre una copia de cada día.

        Raises:
            InsufficientInventoryError, PolicyViolationError, AllotmentNotFoundError.
        """
        if not request.nights:
            return
        configs: dict[str, AllotmentConfig] = {}
        for room_type in sorted({room_type for room_type, _ in request.nights}):
            configs[room_type] = await self._config(request.hotel_id, room_type)
            self._check_restrictions(configs[room_type], request)

        now = self._clock.now()
        for key in request.keys():
            config = configs[key.room_type_id]
            current = await self._inventory.get(key)
            day = copy.deepcopy(current) if current is not None else self._materialize(key, config, now)
            self._book_mutation(request.channel, request.nights[(key.room_type_id, key.day)])(day, config, now)

    async def book_stay(self, request: StayRequest) -> None:
        """
        Vende todas las noches de una estancia o ninguna.

        Las llaves se bloquean en orden; si una noche falla, las ya vendidas
        se revierten en orden inverso y se propaga el error.

        Raises:
            InsufficientInventoryError: Si alguna noche no tiene cupo.
            PolicyViolationError: Si el canal restringe la estancia.
            AllotmentNotFoundError: Si el tipo de habitación no está configurado.
        """
        if not request.nights:
            return
        for room_type in sorted({room_type for room_type, _ in request.nights}):
            config = await self._config(request.hotel_id, room_type)
            self._check_restrictions(config, request)

        keys = request.keys()
        booked: list[tuple[InventoryKey, int, str]] = []
        async with self._locks.hold_many(keys):
            try:
                for key in keys:
                    rooms = request.nights[(key.room_type_id, key.day)]
                    _, kind = await self._mutate_with_retry(key, self._book_mutation(request.channel, rooms))
                    booked.append((key, rooms, kind))
            except Exception:
                await self._revert(request.channel, booked)
                raise

        logger.info(
            "Estancia vendida",
            extra={"hotel_id": request.hotel_id, "channel": request.channel, "room_nights": sum(request.nights.values())},
        )

    async def release_stay(self, request: StayRequest) -> None:
        """Libera todas las noches de una estancia."""
        if not request.nights:
            return
        keys = request.keys()
        async with self._locks.hold_many(keys):
            for key in keys:
                rooms = request.nights[(key.room_type_id, key.day)]
                await self._mutate_with_retry(key, lambda d, c, now, rooms=rooms: d.release(request.channel, rooms, now))

        logger.info(
            "Estancia liberada",
            extra={"hotel_id": request.hotel_id, "channel": request.channel, "room_nights": sum(request.nights.values())},
        )

    # === Internos ===

    def _book_mutation(self, channel: str, rooms: int) -> DayMutation:
        def mutation(day: InventoryDay, config: AllotmentConfig, now: datetime) -> str:
            channel_config = config.channel(channel)
            if channel_config is None or not channel_config.is_active:
                raise InsufficientInventoryError(
                    day.room_type_id, day.day.isoformat(), channel, rooms, reason="canal no habilitado"
                )
            if channel_config.restrictions.stop_sell:
                raise InsufficientInventoryError(
                    day.room_type_id, day.day.isoformat(), channel, rooms, reason="stop sell"
                )
            settings = config.default_settings
            return day.book(
                channel,
                rooms,
                now,
                overbooking_allowed=settings.overbooking_allowed,
                overbooking_limit=settings.overbooking_limit,
            )

        return mutation

    async def _revert(self, channel: str, booked: list[tuple[InventoryKey, int, str]]) -> None:
        for key, rooms, kind in reversed(booked):
            try:
                await self._mutate_with_retry(
                    key, lambda d, c, now, rooms=rooms, kind=kind: d.revert_booking(channel, rooms, kind, now)
                )
            except Exception:
                logger.exception(
                    "No se pudo revertir noche vendida",
                    extra={"key": str(key), "channel": channel, "rooms": rooms},
                )

    def _check_restrictions(self, config: AllotmentConfig, request: StayRequest) -> None:
        channel_config = config.channel(request.channel)
        if channel_config is None:
            return
        restrictions = channel_config.restrictions
        if request.stay_nights is not None:
            if request.stay_nights < restrictions.minimum_stay:
                raise PolicyViolationError(
                    "minimumStay", f"el canal '{request.channel}' exige al menos {restrictions.minimum_stay} noches"
                )
            if request.stay_nights > restrictions.maximum_stay:
                raise PolicyViolationError(
                    "maximumStay", f"el canal '{request.channel}' permite hasta {restrictions.maximum_stay} noches"
                )
        if request.arrival is not None and restrictions.closed_to_arrival:
            raise PolicyViolationError("closedToArrival", f"el canal '{request.channel}' está cerrado a llegadas")
        if request.departure is not None and restrictions.closed_to_departure:
            raise PolicyViolationError("closedToDeparture", f"el canal '{request.channel}' está cerrado a salidas")

    async def _config(self, hotel_id: str, room_type_id: str) -> AllotmentConfig:
        config = await self._allotments.get(hotel_id, room_type_id)
        if config is None:
            raise AllotmentNotFoundError(hotel_id, room_type_id)
        return config

    def _materialize(self, key: InventoryKey, config: AllotmentConfig, now: datetime) -> InventoryDay:
        return InventoryDay(
            hotel_id=key.hotel_id,
            room_type_id=key.room_type_id,
            day=key.day,
            total_inventory=config.default_settings.total_inventory,
            channels={c.channel_id: ChannelBucket(last_updated=now) for c in config.active_channels},
            created_at=now,
            updated_at=now,
        )

    async def _mutate(self, key: InventoryKey, mutation: DayMutation) -> tuple[InventoryDay, Any]:
        async with self._locks.hold(key):
            return await self._mutate_with_retry(key, mutation)

    async def _mutate_with_retry(self, key: InventoryKey, mutation: DayMutation) -> tuple[InventoryDay, Any]:
        return await retry_on_conflict(lambda: self._mutate_once(key, mutation), self._conflict_attempts)

    async def _mutate_once(self, key: InventoryKey, mutation: DayMutation) -> tuple[InventoryDay, Any]:
        config = await self._config(key.hotel_id, key.room_type_id)
        now = self._clock.now()
        current = await self._inventory.get(key)
        if current is None:
            day = self._materialize(key, config, now)
            expected_version = None
        else:
            day = copy.deepcopy(current)
            expected_version = current.version
        result = mutation(day, config, now)
        saved = await self._inventory.save(day, expected_version)
        return saved, result
