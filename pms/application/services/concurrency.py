"""
Utilidades de concurrencia para los servicios de aplicación.

Los agregados se guardan con CAS por versión; cuando otra tarea los modificó
primero, la operación completa se relee y se reintenta.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, Hashable, Iterable, TypeVar

from pms.domain.errors import ConflictingVersionError

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def retry_on_conflict(
    func: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    base_delay: float = 0.0,
) -> T:
    """
    Reintenta una operación si falla por conflicto de versión.

    Args:
        func: Función async que relee el agregado, lo modifica y lo guarda.
        max_attempts: Número máximo de intentos.
        base_delay: Espera base entre intentos (backoff exponencial).

    Raises:
        ConflictingVersionError: Si el conflicto persiste tras el último intento.
    """
    for attempt in range(max_attempts):
        try:
            return await func()
        except ConflictingVersionError as e:
            if attempt == max_attempts - 1:
                logger.error(
                    "Conflicto de versión persiste tras reintentos",
                    extra={"entity": e.entity, "key": e.key, "attempts": max_attempts},
                )
                raise
            logger.warning(
                "Conflicto de versión, reintentando",
                extra={"entity": e.entity, "key": e.key, "attempt": attempt + 1},
            )
            if base_delay:
                await asyncio.sleep(base_delay * (2**attempt))
            else:
                await asyncio.sleep(0)
    raise RuntimeError("max_attempts debe ser mayor a cero")


class KeyedLocks:
    """
    Locks asyncio por llave: serializa mutaciones sobre el mismo registro.

    Cada lock vive mientras alguna tarea lo tiene o lo espera; al quedar sin
    usuarios se descarta, así el mapa no crece con cada fecha tocada.
    """

    def __init__(self) -> None:
        self._locks: dict[Hashable, asyncio.Lock] = {}
        self._users: dict[Hashable, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    def _checkout(self, key: Hashable) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        self._users[key] = self._users.get(key, 0) + 1
        return lock

    def _checkin(self, key: Hashable) -> None:
        remaining = self._users[key] - 1
        if remaining:
            self._users[key] = remaining
        else:
            del self._users[key]
            del self._locks[key]

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        lock = self._checkout(key)
        try:
            async with lock:
                yield
        finally:
            self._checkin(key)

    @asynccontextmanager
    async def hold_many(self, keys: Iterable[Hashable]) -> AsyncIterator[None]:
        """Adquiere varias llaves en orden para evitar interbloqueos."""
        checked_out: list[Hashable] = []
        acquired: list[asyncio.Lock] = []
        try:
            for key in sorted(set(keys)):
                lock = self._checkout(key)
                checked_out.append(key)
                await lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()
            for key in checked_out:
                self._checkin(key)
