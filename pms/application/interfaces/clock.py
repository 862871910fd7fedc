"""Interface Clock - Puerto para abstracción de tiempo."""

import asyncio
from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone


class Clock(ABC):
    """
    Puerto para abstracción del tiempo del sistema.

    Permite inyectar implementaciones fake para testing determinista: todos
    los componentes leen "ahora" y duermen a través de este puerto.
    """

    @abstractmethod
    def now(self) -> datetime:
        """
        Retorna la fecha/hora actual.

        Returns:
            datetime con la hora actual (timezone-aware UTC).
        """
        raise NotImplementedError

    def today(self) -> date:
        """Retorna la fecha actual en UTC."""
        return self.now().date()

    @abstractmethod
    async def sleep_until(self, when: datetime) -> None:
        """
        Suspende la tarea actual hasta el instante indicado.

        Args:
            when: Instante (UTC) en que debe despertar.
        """
        raise NotImplementedError


class SystemClock(Clock):
    """Implementación real que usa el reloj del sistema."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    async def sleep_until(self, when: datetime) -> None:
        delay = (when - self.now()).total_seconds()
        await asyncio.sleep(max(0.0, delay))


class FakeClock(Clock):
    """
    Implementación fake para testing.

    El tiempo solo avanza con set_time/advance; las tareas dormidas en
    sleep_until despiertan cuando el tiempo fijo alcanza su instante.
    """

    def __init__(self, fixed_time: datetime | None = None):
        """
        Inicializa el clock con un tiempo fijo opcional.

        Args:
            fixed_time: Tiempo fijo a retornar. Si es None, usa el tiempo real inicial.
        """
        self._fixed_time = fixed_time or datetime.now(timezone.utc)
        self._sleepers: list[tuple[datetime, asyncio.Future]] = []

    def now(self) -> datetime:
        return self._fixed_time

    async def sleep_until(self, when: datetime) -> None:
        if when <= self._fixed_time:
            await asyncio.sleep(0)
            return
        future = asyncio.get_running_loop().create_future()
        self._sleepers.append((when, future))
        await future

    def set_time(self, new_time: datetime) -> None:
        """
        Cambia el tiempo fijo y despierta a las tareas cuyo plazo ya se cumplió.

        Args:
            new_time: Nuevo tiempo a fijar.
        """
        self._fixed_time = new_time
        self._wake_sleepers()

    def advance(self, seconds: int = 0, minutes: int = 0, hours: int = 0, days: int = 0) -> None:
        """
        Avanza el tiempo fijo.

        Args:
            seconds: Segundos a avanzar.
            minutes: Minutos a avanzar.
            hours: Horas a avanzar.
            days: Días a avanzar.
        """
        delta = timedelta(seconds=seconds, minutes=minutes, hours=hours, days=days)
        self.set_time(self._fixed_time + delta)

    @property
    def sleeping(self) -> int:
        """Número de tareas esperando a que avance el tiempo."""
        return sum(1 for _, future in self._sleepers if not future.done())

    def _wake_sleepers(self) -> None:
        remaining = []
        for when, future in self._sleepers:
            if future.done():
                continue
            if when <= self._fixed_time:
                future.set_result(None)
            else:
                remaining.append((when, future))
        self._sleepers = remaining
