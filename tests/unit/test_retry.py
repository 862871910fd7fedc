"""
Tests de reintentos ante fallos transitorios de persistencia.

- Deadlocks y lock-wait de MySQL (1213, 1205) se reintentan con backoff
- Conflictos de versión optimista se reintentan releyendo el agregado
- Los demás errores se propagan sin reintento
"""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.exc import OperationalError

from pms.application.services.concurrency import KeyedLocks, retry_on_conflict
from pms.domain.errors import ConflictingVersionError
from pms.infrastructure.db.retry import is_deadlock_error, retry_on_deadlock, with_deadlock_retry


def deadlock(code: str = "1213") -> OperationalError:
    return OperationalError(
        "statement",
        "params",
        f"(asyncmy.errors.OperationalError) ({code}, 'Deadlock found')",
        connection_invalidated=False,
    )


class TestDeadlockDetection:
    def test_detect_mysql_codes(self):
        assert is_deadlock_error(deadlock("1213"))
        assert is_deadlock_error(deadlock("1205"))

    def test_detect_sqlite_lock(self):
        error = OperationalError("statement", "params", "database is locked", connection_invalidated=False)
        assert is_deadlock_error(error)

    def test_ignore_other_errors(self):
        assert not is_deadlock_error(Exception("Generic error"))
        assert not is_deadlock_error(deadlock("2013"))


@pytest.mark.asyncio
class TestRetryOnDeadlock:
    async def test_retries_until_success(self):
        func = AsyncMock(side_effect=[deadlock(), deadlock(), "ok"])

        with patch("pms.infrastructure.db.retry.asyncio.sleep", new=AsyncMock()) as sleep:
            result = await retry_on_deadlock(func, max_attempts=3, base_delay=0.1)

        assert result == "ok"
        assert func.await_count == 3
        assert [call.args[0] for call in sleep.await_args_list] == [0.1, 0.2]

    async def test_gives_up_after_max_attempts(self):
        func = AsyncMock(side_effect=deadlock())

        with pytest.raises(OperationalError):
            await retry_on_deadlock(func, max_attempts=2, base_delay=0.001)
        assert func.await_count == 2

    async def test_non_deadlock_error_is_not_retried(self):
        func = AsyncMock(side_effect=deadlock("2013"))

        with pytest.raises(OperationalError):
            await retry_on_deadlock(func, max_attempts=3, base_delay=0.001)
        assert func.await_count == 1

    async def test_decorator(self):
        calls = 0

        @with_deadlock_retry(max_attempts=2, base_delay=0.001)
        async def save(value: str) -> str:
            nonlocal calls
            calls += 1
            if calls == 1:
                raise deadlock()
            return value

        assert await save("saved") == "saved"
        assert calls == 2


@pytest.mark.asyncio
class TestRetryOnConflict:
    async def test_rereads_until_version_matches(self):
        func = AsyncMock(side_effect=[ConflictingVersionError("reservation", "res-1", 3), "saved"])

        assert await retry_on_conflict(func, max_attempts=3) == "saved"
        assert func.await_count == 2

    async def test_exhausted_conflict_propagates(self):
        func = AsyncMock(side_effect=ConflictingVersionError("inventory_day", "H1/STD/2025-01-10", 0))

        with pytest.raises(ConflictingVersionError) as exc:
            await retry_on_conflict(func, max_attempts=3)
        assert exc.value.code == "CONFLICTING_VERSION"
        assert func.await_count == 3


@pytest.mark.asyncio
class TestKeyedLocks:
    async def test_same_key_is_serialized(self):
        locks = KeyedLocks()
        events = []

        async def worker(name: str):
            async with locks.hold("H1/STD/2025-01-10"):
                events.append(f"{name}-in")
                await asyncio.sleep(0)
                events.append(f"{name}-out")

        await asyncio.gather(worker("a"), worker("b"))

        assert events == ["a-in", "a-out", "b-in", "b-out"]

    async def test_hold_many_releases_on_error(self):
        locks = KeyedLocks()

        with pytest.raises(RuntimeError):
            async with locks.hold_many(["b", "a"]):
                raise RuntimeError("boom")

        async with locks.hold_many(["a", "b"]):
            pass

    async def test_idle_locks_are_discarded(self):
        locks = KeyedLocks()

        async def worker(key: str):
            async with locks.hold(key):
                await asyncio.sleep(0)

        await asyncio.gather(*(worker(f"H1/STD/2025-01-{day:02d}") for day in range(1, 31)))
        await asyncio.gather(worker("shared"), worker("shared"), worker("shared"))

        assert len(locks) == 0

    async def test_lock_survives_while_someone_waits(self):
        locks = KeyedLocks()
        entered = asyncio.Event()
        release = asyncio.Event()

        async def holder():
            async with locks.hold("a"):
                entered.set()
                await release.wait()

        async def waiter():
            async with locks.hold_many(["a", "b"]):
                return len(locks)

        first = asyncio.create_task(holder())
        await entered.wait()
        second = asyncio.create_task(waiter())
        await asyncio.sleep(0)
        assert len(locks) == 2

        release.set()
        await first
        assert await second == 2
        assert len(locks) == 0
