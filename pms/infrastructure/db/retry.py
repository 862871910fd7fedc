"""
Utilidades de reintento para fallos transitorios de base de datos.

Deadlocks y lock-wait timeouts se reintentan con backoff exponencial; los
conflictos de versión optimista los reintentan los servicios de aplicación.
"""

import asyncio
import logging
from functools import wraps
from typing import Awaitable, Callable, TypeVar

from sqlalchemy.exc import DBAPIError, OperationalError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Códigos de error de MySQL
MYSQL_DEADLOCK_ERROR = "1213"
MYSQL_LOCK_WAIT_TIMEOUT = "1205"
SQLITE_LOCKED = "database is locked"


def is_deadlock_error(error: Exception) -> bool:
    """
    Indica si la excepción es un deadlock o lock-wait que vale la pena reintentar.

    Args:
        error: Excepción a revisar.

    Returns:
        True si el error es transitorio por bloqueo.
    """
    if isinstance(error, (OperationalError, DBAPIError)):
        error_str = str(error)
        return MYSQL_DEADLOCK_ERROR in error_str or MYSQL_LOCK_WAIT_TIMEOUT in error_str or SQLITE_LOCKED in error_str
    return False


async def retry_on_deadlock(
    func: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    base_delay: float = 0.1,
) -> T:
    """
    Reintenta una función si falla por deadlock.

    Backoff exponencial: base_delay * (2 ** attempt)

    Raises:
        La excepción original si no es deadlock o si se agotan los intentos.
    """
    for attempt in range(max_attempts):
        try:
            return await func()
        except (OperationalError, DBAPIError) as e:
            if not is_deadlock_error(e):
                raise
            if attempt == max_attempts - 1:
                logger.error(
                    "Database deadlock persists after max retries",
                    extra={"attempts": max_attempts, "error": str(e)},
                )
                raise
            delay = base_delay * (2**attempt)
            logger.warning(
                "Database deadlock detected, retrying",
                extra={"attempt": attempt + 1, "max_attempts": max_attempts, "retry_delay": delay, "error": str(e)},
            )
            await asyncio.sleep(delay)
    raise RuntimeError("max_attempts must be greater than zero")


def with_deadlock_retry(max_attempts: int = 3, base_delay: float = 0.1):
    """Decorador para reintentar métodos async de repositorio ante deadlocks."""

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            return await retry_on_deadlock(lambda: func(*args, **kwargs), max_attempts, base_delay)

        return wrapper

    return decorator
