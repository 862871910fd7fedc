"""
Circuit Breakers para las llamadas a canales externos (OTAs).

Cada canal tiene su propio breaker: si Booking.com cae, Expedia sigue
recibiendo actualizaciones.

Estados:
- CLOSED: operación normal
- OPEN: demasiados fallos, las llamadas fallan de inmediato
- HALF_OPEN: se permite una llamada de prueba tras reset_timeout
"""

import logging

from pybreaker import CircuitBreaker, CircuitBreakerError, CircuitBreakerListener

logger = logging.getLogger(__name__)

DEFAULT_FAIL_MAX = 5
DEFAULT_RESET_TIMEOUT = 60


class ChannelBreakerListener(CircuitBreakerListener):
    """Registra en el log los cambios de estado del breaker de un canal."""

    def __init__(self, channel: str):
        self.channel = channel

    def state_change(self, cb, old_state, new_state):
        logger.warning(
            "Circuit breaker state changed",
            extra={
                "breaker_name": cb.name,
                "channel": self.channel,
                "old_state": old_state.name if old_state else None,
                "new_state": new_state.name if new_state else None,
            },
        )


class ChannelBreakers:
    """Registro de breakers por canal."""

    def __init__(self, fail_max: int = DEFAULT_FAIL_MAX, reset_timeout: int = DEFAULT_RESET_TIMEOUT):
        self._fail_max = fail_max
        self._reset_timeout = reset_timeout
        self._breakers: dict[str, CircuitBreaker] = {}

    def for_channel(self, channel: str) -> CircuitBreaker:
        breaker = self._breakers.get(channel)
        if breaker is None:
            breaker = CircuitBreaker(
                fail_max=self._fail_max,
                reset_timeout=self._reset_timeout,
                name=f"channel_{channel}_circuit_breaker",
                listeners=[ChannelBreakerListener(channel)],
            )
            self._breakers[channel] = breaker
        return breaker

    def states(self) -> dict[str, str]:
        return {channel: breaker.current_state for channel, breaker in self._breakers.items()}


__all__ = [
    "ChannelBreakers",
    "ChannelBreakerListener",
    "CircuitBreakerError",
]
