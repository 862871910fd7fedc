import asyncio
import json
import logging
from typing import Any

import httpx

from pms.application.interfaces.channel_adapter import ChannelAdapter, ChannelPushOutcome, ChannelPushResult
from pms.domain.entities.reservation import Reservation, ReservationStatus
from pms.infrastructure.circuit_breaker import CircuitBreakerError

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = {408, 425, 429}


class ChannelUnavailableError(Exception):
    """Respuesta del canal que cuenta como fallo para el circuit breaker."""

    def __init__(self, response: httpx.Response):
        self.response = response
        super().__init__(f"channel answered {response.status_code}")


class ChannelAdapterHTTP(ChannelAdapter):
    def __init__(
        self,
        channel: str,
        base_url: str,
        breaker,
        timeout_seconds: float = 30.0,
        api_key: str | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """
        Adapter HTTP genérico para empujar estados a un canal.

        Args:
            channel: Identificador del canal (booking_com, expedia, ...).
            base_url: URL base de la API del canal.
            breaker: CircuitBreaker de pybreaker exclusivo del canal.
            timeout_seconds: Timeout de la petición.
            api_key: Credencial opcional enviada como Bearer token.
            transport: Transport de httpx (para pruebas).
        """
        self._channel = channel
        self._base_url = base_url.rstrip("/")
        self._breaker = breaker
        self._timeout = timeout_seconds
        self._api_key = api_key
        self._transport = transport

    async def push_status(self, reservation: Reservation, status: ReservationStatus) -> ChannelPushResult:
        """
        Envía el estado de la reservación al canal, protegido por Circuit Breaker.

        pybreaker no soporta corutinas sin tornado, así que la llamada HTTP
        corre en un hilo a través de breaker.call.

        Returns:
            ChannelPushResult OK, TRANSIENT_ERROR (408/429/5xx, timeouts,
            errores de red, circuito abierto) o PERMANENT_ERROR (otros 4xx).
        """
        reference = reservation.channel_booking_id or reservation.booking_number
        url = f"{self._base_url}/reservations/{reference}/status"
        payload: dict[str, Any] = {
            "booking_number": reservation.booking_number,
            "channel_booking_id": reservation.channel_booking_id,
            "status": status.value,
            "check_in": reservation.check_in.isoformat(),
            "check_out": reservation.check_out.isoformat(),
        }

        try:
            response = await asyncio.to_thread(self._breaker.call, self._post, url, payload)
        except CircuitBreakerError as exc:
            logger.error(
                "Channel circuit breaker is open - service unavailable",
                extra={"channel": self._channel, "reservation_id": reservation.id, "circuit_state": str(exc)},
            )
            return ChannelPushResult(
                outcome=ChannelPushOutcome.TRANSIENT_ERROR,
                error_code="CIRCUIT_OPEN",
                error_message="Channel temporarily unavailable (circuit breaker open)",
            )
        except ChannelUnavailableError as exc:
            logger.warning(
                "Channel returned retryable status",
                extra={"channel": self._channel, "reservation_id": reservation.id, "http_status": exc.response.status_code},
            )
            return ChannelPushResult(
                outcome=ChannelPushOutcome.TRANSIENT_ERROR,
                error_code=f"HTTP_{exc.response.status_code}",
                error_message=exc.response.text,
                http_status=exc.response.status_code,
            )
        except httpx.TimeoutException as exc:
            logger.warning(
                "Channel request timeout",
                extra={"channel": self._channel, "reservation_id": reservation.id, "timeout": self._timeout},
            )
            return ChannelPushResult(
                outcome=ChannelPushOutcome.TRANSIENT_ERROR, error_code="TIMEOUT", error_message=str(exc)
            )
        except httpx.HTTPError as exc:
            logger.error(
                "Channel HTTP error",
                exc_info=exc,
                extra={"channel": self._channel, "reservation_id": reservation.id},
            )
            return ChannelPushResult(
                outcome=ChannelPushOutcome.TRANSIENT_ERROR, error_code="HTTP_ERROR", error_message=str(exc)
            )

        if 200 <= response.status_code < 300:
            return ChannelPushResult(outcome=ChannelPushOutcome.OK, http_status=response.status_code)

        body: Any = None
        try:
            body = response.json()
        except json.JSONDecodeError:
            body = None
        error_code = body.get("error_code") if isinstance(body, dict) else None
        return ChannelPushResult(
            outcome=ChannelPushOutcome.PERMANENT_ERROR,
            error_code=error_code or f"HTTP_{response.status_code}",
            error_message=response.text,
            http_status=response.status_code,
        )

    def _post(self, url: str, payload: dict[str, Any]) -> httpx.Response:
        headers = {"Authorization": f"Bearer {self._api_key}"} if self._api_key else {}
        with httpx.Client(timeout=self._timeout, transport=self._transport) as client:
            response = client.post(url, json=payload, headers=headers)
        if response.status_code in RETRYABLE_STATUS_CODES or response.status_code >= 500:
            raise ChannelUnavailableError(response)
        return response
