"""Value Object StayRange - rango de estancia check-in/check-out."""

import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from pms.domain.errors import InvalidReservationDataError

SECONDS_PER_NIGHT = 86400


@dataclass(frozen=True)
class StayRange:
    """
    Value Object inmutable que representa la estancia de una reservación.

    Attributes:
        check_in: Fecha/hora de llegada (timezone-aware UTC).
        check_out: Fecha/hora de salida.
    """

    check_in: datetime
    check_out: datetime

    def __post_init__(self) -> None:
        if self.check_in.tzinfo is None or self.check_out.tzinfo is None:
            raise InvalidReservationDataError("check_in", "las fechas deben incluir zona horaria")
        if self.check_out <= self.check_in:
            raise InvalidReservationDataError(
                "check_out",
                f"check_out debe ser posterior a check_in: {self.check_out} <= {self.check_in}",
            )

    @property
    def nights(self) -> int:
        """
        Noches de la estancia.

        Regla de negocio: cualquier fracción de día cuenta como noche completa.
        """
        return math.ceil((self.check_out - self.check_in).total_seconds() / SECONDS_PER_NIGHT)

    def dates(self) -> list[date]:
        """Fechas de inventario ocupadas: check_in.date() + i para i en [0, nights)."""
        first = self.check_in.date()
        return [first + timedelta(days=i) for i in range(self.nights)]

    def overlaps_with(self, other: "StayRange") -> bool:
        """Verifica si esta estancia se superpone con otra."""
        return self.check_in < other.check_out and other.check_in < self.check_out

    def __str__(self) -> str:
        return f"{self.check_in.isoformat()} -> {self.check_out.isoformat()}"
