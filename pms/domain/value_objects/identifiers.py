"""Value Objects de identificadores legibles: número de booking e id de enmienda."""

import secrets
from dataclasses import dataclass
from datetime import date, datetime


@dataclass(frozen=True)
class BookingNumber:
    """
    Número de booking visible para el huésped.

    Formato: BK + fecha YYYYMMDD + 3 dígitos aleatorios (ej: BK20250501042).
    """

    value: str

    PREFIX = "BK"

    def __post_init__(self) -> None:
        if not self.value:
            raise ValueError("booking_number no puede estar vacío")
        if not self.value.startswith(self.PREFIX):
            raise ValueError(f"booking_number debe iniciar con {self.PREFIX}: {self.value}")

    def __str__(self) -> str:
        return self.value

    @classmethod
    def generate(cls, on: date) -> "BookingNumber":
        """Genera un número de booking para la fecha indicada."""
        return cls(value=f"{cls.PREFIX}{on:%Y%m%d}{secrets.randbelow(1000):03d}")


@dataclass(frozen=True)
class AmendmentId:
    """Identificador interno de enmienda: AM + epoch en milisegundos + sufijo aleatorio."""

    value: str

    PREFIX = "AM"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def generate(cls, at: datetime) -> "AmendmentId":
        millis = int(at.timestamp() * 1000)
        return cls(value=f"{cls.PREFIX}{millis}{secrets.randbelow(1000):03d}")
