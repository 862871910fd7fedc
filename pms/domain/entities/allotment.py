"""Entidad AllotmentConfig - configuración de canales y reglas de asignación."""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum

WEEKDAY_NAMES = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


class AllocationRuleType(str, Enum):
    """Estrategias de distribución de inventario entre canales."""

    FIXED = "fixed"
    PERCENTAGE = "percentage"
    PRIORITY = "priority"
    DYNAMIC = "dynamic"


@dataclass
class ChannelRestrictions:
    """Restricciones de venta de un canal."""

    minimum_stay: int = 1
    maximum_stay: int = 30
    closed_to_arrival: bool = False
    closed_to_departure: bool = False
    stop_sell: bool = False


@dataclass
class ChannelConfig:
    """Canal de distribución habilitado para un tipo de habitación."""

    channel_id: str
    channel_name: str
    is_active: bool = True
    priority: int = 0
    commission: Decimal = Decimal("0")
    markup: Decimal = Decimal("0")
    restrictions: ChannelRestrictions = field(default_factory=ChannelRestrictions)


@dataclass
class RuleConditions:
    """Condiciones de fecha para que una regla aplique."""

    start_date: date | None = None
    end_date: date | None = None
    days_of_week: list[str] = field(default_factory=list)

    def matches(self, day: date) -> bool:
        if self.start_date and day < self.start_date:
            return False
        if self.end_date and day > self.end_date:
            return False
        if self.days_of_week and WEEKDAY_NAMES[day.weekday()] not in self.days_of_week:
            return False
        return True


@dataclass
class PriorityAllocation:
    """Entrada de una regla por prioridad."""

    channel_id: str
    priority: int = 0
    min_allocation: int = 0
    max_allocation: int | None = None


@dataclass
class AllocationRule:
    """
    Regla de asignación de inventario.

    Según el tipo, solo uno de fixed/percentage/priority_channels es relevante.
    """

    rule_id: str
    name: str
    rule_type: AllocationRuleType
    is_active: bool = True
    priority: int = 0
    conditions: RuleConditions = field(default_factory=RuleConditions)
    fixed: dict[str, int] = field(default_factory=dict)
    percentage: dict[str, float] = field(default_factory=dict)
    priority_channels: list[PriorityAllocation] = field(default_factory=list)
    created_at: datetime | None = None

    def applies_to(self, day: date) -> bool:
        return self.is_active and self.conditions.matches(day)


@dataclass
class DefaultSettings:
    """Inventario físico y política de sobreventa."""

    total_inventory: int = 0
    overbooking_allowed: bool = False
    overbooking_limit: int = 0


@dataclass
class ChannelPerformance:
    """Métricas de un canal en un periodo."""

    channel_id: str
    utilization_rate: float = 0.0
    revenue: Decimal = Decimal("0")
    conversion_rate: float | None = None
    total_sold: int = 0


@dataclass
class PerformancePeriod:
    """Métricas agregadas de un periodo."""

    period_start: date
    period_end: date
    channels: list[ChannelPerformance] = field(default_factory=list)


@dataclass
class AllotmentConfig:
    """
    Configuración de allotment por (hotel, tipo de habitación).

    Agrupa canales habilitados, reglas de asignación ordenadas e historial
    de desempeño (máximo 12 periodos).
    """

    hotel_id: str
    room_type_id: str
    name: str = ""
    channels: list[ChannelConfig] = field(default_factory=list)
    rules: list[AllocationRule] = field(default_factory=list)
    default_settings: DefaultSettings = field(default_factory=DefaultSettings)
    performance: list[PerformancePeriod] = field(default_factory=list)
    version: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None

    PERFORMANCE_HISTORY_LIMIT = 12

    def channel(self, channel_id: str) -> ChannelConfig | None:
        for config in self.channels:
            if config.channel_id == channel_id:
                return config
        return None

    @property
    def active_channels(self) -> list[ChannelConfig]:
        return [c for c in self.channels if c.is_active]

    def find_rule(self, rule_id: str) -> AllocationRule | None:
        for rule in self.rules:
            if rule.rule_id == rule_id:
                return rule
        return None

    def rules_by_priority(self) -> list[AllocationRule]:
        """Reglas activas de mayor a menor prioridad; empates en orden de alta."""
        return sorted((r for r in self.rules if r.is_active), key=lambda r: -r.priority)

    def record_performance(self, period: PerformancePeriod) -> None:
        self.performance.append(period)
        if len(self.performance) > self.PERFORMANCE_HISTORY_LIMIT:
            self.performance = self.performance[-self.PERFORMANCE_HISTORY_LIMIT :]


def default_channels() -> list[ChannelConfig]:
    """Canales por defecto de un allotment nuevo."""
    return [
        ChannelConfig(channel_id="direct", channel_name="Direct Booking", priority=100),
        ChannelConfig(
            channel_id="booking_com", channel_name="Booking.com", priority=80, commission=Decimal("15")
        ),
        ChannelConfig(channel_id="expedia", channel_name="Expedia", priority=75, commission=Decimal("18")),
        ChannelConfig(
            channel_id="airbnb", channel_name="Airbnb", is_active=False, priority=60, commission=Decimal("12")
        ),
    ]
