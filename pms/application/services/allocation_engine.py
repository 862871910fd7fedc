"""
Motor de reglas de asignación de inventario entre canales.

Calcula cupos por día a partir de reglas fixed / percentage / priority /
dynamic y los persiste a través del InventoryLedger, que garantiza que la
suma de cupos nunca exceda el inventario físico.
"""

import copy
import logging
import math
from dataclasses import dataclass, field
from datetime import date, timedelta
from uuid import uuid4

from pms.application.interfaces.allotment_repo import AllotmentRepo
from pms.application.interfaces.clock import Clock
from pms.application.services.concurrency import retry_on_conflict
from pms.application.services.inventory_ledger import InventoryLedger
from pms.application.schemas import AllocationRuleRequest, CreateAllotmentRequest, PerformancePeriodRequest
from pms.domain.entities.allotment import (
    AllocationRule,
    AllocationRuleType,
    AllotmentConfig,
    DefaultSettings,
    PerformancePeriod,
    default_channels,
)
from pms.domain.entities.inventory import InventoryDay
from pms.domain.errors import (
    AllocationRuleNotFoundError,
    AllotmentAlreadyExistsError,
    AllotmentNotFoundError,
    DomainError,
    InvalidAllocationError,
)

logger = logging.getLogger(__name__)

UTILIZATION_LOOKBACK_DAYS = 30
DEFAULT_UTILIZATION = 50.0
FALLBACK_DISTRIBUTION = {"direct": 40.0, "booking_com": 35.0, "expedia": 25.0}

# (fin de semana, entre semana)
DEMAND_BASE = {
    "direct": (60.0, 40.0),
    "booking_com": (80.0, 70.0),
    "expedia": (70.0, 60.0),
    "airbnb": (90.0, 50.0),
}
DEFAULT_DEMAND_BASE = (50.0, 50.0)
MIN_DEMAND_SCORE = 10.0

LOW_UTILIZATION = 60.0
HIGH_UTILIZATION = 90.0
LOW_CONVERSION = 20.0


@dataclass
class AllocationResult:
    """Resultado de aplicar reglas a un rango de fechas."""

    days_processed: int = 0
    errors: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"days_processed": self.days_processed, "errors": list(self.errors)}


@dataclass(frozen=True)
class Recommendation:
    channel_id: str
    action: str
    reason: str
    metric: float


def _is_weekend(day: date) -> bool:
    return day.weekday() >= 5


def _date_range(start: date, end: date) -> list[date]:
    return [start + timedelta(days=offset) for offset in range((end - start).days + 1)]


# === Cálculo de cupos (funciones puras) ===


def compute_fixed(rule: AllocationRule, total_inventory: int) -> dict[str, int]:
    allocations = {channel: int(quantity) for channel, quantity in rule.fixed.items()}
    if sum(allocations.values()) > total_inventory:
        raise InvalidAllocationError(
            f"La regla '{rule.name}' asigna {sum(allocations.values())} habitaciones con inventario {total_inventory}"
        )
    return allocations


def compute_percentage(percentages: dict[str, float], total_inventory: int) -> dict[str, int]:
    """floor(total * pct / 100) por canal; si la suma excede 100 se escala hacia abajo."""
    aggregate = sum(percentages.values())
    scale = 100.0 / aggregate if aggregate > 100 else 1.0
    return {
        channel: math.floor(total_inventory * pct * scale / 100 + 1e-9)
        for channel, pct in percentages.items()
    }


def compute_priority(rule: AllocationRule, total_inventory: int, utilization: dict[str, float]) -> dict[str, int]:
    """
    Asigna en orden de prioridad un valor entre min y max según la utilización
    reciente del canal, limitado al inventario restante.
    """
    remaining = total_inventory
    allocations: dict[str, int] = {}
    entries = sorted(rule.priority_channels, key=lambda p: -p.priority)
    for entry in entries:
        util = utilization.get(entry.channel_id, DEFAULT_UTILIZATION)
        quantity = max(entry.min_allocation, math.floor(remaining * util / 100))
        if entry.max_allocation is not None:
            quantity = min(quantity, entry.max_allocation)
        quantity = max(0, min(quantity, remaining))
        allocations[entry.channel_id] = quantity
        remaining -= quantity
    return allocations


def compute_dynamic(channels: list[str], day: date, total_inventory: int, utilization: dict[str, float]) -> dict[str, int]:
    """Distribuye proporcionalmente a un puntaje de demanda por canal."""
    if not channels:
        raise InvalidAllocationError("No hay canales activos para una asignación dinámica")
    scores = {}
    for channel in channels:
        weekend_base, weekday_base = DEMAND_BASE.get(channel, DEFAULT_DEMAND_BASE)
        base = weekend_base if _is_weekend(day) else weekday_base
        util = utilization.get(channel, DEFAULT_UTILIZATION)
        scores[channel] = max(MIN_DEMAND_SCORE, base * (1 + (util - 50) / 100))
    total_score = sum(scores.values())
    return {channel: math.floor(total_inventory * score / total_score) for channel, score in scores.items()}


class AllocationRuleEngine:
    """Administración de allotments y aplicación de reglas de asignación."""

    def __init__(
        self,
        allotment_repo: AllotmentRepo,
        ledger: InventoryLedger,
        clock: Clock,
        conflict_attempts: int = 3,
    ) -> None:
        self._allotments = allotment_repo
        self._ledger = ledger
        self._clock = clock
        self._conflict_attempts = conflict_attempts

    # === Allotments ===

    async def create_allotment(self, request: CreateAllotmentRequest) -> AllotmentConfig:
        existing = await self._allotments.get(request.hotel_id, request.room_type_id)
        if existing is not None:
            raise AllotmentAlreadyExistsError(request.hotel_id, request.room_type_id)
        if request.overbooking_limit and not request.overbooking_allowed:
            raise InvalidAllocationError("overbooking_limit requiere overbooking_allowed")

        now = self._clock.now()
        channels = [c.to_domain() for c in request.channels] if request.channels else default_channels()
        config = AllotmentConfig(
            hotel_id=request.hotel_id,
            room_type_id=request.room_type_id,
            name=request.name or f"{request.hotel_id} {request.room_type_id}",
            channels=channels,
            default_settings=DefaultSettings(
                total_inventory=request.total_inventory,
                overbooking_allowed=request.overbooking_allowed,
                overbooking_limit=request.overbooking_limit,
            ),
            created_at=now,
            updated_at=now,
        )
        saved = await self._allotments.save(config, None)
        logger.info(
            "Allotment creado",
            extra={"hotel_id": saved.hotel_id, "room_type_id": saved.room_type_id, "channels": len(channels)},
        )
        return saved

    async def get_allotment(self, hotel_id: str, room_type_id: str) -> AllotmentConfig:
        config = await self._allotments.get(hotel_id, room_type_id)
        if config is None:
            raise AllotmentNotFoundError(hotel_id, room_type_id)
        return config

    async def initialize_days(self, hotel_id: str, room_type_id: str, start: date, days: int) -> list[InventoryDay]:
        """Materializa los días con el inventario total y cupos vacíos."""
        await self.get_allotment(hotel_id, room_type_id)
        return [
            await self._ledger.ensure_day(hotel_id, room_type_id, start + timedelta(days=offset))
            for offset in range(days)
        ]

    # === Reglas ===

    async def add_rule(self, hotel_id: str, room_type_id: str, request: AllocationRuleRequest) -> AllocationRule:
        rule = request.to_domain(rule_id=f"rule_{uuid4().hex[:12]}")
        rule.created_at = self._clock.now()
        self._validate_rule(rule)
        await self._update_config(hotel_id, room_type_id, lambda config: config.rules.append(rule))
        logger.info(
            "Regla de asignación agregada",
            extra={"hotel_id": hotel_id, "room_type_id": room_type_id, "rule_id": rule.rule_id, "type": rule.rule_type.value},
        )
        return rule

    async def activate_rule(self, hotel_id: str, room_type_id: str, rule_id: str) -> AllocationRule:
        return await self._set_rule_active(hotel_id, room_type_id, rule_id, True)

    async def deactivate_rule(self, hotel_id: str, room_type_id: str, rule_id: str) -> AllocationRule:
        return await self._set_rule_active(hotel_id, room_type_id, rule_id, False)

    async def apply_rule(self, hotel_id: str, room_type_id: str, rule_id: str, start: date, end: date) -> AllocationResult:
        """
        Aplica una regla a cada día del rango que cumpla sus condiciones.

        Los errores por día se acumulan sin abortar el rango.
        """
        config = await self.get_allotment(hotel_id, room_type_id)
        rule = config.find_rule(rule_id)
        if rule is None:
            raise AllocationRuleNotFoundError(rule_id)
        utilization = await self.channel_utilization(hotel_id, room_type_id)

        result = AllocationResult()
        for day in _date_range(start, end):
            if not rule.conditions.matches(day):
                continue
            await self._apply_to_day(config, rule, day, utilization, result)
        self._log_result(hotel_id, room_type_id, result, rule_id=rule_id)
        return result

    async def apply_active_rules(self, hotel_id: str, room_type_id: str, start: date, end: date) -> AllocationResult:
        """Por día aplica la regla activa de mayor prioridad que coincida."""
        config = await self.get_allotment(hotel_id, room_type_id)
        rules = config.rules_by_priority()
        utilization = await self.channel_utilization(hotel_id, room_type_id)

        result = AllocationResult()
        for day in _date_range(start, end):
            rule = next((r for r in rules if r.applies_to(day)), None)
            if rule is None:
                continue
            await self._apply_to_day(config, rule, day, utilization, result)
        self._log_result(hotel_id, room_type_id, result)
        return result

    def compute_allocations(
        self, config: AllotmentConfig, rule: AllocationRule, day: date, total_inventory: int, utilization: dict[str, float]
    ) -> dict[str, int]:
        if rule.rule_type == AllocationRuleType.FIXED:
            return compute_fixed(rule, total_inventory)
        if rule.rule_type == AllocationRuleType.PERCENTAGE:
            return compute_percentage(rule.percentage, total_inventory)
        if rule.rule_type == AllocationRuleType.PRIORITY:
            return compute_priority(rule, total_inventory, utilization)
        try:
            return compute_dynamic([c.channel_id for c in config.active_channels], day, total_inventory, utilization)
        except (InvalidAllocationError, ZeroDivisionError) as e:
            logger.warning(
                "Asignación dinámica falló, usando distribución por defecto",
                extra={"hotel_id": config.hotel_id, "room_type_id": config.room_type_id, "day": day.isoformat(), "error": str(e)},
            )
            return compute_percentage(FALLBACK_DISTRIBUTION, total_inventory)

    # === Desempeño ===

    async def channel_utilization(self, hotel_id: str, room_type_id: str, reference: date | None = None) -> dict[str, float]:
        """Promedio de sold/allocated por canal en los últimos 30 días."""
        reference = reference or self._clock.today()
        days = await self._ledger.list_days(
            hotel_id, room_type_id, reference - timedelta(days=UTILIZATION_LOOKBACK_DAYS), reference - timedelta(days=1)
        )
        samples: dict[str, list[float]] = {}
        for day in days:
            for channel, bucket in day.channels.items():
                samples.setdefault(channel, []).append(bucket.utilization)
        return {channel: sum(values) / len(values) for channel, values in samples.items() if values}

    async def record_performance(self, hotel_id: str, room_type_id: str, request: PerformancePeriodRequest) -> AllotmentConfig:
        period = PerformancePeriod(
            period_start=request.period_start,
            period_end=request.period_end,
            channels=[c.to_domain() for c in request.channels],
        )
        return await self._update_config(hotel_id, room_type_id, lambda config: config.record_performance(period))

    async def generate_recommendations(self, hotel_id: str, room_type_id: str) -> list[Recommendation]:
        """Recomendaciones sobre el último periodo registrado."""
        config = await self.get_allotment(hotel_id, room_type_id)
        if not config.performance:
            return []
        recommendations = []
        for metrics in config.performance[-1].channels:
            if metrics.utilization_rate < LOW_UTILIZATION:
                recommendations.append(
                    Recommendation(metrics.channel_id, "decrease_allocation", "baja utilización", metrics.utilization_rate)
                )
            elif metrics.utilization_rate > HIGH_UTILIZATION:
                recommendations.append(
                    Recommendation(metrics.channel_id, "increase_allocation", "alta utilización", metrics.utilization_rate)
                )
            if metrics.conversion_rate is not None and metrics.conversion_rate < LOW_CONVERSION:
                recommendations.append(
                    Recommendation(metrics.channel_id, "adjust_rates", "baja conversión", metrics.conversion_rate)
                )
        return recommendations

    async def propose_optimized_rule(self, hotel_id: str, room_type_id: str) -> AllocationRule:
        """
        Propone una regla de porcentajes a partir del último periodo.

        La regla se guarda inactiva; un operador debe activarla.
        """
        config = await self.get_allotment(hotel_id, room_type_id)
        percentages = self._optimized_percentages(config)
        rule = AllocationRule(
            rule_id=f"rule_{uuid4().hex[:12]}",
            name=f"Optimized allocation {self._clock.today().isoformat()}",
            rule_type=AllocationRuleType.PERCENTAGE,
            is_active=False,
            percentage=percentages,
            created_at=self._clock.now(),
        )
        await self._update_config(hotel_id, room_type_id, lambda c: c.rules.append(rule))
        logger.info(
            "Regla optimizada propuesta",
            extra={"hotel_id": hotel_id, "room_type_id": room_type_id, "rule_id": rule.rule_id, "percentages": percentages},
        )
        return rule

    # === Internos ===

    def _optimized_percentages(self, config: AllotmentConfig) -> dict[str, float]:
        if not config.performance or not config.performance[-1].channels:
            return dict(FALLBACK_DISTRIBUTION)
        ranked = sorted(
            config.performance[-1].channels, key=lambda m: (m.utilization_rate, m.revenue), reverse=True
        )
        proposal: dict[str, float] = {}
        top = ranked[0]
        proposal[top.channel_id] = min(50.0, 30 + top.utilization_rate * 0.2)
        if len(ranked) > 1:
            second = ranked[1]
            proposal[second.channel_id] = min(35.0, 25 + second.utilization_rate * 0.1)
        others = ranked[2:]
        remainder = max(0.0, 100.0 - sum(proposal.values()))
        for metrics in others:
            proposal[metrics.channel_id] = remainder / len(others)
        total = sum(proposal.values())
        return {channel: round(pct * 100 / total, 2) for channel, pct in proposal.items()}

    def _validate_rule(self, rule: AllocationRule) -> None:
        if rule.rule_type == AllocationRuleType.FIXED and not rule.fixed:
            raise InvalidAllocationError("Una regla fixed requiere cantidades por canal")
        if rule.rule_type == AllocationRuleType.PERCENTAGE and not rule.percentage:
            raise InvalidAllocationError("Una regla percentage requiere porcentajes por canal")
        if rule.rule_type == AllocationRuleType.PRIORITY and not rule.priority_channels:
            raise InvalidAllocationError("Una regla priority requiere canales ordenados")
        if any(q < 0 for q in rule.fixed.values()) or any(p < 0 for p in rule.percentage.values()):
            raise InvalidAllocationError("Las cantidades y porcentajes no pueden ser negativos")
        for entry in rule.priority_channels:
            if entry.max_allocation is not None and entry.max_allocation < entry.min_allocation:
                raise InvalidAllocationError(f"max_allocation < min_allocation para '{entry.channel_id}'")

    async def _apply_to_day(
        self,
        config: AllotmentConfig,
        rule: AllocationRule,
        day: date,
        utilization: dict[str, float],
        result: AllocationResult,
    ) -> None:
        try:
            current = await self._ledger.ensure_day(config.hotel_id, config.room_type_id, day)
            allocations = self.compute_allocations(config, rule, day, current.total_inventory, utilization)
            await self._ledger.apply_allocations(config.hotel_id, config.room_type_id, day, allocations)
            result.days_processed += 1
        except DomainError as e:
            result.errors.append({"date": day.isoformat(), "rule_id": rule.rule_id, "code": e.code, "error": e.message})

    def _log_result(self, hotel_id: str, room_type_id: str, result: AllocationResult, rule_id: str | None = None) -> None:
        logger.info(
            "Reglas de asignación aplicadas",
            extra={
                "hotel_id": hotel_id,
                "room_type_id": room_type_id,
                "rule_id": rule_id,
                "days_processed": result.days_processed,
                "errors": len(result.errors),
            },
        )

    async def _set_rule_active(self, hotel_id: str, room_type_id: str, rule_id: str, active: bool) -> AllocationRule:
        def toggle(config: AllotmentConfig) -> None:
            rule = config.find_rule(rule_id)
            if rule is None:
                raise AllocationRuleNotFoundError(rule_id)
            rule.is_active = active

        config = await self._update_config(hotel_id, room_type_id, toggle)
        return config.find_rule(rule_id)

    async def _update_config(self, hotel_id: str, room_type_id: str, change) -> AllotmentConfig:
        async def attempt() -> AllotmentConfig:
            current = await self.get_allotment(hotel_id, room_type_id)
            config = copy.deepcopy(current)
            change(config)
            config.updated_at = self._clock.now()
            return await self._allotments.save(config, current.version)

        return await retry_on_conflict(attempt, self._conflict_attempts)
