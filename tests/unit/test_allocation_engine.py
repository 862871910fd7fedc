"""
Tests del motor de reglas de asignación.

Los cálculos puros se prueban directamente; la aplicación sobre días de
inventario se prueba contra el contenedor en memoria.
"""

from datetime import date
from decimal import Decimal

import pytest

from pms.application.schemas import AllocationRuleRequest, CreateAllotmentRequest, PerformancePeriodRequest
from pms.application.services.allocation_engine import (
    compute_dynamic,
    compute_fixed,
    compute_percentage,
    compute_priority,
)
from pms.domain.entities.allotment import (
    AllocationRule,
    AllocationRuleType,
    AllotmentConfig,
    ChannelConfig,
    PriorityAllocation,
)
from pms.domain.errors import (
    AllocationRuleNotFoundError,
    AllotmentAlreadyExistsError,
    InvalidAllocationError,
)
from tests.helpers import HOTEL, ROOM_TYPE, setup_allotment

WEDNESDAY = date(2025, 1, 8)
FRIDAY = date(2025, 1, 10)
SATURDAY = date(2025, 1, 11)


def priority_rule() -> AllocationRule:
    return AllocationRule(
        rule_id="r-priority",
        name="Prioridad directo",
        rule_type=AllocationRuleType.PRIORITY,
        priority_channels=[
            PriorityAllocation(channel_id="direct", priority=10, min_allocation=2, max_allocation=6),
            PriorityAllocation(channel_id="booking_com", priority=5, min_allocation=1),
        ],
    )


class TestComputations:
    def test_fixed_within_inventory(self):
        rule = AllocationRule("r1", "Fijo", AllocationRuleType.FIXED, fixed={"direct": 4, "booking_com": 6})
        assert compute_fixed(rule, 10) == {"direct": 4, "booking_com": 6}

    def test_fixed_exceeding_inventory(self):
        rule = AllocationRule("r1", "Fijo", AllocationRuleType.FIXED, fixed={"direct": 11})
        with pytest.raises(InvalidAllocationError):
            compute_fixed(rule, 10)

    def test_percentage_floors(self):
        assert compute_percentage({"direct": 40, "booking_com": 35, "expedia": 25}, 10) == {
            "direct": 4,
            "booking_com": 3,
            "expedia": 2,
        }

    def test_percentage_over_one_hundred_is_scaled(self):
        assert compute_percentage({"a": 100, "b": 100}, 10) == {"a": 5, "b": 5}

    def test_priority_uses_default_utilization(self):
        assert compute_priority(priority_rule(), 10, {}) == {"direct": 5, "booking_com": 2}

    def test_priority_respects_max_allocation(self):
        assert compute_priority(priority_rule(), 10, {"direct": 90.0}) == {"direct": 6, "booking_com": 2}

    def test_dynamic_weekday(self):
        channels = ["direct", "booking_com", "expedia"]
        assert compute_dynamic(channels, WEDNESDAY, 17, {}) == {"direct": 4, "booking_com": 7, "expedia": 6}

    def test_dynamic_weekend(self):
        channels = ["direct", "booking_com", "expedia"]
        assert compute_dynamic(channels, SATURDAY, 21, {}) == {"direct": 6, "booking_com": 8, "expedia": 7}

    def test_dynamic_without_channels(self):
        with pytest.raises(InvalidAllocationError):
            compute_dynamic([], WEDNESDAY, 10, {})

    def test_dynamic_falls_back_to_default_distribution(self, container):
        config = AllotmentConfig(
            hotel_id=HOTEL,
            room_type_id=ROOM_TYPE,
            channels=[ChannelConfig(channel_id="direct", channel_name="Direct", is_active=False)],
        )
        rule = AllocationRule("r-dyn", "Dinámica", AllocationRuleType.DYNAMIC)

        allocations = container.allocation.compute_allocations(config, rule, WEDNESDAY, 10, {})

        assert allocations == {"direct": 4, "booking_com": 3, "expedia": 2}


@pytest.mark.asyncio
class TestAllotments:
    async def test_create_with_default_channels(self, container):
        config = await container.allocation.create_allotment(
            CreateAllotmentRequest(hotel_id=HOTEL, room_type_id=ROOM_TYPE, total_inventory=10)
        )
        assert [c.channel_id for c in config.active_channels] == ["direct", "booking_com", "expedia"]
        assert config.channel("airbnb").is_active is False

    async def test_duplicate_allotment(self, container):
        request = CreateAllotmentRequest(hotel_id=HOTEL, room_type_id=ROOM_TYPE, total_inventory=10)
        await container.allocation.create_allotment(request)
        with pytest.raises(AllotmentAlreadyExistsError):
            await container.allocation.create_allotment(request)

    async def test_overbooking_limit_requires_flag(self, container):
        with pytest.raises(InvalidAllocationError):
            await container.allocation.create_allotment(
                CreateAllotmentRequest(hotel_id=HOTEL, room_type_id=ROOM_TYPE, total_inventory=10, overbooking_limit=2)
            )

    async def test_initialize_days(self, container):
        await setup_allotment(container, FRIDAY, 0, {})
        days = await container.allocation.initialize_days(HOTEL, ROOM_TYPE, FRIDAY, 3)
        assert [d.day for d in days] == [FRIDAY, SATURDAY, date(2025, 1, 12)]
        assert all(d.total_allocated == 0 for d in days)


@pytest.mark.asyncio
class TestRules:
    async def test_invalid_rule_is_rejected(self, container):
        await setup_allotment(container, FRIDAY, 0, {})
        with pytest.raises(InvalidAllocationError):
            await container.allocation.add_rule(
                HOTEL, ROOM_TYPE, AllocationRuleRequest(name="Vacía", rule_type=AllocationRuleType.FIXED)
            )

    async def test_apply_rule(self, container):
        await setup_allotment(container, FRIDAY, 0, {})
        rule = await container.allocation.add_rule(
            HOTEL,
            ROOM_TYPE,
            AllocationRuleRequest(
                name="Mezcla estándar",
                rule_type=AllocationRuleType.PERCENTAGE,
                percentage={"direct": 40, "booking_com": 35, "expedia": 25},
            ),
        )

        result = await container.allocation.apply_rule(HOTEL, ROOM_TYPE, rule.rule_id, FRIDAY, SATURDAY)

        assert result.days_processed == 2
        assert result.errors == []
        day = await container.ledger.get_day(HOTEL, ROOM_TYPE, SATURDAY)
        assert {c: b.allocated for c, b in day.channels.items()} == {"direct": 4, "booking_com": 3, "expedia": 2}

    async def test_reapplying_rule_is_idempotent(self, container):
        await setup_allotment(container, FRIDAY, 0, {})
        rule = await container.allocation.add_rule(
            HOTEL,
            ROOM_TYPE,
            AllocationRuleRequest(
                name="Mezcla estándar",
                rule_type=AllocationRuleType.PERCENTAGE,
                percentage={"direct": 40, "booking_com": 35, "expedia": 25},
            ),
        )
        await container.allocation.apply_rule(HOTEL, ROOM_TYPE, rule.rule_id, FRIDAY, SATURDAY)
        await container.ledger.book(HOTEL, ROOM_TYPE, FRIDAY, "direct", 2)
        await container.ledger.block(HOTEL, ROOM_TYPE, SATURDAY, "direct", 1)

        async def snapshot():
            days = await container.ledger.list_days(HOTEL, ROOM_TYPE, FRIDAY, SATURDAY)
            return {
                d.day: {c: (b.allocated, b.sold, b.blocked, b.overbooking) for c, b in d.channels.items()}
                for d in days
            }

        before = await snapshot()
        result = await container.allocation.apply_rule(HOTEL, ROOM_TYPE, rule.rule_id, FRIDAY, SATURDAY)

        assert result.days_processed == 2
        assert result.errors == []
        assert await snapshot() == before
        assert before[FRIDAY]["direct"] == (4, 2, 0, 0)
        assert before[SATURDAY]["direct"] == (4, 0, 1, 0)

    async def test_apply_rule_collects_errors_per_day(self, container):
        await setup_allotment(container, FRIDAY, 0, {})
        rule = await container.allocation.add_rule(
            HOTEL,
            ROOM_TYPE,
            AllocationRuleRequest(name="Excedida", rule_type=AllocationRuleType.FIXED, fixed={"direct": 11}),
        )

        result = await container.allocation.apply_rule(HOTEL, ROOM_TYPE, rule.rule_id, FRIDAY, SATURDAY)

        assert result.days_processed == 0
        assert [e["date"] for e in result.errors] == ["2025-01-10", "2025-01-11"]
        assert {e["code"] for e in result.errors} == {"INVALID_ALLOCATION"}

    async def test_unknown_rule(self, container):
        await setup_allotment(container, FRIDAY, 0, {})
        with pytest.raises(AllocationRuleNotFoundError):
            await container.allocation.apply_rule(HOTEL, ROOM_TYPE, "rule_missing", FRIDAY, FRIDAY)

    async def test_highest_priority_matching_rule_wins(self, container):
        await setup_allotment(container, FRIDAY, 0, {})
        await container.allocation.add_rule(
            HOTEL,
            ROOM_TYPE,
            AllocationRuleRequest(
                name="Base",
                rule_type=AllocationRuleType.PERCENTAGE,
                priority=1,
                percentage={"direct": 40, "booking_com": 35, "expedia": 25},
            ),
        )
        await container.allocation.add_rule(
            HOTEL,
            ROOM_TYPE,
            AllocationRuleRequest(
                name="Fin de semana directo",
                rule_type=AllocationRuleType.FIXED,
                priority=5,
                conditions={"days_of_week": ["saturday", "sunday"]},
                fixed={"direct": 8},
            ),
        )

        result = await container.allocation.apply_active_rules(HOTEL, ROOM_TYPE, FRIDAY, SATURDAY)

        assert result.days_processed == 2
        friday = await container.ledger.get_day(HOTEL, ROOM_TYPE, FRIDAY)
        saturday = await container.ledger.get_day(HOTEL, ROOM_TYPE, SATURDAY)
        assert friday.channels["direct"].allocated == 4
        assert saturday.channels["direct"].allocated == 8
        assert saturday.channels["booking_com"].allocated == 0

    async def test_deactivated_rule_is_skipped(self, container):
        await setup_allotment(container, FRIDAY, 0, {})
        rule = await container.allocation.add_rule(
            HOTEL,
            ROOM_TYPE,
            AllocationRuleRequest(name="Fijo", rule_type=AllocationRuleType.FIXED, fixed={"direct": 3}),
        )
        toggled = await container.allocation.deactivate_rule(HOTEL, ROOM_TYPE, rule.rule_id)
        assert toggled.is_active is False

        result = await container.allocation.apply_active_rules(HOTEL, ROOM_TYPE, FRIDAY, FRIDAY)
        assert result.days_processed == 0

        await container.allocation.activate_rule(HOTEL, ROOM_TYPE, rule.rule_id)
        result = await container.allocation.apply_active_rules(HOTEL, ROOM_TYPE, FRIDAY, FRIDAY)
        assert result.days_processed == 1


@pytest.mark.asyncio
class TestPerformance:
    async def _record(self, container, *channels: dict) -> None:
        await container.allocation.record_performance(
            HOTEL,
            ROOM_TYPE,
            PerformancePeriodRequest(period_start=date(2024, 12, 1), period_end=date(2024, 12, 31), channels=list(channels)),
        )

    async def test_recommendations(self, container):
        await setup_allotment(container, FRIDAY, 0, {})
        await self._record(
            container,
            {"channel_id": "booking_com", "utilization_rate": 95, "conversion_rate": 30},
            {"channel_id": "direct", "utilization_rate": 70},
            {"channel_id": "expedia", "utilization_rate": 40, "conversion_rate": 10},
        )

        recommendations = await container.allocation.generate_recommendations(HOTEL, ROOM_TYPE)

        assert [(r.channel_id, r.action) for r in recommendations] == [
            ("booking_com", "increase_allocation"),
            ("expedia", "decrease_allocation"),
            ("expedia", "adjust_rates"),
        ]

    async def test_no_performance_no_recommendations(self, container):
        await setup_allotment(container, FRIDAY, 0, {})
        assert await container.allocation.generate_recommendations(HOTEL, ROOM_TYPE) == []

    async def test_performance_history_is_capped(self, container):
        await setup_allotment(container, FRIDAY, 0, {})
        for _ in range(14):
            await self._record(container, {"channel_id": "direct", "utilization_rate": 50, "revenue": Decimal("100")})
        config = await container.allocation.get_allotment(HOTEL, ROOM_TYPE)
        assert len(config.performance) == 12

    async def test_optimized_rule_is_inactive(self, container):
        await setup_allotment(container, FRIDAY, 0, {})
        await self._record(
            container,
            {"channel_id": "booking_com", "utilization_rate": 95},
            {"channel_id": "direct", "utilization_rate": 70},
            {"channel_id": "expedia", "utilization_rate": 40},
        )

        rule = await container.allocation.propose_optimized_rule(HOTEL, ROOM_TYPE)

        assert rule.is_active is False
        assert rule.rule_type == AllocationRuleType.PERCENTAGE
        assert rule.percentage == {"booking_com": 49.0, "direct": 32.0, "expedia": 19.0}
        config = await container.allocation.get_allotment(HOTEL, ROOM_TYPE)
        assert config.find_rule(rule.rule_id) is not None
