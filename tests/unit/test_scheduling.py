"""
tests/unit/test_scheduling.py - Tests for moisture adjustment, scoring and rule-based generation.
"""

import random
from datetime import date, timedelta

import pytest

from gmpflow.core.enums import EquipmentStatus, ProcessType, QualityVerdict
from gmpflow.core.models import Equipment, Order, ProductionPlan
from gmpflow.errors import InvalidRecord
from gmpflow.providers.schemas import PlanDraft
from gmpflow.scheduling import (
    BASE_STAGE_HOURS,
    DRYING_EXTENSION_FACTOR,
    PlanningMode,
    PlanScorer,
    RuleBasedPlanGenerator,
    ScoringWeights,
    adjust_drying_duration,
    needs_extended_drying,
    rank,
    score_plan,
    stage_duration,
)
from gmpflow.validators import RULE_TOXICITY, validate

from conftest import T0, make_item


class TestMoistureAdjustment:
    """Drying extension rule."""

    def test_wet_batch_extends_drying_exactly(self):
        # 100 kg, standard 12%, detected 15%
        assert adjust_drying_duration(6.0, 15.0, 12.0) == 6.0 * 1.2

    def test_threshold_is_exclusive(self):
        assert adjust_drying_duration(6.0, 14.0, 12.0) == 6.0
        assert adjust_drying_duration(6.0, 14.01, 12.0) == 6.0 * DRYING_EXTENSION_FACTOR

    def test_missing_detection_uses_standard(self):
        assert adjust_drying_duration(6.0, None, 12.0) == 6.0

    def test_dry_batch_is_not_shortened(self):
        assert adjust_drying_duration(6.0, 5.0, 12.0) == 6.0

    def test_stage_duration_only_changes_drying(self, clean_order):
        wet = clean_order.with_perception(15.0, QualityVerdict.PASS)

        assert needs_extended_drying(wet)
        assert not needs_extended_drying(clean_order)
        assert stage_duration(ProcessType.DRYING, wet) == BASE_STAGE_HOURS[ProcessType.DRYING] * 1.2
        for process in (ProcessType.WASHING, ProcessType.STEAMING, ProcessType.CUTTING, ProcessType.PACKAGING):
            assert stage_duration(process, wet) == BASE_STAGE_HOURS[process]

    def test_stage_duration_custom_base(self, clean_order):
        wet = clean_order.with_perception(20.0, QualityVerdict.PASS)
        hours = dict(BASE_STAGE_HOURS)
        hours[ProcessType.DRYING] = 10.0
        assert stage_duration(ProcessType.DRYING, wet, hours) == 12.0


class TestPlanScorer:
    """KPI computation."""

    @pytest.fixture
    def items(self):
        return [
            make_item("ord-tox", "eq1", ProcessType.WASHING, 0, 2),
            make_item("ord-clean", "eq1", ProcessType.WASHING, 3, 5),
            make_item("ord-tox", "eq2", ProcessType.STEAMING, 2, 6),
            make_item("ord-clean", "eq2", ProcessType.STEAMING, 6, 10),
        ]

    def test_kpis(self, items, toxic_order, clean_order):
        plan = ProductionPlan("p", "P", items=tuple(items))

        kpis = PlanScorer().score(plan, [toxic_order, clean_order])

        assert kpis.total_duration_hours == 10.0
        assert kpis.cleaning_cycles == 2
        # busy 12h over 2 machines x 10h
        assert kpis.equipment_utilization_pct == 60.0
        assert kpis.deadline_adherence_pct == 100.0
        expected = 0.5 * 60.0 + 0.3 * (100.0 / 3) + 0.2 * 100.0
        assert kpis.composite_score == round(expected, 4)

    def test_score_independent_of_item_order(self, items, toxic_order, clean_order):
        orders = [toxic_order, clean_order]
        baseline = score_plan(ProductionPlan("p", "P", items=tuple(items)), orders)

        for seed in range(5):
            shuffled = list(items)
            random.Random(seed).shuffle(shuffled)
            assert score_plan(ProductionPlan("p", "P", items=tuple(shuffled)), list(reversed(orders))) == baseline

    def test_empty_plan(self):
        kpis = score_plan(ProductionPlan("p", "Empty"), [])
        assert kpis.total_duration_hours == 0.0
        assert kpis.equipment_utilization_pct == 0.0
        assert kpis.cleaning_cycles == 0
        assert kpis.composite_score == 50.0

    def test_cleaning_cycles_match_validator(self, toxic_order, clean_order, washer):
        plan = ProductionPlan("p", "P", items=(
            make_item("ord-tox", "eq1", ProcessType.WASHING, 0, 2),
            make_item("ord-clean", "eq1", ProcessType.WASHING, 2, 4),
        ))
        orders = [toxic_order, clean_order]

        report = validate(orders, [washer], plan)

        assert report.cleaning_cycles == 1
        assert score_plan(plan, orders).cleaning_cycles == report.cleaning_cycles

    def test_orders_required(self, items, toxic_order):
        plan = ProductionPlan("p", "P", items=tuple(items))

        with pytest.raises(InvalidRecord) as exc:
            score_plan(plan, [toxic_order])

        assert exc.value.details["order_ids"] == ["ord-clean"]
        with pytest.raises(TypeError):
            score_plan(plan)

    def test_late_order_lowers_adherence(self, toxic_order, clean_order):
        late = Order("ord-late", clean_order.material, 10.0, date(2023, 10, 31))
        plan = ProductionPlan("p", "P", items=(
            make_item("ord-late", "eq1", ProcessType.WASHING, 0, 1),
            make_item("ord-clean", "eq1", ProcessType.WASHING, 1, 2),
        ))

        kpis = score_plan(plan, [late, clean_order])

        assert kpis.deadline_adherence_pct == 50.0

    def test_weights_must_sum_to_one(self):
        with pytest.raises(ValueError):
            ScoringWeights(0.5, 0.5, 0.5)
        assert ScoringWeights(1.0, 0.0, 0.0).utilization == 1.0

    def test_rank_by_score_then_id(self):
        a = ProductionPlan("b-plan", "B", score=50.0)
        b = ProductionPlan("a-plan", "A", score=50.0)
        c = ProductionPlan("c-plan", "C", score=70.0)
        assert [p.plan_id for p in rank([a, b, c])] == ["c-plan", "a-plan", "b-plan"]


class TestRuleBasedGenerator:
    """Deterministic generation provider."""

    @pytest.mark.asyncio
    async def test_propose_returns_valid_drafts_for_both_modes(self, orders, equipment):
        generator = RuleBasedPlanGenerator()

        drafts = await generator.propose(orders, equipment)

        assert [d.plan_id for d in drafts] == ["plan-optimized", "plan-gmp_strict"]
        assert all(isinstance(d, PlanDraft) for d in drafts)
        assert all(d.kpis is not None for d in drafts)

    @pytest.mark.parametrize("mode", list(PlanningMode))
    def test_generated_plans_pass_validation(self, mode, orders, equipment):
        generated = RuleBasedPlanGenerator().build_plan(mode, orders, equipment)

        report = validate(orders, equipment, generated.plan)

        assert report.valid, [f.message for f in report.blocking]
        assert generated.skipped == []
        assert generated.plan.strategy == mode.value

    def test_toxic_batch_followed_by_cleaning(self, orders, equipment):
        plan = RuleBasedPlanGenerator().build_plan(PlanningMode.OPTIMIZED, orders, equipment).plan

        washer = plan.items_for_equipment("eq1")
        toxic_index = [i.order_id for i in washer].index("ord-102")
        following = washer[toxic_index + 1]
        assert following.start - washer[toxic_index].end >= timedelta(hours=1)
        assert "Cleaning cycle" in following.notes

    def test_gmp_strict_puts_toxic_orders_last(self, orders, equipment):
        plan = RuleBasedPlanGenerator().build_plan(PlanningMode.GMP_STRICT, orders, equipment).plan

        washer = plan.items_for_equipment("eq1")
        assert washer[-1].order_id == "ord-102"

    def test_extended_drying_for_wet_order(self, orders, equipment):
        wet = [orders[0].with_perception(20.0, QualityVerdict.PASS)] + orders[1:]

        plan = RuleBasedPlanGenerator().build_plan(PlanningMode.OPTIMIZED, wet, equipment).plan

        drying = [i for i in plan.items_for_order("ord-101") if i.process_type is ProcessType.DRYING][0]
        assert drying.duration_hours == pytest.approx(6.0 * 1.2)
        assert "Drying extended" in drying.notes

    def test_starts_at_horizon(self, orders, equipment):
        plan = RuleBasedPlanGenerator().build_plan(PlanningMode.OPTIMIZED, orders, equipment).plan
        assert min(i.start for i in plan.items) == T0

    def test_skips_orders_without_capable_machine(self, orders, equipment):
        no_dryer = [e for e in equipment if e.process_type is not ProcessType.DRYING]

        generated = RuleBasedPlanGenerator().build_plan(PlanningMode.OPTIMIZED, orders, no_dryer)

        assert generated.plan.items == ()
        assert sorted(oid for oid, _ in generated.skipped) == sorted(o.order_id for o in orders)
        assert "Unscheduled" in generated.plan.description

    def test_maintenance_machine_not_used(self, orders, equipment):
        spare = Equipment("eq6", "Washer A2", ProcessType.WASHING, 500.0)
        machines = [equipment[0].with_status(EquipmentStatus.MAINTENANCE)] + equipment[1:] + [spare]

        plan = RuleBasedPlanGenerator().build_plan(PlanningMode.OPTIMIZED, orders, machines).plan

        assert "eq1" not in plan.equipment_ids
        assert "eq6" in plan.equipment_ids
        assert validate(orders, machines, plan).by_rule(RULE_TOXICITY) == []

    def test_deterministic(self, orders, equipment):
        generator = RuleBasedPlanGenerator()
        first = generator.build_plan(PlanningMode.OPTIMIZED, orders, equipment).plan
        second = generator.build_plan(PlanningMode.OPTIMIZED, list(reversed(orders)), equipment).plan
        assert first == second
