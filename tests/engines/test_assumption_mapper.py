"""
Tests for the assumption mapper (premises component).

Covers:
- Direct, percentage and formula calculation modes
- Additive merge of several mappings on one target
- Formula fallback diagnostics
- Store / department scope
- Mapping-graph cycle detection and duplicate assumption values
"""

from decimal import Decimal

import pytest

from controller_engines.accumulator import ScopeFilter
from controller_engines.assumption_mapper import (
    check_mapping_graph,
    resolve_assumptions,
)
from controller_kernel.domain.budget import (
    AuxiliaryPremise,
    BudgetAssumption,
    BudgetAssumptionValue,
    BudgetMapping,
    CalculationMode,
    PremiseKind,
    TargetKind,
)
from controller_kernel.exceptions import (
    CalculationFallback,
    DuplicateAssumptionValueError,
    MappingCycleError,
)


def value(assumption, amount, month=1, year=2025, store=None, department=None):
    return BudgetAssumptionValue(
        assumption_id=assumption,
        year=year,
        month=month,
        value=Decimal(str(amount)),
        store=store,
        department=department,
    )


def mapping(id, assumption, target, mode=CalculationMode.DIRECT, multiplier="1", **kw):
    return BudgetMapping(
        id=id,
        assumption_id=assumption,
        target_id=target,
        calculation_mode=mode,
        multiplier=Decimal(multiplier),
        **kw,
    )


class TestCalculationModes:

    def test_direct_multiplies(self):
        overlay = resolve_assumptions(
            [mapping("m1", "units", "3.1", multiplier="2.5")],
            [value("units", 100)],
            2025,
        )
        assert overlay.value("3.1", (2025, 1)) == Decimal("250.0")

    def test_percentage_divides_by_hundred(self):
        overlay = resolve_assumptions(
            [mapping("m1", "growth", "4.1", CalculationMode.PERCENTAGE, multiplier="10")],
            [value("growth", 5, month=6)],
            2025,
        )
        assert overlay.value("4.1", (2025, 6)) == Decimal("0.5")

    def test_formula_uses_unit_price_premise(self):
        premise = AuxiliaryPremise(
            id="p1", name="Average price", kind=PremiseKind.UNIT_PRICE,
            target_id="3.1", year=2025, value=Decimal("12"),
        )
        overlay = resolve_assumptions(
            [mapping("m1", "units", "3.1", CalculationMode.FORMULA,
                     formula_hint="units * unit_price")],
            [value("units", 10, month=4)],
            2025,
            auxiliary_premises=[premise],
        )
        assert overlay.value("3.1", (2025, 4)) == Decimal("120")
        assert overlay.diagnostics == ()

    def test_month_specific_premise_wins(self):
        premises = [
            AuxiliaryPremise("p1", "Year price", PremiseKind.UNIT_PRICE, "3.1", 2025, Decimal("10")),
            AuxiliaryPremise("p2", "March price", PremiseKind.UNIT_PRICE, "3.1", 2025, Decimal("11"), month=3),
        ]
        overlay = resolve_assumptions(
            [mapping("m1", "units", "3.1", CalculationMode.FORMULA, formula_hint="average_price")],
            [value("units", 2, month=3), value("units", 2, month=4)],
            2025,
            auxiliary_premises=premises,
        )
        assert overlay.value("3.1", (2025, 3)) == Decimal("22")
        assert overlay.value("3.1", (2025, 4)) == Decimal("20")

    def test_formula_without_premise_falls_back(self):
        overlay = resolve_assumptions(
            [mapping("m1", "units", "3.1", CalculationMode.FORMULA,
                     multiplier="3", formula_hint="unit_price")],
            [value("units", 10, month=2)],
            2025,
        )
        assert overlay.value("3.1", (2025, 2)) == Decimal("30")
        assert overlay.diagnostics == (CalculationFallback("m1", "3.1", (2025, 2)),)

    def test_formula_without_keyword_falls_back(self):
        premise = AuxiliaryPremise("p1", "Price", PremiseKind.UNIT_PRICE, "3.1", 2025, Decimal("9"))
        overlay = resolve_assumptions(
            [mapping("m1", "units", "3.1", CalculationMode.FORMULA, formula_hint="units * 2")],
            [value("units", 10)],
            2025,
            auxiliary_premises=[premise],
        )
        assert overlay.value("3.1", (2025, 1)) == Decimal("10")
        assert len(overlay.diagnostics) == 1


class TestMerge:

    def test_several_mappings_add_up(self):
        overlay = resolve_assumptions(
            [
                mapping("m1", "store_sales", "3.1"),
                mapping("m2", "web_sales", "3.1"),
            ],
            [value("store_sales", 100), value("web_sales", 40)],
            2025,
        )
        assert overlay.value("3.1", (2025, 1)) == Decimal("140")

    def test_other_years_ignored(self):
        overlay = resolve_assumptions(
            [mapping("m1", "units", "3.1")],
            [value("units", 100, year=2024)],
            2025,
        )
        assert overlay.premises == {}

    def test_target_kinds_recorded(self):
        overlay = resolve_assumptions(
            [mapping("m1", "heads", "HC", target_kind=TargetKind.OPERATIONAL_INDICATOR)],
            [value("heads", 12)],
            2025,
        )
        assert overlay.target_kinds["HC"] == TargetKind.OPERATIONAL_INDICATOR


class TestScope:

    VALUES = [
        value("units", 10, store="S1", department="D1"),
        value("units", 20, store="S2", department="D2"),
    ]

    def test_store_filter(self):
        overlay = resolve_assumptions(
            [mapping("m1", "units", "3.1")], self.VALUES, 2025, ScopeFilter(company="S2"),
        )
        assert overlay.value("3.1", (2025, 1)) == Decimal("20")

    def test_mapping_department_overrides_scope(self):
        overlay = resolve_assumptions(
            [mapping("m1", "units", "3.1", department_scope="D1")],
            self.VALUES,
            2025,
            ScopeFilter(departments=frozenset({"D2"})),
        )
        assert overlay.value("3.1", (2025, 1)) == Decimal("10")


class TestGraphChecks:

    def test_duplicate_values_rejected(self):
        with pytest.raises(DuplicateAssumptionValueError):
            resolve_assumptions(
                [mapping("m1", "units", "3.1")],
                [value("units", 1), value("units", 2)],
                2025,
            )

    def test_cycle_rejected_before_computation(self):
        assumptions = [BudgetAssumption("derived", "Derived", source_target_id="3.1")]
        mappings = [mapping("m1", "derived", "3.1")]
        with pytest.raises(MappingCycleError) as exc:
            resolve_assumptions(mappings, [value("derived", 1)], 2025, assumptions=assumptions)
        assert "target:3.1" in exc.value.nodes

    def test_chain_without_cycle_is_ordered(self):
        assumptions = [BudgetAssumption("margin_base", "Margin base", source_target_id="3.1")]
        mappings = [
            mapping("m1", "units", "3.1"),
            mapping("m2", "margin_base", "5.1"),
        ]
        order = check_mapping_graph(mappings, assumptions)
        assert order.index("target:3.1") < order.index("assumption:margin_base")
        assert order.index("assumption:margin_base") < order.index("target:5.1")
