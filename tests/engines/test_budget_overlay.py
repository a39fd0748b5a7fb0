"""
Tests for historical injection and the budget overlay.

Covers:
- Prior-year balances copied onto the same month of the budget year
- Zero-initialized two-year grid per target
- Component totals and weighted rollup onto statement nodes
- Manual edits and totals by origin
"""

from decimal import Decimal

from controller_engines.assumption_mapper import resolve_assumptions
from controller_engines.budget_overlay import (
    apply_budget,
    build_budget_data,
    totals_by_origin,
    with_manual_value,
)
from controller_engines.historical import inject_historical, reverse_index
from controller_engines.statement_tree import (
    StatementSources,
    build_statement_tree,
    find_node,
)
from controller_kernel.domain.budget import BudgetAssumptionValue, BudgetMapping
from controller_kernel.domain.dtos import (
    AccountMapping,
    LineKind,
    MonthlyBalance,
    StatementLineDefinition,
)
from controller_kernel.domain.values import BudgetComponents

MAPPINGS = (
    AccountMapping("3.1.01", "3.1"),
    AccountMapping("3.1.02", "3.1"),
    AccountMapping("4.1.01", "4.1"),
)


def balance(account, value, month=1, year=2024, company="C1"):
    return MonthlyBalance(company, account, year, month, Decimal(str(value)))


class TestHistorical:

    def test_reverse_index(self):
        index = reverse_index(MAPPINGS)
        assert index["3.1"] == frozenset({"3.1.01", "3.1.02"})

    def test_prior_year_lands_on_same_month(self):
        overlay = inject_historical(
            MAPPINGS,
            [balance("3.1.01", 100, month=5), balance("3.1.02", 20, month=5)],
            2025,
        )
        assert overlay.value("3.1", (2025, 5)) == Decimal("120")
        assert overlay.value("3.1", (2024, 5)) == Decimal("0")

    def test_other_years_and_unmapped_accounts(self):
        overlay = inject_historical(
            MAPPINGS,
            [balance("3.1.01", 100, year=2023), balance("9.9", 5)],
            2025,
        )
        assert overlay.historical == {}
        assert overlay.ignored_balances == 1

    def test_company_filter(self):
        overlay = inject_historical(
            MAPPINGS,
            [balance("4.1.01", 10, company="C1"), balance("4.1.01", 30, company="C2")],
            2025,
            companies={"C2"},
        )
        assert overlay.value("4.1", (2025, 1)) == Decimal("30")


class TestBuildBudgetData:

    def test_zero_initialized_two_years(self):
        data = build_budget_data(["3.1"], 2025)
        assert len(data.data["3.1"]) == 24
        assert data.get("3.1", (2024, 1)) == BudgetComponents()
        assert data.get("3.1", (2025, 12)).total == Decimal("0")

    def test_components_and_total(self):
        premises = resolve_assumptions(
            [BudgetMapping("m1", "units", "3.1")],
            [BudgetAssumptionValue("units", 2025, 3, Decimal("50"))],
            2025,
        )
        historical = inject_historical(MAPPINGS, [balance("3.1.01", 200, month=3)], 2025)

        data = build_budget_data(
            ["3.1"], 2025,
            premises=premises,
            historical=historical,
            manual={"3.1": {(2025, 3): Decimal("5")}},
            imported={"3.1": {(2025, 3): Decimal("1")}},
        )

        cell = data.get("3.1", (2025, 3))
        assert cell.premises == Decimal("50")
        assert cell.historical == Decimal("200")
        assert cell.manual == Decimal("5")
        assert cell.imported == Decimal("1")
        assert cell.total == Decimal("256")

    def test_unknown_target_reported(self):
        data = build_budget_data(["3.1"], 2025, manual={"7.7": {(2025, 1): Decimal("9")}})
        assert "7.7" not in data.data
        assert [d.subject for d in data.diagnostics] == ["7.7"]


class TestManualEdits:

    def test_manual_edit_updates_total(self):
        data = build_budget_data(["3.1"], 2025, imported={"3.1": {(2025, 2): Decimal("10")}})

        edited = with_manual_value(data, "3.1", 2025, 2, Decimal("15"))

        assert edited.get("3.1", (2025, 2)).total == Decimal("25")
        assert data.get("3.1", (2025, 2)).total == Decimal("10")

    def test_unknown_target_is_no_op(self, captured_logs):
        data = build_budget_data(["3.1"], 2025)

        assert with_manual_value(data, "8.8", 2025, 1, Decimal("1")) is data
        assert with_manual_value(data, "3.1", 2030, 1, Decimal("1")) is data
        assert any(r["message"] == "manual_value_target_unknown" for r in captured_logs())

    def test_totals_by_origin(self):
        data = build_budget_data(
            ["3.1", "4.1"], 2025,
            manual={"3.1": {(2025, 1): Decimal("5"), (2025, 2): Decimal("5")}},
            imported={"4.1": {(2025, 1): Decimal("-2")}},
        )
        totals = totals_by_origin(data)
        assert totals["manual"] == Decimal("10")
        assert totals["imported"] == Decimal("-2")
        assert totals["total"] == Decimal("8")
        assert totals_by_origin(data, months=[2])["total"] == Decimal("5")


class TestApplyBudget:

    DEFINITIONS = (
        StatementLineDefinition("gp", "Gross Profit", LineKind.TOTAL, 1),
        StatementLineDefinition("rev", "Revenue", LineKind.DATA, 1, "gp", source_account_ref="3.1"),
        StatementLineDefinition("cogs", "COGS", LineKind.DATA, 2, "gp",
                                rollup_weight=-1, source_account_ref="4.1"),
    )

    def test_budget_rolls_up_with_weights(self):
        forest = build_statement_tree(self.DEFINITIONS, StatementSources(), [2024, 2025]).forest
        data = build_budget_data(
            ["3.1", "4.1"], 2025,
            manual={"3.1": {(2025, 1): Decimal("1000")}, "4.1": {(2025, 1): Decimal("400")}},
        )

        budgeted = apply_budget(forest, data)

        gp = find_node(budgeted, "gp")
        assert gp.budget[(2025, 1)].total == Decimal("600")
        assert find_node(budgeted, "rev").budget[(2025, 1)].manual == Decimal("1000")
        assert find_node(forest, "gp").budget == {}
