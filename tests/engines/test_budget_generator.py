"""
Tests for the budget generator.

Covers:
- Fixed, variable and manual projections
- One fetch per distinct lookup key
- Lookup failures degrading only the affected rules
- Cancellation
- Determinism and conversion to assumption values
"""

import threading
from decimal import Decimal

import pytest

from controller_engines.budget_generator import (
    BalanceHistorySource,
    BudgetGenerator,
    CancellationToken,
    StatementReferenceSource,
    as_assumption_values,
)
from controller_engines.budget_rules import BudgetRuleBook
from controller_engines.statement_tree import StatementSources
from controller_kernel.domain.budget import (
    BudgetRule,
    Classification,
    FixedRule,
    ManualRule,
    VariableRule,
)
from controller_kernel.domain.dtos import (
    AccountMapping,
    EntryNature,
    LedgerEntry,
    LineKind,
    MonthlyBalance,
    StatementLineDefinition,
)
from controller_kernel.exceptions import DataGapWarning, GenerationCancelledError


class FakeHistory:
    def __init__(self, amounts=None, fail_on=()):
        self.amounts = amounts or {}
        self.fail_on = set(fail_on)
        self.calls = []
        self._lock = threading.Lock()

    def monthly_amounts(self, account_ref, periods):
        with self._lock:
            self.calls.append((account_ref, periods))
        if account_ref in self.fail_on:
            raise ConnectionError("ledger unavailable")
        by_period = self.amounts.get(account_ref, {})
        return [by_period[p] for p in periods if p in by_period]


class FakeReference:
    def __init__(self, totals=None, on_call=None):
        self.totals = totals or {}
        self.on_call = on_call
        self.calls = []
        self._lock = threading.Lock()

    def trailing_total(self, line_id, periods):
        with self._lock:
            self.calls.append((line_id, periods))
        if self.on_call is not None:
            self.on_call()
        return self.totals.get(line_id, Decimal("0"))


def history_for(account, values_by_period):
    return FakeHistory({account: values_by_period})


def fixed(account, window=3, correction="10"):
    return BudgetRule(f"fixed-{account}", account, FixedRule(window, Decimal(correction)))


def variable(account, line="rev", percent="2.5"):
    return BudgetRule(
        f"var-{account}", account,
        VariableRule(line, Decimal(percent), reference_label="Net revenue"),
    )


class TestProjections:

    def test_fixed_average_with_correction(self):
        history = history_for("4.1", {
            (2024, 10): Decimal("-100"),
            (2024, 11): Decimal("150"),
            (2024, 12): Decimal("-200"),
        })
        generator = BudgetGenerator(history, FakeReference())

        result = generator.generate([fixed("4.1")], 2025)

        assert len(result.entries) == 12
        assert {e.computed_value for e in result.entries} == {Decimal("165.00")}
        first = result.entries[0]
        assert first.classification == Classification.FIXED
        assert first.note == "Average 3m (150.00) + 10%"
        assert first.breakdown["months_with_data"] == "3"
        assert result.diagnostics == ()

    def test_fixed_six_month_window(self):
        history = history_for("4.1", {
            (2024, 7): Decimal("100"), (2024, 8): Decimal("100"), (2024, 9): Decimal("100"),
            (2024, 10): Decimal("200"), (2024, 11): Decimal("200"), (2024, 12): Decimal("200"),
        })
        result = BudgetGenerator(history, FakeReference()).generate(
            [fixed("4.1", window=6)], 2025
        )
        assert result.entries[11].computed_value == Decimal("165.00")

    def test_fixed_skips_months_without_data(self):
        history = history_for("4.1", {(2024, 12): Decimal("90")})
        result = BudgetGenerator(history, FakeReference()).generate(
            [fixed("4.1", window=6, correction="0")], 2025
        )
        assert result.entries[0].computed_value == Decimal("90.00")

    def test_fixed_without_history(self):
        result = BudgetGenerator(FakeHistory(), FakeReference()).generate([fixed("4.1")], 2025)
        assert result.entries[0].computed_value == Decimal("0")
        assert result.entries[0].note == "No history available"
        assert isinstance(result.diagnostics[0], DataGapWarning)

    def test_variable_percent_of_reference(self):
        reference = FakeReference({"rev": Decimal("1200000")})
        result = BudgetGenerator(FakeHistory(), reference).generate([variable("4.2")], 2025)

        entry = result.entries[0]
        assert entry.computed_value == Decimal("30000.00")
        assert entry.note == "2.5% of Net revenue (1,200,000.00)"
        assert reference.calls[0][1][0] == (2024, 1)
        assert len(reference.calls[0][1]) == 12

    def test_variable_without_percent(self):
        rule = BudgetRule("v", "4.2", VariableRule("rev"))
        result = BudgetGenerator(FakeHistory(), FakeReference({"rev": Decimal("10")})).generate(
            [rule], 2025
        )
        assert result.entries[0].computed_value == Decimal("0")
        assert result.entries[0].note == "Percentage not set"

    def test_variable_without_reference_data(self):
        result = BudgetGenerator(FakeHistory(), FakeReference()).generate([variable("4.2")], 2025)
        assert result.entries[0].note == "2.5% of Net revenue (no data)"
        assert len(result.diagnostics) == 1

    def test_manual_is_zero(self):
        result = BudgetGenerator(FakeHistory(), FakeReference()).generate(
            [BudgetRule("m", "4.9", ManualRule(), target_label="Legal fees")], 2025
        )
        assert [e.month for e in result.entries] == list(range(1, 13))
        assert all(e.computed_value == Decimal("0") for e in result.entries)
        assert result.entries[0].note == "Manual entry"
        assert result.entries[0].target_label == "Legal fees"
        assert result.lookups == 0


class TestLookups:

    def test_each_reference_fetched_once(self):
        reference = FakeReference({"rev": Decimal("1000")})
        history = FakeHistory()
        rules = [variable("4.2"), variable("4.3"), fixed("4.1"), fixed("4.4")]

        result = BudgetGenerator(history, reference).generate(rules, 2025)

        assert len(reference.calls) == 1
        assert len(history.calls) == 2
        assert result.lookups == 3

    def test_failure_degrades_only_dependent_rules(self, captured_logs):
        history = FakeHistory(
            {"4.2": {(2024, 12): Decimal("50")}},
            fail_on={"4.1"},
        )
        result = BudgetGenerator(history, FakeReference()).generate(
            [fixed("4.1"), fixed("4.2", correction="0")], 2025
        )

        by_account = {e.target_account_ref: e for e in result.entries if e.month == 1}
        assert by_account["4.1"].computed_value == Decimal("0")
        assert by_account["4.2"].computed_value == Decimal("50.00")
        assert len(result.diagnostics) == 1
        assert "history lookup failed" in result.diagnostics[0].reason
        assert any(r["message"] == "budget_lookup_failed" for r in captured_logs())

    def test_worker_count_validated(self):
        with pytest.raises(ValueError):
            BudgetGenerator(FakeHistory(), FakeReference(), max_workers=0)


class TestCancellation:

    def test_cancelled_before_start(self):
        token = CancellationToken()
        token.cancel()
        with pytest.raises(GenerationCancelledError):
            BudgetGenerator(FakeHistory(), FakeReference()).generate(
                [BudgetRule("m", "4.9", ManualRule())], 2025, cancel_token=token
            )

    def test_cancelled_during_lookups(self):
        token = CancellationToken()
        reference = FakeReference({"rev": Decimal("1")}, on_call=token.cancel)
        with pytest.raises(GenerationCancelledError):
            BudgetGenerator(FakeHistory(), reference, max_workers=1).generate(
                [variable("4.2")], 2025, cancel_token=token
            )


class TestDeterminism:

    def test_identical_inputs_identical_output(self):
        def run():
            history = history_for("4.1", {(2024, 12): Decimal("33.333")})
            reference = FakeReference({"rev": Decimal("999.99")})
            rules = BudgetRuleBook([fixed("4.1"), variable("4.2"), BudgetRule("m", "4.0", ManualRule())])
            return BudgetGenerator(history, reference, max_workers=3).generate(rules, 2025)

        first, second = run(), run()
        assert first.entries == second.entries
        assert [e.target_account_ref for e in first.entries[::12]] == ["4.0", "4.1", "4.2"]

    def test_as_assumption_values_sums_per_month(self):
        history = FakeHistory({
            "4.1": {(2024, 12): Decimal("10")},
            "4.2": {(2024, 12): Decimal("5")},
        })
        result = BudgetGenerator(history, FakeReference()).generate(
            [fixed("4.1", correction="0"), fixed("4.2", correction="0")], 2025
        )

        values = as_assumption_values(result.entries, "opex", store="S1")
        assert len(values) == 12
        assert values[0].value == Decimal("15.00")
        assert values[0].store == "S1"
        only = as_assumption_values(result.entries, "opex", target_account_ref="4.2")
        assert only[5].value == Decimal("5.00")


class TestInMemorySources:

    def test_balance_history_through_mappings(self):
        source = BalanceHistorySource(
            [
                MonthlyBalance("C1", "4.1.01", 2024, 11, Decimal("10")),
                MonthlyBalance("C1", "4.1.02", 2024, 11, Decimal("5")),
                MonthlyBalance("C2", "4.1.01", 2024, 12, Decimal("7")),
            ],
            [AccountMapping("4.1.01", "4.1"), AccountMapping("4.1.02", "4.1")],
            companies={"C1"},
        )
        amounts = source.monthly_amounts("4.1", ((2024, 10), (2024, 11), (2024, 12)))
        assert amounts == [Decimal("15")]

    def test_unmapped_reference_reads_ledger_account(self):
        source = BalanceHistorySource([MonthlyBalance("C1", "9.9", 2024, 1, Decimal("3"))])
        assert source.monthly_amounts("9.9", ((2024, 1),)) == [Decimal("3")]

    def test_statement_reference_totals_actuals(self):
        definitions = (
            StatementLineDefinition("rev", "Revenue", LineKind.DATA, 1, source_account_ref="3.1"),
        )
        sources = StatementSources(ledger=(
            LedgerEntry("3.1", "C1", 2024, 3, Decimal("400"), EntryNature.CREDIT),
            LedgerEntry("3.1", "C1", 2024, 4, Decimal("100"), EntryNature.CREDIT),
        ))
        source = StatementReferenceSource(definitions, sources)
        assert source.trailing_total("rev", ((2024, 3), (2024, 4))) == Decimal("500")
        with pytest.raises(KeyError):
            source.trailing_total("missing", ((2024, 3),))
