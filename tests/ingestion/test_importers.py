"""
Tests for the monthly-balance and budget-value importers.

Covers:
- Amount parsing of numeric and grouped text cells
- Period column binding
- Per-cell error reporting with spreadsheet row numbers
- Unknown budget targets
- Feeding imported values into the budget overlay
"""

from decimal import Decimal

import pytest

from controller_engines.budget_overlay import build_budget_data
from controller_ingestion.adapters import CsvSourceAdapter
from controller_ingestion.importers import (
    ImportIssue,
    PeriodColumn,
    as_imported_component,
    import_budget_values,
    import_monthly_balances,
    parse_amount,
)
from controller_kernel.domain.dtos import MonthlyBalance

PERIODS = (PeriodColumn("Jan", 2024, 1), PeriodColumn("Feb", 2024, "February"))


class TestParseAmount:

    @pytest.mark.parametrize("raw, expected", [
        (10, Decimal("10")),
        (2.5, Decimal("2.5")),
        ("1234,56", Decimal("1234.56")),
        ("1.234,56", Decimal("1234.56")),
        ("R$ -1.000,00", Decimal("-1000.00")),
        ("  42 ", Decimal("42")),
        (Decimal("7.1"), Decimal("7.1")),
    ])
    def test_numbers(self, raw, expected):
        assert parse_amount(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", "   ", True])
    def test_blank(self, raw):
        assert parse_amount(raw) is None

    @pytest.mark.parametrize("raw", ["n/a", "-", "1-2"])
    def test_not_a_number(self, raw):
        with pytest.raises(ValueError):
            parse_amount(raw)


class TestPeriodColumn:

    def test_month_name_normalized(self):
        assert PERIODS[1].period == (2024, 2)

    def test_invalid_month(self):
        with pytest.raises(ValueError):
            PeriodColumn("X", 2024, 13)


class TestImportMonthlyBalances:

    def test_one_balance_per_filled_cell(self):
        rows = [
            {"Account": "1.1.01", "Jan": "100", "Feb": "110,5"},
            {"Account": "1.1.02", "Jan": "", "Feb": "-3"},
            {"Account": "", "Jan": "999", "Feb": "999"},
        ]

        result = import_monthly_balances(rows, "Account", PERIODS, "C1")

        assert result.success
        assert result.total_rows == 3
        assert result.records == (
            MonthlyBalance("C1", "1.1.01", 2024, 1, Decimal("100")),
            MonthlyBalance("C1", "1.1.01", 2024, 2, Decimal("110.5")),
            MonthlyBalance("C1", "1.1.02", 2024, 2, Decimal("-3")),
        )

    def test_bad_cells_reported_good_cells_kept(self, captured_logs):
        rows = [
            {"Account": "1.1.01", "Jan": "abc", "Feb": "5"},
        ]

        result = import_monthly_balances(rows, "Account", PERIODS, "C1")

        assert result.imported_count == 1
        assert result.error_count == 1
        assert result.issues[0] == ImportIssue(
            row=2, column="Jan", value="abc", reason="not a number: 'abc'"
        )
        assert any(r["message"] == "monthly_balances_imported" for r in captured_logs())

    def test_missing_columns(self):
        with pytest.raises(ValueError, match="Mar"):
            import_monthly_balances(
                [{"Account": "1", "Jan": "1"}], "Account", [PeriodColumn("Mar", 2024, 3)], "C1",
            )

    def test_empty_sheet(self):
        result = import_monthly_balances([], "Account", PERIODS, "C1")
        assert result.records == ()
        assert result.total_rows == 0

    def test_from_csv_file(self, tmp_path):
        path = tmp_path / "balances.csv"
        path.write_text("Conta;Jan;Feb\n1.1.01;1.500,00;\n", encoding="utf-8")

        rows = CsvSourceAdapter().read(path, {"delimiter": ";"})
        result = import_monthly_balances(rows, "Conta", PERIODS, "C9")

        assert result.records == (
            MonthlyBalance("C9", "1.1.01", 2024, 1, Decimal("1500.00")),
        )


class TestImportBudgetValues:

    ROWS = [
        {"Target": "3.1", "Jan": "100", "Feb": "200"},
        {"Target": "9.9", "Jan": "1", "Feb": "2"},
        {"Target": "4.1", "Jan": "-50", "Feb": "x"},
    ]

    def test_unknown_target_reported_once(self):
        result = import_budget_values(self.ROWS, "Target", PERIODS, known_targets={"3.1", "4.1"})

        assert [(v.target_id, v.month) for v in result.records] == [
            ("3.1", 1), ("3.1", 2), ("4.1", 1),
        ]
        assert [(i.row, i.column, i.reason) for i in result.issues] == [
            (3, "Target", "unknown budget target"),
            (4, "Feb", "not a number: 'x'"),
        ]

    def test_without_known_targets_everything_imports(self):
        result = import_budget_values(self.ROWS[:2], "Target", PERIODS)
        assert result.imported_count == 4

    def test_imported_component_feeds_overlay(self):
        result = import_budget_values(
            self.ROWS[:1] + [{"Target": "3.1", "Jan": "5", "Feb": ""}], "Target", PERIODS,
        )
        component = as_imported_component(result.records)
        assert component == {"3.1": {(2024, 1): Decimal("105"), (2024, 2): Decimal("200")}}

        data = build_budget_data(["3.1"], 2024, imported=component)
        assert data.get("3.1", (2024, 1)).imported == Decimal("105")
