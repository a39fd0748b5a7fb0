"""Tests for YAML fragment parsing into domain DTOs."""

from decimal import Decimal

import pytest

from controller_config.loader import (
    compute_checksum,
    load_yaml_file,
    parse_account_mapping,
    parse_assumption_value,
    parse_auxiliary_premise,
    parse_budget_mapping,
    parse_decimal,
    parse_ledger_entry,
    parse_rule,
    parse_statement_line,
    parse_statement_template,
    parse_transfer,
)
from controller_kernel.domain.budget import (
    CalculationMode,
    Classification,
    FixedRule,
    PremiseKind,
    TargetKind,
    VariableRule,
)
from controller_kernel.domain.dtos import EntryNature, LineKind, TransferDirection


class TestScalars:
    def test_decimal_from_float_has_no_binary_noise(self):
        assert parse_decimal(0.1) == Decimal("0.1")

    @pytest.mark.parametrize("raw", [None, True, "abc"])
    def test_decimal_rejects(self, raw):
        with pytest.raises(ValueError):
            parse_decimal(raw)

    def test_load_empty_yaml(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_yaml_file(path) == {}


class TestStatementLines:
    def test_parse_data_line(self):
        line = parse_statement_line(
            {"id": "rev", "label": "Revenue", "kind": "data", "order": 1,
             "parent": "gp", "account": "3.1", "weight": -1},
            template_id="dre",
        )
        assert line.kind == LineKind.DATA
        assert line.parent_id == "gp"
        assert line.rollup_weight == -1
        assert line.source_account_ref == "3.1"
        assert line.template_id == "dre"

    def test_data_line_requires_account(self):
        with pytest.raises(ValueError):
            parse_statement_line({"id": "rev", "label": "Revenue", "kind": "data", "order": 1})

    def test_missing_key(self):
        with pytest.raises(KeyError):
            parse_statement_line({"id": "gp", "kind": "total", "order": 1})

    def test_template_sets_template_id(self):
        lines = parse_statement_template({
            "id": "bp",
            "lines": [
                {"id": "assets", "label": "Assets", "kind": "total", "order": 1},
                {"id": "ops", "label": "Headcount", "kind": "operational", "order": 2,
                 "indicator": "HC"},
            ],
        })
        assert [line.template_id for line in lines] == ["bp", "bp"]
        assert lines[1].operational_indicator_ref == "HC"


class TestBudgetFragments:
    def test_parse_mapping_defaults(self):
        mapping = parse_budget_mapping({"id": "m1", "assumption": "units", "target": "3.1"})
        assert mapping.target_kind == TargetKind.STATEMENT_LINE
        assert mapping.calculation_mode == CalculationMode.DIRECT
        assert mapping.multiplier == Decimal("1")

    def test_parse_formula_mapping(self):
        mapping = parse_budget_mapping({
            "id": "m1", "assumption": "units", "target": "3.1",
            "mode": "formula", "formula": "units * unit_price", "department": "D1",
        })
        assert mapping.formula_hint == "units * unit_price"
        assert mapping.department_scope == "D1"

    def test_parse_value_with_month_name(self):
        value = parse_assumption_value(
            {"assumption": "units", "year": 2025, "month": "March", "value": "12.5"}
        )
        assert value.month == 3
        assert value.value == Decimal("12.5")

    def test_parse_premise(self):
        premise = parse_auxiliary_premise({
            "id": "p1", "name": "Average price", "kind": "unit_price",
            "target": "3.1", "year": 2025, "value": 9.9,
        })
        assert premise.kind == PremiseKind.UNIT_PRICE
        assert premise.month is None
        assert premise.value == Decimal("9.9")

    def test_parse_fixed_rule(self):
        rule = parse_rule({
            "id": "r1", "account": "4.1", "classification": "fixed",
            "window": 6, "correction": 4.5, "index": "IPCA",
        })
        assert rule.classification == Classification.FIXED
        assert rule.parameters == FixedRule(6, Decimal("4.5"), "IPCA")

    def test_parse_variable_rule(self):
        rule = parse_rule({
            "id": "r2", "account": "4.2", "classification": "variable",
            "reference_line": "rev", "percent": "2.5", "label": "Royalties",
        })
        assert rule.parameters == VariableRule("rev", Decimal("2.5"))
        assert rule.target_label == "Royalties"

    def test_parse_manual_rule_inactive(self):
        rule = parse_rule({"id": "r3", "account": "4.3", "classification": "manual",
                           "active": False})
        assert rule.classification == Classification.MANUAL
        assert rule.active is False

    def test_unclassified_has_no_rule(self):
        with pytest.raises(ValueError, match="unclassified"):
            parse_rule({"id": "r4", "account": "4.4", "classification": "unclassified"})


class TestRecords:
    def test_parse_ledger_entry(self):
        entry = parse_ledger_entry({
            "account": "4.1", "company": "C1", "year": 2024, "month": 2,
            "amount": "400", "nature": "debit", "cost_center": "CC1",
        })
        assert entry.nature == EntryNature.DEBIT
        assert entry.signed_amount == Decimal("-400")
        assert entry.cost_center_ref == "CC1"

    def test_parse_transfer_direction(self):
        transfer = parse_transfer({
            "company": "C1", "target_label": "Marketing", "year": 2024,
            "month": 1, "amount": 50, "direction": "origin",
        })
        assert transfer.direction == TransferDirection.ORIGIN
        assert transfer.signed_amount == Decimal("-50")

    def test_parse_account_mapping(self):
        mapping = parse_account_mapping({"ledger_account": "3.1.01", "statement_account": 3.1})
        assert mapping.statement_account_ref == "3.1"
        assert mapping.cost_center_ref is None


class TestChecksum:
    def test_deterministic_and_key_order_independent(self):
        assert compute_checksum({"a": 1, "b": [1, 2]}) == compute_checksum({"b": [1, 2], "a": 1})

    def test_changes_with_content(self):
        assert compute_checksum({"a": 1}) != compute_checksum({"a": 2})
