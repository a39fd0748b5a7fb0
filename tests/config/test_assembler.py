"""Tests for fragment-directory assembly and load_bundle validation."""

from decimal import Decimal

import pytest
import yaml

from controller_config import AssemblyError, load_bundle
from controller_config.assembler import assemble_from_directory
from controller_engines.statement_tree import build_statement_tree, find_node
from controller_kernel.exceptions import MappingCycleError, OrphanParentError

ROOT = {
    "bundle_id": "retail",
    "version": 3,
    "reporting": {"entity_name": "Retail Group", "hide_zero_lines": True},
    "budget": {"allowed_windows": [3, 12], "max_workers": 2},
}

STATEMENTS = {
    "templates": [{
        "id": "dre",
        "lines": [
            {"id": "gp", "label": "Gross Profit", "kind": "total", "order": 1},
            {"id": "rev", "label": "Revenue", "kind": "data", "order": 1,
             "parent": "gp", "account": "3.1"},
            {"id": "cogs", "label": "COGS", "kind": "data", "order": 2,
             "parent": "gp", "account": "4.1"},
        ],
    }],
    "analytical_accounts": [{"id": "3.1.01", "name": "Product sales", "group": "3.1"}],
    "account_names": {"4.1": "Cost of goods sold"},
}

ACCOUNTS = {
    "chart": [{"id": "3.1.01", "name": "Product sales"}, {"id": "4", "name": "Costs",
                                                          "analytical": False}],
    "mappings": [{"ledger_account": "3.1.01", "statement_account": "3.1"}],
}

BUDGET = {
    "assumptions": [{"id": "units", "name": "Units sold"}],
    "values": [{"assumption": "units", "year": 2025, "month": 1, "value": 100}],
    "mappings": [{"id": "m1", "assumption": "units", "target": "3.1", "multiplier": 12}],
    "rules": [{"id": "r1", "account": "4.1", "classification": "fixed", "window": 3}],
}

RECORDS = {
    "ledger": [
        {"account": "3.1.01", "company": "C1", "year": 2024, "month": 1,
         "amount": 1000, "nature": "credit"},
        {"account": "4.1", "company": "C1", "year": 2024, "month": 1,
         "amount": 400, "nature": "debit"},
    ],
    "balances": [{"company": "C1", "account": "3.1.01", "year": 2024, "month": 1,
                  "value": 1000}],
}


def write_fragments(directory, **fragments):
    for name, data in fragments.items():
        (directory / f"{name}.yaml").write_text(yaml.safe_dump(data))
    return directory


@pytest.fixture
def fragment_dir(tmp_path):
    return write_fragments(
        tmp_path, root=ROOT, statements=STATEMENTS, accounts=ACCOUNTS,
        budget=BUDGET, records=RECORDS,
    )


class TestAssembly:
    def test_full_bundle(self, fragment_dir):
        bundle = assemble_from_directory(fragment_dir)

        assert bundle.bundle_id == "retail"
        assert bundle.version == 3
        assert bundle.reporting.entity_name == "Retail Group"
        assert bundle.budget.allowed_windows == (3, 12)
        assert len(bundle.statement_lines) == 3
        assert [line.id for line in bundle.lines_of("dre")] == ["gp", "rev", "cogs"]
        assert bundle.account_names == {"4.1": "Cost of goods sold"}
        assert len(bundle.chart) == 2
        assert bundle.rules[0].parameters.window_months == 3
        assert bundle.assumption_values[0].value == Decimal("100")
        assert len(bundle.balances) == 1

    def test_statement_sources_build_a_statement(self, fragment_dir):
        bundle = assemble_from_directory(fragment_dir)
        result = build_statement_tree(bundle.lines_of("dre"), bundle.statement_sources(), [2024])
        assert find_node(result.forest, "gp").value((2024, 1)).actual == Decimal("600")

    def test_optional_fragments(self, tmp_path):
        bundle = assemble_from_directory(write_fragments(tmp_path, root={"bundle_id": "bare"}))
        assert bundle.statement_lines == ()
        assert bundle.reporting.entity_name == "Company"

    def test_checksum_tracks_content(self, tmp_path):
        first_dir, second_dir = tmp_path / "a", tmp_path / "b"
        first_dir.mkdir()
        second_dir.mkdir()
        first = assemble_from_directory(write_fragments(first_dir, root=ROOT))
        second = assemble_from_directory(write_fragments(second_dir, root=dict(ROOT, version=4)))
        again = assemble_from_directory(first_dir)
        assert first.checksum != second.checksum
        assert first.checksum == again.checksum


class TestAssemblyErrors:
    def test_missing_directory(self, tmp_path):
        with pytest.raises(AssemblyError):
            assemble_from_directory(tmp_path / "missing")

    def test_missing_root(self, tmp_path):
        with pytest.raises(AssemblyError, match="root.yaml"):
            assemble_from_directory(tmp_path)

    def test_root_without_bundle_id(self, tmp_path):
        with pytest.raises(AssemblyError, match="bundle_id"):
            assemble_from_directory(write_fragments(tmp_path, root={"version": 1}))

    def test_bad_entry_names_fragment(self, tmp_path):
        write_fragments(tmp_path, root=ROOT, budget={"rules": [{"id": "r1", "account": "4.1"}]})
        with pytest.raises(AssemblyError, match="budget.yaml: entry 0"):
            assemble_from_directory(tmp_path)

    def test_bad_settings(self, tmp_path):
        write_fragments(tmp_path, root={"bundle_id": "x", "budget": {"max_workers": 0}})
        with pytest.raises(AssemblyError, match="settings"):
            assemble_from_directory(tmp_path)

    def test_assembly_error_code(self):
        assert AssemblyError("x").code == "ASSEMBLY_FAILED"


class TestLoadBundle:
    def test_emits_config_trace(self, fragment_dir, captured_logs):
        bundle = load_bundle(fragment_dir)

        trace = next(r for r in captured_logs() if r["message"] == "CONTROLLER_CONFIG_TRACE")
        assert trace["bundle_id"] == "retail"
        assert trace["checksum"] == bundle.checksum
        assert trace["line_count"] == 3

    def test_orphan_parent_rejected(self, tmp_path):
        statements = {"templates": [{"id": "dre", "lines": [
            {"id": "rev", "label": "Revenue", "kind": "data", "order": 1,
             "parent": "missing", "account": "3.1"},
        ]}]}
        write_fragments(tmp_path, root=ROOT, statements=statements)
        with pytest.raises(OrphanParentError):
            load_bundle(tmp_path)
        assert load_bundle(tmp_path, validate=False).statement_lines[0].parent_id == "missing"

    def test_mapping_cycle_rejected(self, tmp_path):
        budget = {
            "assumptions": [{"id": "derived", "name": "Derived", "source_target": "3.1"}],
            "mappings": [{"id": "m1", "assumption": "derived", "target": "3.1"}],
        }
        write_fragments(tmp_path, root=ROOT, budget=budget)
        with pytest.raises(MappingCycleError):
            load_bundle(tmp_path)
