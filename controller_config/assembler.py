"""
controller_config.assembler -- composes YAML fragments into one ConfigBundle.

Responsibility:
    Controllers edit small YAML fragments (statement layout, account
    mappings, budget drivers and rules).  This module composes them into a
    single frozen ``ConfigBundle`` holding the domain DTOs the engines
    consume, plus the reporting and budget settings.

Architecture position:
    Configuration -- reads the filesystem (I/O boundary).  The resulting
    ``ConfigBundle`` is a pure, frozen data structure.

Fragment structure::

    bundles/retail-2024/
    +-- root.yaml              # bundle_id, version, reporting / budget settings
    +-- statements.yaml        # templates, analytical accounts, account names
    +-- accounts.yaml          # chart of accounts and account mappings
    +-- budget.yaml            # assumptions, values, mappings, premises, rules
    +-- records.yaml           # ledger, adjustments, indicators, balances (optional)

Invariants enforced:
    - ``root.yaml`` must exist in every fragment directory.
    - A deterministic SHA-256 checksum is computed over all fragment data.
    - All parsed structures are immutable frozen dataclasses.

Failure modes:
    - ``AssemblyError`` -- fragment directory or ``root.yaml`` missing, or a
      fragment entry cannot be parsed.
    - ``yaml.YAMLError`` (propagated from loader) -- invalid YAML syntax.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from controller_config.loader import (
    compute_checksum,
    load_yaml_file,
    parse_account_mapping,
    parse_adjustment,
    parse_analytical_account,
    parse_assumption,
    parse_assumption_value,
    parse_auxiliary_premise,
    parse_budget_mapping,
    parse_cash_adjustment,
    parse_chart_account,
    parse_indicator_value,
    parse_ledger_entry,
    parse_monthly_balance,
    parse_rule,
    parse_statement_template,
    parse_transfer,
)
from controller_engines.statement_tree import StatementSources
from controller_kernel.domain.budget import (
    AuxiliaryPremise,
    BudgetAssumption,
    BudgetAssumptionValue,
    BudgetMapping,
    BudgetRule,
)
from controller_kernel.domain.dtos import (
    AccountMapping,
    AdjustmentEntry,
    AnalyticalAccount,
    CashAdjustmentEntry,
    ChartAccount,
    LedgerEntry,
    MonthlyBalance,
    OperationalIndicatorValue,
    StatementLineDefinition,
    TransferEntry,
)
from controller_kernel.exceptions import ConfigurationError
from controller_modules.budget.config import BudgetConfig
from controller_modules.reporting.config import ReportingConfig


class AssemblyError(ConfigurationError):
    """Error during fragment assembly.

    Contract:
        Raised when a fragment directory is missing, ``root.yaml`` is
        absent, or any entry within a fragment cannot be parsed.

    Non-goals:
        Does not enumerate all individual field-level parse errors; the
        first fatal issue aborts assembly.
    """

    code: str = "ASSEMBLY_FAILED"


@dataclass(frozen=True)
class ConfigBundle:
    """Everything needed to build statements and budgets for one entity."""

    bundle_id: str
    version: int
    checksum: str
    reporting: ReportingConfig
    budget: BudgetConfig
    statement_lines: tuple[StatementLineDefinition, ...] = ()
    analytical_accounts: tuple[AnalyticalAccount, ...] = ()
    account_names: dict[str, str] = field(default_factory=dict)
    chart: tuple[ChartAccount, ...] = ()
    account_mappings: tuple[AccountMapping, ...] = ()
    assumptions: tuple[BudgetAssumption, ...] = ()
    assumption_values: tuple[BudgetAssumptionValue, ...] = ()
    budget_mappings: tuple[BudgetMapping, ...] = ()
    auxiliary_premises: tuple[AuxiliaryPremise, ...] = ()
    rules: tuple[BudgetRule, ...] = ()
    ledger: tuple[LedgerEntry, ...] = ()
    adjustments: tuple[AdjustmentEntry, ...] = ()
    cash_adjustments: tuple[CashAdjustmentEntry, ...] = ()
    transfers: tuple[TransferEntry, ...] = ()
    indicators: tuple[OperationalIndicatorValue, ...] = ()
    balances: tuple[MonthlyBalance, ...] = ()

    def statement_sources(self) -> StatementSources:
        return StatementSources(
            ledger=self.ledger,
            adjustments=self.adjustments,
            cash_adjustments=self.cash_adjustments,
            transfers=self.transfers,
            indicators=self.indicators,
            analytical_accounts=self.analytical_accounts,
            account_names=dict(self.account_names),
        )

    def lines_of(self, template_id: str) -> tuple[StatementLineDefinition, ...]:
        return tuple(d for d in self.statement_lines if d.template_id == template_id)


def _load_optional(path: Path) -> dict[str, Any]:
    return load_yaml_file(path) if path.exists() else {}


def _parse_all(fragment: str, parser, items: list[Any]) -> tuple:
    parsed = []
    for index, item in enumerate(items):
        try:
            parsed.append(parser(item))
        except (KeyError, ValueError, TypeError) as exc:
            raise AssemblyError(
                f"{fragment}: entry {index} could not be parsed: {exc}"
            ) from exc
    return tuple(parsed)


def assemble_from_directory(fragment_dir: Path) -> ConfigBundle:
    """Compose fragments from a directory into one ConfigBundle.

    Preconditions:
        - ``fragment_dir`` is an existing directory.
        - ``fragment_dir / "root.yaml"`` exists and contains ``bundle_id``.

    Returns:
        Assembled ``ConfigBundle`` with a deterministic SHA-256 ``checksum``.

    Raises:
        AssemblyError: If required fragments are missing or malformed.
    """
    if not fragment_dir.is_dir():
        raise AssemblyError(f"Fragment directory not found: {fragment_dir}")

    # 1. Load root.yaml (required)
    root_path = fragment_dir / "root.yaml"
    if not root_path.exists():
        raise AssemblyError(f"root.yaml not found in {fragment_dir}")
    root_data = load_yaml_file(root_path)
    if "bundle_id" not in root_data:
        raise AssemblyError(f"root.yaml in {fragment_dir} has no bundle_id")

    # 2. Optional fragments
    statements_data = _load_optional(fragment_dir / "statements.yaml")
    accounts_data = _load_optional(fragment_dir / "accounts.yaml")
    budget_data = _load_optional(fragment_dir / "budget.yaml")
    records_data = _load_optional(fragment_dir / "records.yaml")

    # 3. Statement structure
    lines: list[StatementLineDefinition] = []
    for index, template in enumerate(statements_data.get("templates", [])):
        try:
            lines.extend(parse_statement_template(template))
        except (KeyError, ValueError, TypeError) as exc:
            raise AssemblyError(
                f"statements.yaml: template {index} could not be parsed: {exc}"
            ) from exc

    # 4. Settings
    try:
        reporting = ReportingConfig.from_dict(root_data.get("reporting", {}))
        budget = BudgetConfig.from_dict(root_data.get("budget", {}))
    except (TypeError, ValueError) as exc:
        raise AssemblyError(f"root.yaml settings are invalid: {exc}") from exc

    # 5. Checksum over all fragment data
    checksum = compute_checksum({
        "root": root_data,
        "statements": statements_data,
        "accounts": accounts_data,
        "budget": budget_data,
        "records": records_data,
    })

    return ConfigBundle(
        bundle_id=str(root_data["bundle_id"]),
        version=int(root_data.get("version", 1)),
        checksum=checksum,
        reporting=reporting,
        budget=budget,
        statement_lines=tuple(lines),
        analytical_accounts=_parse_all(
            "statements.yaml", parse_analytical_account,
            statements_data.get("analytical_accounts", []),
        ),
        account_names={
            str(k): str(v) for k, v in statements_data.get("account_names", {}).items()
        },
        chart=_parse_all(
            "accounts.yaml", parse_chart_account, accounts_data.get("chart", []),
        ),
        account_mappings=_parse_all(
            "accounts.yaml", parse_account_mapping, accounts_data.get("mappings", []),
        ),
        assumptions=_parse_all(
            "budget.yaml", parse_assumption, budget_data.get("assumptions", []),
        ),
        assumption_values=_parse_all(
            "budget.yaml", parse_assumption_value, budget_data.get("values", []),
        ),
        budget_mappings=_parse_all(
            "budget.yaml", parse_budget_mapping, budget_data.get("mappings", []),
        ),
        auxiliary_premises=_parse_all(
            "budget.yaml", parse_auxiliary_premise, budget_data.get("premises", []),
        ),
        rules=_parse_all("budget.yaml", parse_rule, budget_data.get("rules", [])),
        ledger=_parse_all(
            "records.yaml", parse_ledger_entry, records_data.get("ledger", []),
        ),
        adjustments=_parse_all(
            "records.yaml", parse_adjustment, records_data.get("adjustments", []),
        ),
        cash_adjustments=_parse_all(
            "records.yaml", parse_cash_adjustment, records_data.get("cash_adjustments", []),
        ),
        transfers=_parse_all(
            "records.yaml", parse_transfer, records_data.get("transfers", []),
        ),
        indicators=_parse_all(
            "records.yaml", parse_indicator_value, records_data.get("indicators", []),
        ),
        balances=_parse_all(
            "records.yaml", parse_monthly_balance, records_data.get("balances", []),
        ),
    )
