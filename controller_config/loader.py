"""
Configuration Loader (``controller_config.loader``).

Responsibility
--------------
Loads individual YAML fragment files and parses them into the typed domain
DTOs of ``controller_kernel.domain``: statement line definitions, account
mappings, analytical accounts, budget assumptions, assumption values,
budget mappings, auxiliary premises, budget rules and the transactional
record types used by fixtures.

Architecture position
---------------------
**Config layer** -- infrastructure tooling.  The loader is consumed by
``controller_config.assembler`` when a fragment directory is assembled
into a ``ConfigBundle``.  It depends on the kernel domain only.

Invariants enforced
-------------------
* All parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; no silent defaults for required fields.
* Amounts are parsed through ``str`` into ``Decimal`` so YAML floats never
  carry binary rounding noise into a statement.
* Months accept numbers or English month names.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys in parsed dict  -> ``KeyError`` propagates.
* Invalid enum value or month  -> ``ValueError``.

Audit relevance
---------------
``compute_checksum`` lets a controller verify that the statement layout
and budget rules in use match a known, version-controlled baseline.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from controller_kernel.domain.budget import (
    AuxiliaryPremise,
    BudgetAssumption,
    BudgetAssumptionValue,
    BudgetMapping,
    BudgetRule,
    CalculationMode,
    Classification,
    FixedRule,
    ManualRule,
    PremiseKind,
    TargetKind,
    ValueKind,
    VariableRule,
)
from controller_kernel.domain.dtos import (
    AccountMapping,
    AdjustmentEntry,
    AnalyticalAccount,
    CashAdjustmentEntry,
    ChartAccount,
    EntryNature,
    LedgerEntry,
    LineKind,
    MonthlyBalance,
    OperationalIndicatorValue,
    StatementLineDefinition,
    TransferDirection,
    TransferEntry,
)
from controller_kernel.domain.periods import normalize_month


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Preconditions:
        - ``path`` must point to an existing, readable YAML file.
    Postconditions:
        - Returns a ``dict`` (possibly empty if the YAML is empty).
    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


# ---------------------------------------------------------------------------
# Scalars
# ---------------------------------------------------------------------------


def parse_decimal(value: Any) -> Decimal:
    """Parse a Decimal from a YAML scalar (int, float, str or Decimal)."""
    if isinstance(value, bool) or value is None:
        raise ValueError(f"Cannot parse decimal from {value!r}")
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"Cannot parse decimal from {value!r}") from exc


def _optional_decimal(value: Any) -> Decimal | None:
    return None if value is None else parse_decimal(value)


def _optional_str(value: Any) -> str | None:
    return None if value is None else str(value)


def _month(data: dict[str, Any]) -> int:
    return normalize_month(data["month"])


# ---------------------------------------------------------------------------
# Statement structure
# ---------------------------------------------------------------------------


def parse_statement_line(
    data: dict[str, Any], template_id: str | None = None,
) -> StatementLineDefinition:
    """
    Parse a ``StatementLineDefinition`` from a dict.

    Preconditions:
        - ``data`` must contain ``id``, ``label``, ``kind`` and ``order``.
    Raises:
        KeyError: if a required key is missing.
        ValueError: if ``kind`` is unknown or the binding is inconsistent.
    """
    return StatementLineDefinition(
        id=str(data["id"]),
        label=str(data["label"]),
        kind=LineKind(data["kind"]),
        order=int(data["order"]),
        parent_id=_optional_str(data.get("parent")),
        sign=int(data.get("sign", 1)),
        rollup_weight=int(data.get("weight", 1)),
        source_account_ref=_optional_str(data.get("account")),
        operational_indicator_ref=_optional_str(data.get("indicator")),
        template_id=_optional_str(data.get("template", template_id)),
    )


def parse_statement_template(data: dict[str, Any]) -> tuple[StatementLineDefinition, ...]:
    """Parse a template block: ``{id: ..., lines: [...]}``."""
    template_id = _optional_str(data.get("id"))
    return tuple(
        parse_statement_line(line, template_id) for line in data.get("lines", [])
    )


def parse_account_mapping(data: dict[str, Any]) -> AccountMapping:
    return AccountMapping(
        ledger_account_ref=str(data["ledger_account"]),
        statement_account_ref=str(data["statement_account"]),
        cost_center_ref=_optional_str(data.get("cost_center")),
    )


def parse_analytical_account(data: dict[str, Any]) -> AnalyticalAccount:
    return AnalyticalAccount(
        id=str(data["id"]),
        name=str(data["name"]),
        group_ref=str(data["group"]),
    )


def parse_chart_account(data: dict[str, Any]) -> ChartAccount:
    return ChartAccount(
        id=str(data["id"]),
        name=str(data["name"]),
        is_analytical=bool(data.get("analytical", True)),
    )


# ---------------------------------------------------------------------------
# Budget configuration
# ---------------------------------------------------------------------------


def parse_assumption(data: dict[str, Any]) -> BudgetAssumption:
    return BudgetAssumption(
        id=str(data["id"]),
        name=str(data["name"]),
        value_kind=ValueKind(data.get("value_kind", ValueKind.NUMBER.value)),
        source_target_id=_optional_str(data.get("source_target")),
    )


def parse_assumption_value(data: dict[str, Any]) -> BudgetAssumptionValue:
    return BudgetAssumptionValue(
        assumption_id=str(data["assumption"]),
        year=int(data["year"]),
        month=_month(data),
        value=parse_decimal(data["value"]),
        store=_optional_str(data.get("store")),
        department=_optional_str(data.get("department")),
    )


def parse_budget_mapping(data: dict[str, Any]) -> BudgetMapping:
    """
    Parse a ``BudgetMapping`` from a dict.

    Preconditions:
        - ``data`` must contain ``id``, ``assumption`` and ``target``.
    """
    return BudgetMapping(
        id=str(data["id"]),
        assumption_id=str(data["assumption"]),
        target_id=str(data["target"]),
        target_kind=TargetKind(data.get("target_kind", TargetKind.STATEMENT_LINE.value)),
        calculation_mode=CalculationMode(data.get("mode", CalculationMode.DIRECT.value)),
        multiplier=parse_decimal(data.get("multiplier", 1)),
        department_scope=_optional_str(data.get("department")),
        formula_hint=_optional_str(data.get("formula")),
    )


def parse_auxiliary_premise(data: dict[str, Any]) -> AuxiliaryPremise:
    return AuxiliaryPremise(
        id=str(data["id"]),
        name=str(data["name"]),
        kind=PremiseKind(data["kind"]),
        target_id=str(data["target"]),
        year=int(data["year"]),
        value=parse_decimal(data["value"]),
        month=normalize_month(data["month"]) if data.get("month") is not None else None,
        company=_optional_str(data.get("company")),
        department=_optional_str(data.get("department")),
    )


def parse_rule(data: dict[str, Any]) -> BudgetRule:
    """
    Parse a ``BudgetRule`` from a dict.

    ``classification`` selects the variant: ``fixed`` reads ``window``,
    ``correction`` and ``index``; ``variable`` reads ``reference_line``,
    ``percent`` and ``reference_label``; ``manual`` reads nothing.

    Raises:
        ValueError: for ``unclassified`` or an unknown classification.
    """
    classification = Classification(data["classification"])
    if classification == Classification.FIXED:
        parameters = FixedRule(
            window_months=int(data.get("window", 12)),
            correction_percent=parse_decimal(data.get("correction", 0)),
            correction_index=_optional_str(data.get("index")),
        )
    elif classification == Classification.VARIABLE:
        parameters = VariableRule(
            reference_line_id=str(data["reference_line"]),
            reference_percent=_optional_decimal(data.get("percent")),
            reference_label=_optional_str(data.get("reference_label")),
        )
    elif classification == Classification.MANUAL:
        parameters = ManualRule()
    else:
        raise ValueError(
            f"Rule {data.get('id')!r}: an unclassified account has no rule entry"
        )
    return BudgetRule(
        id=str(data["id"]),
        target_account_ref=str(data["account"]),
        parameters=parameters,
        target_label=_optional_str(data.get("label")),
        active=bool(data.get("active", True)),
    )


# ---------------------------------------------------------------------------
# Transactional records
# ---------------------------------------------------------------------------


def parse_ledger_entry(data: dict[str, Any]) -> LedgerEntry:
    return LedgerEntry(
        account_ref=str(data["account"]),
        company_ref=str(data["company"]),
        year=int(data["year"]),
        month=_month(data),
        amount=parse_decimal(data["amount"]),
        nature=EntryNature(data["nature"]),
        cost_center_ref=_optional_str(data.get("cost_center")),
    )


def _entry_fields(data: dict[str, Any]) -> dict[str, Any]:
    return {
        "company_ref": str(data["company"]),
        "target_account_label": str(data.get("target_label", "")),
        "year": int(data["year"]),
        "month": _month(data),
        "amount": parse_decimal(data["amount"]),
        "target_line_id": _optional_str(data.get("target_line")),
        "department_ref": _optional_str(data.get("department")),
    }


def parse_adjustment(data: dict[str, Any]) -> AdjustmentEntry:
    return AdjustmentEntry(**_entry_fields(data))


def parse_cash_adjustment(data: dict[str, Any]) -> CashAdjustmentEntry:
    return CashAdjustmentEntry(**_entry_fields(data))


def parse_transfer(data: dict[str, Any]) -> TransferEntry:
    direction = data.get("direction")
    return TransferEntry(
        direction=TransferDirection(direction) if direction else None,
        **_entry_fields(data),
    )


def parse_indicator_value(data: dict[str, Any]) -> OperationalIndicatorValue:
    return OperationalIndicatorValue(
        indicator_ref=str(data["indicator"]),
        company_ref=str(data["company"]),
        year=int(data["year"]),
        month=_month(data),
        value=parse_decimal(data["value"]),
        department_ref=_optional_str(data.get("department")),
    )


def parse_monthly_balance(data: dict[str, Any]) -> MonthlyBalance:
    return MonthlyBalance(
        company_ref=str(data["company"]),
        account_ref=str(data["account"]),
        year=int(data["year"]),
        month=_month(data),
        value=parse_decimal(data["value"]),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Postconditions:
        - Returns a hex-encoded SHA-256 hash string.
        - Identical ``data`` always produces identical checksums
          (deterministic).
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
