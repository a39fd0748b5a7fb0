"""
Pure statement report functions.

These functions turn engine output into the report shapes served by
``ReportingService``. ZERO I/O. ZERO side effects.

Functions in this module follow the engines' purity convention:
- No database access
- No clock access
- No file I/O
- Deterministic: same inputs always produce same outputs
"""

from __future__ import annotations

import dataclasses
from collections import defaultdict
from collections.abc import Collection, Iterable, Sequence
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from controller_engines.accumulator import ALL, ScopeFilter
from controller_engines.historical import reverse_index
from controller_engines.statement_tree import (
    StatementBuildResult,
    StatementNode,
    StatementSources,
    build_statement_tree,
)
from controller_kernel.domain.dtos import (
    AccountMapping,
    EntryNature,
    LedgerEntry,
    LineKind,
    MonthlyBalance,
    StatementLineDefinition,
)
from controller_kernel.domain.periods import format_period
from controller_kernel.domain.values import (
    BudgetComponents,
    PeriodValues,
    quantize_money,
)
from controller_kernel.exceptions import ControllershipWarning, DataGapWarning

# =========================================================================
# Forest shaping
# =========================================================================


def strip_analytical(forest: Sequence[StatementNode]) -> tuple[StatementNode, ...]:
    """Drop analytical breakdown nodes, keeping every configured line."""
    return tuple(
        dataclasses.replace(
            node,
            children=strip_analytical([c for c in node.children if not c.is_analytical]),
        )
        for node in forest
    )


def _is_zero(node: StatementNode) -> bool:
    if any(values.effective != 0 for values in node.values.values()):
        return False
    return all(components.total == 0 for components in node.budget.values())


def prune_zero_lines(forest: Sequence[StatementNode]) -> tuple[StatementNode, ...]:
    """
    Remove data and operational lines whose every value is zero.

    Header and total lines are always kept so the statement layout stays
    recognizable even when a whole section is empty.
    """
    kept: list[StatementNode] = []
    for node in forest:
        children = prune_zero_lines(node.children)
        if not node.is_rollup and not children and _is_zero(node):
            continue
        kept.append(dataclasses.replace(node, children=children))
    return tuple(kept)


# =========================================================================
# Statement builders
# =========================================================================


def build_income_statement(
    definitions: Sequence[StatementLineDefinition],
    sources: StatementSources,
    years: Iterable[int],
    scope: ScopeFilter = ALL,
    include_analytical_breakdown: bool = True,
    months: Iterable[int | str] | None = None,
) -> StatementBuildResult:
    """Build the result statement from ledger, adjustment and indicator sources."""
    result = build_statement_tree(definitions, sources, tuple(years), scope, months)
    if include_analytical_breakdown:
        return result
    return dataclasses.replace(result, forest=strip_analytical(result.forest))


def balances_as_entries(
    balances: Iterable[MonthlyBalance],
    account_mappings: Sequence[AccountMapping],
    years: Collection[int],
    companies: Collection[str] | None = None,
) -> tuple[tuple[LedgerEntry, ...], tuple[DataGapWarning, ...]]:
    """
    Route monthly balances to the statement accounts they map onto.

    Balances are already signed, so each becomes a CREDIT entry carrying
    the balance unchanged.  Balances of unmapped ledger accounts are
    reported once per account.
    """
    statements_by_account: dict[str, list[str]] = defaultdict(list)
    for statement_ref, accounts in sorted(reverse_index(account_mappings).items()):
        for account in accounts:
            statements_by_account[account].append(statement_ref)

    entries: list[LedgerEntry] = []
    unmapped: set[str] = set()
    for balance in balances:
        if balance.year not in years:
            continue
        if companies and balance.company_ref not in companies:
            continue
        targets = statements_by_account.get(balance.account_ref)
        if not targets:
            unmapped.add(balance.account_ref)
            continue
        for statement_ref in targets:
            entries.append(LedgerEntry(
                account_ref=statement_ref,
                company_ref=balance.company_ref,
                year=balance.year,
                month=balance.month,
                amount=balance.value,
                nature=EntryNature.CREDIT,
            ))

    warnings = tuple(
        DataGapWarning(account, "balance account not mapped to any statement account")
        for account in sorted(unmapped)
    )
    return tuple(entries), warnings


def build_balance_sheet(
    definitions: Sequence[StatementLineDefinition],
    balances: Iterable[MonthlyBalance],
    account_mappings: Sequence[AccountMapping],
    years: Iterable[int],
    companies: Collection[str] | None = None,
) -> StatementBuildResult:
    """
    Build the balance sheet from monthly closing balances.

    ``companies`` is an allow-list; ``None`` or empty consolidates every
    company.
    """
    years = tuple(years)
    entries, warnings = balances_as_entries(
        balances, account_mappings, frozenset(years), companies,
    )
    result = build_statement_tree(definitions, StatementSources(ledger=entries), years)
    diagnostics: tuple[ControllershipWarning, ...] = tuple(warnings) + result.diagnostics
    return dataclasses.replace(result, diagnostics=diagnostics)


def statement_lines_of(
    forest: Iterable[StatementNode],
    kinds: Collection[LineKind] = (LineKind.DATA,),
) -> tuple[StatementNode, ...]:
    """Flatten the configured lines of the given kinds, depth-first."""
    lines: list[StatementNode] = []
    for node in forest:
        if node.kind in kinds and not node.is_analytical:
            lines.append(node)
        lines.extend(statement_lines_of(node.children, kinds))
    return tuple(lines)


# =========================================================================
# Rendering
# =========================================================================


def render_to_dict(
    obj: object,
    places: Decimal | None = None,
) -> dict | list | str | int | float | bool | None:
    """
    Convert any report dataclass to a plain dict for JSON serialization.

    Handles:
    - Decimal -> str (rounded to ``places`` when given)
    - UUID -> str
    - date -> ISO format string
    - Enum -> .value
    - (year, month) keys -> "YYYY-MM"
    - PeriodValues / BudgetComponents -> components plus their derived sum
    - Warnings -> their ``to_dict`` payload
    - Nested frozen dataclasses -> nested dicts
    - Tuples -> lists
    - None preserved
    """
    if obj is None:
        return None
    if isinstance(obj, Decimal):
        return str(quantize_money(obj, places) if places is not None else obj)
    if isinstance(obj, UUID):
        return str(obj)
    if isinstance(obj, date):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, ControllershipWarning):
        return obj.to_dict()
    if isinstance(obj, PeriodValues):
        rendered = _render_fields(obj, places)
        rendered["effective"] = render_to_dict(obj.effective, places)
        return rendered
    if isinstance(obj, BudgetComponents):
        rendered = _render_fields(obj, places)
        rendered["total"] = render_to_dict(obj.total, places)
        return rendered
    if isinstance(obj, (list, tuple)):
        return [render_to_dict(item, places) for item in obj]
    if isinstance(obj, dict):
        return {_render_key(k): render_to_dict(v, places) for k, v in obj.items()}
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return _render_fields(obj, places)
    if isinstance(obj, (str, int, float, bool)):
        return obj
    return str(obj)


def _render_fields(obj: object, places: Decimal | None) -> dict:
    return {
        f.name: render_to_dict(getattr(obj, f.name), places)
        for f in dataclasses.fields(obj)
    }


def _render_key(key: object) -> str:
    if (
        isinstance(key, tuple)
        and len(key) == 2
        and all(isinstance(part, int) for part in key)
    ):
        return format_period(key)
    if isinstance(key, Enum):
        return str(key.value)
    return str(key)
