"""
controller_engines.statement_tree -- Hierarchical statement construction and rollup.

Responsibility:
    Turn a flat list of ``StatementLineDefinition`` rows plus transactional
    sources into a forest of ``StatementNode`` objects whose header and total
    lines hold the weighted sum of their children for every period.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Uses ``accumulator`` for scope filtering and per-period sums.
    Consumed by ``controller_modules.reporting`` and by the budget
    generator's reference source.

Invariants enforced:
    - Structural validation happens before any computation: duplicate ids,
      orphan parents, parent cycles and duplicate sibling orders raise
      ``ConfigurationError`` subclasses.
    - Every node carries a value for every (year, month) of the requested
      years x months grid, zero-filled.  Records outside the grid are
      ignored.
    - Ledger values are credit-positive: debit amounts are negated.
    - Header/total value = sum(child value x child rollup_weight), per
      component, per period.  Data lines keep their own accumulation and
      operational lines never aggregate children.
    - Unknown references contribute zero and surface as ``DataGapWarning``
      diagnostics; they never raise.
    - Deterministic: siblings are ordered by (order, id) and period maps
      are in chronological order.

Failure modes:
    - ``DuplicateLineError``, ``OrphanParentError``, ``StatementCycleError``,
      ``DuplicateSiblingOrderError`` from ``validate_definitions``.

Audit relevance:
    Every build is traced via ``@traced_engine`` and logs the number of
    admitted and unmatched records per source kind.
"""

from __future__ import annotations

import re
from collections import defaultdict
from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Any

from controller_engines.accumulator import (
    ALL,
    ScopeFilter,
    SourceKind,
    accumulate,
)
from controller_engines.tracer import traced_engine
from controller_kernel.domain.dtos import (
    AdjustmentEntry,
    AnalyticalAccount,
    CashAdjustmentEntry,
    LedgerEntry,
    LineKind,
    OperationalIndicatorValue,
    StatementLineDefinition,
    TransferEntry,
)
from controller_kernel.domain.periods import Period, period_grid
from controller_kernel.domain.values import BudgetComponents, PeriodValues
from controller_kernel.exceptions import (
    ControllershipWarning,
    DataGapWarning,
    DuplicateLineError,
    DuplicateSiblingOrderError,
    OrphanParentError,
    StatementCycleError,
)
from controller_kernel.logging_config import get_logger

logger = get_logger("engines.statement_tree")

_ZERO_VALUES = PeriodValues()
_WHITESPACE = re.compile(r"\s+")


# ---------------------------------------------------------------------------
# Output types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StatementNode:
    """
    One line of a built statement.

    Contract:
        Owned by its parent; ``children`` are ordered.  ``values`` maps
        every period of the build to a ``PeriodValues``.  ``budget`` is
        empty until a budget overlay is applied.

    Guarantees:
        - ``is_total`` for TOTAL lines, ``is_sub_total`` for HEADER lines.
        - ``is_analytical`` for breakdown nodes created from analytical
          accounts.
    """

    id: str
    label: str
    kind: LineKind
    values: Mapping[Period, PeriodValues]
    children: tuple[StatementNode, ...] = ()
    sign: int = 1
    weight: int = 1
    is_analytical: bool = False
    account_ref: str | None = None
    indicator_ref: str | None = None
    budget: Mapping[Period, BudgetComponents] = field(default_factory=dict)

    @property
    def is_total(self) -> bool:
        return self.kind == LineKind.TOTAL and not self.is_analytical

    @property
    def is_sub_total(self) -> bool:
        return self.kind == LineKind.HEADER

    @property
    def is_rollup(self) -> bool:
        return self.kind in (LineKind.HEADER, LineKind.TOTAL) and not self.is_analytical

    def value(self, period: Period) -> PeriodValues:
        return self.values.get(period, _ZERO_VALUES)


@dataclass(frozen=True)
class StatementSources:
    """Transactional inputs for one statement build."""

    ledger: tuple[LedgerEntry, ...] = ()
    adjustments: tuple[AdjustmentEntry, ...] = ()
    cash_adjustments: tuple[CashAdjustmentEntry, ...] = ()
    transfers: tuple[TransferEntry, ...] = ()
    indicators: tuple[OperationalIndicatorValue, ...] = ()
    analytical_accounts: tuple[AnalyticalAccount, ...] = ()
    account_names: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class StatementBuildResult:
    forest: tuple[StatementNode, ...]
    periods: tuple[Period, ...]
    diagnostics: tuple[ControllershipWarning, ...] = ()


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def validate_definitions(
    definitions: Sequence[StatementLineDefinition],
) -> dict[str | None, list[StatementLineDefinition]]:
    """
    Check structural integrity and return the ordered children index.

    Raises:
        DuplicateLineError, OrphanParentError, StatementCycleError,
        DuplicateSiblingOrderError.
    """
    by_id: dict[str, StatementLineDefinition] = {}
    for definition in definitions:
        if definition.id in by_id:
            raise DuplicateLineError(definition.id)
        by_id[definition.id] = definition

    for definition in definitions:
        if definition.parent_id is not None and definition.parent_id not in by_id:
            raise OrphanParentError(definition.id, definition.parent_id)

    cleared: set[str] = set()
    for definition in definitions:
        chain: list[str] = []
        on_chain: set[str] = set()
        current: str | None = definition.id
        while current is not None and current not in cleared:
            if current in on_chain:
                start = chain.index(current)
                raise StatementCycleError(tuple(chain[start:]) + (current,))
            chain.append(current)
            on_chain.add(current)
            current = by_id[current].parent_id
        cleared.update(chain)

    children: dict[str | None, list[StatementLineDefinition]] = defaultdict(list)
    for definition in definitions:
        children[definition.parent_id].append(definition)

    for parent_id, siblings in children.items():
        seen: dict[tuple[str | None, int], str] = {}
        for sibling in siblings:
            # Roots of different templates may reuse orders
            key = (sibling.template_id if parent_id is None else None, sibling.order)
            if key in seen:
                raise DuplicateSiblingOrderError(
                    parent_id, sibling.order, tuple(sorted((seen[key], sibling.id)))
                )
            seen[key] = sibling.id
        siblings.sort(key=lambda d: (d.order, d.id))

    return dict(children)


# ---------------------------------------------------------------------------
# Label resolution
# ---------------------------------------------------------------------------


def normalize_label(label: str | None) -> str:
    """Case-folded, whitespace-collapsed label used for fallback matching."""
    if not label:
        return ""
    return _WHITESPACE.sub(" ", label).strip().casefold()


def _label_index(
    definitions: Iterable[StatementLineDefinition],
    account_names: Mapping[str, str],
) -> dict[str, tuple[str, ...]]:
    index: dict[str, list[str]] = defaultdict(list)
    for definition in definitions:
        if definition.kind != LineKind.DATA:
            continue
        candidates = {
            normalize_label(definition.source_account_ref),
            normalize_label(account_names.get(definition.source_account_ref or "")),
            normalize_label(definition.label),
        }
        for key in sorted(candidates - {""}):
            index[key].append(definition.id)
    return {key: tuple(sorted(ids)) for key, ids in index.items()}


def ingest_entry_targets(
    entries: Iterable[Any],
    definitions: Sequence[StatementLineDefinition],
    account_names: Mapping[str, str] | None = None,
) -> tuple[tuple[Any, ...], tuple[DataGapWarning, ...]]:
    """
    Resolve free-text target labels to ``target_line_id`` once, at ingestion.

    Entries that already carry a target are kept as-is.  A label that
    matches exactly one data line is resolved.  Labels matching nothing or
    several lines stay unresolved and produce a ``DataGapWarning``; the
    builder's label fallback still applies to them.
    """
    index = _label_index(definitions, account_names or {})
    resolved: list[Any] = []
    warnings: dict[str, DataGapWarning] = {}

    for entry in entries:
        if entry.target_line_id is not None:
            resolved.append(entry)
            continue
        matches = index.get(normalize_label(entry.target_account_label), ())
        if len(matches) == 1:
            resolved.append(replace(entry, target_line_id=matches[0]))
            continue
        resolved.append(entry)
        reason = "ambiguous target label" if matches else "target label matches no statement line"
        warnings.setdefault(
            entry.target_account_label,
            DataGapWarning(entry.target_account_label, reason),
        )

    if warnings:
        logger.warning("entry_targets_unresolved", extra={
            "labels": sorted(warnings),
        })
    return tuple(resolved), tuple(warnings[label] for label in sorted(warnings))


# ---------------------------------------------------------------------------
# Build
# ---------------------------------------------------------------------------


def _breakdown_id(line_id: str, account_id: str) -> str:
    return f"{line_id}::{account_id}"


@traced_engine("statement_tree", "1.0", fingerprint_fields=("definitions", "years", "scope", "months"))
def build_statement_tree(
    definitions: Sequence[StatementLineDefinition],
    sources: StatementSources,
    years: Iterable[int],
    scope: ScopeFilter = ALL,
    months: Iterable[int | str] | None = None,
) -> StatementBuildResult:
    """
    Build the statement forest for ``years`` x ``months`` under ``scope``.

    Args:
        definitions: Flat line definitions of one or more templates.
        sources: Ledger, adjustment, transfer and indicator records.
        years: Years to zero-fill.
        scope: Company / cost-center / department filter.
        months: Months to zero-fill in every year; ``None`` selects all
            twelve.  Records outside the grid are ignored.

    Returns:
        StatementBuildResult with the ordered forest, the period grid and
        data-gap diagnostics.
    """
    children_index = validate_definitions(definitions)
    periods = period_grid(years, months)
    period_set = frozenset(periods)

    data_by_account: dict[str, list[str]] = defaultdict(list)
    lines_by_indicator: dict[str, list[str]] = defaultdict(list)
    data_line_ids: set[str] = set()
    for definition in definitions:
        if definition.kind == LineKind.DATA:
            data_by_account[definition.source_account_ref].append(definition.id)
            data_line_ids.add(definition.id)
        elif definition.kind == LineKind.OPERATIONAL:
            lines_by_indicator[definition.operational_indicator_ref].append(definition.id)

    analytical_by_group: dict[str, list[AnalyticalAccount]] = defaultdict(list)
    for account in sorted(sources.analytical_accounts, key=lambda a: a.id):
        analytical_by_group[account.group_ref].append(account)
    analytical_targets: dict[str, list[str]] = defaultdict(list)
    for group_ref, accounts in analytical_by_group.items():
        for line_id in data_by_account.get(group_ref, ()):
            for account in accounts:
                analytical_targets[account.id].append(line_id)
                analytical_targets[account.id].append(_breakdown_id(line_id, account.id))

    def ledger_targets(entry: LedgerEntry) -> tuple[str, ...]:
        direct = data_by_account.get(entry.account_ref, ())
        return tuple(direct) + tuple(analytical_targets.get(entry.account_ref, ()))

    labels = _label_index(definitions, sources.account_names)
    ambiguous_labels: set[str] = set()

    def entry_targets(entry: Any) -> tuple[str, ...]:
        if entry.target_line_id is not None:
            return (entry.target_line_id,) if entry.target_line_id in data_line_ids else ()
        matches = labels.get(normalize_label(entry.target_account_label), ())
        if len(matches) > 1:
            ambiguous_labels.add(entry.target_account_label)
        return matches

    def indicator_targets(value: OperationalIndicatorValue) -> tuple[str, ...]:
        return tuple(lines_by_indicator.get(value.indicator_ref, ()))

    raw: dict[str, dict[Period, PeriodValues]] = defaultdict(dict)
    diagnostics: dict[tuple[str, str], DataGapWarning] = {}
    feeds = (
        (SourceKind.LEDGER, sources.ledger, ledger_targets),
        (SourceKind.ACCOUNTING_ADJUSTMENT, sources.adjustments, entry_targets),
        (SourceKind.CASH_ADJUSTMENT, sources.cash_adjustments, entry_targets),
        (SourceKind.MANAGEMENT_TRANSFER, sources.transfers, entry_targets),
        (SourceKind.OPERATIONAL_INDICATOR, sources.indicators, indicator_targets),
    )
    for kind, records, targets_of in feeds:
        result = accumulate(kind, records, targets_of, scope, period_set)
        component = kind.component
        for node_id, per_period in result.totals.items():
            bucket = raw[node_id]
            for period, amount in per_period.items():
                bucket[period] = bucket.get(period, _ZERO_VALUES).add(component, amount)
        for record in result.unmatched:
            subject, reason = _describe_unmatched(kind, record)
            diagnostics.setdefault((subject, reason), DataGapWarning(subject, reason))
    for label in sorted(ambiguous_labels):
        # Ambiguous labels feed every matching line
        diagnostics.setdefault(
            (label, "ambiguous target label"),
            DataGapWarning(label, "ambiguous target label"),
        )

    def zero_filled(node_id: str) -> dict[Period, PeriodValues]:
        own = raw.get(node_id, {})
        return {period: own.get(period, _ZERO_VALUES) for period in periods}

    def build(definition: StatementLineDefinition) -> StatementNode:
        children = [build(child) for child in children_index.get(definition.id, ())]

        if definition.kind == LineKind.DATA:
            for account in analytical_by_group.get(definition.source_account_ref, ()):
                breakdown_id = _breakdown_id(definition.id, account.id)
                children.append(StatementNode(
                    id=breakdown_id,
                    label=account.name,
                    kind=LineKind.DATA,
                    values=zero_filled(breakdown_id),
                    is_analytical=True,
                    account_ref=account.id,
                ))

        if definition.is_rollup:
            values = {period: _ZERO_VALUES for period in periods}
            for child in children:
                for period in periods:
                    values[period] = values[period].combine(child.values[period], child.weight)
        else:
            values = zero_filled(definition.id)

        return StatementNode(
            id=definition.id,
            label=definition.label,
            kind=definition.kind,
            values=values,
            children=tuple(children),
            sign=definition.sign,
            weight=definition.rollup_weight,
            account_ref=definition.source_account_ref,
            indicator_ref=definition.operational_indicator_ref,
        )

    forest = tuple(build(root) for root in children_index.get(None, ()))
    ordered_diagnostics = tuple(diagnostics[key] for key in sorted(diagnostics))

    logger.info("statement_tree_built", extra={
        "line_count": len(definitions),
        "root_count": len(forest),
        "period_count": len(periods),
        "company": scope.company or scope.consolidated_label,
        "diagnostic_count": len(ordered_diagnostics),
    })
    return StatementBuildResult(
        forest=forest,
        periods=periods,
        diagnostics=ordered_diagnostics,
    )


def _describe_unmatched(kind: SourceKind, record: Any) -> tuple[str, str]:
    if kind == SourceKind.LEDGER:
        return record.account_ref, "ledger account not mapped to any statement line"
    if kind == SourceKind.OPERATIONAL_INDICATOR:
        return record.indicator_ref, "indicator not bound to any operational line"
    subject = record.target_line_id or record.target_account_label
    return subject, f"{kind.value} target matches no data line"


# ---------------------------------------------------------------------------
# Navigation helpers
# ---------------------------------------------------------------------------


def iter_nodes(forest: Iterable[StatementNode]) -> Iterator[StatementNode]:
    """Depth-first, pre-order walk of every node."""
    for node in forest:
        yield node
        yield from iter_nodes(node.children)


def find_node(forest: Iterable[StatementNode], node_id: str) -> StatementNode | None:
    for node in iter_nodes(forest):
        if node.id == node_id:
            return node
    return None


def sum_actual(node: StatementNode, periods: Iterable[Period]) -> Decimal:
    """Sum of ``actual`` over the given periods."""
    return sum((node.value(period).actual for period in periods), Decimal("0"))
