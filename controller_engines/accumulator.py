"""
controller_engines.accumulator -- Scope filtering and per-period accumulation.

Responsibility:
    One scope predicate and one accumulation routine shared by every
    transactional source kind (ledger entries, accounting adjustments, cash
    adjustments, management transfers, operational indicators).  The source
    kinds differ only in how a record finds its target nodes and which
    ``PeriodValues`` component it feeds.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Consumed by ``statement_tree`` and ``assumption_mapper``.

Invariants enforced:
    - Company filter: ``None`` or the consolidated label admits every
      company; any other value admits that company only.
    - Unit allow-lists (cost centers for ledger entries, departments for
      the other kinds) exclude records outside the list, including records
      that carry no unit at all.
    - Records outside the requested period grid are skipped.
    - Inputs are never mutated.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any

from controller_kernel.domain.periods import Period
from controller_kernel.logging_config import get_logger

logger = get_logger("engines.accumulator")

CONSOLIDATED = "Consolidated"


class SourceKind(str, Enum):
    """Transactional source kind and the value component it feeds."""

    LEDGER = "ledger"
    ACCOUNTING_ADJUSTMENT = "accounting_adjustment"
    CASH_ADJUSTMENT = "cash_adjustment"
    MANAGEMENT_TRANSFER = "management_transfer"
    OPERATIONAL_INDICATOR = "operational_indicator"

    @property
    def component(self) -> str:
        if self in (SourceKind.LEDGER, SourceKind.OPERATIONAL_INDICATOR):
            return "actual"
        return self.value


@dataclass(frozen=True)
class ScopeFilter:
    """
    Company and organizational-unit scope for one statement query.

    Contract:
        ``company`` of ``None`` or equal to ``consolidated_label`` means no
        company filter.  ``cost_centers`` and ``departments`` are optional
        allow-lists; ``None`` means no restriction.
    """

    company: str | None = None
    cost_centers: frozenset[str] | None = None
    departments: frozenset[str] | None = None
    consolidated_label: str = CONSOLIDATED

    @property
    def is_consolidated(self) -> bool:
        return self.company is None or self.company == self.consolidated_label

    def admits_company(self, company_ref: str | None) -> bool:
        return self.is_consolidated or company_ref == self.company

    def admits_cost_center(self, cost_center_ref: str | None) -> bool:
        return not self.cost_centers or cost_center_ref in self.cost_centers

    def admits_department(self, department_ref: str | None) -> bool:
        return not self.departments or department_ref in self.departments


ALL = ScopeFilter()


def admits(scope: ScopeFilter, kind: SourceKind, record: Any) -> bool:
    """True when ``record`` of source ``kind`` falls inside ``scope``."""
    if not scope.admits_company(record.company_ref):
        return False
    if kind == SourceKind.LEDGER:
        return scope.admits_cost_center(record.cost_center_ref)
    return scope.admits_department(getattr(record, "department_ref", None))


def amount_of(kind: SourceKind, record: Any) -> Decimal:
    if kind == SourceKind.OPERATIONAL_INDICATOR:
        return record.value
    return record.signed_amount


@dataclass(frozen=True)
class Accumulation:
    """Per-target, per-period totals plus the records no target claimed."""

    totals: dict[str, dict[Period, Decimal]]
    unmatched: tuple[Any, ...]
    admitted: int


def accumulate(
    kind: SourceKind,
    records: Iterable[Any],
    targets_of: Callable[[Any], tuple[str, ...]],
    scope: ScopeFilter,
    periods: frozenset[Period],
) -> Accumulation:
    """
    Sum admitted records into every target node they resolve to.

    Args:
        kind: Source kind, selects the amount accessor and scope rule.
        records: Source records, each with ``year``/``month``/``company_ref``.
        targets_of: Maps a record to the node ids it feeds.  An empty tuple
            marks the record as unmatched.
        scope: Company and unit filter.
        periods: Period grid; records outside it are ignored.
    """
    totals: dict[str, dict[Period, Decimal]] = defaultdict(dict)
    unmatched: list[Any] = []
    admitted = 0

    for record in records:
        if not admits(scope, kind, record):
            continue
        period = (record.year, record.month)
        if period not in periods:
            continue
        admitted += 1
        targets = targets_of(record)
        if not targets:
            unmatched.append(record)
            continue
        amount = amount_of(kind, record)
        for target in targets:
            bucket = totals[target]
            bucket[period] = bucket.get(period, Decimal("0")) + amount

    logger.debug("source_accumulated", extra={
        "source_kind": kind.value,
        "admitted": admitted,
        "unmatched": len(unmatched),
        "targets": len(totals),
    })
    return Accumulation(totals=dict(totals), unmatched=tuple(unmatched), admitted=admitted)
