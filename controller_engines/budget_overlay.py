"""
controller_engines.budget_overlay -- Budget components per target and period.

Responsibility:
    Assemble ``BudgetDataByPeriod`` from the premises, historical, manual
    and imported components, overlay it onto a built statement forest, and
    provide the manual-edit and totals-by-origin operations used by the
    budget screens.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Consumes ``AssumptionOverlay`` and ``HistoricalOverlay``; produces the
    structure ``BudgetService`` hands to the reporting layer.

Invariants enforced:
    - Every target carries zeroed components for the selected year and
      the year before, 12 months each.
    - ``total`` is always premises + historical + manual + imported.
    - Header/total nodes roll the budget up with the same weights as the
      actual values.
    - Structures are immutable; edits return new instances.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from decimal import Decimal

from controller_engines.assumption_mapper import AssumptionOverlay
from controller_engines.historical import HistoricalOverlay
from controller_engines.statement_tree import StatementNode
from controller_engines.tracer import traced_engine
from controller_kernel.domain.periods import Period, period_grid
from controller_kernel.domain.values import BUDGET_ORIGINS, BudgetComponents
from controller_kernel.exceptions import ControllershipWarning, DataGapWarning
from controller_kernel.logging_config import get_logger

logger = get_logger("engines.budget_overlay")

_ZERO_BUDGET = BudgetComponents()

ComponentValues = Mapping[str, Mapping[Period, Decimal]]


@dataclass(frozen=True)
class BudgetDataByPeriod:
    """
    Budget components for a set of targets over two years.

    Guarantees:
        - ``data[target]`` holds all 24 periods of ``year - 1`` and ``year``.
    """

    year: int
    data: Mapping[str, Mapping[Period, BudgetComponents]]
    diagnostics: tuple[ControllershipWarning, ...] = field(default=(), compare=False)

    @property
    def periods(self) -> tuple[Period, ...]:
        return period_grid((self.year - 1, self.year))

    def get(self, target_id: str, period: Period) -> BudgetComponents:
        return self.data.get(target_id, {}).get(period, _ZERO_BUDGET)


@traced_engine("budget_overlay", "1.0", fingerprint_fields=("year",))
def build_budget_data(
    target_ids: Iterable[str],
    year: int,
    premises: AssumptionOverlay | None = None,
    historical: HistoricalOverlay | None = None,
    manual: ComponentValues | None = None,
    imported: ComponentValues | None = None,
) -> BudgetDataByPeriod:
    """
    Zero-initialize every target and add each component onto it.

    Component values for unknown targets or periods outside the two-year
    grid are dropped and reported as ``DataGapWarning``.
    """
    periods = period_grid((year - 1, year))
    period_set = frozenset(periods)
    targets = sorted(set(target_ids))
    grid: dict[str, dict[Period, dict[str, Decimal]]] = {
        target: {period: {} for period in periods} for target in targets
    }
    gaps: dict[str, DataGapWarning] = {}

    sources: list[tuple[str, ComponentValues]] = []
    if premises is not None:
        sources.append(("premises", premises.premises))
    if historical is not None:
        sources.append(("historical", historical.historical))
    if manual is not None:
        sources.append(("manual", manual))
    if imported is not None:
        sources.append(("imported", imported))

    for origin, values in sources:
        for target, per_period in values.items():
            if target not in grid:
                gaps.setdefault(
                    target, DataGapWarning(target, "budget target is not part of the statement")
                )
                continue
            for period, amount in per_period.items():
                if period not in period_set:
                    continue
                cell = grid[target][period]
                cell[origin] = cell.get(origin, Decimal("0")) + amount

    data = {
        target: {period: BudgetComponents(**cells) for period, cells in per_period.items()}
        for target, per_period in grid.items()
    }
    diagnostics = tuple(gaps[key] for key in sorted(gaps))
    logger.info("budget_data_built", extra={
        "year": year,
        "target_count": len(data),
        "components": [origin for origin, _ in sources],
        "dropped_targets": len(diagnostics),
    })
    return BudgetDataByPeriod(year=year, data=data, diagnostics=diagnostics)


def apply_budget(
    forest: Sequence[StatementNode],
    budget_data: BudgetDataByPeriod,
) -> tuple[StatementNode, ...]:
    """
    Return a new forest whose nodes carry their budget components.

    Data lines pick up the budget of the statement account they bind,
    operational lines the budget of their indicator.
    """
    periods = budget_data.periods

    def overlay(node: StatementNode) -> StatementNode:
        children = tuple(overlay(child) for child in node.children)
        if node.is_rollup:
            budget = {period: _ZERO_BUDGET for period in periods}
            for child in children:
                for period in periods:
                    budget[period] = budget[period].combine(
                        child.budget.get(period, _ZERO_BUDGET), child.weight
                    )
        elif node.is_analytical:
            budget = {}
        else:
            target = node.account_ref or node.indicator_ref
            budget = dict(budget_data.data.get(target, {})) if target else {}
        return replace(node, children=children, budget=budget)

    return tuple(overlay(node) for node in forest)


def with_manual_value(
    budget_data: BudgetDataByPeriod,
    target_id: str,
    year: int,
    month: int,
    value: Decimal,
) -> BudgetDataByPeriod:
    """
    Replace the manual component of one cell; total follows automatically.

    Unknown targets or periods leave the structure unchanged.
    """
    period = (year, month)
    cells = budget_data.data.get(target_id)
    if cells is None or period not in cells:
        logger.warning("manual_value_target_unknown", extra={
            "target_id": target_id,
            "year": year,
            "month": month,
        })
        return budget_data

    updated_cells = dict(cells)
    updated_cells[period] = replace(cells[period], manual=value)
    data = dict(budget_data.data)
    data[target_id] = updated_cells
    return replace(budget_data, data=data)


def totals_by_origin(
    budget_data: BudgetDataByPeriod,
    year: int | None = None,
    months: Iterable[int] | None = None,
) -> dict[str, Decimal]:
    """Sum each component (and the total) over ``year`` and ``months``."""
    selected_year = budget_data.year if year is None else year
    selected_months = tuple(range(1, 13)) if months is None else tuple(months)
    totals = {origin: Decimal("0") for origin in BUDGET_ORIGINS}
    totals["total"] = Decimal("0")
    for cells in budget_data.data.values():
        for month in selected_months:
            components = cells.get((selected_year, month))
            if components is None:
                continue
            for origin in BUDGET_ORIGINS:
                totals[origin] += getattr(components, origin)
            totals["total"] += components.total
    return totals
