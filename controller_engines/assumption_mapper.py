"""
controller_engines.assumption_mapper -- Business assumptions to budgeted amounts.

Responsibility:
    Apply every ``BudgetMapping`` to the matching ``BudgetAssumptionValue``
    rows of the selected year and produce the "premises" budget component
    per target and period.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Output feeds ``budget_overlay.build_budget_data``.

Invariants enforced:
    - The assumption -> target -> derived assumption graph is checked for
      cycles before anything is computed (``MappingCycleError``).
    - Assumption values are unique per (assumption, store, department,
      year, month) (``DuplicateAssumptionValueError``).
    - Several mappings onto the same (target, period) add up.
    - The premises component never touches actual or adjustment values.

Calculation modes:
    direct       value x multiplier
    percentage   value x multiplier / 100
    formula      value x unit-price premise when the hint names a unit-price
                 keyword and a premise exists for the target and period;
                 otherwise value x multiplier with a ``CalculationFallback``.

Failure modes:
    - ``MappingCycleError`` / ``DuplicateAssumptionValueError`` before any
      computation.
"""

from __future__ import annotations

from collections import defaultdict, deque
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from decimal import Decimal

from controller_engines.accumulator import ALL, ScopeFilter
from controller_engines.tracer import traced_engine
from controller_kernel.domain.budget import (
    AuxiliaryPremise,
    BudgetAssumption,
    BudgetAssumptionValue,
    BudgetMapping,
    CalculationMode,
    PremiseKind,
    TargetKind,
)
from controller_kernel.domain.periods import Period
from controller_kernel.exceptions import (
    CalculationFallback,
    ControllershipWarning,
    DuplicateAssumptionValueError,
    MappingCycleError,
)
from controller_kernel.logging_config import get_logger

logger = get_logger("engines.assumption_mapper")

HUNDRED = Decimal("100")
FORMULA_KEYWORDS: tuple[str, ...] = ("unit_price", "average_price")


@dataclass(frozen=True)
class AssumptionOverlay:
    """Premises component per target id and period."""

    premises: dict[str, dict[Period, Decimal]]
    target_kinds: dict[str, TargetKind]
    diagnostics: tuple[ControllershipWarning, ...] = ()

    def value(self, target_id: str, period: Period) -> Decimal:
        return self.premises.get(target_id, {}).get(period, Decimal("0"))


def check_mapping_graph(
    mappings: Iterable[BudgetMapping],
    assumptions: Iterable[BudgetAssumption] = (),
) -> tuple[str, ...]:
    """
    Topologically order the assumption/target dependency graph.

    Edges run assumption -> target for every mapping, and target ->
    assumption for every assumption fed from a target.

    Returns:
        Node names in a valid evaluation order.

    Raises:
        MappingCycleError: Listing the nodes that sit on or behind a cycle.
    """
    edges: dict[str, set[str]] = defaultdict(set)
    nodes: set[str] = set()
    for mapping in mappings:
        source = f"assumption:{mapping.assumption_id}"
        target = f"target:{mapping.target_id}"
        edges[source].add(target)
        nodes.update((source, target))
    for assumption in assumptions:
        if assumption.source_target_id:
            source = f"target:{assumption.source_target_id}"
            target = f"assumption:{assumption.id}"
            edges[source].add(target)
            nodes.update((source, target))

    indegree = {node: 0 for node in nodes}
    for targets in edges.values():
        for node in targets:
            indegree[node] += 1

    ready = deque(sorted(node for node, degree in indegree.items() if degree == 0))
    order: list[str] = []
    while ready:
        node = ready.popleft()
        order.append(node)
        for successor in sorted(edges.get(node, ())):
            indegree[successor] -= 1
            if indegree[successor] == 0:
                ready.append(successor)

    if len(order) != len(nodes):
        stuck = tuple(sorted(node for node, degree in indegree.items() if degree > 0))
        raise MappingCycleError(stuck)
    return tuple(order)


def _check_unique_values(values: Iterable[BudgetAssumptionValue]) -> None:
    seen: set[tuple] = set()
    for value in values:
        if value.key in seen:
            raise DuplicateAssumptionValueError(value.key)
        seen.add(value.key)


def _find_unit_price(
    premises: Sequence[AuxiliaryPremise],
    target_id: str,
    row: BudgetAssumptionValue,
) -> AuxiliaryPremise | None:
    candidates = [
        premise
        for premise in premises
        if premise.kind == PremiseKind.UNIT_PRICE
        and premise.target_id == target_id
        and premise.year == row.year
        and (premise.month is None or premise.month == row.month)
        and (premise.company is None or premise.company == row.store)
        and (premise.department is None or premise.department == row.department)
    ]
    if not candidates:
        return None
    # Month-specific premises win over year-wide ones
    candidates.sort(key=lambda p: (p.month is None, p.id))
    return candidates[0]


def _mentions_unit_price(hint: str | None) -> bool:
    if not hint:
        return False
    lowered = hint.casefold()
    return any(keyword in lowered for keyword in FORMULA_KEYWORDS)


@traced_engine("assumption_mapper", "1.0", fingerprint_fields=("year", "scope"))
def resolve_assumptions(
    mappings: Sequence[BudgetMapping],
    assumption_values: Sequence[BudgetAssumptionValue],
    year: int,
    scope: ScopeFilter = ALL,
    auxiliary_premises: Sequence[AuxiliaryPremise] = (),
    assumptions: Sequence[BudgetAssumption] = (),
) -> AssumptionOverlay:
    """
    Resolve mappings into the premises component for ``year``.

    Args:
        mappings: Assumption -> target mappings.
        assumption_values: Entered driver values.
        year: Selected budget year; rows of other years are ignored.
        scope: Store (company) and department filter.  A mapping's own
            ``department_scope`` takes precedence over the scope filter.
        auxiliary_premises: Unit-price premises for formula mappings.
        assumptions: Assumption definitions, used for the cycle check.
    """
    _check_unique_values(assumption_values)
    check_mapping_graph(mappings, assumptions)

    rows_by_assumption: dict[str, list[BudgetAssumptionValue]] = defaultdict(list)
    for row in assumption_values:
        if row.year == year and scope.admits_company(row.store):
            rows_by_assumption[row.assumption_id].append(row)

    premises: dict[str, dict[Period, Decimal]] = defaultdict(dict)
    target_kinds: dict[str, TargetKind] = {}
    fallbacks: dict[tuple, CalculationFallback] = {}

    for mapping in sorted(mappings, key=lambda m: m.id):
        target_kinds[mapping.target_id] = mapping.target_kind
        for row in rows_by_assumption.get(mapping.assumption_id, ()):
            if mapping.department_scope is not None:
                if row.department != mapping.department_scope:
                    continue
            elif not scope.admits_department(row.department):
                continue

            period = (row.year, row.month)
            if mapping.calculation_mode == CalculationMode.PERCENTAGE:
                amount = row.value * mapping.multiplier / HUNDRED
            elif mapping.calculation_mode == CalculationMode.FORMULA:
                premise = None
                if _mentions_unit_price(mapping.formula_hint):
                    premise = _find_unit_price(auxiliary_premises, mapping.target_id, row)
                if premise is not None:
                    amount = row.value * premise.value
                else:
                    amount = row.value * mapping.multiplier
                    key = (mapping.id, mapping.target_id, period)
                    fallbacks.setdefault(
                        key, CalculationFallback(mapping.id, mapping.target_id, period)
                    )
            else:
                amount = row.value * mapping.multiplier

            bucket = premises[mapping.target_id]
            bucket[period] = bucket.get(period, Decimal("0")) + amount

    diagnostics = tuple(fallbacks[key] for key in sorted(fallbacks))
    if diagnostics:
        logger.warning("formula_mappings_fell_back", extra={
            "mapping_ids": sorted({d.mapping_id for d in diagnostics}),
            "count": len(diagnostics),
        })
    logger.info("assumptions_resolved", extra={
        "year": year,
        "mapping_count": len(mappings),
        "target_count": len(premises),
    })
    return AssumptionOverlay(
        premises={target: dict(sorted(values.items())) for target, values in sorted(premises.items())},
        target_kinds=target_kinds,
        diagnostics=diagnostics,
    )
