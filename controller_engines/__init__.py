"""
Module: controller_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    calculation engines.  This is the canonical import surface for the
    module layer (controller_modules).

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import controller_kernel (domain, exceptions, logging) and
    sibling engine modules.  MUST NOT import controller_modules.

Invariants enforced:
    - Purity: engines never read the clock or touch storage.  The budget
      generator reaches historical data only through the HistorySource /
      ReferenceSource ports supplied by the caller.
    - Decimal-only arithmetic.
    - Determinism: identical inputs always produce identical outputs.

Audit relevance:
    Every engine entry point is traced via ``@traced_engine`` (see
    ``controller_engines.tracer``), emitting CONTROLLER_ENGINE_TRACE records
    with engine name, version, input fingerprint and duration.
"""

from controller_engines.accumulator import (
    CONSOLIDATED,
    ScopeFilter,
    SourceKind,
)
from controller_engines.assumption_mapper import (
    AssumptionOverlay,
    check_mapping_graph,
    resolve_assumptions,
)
from controller_engines.budget_generator import (
    BalanceHistorySource,
    BudgetGenerator,
    CancellationToken,
    GenerationResult,
    HistorySource,
    ReferenceSource,
    StatementReferenceSource,
    as_assumption_values,
)
from controller_engines.budget_overlay import (
    BudgetDataByPeriod,
    apply_budget,
    build_budget_data,
    totals_by_origin,
    with_manual_value,
)
from controller_engines.budget_rules import BudgetRuleBook
from controller_engines.historical import HistoricalOverlay, inject_historical
from controller_engines.mapping_coverage import (
    CoverageReport,
    CoverageScope,
    find_unmapped_accounts,
)
from controller_engines.statement_tree import (
    StatementBuildResult,
    StatementNode,
    StatementSources,
    build_statement_tree,
    find_node,
    ingest_entry_targets,
    iter_nodes,
    validate_definitions,
)
from controller_engines.tracer import traced_engine
from controller_engines.variance import (
    AccountCategory,
    AlertStatus,
    Observation,
    VarianceAnalysis,
    VarianceThresholds,
    analyze_variances,
)

__all__ = [
    "CONSOLIDATED",
    "AccountCategory",
    "AlertStatus",
    "AssumptionOverlay",
    "BalanceHistorySource",
    "BudgetDataByPeriod",
    "BudgetGenerator",
    "BudgetRuleBook",
    "CancellationToken",
    "CoverageReport",
    "CoverageScope",
    "GenerationResult",
    "HistoricalOverlay",
    "HistorySource",
    "Observation",
    "ReferenceSource",
    "ScopeFilter",
    "SourceKind",
    "StatementBuildResult",
    "StatementNode",
    "StatementReferenceSource",
    "StatementSources",
    "VarianceAnalysis",
    "VarianceThresholds",
    "analyze_variances",
    "apply_budget",
    "as_assumption_values",
    "build_budget_data",
    "build_statement_tree",
    "check_mapping_graph",
    "find_node",
    "find_unmapped_accounts",
    "ingest_entry_targets",
    "inject_historical",
    "iter_nodes",
    "resolve_assumptions",
    "totals_by_origin",
    "traced_engine",
    "validate_definitions",
    "with_manual_value",
]
