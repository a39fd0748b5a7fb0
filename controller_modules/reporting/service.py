"""
Reporting Module Service (``controller_modules.reporting.service``).

Responsibility
--------------
Orchestrates statement generation -- income statement, balance sheet,
budget-versus-actual statement, variance report and mapping coverage --
by handing caller-supplied records to the pure engines and wrapping the
results in typed report DTOs.  This is a **read-only** service.

Architecture position
---------------------
**Modules layer** -- thin glue.  ``ReportingService`` is the sole public
entry point for report generation.  Constructor: ``clock`` + ``config``.
Records are loaded by the caller; the service never queries storage.

Invariants enforced
-------------------
* Read-only -- inputs are never mutated.
* All monetary amounts use ``Decimal`` -- NEVER ``float``.
* Report metadata carries the generation timestamp and parameters for
  reproducibility.

Failure modes
-------------
* Invalid statement configuration  -> ``ConfigurationError`` subclasses
  propagate from the engines before anything is computed.
* Missing source data  -> zero values plus ``DataGapWarning`` diagnostics
  on the report.

Audit relevance
---------------
Structured log events are emitted for every report generation, carrying
report type, years, company and diagnostic count.
"""

from __future__ import annotations

from collections.abc import Collection, Iterable, Mapping, Sequence
from decimal import Decimal

from controller_engines.accumulator import ScopeFilter
from controller_engines.budget_overlay import BudgetDataByPeriod, apply_budget
from controller_engines.mapping_coverage import CoverageScope, find_unmapped_accounts
from controller_engines.statement_tree import StatementSources
from controller_engines.variance import (
    AccountCategory,
    Observation,
    VarianceThresholds,
    analyze_variances,
)
from controller_kernel.domain.clock import Clock, SystemClock
from controller_kernel.domain.dtos import (
    AccountMapping,
    ChartAccount,
    MonthlyBalance,
    StatementLineDefinition,
)
from controller_kernel.logging_config import LogContext, get_logger
from controller_modules.reporting.config import ReportingConfig
from controller_modules.reporting.models import (
    MappingCoverageReport,
    ReportMetadata,
    ReportType,
    StatementReport,
    VarianceReport,
)
from controller_modules.reporting.statements import (
    build_balance_sheet,
    build_income_statement,
    prune_zero_lines,
    render_to_dict,
)

logger = get_logger("modules.reporting.service")


def _select_template(
    definitions: Sequence[StatementLineDefinition],
    template_id: str | None,
) -> tuple[StatementLineDefinition, ...]:
    if template_id is None:
        return tuple(definitions)
    return tuple(d for d in definitions if d.template_id == template_id)


class ReportingService:
    """
    Controllership report generation service.

    Contract
    --------
    * Every public method returns a typed report DTO (``StatementReport``,
      ``VarianceReport``, ``MappingCoverageReport``).
    * All methods are **read-only**.

    Guarantees
    ----------
    * Report generation delegates to the engines and to the pure functions
      in ``statements.py``; no calculation lives in this class.
    * Clock is injectable for deterministic testing.

    Non-goals
    ---------
    * Does NOT load records from storage.
    * Does NOT persist reports.
    """

    def __init__(
        self,
        clock: Clock | None = None,
        config: ReportingConfig | None = None,
    ):
        self._clock = clock or SystemClock()
        self._config = config or ReportingConfig.with_defaults()

        logger.info(
            "reporting_service_initialized",
            extra={
                "entity_name": self._config.entity_name,
                "consolidated_label": self._config.consolidated_label,
            },
        )

    # =========================================================================
    # Internal helpers
    # =========================================================================

    def _build_metadata(
        self,
        report_type: ReportType,
        years: Iterable[int] = (),
        company: str | None = None,
        template_id: str | None = None,
        budget_year: int | None = None,
    ) -> ReportMetadata:
        return ReportMetadata(
            report_type=report_type,
            entity_name=self._config.entity_name,
            generated_at=self._clock.now().isoformat(),
            years=tuple(sorted(set(years))),
            company=company,
            template_id=template_id,
            budget_year=budget_year,
        )

    def _scope(
        self,
        company: str | None,
        cost_centers: Collection[str] | None,
        departments: Collection[str] | None,
    ) -> ScopeFilter:
        return ScopeFilter(
            company=company,
            cost_centers=frozenset(cost_centers) if cost_centers else None,
            departments=frozenset(departments) if departments else None,
            consolidated_label=self._config.consolidated_label,
        )

    def _shape(self, forest):
        if self._config.hide_zero_lines:
            return prune_zero_lines(forest)
        return forest

    # =========================================================================
    # Statements
    # =========================================================================

    def income_statement(
        self,
        definitions: Sequence[StatementLineDefinition],
        sources: StatementSources,
        years: Iterable[int],
        company: str | None = None,
        cost_centers: Collection[str] | None = None,
        departments: Collection[str] | None = None,
        template_id: str | None = None,
        months: Iterable[int | str] | None = None,
    ) -> StatementReport:
        """
        Build the income statement for ``years``.

        ``company`` of ``None`` or the consolidated label sums every
        company.  ``template_id`` restricts the build to one template and
        ``months`` to a subset of each year (all twelve by default).
        """
        years = tuple(years)
        logger.info("reporting_income_statement_started", extra={
            "years": list(years),
            "company": company,
            "template_id": template_id,
        })
        with LogContext.bind(company_ref=company, template_id=template_id):
            result = build_income_statement(
                _select_template(definitions, template_id),
                sources,
                years,
                self._scope(company, cost_centers, departments),
                include_analytical_breakdown=self._config.include_analytical_breakdown,
                months=months,
            )
        report = StatementReport(
            metadata=self._build_metadata(
                ReportType.INCOME_STATEMENT, years, company, template_id,
            ),
            forest=self._shape(result.forest),
            periods=result.periods,
            diagnostics=result.diagnostics,
        )
        logger.info("reporting_income_statement_completed", extra={
            "root_count": len(report.forest),
            "diagnostic_count": len(report.diagnostics),
        })
        return report

    def balance_sheet(
        self,
        definitions: Sequence[StatementLineDefinition],
        balances: Iterable[MonthlyBalance],
        account_mappings: Sequence[AccountMapping],
        years: Iterable[int],
        companies: Collection[str] | None = None,
        template_id: str | None = None,
    ) -> StatementReport:
        """Build the balance sheet from monthly closing balances."""
        years = tuple(years)
        logger.info("reporting_balance_sheet_started", extra={
            "years": list(years),
            "companies": sorted(companies) if companies else None,
        })
        result = build_balance_sheet(
            _select_template(definitions, template_id),
            balances,
            account_mappings,
            years,
            companies,
        )
        company = ",".join(sorted(companies)) if companies else None
        report = StatementReport(
            metadata=self._build_metadata(
                ReportType.BALANCE_SHEET, years, company, template_id,
            ),
            forest=self._shape(result.forest),
            periods=result.periods,
            diagnostics=result.diagnostics,
        )
        logger.info("reporting_balance_sheet_completed", extra={
            "root_count": len(report.forest),
            "diagnostic_count": len(report.diagnostics),
        })
        return report

    def budget_statement(
        self,
        definitions: Sequence[StatementLineDefinition],
        sources: StatementSources,
        budget_data: BudgetDataByPeriod,
        company: str | None = None,
        cost_centers: Collection[str] | None = None,
        departments: Collection[str] | None = None,
        template_id: str | None = None,
    ) -> StatementReport:
        """
        Build actuals for the budget year and the year before, then overlay
        the budget components on every line.
        """
        years = (budget_data.year - 1, budget_data.year)
        logger.info("reporting_budget_statement_started", extra={
            "budget_year": budget_data.year,
            "company": company,
        })
        result = build_income_statement(
            _select_template(definitions, template_id),
            sources,
            years,
            self._scope(company, cost_centers, departments),
            include_analytical_breakdown=self._config.include_analytical_breakdown,
        )
        forest = apply_budget(result.forest, budget_data)
        report = StatementReport(
            metadata=self._build_metadata(
                ReportType.INCOME_STATEMENT,
                years,
                company,
                template_id,
                budget_year=budget_data.year,
            ),
            forest=self._shape(forest),
            periods=result.periods,
            diagnostics=result.diagnostics + budget_data.diagnostics,
        )
        logger.info("reporting_budget_statement_completed", extra={
            "root_count": len(report.forest),
            "diagnostic_count": len(report.diagnostics),
        })
        return report

    # =========================================================================
    # Controller views
    # =========================================================================

    def variance_report(
        self,
        year: int,
        month: int,
        current: Iterable[Observation],
        previous_month: Iterable[Observation],
        same_month_last_year: Iterable[Observation],
        budget: Mapping[str, Decimal],
        categories: Mapping[str, AccountCategory],
        thresholds: VarianceThresholds | None = None,
        benchmarks: Mapping[str, Decimal] | None = None,
    ) -> VarianceReport:
        """Grade each account of one month against budget and history."""
        analysis = analyze_variances(
            current,
            previous_month,
            same_month_last_year,
            budget,
            categories,
            thresholds or VarianceThresholds(),
            benchmarks,
        )
        logger.info("reporting_variance_completed", extra={
            "year": year,
            "month": month,
            "alert_count": len(analysis.alerts),
            "health": analysis.summary.overall_health.value,
        })
        return VarianceReport(
            metadata=self._build_metadata(ReportType.VARIANCE, (year,)),
            year=year,
            month=month,
            analysis=analysis,
        )

    def mapping_coverage(
        self,
        chart: Iterable[ChartAccount],
        mappings: Iterable[AccountMapping],
        scope: CoverageScope = CoverageScope.ALL,
    ) -> MappingCoverageReport:
        coverage = find_unmapped_accounts(chart, mappings, scope)
        logger.info("reporting_mapping_coverage_completed", extra={
            "scope": scope.value,
            "unmapped_count": coverage.count,
        })
        return MappingCoverageReport(
            metadata=self._build_metadata(ReportType.MAPPING_COVERAGE),
            coverage=coverage,
        )

    # =========================================================================
    # Rendering
    # =========================================================================

    def to_dict(self, report: object) -> dict:
        """Render a report as JSON-ready primitives at display precision."""
        places = Decimal(1).scaleb(-self._config.display_precision)
        return render_to_dict(report, places)
