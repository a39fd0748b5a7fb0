"""
Reporting Domain Models (``controller_modules.reporting.models``).

Responsibility
--------------
Frozen dataclass value objects wrapping engine outputs into reports:
statement reports (income statement, balance sheet, with or without a
budget overlay), the controller variance report and the mapping coverage
report.

Architecture position
---------------------
**Modules layer** -- pure data definitions with ZERO I/O.  Built by the
pure functions in ``statements.py`` and returned by ``ReportingService``.

Invariants enforced
-------------------
* All models are ``frozen=True``.
* ``ReportMetadata.generated_at`` comes from an injected clock, never from
  the engines.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from controller_engines.mapping_coverage import CoverageReport
from controller_engines.statement_tree import StatementNode
from controller_engines.variance import VarianceAnalysis
from controller_kernel.domain.periods import Period
from controller_kernel.exceptions import ControllershipWarning


class ReportType(str, Enum):
    """Types of controllership reports."""

    INCOME_STATEMENT = "income_statement"
    BALANCE_SHEET = "balance_sheet"
    VARIANCE = "variance"
    MAPPING_COVERAGE = "mapping_coverage"


@dataclass(frozen=True)
class ReportMetadata:
    """Metadata attached to every report."""

    report_type: ReportType
    entity_name: str
    generated_at: str  # ISO format timestamp from injected clock
    years: tuple[int, ...] = ()
    company: str | None = None
    template_id: str | None = None
    budget_year: int | None = None


@dataclass(frozen=True)
class StatementReport:
    """A built statement forest plus the diagnostics gathered on the way."""

    metadata: ReportMetadata
    forest: tuple[StatementNode, ...]
    periods: tuple[Period, ...]
    diagnostics: tuple[ControllershipWarning, ...] = ()

    @property
    def has_budget(self) -> bool:
        return self.metadata.budget_year is not None


@dataclass(frozen=True)
class VarianceReport:
    metadata: ReportMetadata
    year: int
    month: int
    analysis: VarianceAnalysis


@dataclass(frozen=True)
class MappingCoverageReport:
    metadata: ReportMetadata
    coverage: CoverageReport
