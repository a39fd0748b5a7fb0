"""
Controllership Reporting Module (``controller_modules.reporting``).

Responsibility
--------------
Read-only module that generates controllership reports from caller-supplied
records: income statement (with optional analytical breakdown), balance
sheet from monthly balances, budget-versus-actual statement, monthly
variance report and mapping coverage report.

Architecture position
---------------------
**Modules layer** -- read-only glue over ``controller_engines``.  All
statement shaping is implemented as pure functions in ``statements.py``.

Invariants enforced
-------------------
* No inputs are mutated.
* Report values derive entirely from the supplied records.

Failure modes
-------------
* Invalid statement structure -> ``ConfigurationError`` before computation.
* Missing records -> zero values with ``DataGapWarning`` diagnostics.

Audit relevance
---------------
Report metadata includes the generation timestamp, years, company and
template for audit trail purposes.
"""

from controller_modules.reporting.config import ReportingConfig
from controller_modules.reporting.models import (
    MappingCoverageReport,
    ReportMetadata,
    ReportType,
    StatementReport,
    VarianceReport,
)
from controller_modules.reporting.service import ReportingService
from controller_modules.reporting.statements import (
    build_balance_sheet,
    build_income_statement,
    render_to_dict,
)

__all__ = [
    "MappingCoverageReport",
    "ReportMetadata",
    "ReportType",
    "ReportingConfig",
    "ReportingService",
    "StatementReport",
    "VarianceReport",
    "build_balance_sheet",
    "build_income_statement",
    "render_to_dict",
]
