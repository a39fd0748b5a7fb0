"""
controller_ingestion -- spreadsheet imports of balances and budget values.

Adapters read CSV/XLSX files into row dicts; importers turn rows into
``MonthlyBalance`` records and the ``imported`` budget component.
"""

from controller_ingestion.adapters import CsvSourceAdapter, SourcePreview, XlsxSourceAdapter
from controller_ingestion.importers import (
    ImportedBudgetValue,
    ImportIssue,
    ImportResult,
    PeriodColumn,
    as_imported_component,
    import_budget_values,
    import_monthly_balances,
    parse_amount,
)

__all__ = [
    "CsvSourceAdapter",
    "ImportIssue",
    "ImportResult",
    "ImportedBudgetValue",
    "PeriodColumn",
    "SourcePreview",
    "XlsxSourceAdapter",
    "as_imported_component",
    "import_budget_values",
    "import_monthly_balances",
    "parse_amount",
]
