"""
Spreadsheet importers for monthly balances and imported budget values.

Responsibility:
    Turn row dicts produced by the source adapters into domain records.
    One sheet row carries an account (or budget target) column and any
    number of value columns, each bound to one (year, month) by a
    ``PeriodColumn``.  Every bad cell is reported as an ``ImportIssue``;
    good cells of the same row are still imported.

Architecture position:
    Ingestion -- sits beside ``controller_config``.  Produces
    ``MonthlyBalance`` rows for the balance sheet and the historical
    component, and the ``imported`` budget component.

Invariants enforced:
    - Amounts become Decimal through ``str``; floats never reach a record.
    - Text amounts accept grouped formats: ``1.234,56`` and ``1234,56``
      both read as 1234.56.
    - Rows without an account are skipped, blank value cells are skipped.

Failure modes:
    - A period column or the account column missing from the header
      raises ``ValueError`` before any row is read.
"""

from __future__ import annotations

import re
from collections.abc import Collection, Iterable, Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Generic, TypeVar

from controller_kernel.domain.dtos import MonthlyBalance
from controller_kernel.domain.periods import Period, normalize_month
from controller_kernel.logging_config import get_logger

logger = get_logger("ingestion.importers")

T = TypeVar("T")

_NOT_NUMERIC = re.compile(r"[^\d.,-]")

# Spreadsheet row number of the first data row (header is row 1)
FIRST_DATA_ROW = 2


@dataclass(frozen=True)
class PeriodColumn:
    """Binds a sheet column to one (year, month)."""

    column: str
    year: int
    month: int

    def __post_init__(self) -> None:
        object.__setattr__(self, "month", normalize_month(self.month))

    @property
    def period(self) -> Period:
        return (self.year, self.month)


@dataclass(frozen=True)
class ImportIssue:
    row: int
    column: str
    value: str
    reason: str


@dataclass(frozen=True)
class ImportResult(Generic[T]):
    records: tuple[T, ...]
    issues: tuple[ImportIssue, ...]
    total_rows: int

    @property
    def imported_count(self) -> int:
        return len(self.records)

    @property
    def error_count(self) -> int:
        return len(self.issues)

    @property
    def success(self) -> bool:
        return not self.issues


@dataclass(frozen=True)
class ImportedBudgetValue:
    target_id: str
    year: int
    month: int
    value: Decimal

    @property
    def period(self) -> Period:
        return (self.year, self.month)


def parse_amount(raw: Any) -> Decimal | None:
    """
    Parse a spreadsheet cell into Decimal.

    Returns ``None`` for blank cells.

    Raises:
        ValueError: If the cell holds text that is not a number.
    """
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, Decimal):
        return raw
    if isinstance(raw, (int, float)):
        return Decimal(str(raw))
    text = str(raw).strip()
    if not text:
        return None
    cleaned = _NOT_NUMERIC.sub("", text)
    if "," in cleaned and "." not in cleaned:
        cleaned = cleaned.replace(",", ".")
    elif "," in cleaned and "." in cleaned:
        cleaned = cleaned.replace(".", "").replace(",", ".")
    try:
        return Decimal(cleaned)
    except InvalidOperation as exc:
        raise ValueError(f"not a number: {text!r}") from exc


def _check_columns(
    rows: Sequence[Mapping[str, Any]],
    key_column: str,
    period_columns: Sequence[PeriodColumn],
) -> None:
    if not rows:
        return
    present = set(rows[0].keys())
    missing = [key_column] if key_column not in present else []
    missing += [pc.column for pc in period_columns if pc.column not in present]
    if missing:
        raise ValueError(f"Columns not found in sheet: {', '.join(missing)}")


def _read_cells(
    rows: Sequence[Mapping[str, Any]],
    key_column: str,
    period_columns: Sequence[PeriodColumn],
) -> tuple[list[tuple[str, PeriodColumn, Decimal]], list[ImportIssue]]:
    cells: list[tuple[str, PeriodColumn, Decimal]] = []
    issues: list[ImportIssue] = []
    for offset, row in enumerate(rows):
        key = str(row.get(key_column, "") or "").strip()
        if not key:
            continue
        for pc in period_columns:
            raw = row.get(pc.column)
            try:
                amount = parse_amount(raw)
            except ValueError as exc:
                issues.append(ImportIssue(
                    row=offset + FIRST_DATA_ROW,
                    column=pc.column,
                    value=str(raw),
                    reason=str(exc),
                ))
                continue
            if amount is not None:
                cells.append((key, pc, amount))
    return cells, issues


def import_monthly_balances(
    rows: Iterable[Mapping[str, Any]],
    account_column: str,
    period_columns: Sequence[PeriodColumn],
    company_ref: str,
) -> ImportResult[MonthlyBalance]:
    """One ``MonthlyBalance`` per (account row, period column) with a value."""
    rows = list(rows)
    _check_columns(rows, account_column, period_columns)
    cells, issues = _read_cells(rows, account_column, period_columns)
    records = tuple(
        MonthlyBalance(
            company_ref=company_ref,
            account_ref=account,
            year=pc.year,
            month=pc.month,
            value=amount,
        )
        for account, pc, amount in cells
    )
    logger.info("monthly_balances_imported", extra={
        "company_ref": company_ref,
        "total_rows": len(rows),
        "imported_count": len(records),
        "error_count": len(issues),
    })
    return ImportResult(records=records, issues=tuple(issues), total_rows=len(rows))


def import_budget_values(
    rows: Iterable[Mapping[str, Any]],
    target_column: str,
    period_columns: Sequence[PeriodColumn],
    known_targets: Collection[str] | None = None,
) -> ImportResult[ImportedBudgetValue]:
    """
    Read the ``imported`` budget component from a sheet.

    When ``known_targets`` is given, rows naming any other target are
    reported instead of imported.
    """
    rows = list(rows)
    _check_columns(rows, target_column, period_columns)
    cells, issues = _read_cells(rows, target_column, period_columns)
    records: list[ImportedBudgetValue] = []
    rejected: set[str] = set()
    for target, pc, amount in cells:
        if known_targets is not None and target not in known_targets:
            if target not in rejected:
                rejected.add(target)
                row = next(
                    i + FIRST_DATA_ROW for i, r in enumerate(rows)
                    if str(r.get(target_column, "")).strip() == target
                )
                issues.append(ImportIssue(
                    row=row,
                    column=target_column,
                    value=target,
                    reason="unknown budget target",
                ))
            continue
        records.append(ImportedBudgetValue(
            target_id=target, year=pc.year, month=pc.month, value=amount,
        ))
    issues.sort(key=lambda i: (i.row, i.column))
    logger.info("budget_values_imported", extra={
        "total_rows": len(rows),
        "imported_count": len(records),
        "error_count": len(issues),
    })
    return ImportResult(records=tuple(records), issues=tuple(issues), total_rows=len(rows))


def as_imported_component(
    values: Iterable[ImportedBudgetValue],
) -> dict[str, dict[Period, Decimal]]:
    """Sum imported values per target and period."""
    component: dict[str, dict[Period, Decimal]] = {}
    for value in values:
        cells = component.setdefault(value.target_id, {})
        cells[value.period] = cells.get(value.period, Decimal("0")) + value.value
    return component
