"""
XLSX source adapter for balance and budget spreadsheets.

The first row of the selected sheet is the header.  Integral floats are
returned as ints and text cells are stripped; numeric parsing into
Decimal happens in the importers, not here.

source_options:
  sheet: 0-based sheet index (int) or sheet name (str). Default: first sheet.
  skip_rows: rows to skip above the header. Default: 0.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Iterator

import openpyxl

from controller_ingestion.adapters.base import SourcePreview, unique_headers


def _cell_value(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, float) and value == int(value):
        return int(value)
    if isinstance(value, str):
        return value.strip()
    return value


class XlsxSourceAdapter:
    """Read .xlsx sheets as one dict per row."""

    def read(self, source_path: Path, options: dict[str, Any]) -> Iterator[dict[str, Any]]:
        wb = openpyxl.load_workbook(source_path, read_only=True, data_only=True)
        try:
            sheet = self._get_sheet(wb, options)
            skip_rows = int(options.get("skip_rows", 0))
            rows = sheet.iter_rows(min_row=1 + skip_rows, values_only=True)
            header = next(rows, None)
            if header is None:
                return
            headers = unique_headers(list(header))
            for row in rows:
                values = [_cell_value(v) for v in row]
                if not any(v != "" for v in values):
                    continue
                values += [""] * (len(headers) - len(values))
                yield dict(zip(headers, values))
        finally:
            wb.close()

    def preview(self, source_path: Path, options: dict[str, Any]) -> SourcePreview:
        rows = list(self.read(source_path, options))
        columns: tuple[str, ...] = tuple(rows[0].keys()) if rows else ()
        return SourcePreview(
            row_count=len(rows),
            columns=columns,
            sample_rows=tuple(rows[:5]),
        )

    def _get_sheet(self, wb: Any, options: dict[str, Any]) -> Any:
        sheet_ref = options.get("sheet")
        if sheet_ref is None:
            return wb.worksheets[0]
        if isinstance(sheet_ref, int):
            return wb.worksheets[sheet_ref]
        return wb[sheet_ref]
