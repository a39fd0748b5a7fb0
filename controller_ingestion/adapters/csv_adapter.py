"""
CSV source adapter for balance and budget sheets exported as text.

Uses csv.reader. Configurable: delimiter, encoding, skip_rows. Handles a
UTF-8 BOM. Streams rows.
"""

from __future__ import annotations

import csv
from pathlib import Path
from typing import Any, Iterator

from controller_ingestion.adapters.base import SourcePreview, unique_headers


def _encoding(options: dict[str, Any]) -> str:
    encoding = options.get("encoding", "utf-8")
    if encoding.lower() == "utf-8":
        return "utf-8-sig"
    return encoding


class CsvSourceAdapter:
    """Read CSV files as one dict per row, keyed by the header row."""

    def read(self, source_path: Path, options: dict[str, Any]) -> Iterator[dict[str, Any]]:
        delimiter = options.get("delimiter", ",")
        skip_rows = int(options.get("skip_rows", 0))
        with source_path.open("r", encoding=_encoding(options), newline="") as f:
            for _ in range(skip_rows):
                next(f, None)
            reader = csv.reader(f, delimiter=delimiter)
            header = next(reader, None)
            if header is None:
                return
            headers = unique_headers(header)
            for row in reader:
                if not any(cell.strip() for cell in row):
                    continue
                values = [cell.strip() for cell in row] + [""] * (len(headers) - len(row))
                yield dict(zip(headers, values))

    def preview(self, source_path: Path, options: dict[str, Any]) -> SourcePreview:
        rows = list(self.read(source_path, options))
        columns: tuple[str, ...] = tuple(rows[0].keys()) if rows else ()
        if not rows:
            delimiter = options.get("delimiter", ",")
            with source_path.open("r", encoding=_encoding(options), newline="") as f:
                header = next(csv.reader(f, delimiter=delimiter), None)
            columns = tuple(unique_headers(header)) if header else ()
        return SourcePreview(
            row_count=len(rows),
            columns=columns,
            sample_rows=tuple(rows[:5]),
        )
