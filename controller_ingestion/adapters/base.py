"""
Source adapter protocol and preview DTO.

Contract:
    SourceAdapter.read() yields one dict per sheet row, keyed by header.
    SourceAdapter.preview() returns the header row and a few sample rows so a
    caller can choose the account and period columns before importing.

Architecture: controller_ingestion/adapters. File I/O only, no DB imports.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterator, Protocol, runtime_checkable

_SPACES = re.compile(r"\s+")


@runtime_checkable
class SourceAdapter(Protocol):
    """Protocol for reading tabular source files into row dicts."""

    def read(self, source_path: Path, options: dict[str, Any]) -> Iterator[dict[str, Any]]:
        ...

    def preview(self, source_path: Path, options: dict[str, Any]) -> "SourcePreview":
        ...


@dataclass(frozen=True)
class SourcePreview:
    """Header row and first rows of a source file."""

    row_count: int
    columns: tuple[str, ...]
    sample_rows: tuple[dict[str, Any], ...]


def normalize_header(value: Any) -> str:
    if value is None:
        return ""
    return _SPACES.sub(" ", str(value)).strip()


def unique_headers(raw: list[Any]) -> list[str]:
    """Normalize header cells; blanks get ``Column_N``, duplicates a suffix."""
    headers: list[str] = []
    for index, value in enumerate(raw):
        key = normalize_header(value) or f"Column_{index + 1}"
        base, count = key, 0
        while key in headers:
            count += 1
            key = f"{base}_{count}"
        headers.append(key)
    return headers
