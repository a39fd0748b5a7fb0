"""Source adapters for balance and budget imports (file I/O only, no DB)."""

from controller_ingestion.adapters.base import SourceAdapter, SourcePreview
from controller_ingestion.adapters.csv_adapter import CsvSourceAdapter
from controller_ingestion.adapters.xlsx_adapter import XlsxSourceAdapter

__all__ = [
    "CsvSourceAdapter",
    "SourceAdapter",
    "SourcePreview",
    "XlsxSourceAdapter",
]
