"""Source adapters for CSV ingestion (text parsing only, no DB)."""

from custody_ingestion.adapters.csv_adapter import CsvSourceAdapter, SourceRow

__all__ = [
    "CsvSourceAdapter",
    "SourceRow",
]
