"""Import services for CSV ingestion."""

from custody_ingestion.services.import_service import (
    ImportReport,
    ImportRowError,
    ImportService,
)

__all__ = [
    "ImportReport",
    "ImportRowError",
    "ImportService",
]
