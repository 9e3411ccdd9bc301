"""Read-only query selectors."""

from custody_kernel.selectors.base import BaseSelector
from custody_kernel.selectors.catalog_selector import DEFAULT_SETTINGS, CatalogSelector
from custody_kernel.selectors.ledger_selector import LedgerSelector
from custody_kernel.selectors.request_selector import RequestSelector

__all__ = [
    "BaseSelector",
    "CatalogSelector",
    "DEFAULT_SETTINGS",
    "LedgerSelector",
    "RequestSelector",
]
