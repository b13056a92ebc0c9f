"""Catalog domain module: projects and catalog imports"""

from .import_service import CatalogImportService
from .schemas import (
    StoreItemRow,
    SupplierItemRow,
    InterchangeRow,
    LineCodeAliasRow,
    ImportRequest,
    ImportResult,
    BackfillResult,
)

__all__ = [
    "CatalogImportService",
    "StoreItemRow",
    "SupplierItemRow",
    "InterchangeRow",
    "LineCodeAliasRow",
    "ImportRequest",
    "ImportResult",
    "BackfillResult",
]
