"""Catalog import service.

Accepts rows that an upstream collaborator has already parsed (CSV,
spreadsheet, API) and persists them with their canonical keys. Parsing file
formats is deliberately not done here.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Type
from uuid import UUID

from pydantic import BaseModel, ValidationError
from sqlalchemy import insert, select, update
from sqlalchemy.orm import Session

from models.store_item import StoreItem
from models.supplier_item import SupplierItem
from models.interchange import Interchange, LineCodeAlias
from normalization import (
    AliasCache,
    get_alias_cache,
    normalize_part_number,
    normalize_line_code,
    derive_manufacturer_part,
)
from .schemas import (
    StoreItemRow,
    SupplierItemRow,
    InterchangeRow,
    LineCodeAliasRow,
    ImportResult,
    RowImportError,
    BackfillResult,
)

logger = logging.getLogger(__name__)

MAX_REPORTED_ERRORS = 100
INSERT_BATCH_SIZE = 1000


def _part_keys(part_number: str, line_code: Optional[str]) -> Dict[str, Any]:
    canonical = normalize_part_number(part_number)
    mfr_canonical = derive_manufacturer_part(part_number, line_code)
    manufacturer_part = None
    if mfr_canonical:
        # Keep the raw fragment readable: drop the leading line code characters
        code_len = len(normalize_line_code(line_code))
        manufacturer_part = part_number.strip()[code_len:].lstrip("-/. ") or None
    return {
        "canonical_part_number": canonical,
        "manufacturer_part": manufacturer_part,
        "manufacturer_part_canonical": mfr_canonical,
    }


class CatalogImportService:
    """Persist parsed catalog rows with canonical keys.

    Rows that fail validation or normalize to an empty key are skipped and
    reported; they never abort the batch.
    """

    def __init__(self, db: Session, project_id: UUID, alias_cache: Optional[AliasCache] = None):
        self.db = db
        self.project_id = project_id
        self.alias_cache = alias_cache or get_alias_cache()

    def import_store_items(self, rows: Iterable[Dict[str, Any]]) -> ImportResult:
        def build(row: StoreItemRow) -> Dict[str, Any]:
            return {
                "project_id": self.project_id,
                "part_number": row.part_number.strip(),
                "line_code": normalize_line_code(row.line_code) or None,
                "description": row.description,
                "category": row.category,
                "subcategory": row.subcategory,
                "cost": row.cost,
                **_part_keys(row.part_number, row.line_code),
            }

        return self._import(rows, StoreItemRow, StoreItem, build)

    def import_supplier_items(self, rows: Iterable[Dict[str, Any]], project_scoped: bool = True) -> ImportResult:
        """Import supplier rows, either into this project or into the global catalog."""
        owner = self.project_id if project_scoped else None

        def build(row: SupplierItemRow) -> Dict[str, Any]:
            return {
                "project_id": owner,
                "part_number": row.part_number.strip(),
                "line_code": normalize_line_code(row.line_code) or None,
                "brand": row.brand.strip().upper() if row.brand else None,
                "description": row.description,
                "category": row.category,
                "subcategory": row.subcategory,
                "cost": row.cost,
                **_part_keys(row.part_number, row.line_code),
            }

        return self._import(rows, SupplierItemRow, SupplierItem, build)

    def import_interchanges(self, rows: Iterable[Dict[str, Any]], project_scoped: bool = True) -> ImportResult:
        owner = self.project_id if project_scoped else None

        def build(row: InterchangeRow) -> Dict[str, Any]:
            return {
                "project_id": owner,
                "theirs_part_number": row.theirs_part_number.strip(),
                "theirs_canonical": normalize_part_number(row.theirs_part_number),
                "theirs_line_code": normalize_line_code(row.theirs_line_code) or None,
                "ours_part_number": row.ours_part_number.strip(),
                "ours_canonical": normalize_part_number(row.ours_part_number),
                "ours_line_code": normalize_line_code(row.ours_line_code) or None,
                "source": row.source,
                "confidence": row.confidence,
            }

        return self._import(rows, InterchangeRow, Interchange, build, key_fields=("theirs_canonical", "ours_canonical"))

    def import_line_code_aliases(self, rows: Iterable[Dict[str, Any]], project_scoped: bool = True) -> ImportResult:
        owner = self.project_id if project_scoped else None

        def build(row: LineCodeAliasRow) -> Dict[str, Any]:
            return {
                "project_id": owner,
                "line_code": normalize_line_code(row.line_code),
                "brand": row.brand.strip().upper(),
                "priority": row.priority,
                "active": True,
            }

        result = self._import(rows, LineCodeAliasRow, LineCodeAlias, build, key_fields=("line_code",))
        if result.imported_count:
            self.alias_cache.invalidate(owner)
        return result

    def backfill_normalization(self) -> BackfillResult:
        """Recompute canonical keys for this project's store and supplier rows.

        Used after normalization rules change; only rows whose keys differ
        are written.
        """
        counts = {}
        for model in (StoreItem, SupplierItem):
            rows = self.db.execute(
                select(model.id, model.part_number, model.line_code,
                       model.canonical_part_number, model.manufacturer_part_canonical)
                .where(model.project_id == self.project_id)
            ).all()

            changes = []
            for row_id, part_number, line_code, canonical, mfr_canonical in rows:
                keys = _part_keys(part_number, line_code)
                if (keys["canonical_part_number"], keys["manufacturer_part_canonical"]) != (canonical, mfr_canonical):
                    changes.append({"id": row_id, **keys})

            if changes:
                self.db.execute(update(model), changes)
            counts[model.__tablename__] = len(changes)

        self.db.commit()
        logger.info("Normalization backfill complete", extra={"project_id": self.project_id, **counts})
        return BackfillResult(
            project_id=self.project_id,
            store_items_updated=counts["store_item"],
            supplier_items_updated=counts["supplier_item"],
        )

    def _import(
        self,
        rows: Iterable[Dict[str, Any]],
        schema: Type[BaseModel],
        model,
        build,
        key_fields=("canonical_part_number",),
    ) -> ImportResult:
        result = ImportResult()
        pending: List[Dict[str, Any]] = []

        for row_num, raw in enumerate(rows, start=1):
            result.total_rows += 1
            try:
                values = build(schema.model_validate(raw))
                missing = [f for f in key_fields if not values.get(f)]
                if missing:
                    raise ValueError(f"empty canonical key: {', '.join(missing)}")
            except (ValidationError, ValueError, TypeError) as e:
                result.error_count += 1
                if len(result.errors) < MAX_REPORTED_ERRORS:
                    part = raw.get("part_number") if isinstance(raw, dict) else None
                    result.errors.append(RowImportError(row=row_num, part_number=part, error=str(e)))
                continue

            pending.append(values)
            if len(pending) >= INSERT_BATCH_SIZE:
                self.db.execute(insert(model), pending)
                result.imported_count += len(pending)
                pending = []

        if pending:
            self.db.execute(insert(model), pending)
            result.imported_count += len(pending)

        self.db.commit()
        logger.info(
            "Catalog import complete",
            extra={
                "project_id": self.project_id,
                "table": model.__tablename__,
                "imported": result.imported_count,
                "skipped": result.error_count,
            },
        )
        return result
