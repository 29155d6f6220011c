"""
Product catalog maintenance: CSV import and duplicate merging.

Rows are upserted by ``handle`` within an organization. A malformed row is
counted as failed and skipped; it never aborts the rest of the file.
"""

from __future__ import annotations

import csv
import io
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from madison.config.logger import app_logger
from madison.db.supabase_db import (
    delete_records_by_ids,
    get_records,
    insert_record,
    update_record,
)
from madison.models.product import SEMANTIC_FIELDS, VISUAL_FIELDS


PRODUCTS_TABLE = "brand_products"
DEFAULT_CATEGORY = "personal_fragrance"

BOOLEAN_COLUMNS = frozenset({
    "archetype_hero_enabled",
    "archetype_everyman_enabled",
    "archetype_explorer_enabled",
    "archetype_lover_enabled",
})
INTEGER_COLUMNS = frozenset({"burn_time_hours", "visual_world_week"})

# Header aliases used by storefront exports
HEADER_ALIASES = {
    "title": "name",
    "product_name": "name",
    "notes_top": "top_notes",
    "notes_middle": "middle_notes",
    "notes_heart": "middle_notes",
    "notes_base": "base_notes",
    "burn_time": "burn_time_hours",
}

CSV_COLUMN_MAP: Dict[str, str] = {
    **{name: name for name in ("handle",) + SEMANTIC_FIELDS + VISUAL_FIELDS},
    **HEADER_ALIASES,
}

MERGEABLE_FIELDS: Tuple[str, ...] = SEMANTIC_FIELDS + VISUAL_FIELDS


@dataclass
class ImportResult:
    inserted: int = 0
    updated: int = 0
    failed: int = 0
    skipped_headers: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


@dataclass
class MergeResult:
    groups: int = 0
    merged: int = 0
    deleted: int = 0
    kept_ids: List[str] = field(default_factory=list)


def _normalize_header(header: str) -> str:
    return re.sub(r"[\s\-]+", "_", (header or "").strip().lower())


def parse_cell(column: str, raw: Optional[str]) -> Any:
    """Typed value for one cell; None when blank or unparseable."""
    value = (raw or "").strip().strip('"').strip()
    if not value:
        return None
    if column in BOOLEAN_COLUMNS:
        return value.lower() == "yes"
    if column in INTEGER_COLUMNS:
        match = re.match(r"^-?\d+", value)
        return int(match.group()) if match else None
    return value


def parse_product_csv(text: str) -> Tuple[List[Dict[str, Any]], List[str]]:
    """Rows mapped to product columns, plus the headers that were ignored.

    Raises:
        ValueError: If the file has no header row or no data rows
    """
    reader = csv.reader(io.StringIO(text.lstrip("\ufeff")))
    rows = [row for row in reader if any(cell.strip() for cell in row)]
    if len(rows) < 2:
        raise ValueError("CSV file must contain a header row and at least one data row")

    headers = [_normalize_header(header) for header in rows[0]]
    columns = [CSV_COLUMN_MAP.get(header) for header in headers]
    ignored = [raw for raw, column in zip(rows[0], columns) if column is None and raw.strip()]

    products: List[Dict[str, Any]] = []
    for row in rows[1:]:
        product: Dict[str, Any] = {}
        for column, raw in zip(columns, row):
            if column is None:
                continue
            value = parse_cell(column, raw)
            if value is not None and column not in product:
                product[column] = value
        products.append(product)
    return products, ignored


async def import_products_csv(organization_id: str, text: str) -> ImportResult:
    """Upsert every row of a product CSV by handle.

    Raises:
        ValueError: If the CSV has no usable rows
    """
    rows, ignored = parse_product_csv(text)
    result = ImportResult(skipped_headers=ignored)
    if ignored:
        app_logger.info(f"CSV import ignoring unknown headers: {', '.join(ignored)}")

    existing = await get_records(
        PRODUCTS_TABLE,
        filters={"organization_id": organization_id},
        columns="id,handle",
    )
    by_handle = {row["handle"].strip().lower(): str(row["id"]) for row in existing if row.get("handle")}

    for line_number, product in enumerate(rows, start=2):
        if not product.get("handle") or not product.get("name"):
            result.failed += 1
            result.errors.append(f"Row {line_number}: handle and name are required")
            app_logger.warning(f"CSV row {line_number} skipped: missing handle or name")
            continue

        product.setdefault("category", DEFAULT_CATEGORY)
        product["organization_id"] = organization_id
        key = product["handle"].strip().lower()
        try:
            if key in by_handle:
                product["updated_at"] = datetime.now(timezone.utc).isoformat()
                await update_record(PRODUCTS_TABLE, by_handle[key], product)
                result.updated += 1
            else:
                stored = await insert_record(PRODUCTS_TABLE, product)
                by_handle[key] = str(stored.get("id"))
                result.inserted += 1
        except Exception as e:
            result.failed += 1
            result.errors.append(f"Row {line_number} ({product['handle']}): {e}")
            app_logger.warning(f"CSV row {line_number} failed: {e}")

    app_logger.info(
        f"CSV import for org={organization_id}: {result.inserted} inserted, "
        f"{result.updated} updated, {result.failed} failed"
    )
    return result


def _filled_count(row: Dict[str, Any]) -> int:
    return sum(1 for name in MERGEABLE_FIELDS if row.get(name) not in (None, ""))


def _sort_key(row: Dict[str, Any]) -> Tuple[int, str]:
    return _filled_count(row), str(row.get("updated_at") or row.get("created_at") or "")


def plan_merge(rows: List[Dict[str, Any]]) -> Tuple[Dict[str, Any], Dict[str, Any], List[str]]:
    """Pick the keeper of a duplicate group and the fields it inherits.

    The keeper is the most complete row (newest on a tie). Its empty fields
    are filled from the other rows, most complete first.
    Returns (keeper, updates, ids_to_delete).
    """
    ordered = sorted(rows, key=_sort_key, reverse=True)
    keeper, others = ordered[0], ordered[1:]
    updates: Dict[str, Any] = {}
    for name in MERGEABLE_FIELDS:
        if keeper.get(name) not in (None, ""):
            continue
        for other in others:
            if other.get(name) not in (None, ""):
                updates[name] = other[name]
                break
    return keeper, updates, [str(other["id"]) for other in others]


async def merge_duplicate_products(organization_id: str) -> MergeResult:
    """Collapse products that share a handle into one record each."""
    rows = await get_records(PRODUCTS_TABLE, filters={"organization_id": organization_id})
    groups: Dict[str, List[Dict[str, Any]]] = {}
    for row in rows:
        handle = (row.get("handle") or "").strip().lower()
        if handle:
            groups.setdefault(handle, []).append(row)

    result = MergeResult()
    for handle, group in groups.items():
        if len(group) < 2:
            continue
        keeper, updates, duplicate_ids = plan_merge(group)
        if updates:
            updates["updated_at"] = datetime.now(timezone.utc).isoformat()
            await update_record(PRODUCTS_TABLE, str(keeper["id"]), updates)
        result.deleted += await delete_records_by_ids(PRODUCTS_TABLE, duplicate_ids)
        result.groups += 1
        result.merged += len(duplicate_ids)
        result.kept_ids.append(str(keeper["id"]))
        app_logger.info(f"Merged {len(duplicate_ids)} duplicate(s) of '{handle}' into {keeper['id']}")

    return result
