"""Supabase REST API database operations.

All reads and writes go through Supabase's REST API (PostgREST). The
supabase-py client is synchronous, so each query is executed in a worker
thread; that keeps the event loop free and lets independent queries be
awaited together with ``asyncio.gather``.
"""

import asyncio
import re
from typing import Any, Dict, Iterable, List, Optional, Sequence

from postgrest.exceptions import APIError

from madison.config.logger import app_logger
from madison.utils.errors import SchemaSkewError
from madison.utils.supabase_client import get_supabase_admin_client


# PostgREST reports an unknown column in an insert payload as PGRST204;
# Postgres itself reports undefined_column as 42703.
UNKNOWN_COLUMN_CODES = frozenset({"PGRST204", "42703"})

_COLUMN_IN_MESSAGE = re.compile(
    r"'(?P<quoted>[A-Za-z0-9_]+)' column"
    r"|column \"?(?P<bare>[A-Za-z0-9_.]+)\"? (?:of relation \S+ )?does not exist"
)


async def _execute(query):
    return await asyncio.to_thread(query.execute)


# ============================================
# Generic Table Operations
# ============================================

async def insert_record(table: str, data: Dict[str, Any]) -> Dict[str, Any]:
    """Insert a record into any table."""
    try:
        client = get_supabase_admin_client()
        response = await _execute(client.table(table).insert(data))

        if response.data and len(response.data) > 0:
            return response.data[0]
        raise Exception(f"Failed to insert into {table} - no data returned")
    except Exception as e:
        app_logger.error(f"Failed to insert into {table}: {e}")
        raise


async def get_records(
    table: str,
    filters: Optional[Dict[str, Any]] = None,
    in_filters: Optional[Dict[str, Sequence[Any]]] = None,
    limit: Optional[int] = None,
    order_by: Optional[str] = None,
    ascending: bool = True,
    columns: str = "*",
) -> List[Dict[str, Any]]:
    """Get records from any table with optional equality and IN filters."""
    try:
        client = get_supabase_admin_client()
        query = client.table(table).select(columns)

        if filters:
            for key, value in filters.items():
                query = query.eq(key, value)

        if in_filters:
            for key, values in in_filters.items():
                query = query.in_(key, list(values))

        if order_by:
            query = query.order(order_by, desc=not ascending)

        if limit:
            query = query.limit(limit)

        response = await _execute(query)
        return response.data or []
    except Exception as e:
        app_logger.error(f"Failed to get records from {table}: {e}")
        raise


async def get_single_record(
    table: str,
    filters: Dict[str, Any],
    columns: str = "*",
) -> Optional[Dict[str, Any]]:
    """Return the first row matching ``filters`` or None."""
    rows = await get_records(table, filters=filters, limit=1, columns=columns)
    return rows[0] if rows else None


async def update_record(
    table: str,
    record_id: str,
    updates: Dict[str, Any],
    id_column: str = "id",
) -> Optional[Dict[str, Any]]:
    """Update a record in any table."""
    try:
        client = get_supabase_admin_client()
        response = await _execute(client.table(table).update(updates).eq(id_column, record_id))

        if response.data and len(response.data) > 0:
            return response.data[0]
        return None
    except Exception as e:
        app_logger.error(f"Failed to update record in {table}: {e}")
        raise


async def update_records_by_ids(
    table: str,
    record_ids: Iterable[str],
    updates: Dict[str, Any],
) -> int:
    """Apply the same update to several rows. Returns the number of rows updated."""
    ids = [str(record_id) for record_id in record_ids]
    if not ids:
        return 0
    try:
        client = get_supabase_admin_client()
        response = await _execute(client.table(table).update(updates).in_("id", ids))
        return len(response.data or [])
    except Exception as e:
        app_logger.error(f"Failed to update records in {table}: {e}")
        raise


async def delete_records_by_ids(table: str, record_ids: Iterable[str]) -> int:
    """Delete several rows by id. Returns the number of ids submitted."""
    ids = [str(record_id) for record_id in record_ids]
    if not ids:
        return 0
    try:
        client = get_supabase_admin_client()
        await _execute(client.table(table).delete().in_("id", ids))
        return len(ids)
    except Exception as e:
        app_logger.error(f"Failed to delete records from {table}: {e}")
        raise


# ============================================
# Schema-skew tolerant insert
# ============================================

def unknown_column_from_error(error: Exception) -> Optional[str]:
    """Return the offending column name if ``error`` is an unknown-column error.

    Only errors carrying one of the structured UNKNOWN_COLUMN_CODES qualify;
    the message is consulted just to learn which column was rejected.
    """
    code = getattr(error, "code", None)
    if code not in UNKNOWN_COLUMN_CODES:
        return None

    message = getattr(error, "message", None) or str(error)
    match = _COLUMN_IN_MESSAGE.search(message)
    if not match:
        return ""
    column = match.group("quoted") or match.group("bare") or ""
    return column.split(".")[-1]


async def insert_with_optional_fields(
    table: str,
    data: Dict[str, Any],
    droppable: Iterable[str],
) -> Dict[str, Any]:
    """Insert ``data``, dropping optional fields the live schema does not know.

    Each field in ``droppable`` is removed at most once, when the store rejects
    it as an unknown column. Any other failure, or an unknown column outside
    ``droppable``, propagates.

    Raises:
        SchemaSkewError: If the store rejects a column that may not be dropped
        APIError: For every other store failure
    """
    optional_fields = set(droppable)
    payload = dict(data)
    dropped: List[str] = []

    while True:
        try:
            record = await insert_record(table, payload)
            if dropped:
                app_logger.warning(
                    f"Inserted into {table} without unknown columns: {', '.join(dropped)}"
                )
            return record
        except APIError as exc:
            column = unknown_column_from_error(exc)
            if column is None:
                raise
            if not column or column not in optional_fields or column not in payload or column in dropped:
                raise SchemaSkewError(table, column or None, exc.message or str(exc)) from exc

            app_logger.warning(f"Column '{column}' missing from {table}; retrying insert without it")
            payload.pop(column)
            dropped.append(column)


# ============================================
# Health Check
# ============================================

async def ping_supabase() -> tuple[bool, str]:
    """Check if Supabase connection is healthy."""
    try:
        client = get_supabase_admin_client()
        await _execute(client.table("brand_knowledge").select("id").limit(1))
        return True, "Supabase REST API connection healthy"
    except Exception as e:
        return False, f"Supabase connection failed: {str(e)}"
