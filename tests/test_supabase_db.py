"""Unit tests for the schema-tolerant insert."""

from unittest.mock import AsyncMock, patch

import pytest
from postgrest.exceptions import APIError

from madison.db.supabase_db import insert_with_optional_fields, unknown_column_from_error
from madison.utils.errors import SchemaSkewError


def unknown_column(column: str, table: str = "generated_images") -> APIError:
    return APIError({
        "message": f"Could not find the '{column}' column of '{table}' in the schema cache",
        "code": "PGRST204",
        "hint": None,
        "details": None,
    })


class TestUnknownColumnFromError:
    """Only structured error codes count as schema skew."""

    def test_postgrest_code_yields_column(self):
        """PGRST204 names the rejected column in its message."""
        assert unknown_column_from_error(unknown_column("source_prompt")) == "source_prompt"

    def test_postgres_undefined_column(self):
        """42703 uses Postgres wording."""
        error = APIError({
            "message": 'column "library_category" of relation "generated_images" does not exist',
            "code": "42703",
            "hint": None,
            "details": None,
        })
        assert unknown_column_from_error(error) == "library_category"

    def test_other_codes_are_not_skew(self):
        """A message that mentions a column is not enough without the code."""
        error = APIError({
            "message": "Could not find the 'source_prompt' column",
            "code": "23505",
            "hint": None,
            "details": None,
        })
        assert unknown_column_from_error(error) is None


class TestInsertWithOptionalFields:
    """Self-healing retries for droppable columns."""

    @pytest.mark.asyncio
    async def test_droppable_columns_are_removed_one_by_one(self):
        """Each rejected optional column is dropped and the insert retried."""
        insert = AsyncMock(side_effect=[
            unknown_column("source_prompt"),
            unknown_column("library_category"),
            {"id": "row-1"},
        ])
        payload = {"final_prompt": "p", "source_prompt": "s", "library_category": "product"}

        with patch("madison.db.supabase_db.insert_record", new=insert):
            stored = await insert_with_optional_fields(
                "generated_images", payload, ("source_prompt", "library_category")
            )

        assert stored == {"id": "row-1"}
        assert insert.await_count == 3
        assert insert.await_args.args[1] == {"final_prompt": "p"}
        assert payload["source_prompt"] == "s"

    @pytest.mark.asyncio
    async def test_required_column_is_surfaced(self):
        """A rejected column outside the droppable set is a schema error."""
        insert = AsyncMock(side_effect=unknown_column("final_prompt"))
        with patch("madison.db.supabase_db.insert_record", new=insert):
            with pytest.raises(SchemaSkewError) as exc_info:
                await insert_with_optional_fields("generated_images", {"final_prompt": "p"}, ("source_prompt",))
        assert exc_info.value.column == "final_prompt"

    @pytest.mark.asyncio
    async def test_other_store_errors_propagate(self):
        """Non-schema failures are not retried."""
        error = APIError({"message": "duplicate key", "code": "23505", "hint": None, "details": None})
        insert = AsyncMock(side_effect=error)
        with patch("madison.db.supabase_db.insert_record", new=insert):
            with pytest.raises(APIError):
                await insert_with_optional_fields("generated_images", {"final_prompt": "p"}, ("source_prompt",))
        assert insert.await_count == 1
