"""
JSON bulk import: POST /api/assets/import-bulk.

No session and no mapping step. Rows arrive as JSON objects with their
own key names, go through the same validation and per-row isolation as
the spreadsheet executor, and are numbered from 1. Serial numbers are
compared case-insensitively here.
"""

from typing import Any

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from assethub.core.auth import AuthContext
from assethub.services.asset_writer import (
    AssetWriter,
    RowError,
    build_draft,
    load_location_index,
)

logger = structlog.get_logger(__name__)

EMPTY_PAYLOAD_MESSAGE = "The assets field is required and must be a non-empty array."

# Bulk payload key → asset field, where they differ
BULK_KEY_MAP = {
    "asset_type": "type",
    "purchase_cost": "purchase_price",
    "warranty_period": "warranty",
    "depreciation_method": "depreciation",
}

BULK_FIELDS = (
    "name",
    "description",
    "asset_type",
    "category",
    "serial_number",
    "model",
    "manufacturer",
    "purchase_date",
    "purchase_cost",
    "location",
    "department",
    "status",
    "tags",
    "warranty_period",
    "health_score",
    "brand",
    "supplier",
    "depreciation_method",
)


def to_asset_fields(row: dict[str, Any]) -> dict[str, Any]:
    """Rename bulk payload keys to asset field names; unknown keys are dropped."""
    return {BULK_KEY_MAP.get(key, key): row.get(key) for key in BULK_FIELDS if key in row}


async def import_bulk(db: AsyncSession, ctx: AuthContext, rows: list[Any]) -> dict:
    """
    Import JSON rows for the caller's company.

    Returns {"imported": int, "errors": [{"row", "error"}]}.
    """
    writer = AssetWriter(
        db,
        company_id=ctx.company_id,
        user_id=ctx.user_id,
        locations=await load_location_index(db, ctx.company_id),
        serials_case_insensitive=True,
    )
    imported = 0
    errors: list[dict] = []

    for i, row in enumerate(rows):
        row_number = i + 1
        if not isinstance(row, dict):
            errors.append({"row": row_number, "error": "Each asset must be an object."})
            continue

        draft, messages = build_draft(to_asset_fields(row), price_label="Purchase cost")
        try:
            async with db.begin_nested():
                location_id = await writer.check_row(draft, messages)
                if messages:
                    raise RowError(messages)
                await writer.create(draft, location_id)
            imported += 1
        except RowError as e:
            errors.append({"row": row_number, "error": str(e)})
        except SQLAlchemyError as e:
            logger.warning(
                "bulk_import_row_failed",
                company_id=ctx.company_id,
                row=row_number,
                error=type(e).__name__,
            )
            errors.append({"row": row_number, "error": "Database error while saving row."})

    logger.info(
        "bulk_import_completed",
        company_id=ctx.company_id,
        user_id=ctx.user_id,
        rows=len(rows),
        imported=imported,
        errors=len(errors),
    )
    return {"imported": imported, "errors": errors}
