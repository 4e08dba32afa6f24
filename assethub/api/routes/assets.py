"""
Asset API routes.

Endpoints:
  POST   /api/assets/import-bulk — Import a JSON array of asset rows directly
"""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from assethub.core.auth import AuthContext, require_auth_context
from assethub.core.database import get_db
from assethub.schemas.imports import BulkImportRequest, BulkImportResponse
from assethub.services.bulk_import import EMPTY_PAYLOAD_MESSAGE, import_bulk

router = APIRouter()


@router.post("/import-bulk", response_model=BulkImportResponse)
async def import_assets_bulk(
    payload: BulkImportRequest,
    ctx: AuthContext = Depends(require_auth_context),
    db: AsyncSession = Depends(get_db),
):
    """
    Synchronous import without a session or mapping step.

    Returns 201 when at least one row was imported, 200 when none were,
    and 422 when ``assets`` is missing, empty or not a list. Row problems
    never fail the request; they come back in ``errors``.
    """
    if not isinstance(payload.assets, list) or not payload.assets:
        return JSONResponse(
            status_code=422,
            content={"imported": 0, "errors": [{"row": 0, "error": EMPTY_PAYLOAD_MESSAGE}]},
        )

    result = await import_bulk(db, ctx, payload.assets)
    return JSONResponse(
        status_code=201 if result["imported"] else 200,
        content=BulkImportResponse(**result).model_dump(),
    )
