"""
Import pipeline steps between upload and execute.

analyze → save/get mapping → (detect conflicts) → save resolutions.
Each step loads the session for the caller's company, does its work, and
advances the session status. Mapping and resolutions are frozen once the
session is importing or completed.
"""

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from assethub.core.errors import ImportStateError
from assethub.models.imports import ImportMapping, ImportSession
from assethub.schemas.imports import MappingPayload, ResolutionPayload
from assethub.services.field_mapper import classify_confidence, suggest_mapping
from assethub.services.import_sessions import (
    LOCKED_STATUSES,
    STATUS_ANALYZED,
    STATUS_CONFLICTS_RESOLVED,
    STATUS_MAPPED,
    STATUS_PENDING,
    get_mapping_row,
    load_spreadsheet,
    set_status,
    update_meta,
)
from assethub.services.spreadsheet_reader import build_samples

logger = structlog.get_logger(__name__)


def _ensure_editable(session: ImportSession) -> None:
    if session.status in LOCKED_STATUSES:
        raise ImportStateError(session.token, session.status)


async def analyze(db: AsyncSession, session: ImportSession) -> dict:
    """
    Read the stored file and suggest a column mapping.

    Records the headers and row count on the session. A pending session
    moves to analyzed; later statuses are left alone so re-analyzing a
    mapped file does not roll it back.
    """
    data = load_spreadsheet(session)
    suggestions = suggest_mapping(data.headers)
    confidence, missing = classify_confidence(suggestions)

    await update_meta(db, session, headers=data.headers, total_rows=data.row_count)
    if session.status == STATUS_PENDING:
        await set_status(db, session, STATUS_ANALYZED)

    logger.info(
        "import_analyzed",
        file_id=session.token,
        company_id=session.company_id,
        columns=len(data.headers),
        rows=data.row_count,
        confidence=confidence,
    )
    return {
        "headers": data.headers,
        "sample": build_samples(data),
        "mapping_suggestions": suggestions,
        "confidence": confidence,
        "missing_required_fields": missing,
    }


async def get_mapping(db: AsyncSession, session: ImportSession) -> dict:
    """
    Saved mapping for the session, or a fresh suggestion from the file.

    The suggestion is not persisted.
    """
    mapping_row = await get_mapping_row(db, session)
    if mapping_row is not None:
        return {
            "mappings": mapping_row.mappings,
            "user_overrides": mapping_row.user_overrides,
        }
    data = load_spreadsheet(session)
    return {"mappings": suggest_mapping(data.headers), "user_overrides": None}


async def save_mapping(
    db: AsyncSession,
    session: ImportSession,
    payload: MappingPayload,
) -> dict:
    """Upsert the session's single mapping row and mark it mapped."""
    _ensure_editable(session)

    mapping_row = await get_mapping_row(db, session)
    if mapping_row is None:
        mapping_row = ImportMapping(session_id=session.id)
        db.add(mapping_row)
    mapping_row.mappings = dict(payload.mappings)
    mapping_row.user_overrides = (
        dict(payload.user_overrides) if payload.user_overrides is not None else None
    )
    await db.flush()
    await set_status(db, session, STATUS_MAPPED)

    logger.info(
        "import_mapping_saved",
        file_id=session.token,
        company_id=session.company_id,
        mapped=sum(1 for v in payload.mappings.values() if v),
        overrides=len(payload.user_overrides or {}),
    )
    return {
        "mappings": mapping_row.mappings,
        "user_overrides": mapping_row.user_overrides,
    }


async def save_resolutions(
    db: AsyncSession,
    session: ImportSession,
    payload: ResolutionPayload,
) -> dict:
    """Store the resolution set in the session meta, replacing any earlier one."""
    _ensure_editable(session)

    resolutions = {
        category.value: resolution.model_dump(mode="json")
        for category, resolution in payload.resolutions.items()
    }
    await update_meta(db, session, conflict_resolutions=resolutions)
    await set_status(db, session, STATUS_CONFLICTS_RESOLVED)

    logger.info(
        "import_resolutions_saved",
        file_id=session.token,
        company_id=session.company_id,
        categories=sorted(resolutions),
    )
    return {"resolutions": resolutions}
