"""
Import session store.

Sessions are looked up by their public token *and* the caller's company:
a token that belongs to another company is indistinguishable from an
unknown token. Status and meta writes go through here so every change
bumps the optimistic-lock version.
"""

import uuid
from datetime import datetime, timezone

import structlog
from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from assethub.core.auth import AuthContext
from assethub.core.errors import ImportSessionNotFoundError, StoredFileNotFoundError
from assethub.models.imports import ImportMapping, ImportSession
from assethub.services import storage
from assethub.services.spreadsheet_reader import SpreadsheetData, read_spreadsheet

logger = structlog.get_logger(__name__)

STATUS_PENDING = "pending"
STATUS_ANALYZED = "analyzed"
STATUS_MAPPED = "mapped"
STATUS_CONFLICTS_RESOLVED = "conflicts_resolved"
STATUS_QUEUED = "queued"
STATUS_IMPORTING = "importing"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"

# Statuses after which the mapping and resolutions are frozen
LOCKED_STATUSES = (STATUS_QUEUED, STATUS_IMPORTING, STATUS_COMPLETED)

# A user may have at most one session in these at a time
ACTIVE_STATUSES = (STATUS_QUEUED, STATUS_IMPORTING)


async def create_session(
    db: AsyncSession,
    ctx: AuthContext,
    original_name: str,
    file_type: str,
    content: bytes,
) -> ImportSession:
    """Store the uploaded bytes and open a pending session for them."""
    token = str(uuid.uuid4())
    stored_name = f"{token}.{file_type}"
    path = storage.store_upload(stored_name, content)

    session = ImportSession(
        token=token,
        company_id=ctx.company_id,
        user_id=ctx.user_id,
        status=STATUS_PENDING,
        original_name=original_name,
        stored_name=stored_name,
        file_type=file_type,
        file_size=len(content),
        uploaded_at=datetime.now(timezone.utc),
        meta={"path": path},
    )
    db.add(session)
    await db.flush()
    logger.info(
        "import_uploaded",
        file_id=token,
        company_id=ctx.company_id,
        user_id=ctx.user_id,
        file_type=file_type,
        size=len(content),
    )
    return session


async def get_session_for_company(
    db: AsyncSession,
    file_id: str,
    company_id: int,
) -> ImportSession:
    """Fetch a session by token within a company, or raise 404."""
    try:
        token = str(uuid.UUID(str(file_id)))
    except ValueError:
        raise ImportSessionNotFoundError(str(file_id))

    result = await db.execute(
        select(ImportSession).where(
            and_(
                ImportSession.token == token,
                ImportSession.company_id == company_id,
            )
        )
    )
    session = result.scalar_one_or_none()
    if session is None:
        raise ImportSessionNotFoundError(token)
    return session


async def set_status(db: AsyncSession, session: ImportSession, status: str) -> None:
    if session.status == status:
        return
    logger.info("import_status_changed", file_id=session.token, old=session.status, new=status)
    session.status = status
    await db.flush()


async def update_meta(db: AsyncSession, session: ImportSession, **changes) -> dict:
    """Merge keys into the session meta. Reassigns so the JSON column is marked dirty."""
    session.meta = {**(session.meta or {}), **changes}
    await db.flush()
    return session.meta


def stored_file_path(session: ImportSession):
    path = (session.meta or {}).get("path")
    if not storage.exists(path):
        raise StoredFileNotFoundError(session.token)
    return storage.resolve(path)


def load_spreadsheet(session: ImportSession) -> SpreadsheetData:
    """Read the session's stored upload."""
    try:
        return read_spreadsheet(stored_file_path(session), session.file_type)
    except FileNotFoundError:
        raise StoredFileNotFoundError(session.token)


async def get_mapping_row(db: AsyncSession, session: ImportSession) -> ImportMapping | None:
    result = await db.execute(
        select(ImportMapping).where(ImportMapping.session_id == session.id)
    )
    return result.scalar_one_or_none()


async def find_active_session(
    db: AsyncSession,
    company_id: int,
    user_id: int,
    exclude_session: int | None = None,
) -> ImportSession | None:
    """The user's queued or running import, if any."""
    stmt = select(ImportSession).where(
        and_(
            ImportSession.company_id == company_id,
            ImportSession.user_id == user_id,
            ImportSession.status.in_(ACTIVE_STATUSES),
        )
    )
    if exclude_session is not None:
        stmt = stmt.where(ImportSession.id != exclude_session)
    result = await db.execute(stmt.order_by(ImportSession.id).limit(1))
    return result.scalar_one_or_none()


def get_progress(session: ImportSession) -> dict:
    """Current counters as written by the executor; absent keys are None."""
    meta = session.meta or {}
    return {
        "status": session.status,
        "metrics": {
            "total_rows": meta.get("total_rows"),
            "processed": meta.get("processed"),
            "imported": meta.get("imported"),
            "skipped": meta.get("skipped"),
            "errors": meta.get("errors"),
        },
    }
