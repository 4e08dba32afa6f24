"""
Asset import API routes.

Endpoints (all under /api/assets/import, all company-scoped):
  POST   /upload                      — Store a csv/xlsx/xls file, open a session
  POST   /analyze                     — Headers, sample row, mapping suggestion
  GET    /mappings/{file_id}          — Saved mapping (or a fresh suggestion)
  PUT    /mappings/{file_id}          — Save mapping + overrides (upsert)
  POST   /conflicts/{file_id}         — Conflict report for the mapped file
  POST   /resolve-conflicts/{file_id} — Save resolution decisions
  POST   /execute/{file_id}           — Import rows, return counts + row errors
  POST   /queue/{file_id}             — Run the import in the background (202)
  GET    /progress/{file_id}          — Status and counters
  GET    /template                    — XLSX template download
  GET    /error-report/{file_id}      — CSV of row errors from the last execute

file_id is the session token returned by upload.
"""

from pathlib import Path

import structlog
from fastapi import APIRouter, BackgroundTasks, Depends, File, UploadFile
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession

from assethub.core.auth import AuthContext, require_auth_context
from assethub.core.config import settings
from assethub.core.database import get_db, get_session_factory
from assethub.core.errors import (
    ErrorReportNotFoundError,
    TemplateNotFoundError,
    UnsupportedFormatError,
    UploadTooLargeError,
    ValidationError,
)
from assethub.schemas.imports import (
    AnalyzeRequest,
    AnalyzeResponse,
    ConflictsResponse,
    ExecuteResponse,
    MappingPayload,
    MappingResponse,
    ProgressResponse,
    QueuedImport,
    QueuedImportResponse,
    ResolutionPayload,
    ResolutionResponse,
    UploadResponse,
    UploadResult,
)
from assethub.services import import_pipeline, storage
from assethub.services.conflict_detector import detect_conflicts
from assethub.services.import_executor import (
    execute_import,
    progress_url,
    queue_import,
    run_queued_import,
)
from assethub.services.import_sessions import (
    create_session,
    get_progress,
    get_session_for_company,
)
from assethub.services.import_template import TEMPLATE_FILENAME, XLSX_CONTENT_TYPE

logger = structlog.get_logger(__name__)

router = APIRouter()

UPLOAD_CHUNK_BYTES = 1024 * 1024


# ─── Helpers ───────────────────────────────────────────────────

def _upload_extension(filename: str | None) -> str:
    ext = Path(filename or "").suffix.lower().lstrip(".")
    if ext not in settings.IMPORT_ALLOWED_EXTENSIONS:
        raise UnsupportedFormatError(
            ext or "unknown",
            reason=f"File must be one of: {', '.join(settings.IMPORT_ALLOWED_EXTENSIONS)}",
        )
    return ext


async def _read_upload(file: UploadFile, limit: int) -> bytes:
    """Read an upload in chunks, giving up as soon as it passes ``limit``."""
    if file.size is not None and file.size > limit:
        raise UploadTooLargeError(file.size, limit)

    content = bytearray()
    while True:
        chunk = await file.read(UPLOAD_CHUNK_BYTES)
        if not chunk:
            break
        content.extend(chunk)
        if len(content) > limit:
            raise UploadTooLargeError(len(content), limit)
    return bytes(content)


# ─── Upload / Analyze ─────────────────────────────────────────

@router.post("/upload", response_model=UploadResponse, status_code=201)
async def upload_file(
    file: UploadFile = File(...),
    ctx: AuthContext = Depends(require_auth_context),
    db: AsyncSession = Depends(get_db),
):
    """Store the uploaded spreadsheet and open a pending import session."""
    ext = _upload_extension(file.filename)

    content = await _read_upload(file, settings.IMPORT_MAX_UPLOAD_BYTES)
    if not content:
        raise ValidationError("Empty file uploaded", code="EMPTY_FILE")

    session = await create_session(db, ctx, file.filename, ext, content)
    return UploadResponse(
        data=UploadResult(
            file_id=session.token,
            original_name=session.original_name,
            size=session.file_size,
            uploaded_at=session.uploaded_at,
        )
    )


@router.post("/analyze", response_model=AnalyzeResponse)
async def analyze_file(
    payload: AnalyzeRequest,
    ctx: AuthContext = Depends(require_auth_context),
    db: AsyncSession = Depends(get_db),
):
    session = await get_session_for_company(db, str(payload.file_id), ctx.company_id)
    result = await import_pipeline.analyze(db, session)
    return AnalyzeResponse(data=result)


# ─── Field Mapping ────────────────────────────────────────────

@router.get("/mappings/{file_id}", response_model=MappingResponse)
async def get_mappings(
    file_id: str,
    ctx: AuthContext = Depends(require_auth_context),
    db: AsyncSession = Depends(get_db),
):
    """
    Saved mapping for the session.

    Before anything is saved this is the heuristic suggestion for the
    file's headers; it is not persisted.
    """
    session = await get_session_for_company(db, file_id, ctx.company_id)
    result = await import_pipeline.get_mapping(db, session)
    return MappingResponse(data=result)


@router.put("/mappings/{file_id}", response_model=MappingResponse)
async def save_mappings(
    file_id: str,
    payload: MappingPayload,
    ctx: AuthContext = Depends(require_auth_context),
    db: AsyncSession = Depends(get_db),
):
    session = await get_session_for_company(db, file_id, ctx.company_id)
    result = await import_pipeline.save_mapping(db, session, payload)
    return MappingResponse(data=result)


# ─── Conflicts ────────────────────────────────────────────────

@router.post("/conflicts/{file_id}", response_model=ConflictsResponse)
async def get_conflicts(
    file_id: str,
    ctx: AuthContext = Depends(require_auth_context),
    db: AsyncSession = Depends(get_db),
):
    session = await get_session_for_company(db, file_id, ctx.company_id)
    report = await detect_conflicts(db, session)
    return ConflictsResponse(conflicts=report)


@router.post("/resolve-conflicts/{file_id}", response_model=ResolutionResponse)
async def resolve_conflicts(
    file_id: str,
    payload: ResolutionPayload,
    ctx: AuthContext = Depends(require_auth_context),
    db: AsyncSession = Depends(get_db),
):
    session = await get_session_for_company(db, file_id, ctx.company_id)
    result = await import_pipeline.save_resolutions(db, session, payload)
    return ResolutionResponse(data=result)


# ─── Execute / Progress ───────────────────────────────────────

@router.post("/execute/{file_id}", response_model=ExecuteResponse)
async def execute(
    file_id: str,
    ctx: AuthContext = Depends(require_auth_context),
    db: AsyncSession = Depends(get_db),
):
    """
    Import every row of the session's file.

    Rows fail individually; the response lists them and, when there are
    any, links a downloadable CSV error report.
    """
    session = await get_session_for_company(db, file_id, ctx.company_id)
    outcome = await execute_import(db, session)
    return ExecuteResponse(
        imported=outcome.imported,
        skipped=outcome.skipped,
        errors=outcome.errors,
        error_report_url=outcome.error_report_url,
    )


@router.post("/queue/{file_id}", response_model=QueuedImportResponse, status_code=202)
async def queue(
    file_id: str,
    background_tasks: BackgroundTasks,
    ctx: AuthContext = Depends(require_auth_context),
    db: AsyncSession = Depends(get_db),
    session_factory=Depends(get_session_factory),
):
    """
    Queue the import and return straight away.

    Poll the progress endpoint for counters; row errors land in the error
    report. 409 when the uploader already has an import queued or running.
    """
    session = await get_session_for_company(db, file_id, ctx.company_id)
    await queue_import(db, session)
    background_tasks.add_task(run_queued_import, session_factory, session.id)
    return QueuedImportResponse(
        data=QueuedImport(
            file_id=session.token,
            status=session.status,
            progress_url=progress_url(session.token),
        )
    )


@router.get("/progress/{file_id}", response_model=ProgressResponse)
async def progress(
    file_id: str,
    ctx: AuthContext = Depends(require_auth_context),
    db: AsyncSession = Depends(get_db),
):
    session = await get_session_for_company(db, file_id, ctx.company_id)
    return ProgressResponse(**get_progress(session))


# ─── Downloads ────────────────────────────────────────────────

@router.get("/template")
async def download_template(
    ctx: AuthContext = Depends(require_auth_context),
):
    path = Path(settings.IMPORT_TEMPLATE_PATH)
    if not path.is_file():
        logger.warning("import_template_missing", path=str(path))
        raise TemplateNotFoundError(str(path))
    return FileResponse(path, media_type=XLSX_CONTENT_TYPE, filename=TEMPLATE_FILENAME)


@router.get("/error-report/{file_id}")
async def download_error_report(
    file_id: str,
    ctx: AuthContext = Depends(require_auth_context),
    db: AsyncSession = Depends(get_db),
):
    session = await get_session_for_company(db, file_id, ctx.company_id)
    report_path = (session.meta or {}).get("error_report")
    if not storage.exists(report_path):
        raise ErrorReportNotFoundError(session.token)
    return FileResponse(
        storage.resolve(report_path),
        media_type="text/csv",
        filename=f"import-errors-{session.token}.csv",
    )
