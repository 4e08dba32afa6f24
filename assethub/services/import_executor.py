"""
Import executor: turns a mapped, resolved session into assets.

Each data row runs in its own savepoint. A row that fails validation or
persistence rolls back alone and is reported as {row, error}; the rest of
the file carries on. Progress counters are committed to the session meta
every IMPORT_PROGRESS_EVERY rows so a poller can follow a long run.

Resolutions only act on rows the executor itself flags in the matching
conflict category, using the same scan as conflict detection.

Large files can be queued instead: queue_import marks the session and
run_queued_import executes it later on its own database session.
"""

import csv
import io
from dataclasses import dataclass, field
from datetime import datetime, timezone

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from assethub.core.config import settings
from assethub.core.errors import ImportInProgressError, ImportStateError, MappingNotFoundError
from assethub.models.imports import ImportSession
from assethub.schemas.imports import (
    ConflictCategory,
    ConflictResolution,
    ResolutionAction,
    ResolutionPayload,
)
from assethub.services import storage
from assethub.services.asset_writer import (
    AssetWriter,
    RowError,
    build_draft,
    load_location_index,
)
from assethub.services.conflict_detector import (
    FIRST_DATA_ROW,
    ConflictScanner,
    load_company_snapshot,
)
from assethub.services.field_mapper import effective_mapping, project_row
from assethub.services.import_sessions import (
    LOCKED_STATUSES,
    STATUS_COMPLETED,
    STATUS_FAILED,
    STATUS_IMPORTING,
    STATUS_QUEUED,
    find_active_session,
    get_mapping_row,
    load_spreadsheet,
    set_status,
    update_meta,
)

logger = structlog.get_logger(__name__)

# Record field each conflict category is about
CATEGORY_FIELDS = {
    ConflictCategory.ASSET_IDS: "asset_id",
    ConflictCategory.SERIAL_NUMBERS: "serial_number",
    ConflictCategory.LOCATIONS: "location",
    ConflictCategory.STATUSES: "status",
    ConflictCategory.DATA_QUALITY: "name",
}

ROW_DATABASE_ERROR = "Database error while saving row."


@dataclass
class ImportOutcome:
    imported: int = 0
    skipped: int = 0
    errors: list[dict] = field(default_factory=list)
    error_report_url: str | None = None


@dataclass
class RowPlan:
    """What to do with one row once resolutions are applied."""
    record: dict[str, str]
    skip: bool = False
    # Set when a use_existing resolution points the row at an existing asset
    update_key: str | None = None
    update_value: str | None = None


def load_resolutions(session: ImportSession) -> dict[ConflictCategory, ConflictResolution]:
    stored = (session.meta or {}).get("conflict_resolutions") or {}
    return ResolutionPayload.model_validate({"resolutions": stored}).resolutions


def apply_resolutions(
    record: dict[str, str],
    flags: list[tuple[ConflictCategory, str, str]],
    resolutions: dict[ConflictCategory, ConflictResolution],
    row_number: int,
) -> RowPlan:
    """
    Apply the user's resolutions to one projected row.

    ``flags`` are the (category, value, issue) triples the row raised.
    A skip_row on any flagged category wins over everything else.
    """
    plan = RowPlan(record=dict(record))
    for category, value, _issue in flags:
        resolution = resolutions.get(category)
        if resolution is None or not resolution.applies_to(row_number):
            continue
        field_name = CATEGORY_FIELDS[category]

        if resolution.action == ResolutionAction.SKIP_ROW:
            plan.skip = True
            return plan
        if resolution.action == ResolutionAction.RENAME_VALUE:
            replacement = resolution.replacements.get(row_number)
            if replacement is not None:
                plan.record[field_name] = replacement
        elif resolution.action == ResolutionAction.USE_EXISTING:
            if category in (ConflictCategory.ASSET_IDS, ConflictCategory.SERIAL_NUMBERS):
                if plan.update_key is None:
                    plan.update_key = field_name
                    plan.update_value = value
            else:
                plan.record[field_name] = resolution.value
    return plan


async def import_row(writer: AssetWriter, plan: RowPlan) -> None:
    """Validate and persist one planned row. Raises RowError on bad data."""
    existing = None
    if plan.update_key:
        existing = await writer.find_existing(plan.update_key, plan.update_value)

    draft, messages = build_draft(plan.record)
    location_id = await writer.check_row(draft, messages, existing=existing)
    if messages:
        raise RowError(messages)

    if existing is not None:
        await writer.update(existing, draft, location_id)
    else:
        await writer.create(draft, location_id)


def error_report_url(file_id: str) -> str:
    return f"/api/assets/import/error-report/{file_id}"


def progress_url(file_id: str) -> str:
    return f"/api/assets/import/progress/{file_id}"


def write_error_report(session: ImportSession, errors: list[dict]) -> str:
    """Write the row errors as CSV and return the storage path."""
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(["row", "error"])
    for entry in errors:
        writer.writerow([entry["row"], entry["error"]])
    path = f"{storage.REPORTS_DIR}/{session.token}.csv"
    return storage.write_bytes(path, buffer.getvalue().encode("utf-8"))


async def _checkpoint(db: AsyncSession, session: ImportSession, processed: int, outcome: ImportOutcome):
    await update_meta(
        db,
        session,
        processed=processed,
        imported=outcome.imported,
        skipped=outcome.skipped,
        errors=len(outcome.errors),
    )
    await db.commit()


async def execute_import(
    db: AsyncSession,
    session: ImportSession,
    from_queue: bool = False,
) -> ImportOutcome:
    """
    Run the import for a session.

    A queued session only runs through the queue (``from_queue``).

    Raises:
        ImportStateError: the session is queued, importing or completed
        MappingNotFoundError: no mapping has been saved
        StoredFileNotFoundError: the uploaded file is gone (session marked failed)
    """
    runnable = from_queue and session.status == STATUS_QUEUED
    if session.status in LOCKED_STATUSES and not runnable:
        raise ImportStateError(session.token, session.status)

    mapping_row = await get_mapping_row(db, session)
    if mapping_row is None:
        raise MappingNotFoundError(session.token)
    mapping = effective_mapping(mapping_row.mappings, mapping_row.user_overrides)
    resolutions = load_resolutions(session)

    file_id = session.token
    company_id = session.company_id
    await set_status(db, session, STATUS_IMPORTING)
    await update_meta(db, session, started_at=datetime.now(timezone.utc).isoformat())
    await db.commit()
    logger.info("import_started", file_id=file_id, company_id=company_id)

    try:
        outcome = await _run_rows(db, session, mapping, resolutions)
    except Exception as e:
        await db.rollback()
        await db.refresh(session)
        await update_meta(db, session, failure=type(e).__name__)
        await set_status(db, session, STATUS_FAILED)
        await db.commit()
        logger.error("import_failed", file_id=file_id, company_id=company_id, error=type(e).__name__)
        raise

    logger.info(
        "import_completed",
        file_id=file_id,
        company_id=company_id,
        imported=outcome.imported,
        skipped=outcome.skipped,
        errors=len(outcome.errors),
    )
    return outcome


async def _run_rows(
    db: AsyncSession,
    session: ImportSession,
    mapping: dict[str, str | None],
    resolutions: dict[ConflictCategory, ConflictResolution],
) -> ImportOutcome:
    data = load_spreadsheet(session)
    await update_meta(db, session, total_rows=data.row_count, processed=0)
    await db.commit()

    scanner = ConflictScanner(await load_company_snapshot(db, session.company_id))
    writer = AssetWriter(
        db,
        company_id=session.company_id,
        user_id=session.user_id,
        locations=await load_location_index(db, session.company_id),
    )
    outcome = ImportOutcome()
    every = max(settings.IMPORT_PROGRESS_EVERY, 1)

    for idx, row in enumerate(data.rows):
        row_number = idx + FIRST_DATA_ROW
        record = project_row(data.headers, row, mapping)
        plan = apply_resolutions(record, scanner.check(record), resolutions, row_number)

        if plan.skip:
            outcome.skipped += 1
        else:
            try:
                async with db.begin_nested():
                    await import_row(writer, plan)
                outcome.imported += 1
            except RowError as e:
                outcome.errors.append({"row": row_number, "error": str(e)})
            except SQLAlchemyError as e:
                logger.warning(
                    "import_row_failed",
                    file_id=session.token,
                    company_id=session.company_id,
                    row=row_number,
                    error=type(e).__name__,
                )
                outcome.errors.append({"row": row_number, "error": ROW_DATABASE_ERROR})

        processed = idx + 1
        if processed % every == 0:
            await _checkpoint(db, session, processed, outcome)

    report_path = None
    if outcome.errors:
        report_path = write_error_report(session, outcome.errors)
        outcome.error_report_url = error_report_url(session.token)

    await update_meta(
        db,
        session,
        total_rows=data.row_count,
        processed=data.row_count,
        imported=outcome.imported,
        skipped=outcome.skipped,
        errors=len(outcome.errors),
        error_report=report_path,
        finished_at=datetime.now(timezone.utc).isoformat(),
    )
    await set_status(db, session, STATUS_COMPLETED)
    await db.commit()
    return outcome


# ─── Queue ────────────────────────────────────────────────────

async def queue_import(db: AsyncSession, session: ImportSession) -> ImportSession:
    """
    Mark a session for background execution and commit.

    The session owner may only have one import queued or running at a time.

    Raises:
        ImportStateError: the session is already queued, importing or completed
        MappingNotFoundError: no mapping has been saved
        ImportInProgressError: another of the owner's imports is still active
    """
    if session.status in LOCKED_STATUSES:
        raise ImportStateError(session.token, session.status)
    if await get_mapping_row(db, session) is None:
        raise MappingNotFoundError(session.token)

    active = await find_active_session(
        db, session.company_id, session.user_id, exclude_session=session.id
    )
    if active is not None:
        raise ImportInProgressError(active.token, progress_url(active.token))

    await set_status(db, session, STATUS_QUEUED)
    await update_meta(db, session, queued_at=datetime.now(timezone.utc).isoformat())
    await db.commit()
    logger.info("import_queued", file_id=session.token, company_id=session.company_id)
    return session


async def run_queued_import(session_factory: async_sessionmaker, session_id: int) -> None:
    """
    Background entry point for a queued session.

    Opens its own database session. Failures are already recorded on the
    import session by execute_import; here they are only logged, since
    nothing is waiting on the result.
    """
    async with session_factory() as db:
        session = await db.get(ImportSession, session_id)
        if session is None or session.status != STATUS_QUEUED:
            logger.warning(
                "import_job_skipped",
                session_id=session_id,
                status=session.status if session is not None else None,
            )
            return
        try:
            await execute_import(db, session, from_queue=True)
        except Exception:
            logger.exception(
                "import_job_failed",
                file_id=session.token,
                company_id=session.company_id,
            )
