"""
Inspect and run queued asset imports.

Queued imports normally run as background tasks of the API process. A
restart drops those tasks and leaves their sessions queued; this script
lists sessions and runs the queued ones in the foreground.

Usage:
  python -m scripts.import_jobs list [--status queued] [--company 3] [--user 7] [--limit 20]
  python -m scripts.import_jobs process [file_id]

`process` without a file_id runs every queued session, oldest first.
"""

import argparse
import asyncio

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from assethub.core.config import settings
from assethub.models.imports import ImportSession
from assethub.services.import_executor import run_queued_import
from assethub.services.import_sessions import STATUS_QUEUED, get_progress


async def list_sessions(
    db: AsyncSession,
    status: str | None = None,
    company_id: int | None = None,
    user_id: int | None = None,
    limit: int = 20,
) -> list[ImportSession]:
    """Most recent sessions first, optionally filtered."""
    stmt = select(ImportSession)
    if status:
        stmt = stmt.where(ImportSession.status == status)
    if company_id is not None:
        stmt = stmt.where(ImportSession.company_id == company_id)
    if user_id is not None:
        stmt = stmt.where(ImportSession.user_id == user_id)
    result = await db.execute(stmt.order_by(ImportSession.id.desc()).limit(limit))
    return list(result.scalars().all())


def format_session(session: ImportSession) -> str:
    metrics = get_progress(session)["metrics"]
    total = metrics["total_rows"]
    processed = metrics["processed"] or 0
    percent = f"{processed * 100 // total}%" if total else "-"
    return (
        f"{session.token}  {session.status:<18} company={session.company_id} "
        f"user={session.user_id} rows={total if total is not None else '-'} "
        f"imported={metrics['imported'] or 0} errors={metrics['errors'] or 0} "
        f"progress={percent}  {session.original_name}"
    )


async def process_queued(session_factory: async_sessionmaker, file_id: str | None = None) -> int:
    """Run queued sessions (one, or all); returns how many were started."""
    async with session_factory() as db:
        stmt = select(ImportSession.id).where(ImportSession.status == STATUS_QUEUED)
        if file_id:
            stmt = stmt.where(ImportSession.token == file_id)
        session_ids = list((await db.execute(stmt.order_by(ImportSession.id))).scalars().all())

    for session_id in session_ids:
        await run_queued_import(session_factory, session_id)
    return len(session_ids)


# ─── CLI entry point ───────────────────────────────────────────

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Inspect and run queued asset imports")
    commands = parser.add_subparsers(dest="command", required=True)

    list_cmd = commands.add_parser("list", help="List import sessions")
    list_cmd.add_argument("--status", help="Filter by status (e.g. queued, importing, failed)")
    list_cmd.add_argument("--company", type=int, help="Filter by company id")
    list_cmd.add_argument("--user", type=int, help="Filter by uploading user id")
    list_cmd.add_argument("--limit", type=int, default=20, help="Number of sessions to show")

    process_cmd = commands.add_parser("process", help="Run queued imports now")
    process_cmd.add_argument("file_id", nargs="?", help="Only this session")
    return parser


async def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    engine = create_async_engine(settings.DATABASE_URL, echo=False)
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    try:
        if args.command == "list":
            async with session_factory() as db:
                sessions = await list_sessions(
                    db,
                    status=args.status,
                    company_id=args.company,
                    user_id=args.user,
                    limit=args.limit,
                )
            if not sessions:
                print("No import sessions found.")
            for session in sessions:
                print(format_session(session))
        else:
            started = await process_queued(session_factory, args.file_id)
            print(f"Processed {started} queued import(s).")
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
