"""
Conflict detection for mapped import rows.

Each data row is projected through the session's mapping and checked
against a snapshot of the company's current data plus the rows seen
earlier in the same file:

  Asset IDs       'Already exists' / 'Duplicate in file'
  Serial Numbers  'Already exists' / 'Duplicate in file'
  Locations       'Not found'       (exact location name)
  Statuses        'Invalid status'  (not active/inactive/archived)
  Data Quality    'Missing asset name'

Row numbers count the header as row 1, so the first data row is row 2.
The snapshot is read once per scan; it is a consistency window, not a
lock. The executor re-checks uniqueness at write time.
"""

from dataclasses import dataclass, field

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from assethub.core.errors import MappingNotFoundError
from assethub.models.core import Asset, Location
from assethub.models.imports import ImportSession
from assethub.schemas.imports import ConflictCategory
from assethub.services.field_mapper import effective_mapping, project_row
from assethub.services.import_sessions import get_mapping_row, load_spreadsheet
from assethub.services.normalization import clean_cell, normalize_status

logger = structlog.get_logger(__name__)

ISSUE_ALREADY_EXISTS = "Already exists"
ISSUE_DUPLICATE_IN_FILE = "Duplicate in file"
ISSUE_LOCATION_NOT_FOUND = "Not found"
ISSUE_INVALID_STATUS = "Invalid status"
ISSUE_MISSING_NAME = "Missing asset name"

FIRST_DATA_ROW = 2


@dataclass
class CompanySnapshot:
    """Company data the scan compares against, loaded once."""
    asset_ids: set[str] = field(default_factory=set)
    serial_numbers: set[str] = field(default_factory=set)
    location_names: set[str] = field(default_factory=set)


async def load_company_snapshot(db: AsyncSession, company_id: int) -> CompanySnapshot:
    # Serial numbers are scoped to the company, unlike the old global lookup
    asset_rows = await db.execute(
        select(Asset.asset_id, Asset.serial_number).where(Asset.company_id == company_id)
    )
    asset_ids: set[str] = set()
    serials: set[str] = set()
    for asset_id, serial in asset_rows.all():
        if asset_id:
            asset_ids.add(asset_id)
        if serial:
            serials.add(serial)

    location_rows = await db.execute(
        select(Location.name).where(Location.company_id == company_id)
    )
    return CompanySnapshot(
        asset_ids=asset_ids,
        serial_numbers=serials,
        location_names=set(location_rows.scalars().all()),
    )


class ConflictScanner:
    """
    Stateful scan over one file.

    Values are remembered as seen whether or not the row they came from
    was itself flagged, so the second occurrence of a value is the one
    reported as a duplicate.
    """

    def __init__(self, snapshot: CompanySnapshot):
        self.snapshot = snapshot
        self._seen_asset_ids: set[str] = set()
        self._seen_serials: set[str] = set()

    def _check_unique(
        self,
        value: str,
        existing: set[str],
        seen: set[str],
    ) -> list[str]:
        issues = []
        if value in existing:
            issues.append(ISSUE_ALREADY_EXISTS)
        if value in seen:
            issues.append(ISSUE_DUPLICATE_IN_FILE)
        seen.add(value)
        return issues

    def check(self, record: dict[str, str]) -> list[tuple[ConflictCategory, str, str]]:
        """Return (category, value, issue) for every problem in one projected row."""
        found: list[tuple[ConflictCategory, str, str]] = []

        asset_id = clean_cell(record.get("asset_id"))
        if asset_id:
            for issue in self._check_unique(asset_id, self.snapshot.asset_ids, self._seen_asset_ids):
                found.append((ConflictCategory.ASSET_IDS, asset_id, issue))

        serial = clean_cell(record.get("serial_number"))
        if serial:
            for issue in self._check_unique(serial, self.snapshot.serial_numbers, self._seen_serials):
                found.append((ConflictCategory.SERIAL_NUMBERS, serial, issue))

        location = clean_cell(record.get("location"))
        if location and location not in self.snapshot.location_names:
            found.append((ConflictCategory.LOCATIONS, location, ISSUE_LOCATION_NOT_FOUND))

        status = clean_cell(record.get("status"))
        if status and normalize_status(status) is None:
            found.append((ConflictCategory.STATUSES, status, ISSUE_INVALID_STATUS))

        if not clean_cell(record.get("name")):
            found.append((ConflictCategory.DATA_QUALITY, "", ISSUE_MISSING_NAME))

        return found


def scan_rows(
    headers: list[str],
    rows: list[list[str]],
    mapping: dict[str, str | None],
    snapshot: CompanySnapshot,
) -> dict[str, list[dict]]:
    """
    Build the conflict report for a whole file.

    Categories keep their fixed order; empty categories are dropped.
    """
    scanner = ConflictScanner(snapshot)
    grouped: dict[str, list[dict]] = {category.value: [] for category in ConflictCategory}

    for idx, row in enumerate(rows):
        row_number = idx + FIRST_DATA_ROW
        record = project_row(headers, row, mapping)
        for category, value, issue in scanner.check(record):
            grouped[category.value].append({"row": row_number, "value": value, "issue": issue})

    return {category: entries for category, entries in grouped.items() if entries}


async def detect_conflicts(db: AsyncSession, session: ImportSession) -> dict[str, list[dict]]:
    """
    Conflict report for a session's file under its saved mapping.

    Raises:
        MappingNotFoundError: no mapping has been saved yet
        StoredFileNotFoundError: the uploaded file is gone
    """
    mapping_row = await get_mapping_row(db, session)
    if mapping_row is None:
        raise MappingNotFoundError(session.token)

    data = load_spreadsheet(session)
    mapping = effective_mapping(mapping_row.mappings, mapping_row.user_overrides)
    snapshot = await load_company_snapshot(db, session.company_id)
    report = scan_rows(data.headers, data.rows, mapping, snapshot)

    logger.info(
        "import_conflicts_detected",
        file_id=session.token,
        company_id=session.company_id,
        rows=data.row_count,
        counts={category: len(entries) for category, entries in report.items()},
    )
    return report
