"""
Row validation and asset persistence shared by the session executor and
the JSON bulk import.

A row goes through three stages:
  1. build_draft: normalize and validate field formats
  2. AssetWriter.check_row: uniqueness (database + earlier rows in the
     same file) and location resolution
  3. AssetWriter.create / update: lookups, insert, tags, label

Stages 1 and 2 only read. Stage 3 must run inside the caller's per-row
savepoint so a failure leaves nothing behind.
"""

import re
import secrets
import string
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any

import structlog
from sqlalchemy import and_, func, insert, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from assethub.core.config import settings
from assethub.models.core import (
    Asset,
    AssetCategory,
    AssetTag,
    AssetType,
    Department,
    Location,
    asset_tag_links,
)
from assethub.services.asset_labels import label_path_for, write_asset_label
from assethub.services.normalization import (
    VALID_STATUSES,
    clean_cell,
    normalize_status,
    parse_decimal,
    parse_iso_date,
    split_tags,
)

logger = structlog.get_logger(__name__)

DEFAULT_ASSET_TYPE = "Fixed Assets"
DEFAULT_STATUS = "active"
LOCATION_PATH_SEPARATOR = " → "

_ASSET_ID_ALPHABET = string.ascii_uppercase + string.digits

# Asset ids end up in label file names and public URLs
ASSET_ID_MAX_LENGTH = 100
_ASSET_ID_PATTERN = re.compile(r"[A-Za-z0-9][A-Za-z0-9._-]*")


class RowError(Exception):
    """One or more problems with a single row. Never escapes a batch."""

    def __init__(self, messages: list[str] | str):
        self.messages = [messages] if isinstance(messages, str) else list(messages)
        super().__init__(" ".join(self.messages))


@dataclass
class AssetDraft:
    """Validated, normalized values for one row."""
    name: str
    description: str | None = None
    category: str | None = None
    asset_type: str | None = None
    serial_number: str | None = None
    model: str | None = None
    manufacturer: str | None = None
    purchase_date: date | None = None
    purchase_price: Decimal | None = None
    location: str | None = None
    department: str | None = None
    status: str = DEFAULT_STATUS
    tags: list[str] = field(default_factory=list)
    asset_id: str | None = None
    warranty: str | None = None
    health_score: Decimal | None = None
    brand: str | None = None
    supplier: str | None = None
    depreciation: str | None = None


def build_draft(
    fields: dict[str, Any],
    price_label: str = "Purchase price",
) -> tuple[AssetDraft, list[str]]:
    """
    Normalize a row keyed by asset field names.

    Returns the draft and the list of validation messages; the draft is
    only meaningful when the list is empty.
    ``price_label`` is how the price field is named in messages.
    """
    messages: list[str] = []

    name = clean_cell(fields.get("name"))
    if not name:
        messages.append("Asset name is required.")

    purchase_price = None
    if clean_cell(fields.get("purchase_price")) is not None:
        purchase_price = parse_decimal(fields.get("purchase_price"))
        if purchase_price is None:
            messages.append(f"{price_label} must be numeric.")

    purchase_date = None
    raw_date = clean_cell(fields.get("purchase_date"))
    if raw_date:
        purchase_date = parse_iso_date(raw_date)
        if purchase_date is None:
            messages.append("Purchase date must be in YYYY-MM-DD format.")
        elif purchase_date > date.today():
            messages.append("Purchase date cannot be in the future.")

    status = DEFAULT_STATUS
    raw_status = clean_cell(fields.get("status"))
    if raw_status:
        status = normalize_status(raw_status)
        if status is None:
            messages.append(
                f"Invalid status: {raw_status}. Must be one of {', '.join(VALID_STATUSES)}."
            )

    asset_id = clean_cell(fields.get("asset_id"))
    if asset_id is not None:
        if len(asset_id) > ASSET_ID_MAX_LENGTH:
            messages.append(f"Asset ID must be at most {ASSET_ID_MAX_LENGTH} characters.")
        elif not _ASSET_ID_PATTERN.fullmatch(asset_id):
            messages.append(
                "Asset ID may only contain letters, digits, dots, hyphens and underscores."
            )

    health_score = None
    if clean_cell(fields.get("health_score")) is not None:
        health_score = parse_decimal(fields.get("health_score"))
        if health_score is None:
            messages.append("Health score must be numeric.")

    draft = AssetDraft(
        name=name or "",
        description=clean_cell(fields.get("description")),
        category=clean_cell(fields.get("category")),
        asset_type=clean_cell(fields.get("type")),
        serial_number=clean_cell(fields.get("serial_number")),
        model=clean_cell(fields.get("model")),
        manufacturer=clean_cell(fields.get("manufacturer")),
        purchase_date=purchase_date,
        purchase_price=purchase_price,
        location=clean_cell(fields.get("location")),
        department=clean_cell(fields.get("department")),
        status=status or DEFAULT_STATUS,
        tags=split_tags(fields.get("tags")),
        asset_id=asset_id,
        warranty=clean_cell(fields.get("warranty")),
        health_score=health_score,
        brand=clean_cell(fields.get("brand")),
        supplier=clean_cell(fields.get("supplier")),
        depreciation=clean_cell(fields.get("depreciation")),
    )
    return draft, messages


# ─── Lookups ──────────────────────────────────────────────────

async def get_or_create(
    db: AsyncSession,
    model,
    defaults: dict[str, Any] | None = None,
    **keys,
):
    """
    Idempotent find-or-create guarded by the table's unique constraint.

    The insert runs in its own savepoint; if a concurrent writer got there
    first the IntegrityError is absorbed and the winner is re-selected.
    """
    stmt = select(model).filter_by(**keys)
    instance = (await db.execute(stmt)).scalar_one_or_none()
    if instance is not None:
        return instance
    try:
        async with db.begin_nested():
            instance = model(**keys, **(defaults or {}))
            db.add(instance)
            await db.flush()
    except IntegrityError:
        instance = (await db.execute(stmt)).scalar_one()
    return instance


@dataclass
class LocationIndex:
    """A company's locations by exact name and by full path."""
    by_name: dict[str, int] = field(default_factory=dict)
    by_path: dict[str, int] = field(default_factory=dict)

    def find(self, value: str) -> int | None:
        location_id = self.by_name.get(value)
        if location_id is None:
            location_id = self.by_path.get(value)
        return location_id


async def load_location_index(db: AsyncSession, company_id: int) -> LocationIndex:
    result = await db.execute(
        select(Location.id, Location.parent_id, Location.name)
        .where(Location.company_id == company_id)
        .order_by(Location.id)
    )
    rows = result.all()
    parents = {loc_id: (parent_id, name) for loc_id, parent_id, name in rows}

    index = LocationIndex()
    for loc_id, _parent_id, name in rows:
        index.by_name.setdefault(name, loc_id)

        names: list[str] = []
        visited: set[int] = set()
        current: int | None = loc_id
        while current is not None and current in parents and current not in visited:
            visited.add(current)
            parent_id, current_name = parents[current]
            names.append(current_name)
            current = parent_id
        index.by_path.setdefault(LOCATION_PATH_SEPARATOR.join(reversed(names)), loc_id)
    return index


# ─── Writer ───────────────────────────────────────────────────

class AssetWriter:
    """
    Writes validated rows for one company and one importing user.

    Remembers serial numbers and asset ids seen earlier in the batch,
    including rows that failed, so later repeats are reported as in-file
    duplicates.
    """

    def __init__(
        self,
        db: AsyncSession,
        company_id: int,
        user_id: int,
        locations: LocationIndex,
        serials_case_insensitive: bool = False,
    ):
        self.db = db
        self.company_id = company_id
        self.user_id = user_id
        self.locations = locations
        self.serials_case_insensitive = serials_case_insensitive
        self._seen_serials: set[str] = set()
        self._seen_asset_ids: set[str] = set()
        self._created_ids: set[int] = set()

    def _serial_key(self, serial: str) -> str:
        return serial.lower() if self.serials_case_insensitive else serial

    async def _taken(self, condition, exclude_asset: int | None, before_batch: bool) -> bool:
        stmt = select(Asset.id).where(and_(Asset.company_id == self.company_id, condition))
        if exclude_asset is not None:
            stmt = stmt.where(Asset.id != exclude_asset)
        if before_batch and self._created_ids:
            stmt = stmt.where(Asset.id.not_in(self._created_ids))
        return (await self.db.execute(stmt.limit(1))).first() is not None

    async def serial_in_use(
        self,
        serial: str,
        exclude_asset: int | None = None,
        before_batch: bool = False,
    ) -> bool:
        """
        Whether another company asset carries the serial.

        ``before_batch`` ignores assets this writer created, i.e. asks about
        the company as it stood before the import started.
        """
        if self.serials_case_insensitive:
            condition = func.lower(Asset.serial_number) == serial.lower()
        else:
            condition = Asset.serial_number == serial
        return await self._taken(condition, exclude_asset, before_batch)

    async def asset_id_in_use(
        self,
        asset_id: str,
        exclude_asset: int | None = None,
        before_batch: bool = False,
    ) -> bool:
        return await self._taken(Asset.asset_id == asset_id, exclude_asset, before_batch)

    async def find_existing(self, key: str, value: str) -> Asset | None:
        """Existing company asset by 'asset_id' or 'serial_number'."""
        column = Asset.asset_id if key == "asset_id" else Asset.serial_number
        result = await self.db.execute(
            select(Asset).where(and_(Asset.company_id == self.company_id, column == value))
        )
        return result.scalars().first()

    async def check_row(
        self,
        draft: AssetDraft,
        messages: list[str],
        existing: Asset | None = None,
    ) -> int | None:
        """
        Uniqueness and location checks, appended to ``messages``.

        A value can be reported twice: once because the company already had
        it before this import, and once because an earlier row of the file
        used it. ``existing`` is the asset being updated in place, which is
        allowed to keep its own serial number and asset id. Returns the
        resolved location id.
        """
        exclude = existing.id if existing is not None else None

        if draft.serial_number:
            key = self._serial_key(draft.serial_number)
            owned = existing is not None and existing.serial_number is not None and (
                self._serial_key(existing.serial_number) == key
            )
            if await self.serial_in_use(
                draft.serial_number, exclude_asset=exclude, before_batch=True
            ):
                messages.append("Serial number already exists in this company.")
            if key in self._seen_serials and not owned:
                messages.append("Duplicate serial number in import file.")
            self._seen_serials.add(key)

        if draft.asset_id:
            owned = existing is not None and existing.asset_id == draft.asset_id
            if await self.asset_id_in_use(
                draft.asset_id, exclude_asset=exclude, before_batch=True
            ):
                messages.append("Asset ID already exists in this company.")
            if draft.asset_id in self._seen_asset_ids and not owned:
                messages.append("Duplicate asset ID in import file.")
            self._seen_asset_ids.add(draft.asset_id)

        location_id = None
        if draft.location:
            location_id = self.locations.find(draft.location)
            if location_id is None:
                messages.append(f"Location not found: {draft.location}")
        return location_id

    async def generate_asset_id(self) -> str:
        """ASSET-{companyId}-{6 uppercase alphanumerics}, retried on collision."""
        for _ in range(settings.ASSET_ID_MAX_ATTEMPTS):
            suffix = "".join(secrets.choice(_ASSET_ID_ALPHABET) for _ in range(6))
            candidate = f"ASSET-{self.company_id}-{suffix}"
            if candidate in self._seen_asset_ids:
                continue
            if not await self.asset_id_in_use(candidate):
                self._seen_asset_ids.add(candidate)
                return candidate
        raise RowError("Could not generate a unique asset ID.")

    async def _resolve_lookups(self, draft: AssetDraft) -> dict[str, Any]:
        category_id = None
        if draft.category:
            category = await get_or_create(
                self.db,
                AssetCategory,
                defaults={"description": f"{draft.category} category"},
                name=draft.category,
            )
            category_id = category.id

        asset_type = await get_or_create(
            self.db, AssetType, name=draft.asset_type or DEFAULT_ASSET_TYPE
        )

        department_id = None
        if draft.department:
            department = await get_or_create(
                self.db,
                Department,
                defaults={"created_by": self.user_id},
                company_id=self.company_id,
                name=draft.department,
            )
            department_id = department.id

        return {
            "category_id": category_id,
            "type": asset_type.name,
            "department_id": department_id,
        }

    async def _attach_tags(self, asset: Asset, tag_names: list[str]) -> None:
        if not tag_names:
            return
        linked = await self.db.execute(
            select(asset_tag_links.c.tag_id).where(asset_tag_links.c.asset_id == asset.id)
        )
        linked_ids = set(linked.scalars().all())
        for tag_name in tag_names:
            tag = await get_or_create(
                self.db, AssetTag, company_id=self.company_id, name=tag_name
            )
            if tag.id in linked_ids:
                continue
            await self.db.execute(
                insert(asset_tag_links).values(asset_id=asset.id, tag_id=tag.id)
            )
            linked_ids.add(tag.id)

    def _write_label(self, asset: Asset) -> None:
        """Best-effort; a failed write clears the path recorded on the row."""
        try:
            write_asset_label(asset)
        except (OSError, ValueError) as e:
            asset.label_path = None
            logger.warning(
                "asset_label_failed",
                asset_id=asset.asset_id,
                company_id=self.company_id,
                error=str(e),
            )

    async def create(self, draft: AssetDraft, location_id: int | None) -> Asset:
        """Insert a new asset for a checked draft."""
        lookups = await self._resolve_lookups(draft)
        asset_id = draft.asset_id or await self.generate_asset_id()

        asset = Asset(
            asset_id=asset_id,
            company_id=self.company_id,
            name=draft.name,
            description=draft.description,
            category_id=lookups["category_id"],
            type=lookups["type"],
            serial_number=draft.serial_number,
            model=draft.model,
            manufacturer=draft.manufacturer,
            purchase_date=draft.purchase_date,
            purchase_price=draft.purchase_price,
            location_id=location_id,
            department_id=lookups["department_id"],
            user_id=self.user_id,
            status=draft.status,
            warranty=draft.warranty,
            health_score=draft.health_score,
            brand=draft.brand,
            supplier=draft.supplier,
            depreciation=draft.depreciation,
        )
        self.db.add(asset)
        await self.db.flush()
        self._created_ids.add(asset.id)

        await self._attach_tags(asset, draft.tags)
        asset.label_path = label_path_for(asset)
        await self.db.flush()

        # Only once the row is in the database
        self._write_label(asset)
        return asset

    async def update(self, asset: Asset, draft: AssetDraft, location_id: int | None) -> Asset:
        """Overwrite an existing asset with the values a row provides."""
        lookups = await self._resolve_lookups(draft)

        asset.name = draft.name
        asset.status = draft.status
        asset.type = lookups["type"]
        if draft.asset_id:
            asset.asset_id = draft.asset_id
        optional = {
            "description": draft.description,
            "category_id": lookups["category_id"],
            "serial_number": draft.serial_number,
            "model": draft.model,
            "manufacturer": draft.manufacturer,
            "purchase_date": draft.purchase_date,
            "purchase_price": draft.purchase_price,
            "location_id": location_id,
            "department_id": lookups["department_id"],
            "warranty": draft.warranty,
            "health_score": draft.health_score,
            "brand": draft.brand,
            "supplier": draft.supplier,
            "depreciation": draft.depreciation,
        }
        # Blank cells leave the stored value alone
        for attr, value in optional.items():
            if value is not None:
                setattr(asset, attr, value)
        await self.db.flush()

        await self._attach_tags(asset, draft.tags)
        await self.db.flush()
        return asset
