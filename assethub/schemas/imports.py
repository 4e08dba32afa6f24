"""Pydantic schemas for the asset import pipeline."""

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from assethub.services.field_mapper import CANONICAL_FIELDS


# ─── Upload / Analyze ─────────────────────────────────────────

class UploadResult(BaseModel):
    file_id: str
    original_name: str
    size: int
    uploaded_at: datetime


class UploadResponse(BaseModel):
    success: bool = True
    data: UploadResult


class AnalyzeRequest(BaseModel):
    file_id: uuid.UUID = Field(..., description="Session token returned by upload")


class AnalyzeResult(BaseModel):
    headers: list[str]
    sample: dict[str, str | None]
    mapping_suggestions: dict[str, str | None]
    confidence: Literal["high", "medium", "low"]
    missing_required_fields: list[str]


class AnalyzeResponse(BaseModel):
    success: bool = True
    data: AnalyzeResult


# ─── Field Mapping ────────────────────────────────────────────

def _check_canonical(mapping: dict[str, str | None] | None) -> dict[str, str | None] | None:
    if mapping is None:
        return None
    unknown = sorted({v for v in mapping.values() if v is not None and v not in CANONICAL_FIELDS})
    if unknown:
        raise ValueError(
            f"Unknown field(s): {', '.join(unknown)}. "
            f"Valid fields: {', '.join(CANONICAL_FIELDS)}"
        )
    return mapping


class MappingPayload(BaseModel):
    """
    Column mapping for a session.

    ``mappings`` maps every source column to a canonical field or null;
    ``user_overrides`` has the same shape and wins per column.
    """
    mappings: dict[str, str | None] = Field(
        ...,
        description="Mapping of source column → canonical field (or null)",
    )
    user_overrides: dict[str, str | None] | None = Field(
        None,
        description="Per-column overrides applied on top of mappings",
    )

    @field_validator("mappings", "user_overrides")
    @classmethod
    def check_canonical_fields(cls, value):
        return _check_canonical(value)


class MappingResponse(BaseModel):
    success: bool = True
    data: MappingPayload


# ─── Conflicts ────────────────────────────────────────────────

class ConflictCategory(str, Enum):
    ASSET_IDS = "Asset IDs"
    SERIAL_NUMBERS = "Serial Numbers"
    LOCATIONS = "Locations"
    STATUSES = "Statuses"
    DATA_QUALITY = "Data Quality"


class ConflictEntry(BaseModel):
    """One flagged cell: report row number (header is row 1), value, issue."""
    row: int
    value: str
    issue: str


class ConflictsResponse(BaseModel):
    success: bool = True
    conflicts: dict[str, list[ConflictEntry]]


# ─── Resolutions ──────────────────────────────────────────────

class ResolutionAction(str, Enum):
    SKIP_ROW = "skip_row"
    RENAME_VALUE = "rename_value"
    USE_EXISTING = "use_existing"
    IGNORE = "ignore"


class ConflictResolution(BaseModel):
    """
    A user decision for one conflict category.

    rows: report rows the decision applies to; omitted means every row
          flagged in the category.
    replacements: row → new value, for rename_value.
    value: substitute location or status, for use_existing.
    """
    action: ResolutionAction
    rows: list[int] | None = None
    replacements: dict[int, str] = Field(default_factory=dict)
    value: str | None = None

    def applies_to(self, row: int) -> bool:
        return self.rows is None or row in self.rows


class ResolutionPayload(BaseModel):
    resolutions: dict[ConflictCategory, ConflictResolution]

    @model_validator(mode="after")
    def check_actions(self):
        for category, resolution in self.resolutions.items():
            if resolution.action != ResolutionAction.USE_EXISTING:
                continue
            if category == ConflictCategory.DATA_QUALITY:
                raise ValueError("use_existing is not applicable to Data Quality conflicts")
            if category in (ConflictCategory.LOCATIONS, ConflictCategory.STATUSES) and not (
                resolution.value and resolution.value.strip()
            ):
                raise ValueError(f"use_existing for {category.value} requires a value")
        return self


class ResolutionResponse(BaseModel):
    success: bool = True
    message: str = "Conflict resolutions saved."
    data: dict[str, Any]


# ─── Execute / Progress ──────────────────────────────────────

class RowErrorOut(BaseModel):
    row: int
    error: str


class ExecuteResponse(BaseModel):
    success: bool = True
    imported: int
    skipped: int
    errors: list[RowErrorOut]
    error_report_url: str | None = None


class QueuedImport(BaseModel):
    file_id: str
    status: str
    progress_url: str


class QueuedImportResponse(BaseModel):
    success: bool = True
    message: str = "Import queued. Follow it on the progress URL."
    data: QueuedImport


class ProgressMetrics(BaseModel):
    total_rows: int | None = None
    processed: int | None = None
    imported: int | None = None
    skipped: int | None = None
    errors: int | None = None


class ProgressResponse(BaseModel):
    success: bool = True
    status: str
    metrics: ProgressMetrics


# ─── Bulk Import ──────────────────────────────────────────────

class BulkImportRequest(BaseModel):
    """JSON bulk import. Rows are checked one by one, the list by the route."""
    assets: Any = None


class BulkImportResponse(BaseModel):
    imported: int
    errors: list[RowErrorOut]
