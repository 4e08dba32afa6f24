"""
Value normalization utilities for imported cells.

Spreadsheet cells arrive as loosely formatted strings. These helpers are
small and composable; validation decides what to do with a None result.
"""

import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation

VALID_STATUSES = ("active", "inactive", "archived")

_ISO_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def normalize_whitespace(value: str) -> str:
    """Collapse whitespace and strip."""
    return re.sub(r"\s+", " ", value.strip())


def normalize_case(value: str) -> str:
    """Lowercase for case-insensitive comparison."""
    return value.lower()


def clean_cell(value) -> str | None:
    """
    Trim a mapped cell value; blanks become None.
    '  Dell  ' → 'Dell'
    '   '      → None
    """
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def normalize_status(value: str | None) -> str | None:
    """
    Lowercase a status for comparison against VALID_STATUSES.
    Returns None for values outside the enumerated set.
    """
    if value is None:
        return None
    status = normalize_case(normalize_whitespace(value))
    return status if status in VALID_STATUSES else None


def parse_decimal(value) -> Decimal | None:
    """
    Parse a numeric string. Thousands separators and a leading currency
    symbol are tolerated: '$1,200.50' → Decimal('1200.50').
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        return Decimal(str(value))
    text = str(value).strip().replace(",", "")
    text = text.lstrip("$€£")
    if not text:
        return None
    try:
        parsed = Decimal(text)
    except InvalidOperation:
        return None
    if not parsed.is_finite():
        return None
    return parsed


def parse_iso_date(value: str) -> date | None:
    """Parse a strict YYYY-MM-DD string; anything else is None."""
    text = value.strip()
    if not _ISO_DATE_PATTERN.match(text):
        return None
    try:
        return datetime.strptime(text, "%Y-%m-%d").date()
    except ValueError:
        return None


def split_tags(value) -> list[str]:
    """
    Tags arrive either as a list (JSON bulk import) or as a comma/semicolon
    separated cell. Order is kept, blanks and repeats dropped.
    """
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        parts = [str(v) for v in value if v is not None]
    else:
        parts = re.split(r"[;,]", str(value))
    tags: list[str] = []
    for part in parts:
        tag = part.strip()
        if tag and tag not in tags:
            tags.append(tag)
    return tags
