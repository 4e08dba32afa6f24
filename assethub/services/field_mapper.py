"""
Field mapper: spreadsheet headers → canonical asset fields.

Suggestions come from a static, ordered alias table. A header is matched
case-insensitively by substring against each canonical field's aliases,
scanning fields in declaration order; the first hit wins and a header maps
to at most one field. Users then confirm or override the suggestion.
"""

# Declaration order is significant: 'Asset Name Cost' maps to name, not
# purchase_price, because name is scanned first.
FIELD_ALIASES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("name", ("name", "asset name")),
    ("description", ("description",)),
    ("category", ("category",)),
    ("serial_number", ("serial", "serial number")),
    ("model", ("model", "model number")),
    ("manufacturer", ("manufacturer",)),
    ("purchase_date", ("purchase date",)),
    ("purchase_price", ("purchase price", "cost")),
    ("location", ("location", "location code", "location path")),
    ("status", ("status",)),
    ("tags", ("tags",)),
    ("department", ("department",)),
    ("asset_id", ("asset id", "asset tag")),
)

CANONICAL_FIELDS: tuple[str, ...] = tuple(name for name, _ in FIELD_ALIASES)

REQUIRED_FIELDS: tuple[str, ...] = ("name",)


def match_header(header: str) -> str | None:
    """Return the canonical field for one header, or None."""
    lowered = header.lower()
    for canonical, aliases in FIELD_ALIASES:
        for alias in aliases:
            if alias in lowered:
                return canonical
    return None


def suggest_mapping(headers: list[str]) -> dict[str, str | None]:
    """Suggest a canonical field (or None) for every header."""
    return {header: match_header(header) for header in headers}


def classify_confidence(mapping: dict[str, str | None]) -> tuple[str, list[str]]:
    """
    Grade a mapping by how many required fields it covers.

    Returns (confidence, missing_required_fields) where confidence is
    'high' when nothing is missing, 'low' when everything is, and
    'medium' in between.
    """
    mapped = set(v for v in mapping.values() if v)
    missing = [field for field in REQUIRED_FIELDS if field not in mapped]
    if not missing:
        confidence = "high"
    elif len(missing) < len(REQUIRED_FIELDS):
        confidence = "medium"
    else:
        confidence = "low"
    return confidence, missing


def effective_mapping(
    mappings: dict[str, str | None],
    overrides: dict[str, str | None] | None = None,
) -> dict[str, str | None]:
    """Merge user overrides over the stored mapping, column by column."""
    merged = dict(mappings)
    if overrides:
        merged.update(overrides)
    return merged


def project_row(
    headers: list[str],
    row: list[str],
    mapping: dict[str, str | None],
) -> dict[str, str]:
    """
    Turn a raw row into {canonical_field: raw value}.

    Only columns mapped to a canonical field are kept. Short rows simply
    leave the trailing fields out.
    """
    record: dict[str, str] = {}
    for idx, header in enumerate(headers):
        field = mapping.get(header)
        if not field:
            continue
        record[field] = row[idx] if idx < len(row) else ""
    return record
