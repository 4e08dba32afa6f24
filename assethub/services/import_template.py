"""
Asset import template workbook.

The template is a static file served by GET /api/assets/import/template.
It is generated by scripts/build_import_template.py; the headers are
chosen so that suggest_mapping() maps every column on its own.
"""

import io
from pathlib import Path

import openpyxl
from openpyxl.styles import Font

TEMPLATE_FILENAME = "asset-import-template.xlsx"
XLSX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

TEMPLATE_HEADERS = [
    "Asset Name",
    "Description",
    "Category",
    "Serial Number",
    "Model",
    "Manufacturer",
    "Purchase Date",
    "Purchase Price",
    "Location",
    "Status",
    "Tags",
    "Department",
]

EXAMPLE_ROW = [
    "Dell Latitude 5440",
    "Laptop for the finance team",
    "IT Equipment",
    "SN-000123",
    "Latitude 5440",
    "Dell",
    "2024-03-15",
    "1250.00",
    "Head Office → Floor 2",
    "active",
    "laptop; finance",
    "Finance",
]

NOTES = [
    ("Asset Name", "Required."),
    ("Purchase Date", "YYYY-MM-DD, not in the future."),
    ("Purchase Price", "Numeric, e.g. 1250.00."),
    ("Location", "Existing location name or full path. Locations are not created."),
    ("Status", "active, inactive or archived. Defaults to active."),
    ("Tags", "Separate tags with ';' or ','."),
]


def build_template() -> bytes:
    """Render the template workbook: an Assets sheet plus an Instructions sheet."""
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = "Assets"
    ws.append(TEMPLATE_HEADERS)
    for cell in ws[1]:
        cell.font = Font(bold=True)
    ws.append(EXAMPLE_ROW)
    for idx, header in enumerate(TEMPLATE_HEADERS, start=1):
        ws.column_dimensions[openpyxl.utils.get_column_letter(idx)].width = max(len(header) + 4, 16)

    notes = wb.create_sheet("Instructions")
    notes.append(["Column", "Notes"])
    for cell in notes[1]:
        cell.font = Font(bold=True)
    for column, note in NOTES:
        notes.append([column, note])

    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


def write_template(path: str | Path) -> Path:
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(build_template())
    return target
