"""
Spreadsheet reader: CSV / XLSX / XLS → headers + raw rows.

The first row is the header row. Every cell comes back as a string so the
rest of the pipeline never has to care which engine produced it. Rows are
not padded or truncated to the header width; consumers index defensively.
"""

import csv
import io
import zipfile
from dataclasses import dataclass, field
from datetime import date, datetime, time
from pathlib import Path

import openpyxl
from openpyxl.utils.exceptions import InvalidFileException

from assethub.core.errors import SpreadsheetEngineError, UnsupportedFormatError

SUPPORTED_EXTENSIONS = ("csv", "xlsx", "xls")


@dataclass
class SpreadsheetData:
    """Parsed file contents: one header row, then data rows."""
    headers: list[str]
    rows: list[list[str]] = field(default_factory=list)

    @property
    def row_count(self) -> int:
        return len(self.rows)


# ─── Cell Conversion ──────────────────────────────────────────

def _cell_to_str(value) -> str:
    """Render an engine cell value as the string a user would have typed."""
    if value is None:
        return ""
    if isinstance(value, datetime):
        if value.time() == time(0):
            return value.date().isoformat()
        return value.isoformat(sep=" ")
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def _is_blank(row: list[str]) -> bool:
    return all(cell == "" for cell in row)


def _split_header(raw_rows: list[list[str]]) -> SpreadsheetData:
    if not raw_rows:
        return SpreadsheetData(headers=[])
    headers = [h.strip() for h in raw_rows[0]]
    # Formatted-but-empty trailing columns show up as blank headers
    while headers and headers[-1] == "":
        headers.pop()
    rows = [row for row in raw_rows[1:] if not _is_blank(row)]
    return SpreadsheetData(headers=headers, rows=rows)


# ─── Engines ──────────────────────────────────────────────────

def parse_csv(file_bytes: bytes) -> SpreadsheetData:
    """Parse CSV bytes (UTF-8, BOM tolerated)."""
    try:
        text_content = file_bytes.decode("utf-8-sig")
    except UnicodeDecodeError:
        raise UnsupportedFormatError("csv", reason="CSV file is not valid UTF-8")
    reader = csv.reader(io.StringIO(text_content))
    raw_rows = [[_cell_to_str(cell) for cell in row] for row in reader]
    return _split_header(raw_rows)


def parse_xlsx(file_bytes: bytes) -> SpreadsheetData:
    """Parse the first worksheet of an XLSX workbook."""
    try:
        wb = openpyxl.load_workbook(io.BytesIO(file_bytes), read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError):
        raise UnsupportedFormatError("xlsx", reason="File could not be parsed as an XLSX workbook")

    try:
        ws = wb.worksheets[0]
        raw_rows = [
            [_cell_to_str(value) for value in row_values]
            for row_values in ws.iter_rows(values_only=True)
        ]
    finally:
        wb.close()
    return _split_header(raw_rows)


def parse_xls(file_bytes: bytes) -> SpreadsheetData:
    """Parse the first sheet of a legacy XLS workbook (needs the xlrd extra)."""
    try:
        import xlrd
    except ImportError:
        raise SpreadsheetEngineError("xls", engine="xlrd")

    try:
        book = xlrd.open_workbook(file_contents=file_bytes)
    except xlrd.XLRDError:
        raise UnsupportedFormatError("xls", reason="File could not be parsed as an XLS workbook")

    sheet = book.sheet_by_index(0)
    raw_rows: list[list[str]] = []
    for row_idx in range(sheet.nrows):
        cells = []
        for cell in sheet.row(row_idx):
            if cell.ctype == xlrd.XL_CELL_DATE:
                cells.append(_cell_to_str(xlrd.xldate_as_datetime(cell.value, book.datemode)))
            else:
                cells.append(_cell_to_str(cell.value))
        raw_rows.append(cells)
    return _split_header(raw_rows)


PARSERS = {
    "csv": parse_csv,
    "xlsx": parse_xlsx,
    "xls": parse_xls,
}


def read_spreadsheet(path: Path, extension: str) -> SpreadsheetData:
    """
    Read a stored upload into memory and parse it.

    Raises:
        FileNotFoundError: the stored file is missing
        UnsupportedFormatError: unknown extension or unparseable contents
        SpreadsheetEngineError: the engine for this format is not installed
    """
    ext = extension.lower().lstrip(".")
    parser = PARSERS.get(ext)
    if parser is None:
        raise UnsupportedFormatError(ext)
    if not path.is_file():
        raise FileNotFoundError(str(path))
    return parser(path.read_bytes())


def build_samples(data: SpreadsheetData) -> dict[str, str | None]:
    """Header → value from the first data row (None when the row is short or absent)."""
    first = data.rows[0] if data.rows else []
    return {
        header: first[idx] if idx < len(first) else None
        for idx, header in enumerate(data.headers)
    }
