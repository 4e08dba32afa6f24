"""Tests for the spreadsheet reader (CSV / XLSX / XLS)."""

import datetime

import pytest

from assethub.core.errors import SpreadsheetEngineError, UnsupportedFormatError
from assethub.services.spreadsheet_reader import (
    SpreadsheetData,
    build_samples,
    parse_csv,
    parse_xls,
    parse_xlsx,
    read_spreadsheet,
)
from tests.fixtures.excel_factory import (
    ASSET_HEADERS,
    make_asset_register_csv,
    make_asset_register_excel,
    make_excel,
)


class TestCsv:
    def test_headers_and_rows(self):
        data = parse_csv(make_asset_register_csv(5))
        assert data.headers == ASSET_HEADERS
        assert data.row_count == 5
        assert data.rows[0][0] == "Asset 001"

    def test_headers_trimmed_and_bom_tolerated(self):
        data = parse_csv("\ufeff name , serial number \nPump,SN-1\n".encode("utf-8"))
        assert data.headers == ["name", "serial number"]

    def test_ragged_rows_preserved(self):
        data = parse_csv(b"name,serial number,location\nPump\nFan,SN-2,Roof,extra\n")
        assert data.rows == [["Pump"], ["Fan", "SN-2", "Roof", "extra"]]

    def test_blank_rows_dropped(self):
        data = parse_csv(b"name\nPump\n,\n\nFan\n")
        assert data.rows == [["Pump"], ["Fan"]]

    def test_not_utf8(self):
        with pytest.raises(UnsupportedFormatError):
            parse_csv(b"name\n\xff\xfe\xfa\n")

    def test_empty_file(self):
        data = parse_csv(b"")
        assert data.headers == []
        assert data.row_count == 0


class TestXlsx:
    def test_headers_and_rows(self):
        data = parse_xlsx(make_asset_register_excel(3))
        assert data.headers == ASSET_HEADERS
        assert data.row_count == 3

    def test_cells_rendered_as_strings(self):
        content = make_excel(
            ["name", "purchase date", "purchase price", "notes"],
            [["Pump", datetime.datetime(2024, 3, 15), 1200.0, None]],
        )
        data = parse_xlsx(content)
        assert data.rows[0] == ["Pump", "2024-03-15", "1200", ""]

    def test_trailing_blank_headers_dropped(self):
        content = make_excel(["name", "serial", None], [["Pump", "SN-1", None]])
        assert parse_xlsx(content).headers == ["name", "serial"]

    def test_corrupt_workbook(self):
        with pytest.raises(UnsupportedFormatError):
            parse_xlsx(b"not a zip file")


def test_xls_without_engine(monkeypatch):
    """Without xlrd installed an .xls file cannot be read."""
    import builtins

    real_import = builtins.__import__

    def fake_import(name, *args, **kwargs):
        if name == "xlrd":
            raise ImportError("No module named 'xlrd'")
        return real_import(name, *args, **kwargs)

    monkeypatch.setattr(builtins, "__import__", fake_import)
    with pytest.raises(SpreadsheetEngineError) as exc_info:
        parse_xls(b"")
    assert exc_info.value.status_code == 500
    assert isinstance(exc_info.value, UnsupportedFormatError)


class TestReadSpreadsheet:
    def test_reads_by_extension(self, tmp_path):
        path = tmp_path / "assets.csv"
        path.write_bytes(make_asset_register_csv(2))
        data = read_spreadsheet(path, "CSV")
        assert data.row_count == 2

    def test_unknown_extension(self, tmp_path):
        path = tmp_path / "assets.pdf"
        path.write_bytes(b"%PDF")
        with pytest.raises(UnsupportedFormatError):
            read_spreadsheet(path, "pdf")

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            read_spreadsheet(tmp_path / "gone.csv", "csv")


class TestSamples:
    def test_first_row_per_header(self):
        data = SpreadsheetData(headers=["name", "serial", "location"], rows=[["Pump", "SN-1"]])
        assert build_samples(data) == {"name": "Pump", "serial": "SN-1", "location": None}

    def test_no_rows(self):
        data = SpreadsheetData(headers=["name"])
        assert build_samples(data) == {"name": None}
