"""
Tests for the asset import API.

Covers:
  - Upload validation (extension, size, empty file) and auth
  - Analyze: headers, sample, suggestions, confidence
  - Mapping GET fallback and idempotent PUT
  - Conflict detection and resolution endpoints
  - Execute, progress, error report download
  - Queued imports and the per-user guard
  - Template download
  - Company isolation of sessions
  - End-to-end scenario
"""

import io

import pytest
import pytest_asyncio
from fastapi import UploadFile
from httpx import AsyncClient
from sqlalchemy import func, select

from assethub.api.routes import imports as imports_routes
from assethub.core.config import settings
from assethub.core.errors import UploadTooLargeError
from assethub.models.core import Asset, Location
from assethub.models.imports import ImportMapping, ImportSession
from assethub.services.import_template import write_template
from tests.fixtures.excel_factory import (
    STANDARD_ASSET_MAPPING,
    make_asset_register_csv,
    make_asset_register_excel,
    make_csv,
)

BASE = "/api/assets/import"


# ─── Helpers ──────────────────────────────────────────────────

@pytest_asyncio.fixture
async def server_room(tenant, db_session):
    company, _ = tenant
    location = Location(company_id=company.id, name="Server Room")
    db_session.add(location)
    await db_session.commit()
    return location


async def _upload(client: AsyncClient, headers: dict, content: bytes, filename: str = "assets.csv"):
    response = await client.post(
        f"{BASE}/upload",
        files={"file": (filename, content, "application/octet-stream")},
        headers=headers,
    )
    return response


async def _uploaded_file_id(client: AsyncClient, headers: dict, content: bytes, filename: str = "assets.csv"):
    response = await _upload(client, headers, content, filename)
    assert response.status_code == 201, response.text
    return response.json()["data"]["file_id"]


# ─── Upload ───────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_upload_csv(client: AsyncClient, auth_headers, storage_dir):
    content = make_asset_register_csv(3)
    response = await _upload(client, auth_headers, content)

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    data = body["data"]
    assert data["original_name"] == "assets.csv"
    assert data["size"] == len(content)
    assert data["uploaded_at"]
    assert (storage_dir / "imports" / f"{data['file_id']}.csv").read_bytes() == content


@pytest.mark.asyncio
async def test_upload_rejects_other_extensions(client: AsyncClient, auth_headers):
    response = await _upload(client, auth_headers, b"%PDF-1.4", filename="assets.pdf")

    assert response.status_code == 422
    assert response.json()["error"]["code"] == "UNSUPPORTED_FORMAT"


@pytest.mark.asyncio
async def test_upload_size_limit(client: AsyncClient, auth_headers, monkeypatch):
    monkeypatch.setattr(settings, "IMPORT_MAX_UPLOAD_BYTES", 10)
    response = await _upload(client, auth_headers, make_asset_register_csv(3))

    assert response.status_code == 422
    assert response.json()["error"]["code"] == "UPLOAD_TOO_LARGE"


@pytest.mark.asyncio
async def test_upload_read_stops_at_limit(monkeypatch):
    monkeypatch.setattr(imports_routes, "UPLOAD_CHUNK_BYTES", 4)
    stream = io.BytesIO(b"x" * 100)

    with pytest.raises(UploadTooLargeError):
        await imports_routes._read_upload(UploadFile(file=stream, filename="big.csv"), 10)
    assert stream.tell() == 12


@pytest.mark.asyncio
async def test_upload_declared_size_checked_before_reading():
    stream = io.BytesIO(b"x" * 100)

    with pytest.raises(UploadTooLargeError):
        await imports_routes._read_upload(UploadFile(file=stream, size=100, filename="big.csv"), 10)
    assert stream.tell() == 0


@pytest.mark.asyncio
async def test_upload_read_within_limit():
    upload = UploadFile(file=io.BytesIO(b"name\nPump\n"), filename="small.csv")
    assert await imports_routes._read_upload(upload, 100) == b"name\nPump\n"


@pytest.mark.asyncio
async def test_upload_empty_file(client: AsyncClient, auth_headers):
    response = await _upload(client, auth_headers, b"")
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_requires_auth_headers(client: AsyncClient):
    response = await _upload(client, {}, make_asset_register_csv(1))
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_rejects_malformed_auth_headers(client: AsyncClient):
    response = await _upload(
        client, {"X-User-Id": "abc", "X-Company-Id": "1"}, make_asset_register_csv(1)
    )
    assert response.status_code == 401


# ─── Analyze ──────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_analyze_xlsx(client: AsyncClient, auth_headers):
    file_id = await _uploaded_file_id(
        client, auth_headers, make_asset_register_excel(4), filename="assets.xlsx"
    )

    response = await client.post(f"{BASE}/analyze", json={"file_id": file_id}, headers=auth_headers)

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["headers"][0] == "Asset Name"
    assert data["sample"]["Asset Name"] == "Asset 001"
    assert data["mapping_suggestions"] == STANDARD_ASSET_MAPPING
    assert data["confidence"] == "high"
    assert data["missing_required_fields"] == []


@pytest.mark.asyncio
async def test_analyze_low_confidence(client: AsyncClient, auth_headers):
    file_id = await _uploaded_file_id(client, auth_headers, make_csv(["Colour", "SN"], [["red", "1"]]))

    response = await client.post(f"{BASE}/analyze", json={"file_id": file_id}, headers=auth_headers)

    data = response.json()["data"]
    assert data["confidence"] == "low"
    assert data["missing_required_fields"] == ["name"]


@pytest.mark.asyncio
async def test_analyze_unknown_file_id(client: AsyncClient, auth_headers):
    response = await client.post(
        f"{BASE}/analyze",
        json={"file_id": "00000000-0000-4000-8000-000000000000"},
        headers=auth_headers,
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_analyze_malformed_file_id(client: AsyncClient, auth_headers):
    response = await client.post(f"{BASE}/analyze", json={"file_id": "nope"}, headers=auth_headers)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_other_company_cannot_see_session(client: AsyncClient, auth_headers, make_company, make_user, db_session):
    file_id = await _uploaded_file_id(client, auth_headers, make_asset_register_csv(1))
    other = await make_company("Other")
    intruder = await make_user(other)
    await db_session.commit()
    other_headers = {"X-User-Id": str(intruder.id), "X-Company-Id": str(other.id)}

    response = await client.get(f"{BASE}/progress/{file_id}", headers=other_headers)
    assert response.status_code == 404

    response = await client.post(f"{BASE}/analyze", json={"file_id": file_id}, headers=other_headers)
    assert response.status_code == 404


# ─── Mappings ─────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_get_mapping_falls_back_to_suggestion(client: AsyncClient, auth_headers, db_session):
    file_id = await _uploaded_file_id(client, auth_headers, make_asset_register_csv(2))

    response = await client.get(f"{BASE}/mappings/{file_id}", headers=auth_headers)

    assert response.status_code == 200
    assert response.json()["data"] == {"mappings": STANDARD_ASSET_MAPPING, "user_overrides": None}
    count = (await db_session.execute(select(func.count()).select_from(ImportMapping))).scalar()
    assert count == 0


@pytest.mark.asyncio
async def test_save_mapping_is_idempotent(client: AsyncClient, auth_headers, db_session):
    file_id = await _uploaded_file_id(client, auth_headers, make_asset_register_csv(2))
    payload = {"mappings": STANDARD_ASSET_MAPPING, "user_overrides": {"Tags": None}}

    first = await client.put(f"{BASE}/mappings/{file_id}", json=payload, headers=auth_headers)
    second = await client.put(f"{BASE}/mappings/{file_id}", json=payload, headers=auth_headers)

    assert first.status_code == 200
    assert first.json() == second.json()
    assert second.json()["data"] == payload
    count = (await db_session.execute(select(func.count()).select_from(ImportMapping))).scalar()
    assert count == 1

    response = await client.get(f"{BASE}/mappings/{file_id}", headers=auth_headers)
    assert response.json()["data"] == payload


@pytest.mark.asyncio
async def test_save_mapping_rejects_unknown_field(client: AsyncClient, auth_headers):
    file_id = await _uploaded_file_id(client, auth_headers, make_asset_register_csv(1))

    response = await client.put(
        f"{BASE}/mappings/{file_id}",
        json={"mappings": {"Asset Name": "colour"}},
        headers=auth_headers,
    )
    assert response.status_code == 422


# ─── Conflicts / Resolutions ─────────────────────────────────

@pytest.mark.asyncio
async def test_conflicts_require_mapping(client: AsyncClient, auth_headers):
    file_id = await _uploaded_file_id(client, auth_headers, make_asset_register_csv(1))

    response = await client.post(f"{BASE}/conflicts/{file_id}", headers=auth_headers)

    assert response.status_code == 404
    assert response.json()["error"]["message"] == "Mapping or file not found."


@pytest.mark.asyncio
async def test_resolutions_saved_and_echoed(client: AsyncClient, auth_headers):
    file_id = await _uploaded_file_id(client, auth_headers, make_asset_register_csv(1))
    payload = {
        "resolutions": {
            "Locations": {"action": "use_existing", "value": "Server Room"},
            "Serial Numbers": {"action": "skip_row", "rows": [3]},
        }
    }

    response = await client.post(f"{BASE}/resolve-conflicts/{file_id}", json=payload, headers=auth_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Conflict resolutions saved."
    saved = body["data"]["resolutions"]
    assert saved["Locations"]["action"] == "use_existing"
    assert saved["Locations"]["value"] == "Server Room"
    assert saved["Serial Numbers"]["rows"] == [3]

    progress = await client.get(f"{BASE}/progress/{file_id}", headers=auth_headers)
    assert progress.json()["status"] == "conflicts_resolved"


@pytest.mark.asyncio
@pytest.mark.parametrize("resolutions", [
    {"Data Quality": {"action": "use_existing"}},
    {"Locations": {"action": "use_existing"}},
    {"Widgets": {"action": "skip_row"}},
    {"Statuses": {"action": "explode"}},
])
async def test_invalid_resolutions_rejected(client: AsyncClient, auth_headers, resolutions):
    file_id = await _uploaded_file_id(client, auth_headers, make_asset_register_csv(1))

    response = await client.post(
        f"{BASE}/resolve-conflicts/{file_id}",
        json={"resolutions": resolutions},
        headers=auth_headers,
    )
    assert response.status_code == 422


# ─── Execute / Progress ───────────────────────────────────────

@pytest.mark.asyncio
async def test_full_flow(client: AsyncClient, auth_headers, server_room, db_session):
    file_id = await _uploaded_file_id(client, auth_headers, make_asset_register_csv(6))
    await client.post(f"{BASE}/analyze", json={"file_id": file_id}, headers=auth_headers)

    progress = await client.get(f"{BASE}/progress/{file_id}", headers=auth_headers)
    assert progress.json()["status"] == "analyzed"
    assert progress.json()["metrics"]["total_rows"] == 6
    assert progress.json()["metrics"]["processed"] is None

    await client.put(
        f"{BASE}/mappings/{file_id}",
        json={"mappings": STANDARD_ASSET_MAPPING},
        headers=auth_headers,
    )
    conflicts = await client.post(f"{BASE}/conflicts/{file_id}", headers=auth_headers)
    assert conflicts.json() == {"success": True, "conflicts": {}}

    response = await client.post(f"{BASE}/execute/{file_id}", headers=auth_headers)
    assert response.status_code == 200
    body = response.json()
    assert body["imported"] == 6
    assert body["skipped"] == 0
    assert body["errors"] == []
    assert body["error_report_url"] is None

    progress = await client.get(f"{BASE}/progress/{file_id}", headers=auth_headers)
    assert progress.json() == {
        "success": True,
        "status": "completed",
        "metrics": {"total_rows": 6, "processed": 6, "imported": 6, "skipped": 0, "errors": 0},
    }

    count = (await db_session.execute(select(func.count()).select_from(Asset))).scalar()
    assert count == 6


@pytest.mark.asyncio
async def test_execute_twice_returns_409(client: AsyncClient, auth_headers, server_room):
    file_id = await _uploaded_file_id(client, auth_headers, make_asset_register_csv(1))
    await client.put(f"{BASE}/mappings/{file_id}", json={"mappings": STANDARD_ASSET_MAPPING}, headers=auth_headers)
    await client.post(f"{BASE}/execute/{file_id}", headers=auth_headers)

    response = await client.post(f"{BASE}/execute/{file_id}", headers=auth_headers)
    assert response.status_code == 409

    response = await client.put(
        f"{BASE}/mappings/{file_id}", json={"mappings": STANDARD_ASSET_MAPPING}, headers=auth_headers
    )
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_error_report_missing_before_execute(client: AsyncClient, auth_headers):
    file_id = await _uploaded_file_id(client, auth_headers, make_asset_register_csv(1))

    response = await client.get(f"{BASE}/error-report/{file_id}", headers=auth_headers)
    assert response.status_code == 404


# ─── Queued Imports ───────────────────────────────────────────

@pytest.mark.asyncio
async def test_queue_runs_import_in_background(client: AsyncClient, auth_headers, server_room, db_session):
    file_id = await _uploaded_file_id(client, auth_headers, make_asset_register_csv(4))
    await client.put(f"{BASE}/mappings/{file_id}", json={"mappings": STANDARD_ASSET_MAPPING}, headers=auth_headers)

    response = await client.post(f"{BASE}/queue/{file_id}", headers=auth_headers)

    assert response.status_code == 202
    body = response.json()
    assert body["success"] is True
    assert body["data"] == {
        "file_id": file_id,
        "status": "queued",
        "progress_url": f"{BASE}/progress/{file_id}",
    }

    # The job committed on its own session; drop what this one cached
    db_session.expire_all()
    progress = await client.get(body["data"]["progress_url"], headers=auth_headers)
    assert progress.json()["status"] == "completed"
    assert progress.json()["metrics"]["imported"] == 4
    count = (await db_session.execute(select(func.count()).select_from(Asset))).scalar()
    assert count == 4


@pytest.mark.asyncio
async def test_queue_refused_while_another_import_runs(client: AsyncClient, auth_headers, db_session):
    running_id = await _uploaded_file_id(client, auth_headers, make_asset_register_csv(1))
    file_id = await _uploaded_file_id(client, auth_headers, make_asset_register_csv(1))
    await client.put(f"{BASE}/mappings/{file_id}", json={"mappings": STANDARD_ASSET_MAPPING}, headers=auth_headers)
    running = (await db_session.execute(
        select(ImportSession).where(ImportSession.token == running_id)
    )).scalar_one()
    running.status = "importing"
    await db_session.commit()

    response = await client.post(f"{BASE}/queue/{file_id}", headers=auth_headers)

    assert response.status_code == 409
    error = response.json()["error"]
    assert error["code"] == "IMPORT_IN_PROGRESS"
    assert error["details"]["existing_file_id"] == running_id
    assert error["details"]["progress_url"] == f"{BASE}/progress/{running_id}"


@pytest.mark.asyncio
async def test_queue_unknown_session(client: AsyncClient, auth_headers):
    response = await client.post(
        f"{BASE}/queue/00000000-0000-0000-0000-000000000000", headers=auth_headers
    )
    assert response.status_code == 404


# ─── Template ─────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_template_download(client: AsyncClient, auth_headers):
    write_template(settings.IMPORT_TEMPLATE_PATH)

    response = await client.get(f"{BASE}/template", headers=auth_headers)

    assert response.status_code == 200
    assert response.headers["content-type"] == (
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    )
    assert response.headers["content-disposition"].startswith("attachment")
    assert "asset-import-template.xlsx" in response.headers["content-disposition"]
    assert response.content[:2] == b"PK"


@pytest.mark.asyncio
async def test_template_missing(client: AsyncClient, auth_headers):
    response = await client.get(f"{BASE}/template", headers=auth_headers)

    assert response.status_code == 404
    body = response.json()
    assert body["success"] is False
    assert body["error"]["message"] == "Template file not found."


# ─── End-to-End Scenario ──────────────────────────────────────

@pytest.mark.asyncio
async def test_end_to_end_scenario(client: AsyncClient, auth_headers, tenant, db_session):
    """
    Three data rows: the second names an unknown location and the third
    repeats the second's serial. Rows are numbered from 2 (after the
    header), so the conflicts land on rows 3 and 4.
    """
    company, _ = tenant
    db_session.add(Location(company_id=company.id, name="HQ"))
    await db_session.commit()

    content = make_csv(
        ["name", "serial number", "location"],
        [
            ["Desk", "SN-0", "HQ"],
            ["Chair", "SN-1", "Mars Base"],
            ["Lamp", "SN-1", "HQ"],
        ],
    )
    file_id = await _uploaded_file_id(client, auth_headers, content)

    analyzed = await client.post(f"{BASE}/analyze", json={"file_id": file_id}, headers=auth_headers)
    suggestions = analyzed.json()["data"]["mapping_suggestions"]
    assert suggestions == {
        "name": "name",
        "serial number": "serial_number",
        "location": "location",
    }

    await client.put(f"{BASE}/mappings/{file_id}", json={"mappings": suggestions}, headers=auth_headers)

    conflicts = (await client.post(f"{BASE}/conflicts/{file_id}", headers=auth_headers)).json()["conflicts"]
    assert conflicts == {
        "Serial Numbers": [{"row": 4, "value": "SN-1", "issue": "Duplicate in file"}],
        "Locations": [{"row": 3, "value": "Mars Base", "issue": "Not found"}],
    }

    result = (await client.post(f"{BASE}/execute/{file_id}", headers=auth_headers)).json()
    assert result["imported"] == 1
    assert result["skipped"] == 0
    assert result["errors"] == [
        {"row": 3, "error": "Location not found: Mars Base"},
        {"row": 4, "error": "Duplicate serial number in import file."},
    ]
    assert result["error_report_url"] == f"/api/assets/import/error-report/{file_id}"

    names = (await db_session.execute(select(Asset.name))).scalars().all()
    assert names == ["Desk"]

    report = await client.get(result["error_report_url"], headers=auth_headers)
    assert report.status_code == 200
    assert report.headers["content-type"].startswith("text/csv")
    assert "Location not found: Mars Base" in report.text
