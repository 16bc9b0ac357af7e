# tests/test_api/test_upload_routes.py
import pytest

from mediavault.core.config import MIB, settings
from tests.fixtures.app import OTHER_USER_ID, USER_ID

BASE = "/api/v1/upload"


def _video(size=15 * MIB, name="clip.mp4"):
    return {"filename": name, "fileType": "video/mp4", "fileSize": size}


@pytest.mark.anyio
async def test_initiate_requires_authenticated_user(async_client, store):
    r = await async_client.post(f"{BASE}/initiate", json={"files": [{"main": _video()}]})
    assert r.status_code == 401
    body = r.json()
    assert body["error"] is True and body["errorCode"] == "UNAUTHORIZED"
    assert store.calls == []


@pytest.mark.anyio
async def test_initiate_rejects_malformed_user_header(async_client):
    r = await async_client.post(
        f"{BASE}/initiate",
        json={"files": [{"main": _video()}]},
        headers={settings.AUTH_USER_ID_HEADER: "../admin"},
    )
    assert r.status_code == 401


@pytest.mark.anyio
async def test_initiate_returns_camel_case_envelope(async_client, auth_headers, store):
    thumb = {"filename": "clip.jpg", "fileType": "image/jpeg", "fileSize": 2048}
    r = await async_client.post(
        f"{BASE}/initiate", json={"files": [{"main": _video(), "thumbnail": thumb}]}, headers=auth_headers
    )
    assert r.status_code == 200, r.text
    assert r.headers["cache-control"] == "no-store"
    assert "x-request-id" in r.headers
    assert "server" not in r.headers

    body = r.json()
    assert body["statusCode"] == 200
    assert body["message"] == "Upload URLs generated successfully"
    data = body["data"]
    assert data["totalFiles"] == 1

    main = data["uploads"][0]["main"]
    assert main["storageKey"].startswith(f"uploads/{USER_ID}/visual/")
    assert main["storageKey"].endswith(f"/{main['fileId']}/clip.mp4")
    assert main["partCount"] == 2 and len(main["parts"]) == 2
    assert main["partSize"] == settings.S3_PART_SIZE
    assert main["parts"][0]["partNumber"] == 1 and main["parts"][0]["uploadUrl"].startswith("https://")
    assert main["bucket"] == "test-bucket"
    assert main["expiresAt"].endswith("Z")

    thumbnail = data["uploads"][0]["thumbnail"]
    assert thumbnail["fileId"] == main["fileId"]
    assert thumbnail["storageKey"].endswith(f"/{main['fileId']}/thumbnail/clip.jpg")


@pytest.mark.anyio
async def test_initiate_oversized_file_error_shape(async_client, auth_headers, store):
    r = await async_client.post(
        f"{BASE}/initiate", json={"files": [{"main": _video(size=6 * 1024 * MIB)}]}, headers=auth_headers
    )
    assert r.status_code == 400
    body = r.json()
    assert body["error"] is True
    assert body["kind"] == "validation_error"
    assert body["errorCode"] == "FILE_TOO_LARGE"
    assert body["requestId"] == r.headers["x-request-id"]
    problem = body["details"]["validationErrors"][0]
    assert problem["index"] == 0 and problem["target"] == "main"
    assert store.calls == []


@pytest.mark.anyio
async def test_initiate_reuses_client_request_id(async_client, auth_headers):
    rid = "2b1d6f0e-4a1c-4c3b-9f1e-8d7a6b5c4d3e"
    r = await async_client.post(f"{BASE}/initiate", json={"files": []}, headers={**auth_headers, "X-Request-ID": rid})
    assert r.status_code == 400
    assert r.headers["x-request-id"] == rid
    assert r.json()["requestId"] == rid


@pytest.mark.anyio
async def test_initiate_store_failure_is_503(async_client, auth_headers, store):
    store.fail_on("open_multipart_session")
    r = await async_client.post(f"{BASE}/initiate", json={"files": [{"main": _video()}]}, headers=auth_headers)
    assert r.status_code == 503
    body = r.json()
    assert body["errorCode"] == "STORE_ERROR"
    assert body["details"] == {"failedIndexes": [0], "totalFiles": 1}


@pytest.mark.anyio
async def test_malformed_json_body_is_rendered_as_400(async_client, auth_headers):
    r = await async_client.post(
        f"{BASE}/initiate",
        content=b"{not json",
        headers={**auth_headers, "Content-Type": "application/json"},
    )
    assert r.status_code == 400
    assert r.json()["error"] is True


async def _initiate(client, headers):
    r = await client.post(f"{BASE}/initiate", json={"files": [{"main": _video()}]}, headers=headers)
    return r.json()["data"]["uploads"][0]["main"]


def _parts(n):
    return [{"partNumber": i, "etag": f'"{str(i) * 32}"'} for i in range(1, n + 1)]


@pytest.mark.anyio
async def test_complete_round_trip(async_client, auth_headers, store):
    cfg = await _initiate(async_client, auth_headers)
    body = {
        "fileId": cfg["fileId"],
        "storageKey": cfg["storageKey"],
        "sessionId": cfg["sessionId"],
        "parts": _parts(2),
    }
    r = await async_client.post(f"{BASE}/complete", json=body, headers=auth_headers)
    assert r.status_code == 200, r.text
    data = r.json()["data"]
    assert data["storageKey"] == cfg["storageKey"]
    assert data["location"].endswith(cfg["storageKey"])
    assert data["metadata"]["filename"] == "clip.mp4"
    assert data["metadata"]["fileType"] == "video/mp4"

    assembled = store.called("assemble_multipart")[0]
    assert [p["ETag"] for p in assembled[2]] == ["1" * 32, "2" * 32]


@pytest.mark.anyio
async def test_complete_foreign_key_is_forbidden(async_client, auth_headers, store):
    cfg = await _initiate(async_client, {settings.AUTH_USER_ID_HEADER: OTHER_USER_ID})
    body = {
        "fileId": cfg["fileId"],
        "storageKey": cfg["storageKey"],
        "sessionId": cfg["sessionId"],
        "parts": _parts(2),
    }
    r = await async_client.post(f"{BASE}/complete", json=body, headers=auth_headers)
    assert r.status_code == 403
    assert r.json()["errorCode"] == "FORBIDDEN"
    assert store.called("assemble_multipart") == []


@pytest.mark.anyio
async def test_complete_rejects_bad_parts(async_client, auth_headers, store):
    cfg = await _initiate(async_client, auth_headers)
    body = {
        "fileId": cfg["fileId"],
        "storageKey": cfg["storageKey"],
        "sessionId": cfg["sessionId"],
        "parts": [{"partNumber": 1, "etag": "short"}],
    }
    r = await async_client.post(f"{BASE}/complete", json=body, headers=auth_headers)
    assert r.status_code == 400
    assert r.json()["errorCode"] == "INVALID_PARTS"
