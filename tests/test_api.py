"""Tests for the ent HTTP API.

Covers:
- Bucket and file listings with limit, prefix and sort
- Create, get, head and delete of files with ETag/Last-Modified headers
- Error envelope and status mapping by error kind
- Request ID propagation and CORS headers
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import uuid
from typing import Any
from unittest.mock import patch

import pytest
from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.testclient import TestClient
from starlette.concurrency import run_in_threadpool

from ent.api.errors import request_validation_error_handler
from ent.api.main import create_app
from ent.api.schemas import format_timestamp, parse_timestamp
from ent.storage.errors import StorageBackendError
from ent.storage.service import BlobService


@pytest.fixture
def client(service: BlobService) -> TestClient:
    """Create a test client over each storage engine."""
    return TestClient(create_app(service), raise_server_exceptions=False)


def _assert_error(response: Any, status: int, code: str) -> dict[str, Any]:
    assert response.status_code == status
    body = response.json()
    assert body["code"] == code
    assert body["request_id"] == response.headers["X-Request-Id"]
    assert "message" in body
    return body


class TestBucketList:
    """Tests for GET /."""

    def test_lists_all_buckets(self, client: TestClient) -> None:
        """Every registered bucket is returned with its owner."""
        response = client.get("/")
        assert response.status_code == 200
        body = response.json()
        assert body["count"] == 2
        assert isinstance(body["duration"], int)
        names = {b["name"] for b in body["buckets"]}
        assert names == {"b", "other"}
        b = next(b for b in body["buckets"] if b["name"] == "b")
        assert b["owner"] == {"email": {"Name": "b team", "Address": "b@bucket.io"}}


class TestCreate:
    """Tests for POST /{bucket}/{key}."""

    def test_create_returns_201_with_headers(self, client: TestClient) -> None:
        """The stored file is described and its digest sent as ETag."""
        response = client.post("/b/dir/file.txt", content=b"hello")

        assert response.status_code == 201
        assert response.headers["ETag"] == hashlib.sha1(b"hello").hexdigest()
        body = response.json()
        assert isinstance(body["duration"], int)
        assert body["file"]["key"] == "dir/file.txt"
        assert body["file"]["bucket"]["name"] == "b"
        assert body["file"]["lastModified"] == response.headers["Last-Modified"]
        assert body["file"]["lastModified"].endswith("Z")

    def test_create_large_body(self, client: TestClient) -> None:
        """Bodies larger than the in-memory spool are stored intact."""
        data = bytes(range(256)) * 8192
        assert client.post("/b/big", content=data).status_code == 201
        assert client.get("/b/big").content == data

    def test_body_spooling_runs_in_threadpool(
        self, client: TestClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Spool writes never block the event loop."""
        offloaded: list[str] = []

        async def recording(func: Any, *args: Any, **kwargs: Any) -> Any:
            offloaded.append(getattr(func, "__name__", repr(func)))
            return await run_in_threadpool(func, *args, **kwargs)

        monkeypatch.setattr("ent.api.routes.files.run_in_threadpool", recording)
        data = b"x" * (3 * 1024 * 1024)

        assert client.post("/b/spooled", content=data).status_code == 201
        assert "write" in offloaded
        assert client.get("/b/spooled").content == data

    def test_create_empty_body(self, client: TestClient) -> None:
        """Empty objects are allowed."""
        response = client.post("/b/empty", content=b"")
        assert response.status_code == 201
        assert response.headers["ETag"] == hashlib.sha1(b"").hexdigest()

    def test_create_unknown_bucket(self, client: TestClient) -> None:
        """Unknown buckets are 404 BUCKET_NOT_FOUND."""
        body = _assert_error(client.post("/nope/k", content=b"x"), 404, "BUCKET_NOT_FOUND")
        assert body["details"] == {"bucket": "nope"}

    def test_create_reserved_key(self, client: TestClient) -> None:
        """Keys using the reserved prefix are invalid params."""
        _assert_error(client.post("/b/.ent-pending-x", content=b"x"), 400, "INVALID_PARAM")


class TestGet:
    """Tests for GET /{bucket}/{key}."""

    def test_get_streams_content(self, client: TestClient) -> None:
        """Stored bytes are returned with blob headers."""
        created = client.post("/b/k", content=b"payload")
        response = client.get("/b/k")

        assert response.status_code == 200
        assert response.content == b"payload"
        assert response.headers["content-type"] == "application/octet-stream"
        assert response.headers["content-length"] == "7"
        assert response.headers["ETag"] == created.headers["ETag"]
        assert response.headers["Last-Modified"] == created.headers["Last-Modified"]

    def test_get_missing_file(self, client: TestClient) -> None:
        """Unknown keys are 404 FILE_NOT_FOUND."""
        body = _assert_error(client.get("/b/missing"), 404, "FILE_NOT_FOUND")
        assert body["details"] == {"bucket": "b", "key": "missing"}

    def test_get_unknown_bucket(self, client: TestClient) -> None:
        """Unknown buckets are 404 BUCKET_NOT_FOUND."""
        _assert_error(client.get("/nope/k"), 404, "BUCKET_NOT_FOUND")


class TestHead:
    """Tests for HEAD /{bucket}/{key}."""

    def test_head_existing(self, client: TestClient) -> None:
        """Existing files answer 200 with headers and no body."""
        client.post("/b/k", content=b"payload")
        response = client.head("/b/k")
        assert response.status_code == 200
        assert response.headers["Content-Length"] == "0"
        assert response.headers["ETag"] == hashlib.sha1(b"payload").hexdigest()
        assert response.content == b""

    @pytest.mark.parametrize(("path", "status"), [("/b/missing", 404), ("/nope/k", 404)])
    def test_head_missing(self, client: TestClient, path: str, status: int) -> None:
        """Failures keep the status of their error kind."""
        response = client.head(path)
        assert response.status_code == status
        assert response.headers["Content-Length"] == "0"

    def test_head_invalid_key(self, client: TestClient) -> None:
        """Invalid keys are 400."""
        assert client.head("/b/.ent-pending-x").status_code == 400


class TestDelete:
    """Tests for DELETE /{bucket}/{key}."""

    def test_delete_describes_removed_file(self, client: TestClient) -> None:
        """The removed file is described and later gets are 404."""
        created = client.post("/b/k", content=b"v").json()["file"]
        response = client.delete("/b/k")

        assert response.status_code == 200
        body = response.json()
        assert body["file"] == created
        assert isinstance(body["duration"], int)
        assert client.get("/b/k").status_code == 404

    def test_delete_missing(self, client: TestClient) -> None:
        """Deleting an unknown key is 404."""
        _assert_error(client.delete("/b/missing"), 404, "FILE_NOT_FOUND")


class TestFileList:
    """Tests for GET /{bucket}."""

    @pytest.fixture
    def populated(self, client: TestClient) -> TestClient:
        for key in ("a/1", "a/2", "z"):
            assert client.post(f"/b/{key}", content=key.encode()).status_code == 201
        return client

    def test_list_all(self, populated: TestClient) -> None:
        """Without parameters every file is listed."""
        body = populated.get("/b").json()
        assert body["count"] == 3
        assert body["bucket"]["name"] == "b"
        assert {f["key"] for f in body["files"]} == {"a/1", "a/2", "z"}
        assert all(f["bucket"]["name"] == "b" for f in body["files"])

    def test_prefix_and_sort(self, populated: TestClient) -> None:
        """prefix filters and sort orders the listing."""
        body = populated.get("/b", params={"prefix": "a/", "sort": "+key"}).json()
        assert [f["key"] for f in body["files"]] == ["a/1", "a/2"]

    def test_limit_with_descending_sort(self, populated: TestClient) -> None:
        """Sorting happens before truncation."""
        body = populated.get("/b", params={"limit": "1", "sort": "-key"}).json()
        assert body["count"] == 1
        assert [f["key"] for f in body["files"]] == ["z"]

    def test_limit_zero(self, populated: TestClient) -> None:
        """A zero limit lists nothing."""
        assert populated.get("/b", params={"limit": "0"}).json()["files"] == []

    @pytest.mark.parametrize("limit", ["-1", "abc", "1.5", "+1"])
    def test_invalid_limit(self, populated: TestClient, limit: str) -> None:
        """Malformed limits are 400 INVALID_PARAM."""
        _assert_error(populated.get("/b", params={"limit": limit}), 400, "INVALID_PARAM")

    @pytest.mark.parametrize("sort", ["+", "key", "+size"])
    def test_invalid_sort(self, populated: TestClient, sort: str) -> None:
        """Malformed sort tokens are 400 INVALID_PARAM."""
        _assert_error(populated.get("/b", params={"sort": sort}), 400, "INVALID_PARAM")

    def test_unknown_bucket(self, client: TestClient) -> None:
        """Unknown buckets are 404 even with invalid parameters."""
        _assert_error(client.get("/nope", params={"limit": "x"}), 404, "BUCKET_NOT_FOUND")

    def test_last_modified_round_trips(self, populated: TestClient) -> None:
        """Listing timestamps parse back to the same instant."""
        body = populated.get("/b", params={"sort": "+lastModified"}).json()
        stamps = [parse_timestamp(f["lastModified"]) for f in body["files"]]
        assert [format_timestamp(s) for s in stamps] == [f["lastModified"] for f in body["files"]]


class TestCrossCutting:
    """Tests for request IDs, CORS and failure handling."""

    def test_request_id_is_echoed(self, client: TestClient) -> None:
        """A caller-provided X-Request-Id is kept."""
        request_id = str(uuid.uuid4())
        response = client.get("/", headers={"X-Request-Id": request_id})
        assert response.headers["X-Request-Id"] == request_id

    def test_request_id_is_generated(self, client: TestClient) -> None:
        """Requests without an ID get one."""
        response = client.get("/b/missing")
        assert uuid.UUID(response.headers["X-Request-Id"])
        assert response.json()["request_id"] == response.headers["X-Request-Id"]

    def test_cors_headers_on_simple_request(self, client: TestClient) -> None:
        """Any origin may read responses."""
        response = client.get("/", headers={"Origin": "http://example.com"})
        assert response.headers["Access-Control-Allow-Origin"] == "*"

    def test_cors_preflight(self, client: TestClient) -> None:
        """Preflight requests advertise the allowed methods and headers."""
        response = client.options(
            "/b/k",
            headers={
                "Origin": "http://example.com",
                "Access-Control-Request-Method": "POST",
                "Access-Control-Request-Headers": "Content-Type",
            },
        )
        assert response.status_code == 200
        allowed = response.headers["Access-Control-Allow-Methods"]
        assert {m.strip() for m in allowed.split(",")} >= {"GET", "POST", "DELETE"}

    def test_plain_options(self, client: TestClient) -> None:
        """OPTIONS without preflight headers answers 200."""
        assert client.options("/b").status_code == 200

    def test_unsupported_method(self, client: TestClient) -> None:
        """Unknown methods get the error envelope."""
        _assert_error(client.put("/b/k", content=b"x"), 405, "METHOD_NOT_ALLOWED")

    def test_storage_failure_is_opaque_500(self, client: TestClient, service: BlobService) -> None:
        """Backend failures answer 500 without leaking details."""
        failure = StorageBackendError("disk full at /secret/path", operation="create")
        with patch.object(type(service.filesystem), "create", side_effect=failure):
            response = client.post("/b/k", content=b"x")
        body = _assert_error(response, 500, "STORAGE")
        assert "/secret/path" not in body["message"]

    def test_unexpected_exception_is_500(self, client: TestClient, service: BlobService) -> None:
        """Unhandled exceptions fail closed."""
        with patch.object(type(service.filesystem), "open", side_effect=RuntimeError("boom")):
            response = client.get("/b/k")
        assert response.status_code == 500
        assert response.json()["code"] == "INTERNAL_ERROR"

    def test_oversized_request_id_is_replaced(self, client: TestClient) -> None:
        """Unusable caller IDs are replaced by a generated one."""
        response = client.get("/", headers={"X-Request-Id": "x" * 500})
        assert uuid.UUID(response.headers["X-Request-Id"])

    def test_validation_errors_are_invalid_params(self) -> None:
        """Request validation failures share the INVALID_PARAM envelope."""
        request = Request({"type": "http", "method": "GET", "path": "/b", "headers": []})
        exc = RequestValidationError(
            [{"loc": ("query", "limit"), "msg": "not an int", "type": "int_parsing"}]
        )

        response = asyncio.run(request_validation_error_handler(request, exc))

        assert response.status_code == 400
        body = json.loads(response.body)
        assert body["code"] == "INVALID_PARAM"
        assert body["details"] == {"params": ["limit"]}
        assert body["request_id"] == response.headers["X-Request-Id"]
