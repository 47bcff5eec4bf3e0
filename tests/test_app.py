import importlib
import sys

import pytest
from fastapi.testclient import TestClient

from blobstore.core.exceptions import StorageError
from blobstore.hashing import content_address
from blobstore.storage import MemoryFileStore

TAR = "application/x-tar"


def _prepare_client(
    tmp_path,
    monkeypatch,
    *,
    storage_url=None,
    rate_limit="100",
    max_size=str(10 * 1024 * 1024),
    cache_age="120",
    api_keys="",
):
    db_path = tmp_path / "test.db"
    monkeypatch.setenv("STORAGE_URL", storage_url or f"sqlite:///{db_path}")
    monkeypatch.setenv("RATE_LIMIT_PER_MINUTE", rate_limit)
    monkeypatch.setenv("MAX_UPLOAD_BYTES", max_size)
    monkeypatch.setenv("CACHE_MAX_AGE_SECONDS", cache_age)
    monkeypatch.setenv("ACCEPTED_CONTENT_TYPES", TAR)
    monkeypatch.setenv("API_KEYS", api_keys)
    monkeypatch.setenv("REDIS_URL", "")

    # Reload modules so configuration changes take effect cleanly.
    module_order = [
        "blobstore.config",
        "blobstore.core.metrics",
        "blobstore.api.routes",
        "blobstore.main",
    ]

    for module_name in module_order:
        module = importlib.import_module(module_name)
        importlib.reload(module)

    main = sys.modules["blobstore.main"]
    return TestClient(main.app)


@pytest.fixture
def client(tmp_path, monkeypatch):
    test_client = _prepare_client(tmp_path, monkeypatch)
    with test_client as c:
        yield c


def _upload(client, data, content_type=TAR, **kwargs):
    headers = {"Content-Type": content_type}
    headers.update(kwargs.pop("headers", {}))
    return client.post("/files", content=data, headers=headers, **kwargs)


def test_upload_then_download(client):
    response = _upload(client, b"template archive")
    assert response.status_code == 201
    file_hash = response.json()["hash"]
    assert file_hash == content_address(b"template archive")

    served = client.get(f"/files/{file_hash}")
    assert served.status_code == 200
    assert served.content == b"template archive"
    assert served.headers["content-type"] == TAR
    assert served.headers["Cache-Control"] == "public, max-age=120, immutable"
    assert served.headers["ETag"] == f'"{file_hash}"'


def test_second_upload_reports_existing(client):
    first = _upload(client, b"same bytes")
    second = _upload(client, b"same bytes")

    assert first.status_code == 201
    assert second.status_code == 200
    assert first.json()["hash"] == second.json()["hash"]

    stats = client.get("/metrics").json()
    assert stats["stored_files"] == 1
    assert stats["uploads"] == 1
    assert stats["deduplicated"] == 1


def test_rejects_unsupported_content_type_without_storing(client):
    response = _upload(client, b"hello", content_type="text/plain")
    assert response.status_code == 415
    assert "unsupported content type: text/plain" in response.json()["detail"]

    stats = client.get("/metrics").json()
    assert stats["stored_files"] == 0
    assert stats["storage_bytes"] == 0


def test_rejects_missing_content_type(client):
    response = client.post("/files", content=b"hello")
    assert response.status_code == 415


def test_rejects_files_over_limit(tmp_path, monkeypatch):
    with _prepare_client(tmp_path, monkeypatch, max_size="1024") as c:
        response = _upload(c, b"x" * 2048)
        assert response.status_code == 413
        assert "File too large" in response.json()["detail"]
        assert c.get("/metrics").json()["stored_files"] == 0


def test_upload_at_limit_is_accepted(tmp_path, monkeypatch):
    with _prepare_client(tmp_path, monkeypatch, max_size="1024") as c:
        response = _upload(c, b"x" * 1024)
        assert response.status_code == 201


def test_unknown_hash_is_not_found(client):
    response = client.get(f"/files/{content_address(b'never stored')}")
    assert response.status_code == 404
    assert response.json()["detail"] == "no file exists with that hash"


def test_malformed_hash_is_bad_request(client):
    response = client.get("/files/not-a-hash")
    assert response.status_code == 400


def test_missing_hash_is_bad_request(client):
    response = client.get("/files/")
    assert response.status_code == 400
    assert response.json()["detail"] == "hash must be provided"


def test_upload_requires_api_key_when_configured(tmp_path, monkeypatch):
    with _prepare_client(tmp_path, monkeypatch, api_keys="secret:alice") as c:
        denied = _upload(c, b"payload")
        assert denied.status_code == 401
        assert "Invalid or missing API key" in denied.json()["detail"]

        wrong = _upload(c, b"payload", headers={"X-API-Key": "nope"})
        assert wrong.status_code == 401

        allowed = _upload(c, b"payload", headers={"X-API-Key": "secret"})
        assert allowed.status_code == 201

        main = sys.modules["blobstore.main"]
        stored = main.app.state.store.lookup(allowed.json()["hash"])
        assert stored.created_by == "alice"


def test_first_writer_metadata_is_kept(tmp_path, monkeypatch):
    with _prepare_client(tmp_path, monkeypatch, api_keys="k1:alice,k2:bob") as c:
        first = _upload(c, b"shared", headers={"X-API-Key": "k1"})
        second = _upload(c, b"shared", headers={"X-API-Key": "k2"})
        assert (first.status_code, second.status_code) == (201, 200)

        main = sys.modules["blobstore.main"]
        stored = main.app.state.store.lookup(first.json()["hash"])
        assert stored.created_by == "alice"


def test_rate_limit(tmp_path, monkeypatch):
    with _prepare_client(tmp_path, monkeypatch, rate_limit="2") as c:
        missing = content_address(b"rate")
        assert c.get(f"/files/{missing}").status_code == 404
        assert c.get(f"/files/{missing}").status_code == 404
        limited = c.get(f"/files/{missing}")
        assert limited.status_code == 429
        assert "Retry-After" in limited.headers


def test_healthz(client):
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_memory_backend_from_config(tmp_path, monkeypatch):
    with _prepare_client(tmp_path, monkeypatch, storage_url="memory://") as c:
        main = sys.modules["blobstore.main"]
        assert isinstance(main.app.state.store, MemoryFileStore)
        assert _upload(c, b"in memory").status_code == 201


class BrokenStore:
    def lookup(self, file_hash):
        raise StorageError("get file: backend unavailable")

    def insert_if_absent(self, file_hash, mimetype, creator, data):
        raise StorageError("insert file: backend unavailable")

    def totals(self):
        raise StorageError("count files: backend unavailable")

    def ping(self):
        return False


@pytest.fixture
def broken_client(tmp_path, monkeypatch):
    _prepare_client(tmp_path, monkeypatch, storage_url="memory://")
    main = sys.modules["blobstore.main"]
    with TestClient(main.create_app(store=BrokenStore())) as c:
        yield c


def test_backend_failure_on_upload_is_server_error(broken_client):
    response = _upload(broken_client, b"payload")
    assert response.status_code == 500
    assert response.json() == {"detail": "insert file: backend unavailable"}


def test_backend_failure_on_download_is_server_error(broken_client):
    response = broken_client.get(f"/files/{content_address(b'payload')}")
    assert response.status_code == 500
    assert response.json() == {"detail": "get file: backend unavailable"}


def test_healthz_reports_unavailable_backend(broken_client):
    response = broken_client.get("/healthz")
    assert response.status_code == 503
    assert response.json() == {"status": "unavailable"}


def test_declared_content_type_is_stored_verbatim(tmp_path, monkeypatch):
    with _prepare_client(tmp_path, monkeypatch) as c:
        response = _upload(c, b"mixed case", content_type="Application/X-Tar")
        assert response.status_code == 201

        served = c.get(f"/files/{response.json()['hash']}")
        assert served.headers["content-type"] == "Application/X-Tar"


def test_upload_response_reports_size(client):
    response = _upload(client, b"12345")
    assert response.json() == {"hash": content_address(b"12345"), "size": 5}


def test_empty_upload_is_stored_on_sql_backend(client):
    response = _upload(client, b"")
    assert response.status_code == 201

    main = sys.modules["blobstore.main"]
    stored = main.app.state.store.lookup(response.json()["hash"])
    assert stored is not None
    assert stored.data == b""
