from unittest.mock import MagicMock

from fastapi.testclient import TestClient

from storage_archiver.common.errors import ConfigurationError
from storage_archiver.main import create_app


def test_api_key_required_when_enabled(monkeypatch):
    monkeypatch.setenv("API_KEY_ENABLED", "true")
    monkeypatch.setenv("API_KEY", "secret-123")

    archiver = MagicMock()
    archiver.archive.side_effect = ConfigurationError("URI cannot be empty")
    client = TestClient(create_app(archiver=archiver))
    payload = {"source_uri": "s3://src/data/", "target_uri": "s3://dst/a.zip"}

    # Missing key -> 401
    r = client.post("/api/v1/archives", json=payload)
    assert r.status_code == 401
    assert r.json()["error_code"] == "unauthorized"

    # Wrong key -> 401
    r = client.post("/api/v1/archives", json=payload, headers={"X-API-Key": "wrong"})
    assert r.status_code == 401
    archiver.archive.assert_not_called()

    # Correct key reaches the archiver
    r = client.post(
        "/api/v1/archives", json=payload, headers={"X-API-Key": "secret-123"}
    )
    assert r.status_code == 400
    archiver.archive.assert_called_once()


def test_health_is_public(monkeypatch):
    monkeypatch.setenv("API_KEY_ENABLED", "true")
    monkeypatch.setenv("API_KEY", "secret-123")
    client = TestClient(create_app(archiver=MagicMock()))
    assert client.get("/health").status_code == 200
