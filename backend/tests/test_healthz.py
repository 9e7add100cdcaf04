from __future__ import annotations

from typing import Iterator

import pytest
from fastapi.testclient import TestClient

from cadence.config import get_settings
from cadence.main import app


@pytest.fixture
def client(monkeypatch) -> Iterator[TestClient]:
    monkeypatch.setenv("CADENCE_DATABASE_URL", "sqlite://")
    monkeypatch.setenv("CADENCE_PERSISTENCE_MODE", "memory")
    get_settings.cache_clear()
    with TestClient(app) as test_client:
        yield test_client
    get_settings.cache_clear()


def test_health_reports_engine_ready(client: TestClient) -> None:
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "engine_ready": True}


def test_database_health_endpoint_success(client: TestClient) -> None:
    response = client.get("/healthz/database")
    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "ok"
    assert "pool" in payload
    assert payload["persistence_mode"] == "memory"


def test_database_health_endpoint_failure(client: TestClient, monkeypatch) -> None:
    def raise_runtime_error():
        raise RuntimeError("missing database url")

    monkeypatch.setattr("cadence.main.get_engine", raise_runtime_error)
    response = client.get("/healthz/database")
    assert response.status_code == 503
    assert response.json()["detail"] == "missing database url"
