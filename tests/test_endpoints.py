"""Tests for the log ingestion and log viewer endpoints."""

from datetime import datetime

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from shared_logging.endpoints import router
from tests.helpers import insert_log


@pytest.fixture
def client(logger, monkeypatch):
    monkeypatch.delenv("API_BEARER_TOKEN", raising=False)
    app = FastAPI()
    app.state.logging_module = logger
    app.include_router(router)
    return TestClient(app)


class TestIngest:

    def test_records_entry(self, client, storage):
        response = client.post("/api/logs", json={
            "level": "ERROR",
            "context": "billing",
            "message": "card declined",
            "agency_id": 12,
            "data": {"attempt": 2},
        })

        assert response.status_code == 201
        assert response.json()["status"] == "success"

        rows, total = client.app.state.logging_module.query({"level": "ERROR"})
        assert total == 1
        assert rows[0]["message"] == "card declined"
        assert rows[0]["agency_id"] == 12
        assert rows[0]["data"] == '{"attempt": 2}'

    def test_requires_message_sql_or_url(self, client):
        response = client.post("/api/logs", json={"level": "INFO", "context": "billing"})

        assert response.status_code == 400

    def test_rejects_unknown_level(self, client):
        response = client.post("/api/logs", json={"level": "LOUD", "context": "c", "message": "m"})

        assert response.status_code == 422


class TestQuery:

    def test_filters_and_paginates(self, client, storage):
        for day in (1, 15, 31):
            insert_log(storage, level="ERROR", timestamp=datetime(2024, 1, day, 10))
        insert_log(storage, level="INFO", timestamp=datetime(2024, 1, 20, 10))

        response = client.get("/api/logs", params={
            "level": "error",
            "start_date": "2024-01-01",
            "end_date": "2024-01-31",
            "limit": 2,
        })

        assert response.status_code == 200
        body = response.json()
        assert body["count"] == 2
        assert body["total"] == 3
        assert body["logs"][0]["timestamp"].startswith("2024-01-31")
        assert body["query"]["level"] == "ERROR"

    def test_bad_date_is_rejected(self, client):
        response = client.get("/api/logs", params={"start_date": "last tuesday"})

        assert response.status_code == 400

    def test_sort_outside_allow_list_is_rejected(self, client):
        response = client.get("/api/logs", params={"sort": "message"})

        assert response.status_code == 422


class TestAuthentication:

    def test_missing_token_is_rejected(self, client, monkeypatch):
        monkeypatch.setenv("API_BEARER_TOKEN", "s3cret")

        assert client.get("/api/logs").status_code == 401

    def test_wrong_token_is_rejected(self, client, monkeypatch):
        monkeypatch.setenv("API_BEARER_TOKEN", "s3cret")

        response = client.get("/api/logs", headers={"Authorization": "Bearer nope"})

        assert response.status_code == 401

    def test_valid_token_is_accepted(self, client, monkeypatch):
        monkeypatch.setenv("API_BEARER_TOKEN", "s3cret")

        response = client.get("/api/logs", headers={"Authorization": "Bearer s3cret"})

        assert response.status_code == 200
