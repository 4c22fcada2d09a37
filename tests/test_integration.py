from http import HTTPStatus
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from monitor_queue.autoscaler.controller import JobQueue
from monitor_queue.job_queue.exceptions import BrokerConnectionError
from monitor_queue.main import create_app
from monitor_queue.persistence.repository import InMemoryCheckRepository


@pytest.fixture
def app(config, broker, worker_factory):
    job_queue = JobQueue(config, broker=broker, worker_factory=worker_factory)
    return create_app(config, InMemoryCheckRepository(), job_queue)


@pytest.fixture
def test_client(app):
    with TestClient(app) as client:
        yield client


def job_body(name: str, **overrides):
    body = {
        "name": name,
        "payload": {"monitor_id": name, "url": "https://example.com"},
        "repeat_every_ms": 60000,
        "repeat_limit": 10,
    }
    body.update(overrides)
    return body


def test_health_reports_bootstrapped_pool(test_client):
    response = test_client.get("/health")

    assert response.status_code == HTTPStatus.OK
    assert response.json() == {"status": "ok", "workers": 1}


def test_check_lifecycle(test_client):
    response = test_client.post(
        "/api/v1/checks/monitor-1",
        json={"status": True, "status_code": 200, "response_time": 120.5, "message": "OK"},
    )
    assert response.status_code == HTTPStatus.OK
    body = response.json()
    assert body["success"] is True
    assert body["msg"] == "Check created"
    assert body["data"]["monitor_id"] == "monitor-1"

    response = test_client.get("/api/v1/checks/monitor-1")
    assert response.json()["msg"] == "Checks retrieved"
    assert len(response.json()["data"]) == 1

    response = test_client.delete("/api/v1/checks/monitor-1")
    assert response.json()["data"] == {"deletedCount": 1}

    response = test_client.get("/api/v1/checks/monitor-1")
    assert response.json()["data"] == []


def test_check_validation_envelope(test_client):
    """Only the first validation error is reported, tagged with the service"""
    response = test_client.post("/api/v1/checks/monitor-1", json={"status": True})

    assert response.status_code == HTTPStatus.UNPROCESSABLE_ENTITY
    body = response.json()
    assert body["success"] is False
    assert body["service"] == "check"
    assert body["msg"].startswith("response_time")


def test_invalid_monitor_id(test_client):
    response = test_client.get("/api/v1/checks/bad.id")

    assert response.status_code == HTTPStatus.UNPROCESSABLE_ENTITY
    assert response.json()["service"] == "check"
    assert "monitorId" in response.json()["msg"]


def test_submit_job(test_client):
    response = test_client.post("/api/v1/jobs", json=job_body("monitor-1"))

    assert response.status_code == HTTPStatus.OK
    body = response.json()
    assert body["msg"] == "Job added"
    assert body["data"]["key"] == "monitor-1:60000"
    assert body["data"]["payload"]["method"] == "GET"
    assert body["data"]["limit"] == 10


def test_submissions_scale_worker_pool(test_client):
    for i in range(12):
        response = test_client.post("/api/v1/jobs", json=job_body(f"monitor-{i}"))
        assert response.status_code == HTTPStatus.OK

    assert test_client.get("/health").json()["workers"] == 3

    stats = test_client.get("/api/v1/jobs/stats").json()["data"]
    assert stats["pool_size"] == 3
    assert stats["pending_jobs"] == 12
    assert stats["jobs_per_worker"] == 5


def test_invalid_job_rejected(test_client):
    body = job_body("monitor-1")
    body["payload"]["url"] = "ftp://example.com"

    response = test_client.post("/api/v1/jobs", json=body)

    assert response.status_code == HTTPStatus.UNPROCESSABLE_ENTITY
    assert response.json()["service"] == "job"
    assert "url" in response.json()["msg"]


def test_list_and_purge_jobs(test_client):
    for i in range(3):
        test_client.post("/api/v1/jobs", json=job_body(f"monitor-{i}"))

    response = test_client.get("/api/v1/jobs")
    assert response.json()["msg"] == "Jobs retrieved"
    assert len(response.json()["data"]) == 3

    response = test_client.delete("/api/v1/jobs")
    assert response.json()["msg"] == "Queue purged"
    assert response.json()["data"] == {"purged": True}

    assert test_client.get("/api/v1/jobs").json()["data"] == []
    # Workers are left running after a purge
    assert test_client.get("/health").json()["workers"] == 1


def test_broker_outage_maps_to_503(app, test_client):
    with patch.object(
        app.state.job_queue,
        "submit_job",
        AsyncMock(side_effect=BrokerConnectionError("Broker is not connected")),
    ):
        response = test_client.post("/api/v1/jobs", json=job_body("monitor-1"))

    assert response.status_code == HTTPStatus.SERVICE_UNAVAILABLE
    assert response.json() == {
        "success": False,
        "msg": "Broker is not connected",
        "service": "job",
    }


def test_metrics_endpoint(test_client):
    response = test_client.get("/metrics/")

    assert response.status_code == HTTPStatus.OK
    assert "monitor_queue_worker_pool_size" in response.text


def test_shutdown_closes_workers(app, worker_factory):
    with TestClient(app):
        pass

    assert app.state.job_queue.pool_size == 0
    assert all(w.closed for w in worker_factory.created)
