import asyncio

import pytest
from fastapi.testclient import TestClient

from backend import config
from backend.app import app
from backend.jobs import JobManager, JobStatus
from citytiles.builder import CityModelBuilder

from conftest import BASE_QUERY, FakeGeodetic, FakeSession, building, make_response, page


def _manager(replies):
    sessions = []

    def factory():
        session = FakeSession(replies)
        sessions.append(session)
        return CityModelBuilder(geodetic=FakeGeodetic(), session=session,
                                base_query=BASE_QUERY, page_delay=0, use_cache=False)
    return JobManager(builder_factory=factory), sessions


def test_job_completes_with_model_url(output_dir):
    manager, _ = _manager([make_response(BASE_QUERY, body=page([building("b1"), building("b2", 2)]))])
    job = manager.create_job()

    asyncio.run(manager.run_build(job, 52.37, 4.90, half_width=50))

    assert job.status is JobStatus.completed
    assert job.progress == 100.0
    assert job.result["city_objects"] == 2
    assert job.result["vertices"] == 16
    assert job.result["model_url"].startswith("/output/city-52.37000-4.90000-50m")


def test_cancelled_job_stops_before_fetching(output_dir):
    manager, sessions = _manager([make_response(BASE_QUERY, body=page([building("b1")]))])
    job = manager.create_job()
    manager.cancel_job(job.id)

    asyncio.run(manager.run_build(job, 52.37, 4.90, half_width=50))

    assert job.status is JobStatus.cancelled
    assert sessions[0].calls == []


def test_failed_page_marks_job_failed(output_dir):
    manager, _ = _manager([make_response(BASE_QUERY, status=500, body={})])
    job = manager.create_job()

    asyncio.run(manager.run_build(job, 52.37, 4.90, half_width=50))

    assert job.status is JobStatus.failed
    assert "HTTP 500" in job.message
    assert job.result is None


@pytest.fixture
def client():
    return TestClient(app)


def test_unknown_job_is_404(client):
    assert client.get("/api/build/status/nope").status_code == 404
    assert client.post("/api/build/cancel/nope").status_code == 404


def test_build_request_validates_coordinates(client):
    response = client.post("/api/build", json={"latitude": 95.0, "longitude": 4.9})
    assert response.status_code == 422


def test_convert_rejects_invalid_coordinate(client):
    response = client.get("/api/convert", params={"latitude": 52.0, "longitude": 190.0})
    assert response.status_code == 422


def test_models_lists_json_outputs(client, tmp_path, monkeypatch):
    monkeypatch.setattr(config, "OUTPUT_DIR", tmp_path)
    (tmp_path / "city-amsterdam.json").write_text("{}")
    (tmp_path / "notes.txt").write_text("skip")

    listing = client.get("/api/models").json()

    assert [m["filename"] for m in listing] == ["city-amsterdam.json"]
    assert client.get("/api/models/city-amsterdam.json").status_code == 200
    assert client.get("/api/models/missing.json").status_code == 404
