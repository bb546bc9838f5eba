import asyncio

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from config import settings
from conftest import FakeBrowser
from database import init_db, record_outcome
from routers import captures, jobs
from services.scheduler import ScreenshotScheduler

JOBS = [
    {"name": "kitchen", "path": "/lovelace/0", "viewport": {"width": 320, "height": 240}, "interval": 60},
    {"name": "broken", "path": "/broken", "viewport": {"width": 320, "height": 240}, "interval": 60, "eink": 2, "format": "bmp"},
]


@pytest.fixture
def test_db(tmp_path):
    original = settings.db_path
    settings.db_path = str(tmp_path / "test.db")
    asyncio.run(init_db())
    yield settings.db_path
    settings.db_path = original


@pytest.fixture
def scheduler(file_store, test_db):
    s = ScreenshotScheduler(
        FakeBrowser(failing_paths={"/broken"}),
        file_store,
        outcome_recorder=record_outcome,
    )
    s.configure(JOBS)
    return s


@pytest.fixture
def client(scheduler):
    app = FastAPI()
    app.include_router(jobs.router, prefix="/api")
    app.include_router(captures.router, prefix="/api")
    app.state.scheduler = scheduler
    return TestClient(app)


class TestJobs:
    def test_list_jobs(self, client):
        r = client.get("/api/jobs")
        assert r.status_code == 200
        data = r.json()
        assert [j["job"]["name"] for j in data] == ["kitchen", "broken"]
        assert data[1]["job"]["eink"] == 2
        assert data[0]["last_outcome"] is None

    def test_capture_now(self, client, file_store):
        r = client.post("/api/jobs/kitchen/capture")
        assert r.status_code == 200
        data = r.json()
        assert data["success"] is True
        assert data["url"] == "/local/screenshots/kitchen/latest.png"
        assert (file_store.base_path / "kitchen" / "latest.png").exists()

        r = client.get("/api/jobs")
        assert r.json()[0]["last_outcome"]["success"] is True

    def test_capture_failure(self, client):
        r = client.post("/api/jobs/broken/capture")
        assert r.status_code == 502
        assert "404" in r.json()["detail"]

    def test_unknown_job(self, client):
        r = client.post("/api/jobs/nope/capture")
        assert r.status_code == 404

    def test_no_scheduler(self):
        app = FastAPI()
        app.include_router(jobs.router, prefix="/api")
        r = TestClient(app).get("/api/jobs")
        assert r.status_code == 503


class TestCaptures:
    def test_history(self, client):
        client.post("/api/jobs/kitchen/capture")
        client.post("/api/jobs/broken/capture")

        r = client.get("/api/captures")
        assert r.status_code == 200
        data = r.json()
        assert [c["job_name"] for c in data] == ["broken", "kitchen"]
        assert data[0]["success"] is False
        assert data[1]["success"] is True

    def test_history_filtered_by_job(self, client):
        client.post("/api/jobs/kitchen/capture")
        client.post("/api/jobs/broken/capture")

        r = client.get("/api/captures", params={"job": "kitchen"})
        assert [c["job_name"] for c in r.json()] == ["kitchen"]

    def test_limit_bounds(self, client):
        assert client.get("/api/captures", params={"limit": 0}).status_code == 422
