import pytest
from fastapi.testclient import TestClient

from estate_scraper.api import runs
from estate_scraper.main import app


class FakeJob:
    def __init__(self, job_id, status="queued", result=None):
        self.id = job_id
        self._status = status
        self._result = result

    def get_status(self):
        return self._status

    def return_value(self):
        return self._result


class FakeQueue:
    def __init__(self):
        self.jobs = {}

    def enqueue(self, func, *args, **kwargs):
        job = FakeJob(f"job-{len(self.jobs) + 1}")
        self.jobs[job.id] = job
        return job

    def fetch_job(self, job_id):
        return self.jobs.get(job_id)


@pytest.fixture
def queue():
    fake = FakeQueue()
    app.dependency_overrides[runs.get_queue] = lambda: fake
    yield fake
    app.dependency_overrides.clear()


@pytest.fixture
def client():
    return TestClient(app)


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_create_run_enqueues_job(client, queue):
    response = client.post("/v1/runs", json={"location": "London", "resultsWanted": 5})

    assert response.status_code == 202
    assert response.json() == {"enqueued": True, "job_id": "job-1"}
    assert "job-1" in queue.jobs


def test_create_run_requires_location_or_start_url(client, queue):
    response = client.post("/v1/runs", json={"resultsWanted": 5})

    assert response.status_code == 422
    assert queue.jobs == {}


def test_get_unknown_run(client, queue):
    response = client.get("/v1/runs/missing")

    assert response.status_code == 404


def test_get_finished_run_includes_result(client, queue):
    queue.jobs["job-9"] = FakeJob("job-9", status="finished", result={"run_id": "job-9", "saved": 3})

    response = client.get("/v1/runs/job-9")

    assert response.status_code == 200
    assert response.json() == {"job_id": "job-9", "status": "finished", "result": {"run_id": "job-9", "saved": 3}}


def test_get_pending_run_has_no_result(client, queue):
    queue.jobs["job-3"] = FakeJob("job-3", status="started", result={"ignored": True})

    response = client.get("/v1/runs/job-3")

    assert response.json() == {"job_id": "job-3", "status": "started", "result": None}
