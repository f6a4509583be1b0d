"""Tests for the HTTP routes."""

import pytest
from fastapi.testclient import TestClient

from system_agent.bootstrap import build_container
from system_agent.job_status import JobStatus
from system_agent.main import create_app


@pytest.fixture
def container(session_factory):
    return build_container(session_factory, concurrent_batches=1)


@pytest.fixture
def client(container):
    app = create_app(container=container, run_worker=False)
    with TestClient(app) as test_client:
        yield test_client


def _failed_job(container, reason="boom"):
    jobs = container.jobs
    job_id = jobs.create_job({"pipeline_id": "direct", "flow_id": "direct", "source": "system"})
    jobs.store_engine_data(job_id, {"task_type": "image_generation", "prediction_id": "p-1"})
    jobs.complete_job(job_id, JobStatus.failed(reason))
    return job_id


def test_health(client):
    """Test the health endpoint."""
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


def test_list_task_types(client):
    """Test registered task types are listed."""
    response = client.get("/tasks")

    assert response.json() == {"task_types": ["image_generation"]}


def test_schedule_task_and_run(client, container):
    """Test a task scheduled over HTTP runs on the next worker pass."""
    response = client.post("/tasks", json={"task_type": "image_generation", "params": {}})

    assert response.status_code == 200
    job_id = response.json()["job_id"]
    assert client.get(f"/jobs/{job_id}").json()["status"] == "processing"

    container.runner.run_pending()

    job = client.get(f"/jobs/{job_id}").json()
    assert job["base_status"] == "failed"
    assert job["reason"] == "Missing prediction_id in task parameters"


def test_schedule_unknown_task_type(client):
    """Test unknown types are a client error."""
    response = client.post("/tasks", json={"task_type": "nope"})

    assert response.status_code == 400
    assert client.get("/jobs").json() == []


def test_image_generation_requires_prompt(client):
    """Test a blank prompt is rejected."""
    response = client.post("/tasks/image-generation", json={"prompt": " "})

    assert response.status_code == 400
    assert response.json()["detail"] == "Image generation requires a prompt."


def test_get_missing_job(client):
    """Test unknown job ids are 404."""
    assert client.get("/jobs/999").status_code == 404


def test_list_and_summary(client, container):
    """Test listing by status and the summary counts."""
    failed = _failed_job(container, "first")
    _failed_job(container, "second")
    done = container.jobs.create_job({"pipeline_id": "direct", "flow_id": "direct", "source": "system"})
    container.jobs.complete_job(done, JobStatus.completed())

    listed = client.get("/jobs", params={"status": "failed"}).json()
    assert [j["job_id"] for j in listed] == [failed + 1, failed]
    assert listed[1]["reason"] == "first"

    summary = client.get("/jobs/summary").json()
    assert summary == {"summary": {"failed": 2, "completed": 1}, "total": 3}


def test_fail_job(client, container):
    """Test manual failure, then a conflict on the final job."""
    job_id = container.jobs.create_job({"pipeline_id": "direct", "flow_id": "direct", "source": "system"})
    container.jobs.start_job(job_id)

    response = client.post(f"/jobs/{job_id}/fail", json={"reason": "operator"})
    assert response.status_code == 200
    assert response.json()["status"] == "failed - operator"

    assert client.post(f"/jobs/{job_id}/fail", json={}).status_code == 409
    assert client.post("/jobs/999/fail", json={}).status_code == 404


def test_retry_job(client, container):
    """Test a failed job is retried as a new job."""
    job_id = _failed_job(container)

    response = client.post(f"/jobs/{job_id}/retry")

    assert response.status_code == 200
    body = response.json()
    assert body["task_type"] == "image_generation"
    new_job = client.get(f"/jobs/{body['job_id']}").json()
    assert new_job["engine_data"]["prediction_id"] == "p-1"
    assert new_job["engine_data"]["context"] == {"retry_of": job_id}


def test_retry_requires_failed_job(client, container):
    """Test retrying an active job conflicts."""
    job_id = container.jobs.create_job({"pipeline_id": "direct", "flow_id": "direct", "source": "system"})
    container.jobs.start_job(job_id)

    assert client.post(f"/jobs/{job_id}/retry").status_code == 409


def test_resume_job(client, container):
    """Test resuming a waiting job and rejecting an active one."""
    jobs = container.jobs
    job_id = jobs.create_job({"pipeline_id": "direct", "flow_id": "direct", "source": "system"})
    jobs.store_engine_data(job_id, {"task_type": "image_generation"})
    jobs.update_job_status(job_id, JobStatus.waiting("approval"))

    response = client.post(f"/jobs/{job_id}/resume")

    assert response.status_code == 200
    assert response.json()["status"] == "processing"
    assert client.post(f"/jobs/{job_id}/resume").status_code == 409


def test_recover_jobs(client, container):
    """Test recovery over HTTP."""
    jobs = container.jobs
    job_id = jobs.create_job({"pipeline_id": "direct", "flow_id": "direct", "source": "system"})
    jobs.store_engine_data(job_id, {"job_status": "completed"})
    jobs.start_job(job_id)

    response = client.post("/jobs/recover", json={"dry_run": False})

    assert response.status_code == 200
    assert response.json()["recovered"] == 1
    assert client.get(f"/jobs/{job_id}").json()["status"] == "completed"


def test_delete_jobs(client, container):
    """Test deleting failed jobs and rejecting a bad type."""
    _failed_job(container)

    assert client.delete("/jobs", params={"type": "bogus"}).status_code == 400

    response = client.delete("/jobs", params={"type": "failed"})
    assert response.status_code == 200
    assert response.json()["deleted_count"] == 1
