"""
Route tests: the app is exercised with fake services placed on app.state,
so no database, AI gateway or worker threads are involved.
"""
import time

import jwt
import pytest
from fastapi.testclient import TestClient

from app.config import Capabilities
from app.rate_limit import limiter
from app.services import Services
from main import app
from pipeline.errors import NetworkError, UnexpectedError
from pipeline.framework import PipelineResult
from pipeline.ingestion import JobIngestionOutput
from pipeline.models import Job, JobApplication, JobStreamEntry
from security.auth import AuthError, JwtVerifier

JWT_SECRET = "route-secret-with-at-least-32-bytes"
API_KEY = "cron-key"


class FakeIngestionPipeline:
    def __init__(self, result=None):
        self.inputs = []
        self.result = result

    def run(self, input, profile_id):
        self.inputs.append((input, profile_id))
        return self.result


class FakeWorkflow:
    def __init__(self, name):
        self.name = name
        self.messages = []

    def send(self, message):
        self.messages.append(message)
        return message.run_id


def success_result(application=None):
    output = JobIngestionOutput(
        job=Job(job_id=5, title="Platform Engineer"),
        stream_entry=JobStreamEntry(stream_id=6, job_id=5, profile_id="user-1", source="manual"),
        application=application,
    )
    return PipelineResult.success("run-1", output, 12)


@pytest.fixture
def services():
    limiter.reset()
    services = Services(
        ingestion_pipeline=FakeIngestionPipeline(success_result()),
        status_workflow=FakeWorkflow("JobStatusWorkflow"),
        discovery_workflow=FakeWorkflow("JobDiscoveryWorkflow"),
        jwt_verifier=JwtVerifier(secret=JWT_SECRET),
        api_keys=[API_KEY],
    )
    app.state.services = services
    return services


@pytest.fixture
def client(services):
    # No context manager: the lifespan (real service wiring) must not run
    return TestClient(app)


def auth_header(sub="user-1"):
    token = jwt.encode({"sub": sub, "exp": time.time() + 3600}, JWT_SECRET, algorithm="HS256")
    return {"Authorization": f"Bearer {token}"}


class TestIngestRoute:
    def test_requires_token(self, client):
        response = client.post("/api/v1/jobs/ingest", json={"url": "https://acme.com/jobs/1"})
        assert response.status_code == 401
        assert response.json() == {"error": "Missing Authorization header"}

    def test_rejects_bad_token(self, client):
        response = client.post(
            "/api/v1/jobs/ingest",
            json={"url": "https://acme.com/jobs/1"},
            headers={"Authorization": "Bearer a.b.c"},
        )
        assert response.status_code == 401
        assert response.json()["error"].startswith("Invalid token:")

    def test_key_source_unavailable(self, client, services):
        class OfflineVerifier:
            def verify(self, token):
                raise AuthError("Authentication service unavailable: timed out", status_code=503)

        services.jwt_verifier = OfflineVerifier()
        response = client.post("/api/v1/jobs/ingest", json={"url": "https://acme.com/jobs/1"}, headers=auth_header())

        assert response.status_code == 503
        assert response.json() == {"error": "Authentication service unavailable: timed out"}
        assert services.ingestion_pipeline.inputs == []

    def test_success(self, client, services):
        response = client.post(
            "/api/v1/jobs/ingest",
            json={"url": "https://acme.com/jobs/1", "source": "extension", "createApplication": True, "notes": "hi"},
            headers=auth_header(),
        )

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "jobId": 5,
            "streamId": 6,
            "applicationId": None,
            "message": "Successfully ingested job: Platform Engineer",
        }
        input, profile_id = services.ingestion_pipeline.inputs[0]
        assert profile_id == "user-1"
        assert input.profile_id == "user-1"
        assert input.source == "extension"
        assert input.create_application is True
        assert input.notes == "hi"

    def test_reports_application_id(self, client, services):
        services.ingestion_pipeline.result = success_result(
            JobApplication(application_id=8, job_id=5, profile_id="user-1")
        )
        response = client.post("/api/v1/jobs/ingest", json={"url": "https://acme.com/jobs/1"}, headers=auth_header())
        assert response.json()["applicationId"] == 8

    def test_pipeline_failure(self, client, services):
        services.ingestion_pipeline.result = PipelineResult.failure(
            "run-1", NetworkError(message="HTTP 404 when fetching https://acme.com/jobs/1", step_name="HtmlFetcher"), 3
        )

        response = client.post("/api/v1/jobs/ingest", json={"url": "https://acme.com/jobs/1"}, headers=auth_header())

        assert response.status_code == 500
        assert response.json() == {
            "success": False,
            "error": "HTTP 404 when fetching https://acme.com/jobs/1",
            "details": None,
        }

    def test_failure_details_from_cause(self, client, services):
        services.ingestion_pipeline.result = PipelineResult.failure(
            "run-1",
            UnexpectedError(message="Unexpected error in step X: boom", step_name="X", cause=RuntimeError("boom")),
            3,
        )

        response = client.post("/api/v1/jobs/ingest", json={"url": "https://acme.com/jobs/1"}, headers=auth_header())

        assert response.json()["details"] == "boom"

    def test_missing_url_is_unprocessable(self, client):
        response = client.post("/api/v1/jobs/ingest", json={}, headers=auth_header())
        assert response.status_code == 422


class TestCronRoutes:
    def test_requires_api_key(self, client, services):
        response = client.post("/api/v1/cron/job-status-check")
        assert response.status_code == 401
        assert response.json() == {"accepted": False, "error": "Missing X-API-Key header"}
        assert services.status_workflow.messages == []

    def test_rejects_unknown_key(self, client):
        response = client.post("/api/v1/cron/job-discovery", headers={"X-API-Key": "wrong"})
        assert response.status_code == 401
        assert response.json()["error"] == "Invalid API key"

    def test_rejects_non_ascii_key(self, client, services):
        response = client.post("/api/v1/cron/job-discovery", headers={"X-API-Key": "cl\u00e9".encode("latin-1")})

        assert response.status_code == 401
        assert response.json() == {"accepted": False, "error": "Invalid API key"}
        assert services.discovery_workflow.messages == []

    def test_status_check_defaults(self, client, services):
        response = client.post("/api/v1/cron/job-status-check", headers={"X-API-Key": API_KEY})

        assert response.status_code == 202
        message = services.status_workflow.messages[0]
        assert message.input.batch_size == 100
        assert message.input.older_than_days == 7
        assert message.profile_id == "system"
        body = response.json()
        assert body["accepted"] is True
        assert body["runId"] == message.run_id
        assert body["workflow"] == "JobStatusWorkflow"
        assert body["message"] == "Job status check workflow started with batchSize=100, olderThanDays=7"

    def test_status_check_with_body(self, client, services):
        response = client.post(
            "/api/v1/cron/job-status-check",
            json={"batchSize": 25, "olderThanDays": 0},
            headers={"X-API-Key": API_KEY},
        )

        assert response.status_code == 202
        assert services.status_workflow.messages[0].input.batch_size == 25
        assert services.status_workflow.messages[0].input.older_than_days == 0

    @pytest.mark.parametrize("payload", [{"batchSize": 0}, {"olderThanDays": -1}, {"batchSize": "many"}])
    def test_status_check_invalid_body(self, client, services, payload):
        response = client.post("/api/v1/cron/job-status-check", json=payload, headers={"X-API-Key": API_KEY})

        assert response.status_code == 400
        assert response.json()["accepted"] is False
        assert response.json()["error"].startswith("Invalid request body:")
        assert services.status_workflow.messages == []

    def test_malformed_json(self, client):
        response = client.post(
            "/api/v1/cron/job-discovery",
            content=b"{not json",
            headers={"X-API-Key": API_KEY, "Content-Type": "application/json"},
        )
        assert response.status_code == 400

    def test_body_not_utf8(self, client, services):
        response = client.post(
            "/api/v1/cron/job-discovery",
            content=b'{"sourceId": "\xff"}',
            headers={"X-API-Key": API_KEY, "Content-Type": "application/json"},
        )

        assert response.status_code == 400
        assert response.json()["error"].startswith("Invalid request body:")
        assert services.discovery_workflow.messages == []

    def test_discovery_all_sources(self, client, services):
        response = client.post("/api/v1/cron/job-discovery", headers={"X-API-Key": API_KEY})

        assert response.status_code == 202
        assert services.discovery_workflow.messages[0].input.source_id is None
        assert response.json()["message"] == "Job discovery workflow started for all sources"

    def test_discovery_single_source(self, client, services):
        response = client.post(
            "/api/v1/cron/job-discovery", json={"sourceId": "greenhouse"}, headers={"X-API-Key": API_KEY}
        )

        assert services.discovery_workflow.messages[0].input.source_id == "greenhouse"
        assert response.json()["workflow"] == "JobDiscoveryWorkflow"
        assert response.json()["message"] == "Job discovery workflow started for greenhouse"


class TestHealthRoutes:
    def test_healthz(self, client, monkeypatch):
        monkeypatch.setattr(Capabilities, "check_db_connection", staticmethod(lambda: False))
        response = client.get("/api/healthz")
        assert response.status_code == 200
        assert response.json()["status"] == "amber"
        assert set(response.json()["components"]) == {"db", "ai", "storage"}

    def test_env_presence_dev_only(self, client, monkeypatch):
        monkeypatch.delenv("ARCATA_ENV", raising=False)
        assert client.get("/admin/config/env").status_code == 403

        monkeypatch.setenv("ARCATA_ENV", "dev")
        response = client.get("/admin/config/env")
        assert response.status_code == 200
        assert "SUPABASE_JWT_SECRET" in response.json()
