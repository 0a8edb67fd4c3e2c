"""Tests for the marking API endpoints."""

import pytest
from fastapi.testclient import TestClient

from app.config import Settings
from app.main import app
from app.middleware.rate_limit import get_limiter
from app.routers.marking import get_remote_engine
from app.services.rubric_engine import RubricEngine
from app.utils.errors import RateLimitedError, SUGGEST_CHECK_CONFIGURATION
from app.utils.retry import RetryPolicy, RetryScheduler


SUBMISSION = (
    "Question 1: What is an operating system?\n"
    "An operating system manages hardware and software resources because programs need "
    "memory and CPU time. For example, Windows and Linux schedule processes.\n\n"
    "Question 2: Define a network.\n"
    "A network connects computers.\n"
)


@pytest.fixture(autouse=True)
def reset_rate_limiter() -> None:
    get_limiter().reset()


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


@pytest.fixture
def remote_engine(settings, fake_client, fake_sleep):
    """Install a remote engine backed by the fake completion client."""
    engine = RubricEngine(client=fake_client, settings=settings, sleep=fake_sleep)
    app.dependency_overrides[get_remote_engine] = lambda: engine
    yield engine
    app.dependency_overrides.clear()


# =============================================================================
# LOCAL MARKING
# =============================================================================

class TestMarkLocal:
    """Test POST /api/mark/local."""

    def test_local_marking(self, client):
        response = client.post(
            "/api/mark/local",
            json={"document_content": SUBMISSION, "student_name": "Jane Doe", "assignment_title": "OS Quiz"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["marking_result"].startswith("### Final Assessment Report")
        assert data["method"] == "Improved Local Analysis (Zero AI tokens used)"
        assert data["total_questions"] == 2
        assert [q["id"] for q in data["question_analysis"]] == ["Q1", "Q2"]
        assert data["rubric_analysis"]["kind"] == "criterion"
        assert 0 <= data["total_marks"] <= data["total_available"]
        assert data["tokens_saved"] > 2000
        assert response.headers["X-Marking-Method"] == "local"
        assert response.headers["X-Marking-Percentage"] == str(data["percentage"])

    def test_local_marking_without_units(self, client):
        response = client.post(
            "/api/mark/local",
            json={"document_content": "ok", "student_name": "Jane Doe", "assignment_title": "OS Quiz"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["percentage"] is None
        assert data["grade"] == "N/A"
        assert "X-Marking-Percentage" not in response.headers

    def test_missing_field_is_rejected(self, client):
        response = client.post("/api/mark/local", json={"document_content": SUBMISSION})
        assert response.status_code == 422

    def test_empty_content_is_rejected(self, client):
        response = client.post(
            "/api/mark/local",
            json={"document_content": "  ", "student_name": "Jane Doe", "assignment_title": "OS Quiz"},
        )

        assert response.status_code == 400
        assert "document_content" in response.json()["detail"]


# =============================================================================
# REMOTE MARKING
# =============================================================================

class TestMarkRemote:
    """Test POST /api/mark/remote."""

    def test_remote_marking(self, client, remote_engine, fake_client):
        response = client.post(
            "/api/mark/remote",
            json={
                "prompt": "Mark each question",
                "document_content": SUBMISSION,
                "assessment_type": "assessment",
                "student_name": "Jane Doe",
            },
        )

        assert response.status_code == 200
        assert response.json() == {
            "marking_result": "Total: 7/10 (70%)",
            "total_marks": 7.0,
            "percentage": 70,
            "method": "Remote AI Marking",
        }
        assert response.headers["X-Marking-Method"] == "remote"
        assert response.headers["X-Marking-Percentage"] == "70"
        assert "Student: Jane Doe" in fake_client.calls[0]["user_prompt"]

    def test_invalid_assessment_type(self, client, remote_engine):
        response = client.post(
            "/api/mark/remote",
            json={"prompt": "Mark", "document_content": SUBMISSION, "assessment_type": "exam"},
        )
        assert response.status_code == 422

    def test_blank_prompt(self, client, remote_engine):
        response = client.post(
            "/api/mark/remote",
            json={"prompt": "", "document_content": SUBMISSION, "assessment_type": "project"},
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "Missing required field: prompt"

    def test_document_too_large(self, client, fake_client, fake_sleep):
        settings = Settings(_env_file=None, max_request_tokens=400, max_chunks_per_document=1)
        engine = RubricEngine(client=fake_client, settings=settings, sleep=fake_sleep)
        app.dependency_overrides[get_remote_engine] = lambda: engine
        try:
            response = client.post(
                "/api/mark/remote",
                json={"prompt": "Mark", "document_content": SUBMISSION * 20, "assessment_type": "assessment"},
            )
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 413
        assert "Maximum recommended chunks: 1" in response.json()["detail"]
        assert fake_client.calls == []

    def test_persistent_rate_limit(self, client, settings, make_client, fake_sleep):
        scheduler = RetryScheduler(policy=RetryPolicy(max_retries=1), sleep=fake_sleep)
        engine = RubricEngine(
            client=make_client(RateLimitedError("Rate limit exceeded")),
            settings=settings,
            scheduler=scheduler,
        )
        app.dependency_overrides[get_remote_engine] = lambda: engine
        try:
            response = client.post(
                "/api/mark/remote",
                json={"prompt": "Mark", "document_content": SUBMISSION, "assessment_type": "assessment"},
            )
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 429
        assert response.json()["detail"] == "Rate limit exceeded"

    def test_unclassified_client_failure(self, client, settings, make_client, fake_sleep):
        scheduler = RetryScheduler(policy=RetryPolicy(max_retries=0), sleep=fake_sleep)
        engine = RubricEngine(
            client=make_client(PermissionError("API key not valid. Please pass a valid API key.")),
            settings=settings,
            scheduler=scheduler,
        )
        app.dependency_overrides[get_remote_engine] = lambda: engine
        try:
            response = client.post(
                "/api/mark/remote",
                json={"prompt": "Mark", "document_content": SUBMISSION, "assessment_type": "assessment"},
            )
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 502
        assert response.json() == {
            "detail": "API key not valid. Please pass a valid API key.",
            "suggestion": SUGGEST_CHECK_CONFIGURATION,
        }


# =============================================================================
# PLANNING AND PROFILING
# =============================================================================

def test_batch_plan(client):
    response = client.post("/api/batch/plan", json={"documents": ["short answer"] * 12})

    assert response.status_code == 200
    data = response.json()
    assert data["plan"]["recommended_batch_size"] == 8
    assert data["plan"]["total_batches"] == 2
    assert data["plan"]["risk_level"] == "low"
    assert data["validation"]["is_valid"] is True
    assert isinstance(data["estimated_processing_time"], str)


def test_batch_plan_empty(client):
    response = client.post("/api/batch/plan", json={"documents": []})

    assert response.status_code == 200
    assert response.json()["plan"]["reason"] == "No files to process"


def test_document_profile(client):
    response = client.post("/api/documents/profile", json={"document_content": "x" * 400})

    assert response.status_code == 200
    data = response.json()
    assert data["estimated_tokens"] == 100
    assert data["category"] == "small"
    assert data["will_chunk"] is False
    assert data["will_chunk_remotely"] is False


def test_document_profile_reports_remote_chunking(client):
    text = "x" * (4 * 11000)

    without_memo = client.post("/api/documents/profile", json={"document_content": text}).json()
    with_memo = client.post("/api/documents/profile", json={"document_content": text, "memo": "Q1 (5 marks)"}).json()

    assert without_memo["category"] == "large"
    assert without_memo["will_chunk_remotely"] is False
    assert with_memo["will_chunk_remotely"] is True
