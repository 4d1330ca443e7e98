"""API tests through FastAPI's TestClient with a scripted language model"""
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from core.config import Settings
from core.dependencies import ServiceContainer, set_container
from core.middleware import setup_middleware
from main import app
from services.llm_gateway import GatewaySettings, LLMGateway

REPLY = "Nice to meet you! Could you share your email so we can stay in touch?"


class FakeProvider:
    name = "fake"

    async def complete(self, prompt, **params):
        return REPLY

    async def test_connection(self):
        return True

    async def close(self):
        pass


async def _no_sleep(delay):
    return None


@pytest.fixture
def client():
    container = ServiceContainer(Settings(session_store="memory", openai_api_key="test-key"))
    container._gateway = LLMGateway(FakeProvider(), GatewaySettings(), sleep=_no_sleep)
    set_container(container)
    yield TestClient(app)
    set_container(None)


def _new_session(client, **body):
    response = client.post("/api/session", json=body or None)
    assert response.status_code == 201
    return response.json()


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["sessions"]["total"] == 0


def test_create_and_fetch_session(client):
    session = _new_session(client)
    assert session["status"] == "active"
    assert session["stage"] == "greeting"
    assert session["message_count"] == 0
    assert session["candidate_profile"]["confidence"] == 0.0

    response = client.get(f"/api/session/{session['id']}")
    assert response.status_code == 200
    assert response.json()["id"] == session["id"]
    assert "X-Request-ID" in response.headers


def test_unknown_job_and_session(client):
    response = client.post("/api/session", json={"job_id": "missing-job"})
    assert response.status_code == 404
    assert response.json()["error_code"] == "JOB_NOT_FOUND"

    response = client.get("/api/session/no-such-session")
    assert response.status_code == 404
    body = response.json()
    assert body["error"] is True
    assert body["error_code"] == "SESSION_NOT_FOUND"


def test_chat_turn(client):
    session = _new_session(client, job_id="be-2024-003")

    response = client.post("/api/chat", json={
        "session_id": session["id"],
        "message": "Hi, I'm Sarah Johnson, I have 6 years of experience with Python and PostgreSQL",
    })
    assert response.status_code == 200
    body = response.json()
    assert body["message"]["content"] == REPLY
    assert body["message"]["role"] == "assistant"
    assert body["profile"]["name"] == "Sarah Johnson"
    assert body["profile"]["experience"]["years"] == 6
    assert body["fallback_used"] is False
    assert body["suggestions"]

    fetched = client.get(f"/api/session/{session['id']}").json()
    assert fetched["message_count"] == 2

    analysis = client.get(f"/api/chat/{session['id']}/analysis").json()
    assert analysis["candidate_fit"] > 0
    metrics = client.get(f"/api/chat/{session['id']}/metrics").json()
    assert metrics["total_messages"] == 2


def test_chat_rejects_blank_messages(client):
    session = _new_session(client)
    response = client.post("/api/chat", json={"session_id": session["id"], "message": "   "})
    assert response.status_code == 422


def test_completed_session_rejects_chat(client):
    session = _new_session(client)
    response = client.post(f"/api/session/{session['id']}/complete")
    assert response.status_code == 200
    assert response.json()["status"] == "completed"

    response = client.post("/api/chat", json={"session_id": session["id"], "message": "Hello"})
    assert response.status_code == 409
    assert response.json()["error_code"] == "SESSION_INACTIVE"


def test_candidate_profile_endpoints(client):
    session = _new_session(client)

    response = client.put("/api/candidate-profile", json={
        "session_id": session["id"],
        "profile": {"name": "Sam Lee", "email": "sam@example.com", "skills": [{"name": "Go"}]},
    })
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["profile"]["name"] == "Sam Lee"
    assert body["confidence"] > 0

    response = client.put("/api/candidate-profile", json={
        "session_id": session["id"],
        "profile": {"email": "not-an-email"},
    })
    assert response.status_code == 400
    assert response.json()["error_code"] == "VALIDATION_ERROR"

    response = client.get("/api/candidate-profile", params={"session_id": session["id"], "format": "minimal"})
    assert response.json()["profile"] == {"name": "Sam Lee", "email": "sam@example.com",
                                          "confidence": body["confidence"]}

    response = client.post("/api/candidate-profile/analyze", json={"session_id": session["id"],
                                                                   "job_id": "be-2024-003"})
    assert response.status_code == 200
    assert "Go" in response.json()["analysis"]["matched_skills"]


def test_session_lifecycle_endpoints(client):
    session = _new_session(client)
    sid = session["id"]

    extended = client.post(f"/api/session/{sid}/extend", json={"hours": 48}).json()
    assert extended["time_remaining_seconds"] > session["time_remaining_seconds"]

    exported = client.get(f"/api/session/{sid}/export").json()
    assert exported["version"] == "1.0"

    assert client.delete(f"/api/session/{sid}").json()["success"] is True
    assert client.delete(f"/api/session/{sid}").status_code == 404

    response = client.post("/api/session/import", json=exported)
    assert response.status_code == 201
    assert response.json()["id"] == sid

    reset = client.post(f"/api/session/{sid}/reset", json={"keep_profile": True})
    assert reset.json()["stage"] == "greeting"

    cleanup = client.post("/api/sessions/cleanup").json()
    assert cleanup == {"removed": 0, "remaining": 1}
    assert client.get("/api/sessions/stats").json()["active"] == 1


def test_jobs_and_llm_status(client):
    jobs = client.get("/api/jobs").json()
    assert jobs["total"] == 3
    assert client.get("/api/jobs/fe-2024-002").json()["title"] == "Frontend Developer"
    assert client.get("/api/jobs/unknown").status_code == 404

    status = client.get("/api/llm/status").json()
    assert status["provider"] == "fake"
    assert client.post("/api/llm/test").json() == {"connected": True, "provider": "fake"}


def test_rate_limit_middleware():
    limited = FastAPI()

    @limited.get("/ping")
    async def ping():
        return {"ok": True}

    @limited.get("/health")
    async def health():
        return {"ok": True}

    setup_middleware(limited, requests_per_window=2, window_seconds=60)
    client = TestClient(limited)

    assert client.get("/ping").status_code == 200
    assert client.get("/ping").status_code == 200
    blocked = client.get("/ping")
    assert blocked.status_code == 429
    assert blocked.json()["error_code"] == "RATE_LIMIT_EXCEEDED"
    assert int(blocked.headers["Retry-After"]) > 0
    assert client.get("/health").status_code == 200
