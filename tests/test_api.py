import asyncio

import pytest
from fastapi.testclient import TestClient

from api.app import create_app
from api.routes import _register
from api.session import SessionRegistry
from rank_paper_cbt.models.session_state import SessionState
from rank_paper_cbt.services.exam_session import ExamSession
from rank_paper_cbt.services.gateway import InMemoryGateway

from conftest import make_paper

HEADERS = {"X-Student-Id": "student-1"}
BASE = "/api/papers/paper-1"


@pytest.fixture
def store():
    gw = InMemoryGateway()
    paper, questions = make_paper()
    gw.add_paper(paper, questions)
    return gw


@pytest.fixture
def client(store, settings):
    app = create_app(gateway=store, settings=settings)
    with TestClient(app) as c:
        yield c


def test_requests_without_student_are_rejected(client):
    assert client.post(f"{BASE}/attempt").status_code == 401


def test_unknown_paper_is_404(client):
    assert client.post("/api/papers/nope/attempt", headers=HEADERS).status_code == 404


def test_actions_without_session_are_404(client):
    resp = client.put(f"{BASE}/answers", json={"question_id": "q1", "selection": 1}, headers=HEADERS)
    assert resp.status_code == 404


def test_full_exam_flow(client, store):
    resp = client.post(f"{BASE}/attempt", headers=HEADERS)
    assert resp.status_code == 200
    body = resp.json()
    assert body["state"] == "ACTIVE"
    assert body["remaining_seconds"] in (30 * 60 - 1, 30 * 60)
    attempt_id = body["attempt_id"]

    questions = client.get(f"{BASE}/questions", headers=HEADERS).json()
    assert [q["q_no"] for q in questions["questions"]] == [1, 2, 3, 4, 5]
    assert questions["saved_answers"] == {}

    resp = client.put(f"{BASE}/answers", json={"question_id": "q1", "selection": 2}, headers=HEADERS)
    assert resp.json() == {"ok": True, "answered_count": 1}
    resp = client.put(f"{BASE}/answers", json={"question_id": "q1", "selection": 9}, headers=HEADERS)
    assert resp.status_code == 422

    resp = client.put(
        f"{BASE}/uploads",
        json={"upload_type": "SHORT_ESSAY", "document_ref": "uploads/student-1/short.pdf"},
        headers=HEADERS,
    )
    assert resp.status_code == 200

    verdict = client.post(f"{BASE}/events", json={"type": "visibility_hidden"}, headers=HEADERS).json()
    assert verdict["tab_switch"] is True and verdict["blocked"] is True
    ack = client.post(f"{BASE}/acknowledge", headers=HEADERS).json()
    assert ack["blocked"] is False

    status = client.get(f"{BASE}/attempt", headers=HEADERS).json()
    assert status["answered_count"] == 1
    assert status["tab_switch_count"] == 1

    resp = client.post(f"{BASE}/submit", headers=HEADERS)
    assert resp.status_code == 200
    assert resp.json()["submitted"] is True
    assert resp.json()["status"]["state"] == "TERMINAL"

    again = client.post(f"{BASE}/submit", headers=HEADERS).json()
    assert again["submitted"] is False

    late = client.put(f"{BASE}/answers", json={"question_id": "q2", "selection": 1}, headers=HEADERS)
    assert late.status_code == 409

    attempt = store._attempts[attempt_id]
    assert attempt.submitted_at is not None
    assert attempt.auto_closed is False
    assert attempt.tab_switch_count == 1
    assert [(k[1], a.selected_option_no) for k, a in store._answers.items()] == [("q1", 2)]
    assert len(store._uploads) == 1


def test_reentry_resumes_and_counts_window_reopen(client):
    first = client.post(f"{BASE}/attempt", headers=HEADERS).json()
    client.put(f"{BASE}/answers", json={"question_id": "q3", "selection": 4}, headers=HEADERS)

    second = client.post(f"{BASE}/attempt", headers=HEADERS).json()
    assert second["attempt_id"] == first["attempt_id"]
    assert second["window_close_count"] == 1
    assert second["answered_count"] == 1

    client.post(f"{BASE}/submit", headers=HEADERS)
    third = client.post(f"{BASE}/attempt", headers=HEADERS).json()
    assert third["state"] == "TERMINAL"
    assert third["already_completed"] is True


def test_attempt_list_reports_status(client):
    assert client.get("/api/attempts", headers=HEADERS).json() == {"attempts": []}

    client.post(f"{BASE}/attempt", headers=HEADERS)
    rows = client.get("/api/attempts", headers=HEADERS).json()["attempts"]
    assert [(r["paper_id"], r["status"]) for r in rows] == [("paper-1", "IN_PROGRESS")]

    client.post(f"{BASE}/submit", headers=HEADERS)
    rows = client.get("/api/attempts", headers=HEADERS).json()["attempts"]
    assert rows[0]["status"] == "SUBMITTED"


def test_concurrent_entry_detaches_the_displaced_session(store, settings):
    async def scenario():
        registry = SessionRegistry()
        early = ExamSession(store, "student-1", "paper-1", settings=settings)
        late = ExamSession(store, "student-1", "paper-1", settings=settings)
        await early.start()
        await late.start()

        # 두 입장 모두 등록 전에 이전 세션 없음을 확인한 상황
        await _register(registry, early)
        await _register(registry, late)

        assert early.state is SessionState.DETACHED
        assert registry.get("student-1", "paper-1") is late
        assert late.state is SessionState.ACTIVE
        await late.request_submit()

    asyncio.run(scenario())
