from typing import get_args

import pytest
from fastapi.testclient import TestClient

from conftest import make_dev_token
from prepai.core import config
from prepai.core.state import SessionVariant
from prepai.main import app
from prepai.questions.catalog import VARIANT_CATEGORIES
from prepai.rate_limit import check_rate_limit
from prepai.schemas import InterviewCategory, TestCategory as TestCategoryChoice
from prepai.store.content_store import LocalContentStore

CORRECT_ANSWERS = {
    "prog-mc-001": "Stack",
    "prog-mc-002": "O(1)",
    "prog-tf-001": True,
    "prog-fb-001": "def",
    "prog-code-001": "def reverse(items):\n    return items[::-1]",
    "prog-essay-001": (
        "Automated tests catch regressions early, give the team confidence to refactor, and act as "
        "living documentation because they show how the codebase is meant to behave."
    ),
}


def _headers(sub: str = "pytest-user") -> dict:
    return {"Authorization": f"Bearer {make_dev_token(sub)}"}


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client


def test_healthz(client):
    response = client.get("/healthz")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "service": "prepai"}


def test_requests_without_token_are_unauthorized(client):
    response = client.post("/api/tests/session", json={"category": "programming", "difficulty": "beginner"})

    assert response.status_code == 401


def test_test_session_flow_end_to_end(client):
    headers = _headers()
    started = client.post(
        "/api/tests/session",
        json={"category": "programming", "difficulty": "beginner", "question_count": 6},
        headers=headers,
    )
    assert started.status_code == 201
    data = started.json()["data"]
    token = data["session_token"]
    assert data["status"] == "in_progress"
    assert data["total_questions"] == 6
    assert "correct_answer" not in data["first_question"]

    detail = client.get(f"/api/tests/session/{token}", headers=headers).json()["data"]
    question_ids = [question["id"] for question in detail["questions"]]
    assert sorted(question_ids) == sorted(CORRECT_ANSWERS)
    assert all("expected_keywords" not in question for question in detail["questions"])

    outcome = None
    for question_id in question_ids:
        response = client.post(
            f"/api/tests/session/{token}/answer",
            json={"question_id": question_id, "answer": CORRECT_ANSWERS[question_id], "time_taken": 20},
            headers=headers,
        )
        assert response.status_code == 200
        outcome = response.json()["data"]
        assert outcome["is_correct"] is True
    assert outcome["is_complete"] is True
    assert outcome["current_score"] == 100

    completed = client.post(f"/api/tests/session/{token}/complete", headers=headers)
    assert completed.status_code == 200
    summary = completed.json()["data"]
    assert summary["status"] == "completed"
    assert summary["score"] == 100
    assert summary["feedback"]["total_score"] > 0

    feedback = client.get(f"/api/tests/session/{token}/feedback", headers=headers)
    assert feedback.status_code == 200
    assert set(feedback.json()["data"]["category_scores"]) == {
        "communication",
        "technical_knowledge",
        "confidence",
        "clarity",
        "problem_solving",
        "time_management",
    }

    late = client.post(
        f"/api/tests/session/{token}/answer",
        json={"question_id": question_ids[0], "answer": "Queue", "time_taken": 5},
        headers=headers,
    )
    assert late.status_code == 409
    assert late.json()["reason"] == "session_not_active"

    history = client.get("/api/tests/history", headers=headers).json()["data"]
    assert [item["token"] for item in history["items"]] == [token]

    stats = client.get("/api/user/statistics", headers=headers).json()["data"]
    assert stats["tests_completed"] == 1
    assert stats["total_score"] == 100
    assert stats["current_streak"] == 1

    dashboard = client.get("/api/analytics/dashboard", params={"period": "7d"}, headers=headers).json()["data"]
    assert dashboard["tests"]["count"] == 1
    assert dashboard["tests"]["pass_rate"] == 100

    results = client.get(f"/api/tests/session/{token}/results", headers=headers)
    assert results.status_code == 200
    report = results.json()["data"]
    assert report["is_passed"] is True
    assert report["correct_answers"] == 6
    assert report["points_earned"] == report["points_possible"]
    assert [answer["order"] for answer in report["answers"]] == [1, 2, 3, 4, 5, 6]
    assert all(answer["is_correct"] for answer in report["answers"])

    analytics = client.get("/api/tests/analytics", params={"period": "7d"}, headers=headers).json()["data"]
    assert analytics["count"] == 1
    assert analytics["category_breakdown"][0]["category"] == "programming"
    assert analytics["improvement_trend"] == 0


def test_interview_timeout_is_recorded_as_abandoned(client):
    headers = _headers("interviewee")
    started = client.post(
        "/api/interviews/session",
        json={"category": "behavioral", "difficulty": "beginner", "question_count": 2},
        headers=headers,
    ).json()["data"]
    token = started["session_token"]

    response = client.post(
        f"/api/interviews/session/{token}/complete",
        json={"reason": "timeout"},
        headers=headers,
    )

    assert response.status_code == 200
    assert response.json()["data"]["status"] == "abandoned"
    again = client.post(f"/api/interviews/session/{token}/complete", headers=headers)
    assert again.status_code == 409
    assert again.json()["reason"] == "session_already_terminal"


def test_session_is_invisible_to_other_users_and_other_variant_paths(client):
    started = client.post(
        "/api/interviews/session",
        json={"category": "technical", "difficulty": "beginner", "question_count": 1},
        headers=_headers("owner"),
    ).json()["data"]
    token = started["session_token"]

    foreign = client.get(f"/api/interviews/session/{token}", headers=_headers("intruder"))
    wrong_path = client.get(f"/api/tests/session/{token}", headers=_headers("owner"))

    for response in (foreign, wrong_path):
        assert response.status_code == 404
        assert response.json() == {
            "success": False,
            "reason": "session_not_found",
            "message": "Session not found",
        }


def test_feedback_before_completion_is_refused(client):
    headers = _headers()
    token = client.post(
        "/api/interviews/session",
        json={"category": "technical", "difficulty": "beginner", "question_count": 1},
        headers=headers,
    ).json()["data"]["session_token"]

    response = client.get(f"/api/interviews/session/{token}/feedback", headers=headers)

    assert response.status_code == 409
    assert response.json()["reason"] == "session_not_terminal"


def test_empty_question_pool_is_reported(client):
    response = client.post(
        "/api/interviews/session",
        json={"category": "communication", "difficulty": "advanced"},
        headers=_headers(),
    )

    assert response.status_code == 404
    assert response.json()["reason"] == "no_questions_available"


@pytest.mark.parametrize(
    "payload",
    [
        {"category": "cooking", "difficulty": "beginner"},
        {"category": "technical", "difficulty": "expert"},
        {"category": "technical", "difficulty": "beginner", "question_count": 11},
        {"category": "technical", "difficulty": "beginner", "time_limit": 5},
    ],
)
def test_start_request_validation(client, payload):
    response = client.post("/api/interviews/session", json=payload, headers=_headers())

    assert response.status_code == 422


def test_oversized_answer_is_rejected(client):
    headers = _headers()
    token = client.post(
        "/api/interviews/session",
        json={"category": "technical", "difficulty": "beginner", "question_count": 1},
        headers=headers,
    ).json()["data"]["session_token"]

    response = client.post(
        f"/api/interviews/session/{token}/answer",
        json={"question_id": "tech-beg-001", "answer": "x" * 5001, "time_taken": 10},
        headers=headers,
    )

    assert response.status_code == 422


def test_unknown_variant_path_and_period(client):
    assert client.get("/api/quizzes/history", headers=_headers()).status_code == 404

    response = client.get("/api/analytics/dashboard", params={"period": "1y"}, headers=_headers())
    assert response.status_code == 400
    assert response.json()["reason"] == "invalid_period"


def test_rate_limit_returns_429(client, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(config, "RATE_LIMIT_ENABLED", True)
    monkeypatch.setattr(config, "RATE_LIMIT_WINDOW_SEC", 3600)
    monkeypatch.setattr(config, "RATE_LIMIT_MAX_REQUESTS", 2)
    headers = _headers("chatty")

    statuses = [client.get("/api/user/statistics", headers=headers).status_code for _ in range(3)]

    assert statuses[:2] == [200, 200]
    assert statuses[2] == 429
    blocked = client.get("/api/user/statistics", headers=headers)
    assert blocked.json()["reason"] == "rate_limited"
    assert int(blocked.headers["Retry-After"]) >= 1
    assert client.get("/healthz").status_code == 200


@pytest.mark.asyncio
async def test_check_rate_limit_uses_fixed_windows():
    store = LocalContentStore()

    first = await check_rate_limit(store, "user:a", 60, 1, now_ts=120.0)
    second = await check_rate_limit(store, "user:a", 60, 1, now_ts=150.0)
    next_window = await check_rate_limit(store, "user:a", 60, 1, now_ts=180.0)

    assert first == (False, 0)
    assert second == (True, 30)
    assert next_window == (False, 0)


def test_results_need_an_ended_test_session(client):
    headers = _headers("candidate")
    test_token = client.post(
        "/api/tests/session",
        json={"category": "programming", "difficulty": "beginner", "question_count": 2},
        headers=headers,
    ).json()["data"]["session_token"]
    interview_token = client.post(
        "/api/interviews/session",
        json={"category": "technical", "difficulty": "beginner", "question_count": 1},
        headers=headers,
    ).json()["data"]["session_token"]

    early = client.get(f"/api/tests/session/{test_token}/results", headers=headers)
    assert early.status_code == 409
    assert early.json()["reason"] == "session_not_terminal"

    interview = client.get(f"/api/tests/session/{interview_token}/results", headers=headers)
    assert interview.status_code == 404

    client.post(f"/api/tests/session/{test_token}/complete", json={"reason": "timeout"}, headers=headers)
    report = client.get(f"/api/tests/session/{test_token}/results", headers=headers).json()["data"]
    assert report["status"] == "timeout"
    assert report["is_passed"] is False
    assert all(answer["answered"] is False for answer in report["answers"])


def test_categories_report_question_counts(client):
    interviews = client.get("/api/interviews/categories", headers=_headers()).json()["data"]
    by_id = {row["id"]: row for row in interviews}

    assert list(by_id) == ["technical", "behavioral", "communication", "domain_specific"]
    assert by_id["technical"]["question_counts"] == {"beginner": 4, "intermediate": 3, "advanced": 2}
    assert by_id["technical"]["total_questions"] == 9
    assert by_id["domain_specific"]["available"] is False

    tests = client.get("/api/tests/categories", headers=_headers()).json()["data"]
    assert {row["id"]: row["total_questions"] for row in tests}["programming"] == 6
    assert client.get("/api/tests/categories").status_code == 401


def test_category_catalog_matches_request_schemas():
    assert list(VARIANT_CATEGORIES[SessionVariant.INTERVIEW]) == list(get_args(InterviewCategory))
    assert list(VARIANT_CATEGORIES[SessionVariant.TEST]) == list(get_args(TestCategoryChoice))


def test_interview_analytics_tracks_improvement(client):
    headers = _headers("improver")
    for _ in range(2):
        token = client.post(
            "/api/interviews/session",
            json={"category": "behavioral", "difficulty": "beginner", "question_count": 1},
            headers=headers,
        ).json()["data"]["session_token"]
        client.post(f"/api/interviews/session/{token}/complete", headers=headers)

    analytics = client.get("/api/interviews/analytics", headers=headers).json()["data"]

    assert analytics["variant"] == "interview"
    assert analytics["count"] == 2
    assert analytics["improvement_trend"] == 0
    assert client.get("/api/interviews/analytics", params={"period": "1y"}, headers=headers).status_code == 400


def test_unverified_token_warning_is_logged_once_per_request(client, monkeypatch: pytest.MonkeyPatch, caplog):
    monkeypatch.setattr(config, "RATE_LIMIT_ENABLED", True)
    monkeypatch.setattr(config, "RATE_LIMIT_MAX_REQUESTS", 100)

    with caplog.at_level("WARNING", logger="prepai.auth"):
        response = client.get("/api/interviews/categories", headers=_headers("quiet"))

    assert response.status_code == 200
    warnings = [record for record in caplog.records if "ALLOW_UNVERIFIED_JWT_DEV" in record.getMessage()]
    assert len(warnings) == 1
