from datetime import timedelta

import pytest
import pytest_asyncio

from prepai.analytics.aggregator import build_dashboard, progression, study_consistency, variant_analytics
from prepai.core.state import Difficulty, SessionVariant
from prepai.session.errors import InvalidPeriod
from prepai.session.lifecycle import SessionLifecycleManager
from prepai.session.models import Session

OWNER = "analyst"

PERFECT_TEST_ANSWERS = {
    "prog-mc-001": "Stack",
    "prog-mc-002": "O(1)",
    "prog-tf-001": True,
    "prog-fb-001": "def",
    "prog-code-001": "items[::-1]",
    "prog-essay-001": (
        "Automated tests catch regressions early, give the team confidence to refactor, and act as "
        "living documentation because they show how the codebase is meant to behave."
    ),
}


async def _test_session(manager, answers: dict, reason: str = "completed"):
    started = await manager.start_session(OWNER, "test", "programming", "beginner", question_count=6)
    token = started.session.session_token
    for question_id, answer in answers.items():
        await manager.submit_answer(OWNER, token, question_id, answer, 30)
    return await manager.complete_session(OWNER, token, reason)


@pytest.fixture
def manager(store, clock):
    return SessionLifecycleManager(store, clock=clock)


@pytest_asyncio.fixture
async def history(manager, clock):
    now = clock.now
    clock.now = now - timedelta(days=40)
    await _test_session(manager, {"prog-mc-001": "Stack"})

    clock.now = now - timedelta(days=2)
    await _test_session(manager, {"prog-mc-001": "Stack"})

    clock.now = now - timedelta(days=1)
    await _test_session(manager, PERFECT_TEST_ANSWERS)
    interview = await manager.start_session(OWNER, "interview", "technical", "beginner", question_count=1)
    await manager.complete_session(OWNER, interview.session.session_token)

    clock.now = now
    abandoned = await manager.start_session(OWNER, "interview", "technical", "beginner", question_count=1)
    await manager.complete_session(OWNER, abandoned.session.session_token, "abandoned")
    return now


@pytest.mark.asyncio
async def test_dashboard_summarizes_completed_sessions_in_period(store, history):
    dashboard = await build_dashboard(OWNER, store, period="30d", now=history)

    tests = dashboard["tests"]
    assert tests["count"] == 2
    assert tests["average_score"] == 59
    assert tests["passed"] == 1
    assert tests["pass_rate"] == 50
    assert tests["total_questions"] == 12

    interviews = dashboard["interviews"]
    assert interviews["count"] == 1
    assert interviews["average_score"] == 0
    assert "pass_rate" not in interviews

    overview = dashboard["overview"]
    assert overview["total_tests"] == 2
    assert overview["total_interviews"] == 1
    assert overview["average_score"] == 30
    assert overview["current_streak"] == 2


@pytest.mark.asyncio
async def test_dashboard_trend_breakdown_and_insights(store, history):
    dashboard = await build_dashboard(OWNER, store, period="30d", now=history)

    trend = dashboard["performance"]["trend"]
    assert [point["score"] for point in trend["tests"]] == [17, 100]
    assert [point["date"] for point in trend["tests"]] == [
        (history - timedelta(days=2)).date().isoformat(),
        (history - timedelta(days=1)).date().isoformat(),
    ]

    breakdown = dashboard["performance"]["category_breakdown"]
    assert breakdown["tests"] == [{"category": "programming", "average_score": 59, "count": 2}]
    assert breakdown["interviews"] == [{"category": "technical", "average_score": 0, "count": 1}]

    weak = {area["category"] for area in dashboard["performance"]["improvement_areas"]}
    assert weak == {"programming", "technical"}
    assert dashboard["performance"]["strengths"] == []

    insights = dashboard["insights"]
    assert insights["study_consistency"] == {"days_active": 3, "consistency_score": 43}
    assert insights["skill_progression"] == {"interviews": 0, "tests": 83, "overall": 42}

    assert len(dashboard["activity"]["recent"]) == 5


@pytest.mark.asyncio
async def test_wider_period_includes_older_sessions(store, history):
    dashboard = await build_dashboard(OWNER, store, period="90d", now=history)

    assert dashboard["tests"]["count"] == 3


@pytest.mark.asyncio
async def test_unknown_period_is_rejected(store):
    with pytest.raises(InvalidPeriod):
        await build_dashboard(OWNER, store, period="365d")


@pytest.mark.asyncio
async def test_empty_history_yields_zeroes(store):
    dashboard = await build_dashboard("nobody", store, period="7d")

    assert dashboard["overview"]["average_score"] == 0
    assert dashboard["tests"]["pass_rate"] == 0
    assert dashboard["insights"]["study_consistency"]["days_active"] == 0


def test_progression_is_second_half_minus_first_half():
    assert progression([]) == 0
    assert progression([50]) == 0
    assert progression([40, 60]) == 20
    assert progression([40, 50, 70, 80]) == 30


def test_study_consistency_counts_distinct_days(clock):
    assert study_consistency([], clock.now) == {"days_active": 0, "consistency_score": 0}


def test_study_consistency_window_is_seven_calendar_days(clock, question_bank):
    questions = [question for question in question_bank if question.category == "programming"][:1]
    starts = [clock.now - timedelta(days=7) + timedelta(hours=1)]
    starts += [clock.now - timedelta(days=offset) for offset in range(6, -1, -1)]
    sessions = [
        Session.create(OWNER, SessionVariant.TEST, "programming", Difficulty.BEGINNER, questions, started_at=start)
        for start in starts
    ]

    assert len({session.started_at.date() for session in sessions}) == 8
    assert study_consistency(sessions, clock.now) == {"days_active": 7, "consistency_score": 100}


@pytest.mark.asyncio
async def test_variant_analytics_reports_chronological_trend(store, history):
    tests = await variant_analytics(OWNER, store, "test", period="30d", now=history)

    assert tests["variant"] == "test"
    assert tests["count"] == 2
    assert tests["passed"] == 1
    assert tests["pass_rate"] == 50
    assert [row["score"] for row in tests["category_breakdown"]] == [17, 100]
    assert tests["improvement_trend"] == 83

    interviews = await variant_analytics(OWNER, store, "interview", period="30d", now=history)
    assert interviews["count"] == 1
    assert interviews["improvement_trend"] == 0
    assert "pass_rate" not in interviews


@pytest.mark.asyncio
async def test_variant_analytics_rejects_unknown_period(store):
    with pytest.raises(InvalidPeriod):
        await variant_analytics(OWNER, store, "interview", period="1y")
