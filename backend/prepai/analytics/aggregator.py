from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any

from prepai.core import config
from prepai.core.clock import utc_now
from prepai.core.numeric import mean, round_half_up
from prepai.core.state import SessionStatus, SessionVariant
from prepai.session.errors import InvalidPeriod
from prepai.session.models import Session
from prepai.store.content_store import ContentStore, SessionFilter
from prepai.users.stats import UserStatistics

PERIOD_DAYS = {"7d": 7, "30d": 30, "90d": 90}
CONSISTENCY_WINDOW_DAYS = 7
RECENT_ACTIVITY_LIMIT = 10
IMPROVEMENT_BELOW = 70
STRENGTH_FROM = 80


def period_start(period: str, now: datetime) -> datetime:
    if period not in PERIOD_DAYS:
        raise InvalidPeriod(f"Unsupported period {period!r}; expected one of {', '.join(PERIOD_DAYS)}")
    return now - timedelta(days=PERIOD_DAYS[period])


def variant_stats(sessions: list[Session], variant: SessionVariant, pass_mark: int) -> dict[str, Any]:
    scores = [session.reported_score for session in sessions]
    stats = {
        "count": len(sessions),
        "average_score": round_half_up(mean(scores)),
        "total_questions": sum(session.total_questions for session in sessions),
        "total_time_spent": sum(session.time_spent for session in sessions),
    }
    if variant is SessionVariant.TEST:
        passed = sum(1 for score in scores if score >= pass_mark)
        stats["passed"] = passed
        stats["pass_rate"] = round_half_up(passed / len(sessions) * 100) if sessions else 0
    return stats


def trend_series(rows: list[dict]) -> list[dict]:
    return [{"date": row["key"], "score": row["average_score"], "count": row["count"]} for row in rows]


def category_series(rows: list[dict]) -> list[dict]:
    return [{"category": row["key"], "average_score": row["average_score"], "count": row["count"]} for row in rows]


def progression(scores: list[int]) -> int:
    """Second-half average minus first-half average of a score series."""
    if len(scores) < 2:
        return 0
    middle = len(scores) // 2
    return round_half_up(mean(scores[middle:]) - mean(scores[:middle]))


def study_consistency(sessions: list[Session], now: datetime) -> dict[str, int]:
    # calendar days: today plus the six before it
    today = now.date()
    first_day = today - timedelta(days=CONSISTENCY_WINDOW_DAYS - 1)
    days = {session.started_at.date() for session in sessions if first_day <= session.started_at.date() <= today}
    return {
        "days_active": len(days),
        "consistency_score": round_half_up(len(days) / CONSISTENCY_WINDOW_DAYS * 100),
    }


def achievements(stats: UserStatistics) -> list[dict]:
    unlocked = []
    if stats.interviews_completed >= 1:
        unlocked.append({"id": "first_interview", "name": "First Interview", "category": "milestone"})
    if stats.interviews_completed >= 10:
        unlocked.append({"id": "interview_veteran", "name": "Interview Veteran", "category": "milestone"})
    if stats.current_streak >= 7:
        unlocked.append({"id": "week_streak", "name": "Week Warrior", "category": "consistency"})
    if stats.current_streak >= 30:
        unlocked.append({"id": "month_streak", "name": "Monthly Master", "category": "consistency"})
    if stats.sessions_completed and stats.average_score >= 80:
        unlocked.append({"id": "high_performer", "name": "High Performer", "category": "performance"})
    return unlocked


def recommendations(stats: UserStatistics, weak_categories: list[str]) -> list[dict]:
    items = []
    if stats.current_streak < 3:
        items.append({
            "type": "consistency",
            "title": "Build a Study Habit",
            "action": "Practice for at least 10 minutes daily",
            "priority": "high",
        })
    if stats.sessions_completed and stats.average_score < 70:
        items.append({
            "type": "performance",
            "title": "Focus on Fundamentals",
            "action": "Take beginner-level practice tests",
            "priority": "high",
        })
    if weak_categories:
        items.append({
            "type": "skill_development",
            "title": "Strengthen Weak Areas",
            "action": f"Focus on improving: {', '.join(weak_categories)}",
            "priority": "medium",
        })
    return items


def next_goals(stats: UserStatistics, improvement_areas: list[dict]) -> list[dict]:
    goals = []
    if stats.current_streak < 7:
        goals.append({"type": "streak", "title": "Build a 7-day streak", "target": 7, "current": stats.current_streak})
    if improvement_areas:
        goals.append({
            "type": "performance",
            "title": "Improve weak areas",
            "target": IMPROVEMENT_BELOW,
            "current": round_half_up(mean([area["score"] for area in improvement_areas])),
        })
    return goals


def recent_activity(sessions: list[Session]) -> list[dict]:
    return [
        {
            "type": session.variant.value,
            "session_token": session.session_token,
            "category": session.category,
            "difficulty": session.difficulty.value,
            "status": session.status.value,
            "score": session.reported_score,
            "date": session.started_at.isoformat(),
        }
        for session in sessions
    ]


async def build_dashboard(
    owner_id: str,
    store: ContentStore,
    period: str = "30d",
    now: datetime | None = None,
) -> dict[str, Any]:
    """Recompute the analytics dashboard for one user from stored sessions.

    Only completed sessions inside the period feed scores and trends; any
    session start counts as activity for study consistency.
    """
    now = now or utc_now()
    start = period_start(period, now)

    interview_filter = SessionFilter(variant=SessionVariant.INTERVIEW, status=SessionStatus.COMPLETED, started_after=start)
    test_filter = SessionFilter(variant=SessionVariant.TEST, status=SessionStatus.COMPLETED, started_after=start)

    interviews = await store.list_sessions(owner_id, interview_filter)
    tests = await store.list_sessions(owner_id, test_filter)
    interview_stats = variant_stats(interviews, SessionVariant.INTERVIEW, config.TEST_PASS_MARK)
    test_stats = variant_stats(tests, SessionVariant.TEST, config.TEST_PASS_MARK)

    trend = {
        "interviews": trend_series(await store.aggregate_sessions(owner_id, interview_filter, group_by="day")),
        "tests": trend_series(await store.aggregate_sessions(owner_id, test_filter, group_by="day")),
    }
    breakdown = {
        "interviews": category_series(await store.aggregate_sessions(owner_id, interview_filter, group_by="category")),
        "tests": category_series(await store.aggregate_sessions(owner_id, test_filter, group_by="category")),
    }
    all_categories = breakdown["interviews"] + breakdown["tests"]
    improvement_areas = [
        {"category": row["category"], "score": row["average_score"], "improvement_needed": IMPROVEMENT_BELOW - row["average_score"]}
        for row in all_categories
        if row["average_score"] < IMPROVEMENT_BELOW
    ]
    strengths = [
        {"category": row["category"], "score": row["average_score"], "strength_level": "excellent" if row["average_score"] >= 90 else "good"}
        for row in all_categories
        if row["average_score"] >= STRENGTH_FROM
    ]

    recent = await store.list_sessions(owner_id, SessionFilter(limit=RECENT_ACTIVITY_LIMIT))
    window = await store.list_sessions(
        owner_id,
        SessionFilter(started_after=now - timedelta(days=CONSISTENCY_WINDOW_DAYS)),
    )
    user_stats = await store.get_user_stats(owner_id) or UserStatistics(owner_id=owner_id)

    # blend only the variants that have completed sessions in the period
    populated = [stats["average_score"] for stats in (interview_stats, test_stats) if stats["count"]]
    interview_progression = progression([point["score"] for point in trend["interviews"]])
    test_progression = progression([point["score"] for point in trend["tests"]])

    return {
        "period": period,
        "overview": {
            "total_interviews": interview_stats["count"],
            "total_tests": test_stats["count"],
            "average_score": round_half_up(mean(populated)),
            "total_time_spent": interview_stats["total_time_spent"] + test_stats["total_time_spent"],
            "current_streak": user_stats.current_streak,
        },
        "interviews": interview_stats,
        "tests": test_stats,
        "performance": {
            "trend": trend,
            "category_breakdown": breakdown,
            "improvement_areas": improvement_areas,
            "strengths": strengths,
        },
        "activity": {
            "recent": recent_activity(recent),
            "achievements": achievements(user_stats),
            "recommendations": recommendations(
                user_stats,
                [row["category"] for row in breakdown["interviews"] if row["average_score"] < IMPROVEMENT_BELOW],
            ),
        },
        "insights": {
            "study_consistency": study_consistency(window, now),
            "skill_progression": {
                "interviews": interview_progression,
                "tests": test_progression,
                "overall": round_half_up((interview_progression + test_progression) / 2),
            },
            "next_goals": next_goals(user_stats, improvement_areas),
        },
    }


async def variant_analytics(
    owner_id: str,
    store: ContentStore,
    variant: SessionVariant | str,
    period: str = "30d",
    now: datetime | None = None,
) -> dict[str, Any]:
    """Completed-session summary for one variant, with the split-half improvement trend."""
    now = now or utc_now()
    start = period_start(period, now)
    variant = SessionVariant(variant)

    sessions = await store.list_sessions(
        owner_id,
        SessionFilter(variant=variant, status=SessionStatus.COMPLETED, started_after=start),
    )
    chronological = sorted(sessions, key=lambda session: session.started_at)
    return {
        "period": period,
        "variant": variant.value,
        **variant_stats(sessions, variant, config.TEST_PASS_MARK),
        "category_breakdown": [
            {"category": session.category, "score": session.reported_score, "date": session.started_at.date().isoformat()}
            for session in chronological
        ],
        "improvement_trend": progression([session.reported_score for session in chronological]),
    }
