from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, timedelta

from prepai.core.state import SessionStatus, SessionVariant
from prepai.session.models import Session


@dataclass(frozen=True)
class UserStatistics:
    owner_id: str
    interviews_completed: int = 0
    tests_completed: int = 0
    total_score: int = 0
    average_score: float = 0.0
    current_streak: int = 0
    longest_streak: int = 0
    total_study_time: int = 0
    last_activity_date: date | None = None

    @property
    def sessions_completed(self) -> int:
        return self.interviews_completed + self.tests_completed

    def to_dict(self) -> dict:
        return {
            "owner_id": self.owner_id,
            "interviews_completed": self.interviews_completed,
            "tests_completed": self.tests_completed,
            "total_score": self.total_score,
            "average_score": self.average_score,
            "current_streak": self.current_streak,
            "longest_streak": self.longest_streak,
            "total_study_time": self.total_study_time,
            "last_activity_date": self.last_activity_date.isoformat() if self.last_activity_date else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "UserStatistics":
        last = data.get("last_activity_date")
        return cls(
            owner_id=str(data.get("owner_id") or ""),
            interviews_completed=int(data.get("interviews_completed") or 0),
            tests_completed=int(data.get("tests_completed") or 0),
            total_score=int(data.get("total_score") or 0),
            average_score=float(data.get("average_score") or 0.0),
            current_streak=int(data.get("current_streak") or 0),
            longest_streak=int(data.get("longest_streak") or 0),
            total_study_time=int(data.get("total_study_time") or 0),
            last_activity_date=date.fromisoformat(str(last)) if last else None,
        )


def next_streak(current: int, last_activity: date | None, today: date) -> int:
    if last_activity == today:
        return max(1, current)
    if last_activity == today - timedelta(days=1):
        return current + 1
    return 1


def apply_completion(stats: UserStatistics, session: Session, today: date) -> UserStatistics:
    """Fold one completed session into the running statistics."""
    if session.status is not SessionStatus.COMPLETED:
        return stats

    if session.variant is SessionVariant.INTERVIEW:
        interviews, tests = stats.interviews_completed + 1, stats.tests_completed
    else:
        interviews, tests = stats.interviews_completed, stats.tests_completed + 1

    total_score = stats.total_score + session.reported_score
    streak = next_streak(stats.current_streak, stats.last_activity_date, today)
    return replace(
        stats,
        interviews_completed=interviews,
        tests_completed=tests,
        total_score=total_score,
        average_score=round(total_score / (interviews + tests), 2),
        current_streak=streak,
        longest_streak=max(stats.longest_streak, streak),
        total_study_time=stats.total_study_time + session.time_spent,
        last_activity_date=today,
    )
