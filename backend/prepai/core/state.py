# backend/prepai/core/state.py

from enum import Enum


class SessionVariant(str, Enum):
    INTERVIEW = "interview"
    TEST = "test"


class SessionStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ABANDONED = "abandoned"
    TIMEOUT = "timeout"

    @property
    def is_terminal(self) -> bool:
        return self is not SessionStatus.IN_PROGRESS


class CompletionReason(str, Enum):
    COMPLETED = "completed"
    ABANDONED = "abandoned"
    TIMEOUT = "timeout"


class Difficulty(str, Enum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


class OverallRating(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    AVERAGE = "average"
    NEEDS_IMPROVEMENT = "needs_improvement"


DIFFICULTY_WEIGHTS = {
    Difficulty.BEGINNER: 1.0,
    Difficulty.INTERMEDIATE: 1.2,
    Difficulty.ADVANCED: 1.5,
}
