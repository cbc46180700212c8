from __future__ import annotations

from datetime import datetime

from prepai.core.clock import utc_now
from prepai.core.numeric import clamp_score, mean
from prepai.core.state import DIFFICULTY_WEIGHTS, OverallRating, SessionStatus
from prepai.feedback.models import FeedbackSummary
from prepai.questions.models import QuestionKind
from prepai.session.errors import SessionNotTerminal
from prepai.session.models import QuestionAttempt, Session

COMMUNICATION_KINDS = frozenset({QuestionKind.BEHAVIORAL, QuestionKind.SITUATIONAL})
TECHNICAL_KINDS = frozenset({QuestionKind.TECHNICAL, QuestionKind.SYSTEM_DESIGN})

STRENGTH_THRESHOLD = 80
IMPROVEMENT_THRESHOLD = 70

STRENGTH_PHRASES = {
    "communication": "Excellent communication skills",
    "technical_knowledge": "Strong technical knowledge",
    "confidence": "High confidence in responses",
    "clarity": "Clear and articulate answers",
    "problem_solving": "Strong problem-solving abilities",
    "time_management": "Good time management",
}

IMPROVEMENT_PHRASES = {
    "communication": "Work on communication clarity",
    "technical_knowledge": "Strengthen technical knowledge",
    "confidence": "Build confidence in responses",
    "clarity": "Improve answer structure and clarity",
    "problem_solving": "Enhance problem-solving approach",
    "time_management": "Better time management during interviews",
}

RECOMMENDATION_PHRASES = {
    "communication": [
        "Practice the STAR method for behavioral questions",
        "Record yourself answering questions to improve articulation",
    ],
    "technical_knowledge": [
        "Review core technical concepts in your field",
        "Practice coding problems and system design",
    ],
    "confidence": [
        "Practice mock interviews regularly",
        "Prepare common interview questions in advance",
    ],
    "clarity": ["Structure answers with a short summary first, then the details"],
    "problem_solving": ["Talk through trade-offs before settling on a solution"],
    "time_management": ["Practice with a timer and budget time per question"],
}

FALLBACK_STRENGTH = "Shows potential for improvement"
FALLBACK_IMPROVEMENT = "Continue practicing to maintain current level"
FALLBACK_RECOMMENDATION = "Keep a regular practice schedule to build on your progress"


def _answered(session: Session) -> list[QuestionAttempt]:
    return [attempt for attempt in session.attempts if attempt.answered]


def _kind_mean(attempts: list[QuestionAttempt], kinds: frozenset) -> int:
    relevant = [attempt.percent for attempt in attempts if attempt.kind in kinds]
    return clamp_score(mean(relevant)) if relevant else 0


def weighted_total_score(session: Session) -> int:
    """Mean percent over every question (unanswered count 0), scaled by the
    session difficulty weight and the completion rate."""
    if not session.total_questions:
        return 0
    average = mean([attempt.percent if attempt.answered else 0 for attempt in session.attempts])
    completion = session.completion_rate / 100
    return clamp_score(average * DIFFICULTY_WEIGHTS[session.difficulty] * completion)


def confidence_score(attempts: list[QuestionAttempt]) -> int:
    if not attempts:
        return 0
    score = 50
    avg_length = mean([len(str(attempt.answer if attempt.answer is not None else "")) for attempt in attempts])
    if avg_length > 100:
        score += 20
    elif avg_length > 50:
        score += 10

    avg_used = mean([attempt.time_taken for attempt in attempts])
    avg_allocated = mean([attempt.time_allocated for attempt in attempts])
    if avg_used < avg_allocated * 0.8:
        score += 15
    elif avg_used < avg_allocated:
        score += 10
    return clamp_score(score)


def clarity_score(attempts: list[QuestionAttempt]) -> int:
    keyed = [attempt.keyword_score for attempt in attempts if attempt.kind.is_free_text]
    return clamp_score(mean(keyed)) if keyed else 0


def time_management_score(attempts: list[QuestionAttempt]) -> int:
    allocated = sum(attempt.time_allocated for attempt in attempts)
    if not attempts or allocated <= 0:
        return 0
    used = sum(attempt.time_taken for attempt in attempts)
    efficiency = (allocated - used) / allocated
    return clamp_score(50 + efficiency * 50)


def category_scores(session: Session) -> dict[str, int]:
    answered = _answered(session)
    return {
        "communication": _kind_mean(answered, COMMUNICATION_KINDS),
        "technical_knowledge": _kind_mean(answered, TECHNICAL_KINDS),
        "confidence": confidence_score(answered),
        "clarity": clarity_score(answered),
        "problem_solving": _kind_mean(answered, TECHNICAL_KINDS),
        "time_management": time_management_score(answered),
    }


def overall_rating(total_score: int) -> OverallRating:
    if total_score >= 90:
        return OverallRating.EXCELLENT
    if total_score >= 75:
        return OverallRating.GOOD
    if total_score >= 60:
        return OverallRating.AVERAGE
    return OverallRating.NEEDS_IMPROVEMENT


def _narrative(scores: dict[str, int]) -> tuple[list[str], list[str], list[str]]:
    strengths = [STRENGTH_PHRASES[name] for name, value in scores.items() if value >= STRENGTH_THRESHOLD]
    weak = [name for name, value in scores.items() if value < IMPROVEMENT_THRESHOLD]
    improvements = [IMPROVEMENT_PHRASES[name] for name in weak]
    recommendations = [phrase for name in weak for phrase in RECOMMENDATION_PHRASES[name]]
    return (
        strengths or [FALLBACK_STRENGTH],
        improvements or [FALLBACK_IMPROVEMENT],
        recommendations or [FALLBACK_RECOMMENDATION],
    )


def detailed_analysis(session: Session, total_score: int) -> str:
    lines = [
        f"You completed {session.answered_questions} out of {session.total_questions} questions.",
        f"Your overall performance score is {total_score}%.",
    ]
    if session.completion_rate < 50:
        lines.append("Consider practicing time management to complete more questions.")
    if session.score < 60:
        lines.append("Focus on improving your technical knowledge and communication skills.")
    return " ".join(lines)


def build_feedback_summary(session: Session, now: datetime | None = None) -> FeedbackSummary:
    """Derive the end-of-session feedback from the recorded attempts.

    Pure: the same session always yields the same summary apart from
    `generated_at`. Refuses sessions that are still in progress.
    """
    if session.status is SessionStatus.IN_PROGRESS:
        raise SessionNotTerminal()

    total = weighted_total_score(session)
    scores = category_scores(session)
    strengths, improvements, recommendations = _narrative(scores)
    return FeedbackSummary(
        total_score=total,
        category_scores=scores,
        strengths=strengths,
        areas_for_improvement=improvements,
        recommendations=recommendations,
        next_steps=[f"Focus on: {item}" for item in improvements],
        overall_rating=overall_rating(total),
        detailed_analysis=detailed_analysis(session, total),
        generated_at=now or utc_now(),
    )
