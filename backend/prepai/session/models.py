from __future__ import annotations

import secrets
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from prepai.core.clock import parse_datetime, utc_now
from prepai.core.numeric import mean, round_half_up
from prepai.core.state import Difficulty, SessionStatus, SessionVariant
from prepai.feedback.models import FeedbackSummary
from prepai.questions.models import AnswerValue, QuestionDefinition, QuestionKind
from prepai.scoring.models import AnswerFeedback, ScoreResult

# free-text answers inside a test earn full credit at or above this quality score
TEST_FREE_TEXT_PASS_SCORE = 60


def new_session_token() -> str:
    return secrets.token_urlsafe(24)


@dataclass
class QuestionAttempt:
    question_id: str
    prompt: str
    kind: QuestionKind
    difficulty: Difficulty
    order: int
    time_allocated: int
    points: int = 1
    options: list[str] = field(default_factory=list)
    answer: AnswerValue | None = None
    answered: bool = False
    answered_at: datetime | None = None
    time_taken: int = 0
    score: int = 0
    percent: int = 0
    is_correct: bool | None = None
    points_earned: int = 0
    keyword_matches: int = 0
    keyword_score: int = 0
    confidence_level: int = 0
    scoring_fallback: bool = False
    feedback: AnswerFeedback | None = None

    @classmethod
    def from_question(cls, question: QuestionDefinition, order: int) -> "QuestionAttempt":
        return cls(
            question_id=question.question_id,
            prompt=question.prompt,
            kind=question.kind,
            difficulty=question.difficulty,
            order=order,
            time_allocated=question.time_allocated,
            points=question.points,
            options=list(question.options),
        )

    def record(
        self,
        result: ScoreResult,
        answer: AnswerValue,
        time_taken: int,
        variant: SessionVariant,
        answered_at: datetime,
    ) -> None:
        self.answer = answer
        self.answered = True
        self.answered_at = answered_at
        self.time_taken = max(0, int(time_taken or 0))
        self.score = int(result.score)
        self.percent = int(result.percent)
        self.is_correct = result.is_correct
        self.points_earned = int(result.points_earned)
        self.keyword_matches = int(result.keyword_matches)
        self.keyword_score = int(result.keyword_score)
        self.confidence_level = int(result.confidence_level)
        self.scoring_fallback = bool(result.fallback)
        self.feedback = result.feedback

        if variant is SessionVariant.TEST and self.kind.is_free_text:
            self.is_correct = self.percent >= TEST_FREE_TEXT_PASS_SCORE
            self.points_earned = self.points if self.is_correct else 0

    def public_view(self) -> dict:
        view = {
            "id": self.question_id,
            "prompt": self.prompt,
            "kind": self.kind.value,
            "time_allocated": self.time_allocated,
            "order": self.order,
        }
        if self.kind.is_closed_form and self.options:
            view["options"] = list(self.options)
        return view

    def to_dict(self) -> dict:
        return {
            "question_id": self.question_id,
            "prompt": self.prompt,
            "kind": self.kind.value,
            "difficulty": self.difficulty.value,
            "order": self.order,
            "time_allocated": self.time_allocated,
            "points": self.points,
            "options": list(self.options),
            "answer": self.answer,
            "answered": self.answered,
            "answered_at": self.answered_at.isoformat() if self.answered_at else None,
            "time_taken": self.time_taken,
            "score": self.score,
            "percent": self.percent,
            "is_correct": self.is_correct,
            "points_earned": self.points_earned,
            "keyword_matches": self.keyword_matches,
            "keyword_score": self.keyword_score,
            "confidence_level": self.confidence_level,
            "scoring_fallback": self.scoring_fallback,
            "feedback": self.feedback.to_dict() if self.feedback else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "QuestionAttempt":
        feedback = data.get("feedback")
        is_correct = data.get("is_correct")
        return cls(
            question_id=str(data.get("question_id") or ""),
            prompt=str(data.get("prompt") or ""),
            kind=QuestionKind.parse(data.get("kind")),
            difficulty=Difficulty(data.get("difficulty") or Difficulty.BEGINNER.value),
            order=int(data.get("order") or 0),
            time_allocated=int(data.get("time_allocated") or 0),
            points=int(data.get("points") or 1),
            options=[str(o) for o in data.get("options") or []],
            answer=data.get("answer"),
            answered=bool(data.get("answered")),
            answered_at=parse_datetime(data.get("answered_at")),
            time_taken=int(data.get("time_taken") or 0),
            score=int(data.get("score") or 0),
            percent=int(data.get("percent") or 0),
            is_correct=None if is_correct is None else bool(is_correct),
            points_earned=int(data.get("points_earned") or 0),
            keyword_matches=int(data.get("keyword_matches") or 0),
            keyword_score=int(data.get("keyword_score") or 0),
            confidence_level=int(data.get("confidence_level") or 0),
            scoring_fallback=bool(data.get("scoring_fallback")),
            feedback=AnswerFeedback.from_dict(feedback) if isinstance(feedback, dict) else None,
        )


@dataclass
class SessionSummary:
    session_id: str
    token: str
    variant: SessionVariant
    category: str
    difficulty: Difficulty
    status: SessionStatus
    score: int
    total_questions: int
    answered_questions: int
    completion_rate: int
    started_at: datetime
    completed_at: datetime | None = None

    def to_dict(self) -> dict:
        return {
            "session_id": self.session_id,
            "token": self.token,
            "variant": self.variant.value,
            "category": self.category,
            "difficulty": self.difficulty.value,
            "status": self.status.value,
            "score": self.score,
            "total_questions": self.total_questions,
            "answered_questions": self.answered_questions,
            "completion_rate": self.completion_rate,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


@dataclass
class Session:
    session_id: str
    session_token: str
    owner_id: str
    variant: SessionVariant
    category: str
    difficulty: Difficulty
    attempts: list[QuestionAttempt]
    duration: int
    started_at: datetime
    status: SessionStatus = SessionStatus.IN_PROGRESS
    score: int = 0
    completed_at: datetime | None = None
    feedback_summary: FeedbackSummary | None = None

    @classmethod
    def create(
        cls,
        owner_id: str,
        variant: SessionVariant,
        category: str,
        difficulty: Difficulty,
        questions: list[QuestionDefinition],
        duration: int | None = None,
        started_at: datetime | None = None,
    ) -> "Session":
        attempts = [QuestionAttempt.from_question(q, order) for order, q in enumerate(questions, start=1)]
        return cls(
            session_id=uuid.uuid4().hex,
            session_token=new_session_token(),
            owner_id=owner_id,
            variant=variant,
            category=category,
            difficulty=difficulty,
            attempts=attempts,
            duration=int(duration if duration is not None else sum(a.time_allocated for a in attempts)),
            started_at=started_at or utc_now(),
        )

    @property
    def total_questions(self) -> int:
        return len(self.attempts)

    @property
    def answered_questions(self) -> int:
        return sum(1 for attempt in self.attempts if attempt.answered)

    @property
    def completion_rate(self) -> int:
        if not self.attempts:
            return 0
        return round_half_up(self.answered_questions / self.total_questions * 100)

    @property
    def correct_answers(self) -> int:
        return sum(1 for attempt in self.attempts if attempt.is_correct is True)

    @property
    def time_spent(self) -> int:
        return sum(attempt.time_taken for attempt in self.attempts if attempt.answered)

    @property
    def average_time_per_question(self) -> int:
        answered = self.answered_questions
        return round_half_up(self.time_spent / answered) if answered else 0

    @property
    def reported_score(self) -> int:
        """Headline score: the weighted feedback total for completed interviews, else `score`."""
        if self.variant is SessionVariant.INTERVIEW and self.feedback_summary is not None:
            return self.feedback_summary.total_score
        return self.score

    @property
    def is_fully_answered(self) -> bool:
        return bool(self.attempts) and self.answered_questions == self.total_questions

    def find_attempt(self, question_id: str) -> QuestionAttempt | None:
        for attempt in self.attempts:
            if attempt.question_id == question_id:
                return attempt
        return None

    def next_unanswered(self, after_order: int = 0) -> QuestionAttempt | None:
        pending = [a for a in self.attempts if not a.answered]
        for attempt in pending:
            if attempt.order > after_order:
                return attempt
        return pending[0] if pending else None

    def recompute_score(self) -> int:
        self.score = aggregate_score(self)
        return self.score

    def summary(self) -> SessionSummary:
        return SessionSummary(
            session_id=self.session_id,
            token=self.session_token,
            variant=self.variant,
            category=self.category,
            difficulty=self.difficulty,
            status=self.status,
            score=self.score,
            total_questions=self.total_questions,
            answered_questions=self.answered_questions,
            completion_rate=self.completion_rate,
            started_at=self.started_at,
            completed_at=self.completed_at,
        )

    def public_view(self) -> dict:
        """Caller-facing view; attempts never carry answer keys or keywords."""
        payload = self.summary().to_dict()
        payload.update({
            "duration": self.duration,
            "time_spent": self.time_spent,
            "correct_answers": self.correct_answers,
            "questions": [
                {
                    **attempt.public_view(),
                    "answered": attempt.answered,
                    "answer": attempt.answer,
                    "score": attempt.score,
                    "is_correct": attempt.is_correct,
                    "time_taken": attempt.time_taken,
                    "feedback": attempt.feedback.to_dict() if attempt.feedback else None,
                }
                for attempt in self.attempts
            ],
            "feedback": self.feedback_summary.to_dict() if self.feedback_summary else None,
        })
        return payload

    def to_dict(self) -> dict:
        return {
            "session_id": self.session_id,
            "session_token": self.session_token,
            "owner_id": self.owner_id,
            "variant": self.variant.value,
            "category": self.category,
            "difficulty": self.difficulty.value,
            "attempts": [attempt.to_dict() for attempt in self.attempts],
            "duration": self.duration,
            "started_at": self.started_at.isoformat(),
            "status": self.status.value,
            "score": self.score,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "feedback_summary": self.feedback_summary.to_dict() if self.feedback_summary else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Session":
        summary = data.get("feedback_summary")
        return cls(
            session_id=str(data.get("session_id") or ""),
            session_token=str(data.get("session_token") or ""),
            owner_id=str(data.get("owner_id") or ""),
            variant=SessionVariant(data.get("variant")),
            category=str(data.get("category") or ""),
            difficulty=Difficulty(data.get("difficulty")),
            attempts=[QuestionAttempt.from_dict(row) for row in data.get("attempts") or []],
            duration=int(data.get("duration") or 0),
            started_at=parse_datetime(data.get("started_at")) or utc_now(),
            status=SessionStatus(data.get("status") or SessionStatus.IN_PROGRESS.value),
            score=int(data.get("score") or 0),
            completed_at=parse_datetime(data.get("completed_at")),
            feedback_summary=FeedbackSummary.from_dict(summary) if isinstance(summary, dict) else None,
        )


def aggregate_score(session: Session) -> int:
    """Session score as a pure function of its attempts.

    Interviews average the per-question percent over every question, with
    unanswered ones counting as zero. Tests report the share of correct
    answers.
    """
    total = session.total_questions
    if not total:
        return 0
    if session.variant is SessionVariant.TEST:
        return round_half_up(session.correct_answers / total * 100)
    return round_half_up(mean([attempt.percent if attempt.answered else 0 for attempt in session.attempts]))
