from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from prepai import events
from prepai.core import config
from prepai.core.clock import utc_now
from prepai.core.state import CompletionReason, Difficulty, SessionStatus, SessionVariant
from prepai.feedback.aggregator import build_feedback_summary
from prepai.feedback.models import FeedbackSummary
from prepai.questions.models import AnswerValue
from prepai.scoring.engine import score_answer
from prepai.scoring.models import AnswerFeedback
from prepai.session.errors import (
    NoQuestionsAvailable,
    QuestionNotFound,
    SessionAlreadyTerminal,
    SessionNotActive,
    SessionNotFound,
    SessionNotTerminal,
    UserNotFound,
)
from prepai.session.models import QuestionAttempt, Session, SessionSummary
from prepai.session.results import SessionResults, build_session_results
from prepai.store.content_store import ContentStore, SessionFilter
from prepai.users.stats import UserStatistics, apply_completion

logger = logging.getLogger("prepai.session.lifecycle")

DEFAULT_QUESTION_COUNT = 5


@dataclass
class StartedSession:
    session: Session
    first_question: dict | None

    def to_dict(self) -> dict:
        return {
            "session_id": self.session.session_id,
            "session_token": self.session.session_token,
            "variant": self.session.variant.value,
            "category": self.session.category,
            "difficulty": self.session.difficulty.value,
            "status": self.session.status.value,
            "total_questions": self.session.total_questions,
            "duration": self.session.duration,
            "started_at": self.session.started_at.isoformat(),
            "first_question": self.first_question,
        }


@dataclass
class AnswerOutcome:
    attempt: QuestionAttempt
    feedback: AnswerFeedback
    next_question: dict | None
    is_complete: bool
    current_score: int
    progress: dict

    def to_dict(self) -> dict:
        return {
            "question_id": self.attempt.question_id,
            "score": self.attempt.score,
            "is_correct": self.attempt.is_correct,
            "points_earned": self.attempt.points_earned,
            "feedback": self.feedback.to_dict(),
            "next_question": self.next_question,
            "is_complete": self.is_complete,
            "current_score": self.current_score,
            "progress": dict(self.progress),
        }


def terminal_status_for(variant: SessionVariant, reason: CompletionReason) -> SessionStatus:
    if reason is CompletionReason.COMPLETED:
        return SessionStatus.COMPLETED
    if reason is CompletionReason.TIMEOUT and variant is SessionVariant.TEST:
        return SessionStatus.TIMEOUT
    # interviews have no timeout state; an expired interview is abandoned
    return SessionStatus.ABANDONED


class SessionLifecycleManager:
    """
    Drives a practice session from start to completion.

    Every mutation runs inside the store's atomic `update_session`, against
    the latest stored state. A failed call never leaves a half-recorded
    attempt behind, and answers to different questions of one session may
    arrive concurrently without losing each other.
    """

    def __init__(self, store: ContentStore, clock: Callable[[], datetime] | None = None):
        self._store = store
        self._clock = clock or utc_now

    async def _load(self, owner_id: str, session_token: str) -> Session:
        session = await self._store.get_session_by_token(session_token, owner_id)
        if session is None:
            raise SessionNotFound()
        return session

    async def start_session(
        self,
        owner_id: str,
        variant: SessionVariant | str,
        category: str,
        difficulty: Difficulty | str,
        question_count: int = DEFAULT_QUESTION_COUNT,
        time_limit: int | None = None,
    ) -> StartedSession:
        owner = str(owner_id or "").strip()
        if not owner:
            raise UserNotFound()

        variant = SessionVariant(variant)
        difficulty = Difficulty(difficulty)
        category = str(category or "").strip().lower()
        count = max(1, int(question_count or DEFAULT_QUESTION_COUNT))

        questions = await self._store.find_questions(category, difficulty.value, count)
        if not questions:
            raise NoQuestionsAvailable(
                f"No questions available for category={category} difficulty={difficulty.value}"
            )

        # time_limit is minutes; the default is the sum of per-question allocations
        duration = int(time_limit) * 60 if time_limit else None
        session = Session.create(
            owner_id=owner,
            variant=variant,
            category=category,
            difficulty=difficulty,
            questions=questions,
            duration=duration,
            started_at=self._clock(),
        )
        await self._store.save_session(session)

        events.emit(
            events.SESSION_STARTED,
            owner,
            session.session_token,
            variant=variant.value,
            category=category,
            difficulty=difficulty.value,
            total_questions=session.total_questions,
            duration=session.duration,
        )
        first = session.attempts[0].public_view() if session.attempts else None
        return StartedSession(session=session, first_question=first)

    async def submit_answer(
        self,
        owner_id: str,
        session_token: str,
        question_id: str,
        answer: AnswerValue,
        time_taken: int,
    ) -> AnswerOutcome:
        stored = await self._load(owner_id, session_token)
        if stored.status is not SessionStatus.IN_PROGRESS:
            raise SessionNotActive()
        if stored.find_attempt(question_id) is None:
            raise QuestionNotFound()
        question = await self._store.get_question(question_id)
        if question is None:
            raise QuestionNotFound(f"Question {question_id} is no longer in the question bank")

        result = score_answer(question, answer)
        answered_at = self._clock()

        def record(session: Session) -> None:
            # the session may have ended while the answer was being scored
            if session.status is not SessionStatus.IN_PROGRESS:
                raise SessionNotActive()
            session.find_attempt(question_id).record(result, answer, time_taken, session.variant, answered_at)
            session.recompute_score()

        session = await self._store.update_session(session_token, owner_id, record)
        if session is None:
            raise SessionNotFound()
        attempt = session.find_attempt(question_id)
        following = session.next_unanswered(attempt.order)

        events.emit(
            events.ANSWER_SUBMITTED,
            session.owner_id,
            session.session_token,
            question_id=attempt.question_id,
            score=attempt.score,
            is_correct=attempt.is_correct,
            time_taken=attempt.time_taken,
            current_score=session.score,
            fallback=attempt.scoring_fallback,
        )
        return AnswerOutcome(
            attempt=attempt,
            feedback=attempt.feedback or result.feedback,
            next_question=following.public_view() if following else None,
            is_complete=session.is_fully_answered,
            current_score=session.score,
            progress={
                "answered": session.answered_questions,
                "total": session.total_questions,
                "completion_rate": session.completion_rate,
            },
        )

    async def complete_session(
        self,
        owner_id: str,
        session_token: str,
        reason: CompletionReason | str = CompletionReason.COMPLETED,
    ) -> Session:
        reason = CompletionReason(reason)
        now = self._clock()

        def finish(session: Session) -> None:
            if session.status.is_terminal:
                raise SessionAlreadyTerminal()
            session.status = terminal_status_for(session.variant, reason)
            session.completed_at = now
            session.recompute_score()
            if session.status is SessionStatus.COMPLETED:
                session.feedback_summary = build_feedback_summary(session, now=now)

        session = await self._store.update_session(session_token, owner_id, finish)
        if session is None:
            raise SessionNotFound()

        if session.status is SessionStatus.COMPLETED:
            await self._update_statistics(session, now)

        events.emit(
            events.SESSION_COMPLETED,
            session.owner_id,
            session.session_token,
            reason=reason.value,
            status=session.status.value,
            score=session.score,
            total_score=session.feedback_summary.total_score if session.feedback_summary else None,
            answered_questions=session.answered_questions,
            total_questions=session.total_questions,
            time_spent=session.time_spent,
        )
        return session

    async def _update_statistics(self, session: Session, now: datetime) -> None:
        try:
            await self._store.update_user_stats(
                session.owner_id,
                lambda current: apply_completion(current, session, now.date()),
            )
        except Exception as exc:
            logger.warning(
                "user statistics update failed | owner=%s session=%s error=%s",
                session.owner_id,
                session.session_token,
                exc,
            )

    async def get_session(self, owner_id: str, session_token: str) -> Session:
        return await self._load(owner_id, session_token)

    async def get_feedback(self, owner_id: str, session_token: str) -> FeedbackSummary:
        session = await self._load(owner_id, session_token)
        if not session.status.is_terminal:
            raise SessionNotTerminal()
        return build_feedback_summary(session, now=self._clock())

    async def get_test_results(self, owner_id: str, session_token: str) -> SessionResults:
        session = await self._load(owner_id, session_token)
        if session.variant is not SessionVariant.TEST:
            raise SessionNotFound()
        if not session.status.is_terminal:
            raise SessionNotTerminal("Results are available once the test has ended")
        return build_session_results(session, config.TEST_PASS_MARK)

    async def list_sessions(
        self,
        owner_id: str,
        variant: SessionVariant | str | None = None,
        status: SessionStatus | str | None = None,
        category: str | None = None,
        limit: int = 10,
        offset: int = 0,
    ) -> list[SessionSummary]:
        session_filter = SessionFilter(
            variant=SessionVariant(variant) if variant else None,
            status=SessionStatus(status) if status else None,
            category=str(category).strip().lower() if category else None,
            limit=max(1, int(limit or 10)),
            offset=max(0, int(offset or 0)),
        )
        sessions = await self._store.list_sessions(owner_id, session_filter)
        return [session.summary() for session in sessions]

    async def get_user_statistics(self, owner_id: str) -> UserStatistics:
        owner = str(owner_id or "").strip()
        if not owner:
            raise UserNotFound()
        return await self._store.get_user_stats(owner) or UserStatistics(owner_id=owner)
