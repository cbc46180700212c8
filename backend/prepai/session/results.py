from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from prepai.session.models import Session


@dataclass
class SessionResults:
    session: Session
    pass_mark: int
    answers: list[dict] = field(default_factory=list)

    @property
    def is_passed(self) -> bool:
        return self.session.score >= self.pass_mark

    def to_dict(self) -> dict:
        session = self.session
        completed_at: datetime | None = session.completed_at
        return {
            "session_token": session.session_token,
            "category": session.category,
            "difficulty": session.difficulty.value,
            "status": session.status.value,
            "score": session.score,
            "percentage": session.score,
            "pass_mark": self.pass_mark,
            "is_passed": self.is_passed,
            "correct_answers": session.correct_answers,
            "total_questions": session.total_questions,
            "points_earned": sum(attempt.points_earned for attempt in session.attempts),
            "points_possible": sum(attempt.points for attempt in session.attempts),
            "time_spent": session.time_spent,
            "average_time_per_question": session.average_time_per_question,
            "completed_at": completed_at.isoformat() if completed_at else None,
            "answers": [dict(answer) for answer in self.answers],
        }


def build_session_results(session: Session, pass_mark: int) -> SessionResults:
    answers = [
        {
            "question_id": attempt.question_id,
            "order": attempt.order,
            "prompt": attempt.prompt,
            "kind": attempt.kind.value,
            "answered": attempt.answered,
            "selected_answer": attempt.answer,
            "is_correct": attempt.is_correct,
            "points_earned": attempt.points_earned,
            "points": attempt.points,
            "time_spent": attempt.time_taken,
        }
        for attempt in session.attempts
    ]
    return SessionResults(session=session, pass_mark=pass_mark, answers=answers)
