from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

from prepai.core.state import Difficulty


AnswerValue = Union[str, int, bool]


class QuestionKind(str, Enum):
    BEHAVIORAL = "behavioral"
    TECHNICAL = "technical"
    SITUATIONAL = "situational"
    SYSTEM_DESIGN = "system_design"
    MULTIPLE_CHOICE = "multiple_choice"
    TRUE_FALSE = "true_false"
    FILL_BLANK = "fill_blank"
    CODING = "coding"
    ESSAY = "essay"

    @classmethod
    def parse(cls, value: Any) -> "QuestionKind":
        normalized = str(value or "").strip().lower().replace("-", "_").replace(" ", "_")
        return cls(normalized)

    @property
    def is_closed_form(self) -> bool:
        return self in CLOSED_FORM_KINDS

    @property
    def is_free_text(self) -> bool:
        return self in FREE_TEXT_KINDS


CLOSED_FORM_KINDS = frozenset({
    QuestionKind.MULTIPLE_CHOICE,
    QuestionKind.TRUE_FALSE,
    QuestionKind.FILL_BLANK,
})

FREE_TEXT_KINDS = frozenset({
    QuestionKind.BEHAVIORAL,
    QuestionKind.TECHNICAL,
    QuestionKind.SITUATIONAL,
    QuestionKind.SYSTEM_DESIGN,
    QuestionKind.ESSAY,
})

# coding carries a reference answer but is neither closed-form nor free-text
ANSWER_KEY_KINDS = CLOSED_FORM_KINDS | {QuestionKind.CODING}

DEFAULT_TIME_ALLOCATED = 120


@dataclass(frozen=True)
class QuestionDefinition:
    """
    Immutable question bank entry.

    `correct_answer` is present only for kinds with an answer key, and
    `expected_keywords` only for free-text kinds.
    """
    question_id: str
    prompt: str
    kind: QuestionKind
    category: str
    difficulty: Difficulty
    expected_keywords: tuple[str, ...] = ()
    correct_answer: AnswerValue | None = None
    options: tuple[str, ...] = ()
    time_allocated: int = DEFAULT_TIME_ALLOCATED
    points: int = 1
    explanation: str = ""
    tags: tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self):
        if not str(self.question_id or "").strip():
            raise ValueError("question_id is required")
        if not str(self.prompt or "").strip():
            raise ValueError(f"question {self.question_id}: prompt is required")
        if self.time_allocated <= 0:
            raise ValueError(f"question {self.question_id}: time_allocated must be positive")
        if self.points <= 0:
            raise ValueError(f"question {self.question_id}: points must be positive")

        if self.kind in ANSWER_KEY_KINDS:
            if self.correct_answer is None or (isinstance(self.correct_answer, str) and not self.correct_answer.strip()):
                raise ValueError(f"question {self.question_id}: {self.kind.value} requires correct_answer")
            if self.kind is QuestionKind.TRUE_FALSE and not isinstance(self.correct_answer, (bool, str)):
                raise ValueError(f"question {self.question_id}: true_false correct_answer must be bool or str")
            if self.kind is QuestionKind.MULTIPLE_CHOICE and not self.options:
                raise ValueError(f"question {self.question_id}: multiple_choice requires options")
        elif self.correct_answer is not None:
            raise ValueError(f"question {self.question_id}: {self.kind.value} must not carry correct_answer")

        if self.kind.is_free_text:
            if not [k for k in self.expected_keywords if str(k or "").strip()]:
                raise ValueError(f"question {self.question_id}: {self.kind.value} requires expected_keywords")
        elif self.expected_keywords:
            raise ValueError(f"question {self.question_id}: {self.kind.value} must not carry expected_keywords")

    @classmethod
    def from_dict(cls, data: dict) -> "QuestionDefinition":
        kind = QuestionKind.parse(data.get("kind") or data.get("question_type"))
        keywords = data.get("expected_keywords") or []
        return cls(
            question_id=str(data.get("question_id") or data.get("id") or "").strip(),
            prompt=str(data.get("prompt") or data.get("question_text") or "").strip(),
            kind=kind,
            category=str(data.get("category") or "").strip().lower(),
            difficulty=Difficulty(str(data.get("difficulty") or "").strip().lower()),
            # duplicate keywords are collapsed, order kept
            expected_keywords=tuple(dict.fromkeys(str(k).strip() for k in keywords if str(k or "").strip())),
            correct_answer=data.get("correct_answer"),
            options=tuple(str(o) for o in (data.get("options") or [])),
            time_allocated=int(data.get("time_allocated") or data.get("time_limit") or DEFAULT_TIME_ALLOCATED),
            points=int(data.get("points") or 1),
            explanation=str(data.get("explanation") or ""),
            tags=tuple(dict.fromkeys(str(t).strip() for t in (data.get("tags") or []) if str(t or "").strip())),
        )

    def to_dict(self) -> dict:
        return {
            "question_id": self.question_id,
            "prompt": self.prompt,
            "kind": self.kind.value,
            "category": self.category,
            "difficulty": self.difficulty.value,
            "expected_keywords": list(self.expected_keywords),
            "correct_answer": self.correct_answer,
            "options": list(self.options),
            "time_allocated": self.time_allocated,
            "points": self.points,
            "explanation": self.explanation,
            "tags": list(self.tags),
        }
