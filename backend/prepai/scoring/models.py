from dataclasses import dataclass, field


@dataclass
class AnswerFeedback:
    score: int = 0
    strengths: list[str] = field(default_factory=list)
    improvements: list[str] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)
    keyword_matches: int = 0
    keyword_missed: list[str] = field(default_factory=list)
    clarity_score: int = 0
    completeness_score: int = 0
    relevance_score: int = 0

    def to_dict(self) -> dict:
        return {
            "score": self.score,
            "strengths": list(self.strengths),
            "improvements": list(self.improvements),
            "suggestions": list(self.suggestions),
            "keyword_matches": self.keyword_matches,
            "keyword_missed": list(self.keyword_missed),
            "clarity_score": self.clarity_score,
            "completeness_score": self.completeness_score,
            "relevance_score": self.relevance_score,
        }

    @classmethod
    def from_dict(cls, data: dict | None) -> "AnswerFeedback":
        data = dict(data or {})
        return cls(
            score=int(data.get("score") or 0),
            strengths=[str(s) for s in data.get("strengths") or []],
            improvements=[str(s) for s in data.get("improvements") or []],
            suggestions=[str(s) for s in data.get("suggestions") or []],
            keyword_matches=int(data.get("keyword_matches") or 0),
            keyword_missed=[str(s) for s in data.get("keyword_missed") or []],
            clarity_score=int(data.get("clarity_score") or 0),
            completeness_score=int(data.get("completeness_score") or 0),
            relevance_score=int(data.get("relevance_score") or 0),
        )


@dataclass
class ScoreResult:
    """
    Outcome of scoring one answer.

    `score` is what gets recorded on the attempt: the earned points for
    binary kinds, the 0-100 quality score for free text. `percent` is the
    same result on a 0-100 scale for every kind.
    """
    score: int
    percent: int
    points_earned: int
    is_correct: bool | None
    feedback: AnswerFeedback
    keyword_matches: int = 0
    keyword_score: int = 0
    confidence_level: int = 0
    fallback: bool = False
