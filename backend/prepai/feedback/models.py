from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from prepai.core.clock import parse_datetime, utc_now
from prepai.core.state import OverallRating

CATEGORY_NAMES = (
    "communication",
    "technical_knowledge",
    "confidence",
    "clarity",
    "problem_solving",
    "time_management",
)


@dataclass
class FeedbackSummary:
    total_score: int
    category_scores: dict[str, int]
    strengths: list[str] = field(default_factory=list)
    areas_for_improvement: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    next_steps: list[str] = field(default_factory=list)
    overall_rating: OverallRating = OverallRating.NEEDS_IMPROVEMENT
    detailed_analysis: str = ""
    generated_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict:
        return {
            "total_score": self.total_score,
            "category_scores": {name: int(self.category_scores.get(name, 0)) for name in CATEGORY_NAMES},
            "strengths": list(self.strengths),
            "areas_for_improvement": list(self.areas_for_improvement),
            "recommendations": list(self.recommendations),
            "next_steps": list(self.next_steps),
            "overall_rating": self.overall_rating.value,
            "detailed_analysis": self.detailed_analysis,
            "generated_at": self.generated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "FeedbackSummary":
        scores = dict(data.get("category_scores") or {})
        return cls(
            total_score=int(data.get("total_score") or 0),
            category_scores={name: int(scores.get(name) or 0) for name in CATEGORY_NAMES},
            strengths=[str(s) for s in data.get("strengths") or []],
            areas_for_improvement=[str(s) for s in data.get("areas_for_improvement") or []],
            recommendations=[str(s) for s in data.get("recommendations") or []],
            next_steps=[str(s) for s in data.get("next_steps") or []],
            overall_rating=OverallRating(data.get("overall_rating") or OverallRating.NEEDS_IMPROVEMENT.value),
            detailed_analysis=str(data.get("detailed_analysis") or ""),
            generated_at=parse_datetime(data.get("generated_at")) or utc_now(),
        )
