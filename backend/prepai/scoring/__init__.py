from prepai.scoring import text_metrics
from prepai.scoring.engine import SCORERS, AnswerScorer, fallback_result, normalize_answer, score_answer
from prepai.scoring.models import AnswerFeedback, ScoreResult

__all__ = [
    "AnswerFeedback",
    "AnswerScorer",
    "SCORERS",
    "ScoreResult",
    "fallback_result",
    "normalize_answer",
    "score_answer",
    "text_metrics",
]
