from __future__ import annotations

import logging
from typing import Any, Protocol

from prepai.questions.models import AnswerValue, QuestionDefinition, QuestionKind
from prepai.scoring import text_metrics
from prepai.scoring.models import AnswerFeedback, ScoreResult

logger = logging.getLogger("prepai.scoring.engine")

FREE_TEXT_FALLBACK_SCORE = 50


class AnswerScorer(Protocol):
    def score(self, question: QuestionDefinition, answer: Any) -> ScoreResult:
        ...


def normalize_answer(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip().casefold()


def _binary_result(question: QuestionDefinition, is_correct: bool) -> ScoreResult:
    points = question.points if is_correct else 0
    feedback = AnswerFeedback(score=points)
    if is_correct:
        feedback.strengths.append("Correct answer")
    else:
        feedback.improvements.append("Review this topic and try again")
    if question.explanation:
        feedback.suggestions.append(question.explanation)
    return ScoreResult(
        score=points,
        percent=100 if is_correct else 0,
        points_earned=points,
        is_correct=is_correct,
        feedback=feedback,
    )


class ChoiceScorer:
    """Multiple-choice and true/false: exact match after normalization."""

    def accepted_answers(self, question: QuestionDefinition) -> set[str]:
        expected = question.correct_answer
        accepted = {normalize_answer(expected)}
        # an integer key on a multiple-choice question is an option index
        if (
            question.kind is QuestionKind.MULTIPLE_CHOICE
            and isinstance(expected, int)
            and not isinstance(expected, bool)
            and 0 <= expected < len(question.options)
        ):
            accepted.add(normalize_answer(question.options[expected]))
        return accepted

    def score(self, question: QuestionDefinition, answer: Any) -> ScoreResult:
        is_correct = normalize_answer(answer) in self.accepted_answers(question)
        return _binary_result(question, is_correct)


class FillBlankScorer:
    def score(self, question: QuestionDefinition, answer: Any) -> ScoreResult:
        submitted = str(answer if answer is not None else "").strip().lower()
        expected = str(question.correct_answer).strip().lower()
        return _binary_result(question, submitted == expected)


class CodingScorer:
    # Substring containment stands in for running the submission against tests.
    def score(self, question: QuestionDefinition, answer: Any) -> ScoreResult:
        submitted = str(answer if answer is not None else "").lower()
        expected = str(question.correct_answer).lower()
        return _binary_result(question, bool(expected) and expected in submitted)


class FreeTextScorer:
    def feedback_phrases(self, score: int, matched: int, keywords: tuple[str, ...]) -> tuple[list[str], list[str], list[str]]:
        strengths: list[str] = []
        improvements: list[str] = []
        suggestions: list[str] = []
        total = len(keywords)

        if score >= 80:
            strengths.append("Excellent technical knowledge")
            strengths.append("Clear and well-structured response")
            if matched >= total * 0.8:
                strengths.append("Comprehensive coverage of key concepts")
        elif score >= 60:
            strengths.append("Good understanding of the topic")
            if score < 70:
                improvements.append("Provide more specific examples")
                suggestions.append("Try to include more technical details")
        else:
            improvements.append("Need to improve technical knowledge")
            improvements.append("Provide more detailed explanations")
            suggestions.append("Review the fundamentals of this topic")
            suggestions.append("Practice explaining concepts out loud")

        if matched < total * 0.5:
            improvements.append("Cover more key concepts")
            suggestions.append("Focus on the main topics: " + ", ".join(keywords[:3]))

        return strengths, improvements, suggestions

    def score(self, question: QuestionDefinition, answer: Any) -> ScoreResult:
        text = str(answer if answer is not None else "")
        keywords = question.expected_keywords
        matched, missed = text_metrics.split_keywords(text, keywords)

        keyword = text_metrics.keyword_score(len(matched), len(keywords))
        clarity = text_metrics.clarity_score(text)
        completeness = text_metrics.completeness_score(text, question.prompt)
        relevance = text_metrics.relevance_score(text, question.prompt)
        overall = text_metrics.overall_score(keyword, clarity, completeness, relevance)

        strengths, improvements, suggestions = self.feedback_phrases(overall, len(matched), keywords)
        feedback = AnswerFeedback(
            score=overall,
            strengths=strengths,
            improvements=improvements,
            suggestions=suggestions,
            keyword_matches=len(matched),
            keyword_missed=missed,
            clarity_score=text_metrics.round_half_up(clarity),
            completeness_score=text_metrics.round_half_up(completeness),
            relevance_score=text_metrics.round_half_up(relevance),
        )
        return ScoreResult(
            score=overall,
            percent=overall,
            points_earned=0,
            is_correct=None,
            feedback=feedback,
            keyword_matches=len(matched),
            keyword_score=text_metrics.round_half_up(keyword),
            confidence_level=text_metrics.confidence_level(overall, len(text)),
        )


_choice = ChoiceScorer()
_free_text = FreeTextScorer()

SCORERS: dict[QuestionKind, AnswerScorer] = {
    QuestionKind.MULTIPLE_CHOICE: _choice,
    QuestionKind.TRUE_FALSE: _choice,
    QuestionKind.FILL_BLANK: FillBlankScorer(),
    QuestionKind.CODING: CodingScorer(),
    QuestionKind.BEHAVIORAL: _free_text,
    QuestionKind.TECHNICAL: _free_text,
    QuestionKind.SITUATIONAL: _free_text,
    QuestionKind.SYSTEM_DESIGN: _free_text,
    QuestionKind.ESSAY: _free_text,
}


def fallback_result(question: QuestionDefinition) -> ScoreResult:
    free_text = question.kind.is_free_text
    score = FREE_TEXT_FALLBACK_SCORE if free_text else 0
    feedback = AnswerFeedback(
        score=score,
        strengths=["Attempted to answer the question"],
        improvements=["Provide more detailed explanation"],
        suggestions=["Practice explaining concepts clearly"],
        keyword_matches=0,
        keyword_missed=list(question.expected_keywords),
        clarity_score=FREE_TEXT_FALLBACK_SCORE if free_text else 0,
        completeness_score=FREE_TEXT_FALLBACK_SCORE if free_text else 0,
        relevance_score=FREE_TEXT_FALLBACK_SCORE if free_text else 0,
    )
    return ScoreResult(
        score=score,
        percent=score,
        points_earned=0,
        is_correct=None if free_text else False,
        feedback=feedback,
        keyword_matches=0,
        keyword_score=0,
        confidence_level=30 if free_text else 0,
        fallback=True,
    )


def score_answer(question: QuestionDefinition, answer: AnswerValue | None) -> ScoreResult:
    """Score one answer. Never raises; scoring failures yield the fallback result."""
    try:
        scorer = SCORERS[question.kind]
        return scorer.score(question, answer)
    except Exception:
        logger.exception(
            "scoring failed, using fallback | question_id=%s kind=%s",
            getattr(question, "question_id", ""),
            getattr(getattr(question, "kind", None), "value", ""),
        )
        return fallback_result(question)
