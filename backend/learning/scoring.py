"""
Quiz scoring.

Auto-graded types: True/False and Single Choice (exact match), Multiple
Choice (same members, same length), Fill in the Blanks (trimmed, case-insensitive,
either one string or a map of blank id to accepted answers).
Every other type earns 0 points and is flagged for manual review.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Sequence

from backend.teaching.quiz_content import QuizQuestion

AUTO_GRADED = frozenset({"True/False", "Single Choice", "Multiple Choice", "Fill in the Blanks"})


@dataclass
class QuestionResult:
    answer: Any
    is_correct: bool
    points: float
    needs_review: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "answer": self.answer,
            "isCorrect": self.is_correct,
            "points": self.points,
            "needsReview": self.needs_review,
        }


@dataclass
class ScoreResult:
    results: Dict[str, QuestionResult] = field(default_factory=dict)
    score: float = 0
    total_points: float = 0
    percentage: float = 0

    @property
    def needs_review(self) -> bool:
        return any(r.needs_review for r in self.results.values())

    def passed(self, passing_score: float) -> bool:
        return self.percentage >= passing_score


def _same_members(answer: List[Any], expected: List[Any]) -> bool:
    # Elements may be unhashable (nested lists from a malformed client), so no sets.
    if len(answer) != len(expected):
        return False
    return all(a in expected for a in answer) and all(e in answer for e in expected)


def _blank_matches(given: Any, accepted: Any) -> bool:
    if not isinstance(given, str):
        return False
    options = accepted if isinstance(accepted, list) else [accepted]
    return any(isinstance(o, str) and given.strip().lower() == o.strip().lower() for o in options)


def _is_correct(question: QuizQuestion, answer: Any) -> bool:
    expected = question.correct_answer
    if question.type in ("True/False", "Single Choice"):
        return answer is not None and answer == expected
    if question.type == "Multiple Choice":
        if not isinstance(answer, list) or not isinstance(expected, list):
            return False
        return _same_members(answer, expected)
    if question.type == "Fill in the Blanks":
        if isinstance(expected, dict):
            if not isinstance(answer, dict) or not expected:
                return False
            given = {str(k): v for k, v in answer.items()}
            return all(_blank_matches(given.get(blank), accepted) for blank, accepted in expected.items())
        if not isinstance(expected, str):
            return False
        return _blank_matches(answer, expected)
    return False


def score_answers(questions: Sequence[QuizQuestion], answers: Mapping[str, Any]) -> ScoreResult:
    """Grade `answers` (question id -> answer) against `questions`."""
    result = ScoreResult()
    for question in questions:
        answer = answers.get(question.id)
        correct = question.type in AUTO_GRADED and _is_correct(question, answer)
        earned = question.points if correct else 0
        result.results[question.id] = QuestionResult(
            answer=answer,
            is_correct=correct,
            points=earned,
            needs_review=question.type not in AUTO_GRADED,
        )
        result.score += earned
        result.total_points += question.points
    result.percentage = (result.score / result.total_points * 100) if result.total_points > 0 else 0
    return result


__all__ = ["AUTO_GRADED", "QuestionResult", "ScoreResult", "score_answers"]
