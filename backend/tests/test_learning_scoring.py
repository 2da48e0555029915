"""
Quiz content validation and scoring rules per question type.
"""
from __future__ import annotations

import pytest

from backend.learning.scoring import score_answers
from backend.teaching.quiz_content import normalize_quiz_content, parse_quiz_content

QUIZ = {
    "questions": [
        {"id": "tf", "type": "True/False", "question": "?", "points": 1, "correctAnswer": True},
        {"id": "sc", "type": "Single Choice", "question": "?", "points": 2, "options": ["a", "b"], "correctAnswer": "b"},
        {"id": "mc", "type": "Multiple Choice", "question": "?", "points": 3, "correctAnswer": ["a", "c"]},
        {"id": "fb", "type": "Fill in the Blanks", "question": "?", "points": 2, "correctAnswer": "Paris"},
        {"id": "oe", "type": "Open Ended", "question": "?", "points": 2},
    ]
}


def test_all_correct_auto_graded_answers():
    quiz = parse_quiz_content(QUIZ)
    result = score_answers(quiz.questions, {"tf": True, "sc": "b", "mc": ["c", "a"], "fb": "  paris ", "oe": "essay"})
    assert result.score == 8
    assert result.total_points == 10
    assert result.percentage == 80
    assert result.needs_review is True
    assert result.results["oe"].to_dict() == {"answer": "essay", "isCorrect": False, "points": 0, "needsReview": True}
    assert result.passed(70) and not result.passed(90)


def test_wrong_and_missing_answers_score_zero():
    quiz = parse_quiz_content(QUIZ)
    result = score_answers(quiz.questions, {"tf": False, "mc": ["a"], "fb": 7})
    assert result.score == 0
    assert result.results["sc"].answer is None


def test_multiple_choice_rejects_duplicates_padding():
    quiz = parse_quiz_content(QUIZ)
    result = score_answers(quiz.questions, {"mc": ["a", "a", "c"]})
    assert result.results["mc"].is_correct is False


def test_normalize_adds_metadata_and_default_settings():
    out = normalize_quiz_content(QUIZ)
    assert out["metadata"] == {"totalPoints": 10, "questionCount": 5}
    assert out["settings"]["passingScore"] == 70
    assert out["questions"][0]["correctAnswer"] is True


@pytest.mark.parametrize(
    "data",
    [
        None,
        {"questions": []},
        {"questions": [{"id": "q", "type": "Essay", "question": "?", "points": 1}]},
        {"questions": [{"id": "q", "type": "Open Ended", "question": " ", "points": 1}]},
        {"questions": [{"id": "q", "type": "Open Ended", "question": "?", "points": 0}]},
        {"questions": [{"id": "q", "type": "Open Ended", "question": "?", "points": 1}], "settings": {"passingScore": 120}},
    ],
)
def test_invalid_quiz_content(data):
    with pytest.raises(ValueError) as exc:
        parse_quiz_content(data)
    assert "quiz content" in str(exc.value).lower()


def test_multiple_choice_with_unhashable_elements_is_just_wrong():
    quiz = parse_quiz_content(QUIZ)
    result = score_answers(quiz.questions, {"mc": [["a"], ["c"]]})
    assert result.results["mc"].is_correct is False
    assert result.score == 0


BLANKS = {
    "questions": [
        {
            "id": "fb",
            "type": "Fill in the Blanks",
            "question": "State hook is [1], effect hook is [2].",
            "points": 4,
            "blanks": [{"id": 1, "answers": ["useState"]}, {"id": 2, "answers": ["useEffect"]}],
            "correctAnswer": {1: ["useState"], 2: ["useEffect", "useLayoutEffect"]},
        }
    ]
}


@pytest.mark.parametrize(
    "answer, correct",
    [
        ({"1": " usestate ", "2": "useLayoutEffect"}, True),
        ({1: "useState", 2: "useEffect"}, True),
        ({"1": "useState"}, False),
        ({"1": "useState", "2": "useMemo"}, False),
        ("useState", False),
    ],
)
def test_fill_in_the_blanks_by_blank_id(answer, correct):
    quiz = parse_quiz_content(BLANKS)
    assert quiz.questions[0].correct_answer == {"1": ["useState"], "2": ["useEffect", "useLayoutEffect"]}
    result = score_answers(quiz.questions, {"fb": answer})
    assert result.results["fb"].is_correct is correct
