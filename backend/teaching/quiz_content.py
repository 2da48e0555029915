"""
Quiz lesson content schema.

Quiz lessons store their questions in `lessons.content_data`. Validation runs
when an instructor saves a quiz; scoring reads the same shape back.
"""
from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

QUESTION_TYPES = (
    "True/False",
    "Single Choice",
    "Multiple Choice",
    "Open Ended",
    "Fill in the Blanks",
    "Sort Answer",
    "Matching",
    "Image Matching",
)

QuestionType = Literal[
    "True/False",
    "Single Choice",
    "Multiple Choice",
    "Open Ended",
    "Fill in the Blanks",
    "Sort Answer",
    "Matching",
    "Image Matching",
]

DEFAULT_PASSING_SCORE = 70


class QuizOption(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Union[str, int]
    text: str


# Single/Multiple Choice hold option ids, Sort Answer an id sequence (often ints),
# Fill in the Blanks maps blank id -> accepted answers, Matching maps left -> right.
CorrectAnswer = Union[bool, str, List[Union[str, int]], Dict[str, Union[str, List[str]]], None]


class QuizQuestion(BaseModel):
    # Type-specific fields (blanks, sortItems, matchingPairs, randomize) are stored as sent.
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str
    type: QuestionType
    question: str
    points: float = Field(gt=0)
    required: bool = True
    description: Optional[str] = None
    options: Optional[List[Union[str, QuizOption]]] = None
    correct_answer: CorrectAnswer = Field(default=None, alias="correctAnswer")
    explanation: Optional[str] = None
    image_url: Optional[str] = Field(default=None, alias="imageUrl")

    @field_validator("question")
    @classmethod
    def _non_empty(cls, v: str) -> str:
        if not isinstance(v, str) or not v.strip():
            raise ValueError("Question is required")
        return v

    @field_validator("correct_answer", mode="before")
    @classmethod
    def _string_keys(cls, v: Any) -> Any:
        # JSON object keys are strings; Python callers may pass ints for blank ids.
        if isinstance(v, dict):
            return {str(k): val for k, val in v.items()}
        return v


class QuizSettings(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    passing_score: float = Field(default=DEFAULT_PASSING_SCORE, ge=0, le=100, alias="passingScore")
    feedback_mode: Literal["default", "reveal", "retry"] = Field(default="default", alias="feedbackMode")
    randomize_questions: bool = Field(default=False, alias="randomizeQuestions")
    show_answers_after_submit: bool = Field(default=True, alias="showAnswersAfterSubmit")
    max_questions: Optional[int] = Field(default=None, ge=0, alias="maxQuestions")


class QuizContent(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    questions: List[QuizQuestion] = Field(min_length=1)
    settings: QuizSettings = Field(default_factory=QuizSettings)


def parse_quiz_content(data: Any) -> QuizContent:
    """Validate stored or submitted quiz data.

    Raises:
        ValueError with the first validation message; pydantic details stay
        internal.
    """
    if not isinstance(data, dict):
        raise ValueError("Quiz content must be an object")
    try:
        return QuizContent.model_validate(data)
    except ValidationError as exc:
        first = exc.errors()[0] if exc.errors() else {}
        loc = ".".join(str(p) for p in first.get("loc", ()))
        msg = first.get("msg") or "invalid quiz content"
        raise ValueError(f"Invalid quiz content: {loc}: {msg}" if loc else f"Invalid quiz content: {msg}") from exc


def normalize_quiz_content(data: Any) -> Dict[str, Any]:
    """Validate quiz data and return it in storage shape with computed metadata."""
    quiz = parse_quiz_content(data)
    total_points = sum(q.points for q in quiz.questions)
    out = quiz.model_dump(by_alias=True)
    out["metadata"] = {"totalPoints": total_points, "questionCount": len(quiz.questions)}
    return out


__all__ = [
    "DEFAULT_PASSING_SCORE",
    "QUESTION_TYPES",
    "QuizContent",
    "QuizOption",
    "QuizQuestion",
    "QuizSettings",
    "normalize_quiz_content",
    "parse_quiz_content",
]
