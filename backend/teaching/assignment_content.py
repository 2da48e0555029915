"""
Assignment lesson content schema.

Assignment lessons keep their grading and upload rules in
`lessons.content_data`; the editor form uses `summary` for the instructions.
"""
from __future__ import annotations

from typing import Any, Dict, List, Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

TIME_UNITS = ("minutes", "hours", "days", "weeks")

DEFAULT_TOTAL_POINTS = 100
DEFAULT_PASSING_POINTS = 70


class TimeLimit(BaseModel):
    value: float = Field(default=0, ge=0)
    unit: Literal["minutes", "hours", "days", "weeks"] = "weeks"


class AssignmentContent(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    instructions: str = ""
    attachments: List[Any] = Field(default_factory=list)
    time_limit: TimeLimit = Field(default_factory=TimeLimit, alias="timeLimit")
    total_points: float = Field(default=DEFAULT_TOTAL_POINTS, gt=0, alias="totalPoints")
    passing_points: float = Field(default=DEFAULT_PASSING_POINTS, ge=0, alias="passingPoints")
    max_uploads: int = Field(default=1, ge=1, alias="maxUploads")
    # Megabytes per uploaded file.
    max_file_size: float = Field(default=10, gt=0, alias="maxFileSize")
    due_date: Optional[str] = Field(default=None, alias="dueDate")

    @model_validator(mode="after")
    def _passing_within_total(self) -> "AssignmentContent":
        if self.passing_points > self.total_points:
            raise ValueError("passingPoints cannot exceed totalPoints")
        return self


_FORM_KEYS = ("attachments", "timeLimit", "totalPoints", "passingPoints", "maxUploads", "maxFileSize", "dueDate")


def parse_assignment_content(data: Any) -> AssignmentContent:
    """Validate assignment content; raises ValueError with the first message."""
    if not isinstance(data, dict):
        raise ValueError("Assignment content must be an object")
    try:
        return AssignmentContent.model_validate(data)
    except ValidationError as exc:
        first = exc.errors()[0] if exc.errors() else {}
        loc = ".".join(str(p) for p in first.get("loc", ()))
        msg = first.get("msg") or "invalid assignment content"
        raise ValueError(
            f"Invalid assignment content: {loc}: {msg}" if loc else f"Invalid assignment content: {msg}"
        ) from exc


def normalize_assignment_content(data: Any) -> Dict[str, Any]:
    return parse_assignment_content(data).model_dump(by_alias=True)


def assignment_form_to_content(form: Mapping[str, Any]) -> Dict[str, Any]:
    """Build `content_data` from the assignment editor form.

    Empty values fall back to the defaults, so a form that only carries a
    title still yields a complete assignment.
    """
    data: Dict[str, Any] = {k: form[k] for k in _FORM_KEYS if form.get(k) not in (None, "")}
    data["instructions"] = form.get("summary") or form.get("instructions") or ""
    return normalize_assignment_content(data)


def assignment_to_form(row: Mapping[str, Any]) -> Dict[str, Any]:
    """Translate an assignment lesson row into the editor form."""
    stored = row.get("content_data") if isinstance(row.get("content_data"), dict) else {}
    try:
        content = parse_assignment_content(stored)
    except ValueError:
        content = AssignmentContent()
    out = content.model_dump(by_alias=True)
    instructions = out.pop("instructions")
    return {
        "id": row.get("id"),
        "title": row.get("title"),
        "topicId": row.get("topic_id"),
        "summary": instructions or row.get("description") or "",
        **out,
    }


__all__ = [
    "AssignmentContent",
    "TIME_UNITS",
    "TimeLimit",
    "assignment_form_to_content",
    "assignment_to_form",
    "normalize_assignment_content",
    "parse_assignment_content",
]
