"""
Certificate eligibility and identifiers.

Eligibility checks run in order and stop at the first failing rule:
    1. certificates enabled for the course
    2. enrollment progress is 100
    3. when a passing grade is set and quiz scores exist, their average meets it
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
import secrets
import string
from typing import List, Optional, Sequence

VERIFICATION_ALPHABET = string.ascii_uppercase + string.digits
VERIFICATION_CODE_LENGTH = 6


@dataclass
class Eligibility:
    eligible: bool
    reasons: List[str] = field(default_factory=list)


def check_eligibility(
    *,
    certificate_enabled: bool,
    progress: Optional[int],
    passing_grade: Optional[int] = None,
    quiz_scores: Sequence[float] = (),
) -> Eligibility:
    if not certificate_enabled:
        return Eligibility(False, ["Certificate not enabled for this course"])
    if progress is None or progress < 100:
        return Eligibility(False, ["Course not completed"])
    if passing_grade and quiz_scores:
        average = sum(quiz_scores) / len(quiz_scores)
        if average < passing_grade:
            return Eligibility(False, [f"Score {average:.0f}% is below passing grade {passing_grade}%"])
    return Eligibility(True)


def make_certificate_number(course_id: str, user_id: str, now: Optional[datetime] = None) -> str:
    """CERT-{last8 course}-{last8 user}-{epoch millis}, upper-cased."""
    ts = now or datetime.now(timezone.utc)
    millis = int(ts.timestamp() * 1000)
    return f"CERT-{course_id[-8:]}-{user_id[-8:]}-{millis}".upper()


def make_verification_code() -> str:
    return "".join(secrets.choice(VERIFICATION_ALPHABET) for _ in range(VERIFICATION_CODE_LENGTH))


__all__ = [
    "Eligibility",
    "VERIFICATION_CODE_LENGTH",
    "check_eligibility",
    "make_certificate_number",
    "make_verification_code",
]
