"""Certificate issuing, listing and public verification.

PDF rendering happens elsewhere; this service owns eligibility, identifiers
and the one-certificate-per-(user, course) rule.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Any, Dict, List, Mapping, Optional, Protocol

from backend.learning.certificates import check_eligibility, make_certificate_number, make_verification_code
from backend.learning.config import LearningConfig
from backend.teaching.authz import OwnershipAuthorizer
from backend.teaching.errors import (
    ActionResult,
    action,
    conflict,
    feature_disabled,
    invalid,
    not_found,
)

logger = logging.getLogger("lectern.learning.certificates")

ALREADY_ISSUED = "Certificate already issued for this course"
DISABLED = "Certificates are not enabled"
ISSUE_ATTEMPTS = 3


class CertificatesRepoProtocol(Protocol):
    def get_enrollment(self, user_id: str, course_id: str) -> Optional[dict]:
        ...

    def best_quiz_percentages(self, user_id: str, course_id: str) -> List[float]:
        ...

    def get_certificate_for(self, user_id: str, course_id: str) -> Optional[dict]:
        ...

    def create_certificate(self, fields: Dict[str, Any]) -> dict:
        ...

    def list_certificates_for_user(self, user_id: str) -> List[dict]:
        ...

    def get_certificate_by_number(self, number: str) -> Optional[dict]:
        ...

    def get_certificate_by_code(self, code: str) -> Optional[dict]:
        ...


class SettingsCatalogProtocol(Protocol):
    def get_course_with_settings(self, course_id: str) -> Optional[dict]:
        ...


def _settings(course: Mapping[str, Any]) -> Mapping[str, Any]:
    rel = course.get("course_settings") or []
    return rel[0] if rel else {}


def _public_view(row: Mapping[str, Any]) -> dict:
    metadata = row.get("metadata") or {}
    course = row.get("course") or {}
    student = row.get("student") or {}
    return {
        "certificateNumber": row["certificate_number"],
        "studentName": student.get("full_name") or metadata.get("studentName"),
        "courseName": course.get("title") or metadata.get("courseName"),
        "issuedDate": row.get("issued_date"),
        "status": row.get("status"),
    }


@dataclass
class CertificatesService:
    repo: CertificatesRepoProtocol
    catalog: SettingsCatalogProtocol
    authorizer: OwnershipAuthorizer
    config: LearningConfig = field(default_factory=LearningConfig)

    def _insert_certificate(self, user_id: str, course_id: str, metadata: Dict[str, Any]) -> dict:
        """Insert with fresh identifiers, retrying when a number or code is already taken."""
        for attempt in range(1, ISSUE_ATTEMPTS + 1):
            fields = {
                "user_id": user_id,
                "course_id": course_id,
                "certificate_number": make_certificate_number(course_id, user_id),
                "verification_code": make_verification_code(),
                "metadata": metadata,
            }
            try:
                return self.repo.create_certificate(fields)
            except ValueError as exc:
                if str(exc) == "certificate_exists":
                    raise conflict(ALREADY_ISSUED) from exc
                if str(exc) != "identifier_collision" or attempt == ISSUE_ATTEMPTS:
                    raise
                logger.warning("certificate identifier collision user=%s course=%s attempt=%d", user_id, course_id, attempt)
        raise ValueError("identifier_collision")

    @action("Failed to issue certificate", logger=logger)
    def issue_certificate(self, session, course_id: str) -> ActionResult:
        if not self.config.certificate_enabled:
            raise feature_disabled(DISABLED)
        principal = self.authorizer.resolve_principal(session)
        if self.repo.get_certificate_for(principal.id, course_id) is not None:
            raise conflict(ALREADY_ISSUED)
        course = self.catalog.get_course_with_settings(course_id)
        if course is None:
            raise not_found("Course not found")
        enrollment = self.repo.get_enrollment(principal.id, course_id)
        if enrollment is None:
            raise invalid("You are not enrolled in this course")

        settings = _settings(course)
        verdict = check_eligibility(
            certificate_enabled=bool(settings.get("certificate_enabled")),
            progress=enrollment.get("progress"),
            passing_grade=settings.get("passing_grade"),
            quiz_scores=self.repo.best_quiz_percentages(principal.id, course_id),
        )
        if not verdict.eligible:
            raise invalid(", ".join(verdict.reasons))

        metadata = {
            "courseName": course.get("title"),
            "certificateTitle": settings.get("certificate_title"),
            "completionDate": enrollment.get("completed_at"),
        }
        row = self._insert_certificate(principal.id, course_id, metadata)
        logger.info("certificate issued user=%s course=%s number=%s", principal.id, course_id, row["certificate_number"])
        return ActionResult.ok(
            certificate={
                "id": row["id"],
                "certificateNumber": row["certificate_number"],
                "verificationCode": row["verification_code"],
                "issuedDate": row.get("issued_date"),
            }
        )

    @action("Failed to fetch certificates", logger=logger)
    def list_my_certificates(self, session) -> ActionResult:
        principal = self.authorizer.resolve_principal(session)
        if not self.config.certificate_enabled:
            return ActionResult.ok(certificates=[])
        return ActionResult.ok(certificates=self.repo.list_certificates_for_user(principal.id))

    @action("Failed to fetch certificate", logger=logger)
    def get_certificate_by_number(self, number: str) -> ActionResult:
        if not self.config.certificate_enabled:
            raise feature_disabled(DISABLED)
        row = self.repo.get_certificate_by_number((number or "").strip().upper())
        if row is None:
            raise not_found("Certificate not found")
        return ActionResult.ok(certificate=_public_view(row))

    @action("Failed to verify certificate", logger=logger)
    def verify_certificate(self, code: str) -> ActionResult:
        if not self.config.certificate_enabled:
            raise feature_disabled(DISABLED)
        needle = (code or "").strip().upper()
        row = self.repo.get_certificate_by_code(needle) or self.repo.get_certificate_by_number(needle)
        if row is None:
            return ActionResult.ok(valid=False, certificate=None)
        return ActionResult.ok(valid=row.get("status") == "active", certificate=_public_view(row))


__all__ = ["ALREADY_ISSUED", "CertificatesRepoProtocol", "CertificatesService"]
