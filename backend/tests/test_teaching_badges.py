"""
Course badges: catalog enrichment, derived-badge rules and the service.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from backend.identity_access.stores import SessionRecord
from backend.teaching.authz import OwnershipAuthorizer
from backend.teaching.badges import derived_badges, enrich
from backend.teaching.services.badges import BadgesService

NOW = datetime(2025, 6, 1, tzinfo=timezone.utc)
OWNER = SessionRecord(session_id="o", email="owner@example.com")
OTHER = SessionRecord(session_id="x", email="other@example.com")


def test_enrich_drops_expired_and_unknown_and_sorts_by_priority():
    rows = [
        {"course_id": "c", "badge_type": "new"},
        {"course_id": "c", "badge_type": "sale"},
        {"course_id": "c", "badge_type": "bogus"},
        {"course_id": "c", "badge_type": "hot", "expires_at": (NOW - timedelta(days=1)).isoformat()},
    ]
    out = enrich(rows, NOW)
    assert [b["type"] for b in out] == ["sale", "new"]
    assert out[0]["tooltip"] == "On sale"


def test_derived_badges_rules():
    course = {
        "regular_price": 100,
        "discounted_price": 80,
        "created_at": (NOW - timedelta(days=3)).isoformat(),
        "is_featured": True,
        "featured_until": (NOW - timedelta(hours=1)).isoformat(),
        "course_settings": [{"certificate_enabled": True}],
    }
    assert derived_badges(course, NOW) == {"sale": True, "certified": True, "new": True, "featured": False}

    old = {"regular_price": 50, "discounted_price": None, "created_at": "2020-01-01T00:00:00+00:00"}
    assert derived_badges(old, NOW) == {"sale": False, "certified": False, "new": False, "featured": False}


@pytest.fixture
def ctx(teaching_repo):
    owner = teaching_repo.add_user(email="owner@example.com", role="instructor")
    teaching_repo.add_user(email="other@example.com", role="instructor")
    course = teaching_repo.create_course(owner["id"], {"title": "C", "regular_price": 100, "discounted_price": 50}, {"certificate_enabled": True})
    return BadgesService(teaching_repo, OwnershipAuthorizer(teaching_repo)), teaching_repo, course["id"]


def test_add_and_remove_badge(ctx):
    service, _, course_id = ctx
    assert service.add_badge(OWNER, course_id, "bestseller").success
    assert [b["type"] for b in service.get_course_badges(course_id).data["badges"]] == ["bestseller"]
    assert service.add_badge(OWNER, course_id, "shiny").kind.value == "validation"
    assert service.add_badge(OTHER, course_id, "hot").kind.value == "permission_denied"
    assert service.remove_badge(OWNER, course_id, "bestseller").success
    assert service.get_course_badges(course_id).data["badges"] == []


def test_toggle_featured_updates_course_and_badge(ctx):
    service, repo, course_id = ctx
    assert service.toggle_featured(OWNER, course_id, True).data == {"is_featured": True}
    assert repo.get_course(course_id)["is_featured"] is True
    assert "featured" in [b["type"] for b in service.get_course_badges(course_id).data["badges"]]
    service.toggle_featured(OWNER, course_id, False)
    assert "featured" not in [b["type"] for b in service.get_course_badges(course_id).data["badges"]]


def test_refresh_derives_badges_from_course(ctx):
    service, _, course_id = ctx
    service.add_badge(OWNER, course_id, "featured")
    assert service.refresh_course_badges(OWNER, course_id).success
    types = sorted(b["type"] for b in service.get_course_badges(course_id).data["badges"])
    # Fresh discounted course with certificates; not flagged as featured.
    assert types == ["certified", "new", "sale"]


def test_multiple_course_badges_are_grouped(ctx):
    service, _, course_id = ctx
    service.add_badge(OWNER, course_id, "hot")
    result = service.get_multiple_course_badges([course_id, course_id, "other"])
    assert list(result.data["badges"].keys()) == [course_id]
