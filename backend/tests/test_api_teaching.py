"""
Teaching API over ASGI: courses, lessons, security headers and CSRF.
"""
from __future__ import annotations

import pytest
import httpx
from httpx import ASGITransport

pytestmark = pytest.mark.anyio


async def _client(main, email: str | None = None) -> httpx.AsyncClient:
    client = httpx.AsyncClient(transport=ASGITransport(app=main.app), base_url="http://test")
    if email:
        rec = main.SESSION_STORE.create(email=email)
        client.cookies.set(main.SESSION_COOKIE_NAME, rec.session_id)
    return client


@pytest.fixture
def instructor(teaching_repo):
    return teaching_repo.add_user(email="teacher@example.com", role="instructor")


async def test_health_and_security_headers(wired_app):
    async with await _client(wired_app) as client:
        r = await client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}
    assert r.headers["X-Frame-Options"] == "DENY"
    assert r.headers["Cache-Control"] == "private, no-store"
    assert "Strict-Transport-Security" not in r.headers


async def test_unauthenticated_requests_get_401(wired_app):
    async with await _client(wired_app) as client:
        r = await client.get("/api/courses")
    assert r.status_code == 401
    assert r.json()["kind"] == "unauthorized"


async def test_course_and_lesson_flow(wired_app, instructor):
    async with await _client(wired_app, "teacher@example.com") as client:
        r = await client.post("/api/courses", json={"title": "Python", "price": "49"})
        assert r.status_code == 201
        course_id = r.json()["courseId"]
        assert r.headers["Cache-Control"] == "private, no-store"

        ids = []
        for title in ("One", "Two", "Three"):
            r = await client.post(f"/api/courses/{course_id}/lessons", json={"title": title, "courseId": "ignored"})
            assert r.status_code == 201
            ids.append(r.json()["lessonId"])

        r = await client.post(
            f"/api/courses/{course_id}/lessons/reorder",
            json={"lessons": [{"id": ids[2], "order": 0}, {"id": ids[0], "order": 1}, {"id": ids[1], "order": 2}]},
        )
        assert r.status_code == 200

        r = await client.delete(f"/api/lessons/{ids[0]}")
        assert r.status_code == 200

        r = await client.get(f"/api/courses/{course_id}/lessons")
        lessons = r.json()["lessons"]
        assert [(l["title"], l["order_index"]) for l in lessons] == [("Three", 0), ("Two", 1)]

        r = await client.get(f"/api/courses/{course_id}")
        assert r.json()["course"]["title"] == "Python"


async def test_status_codes_follow_error_kind(wired_app, instructor, teaching_repo):
    other = teaching_repo.add_user(email="other@example.com", role="instructor")
    foreign = teaching_repo.create_course(other["id"], {"title": "Theirs"}, {})
    async with await _client(wired_app, "teacher@example.com") as client:
        r = await client.post("/api/courses", json={"title": ""})
        assert r.status_code == 400
        r = await client.patch(f"/api/courses/{foreign['id']}", json={"title": "Mine"})
        assert r.status_code == 403
        r = await client.post(f"/api/courses/{foreign['id']}/status", json={"status": "published"})
        assert r.status_code == 403


async def test_malformed_body_maps_to_validation_envelope(wired_app, instructor):
    async with await _client(wired_app, "teacher@example.com") as client:
        r = await client.post("/api/courses/c/lessons/reorder", json={"nope": []})
    assert r.status_code == 400
    assert r.json() == {"success": False, "error": "Invalid input", "kind": "validation"}


async def test_cross_origin_write_is_rejected(wired_app, instructor):
    async with await _client(wired_app, "teacher@example.com") as client:
        r = await client.post("/api/courses", json={"title": "x"}, headers={"Origin": "https://evil.example"})
    assert r.status_code == 403
    assert r.json() == {"error": "forbidden", "detail": "csrf_violation"}


async def test_same_origin_write_is_accepted(wired_app, instructor):
    async with await _client(wired_app, "teacher@example.com") as client:
        r = await client.post("/api/courses", json={"title": "x"}, headers={"Origin": "http://test"})
    assert r.status_code == 201


async def test_strict_csrf_requires_origin(wired_app, instructor, monkeypatch):
    monkeypatch.setenv("STRICT_CSRF", "true")
    async with await _client(wired_app, "teacher@example.com") as client:
        r = await client.post("/api/courses", json={"title": "x"})
    assert r.status_code == 403


async def test_upload_intent_without_storage_is_500(wired_app, instructor):
    async with await _client(wired_app, "teacher@example.com") as client:
        course_id = (await client.post("/api/courses", json={"title": "x"})).json()["courseId"]
        r = await client.post(
            f"/api/courses/{course_id}/thumbnail/upload-intent",
            json={"filename": "a.png", "mime_type": "IMAGE/PNG", "size_bytes": 10},
        )
    assert r.status_code == 500
    assert r.json()["kind"] == "persistence"


async def test_badges_and_announcements(wired_app, instructor):
    async with await _client(wired_app, "teacher@example.com") as client:
        course_id = (await client.post("/api/courses", json={"title": "x"})).json()["courseId"]
        r = await client.put(f"/api/courses/{course_id}/badges/hot", json={})
        assert r.status_code == 200
        r = await client.get(f"/api/courses/{course_id}/badges")
        assert [b["type"] for b in r.json()["badges"]] == ["hot"]

        r = await client.post("/api/announcements", json={"title": "Hello", "content": "World"})
        assert r.status_code == 201
        r = await client.get("/api/announcements")
        assert [a["title"] for a in r.json()["announcements"]] == ["Hello"]


@pytest.mark.parametrize(
    "method, path",
    [
        ("GET", "/api/courses/abc"),
        ("PATCH", "/api/lessons/abc"),
        ("DELETE", "/api/lessons/not-a-uuid"),
        ("GET", "/api/courses/123/lessons"),
        ("POST", "/api/courses/abc/badges/refresh"),
        ("PATCH", "/api/topics/abc"),
        ("GET", "/api/assignments/abc"),
    ],
)
async def test_malformed_path_ids_are_400(wired_app, instructor, method, path):
    async with await _client(wired_app, "teacher@example.com") as client:
        r = await client.request(method, path, json={"title": "x"})
    assert r.status_code == 400
    assert r.json()["kind"] == "validation"
    assert r.headers["Cache-Control"] == "private, no-store"


async def test_badge_listing_skips_malformed_course_ids(wired_app, instructor):
    async with await _client(wired_app, "teacher@example.com") as client:
        course_id = (await client.post("/api/courses", json={"title": "x"})).json()["courseId"]
        await client.put(f"/api/courses/{course_id}/badges/hot", json={})
        r = await client.get("/api/badges", params={"course_ids": [course_id, "junk"]})
    assert r.status_code == 200
    assert list(r.json()["badges"]) == [course_id]


async def test_topic_and_assignment_flow(wired_app, instructor):
    async with await _client(wired_app, "teacher@example.com") as client:
        course_id = (await client.post("/api/courses", json={"title": "x"})).json()["courseId"]
        topic_ids = []
        for title in ("Week 1", "Week 2"):
            r = await client.post(f"/api/courses/{course_id}/topics", json={"title": title})
            assert r.status_code == 201
            topic_ids.append(r.json()["topic"]["id"])

        r = await client.post(
            f"/api/courses/{course_id}/topics/reorder",
            json={"topics": [{"id": topic_ids[1], "sort_order": 0}, {"id": topic_ids[0], "sort_order": 1}]},
        )
        assert r.status_code == 200

        assignment_ids = []
        for title in ("Essay", "Report"):
            r = await client.post(
                f"/api/courses/{course_id}/assignments",
                json={"title": title, "topicId": topic_ids[0], "summary": "Hand it in"},
            )
            assert r.status_code == 201
            assignment_ids.append(r.json()["lessonId"])

        r = await client.post(
            f"/api/courses/{course_id}/assignments/reorder",
            json={"topicId": topic_ids[0], "assignmentIds": assignment_ids[::-1]},
        )
        assert r.status_code == 200

        r = await client.patch(f"/api/assignments/{assignment_ids[0]}", json={"totalPoints": 10, "passingPoints": 50})
        assert r.status_code == 400
        r = await client.get(f"/api/assignments/{assignment_ids[0]}")
        assert r.json()["assignment"]["totalPoints"] == 100

        r = await client.get(f"/api/courses/{course_id}/topics")
        topics = r.json()["topics"]
        assert [t["title"] for t in topics] == ["Week 2", "Week 1"]
        assert [l["title"] for l in topics[1]["lessons"]] == ["Report", "Essay"]

        r = await client.delete(f"/api/topics/{topic_ids[0]}")
        assert r.status_code == 200
        r = await client.delete(f"/api/assignments/{assignment_ids[1]}")
        assert r.status_code == 200
        r = await client.get(f"/api/courses/{course_id}/lessons")
        assert [(l["title"], l["topic_id"], l["order_index"]) for l in r.json()["lessons"]] == [("Essay", None, 0)]
