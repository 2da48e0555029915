"""
Same-origin checks used as CSRF defense on write routes.
"""
from __future__ import annotations

import pytest
from starlette.requests import Request

from backend.web.routes.security import csrf_guard, is_same_origin


def _request(headers: dict | None = None, *, scheme: str = "http", server=("app.local", 80)) -> Request:
    raw = [(k.lower().encode("latin-1"), v.encode("latin-1")) for k, v in (headers or {}).items()]
    return Request({"type": "http", "method": "POST", "path": "/api/courses", "scheme": scheme, "server": server, "headers": raw})


def test_missing_headers_pass_in_dev():
    assert is_same_origin(_request()) is True
    assert csrf_guard(_request()) is None


@pytest.mark.parametrize(
    "headers,ok",
    [
        ({"Origin": "http://app.local"}, True),
        ({"Origin": "http://app.local:80"}, True),
        ({"Origin": "https://app.local"}, False),
        ({"Origin": "http://evil.local"}, False),
        ({"Referer": "http://app.local/courses/1"}, True),
        ({"Origin": "not a url"}, False),
    ],
)
def test_origin_and_referer(headers, ok):
    assert is_same_origin(_request(headers)) is ok


def test_forwarded_headers_only_with_trusted_proxy(monkeypatch):
    req = _request(
        {"Origin": "https://public.example", "X-Forwarded-Proto": "https", "X-Forwarded-Host": "public.example"}
    )
    assert is_same_origin(req) is False
    monkeypatch.setenv("LECTERN_TRUST_PROXY", "true")
    assert is_same_origin(req) is True


def test_prod_requires_origin_header(monkeypatch):
    monkeypatch.setenv("LECTERN_ENV", "prod")
    blocked = csrf_guard(_request())
    assert blocked is not None and blocked.status_code == 403
    assert blocked.headers["Cache-Control"] == "private, no-store"
    assert csrf_guard(_request({"Origin": "http://app.local"})) is None
