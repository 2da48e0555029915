"""
Learning feature flags parsed from the environment.
"""
from __future__ import annotations

import pytest

from backend.learning.config import is_prod_like, load_learning_config


def test_certificates_enabled_by_default():
    assert load_learning_config().certificate_enabled is True


@pytest.mark.parametrize("raw,expected", [("0", False), ("off", False), ("TRUE", True), (" yes ", True), ("", True)])
def test_certificate_flag_parsing(monkeypatch, raw, expected):
    monkeypatch.setenv("CERTIFICATE_ENABLED", raw)
    assert load_learning_config().certificate_enabled is expected


def test_garbage_flag_is_rejected(monkeypatch):
    monkeypatch.setenv("CERTIFICATE_ENABLED", "maybe")
    with pytest.raises(ValueError) as exc:
        load_learning_config()
    assert "CERTIFICATE_ENABLED" in str(exc.value)


def test_prod_like_environments(monkeypatch):
    assert is_prod_like() is False
    monkeypatch.setenv("LECTERN_ENV", "Staging")
    assert is_prod_like() is True
