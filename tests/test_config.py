"""Tests for environment-driven settings."""

import pytest

from banquet.config import Settings, _flag, settings


@pytest.mark.parametrize("raw", ["1", "true", "TRUE", " yes ", "on"])
def test_truthy_flags(monkeypatch, raw):
    monkeypatch.setenv("BANQUET_TEST_FLAG", raw)
    assert _flag("BANQUET_TEST_FLAG", False) is True


@pytest.mark.parametrize("raw", ["0", "false", "no", "off", ""])
def test_falsy_flags(monkeypatch, raw):
    monkeypatch.setenv("BANQUET_TEST_FLAG", raw)
    assert _flag("BANQUET_TEST_FLAG", True) is False


def test_unset_flag_uses_default(monkeypatch):
    monkeypatch.delenv("BANQUET_TEST_FLAG", raising=False)
    assert _flag("BANQUET_TEST_FLAG", True) is True
    assert _flag("BANQUET_TEST_FLAG", False) is False


def test_settings_are_frozen():
    with pytest.raises(AttributeError):
        settings.timezone = "UTC"
    assert Settings(timezone="UTC").timezone == "UTC"
