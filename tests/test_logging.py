import pytest

from utils import logging as ulog


@pytest.fixture(autouse=True)
def _restore_preview_chars(monkeypatch):
    monkeypatch.setattr(ulog, "PREVIEW_CHARS", ulog.PREVIEW_CHARS)


def test_preview_text_is_single_line():
    assert ulog.preview_text("a\nb", limit=10) == "a\\nb"
    assert ulog.preview_text(None) == ""


def test_preview_length_comes_from_config():
    ulog.configure({"pipeline": {"log_preview_chars": 4}})
    assert ulog.preview_text("abcdefgh") == "abcd"
    ulog.configure({})
    assert ulog.PREVIEW_CHARS == 4
