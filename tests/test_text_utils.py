"""
文本工具单元测试
"""

import pytest

from chatrelay.utils.text import TELEGRAM_MESSAGE_LIMIT, preview, split_text


def test_short_text_is_untouched():
    assert split_text("hello") == ["hello"]
    assert split_text("") == [""]


def test_hard_split_without_newlines():
    chunks = split_text("x" * 10, limit=4)
    assert chunks == ["xxxx", "xxxx", "xx"]


def test_prefers_newline_boundaries():
    text = "line one\nline two\nline three"
    chunks = split_text(text, limit=12)
    assert chunks == ["line one", "line two", "line three"]
    assert all(len(c) <= 12 for c in chunks)


def test_default_limit_is_telegram_limit():
    chunks = split_text("y" * (TELEGRAM_MESSAGE_LIMIT + 1))
    assert [len(c) for c in chunks] == [TELEGRAM_MESSAGE_LIMIT, 1]


def test_invalid_limit():
    with pytest.raises(ValueError):
        split_text("abc", limit=0)


def test_preview():
    assert preview("short") == "short"
    assert preview("a" * 60, length=10) == "aaaaaaaaaa..."
