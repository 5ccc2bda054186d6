from __future__ import annotations

from taskquery.dedupe import dedupe_keywords
from taskquery.stopwords import filter_stop_words, generic_ratio, is_no_space_script, tokenize


def test_cjk_fragments_collapse_into_longer_phrase() -> None:
    assert dedupe_keywords(["登录", "登录页面", "页面"]) == ["登录页面"]


def test_latin_substrings_are_distinct_words() -> None:
    assert dedupe_keywords(["log", "login"]) == ["log", "login"]


def test_mixed_script_containment_keeps_both() -> None:
    assert dedupe_keywords(["API", "API接口"]) == ["API", "API接口"]


def test_exact_repeats_keep_first_occurrence() -> None:
    assert dedupe_keywords(["Bug", "bug", "error", ""]) == ["Bug", "error"]


def test_first_occurrence_order_is_preserved() -> None:
    assert dedupe_keywords(["fix", "修复错误", "错误", "bug"]) == ["fix", "修复错误", "bug"]


def test_dedupe_is_idempotent() -> None:
    samples = [
        ["登录", "登录页面", "页面", "login"],
        ["a", "A", "b"],
        ["修复", "错误", "修复错误", "fix", "fixes"],
    ]
    for kws in samples:
        once = dedupe_keywords(kws)
        assert dedupe_keywords(once) == once


def test_script_detection() -> None:
    assert is_no_space_script("登录")
    assert is_no_space_script("タスク")
    assert is_no_space_script("ภาษาไทย")
    assert not is_no_space_script("login")


def test_tokenize_and_stop_words() -> None:
    assert tokenize("fix the login-page bug, now!") == ["fix", "the", "login-page", "bug", "now"]
    assert filter_stop_words(["fix", "the", "a", "x", "修"]) == ["fix", "修"]
    words = ["what", "should", "i", "report", "Please"]
    assert filter_stop_words(words, extra=["please"], keep_generic=True) == [
        "what",
        "should",
        "report",
    ]


def test_generic_ratio() -> None:
    assert generic_ratio([]) == 0.0
    assert generic_ratio(["what", "should", "report"]) == 2 / 3
