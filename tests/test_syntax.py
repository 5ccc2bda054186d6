from __future__ import annotations

from datetime import date

from taskquery.registry import PropertyTermRegistry
from taskquery.syntax import StandardSyntaxParser, parse_due_value
from taskquery.types import DueOperator

TODAY = date(2026, 10, 19)  # a Monday


def _parse(text: str):
    return StandardSyntaxParser(PropertyTermRegistry(), TODAY).parse(text)


def test_priority_shorthand_and_bare_overdue() -> None:
    out = _parse("P1 overdue")
    assert out.filters.priority == [1]
    assert out.filters.due is not None
    assert out.filters.due.operator is DueOperator.BEFORE
    assert out.filters.due.end == TODAY
    assert out.remainder == ""
    assert out.matched


def test_priority_list_keeps_free_text() -> None:
    out = _parse("p:1,2 fix")
    assert out.filters.priority == [1, 2]
    assert out.remainder == "fix"


def test_priority_none_forms() -> None:
    assert _parse("priority:none").filters.priority == ["none"]
    assert _parse("no priority").filters.priority == ["none"]
    assert _parse("p:high").filters.priority == [1]


def test_status_values_resolve_through_registry() -> None:
    out = _parse("s:done,/ review")
    assert out.filters.status == ["completed", "inProgress"]
    assert out.remainder == "review"


def test_unknown_status_stays_in_remainder() -> None:
    out = _parse("s:bogus report")
    assert out.filters.status == []
    assert out.remainder == "s:bogus report"
    assert out.unrecognized == ["s:bogus"]


def test_due_literal_and_relative_values() -> None:
    f = _parse("d:2026-10-25").filters.due
    assert f is not None and f.operator is DueOperator.ON and f.start == date(2026, 10, 25)

    assert _parse("d:+3d").filters.due.start == date(2026, 10, 22)
    assert _parse("due:-1w").filters.due.start == date(2026, 10, 12)
    assert _parse("d:1m").filters.due.start == date(2026, 11, 19)


def test_due_period_values() -> None:
    f = _parse("d:next-week").filters.due
    assert f.operator is DueOperator.BETWEEN
    assert (f.start, f.end) == (date(2026, 10, 26), date(2026, 11, 1))

    f = _parse("due:month").filters.due
    assert (f.start, f.end) == (date(2026, 10, 1), date(2026, 10, 31))


def test_unknown_due_value_stays_in_remainder() -> None:
    out = _parse("d:someday")
    assert out.filters.due is None
    assert out.remainder == "d:someday"


def test_due_bounds() -> None:
    f = _parse("due before: 2026-11-01").filters.due
    assert f.operator is DueOperator.AT_MOST
    assert f.end == date(2026, 11, 1)

    f = _parse("due after: 2026-10-20 due before: 2026-10-31").filters.due
    assert f.operator is DueOperator.BETWEEN
    assert (f.start, f.end) == (date(2026, 10, 20), date(2026, 10, 31))

    f = _parse("due after: tomorrow").filters.due
    assert f.operator is DueOperator.ON_OR_AFTER
    assert f.start == date(2026, 10, 20)


def test_no_date_and_any_date() -> None:
    assert _parse("no date").filters.due.operator is DueOperator.NONE
    assert _parse("!no date").filters.due.operator is DueOperator.ANY
    assert _parse("d:any").filters.due.operator is DueOperator.ANY


def test_tags_project_and_folder() -> None:
    out = _parse("#bug ##website in folder work/web deploy")
    assert out.filters.tags == ["bug"]
    assert out.filters.project == "website"
    assert out.filters.folder == "work/web"
    assert out.remainder == "deploy"


def test_search_phrase_and_connectors() -> None:
    out = _parse('search: "login page" & p2')
    assert out.phrases == ["login page"]
    assert out.filters.priority == [2]
    assert out.connectors == ["&"]
    assert out.remainder == ""


def test_bare_today_is_not_explicit_syntax() -> None:
    out = _parse("today standup")
    assert out.filters.is_empty()
    assert out.remainder == "today standup"


def test_plain_text_is_untouched() -> None:
    out = _parse("fix the login bug")
    assert not out.matched
    assert out.remainder == "fix the login bug"


def test_parse_due_value_edges() -> None:
    assert parse_due_value("", TODAY) is None
    assert parse_due_value("tomorrow", TODAY).start == date(2026, 10, 20)
    f = parse_due_value("future", TODAY)
    assert f.operator is DueOperator.AFTER
    assert not f.matches(TODAY)
    assert f.matches(date(2026, 10, 20))
    od = parse_due_value("od", TODAY)
    assert od.matches(date(2026, 10, 18))
    assert not od.matches(TODAY)
    assert not od.matches(None)


def test_repeated_status_shorthand_accumulates() -> None:
    out = _parse("s:open s:wip review")
    assert out.filters.status == ["open", "inProgress"]
    assert out.remainder == "review"
