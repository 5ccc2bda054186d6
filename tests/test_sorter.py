from __future__ import annotations

import itertools
from datetime import date

from taskquery.registry import PropertyTermRegistry
from taskquery.sorter import MultiCriteriaSorter, parse_sort_spec
from taskquery.types import ScoreBreakdown, ScoredTask, SortCriterion, SortSpec, Task


def _st(tid: str, composite: float = 1.0, relevance: float = 0.0, **task_kwargs) -> ScoredTask:
    text = task_kwargs.pop("text", tid)
    task = Task(id=tid, text=text, **task_kwargs)
    return ScoredTask(task=task, score=ScoreBreakdown(composite=composite, relevance=relevance))


def _sort(items: list[ScoredTask], *criteria: SortCriterion, ai: bool = False) -> list[str]:
    sorter = MultiCriteriaSorter(PropertyTermRegistry())
    out = sorter.sort(items, SortSpec(criteria=tuple(criteria)), ai_assisted=ai)
    return [s.task.id for s in out]


def test_composite_descending_comes_first() -> None:
    items = [_st("a", 1.0), _st("b", 3.0), _st("c", 2.0)]
    assert _sort(items, SortCriterion.PRIORITY) == ["b", "c", "a"]


def test_near_equal_composites_fall_through_to_due_date() -> None:
    items = [
        _st("late", 5.00002, due=date(2026, 11, 1)),
        _st("soon", 5.0, due=date(2026, 10, 20)),
        _st("undated", 5.0),
    ]
    assert _sort(items, SortCriterion.DUE_DATE) == ["soon", "late", "undated"]


def test_priority_tie_break_puts_missing_last() -> None:
    items = [_st("none"), _st("p3", priority=3), _st("p1", priority=1)]
    assert _sort(items, SortCriterion.PRIORITY) == ["p1", "p3", "none"]


def test_status_tie_break_uses_registry_order() -> None:
    items = [_st("done", status="completed"), _st("wip", status="inProgress"), _st("new")]
    assert _sort(items, SortCriterion.STATUS) == ["new", "wip", "done"]


def test_created_tie_break_is_newest_first() -> None:
    items = [
        _st("old", created=date(2026, 1, 1)),
        _st("missing"),
        _st("new", created=date(2026, 9, 1)),
    ]
    assert _sort(items, SortCriterion.CREATED) == ["new", "old", "missing"]


def test_alphabetical_ignores_case() -> None:
    items = [_st("1", text="beta"), _st("2", text="Alpha"), _st("3", text="gamma")]
    assert _sort(items, SortCriterion.ALPHABETICAL) == ["2", "1", "3"]


def test_full_ties_keep_input_order() -> None:
    items = [_st(tid) for tid in ("c", "a", "b")]
    assert _sort(items) == ["c", "a", "b"]
    assert _sort(items, SortCriterion.PRIORITY, SortCriterion.DUE_DATE) == ["c", "a", "b"]


def test_ai_assisted_pins_relevance_first() -> None:
    items = [
        _st("urgent", relevance=0.2, priority=1),
        _st("relevant", relevance=0.5, priority=4),
    ]
    assert _sort(items, SortCriterion.PRIORITY) == ["urgent", "relevant"]
    assert _sort(items, SortCriterion.PRIORITY, ai=True) == ["relevant", "urgent"]


def test_pinned_spec_moves_relevance_to_head() -> None:
    spec = SortSpec(criteria=(SortCriterion.DUE_DATE, SortCriterion.RELEVANCE))
    assert spec.pinned().criteria == (SortCriterion.RELEVANCE, SortCriterion.DUE_DATE)


def test_parse_sort_spec_accepts_aliases_and_drops_unknown() -> None:
    spec = parse_sort_spec(["dueDate", "bogus", "priority", "due", "Alphabetical"])
    assert spec.criteria == (
        SortCriterion.DUE_DATE,
        SortCriterion.PRIORITY,
        SortCriterion.ALPHABETICAL,
    )


def test_near_tie_chains_sort_consistently() -> None:
    def items() -> list[ScoredTask]:
        return [
            _st("low", 0.0, text="a"),
            _st("mid", 6e-5, text="c"),
            _st("high", 1.2e-4, text="b"),
        ]

    for perm in itertools.permutations(items()):
        assert _sort(list(perm), SortCriterion.ALPHABETICAL) == ["high", "mid", "low"]
