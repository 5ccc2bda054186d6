"""Candidate selection against the external task collection."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from datetime import date
from typing import Protocol, runtime_checkable

from taskquery.types import PropertyFilters, QueryIntent, Task

logger = logging.getLogger(__name__)


@runtime_checkable
class TaskIndex(Protocol):
    """External collaborator that owns the task collection."""

    def query(self, filters: PropertyFilters | None) -> list[Task]:
        """Return tasks matching the filters, or every task when None."""
        ...

    def __len__(self) -> int: ...


class InMemoryTaskIndex:
    """TaskIndex over an immutable snapshot of a task list."""

    def __init__(self, tasks: Iterable[Task]):
        self._tasks: tuple[Task, ...] = tuple(tasks)

    def __len__(self) -> int:
        return len(self._tasks)

    def query(self, filters: PropertyFilters | None) -> list[Task]:
        if filters is None or filters.is_empty():
            return list(self._tasks)
        return [t for t in self._tasks if filters.matches(t)]


@dataclass
class FilterOutcome:
    candidates: list[Task] = field(default_factory=list)
    total: int = 0
    after_property: int = 0
    after_keyword: int = 0
    keyword_filter_skipped: bool = False

    @property
    def empty_stage(self) -> str | None:
        if self.after_property == 0 and self.total > 0:
            return "property_filter"
        if self.after_keyword == 0 and self.after_property > 0:
            return "keyword_filter"
        return None


def effective_filters(intent: QueryIntent) -> PropertyFilters:
    """Filters pushed to the index, including the vague time range if it applies.

    A vague time range only narrows results when the query also names
    something specific; a purely vague request keeps every task and lets the
    time context drive the due-date ranking instead.
    """
    filters = intent.filters
    if intent.time_range is not None and filters.due is None and intent.has_keywords:
        filters = replace(filters, due=intent.time_range)
    return filters


def keyword_match(task: Task, keywords: Iterable[str]) -> bool:
    text = (task.text or "").lower()
    return any(k.lower() in text for k in keywords if k)


class TaskFilterPipeline:
    """Applies property filters via the index, then keyword containment in-process."""

    def run(self, index: TaskIndex, intent: QueryIntent) -> FilterOutcome:
        out = FilterOutcome(total=len(index))

        filters = effective_filters(intent)
        if filters.is_empty():
            tasks = index.query(None)
        else:
            tasks = index.query(filters)
        out.after_property = len(tasks)

        if intent.has_keywords:
            keywords = intent.match_keywords
            tasks = [t for t in tasks if keyword_match(t, keywords)]
        else:
            out.keyword_filter_skipped = True
            if intent.keywords:
                logger.info(
                    "filter: skipping keyword filter for generic keywords %r",
                    list(intent.keywords),
                )
        out.after_keyword = len(tasks)
        out.candidates = tasks

        logger.info(
            "filter: total=%d after_property=%d after_keyword=%d",
            out.total,
            out.after_property,
            out.after_keyword,
        )
        return out
