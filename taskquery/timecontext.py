"""Time-context detection and resolution.

A time phrase in a specific query ("report due this week") becomes an exact
filter. The same phrase in a vague query ("what's on this week") becomes an
inclusive at-most range so overdue and undated work stays visible.
"""

from __future__ import annotations

import logging
import re
from datetime import date, timedelta

from taskquery.dates import period_bounds
from taskquery.registry import PropertyTermRegistry
from taskquery.stopwords import is_no_space_script
from taskquery.types import DueDateFilter, DueOperator

logger = logging.getLogger(__name__)


# Detection order matters: "last week" must win over a bare "week" match.
TIME_CONTEXT_TERMS: tuple[str, ...] = (
    "today",
    "tomorrow",
    "yesterday",
    "last_week",
    "this_week",
    "next_week",
    "last_month",
    "this_month",
    "next_month",
    "last_year",
    "this_year",
    "next_year",
)

_CAMEL_RE = re.compile(r"(?<=[a-z])(?=[A-Z])")

_LABELS = {
    "this": "this {unit}",
    "next": "next {unit}",
    "last": "last {unit}",
}


def normalize_term(term: str | None) -> str | None:
    """Map 'this week', 'thisWeek', 'this-week' and 'week' to 'this_week'."""
    if not term:
        return None
    t = _CAMEL_RE.sub("_", str(term).strip()).lower()
    t = re.sub(r"[\s\-]+", "_", t)
    if t in ("week", "month", "year"):
        t = f"this_{t}"
    return t if t in TIME_CONTEXT_TERMS else None


def _phrase_in(text_l: str, phrase: str) -> bool:
    p = phrase.lower()
    if not p:
        return False
    if is_no_space_script(p):
        return p in text_l
    return re.search(rf"(?<!\w){re.escape(p)}(?!\w)", text_l) is not None


class TimeContextResolver:
    """Detects time phrases and converts them into due-date filters."""

    def __init__(self, registry: PropertyTermRegistry, today: date | None = None):
        self.registry = registry
        self.today = today or date.today()

    def detect(self, text: str) -> str | None:
        text_l = (text or "").lower()
        if not text_l.strip():
            return None
        due_terms = self.registry.due_terms()
        for term in TIME_CONTEXT_TERMS:
            for phrase in due_terms.get(term, []):
                if _phrase_in(text_l, phrase):
                    return term
        return None

    def resolve(self, term: str | None, is_vague: bool) -> DueDateFilter | None:
        canonical = normalize_term(term)
        if canonical is None:
            if term:
                logger.debug("time context: unrecognized term %r", term)
            return None

        today = self.today
        if canonical in ("today", "tomorrow", "yesterday"):
            offset = {"today": 0, "tomorrow": 1, "yesterday": -1}[canonical]
            day = today + timedelta(days=offset)
            if not is_vague:
                return DueDateFilter(
                    DueOperator.ON, start=day, end=day, label=f"Tasks due {canonical}"
                )
            if canonical == "yesterday":
                return DueDateFilter(
                    DueOperator.BETWEEN, start=day, end=day, label="Tasks due yesterday"
                )
            return DueDateFilter(
                DueOperator.AT_MOST,
                end=day,
                include_undated=True,
                label=f"Tasks due {canonical} + overdue",
            )

        rel, unit = canonical.split("_", 1)
        offset = {"last": -1, "this": 0, "next": 1}[rel]
        start, end = period_bounds(unit, today, offset)
        label = _LABELS[rel].format(unit=unit)

        if not is_vague or rel == "last":
            return DueDateFilter(
                DueOperator.BETWEEN, start=start, end=end, label=f"Tasks due {label}"
            )
        return DueDateFilter(
            DueOperator.AT_MOST,
            end=end,
            include_undated=True,
            label=f"Tasks due by end of {label} + overdue",
        )
