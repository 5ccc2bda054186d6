"""Deterministic extraction of explicit filter shorthand.

Recognized shorthand is removed from the query; everything else is returned
as the free-text remainder for semantic parsing. Nothing here raises on bad
input: an unparseable shorthand stays in the remainder as plain text.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date, timedelta

from taskquery.dates import parse_date_literal, parse_relative, period_bounds
from taskquery.registry import PropertyTermRegistry
from taskquery.types import DueDateFilter, DueOperator, PropertyFilters

logger = logging.getLogger(__name__)


_SEARCH_RE = re.compile(r"\bsearch:\s*\"([^\"]*)\"", re.IGNORECASE)
_DUE_BOUND_RE = re.compile(r"\bdue\s+(before|after):\s*([^\s&|]+)", re.IGNORECASE)
_DUE_RE = re.compile(r"(?<![\w#])(?:d|due):\s*([^\s&|]+)", re.IGNORECASE)
_PRIORITY_RE = re.compile(r"(?<![\w#])(?:p|priority):\s*([^\s&|]+)", re.IGNORECASE)
_PRIORITY_SHORT_RE = re.compile(r"(?<![\w#!])p([1-4])\b", re.IGNORECASE)
_STATUS_RE = re.compile(r"(?<![\w#])(?:s|status):\s*([^\s&|]+)", re.IGNORECASE)
_NO_DATE_RE = re.compile(r"(!)?\bno\s+(?:due\s+)?date\b", re.IGNORECASE)
_NO_PRIORITY_RE = re.compile(r"(!)?\bno\s+priority\b", re.IGNORECASE)
_OVERDUE_RE = re.compile(r"\b(?:over\s?due|od)\b", re.IGNORECASE)
_PROJECT_RE = re.compile(r"(?<![\w#])##+([\w-]+)")
_TAG_RE = re.compile(r"(?<![\w#])#([\w-]+)")
_FOLDER_RE = re.compile(
    r"\b(?:folder:\s*|(?:in|from|under)\s+(?:folder|directory)\s+)(?:\"([^\"]+)\"|(\S+))",
    re.IGNORECASE,
)
_CONNECTOR_RE = re.compile(r"(?<!\S)(&&?|\|\|?|!|AND|OR|NOT)(?!\S)")
_WS_RE = re.compile(r"\s+")

_PERIOD_VALUE_RE = re.compile(r"^(?:(last|this|next)-)?(week|month|year)$")


@dataclass
class ParsedSyntax:
    """Explicit filters plus whatever text was not consumed by shorthand."""

    filters: PropertyFilters = field(default_factory=PropertyFilters)
    remainder: str = ""
    phrases: list[str] = field(default_factory=list)
    connectors: list[str] = field(default_factory=list)
    unrecognized: list[str] = field(default_factory=list)

    @property
    def matched(self) -> bool:
        return not self.filters.is_empty() or bool(self.phrases)


def parse_due_value(value: str, today: date) -> DueDateFilter | None:
    """Interpret the value half of a due:/d: shorthand."""
    v = (value or "").strip().lower()
    if not v:
        return None
    if v in ("any", "all"):
        return DueDateFilter(DueOperator.ANY, label="Tasks with a due date")
    if v == "none":
        return DueDateFilter(DueOperator.NONE, label="Tasks without a due date")
    if v in ("today", "tomorrow", "yesterday"):
        day = today + timedelta(days={"today": 0, "tomorrow": 1, "yesterday": -1}[v])
        return DueDateFilter(DueOperator.ON, start=day, end=day, label=f"Tasks due {v}")
    if v in ("overdue", "od"):
        return DueDateFilter(DueOperator.BEFORE, end=today, label="Overdue tasks")
    if v == "future":
        return DueDateFilter(DueOperator.AFTER, start=today, label="Tasks due in the future")

    m = _PERIOD_VALUE_RE.match(v)
    if m:
        rel = m.group(1) or "this"
        unit = m.group(2)
        start, end = period_bounds(unit, today, {"last": -1, "this": 0, "next": 1}[rel])
        return DueDateFilter(
            DueOperator.BETWEEN, start=start, end=end, label=f"Tasks due {rel} {unit}"
        )

    day = parse_date_literal(v) or parse_relative(v, today)
    if day is not None:
        return DueDateFilter(DueOperator.ON, start=day, end=day, label=f"Tasks due {day}")
    return None


def _bound_date(value: str, today: date) -> date | None:
    v = (value or "").strip().lower()
    if v in ("today", "tomorrow", "yesterday"):
        return today + timedelta(days={"today": 0, "tomorrow": 1, "yesterday": -1}[v])
    return parse_date_literal(v) or parse_relative(v, today)


class StandardSyntaxParser:
    """Extracts explicit filter shorthand without any model involvement."""

    def __init__(self, registry: PropertyTermRegistry, today: date | None = None):
        self.registry = registry
        self.today = today or date.today()

    def parse(self, text: str) -> ParsedSyntax:
        out = ParsedSyntax()
        filters = out.filters
        t = text or ""

        def unrecognized(m: re.Match[str], why: str) -> str:
            logger.debug("syntax: ignoring %r (%s)", m.group(0), why)
            out.unrecognized.append(m.group(0))
            return m.group(0)

        def sub(pattern: re.Pattern[str], handler: Callable[[re.Match[str]], str]) -> None:
            nonlocal t
            t = pattern.sub(handler, t)

        # search: "exact phrase"
        def on_search(m: re.Match[str]) -> str:
            phrase = m.group(1).strip()
            if phrase:
                out.phrases.append(phrase)
            return " "

        sub(_SEARCH_RE, on_search)

        # due before: / due after:
        bounds: dict[str, date] = {}

        def on_due_bound(m: re.Match[str]) -> str:
            d = _bound_date(m.group(2), self.today)
            if d is None:
                return unrecognized(m, "bad date")
            bounds[m.group(1).lower()] = d
            return " "

        sub(_DUE_BOUND_RE, on_due_bound)
        if "before" in bounds and "after" in bounds:
            filters.due = DueDateFilter(
                DueOperator.BETWEEN,
                start=bounds["after"],
                end=bounds["before"],
                label=f"Tasks due {bounds['after']} .. {bounds['before']}",
            )
        elif "before" in bounds:
            filters.due = DueDateFilter(
                DueOperator.AT_MOST,
                end=bounds["before"],
                label=f"Tasks due by {bounds['before']}",
            )
        elif "after" in bounds:
            filters.due = DueDateFilter(
                DueOperator.ON_OR_AFTER,
                start=bounds["after"],
                label=f"Tasks due from {bounds['after']}",
            )

        # due:<value>
        def on_due(m: re.Match[str]) -> str:
            f = parse_due_value(m.group(1), self.today)
            if f is None:
                return unrecognized(m, "unknown due value")
            if filters.due is not None:
                logger.debug("syntax: due filter %r replaces %r", f.label, filters.due.label)
            filters.due = f
            return " "

        sub(_DUE_RE, on_due)

        # p:<values> / priority:<values>
        def on_priority(m: re.Match[str]) -> str:
            values = self._priority_values(m.group(1))
            if not values:
                return unrecognized(m, "unknown priority value")
            self._extend(filters.priority, values)
            return " "

        sub(_PRIORITY_RE, on_priority)

        def on_priority_short(m: re.Match[str]) -> str:
            self._extend(filters.priority, [int(m.group(1))])
            return " "

        sub(_PRIORITY_SHORT_RE, on_priority_short)

        # s:<values> / status:<values>
        def on_status(m: re.Match[str]) -> str:
            values = self._status_values(m.group(1))
            if not values:
                return unrecognized(m, "unknown status value")
            self._extend(filters.status, values)
            return " "

        sub(_STATUS_RE, on_status)

        # no date / !no date / no priority
        def on_no_date(m: re.Match[str]) -> str:
            if m.group(1):
                filters.due = DueDateFilter(DueOperator.ANY, label="Tasks with a due date")
            else:
                filters.due = DueDateFilter(DueOperator.NONE, label="Tasks without a due date")
            return " "

        sub(_NO_DATE_RE, on_no_date)

        def on_no_priority(m: re.Match[str]) -> str:
            self._extend(filters.priority, ["any" if m.group(1) else "none"])
            return " "

        sub(_NO_PRIORITY_RE, on_no_priority)

        # bare overdue
        def on_overdue(m: re.Match[str]) -> str:
            if filters.due is None:
                filters.due = DueDateFilter(
                    DueOperator.BEFORE, end=self.today, label="Overdue tasks"
                )
            return " "

        sub(_OVERDUE_RE, on_overdue)

        # ##project, #tag, folder
        def on_project(m: re.Match[str]) -> str:
            filters.project = m.group(1)
            return " "

        sub(_PROJECT_RE, on_project)

        def on_tag(m: re.Match[str]) -> str:
            self._extend(filters.tags, [m.group(1)])
            return " "

        sub(_TAG_RE, on_tag)

        def on_folder(m: re.Match[str]) -> str:
            filters.folder = (m.group(1) or m.group(2) or "").strip().strip("/")
            return " "

        sub(_FOLDER_RE, on_folder)

        def on_connector(m: re.Match[str]) -> str:
            out.connectors.append(m.group(1))
            return " "

        sub(_CONNECTOR_RE, on_connector)

        out.remainder = _WS_RE.sub(" ", t).strip()
        return out

    def _priority_values(self, raw: str) -> list[int | str]:
        values: list[int | str] = []
        for part in raw.split(","):
            p = part.strip().lower()
            if not p:
                continue
            if p in ("any", "all"):
                values.append("any")
                continue
            if p == "none":
                values.append("none")
                continue
            level = self.registry.priority_for_term(p)
            if level is None:
                logger.debug("syntax: unrecognized priority token %r", p)
                continue
            values.append(level)
        return values

    def _status_values(self, raw: str) -> list[str]:
        values: list[str] = []
        for part in raw.split(","):
            p = part.strip()
            if not p:
                continue
            if p.lower() in ("any", "all"):
                values.append("any")
                continue
            if p.lower() == "none":
                values.append("none")
                continue
            key = self.registry.resolve(p)
            if key is None:
                logger.debug("syntax: unrecognized status token %r", p)
                continue
            values.append(key)
        return values

    @staticmethod
    def _extend(target: list, values: list) -> None:
        for v in values:
            if v not in target:
                target.append(v)
