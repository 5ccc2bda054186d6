"""Shared types for the taskquery engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any

from taskquery.stopwords import is_generic_word

# ---------------------------------------------------------------------------
# Task collection types
# ---------------------------------------------------------------------------


def coerce_date(value: Any) -> date | None:
    """Accept a date, datetime or ISO string; anything else becomes None."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        return None


@dataclass
class Task:
    """A tracked work item as supplied by the external task index."""

    id: str
    text: str
    status: str | None = "open"  # status category key
    priority: int | None = None  # 1 (highest) .. 4
    due: date | None = None
    created: date | None = None
    completed: date | None = None
    folder: str = ""
    tags: list[str] = field(default_factory=list)
    project: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any], registry: Any = None) -> "Task":
        raw_status = data.get("status", "open")
        status: str | None = None if raw_status is None else str(raw_status)
        if status is not None and registry is not None:
            status = registry.resolve(status) or registry.category_for_symbol(status)

        prio_raw = data.get("priority")
        priority: int | None = None
        if prio_raw not in (None, ""):
            try:
                priority = int(prio_raw)
            except (TypeError, ValueError):
                priority = None
            if priority is not None and not 1 <= priority <= 4:
                priority = None

        tags_raw = data.get("tags") or []
        if isinstance(tags_raw, str):
            tags_raw = [t for t in tags_raw.replace(",", " ").split() if t]

        return cls(
            id=str(data.get("id", "")),
            text=str(data.get("text", "")),
            status=status,
            priority=priority,
            due=coerce_date(data.get("due")),
            created=coerce_date(data.get("created")),
            completed=coerce_date(data.get("completed")),
            folder=str(data.get("folder") or ""),
            tags=[str(t) for t in tags_raw],
            project=(str(data["project"]) if data.get("project") else None),
        )


# ---------------------------------------------------------------------------
# Property vocabulary types
# ---------------------------------------------------------------------------


@dataclass
class StatusCategoryConfig:
    """One status category: stable key plus its symbols, aliases and weights."""

    key: str
    display_name: str = ""
    symbols: list[str] = field(default_factory=list)
    aliases: list[str] = field(default_factory=list)
    score: float = 0.5
    order: int | None = None
    terms: list[str] | None = None
    description: str = ""


class DueOperator(str, Enum):
    """How a DueDateFilter compares a task's due date against its bounds."""

    ON = "on"
    AT_MOST = "at_most"
    BETWEEN = "between"
    BEFORE = "before"
    AFTER = "after"
    ON_OR_AFTER = "on_or_after"
    ANY = "any"
    NONE = "none"


@dataclass(frozen=True)
class DueDateFilter:
    """Either an exact due date or a range with one or two bounds."""

    operator: DueOperator
    start: date | None = None
    end: date | None = None
    include_undated: bool = False
    label: str = ""

    def matches(self, due: date | None) -> bool:
        op = self.operator
        if op is DueOperator.ANY:
            return due is not None
        if op is DueOperator.NONE:
            return due is None
        if due is None:
            return self.include_undated
        if op is DueOperator.ON:
            return due == self.start
        if op is DueOperator.AT_MOST:
            return self.end is not None and due <= self.end
        if op is DueOperator.BETWEEN:
            return (
                self.start is not None
                and self.end is not None
                and self.start <= due <= self.end
            )
        if op is DueOperator.BEFORE:
            return self.end is not None and due < self.end
        if op is DueOperator.AFTER:
            return self.start is not None and due > self.start
        if op is DueOperator.ON_OR_AFTER:
            return self.start is not None and due >= self.start
        return False


@dataclass
class PropertyFilters:
    """Structured property filters; multi-value fields use OR semantics."""

    priority: list[int | str] = field(default_factory=list)  # 1..4, "any", "none"
    status: list[str] = field(default_factory=list)  # category keys, "any", "none"
    due: DueDateFilter | None = None
    folder: str | None = None
    tags: list[str] = field(default_factory=list)
    project: str | None = None

    def dimensions(self) -> set[str]:
        dims: set[str] = set()
        if self.priority:
            dims.add("priority")
        if self.status:
            dims.add("status")
        if self.due is not None:
            dims.add("due")
        if self.folder:
            dims.add("folder")
        if self.tags:
            dims.add("tags")
        if self.project:
            dims.add("project")
        return dims

    def is_empty(self) -> bool:
        return not self.dimensions()

    def matches(self, task: Task) -> bool:
        if self.priority and not _match_priority(self.priority, task.priority):
            return False
        if self.status and not _match_status(self.status, task.status):
            return False
        if self.due is not None and not self.due.matches(task.due):
            return False
        if self.folder and self.folder.lower() not in (task.folder or "").lower():
            return False
        if self.tags:
            task_tags = [t.lstrip("#").lower() for t in task.tags]
            wanted = [t.lstrip("#").lower() for t in self.tags]
            if not any(w in tt for w in wanted for tt in task_tags):
                return False
        if self.project and (task.project or "").lower() != self.project.lower():
            return False
        return True


def _match_priority(values: list[int | str], priority: int | None) -> bool:
    for v in values:
        if v == "any" and priority is not None:
            return True
        if v == "none" and priority is None:
            return True
        if isinstance(v, int) and priority == v:
            return True
    return False


def _match_status(values: list[str], status: str | None) -> bool:
    for v in values:
        if v == "any" and status:
            return True
        if v == "none" and not status:
            return True
        if status is not None and v == status:
            return True
    return False


# ---------------------------------------------------------------------------
# Query understanding types
# ---------------------------------------------------------------------------


class ScoringMode(str, Enum):
    """Relevance formula in effect; each mode has its own ceiling."""

    EXPANDED = "expanded"
    PLAIN = "plain"


@dataclass(frozen=True)
class QueryIntent:
    """Structured interpretation of one query. Immutable once merged."""

    query: str
    remainder: str = ""
    core_keywords: tuple[str, ...] = ()
    keywords: tuple[str, ...] = ()  # core + expanded, deduplicated for scoring/display
    filters: PropertyFilters = field(default_factory=PropertyFilters)
    is_vague: bool = False
    vague_reason: str = ""
    time_context: str | None = None
    time_range: DueDateFilter | None = None
    ai_used: bool = False
    expansion_used: bool = False
    understanding: dict[str, Any] = field(default_factory=dict)
    expansion: dict[str, Any] = field(default_factory=dict)

    @property
    def meaningful_keywords(self) -> tuple[str, ...]:
        return tuple(k for k in self.keywords if not is_generic_word(k))

    @property
    def search_keywords(self) -> tuple[str, ...]:
        """Keywords used for filtering and scoring; vague queries drop generic words."""
        return self.meaningful_keywords if self.is_vague else self.keywords

    @property
    def search_core_keywords(self) -> tuple[str, ...]:
        if not self.is_vague:
            return self.core_keywords
        kept = {k.lower() for k in self.meaningful_keywords}
        return tuple(k for k in self.core_keywords if k.lower() in kept)

    @property
    def match_keywords(self) -> tuple[str, ...]:
        """Core plus search keywords, without containment dedupe.

        Dedupe may drop a short core keyword in favour of a longer expansion
        that contains it; containment filtering still has to accept the short one.
        """
        out: list[str] = []
        seen: set[str] = set()
        for k in (*self.search_core_keywords, *self.search_keywords):
            if k and k.lower() not in seen:
                seen.add(k.lower())
                out.append(k)
        return tuple(out)

    @property
    def has_keywords(self) -> bool:
        return bool(self.search_keywords)

    @property
    def scoring_mode(self) -> ScoringMode:
        return ScoringMode.EXPANDED if self.expansion_used else ScoringMode.PLAIN


# ---------------------------------------------------------------------------
# Scoring / sorting types
# ---------------------------------------------------------------------------


class SortCriterion(str, Enum):
    RELEVANCE = "relevance"
    DUE_DATE = "due_date"
    PRIORITY = "priority"
    STATUS = "status"
    CREATED = "created"
    ALPHABETICAL = "alphabetical"


@dataclass(frozen=True)
class SortSpec:
    criteria: tuple[SortCriterion, ...] = (
        SortCriterion.RELEVANCE,
        SortCriterion.DUE_DATE,
        SortCriterion.PRIORITY,
    )

    def pinned(self) -> "SortSpec":
        """Return the chain with relevance forced to the head."""
        rest = tuple(c for c in self.criteria if c is not SortCriterion.RELEVANCE)
        return SortSpec(criteria=(SortCriterion.RELEVANCE, *rest))

    def __contains__(self, item: object) -> bool:
        return item in self.criteria


@dataclass
class ScoreBreakdown:
    """Per-task score components and the weighted composite."""

    relevance: float = 0.0
    due: float = 0.0
    priority: float = 0.0
    status: float = 0.0
    core_ratio: float = 0.0
    all_ratio: float = 0.0
    relevance_coefficient: float = 0.0
    due_coefficient: float = 0.0
    priority_coefficient: float = 0.0
    status_coefficient: float = 0.0
    composite: float = 0.0


@dataclass
class ScoredTask:
    task: Task
    score: ScoreBreakdown


# ---------------------------------------------------------------------------
# Config types
# ---------------------------------------------------------------------------


@dataclass
class ModelConfig:
    """Configuration for the OpenAI-compatible model used for query parsing."""

    name: str = "qwen/qwen3-4b-2507"
    base_url: str = "http://localhost:1234/v1"
    api_key: str = "lm-studio"
    max_output_tokens: int = 1024
    temperature: float = 0.1
    request_timeout_s: float = 8.0


@dataclass
class ScoringConfig:
    relevance_coefficient: float = 20.0
    due_coefficient: float = 4.0
    priority_coefficient: float = 1.0
    status_coefficient: float = 1.0
    core_weight: float = 0.2
    all_weight: float = 1.0
    # Due-date tiers; must stay ordered overdue > week > month > later/absent.
    due_overdue: float = 1.5
    due_within_week: float = 1.0
    due_within_month: float = 0.5
    due_later: float = 0.2
    due_none: float = 0.1
    week_days: int = 7
    month_days: int = 30
    priority_scores: dict[int, float] = field(
        default_factory=lambda: {1: 1.0, 2: 0.75, 3: 0.5, 4: 0.2}
    )
    priority_none: float = 0.0


@dataclass
class QualityConfig:
    strength: float = 0.0  # 0 = adaptive
    min_results: int = 5
    max_relaxations: int = 3
    adaptive_min: float = 0.1
    adaptive_max: float = 0.4
    min_relevance: float = 0.0  # hard relevance floor, 0 = off


@dataclass
class SortConfig:
    ai_order: SortSpec = field(default_factory=SortSpec)
    plain_order: SortSpec = field(default_factory=SortSpec)


@dataclass
class EngineConfig:
    """Immutable-by-convention snapshot passed into every engine call."""

    model: ModelConfig = field(default_factory=ModelConfig)
    ai_enabled: bool = True
    languages: list[str] = field(default_factory=lambda: ["English"])
    expansion_enabled: bool = True
    expansions_per_language: int = 5
    statuses: list[StatusCategoryConfig] = field(default_factory=list)
    priority_terms: dict[str, list[str]] = field(default_factory=dict)
    due_terms: dict[str, list[str]] = field(default_factory=dict)
    status_terms: dict[str, list[str]] = field(default_factory=dict)
    stop_words: list[str] = field(default_factory=list)  # added to the built-in list
    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    quality: QualityConfig = field(default_factory=QualityConfig)
    sort: SortConfig = field(default_factory=SortConfig)


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------


@dataclass
class EngineError:
    """Structured failure returned instead of raising across stage boundaries."""

    stage: str
    message: str


@dataclass
class Diagnostics:
    total: int = 0
    after_property: int = 0
    after_keyword: int = 0
    pre_quality: int = 0
    post_quality: int = 0
    threshold: float = 0.0
    strength: float = 0.0
    max_attainable: float = 0.0
    relaxed: int = 0
    below_min_relevance: int = 0
    fallback_top_n: bool = False
    scoring_mode: ScoringMode = ScoringMode.PLAIN
    keyword_filter_skipped: bool = False
    empty_stage: str | None = None


@dataclass
class RankResult:
    tasks: list[ScoredTask] = field(default_factory=list)
    diagnostics: Diagnostics = field(default_factory=Diagnostics)
    error: EngineError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None
