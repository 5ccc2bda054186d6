"""Weighted composite scoring of candidate tasks.

composite = relevance * Cr + due * Cd + priority * Cp + status * Cs

Each non-relevance coefficient is active only when the query filters on that
dimension or the active sort chain references it. The relevance coefficient
is zero when the query carries no search keywords.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date

from taskquery.registry import PropertyTermRegistry
from taskquery.types import (
    QueryIntent,
    ScoreBreakdown,
    ScoredTask,
    ScoringConfig,
    ScoringMode,
    SortCriterion,
    SortSpec,
    Task,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Coefficients:
    relevance: float = 0.0
    due: float = 0.0
    priority: float = 0.0
    status: float = 0.0


def _distinct(items: tuple[str, ...] | list[str]) -> list[str]:
    out: list[str] = []
    seen: set[str] = set()
    for it in items:
        k = (it or "").strip().lower()
        if k and k not in seen:
            seen.add(k)
            out.append(k)
    return out


def _coverage(text_l: str, keywords: list[str]) -> float:
    if not keywords:
        return 0.0
    matched = sum(1 for k in keywords if k in text_l)
    return matched / len(keywords)


class RelevanceScorer:
    def __init__(
        self,
        config: ScoringConfig,
        registry: PropertyTermRegistry,
        today: date | None = None,
    ):
        self.config = config
        self.registry = registry
        self.today = today or date.today()

    def coefficients(self, intent: QueryIntent, sort_spec: SortSpec) -> Coefficients:
        cfg = self.config
        dims = intent.filters.dimensions()
        due_active = (
            "due" in dims
            or intent.time_range is not None
            or intent.time_context is not None
            or SortCriterion.DUE_DATE in sort_spec
        )
        priority_active = "priority" in dims or SortCriterion.PRIORITY in sort_spec
        status_active = "status" in dims or SortCriterion.STATUS in sort_spec
        return Coefficients(
            relevance=float(cfg.relevance_coefficient) if intent.has_keywords else 0.0,
            due=float(cfg.due_coefficient) if due_active else 0.0,
            priority=float(cfg.priority_coefficient) if priority_active else 0.0,
            status=float(cfg.status_coefficient) if status_active else 0.0,
        )

    # ------------------------------------------------------------------
    # Components
    # ------------------------------------------------------------------

    def relevance(self, task: Task, intent: QueryIntent) -> tuple[float, float, float]:
        """Return (relevance, core_ratio, all_ratio) for one task."""
        cfg = self.config
        text_l = (task.text or "").lower()
        core = _distinct(intent.search_core_keywords)
        everything = _distinct(intent.match_keywords)

        core_ratio = _coverage(text_l, core)
        all_ratio = _coverage(text_l, everything)

        if intent.scoring_mode is ScoringMode.EXPANDED:
            rel = core_ratio * float(cfg.core_weight) + all_ratio * float(cfg.all_weight)
        else:
            rel = core_ratio * float(cfg.all_weight)
        return rel, core_ratio, all_ratio

    def max_relevance(self, mode: ScoringMode) -> float:
        if mode is ScoringMode.EXPANDED:
            return float(self.config.core_weight) + float(self.config.all_weight)
        return float(self.config.all_weight)

    def due_score(self, due: date | None) -> float:
        cfg = self.config
        if due is None:
            return float(cfg.due_none)
        days = (due - self.today).days
        if days < 0:
            return float(cfg.due_overdue)
        if days <= int(cfg.week_days):
            return float(cfg.due_within_week)
        if days <= int(cfg.month_days):
            return float(cfg.due_within_month)
        return float(cfg.due_later)

    def max_due_score(self) -> float:
        cfg = self.config
        return max(
            float(cfg.due_overdue),
            float(cfg.due_within_week),
            float(cfg.due_within_month),
            float(cfg.due_later),
            float(cfg.due_none),
        )

    def priority_score(self, priority: int | None) -> float:
        if priority is None:
            return float(self.config.priority_none)
        return float(self.config.priority_scores.get(int(priority), self.config.priority_none))

    def max_priority_score(self) -> float:
        return max([float(v) for v in self.config.priority_scores.values()] or [0.0])

    def status_score(self, status: str | None) -> float:
        return self.registry.score_for(status)

    # ------------------------------------------------------------------
    # Composite
    # ------------------------------------------------------------------

    def score(self, task: Task, intent: QueryIntent, coeffs: Coefficients) -> ScoreBreakdown:
        rel, core_ratio, all_ratio = self.relevance(task, intent)
        due = self.due_score(task.due)
        prio = self.priority_score(task.priority)
        status = self.status_score(task.status)
        composite = (
            rel * coeffs.relevance
            + due * coeffs.due
            + prio * coeffs.priority
            + status * coeffs.status
        )
        return ScoreBreakdown(
            relevance=rel,
            due=due,
            priority=prio,
            status=status,
            core_ratio=core_ratio,
            all_ratio=all_ratio,
            relevance_coefficient=coeffs.relevance,
            due_coefficient=coeffs.due,
            priority_coefficient=coeffs.priority,
            status_coefficient=coeffs.status,
            composite=composite,
        )

    def score_all(
        self, tasks: list[Task], intent: QueryIntent, sort_spec: SortSpec
    ) -> tuple[list[ScoredTask], Coefficients]:
        coeffs = self.coefficients(intent, sort_spec)
        scored = [ScoredTask(task=t, score=self.score(t, intent, coeffs)) for t in tasks]
        logger.debug(
            "score: %d tasks mode=%s coefficients=%s",
            len(scored),
            intent.scoring_mode.value,
            coeffs,
        )
        return scored, coeffs

    def max_attainable(self, intent: QueryIntent, coeffs: Coefficients) -> float:
        """Ceiling of the composite for this intent's scoring mode."""
        return (
            self.max_relevance(intent.scoring_mode) * coeffs.relevance
            + self.max_due_score() * coeffs.due
            + self.max_priority_score() * coeffs.priority
            + self.registry.max_status_score() * coeffs.status
        )
