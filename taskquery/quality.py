from __future__ import annotations

import logging
from dataclasses import dataclass, field

from taskquery.types import QualityConfig, ScoredTask

logger = logging.getLogger(__name__)


@dataclass
class QualityOutcome:
    tasks: list[ScoredTask] = field(default_factory=list)
    threshold: float = 0.0
    strength: float = 0.0
    relaxed: int = 0
    fallback_top_n: bool = False
    below_min_relevance: int = 0
    applied: bool = False


class QualityFilter:
    """Adaptive score threshold with a minimum-result safety net."""

    def __init__(self, config: QualityConfig):
        self.config = config

    def strength_for(self, keyword_count: int) -> float:
        configured = float(self.config.strength)
        if configured > 0.0:
            return min(configured, 1.0)
        # Adaptive: more keywords means partial matches are expected.
        raw = 0.4 / max(1.0, keyword_count / 2.0)
        lo = float(self.config.adaptive_min)
        hi = float(self.config.adaptive_max)
        return max(lo, min(hi, raw))

    def apply(
        self,
        scored: list[ScoredTask],
        max_attainable: float,
        keyword_count: int,
        *,
        enabled: bool = True,
    ) -> QualityOutcome:
        if not enabled or not scored or max_attainable <= 0.0:
            return QualityOutcome(tasks=list(scored))

        # The relevance floor is absolute; relaxation and top-N never revive
        # a task below it.
        floor = float(self.config.min_relevance)
        below = 0
        if floor > 0.0:
            kept = [s for s in scored if s.score.relevance >= floor]
            below = len(scored) - len(kept)
            if below:
                logger.info(
                    "quality: min_relevance=%.2f dropped %d/%d", floor, below, len(scored)
                )
            scored = kept
            if not scored:
                return QualityOutcome(below_min_relevance=below, applied=True)

        strength = self.strength_for(keyword_count)
        threshold = strength * max_attainable
        target = min(max(0, int(self.config.min_results)), len(scored))

        survivors = [s for s in scored if s.score.composite >= threshold]
        relaxed = 0
        while len(survivors) < target and relaxed < int(self.config.max_relaxations):
            relaxed += 1
            threshold /= 2.0
            survivors = [s for s in scored if s.score.composite >= threshold]

        fallback = False
        if len(survivors) < target:
            # Stable sort keeps input order among equal scores.
            ranked = sorted(scored, key=lambda s: s.score.composite, reverse=True)
            keep = {id(s) for s in ranked[:target]}
            survivors = [s for s in scored if id(s) in keep]
            fallback = True

        if relaxed or fallback:
            logger.info(
                "quality: relaxed=%d fallback_top_n=%s threshold=%.3f kept=%d/%d",
                relaxed,
                fallback,
                threshold,
                len(survivors),
                len(scored),
            )

        return QualityOutcome(
            tasks=survivors,
            threshold=threshold,
            strength=strength,
            relaxed=relaxed,
            fallback_top_n=fallback,
            below_min_relevance=below,
            applied=True,
        )
