"""Query engine: understand a query, then rank a task collection against it.

Flow:
  syntax parse -> semantic parse (model or fallback) -> merge -> filter
  -> score -> quality threshold -> multi-criteria sort
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Callable, Iterable
from datetime import date

from taskquery.filters import InMemoryTaskIndex, TaskFilterPipeline, TaskIndex
from taskquery.quality import QualityFilter
from taskquery.registry import PropertyTermRegistry, RegistryError
from taskquery.scoring import RelevanceScorer
from taskquery.semantic import SemanticQueryParser, SemanticResult, merge_intent
from taskquery.sorter import MultiCriteriaSorter
from taskquery.syntax import StandardSyntaxParser
from taskquery.types import (
    Diagnostics,
    EngineConfig,
    EngineError,
    QueryIntent,
    RankResult,
    SortSpec,
    Task,
)

logger = logging.getLogger(__name__)


class QueryEngine:
    """Holds one configuration snapshot and the collaborators built from it."""

    def __init__(
        self,
        config: EngineConfig | None = None,
        parser_factory: Callable[[EngineConfig], SemanticQueryParser] = SemanticQueryParser,
    ):
        self.config = copy.deepcopy(config or EngineConfig())
        self.parser_factory = parser_factory
        self._parser: SemanticQueryParser | None = None
        self.registry: PropertyTermRegistry | None = None
        self.registry_error: EngineError | None = None
        try:
            self.registry = PropertyTermRegistry(self.config)
        except RegistryError as e:
            logger.warning("engine: registry unusable: %s", e)
            self.registry_error = EngineError(stage="registry", message=str(e))

    @property
    def parser(self) -> SemanticQueryParser:
        if self._parser is None:
            self._parser = self.parser_factory(self.config)
        return self._parser

    async def understand(self, query: str, today: date | None = None) -> QueryIntent | EngineError:
        if self.registry is None:
            return self.registry_error or EngineError(stage="registry", message="unavailable")
        registry = self.registry
        today = today or date.today()

        parsed = StandardSyntaxParser(registry, today).parse(query)
        if parsed.remainder:
            semantic = await self.parser.parse(parsed.remainder, registry, today)
        else:
            # Pure property query: nothing left for the model to interpret.
            semantic = SemanticResult(source="syntax")

        intent = merge_intent(query, parsed, semantic, self.config, registry, today)
        logger.info(
            "understand: source=%s core=%r keywords=%d vague=%s time_context=%s filters=%s",
            intent.understanding.get("source"),
            list(intent.core_keywords),
            len(intent.keywords),
            intent.is_vague,
            intent.time_context,
            sorted(intent.filters.dimensions()),
        )
        return intent

    def sort_spec_for(self, intent: QueryIntent) -> SortSpec:
        if intent.ai_used:
            return self.config.sort.ai_order.pinned()
        return self.config.sort.plain_order

    def rank(
        self,
        tasks: Iterable[Task] | TaskIndex,
        intent: QueryIntent | EngineError,
        today: date | None = None,
    ) -> RankResult:
        if isinstance(intent, EngineError):
            return RankResult(error=intent)
        if self.registry is None:
            return RankResult(
                error=self.registry_error or EngineError(stage="registry", message="unavailable")
            )
        registry = self.registry
        today = today or date.today()

        index = tasks if isinstance(tasks, TaskIndex) else InMemoryTaskIndex(tasks)
        outcome = TaskFilterPipeline().run(index, intent)

        sort_spec = self.sort_spec_for(intent)
        scorer = RelevanceScorer(self.config.scoring, registry, today)
        scored, coeffs = scorer.score_all(outcome.candidates, intent, sort_spec)
        max_attainable = scorer.max_attainable(intent, coeffs)

        quality = QualityFilter(self.config.quality).apply(
            scored,
            max_attainable,
            keyword_count=len(intent.search_keywords),
            enabled=coeffs.relevance > 0.0,
        )
        ordered = MultiCriteriaSorter(registry).sort(
            quality.tasks, sort_spec, ai_assisted=intent.ai_used
        )

        diag = Diagnostics(
            total=outcome.total,
            after_property=outcome.after_property,
            after_keyword=outcome.after_keyword,
            pre_quality=len(scored),
            post_quality=len(quality.tasks),
            threshold=quality.threshold,
            strength=quality.strength,
            max_attainable=max_attainable,
            relaxed=quality.relaxed,
            fallback_top_n=quality.fallback_top_n,
            below_min_relevance=quality.below_min_relevance,
            scoring_mode=intent.scoring_mode,
            keyword_filter_skipped=outcome.keyword_filter_skipped,
            empty_stage=outcome.empty_stage,
        )
        if diag.empty_stage is None and diag.pre_quality > 0 and diag.post_quality == 0:
            diag.empty_stage = "quality_filter"

        logger.info(
            "rank: %d -> %d candidates -> %d results (mode=%s threshold=%.3f)",
            diag.total,
            diag.pre_quality,
            diag.post_quality,
            diag.scoring_mode.value,
            diag.threshold,
        )
        return RankResult(tasks=ordered, diagnostics=diag)

    async def search(
        self,
        tasks: Iterable[Task] | TaskIndex,
        query: str,
        today: date | None = None,
    ) -> RankResult:
        today = today or date.today()
        intent = await self.understand(query, today=today)
        return self.rank(tasks, intent, today=today)


async def understand(
    query: str,
    config: EngineConfig,
    *,
    today: date | None = None,
    parser_factory: Callable[[EngineConfig], SemanticQueryParser] = SemanticQueryParser,
) -> QueryIntent | EngineError:
    return await QueryEngine(config, parser_factory=parser_factory).understand(query, today)


def rank(
    tasks: Iterable[Task] | TaskIndex,
    intent: QueryIntent | EngineError,
    config: EngineConfig,
    *,
    today: date | None = None,
) -> RankResult:
    return QueryEngine(config).rank(tasks, intent, today)
