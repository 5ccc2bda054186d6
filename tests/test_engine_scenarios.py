from __future__ import annotations

import json
from datetime import date
from types import SimpleNamespace

import pytest

from taskquery.engine import QueryEngine, rank, understand
from taskquery.registry import PropertyTermRegistry
from taskquery.scoring import RelevanceScorer
from taskquery.semantic import SemanticQueryParser
from taskquery.types import (
    EngineConfig,
    EngineError,
    QualityConfig,
    QueryIntent,
    ScoringConfig,
    ScoringMode,
    StatusCategoryConfig,
    Task,
)

TODAY = date(2026, 10, 19)


class _StubCompletions:
    def __init__(self, content: str):
        self.content = content
        self.calls = 0

    async def create(self, **kwargs):
        self.calls += 1
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def _offline(**kwargs) -> EngineConfig:
    return EngineConfig(ai_enabled=False, **kwargs)


def _ids(res) -> list[str]:
    return [s.task.id for s in res.tasks]


@pytest.mark.asyncio
async def test_property_only_query_never_calls_model() -> None:
    calls: list[EngineConfig] = []

    def factory(cfg: EngineConfig) -> SemanticQueryParser:
        calls.append(cfg)
        raise AssertionError("semantic parser must not be built")

    tasks = [
        Task(id="a", text="Renew passport", priority=1, due=date(2026, 10, 10)),
        Task(id="b", text="Book flights", priority=3, due=date(2026, 10, 25)),
        Task(id="c", text="Pay invoice", priority=3, due=date(2026, 10, 12)),
        Task(id="d", text="Call bank", priority=1, due=date(2026, 10, 25)),
    ]
    engine = QueryEngine(EngineConfig(), parser_factory=factory)
    intent = await engine.understand("P1 overdue", today=TODAY)

    assert isinstance(intent, QueryIntent)
    assert intent.understanding["source"] == "syntax"
    assert intent.understanding["explicit_syntax"] is True
    res = engine.rank(tasks, intent, today=TODAY)
    assert _ids(res) == ["a"]
    assert calls == []


@pytest.mark.asyncio
async def test_keyword_query_ranks_full_match_first() -> None:
    tasks = [Task(id="docs", text="Update docs"), Task(id="bug", text="Fix login bug")]
    engine = QueryEngine(_offline(expansion_enabled=False))
    intent = await engine.understand("fix bug", today=TODAY)

    assert intent.core_keywords == ("fix", "bug")
    assert intent.understanding["explicit_syntax"] is False
    scorer = RelevanceScorer(ScoringConfig(), engine.registry, TODAY)
    assert scorer.relevance(tasks[1], intent)[1] == 1.0
    assert scorer.relevance(tasks[0], intent)[1] == 0.0

    res = engine.rank(tasks, intent, today=TODAY)
    assert res.ok
    assert res.tasks[0].task.text == "Fix login bug"
    assert res.diagnostics.scoring_mode is ScoringMode.PLAIN


@pytest.mark.asyncio
async def test_vague_today_query_keeps_overdue_and_future_tasks() -> None:
    tasks = [
        Task(id="later", text="Renew domain", due=date(2026, 11, 19)),
        Task(id="overdue", text="Submit expenses", due=date(2026, 10, 18)),
    ]
    engine = QueryEngine(_offline())
    intent = await engine.understand("what should I do today", today=TODAY)

    assert intent.is_vague
    assert intent.time_context == "today"
    assert intent.time_range is not None
    assert intent.filters.due is None

    res = engine.rank(tasks, intent, today=TODAY)
    assert _ids(res) == ["overdue", "later"]
    assert res.tasks[0].score.due > res.tasks[1].score.due
    assert res.diagnostics.keyword_filter_skipped


def test_unknown_status_symbol_uses_catch_all() -> None:
    engine = QueryEngine(_offline())
    task = Task.from_dict({"id": "q", "text": "Mystery", "status": "?"}, engine.registry)
    assert engine.registry.resolve("?") == "other"
    assert task.status == "other"


@pytest.mark.asyncio
async def test_empty_query_returns_every_task() -> None:
    tasks = [
        Task(id="1", text="a", priority=3),
        Task(id="2", text="b", priority=1, due=date(2026, 10, 20)),
        Task(id="3", text="c"),
    ]
    res = await QueryEngine(_offline()).search(tasks, "", today=TODAY)
    assert sorted(_ids(res)) == ["1", "2", "3"]
    composites = [s.score.composite for s in res.tasks]
    assert composites == sorted(composites, reverse=True)
    assert res.tasks[0].task.id == "2"


@pytest.mark.asyncio
async def test_specific_date_excludes_overdue() -> None:
    tasks = [
        Task(id="today", text="standup notes", due=TODAY),
        Task(id="overdue", text="standup notes", due=date(2026, 10, 10)),
        Task(id="undated", text="standup notes"),
    ]
    res = await QueryEngine(_offline()).search(tasks, "d:2026-10-19", today=TODAY)
    assert _ids(res) == ["today"]


@pytest.mark.asyncio
async def test_cjk_query_matches_cjk_tasks() -> None:
    tasks = [Task(id="zh", text="修复登录错误"), Task(id="en", text="Update docs")]
    res = await QueryEngine(_offline()).search(tasks, "登录 错误", today=TODAY)
    assert _ids(res) == ["zh"]


@pytest.mark.asyncio
async def test_model_assisted_query_uses_expanded_scoring() -> None:
    reply = {
        "core_keywords": ["bug"],
        "expansions": {"bug": {"English": ["error"]}},
        "is_vague": False,
    }
    stub = _StubCompletions(json.dumps(reply))
    client = SimpleNamespace(chat=SimpleNamespace(completions=stub))
    engine = QueryEngine(
        EngineConfig(), parser_factory=lambda cfg: SemanticQueryParser(cfg, client=client)
    )
    tasks = [
        Task(id="docs", text="Update docs"),
        Task(id="crash", text="Crash error in parser"),
        Task(id="login", text="Fix login bug"),
    ]
    res = await engine.search(tasks, "bug", today=TODAY)

    assert stub.calls == 1
    assert _ids(res) == ["login", "crash"]
    assert res.diagnostics.scoring_mode is ScoringMode.EXPANDED
    assert res.diagnostics.relaxed == 1
    assert res.tasks[0].score.relevance == pytest.approx(0.7)


@pytest.mark.asyncio
async def test_empty_stage_is_reported() -> None:
    tasks = [Task(id="1", text="Fix login bug", priority=2)]
    engine = QueryEngine(_offline())

    res = await engine.search(tasks, "kubernetes", today=TODAY)
    assert res.tasks == []
    assert res.diagnostics.empty_stage == "keyword_filter"

    res = await engine.search(tasks, "p1", today=TODAY)
    assert res.diagnostics.empty_stage == "property_filter"


@pytest.mark.asyncio
async def test_broken_status_config_returns_engine_error() -> None:
    cfg = _offline(
        statuses=[
            StatusCategoryConfig(key="a", symbols=["x"]),
            StatusCategoryConfig(key="b", symbols=["x"]),
        ]
    )
    engine = QueryEngine(cfg)
    intent = await engine.understand("fix bug", today=TODAY)
    assert isinstance(intent, EngineError)
    assert intent.stage == "registry"

    res = engine.rank([Task(id="1", text="fix bug")], intent, today=TODAY)
    assert not res.ok
    assert res.tasks == []


@pytest.mark.asyncio
async def test_module_level_entry_points() -> None:
    cfg = _offline()
    intent = await understand("p2", cfg, today=TODAY)
    assert isinstance(intent, QueryIntent)
    res = rank(
        [Task(id="1", text="a", priority=2), Task(id="2", text="b", priority=1)],
        intent,
        cfg,
        today=TODAY,
    )
    assert _ids(res) == ["1"]


def test_engine_keeps_its_own_config_snapshot() -> None:
    cfg = _offline()
    engine = QueryEngine(cfg)
    cfg.scoring.relevance_coefficient = 99.0
    assert engine.config.scoring.relevance_coefficient == 20.0
    assert isinstance(engine.registry, PropertyTermRegistry)


@pytest.mark.asyncio
async def test_cjk_expansion_containing_core_keyword_still_matches_core() -> None:
    reply = {
        "core_keywords": ["登录"],
        "expansions": {"登录": {"Chinese": ["登录页面"]}},
        "is_vague": False,
    }
    stub = _StubCompletions(json.dumps(reply))
    client = SimpleNamespace(chat=SimpleNamespace(completions=stub))
    engine = QueryEngine(
        EngineConfig(), parser_factory=lambda cfg: SemanticQueryParser(cfg, client=client)
    )
    intent = await engine.understand("登录", today=TODAY)
    assert isinstance(intent, QueryIntent)
    # The longer expansion absorbs the core keyword for display/scoring only.
    assert intent.keywords == ("登录页面",)
    assert intent.match_keywords == ("登录", "登录页面")

    tasks = [Task(id="zh", text="修复登录错误"), Task(id="en", text="Update docs")]
    res = engine.rank(tasks, intent, today=TODAY)
    assert _ids(res) == ["zh"]
    assert res.tasks[0].score.core_ratio == 1.0


@pytest.mark.asyncio
async def test_min_relevance_floor_drops_partial_matches() -> None:
    tasks = [Task(id="full", text="Fix login bug"), Task(id="half", text="Fix docs")]
    engine = QueryEngine(_offline(quality=QualityConfig(min_relevance=0.75)))
    res = await engine.search(tasks, "fix bug", today=TODAY)
    assert _ids(res) == ["full"]
    assert res.diagnostics.below_min_relevance == 1
    assert res.diagnostics.after_keyword == 2
