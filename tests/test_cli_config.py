from __future__ import annotations

import argparse
from pathlib import Path

import pytest
from rich.console import Console

from taskquery.cli import _build_parser, _cmd_rank, load_engine_config, load_tasks
from taskquery.engine import QueryEngine
from taskquery.types import SortCriterion

ENGINE_YAML = """
model:
  name: test-model
  request_timeout_s: 2
ai:
  enabled: false
  languages: [English, Chinese]
  expansions_per_language: 3
statuses:
  - key: blocked
    symbols: ["!"]
    aliases: [stuck]
    score: 0.6
terms:
  priority:
    high: [asap]
scoring:
  relevance_coefficient: 10
  priority_scores: {1: 1.0, 2: 0.5}
quality:
  min_results: 2
  min_relevance: 0.5
stop_words: [Please, kindly]
sort:
  plain: [priority, due, bogus]
"""

TASKS_YAML = """
tasks:
  - id: t1
    text: Fix login bug
    status: "!"
    priority: 1
    due: 2026-10-18
  - id: t2
    text: Update docs
    status: "?"
  - id: t3
    text: Refactor bug tracker
    status: " "
    tags: "backend, cleanup"
"""


def _write(tmp_path: Path, name: str, body: str) -> Path:
    p = tmp_path / name
    p.write_text(body, encoding="utf-8")
    return p


def test_load_engine_config_reads_every_section(tmp_path: Path) -> None:
    cfg = load_engine_config(_write(tmp_path, "engine.yaml", ENGINE_YAML))

    assert cfg.model.name == "test-model"
    assert cfg.model.request_timeout_s == 2.0
    assert cfg.ai_enabled is False
    assert cfg.languages == ["English", "Chinese"]
    assert cfg.expansions_per_language == 3
    assert [s.key for s in cfg.statuses] == ["blocked"]
    assert cfg.priority_terms == {"high": ["asap"]}
    assert cfg.scoring.relevance_coefficient == 10.0
    assert cfg.scoring.priority_scores == {1: 1.0, 2: 0.5}
    assert cfg.quality.min_results == 2
    assert cfg.quality.min_relevance == 0.5
    assert cfg.stop_words == ["Please", "kindly"]
    assert cfg.sort.plain_order.criteria == (SortCriterion.PRIORITY, SortCriterion.DUE_DATE)
    assert SortCriterion.RELEVANCE in cfg.sort.ai_order


def test_missing_config_file_uses_defaults(tmp_path: Path) -> None:
    cfg = load_engine_config(tmp_path / "missing.yaml")
    assert cfg.ai_enabled is True
    assert cfg.statuses == []
    assert cfg.scoring.relevance_coefficient == 20.0
    assert cfg.stop_words == []
    assert cfg.quality.min_relevance == 0.0


def test_load_tasks_maps_status_symbols(tmp_path: Path) -> None:
    cfg = load_engine_config(_write(tmp_path, "engine.yaml", ENGINE_YAML))
    tasks = load_tasks(_write(tmp_path, "tasks.yaml", TASKS_YAML), QueryEngine(cfg))

    assert [t.status for t in tasks] == ["blocked", "other", "open"]
    assert tasks[0].due is not None and tasks[0].due.isoformat() == "2026-10-18"
    assert tasks[2].tags == ["backend", "cleanup"]


def test_parser_accepts_rank_command() -> None:
    args = _build_parser(Path("engine.yaml")).parse_args(
        ["--no-ai", "--today", "2026-10-19", "rank", "fix bug", "--tasks", "t.yaml"]
    )
    assert args.cmd == "rank"
    assert args.ai is False
    assert args.limit == 20


@pytest.mark.asyncio
async def test_rank_command_prints_ranking(tmp_path: Path) -> None:
    cfg = load_engine_config(_write(tmp_path, "engine.yaml", ENGINE_YAML))
    args = argparse.Namespace(
        query="bug",
        tasks=str(_write(tmp_path, "tasks.yaml", TASKS_YAML)),
        today="2026-10-19",
        limit=10,
    )
    console = Console(record=True, width=200)

    code = await _cmd_rank(args, QueryEngine(cfg), console)

    out = console.export_text()
    assert code == 0
    assert "Fix login bug" in out
    assert "Refactor bug tracker" in out
    assert "Update docs" not in out


@pytest.mark.asyncio
async def test_rank_command_reports_missing_tasks_file(tmp_path: Path) -> None:
    cfg = load_engine_config(_write(tmp_path, "engine.yaml", ENGINE_YAML))
    args = argparse.Namespace(
        query="bug", tasks=str(tmp_path / "nope.yaml"), today=None, limit=10
    )
    console = Console(record=True, width=200)
    code = await _cmd_rank(args, QueryEngine(cfg), console)
    # A missing file reads as an empty collection.
    assert code == 1
    assert "total=0" in console.export_text()
