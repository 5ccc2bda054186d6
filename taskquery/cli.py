from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from datetime import date
from pathlib import Path
from typing import Any

import yaml
from rich.console import Console
from rich.table import Table

from taskquery.engine import QueryEngine
from taskquery.sorter import parse_sort_spec
from taskquery.types import (
    EngineConfig,
    EngineError,
    ModelConfig,
    QualityConfig,
    QueryIntent,
    RankResult,
    ScoringConfig,
    SortConfig,
    StatusCategoryConfig,
    Task,
)


def _read_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    return data if isinstance(data, dict) else {}


def _load_model(cfg: dict[str, Any]) -> ModelConfig:
    entry = cfg.get("model") or {}
    default = ModelConfig()
    return ModelConfig(
        name=str(entry.get("name") or default.name),
        base_url=str(entry.get("base_url") or default.base_url),
        api_key=str(entry.get("api_key") or default.api_key),
        max_output_tokens=int(entry.get("max_output_tokens") or default.max_output_tokens),
        temperature=float(entry.get("temperature", default.temperature)),
        request_timeout_s=float(entry.get("request_timeout_s") or default.request_timeout_s),
    )


def _load_statuses(cfg: dict[str, Any]) -> list[StatusCategoryConfig]:
    out: list[StatusCategoryConfig] = []
    for entry in cfg.get("statuses") or []:
        if not isinstance(entry, dict):
            continue
        terms = entry.get("terms")
        if isinstance(terms, str):
            terms = [t.strip() for t in terms.split(",") if t.strip()]
        out.append(
            StatusCategoryConfig(
                key=str(entry.get("key") or ""),
                display_name=str(entry.get("display_name") or ""),
                symbols=[str(s) for s in entry.get("symbols") or []],
                aliases=[str(a) for a in entry.get("aliases") or []],
                score=entry.get("score", 0.5),
                order=entry.get("order"),
                terms=list(terms) if terms else None,
                description=str(entry.get("description") or ""),
            )
        )
    return out


def _load_section(cls: type, section: Any) -> Any:
    obj = cls()
    if not isinstance(section, dict):
        return obj
    for k, v in section.items():
        if not hasattr(obj, k):
            continue
        current = getattr(obj, k)
        try:
            if isinstance(current, dict):
                setattr(obj, k, {int(kk): float(vv) for kk, vv in (v or {}).items()})
            elif isinstance(current, bool):
                setattr(obj, k, bool(v))
            elif isinstance(current, int):
                setattr(obj, k, int(v))
            elif isinstance(current, float):
                setattr(obj, k, float(v))
        except (TypeError, ValueError):
            continue
    return obj


def load_engine_config(path: Path) -> EngineConfig:
    cfg = _read_yaml(path)
    ai = cfg.get("ai") or {}
    terms = cfg.get("terms") or {}
    sort = cfg.get("sort") or {}

    sort_cfg = SortConfig()
    if sort.get("ai"):
        sort_cfg.ai_order = parse_sort_spec(sort["ai"])
    if sort.get("plain"):
        sort_cfg.plain_order = parse_sort_spec(sort["plain"])

    return EngineConfig(
        model=_load_model(cfg),
        ai_enabled=bool(ai.get("enabled", True)),
        languages=[str(x) for x in ai.get("languages") or ["English"]],
        expansion_enabled=bool(ai.get("expansion_enabled", True)),
        expansions_per_language=int(ai.get("expansions_per_language", 5)),
        statuses=_load_statuses(cfg),
        priority_terms=dict(terms.get("priority") or {}),
        due_terms=dict(terms.get("due") or {}),
        status_terms=dict(terms.get("status") or {}),
        stop_words=[str(w) for w in cfg.get("stop_words") or []],
        scoring=_load_section(ScoringConfig, cfg.get("scoring")),
        quality=_load_section(QualityConfig, cfg.get("quality")),
        sort=sort_cfg,
    )


def load_tasks(path: Path, engine: QueryEngine) -> list[Task]:
    data = _read_yaml(path)
    items = data.get("tasks") or []
    if not isinstance(items, list):
        raise ValueError(f"{path}: 'tasks' must be a list")
    return [Task.from_dict(item, engine.registry) for item in items if isinstance(item, dict)]


def _print_intent(intent: QueryIntent, console: Console) -> None:
    tbl = Table(title="Query intent")
    tbl.add_column("Field")
    tbl.add_column("Value")
    f = intent.filters
    tbl.add_row("source", str(intent.understanding.get("source", "")))
    tbl.add_row("core keywords", ", ".join(intent.core_keywords) or "-")
    tbl.add_row("keywords", ", ".join(intent.keywords) or "-")
    tbl.add_row("vague", f"{intent.is_vague} {intent.vague_reason}".strip())
    tbl.add_row("time context", intent.time_context or "-")
    tbl.add_row("time range", intent.time_range.label if intent.time_range else "-")
    tbl.add_row("priority", ", ".join(str(p) for p in f.priority) or "-")
    tbl.add_row("status", ", ".join(f.status) or "-")
    tbl.add_row("due", f.due.label if f.due else "-")
    tbl.add_row("folder", f.folder or "-")
    tbl.add_row("tags", ", ".join(f.tags) or "-")
    tbl.add_row("project", f.project or "-")
    tbl.add_row("scoring mode", intent.scoring_mode.value)
    console.print(tbl)


def _print_ranking(res: RankResult, console: Console, limit: int) -> None:
    tbl = Table(title="Ranked tasks")
    tbl.add_column("#", justify="right")
    tbl.add_column("Task")
    tbl.add_column("Due")
    tbl.add_column("P", justify="right")
    tbl.add_column("Status")
    tbl.add_column("Rel", justify="right")
    tbl.add_column("Score", justify="right")
    for i, st in enumerate(res.tasks[: limit if limit > 0 else None], start=1):
        t, s = st.task, st.score
        tbl.add_row(
            str(i),
            t.text,
            t.due.isoformat() if t.due else "-",
            str(t.priority) if t.priority else "-",
            t.status or "-",
            f"{s.relevance:.2f}",
            f"{s.composite:.2f}",
        )
    console.print(tbl)

    d = res.diagnostics
    console.print(
        f"[dim]total={d.total} after_property={d.after_property} "
        f"after_keyword={d.after_keyword} pre_quality={d.pre_quality} "
        f"post_quality={d.post_quality} threshold={d.threshold:.2f} "
        f"max={d.max_attainable:.2f} mode={d.scoring_mode.value} "
        f"keyword_filter_skipped={d.keyword_filter_skipped} "
        f"below_min_relevance={d.below_min_relevance}[/dim]"
    )
    if d.empty_stage:
        console.print(f"No results: emptied at {d.empty_stage}")


def _today(args: argparse.Namespace) -> date | None:
    raw = getattr(args, "today", None)
    return date.fromisoformat(raw) if raw else None


async def _cmd_understand(args: argparse.Namespace, engine: QueryEngine, console: Console) -> int:
    intent = await engine.understand(args.query, today=_today(args))
    if isinstance(intent, EngineError):
        console.print(f"Error ({intent.stage}): {intent.message}")
        return 2
    _print_intent(intent, console)
    return 0


async def _cmd_rank(args: argparse.Namespace, engine: QueryEngine, console: Console) -> int:
    try:
        tasks = load_tasks(Path(args.tasks), engine)
    except (OSError, ValueError, yaml.YAMLError) as e:
        console.print(f"Could not load tasks: {e}")
        return 2

    today = _today(args)
    intent = await engine.understand(args.query, today=today)
    if isinstance(intent, EngineError):
        console.print(f"Error ({intent.stage}): {intent.message}")
        return 2
    _print_intent(intent, console)

    res = engine.rank(tasks, intent, today=today)
    if res.error is not None:
        console.print(f"Error ({res.error.stage}): {res.error.message}")
        return 2
    _print_ranking(res, console, int(args.limit))
    return 0 if res.tasks else 1


async def _cmd_status(args: argparse.Namespace, engine: QueryEngine, console: Console) -> int:
    tbl = Table(title="Status")
    tbl.add_column("Service")
    tbl.add_column("OK")
    tbl.add_column("Details")

    reg_ok = engine.registry is not None
    reg_detail = (
        f"{len(engine.registry.categories)} status categories"
        if engine.registry is not None
        else (engine.registry_error.message if engine.registry_error else "unavailable")
    )
    tbl.add_row("registry", "yes" if reg_ok else "no", reg_detail)

    llm_ok = False
    llm_detail = ""
    if not engine.config.ai_enabled:
        llm_detail = "disabled (offline fallback only)"
    else:
        try:
            llm_ok = await engine.parser.health_check()
            llm_detail = f"model={engine.config.model.name} base_url={engine.config.model.base_url}"
        except Exception as e:
            llm_detail = str(e)
    tbl.add_row("llm", "yes" if llm_ok else "no", llm_detail)

    console.print(tbl)
    return 0 if (reg_ok and (llm_ok or not engine.config.ai_enabled)) else 1


def _build_parser(default_config: Path) -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="taskquery", description="Task query understanding and ranking"
    )
    p.add_argument("--config", type=str, default=str(default_config), help="engine YAML config")
    p.add_argument(
        "--ai",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Enable/disable the model call (the offline fallback is always available)",
    )
    p.add_argument("--today", type=str, default=None, help="override today's date (YYYY-MM-DD)")
    p.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    sub = p.add_subparsers(dest="cmd", required=True)

    up = sub.add_parser("understand", help="show how a query is interpreted")
    up.add_argument("query", type=str)

    rp = sub.add_parser("rank", help="rank tasks from a YAML file against a query")
    rp.add_argument("query", type=str)
    rp.add_argument("--tasks", type=str, required=True, help="YAML file with a 'tasks' list")
    rp.add_argument("--limit", type=int, default=20)

    sub.add_parser("status", help="check registry + model connectivity")
    return p


def main() -> None:
    console = Console()
    base_dir = Path(__file__).resolve().parents[1]
    parser = _build_parser(base_dir / "configs" / "engine.yaml")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
        stream=sys.stderr,
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)

    cfg = load_engine_config(Path(args.config))
    if args.ai is not None:
        cfg.ai_enabled = bool(args.ai)
    engine = QueryEngine(cfg)

    async def run_cmd() -> int:
        if args.cmd == "understand":
            return await _cmd_understand(args, engine, console)
        if args.cmd == "rank":
            return await _cmd_rank(args, engine, console)
        if args.cmd == "status":
            return await _cmd_status(args, engine, console)
        console.print(f"Unknown command: {args.cmd}")
        return 2

    raise SystemExit(asyncio.run(run_cmd()))


if __name__ == "__main__":
    main()
