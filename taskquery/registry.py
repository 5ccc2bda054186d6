"""Property vocabulary registry.

Merges the built-in multilingual status, priority and due-date vocabularies
with user overrides. Everything downstream (syntax parsing, prompts, the
fallback keyword extractor, scoring and sorting) looks properties up here by
stable category key rather than by display name.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable

from taskquery.types import EngineConfig, StatusCategoryConfig

logger = logging.getLogger(__name__)


OPEN_KEY = "open"
OTHER_KEY = "other"
UNKNOWN_ORDER = 999


class RegistryError(ValueError):
    """Raised when status configuration is unusable."""


# ---------------------------------------------------------------------------
# Built-in defaults
# ---------------------------------------------------------------------------

DEFAULT_STATUSES: tuple[StatusCategoryConfig, ...] = (
    StatusCategoryConfig(
        key="open",
        display_name="Open",
        symbols=[" ", ""],
        score=1.0,
        order=1,
        description="Tasks not yet started or awaiting action",
    ),
    StatusCategoryConfig(
        key="inProgress",
        display_name="In progress",
        symbols=["/", "~"],
        aliases=["wip", "doing", "in-progress"],
        score=0.75,
        order=2,
        description="Tasks currently being worked on",
    ),
    StatusCategoryConfig(
        key="completed",
        display_name="Completed",
        symbols=["x", "X"],
        aliases=["done", "finished"],
        score=0.2,
        order=6,
        description="Finished tasks",
    ),
    StatusCategoryConfig(
        key="cancelled",
        display_name="Cancelled",
        symbols=["-"],
        aliases=["canceled", "dropped"],
        score=0.1,
        order=7,
        description="Abandoned tasks",
    ),
    StatusCategoryConfig(
        key="other",
        display_name="Other",
        symbols=[],
        score=0.5,
        order=UNKNOWN_ORDER,
        description="Any status symbol not claimed by another category",
    ),
)

DEFAULT_STATUS_TERMS: dict[str, list[str]] = {
    "open": [
        "open", "todo", "new", "unstarted", "incomplete", "not started",
        "to do", "pending", "待办", "未完成", "未开始", "öppen", "ej påbörjad",
    ],
    "inProgress": [
        "inprogress", "in progress", "in-progress", "wip", "working", "ongoing",
        "active", "doing", "started", "current", "进行中", "正在做", "处理中",
        "pågående", "påbörjad",
    ],
    "completed": [
        "completed", "done", "finished", "closed", "resolved", "complete",
        "完成", "已完成", "结束", "klar", "färdig", "avklarad",
    ],
    "cancelled": [
        "cancelled", "canceled", "abandoned", "dropped", "discarded",
        "rejected", "取消", "已取消", "放弃", "avbruten", "inställd",
    ],
}  # fmt: skip

BASE_STATUS_GENERAL: list[str] = ["status", "progress", "状态", "进度", "情况", "tillstånd"]

BASE_PRIORITY_TERMS: dict[str, list[str]] = {
    "general": [
        "priority", "urgent", "优先级", "优先", "紧急", "prioritet", "viktig", "brådskande",
    ],
    "high": ["high", "highest", "top", "critical", "高", "最高", "hög", "högst", "kritisk"],
    "medium": ["medium", "normal", "中", "中等", "普通", "medel"],
    "low": ["low", "minor", "低", "次要", "låg", "mindre"],
}

BASE_DUE_DATE_TERMS: dict[str, list[str]] = {
    "general": ["due", "deadline", "截止日期", "到期", "期限", "förfallodatum"],
    "today": ["today", "今天", "今日", "idag"],
    "tomorrow": ["tomorrow", "明天", "imorgon"],
    "yesterday": ["yesterday", "昨天", "igår"],
    "overdue": ["overdue", "late", "past due", "过期", "逾期", "延迟", "försenad", "sen"],
    "last_week": ["last week", "上周", "förra veckan"],
    "this_week": ["this week", "本周", "这周", "denna vecka"],
    "next_week": ["next week", "下周", "nästa vecka"],
    "last_month": ["last month", "上月", "förra månaden"],
    "this_month": ["this month", "本月", "这月", "denna månad"],
    "next_month": ["next month", "下月", "nästa månad"],
    "last_year": ["last year", "去年", "förra året"],
    "this_year": ["this year", "今年", "i år"],
    "next_year": ["next year", "明年", "nästa år"],
    "future": ["future", "upcoming", "later", "未来", "将来", "以后", "framtida", "kommande"],
}

_PRIORITY_LEVEL = {"high": 1, "medium": 2, "low": 3}

_BRACKETED_RE = re.compile(r"^\[(.?)\]$")


def _split_terms(value: Iterable[str] | str | None) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [t.strip() for t in value.split(",") if t.strip()]
    return [str(t).strip() for t in value if str(t).strip()]


def _merge_terms(
    base: dict[str, list[str]], override: dict[str, list[str]]
) -> dict[str, list[str]]:
    out = {k: list(v) for k, v in base.items()}
    for key, terms in (override or {}).items():
        merged = out.setdefault(str(key), [])
        for t in _split_terms(terms):
            if t not in merged:
                merged.append(t)
    return out


class PropertyTermRegistry:
    """Source of truth for status, priority and due-date vocabulary."""

    def __init__(self, config: EngineConfig | None = None):
        config = config or EngineConfig()
        self._categories: dict[str, StatusCategoryConfig] = {}
        self._user_keys: set[str] = set()
        self._positions: dict[str, int] = {}
        self._symbol_index: dict[str, str] = {}

        self._load_categories(config.statuses)
        self._priority_terms = _merge_terms(BASE_PRIORITY_TERMS, config.priority_terms)
        self._due_terms = _merge_terms(BASE_DUE_DATE_TERMS, config.due_terms)
        self._status_term_overrides = {
            str(k): _split_terms(v) for k, v in (config.status_terms or {}).items()
        }

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    def _load_categories(self, user: list[StatusCategoryConfig]) -> None:
        seen_user: set[str] = set()
        for cat in user or []:
            key = (cat.key or "").strip()
            if not key:
                raise RegistryError("status category with empty key")
            if key in seen_user:
                raise RegistryError(f"duplicate status category key: {key!r}")
            try:
                float(cat.score)
            except (TypeError, ValueError) as e:
                raise RegistryError(f"status category {key!r} has non-numeric score") from e
            seen_user.add(key)

        defaults = {c.key: c for c in DEFAULT_STATUSES}
        merged: list[StatusCategoryConfig] = []
        for cat in user or []:
            base = defaults.get(cat.key)
            merged.append(self._merge_category(cat, base))
            self._user_keys.add(cat.key)

        # The open and catch-all categories always exist. Other defaults are
        # only filled in when the user supplied no categories at all.
        for d in DEFAULT_STATUSES:
            if d.key in self._user_keys:
                continue
            if not user or d.key in (OPEN_KEY, OTHER_KEY):
                merged.append(d)

        for idx, cat in enumerate(merged):
            self._categories[cat.key] = cat
            self._positions[cat.key] = idx

        for cat in merged:
            if cat.key == OTHER_KEY:
                continue
            for sym in cat.symbols:
                owner = self._symbol_index.get(sym)
                if owner is not None and owner != cat.key:
                    raise RegistryError(
                        f"symbol {sym!r} claimed by both {owner!r} and {cat.key!r}"
                    )
                self._symbol_index[sym] = cat.key

        # The open category owns the blank symbol no matter what.
        self._symbol_index.setdefault(" ", OPEN_KEY)
        self._symbol_index.setdefault("", OPEN_KEY)
        if self._symbol_index[" "] != OPEN_KEY or self._symbol_index[""] != OPEN_KEY:
            raise RegistryError("the blank status symbol must belong to the open category")

    @staticmethod
    def _merge_category(
        user: StatusCategoryConfig, base: StatusCategoryConfig | None
    ) -> StatusCategoryConfig:
        if base is None:
            return StatusCategoryConfig(
                key=user.key,
                display_name=user.display_name or user.key,
                symbols=list(user.symbols),
                aliases=list(user.aliases),
                score=float(user.score),
                order=user.order,
                terms=list(user.terms) if user.terms else None,
                description=user.description,
            )
        return StatusCategoryConfig(
            key=user.key,
            display_name=user.display_name or base.display_name,
            symbols=list(user.symbols) if user.symbols else list(base.symbols),
            aliases=list(user.aliases) if user.aliases else list(base.aliases),
            score=float(user.score),
            order=user.order if user.order is not None else base.order,
            terms=list(user.terms) if user.terms else None,
            description=user.description or base.description,
        )

    # ------------------------------------------------------------------
    # Status lookups
    # ------------------------------------------------------------------

    @property
    def categories(self) -> list[StatusCategoryConfig]:
        return list(self._categories.values())

    def resolve(self, token: str) -> str | None:
        """Map a category key, alias, term or raw symbol to a category key."""
        if token is None:
            return None
        raw = str(token)
        m = _BRACKETED_RE.match(raw.strip())
        if m:
            return self.category_for_symbol(m.group(1))

        t = raw.strip()
        tl = t.lower()
        if not t:
            return None

        user_first = sorted(self._categories.values(), key=lambda c: c.key not in self._user_keys)

        for cat in user_first:
            if cat.key.lower() == tl:
                return cat.key
        for cat in user_first:
            if tl in (a.lower() for a in cat.aliases):
                return cat.key
        if t in self._symbol_index:
            return self._symbol_index[t]
        if tl in self._symbol_index:
            return self._symbol_index[tl]
        for cat in user_first:
            if tl in (term.lower() for term in self.terms_for(cat.key)):
                return cat.key
        for cat in user_first:
            if cat.display_name and cat.display_name.lower() == tl:
                return cat.key
        if len(t) == 1:
            return self.category_for_symbol(t)
        return None

    def category_for_symbol(self, symbol: str) -> str:
        """Symbols nobody claimed fall into the catch-all category."""
        s = (symbol or "").strip("[]")
        if s.strip() == "":
            return OPEN_KEY
        if s in self._symbol_index:
            return self._symbol_index[s]
        return OTHER_KEY

    def terms_for(self, key: str) -> list[str]:
        override = self._status_term_overrides.get(key)
        if override:
            return list(override)
        cat = self._categories.get(key)
        if cat is not None and cat.terms:
            return list(cat.terms)
        if key in DEFAULT_STATUS_TERMS:
            return list(DEFAULT_STATUS_TERMS[key])
        synthesized = [key]
        if cat is not None:
            if cat.display_name and cat.display_name.lower() not in synthesized:
                synthesized.append(cat.display_name.lower())
            synthesized.extend(a for a in cat.aliases if a not in synthesized)
        return synthesized

    def order_for(self, key: str | None) -> int:
        if key is None:
            return UNKNOWN_ORDER
        cat = self._categories.get(key)
        if cat is None:
            return UNKNOWN_ORDER
        if cat.order is not None:
            return int(cat.order)
        return (self._positions.get(key, 0) + 1) * 10

    def score_for(self, key: str | None) -> float:
        cat = self._categories.get(key or "")
        if cat is None:
            return 0.5
        return float(cat.score)

    def max_status_score(self) -> float:
        return max((float(c.score) for c in self._categories.values()), default=1.0)

    # ------------------------------------------------------------------
    # Priority / due-date vocabularies
    # ------------------------------------------------------------------

    def priority_terms(self) -> dict[str, list[str]]:
        return {k: list(v) for k, v in self._priority_terms.items()}

    def due_terms(self) -> dict[str, list[str]]:
        return {k: list(v) for k, v in self._due_terms.items()}

    def status_terms(self) -> dict[str, list[str]]:
        out = {"general": list(BASE_STATUS_GENERAL)}
        for key in self._categories:
            out[key] = self.terms_for(key)
        return out

    def priority_for_term(self, term: str) -> int | None:
        tl = (term or "").strip().lower()
        if not tl:
            return None
        if tl in ("1", "2", "3", "4"):
            return int(tl)
        for level_name, level in _PRIORITY_LEVEL.items():
            if tl in (t.lower() for t in self._priority_terms.get(level_name, [])):
                return level
        return None

    def all_trigger_terms(self) -> set[str]:
        terms: set[str] = set()
        for group in (self._priority_terms, self._due_terms, self.status_terms()):
            for values in group.values():
                terms.update(v.lower() for v in values)
        for cat in self._categories.values():
            terms.add(cat.key.lower())
            terms.update(a.lower() for a in cat.aliases)
            if cat.display_name:
                terms.add(cat.display_name.lower())
        return terms

    def vocabulary_hint(self) -> str:
        """Compact vocabulary listing used in the model prompt."""
        lines = ["Status categories (use the key):"]
        for cat in self._categories.values():
            terms = ", ".join(self.terms_for(cat.key)[:8])
            lines.append(f"- {cat.key}: {cat.description or cat.display_name} ({terms})")
        prio = self._priority_terms
        lines.append(
            "Priority 1=" + ", ".join(prio.get("high", [])[:5])
            + "; 2=" + ", ".join(prio.get("medium", [])[:5])
            + "; 3=" + ", ".join(prio.get("low", [])[:5])
        )
        due_keys = [k for k in self._due_terms if k != "general"]
        lines.append("Due-date keywords: " + ", ".join(due_keys))
        return "\n".join(lines)
