"""AI-assisted query understanding with a deterministic offline fallback.

The model call is the only suspension point of a query. It is bounded by a
timeout and never retried; any failure (transport, timeout, malformed JSON,
schema mismatch) routes to the heuristic fallback so a query always gets an
intent.
"""

from __future__ import annotations

import asyncio
import importlib
import json
import logging
import re
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from taskquery.dedupe import dedupe_keywords
from taskquery.registry import PropertyTermRegistry
from taskquery.stopwords import (
    filter_stop_words,
    generic_ratio,
    is_generic_word,
    is_stop_word,
    tokenize,
)
from taskquery.syntax import ParsedSyntax, parse_due_value
from taskquery.timecontext import TimeContextResolver, normalize_term
from taskquery.types import EngineConfig, PropertyFilters, QueryIntent

logger = logging.getLogger(__name__)


VAGUE_THRESHOLD = 2.0 / 3.0


class SemanticParseError(ValueError):
    """Model output did not match the expected JSON contract."""


def _clamp01(x: float) -> float:
    if x < 0.0:
        return 0.0
    if x > 1.0:
        return 1.0
    return x


def _unique(items: list[str]) -> list[str]:
    out: list[str] = []
    seen: set[str] = set()
    for it in items:
        s = (it or "").strip()
        if s and s.lower() not in seen:
            seen.add(s.lower())
            out.append(s)
    return out


@dataclass
class SemanticResult:
    """Output of either the model path or the fallback; same shape for both."""

    core_keywords: list[str] = field(default_factory=list)
    expansions: dict[str, dict[str, list[str]]] = field(default_factory=dict)
    filters: PropertyFilters = field(default_factory=PropertyFilters)
    is_vague: bool = False
    vague_reason: str = ""
    time_context: str | None = None
    source: str = "fallback"  # ai | fallback | syntax
    understanding: dict[str, Any] = field(default_factory=dict)

    @property
    def expanded_keywords(self) -> list[str]:
        out: list[str] = []
        for per_lang in self.expansions.values():
            for terms in per_lang.values():
                out.extend(terms)
        return out


class SemanticQueryParser:
    """Extracts keywords, expansions, inferred properties and vagueness."""

    def __init__(self, config: EngineConfig, client: Any = None):
        self.config = config
        self._client: Any = client
        if self._client is None and config.ai_enabled:
            try:
                openai_mod = importlib.import_module("openai")
                async_openai_cls = openai_mod.AsyncOpenAI
            except Exception as e:  # pragma: no cover
                raise RuntimeError(
                    "openai package not available; install `openai` or set ai_enabled: false"
                ) from e
            self._client = async_openai_cls(
                base_url=config.model.base_url, api_key=config.model.api_key
            )

    async def parse(
        self, remainder: str, registry: PropertyTermRegistry, today: date
    ) -> SemanticResult:
        remainder = (remainder or "").strip()
        if not remainder:
            return SemanticResult(source="syntax")

        if not self.config.ai_enabled or self._client is None:
            return self.fallback(remainder, registry, today)

        try:
            return await asyncio.wait_for(
                self._model_parse(remainder, registry, today),
                timeout=float(self.config.model.request_timeout_s),
            )
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
            logger.warning("understand: model request cancelled, using fallback")
        except asyncio.TimeoutError:
            logger.warning(
                "understand: model timed out after %.1fs, using fallback",
                float(self.config.model.request_timeout_s),
            )
        except Exception as e:
            logger.warning("understand: model failed, using fallback: %s", e)
        return self.fallback(remainder, registry, today)

    async def health_check(self) -> bool:
        if self._client is None:
            return False
        try:
            await self._client.models.list()
            return True
        except Exception:
            return False

    # ------------------------------------------------------------------
    # Model path
    # ------------------------------------------------------------------

    async def _model_parse(
        self, remainder: str, registry: PropertyTermRegistry, today: date
    ) -> SemanticResult:
        sys_prompt = self._build_system_prompt(registry)
        user_prompt = (
            f"Today: {today.isoformat()}\n"
            f"Languages: {', '.join(self.config.languages)}\n"
            f"Query:\n{remainder}"
        )
        raw = await self._chat_json(sys_prompt=sys_prompt, user_prompt=user_prompt)
        data = self._parse_response_json(raw)
        if data is None:
            raise SemanticParseError("model response is not a JSON object")
        return self._coerce_result(data, registry, today)

    def _build_system_prompt(self, registry: PropertyTermRegistry) -> str:
        n = max(0, int(self.config.expansions_per_language))
        langs = ", ".join(self.config.languages) or "English"
        if self.config.expansion_enabled and n > 0:
            expansion_rule = (
                f"- expansions: for EACH core keyword, up to {n} synonyms or translations "
                f"per language ({langs}), as {{keyword: {{language: [terms]}}}}.\n"
            )
        else:
            expansion_rule = "- expansions: always {}.\n"

        return (
            "You parse task-search queries. Return ONLY a JSON object with keys:\n"
            "- core_keywords: content words from the query (never property words, "
            "never question words).\n"
            + expansion_rule
            + "- priority: 1-4 or null. status: a category key or null.\n"
            "- due_date: today|tomorrow|yesterday|overdue|future|week|next-week|"
            "month|next-month|YYYY-MM-DD or null. Only for explicit deadlines.\n"
            "- folder: string or null. tags: list of strings.\n"
            "- is_vague: true when the query asks in general (\"what should I do\") "
            "instead of naming specific work. vague_reason: short string.\n"
            "- time_context: today|tomorrow|yesterday|this_week|next_week|last_week|"
            "this_month|next_month|last_month|this_year|next_year|last_year or null. "
            "Use it for time phrases in vague queries.\n"
            "- understanding: {detected_language, corrected_typos: [], "
            "semantic_mappings: {}, confidence: 0.0-1.0}.\n"
            "Recognize property concepts in any language and map them to the keys "
            "below; do not expand property words.\n\n"
            + registry.vocabulary_hint()
            + "\n\nExample:\n"
            "Query: fix login bug urgent\n"
            'Output: {"core_keywords":["fix","login","bug"],'
            '"expansions":{"bug":{"English":["error","defect"]}},"priority":1,'
            '"status":null,"due_date":null,"folder":null,"tags":[],"is_vague":false,'
            '"vague_reason":"","time_context":null,'
            '"understanding":{"detected_language":"English","corrected_typos":[],'
            '"semantic_mappings":{"urgent":"priority 1"},"confidence":0.9}}'
        )

    async def _chat_json(self, sys_prompt: str, user_prompt: str) -> str:
        messages = [
            {"role": "system", "content": sys_prompt},
            {"role": "user", "content": user_prompt},
        ]

        t0 = asyncio.get_running_loop().time()
        resp = await self._client.chat.completions.create(
            model=self.config.model.name,
            messages=messages,
            temperature=self.config.model.temperature,
            max_tokens=self.config.model.max_output_tokens,
        )
        dt_ms = (asyncio.get_running_loop().time() - t0) * 1000.0

        content = (resp.choices[0].message.content or "").strip()
        logger.debug("model response (%s ms): %s", int(dt_ms), content[:500])
        return content

    def _parse_response_json(self, text: str) -> dict[str, Any] | None:
        text = (text or "").strip()
        if not text:
            return None

        # Strip <think>...</think> blocks (qwen3, deepseek-r1, etc.)
        cleaned = re.sub(r"<think>.*?</think>", "", text, flags=re.DOTALL).strip()
        if not cleaned:
            cleaned = text

        fence_match = re.search(r"```(?:json)?\s*(\{.*?\})\s*```", cleaned, flags=re.DOTALL)
        if fence_match:
            candidate = fence_match.group(1)
        else:
            start = cleaned.find("{")
            end = cleaned.rfind("}")
            if start != -1 and end != -1 and end > start:
                candidate = cleaned[start : end + 1]
            else:
                candidate = cleaned

        try:
            data = json.loads(candidate)
        except Exception as e:
            logger.debug("json parse failed: %s; text=%r", e, text[:500])
            return None
        return data if isinstance(data, dict) else None

    def _coerce_result(
        self, data: dict[str, Any], registry: PropertyTermRegistry, today: date
    ) -> SemanticResult:
        core_raw = data.get("core_keywords")
        if not isinstance(core_raw, list) or not all(isinstance(k, str) for k in core_raw):
            raise SemanticParseError("core_keywords must be a list of strings")
        core = [k for k in _unique(core_raw) if not is_stop_word(k, self.config.stop_words)]

        expansions: dict[str, dict[str, list[str]]] = {}
        if self.config.expansion_enabled:
            expansions = self._coerce_expansions(data.get("expansions"), core)

        filters = PropertyFilters()
        prio = data.get("priority")
        for v in prio if isinstance(prio, list) else [prio]:
            level = self._coerce_priority(v, registry)
            if level is not None and level not in filters.priority:
                filters.priority.append(level)

        status = data.get("status")
        for v in status if isinstance(status, list) else [status]:
            if v in (None, ""):
                continue
            key = registry.resolve(str(v))
            if key is None:
                logger.debug("understand: unrecognized status from model %r", v)
            elif key not in filters.status:
                filters.status.append(key)

        due_raw = data.get("due_date")
        if isinstance(due_raw, str) and due_raw.strip():
            filters.due = parse_due_value(due_raw, today)
            if filters.due is None:
                logger.debug("understand: unrecognized due_date from model %r", due_raw)

        folder = data.get("folder")
        if isinstance(folder, str) and folder.strip():
            filters.folder = folder.strip()
        tags = data.get("tags")
        if isinstance(tags, list):
            filters.tags = _unique([str(t).lstrip("#") for t in tags if t])

        understanding_raw = data.get("understanding")
        understanding: dict[str, Any] = {}
        if isinstance(understanding_raw, dict):
            try:
                confidence = _clamp01(float(understanding_raw.get("confidence", 0.0)))
            except (TypeError, ValueError):
                confidence = 0.0
            understanding = {
                "detected_language": str(understanding_raw.get("detected_language") or ""),
                "corrected_typos": [
                    str(t) for t in (understanding_raw.get("corrected_typos") or [])
                ],
                "semantic_mappings": dict(understanding_raw.get("semantic_mappings") or {}),
                "confidence": confidence,
            }

        return SemanticResult(
            core_keywords=core,
            expansions=expansions,
            filters=filters,
            is_vague=bool(data.get("is_vague", False)),
            vague_reason=str(data.get("vague_reason") or ""),
            time_context=normalize_term(data.get("time_context")),
            source="ai",
            understanding=understanding,
        )

    def _coerce_expansions(self, raw: Any, core: list[str]) -> dict[str, dict[str, list[str]]]:
        if not isinstance(raw, dict):
            return {}
        limit = max(0, int(self.config.expansions_per_language))
        core_l = {k.lower(): k for k in core}
        out: dict[str, dict[str, list[str]]] = {}
        for kw, per_lang in raw.items():
            key = core_l.get(str(kw).lower())
            if key is None:
                continue
            if isinstance(per_lang, list):
                per_lang = {"any": per_lang}
            if not isinstance(per_lang, dict):
                continue
            langs: dict[str, list[str]] = {}
            for lang, terms in per_lang.items():
                if not isinstance(terms, list):
                    continue
                cleaned = [t for t in _unique([str(t) for t in terms]) if t.lower() != key.lower()]
                if cleaned:
                    langs[str(lang)] = cleaned[:limit]
            if langs:
                out[key] = langs
        return out

    @staticmethod
    def _coerce_priority(value: Any, registry: PropertyTermRegistry) -> int | str | None:
        if value is None or value == "":
            return None
        if isinstance(value, bool):
            return None
        if isinstance(value, int):
            return value if 1 <= value <= 4 else None
        s = str(value).strip().lower()
        if s in ("any", "none"):
            return s
        return registry.priority_for_term(s)

    # ------------------------------------------------------------------
    # Offline fallback
    # ------------------------------------------------------------------

    def fallback(
        self, remainder: str, registry: PropertyTermRegistry, today: date
    ) -> SemanticResult:
        triggers = registry.all_trigger_terms()
        text = remainder
        # Multi-word trigger phrases ("next week", "past due") go first.
        for phrase in sorted((t for t in triggers if " " in t), key=len, reverse=True):
            text = re.sub(rf"(?<!\w){re.escape(phrase)}(?!\w)", " ", text, flags=re.IGNORECASE)

        kept = filter_stop_words(
            tokenize(text), extra=[*triggers, *self.config.stop_words], keep_generic=True
        )

        ratio = generic_ratio(kept)
        core = _unique([t for t in kept if not is_generic_word(t)])
        is_vague = ratio > VAGUE_THRESHOLD or not core
        if not core:
            reason = "no specific search terms"
        elif is_vague:
            reason = f"{ratio:.0%} of terms are generic"
        else:
            reason = ""

        time_context = TimeContextResolver(registry, today).detect(remainder)
        return SemanticResult(
            core_keywords=core,
            is_vague=is_vague,
            vague_reason=reason,
            time_context=time_context,
            source="fallback",
            understanding={"generic_ratio": round(ratio, 3)},
        )


def merge_intent(
    query: str,
    parsed: ParsedSyntax,
    semantic: SemanticResult,
    config: EngineConfig,
    registry: PropertyTermRegistry,
    today: date,
) -> QueryIntent:
    """Combine explicit syntax with semantic inference; explicit always wins."""
    explicit = parsed.filters
    inferred = semantic.filters
    filters = PropertyFilters(
        priority=list(explicit.priority or inferred.priority),
        status=list(explicit.status or inferred.status),
        due=explicit.due if explicit.due is not None else inferred.due,
        folder=explicit.folder or inferred.folder,
        tags=list(explicit.tags or inferred.tags),
        project=explicit.project or inferred.project,
    )

    core = _unique([*parsed.phrases, *semantic.core_keywords])
    expanded = semantic.expanded_keywords if config.expansion_enabled else []
    keywords = dedupe_keywords([*core, *expanded])

    is_vague = semantic.is_vague and not parsed.phrases
    time_range = None
    if semantic.time_context and filters.due is None:
        resolved = TimeContextResolver(registry, today).resolve(semantic.time_context, is_vague)
        if is_vague:
            time_range = resolved
        else:
            filters.due = resolved

    expansion_used = semantic.source == "ai" and bool(expanded)
    languages_used = sorted(
        {lang for per_lang in semantic.expansions.values() for lang in per_lang}
    )
    understanding = dict(semantic.understanding)
    understanding["source"] = semantic.source
    understanding["explicit_syntax"] = parsed.matched
    if parsed.unrecognized:
        understanding["unrecognized_syntax"] = list(parsed.unrecognized)

    return QueryIntent(
        query=query,
        remainder=parsed.remainder,
        core_keywords=tuple(core),
        keywords=tuple(keywords),
        filters=filters,
        is_vague=is_vague,
        vague_reason=semantic.vague_reason if is_vague else "",
        time_context=semantic.time_context,
        time_range=time_range,
        ai_used=semantic.source == "ai",
        expansion_used=expansion_used,
        understanding=understanding,
        expansion={
            "enabled": bool(config.expansion_enabled),
            "per_language": int(config.expansions_per_language),
            "languages_used": languages_used,
            "total_keywords": len(keywords),
            "core_keywords_count": len(core),
        },
    )
