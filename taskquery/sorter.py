from __future__ import annotations

import functools
import logging
from collections.abc import Iterable

from taskquery.registry import PropertyTermRegistry
from taskquery.types import ScoredTask, SortCriterion, SortSpec

logger = logging.getLogger(__name__)


EPSILON = 1e-4
_MISSING_PRIORITY = 5


def parse_sort_spec(names: Iterable[str]) -> SortSpec:
    """Build a SortSpec from config names; unknown names are dropped."""
    aliases = {"due": "due_date", "duedate": "due_date", "createddate": "created"}
    criteria: list[SortCriterion] = []
    for name in names or []:
        key = str(name).strip().lower().replace("-", "_")
        key = aliases.get(key.replace("_", ""), key)
        try:
            crit = SortCriterion(key)
        except ValueError:
            logger.warning("sort: ignoring unknown criterion %r", name)
            continue
        if crit not in criteria:
            criteria.append(crit)
    return SortSpec(criteria=tuple(criteria))


def _cmp(a: float, b: float) -> int:
    return (a > b) - (a < b)


def _bucket(score: float) -> int:
    """Quantize to EPSILON steps so near-equal scores tie transitively."""
    return round(score / EPSILON)


class MultiCriteriaSorter:
    """Composite score first, then a configurable tie-break chain."""

    def __init__(self, registry: PropertyTermRegistry):
        self.registry = registry

    def effective_spec(self, spec: SortSpec, ai_assisted: bool) -> SortSpec:
        return spec.pinned() if ai_assisted else spec

    def sort(
        self, scored: list[ScoredTask], spec: SortSpec, *, ai_assisted: bool = False
    ) -> list[ScoredTask]:
        chain = self.effective_spec(spec, ai_assisted).criteria

        def compare(x: ScoredTask, y: ScoredTask) -> int:
            c = _cmp(_bucket(y.score.composite), _bucket(x.score.composite))
            if c:
                return c
            for crit in chain:
                c = self._compare_by(crit, x, y)
                if c:
                    return c
            return 0

        # list.sort is stable, so full ties keep their input order.
        return sorted(scored, key=functools.cmp_to_key(compare))

    def _compare_by(self, crit: SortCriterion, x: ScoredTask, y: ScoredTask) -> int:
        a, b = x.task, y.task
        if crit is SortCriterion.RELEVANCE:
            return _cmp(_bucket(y.score.relevance), _bucket(x.score.relevance))
        if crit is SortCriterion.DUE_DATE:
            if a.due is None and b.due is None:
                return 0
            if a.due is None:
                return 1
            if b.due is None:
                return -1
            return _cmp(a.due.toordinal(), b.due.toordinal())
        if crit is SortCriterion.PRIORITY:
            pa = a.priority if a.priority is not None else _MISSING_PRIORITY
            pb = b.priority if b.priority is not None else _MISSING_PRIORITY
            return _cmp(pa, pb)
        if crit is SortCriterion.STATUS:
            return _cmp(self.registry.order_for(a.status), self.registry.order_for(b.status))
        if crit is SortCriterion.CREATED:
            if a.created is None and b.created is None:
                return 0
            if a.created is None:
                return 1
            if b.created is None:
                return -1
            return _cmp(b.created.toordinal(), a.created.toordinal())
        if crit is SortCriterion.ALPHABETICAL:
            ta, tb = (a.text or "").casefold(), (b.text or "").casefold()
            return (ta > tb) - (ta < tb)
        return 0
