from __future__ import annotations

from collections.abc import Iterable

from taskquery.stopwords import is_no_space_script


def dedupe_keywords(keywords: Iterable[str]) -> list[str]:
    """Remove redundant keywords from an expanded set.

    Exact (case-insensitive) repeats always collapse to the first occurrence.
    A keyword contained in a longer kept keyword is dropped only when both are
    written in a script without word spacing, where the shorter one is an
    over-segmented piece of the same concept. In space-delimited scripts
    "log" and "login" are different words and both stay.
    """
    ordered: list[str] = []
    seen: set[str] = set()
    for kw in keywords:
        k = (kw or "").strip()
        if not k or k.lower() in seen:
            continue
        seen.add(k.lower())
        ordered.append(k)

    # Longest first so containment is always checked against kept keywords.
    by_length = sorted(range(len(ordered)), key=lambda i: (-len(ordered[i]), i))
    kept: set[int] = set()
    for i in by_length:
        kw = ordered[i].lower()
        redundant = False
        if is_no_space_script(kw):
            for j in kept:
                other = ordered[j].lower()
                if kw in other and is_no_space_script(other):
                    redundant = True
                    break
        if not redundant:
            kept.add(i)

    return [ordered[i] for i in range(len(ordered)) if i in kept]
