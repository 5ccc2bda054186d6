"""Stop words, generic query words and script detection.

Generic words mark open-ended questions ("what should I do") as opposed to
specific searches ("fix authentication bug"). Stop words carry no search
value at all and are dropped before keyword extraction.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

# Scripts written without spaces between words (CJK ideographs incl. ext A/B,
# Hiragana, Katakana, Thai, Lao, Myanmar, Khmer).
_NO_SPACE_RE = re.compile(
    "["
    "\u4e00-\u9fff"
    "\u3400-\u4dbf"
    "\U00020000-\U0002a6df"
    "\uf900-\ufaff"
    "\u3040-\u309f"
    "\u30a0-\u30ff"
    "\u0e00-\u0e7f"
    "\u0e80-\u0eff"
    "\u1000-\u109f"
    "\u1780-\u17ff"
    "]"
)

_TOKEN_RE = re.compile(r"[\w'-]+")

STOP_WORDS: frozenset[str] = frozenset(
    {
        # English articles, prepositions, pronouns
        "the", "a", "an", "but", "for", "of", "with", "by", "from", "as",
        "is", "was", "are", "were", "to", "in", "on", "at", "and", "or",
        "it", "i", "me", "my", "all",
        # English question words and auxiliaries
        "how", "what", "when", "where", "why", "which", "who", "whom", "whose",
        "do", "does", "did", "can", "could", "should", "would", "will",
        "have", "has", "had",
        # Chinese particles and question words
        "我", "的", "了", "吗", "呢", "啊", "如何", "怎么", "怎样", "什么",
        "哪些", "哪个", "哪里", "为什么",
    }
)  # fmt: skip

GENERIC_QUERY_WORDS: frozenset[str] = frozenset(
    {
        # English question words
        "what", "when", "where", "which", "how", "why", "who", "whom", "whose",
        # English generic verbs
        "do", "does", "did", "doing", "done", "make", "makes", "made", "making",
        "work", "works", "worked", "working", "get", "gets", "got", "getting",
        "go", "goes", "went", "going", "come", "comes", "came", "coming",
        "take", "takes", "took", "taking", "give", "gives", "gave", "giving",
        # English modals
        "should", "could", "would", "might", "must", "can", "may", "shall",
        "will", "need", "needs", "needed", "needing", "have", "has", "had",
        "having", "want", "wants", "wanted", "wanting",
        # English generic nouns
        "task", "tasks", "item", "items", "thing", "things", "job", "jobs",
        "stuff", "matter", "matters", "issue", "issues", "problem", "problems",
        # Chinese
        "什么", "怎么", "哪里", "哪个", "为什么", "怎样", "谁", "哪", "何",
        "做", "可以", "能", "应该", "需要", "有", "要", "干", "搞", "弄", "办",
        "处理", "任务", "事情", "东西", "工作", "活", "问题", "事", "事儿",
        # Swedish
        "vad", "när", "var", "vilken", "vilka", "vilket", "hur", "varför",
        "vem", "vems", "göra", "gör", "gjorde", "gjort", "arbeta", "arbetar",
        "arbetade", "ta", "tar", "tog", "tagit", "kan", "kunde", "kunnat",
        "ska", "skulle", "behöver", "behövde", "behövt", "har", "hade", "haft",
        "vill", "ville", "velat", "uppgift", "uppgifter", "sak", "saker",
        "arbete", "jobb", "ärende",
        # German
        "was", "wann", "wo", "welche", "welcher", "welches", "wie", "warum",
        "wer", "wessen", "machen", "macht", "machte", "gemacht", "tun", "tat",
        "getan", "arbeiten", "arbeitete", "gearbeitet", "sollen", "sollte",
        "können", "konnte", "müssen", "musste", "dürfen", "durfte", "aufgabe",
        "aufgaben", "sache", "sachen", "arbeit", "ding", "dinge",
        # Spanish
        "qué", "cuándo", "dónde", "cuál", "cuáles", "cómo", "quién", "quiénes",
        "hacer", "hace", "hizo", "hecho", "trabajar", "trabaja", "trabajó",
        "deber", "debe", "debería", "poder", "puede", "podría", "necesitar",
        "necesita", "tarea", "tareas", "cosa", "cosas", "trabajo", "asunto",
        "asuntos",
        # French
        "quoi", "que", "quel", "quelle", "quels", "quelles", "quand", "où",
        "comment", "pourquoi", "qui", "faire", "fait", "fais", "font",
        "travailler", "travaille", "travaillé", "devoir", "doit", "devrait",
        "pouvoir", "peut", "pourrait", "falloir", "faut", "faudrait", "tâche",
        "tâches", "chose", "choses", "travail", "affaire", "affaires",
        # Japanese
        "なに", "なん", "いつ", "どこ", "どれ", "どう", "なぜ", "だれ", "する",
        "やる", "できる", "こと", "もの", "タスク", "仕事",
    }
)  # fmt: skip


def is_no_space_script(text: str) -> bool:
    """True if text contains characters from a script without word spacing."""
    return bool(_NO_SPACE_RE.search(text or ""))


def is_stop_word(word: str, extra: Iterable[str] = ()) -> bool:
    w = (word or "").lower()
    return w in STOP_WORDS or w in {e.lower() for e in extra}


def is_generic_word(word: str) -> bool:
    return (word or "").lower() in GENERIC_QUERY_WORDS


def tokenize(text: str) -> list[str]:
    """Split on whitespace and punctuation, keeping no-space-script runs whole."""
    tokens = (m.group(0).strip("'-") for m in _TOKEN_RE.finditer(text or ""))
    return [t for t in tokens if t]


def filter_stop_words(
    words: Iterable[str], extra: Iterable[str] = (), *, keep_generic: bool = False
) -> list[str]:
    """Drop stop words and single characters outside no-space scripts.

    ``extra`` adds caller-supplied stop words (user config, property terms).
    With ``keep_generic`` question words survive so vagueness can still be
    measured on the result.
    """
    extra_set = {e.lower() for e in extra}
    out: list[str] = []
    for w in words:
        if not w:
            continue
        if len(w) == 1 and not is_no_space_script(w):
            continue
        lw = w.lower()
        if lw in extra_set:
            continue
        if lw in STOP_WORDS and not (keep_generic and lw in GENERIC_QUERY_WORDS):
            continue
        out.append(w)
    return out


def generic_ratio(words: list[str]) -> float:
    if not words:
        return 0.0
    return sum(1 for w in words if is_generic_word(w)) / len(words)
