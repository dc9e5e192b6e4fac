"""
Keyword and theme extraction from free-text intentions.

Keywords drive Tier 1 template matching; themes drive Tier 2 pool
matching. Both are lowercase word tokens longer than three characters
with filler words removed, deduplicated in order of appearance.
"""
from __future__ import annotations

import re
from typing import FrozenSet, Iterable, List

_TOKEN = re.compile(r"[a-z][a-z']*")

STOPWORDS = frozenset({
    "help", "want", "need", "feel", "make", "get", "have",
    "about", "after", "again", "also", "been", "before", "being", "could",
    "doing", "from", "going", "into", "just", "keep", "more", "much",
    "really", "some", "such", "than", "that", "their", "them", "then",
    "there", "these", "they", "this", "through", "very", "were", "what",
    "when", "where", "which", "while", "will", "with", "would", "your",
    "myself", "can't", "don't", "i'm", "it's",
})


def extract_keywords(text: str) -> List[str]:
    """
    >>> extract_keywords("I can't stop thinking about work at night")
    ['stop', 'thinking', 'work', 'night']
    """
    words = (m.group(0).strip("'") for m in _TOKEN.finditer((text or "").lower()))
    kept = [w for w in words if len(w) > 3 and w not in STOPWORDS]
    return list(dict.fromkeys(kept))


def keyword_similarity(intent: Iterable[str], template: Iterable[str]) -> float:
    """Shared keywords divided by the size of the larger keyword set."""
    a, b = set(intent), set(template)
    if not a or not b:
        return 0.0
    return len(a & b) / max(len(a), len(b))


def fingerprint(tags: Iterable[str], emotion: str | None = None) -> FrozenSet[str]:
    """Tag fingerprint of a line: its tags plus emotion, case-folded."""
    items = {t.strip().lower() for t in tags if t and t.strip()}
    if emotion:
        items.add(emotion.strip().lower())
    return frozenset(items)


def jaccard(a: FrozenSet[str], b: FrozenSet[str]) -> float:
    if not a and not b:
        return 1.0
    return len(a & b) / len(a | b)


def theme_overlap(tags: FrozenSet[str], themes: Iterable[str]) -> float:
    """Share of themes present in a line's fingerprint."""
    wanted = {t.lower() for t in themes}
    if not wanted:
        return 0.0
    return len(tags & wanted) / len(wanted)
