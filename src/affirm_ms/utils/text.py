"""
Text normalization for affirmation lines.

Two forms are used:
    normalize_text(): what gets spoken and hashed into audio cache keys.
        Whitespace collapsed, stray spaces before punctuation removed,
        case and wording preserved.
    fold_text(): the comparison form used for duplicate detection and
        pool identity. Normalized, case-folded, trailing punctuation
        dropped, curly quotes straightened.

Bump NORMALIZE_VERSION whenever normalize_text() changes output, so that
previously cached audio is not reused for differently spoken text.
"""
from __future__ import annotations

import hashlib
import re

NORMALIZE_VERSION = "v1"

_WS = re.compile(r"\s+")
_SPACE_BEFORE_PUNCT = re.compile(r"\s+([,.;:!?])")
_TRAILING_PUNCT = re.compile(r"[\s.,;:!?]+$")
_QUOTES = str.maketrans({"‘": "'", "’": "'", "“": '"', "”": '"'})


def normalize_text(text: str) -> str:
    """
    >>> normalize_text("  I am   calm .  ")
    'I am calm.'
    """
    text = (text or "").translate(_QUOTES)
    text = _WS.sub(" ", text).strip()
    return _SPACE_BEFORE_PUNCT.sub(r"\1", text)


def fold_text(text: str) -> str:
    """
    >>> fold_text("I am calm.") == fold_text("i am CALM")
    True
    """
    return _TRAILING_PUNCT.sub("", normalize_text(text)).casefold()


def line_identity(text: str, goal: str) -> str:
    """Stable pool identity for a line: sha256 of goal and folded text."""
    payload = f"{goal}|{fold_text(text)}".encode("utf-8")
    return hashlib.sha256(payload).hexdigest()


def preview(text: str, limit: int = 60) -> str:
    """Shorten text for log output."""
    text = normalize_text(text)
    if limit <= 0 or len(text) <= limit:
        return text
    return text[: max(0, limit - 3)] + "..."
