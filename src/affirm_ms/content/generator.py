"""
Line generation collaborator.

The selector talks to a LineGenerator, which produces fresh affirmation
lines and extracts emotional themes from an intention. OpenAILineGenerator
uses the OpenAI chat completions API; tests substitute their own
implementation.

Whatever the generator returns is passed through clean_generated_lines(),
which enforces the structural rules every served line must satisfy:
    - first person: starts with "I", "I am" or "My"
    - present tense, at most ``max_words`` words
    - no stock platitudes
    - no more than two consecutive lines opening with the same word
"""
from __future__ import annotations

import re
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

from openai import OpenAI, OpenAIError

from affirm_ms.content.keywords import extract_keywords
from affirm_ms.core.errors import GenerationUnavailable
from affirm_ms.core.logging import get_logger, verbose, warn
from affirm_ms.utils.text import fold_text, normalize_text

_LOG = get_logger("affirm-ms.generator")

_NUMBERING = re.compile(r"^\s*(?:\d+\s*[.):-]|[•\-*–])\s*")
_WRAPPING_QUOTES = "\"'“”‘’"
_FIRST_PERSON = re.compile(r"^(?:I|I'm|I am|My)\b")
_FUTURE_TENSE = re.compile(r"\b(?:will|going to|someday|one day)\b", re.IGNORECASE)

PLATITUDES = (
    "everything happens for a reason",
    "the universe has a plan",
    "good vibes only",
    "live laugh love",
    "follow your dreams",
    "i am enough just as i am",
    "it is what it is",
)

_STYLE_GUIDES = {
    "sleep": "Focus on release, relaxation and peace. Use calming language.",
    "focus": "Emphasize clarity, capability and completion. Use action-oriented language.",
    "calm": "Center on presence, acceptance and groundedness. Stay in the now.",
    "manifest": "Balance desire with deserving. Use receiving language.",
}


class LineGenerator(ABC):
    """Produces new lines and themes. Implementations raise on failure."""

    @abstractmethod
    def generate(self, goal: str, intention: str, count: int, themes: Sequence[str]) -> List[str]:
        ...

    @abstractmethod
    def extract_themes(self, intention: str) -> List[str]:
        ...


def opener(line: str) -> str:
    """First word of a line, case-folded ("I am" counts as "i am")."""
    words = line.split()
    if not words:
        return ""
    if len(words) > 1 and words[0] == "I" and words[1].lower() == "am":
        return "i am"
    return words[0].casefold()


def vary_openers(lines: Sequence[str], max_run: int = 2) -> List[str]:
    """
    Reorder lines so no more than ``max_run`` consecutive lines share an
    opener. Order is otherwise preserved; lines that cannot be placed
    without breaking the rule are appended at the end.
    """
    remaining = list(lines)
    result: List[str] = []
    while remaining:
        placed = False
        for i, line in enumerate(remaining):
            tail = [opener(x) for x in result[-max_run:]]
            if len(tail) == max_run and all(o == opener(line) for o in tail):
                continue
            result.append(remaining.pop(i))
            placed = True
            break
        if not placed:
            result.extend(remaining)
            break
    return result


def clean_generated_lines(raw: str | Sequence[str], max_words: int = 12) -> List[str]:
    """
    Turn raw generator output into served lines.

    Accepts either one newline-separated string or a list of strings.
    Numbering, bullets and wrapping quotes are stripped; lines that break
    the structural rules are dropped; duplicates are removed.
    """
    items = raw.splitlines() if isinstance(raw, str) else list(raw)
    seen = set()
    kept: List[str] = []
    for item in items:
        line = _NUMBERING.sub("", item or "").strip().strip(_WRAPPING_QUOTES).strip()
        line = normalize_text(line)
        if not line:
            continue
        if not _FIRST_PERSON.match(line):
            continue
        if len(line.split()) > max_words:
            continue
        if _FUTURE_TENSE.search(line):
            continue
        folded = fold_text(line)
        if any(p in folded for p in PLATITUDES):
            continue
        if folded in seen:
            continue
        seen.add(folded)
        kept.append(line)
    return vary_openers(kept)


def build_prompt(goal: str, intention: str, count: int, max_words: int, themes: Sequence[str]) -> str:
    style = _STYLE_GUIDES.get(goal, _STYLE_GUIDES["calm"])
    theme_text = ", ".join(themes) if themes else "none"
    return (
        f"Write {count} short spoken affirmations for a {goal} session.\n"
        f"Listener intention: \"{intention}\"\n"
        f"Themes: {theme_text}\n"
        f"{style}\n"
        f"Rules: start each line with \"I am\", \"I\" or \"My\"; present tense; "
        f"at most {max_words} words; vary the openers; no platitudes.\n"
        f"Output one affirmation per line with no numbering."
    )


class OpenAILineGenerator(LineGenerator):
    """LineGenerator backed by the OpenAI chat completions API."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        temperature: float = 0.8,
        timeout_s: float = 20.0,
        max_words: int = 12,
        client: Optional[OpenAI] = None,
    ):
        self._client = client or OpenAI(api_key=api_key, timeout=timeout_s)
        self.model = model
        self.temperature = temperature
        self.max_words = max_words

    def _complete(self, prompt: str, temperature: float, max_tokens: int) -> str:
        try:
            completion = self._client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except OpenAIError as e:
            raise GenerationUnavailable("line generation request failed", {"error": str(e)}) from e
        return completion.choices[0].message.content or ""

    def generate(self, goal: str, intention: str, count: int, themes: Sequence[str]) -> List[str]:
        prompt = build_prompt(goal, intention, count, self.max_words, themes)
        content = self._complete(prompt, self.temperature, max_tokens=40 * count + 60)
        lines = clean_generated_lines(content, self.max_words)
        verbose(_LOG, "lines_generated", goal=goal, requested=count, kept=len(lines))
        return lines

    def extract_themes(self, intention: str) -> List[str]:
        prompt = (
            f"Extract 3-5 key emotional themes from this intention: \"{intention}\"\n"
            "Output only comma-separated single lowercase words like: anxiety,sleep,peace,rest"
        )
        content = self._complete(prompt, temperature=0.3, max_tokens=50)
        themes = [t.strip().lower() for t in content.split(",")]
        themes = [t for t in themes if t and " " not in t]
        if not themes:
            warn(_LOG, "themes_empty", intention_chars=len(intention))
            return extract_keywords(intention)
        return list(dict.fromkeys(themes))
