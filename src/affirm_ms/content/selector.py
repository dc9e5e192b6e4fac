"""
ContentSelector - tiered affirmation selection.

Given a goal, an optional free-text intention and a line count N, the
selector returns N distinct lines from the cheapest tier that can serve
them:

    Tier 1  exact      a curated SessionTemplate whose intent keywords match
    Tier 2  pooled     top-rated pool lines whose tags overlap the themes,
                       picked greedily for tag diversity
    Tier 3  generated  fresh lines from the LineGenerator, saved to the pool
    ----    fallback   built-in lines for the goal when generation fails

Tier 2 shortfalls are topped up by Tier 3, and Tier 3 shortfalls by the
fallback lines, so a selection always holds exactly N lines (N never
exceeds the number of fallback lines per goal). Every selection writes
one GenerationLog row.

Example:
    >>> selector = ContentSelector(repo, config.selection, generator=None)
    >>> outcome = selector.select("sleep", "racing thoughts at bedtime", count=6)
    >>> outcome.tier, len(outcome.lines)
    ('pooled', 6)
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import FrozenSet, List, Optional, Sequence, Set

from affirm_ms.content.defaults import FALLBACK_TAGS, GOALS, default_intention, fallback_lines
from affirm_ms.content.generator import LineGenerator, clean_generated_lines
from affirm_ms.content.keywords import (
    extract_keywords,
    fingerprint,
    jaccard,
    keyword_similarity,
    theme_overlap,
)
from affirm_ms.core.config import Defaults, SelectionConfig
from affirm_ms.core.errors import GenerationUnavailable, InvalidInputError, SelectionFailure
from affirm_ms.core.logging import get_logger, info, verbose, warn
from affirm_ms.core.metrics import metrics
from affirm_ms.db.models import AffirmationLine
from affirm_ms.db.repository import NEUTRAL_RATING, MAX_RATING, AffirmationRepository
from affirm_ms.utils.text import fold_text, normalize_text
from affirm_ms.utils.timeit import timeit

_LOG = get_logger("affirm-ms.selector")

TIER_EXACT = "exact"
TIER_POOLED = "pooled"
TIER_GENERATED = "generated"
TIER_FALLBACK = "fallback"

TIER_COSTS = {
    TIER_EXACT: Defaults.COST_EXACT,
    TIER_POOLED: Defaults.COST_POOLED,
    TIER_GENERATED: Defaults.COST_GENERATED,
    TIER_FALLBACK: Defaults.COST_FALLBACK,
}

FALLBACK_CONFIDENCE = 0.5


@dataclass(frozen=True)
class SelectedLine:
    """A line reference returned by the selector."""
    id: str
    text: str
    tags: FrozenSet[str]
    source: str

    @classmethod
    def from_row(cls, row: AffirmationLine, source: str) -> "SelectedLine":
        return cls(id=row.id, text=row.text, tags=fingerprint(row.tags or [], row.emotion), source=source)


@dataclass
class TierResult:
    """Outcome of one tier. ``kind`` tags which tier produced the lines."""
    kind: str
    lines: List[SelectedLine]
    confidence: float
    cost: float
    template_id: Optional[str] = None


@dataclass
class SelectionOutcome:
    tier: str
    lines: List[SelectedLine]
    confidence: float
    cost: float
    goal: str
    intention: str
    template_id: Optional[str] = None
    themes: List[str] = field(default_factory=list)
    log_id: Optional[str] = None

    @property
    def affirmation_ids(self) -> List[str]:
        return [line.id for line in self.lines]


@dataclass
class PoolCandidate:
    line: AffirmationLine
    fingerprint: FrozenSet[str]
    score: float


def shortlist(candidates: Sequence[PoolCandidate], limit: int) -> List[PoolCandidate]:
    """
    Cut score-ordered candidates to ``limit``. The best line of every
    distinct fingerprint is kept before any repeat; score order is kept.
    """
    seen: Set[FrozenSet[str]] = set()
    leaders: List[PoolCandidate] = []
    repeats: List[PoolCandidate] = []
    for c in candidates:
        if c.fingerprint in seen:
            repeats.append(c)
        else:
            seen.add(c.fingerprint)
            leaders.append(c)
    kept = (leaders + repeats)[:limit]
    order = {id(c): i for i, c in enumerate(candidates)}
    return sorted(kept, key=lambda c: order[id(c)])


def diversify(candidates: Sequence[PoolCandidate], count: int, penalty: float) -> List[PoolCandidate]:
    """
    Greedy diverse pick from score-ordered candidates.

    Each step takes the candidate with the best score after subtracting
    ``penalty`` times its highest tag-Jaccard similarity to the lines
    already chosen. A candidate whose fingerprint is identical to a chosen
    line's is only taken when no other candidate remains. Lines with the
    same folded text are never both chosen.
    """
    pool = list(candidates)
    chosen: List[PoolCandidate] = []
    chosen_fps: List[FrozenSet[str]] = []
    chosen_text = set()

    def rank(c: PoolCandidate):
        similarity = max((jaccard(c.fingerprint, fp) for fp in chosen_fps), default=0.0)
        return (c.fingerprint in chosen_fps, -(c.score - penalty * similarity))

    while pool and len(chosen) < count:
        best = min(pool, key=rank)
        pool.remove(best)
        folded = fold_text(best.line.text)
        if folded in chosen_text:
            continue
        chosen.append(best)
        chosen_fps.append(best.fingerprint)
        chosen_text.add(folded)
    return chosen


class ContentSelector:
    def __init__(
        self,
        repository: AffirmationRepository,
        config: SelectionConfig,
        generator: Optional[LineGenerator] = None,
    ):
        self.repository = repository
        self.config = config
        self.generator = generator

    def select(
        self,
        goal: str,
        intention: Optional[str] = None,
        count: Optional[int] = None,
        is_first_session: bool = False,
        session_id: Optional[str] = None,
    ) -> SelectionOutcome:
        """
        Select ``count`` distinct lines for a goal and intention.

        Args:
            goal: One of sleep, focus, calm, manifest.
            intention: Free text; the goal's default intention when empty.
            count: Number of lines, 1..max_count (default from config).
            is_first_session: Skip Tiers 1 and 2 and generate fresh lines.
            session_id: Recorded on the GenerationLog when already known.

        Raises:
            InvalidInputError: Unknown goal or count out of range.
            SelectionFailure: No lines could be produced at all.
        """
        goal = (goal or "").strip().lower()
        if goal not in GOALS:
            raise InvalidInputError(f"unknown goal: {goal!r}", {"allowed": list(GOALS)})
        count = self.config.default_count if count is None else int(count)
        if not 1 <= count <= self.config.max_count:
            raise InvalidInputError(
                f"count must be between 1 and {self.config.max_count}, got {count}"
            )
        intention = normalize_text(intention or "") or default_intention(goal)
        keywords = extract_keywords(intention)

        with timeit("select") as t:
            result: Optional[TierResult] = None
            themes: List[str] = []
            if not is_first_session:
                result = self._match_exact(goal, keywords, count)
            if result is None:
                themes = self._themes(intention, keywords)
                pooled = [] if is_first_session else self._match_pool(goal, themes, count)
                if len(pooled) >= count:
                    result = TierResult(
                        kind=TIER_POOLED,
                        lines=pooled,
                        confidence=self._coverage(pooled, themes),
                        cost=TIER_COSTS[TIER_POOLED],
                    )
                else:
                    result = self._generate(goal, intention, themes, count, pooled)

        if len(result.lines) < count:
            raise SelectionFailure(
                "selection produced too few lines",
                {"goal": goal, "wanted": count, "got": len(result.lines)},
            )

        log = self.repository.add_generation_log(
            goal=goal,
            intention=intention,
            tier=result.kind,
            affirmation_ids=[line.id for line in result.lines],
            confidence=result.confidence,
            cost=result.cost,
            template_id=result.template_id,
            session_id=session_id,
        )
        if result.kind == TIER_EXACT and result.template_id:
            self.repository.bump_template_usage(result.template_id)
        pooled_ids = [line.id for line in result.lines if line.source == TIER_POOLED]
        self.repository.bump_line_usage(pooled_ids)

        metrics.record_selection(result.kind, result.cost)
        info(
            _LOG,
            "selection_served",
            tier=result.kind,
            goal=goal,
            lines=len(result.lines),
            confidence=round(result.confidence, 3),
            seconds=t.timing.seconds if t.timing else None,
        )
        return SelectionOutcome(
            tier=result.kind,
            lines=result.lines,
            confidence=result.confidence,
            cost=result.cost,
            goal=goal,
            intention=intention,
            template_id=result.template_id,
            themes=themes,
            log_id=log.id,
        )

    # ─────────────────────────────────────────────────────────────────────
    # Tier 1: curated templates
    # ─────────────────────────────────────────────────────────────────────

    def _match_exact(self, goal: str, keywords: List[str], count: int) -> Optional[TierResult]:
        if not keywords:
            return None
        best = None
        best_score = 0.0
        for template in self.repository.templates_for_goal(goal):
            score = keyword_similarity(keywords, template.intent_keywords or [])
            if score > best_score:
                best, best_score = template, score
        if best is None or best_score < self.config.exact_threshold:
            return None

        lines: List[SelectedLine] = []
        seen = set()
        for row in self.repository.get_lines(best.affirmation_ids or []):
            folded = fold_text(row.text)
            if folded in seen:
                continue
            seen.add(folded)
            lines.append(SelectedLine.from_row(row, TIER_EXACT))
        if len(lines) < count:
            verbose(_LOG, "template_too_short", template=best.id, lines=len(lines), wanted=count)
            return None
        return TierResult(
            kind=TIER_EXACT,
            lines=lines[:count],
            confidence=best_score,
            cost=TIER_COSTS[TIER_EXACT],
            template_id=best.id,
        )

    # ─────────────────────────────────────────────────────────────────────
    # Tier 2: pooled lines
    # ─────────────────────────────────────────────────────────────────────

    def _themes(self, intention: str, keywords: List[str]) -> List[str]:
        if self.generator is None:
            return keywords
        try:
            themes = self.generator.extract_themes(intention)
        except GenerationUnavailable as e:
            warn(_LOG, "theme_extraction_failed", error=e.message)
            return keywords
        return themes or keywords

    def _match_pool(self, goal: str, themes: List[str], count: int) -> List[SelectedLine]:
        if not themes:
            return []
        candidates: List[PoolCandidate] = []
        for row in self.repository.lines_for_goal(goal):
            fp = fingerprint(row.tags or [], row.emotion)
            overlap = theme_overlap(fp, themes)
            if overlap <= 0:
                continue
            rating = row.rating if row.rating is not None else NEUTRAL_RATING
            score = (
                self.config.overlap_weight * overlap
                + self.config.rating_weight * min(rating, MAX_RATING) / MAX_RATING
            )
            candidates.append(PoolCandidate(line=row, fingerprint=fp, score=score))

        candidates.sort(key=lambda c: (-c.score, -c.line.use_count, c.line.id))
        picked = diversify(
            shortlist(candidates, self.config.pool_candidates), count, self.config.diversity_penalty
        )
        verbose(_LOG, "pool_matched", candidates=len(candidates), picked=len(picked))
        return [SelectedLine.from_row(c.line, TIER_POOLED) for c in picked]

    @staticmethod
    def _coverage(lines: Sequence[SelectedLine], themes: Sequence[str]) -> float:
        wanted = {t.lower() for t in themes}
        if not wanted:
            return 0.0
        covered = set()
        for line in lines:
            covered |= line.tags & wanted
        return len(covered) / len(wanted)

    # ─────────────────────────────────────────────────────────────────────
    # Tier 3: generation, then built-in fallback lines
    # ─────────────────────────────────────────────────────────────────────

    def _generate(
        self,
        goal: str,
        intention: str,
        themes: List[str],
        count: int,
        chosen: List[SelectedLine],
    ) -> TierResult:
        lines = list(chosen)
        seen_text = {fold_text(line.text) for line in lines}
        seen_ids = {line.id for line in lines}
        need = count - len(lines)

        fresh = 0
        if self.generator is None:
            warn(_LOG, "generation_unavailable", reason="no generator configured")
        else:
            try:
                raw = self.generator.generate(goal, intention, need, themes)
            except GenerationUnavailable as e:
                warn(_LOG, "generation_failed", goal=goal, error=e.message)
                raw = []
            emotion = themes[0] if themes else "general"
            for text in clean_generated_lines(raw, self.config.max_words):
                if len(lines) >= count:
                    break
                folded = fold_text(text)
                if folded in seen_text:
                    continue
                row = self.repository.upsert_line(text, goal, tags=themes, emotion=emotion)
                if row.id in seen_ids:
                    continue
                lines.append(SelectedLine.from_row(row, TIER_GENERATED))
                seen_text.add(folded)
                seen_ids.add(row.id)
                fresh += 1

        filled = 0
        if len(lines) < count:
            for text in fallback_lines(goal):
                if len(lines) >= count:
                    break
                folded = fold_text(text)
                if folded in seen_text:
                    continue
                row = self.repository.upsert_line(text, goal, tags=FALLBACK_TAGS.get(goal, []) + ["default"])
                if row.id in seen_ids:
                    continue
                lines.append(SelectedLine.from_row(row, TIER_FALLBACK))
                seen_text.add(folded)
                seen_ids.add(row.id)
                filled += 1
            warn(_LOG, "fallback_lines_used", goal=goal, count=filled)

        if fresh:
            kind, confidence = TIER_GENERATED, 1.0
        else:
            kind, confidence = TIER_FALLBACK, FALLBACK_CONFIDENCE
        return TierResult(kind=kind, lines=lines, confidence=confidence, cost=TIER_COSTS[kind])
