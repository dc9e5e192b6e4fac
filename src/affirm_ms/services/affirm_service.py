"""
AffirmService - the pipeline behind every API route and CLI command.

    intention -> ContentSelector -> session lines -> AudioSynthesizer
              -> PlaylistAssembler -> manifest

The service owns the database, the artifact store and the collaborators
(speech provider, line generator). One instance is shared per process via
get_service().

Failure absorption:
    - generation failures fall back to built-in lines inside the selector
    - synthesis failures are reported per line; other lines still resolve
    - missing playlist data yields an empty manifest
"""
from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from affirm_ms.audio.cache import ArtifactStore, HttpMirror
from affirm_ms.audio.providers import ElevenLabsProvider, SilenceProvider, SpeechProvider
from affirm_ms.audio.synthesizer import AudioResolution, AudioSynthesizer, ResolveRequest
from affirm_ms.audio.voices import VoiceAccess
from affirm_ms.content.defaults import FALLBACK_TAGS, GOALS, SEED_TEMPLATES, fallback_lines
from affirm_ms.content.generator import LineGenerator, OpenAILineGenerator
from affirm_ms.content.keywords import extract_keywords
from affirm_ms.content.selector import TIER_EXACT, TIER_POOLED, ContentSelector, SelectionOutcome
from affirm_ms.core.config import ServiceConfig, Settings
from affirm_ms.core.errors import InvalidInputError, NotFoundError, SynthesisFailure
from affirm_ms.core.logging import get_logger, info, success, warn
from affirm_ms.core.metrics import metrics
from affirm_ms.db.database import Database
from affirm_ms.db.repository import AffirmationRepository
from affirm_ms.playlist.assembler import PlaylistAssembler
from affirm_ms.playlist.models import PlaylistManifest

_LOG = get_logger("affirm-ms.service")

POSITIVE_RATING = 4
NEGATIVE_RATING = 2
RATING_STEP = 0.1


@dataclass
class LineStatus:
    """Audio outcome for one line of a generated session."""
    id: str
    text: str
    position: int
    audio_url: Optional[str] = None
    duration_ms: Optional[int] = None
    cache: Optional[str] = None
    error: Optional[str] = None


@dataclass
class SessionResult:
    session_id: str
    goal: str
    voice_id: str
    tier: str
    confidence: float
    cost: float
    silence_between_ms: int
    lines: List[LineStatus] = field(default_factory=list)

    @property
    def failed_lines(self) -> int:
        return sum(1 for line in self.lines if line.error)


@dataclass
class FeedbackResult:
    session_id: str
    updated: bool
    tier: Optional[str] = None


class AffirmService:
    def __init__(
        self,
        settings: Settings,
        provider: Optional[SpeechProvider] = None,
        generator: Optional[LineGenerator] = None,
    ):
        self._settings = settings
        self.config: ServiceConfig = settings.get_service_config()

        self.db = Database(self.config.database.url, echo=self.config.database.echo)
        self.db.create_all()
        self.repository = AffirmationRepository(self.db)

        mirror = HttpMirror(self.config.storage.mirror) if self.config.storage.mirror.enabled else None
        self.store = ArtifactStore(self.config.storage.base_dir, self.config.storage.route_prefix, mirror)

        self.provider = provider or self._build_provider()
        self.generator = generator if generator is not None else self._build_generator()

        self.access = VoiceAccess(
            voices=list(self.config.synthesis.voices),
            free_voices=self.config.playlist.free_voices,
            default_voice=self.config.playlist.default_voice,
        )
        self.selector = ContentSelector(self.repository, self.config.selection, self.generator)
        self.synthesizer = AudioSynthesizer(self.repository, self.store, self.provider, self.config.synthesis)
        self.assembler = PlaylistAssembler(
            self.repository, self.access, self.config.playlist, self.config.synthesis.canonical_pace
        )
        info(
            _LOG,
            "service_ready",
            provider=self.provider.name,
            generator=type(self.generator).__name__ if self.generator else None,
            storage=self.config.storage.base_dir,
        )

    def _build_provider(self) -> SpeechProvider:
        syn = self.config.synthesis
        if syn.provider == "silence":
            return SilenceProvider()
        if not self._settings.elevenlabs_api_key:
            warn(_LOG, "speech_provider_key_missing", provider=syn.provider)
        return ElevenLabsProvider(
            api_key=self._settings.elevenlabs_api_key,
            voices=syn.voices,
            api_url=syn.api_url,
            model_id=syn.model_id,
            timeout_s=syn.timeout_s,
        )

    def _build_generator(self) -> Optional[LineGenerator]:
        key = self._settings.openai_api_key
        if not key:
            warn(_LOG, "line_generator_disabled", reason="OPENAI_API_KEY not set")
            return None
        sel = self.config.selection
        return OpenAILineGenerator(
            api_key=key,
            model=sel.llm_model,
            temperature=sel.llm_temperature,
            timeout_s=sel.llm_timeout_s,
            max_words=sel.max_words,
        )

    # ─────────────────────────────────────────────────────────────────────
    # Operations
    # ─────────────────────────────────────────────────────────────────────

    def select(
        self,
        goal: str,
        intention: Optional[str] = None,
        count: Optional[int] = None,
        is_first_session: bool = False,
    ) -> SelectionOutcome:
        return self.selector.select(goal, intention, count, is_first_session)

    def create_session(
        self,
        goal: str,
        intention: Optional[str] = None,
        count: Optional[int] = None,
        is_first_session: bool = False,
        voice_id: Optional[str] = None,
        tier: Optional[str] = None,
        silence_between_ms: Optional[int] = None,
    ) -> SessionResult:
        """
        Generate a session: select lines, persist them in order, and
        resolve audio for every line in the chosen voice.

        Lines whose synthesis fails are reported with ``error`` set; the
        session is still saved and playable.
        """
        voice = self.access.preferred(voice_id, tier)
        if voice_id and voice != voice_id:
            warn(_LOG, "voice_not_permitted", requested=voice_id, tier=tier or "free", using=voice)
        silence = self.config.playlist.silence_between_ms if silence_between_ms is None else silence_between_ms
        if silence < 0:
            raise InvalidInputError("silence_between_ms must be non-negative")

        session_id = uuid.uuid4().hex
        outcome = self.selector.select(goal, intention, count, is_first_session, session_id=session_id)
        pace = self.config.synthesis.canonical_pace
        self.repository.create_session(
            goal=outcome.goal,
            intention=outcome.intention,
            voice_id=voice,
            pace=pace,
            silence_between_ms=silence,
            affirmation_ids=outcome.affirmation_ids,
            session_id=session_id,
        )

        requests = [
            ResolveRequest(affirmation_id=line.id, text=line.text, voice_id=voice, goal=outcome.goal, pace=pace)
            for line in outcome.lines
        ]
        results = self.synthesizer.resolve_many(requests)

        statuses: List[LineStatus] = []
        for position, (line, result) in enumerate(zip(outcome.lines, results)):
            status = LineStatus(id=line.id, text=line.text, position=position)
            if isinstance(result, SynthesisFailure):
                status.error = result.code
            else:
                status.audio_url = result.audio_url
                status.duration_ms = result.duration_ms
                status.cache = result.cache
            statuses.append(status)

        result = SessionResult(
            session_id=session_id,
            goal=outcome.goal,
            voice_id=voice,
            tier=outcome.tier,
            confidence=outcome.confidence,
            cost=outcome.cost,
            silence_between_ms=silence,
            lines=statuses,
        )
        success(
            _LOG,
            "session_created",
            session=session_id,
            tier=outcome.tier,
            lines=len(statuses),
            failed=result.failed_lines,
        )
        return result

    def replace_session_lines(self, session_id: str, affirmation_ids: Sequence[str]) -> None:
        """Explicit edit: replace a session's ordered lines."""
        if self.repository.get_session(session_id) is None:
            raise NotFoundError(f"session not found: {session_id}")
        ids = list(affirmation_ids)
        if not ids:
            raise InvalidInputError("a session needs at least one line")
        if len(set(ids)) != len(ids):
            raise InvalidInputError("a line may appear only once per session")
        found = {line.id for line in self.repository.get_lines(ids)}
        missing = [i for i in ids if i not in found]
        if missing:
            raise InvalidInputError("unknown affirmation ids", {"missing": missing})
        self.repository.replace_session_lines(session_id, ids)
        info(_LOG, "session_lines_replaced", session=session_id, lines=len(ids))

    def resolve_audio(
        self,
        affirmation_id: str,
        text: str,
        voice_id: str,
        goal: Optional[str],
        pace: Optional[str] = None,
        tier: Optional[str] = None,
    ) -> AudioResolution:
        if voice_id not in self.access.allowed(tier):
            raise InvalidInputError(f"voice {voice_id!r} is not available for tier {tier or 'free'!r}")
        if not self.repository.get_lines([affirmation_id]):
            raise NotFoundError(f"affirmation not found: {affirmation_id}")
        return self.synthesizer.resolve_audio(affirmation_id, text, voice_id, goal, pace)

    def get_playlist(
        self,
        session_id: str,
        voice_id: Optional[str] = None,
        tier: Optional[str] = None,
        base_url: str = "",
    ) -> PlaylistManifest:
        return self.assembler.get_playlist(session_id, voice_id, tier, base_url)

    def record_feedback(self, session_id: str, rating: int, replayed: bool = False) -> FeedbackResult:
        """
        Record a listener rating (1-5) against the session's latest
        GenerationLog and update ranking signals:

            pooled, rating >= 4   lines +0.1 rating, use count +1
            pooled, rating <= 2   lines -0.1 rating
            exact,  rating >= 4   template +0.1 rating, use count +1
        """
        if not 1 <= int(rating) <= 5:
            raise InvalidInputError(f"rating must be between 1 and 5, got {rating}")
        rating = int(rating)
        metrics.record_feedback(rating)

        log = self.repository.latest_log(session_id)
        if log is None:
            info(_LOG, "feedback_without_log", session=session_id, rating=rating)
            return FeedbackResult(session_id=session_id, updated=False)

        self.repository.record_log_feedback(log.id, rating, replayed)
        if log.tier == TIER_POOLED:
            if rating >= POSITIVE_RATING:
                self.repository.adjust_line_rating(log.affirmation_ids, RATING_STEP)
                self.repository.bump_line_usage(log.affirmation_ids)
            elif rating <= NEGATIVE_RATING:
                self.repository.adjust_line_rating(log.affirmation_ids, -RATING_STEP)
        elif log.tier == TIER_EXACT and log.template_id and rating >= POSITIVE_RATING:
            self.repository.adjust_template_rating(log.template_id, RATING_STEP)
            self.repository.bump_template_usage(log.template_id)

        info(_LOG, "feedback_recorded", session=session_id, tier=log.tier, rating=rating, replayed=replayed)
        return FeedbackResult(session_id=session_id, updated=True, tier=log.tier)

    def seed_library(self) -> Dict[str, int]:
        """Load built-in lines and templates into the pool. Safe to repeat."""
        lines = 0
        templates = 0
        for goal in GOALS:
            rows = [
                self.repository.upsert_line(text, goal, tags=FALLBACK_TAGS.get(goal, []) + ["default"])
                for text in fallback_lines(goal)
            ]
            lines += len(rows)
            existing = {t.title for t in self.repository.templates_for_goal(goal)}
            for t_goal, title, intent, indexes in SEED_TEMPLATES:
                if t_goal != goal or title in existing:
                    continue
                self.repository.add_template(
                    title=title,
                    goal=goal,
                    intent=intent,
                    intent_keywords=extract_keywords(intent),
                    affirmation_ids=[rows[i].id for i in indexes],
                )
                templates += 1
        success(_LOG, "library_seeded", lines=lines, templates=templates)
        return {"lines": lines, "templates": templates}

    def health(self) -> Dict[str, Any]:
        return {
            "ok": True,
            "provider": self.provider.name,
            "generator": self.generator is not None,
            "voices": sorted(self.config.synthesis.voices),
            "canonical_pace": self.config.synthesis.canonical_pace,
            "db": self.repository.counts(),
            "storage": self.store.stats(),
        }

    def close(self) -> None:
        self.provider.close()
        if self.store.mirror is not None:
            self.store.mirror.close()
        self.db.dispose()


# =============================================================================
# Process-wide instance
# =============================================================================

_service: Optional[AffirmService] = None
_service_lock = threading.Lock()


def get_service(settings: Settings) -> AffirmService:
    """Return the shared AffirmService, creating it on first use."""
    global _service
    if _service is None:
        with _service_lock:
            if _service is None:
                _service = AffirmService(settings)
    return _service


def reset_service() -> None:
    """Drop the shared instance (tests, reconfiguration)."""
    global _service
    with _service_lock:
        if _service is not None:
            _service.close()
        _service = None
