"""
AudioSynthesizer - resolve one line of text to durable speech audio.

Resolution order for (affirmation_id, text, voice_id, goal, pace):

    1. row       AudioVersion for (affirmation_id, voice_id) exists, was made
                 from the same cache key, and its artifact is present
    2. artifact  an artifact already exists under the cache key (made for
                 any line); the AudioVersion row is created or repaired
    3. synth     call the speech provider with the goal's voice profile,
                 store the bytes, probe the duration, upsert the row

A row whose artifact has gone missing is a CacheIntegrityFailure; it is
logged and handled as a miss, so the audio is regenerated.

Concurrent calls for different lines need no coordination. Two calls for
the same line may both synthesize; the store write and the row upsert are
idempotent, so the later one simply wins.
"""
from __future__ import annotations

import contextvars
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import List, Optional, Sequence, Union

from affirm_ms.audio.cache import ArtifactStore, make_cache_key
from affirm_ms.audio.providers import SpeechProvider
from affirm_ms.audio.voices import profile_for
from affirm_ms.core.config import SynthesisConfig
from affirm_ms.core.errors import CacheIntegrityFailure, InvalidInputError, SynthesisFailure
from affirm_ms.core.logging import fail, get_logger, info, verbose, warn
from affirm_ms.core.metrics import metrics
from affirm_ms.db.models import AudioVersion
from affirm_ms.db.repository import AffirmationRepository
from affirm_ms.utils.audio import probe_duration_ms
from affirm_ms.utils.text import normalize_text
from affirm_ms.utils.timeit import timeit

_LOG = get_logger("affirm-ms.synthesizer")

CACHE_ROW = "row"
CACHE_ARTIFACT = "artifact"
CACHE_SYNTH = "synth"


@dataclass
class AudioResolution:
    affirmation_id: str
    voice_id: str
    audio_url: str
    duration_ms: int
    cache_key: str
    cache: str


@dataclass
class ResolveRequest:
    affirmation_id: str
    text: str
    voice_id: str
    goal: Optional[str]
    pace: Optional[str] = None


class AudioSynthesizer:
    def __init__(
        self,
        repository: AffirmationRepository,
        store: ArtifactStore,
        provider: SpeechProvider,
        config: SynthesisConfig,
    ):
        self.repository = repository
        self.store = store
        self.provider = provider
        self.config = config

    def cache_key(self, text: str, voice_id: str, goal: Optional[str], pace: Optional[str] = None) -> str:
        return make_cache_key(text, voice_id, goal, pace or self.config.canonical_pace)

    def resolve_audio(
        self,
        affirmation_id: str,
        text: str,
        voice_id: str,
        goal: Optional[str],
        pace: Optional[str] = None,
    ) -> AudioResolution:
        """
        Return durable audio for one line, synthesizing only on a miss.

        Raises:
            InvalidInputError: Unknown voice or empty text.
            SynthesisFailure: The provider failed for this line.
        """
        if voice_id not in self.config.voices:
            raise InvalidInputError(f"unknown voice: {voice_id}", {"voices": sorted(self.config.voices)})
        text = normalize_text(text)
        if not text:
            raise InvalidInputError("text must not be empty")
        pace = pace or self.config.canonical_pace
        key = make_cache_key(text, voice_id, goal, pace)

        # 1. Row hit
        row = self.repository.get_audio_version(affirmation_id, voice_id)
        if row is not None and row.cache_key == key:
            try:
                self._verify(row)
                metrics.record_resolution(CACHE_ROW)
                verbose(_LOG, "audio_resolved", cache=CACHE_ROW, key=key[:12])
                return self._resolution(row, CACHE_ROW)
            except CacheIntegrityFailure as e:
                metrics.record_integrity_failure()
                warn(_LOG, "cache_integrity_failure", key=key[:12], error=e.message)

        # 2. Artifact hit under the same key
        artifact = self.store.find(key)
        if artifact is not None:
            duration_ms = probe_duration_ms(artifact.path.read_bytes())
            row = self.repository.upsert_audio_version(
                affirmation_id=affirmation_id,
                voice_id=voice_id,
                pace=pace,
                cache_key=key,
                audio_url=self.store.local_ref(key),
                duration_ms=duration_ms,
            )
            metrics.record_resolution(CACHE_ARTIFACT)
            info(_LOG, "audio_resolved", cache=CACHE_ARTIFACT, key=key[:12], duration_ms=duration_ms)
            return self._resolution(row, CACHE_ARTIFACT)

        # 3. Synthesize
        profile = profile_for(goal, pace, self.config.speed_min, self.config.speed_max)
        with timeit("synthesis") as t:
            try:
                audio = self.provider.synthesize(text, voice_id, profile)
            except SynthesisFailure as e:
                metrics.record_synthesis_failure()
                fail(_LOG, "synthesis_failed", affirmation=affirmation_id, voice=voice_id, error=e.message)
                raise
        seconds = t.timing.seconds if t.timing else None

        audio_ref = self.store.save(key, audio.data, audio.ext)
        duration_ms = probe_duration_ms(audio.data)
        row = self.repository.upsert_audio_version(
            affirmation_id=affirmation_id,
            voice_id=voice_id,
            pace=pace,
            cache_key=key,
            audio_url=audio_ref,
            duration_ms=duration_ms,
        )
        metrics.record_resolution(CACHE_SYNTH, seconds)
        info(
            _LOG,
            "audio_resolved",
            cache=CACHE_SYNTH,
            key=key[:12],
            voice=voice_id,
            speed=profile.speed,
            duration_ms=duration_ms,
            seconds=seconds,
        )
        return self._resolution(row, CACHE_SYNTH)

    def resolve_many(
        self, requests: Sequence[ResolveRequest]
    ) -> List[Union[AudioResolution, SynthesisFailure]]:
        """
        Resolve several lines concurrently.

        Results are returned in request order; a line whose synthesis
        failed yields its SynthesisFailure instead of a resolution.
        """
        if not requests:
            return []

        def _one(req: ResolveRequest) -> Union[AudioResolution, SynthesisFailure]:
            try:
                return self.resolve_audio(req.affirmation_id, req.text, req.voice_id, req.goal, req.pace)
            except SynthesisFailure as e:
                return e
            except Exception as e:
                fail(_LOG, "line_resolve_failed", affirmation_id=req.affirmation_id, error=str(e))
                metrics.record_synthesis_failure()
                return SynthesisFailure(
                    f"audio resolution failed: {e}",
                    {"affirmation_id": req.affirmation_id, "voice_id": req.voice_id},
                )

        workers = min(self.config.max_workers, len(requests))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="affirm-synth") as pool:
            futures = [pool.submit(contextvars.copy_context().run, _one, req) for req in requests]
            return [f.result() for f in futures]

    def _verify(self, row: AudioVersion) -> None:
        if not self.store.exists(row.cache_key):
            raise CacheIntegrityFailure(
                "audio artifact missing for stored version",
                {"affirmation_id": row.affirmation_id, "voice_id": row.voice_id},
            )

    @staticmethod
    def _resolution(row: AudioVersion, cache: str) -> AudioResolution:
        return AudioResolution(
            affirmation_id=row.affirmation_id,
            voice_id=row.voice_id,
            audio_url=row.audio_url,
            duration_ms=row.duration_ms,
            cache_key=row.cache_key,
            cache=cache,
        )
