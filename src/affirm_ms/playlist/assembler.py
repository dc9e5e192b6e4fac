"""
PlaylistAssembler - build a timed manifest for a session.

For every line of the session, in position order, audio is chosen by
preference:

    1. the preferred voice at the session's pace
    2. the preferred voice at any pace
    3. any version whose voice the caller's access tier permits,
       in the order the tier lists its voices
    4. the legacy single-audio reference stored on the line
    5. none: the line stays in the manifest with a null audioUrl

The preferred voice is the requested voice when the tier permits it,
otherwise the default voice.

Missing sessions, sessions without lines and sessions with no resolvable
audio all yield an empty manifest; assembly never fails for missing data.
"""
from __future__ import annotations

from typing import List, Optional, Sequence, Tuple

from affirm_ms.audio.voices import VoiceAccess
from affirm_ms.core.config import PlaylistConfig
from affirm_ms.core.logging import get_logger, info, verbose
from affirm_ms.core.metrics import metrics
from affirm_ms.db.models import AffirmationLine, AudioVersion
from affirm_ms.db.repository import AffirmationRepository
from affirm_ms.playlist.models import ManifestLine, PlaylistManifest

_LOG = get_logger("affirm-ms.playlist")

# Built-in client sessions carry no per-line data
DEFAULT_SESSION_PREFIX = "default-"


def absolute_url(url: Optional[str], base_url: str) -> Optional[str]:
    if url and base_url and url.startswith("/"):
        return base_url.rstrip("/") + url
    return url


def pick_audio(
    versions: Sequence[AudioVersion],
    preferred_voice: str,
    pace: str,
    allowed: Sequence[str],
    line: AffirmationLine,
) -> Tuple[Optional[str], int, Optional[str]]:
    """(audio_url, duration_ms, voice_id) for one line."""
    for v in versions:
        if v.voice_id == preferred_voice and v.pace == pace:
            return v.audio_url, v.duration_ms, v.voice_id
    for v in versions:
        if v.voice_id == preferred_voice:
            return v.audio_url, v.duration_ms, v.voice_id
    by_voice = {v.voice_id: v for v in versions}
    for voice in allowed:
        v = by_voice.get(voice)
        if v is not None:
            return v.audio_url, v.duration_ms, v.voice_id
    if line.legacy_audio_url:
        return line.legacy_audio_url, int(line.legacy_duration_ms or 0), None
    return None, 0, None


class PlaylistAssembler:
    def __init__(
        self,
        repository: AffirmationRepository,
        access: VoiceAccess,
        config: PlaylistConfig,
        canonical_pace: str = "slow",
    ):
        self.repository = repository
        self.access = access
        self.config = config
        self.canonical_pace = canonical_pace

    def get_playlist(
        self,
        session_id: str,
        voice_id: Optional[str] = None,
        tier: Optional[str] = None,
        base_url: str = "",
    ) -> PlaylistManifest:
        if session_id.startswith(DEFAULT_SESSION_PREFIX):
            return self._empty(session_id, self.config.silence_between_ms, "default_session")
        session = self.repository.get_session(session_id)
        if session is None:
            return self._empty(session_id, self.config.silence_between_ms, "unknown_session")

        silence_default = session.silence_between_ms
        rows = self.repository.session_lines(session_id)
        if not rows:
            return self._empty(session_id, silence_default, "no_lines")

        preferred = self.access.preferred(voice_id or session.voice_id, tier)
        allowed = self.access.allowed(tier)
        versions = self.repository.audio_versions_for_lines([r.line.id for r in rows])

        lines: List[ManifestLine] = []
        for r in rows:
            url, duration_ms, used_voice = pick_audio(
                versions.get(r.line.id, []), preferred, session.pace or self.canonical_pace, allowed, r.line
            )
            silence = r.silence_after_ms if r.silence_after_ms is not None else silence_default
            lines.append(ManifestLine(
                id=r.line.id,
                text=r.line.text,
                audio_url=absolute_url(url, base_url),
                duration_ms=duration_ms,
                silence_after_ms=silence,
                position=r.position,
                voice_id=used_voice,
            ))
            if url is None:
                verbose(_LOG, "line_without_audio", session=session_id, position=r.position)

        if not any(line.audio_url for line in lines):
            return self._empty(session_id, silence_default, "no_audio")

        manifest = PlaylistManifest(session_id=session_id, silence_between_ms=silence_default, lines=lines)
        metrics.record_playlist(empty=False)
        info(
            _LOG,
            "playlist_built",
            session=session_id,
            lines=len(lines),
            voice=preferred,
            total_ms=manifest.total_duration_ms,
        )
        return manifest

    @staticmethod
    def _empty(session_id: str, silence_ms: int, reason: str) -> PlaylistManifest:
        metrics.record_playlist(empty=True)
        info(_LOG, "playlist_empty", session=session_id, reason=reason)
        return PlaylistManifest(session_id=session_id, silence_between_ms=silence_ms)
