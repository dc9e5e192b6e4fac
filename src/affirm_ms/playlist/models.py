"""
Playlist manifest types, shared by the server (assembly) and the client
(playback). The wire format uses camelCase keys.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class ManifestLine:
    id: str
    text: str
    audio_url: Optional[str]
    duration_ms: int
    silence_after_ms: int
    position: int = 0
    voice_id: Optional[str] = None

    @property
    def span_ms(self) -> int:
        """Time this line occupies on the timeline: speech plus trailing silence."""
        return self.duration_ms + self.silence_after_ms

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "text": self.text,
            "audioUrl": self.audio_url,
            "durationMs": self.duration_ms,
            "silenceAfterMs": self.silence_after_ms,
            "position": self.position,
            "voiceId": self.voice_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], position: int = 0) -> "ManifestLine":
        return cls(
            id=str(data["id"]),
            text=str(data.get("text", "")),
            audio_url=data.get("audioUrl") or None,
            duration_ms=int(data.get("durationMs") or 0),
            silence_after_ms=int(data.get("silenceAfterMs") or 0),
            position=int(data.get("position", position)),
            voice_id=data.get("voiceId"),
        )


@dataclass
class PlaylistManifest:
    session_id: str
    silence_between_ms: int
    lines: List[ManifestLine] = field(default_factory=list)

    @property
    def total_duration_ms(self) -> int:
        return sum(line.span_ms for line in self.lines)

    @property
    def is_empty(self) -> bool:
        return not self.lines

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "totalDurationMs": self.total_duration_ms,
            "silenceBetweenMs": self.silence_between_ms,
            "affirmations": [line.to_dict() for line in self.lines],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PlaylistManifest":
        lines = [ManifestLine.from_dict(item, i) for i, item in enumerate(data.get("affirmations") or [])]
        return cls(
            session_id=str(data.get("sessionId", "")),
            silence_between_ms=int(data.get("silenceBetweenMs") or 0),
            lines=lines,
        )
