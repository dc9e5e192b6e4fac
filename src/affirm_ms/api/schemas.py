"""
API Request/Response Schemas.

Pydantic models for the affirmation endpoints. Request bodies accept both
snake_case and the camelCase names used by mobile clients
(``isFirstSession``, ``voiceId``, ...). Playlist manifests are returned
as plain dicts built by PlaylistManifest.to_dict().

Example Request (POST /v1/sessions):
    {
        "goal": "sleep",
        "intention": "I can't stop worrying about work",
        "count": 6,
        "voiceId": "neutral"
    }
"""
from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _Body(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SelectRequest(_Body):
    """
    Selection request.

    Attributes:
        goal: sleep, focus, calm or manifest.
        intention: Free text describing what the listener wants. The goal's
            default intention is used when omitted.
        count: Number of lines (1-10). Server default when omitted.
        is_first_session: Skip curated and pooled content.
    """
    goal: str = Field(..., min_length=1, max_length=32)
    intention: Optional[str] = Field(default=None, max_length=1000)
    count: Optional[int] = Field(default=None, ge=1, le=10)
    is_first_session: bool = False


class SessionRequest(SelectRequest):
    voice_id: Optional[str] = None
    silence_between_ms: Optional[int] = Field(default=None, ge=0, le=60000)


class ReplaceLinesRequest(_Body):
    affirmation_ids: List[str] = Field(..., min_length=1, max_length=10)


class ResolveAudioRequest(_Body):
    affirmation_id: str = Field(..., min_length=1)
    text: str = Field(..., min_length=1, max_length=500)
    voice_id: str = Field(..., min_length=1)
    goal: Optional[str] = None
    pace: Optional[str] = None


class FeedbackRequest(_Body):
    rating: int = Field(..., ge=1, le=5)
    replayed: bool = False


class SelectedLineOut(_Body):
    id: str
    text: str
    source: str


class SelectResponse(_Body):
    ok: bool = True
    tier: str
    confidence: float
    cost: float
    goal: str
    intention: str
    themes: List[str] = Field(default_factory=list)
    lines: List[SelectedLineOut]


class LineStatusOut(_Body):
    id: str
    text: str
    position: int
    audio_url: Optional[str] = None
    duration_ms: Optional[int] = None
    cache: Optional[str] = None
    error: Optional[str] = None


class SessionResponse(_Body):
    ok: bool = True
    session_id: str
    goal: str
    voice_id: str
    tier: str
    confidence: float
    cost: float
    silence_between_ms: int
    lines: List[LineStatusOut]


class AudioResolutionOut(_Body):
    ok: bool = True
    affirmation_id: str
    voice_id: str
    audio_url: str
    duration_ms: int
    cache_key: str
    cache: str


class FeedbackResponse(_Body):
    ok: bool = True
    session_id: str
    updated: bool
    tier: Optional[str] = None
