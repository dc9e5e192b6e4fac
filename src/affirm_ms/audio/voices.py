"""
Goal-derived voice parameters and voice access tiers.

Each goal has its own (stability, similarity_boost, speed) profile. The
slow pace multiplies speed by 0.9, and the final speed is clamped to the
range the speech provider accepts.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Sequence


@dataclass(frozen=True)
class VoiceProfile:
    stability: float
    similarity_boost: float
    speed: float

    def as_payload(self) -> Dict[str, float]:
        return {
            "stability": self.stability,
            "similarity_boost": self.similarity_boost,
            "speed": self.speed,
        }


GOAL_PROFILES: Dict[str, VoiceProfile] = {
    "sleep": VoiceProfile(stability=0.80, similarity_boost=0.60, speed=0.65),
    "calm": VoiceProfile(stability=0.75, similarity_boost=0.65, speed=0.70),
    "focus": VoiceProfile(stability=0.72, similarity_boost=0.68, speed=0.75),
    "manifest": VoiceProfile(stability=0.70, similarity_boost=0.70, speed=0.80),
}
DEFAULT_PROFILE = VoiceProfile(stability=0.50, similarity_boost=0.75, speed=1.0)

SLOW_PACE_FACTOR = 0.9


def profile_for(goal: str | None, pace: str, speed_min: float = 0.7, speed_max: float = 1.2) -> VoiceProfile:
    """
    >>> profile_for("sleep", "slow").speed
    0.7
    >>> profile_for(None, "normal").speed
    1.0
    """
    base = GOAL_PROFILES.get((goal or "").lower(), DEFAULT_PROFILE)
    speed = base.speed * SLOW_PACE_FACTOR if pace == "slow" else base.speed
    speed = round(min(max(speed, speed_min), speed_max), 3)
    return VoiceProfile(stability=base.stability, similarity_boost=base.similarity_boost, speed=speed)


class VoiceAccess:
    """
    Which voices a caller's access tier may use.

    ``free`` callers get the configured free voices; ``pro`` callers get
    every configured voice. Unknown tiers are treated as free.
    """

    TIERS = ("free", "pro")

    def __init__(self, voices: Sequence[str], free_voices: Sequence[str], default_voice: str):
        self.voices: List[str] = list(voices)
        self.free_voices: List[str] = [v for v in free_voices if v in self.voices]
        self.default_voice = default_voice

    def allowed(self, tier: str | None) -> List[str]:
        if (tier or "free").lower() == "pro":
            return list(self.voices)
        return list(self.free_voices)

    def preferred(self, voice_id: str | None, tier: str | None) -> str:
        """The requested voice when permitted, else the default voice."""
        if voice_id and voice_id in self.allowed(tier):
            return voice_id
        return self.default_voice
