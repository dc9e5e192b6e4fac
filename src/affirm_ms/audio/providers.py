"""
Speech synthesis providers.

    ElevenLabsProvider  HTTP text-to-speech, returns MP3
    SilenceProvider     offline development provider, returns a WAV of
                        silence sized like the spoken line

Providers raise SynthesisFailure for any failure of a single line.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Optional

import httpx

from affirm_ms.audio.voices import VoiceProfile
from affirm_ms.core.errors import SynthesisFailure
from affirm_ms.utils.audio import silence_wav_bytes


@dataclass
class SpeechAudio:
    data: bytes
    ext: str


class SpeechProvider(ABC):
    name: str = "base"

    @abstractmethod
    def synthesize(self, text: str, voice_id: str, profile: VoiceProfile) -> SpeechAudio:
        ...

    def close(self) -> None:
        pass


class ElevenLabsProvider(SpeechProvider):
    name = "elevenlabs"

    def __init__(
        self,
        api_key: str,
        voices: Dict[str, str],
        api_url: str = "https://api.elevenlabs.io/v1",
        model_id: str = "eleven_monolingual_v1",
        timeout_s: float = 30.0,
        client: Optional[httpx.Client] = None,
    ):
        self.voices = dict(voices)
        self.api_url = api_url.rstrip("/")
        self.model_id = model_id
        self._client = client or httpx.Client(timeout=timeout_s)
        self._api_key = api_key

    def synthesize(self, text: str, voice_id: str, profile: VoiceProfile) -> SpeechAudio:
        provider_voice = self.voices.get(voice_id)
        if provider_voice is None:
            raise SynthesisFailure(f"unknown voice: {voice_id}", {"voice_id": voice_id})
        if not self._api_key:
            raise SynthesisFailure("speech provider API key is not configured")
        try:
            response = self._client.post(
                f"{self.api_url}/text-to-speech/{provider_voice}",
                headers={"xi-api-key": self._api_key, "Accept": "audio/mpeg"},
                json={
                    "text": text,
                    "model_id": self.model_id,
                    "voice_settings": profile.as_payload(),
                },
            )
        except httpx.HTTPError as e:
            raise SynthesisFailure("speech provider request failed", {"error": str(e)}) from e
        if response.status_code != 200:
            raise SynthesisFailure(
                f"speech provider returned HTTP {response.status_code}",
                {"status": response.status_code, "body": response.text[:200]},
            )
        if not response.content:
            raise SynthesisFailure("speech provider returned no audio")
        return SpeechAudio(data=response.content, ext="mp3")

    def close(self) -> None:
        self._client.close()


class SilenceProvider(SpeechProvider):
    """Renders silence lasting roughly as long as the line would take to say."""

    name = "silence"
    MS_PER_WORD = 380
    MIN_MS = 600

    def __init__(self, sample_rate: int = 22050):
        self.sample_rate = sample_rate

    def synthesize(self, text: str, voice_id: str, profile: VoiceProfile) -> SpeechAudio:
        words = max(1, len(text.split()))
        duration_ms = max(self.MIN_MS, int(words * self.MS_PER_WORD / max(profile.speed, 0.1)))
        return SpeechAudio(data=silence_wav_bytes(duration_ms, self.sample_rate), ext="wav")
