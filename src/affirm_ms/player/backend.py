"""
Audio backends for the playback client.

The orchestrator only talks to the two abstract types below, so tests can
drive it with an in-memory fake. PygameBackend is the bundled real
backend; it needs the optional ``player`` extra (pygame).
"""
from __future__ import annotations

import asyncio
import io
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional

import httpx


class AudioLoadError(Exception):
    """A single load attempt failed (network, decode or file error)."""


class SoundHandle(ABC):
    """
    One loaded sound.

    Volumes are 0.0..1.0; pan is -1.0 (left) .. 1.0 (right). ``play``
    starts from the last ``seek`` position (0 by default).
    """

    duration_ms: int = 0

    @abstractmethod
    def play(self) -> None:
        ...

    @abstractmethod
    def pause(self) -> None:
        ...

    @abstractmethod
    def resume(self) -> None:
        ...

    @abstractmethod
    def stop(self) -> None:
        ...

    @abstractmethod
    def seek(self, position_ms: int) -> None:
        ...

    @abstractmethod
    def set_volume(self, volume: float) -> None:
        ...

    @abstractmethod
    def set_pan(self, pan: float) -> None:
        ...

    @abstractmethod
    def unload(self) -> None:
        ...


class AudioBackend(ABC):
    @abstractmethod
    async def load(self, url: str, looping: bool = False) -> SoundHandle:
        """Load a sound. Raises AudioLoadError on failure."""

    async def aclose(self) -> None:
        pass


def stereo_gains(volume: float, pan: float) -> tuple[float, float]:
    """(left, right) channel gains for a volume and pan position."""
    volume = max(0.0, min(1.0, volume))
    pan = max(-1.0, min(1.0, pan))
    left = volume * min(1.0, 1.0 - pan)
    right = volume * min(1.0, 1.0 + pan)
    return left, right


class PygameSoundHandle(SoundHandle):
    def __init__(self, pygame: Any, sound: Any, looping: bool):
        self._pg = pygame
        self._sound = sound
        self._looping = looping
        self._channel: Optional[Any] = None
        self._volume = 1.0
        self._pan = 0.0
        self._offset_ms = 0
        self.duration_ms = int(round(sound.get_length() * 1000))

    def _apply(self) -> None:
        if self._channel is not None:
            self._channel.set_volume(*stereo_gains(self._volume, self._pan))

    def _sound_from_offset(self) -> Any:
        if self._offset_ms <= 0:
            return self._sound
        freq, size, channels = self._pg.mixer.get_init()
        frame_bytes = abs(size) // 8 * channels
        start = int(freq * self._offset_ms / 1000) * frame_bytes
        return self._pg.mixer.Sound(buffer=self._sound.get_raw()[start:])

    def play(self) -> None:
        sound = self._sound_from_offset()
        self._channel = sound.play(loops=-1 if self._looping else 0)
        self._apply()

    def pause(self) -> None:
        if self._channel is not None:
            self._channel.pause()

    def resume(self) -> None:
        if self._channel is not None:
            self._channel.unpause()

    def stop(self) -> None:
        if self._channel is not None:
            self._channel.stop()
            self._channel = None

    def seek(self, position_ms: int) -> None:
        self._offset_ms = max(0, min(int(position_ms), self.duration_ms))

    def set_volume(self, volume: float) -> None:
        self._volume = volume
        self._apply()

    def set_pan(self, pan: float) -> None:
        self._pan = pan
        self._apply()

    def unload(self) -> None:
        self.stop()
        self._sound = None


class PygameBackend(AudioBackend):
    """
    Plays audio through ``pygame.mixer``.

    Remote URLs are fetched with httpx; anything without a scheme is read
    from the local filesystem. Decoding runs in a worker thread.
    """

    def __init__(self, timeout_s: float = 15.0, client: Optional[httpx.AsyncClient] = None):
        os.environ.setdefault("PYGAME_HIDE_SUPPORT_PROMPT", "1")
        import pygame

        self._pg = pygame
        try:
            pygame.mixer.init()
        except pygame.error as e:
            raise RuntimeError(f"Failed to initialize pygame audio mixer: {e}") from e
        # Ambient beds plus one speech line
        pygame.mixer.set_num_channels(8)
        self._client = client or httpx.AsyncClient(timeout=timeout_s, follow_redirects=True)

    async def _fetch(self, url: str) -> bytes:
        if url.startswith(("http://", "https://")):
            try:
                response = await self._client.get(url)
                response.raise_for_status()
            except httpx.HTTPError as e:
                raise AudioLoadError(f"fetch failed for {url}: {e}") from e
            return response.content
        try:
            return await asyncio.to_thread(Path(url).read_bytes)
        except OSError as e:
            raise AudioLoadError(f"read failed for {url}: {e}") from e

    async def load(self, url: str, looping: bool = False) -> SoundHandle:
        data = await self._fetch(url)
        try:
            sound = await asyncio.to_thread(self._pg.mixer.Sound, io.BytesIO(data))
        except self._pg.error as e:
            raise AudioLoadError(f"decode failed for {url}: {e}") from e
        return PygameSoundHandle(self._pg, sound, looping)

    async def aclose(self) -> None:
        await self._client.aclose()
        self._pg.mixer.quit()
