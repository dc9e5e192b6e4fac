"""
Line preloading for a playlist.

The first ``priority_count`` lines load fully in parallel and are awaited
before playback may start. The rest load in the background in batches of
``batch_size``. Each line gets ``max_retries`` retries with capped
exponential backoff; a line that exhausts them is Unavailable for the
rest of this session.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence, Set

from affirm_ms.core.config import PlaybackConfig
from affirm_ms.core.logging import fail, get_logger, verbose, warn
from affirm_ms.player.backend import AudioBackend, AudioLoadError, SoundHandle
from affirm_ms.playlist.models import ManifestLine

_LOG = get_logger("affirm-ms.player")


class PreloadTimeout(Exception):
    """A line did not settle within the allowed wait."""

    def __init__(self, index: int, timeout_ms: int):
        self.index = index
        self.timeout_ms = timeout_ms
        super().__init__(f"line {index} not loaded within {timeout_ms} ms")


class LoadState(str, Enum):
    PENDING = "pending"
    LOADING = "loading"
    LOADED = "loaded"
    UNAVAILABLE = "unavailable"


@dataclass
class LineSlot:
    line: ManifestLine
    state: LoadState = LoadState.PENDING
    handle: Optional[SoundHandle] = None
    attempts: int = 0
    settled: asyncio.Event = field(default_factory=asyncio.Event)


def backoff_ms(attempt: int, base_ms: int, cap_ms: int) -> int:
    """Delay before retry number ``attempt`` (1-based)."""
    return min(cap_ms, base_ms * (2 ** (attempt - 1)))


class Preloader:
    def __init__(self, backend: AudioBackend, lines: Sequence[ManifestLine], config: PlaybackConfig):
        self.backend = backend
        self.config = config
        self.slots: List[LineSlot] = [LineSlot(line) for line in lines]
        self._background: Optional[asyncio.Task] = None
        self._extra: Set[asyncio.Task] = set()
        self._closed = False

    def handle(self, index: int) -> Optional[SoundHandle]:
        return self.slots[index].handle

    def state(self, index: int) -> LoadState:
        return self.slots[index].state

    @property
    def unavailable(self) -> List[int]:
        return [i for i, s in enumerate(self.slots) if s.state == LoadState.UNAVAILABLE]

    async def load_priority(self) -> None:
        """
        Load the priority prefix.

        Returns when every priority line has settled or after
        ``line_wait_timeout_ms``, whichever comes first. Lines still loading
        then keep loading and are awaited again when their turn comes.
        """
        tasks = []
        for slot in self.slots[: self.config.priority_count]:
            task = asyncio.create_task(self._load(slot))
            self._extra.add(task)
            task.add_done_callback(self._extra.discard)
            tasks.append(task)
        if not tasks:
            return
        done, pending = await asyncio.wait(tasks, timeout=self.config.line_wait_timeout_ms / 1000)
        for task in done:
            if not task.cancelled():
                task.result()
        if pending:
            warn(_LOG, "priority_wait_timeout", pending=len(pending), timeout_ms=self.config.line_wait_timeout_ms)

    def start_background(self) -> None:
        if len(self.slots) > self.config.priority_count and self._background is None:
            self._background = asyncio.create_task(self._load_rest())

    async def _load_rest(self) -> None:
        size = max(1, self.config.batch_size)
        for start in range(self.config.priority_count, len(self.slots), size):
            if self._closed:
                return
            batch = self.slots[start:start + size]
            await asyncio.gather(*(self._load(slot) for slot in batch))
            verbose(_LOG, "preload_batch_done", start=start, size=len(batch))

    async def _load(self, slot: LineSlot) -> None:
        if slot.state in (LoadState.LOADED, LoadState.UNAVAILABLE):
            return
        if slot.state == LoadState.LOADING:
            await slot.settled.wait()
            return
        if not slot.line.audio_url:
            self._give_up(slot, "no audio url")
            return

        slot.state = LoadState.LOADING
        attempts = self.config.max_retries + 1
        for attempt in range(1, attempts + 1):
            slot.attempts = attempt
            try:
                handle = await self.backend.load(slot.line.audio_url)
            except AudioLoadError as e:
                warn(_LOG, "line_load_failed", line=slot.line.position, attempt=attempt, error=str(e))
                if attempt < attempts:
                    delay = backoff_ms(attempt, self.config.backoff_base_ms, self.config.backoff_max_ms)
                    await asyncio.sleep(delay / 1000)
                continue
            if self._closed:
                handle.unload()
                return
            slot.handle = handle
            slot.state = LoadState.LOADED
            slot.settled.set()
            return
        self._give_up(slot, "retries exhausted")

    def _give_up(self, slot: LineSlot, reason: str) -> None:
        slot.state = LoadState.UNAVAILABLE
        slot.settled.set()
        fail(_LOG, "line_unavailable", line=slot.line.position, reason=reason)

    async def wait_for(self, index: int, timeout_ms: int) -> Optional[SoundHandle]:
        """
        Wait at most ``timeout_ms`` for line ``index`` to settle.

        A line the background batches have not reached yet is loaded on
        demand. Returns None when the line is Unavailable.

        Raises:
            PreloadTimeout: The line is still loading after ``timeout_ms``.
        """
        slot = self.slots[index]
        if slot.state == LoadState.PENDING and not self._closed:
            task = asyncio.create_task(self._load(slot))
            self._extra.add(task)
            task.add_done_callback(self._extra.discard)
        try:
            await asyncio.wait_for(slot.settled.wait(), timeout_ms / 1000)
        except asyncio.TimeoutError:
            warn(_LOG, "preload_timeout", line=slot.line.position, timeout_ms=timeout_ms)
            raise PreloadTimeout(index, timeout_ms) from None
        return slot.handle

    def close(self) -> None:
        """Stop all loading and release every loaded handle."""
        self._closed = True
        if self._background is not None:
            self._background.cancel()
        for task in list(self._extra):
            task.cancel()
        released = 0
        for slot in self.slots:
            if slot.handle is not None:
                slot.handle.unload()
                slot.handle = None
                released += 1
        verbose(_LOG, "preload_closed", released=released)
