"""
Three-channel mixer: affirmations, tonal ambient, noise ambient.

Volumes are 0..100 and can change at any time. A change during a fade
retargets the fade, and fades hold while the mixer is paused. The noise
channel can carry a slow pan oscillation (0 -> +depth -> -depth -> 0 per
cycle).
"""
from __future__ import annotations

import asyncio
import math
import time
from typing import Dict, Optional, Set

from affirm_ms.core.config import PlaybackConfig
from affirm_ms.player.backend import SoundHandle

AFFIRMATIONS = "affirmations"
TONAL = "tonal"
NOISE = "noise"
CHANNELS = (AFFIRMATIONS, TONAL, NOISE)


def ease_in_out_quad(t: float) -> float:
    t = max(0.0, min(1.0, t))
    if t < 0.5:
        return 2 * t * t
    return 1 - (-2 * t + 2) ** 2 / 2


def pan_at(phase: float, depth: float) -> float:
    """Pan position for a phase in [0, 1) of one oscillation cycle."""
    phase = phase % 1.0
    if phase < 0.25:
        return depth * ease_in_out_quad(phase / 0.25)
    if phase < 0.75:
        return depth - 2 * depth * ease_in_out_quad((phase - 0.25) / 0.5)
    return -depth + depth * ease_in_out_quad((phase - 0.75) / 0.25)


class Mixer:
    def __init__(self, config: PlaybackConfig):
        self.config = config
        self.targets: Dict[str, float] = {
            AFFIRMATIONS: float(config.volume_affirmations),
            TONAL: float(config.volume_tonal),
            NOISE: float(config.volume_noise),
        }
        # Ambient beds start silent and are faded in
        self.levels: Dict[str, float] = {AFFIRMATIONS: self.targets[AFFIRMATIONS], TONAL: 0.0, NOISE: 0.0}
        self.pan = 0.0
        self._handles: Dict[str, Optional[SoundHandle]] = {c: None for c in CHANNELS}
        self._fading: Set[str] = set()
        self._tasks: Set[asyncio.Task] = set()
        self._pan_task: Optional[asyncio.Task] = None
        self._running = asyncio.Event()
        self._running.set()

    def attach(self, channel: str, handle: Optional[SoundHandle]) -> None:
        self._handles[channel] = handle
        if handle is not None:
            handle.set_volume(self.levels[channel] / 100)
            if channel == NOISE:
                handle.set_pan(self.pan)

    def handle(self, channel: str) -> Optional[SoundHandle]:
        return self._handles[channel]

    def _apply(self, channel: str, level: float) -> None:
        self.levels[channel] = level
        handle = self._handles[channel]
        if handle is not None:
            handle.set_volume(level / 100)

    def set_volume(self, channel: str, volume: float) -> None:
        if channel not in CHANNELS:
            raise ValueError(f"unknown channel: {channel}")
        if not 0 <= volume <= 100:
            raise ValueError(f"volume must be between 0 and 100, got {volume}")
        self.targets[channel] = float(volume)
        if channel not in self._fading:
            self._apply(channel, float(volume))

    async def fade(self, channel: str, duration_ms: int, fade_out: bool = False) -> None:
        """Ease a channel to its target (or to silence) over ``duration_ms``."""
        step_ms = max(1, self.config.fade_step_ms)
        steps = max(1, math.ceil(duration_ms / step_ms)) if duration_ms > 0 else 0
        start = self.levels[channel]
        self._fading.add(channel)
        try:
            for k in range(1, steps + 1):
                await asyncio.sleep(step_ms / 1000)
                await self._running.wait()
                end = 0.0 if fade_out else self.targets[channel]
                self._apply(channel, start + (end - start) * ease_in_out_quad(k / steps))
            self._apply(channel, 0.0 if fade_out else self.targets[channel])
        finally:
            self._fading.discard(channel)

    def start_fade(self, channel: str, duration_ms: int, fade_out: bool = False) -> asyncio.Task:
        task = asyncio.create_task(self.fade(channel, duration_ms, fade_out))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def pause(self) -> None:
        """Hold every fade at its current level."""
        self._running.clear()

    def resume(self) -> None:
        self._running.set()

    def _set_pan(self, pan: float) -> None:
        self.pan = pan
        handle = self._handles[NOISE]
        if handle is not None:
            handle.set_pan(pan)

    async def _pan_loop(self) -> None:
        cycle_ms = max(1, self.config.pan_cycle_ms)
        step_s = max(1, self.config.fade_step_ms) / 1000
        t0 = time.monotonic()
        while True:
            phase = ((time.monotonic() - t0) * 1000 % cycle_ms) / cycle_ms
            self._set_pan(pan_at(phase, self.config.pan_depth))
            await asyncio.sleep(step_s)

    def start_pan(self) -> None:
        if self.config.pan_enabled and self._pan_task is None:
            self._pan_task = asyncio.create_task(self._pan_loop())

    def stop_pan(self) -> None:
        if self._pan_task is not None:
            self._pan_task.cancel()
            self._pan_task = None
        self._set_pan(0.0)

    @property
    def active_tasks(self) -> int:
        return len(self._tasks) + (1 if self._pan_task is not None else 0)

    def cancel_all(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()
        self._fading.clear()
        self.stop_pan()
        self._running.set()
