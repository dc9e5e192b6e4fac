"""
PlaybackOrchestrator - client-side session playback.

States:

    IDLE -> PRELOADING -> READY -> PLAYING <-> PAUSED -> FINISHED

Lines load through the Preloader; a line that cannot be loaded is
Unavailable on its own and never changes the session state.

Timeline:
    - ambient beds start at volume 0 and ease to their targets over
      ``fade_in_ms``; the first line starts after ``fade_in_ms +
      start_buffer_ms``
    - line i plays, then ``silence_after_ms`` elapses, then line i+1
    - a line that is Unavailable, not loaded within
      ``line_wait_timeout_ms`` or unable to start is skipped: only its
      silence elapses

Progress (``current_time_ms``) is the manifest span of every completed
line plus the position inside the current one, capped at that line's
span. It never decreases except on seek().
"""
from __future__ import annotations

import asyncio
import time
from enum import Enum
from typing import List, Optional

from affirm_ms.core.config import PlaybackConfig
from affirm_ms.core.logging import fail, get_logger, info, success, verbose, warn
from affirm_ms.player.backend import AudioBackend, AudioLoadError, SoundHandle
from affirm_ms.player.mixer import AFFIRMATIONS, NOISE, TONAL, Mixer
from affirm_ms.player.preload import PreloadTimeout, Preloader
from affirm_ms.playlist.models import PlaylistManifest

_LOG = get_logger("affirm-ms.player")


class PlaybackState(str, Enum):
    IDLE = "idle"
    PRELOADING = "preloading"
    READY = "ready"
    PLAYING = "playing"
    PAUSED = "paused"
    FINISHED = "finished"


class PlaybackClock:
    """Elapsed unpaused milliseconds within the current segment."""

    def __init__(self) -> None:
        self._base_ms = 0.0
        self._started_at: Optional[float] = None
        self._resumed = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._started_at is not None

    def start(self, offset_ms: float = 0.0, running: bool = True) -> None:
        self._base_ms = float(offset_ms)
        self._started_at = time.monotonic() if running else None
        if running:
            self._resumed.set()
        else:
            self._resumed.clear()

    def elapsed_ms(self) -> float:
        if self._started_at is None:
            return self._base_ms
        return self._base_ms + (time.monotonic() - self._started_at) * 1000

    def pause(self) -> None:
        if self._started_at is not None:
            self._base_ms = self.elapsed_ms()
            self._started_at = None
            self._resumed.clear()

    def resume(self) -> None:
        if self._started_at is None:
            self._started_at = time.monotonic()
            self._resumed.set()

    async def run_until(self, target_ms: float) -> None:
        """Return once ``target_ms`` of unpaused time has elapsed."""
        while True:
            if not self.running:
                await self._resumed.wait()
                continue
            remaining = target_ms - self.elapsed_ms()
            if remaining <= 0:
                return
            await asyncio.sleep(remaining / 1000)


class PlaybackOrchestrator:
    def __init__(
        self,
        backend: AudioBackend,
        manifest: PlaylistManifest,
        config: PlaybackConfig,
        tonal_url: Optional[str] = None,
        noise_url: Optional[str] = None,
    ):
        self.backend = backend
        self.manifest = manifest
        self.config = config
        self.tonal_url = tonal_url
        self.noise_url = noise_url

        self.preloader = Preloader(backend, manifest.lines, config)
        self.mixer = Mixer(config)
        self.state = PlaybackState.IDLE
        self.current_index: Optional[int] = None
        self.skipped: List[int] = []

        self._spans = [line.span_ms for line in manifest.lines]
        self._clock = PlaybackClock()
        self._completed_ms = 0
        self._in_line = False
        self._speaking: Optional[SoundHandle] = None
        self._speech_started = False
        self._speech_ms = 0
        self._ambient: List[SoundHandle] = []
        self._sequencer: Optional[asyncio.Task] = None
        self._done = asyncio.Event()
        self._closed = False

    # ─────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────────

    async def prepare(self) -> None:
        """Load the priority lines and ambient beds; IDLE -> READY."""
        if self._closed or self.state != PlaybackState.IDLE:
            return
        self.state = PlaybackState.PRELOADING
        info(_LOG, "preload_start", session=self.manifest.session_id, lines=len(self.manifest.lines))
        await self.preloader.load_priority()
        for channel, url in ((TONAL, self.tonal_url), (NOISE, self.noise_url)):
            if url and not self._closed:
                await self._load_ambient(channel, url)
        if self._closed:
            verbose(_LOG, "preload_abandoned", session=self.manifest.session_id)
            return
        self.preloader.start_background()
        self.state = PlaybackState.READY
        info(_LOG, "preload_ready", state=self.state.value, unavailable=len(self.preloader.unavailable))

    async def _load_ambient(self, channel: str, url: str) -> None:
        try:
            handle = await self.backend.load(url, looping=True)
        except AudioLoadError as e:
            warn(_LOG, "ambient_unavailable", channel=channel, error=str(e))
            return
        if self._closed:
            handle.unload()
            return
        self._ambient.append(handle)
        self.mixer.attach(channel, handle)

    async def start(self) -> None:
        """Begin playback; prepares first when still IDLE."""
        if self.state == PlaybackState.IDLE:
            await self.prepare()
        if self.state != PlaybackState.READY:
            return
        self.state = PlaybackState.PLAYING
        for handle in self._ambient:
            handle.play()
        for channel in (TONAL, NOISE):
            self.mixer.start_fade(channel, self.config.fade_in_ms)
        self.mixer.start_pan()
        if self.manifest.is_empty:
            # Ambient beds only, until teardown
            info(_LOG, "playback_ambient_only", session=self.manifest.session_id)
            return
        self._spawn_sequencer(0, 0, self.config.start_delay_ms)
        info(_LOG, "playback_start", session=self.manifest.session_id, delay_ms=self.config.start_delay_ms)

    async def play(self) -> None:
        """Start and wait until the playlist finishes or is torn down."""
        await self.start()
        await self.wait_finished()

    async def wait_finished(self) -> None:
        await self._done.wait()

    def pause(self) -> None:
        if self.state != PlaybackState.PLAYING:
            return
        self.state = PlaybackState.PAUSED
        self._clock.pause()
        if self._speaking is not None and self._speech_started:
            self._speaking.pause()
        for handle in self._ambient:
            handle.pause()
        self.mixer.pause()
        self.mixer.stop_pan()
        verbose(_LOG, "playback_paused", time_ms=self.current_time_ms())

    def resume(self) -> None:
        if self.state != PlaybackState.PAUSED:
            return
        self.state = PlaybackState.PLAYING
        for handle in self._ambient:
            handle.resume()
        if self._speaking is not None and self._clock.elapsed_ms() < self._speech_ms:
            try:
                if self._speech_started:
                    self._speaking.resume()
                else:
                    self._speaking.seek(int(self._clock.elapsed_ms()))
                    self._speaking.play()
                    self._speech_started = True
            except Exception as e:
                fail(_LOG, "line_resume_failed", line=self.current_index, error=str(e))
                self._stop_speaking()
        self.mixer.resume()
        self._clock.resume()
        self.mixer.start_pan()
        verbose(_LOG, "playback_resumed", time_ms=self.current_time_ms())

    def seek(self, time_ms: int) -> bool:
        """
        Jump to ``time_ms`` on the manifest timeline.

        Playback continues from the line containing that time; inside its
        speech segment the line starts from the matching position.
        Returns False when the session is not playing or paused.
        """
        if self.state not in (PlaybackState.PLAYING, PlaybackState.PAUSED):
            return False
        target = max(0, min(int(time_ms), self.manifest.total_duration_ms))
        index = 0
        start = 0
        while index < len(self._spans) and start + self._spans[index] <= target:
            start += self._spans[index]
            index += 1

        self._cancel_sequencer()
        self._stop_speaking()
        self._completed_ms = start
        self._in_line = False
        self._spawn_sequencer(index, target - start, 0)
        info(_LOG, "playback_seek", time_ms=target, line=index)
        return True

    def set_volume(self, channel: str, volume: float) -> None:
        self.mixer.set_volume(channel, volume)

    def current_time_ms(self) -> int:
        if self.state == PlaybackState.FINISHED:
            return self.manifest.total_duration_ms
        if not self._in_line or self.current_index is None:
            return self._completed_ms
        within = min(self._clock.elapsed_ms(), self._spans[self.current_index])
        return int(self._completed_ms + within)

    def teardown(self) -> None:
        """
        Stop everything: the sequencer, fades, pan and background loads.
        Every loaded handle is released, played or not.
        """
        self._closed = True
        self._cancel_sequencer()
        self._stop_speaking()
        self.mixer.cancel_all()
        self.preloader.close()
        for handle in self._ambient:
            handle.stop()
            handle.unload()
        self._ambient.clear()
        self.state = PlaybackState.IDLE
        self._done.set()
        info(_LOG, "playback_teardown", session=self.manifest.session_id)

    # ─────────────────────────────────────────────────────────────────────
    # Sequencer
    # ─────────────────────────────────────────────────────────────────────

    def _spawn_sequencer(self, start_index: int, offset_ms: int, delay_ms: int) -> None:
        self._sequencer = asyncio.create_task(self._run(start_index, offset_ms, delay_ms))
        self._sequencer.add_done_callback(self._sequencer_done)

    def _sequencer_done(self, task: asyncio.Task) -> None:
        if task.cancelled() or task.exception() is None:
            return
        fail(_LOG, "sequencer_failed", session=self.manifest.session_id, error=str(task.exception()))
        if self._sequencer is task:
            self._finish()

    def _cancel_sequencer(self) -> None:
        if self._sequencer is not None:
            self._sequencer.cancel()
            self._sequencer = None

    def _stop_speaking(self) -> None:
        handle, self._speaking = self._speaking, None
        self._speech_started = False
        self._speech_ms = 0
        if handle is not None:
            self.mixer.attach(AFFIRMATIONS, None)
            handle.stop()

    async def _run(self, start_index: int, offset_ms: int, delay_ms: int) -> None:
        if delay_ms > 0:
            self._clock.start(0, running=self.state == PlaybackState.PLAYING)
            await self._clock.run_until(delay_ms)
        for index in range(start_index, len(self.manifest.lines)):
            await self._play_line(index, offset_ms if index == start_index else 0)
            self._completed_ms += self._spans[index]
            self._in_line = False
        self._finish()

    async def _play_line(self, index: int, offset_ms: int) -> None:
        line = self.manifest.lines[index]
        self.current_index = index
        handle = self.preloader.handle(index)
        if handle is None:
            try:
                handle = await self.preloader.wait_for(index, self.config.line_wait_timeout_ms)
            except PreloadTimeout:
                handle = None
        if handle is None:
            self.skipped.append(index)
            warn(_LOG, "line_skipped", line=index, silence_ms=line.silence_after_ms)

        speech_ms = (handle.duration_ms or line.duration_ms) if handle is not None else 0
        running = self.state == PlaybackState.PLAYING
        self._clock.start(offset_ms, running=running)
        self._in_line = True

        if handle is not None and offset_ms < speech_ms:
            self._speaking = handle
            self._speech_ms = speech_ms
            self.mixer.attach(AFFIRMATIONS, handle)
            try:
                handle.seek(offset_ms)
                if running:
                    handle.play()
                    self._speech_started = True
            except Exception as e:
                fail(_LOG, "line_play_failed", line=index, error=str(e))
                self._stop_speaking()
                self.skipped.append(index)
                speech_ms = 0
            else:
                verbose(_LOG, "line_start", line=index, duration_ms=speech_ms)

        await self._clock.run_until(speech_ms + line.silence_after_ms)
        self._stop_speaking()

    def _finish(self) -> None:
        self.state = PlaybackState.FINISHED
        self.current_index = None
        self._sequencer = None
        self.mixer.stop_pan()
        for channel in (TONAL, NOISE):
            task = self.mixer.start_fade(channel, self.config.fade_in_ms, fade_out=True)
            task.add_done_callback(lambda t, c=channel: self._stop_channel(c, t))
        success(_LOG, "playback_finished", session=self.manifest.session_id, skipped=len(self.skipped))
        self._done.set()

    def _stop_channel(self, channel: str, fade: asyncio.Task) -> None:
        handle = self.mixer.handle(channel)
        if handle is not None and not fade.cancelled():
            handle.stop()
