"""
Audio helpers: duration probing and silent WAV rendering.

Durations are read from the container with soundfile. When the bytes
cannot be parsed (for example MP3 on a libsndfile build without MPEG
support), the duration is estimated from the byte length at a nominal
128 kbit/s, i.e. 16 bytes per millisecond.
"""
from __future__ import annotations

import io

import numpy as np
import soundfile as sf

NOMINAL_BYTES_PER_MS = 128_000 / 8 / 1000


def estimate_duration_ms(byte_length: int) -> int:
    return int(round(byte_length / NOMINAL_BYTES_PER_MS))


def probe_duration_ms(data: bytes) -> int:
    """Duration of encoded audio in milliseconds."""
    if not data:
        return 0
    try:
        info = sf.info(io.BytesIO(data))
    except (RuntimeError, TypeError):
        return estimate_duration_ms(len(data))
    if info.samplerate <= 0:
        return estimate_duration_ms(len(data))
    return int(round(info.frames * 1000 / info.samplerate))


def silence_wav_bytes(duration_ms: int, sample_rate: int = 22050) -> bytes:
    """16-bit mono WAV of silence lasting ``duration_ms``."""
    frames = max(1, int(sample_rate * duration_ms / 1000))
    audio = np.zeros(frames, dtype=np.float32)
    buf = io.BytesIO()
    sf.write(buf, audio, sample_rate, format="WAV", subtype="PCM_16")
    return buf.getvalue()
