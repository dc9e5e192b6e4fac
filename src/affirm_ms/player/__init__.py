"""
Client-side playback.

    - orchestrator.py: PlaybackOrchestrator state machine and sequencer
    - preload.py: priority/background line loading with bounded retries
    - mixer.py: three volume channels, fades and the noise pan oscillator
    - backend.py: AudioBackend/SoundHandle and the pygame backend
    - client.py: playlist fetching over HTTP
"""
from .backend import AudioBackend, AudioLoadError, SoundHandle
from .orchestrator import PlaybackOrchestrator, PlaybackState
from .preload import LoadState, PreloadTimeout, Preloader

__all__ = [
    "AudioBackend",
    "AudioLoadError",
    "LoadState",
    "PlaybackOrchestrator",
    "PlaybackState",
    "PreloadTimeout",
    "Preloader",
    "SoundHandle",
]
