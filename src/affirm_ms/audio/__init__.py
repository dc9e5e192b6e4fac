"""
Speech audio resolution.

    - synthesizer.py: AudioSynthesizer (row / artifact / synth resolution)
    - cache.py: Cache keys and the sharded artifact store
    - providers.py: Speech providers (ElevenLabs, offline silence)
    - voices.py: Goal voice profiles and voice access tiers
"""
from .cache import ArtifactStore, make_cache_key
from .synthesizer import AudioResolution, AudioSynthesizer

__all__ = ["ArtifactStore", "AudioResolution", "AudioSynthesizer", "make_cache_key"]
