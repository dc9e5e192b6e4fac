"""
affirm-ms: personalized affirmation audio service.

Turns a listener's goal and free-text intention into an ordered set of
short spoken affirmations, synthesizes each line once per voice through a
content-addressed audio cache, assembles playlists with timed silence, and
plays them client-side over ambient tonal and noise layers.

Pipeline:
    ContentSelector -> AudioSynthesizer -> PlaylistAssembler -> PlaybackOrchestrator

Example Usage:
    >>> from affirm_ms.core.config import Settings
    >>> from affirm_ms.services import get_service
    >>>
    >>> service = get_service(Settings(raw={}))
    >>> outcome = service.select("sleep", "I keep replaying work conversations at night")
    >>> outcome.tier
    'pooled'
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
