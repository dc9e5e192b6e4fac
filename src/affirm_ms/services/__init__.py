"""
Business logic layer.

    - affirm_service.py: AffirmService (selection, sessions, audio,
      playlists, feedback) and the shared get_service() instance
"""
from .affirm_service import (
    AffirmService,
    FeedbackResult,
    LineStatus,
    SessionResult,
    get_service,
    reset_service,
)

__all__ = [
    "AffirmService",
    "FeedbackResult",
    "LineStatus",
    "SessionResult",
    "get_service",
    "reset_service",
]
