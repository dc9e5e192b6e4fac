"""
FastAPI Dependency Injection Providers.

    1. get_settings()        - loads and caches configuration
    2. get_affirm_service()  - returns the process-wide AffirmService

Both are singletons; tests reset them with get_settings.cache_clear()
and services.affirm_service.reset_service().
"""
from __future__ import annotations

from functools import lru_cache

from affirm_ms.core.config import Settings, load_settings
from affirm_ms.core.logging import get_logger, warn
from affirm_ms.services.affirm_service import AffirmService, get_service

_LOG = get_logger("affirm-ms.api")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Load and cache application settings.

    The file location comes from AFFIRM_MS_SETTINGS (default
    config/settings.yaml). A missing file means built-in defaults.
    """
    try:
        return load_settings()
    except FileNotFoundError as e:
        warn(_LOG, "settings_defaults", reason=str(e))
        return Settings(raw={})


def get_affirm_service() -> AffirmService:
    return get_service(get_settings())
