"""
Request correlation and module-level logging state.

The request id lives in a ContextVar so it follows a request across
threads started with contextvars.copy_context() and across asyncio tasks.

Environment Variables:
    - AFFIRM_MS_LOG_LEVEL: Log level (1-4 or name)
    - AFFIRM_MS_LOG_DIR: Directory for JSONL log files
    - AFFIRM_MS_JSONL_FILE: JSONL log filename
    - AFFIRM_MS_LOG_ROTATE_BYTES / AFFIRM_MS_LOG_ROTATE_BACKUP: Rotation
"""
from __future__ import annotations

import os
from contextvars import ContextVar
from typing import Any, Dict

from .levels import LEVEL_NAMES, LogLevel

_request_id: ContextVar[str] = ContextVar("request_id", default="-")

_configured: bool = False
_log_config: Dict[str, Any] = {}
_current_level: LogLevel = LogLevel.NORMAL


def get_request_id() -> str:
    """Request id for the current context, or "-" outside a request."""
    return _request_id.get()


def set_request_id(rid: str) -> None:
    _request_id.set(rid)


def get_level() -> LogLevel:
    return _current_level


def set_level(level: LogLevel) -> None:
    global _current_level
    _current_level = level


def get_level_name() -> str:
    return LEVEL_NAMES.get(_current_level, "NORMAL")


def is_configured() -> bool:
    return _configured


def set_configured(value: bool) -> None:
    global _configured
    _configured = value


def get_log_config() -> Dict[str, Any]:
    return _log_config


def set_log_config(config: Dict[str, Any]) -> None:
    global _log_config
    _log_config = config


def read_logging_config() -> Dict[str, Any]:
    """
    Resolve logging configuration.

    Priority (highest first): environment variables, the ``logging``
    section of the settings file, built-in defaults.
    """
    cfg: Dict[str, Any] = {}

    from affirm_ms.core.config import load_settings
    try:
        settings = load_settings()
        cfg.update(settings.raw.get("logging", {}) or {})
    except FileNotFoundError:
        pass

    if os.getenv("AFFIRM_MS_LOG_LEVEL"):
        cfg["level"] = os.environ["AFFIRM_MS_LOG_LEVEL"]
    if os.getenv("AFFIRM_MS_LOG_DIR") is not None:
        cfg["log_dir"] = os.environ["AFFIRM_MS_LOG_DIR"]
    if os.getenv("AFFIRM_MS_JSONL_FILE"):
        cfg["jsonl_file"] = os.environ["AFFIRM_MS_JSONL_FILE"]
    for env_name, key in (
        ("AFFIRM_MS_LOG_ROTATE_BYTES", "rotate_max_bytes"),
        ("AFFIRM_MS_LOG_ROTATE_BACKUP", "rotate_backup_count"),
    ):
        value = os.getenv(env_name)
        if value and value.isdigit():
            cfg[key] = int(value)

    return cfg
