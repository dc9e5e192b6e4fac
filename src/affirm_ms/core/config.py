"""
Configuration Management for affirm-ms.

This module provides centralized configuration handling with:
    - Default values (Defaults class)
    - Dataclass-based configuration sections
    - YAML file loading with environment variable overrides
    - Validation with meaningful error messages

Configuration Hierarchy (highest priority first):
    1. Environment variables (AFFIRM_MS_DATABASE_URL, AFFIRM_MS_STORAGE_DIR, ...)
    2. YAML config file (config/settings.yaml)
    3. Defaults class values

Example settings.yaml:
    database:
      url: sqlite:///./affirm.db

    selection:
      exact_threshold: 0.6
      diversity_penalty: 0.5

    synthesis:
      provider: elevenlabs
      canonical_pace: slow
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List

import yaml


class ConfigValidationError(Exception):
    """Raised when a configuration value is out of bounds or malformed."""
    pass


class Defaults:
    """
    Centralized default configuration values.

    Sections:
        - Database: SQLAlchemy URL
        - Storage: Local artifact store and optional HTTP mirror
        - Selection: Tier thresholds, ranking weights, LLM settings
        - Synthesis: Speech provider, canonical pace, worker pool
        - Playlist: Inter-line silence and voice access tiers
        - Playback: Preloading, fades, channel volumes, pan oscillation
        - Logging: Log level and output
    """

    # ─────────────────────────────────────────────────────────────────────────
    # Database
    # ─────────────────────────────────────────────────────────────────────────
    DATABASE_URL = "sqlite:///./affirm.db"
    DATABASE_ECHO = False

    # ─────────────────────────────────────────────────────────────────────────
    # Storage (content-addressed audio artifacts)
    # ─────────────────────────────────────────────────────────────────────────
    STORAGE_BASE_DIR = "./storage"
    STORAGE_ROUTE_PREFIX = "/v1/audio"
    MIRROR_ENABLED = False
    MIRROR_BUCKET = "affirmations"
    MIRROR_TOKEN_ENV = "AFFIRM_MS_MIRROR_TOKEN"
    MIRROR_TIMEOUT_S = 20.0

    # ─────────────────────────────────────────────────────────────────────────
    # Content selection
    # ─────────────────────────────────────────────────────────────────────────
    SELECTION_DEFAULT_COUNT = 6
    SELECTION_MAX_COUNT = 10
    SELECTION_EXACT_THRESHOLD = 0.6     # Tier 1 keyword similarity
    SELECTION_POOL_CANDIDATES = 30      # Tier 2 shortlist size
    SELECTION_OVERLAP_WEIGHT = 1.0
    SELECTION_RATING_WEIGHT = 0.3
    SELECTION_DIVERSITY_PENALTY = 0.5
    SELECTION_MAX_WORDS = 12
    SELECTION_LLM_MODEL = "gpt-4o-mini"
    SELECTION_LLM_TEMPERATURE = 0.8
    SELECTION_LLM_TIMEOUT_S = 20.0

    # Estimated per-session cost by tier (USD)
    COST_EXACT = 0.0
    COST_POOLED = 0.10
    COST_GENERATED = 0.21
    COST_FALLBACK = 0.0

    # ─────────────────────────────────────────────────────────────────────────
    # Speech synthesis
    # ─────────────────────────────────────────────────────────────────────────
    SYNTHESIS_PROVIDER = "elevenlabs"
    SYNTHESIS_API_URL = "https://api.elevenlabs.io/v1"
    SYNTHESIS_MODEL_ID = "eleven_monolingual_v1"
    SYNTHESIS_TIMEOUT_S = 30.0
    SYNTHESIS_CANONICAL_PACE = "slow"
    SYNTHESIS_SPEED_MIN = 0.7           # Provider-accepted speed range
    SYNTHESIS_SPEED_MAX = 1.2
    SYNTHESIS_MAX_WORKERS = 4

    # ─────────────────────────────────────────────────────────────────────────
    # Playlist
    # ─────────────────────────────────────────────────────────────────────────
    PLAYLIST_SILENCE_BETWEEN_MS = 8000
    PLAYLIST_DEFAULT_VOICE = "neutral"
    PLAYLIST_FREE_VOICES = ("neutral", "confident")

    # ─────────────────────────────────────────────────────────────────────────
    # Playback (client)
    # ─────────────────────────────────────────────────────────────────────────
    PLAYBACK_PRIORITY_COUNT = 3
    PLAYBACK_BATCH_SIZE = 3
    PLAYBACK_MAX_RETRIES = 3
    PLAYBACK_BACKOFF_BASE_MS = 250
    PLAYBACK_BACKOFF_MAX_MS = 2000
    PLAYBACK_LINE_WAIT_TIMEOUT_MS = 4000
    PLAYBACK_FADE_IN_MS = 3000
    PLAYBACK_START_BUFFER_MS = 2000
    PLAYBACK_FADE_STEP_MS = 50
    PLAYBACK_VOLUME_AFFIRMATIONS = 100
    PLAYBACK_VOLUME_TONAL = 70
    PLAYBACK_VOLUME_NOISE = 50
    PLAYBACK_PAN_ENABLED = True
    PLAYBACK_PAN_DEPTH = 0.25
    PLAYBACK_PAN_CYCLE_MS = 25000

    # ─────────────────────────────────────────────────────────────────────────
    # Logging
    # ─────────────────────────────────────────────────────────────────────────
    LOGGING_LEVEL = 2                   # 1=MINIMAL, 2=NORMAL, 3=VERBOSE, 4=DEBUG
    LOGGING_TEXT_PREVIEW_CHARS = 60


DEFAULT_VOICE_IDS: Dict[str, str] = {
    "neutral": "ZqvIIuD5aI9JFejebHiH",
    "confident": "xGDJhCwcqw94ypljc95Z",
    "premium1": "qxTFXDYbGcR8GaHSjczg",
    "premium2": "BpjGufoPiobT79j2vtj4",
    "premium3": "eUdJpUEN3EslrgE24PKx",
    "premium4": "7JxUWWyYwXK8kmqmKEnT",
    "premium5": "wdymxIQkYn7MJCYCQF2Q",
    "premium6": "zA6D7RyKdc2EClouEMkQ",
    "premium7": "KGZeK6FsnWQdrkDHnDNA",
    "premium8": "wgHvco1wiREKN0BdyVx5",
}


@dataclass
class DatabaseConfig:
    """SQLAlchemy connection settings."""
    url: str = Defaults.DATABASE_URL
    echo: bool = Defaults.DATABASE_ECHO


@dataclass
class MirrorConfig:
    """
    Optional HTTP object-store mirror.

    When enabled, every stored artifact is also PUT to
    ``{upload_url}/{bucket}/{key}.{ext}`` and the public URL is used as the
    audio reference instead of the local route.
    """
    enabled: bool = Defaults.MIRROR_ENABLED
    upload_url: str = ""
    public_url: str = ""
    bucket: str = Defaults.MIRROR_BUCKET
    token_env: str = Defaults.MIRROR_TOKEN_ENV
    timeout_s: float = Defaults.MIRROR_TIMEOUT_S


@dataclass
class StorageConfig:
    """Local content-addressed artifact store."""
    base_dir: str = Defaults.STORAGE_BASE_DIR
    route_prefix: str = Defaults.STORAGE_ROUTE_PREFIX
    mirror: MirrorConfig = field(default_factory=MirrorConfig)


@dataclass
class SelectionConfig:
    """ContentSelector thresholds and ranking weights."""
    default_count: int = Defaults.SELECTION_DEFAULT_COUNT
    max_count: int = Defaults.SELECTION_MAX_COUNT
    exact_threshold: float = Defaults.SELECTION_EXACT_THRESHOLD
    pool_candidates: int = Defaults.SELECTION_POOL_CANDIDATES
    overlap_weight: float = Defaults.SELECTION_OVERLAP_WEIGHT
    rating_weight: float = Defaults.SELECTION_RATING_WEIGHT
    diversity_penalty: float = Defaults.SELECTION_DIVERSITY_PENALTY
    max_words: int = Defaults.SELECTION_MAX_WORDS
    llm_model: str = Defaults.SELECTION_LLM_MODEL
    llm_temperature: float = Defaults.SELECTION_LLM_TEMPERATURE
    llm_timeout_s: float = Defaults.SELECTION_LLM_TIMEOUT_S


@dataclass
class SynthesisConfig:
    """Speech provider and audio resolution settings."""
    provider: str = Defaults.SYNTHESIS_PROVIDER
    api_url: str = Defaults.SYNTHESIS_API_URL
    model_id: str = Defaults.SYNTHESIS_MODEL_ID
    timeout_s: float = Defaults.SYNTHESIS_TIMEOUT_S
    canonical_pace: str = Defaults.SYNTHESIS_CANONICAL_PACE
    speed_min: float = Defaults.SYNTHESIS_SPEED_MIN
    speed_max: float = Defaults.SYNTHESIS_SPEED_MAX
    max_workers: int = Defaults.SYNTHESIS_MAX_WORKERS
    voices: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_VOICE_IDS))


@dataclass
class PlaylistConfig:
    """Playlist assembly and voice access tiers."""
    silence_between_ms: int = Defaults.PLAYLIST_SILENCE_BETWEEN_MS
    default_voice: str = Defaults.PLAYLIST_DEFAULT_VOICE
    free_voices: List[str] = field(default_factory=lambda: list(Defaults.PLAYLIST_FREE_VOICES))


@dataclass
class PlaybackConfig:
    """
    Client playback configuration.

    Timing values are milliseconds. Volumes are 0..100. The first
    affirmation starts ``fade_in_ms + start_buffer_ms`` after start.
    """
    priority_count: int = Defaults.PLAYBACK_PRIORITY_COUNT
    batch_size: int = Defaults.PLAYBACK_BATCH_SIZE
    max_retries: int = Defaults.PLAYBACK_MAX_RETRIES
    backoff_base_ms: int = Defaults.PLAYBACK_BACKOFF_BASE_MS
    backoff_max_ms: int = Defaults.PLAYBACK_BACKOFF_MAX_MS
    line_wait_timeout_ms: int = Defaults.PLAYBACK_LINE_WAIT_TIMEOUT_MS
    fade_in_ms: int = Defaults.PLAYBACK_FADE_IN_MS
    start_buffer_ms: int = Defaults.PLAYBACK_START_BUFFER_MS
    fade_step_ms: int = Defaults.PLAYBACK_FADE_STEP_MS
    volume_affirmations: int = Defaults.PLAYBACK_VOLUME_AFFIRMATIONS
    volume_tonal: int = Defaults.PLAYBACK_VOLUME_TONAL
    volume_noise: int = Defaults.PLAYBACK_VOLUME_NOISE
    pan_enabled: bool = Defaults.PLAYBACK_PAN_ENABLED
    pan_depth: float = Defaults.PLAYBACK_PAN_DEPTH
    pan_cycle_ms: int = Defaults.PLAYBACK_PAN_CYCLE_MS

    @property
    def start_delay_ms(self) -> int:
        return self.fade_in_ms + self.start_buffer_ms


@dataclass
class LoggingConfig:
    """
    Logging configuration.

    Log levels:
        1 = MINIMAL: Startup, shutdown, critical errors only
        2 = NORMAL: Selections, cache status, playlist requests (default)
        3 = VERBOSE: Per-line timing, preload progress
        4 = DEBUG: Internal state
    """
    level: int = Defaults.LOGGING_LEVEL
    text_preview_chars: int = Defaults.LOGGING_TEXT_PREVIEW_CHARS


@dataclass
class ServiceConfig:
    """
    Validated configuration for the whole service.

    Usage:
        settings = load_settings("config/settings.yaml")
        config = ServiceConfig.from_settings(settings)
        print(config.selection.exact_threshold)
    """
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    selection: SelectionConfig = field(default_factory=SelectionConfig)
    synthesis: SynthesisConfig = field(default_factory=SynthesisConfig)
    playlist: PlaylistConfig = field(default_factory=PlaylistConfig)
    playback: PlaybackConfig = field(default_factory=PlaybackConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_settings(cls, settings: "Settings") -> "ServiceConfig":
        """
        Build a ServiceConfig from raw Settings, applying defaults and
        environment overrides, then validating every section.

        Raises:
            ConfigValidationError: If any value fails validation.
        """
        raw = settings.raw

        # ─────────────────────────────────────────────────────────────────────
        # Database
        # ─────────────────────────────────────────────────────────────────────
        db_raw = raw.get("database", {}) or {}
        database = DatabaseConfig(
            url=os.getenv("AFFIRM_MS_DATABASE_URL") or str(db_raw.get("url", Defaults.DATABASE_URL)),
            echo=bool(db_raw.get("echo", Defaults.DATABASE_ECHO)),
        )
        if not database.url:
            raise ConfigValidationError("database.url must not be empty")

        # ─────────────────────────────────────────────────────────────────────
        # Storage and mirror
        # ─────────────────────────────────────────────────────────────────────
        storage_raw = raw.get("storage", {}) or {}
        mirror_raw = raw.get("mirror", {}) or {}
        mirror = MirrorConfig(
            enabled=bool(mirror_raw.get("enabled", Defaults.MIRROR_ENABLED)),
            upload_url=str(mirror_raw.get("upload_url", "") or "").rstrip("/"),
            public_url=str(mirror_raw.get("public_url", "") or "").rstrip("/"),
            bucket=str(mirror_raw.get("bucket", Defaults.MIRROR_BUCKET)),
            token_env=str(mirror_raw.get("token_env", Defaults.MIRROR_TOKEN_ENV)),
            timeout_s=float(mirror_raw.get("timeout_s", Defaults.MIRROR_TIMEOUT_S)),
        )
        if mirror.enabled and not mirror.upload_url:
            raise ConfigValidationError("mirror.upload_url is required when mirror.enabled is true")
        cls._validate_positive("mirror.timeout_s", mirror.timeout_s)

        storage = StorageConfig(
            base_dir=os.getenv("AFFIRM_MS_STORAGE_DIR")
                or str(storage_raw.get("base_dir", Defaults.STORAGE_BASE_DIR)),
            route_prefix=str(storage_raw.get("route_prefix", Defaults.STORAGE_ROUTE_PREFIX)).rstrip("/"),
            mirror=mirror,
        )

        # ─────────────────────────────────────────────────────────────────────
        # Selection
        # ─────────────────────────────────────────────────────────────────────
        sel_raw = raw.get("selection", {}) or {}
        selection = SelectionConfig(
            default_count=int(sel_raw.get("default_count", Defaults.SELECTION_DEFAULT_COUNT)),
            max_count=int(sel_raw.get("max_count", Defaults.SELECTION_MAX_COUNT)),
            exact_threshold=float(sel_raw.get("exact_threshold", Defaults.SELECTION_EXACT_THRESHOLD)),
            pool_candidates=int(sel_raw.get("pool_candidates", Defaults.SELECTION_POOL_CANDIDATES)),
            overlap_weight=float(sel_raw.get("overlap_weight", Defaults.SELECTION_OVERLAP_WEIGHT)),
            rating_weight=float(sel_raw.get("rating_weight", Defaults.SELECTION_RATING_WEIGHT)),
            diversity_penalty=float(sel_raw.get("diversity_penalty", Defaults.SELECTION_DIVERSITY_PENALTY)),
            max_words=int(sel_raw.get("max_words", Defaults.SELECTION_MAX_WORDS)),
            llm_model=str(sel_raw.get("llm_model", Defaults.SELECTION_LLM_MODEL)),
            llm_temperature=float(sel_raw.get("llm_temperature", Defaults.SELECTION_LLM_TEMPERATURE)),
            llm_timeout_s=float(sel_raw.get("llm_timeout_s", Defaults.SELECTION_LLM_TIMEOUT_S)),
        )
        cls._validate_positive("selection.default_count", selection.default_count)
        cls._validate_positive("selection.max_count", selection.max_count)
        if selection.default_count > selection.max_count:
            raise ConfigValidationError(
                f"selection.default_count ({selection.default_count}) exceeds "
                f"selection.max_count ({selection.max_count})"
            )
        cls._validate_range("selection.exact_threshold", selection.exact_threshold, 0.0, 1.0)
        cls._validate_positive("selection.pool_candidates", selection.pool_candidates)
        cls._validate_non_negative("selection.overlap_weight", selection.overlap_weight)
        cls._validate_non_negative("selection.rating_weight", selection.rating_weight)
        cls._validate_non_negative("selection.diversity_penalty", selection.diversity_penalty)
        cls._validate_positive("selection.max_words", selection.max_words)
        cls._validate_range("selection.llm_temperature", selection.llm_temperature, 0.0, 2.0)

        # ─────────────────────────────────────────────────────────────────────
        # Synthesis
        # ─────────────────────────────────────────────────────────────────────
        syn_raw = raw.get("synthesis", {}) or {}
        voices = syn_raw.get("voices") or DEFAULT_VOICE_IDS
        synthesis = SynthesisConfig(
            provider=str(syn_raw.get("provider", Defaults.SYNTHESIS_PROVIDER)).lower(),
            api_url=str(syn_raw.get("api_url", Defaults.SYNTHESIS_API_URL)).rstrip("/"),
            model_id=str(syn_raw.get("model_id", Defaults.SYNTHESIS_MODEL_ID)),
            timeout_s=float(syn_raw.get("timeout_s", Defaults.SYNTHESIS_TIMEOUT_S)),
            canonical_pace=str(syn_raw.get("canonical_pace", Defaults.SYNTHESIS_CANONICAL_PACE)),
            speed_min=float(syn_raw.get("speed_min", Defaults.SYNTHESIS_SPEED_MIN)),
            speed_max=float(syn_raw.get("speed_max", Defaults.SYNTHESIS_SPEED_MAX)),
            max_workers=int(syn_raw.get("max_workers", Defaults.SYNTHESIS_MAX_WORKERS)),
            voices={str(k): str(v) for k, v in dict(voices).items()},
        )
        if synthesis.provider not in ("elevenlabs", "silence"):
            raise ConfigValidationError(
                f"synthesis.provider must be 'elevenlabs' or 'silence', got {synthesis.provider!r}"
            )
        cls._validate_positive("synthesis.timeout_s", synthesis.timeout_s)
        cls._validate_positive("synthesis.speed_min", synthesis.speed_min)
        if synthesis.speed_min > synthesis.speed_max:
            raise ConfigValidationError("synthesis.speed_min must not exceed synthesis.speed_max")
        cls._validate_positive("synthesis.max_workers", synthesis.max_workers)
        if not synthesis.voices:
            raise ConfigValidationError("synthesis.voices must define at least one voice")

        # ─────────────────────────────────────────────────────────────────────
        # Playlist
        # ─────────────────────────────────────────────────────────────────────
        pl_raw = raw.get("playlist", {}) or {}
        playlist = PlaylistConfig(
            silence_between_ms=int(pl_raw.get("silence_between_ms", Defaults.PLAYLIST_SILENCE_BETWEEN_MS)),
            default_voice=str(pl_raw.get("default_voice", Defaults.PLAYLIST_DEFAULT_VOICE)),
            free_voices=[str(v) for v in pl_raw.get("free_voices", Defaults.PLAYLIST_FREE_VOICES)],
        )
        cls._validate_non_negative("playlist.silence_between_ms", playlist.silence_between_ms)
        if playlist.default_voice not in synthesis.voices:
            raise ConfigValidationError(
                f"playlist.default_voice {playlist.default_voice!r} is not a configured voice"
            )

        # ─────────────────────────────────────────────────────────────────────
        # Playback
        # ─────────────────────────────────────────────────────────────────────
        pb_raw = raw.get("playback", {}) or {}
        vol_raw = pb_raw.get("volumes", {}) or {}
        pan_raw = pb_raw.get("pan", {}) or {}
        playback = PlaybackConfig(
            priority_count=int(pb_raw.get("priority_count", Defaults.PLAYBACK_PRIORITY_COUNT)),
            batch_size=int(pb_raw.get("batch_size", Defaults.PLAYBACK_BATCH_SIZE)),
            max_retries=int(pb_raw.get("max_retries", Defaults.PLAYBACK_MAX_RETRIES)),
            backoff_base_ms=int(pb_raw.get("backoff_base_ms", Defaults.PLAYBACK_BACKOFF_BASE_MS)),
            backoff_max_ms=int(pb_raw.get("backoff_max_ms", Defaults.PLAYBACK_BACKOFF_MAX_MS)),
            line_wait_timeout_ms=int(pb_raw.get("line_wait_timeout_ms", Defaults.PLAYBACK_LINE_WAIT_TIMEOUT_MS)),
            fade_in_ms=int(pb_raw.get("fade_in_ms", Defaults.PLAYBACK_FADE_IN_MS)),
            start_buffer_ms=int(pb_raw.get("start_buffer_ms", Defaults.PLAYBACK_START_BUFFER_MS)),
            fade_step_ms=int(pb_raw.get("fade_step_ms", Defaults.PLAYBACK_FADE_STEP_MS)),
            volume_affirmations=int(vol_raw.get("affirmations", Defaults.PLAYBACK_VOLUME_AFFIRMATIONS)),
            volume_tonal=int(vol_raw.get("tonal", Defaults.PLAYBACK_VOLUME_TONAL)),
            volume_noise=int(vol_raw.get("noise", Defaults.PLAYBACK_VOLUME_NOISE)),
            pan_enabled=bool(pan_raw.get("enabled", Defaults.PLAYBACK_PAN_ENABLED)),
            pan_depth=float(pan_raw.get("depth", Defaults.PLAYBACK_PAN_DEPTH)),
            pan_cycle_ms=int(pan_raw.get("cycle_ms", Defaults.PLAYBACK_PAN_CYCLE_MS)),
        )
        cls._validate_non_negative("playback.priority_count", playback.priority_count)
        cls._validate_positive("playback.batch_size", playback.batch_size)
        cls._validate_non_negative("playback.max_retries", playback.max_retries)
        cls._validate_positive("playback.backoff_base_ms", playback.backoff_base_ms)
        cls._validate_positive("playback.backoff_max_ms", playback.backoff_max_ms)
        cls._validate_positive("playback.line_wait_timeout_ms", playback.line_wait_timeout_ms)
        cls._validate_non_negative("playback.fade_in_ms", playback.fade_in_ms)
        cls._validate_non_negative("playback.start_buffer_ms", playback.start_buffer_ms)
        cls._validate_positive("playback.fade_step_ms", playback.fade_step_ms)
        cls._validate_range("playback.volumes.affirmations", playback.volume_affirmations, 0, 100)
        cls._validate_range("playback.volumes.tonal", playback.volume_tonal, 0, 100)
        cls._validate_range("playback.volumes.noise", playback.volume_noise, 0, 100)
        cls._validate_range("playback.pan.depth", playback.pan_depth, 0.0, 1.0)
        cls._validate_positive("playback.pan.cycle_ms", playback.pan_cycle_ms)

        # ─────────────────────────────────────────────────────────────────────
        # Logging
        # ─────────────────────────────────────────────────────────────────────
        log_raw = raw.get("logging", {}) or {}
        level_raw = os.getenv("AFFIRM_MS_LOG_LEVEL") or log_raw.get("level", Defaults.LOGGING_LEVEL)
        if isinstance(level_raw, str):
            level_map = {
                "MINIMAL": 1, "1": 1,
                "NORMAL": 2, "INFO": 2, "2": 2,
                "VERBOSE": 3, "3": 3,
                "DEBUG": 4, "TRACE": 4, "4": 4,
            }
            log_level = level_map.get(level_raw.strip().upper(), Defaults.LOGGING_LEVEL)
        else:
            log_level = int(level_raw)
        logging_cfg = LoggingConfig(
            level=log_level,
            text_preview_chars=int(log_raw.get("text_preview_chars", Defaults.LOGGING_TEXT_PREVIEW_CHARS)),
        )
        cls._validate_range("logging.level", logging_cfg.level, 1, 4)
        cls._validate_non_negative("logging.text_preview_chars", logging_cfg.text_preview_chars)

        return cls(
            database=database,
            storage=storage,
            selection=selection,
            synthesis=synthesis,
            playlist=playlist,
            playback=playback,
            logging=logging_cfg,
        )

    @staticmethod
    def _validate_positive(name: str, value: int | float) -> None:
        """Validate that a value is positive (> 0)."""
        if value <= 0:
            raise ConfigValidationError(f"{name} must be positive, got {value}")

    @staticmethod
    def _validate_non_negative(name: str, value: int | float) -> None:
        """Validate that a value is non-negative (>= 0)."""
        if value < 0:
            raise ConfigValidationError(f"{name} must be non-negative, got {value}")

    @staticmethod
    def _validate_range(name: str, value: int | float, min_val: int | float, max_val: int | float) -> None:
        """Validate that a value is within [min_val, max_val]."""
        if not (min_val <= value <= max_val):
            raise ConfigValidationError(f"{name} must be between {min_val} and {max_val}, got {value}")


@dataclass(frozen=True)
class Settings:
    """
    Immutable raw settings loaded from YAML.

    Use get_service_config() for the validated, typed view.
    """
    raw: Dict[str, Any]

    @property
    def openai_api_key(self) -> str:
        return os.getenv("OPENAI_API_KEY", "") or str(self.raw.get("selection", {}).get("openai_api_key", ""))

    @property
    def elevenlabs_api_key(self) -> str:
        return os.getenv("ELEVENLABS_API_KEY", "") or str(self.raw.get("synthesis", {}).get("api_key", ""))

    def get_service_config(self) -> ServiceConfig:
        """
        Get the validated ServiceConfig for these settings.

        Raises:
            ConfigValidationError: If validation fails.
        """
        return ServiceConfig.from_settings(self)


def settings_path() -> str:
    """Settings file location, overridable with AFFIRM_MS_SETTINGS."""
    return os.getenv("AFFIRM_MS_SETTINGS", "config/settings.yaml")


def load_settings(path: str | None = None) -> Settings:
    """
    Load settings from a YAML configuration file.

    Args:
        path: Path to the YAML file. Defaults to settings_path().

    Raises:
        FileNotFoundError: If the settings file doesn't exist.
    """
    p = Path(path or settings_path())
    if not p.exists():
        raise FileNotFoundError(f"settings file not found: {p.resolve()}")

    with p.open("r", encoding="utf-8") as f:
        raw: Dict[str, Any] = yaml.safe_load(f) or {}

    return Settings(raw=raw)
