"""
Tests for configuration validation and defaults.

Tests cover:
- Defaults class values
- ServiceConfig.from_settings() - all sections
- ConfigValidationError on invalid values
- Environment overrides (database URL, storage dir, log level)
- load_settings() and the bundled config/settings.yaml
"""

import pytest

from affirm_ms.core.config import (
    DEFAULT_VOICE_IDS,
    ConfigValidationError,
    Defaults,
    ServiceConfig,
    Settings,
    load_settings,
)


class TestDefaults:
    """Tests for Defaults class values."""

    def test_selection_defaults(self):
        assert Defaults.SELECTION_DEFAULT_COUNT == 6
        assert Defaults.SELECTION_MAX_COUNT == 10
        assert Defaults.SELECTION_EXACT_THRESHOLD == 0.6
        assert Defaults.SELECTION_POOL_CANDIDATES == 30

    def test_tier_costs(self):
        assert Defaults.COST_EXACT == 0.0
        assert Defaults.COST_POOLED == 0.10
        assert Defaults.COST_GENERATED == 0.21

    def test_playback_defaults(self):
        assert Defaults.PLAYBACK_PRIORITY_COUNT == 3
        assert Defaults.PLAYBACK_FADE_IN_MS == 3000
        assert Defaults.PLAYBACK_START_BUFFER_MS == 2000
        assert Defaults.PLAYBACK_LINE_WAIT_TIMEOUT_MS == 4000

    def test_playlist_defaults(self):
        assert Defaults.PLAYLIST_SILENCE_BETWEEN_MS == 8000
        assert Defaults.PLAYLIST_DEFAULT_VOICE in DEFAULT_VOICE_IDS


class TestFromSettings:
    """Tests for ServiceConfig.from_settings()."""

    def test_empty_settings_use_defaults(self, monkeypatch):
        monkeypatch.delenv("AFFIRM_MS_DATABASE_URL", raising=False)
        monkeypatch.delenv("AFFIRM_MS_STORAGE_DIR", raising=False)
        monkeypatch.delenv("AFFIRM_MS_LOG_LEVEL", raising=False)
        cfg = ServiceConfig.from_settings(Settings(raw={}))

        assert cfg.database.url == Defaults.DATABASE_URL
        assert cfg.storage.base_dir == Defaults.STORAGE_BASE_DIR
        assert cfg.storage.mirror.enabled is False
        assert cfg.selection.default_count == 6
        assert cfg.synthesis.canonical_pace == "slow"
        assert cfg.synthesis.voices == DEFAULT_VOICE_IDS
        assert cfg.playlist.free_voices == ["neutral", "confident"]
        assert cfg.logging.level == 2

    def test_start_delay_is_fade_plus_buffer(self):
        cfg = ServiceConfig.from_settings(Settings(raw={
            "playback": {"fade_in_ms": 1000, "start_buffer_ms": 500},
        }))
        assert cfg.playback.start_delay_ms == 1500

    def test_nested_playback_sections(self):
        cfg = ServiceConfig.from_settings(Settings(raw={
            "playback": {
                "volumes": {"affirmations": 80, "tonal": 40, "noise": 10},
                "pan": {"enabled": False, "depth": 0.5, "cycle_ms": 1000},
            },
        }))
        assert (cfg.playback.volume_affirmations, cfg.playback.volume_tonal, cfg.playback.volume_noise) == (80, 40, 10)
        assert cfg.playback.pan_enabled is False
        assert cfg.playback.pan_depth == 0.5

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("AFFIRM_MS_DATABASE_URL", "sqlite://")
        monkeypatch.setenv("AFFIRM_MS_STORAGE_DIR", "/tmp/affirm-storage")
        monkeypatch.setenv("AFFIRM_MS_LOG_LEVEL", "DEBUG")
        cfg = ServiceConfig.from_settings(Settings(raw={"database": {"url": "sqlite:///ignored.db"}}))

        assert cfg.database.url == "sqlite://"
        assert cfg.storage.base_dir == "/tmp/affirm-storage"
        assert cfg.logging.level == 4


class TestValidation:
    """Invalid values raise ConfigValidationError."""

    @pytest.mark.parametrize("raw", [
        {"selection": {"default_count": 0}},
        {"selection": {"default_count": 12, "max_count": 10}},
        {"selection": {"exact_threshold": 1.5}},
        {"synthesis": {"provider": "espeak"}},
        {"synthesis": {"speed_min": 1.5, "speed_max": 1.2}},
        {"playlist": {"silence_between_ms": -1}},
        {"playlist": {"default_voice": "nobody"}},
        {"playback": {"volumes": {"noise": 150}}},
        {"playback": {"batch_size": 0}},
        {"mirror": {"enabled": True}},
        {"logging": {"level": 9}},
    ])
    def test_invalid_values_rejected(self, raw, monkeypatch):
        monkeypatch.delenv("AFFIRM_MS_LOG_LEVEL", raising=False)
        with pytest.raises(ConfigValidationError):
            ServiceConfig.from_settings(Settings(raw=raw))

    def test_string_log_level(self, monkeypatch):
        monkeypatch.delenv("AFFIRM_MS_LOG_LEVEL", raising=False)
        cfg = ServiceConfig.from_settings(Settings(raw={"logging": {"level": "verbose"}}))
        assert cfg.logging.level == 3


class TestSettings:
    def test_api_keys_from_env(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        monkeypatch.setenv("ELEVENLABS_API_KEY", "xi-test")
        s = Settings(raw={})
        assert s.openai_api_key == "sk-test"
        assert s.elevenlabs_api_key == "xi-test"

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_settings(str(tmp_path / "nope.yaml"))

    def test_settings_env_path(self, tmp_path, monkeypatch):
        path = tmp_path / "custom.yaml"
        path.write_text("selection:\n  default_count: 4\n", encoding="utf-8")
        monkeypatch.setenv("AFFIRM_MS_SETTINGS", str(path))
        s = load_settings()
        assert s.raw["selection"]["default_count"] == 4

    def test_bundled_settings_are_valid(self, monkeypatch):
        monkeypatch.delenv("AFFIRM_MS_LOG_LEVEL", raising=False)
        cfg = load_settings("config/settings.yaml").get_service_config()
        assert cfg.playlist.default_voice == "neutral"
        assert cfg.playback.priority_count == 3
        assert "premium1" in cfg.synthesis.voices
