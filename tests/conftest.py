"""Shared fixtures and fakes for the affirm-ms test suite."""
from __future__ import annotations

import os
from typing import List, Sequence

import pytest

from affirm_ms.audio.providers import SilenceProvider, SpeechAudio, SpeechProvider
from affirm_ms.audio.voices import VoiceProfile
from affirm_ms.content.generator import LineGenerator
from affirm_ms.core.config import Settings
from affirm_ms.core.errors import GenerationUnavailable, SynthesisFailure
from affirm_ms.db.database import Database
from affirm_ms.db.repository import AffirmationRepository

# Keep test runs away from real collaborators
os.environ.pop("OPENAI_API_KEY", None)
os.environ.pop("ELEVENLABS_API_KEY", None)


class FakeGenerator(LineGenerator):
    """Returns canned lines; records every call."""

    def __init__(self, lines: Sequence[str] = (), themes: Sequence[str] = (), fail: bool = False):
        self.lines = list(lines)
        self.themes = list(themes)
        self.fail = fail
        self.generate_calls: List[tuple] = []

    def generate(self, goal, intention, count, themes):
        self.generate_calls.append((goal, intention, count, list(themes)))
        if self.fail:
            raise GenerationUnavailable("generator offline")
        return list(self.lines)

    def extract_themes(self, intention):
        if self.fail:
            raise GenerationUnavailable("generator offline")
        return list(self.themes)


class CountingProvider(SpeechProvider):
    """Silence provider that counts calls and can fail for chosen texts."""

    name = "counting"

    def __init__(self, fail_texts: Sequence[str] = ()):
        self._inner = SilenceProvider(sample_rate=8000)
        self.calls: List[tuple] = []
        self.fail_texts = set(fail_texts)

    def synthesize(self, text: str, voice_id: str, profile: VoiceProfile) -> SpeechAudio:
        self.calls.append((text, voice_id, profile))
        if text in self.fail_texts:
            raise SynthesisFailure("provider rejected text", {"voice_id": voice_id})
        return self._inner.synthesize(text, voice_id, profile)


def make_settings(tmp_path, **sections) -> Settings:
    raw = {
        "database": {"url": f"sqlite:///{tmp_path / 'affirm.db'}"},
        "storage": {"base_dir": str(tmp_path / "storage")},
        "synthesis": {"provider": "silence", "max_workers": 2},
        "logging": {"level": 1},
    }
    for name, values in sections.items():
        raw.setdefault(name, {}).update(values)
    return Settings(raw=raw)


@pytest.fixture
def settings(tmp_path):
    return make_settings(tmp_path)


@pytest.fixture
def repository():
    db = Database("sqlite://")
    db.create_all()
    yield AffirmationRepository(db)
    db.dispose()


@pytest.fixture
def file_repository(tmp_path):
    """File-backed repository for tests that write from worker threads."""
    db = Database(f"sqlite:///{tmp_path / 'threads.db'}")
    db.create_all()
    yield AffirmationRepository(db)
    db.dispose()


@pytest.fixture
def provider():
    return CountingProvider()
