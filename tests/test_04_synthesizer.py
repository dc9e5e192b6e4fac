"""
Tests for AudioSynthesizer resolution order.

Resolution is row -> artifact -> synth. The provider must be called at
most once per distinct cache key, a missing artifact behind a row is
regenerated, and provider failures surface as SynthesisFailure.
"""

import pytest

from affirm_ms.audio.cache import ArtifactStore
from affirm_ms.audio.synthesizer import (
    CACHE_ARTIFACT,
    CACHE_ROW,
    CACHE_SYNTH,
    AudioSynthesizer,
    ResolveRequest,
)
from affirm_ms.core.config import SynthesisConfig
from affirm_ms.core.errors import InvalidInputError, SynthesisFailure
from conftest import CountingProvider


@pytest.fixture
def store(tmp_path):
    return ArtifactStore(str(tmp_path / "audio"))


@pytest.fixture
def synthesizer(repository, store, provider):
    return AudioSynthesizer(repository, store, provider, SynthesisConfig(max_workers=2))


def test_first_call_synthesizes_then_row_hit(synthesizer, repository, provider):
    line = repository.upsert_line("I am calm", "sleep")

    first = synthesizer.resolve_audio(line.id, line.text, "neutral", "sleep")
    second = synthesizer.resolve_audio(line.id, line.text, "neutral", "sleep")

    assert first.cache == CACHE_SYNTH
    assert second.cache == CACHE_ROW
    assert len(provider.calls) == 1
    assert first.audio_url == second.audio_url == f"/v1/audio/{first.cache_key}"
    assert first.duration_ms == second.duration_ms


def test_duration_probed_from_audio(synthesizer, repository):
    """Three words at the clamped sleep speed of 0.7."""
    line = repository.upsert_line("I am calm", "sleep")
    res = synthesizer.resolve_audio(line.id, line.text, "neutral", "sleep")
    assert res.duration_ms == int(3 * 380 / 0.7)


def test_goal_profile_passed_to_provider(synthesizer, repository, provider):
    line = repository.upsert_line("I am focused", "focus")
    synthesizer.resolve_audio(line.id, line.text, "confident", "focus")
    _, voice_id, profile = provider.calls[0]
    assert voice_id == "confident"
    assert profile.speed == pytest.approx(0.7)
    assert profile.stability == pytest.approx(0.72)


def test_existing_artifact_reused_for_another_line(synthesizer, repository, provider):
    a = repository.upsert_line("I am calm", "sleep")
    b = repository.upsert_line("I rest easily", "sleep")

    first = synthesizer.resolve_audio(a.id, "I am calm", "neutral", "sleep")
    # Same spoken text under another line id: the key already has an artifact
    other = synthesizer.resolve_audio(b.id, "I am calm", "neutral", "sleep")

    assert other.cache == CACHE_ARTIFACT
    assert other.cache_key == first.cache_key
    assert len(provider.calls) == 1
    # The row was written, so the next call is a row hit
    assert synthesizer.resolve_audio(b.id, "I am calm", "neutral", "sleep").cache == CACHE_ROW


def test_missing_artifact_is_regenerated(synthesizer, repository, store, provider):
    line = repository.upsert_line("I am calm", "sleep")
    first = synthesizer.resolve_audio(line.id, line.text, "neutral", "sleep")
    store.find(first.cache_key).path.unlink()

    again = synthesizer.resolve_audio(line.id, line.text, "neutral", "sleep")

    assert again.cache == CACHE_SYNTH
    assert len(provider.calls) == 2
    assert store.exists(first.cache_key)


def test_changed_pace_is_a_new_rendition(synthesizer, repository, provider):
    line = repository.upsert_line("I am calm", "sleep")
    slow = synthesizer.resolve_audio(line.id, line.text, "neutral", "sleep")
    normal = synthesizer.resolve_audio(line.id, line.text, "neutral", "sleep", pace="normal")

    assert normal.cache == CACHE_SYNTH
    assert normal.cache_key != slow.cache_key
    # One row per (line, voice): the row now points at the newer rendition
    assert repository.get_audio_version(line.id, "neutral").cache_key == normal.cache_key


def test_provider_failure_raises(repository, store):
    provider = CountingProvider(fail_texts=["I am calm"])
    synthesizer = AudioSynthesizer(repository, store, provider, SynthesisConfig())
    line = repository.upsert_line("I am calm", "sleep")

    with pytest.raises(SynthesisFailure):
        synthesizer.resolve_audio(line.id, line.text, "neutral", "sleep")
    assert repository.get_audio_version(line.id, "neutral") is None


def test_unknown_voice_rejected(synthesizer, repository, provider):
    line = repository.upsert_line("I am calm", "sleep")
    with pytest.raises(InvalidInputError):
        synthesizer.resolve_audio(line.id, line.text, "robot", "sleep")
    assert provider.calls == []


def test_empty_text_rejected(synthesizer, repository):
    line = repository.upsert_line("I am calm", "sleep")
    with pytest.raises(InvalidInputError):
        synthesizer.resolve_audio(line.id, "   ", "neutral", "sleep")


def test_resolve_many_keeps_order_and_reports_failures(file_repository, store):
    provider = CountingProvider(fail_texts=["I rest easily"])
    synthesizer = AudioSynthesizer(file_repository, store, provider, SynthesisConfig(max_workers=3))
    texts = ["I am calm", "I rest easily", "My breath is slow"]
    lines = [file_repository.upsert_line(t, "sleep") for t in texts]

    results = synthesizer.resolve_many(
        [ResolveRequest(line.id, line.text, "neutral", "sleep") for line in lines]
    )

    assert [getattr(r, "affirmation_id", None) for r in results] == [lines[0].id, None, lines[2].id]
    assert isinstance(results[1], SynthesisFailure)
    assert results[0].cache == CACHE_SYNTH


def test_resolve_many_empty(synthesizer):
    assert synthesizer.resolve_many([]) == []


class BrokenDiskProvider(CountingProvider):
    def synthesize(self, text, voice_id, profile):
        if text == "I rest easily":
            raise OSError("disk full")
        return super().synthesize(text, voice_id, profile)


def test_resolve_many_turns_unexpected_errors_into_failures(file_repository, store):
    synthesizer = AudioSynthesizer(file_repository, store, BrokenDiskProvider(), SynthesisConfig(max_workers=3))
    texts = ["I am calm", "I rest easily", "My breath is slow"]
    lines = [file_repository.upsert_line(t, "sleep") for t in texts]

    results = synthesizer.resolve_many(
        [ResolveRequest(line.id, line.text, "neutral", "sleep") for line in lines]
    )

    assert isinstance(results[1], SynthesisFailure)
    assert "disk full" in results[1].message
    assert results[1].details["affirmation_id"] == lines[1].id
    assert results[0].cache == CACHE_SYNTH
    assert results[2].affirmation_id == lines[2].id
