"""
Tests for AffirmService, the end-to-end pipeline.

Uses a file-backed SQLite database and local storage under tmp_path, a
counting silence provider, and either no line generator (fallback lines)
or a FakeGenerator.
"""

import pytest

from affirm_ms.content.selector import TIER_EXACT, TIER_FALLBACK, TIER_POOLED
from affirm_ms.core.errors import InvalidInputError, NotFoundError
from affirm_ms.services.affirm_service import AffirmService, get_service, reset_service
from conftest import CountingProvider, FakeGenerator, make_settings


@pytest.fixture
def service(settings, provider):
    svc = AffirmService(settings, provider=provider)
    yield svc
    svc.close()


class TestCreateSession:
    def test_session_lines_voiced_and_playable(self, service, provider):
        result = service.create_session(goal="sleep", intention="racing thoughts", count=4)

        assert result.tier == TIER_FALLBACK
        assert len(result.lines) == 4
        assert [line.position for line in result.lines] == [0, 1, 2, 3]
        assert all(line.audio_url and line.error is None for line in result.lines)
        assert len(provider.calls) == 4

        manifest = service.get_playlist(result.session_id)
        assert [line.id for line in manifest.lines] == [line.id for line in result.lines]
        assert manifest.silence_between_ms == 8000
        assert manifest.total_duration_ms == sum(line.duration_ms + 8000 for line in result.lines)

    def test_second_session_reuses_audio(self, service, provider):
        service.create_session(goal="sleep", count=3)
        second = service.create_session(goal="sleep", count=3)

        assert len(provider.calls) == 3
        assert {line.cache for line in second.lines} == {"row"}

    def test_failed_line_reported_session_still_saved(self, tmp_path):
        from affirm_ms.content.defaults import FALLBACK_LINES

        provider = CountingProvider(fail_texts=[FALLBACK_LINES["calm"][1]])
        svc = AffirmService(make_settings(tmp_path), provider=provider)
        try:
            result = svc.create_session(goal="calm", count=3)
            assert result.failed_lines == 1
            assert result.lines[1].error == "SYNTHESIS_FAILED"
            assert result.lines[1].audio_url is None

            manifest = svc.get_playlist(result.session_id)
            assert len(manifest.lines) == 3
            assert manifest.lines[1].audio_url is None
        finally:
            svc.close()

    def test_unexpected_provider_error_reported_per_line(self, tmp_path):
        from affirm_ms.content.defaults import FALLBACK_LINES

        class DiskFullProvider(CountingProvider):
            def synthesize(self, text, voice_id, profile):
                if text == FALLBACK_LINES["calm"][0]:
                    raise OSError("disk full")
                return super().synthesize(text, voice_id, profile)

        svc = AffirmService(make_settings(tmp_path), provider=DiskFullProvider())
        try:
            result = svc.create_session(goal="calm", count=3)
            assert result.failed_lines == 1
            assert result.lines[0].error == "SYNTHESIS_FAILED"
            assert result.lines[2].audio_url is not None
        finally:
            svc.close()

    def test_disallowed_voice_uses_default(self, service):
        result = service.create_session(goal="focus", count=1, voice_id="premium3", tier="free")
        assert result.voice_id == "neutral"

    def test_pro_voice(self, service, provider):
        result = service.create_session(goal="focus", count=1, voice_id="premium3", tier="pro")
        assert result.voice_id == "premium3"
        assert provider.calls[0][1] == "premium3"

    def test_custom_silence(self, service):
        result = service.create_session(goal="calm", count=2, silence_between_ms=1500)
        manifest = service.get_playlist(result.session_id)
        assert [line.silence_after_ms for line in manifest.lines] == [1500, 1500]

    def test_negative_silence_rejected(self, service):
        with pytest.raises(InvalidInputError):
            service.create_session(goal="calm", count=2, silence_between_ms=-1)

    def test_generated_lines(self, settings, provider):
        generator = FakeGenerator(lines=["I close the laptop and breathe", "My evening belongs to me"])
        svc = AffirmService(settings, provider=provider, generator=generator)
        try:
            result = svc.create_session(goal="sleep", intention="work stress", count=2, is_first_session=True)
            assert result.tier == "generated"
            assert [line.text for line in result.lines] == [
                "I close the laptop and breathe",
                "My evening belongs to me",
            ]
        finally:
            svc.close()


class TestReplaceLines:
    def test_reorder(self, service):
        result = service.create_session(goal="sleep", count=3)
        ids = [line.id for line in result.lines]

        service.replace_session_lines(result.session_id, list(reversed(ids)))

        manifest = service.get_playlist(result.session_id)
        assert [line.id for line in manifest.lines] == list(reversed(ids))
        assert [line.position for line in manifest.lines] == [0, 1, 2]

    def test_unknown_session(self, service):
        with pytest.raises(NotFoundError):
            service.replace_session_lines("missing", ["x"])

    @pytest.mark.parametrize("ids", [[], ["dup", "dup"], ["nope"]])
    def test_invalid_ids(self, service, ids):
        result = service.create_session(goal="sleep", count=1)
        if ids == ["dup", "dup"]:
            ids = [result.lines[0].id, result.lines[0].id]
        with pytest.raises(InvalidInputError):
            service.replace_session_lines(result.session_id, ids)


class TestResolveAudio:
    def test_resolve_for_pool_line(self, service):
        line = service.repository.upsert_line("I am steady", "calm")
        res = service.resolve_audio(line.id, line.text, "confident", "calm", tier="free")
        assert res.cache == "synth"
        assert res.audio_url.startswith("/v1/audio/")

    def test_voice_not_in_tier(self, service):
        line = service.repository.upsert_line("I am steady", "calm")
        with pytest.raises(InvalidInputError):
            service.resolve_audio(line.id, line.text, "premium1", "calm", tier="free")

    def test_unknown_line(self, service):
        with pytest.raises(NotFoundError):
            service.resolve_audio("missing", "I am steady", "neutral", "calm")


class TestFeedback:
    def _pooled_session(self, service):
        for i in range(3):
            service.repository.upsert_line(f"I release work worry {i}", "sleep", tags=["work", f"w{i}"])
        result = service.create_session(goal="sleep", intention="can't stop thinking about work", count=3)
        assert result.tier == TIER_POOLED
        return result

    def test_positive_pooled_feedback(self, service):
        result = self._pooled_session(service)

        fb = service.record_feedback(result.session_id, 5)

        assert fb.updated and fb.tier == TIER_POOLED
        rows = service.repository.get_lines([line.id for line in result.lines])
        assert all(row.rating == pytest.approx(3.1) for row in rows)
        # One bump from selection, one from feedback
        assert {row.use_count for row in rows} == {2}

    def test_negative_pooled_feedback(self, service):
        result = self._pooled_session(service)
        service.record_feedback(result.session_id, 1)
        rows = service.repository.get_lines([line.id for line in result.lines])
        assert all(row.rating == pytest.approx(2.9) for row in rows)

    def test_neutral_rating_changes_nothing(self, service):
        result = self._pooled_session(service)
        service.record_feedback(result.session_id, 3, replayed=True)
        rows = service.repository.get_lines([line.id for line in result.lines])
        assert {row.rating for row in rows} == {None}
        log = service.repository.latest_log(result.session_id)
        assert log.was_rated and log.rating == 3 and log.was_replayed

    def test_exact_feedback_rates_template(self, service):
        service.seed_library()
        result = service.create_session(
            goal="sleep",
            intention="I want to release the day and welcome deep, restorative rest",
            count=6,
        )
        assert result.tier == TIER_EXACT

        service.record_feedback(result.session_id, 4)

        template = service.repository.templates_for_goal("sleep")[0]
        assert template.rating == pytest.approx(3.1)
        assert template.use_count == 2

    def test_fallback_feedback_recorded_only(self, service):
        result = service.create_session(goal="calm", count=2)
        fb = service.record_feedback(result.session_id, 5)
        assert fb.updated and fb.tier == TIER_FALLBACK
        rows = service.repository.get_lines([line.id for line in result.lines])
        assert {row.rating for row in rows} == {None}

    def test_unknown_session_not_updated(self, service):
        assert service.record_feedback("missing", 4).updated is False

    @pytest.mark.parametrize("rating", [0, 6])
    def test_rating_out_of_range(self, service, rating):
        with pytest.raises(InvalidInputError):
            service.record_feedback("any", rating)


class TestRepository:
    def test_line_rating_clamped_between_one_and_five(self, repository):
        low = repository.upsert_line("I am steady", "calm")
        high = repository.upsert_line("I am grounded", "calm")

        repository.adjust_line_rating([low.id], -5.0)
        repository.adjust_line_rating([high.id], 5.0)

        rows = {row.id: row for row in repository.get_lines([low.id, high.id])}
        assert rows[low.id].rating == 1.0
        assert rows[high.id].rating == 5.0

    def test_vanished_audio_version_raises_not_found(self, repository, monkeypatch):
        line = repository.upsert_line("I am steady", "calm")
        repository.upsert_audio_version(line.id, "neutral", "normal", "k1", "/v1/audio/k1", 1000)
        monkeypatch.setattr(repository, "get_audio_version", lambda *args: None)

        with pytest.raises(NotFoundError):
            repository.upsert_audio_version(line.id, "neutral", "normal", "k2", "/v1/audio/k2", 1000)


class TestSeedAndHealth:
    def test_seed_is_idempotent(self, service):
        first = service.seed_library()
        second = service.seed_library()

        assert first == {"lines": 40, "templates": 4}
        assert second == {"lines": 40, "templates": 0}
        assert service.repository.counts()["lines"] == 40

    def test_health(self, service):
        service.create_session(goal="calm", count=1)
        health = service.health()
        assert health["ok"] is True
        assert health["generator"] is False
        assert health["db"]["sessions"] == 1
        assert health["storage"]["artifacts"] == 1


class TestSingleton:
    def test_get_service_shared_until_reset(self, settings):
        try:
            a = get_service(settings)
            assert get_service(settings) is a
            reset_service()
            b = get_service(settings)
            assert b is not a
        finally:
            reset_service()
