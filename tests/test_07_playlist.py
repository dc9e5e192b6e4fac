"""
Tests for PlaylistAssembler and the manifest wire format.
"""

import pytest

from affirm_ms.audio.voices import VoiceAccess
from affirm_ms.core.config import DEFAULT_VOICE_IDS, PlaylistConfig
from affirm_ms.db.models import AffirmationLine
from affirm_ms.playlist.assembler import PlaylistAssembler, absolute_url
from affirm_ms.playlist.models import ManifestLine, PlaylistManifest


@pytest.fixture
def assembler(repository):
    access = VoiceAccess(list(DEFAULT_VOICE_IDS), ["neutral", "confident"], "neutral")
    return PlaylistAssembler(repository, access, PlaylistConfig())


def make_session(repository, texts, voice_id="neutral", silence=5000):
    lines = [repository.upsert_line(t, "sleep") for t in texts]
    session = repository.create_session(
        goal="sleep",
        intention="rest",
        voice_id=voice_id,
        pace="slow",
        silence_between_ms=silence,
        affirmation_ids=[line.id for line in lines],
    )
    return session, lines


def add_audio(repository, line, voice_id, duration_ms, pace="slow"):
    return repository.upsert_audio_version(
        affirmation_id=line.id,
        voice_id=voice_id,
        pace=pace,
        cache_key=f"{line.id}{voice_id}".ljust(64, "0")[:64],
        audio_url=f"/v1/audio/{line.id}-{voice_id}",
        duration_ms=duration_ms,
    )


class TestManifestTiming:
    def test_scenario_c_total_duration(self, repository, assembler):
        session, (a, b) = make_session(repository, ["I am calm", "I rest easily"])
        add_audio(repository, a, "neutral", 3000)
        add_audio(repository, b, "neutral", 2500)

        manifest = assembler.get_playlist(session.id)

        assert manifest.total_duration_ms == 15500
        assert [line.span_ms for line in manifest.lines] == [8000, 7500]

    def test_lines_in_position_order_without_gaps(self, repository, assembler):
        texts = ["I am calm", "I rest easily", "My breath is slow", "I am safe"]
        session, lines = make_session(repository, texts)
        for line in lines:
            add_audio(repository, line, "neutral", 1000)

        manifest = assembler.get_playlist(session.id)

        assert [line.position for line in manifest.lines] == [0, 1, 2, 3]
        assert [line.text for line in manifest.lines] == texts

    def test_reordered_lines_follow_new_positions(self, repository, assembler):
        session, lines = make_session(repository, ["I am calm", "I rest easily"])
        for line in lines:
            add_audio(repository, line, "neutral", 1000)
        repository.replace_session_lines(session.id, [lines[1].id, lines[0].id])

        manifest = assembler.get_playlist(session.id)
        assert [line.id for line in manifest.lines] == [lines[1].id, lines[0].id]

    def test_line_without_audio_kept_with_null_url(self, repository, assembler):
        session, (a, b) = make_session(repository, ["I am calm", "I rest easily"])
        add_audio(repository, a, "neutral", 3000)

        manifest = assembler.get_playlist(session.id)

        assert manifest.lines[1].audio_url is None
        assert manifest.lines[1].duration_ms == 0
        assert manifest.total_duration_ms == 3000 + 5000 + 5000


class TestVoicePreference:
    def test_requested_voice_used_when_allowed(self, repository, assembler):
        session, (a,) = make_session(repository, ["I am calm"])
        add_audio(repository, a, "neutral", 1000)
        add_audio(repository, a, "premium1", 1200)

        manifest = assembler.get_playlist(session.id, voice_id="premium1", tier="pro")
        assert manifest.lines[0].voice_id == "premium1"
        assert manifest.lines[0].duration_ms == 1200

    def test_disallowed_voice_falls_back_to_default(self, repository, assembler):
        session, (a,) = make_session(repository, ["I am calm"])
        add_audio(repository, a, "neutral", 1000)
        add_audio(repository, a, "premium1", 1200)

        manifest = assembler.get_playlist(session.id, voice_id="premium1", tier="free")
        assert manifest.lines[0].voice_id == "neutral"

    def test_any_allowed_voice_when_preferred_missing(self, repository, assembler):
        session, (a,) = make_session(repository, ["I am calm"])
        add_audio(repository, a, "premium2", 1500)
        add_audio(repository, a, "confident", 1100)

        manifest = assembler.get_playlist(session.id, tier="free")
        assert manifest.lines[0].voice_id == "confident"

    def test_other_pace_accepted_for_preferred_voice(self, repository, assembler):
        session, (a,) = make_session(repository, ["I am calm"])
        add_audio(repository, a, "neutral", 900, pace="normal")

        manifest = assembler.get_playlist(session.id)
        assert manifest.lines[0].duration_ms == 900

    def test_legacy_audio_used_last(self, repository, assembler):
        session, (a, b) = make_session(repository, ["I am calm", "I rest easily"])
        add_audio(repository, a, "neutral", 1000)
        with repository.db.session() as s:
            row = s.get(AffirmationLine, b.id)
            row.legacy_audio_url = "https://cdn.example/legacy.mp3"
            row.legacy_duration_ms = 2100

        manifest = assembler.get_playlist(session.id)
        assert manifest.lines[1].audio_url == "https://cdn.example/legacy.mp3"
        assert manifest.lines[1].duration_ms == 2100
        assert manifest.lines[1].voice_id is None


class TestEmptyManifests:
    def test_unknown_session(self, assembler):
        manifest = assembler.get_playlist("does-not-exist")
        assert manifest.is_empty
        assert manifest.total_duration_ms == 0
        assert manifest.silence_between_ms == 8000

    def test_default_session(self, assembler):
        assert assembler.get_playlist("default-sleep").is_empty

    def test_session_without_any_audio(self, repository, assembler):
        session, _ = make_session(repository, ["I am calm"])
        manifest = assembler.get_playlist(session.id)
        assert manifest.is_empty
        assert manifest.silence_between_ms == 5000


class TestUrls:
    def test_relative_urls_made_absolute(self, repository, assembler):
        session, (a,) = make_session(repository, ["I am calm"])
        add_audio(repository, a, "neutral", 1000)

        manifest = assembler.get_playlist(session.id, base_url="http://testserver/")
        assert manifest.lines[0].audio_url.startswith("http://testserver/v1/audio/")

    @pytest.mark.parametrize("url,expected", [
        ("/v1/audio/abc", "http://host/v1/audio/abc"),
        ("https://cdn.example/a.mp3", "https://cdn.example/a.mp3"),
        (None, None),
    ])
    def test_absolute_url(self, url, expected):
        assert absolute_url(url, "http://host") == expected


class TestWireFormat:
    def test_to_dict_uses_camel_case(self):
        manifest = PlaylistManifest(
            session_id="s1",
            silence_between_ms=5000,
            lines=[ManifestLine("a", "I am calm", "/v1/audio/x", 3000, 5000, 0, "neutral")],
        )
        data = manifest.to_dict()
        assert data["sessionId"] == "s1"
        assert data["totalDurationMs"] == 8000
        assert data["affirmations"][0]["audioUrl"] == "/v1/audio/x"
        assert data["affirmations"][0]["silenceAfterMs"] == 5000

    def test_from_dict_tolerates_missing_fields(self):
        manifest = PlaylistManifest.from_dict({
            "sessionId": "s1",
            "affirmations": [{"id": "a", "durationMs": 1000}, {"id": "b", "audioUrl": ""}],
        })
        assert manifest.lines[0].silence_after_ms == 0
        assert manifest.lines[1].audio_url is None
        assert manifest.lines[1].position == 1
