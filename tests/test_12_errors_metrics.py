"""Tests for the error hierarchy and Prometheus metrics."""

import pytest
from prometheus_client.parser import text_string_to_metric_families

from affirm_ms.core.errors import (
    HTTP_STATUS,
    AffirmError,
    CacheIntegrityFailure,
    ErrorCode,
    GenerationUnavailable,
    InvalidInputError,
    NotFoundError,
    SelectionFailure,
    SynthesisFailure,
)
from affirm_ms.core.metrics import AffirmMetrics


def _samples(metrics: AffirmMetrics):
    body, _ = metrics.get_metrics_response()
    out = {}
    for family in text_string_to_metric_families(body.decode("utf-8")):
        for sample in family.samples:
            key = (sample.name, tuple(sorted(sample.labels.items())))
            out[key] = sample.value
    return out


class TestErrors:
    @pytest.mark.parametrize("cls,code,status", [
        (SelectionFailure, ErrorCode.SELECTION_FAILED, 500),
        (GenerationUnavailable, ErrorCode.GENERATION_UNAVAILABLE, 503),
        (SynthesisFailure, ErrorCode.SYNTHESIS_FAILED, 502),
        (CacheIntegrityFailure, ErrorCode.CACHE_INTEGRITY, 500),
        (InvalidInputError, ErrorCode.INVALID_INPUT, 400),
        (NotFoundError, ErrorCode.NOT_FOUND, 404),
    ])
    def test_codes_and_statuses(self, cls, code, status):
        err = cls("boom")
        assert isinstance(err, AffirmError)
        assert err.code == code
        assert HTTP_STATUS[err.code] == status

    def test_to_dict(self):
        err = InvalidInputError("unknown goal", details={"goal": "party"})
        assert err.to_dict() == {
            "ok": False,
            "error": "INVALID_INPUT",
            "message": "unknown goal",
            "details": {"goal": "party"},
        }

    def test_to_dict_without_details(self):
        assert "details" not in AffirmError("x").to_dict()
        assert AffirmError("x").code == ErrorCode.INTERNAL_ERROR

    def test_every_code_has_status(self):
        codes = [v for k, v in vars(ErrorCode).items() if k.isupper()]
        assert set(codes) == set(HTTP_STATUS)


class TestMetrics:
    def test_selection_and_cost(self):
        m = AffirmMetrics()
        m.record_selection("pooled", cost=0.10)
        m.record_selection("pooled", cost=0.10)
        m.record_selection("exact")

        s = _samples(m)
        assert s[("affirm_selections_total", (("tier", "pooled"),))] == 2
        assert s[("affirm_selections_total", (("tier", "exact"),))] == 1
        assert s[("affirm_selection_cost_usd_total", (("tier", "pooled"),))] == pytest.approx(0.2)
        assert ("affirm_selection_cost_usd_total", (("tier", "exact"),)) not in s

    def test_resolution_and_latency(self):
        m = AffirmMetrics()
        m.record_resolution("row")
        m.record_resolution("synth", seconds=1.5)

        s = _samples(m)
        assert s[("affirm_audio_resolutions_total", (("cache", "row"),))] == 1
        assert s[("affirm_audio_resolutions_total", (("cache", "synth"),))] == 1
        assert s[("affirm_synthesis_duration_seconds_count", ())] == 1
        assert s[("affirm_synthesis_duration_seconds_sum", ())] == pytest.approx(1.5)

    def test_failures_playlists_feedback(self):
        m = AffirmMetrics()
        m.record_synthesis_failure()
        m.record_integrity_failure()
        m.record_playlist(empty=True)
        m.record_feedback(5)

        s = _samples(m)
        assert s[("affirm_synthesis_failures_total", ())] == 1
        assert s[("affirm_cache_integrity_failures_total", ())] == 1
        assert s[("affirm_playlists_total", (("empty", "true"),))] == 1
        assert s[("affirm_feedback_total", (("rating", "5"),))] == 1

    def test_instances_do_not_share_registry(self):
        a, b = AffirmMetrics(), AffirmMetrics()
        a.record_selection("exact")
        assert ("affirm_selections_total", (("tier", "exact"),)) not in _samples(b)

    def test_content_type(self):
        _, content_type = AffirmMetrics().get_metrics_response()
        assert content_type.startswith("text/plain")
