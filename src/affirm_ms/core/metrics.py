"""
Prometheus metrics for affirm-ms.

Metrics Exposed:
    affirm_selections_total{tier}              selections served per tier
    affirm_selection_cost_usd_total{tier}      estimated spend per tier
    affirm_audio_resolutions_total{cache}      audio resolutions by cache status
    affirm_synthesis_failures_total            per-line synthesis failures
    affirm_cache_integrity_failures_total      rows pointing at missing artifacts
    affirm_synthesis_duration_seconds          provider call latency
    affirm_playlists_total{empty}              playlist manifests served
    affirm_feedback_total{rating}              feedback submissions

Usage:
    from affirm_ms.core.metrics import metrics

    metrics.record_selection("pooled", cost=0.10)
    metrics.record_resolution("synth", seconds=1.2)
    content, content_type = metrics.get_metrics_response()
"""
from __future__ import annotations

from typing import Optional

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)


class AffirmMetrics:
    """
    Metric collection on a private CollectorRegistry.

    The registry is private so that several instances (tests, embedded
    apps) never collide on metric names. Prometheus client operations are
    thread-safe.
    """

    def __init__(self) -> None:
        self._registry = CollectorRegistry()

        self._selections = Counter(
            "affirm_selections_total",
            "Selections served",
            ["tier"],
            registry=self._registry,
        )
        self._selection_cost = Counter(
            "affirm_selection_cost_usd_total",
            "Estimated selection spend in USD",
            ["tier"],
            registry=self._registry,
        )
        self._resolutions = Counter(
            "affirm_audio_resolutions_total",
            "Audio resolutions by cache status",
            ["cache"],
            registry=self._registry,
        )
        self._synthesis_failures = Counter(
            "affirm_synthesis_failures_total",
            "Per-line synthesis failures",
            registry=self._registry,
        )
        self._integrity_failures = Counter(
            "affirm_cache_integrity_failures_total",
            "Audio rows whose artifact was missing",
            registry=self._registry,
        )
        self._synthesis_duration = Histogram(
            "affirm_synthesis_duration_seconds",
            "Speech provider latency in seconds",
            buckets=(0.25, 0.5, 1.0, 2.0, 4.0, 8.0, 16.0, 32.0),
            registry=self._registry,
        )
        self._playlists = Counter(
            "affirm_playlists_total",
            "Playlist manifests served",
            ["empty"],
            registry=self._registry,
        )
        self._feedback = Counter(
            "affirm_feedback_total",
            "Feedback submissions",
            ["rating"],
            registry=self._registry,
        )

    @property
    def registry(self) -> CollectorRegistry:
        return self._registry

    def record_selection(self, tier: str, cost: float = 0.0) -> None:
        self._selections.labels(tier=tier).inc()
        if cost > 0:
            self._selection_cost.labels(tier=tier).inc(cost)

    def record_resolution(self, cache: str, seconds: Optional[float] = None) -> None:
        self._resolutions.labels(cache=cache).inc()
        if seconds is not None:
            self._synthesis_duration.observe(seconds)

    def record_synthesis_failure(self) -> None:
        self._synthesis_failures.inc()

    def record_integrity_failure(self) -> None:
        self._integrity_failures.inc()

    def record_playlist(self, empty: bool) -> None:
        self._playlists.labels(empty="true" if empty else "false").inc()

    def record_feedback(self, rating: int) -> None:
        self._feedback.labels(rating=str(rating)).inc()

    def get_metrics_response(self) -> tuple[bytes, str]:
        """Prometheus exposition body and content type for /metrics."""
        return generate_latest(self._registry), CONTENT_TYPE_LATEST


metrics = AffirmMetrics()
