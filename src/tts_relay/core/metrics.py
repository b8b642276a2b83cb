"""
Prometheus metrics for tts-relay.

Metrics Exposed:
    tts_requests_total              - Synthesis requests by status
    tts_request_duration_seconds    - Request latency by cache status
    tts_audio_bytes_total           - Audio bytes received from the backend
    tts_cache_hits_total            - Cache hits by tier (fast/durable)
    tts_cache_misses_total          - Cache misses
    tts_backend_sessions_total      - Backend websocket sessions by outcome
    tts_coalesced_requests_total    - Requests served by another request's session
    tts_inflight_syntheses          - Backend sessions currently open
    tts_swept_entries_total         - Entries removed by the age sweep

Usage:
    from tts_relay.core.metrics import metrics

    metrics.record_request("success", duration=0.4, cache_status="miss", audio_bytes=18432)
    metrics.record_cache("hit", tier="fast")
    content, content_type = metrics.get_metrics_response()
"""
from __future__ import annotations

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)


class TTSMetrics:
    """
    Metric collection on a private CollectorRegistry.

    A disabled instance accepts every call and records nothing.
    """

    def __init__(self, enabled: bool = True):
        self._enabled = enabled
        self._registry = CollectorRegistry()
        if self._enabled:
            self._setup_metrics()

    def _setup_metrics(self) -> None:
        self._requests_total = Counter(
            "tts_requests_total",
            "Total synthesis requests",
            ["status"],
            registry=self._registry,
        )
        self._request_duration = Histogram(
            "tts_request_duration_seconds",
            "Synthesis request duration in seconds",
            ["cache_status"],
            buckets=(0.005, 0.025, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
            registry=self._registry,
        )
        self._audio_bytes_total = Counter(
            "tts_audio_bytes_total",
            "Total audio bytes received from the backend",
            registry=self._registry,
        )
        self._cache_hits = Counter(
            "tts_cache_hits_total",
            "Total cache hits",
            ["tier"],
            registry=self._registry,
        )
        self._cache_misses = Counter(
            "tts_cache_misses_total",
            "Total cache misses",
            registry=self._registry,
        )
        self._backend_sessions = Counter(
            "tts_backend_sessions_total",
            "Backend websocket sessions",
            ["outcome"],
            registry=self._registry,
        )
        self._coalesced = Counter(
            "tts_coalesced_requests_total",
            "Requests that waited on an identical in-flight synthesis",
            registry=self._registry,
        )
        self._inflight = Gauge(
            "tts_inflight_syntheses",
            "Backend sessions currently open",
            registry=self._registry,
        )
        self._swept = Counter(
            "tts_swept_entries_total",
            "Cache entries removed by the age sweep",
            registry=self._registry,
        )

    @property
    def enabled(self) -> bool:
        return self._enabled

    def record_request(
        self,
        status: str,
        duration: float,
        cache_status: str = "miss",
        audio_bytes: int = 0,
    ) -> None:
        """
        Record a finished request.

        Args:
            status: "success" or "error"
            duration: Wall time in seconds
            cache_status: "fast", "durable" or "miss"
            audio_bytes: Bytes produced by the backend (0 for hits)
        """
        if not self._enabled:
            return

        self._requests_total.labels(status=status).inc()
        self._request_duration.labels(cache_status=cache_status).observe(duration)
        if audio_bytes > 0:
            self._audio_bytes_total.inc(audio_bytes)

    def record_cache(self, result: str, tier: str = "fast") -> None:
        if not self._enabled:
            return
        if result == "hit":
            self._cache_hits.labels(tier=tier).inc()
        else:
            self._cache_misses.inc()

    def record_backend_session(self, outcome: str) -> None:
        """outcome: "ok", "transport_error" or "protocol_error"."""
        if not self._enabled:
            return
        self._backend_sessions.labels(outcome=outcome).inc()

    def inc_coalesced(self) -> None:
        if not self._enabled:
            return
        self._coalesced.inc()

    def set_inflight(self, count: int) -> None:
        if not self._enabled:
            return
        self._inflight.set(count)

    def inc_swept(self, count: int) -> None:
        if not self._enabled or count <= 0:
            return
        self._swept.inc(count)

    def get_metrics_response(self) -> tuple[bytes, str]:
        """Prometheus exposition as (body, content_type)."""
        if not self._enabled:
            return (b"# metrics disabled\n", "text/plain; charset=utf-8")
        return (generate_latest(self._registry), CONTENT_TYPE_LATEST)


metrics = TTSMetrics()
