"""
Prometheus Metrics for kokoro-pipe.

Metrics Exposed:
    kokoro_jobs_enqueued_total          - Jobs accepted by the engine
    kokoro_jobs_finished_total          - Jobs reaching a terminal state, by state
    kokoro_steps_total                  - Job steps executed, by outcome
    kokoro_callback_errors_total        - Step callbacks that raised
    kokoro_queue_depth                  - Jobs waiting for the dispatcher
    kokoro_inference_duration_seconds   - Backend inference latency
    kokoro_phonemize_duration_seconds   - External phonemizer latency

All collectors live in a private CollectorRegistry so several engines (or
test runs) in one process never collide with the default registry.

Usage:
    from kokoro_pipe.core.metrics import metrics

    metrics.record_step("delivered", seconds=0.4)
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


class PipelineMetrics:
    """Counters, gauges and histograms for the text pipeline and engine."""

    def __init__(self, enabled: bool = True):
        self._enabled = enabled
        self._registry = CollectorRegistry()

        self._jobs_enqueued = Counter(
            "kokoro_jobs_enqueued_total",
            "Jobs accepted by the engine",
            registry=self._registry,
        )
        self._jobs_finished = Counter(
            "kokoro_jobs_finished_total",
            "Jobs reaching a terminal state",
            ["state"],
            registry=self._registry,
        )
        self._steps = Counter(
            "kokoro_steps_total",
            "Job steps executed by the dispatcher",
            ["outcome"],
            registry=self._registry,
        )
        self._callback_errors = Counter(
            "kokoro_callback_errors_total",
            "Step completion callbacks that raised",
            registry=self._registry,
        )
        self._queue_depth = Gauge(
            "kokoro_queue_depth",
            "Jobs waiting for the dispatcher",
            registry=self._registry,
        )
        self._inference_duration = Histogram(
            "kokoro_inference_duration_seconds",
            "Inference backend latency per step",
            buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
            registry=self._registry,
        )
        self._phonemize_duration = Histogram(
            "kokoro_phonemize_duration_seconds",
            "External phonemizer latency per call",
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 1.0),
            registry=self._registry,
        )

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def registry(self) -> CollectorRegistry:
        return self._registry

    def record_enqueued(self, queue_depth: int) -> None:
        if not self._enabled:
            return
        self._jobs_enqueued.inc()
        self._queue_depth.set(queue_depth)

    def record_finished(self, state: str) -> None:
        if not self._enabled:
            return
        self._jobs_finished.labels(state=state).inc()

    def record_step(self, outcome: str, seconds: float | None = None) -> None:
        """
        Record one executed step.

        Args:
            outcome: "delivered", "discarded" (canceled mid-inference) or "failed".
            seconds: Inference latency, when the backend call completed.
        """
        if not self._enabled:
            return
        self._steps.labels(outcome=outcome).inc()
        if seconds is not None:
            self._inference_duration.observe(seconds)

    def record_callback_error(self) -> None:
        if not self._enabled:
            return
        self._callback_errors.inc()

    def set_queue_depth(self, depth: int) -> None:
        if not self._enabled:
            return
        self._queue_depth.set(depth)

    def observe_phonemize(self, seconds: float) -> None:
        if not self._enabled:
            return
        self._phonemize_duration.observe(seconds)

    def get_metrics_response(self) -> tuple[bytes, str]:
        """Prometheus exposition text and its content type."""
        if not self._enabled:
            return b"# metrics disabled\n", "text/plain; charset=utf-8"
        return generate_latest(self._registry), CONTENT_TYPE_LATEST


# Process-wide instance used by the engine and the phonemizer.
metrics = PipelineMetrics()
