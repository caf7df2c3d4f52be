"""Metrics helpers: structured log lines with optional Prometheus export."""

from __future__ import annotations

import logging
import re
import time
from contextlib import contextmanager
from typing import Any

try:  # pragma: no cover - optional dependency
    from prometheus_client import (
        CollectorRegistry,
        Counter as PromCounter,
        Histogram as PromHistogram,
        CONTENT_TYPE_LATEST,
        generate_latest,
    )

    _PROMETHEUS_AVAILABLE = True
except Exception:  # pragma: no cover - dependency missing
    CollectorRegistry = None  # type: ignore[assignment]
    PromCounter = None  # type: ignore[assignment]
    PromHistogram = None  # type: ignore[assignment]
    CONTENT_TYPE_LATEST = "text/plain; version=0.0.4; charset=utf-8"
    _PROMETHEUS_AVAILABLE = False
    generate_latest = None  # type: ignore[assignment]


_PROM_NAME_RE = re.compile(r"[^a-zA-Z0-9_]")

_MetricKey = tuple[str, tuple[str, ...]]


class MetricsRecorder:
    """Record pipeline counters and timings.

    Every sample is written to the ``wayfinder.metrics`` logger as a single
    ``namespace.metric key=value`` line. When Prometheus export is enabled the
    same samples also feed counters and histograms in a private registry.
    """

    def __init__(
        self,
        *,
        enabled: bool = True,
        namespace: str = "wayfinder",
        logger: logging.Logger | None = None,
        prometheus_enabled: bool = False,
        registry: Any | None = None,
    ) -> None:
        self._enabled = enabled
        self._namespace = namespace.strip() or "wayfinder"
        self._logger = logger or logging.getLogger("wayfinder.metrics")
        self._prometheus_enabled = bool(prometheus_enabled and _PROMETHEUS_AVAILABLE)
        if registry is None and self._prometheus_enabled:
            registry = CollectorRegistry()
        self._registry = registry
        self._counters: dict[_MetricKey, Any] = {}
        self._histograms: dict[_MetricKey, Any] = {}

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def prometheus_enabled(self) -> bool:
        return self._prometheus_enabled and self._registry is not None

    @property
    def prometheus_content_type(self) -> str:
        return CONTENT_TYPE_LATEST

    def render_prometheus(self) -> bytes:
        if not self.prometheus_enabled:
            raise RuntimeError("Prometheus export is disabled")
        return generate_latest(self._registry)

    def increment(self, metric: str, *, value: int = 1, **tags: Any) -> None:
        """Increment a counter metric."""

        if not self._enabled:
            return
        clean_tags = _drop_none(tags)
        self._emit(metric, {"value": int(value)}, clean_tags)
        if self.prometheus_enabled:
            counter = self._metric(self._counters, PromCounter, metric, clean_tags, "counter")
            counter.labels(**self._label_values(clean_tags)).inc(max(int(value), 0))

    def record_timing(self, metric: str, duration_seconds: float, **tags: Any) -> None:
        """Emit a timing metric; logs carry milliseconds, Prometheus seconds."""

        if not self._enabled:
            return
        clean_tags = _drop_none(tags)
        duration = max(duration_seconds, 0.0)
        self._emit(metric, {"duration_ms": round(duration * 1000.0, 4)}, clean_tags)
        if self.prometheus_enabled:
            histogram = self._metric(self._histograms, PromHistogram, metric, clean_tags, "duration")
            histogram.labels(**self._label_values(clean_tags)).observe(duration)

    @contextmanager
    def track_timing(self, metric: str, **tags: Any):
        """Context manager that records execution time for the wrapped block."""

        if not self._enabled:
            yield
            return
        start = time.perf_counter()
        try:
            yield
        finally:
            self.record_timing(metric, time.perf_counter() - start, **tags)

    def _emit(self, metric: str, fields: dict[str, Any], tags: dict[str, Any]) -> None:
        parts = [f"{key}={_stringify(value)}" for key, value in sorted(fields.items())]
        parts.extend(f"{key}={_stringify(value)}" for key, value in sorted(tags.items()))
        message = f"{self._namespace}.{metric}"
        if parts:
            message = f"{message} {' '.join(parts)}"
        self._logger.info(message)

    def _metric(self, cache: dict, factory, metric: str, tags: dict[str, Any], kind: str):
        label_names = tuple(_sanitize_label(name) for name in sorted(tags))
        key = (metric, label_names)
        instrument = cache.get(key)
        if instrument is None:
            instrument = factory(
                self._prom_metric_name(metric),
                f"{metric} {kind}",
                labelnames=list(label_names),
                registry=self._registry,
            )
            cache[key] = instrument
        return instrument

    @staticmethod
    def _label_values(tags: dict[str, Any]) -> dict[str, str]:
        return {_sanitize_label(key): _stringify(value) for key, value in tags.items()}

    def _prom_metric_name(self, metric: str) -> str:
        cleaned = _PROM_NAME_RE.sub("_", metric)
        return f"{_PROM_NAME_RE.sub('_', self._namespace)}_{cleaned}".strip("_")


def _drop_none(tags: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in tags.items() if value is not None}


def _sanitize_label(label: str) -> str:
    return _PROM_NAME_RE.sub("_", label) or "label"


def _stringify(value: Any) -> str:
    if isinstance(value, float):
        return f"{int(value)}" if value.is_integer() else f"{value:.4f}"
    return str(value)
