import io
import logging

import pytest

from wayfinder.observability import MetricsRecorder


def _capture_logger_output(logger_name: str):
    logger = logging.getLogger(logger_name)
    buffer = io.StringIO()
    handler = logging.StreamHandler(buffer)
    handler.setLevel(logging.INFO)
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    return logger, handler, buffer


def test_metrics_recorder_logs_when_enabled() -> None:
    metrics = MetricsRecorder(enabled=True, namespace="wayfinder.test")
    logger, handler, buffer = _capture_logger_output("wayfinder.metrics")

    try:
        metrics.increment("retrieval.pages", value=4)
        metrics.record_timing("fetch.duration", 0.25, outcome="success")
    finally:
        logger.removeHandler(handler)

    output = buffer.getvalue()
    assert "wayfinder.test.retrieval.pages value=4" in output
    assert "wayfinder.test.fetch.duration duration_ms=250 outcome=success" in output


def test_metrics_recorder_disabled_suppresses_logs(caplog) -> None:
    metrics = MetricsRecorder(enabled=False)

    with caplog.at_level(logging.INFO, logger="wayfinder.metrics"):
        metrics.increment("fetch.retries")
        with metrics.track_timing("web_search.retrieval", top=3):
            pass

    assert not caplog.records


def test_none_tags_are_dropped() -> None:
    metrics = MetricsRecorder()
    logger, handler, buffer = _capture_logger_output("wayfinder.metrics")

    try:
        metrics.increment("knowledge.searches", tier=None)
    finally:
        logger.removeHandler(handler)

    assert buffer.getvalue().strip() == "wayfinder.knowledge.searches value=1"


def test_prometheus_export_renders_counters() -> None:
    pytest.importorskip("prometheus_client")
    metrics = MetricsRecorder(prometheus_enabled=True)

    metrics.increment("knowledge.imports", access="public", scoped=False)
    metrics.increment("knowledge.imports", access="public", scoped=False)

    body = metrics.render_prometheus().decode("utf-8")
    assert 'wayfinder_knowledge_imports_total{access="public",scoped="False"} 2.0' in body


def test_render_prometheus_disabled_raises() -> None:
    with pytest.raises(RuntimeError):
        MetricsRecorder(prometheus_enabled=False).render_prometheus()
