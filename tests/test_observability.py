"""Tests for metrics export and structured logging."""

import json
import logging

from docregistry.observability import MetricsRegistry, get_logger, setup_logging


class TestMetricsRegistry:
    def test_default_metrics_registered(self):
        registry = MetricsRegistry()
        for name in (
            "documents_loaded_total",
            "load_errors_total",
            "dangling_references_total",
            "reference_cycles_total",
            "refresh_total",
        ):
            assert registry.get_counter(name) is not None
        assert registry.get_histogram("refresh_duration_seconds") is not None

    def test_labelled_counter(self):
        registry = MetricsRegistry()
        registry.increment("load_errors_total", labels={"reason": "duplicate_id"})
        registry.increment("load_errors_total", labels={"reason": "duplicate_id"})
        registry.increment("load_errors_total", labels={"reason": "invalid_encoding"})

        counter = registry.get_counter("load_errors_total")
        assert counter.get({"reason": "duplicate_id"}) == 2
        assert counter.get({"reason": "invalid_encoding"}) == 1
        assert counter.get() == 0

    def test_unknown_metric_ignored(self):
        registry = MetricsRegistry()
        registry.increment("no_such_metric")
        registry.observe("no_such_histogram", 1.0)
        assert registry.get_counter("no_such_metric") is None

    def test_to_prometheus(self):
        registry = MetricsRegistry()
        registry.increment("refresh_total", labels={"outcome": "ok"})
        text = registry.to_prometheus()
        assert "# TYPE refresh_total counter" in text
        assert 'refresh_total{outcome="ok"} 1' in text
        assert "documents_loaded_total 0" in text
        assert "refresh_duration_seconds_count 0" in text

    def test_to_prometheus_histogram_sum(self):
        registry = MetricsRegistry()
        registry.observe("refresh_duration_seconds", 0.25)
        registry.observe("refresh_duration_seconds", 0.5)
        text = registry.to_prometheus()
        assert "refresh_duration_seconds_count 2" in text
        assert "refresh_duration_seconds_sum 0.750000" in text

    def test_reset_all(self):
        registry = MetricsRegistry()
        registry.increment("documents_loaded_total", value=4)
        registry.reset_all()
        assert registry.get_counter("documents_loaded_total").get() == 0


class TestStructuredLogger:
    def test_emits_json_event(self, caplog):
        caplog.set_level(logging.INFO, logger="docregistry.loader")
        get_logger("loader").info("load_complete", documents=3)

        entry = json.loads(caplog.records[-1].getMessage())
        assert entry["event"] == "load_complete"
        assert entry["component"] == "loader"
        assert entry["level"] == "INFO"
        assert entry["timestamp"].endswith("Z")
        assert entry["documents"] == 3

    def test_warn_maps_to_warning_level(self, caplog):
        caplog.set_level(logging.WARNING, logger="docregistry.query_service")
        get_logger("query_service").warn("refresh_timeout", timeout=0.5)

        record = caplog.records[-1]
        assert record.levelno == logging.WARNING
        assert json.loads(record.getMessage())["level"] == "WARN"

    def test_refresh_logs_events(self, caplog, sample_tree):
        from docregistry.query import QueryService

        caplog.set_level(logging.INFO)
        QueryService().refresh(sample_tree)

        events = []
        for record in caplog.records:
            if record.name.startswith("docregistry.") and record.getMessage().startswith("{"):
                events.append(json.loads(record.getMessage())["event"])
        assert "load_complete" in events
        assert "resolve_complete" in events
        assert "refresh_complete" in events


class TestSetupLogging:
    def test_accepts_level_name(self):
        setup_logging("debug")
        setup_logging()
