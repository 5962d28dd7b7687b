"""Observability module for registry metrics and structured logging.

This module provides:
- Loader, resolver and refresh counters plus a refresh duration
  histogram, exportable in Prometheus text format
- Structured JSON event logging per component
- Logging setup shared by embedding applications

Usage:
    from docregistry.observability import metrics, get_logger

    metrics.increment("load_errors_total", labels={"reason": "invalid_front_matter"})

    logger = get_logger("loader")
    logger.info("load_complete", documents=42, errors=1)
"""

import json
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional


LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


# =============================================================================
# Metrics Registry
# =============================================================================

@dataclass
class Counter:
    """A simple counter metric with optional labels."""
    name: str
    help_text: str
    values: dict[tuple, int] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def increment(self, labels: Optional[dict[str, str]] = None, value: int = 1) -> None:
        """Increment counter by value."""
        label_key = tuple(sorted((labels or {}).items()))
        with self._lock:
            self.values[label_key] = self.values.get(label_key, 0) + value

    def get(self, labels: Optional[dict[str, str]] = None) -> int:
        """Get current counter value."""
        label_key = tuple(sorted((labels or {}).items()))
        return self.values.get(label_key, 0)

    def reset(self) -> None:
        """Reset all counter values (for testing)."""
        with self._lock:
            self.values.clear()


@dataclass
class Histogram:
    """A simple histogram for latency measurements."""
    name: str
    help_text: str
    values: list[float] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def observe(self, value: float) -> None:
        """Record an observation."""
        with self._lock:
            self.values.append(value)

    def reset(self) -> None:
        """Reset all values (for testing)."""
        with self._lock:
            self.values.clear()


class MetricsRegistry:
    """Central registry for all metrics."""

    def __init__(self):
        self._counters: dict[str, Counter] = {}
        self._histograms: dict[str, Histogram] = {}
        self._lock = threading.Lock()
        self._register_default_metrics()

    def _register_default_metrics(self) -> None:
        """Register the loader, resolver and refresh metrics."""
        # Loader
        self.register_counter(
            "documents_loaded_total",
            "Documents successfully parsed"
        )
        self.register_counter(
            "load_errors_total",
            "Files rejected during load by reason"
        )

        # Resolver
        self.register_counter(
            "dangling_references_total",
            "References that matched no loaded document"
        )
        self.register_counter(
            "reference_cycles_total",
            "Reference cycles detected"
        )

        # Query service
        self.register_counter(
            "refresh_total",
            "Snapshot refresh attempts by outcome"
        )
        self.register_histogram(
            "refresh_duration_seconds",
            "Time to load and resolve a snapshot"
        )

    def register_counter(self, name: str, help_text: str) -> Counter:
        """Register a new counter metric."""
        with self._lock:
            if name not in self._counters:
                self._counters[name] = Counter(name=name, help_text=help_text)
            return self._counters[name]

    def register_histogram(self, name: str, help_text: str) -> Histogram:
        """Register a new histogram metric."""
        with self._lock:
            if name not in self._histograms:
                self._histograms[name] = Histogram(name=name, help_text=help_text)
            return self._histograms[name]

    def increment(self, name: str, labels: Optional[dict[str, str]] = None, value: int = 1) -> None:
        """Increment a counter."""
        if name in self._counters:
            self._counters[name].increment(labels, value)

    def observe(self, name: str, value: float) -> None:
        """Record a histogram observation."""
        if name in self._histograms:
            self._histograms[name].observe(value)

    def get_counter(self, name: str) -> Optional[Counter]:
        """Get a counter by name."""
        return self._counters.get(name)

    def get_histogram(self, name: str) -> Optional[Histogram]:
        """Get a histogram by name."""
        return self._histograms.get(name)

    def to_prometheus(self) -> str:
        """Export all metrics in Prometheus format."""
        lines = []

        for name, counter in self._counters.items():
            lines.append(f"# HELP {name} {counter.help_text}")
            lines.append(f"# TYPE {name} counter")
            if counter.values:
                for labels, value in counter.values.items():
                    label_str = ",".join(f'{k}="{v}"' for k, v in labels) if labels else ""
                    if label_str:
                        lines.append(f"{name}{{{label_str}}} {value}")
                    else:
                        lines.append(f"{name} {value}")
            else:
                lines.append(f"{name} 0")

        for name, histogram in self._histograms.items():
            lines.append(f"# HELP {name} {histogram.help_text}")
            lines.append(f"# TYPE {name} histogram")
            # Simplified: just output count and sum
            lines.append(f"{name}_count {len(histogram.values)}")
            lines.append(f"{name}_sum {sum(histogram.values):.6f}")

        return "\n".join(lines)

    def reset_all(self) -> None:
        """Reset all metrics (for testing)."""
        for counter in self._counters.values():
            counter.reset()
        for histogram in self._histograms.values():
            histogram.reset()


# Global metrics instance
metrics = MetricsRegistry()


# =============================================================================
# Structured Logging
# =============================================================================

class StructuredLogger:
    """Logger that outputs structured JSON event lines."""

    def __init__(self, component: str):
        self.component = component
        self._logger = logging.getLogger(f"docregistry.{component}")

    def _format(self, level: str, event: str, **kwargs) -> str:
        """Format a log entry as JSON."""
        entry = {
            "timestamp": _utc_timestamp(),
            "level": level,
            "component": self.component,
            "event": event,
        }
        entry.update(kwargs)
        return json.dumps(entry, default=str)

    def info(self, event: str, **kwargs) -> None:
        """Log an INFO level event."""
        self._logger.info(self._format("INFO", event, **kwargs))

    def warn(self, event: str, **kwargs) -> None:
        """Log a WARN level event."""
        self._logger.warning(self._format("WARN", event, **kwargs))

    def error(self, event: str, **kwargs) -> None:
        """Log an ERROR level event."""
        self._logger.error(self._format("ERROR", event, **kwargs))


def get_logger(component: str) -> StructuredLogger:
    """Get a structured logger for a component.

    Args:
        component: Name of the component (e.g., "loader", "query_service")

    Returns:
        StructuredLogger instance
    """
    return StructuredLogger(component)


def setup_logging(level: Optional[str] = None) -> None:
    """Configure root logging for applications embedding the registry.

    Args:
        level: Log level name. Defaults to the configured ``log_level``.
    """
    if level is None:
        from .config import settings
        level = settings.log_level

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )
