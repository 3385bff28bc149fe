"""Metrics and event logging utilities for the workflow engine."""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class MetricsSink(ABC):
    """Destination for engine counters and histograms."""

    @abstractmethod
    def increment_counter(self, name: str, labels: Optional[Dict[str, str]] = None) -> None:
        ...

    @abstractmethod
    def record_histogram(
        self, name: str, value_ms: float, labels: Optional[Dict[str, str]] = None
    ) -> None:
        ...


class NullMetricsSink(MetricsSink):
    """Discards every metric."""

    def increment_counter(self, name: str, labels: Optional[Dict[str, str]] = None) -> None:
        return None

    def record_histogram(
        self, name: str, value_ms: float, labels: Optional[Dict[str, str]] = None
    ) -> None:
        return None


class InMemoryMetricsSink(MetricsSink):
    """In-memory metrics sink used for tests and demo deployments."""

    def __init__(self) -> None:
        self.counters: Dict[str, Dict[str, float]] = defaultdict(lambda: defaultdict(float))
        self.histograms: Dict[str, Dict[str, List[float]]] = defaultdict(dict)

    def increment_counter(self, name: str, labels: Optional[Dict[str, str]] = None) -> None:
        self.counters[name][self._labels_key(labels)] += 1

    def record_histogram(
        self, name: str, value_ms: float, labels: Optional[Dict[str, str]] = None
    ) -> None:
        bucket = self.histograms[name].setdefault(self._labels_key(labels), [])
        bucket.append(value_ms)

    def get_counter(self, name: str, labels: Optional[Dict[str, str]] = None) -> float:
        if labels is None:
            return sum(self.counters[name].values())
        return self.counters[name].get(self._labels_key(labels), 0.0)

    def get_histogram(self, name: str, labels: Optional[Dict[str, str]] = None) -> List[float]:
        if labels is None:
            return [value for bucket in self.histograms[name].values() for value in bucket]
        return list(self.histograms[name].get(self._labels_key(labels), []))

    def _labels_key(self, labels: Optional[Dict[str, str]]) -> str:
        if not labels:
            return "__no_labels__"
        sorted_items = sorted(labels.items())
        return "|".join(f"{k}={v}" for k, v in sorted_items)


class SafeMetrics:
    """Wraps a sink so that a failing sink never fails a workflow."""

    def __init__(self, sink: Optional[MetricsSink] = None, enabled: bool = True) -> None:
        self.sink = sink or NullMetricsSink()
        self.enabled = enabled

    def increment(self, name: str, **labels: Any) -> None:
        if not self.enabled:
            return
        try:
            self.sink.increment_counter(name, self._stringify(labels))
        except Exception:
            logger.warning("Failed to emit counter %s", name, exc_info=True)

    def observe(self, name: str, value_ms: float, **labels: Any) -> None:
        if not self.enabled:
            return
        try:
            self.sink.record_histogram(name, value_ms, self._stringify(labels))
        except Exception:
            logger.warning("Failed to emit histogram %s", name, exc_info=True)

    def _stringify(self, labels: Dict[str, Any]) -> Dict[str, str]:
        return {key: str(value) for key, value in labels.items()}


class EventLogger:
    """Structured event logger for workflow executions."""

    def __init__(self) -> None:
        self.logger = logging.getLogger("automation_engine.events")

    def log(self, event: str, level: int = logging.INFO, **payload: Any) -> None:
        self.logger.log(level, event, extra={"event": event, **payload})
