"""Pipeline metrics: labelled counters and latency histograms, in memory.

One registry per pipeline, passed explicitly to the components that record:

* analysis_tier{tier}, analysis_fallback_reason{reason}
* insights_fallback{kind}
* resolver_lookups{database,outcome}
* result_cache_events{event}, edge_cache_events{strategy,outcome}
* pipeline_runs{path,outcome}
* analysis_latency_ms, pipeline_latency_ms{path}
"""

from __future__ import annotations

from collections import deque
from threading import Lock
from typing import Deque, Dict, Tuple

Labels = Tuple[Tuple[str, str], ...]

LATENCY_WINDOW = 1000


def _labels(tags: Dict[str, str]) -> Labels:
    return tuple(sorted(tags.items()))


class Counter:
    """Monotonic event count."""

    def __init__(self) -> None:
        self._count = 0
        self._lock = Lock()

    def inc(self, amount: int = 1) -> None:
        with self._lock:
            self._count += amount

    @property
    def count(self) -> int:
        return self._count


class Histogram:
    """Latest observations (bounded window) with percentile lookup."""

    def __init__(self, window: int = LATENCY_WINDOW) -> None:
        self._samples: Deque[float] = deque(maxlen=window)
        self._lock = Lock()

    def observe(self, value: float) -> None:
        with self._lock:
            self._samples.append(value)

    @property
    def count(self) -> int:
        return len(self._samples)

    def percentile(self, q: float) -> float:
        """Nearest-rank percentile over the window, 0.0 when empty.

        Args:
            q: Percentile in [0, 100]
        """
        with self._lock:
            ordered = sorted(self._samples)
        if not ordered:
            return 0.0
        rank = round(q / 100 * (len(ordered) - 1))
        return ordered[min(max(rank, 0), len(ordered) - 1)]


class MetricsRegistry:
    """
    Named, labelled metrics created on first use.

    Example:
        >>> metrics = MetricsRegistry()
        >>> metrics.counter("analysis_tier", tier="PRIMARY").inc()
        >>> metrics.counter_value("analysis_tier", tier="PRIMARY")
        1
    """

    def __init__(self, latency_window: int = LATENCY_WINDOW) -> None:
        self.latency_window = latency_window
        self._counters: Dict[Tuple[str, Labels], Counter] = {}
        self._histograms: Dict[Tuple[str, Labels], Histogram] = {}
        self._lock = Lock()

    def counter(self, name: str, **labels: str) -> Counter:
        with self._lock:
            return self._counters.setdefault((name, _labels(labels)), Counter())

    def histogram(self, name: str, **labels: str) -> Histogram:
        with self._lock:
            key = (name, _labels(labels))
            if key not in self._histograms:
                self._histograms[key] = Histogram(self.latency_window)
            return self._histograms[key]

    def counter_value(self, name: str, **labels: str) -> int:
        """Current count, 0 for a counter never incremented."""
        counter = self._counters.get((name, _labels(labels)))
        return counter.count if counter is not None else 0

    def histogram_count(self, name: str, **labels: str) -> int:
        """Number of observations in the window, 0 if never observed."""
        histogram = self._histograms.get((name, _labels(labels)))
        return histogram.count if histogram is not None else 0
