"""
Metrics: Prometheus-Compatible Counters for Routing and Uploads

Counters are labelled and thread-safe. MetricsRegistry groups the
series this library records so one registry can be shared by a router,
its resolver, its client pool and its committers.
"""

from __future__ import annotations

import threading
from collections import defaultdict
from typing import Iterator, Optional, Sequence


LabelKey = tuple[tuple[str, str], ...]


def _label_key(label_names: Sequence[str], labels: dict[str, str]) -> LabelKey:
    return tuple((name, str(labels.get(name, ""))) for name in label_names)


class Counter:
    """
    Monotonically increasing counter metric.

    Usage:
        probes = Counter("bucketmesh_region_probes_total", ["region"])
        probes.inc(region="us-east-1")
    """

    __slots__ = ("_name", "_help", "_label_names", "_values", "_lock")

    def __init__(
        self,
        name: str,
        label_names: Sequence[str] = (),
        help_text: str = "",
    ) -> None:
        self._name = name
        self._help = help_text
        self._label_names = tuple(label_names)
        self._values: dict[LabelKey, float] = defaultdict(float)
        self._lock = threading.Lock()

    def inc(self, value: float = 1.0, **labels: str) -> None:
        if value < 0:
            raise ValueError("Counter can only increase")
        key = _label_key(self._label_names, labels)
        with self._lock:
            self._values[key] += value

    def get(self, **labels: str) -> float:
        """Value for one label combination."""
        key = _label_key(self._label_names, labels)
        with self._lock:
            return self._values.get(key, 0.0)

    def total(self) -> float:
        """Sum across every label combination."""
        with self._lock:
            return sum(self._values.values())

    def collect(self) -> Iterator[tuple[dict[str, str], float]]:
        with self._lock:
            items = list(self._values.items())
        for key, value in items:
            yield dict(key), value

    @property
    def name(self) -> str:
        return self._name

    @property
    def help_text(self) -> str:
        return self._help


class Histogram:
    """
    Bucketed histogram for latencies in seconds.

    Cumulative bucket counts, sum and count, as Prometheus expects.
    """

    DEFAULT_BUCKETS: tuple[float, ...] = (
        0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0,
    )

    __slots__ = ("_name", "_help", "_label_names", "_buckets", "_counts", "_sums", "_lock")

    def __init__(
        self,
        name: str,
        label_names: Sequence[str] = (),
        help_text: str = "",
        buckets: Optional[Sequence[float]] = None,
    ) -> None:
        self._name = name
        self._help = help_text
        self._label_names = tuple(label_names)
        self._buckets = tuple(sorted(buckets or self.DEFAULT_BUCKETS))
        self._counts: dict[LabelKey, list[int]] = {}
        self._sums: dict[LabelKey, float] = defaultdict(float)
        self._lock = threading.Lock()

    def observe(self, value: float, **labels: str) -> None:
        key = _label_key(self._label_names, labels)
        with self._lock:
            counts = self._counts.setdefault(key, [0] * (len(self._buckets) + 1))
            for i, bound in enumerate(self._buckets):
                if value <= bound:
                    counts[i] += 1
            counts[-1] += 1
            self._sums[key] += value

    def count(self, **labels: str) -> int:
        key = _label_key(self._label_names, labels)
        with self._lock:
            counts = self._counts.get(key)
            return counts[-1] if counts else 0

    def collect(self) -> Iterator[tuple[dict[str, str], list[tuple[str, int]], float, int]]:
        with self._lock:
            snapshot = [(k, list(v), self._sums[k]) for k, v in self._counts.items()]
        for key, counts, total in snapshot:
            buckets = [(repr(b), counts[i]) for i, b in enumerate(self._buckets)]
            buckets.append(("+Inf", counts[-1]))
            yield dict(key), buckets, total, counts[-1]

    @property
    def name(self) -> str:
        return self._name

    @property
    def help_text(self) -> str:
        return self._help


class MetricsRegistry:
    """
    Series recorded by routing and upload components.

    Pass one instance to the router; it hands the same registry to the
    resolver, the client pool and every committer it creates.
    """

    def __init__(self) -> None:
        self.region_probes = Counter(
            "bucketmesh_region_probes_total", ["region"],
            "Region discovery probes sent, labelled with the probing region",
        )
        self.region_cache_hits = Counter(
            "bucketmesh_region_cache_hits_total", ["region"],
            "Region lookups answered from cache",
        )
        self.region_mismatches = Counter(
            "bucketmesh_region_mismatches_total", ["region"],
            "Mismatch signals received, labelled with the signaled region",
        )
        self.clients_created = Counter(
            "bucketmesh_regional_clients_created_total", ["region"],
            "Regional clients created and kept by the pool",
        )
        self.upload_attempts = Counter(
            "bucketmesh_upload_attempts_total", ["strategy"],
            "Remote write attempts made by committers",
        )
        self.upload_retries = Counter(
            "bucketmesh_upload_retries_total", ["strategy"],
            "Attempts followed by a backoff and another attempt",
        )
        self.uploads_committed = Counter(
            "bucketmesh_uploads_committed_total", ["strategy"],
            "Uploads committed successfully",
        )
        self.uploads_failed = Counter(
            "bucketmesh_uploads_failed_total", ["strategy", "code"],
            "Uploads that ended in an error",
        )
        self.multipart_aborts = Counter(
            "bucketmesh_multipart_aborts_total", [],
            "Multipart sessions explicitly aborted",
        )
        self.bytes_staged = Counter(
            "bucketmesh_bytes_staged_total", ["strategy"],
            "Bytes accepted by stagers",
        )
        self.commit_latency = Histogram(
            "bucketmesh_commit_latency_seconds", ["strategy"],
            "Wall time of a commit, retries included",
        )

    def counters(self) -> tuple[Counter, ...]:
        return (
            self.region_probes,
            self.region_cache_hits,
            self.region_mismatches,
            self.clients_created,
            self.upload_attempts,
            self.upload_retries,
            self.uploads_committed,
            self.uploads_failed,
            self.multipart_aborts,
            self.bytes_staged,
        )

    def export_text(self) -> str:
        """Render every series in Prometheus text exposition format."""
        lines: list[str] = []
        for counter in self.counters():
            lines.append(f"# HELP {counter.name} {counter.help_text}")
            lines.append(f"# TYPE {counter.name} counter")
            for labels, value in counter.collect():
                lines.append(f"{counter.name}{_format_labels(labels)} {value}")

        hist = self.commit_latency
        lines.append(f"# HELP {hist.name} {hist.help_text}")
        lines.append(f"# TYPE {hist.name} histogram")
        for labels, buckets, total, count in hist.collect():
            for bound, bucket_count in buckets:
                bucket_labels = {**labels, "le": bound}
                lines.append(f"{hist.name}_bucket{_format_labels(bucket_labels)} {bucket_count}")
            lines.append(f"{hist.name}_sum{_format_labels(labels)} {total}")
            lines.append(f"{hist.name}_count{_format_labels(labels)} {count}")
        return "\n".join(lines) + "\n"


def _format_labels(labels: dict[str, str]) -> str:
    if not labels:
        return ""
    inner = ",".join(f'{k}="{v}"' for k, v in sorted(labels.items()))
    return "{" + inner + "}"
