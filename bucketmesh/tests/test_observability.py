"""
Unit Tests: Logging and Metrics
"""

import io
import json
import logging

import pytest

from bucketmesh.observability import (
    Counter,
    Histogram,
    JsonFormatter,
    LogLevel,
    MetricsRegistry,
    StructuredLogger,
    setup_logging,
)


@pytest.fixture
def log_stream():
    """Capture root logging as JSON lines; restore handlers afterwards."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    stream = io.StringIO()
    setup_logging(LogLevel.DEBUG, json_output=True, stream=stream)
    yield stream
    root.handlers[:] = handlers
    root.setLevel(level)


def lines(stream):
    return [json.loads(line) for line in stream.getvalue().splitlines()]


class TestStructuredLogging:
    """Tests for JSON log output."""

    def test_extra_fields(self, log_stream):
        """Test that keyword fields land in the JSON record."""
        StructuredLogger("bucketmesh.test").info("Upload committed", etag="abc", attempts=2)

        record = lines(log_stream)[-1]
        assert record["message"] == "Upload committed"
        assert record["level"] == "INFO"
        assert record["logger"] == "bucketmesh.test"
        assert record["etag"] == "abc"
        assert record["attempts"] == 2

    def test_context_fields(self, log_stream):
        """Test that context fields apply inside the block only."""
        logger = StructuredLogger("bucketmesh.test")
        with logger.context(bucket="photos", key="cat.jpg"):
            logger.warning("inside")
        logger.warning("outside")

        inside, outside = lines(log_stream)[-2:]
        assert inside["bucket"] == "photos"
        assert inside["key"] == "cat.jpg"
        assert "bucket" not in outside

    def test_plain_logger_extras(self, log_stream):
        """Test that stdlib loggers' extras are rendered too."""
        logging.getLogger("bucketmesh.routing").info(
            "Regional client created", extra={"region": "eu-west-1"}
        )

        assert lines(log_stream)[-1]["region"] == "eu-west-1"

    def test_level_filtering(self):
        """Test that records below the level are dropped."""
        stream = io.StringIO()
        handler = logging.StreamHandler(stream)
        handler.setFormatter(JsonFormatter())
        logger = logging.getLogger("bucketmesh.test.filtering")
        logger.addHandler(handler)
        logger.setLevel(logging.WARNING)
        logger.propagate = False
        try:
            StructuredLogger("bucketmesh.test.filtering").debug("hidden")
            StructuredLogger("bucketmesh.test.filtering").error("shown")
        finally:
            logger.removeHandler(handler)

        assert [r["message"] for r in lines(stream)] == ["shown"]

    @pytest.mark.parametrize("name,expected", [
        ("debug", LogLevel.DEBUG),
        (" WARNING ", LogLevel.WARNING),
        ("verbose", LogLevel.INFO),
    ])
    def test_parse_level(self, name, expected):
        """Test level name parsing with INFO fallback."""
        assert LogLevel.parse(name) is expected


class TestMetrics:
    """Tests for counters, histograms and text export."""

    def test_counter_labels(self):
        """Test per-label values and totals."""
        counter = Counter("probes_total", ["bucket"])
        counter.inc(bucket="a")
        counter.inc(2, bucket="b")

        assert counter.get(bucket="a") == 1
        assert counter.get(bucket="b") == 2
        assert counter.get(bucket="c") == 0
        assert counter.total() == 3

    def test_counter_rejects_decrease(self):
        """Test that counters are monotonic."""
        with pytest.raises(ValueError):
            Counter("c").inc(-1)

    def test_histogram_buckets(self):
        """Test cumulative bucket counting."""
        hist = Histogram("latency_seconds", ["strategy"], buckets=[0.1, 1.0])
        hist.observe(0.05, strategy="memory")
        hist.observe(0.5, strategy="memory")
        hist.observe(5.0, strategy="memory")

        labels, buckets, total, count = next(hist.collect())
        assert labels == {"strategy": "memory"}
        assert buckets == [("0.1", 1), ("1.0", 2), ("+Inf", 3)]
        assert total == pytest.approx(5.55)
        assert count == 3 == hist.count(strategy="memory")

    def test_export_text(self):
        """Test Prometheus exposition format."""
        metrics = MetricsRegistry()
        metrics.region_probes.inc(region="us-east-1")
        metrics.commit_latency.observe(0.02, strategy="disk")

        text = metrics.export_text()

        assert "# TYPE bucketmesh_region_probes_total counter" in text
        assert 'bucketmesh_region_probes_total{region="us-east-1"} 1.0' in text
        assert 'bucketmesh_commit_latency_seconds_count{strategy="disk"} 1' in text
        assert text.endswith("\n")
