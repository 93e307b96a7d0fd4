"""Tests for the SQLite telemetry store."""
import sqlite3
import tempfile
import time
from pathlib import Path

from clientwatch.telemetry import (
    MetricEvent,
    MetricType,
    TelemetryCollector,
    get_telemetry,
    set_telemetry,
)


def test_metric_event_creation():
    """Test MetricEvent dataclass creation."""
    event = MetricEvent(
        timestamp=time.time(),
        metric_type=MetricType.SPAN,
        name="db.execute",
        value=12.0,
        tags={"integration": "supabase"},
        metadata={"unit": "milliseconds"}
    )

    assert event.metric_type == MetricType.SPAN
    assert event.name == "db.execute"
    assert event.tags["integration"] == "supabase"


def test_telemetry_collector_init():
    """Test TelemetryCollector initialization."""
    with tempfile.TemporaryDirectory() as tmpdir:
        db_path = Path(tmpdir) / "test_telemetry.db"
        collector = TelemetryCollector(db_path)

        assert collector.db_path == db_path
        assert db_path.exists()
        assert len(collector._metrics_buffer) == 0


def test_track_span():
    with tempfile.TemporaryDirectory() as tmpdir:
        collector = TelemetryCollector(Path(tmpdir) / "test.db")

        collector.track_span("db.execute", 45.2, {"status": "ok"})

        event = collector._metrics_buffer[0]
        assert event.metric_type == MetricType.SPAN
        assert event.value == 45.2
        assert event.metadata["unit"] == "milliseconds"


def test_track_breadcrumb_names():
    with tempfile.TemporaryDirectory() as tmpdir:
        collector = TelemetryCollector(Path(tmpdir) / "test.db")

        collector.track_breadcrumb({"category": "supabase", "message": "db.execute"})
        collector.track_breadcrumb({"category": "http"})
        collector.track_breadcrumb({})

        names = [event.name for event in collector._metrics_buffer]
        assert names == ["db.execute", "http", "breadcrumb"]
        assert collector._metrics_buffer[0].tags == {"category": "supabase"}


def test_track_error():
    with tempfile.TemporaryDirectory() as tmpdir:
        collector = TelemetryCollector(Path(tmpdir) / "test.db")

        collector.track_error(
            error_type="PermissionError",
            operation="db.execute",
            integration="supabase",
            error_details="insert denied"
        )

        event = collector._metrics_buffer[0]
        assert event.metric_type == MetricType.ERROR
        assert event.tags == {"operation": "db.execute", "integration": "supabase"}
        assert event.metadata["error_details"] == "insert denied"


def test_flush_to_database():
    with tempfile.TemporaryDirectory() as tmpdir:
        db_path = Path(tmpdir) / "test.db"
        collector = TelemetryCollector(db_path)

        for index in range(5):
            collector.track_span(f"op{index}", float(index))
        collector.flush()

        assert collector._metrics_buffer == []
        with sqlite3.connect(db_path) as conn:
            count = conn.execute("SELECT COUNT(*) FROM metrics").fetchone()[0]
        assert count == 5


def test_auto_flush_on_buffer_size():
    with tempfile.TemporaryDirectory() as tmpdir:
        collector = TelemetryCollector(Path(tmpdir) / "test.db", buffer_size=3)

        for index in range(3):
            collector.track_span("db.execute", float(index))

        assert collector._metrics_buffer == []


def test_flush_failure_keeps_events(monkeypatch):
    with tempfile.TemporaryDirectory() as tmpdir:
        collector = TelemetryCollector(Path(tmpdir) / "test.db")
        collector.track_span("db.execute", 1.0)

        def broken_connect(*args, **kwargs):
            raise sqlite3.OperationalError("database is locked")

        monkeypatch.setattr(sqlite3, "connect", broken_connect)
        collector.flush()

        assert len(collector._metrics_buffer) == 1


def test_span_summary():
    with tempfile.TemporaryDirectory() as tmpdir:
        collector = TelemetryCollector(Path(tmpdir) / "test.db")

        collector.track_span("db.execute", 10.0, {"status": "ok"})
        collector.track_span("db.execute", 30.0, {"status": "error"})
        collector.track_span("http.client.get", 5.0, {"status": "ok"})
        collector.flush()

        summary = collector.get_span_summary()
        assert summary["db.execute"]["count"] == 2
        assert summary["db.execute"]["avg_ms"] == 20.0
        assert summary["db.execute"]["min_ms"] == 10.0
        assert summary["db.execute"]["max_ms"] == 30.0
        assert summary["db.execute"]["failures"] == 1
        assert summary["http.client.get"]["failures"] == 0

        only_db = collector.get_span_summary(name="db.execute")
        assert list(only_db) == ["db.execute"]


def test_error_summary_and_breadcrumbs():
    with tempfile.TemporaryDirectory() as tmpdir:
        collector = TelemetryCollector(Path(tmpdir) / "test.db")

        collector.track_error("TimeoutError", operation="db.execute")
        collector.track_error("TimeoutError", operation="db.execute")
        collector.track_error("PermissionError", operation="db.execute")
        collector.track_breadcrumb({"message": "first", "data": {"n": 1}})
        collector.track_breadcrumb({"message": "second", "data": {"n": 2}})
        collector.flush()

        assert collector.get_error_summary() == {"TimeoutError": 2, "PermissionError": 1}
        crumbs = collector.get_breadcrumbs(limit=1)
        assert len(crumbs) == 1
        assert crumbs[0]["message"] == "second"
        assert crumbs[0]["data"]["data"] == {"n": 2}


def test_generate_report_flushes():
    with tempfile.TemporaryDirectory() as tmpdir:
        collector = TelemetryCollector(Path(tmpdir) / "test.db")

        collector.track_span("db.execute", 10.0, {"status": "ok"})
        collector.track_span("db.execute", 20.0, {"status": "error"})
        collector.track_error("RuntimeError", operation="db.execute")

        report = collector.generate_report()

        assert report["overall"]["total_spans"] == 2
        assert report["overall"]["total_errors"] == 1
        assert report["overall"]["failure_rate"] == 0.5
        assert report["window_hours"] == 24


def test_generate_report_empty():
    with tempfile.TemporaryDirectory() as tmpdir:
        report = TelemetryCollector(Path(tmpdir) / "test.db").generate_report()

        assert report["overall"] == {"total_spans": 0, "total_errors": 0, "failure_rate": 0.0}


def test_cleanup_old_data():
    with tempfile.TemporaryDirectory() as tmpdir:
        db_path = Path(tmpdir) / "test.db"
        collector = TelemetryCollector(db_path)
        collector.track_span("db.execute", 1.0)
        collector.flush()

        with sqlite3.connect(db_path) as conn:
            conn.execute("UPDATE metrics SET timestamp = ?", (time.time() - 40 * 86400,))
            conn.commit()
        collector.track_span("db.execute", 2.0)
        collector.flush()

        assert collector.cleanup_old_data(days_to_keep=30) == 1
        assert collector.get_span_summary()["db.execute"]["count"] == 1


def test_singleton_override():
    with tempfile.TemporaryDirectory() as tmpdir:
        collector = TelemetryCollector(Path(tmpdir) / "test.db")
        set_telemetry(collector)
        try:
            assert get_telemetry() is collector
        finally:
            set_telemetry(None)
