"""SQLite-backed storage for spans, breadcrumbs and errors."""
from __future__ import annotations

import json
import logging
import os
import sqlite3
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

DEFAULT_TELEMETRY_DB = Path(os.getenv("CLIENTWATCH_TELEMETRY_DB", "clientwatch_telemetry.db"))


class MetricType(Enum):
    """Types of events stored."""
    SPAN = "span"
    BREADCRUMB = "breadcrumb"
    ERROR = "error"


@dataclass
class MetricEvent:
    """Individual stored event."""
    timestamp: float
    metric_type: MetricType
    name: str
    value: float
    tags: Dict[str, str] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)


class TelemetryCollector:
    """Collects and stores monitoring events."""

    def __init__(self, db_path: Optional[Path] = None, *, flush_interval: float = 60.0,
                 buffer_size: int = 100):
        """Initialize telemetry collector with database storage."""
        self.db_path = Path(db_path) if db_path else DEFAULT_TELEMETRY_DB
        self._lock = threading.Lock()
        self._init_database()
        self._metrics_buffer: List[MetricEvent] = []
        self._flush_interval = flush_interval
        self._buffer_size = buffer_size
        self._last_flush = time.time()

    def _init_database(self):
        """Initialize telemetry database schema."""
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS metrics (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp REAL NOT NULL,
                    metric_type TEXT NOT NULL,
                    name TEXT NOT NULL,
                    value REAL NOT NULL,
                    tags TEXT,
                    metadata TEXT,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_metrics_timestamp
                ON metrics(timestamp DESC)
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_metrics_type_name
                ON metrics(metric_type, name)
            """)
            conn.commit()

    def track_span(
        self,
        name: str,
        duration_ms: float,
        tags: Optional[Dict[str, str]] = None,
    ):
        """Track a timed operation."""
        self.record(
            MetricType.SPAN,
            name,
            duration_ms,
            tags=tags or {},
            metadata={"unit": "milliseconds"},
        )

    def track_breadcrumb(self, data: Dict[str, Any]):
        """Track a breadcrumb; ``data['message']`` names it when present."""
        name = str(data.get("message") or data.get("category") or "breadcrumb")
        tags = {}
        if data.get("category"):
            tags["category"] = str(data["category"])
        self.record(MetricType.BREADCRUMB, name, 1.0, tags=tags, metadata=dict(data))

    def track_error(
        self,
        error_type: str,
        operation: Optional[str] = None,
        integration: Optional[str] = None,
        error_details: Optional[str] = None,
    ):
        """Track errors and failures."""
        tags = {}
        if operation:
            tags["operation"] = operation
        if integration:
            tags["integration"] = integration

        self.record(
            MetricType.ERROR,
            error_type,
            1.0,
            tags=tags,
            metadata={"error_details": error_details} if error_details else {}
        )

    def record(
        self,
        metric_type: MetricType,
        name: str,
        value: float,
        tags: Optional[Dict[str, str]] = None,
        metadata: Optional[Dict[str, Any]] = None
    ):
        """Record an event."""
        event = MetricEvent(
            timestamp=time.time(),
            metric_type=metric_type,
            name=name,
            value=value,
            tags=tags or {},
            metadata=metadata or {}
        )

        with self._lock:
            self._metrics_buffer.append(event)
            should_flush = (
                len(self._metrics_buffer) >= self._buffer_size
                or time.time() - self._last_flush > self._flush_interval
            )
        if should_flush:
            self.flush()

    def flush(self):
        """Flush buffered events to database."""
        with self._lock:
            if not self._metrics_buffer:
                return
            pending = list(self._metrics_buffer)
            self._metrics_buffer.clear()
            self._last_flush = time.time()

        try:
            with sqlite3.connect(self.db_path) as conn:
                conn.executemany("""
                    INSERT INTO metrics
                    (timestamp, metric_type, name, value, tags, metadata)
                    VALUES (?, ?, ?, ?, ?, ?)
                """, [
                    (
                        event.timestamp,
                        event.metric_type.value,
                        event.name,
                        event.value,
                        json.dumps(event.tags),
                        json.dumps(event.metadata, default=str),
                    )
                    for event in pending
                ])
                conn.commit()
            logger.debug("Flushed %d events to %s", len(pending), self.db_path)
        except sqlite3.Error:
            logger.exception("Failed to flush %d events", len(pending))
            with self._lock:
                self._metrics_buffer[:0] = pending

    def get_span_summary(
        self,
        name: Optional[str] = None,
        hours: int = 24,
    ) -> Dict[str, Dict[str, float]]:
        """Get span duration statistics for the last N hours."""
        start_time = time.time() - (hours * 3600)
        query = """
            SELECT
                name,
                COUNT(*) as count,
                AVG(value) as avg_ms,
                MIN(value) as min_ms,
                MAX(value) as max_ms,
                SUM(CASE WHEN json_extract(tags, '$.status') = 'error'
                    THEN 1 ELSE 0 END) as failures
            FROM metrics
            WHERE metric_type = ? AND timestamp >= ?
        """
        params: List[Any] = [MetricType.SPAN.value, start_time]
        if name:
            query += " AND name = ?"
            params.append(name)
        query += " GROUP BY name"

        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.execute(query, params)
            results = {}
            for row in cursor.fetchall():
                results[row[0]] = {
                    "count": row[1],
                    "avg_ms": row[2],
                    "min_ms": row[3],
                    "max_ms": row[4],
                    "failures": row[5],
                }
            return results

    def get_error_summary(
        self,
        hours: int = 24
    ) -> Dict[str, int]:
        """Get error counts for the last N hours."""
        start_time = time.time() - (hours * 3600)

        query = """
            SELECT name, COUNT(*) as error_count
            FROM metrics
            WHERE metric_type = ? AND timestamp >= ?
            GROUP BY name
            ORDER BY error_count DESC
        """

        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.execute(query, [
                MetricType.ERROR.value,
                start_time
            ])
            return {row[0]: row[1] for row in cursor.fetchall()}

    def get_breadcrumbs(self, limit: int = 50) -> List[Dict[str, Any]]:
        """Return the most recent breadcrumbs, newest first."""
        query = """
            SELECT timestamp, name, metadata
            FROM metrics
            WHERE metric_type = ?
            ORDER BY timestamp DESC, id DESC
            LIMIT ?
        """
        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.execute(query, [MetricType.BREADCRUMB.value, limit])
            return [
                {
                    "timestamp": datetime.fromtimestamp(row[0]).isoformat(),
                    "message": row[1],
                    "data": json.loads(row[2]) if row[2] else {},
                }
                for row in cursor.fetchall()
            ]

    def generate_report(self, hours: int = 24) -> Dict[str, Any]:
        """Generate a report of recent monitoring activity."""
        self.flush()
        spans = self.get_span_summary(hours=hours)
        errors = self.get_error_summary(hours=hours)
        total_spans = sum(int(entry["count"]) for entry in spans.values())
        total_failures = sum(int(entry["failures"] or 0) for entry in spans.values())
        return {
            "generated_at": datetime.now().isoformat(),
            "window_hours": hours,
            "spans": spans,
            "errors": errors,
            "recent_breadcrumbs": self.get_breadcrumbs(limit=10),
            "overall": {
                "total_spans": total_spans,
                "total_errors": sum(errors.values()),
                "failure_rate": (total_failures / total_spans) if total_spans else 0.0,
            },
        }

    def cleanup_old_data(self, days_to_keep: int = 30):
        """Clean up old telemetry data."""
        cutoff_time = time.time() - (days_to_keep * 86400)

        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.execute(
                "DELETE FROM metrics WHERE timestamp < ?",
                (cutoff_time,)
            )
            deleted = cursor.rowcount
            conn.commit()

        logger.info("Cleaned up %d old metric events", deleted)
        return deleted


# Singleton instance
_telemetry: Optional[TelemetryCollector] = None


def get_telemetry(db_path: Optional[Path] = None) -> TelemetryCollector:
    """Get or create singleton telemetry collector."""
    global _telemetry
    if _telemetry is None:
        _telemetry = TelemetryCollector(db_path)
    return _telemetry


def set_telemetry(collector: Optional[TelemetryCollector]) -> None:
    """Override the global collector (primarily for testing)."""
    global _telemetry
    _telemetry = collector


__all__ = [
    "DEFAULT_TELEMETRY_DB",
    "MetricEvent",
    "MetricType",
    "TelemetryCollector",
    "get_telemetry",
    "set_telemetry",
]
