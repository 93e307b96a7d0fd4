"""Monitoring sinks receiving spans, breadcrumbs and errors."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .alerting import AlertRouter, get_alert_router
from .telemetry import TelemetryCollector, get_telemetry

logger = logging.getLogger(__name__)


class MonitoringSink:
    """Destination for monitoring events. The base class discards everything."""

    def emit_span(self, name: str, duration_ms: float, tags: Optional[Dict[str, str]] = None) -> None:
        pass

    def emit_breadcrumb(self, data: Dict[str, Any]) -> None:
        pass

    def emit_error(self, error: BaseException, data: Optional[Dict[str, Any]] = None) -> None:
        pass


class RecordingSink(MonitoringSink):
    """Keeps every event in memory, in emission order."""

    def __init__(self) -> None:
        self.events: List[Tuple[str, Any]] = []

    def emit_span(self, name, duration_ms, tags=None):
        self.events.append(("span", {"name": name, "duration_ms": duration_ms, "tags": dict(tags or {})}))

    def emit_breadcrumb(self, data):
        self.events.append(("breadcrumb", dict(data)))

    def emit_error(self, error, data=None):
        self.events.append(("error", {"error": error, "data": dict(data or {})}))

    def _of_kind(self, kind: str) -> List[Any]:
        return [payload for event_kind, payload in self.events if event_kind == kind]

    @property
    def spans(self) -> List[Dict[str, Any]]:
        return self._of_kind("span")

    @property
    def breadcrumbs(self) -> List[Dict[str, Any]]:
        return self._of_kind("breadcrumb")

    @property
    def errors(self) -> List[Dict[str, Any]]:
        return self._of_kind("error")

    def clear(self) -> None:
        self.events.clear()


class LoggingSink(MonitoringSink):
    """Writes events to a standard library logger."""

    def __init__(self, log: Optional[logging.Logger] = None, level: int = logging.INFO) -> None:
        self._log = log or logger
        self._level = level

    def emit_span(self, name, duration_ms, tags=None):
        self._log.log(self._level, "span %s %.2fms %s", name, duration_ms, tags or {})

    def emit_breadcrumb(self, data):
        self._log.log(self._level, "breadcrumb %s", data)

    def emit_error(self, error, data=None):
        self._log.error("error %s: %s %s", type(error).__name__, error, data or {})


class TelemetrySink(MonitoringSink):
    """Stores events through a :class:`TelemetryCollector`."""

    def __init__(self, collector: Optional[TelemetryCollector] = None) -> None:
        self.collector = collector or get_telemetry()

    def emit_span(self, name, duration_ms, tags=None):
        self.collector.track_span(name, duration_ms, tags)

    def emit_breadcrumb(self, data):
        self.collector.track_breadcrumb(data)

    def emit_error(self, error, data=None):
        data = data or {}
        self.collector.track_error(
            type(error).__name__,
            operation=data.get("operation"),
            integration=data.get("integration"),
            error_details=str(error),
        )


class SentrySink(MonitoringSink):
    """Forwards events to the Sentry SDK.

    ``sdk`` defaults to the ``sentry_sdk`` module; call :func:`init_sentry`
    (or ``sentry_sdk.init``) before emitting. Spans join the active span when
    there is one and otherwise start their own transaction.
    """

    def __init__(self, sdk: Any = None) -> None:
        if sdk is None:
            import sentry_sdk as sdk
        self._sdk = sdk

    def emit_span(self, name, duration_ms, tags=None):
        end = datetime.now(timezone.utc)
        start = end - timedelta(milliseconds=duration_ms)
        op = name.split(".", 1)[0] if "." in name else "function"
        if self._sdk.get_current_span() is None:
            span = self._sdk.start_transaction(op=op, name=name, start_timestamp=start)
        else:
            span = self._sdk.start_span(op=op, name=name, start_timestamp=start)
        for key, value in (tags or {}).items():
            span.set_tag(key, value)
        span.finish(end_timestamp=end)

    def emit_breadcrumb(self, data):
        crumb = dict(data)
        crumb.setdefault("category", "clientwatch")
        crumb.setdefault("timestamp", datetime.now(timezone.utc))
        self._sdk.add_breadcrumb(crumb=crumb)

    def emit_error(self, error, data=None):
        data = dict(data or {})
        tags = {key: str(data[key]) for key in ("integration", "operation") if key in data}
        self._sdk.capture_exception(error, tags=tags, contexts={"clientwatch": data})


def init_sentry(
    dsn: Optional[str],
    *,
    environment: str = "development",
    traces_sample_rate: float = 1.0,
    sdk: Any = None,
) -> bool:
    """Initialise the Sentry SDK. Returns False when no DSN is configured."""
    if not dsn:
        logger.info("Sentry DSN not configured; Sentry reporting disabled")
        return False
    if sdk is None:
        import sentry_sdk as sdk
    sdk.init(
        dsn=dsn,
        environment=environment,
        traces_sample_rate=traces_sample_rate,
    )
    return True


class AlertingSink(MonitoringSink):
    """Routes error events to webhooks. Spans and breadcrumbs are ignored."""

    def __init__(self, router: Optional[AlertRouter] = None, severity: str = "error") -> None:
        self.router = router or get_alert_router()
        self.severity = severity

    def emit_error(self, error, data=None):
        data = dict(data or {})
        operation = data.get("operation", "call")
        self.router.notify(
            event=f"{operation}:{type(error).__name__}",
            message=f"{operation} failed: {error}",
            severity=self.severity,
            source=data.get("integration"),
            target=data.get("target"),
            metadata=data,
        )


class FanoutSink(MonitoringSink):
    """Delivers every event to several sinks; one failing sink does not block others."""

    def __init__(self, sinks: Iterable[MonitoringSink]) -> None:
        self.sinks = list(sinks)

    def _each(self, method: str, *args: Any) -> None:
        for sink in self.sinks:
            try:
                getattr(sink, method)(*args)
            except Exception:
                logger.exception("Sink %s failed during %s", type(sink).__name__, method)

    def emit_span(self, name, duration_ms, tags=None):
        self._each("emit_span", name, duration_ms, tags)

    def emit_breadcrumb(self, data):
        self._each("emit_breadcrumb", data)

    def emit_error(self, error, data=None):
        self._each("emit_error", error, data)


__all__ = [
    "AlertingSink",
    "FanoutSink",
    "LoggingSink",
    "MonitoringSink",
    "RecordingSink",
    "SentrySink",
    "TelemetrySink",
    "init_sentry",
]
