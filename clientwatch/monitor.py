"""Process-wide monitoring entry point.

``init()`` plays the role of ``Sentry.init({integrations: [...]})``: it builds
the sink and registry from settings, registers the configured integrations,
and stores the result as the process-wide monitor used by :func:`instrument`.
"""
from __future__ import annotations

import logging
from typing import Any, Iterable, List, Optional

from .alerting import AlertRouter, get_alert_router
from .config import Settings, UnknownSinkError, get_settings
from .integrations import build_integration
from .models import Integration
from .registry import IntegrationRegistry
from .sinks import (
    AlertingSink,
    FanoutSink,
    LoggingSink,
    MonitoringSink,
    RecordingSink,
    SentrySink,
    TelemetrySink,
    init_sentry,
)
from .telemetry import TelemetryCollector

logger = logging.getLogger(__name__)


def build_sink(settings: Settings) -> MonitoringSink:
    """Construct the sink (or fan-out of sinks) named by ``settings.sinks``."""
    sinks: List[MonitoringSink] = []
    for name in settings.sinks:
        if name == "none":
            sinks.append(MonitoringSink())
        elif name == "recording":
            sinks.append(RecordingSink())
        elif name == "logging":
            sinks.append(LoggingSink())
        elif name == "telemetry":
            sinks.append(TelemetrySink(TelemetryCollector(settings.telemetry_db)))
        elif name == "sentry":
            if init_sentry(
                settings.sentry_dsn,
                environment=settings.sentry_environment,
                traces_sample_rate=settings.sentry_traces_sample_rate,
            ):
                sinks.append(SentrySink())
            else:
                logger.warning("Sentry sink requested without a DSN; events will not reach Sentry")
        elif name == "alerting":
            if settings.alert_webhook_urls:
                router = AlertRouter(
                    webhook_urls=settings.alert_webhook_urls,
                    timeout=settings.alert_timeout,
                    muted_events=set(settings.alert_muted_events),
                    cooldown_seconds=settings.alert_cooldown_seconds,
                )
            else:
                router = get_alert_router()
            sinks.append(AlertingSink(router))
        else:
            raise UnknownSinkError(f"Unknown sink '{name}'")
    if not sinks:
        return MonitoringSink()
    if len(sinks) == 1:
        return sinks[0]
    return FanoutSink(sinks)


class Monitor:
    """A sink plus the registry of integrations reporting to it."""

    def __init__(
        self,
        sink: MonitoringSink,
        integrations: Iterable[Integration] = (),
        *,
        max_argument_length: int = 200,
    ) -> None:
        self.sink = sink
        self.registry = IntegrationRegistry(sink, max_argument_length=max_argument_length)
        for integration in integrations:
            self.registry.register(integration)

    def instrument(self, client: Any) -> Any:
        """Return ``client`` wrapped by every registered integration."""
        return self.registry.apply_all(client)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        sink: Optional[MonitoringSink] = None,
        integrations: Iterable[Integration] = (),
    ) -> "Monitor":
        configured = [
            build_integration(entry.preset, **entry.build_kwargs())
            for entry in settings.integrations
        ]
        return cls(
            sink if sink is not None else build_sink(settings),
            list(configured) + list(integrations),
            max_argument_length=settings.max_argument_length,
        )


_monitor: Optional[Monitor] = None


def init(
    settings: Optional[Settings] = None,
    *,
    sink: Optional[MonitoringSink] = None,
    integrations: Iterable[Integration] = (),
) -> Monitor:
    """Create the process-wide monitor. Misconfiguration raises immediately."""
    global _monitor
    monitor = Monitor.from_settings(
        settings or get_settings(),
        sink=sink,
        integrations=integrations,
    )
    if _monitor is not None:
        logger.info("Replacing existing monitor (%s)", ", ".join(_monitor.registry.names))
    _monitor = monitor
    logger.info("Monitor initialised with integrations: %s", ", ".join(monitor.registry.names) or "none")
    return monitor


def get_monitor() -> Monitor:
    """Return the monitor created by :func:`init`."""
    if _monitor is None:
        raise RuntimeError("clientwatch.init() has not been called")
    return _monitor


def set_monitor(monitor: Optional[Monitor]) -> None:
    """Override the global monitor (primarily for testing)."""
    global _monitor
    _monitor = monitor


def instrument(client: Any) -> Any:
    """Instrument ``client`` with the process-wide monitor."""
    return get_monitor().instrument(client)


__all__ = [
    "Monitor",
    "build_sink",
    "get_monitor",
    "init",
    "instrument",
    "set_monitor",
]
