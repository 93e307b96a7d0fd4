"""clientwatch: report calls made through third-party clients to a monitoring sink."""

from .filters import FilterPredicate, always, method_names, never, url_pattern, url_prefix
from .interceptor import CallInterceptor, InstrumentedClient, unwrap
from .models import (
    CallOutcome,
    DuplicateIntegrationError,
    Integration,
    IntegrationConfigError,
    IntegrationOptions,
    InterceptedCall,
    UnknownOptionError,
)
from .monitor import Monitor, get_monitor, init, instrument
from .registry import IntegrationRegistry
from .sinks import (
    AlertingSink,
    FanoutSink,
    LoggingSink,
    MonitoringSink,
    RecordingSink,
    SentrySink,
    TelemetrySink,
)

__all__ = [
    "AlertingSink",
    "CallInterceptor",
    "CallOutcome",
    "DuplicateIntegrationError",
    "FanoutSink",
    "FilterPredicate",
    "InstrumentedClient",
    "Integration",
    "IntegrationConfigError",
    "IntegrationOptions",
    "IntegrationRegistry",
    "InterceptedCall",
    "LoggingSink",
    "Monitor",
    "MonitoringSink",
    "RecordingSink",
    "SentrySink",
    "TelemetrySink",
    "UnknownOptionError",
    "always",
    "get_monitor",
    "init",
    "instrument",
    "method_names",
    "never",
    "unwrap",
    "url_pattern",
    "url_prefix",
]
