"""Core data models for clientwatch integrations."""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Mapping, Optional, Tuple

if TYPE_CHECKING:
    from .filters import FilterPredicate


class IntegrationConfigError(ValueError):
    """Raised when an integration is misconfigured at registration time."""


class UnknownOptionError(IntegrationConfigError):
    """Raised when integration options contain an unrecognised flag."""


class DuplicateIntegrationError(IntegrationConfigError):
    """Raised when the same integration is registered or applied twice."""


class OutcomeKind(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


@dataclass(frozen=True)
class IntegrationOptions:
    """Feature flags controlling what an integration reports."""

    tracing: bool = True
    breadcrumbs: bool = True
    errors: bool = True

    @staticmethod
    def from_dict(data: Optional[Mapping[str, Any]]) -> "IntegrationOptions":
        if data is None:
            return IntegrationOptions()
        known = {"tracing", "breadcrumbs", "errors"}
        unknown = sorted(set(data) - known)
        if unknown:
            raise UnknownOptionError(
                f"Unknown integration option(s): {', '.join(unknown)} "
                f"(expected one of {', '.join(sorted(known))})"
            )
        for key, value in data.items():
            if not isinstance(value, bool):
                raise IntegrationConfigError(
                    f"Integration option '{key}' must be a boolean, got {value!r}"
                )
        return IntegrationOptions(**dict(data))

    @staticmethod
    def coerce(value: Any) -> "IntegrationOptions":
        if isinstance(value, IntegrationOptions):
            return value
        if value is None or isinstance(value, Mapping):
            return IntegrationOptions.from_dict(value)
        raise IntegrationConfigError(
            f"Integration options must be a mapping, got {type(value).__name__}"
        )

    def as_dict(self) -> Dict[str, bool]:
        return {
            "tracing": self.tracing,
            "breadcrumbs": self.breadcrumbs,
            "errors": self.errors,
        }


def _default_target(call: "InterceptedCall") -> str:
    return call.method_name


@dataclass(frozen=True)
class Integration:
    """A named unit of observability behaviour applied to a client.

    ``methods`` are the attribute names intercepted on the client. Results of
    ``chain_methods`` are wrapped again with ``chained`` so builder-style
    clients (``client.table("x").select("*").execute()``) report the terminal
    call rather than every intermediate step.
    """

    name: str
    methods: Tuple[str, ...]
    options: IntegrationOptions = field(default_factory=IntegrationOptions)
    filter: Optional["FilterPredicate"] = None
    target_for: Callable[["InterceptedCall"], str] = _default_target
    chain_methods: Tuple[str, ...] = ()
    chained: Tuple[str, ...] = ()
    span_prefix: str = ""

    def __post_init__(self) -> None:
        if not self.name or not self.name.strip():
            raise IntegrationConfigError("Integration name must be a non-empty string")
        if not self.methods and not self.chain_methods:
            raise IntegrationConfigError(
                f"Integration '{self.name}' does not intercept any methods"
            )
        if not isinstance(self.options, IntegrationOptions):
            raise IntegrationConfigError(
                f"Integration '{self.name}' options must be IntegrationOptions"
            )
        object.__setattr__(self, "methods", tuple(self.methods))
        object.__setattr__(self, "chain_methods", tuple(self.chain_methods))
        object.__setattr__(self, "chained", tuple(self.chained))

    def span_name(self, method_name: str) -> str:
        if self.span_prefix:
            return f"{self.span_prefix}.{method_name}"
        return f"{self.name}.{method_name}"

    def covers(self, method_name: str) -> bool:
        return method_name in self.methods or method_name in self.chained


@dataclass
class CallOutcome:
    kind: OutcomeKind
    value: Any = None
    error: Optional[BaseException] = None

    @classmethod
    def success(cls, value: Any) -> "CallOutcome":
        return cls(OutcomeKind.SUCCESS, value=value)

    @classmethod
    def failure(cls, error: BaseException) -> "CallOutcome":
        return cls(OutcomeKind.FAILURE, error=error)


@dataclass
class InterceptedCall:
    """A single invocation observed by an integration."""

    integration: str
    method_name: str
    args: Tuple[Any, ...] = ()
    kwargs: Dict[str, Any] = field(default_factory=dict)
    owner: Any = None
    target: str = ""
    context: Dict[str, Any] = field(default_factory=dict)
    start_time: float = field(default_factory=time.perf_counter)
    end_time: Optional[float] = None
    outcome: Optional[CallOutcome] = None

    def finish(self, outcome: CallOutcome) -> None:
        self.end_time = time.perf_counter()
        self.outcome = outcome

    @property
    def duration_ms(self) -> float:
        end = self.end_time if self.end_time is not None else time.perf_counter()
        return (end - self.start_time) * 1000

    @property
    def succeeded(self) -> bool:
        return self.outcome is not None and self.outcome.kind is OutcomeKind.SUCCESS

    def describe_arguments(self, limit: int) -> List[str]:
        """Return ``repr`` of each argument, truncated to ``limit`` characters."""
        described = [_truncate(repr(value), limit) for value in self.args]
        described.extend(
            f"{key}={_truncate(repr(value), limit)}" for key, value in self.kwargs.items()
        )
        return described


def _truncate(text: str, limit: int) -> str:
    if limit <= 0 or len(text) <= limit:
        return text
    if limit <= 3:
        return text[:limit]
    return text[: limit - 3] + "..."


__all__ = [
    "CallOutcome",
    "DuplicateIntegrationError",
    "Integration",
    "IntegrationConfigError",
    "IntegrationOptions",
    "InterceptedCall",
    "OutcomeKind",
    "UnknownOptionError",
]
