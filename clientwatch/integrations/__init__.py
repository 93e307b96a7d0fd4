"""Ready-made integrations for commonly instrumented clients.

Each preset returns an :class:`~clientwatch.models.Integration` describing
which methods to intercept and how to derive a call's target URL.
"""
from __future__ import annotations

from typing import Any, Callable, Dict

from ..models import Integration, IntegrationConfigError
from .http import http_integration
from .roboflow import roboflow_integration
from .supabase import supabase_integration
from .vecs import vecs_integration


class UnknownIntegrationError(IntegrationConfigError):
    """Raised when configuration names a preset that does not exist."""


PRESETS: Dict[str, Callable[..., Integration]] = {
    "supabase": supabase_integration,
    "http": http_integration,
    "roboflow": roboflow_integration,
    "vecs": vecs_integration,
}


def build_integration(preset: str, **kwargs: Any) -> Integration:
    """Build the integration registered under ``preset``."""
    try:
        factory = PRESETS[preset]
    except KeyError:
        raise UnknownIntegrationError(
            f"Unknown integration preset '{preset}' (available: {', '.join(sorted(PRESETS))})"
        ) from None
    try:
        return factory(**kwargs)
    except TypeError as exc:
        raise IntegrationConfigError(f"Invalid settings for preset '{preset}': {exc}") from exc


__all__ = [
    "PRESETS",
    "UnknownIntegrationError",
    "build_integration",
    "http_integration",
    "roboflow_integration",
    "supabase_integration",
    "vecs_integration",
]
