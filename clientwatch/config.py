"""Configuration loading utilities for clientwatch."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml

from .models import IntegrationConfigError, IntegrationOptions

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS_PATH = Path(__file__).parent / "data" / "settings.yaml"

SINK_NAMES = ("none", "recording", "logging", "telemetry", "sentry", "alerting")


class UnknownSinkError(IntegrationConfigError):
    """Raised when configuration names a sink that does not exist."""


@dataclass(frozen=True)
class IntegrationSettings:
    """One entry of the ``integrations`` list."""

    preset: str
    name: Optional[str] = None
    options: IntegrationOptions = field(default_factory=IntegrationOptions)
    params: Dict[str, Any] = field(default_factory=dict)

    @staticmethod
    def from_dict(data: Mapping[str, Any]) -> "IntegrationSettings":
        if isinstance(data, str):
            return IntegrationSettings(preset=data)
        if "preset" not in data:
            raise IntegrationConfigError(f"Integration entry missing 'preset': {dict(data)!r}")
        params = {
            key: value
            for key, value in data.items()
            if key not in {"preset", "name", "options"}
        }
        return IntegrationSettings(
            preset=str(data["preset"]),
            name=data.get("name"),
            options=IntegrationOptions.from_dict(data.get("options")),
            params=params,
        )

    def build_kwargs(self) -> Dict[str, Any]:
        kwargs = dict(self.params)
        kwargs["options"] = self.options
        if self.name:
            kwargs["name"] = self.name
        return kwargs


@dataclass(frozen=True)
class Settings:
    """Typed view over the settings YAML file."""

    sinks: List[str]
    max_argument_length: int
    telemetry_db: Path
    sentry_dsn: Optional[str]
    sentry_environment: str
    sentry_traces_sample_rate: float
    alert_webhook_urls: List[str]
    alert_timeout: float
    alert_cooldown_seconds: float
    alert_muted_events: List[str]
    integrations: List[IntegrationSettings]

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "Settings":
        data = data or {}
        raw_sinks = data.get("sink", "logging")
        sinks = [raw_sinks] if isinstance(raw_sinks, str) else list(raw_sinks or [])
        unknown = [name for name in sinks if name not in SINK_NAMES]
        if unknown:
            raise UnknownSinkError(
                f"Unknown sink(s): {', '.join(unknown)} (expected one of {', '.join(SINK_NAMES)})"
            )
        sentry_cfg = data.get("sentry", {}) or {}
        alert_cfg = data.get("alerting", {}) or {}
        max_argument_length = int(data.get("max_argument_length", 200))
        if max_argument_length < 0:
            raise IntegrationConfigError("max_argument_length must not be negative")
        return Settings(
            sinks=sinks,
            max_argument_length=max_argument_length,
            telemetry_db=Path(data.get("telemetry_db", "clientwatch_telemetry.db")),
            sentry_dsn=sentry_cfg.get("dsn") or None,
            sentry_environment=str(sentry_cfg.get("environment", "development")),
            sentry_traces_sample_rate=float(sentry_cfg.get("traces_sample_rate", 1.0)),
            alert_webhook_urls=list(alert_cfg.get("webhook_urls", []) or []),
            alert_timeout=float(alert_cfg.get("timeout", 5.0)),
            alert_cooldown_seconds=float(alert_cfg.get("cooldown_seconds", 0.0)),
            alert_muted_events=list(alert_cfg.get("muted_events", []) or []),
            integrations=[
                IntegrationSettings.from_dict(entry)
                for entry in data.get("integrations", []) or []
            ],
        )


def _split_list(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def apply_env_overrides(data: Dict[str, Any], environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """Overlay ``CLIENTWATCH_*`` and ``SENTRY_*`` environment variables onto raw settings."""
    env = os.environ if environ is None else environ
    merged = dict(data or {})

    sink_env = env.get("CLIENTWATCH_SINK")
    if sink_env:
        merged["sink"] = _split_list(sink_env)

    length_env = env.get("CLIENTWATCH_MAX_ARGUMENT_LENGTH")
    if length_env:
        try:
            merged["max_argument_length"] = int(length_env)
        except ValueError:
            logger.warning("Invalid CLIENTWATCH_MAX_ARGUMENT_LENGTH value: %s", length_env)

    db_env = env.get("CLIENTWATCH_TELEMETRY_DB")
    if db_env:
        merged["telemetry_db"] = db_env

    sentry_cfg = dict(merged.get("sentry", {}) or {})
    if env.get("SENTRY_DSN"):
        sentry_cfg["dsn"] = env["SENTRY_DSN"]
    if env.get("SENTRY_ENVIRONMENT"):
        sentry_cfg["environment"] = env["SENTRY_ENVIRONMENT"]
    if sentry_cfg:
        merged["sentry"] = sentry_cfg

    alert_cfg = dict(merged.get("alerting", {}) or {})
    for key, env_name in (
        ("webhook_urls", "CLIENTWATCH_ALERT_WEBHOOK_URLS"),
        ("muted_events", "CLIENTWATCH_ALERT_MUTED_EVENTS"),
    ):
        if env.get(env_name):
            alert_cfg[key] = _split_list(env[env_name])
    for key, env_name in (
        ("timeout", "CLIENTWATCH_ALERT_TIMEOUT"),
        ("cooldown_seconds", "CLIENTWATCH_ALERT_COOLDOWN_SECONDS"),
    ):
        if env.get(env_name):
            try:
                alert_cfg[key] = float(env[env_name])
            except ValueError:
                logger.warning("Invalid %s value: %s", env_name, env[env_name])
    if alert_cfg:
        merged["alerting"] = alert_cfg
    return merged


class SettingsLoader:
    """Loads and caches settings from YAML configuration files."""

    def __init__(self, path: Path | None = None, environ: Optional[Mapping[str, str]] = None) -> None:
        env_path = (os.environ if environ is None else environ).get("CLIENTWATCH_SETTINGS")
        self._path = path or (Path(env_path) if env_path else DEFAULT_SETTINGS_PATH)
        self._environ = environ
        self._cache: Settings | None = None

    @property
    def path(self) -> Path:
        return self._path

    def load(self, force: bool = False) -> Settings:
        if self._cache is not None and not force:
            return self._cache
        with self._path.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh) or {}
        self._cache = Settings.from_dict(apply_env_overrides(data, self._environ))
        return self._cache


def get_settings() -> Settings:
    """Convenience accessor for default settings."""

    return SettingsLoader().load()


__all__ = [
    "IntegrationSettings",
    "Settings",
    "SettingsLoader",
    "UnknownSinkError",
    "apply_env_overrides",
    "get_settings",
]
