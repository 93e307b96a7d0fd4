"""Webhook alerts for calls that fail through instrumented clients."""

from __future__ import annotations

import json
import logging
import os
import threading
import time
import urllib.request
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Mapping, Optional

logger = logging.getLogger(__name__)


@dataclass
class AlertPayload:
    """One failed call, as delivered to webhooks.

    ``source`` is the integration that observed the failure and ``target``
    the URL or resource the call was addressed to.
    """

    event: str
    message: str
    severity: str
    source: Optional[str] = None
    target: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    timestamp: float = field(default_factory=time.time)

    def summary(self) -> str:
        """Single-line text for chat webhooks (Slack ``text``, Discord ``content``)."""
        text = f"[{self.severity.upper()}]"
        if self.source:
            text += f" {self.source}:"
        text += f" {self.message}"
        if self.target:
            text += f" ({self.target})"
        return text

    def to_body(self) -> Dict[str, Any]:
        body = asdict(self)
        body["metadata"] = self.metadata or {}
        summary = self.summary()
        body["text"] = summary
        body["content"] = summary
        body["username"] = "clientwatch"
        return body


def _split_env(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class AlertRouter:
    """Posts alert payloads to webhooks, skipping muted events and repeats within a cooldown."""

    def __init__(
        self,
        webhook_urls: Optional[List[str]] = None,
        *,
        timeout: float = 5.0,
        muted_events: Optional[set[str]] = None,
        cooldown_seconds: float = 0.0,
    ) -> None:
        self._webhook_urls = [value for value in (webhook_urls or []) if value]
        self._timeout = timeout
        self._muted_events = muted_events or set()
        self._cooldown_seconds = cooldown_seconds
        self._last_sent: Dict[str, float] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "AlertRouter":
        """Build a router from ``CLIENTWATCH_ALERT_*`` variables."""
        env = os.environ if environ is None else environ
        return cls(
            webhook_urls=_split_env(env.get("CLIENTWATCH_ALERT_WEBHOOK_URLS", "")),
            timeout=float(env.get("CLIENTWATCH_ALERT_TIMEOUT") or 5),
            muted_events=set(_split_env(env.get("CLIENTWATCH_ALERT_MUTED_EVENTS", ""))),
            cooldown_seconds=float(env.get("CLIENTWATCH_ALERT_COOLDOWN_SECONDS") or 0),
        )

    @property
    def webhook_urls(self) -> List[str]:
        return list(self._webhook_urls)

    def _should_send(self, event: str) -> bool:
        if event in self._muted_events:
            logger.debug("Alert event '%s' is muted; skipping notification", event)
            return False
        if self._cooldown_seconds <= 0:
            return True
        now = time.time()
        with self._lock:
            last = self._last_sent.get(event)
            if last is not None and now - last < self._cooldown_seconds:
                logger.debug("Alert event '%s' within cooldown; skipping", event)
                return False
            self._last_sent[event] = now
        return True

    def notify(
        self,
        *,
        event: str,
        message: str,
        severity: str = "error",
        source: Optional[str] = None,
        target: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """Deliver an alert. Returns True when at least one webhook accepted it."""
        if not self._should_send(event):
            return False

        payload = AlertPayload(
            event=event,
            message=message,
            severity=severity,
            source=source,
            target=target,
            metadata=metadata,
        )
        delivered = [self._post_webhook(payload, url) for url in self._webhook_urls]
        if not any(delivered):
            logger.warning("Alert emitted without external routing: %s", payload.summary())
            return False
        return True

    def _post_webhook(self, payload: AlertPayload, webhook_url: str) -> bool:
        request = urllib.request.Request(
            webhook_url,
            data=json.dumps(payload.to_body(), default=str).encode("utf-8"),
            headers={"Content-Type": "application/json"},
        )
        try:
            with urllib.request.urlopen(request, timeout=self._timeout) as response:
                logger.debug(
                    "Alert webhook %s answered %s for %s", webhook_url, response.status, payload.event
                )
            return True
        except Exception:
            logger.exception("Failed to deliver alert webhook for event %s", payload.event)
            return False


_alert_router: Optional[AlertRouter] = None


def get_alert_router() -> AlertRouter:
    """Return the process-wide router, built from the environment on first use."""

    global _alert_router
    if _alert_router is None:
        _alert_router = AlertRouter.from_env()
    return _alert_router


def set_alert_router(router: Optional[AlertRouter]) -> None:
    """Override the global alert router (primarily for testing)."""

    global _alert_router
    _alert_router = router


__all__ = ["AlertRouter", "AlertPayload", "get_alert_router", "set_alert_router"]
