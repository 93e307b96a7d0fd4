"""Tests for webhook alert routing."""
import json
import logging

from clientwatch.alerting import AlertPayload, AlertRouter, get_alert_router, set_alert_router


class DummyResponse:
    status = 204

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


def test_alert_router_posts_json(monkeypatch):
    captured = []

    def fake_urlopen(request, timeout):
        captured.append((request, timeout))
        return DummyResponse()

    monkeypatch.setattr("urllib.request.urlopen", fake_urlopen)
    router = AlertRouter(webhook_urls=["https://hooks.example/a"], timeout=2.5)

    sent = router.notify(
        event="db.execute:TimeoutError",
        message="db.execute failed: slow",
        source="supabase",
        metadata={"target": "https://abc.supabase.co/rest/v1/todos"},
    )

    assert sent is True
    request, timeout = captured[0]
    assert timeout == 2.5
    assert request.full_url == "https://hooks.example/a"
    body = json.loads(request.data.decode("utf-8"))
    assert body["event"] == "db.execute:TimeoutError"
    assert body["severity"] == "error"
    assert body["source"] == "supabase"
    assert body["text"] == "[ERROR] supabase: db.execute failed: slow"
    assert body["content"] == body["text"]
    assert body["metadata"]["target"].endswith("/todos")


def test_alert_router_multiple_webhooks(monkeypatch):
    calls = []

    def fake_post(self, payload, url):
        calls.append(url)
        return url.endswith("b")

    monkeypatch.setattr(AlertRouter, "_post_webhook", fake_post)
    router = AlertRouter(webhook_urls=["https://hooks.example/a", "https://hooks.example/b", ""])

    assert router.notify(event="e", message="m") is True
    assert calls == ["https://hooks.example/a", "https://hooks.example/b"]
    assert router.webhook_urls == ["https://hooks.example/a", "https://hooks.example/b"]


def test_alert_router_muted_event(monkeypatch):
    monkeypatch.setattr(AlertRouter, "_post_webhook", lambda self, payload, url: True)
    router = AlertRouter(webhook_urls=["https://hooks.example/a"], muted_events={"noisy"})

    assert router.notify(event="noisy", message="m") is False
    assert router.notify(event="loud", message="m") is True


def test_alert_router_cooldown(monkeypatch):
    monkeypatch.setattr(AlertRouter, "_post_webhook", lambda self, payload, url: True)
    router = AlertRouter(webhook_urls=["https://hooks.example/a"], cooldown_seconds=60)

    assert router.notify(event="db.execute:TimeoutError", message="first") is True
    assert router.notify(event="db.execute:TimeoutError", message="second") is False
    assert router.notify(event="db.execute:KeyError", message="other") is True


def test_alert_without_routes_logs_warning(caplog):
    router = AlertRouter()

    with caplog.at_level(logging.WARNING, logger="clientwatch.alerting"):
        assert router.notify(event="e", message="nothing configured") is False

    assert "without external routing" in caplog.text


def test_alert_payload_timestamp_per_instance():
    first = AlertPayload(event="a", message="m", severity="error")
    second = AlertPayload(event="b", message="m", severity="error")

    assert second.timestamp >= first.timestamp


def test_get_alert_router_from_env(monkeypatch):
    monkeypatch.setenv("CLIENTWATCH_ALERT_WEBHOOK_URLS", "https://hooks.example/a, https://hooks.example/b")
    monkeypatch.setenv("CLIENTWATCH_ALERT_MUTED_EVENTS", "noisy")
    set_alert_router(None)
    try:
        router = get_alert_router()
        assert router.webhook_urls == ["https://hooks.example/a", "https://hooks.example/b"]
        assert get_alert_router() is router
    finally:
        set_alert_router(None)


def test_alert_text_names_integration_and_target(monkeypatch):
    captured = []
    monkeypatch.setattr(
        "urllib.request.urlopen",
        lambda request, timeout: captured.append(json.loads(request.data.decode("utf-8"))) or DummyResponse(),
    )
    router = AlertRouter(webhook_urls=["https://hooks.example/a"])

    router.notify(
        event="inference.infer:HTTPError",
        message="inference.infer failed: 503",
        source="roboflow",
        target="https://detect.roboflow.com/cats/2",
    )

    body = captured[0]
    assert body["target"] == "https://detect.roboflow.com/cats/2"
    assert body["text"] == "[ERROR] roboflow: inference.infer failed: 503 (https://detect.roboflow.com/cats/2)"


def test_alert_router_from_env():
    router = AlertRouter.from_env(
        {
            "CLIENTWATCH_ALERT_WEBHOOK_URLS": "https://hooks.example/a,",
            "CLIENTWATCH_ALERT_TIMEOUT": "2",
            "CLIENTWATCH_ALERT_COOLDOWN_SECONDS": "10",
            "CLIENTWATCH_ALERT_MUTED_EVENTS": "noisy, quiet",
        }
    )

    assert router.webhook_urls == ["https://hooks.example/a"]
    assert router._timeout == 2.0
    assert router._cooldown_seconds == 10.0
    assert router._muted_events == {"noisy", "quiet"}
