"""Tests for the report_events CLI."""
import json

from clientwatch.telemetry import TelemetryCollector
from clientwatch.tools.report_events import build_report, format_report, main


def _seed(db_path):
    collector = TelemetryCollector(db_path)
    collector.track_span("db.execute", 12.0, {"status": "ok"})
    collector.track_span("db.execute", 18.0, {"status": "error"})
    collector.track_error("PermissionError", operation="db.execute", integration="supabase")
    collector.track_breadcrumb({"category": "supabase", "message": "db.execute"})
    collector.flush()


def test_build_and_format_report(tmp_path):
    db_path = tmp_path / "events.db"
    _seed(db_path)

    report = build_report(db_path, hours=1)
    text = format_report(report)

    assert report["database"] == str(db_path)
    assert report["spans"]["db.execute"]["count"] == 2
    assert "db.execute: 2 calls, avg 15.0ms, max 18.0ms, 1 failed" in text
    assert "PermissionError: 1" in text
    assert "failure rate: 50.0%" in text


def test_main_json_output(tmp_path, capsys):
    db_path = tmp_path / "events.db"
    _seed(db_path)

    assert main(["--telemetry-db", str(db_path), "--json"]) == 0

    payload = json.loads(capsys.readouterr().out)
    assert payload["errors"] == {"PermissionError": 1}
    assert payload["overall"]["total_spans"] == 2


def test_main_missing_database(tmp_path, capsys):
    assert main(["--telemetry-db", str(tmp_path / "missing.db")]) == 1
    assert "not found" in capsys.readouterr().out
