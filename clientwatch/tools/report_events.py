"""Print a summary of spans, errors and breadcrumbs from the telemetry store."""

from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..telemetry import DEFAULT_TELEMETRY_DB, TelemetryCollector


def build_report(db_path: Path, *, hours: int = 24) -> Dict[str, Any]:
    """Load the telemetry store at ``db_path`` and summarise the last ``hours``."""

    collector = TelemetryCollector(db_path)
    report = collector.generate_report(hours=hours)
    report["database"] = str(db_path)
    return report


def format_report(report: Dict[str, Any]) -> str:
    lines: List[str] = [
        f"Telemetry report ({report['database']}, last {report['window_hours']}h)",
        f"  spans: {report['overall']['total_spans']}"
        f"  errors: {report['overall']['total_errors']}"
        f"  failure rate: {report['overall']['failure_rate']:.1%}",
    ]
    if report["spans"]:
        lines.append("Spans:")
        for name, stats in sorted(report["spans"].items()):
            lines.append(
                f"  {name}: {stats['count']} calls, avg {stats['avg_ms']:.1f}ms, "
                f"max {stats['max_ms']:.1f}ms, {stats['failures']} failed"
            )
    if report["errors"]:
        lines.append("Errors:")
        for name, count in report["errors"].items():
            lines.append(f"  {name}: {count}")
    if report["recent_breadcrumbs"]:
        lines.append("Recent breadcrumbs:")
        for crumb in report["recent_breadcrumbs"]:
            lines.append(f"  {crumb['timestamp']} {crumb['message']}")
    return "\n".join(lines)


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Summarise monitoring events recorded by the telemetry sink."
    )
    parser.add_argument(
        "--telemetry-db",
        type=Path,
        default=DEFAULT_TELEMETRY_DB,
        help=f"Path to telemetry SQLite database (default: {DEFAULT_TELEMETRY_DB}).",
    )
    parser.add_argument(
        "--hours",
        type=int,
        default=24,
        help="Window to summarise in hours (default: 24).",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Emit the report as JSON.",
    )
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = _parse_args(argv)
    if not args.telemetry_db.exists():
        print(f"Telemetry database not found: {args.telemetry_db}")
        return 1
    report = build_report(args.telemetry_db, hours=args.hours)
    if args.json:
        print(json.dumps(report, indent=2, default=str))
    else:
        print(format_report(report))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
