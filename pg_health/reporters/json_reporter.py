"""JSON report renderer."""

from __future__ import annotations

import dataclasses
import enum
import json

from pg_health import __version__
from pg_health.models import DbObject, ScanReport


def render(report: ScanReport) -> str:
    """Render a ScanReport as a JSON string."""
    data = {
        "meta": {
            "tool": "pg-health",
            "version": __version__,
            "timestamp": report.timestamp.isoformat(),
            "database": report.database,
            "hosts": report.hosts,
            "primary_host": report.primary_host,
            "schemas": report.schemas,
            "pg_version": report.pg_version,
        },
        "summary": {
            "total_checks": report.checks_total,
            "checks_passed": report.checks_passed,
            "checks_with_findings": report.checks_failed,
            "checks_errored": report.checks_errored,
            "findings": len(report.findings),
        },
        "results": [],
    }

    for result in report.results:
        entry = {
            "check_name": result.check_name,
            "description": result.description,
            "topology": result.topology,
            "passed": len(result.findings) == 0 and not result.error,
            "skipped": result.skipped,
            "error": result.error,
        }
        if result.skipped:
            entry["skip_reason"] = result.skip_reason
        entry["findings"] = [object_to_dict(f) for f in result.findings]
        data["results"].append(entry)

    return json.dumps(data, indent=2, default=str)


def object_to_dict(obj: DbObject) -> dict:
    """Flatten a domain object to plain JSON types, tagged with its class name."""
    data = {"type": type(obj).__name__, "name": obj.name}
    for f in dataclasses.fields(obj):
        data[f.name] = _plain(getattr(obj, f.name))
    return data


def _plain(value):
    if dataclasses.is_dataclass(value):
        return object_to_dict(value)
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    if isinstance(value, enum.Enum):
        return value.value
    return value
