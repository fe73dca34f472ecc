"""Plain text report: one ``name:count`` line per diagnostic, then the findings."""

from __future__ import annotations

from pg_health.models import ScanReport


def render(report: ScanReport) -> str:
    lines = [
        f"pg-health report for {report.database or '?'} at {report.timestamp.isoformat()}",
        f"hosts: {', '.join(report.hosts) or '-'}"
        + (f" (primary: {report.primary_host})" if report.primary_host else " (no primary)"),
        f"schemas: {', '.join(report.schemas) or '-'}",
        "",
    ]

    for result in report.results:
        if result.skipped:
            lines.append(f"{result.check_name}:skipped")
        elif result.error:
            lines.append(f"{result.check_name}:error")
        else:
            lines.append(f"{result.check_name}:{len(result.findings)}")

    details = [r for r in report.results if r.findings or r.error]
    for result in details:
        lines.append("")
        lines.append(f"[{result.check_name}] {result.description}")
        if result.error:
            lines.append(f"  ERROR: {result.error}")
        for finding in result.findings:
            lines.append(f"  {finding.name}")

    lines.append("")
    lines.append(
        f"{report.checks_total} checks: {report.checks_passed} passed, "
        f"{report.checks_failed} with findings, {report.checks_errored} errors"
    )
    return "\n".join(lines) + "\n"
