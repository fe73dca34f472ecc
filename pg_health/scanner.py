"""Scanner orchestrator: runs the selected diagnostics on a cluster and collects results."""

from __future__ import annotations

import logging
import sys
import threading
from collections.abc import Iterable
from datetime import datetime, timezone

import psycopg2

from pg_health.checks.cluster import run_on_cluster
from pg_health.checks.host import ExclusionPredicate
from pg_health.connection import ClusterHandle, get_pg_version
from pg_health.context import PgContext
from pg_health.diagnostics import Diagnostic, ExecutionTopology
from pg_health.errors import CancellationError, ConnectivityError
from pg_health.models import CheckResult, ScanReport
from pg_health.registry import all_diagnostics
from pg_health.statistics import get_last_stats_reset, stats_reset_message

logger = logging.getLogger(__name__)


def run_scan(
    cluster: ClusterHandle,
    contexts: Iterable[PgContext] | None = None,
    diagnostics: Iterable[Diagnostic] | None = None,
    exclude: ExclusionPredicate | None = None,
    *,
    database: str = "",
    verbose: bool = False,
    parallel: bool = True,
    max_workers: int | None = None,
    timeout: float | None = None,
    cancel_event: threading.Event | None = None,
) -> ScanReport:
    """Run diagnostics against every node they require.

    Args:
        cluster: Snapshot of the cluster to inspect.
        contexts: Schemas and thresholds to check; the default context if omitted.
        diagnostics: Diagnostics to run; the whole catalog if omitted.
        exclude: Objects for which this returns True are left out of the findings.
        database: Database name for the report.
        verbose: Print progress to stderr.
        parallel: Query nodes concurrently.
        max_workers: Upper bound on nodes queried at once per diagnostic.
        timeout: Seconds allowed per diagnostic.
        cancel_event: Setting this event stops the scan.

    Returns:
        ScanReport with one result per diagnostic. Primary-only diagnostics
        are marked skipped when the cluster has no known primary.

    Raises:
        ConnectivityError: The server version could not be read.
        CancellationError: ``cancel_event`` was set.
    """
    contexts = list(contexts) if contexts is not None else [PgContext.of_default()]
    diagnostics = list(diagnostics) if diagnostics is not None else all_diagnostics()

    primary = cluster.primary()
    reference = primary if primary is not None and primary.is_reachable else _first_reachable(cluster)
    report = ScanReport(
        database=database,
        hosts=[n.name for n in cluster.nodes_in_order()],
        timestamp=datetime.now(timezone.utc),
        schemas=[c.schema_name for c in contexts],
        pg_version=_server_version(reference) if reference is not None else "",
        primary_host=primary.name if primary is not None else "",
    )

    total = len(diagnostics)
    if verbose:
        print(
            f"Running {total} diagnostics on {len(report.hosts)} host(s), "
            f"schemas: {', '.join(report.schemas)}...",
            file=sys.stderr,
        )

    if any(d.runtime for d in diagnostics):
        _log_stats_reset(cluster, verbose)

    for i, diagnostic in enumerate(diagnostics, 1):
        if verbose:
            print(f"  [{i}/{total}] {diagnostic.name}: {diagnostic.description}", file=sys.stderr)

        result = CheckResult(
            check_name=diagnostic.name,
            description=diagnostic.description,
            topology=diagnostic.topology.value,
        )

        if primary is None and diagnostic.topology is ExecutionTopology.PRIMARY_ONLY:
            result.skipped = True
            result.skip_reason = "no primary known"
            logger.info("No primary is known; skipping %s", diagnostic.name)
            if verbose:
                print(f"    SKIPPED: {result.skip_reason}", file=sys.stderr)
            report.results.append(result)
            continue

        try:
            result.findings = run_on_cluster(
                diagnostic,
                cluster,
                contexts,
                exclude,
                parallel=parallel,
                max_workers=max_workers,
                timeout=timeout,
                cancel_event=cancel_event,
            )
        except CancellationError as exc:
            if cancel_event is not None and cancel_event.is_set():
                raise
            result.error = f"{type(exc).__name__}: {exc}"
        except Exception as exc:
            result.error = f"{type(exc).__name__}: {exc}"

        if result.error:
            logger.warning("%s failed: %s", diagnostic.name, result.error)
            if verbose:
                print(f"    ERROR: {result.error}", file=sys.stderr)

        report.results.append(result)

    if verbose:
        print(
            f"Done. {report.checks_passed} passed, "
            f"{report.checks_failed} with findings, "
            f"{report.checks_errored} errors, "
            f"{report.checks_skipped} skipped.",
            file=sys.stderr,
        )

    return report


def _server_version(node) -> str:
    try:
        return get_pg_version(node.connection)
    except (psycopg2.OperationalError, psycopg2.InterfaceError) as e:
        raise ConnectivityError(f"Lost connection to {node.name}: {str(e).strip()}", node.name) from e


def _first_reachable(cluster: ClusterHandle):
    for node in cluster.nodes_in_order():
        if node.is_reachable:
            return node
    return None


def _log_stats_reset(cluster: ClusterHandle, verbose: bool):
    now = datetime.now(timezone.utc)
    for node in cluster.nodes_in_order():
        if not node.is_reachable:
            continue
        try:
            reset_at = get_last_stats_reset(node.connection)
        except psycopg2.Error as e:
            logger.warning("Could not read statistics reset time on %s: %s", node.name, str(e).strip())
            continue
        message = stats_reset_message(node.name, reset_at, now)
        logger.info(message)
        if verbose:
            print(f"  {message}", file=sys.stderr)
