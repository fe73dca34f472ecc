"""Run one diagnostic across the nodes of a cluster and merge the results."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Iterable
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait

import psycopg2

from pg_health.checks.host import ExclusionPredicate, run_on_host
from pg_health.connection import ClusterHandle, HostConnection
from pg_health.context import PgContext
from pg_health.diagnostics import Diagnostic, ExecutionTopology
from pg_health.errors import CancellationError, ClusterUnavailableError, ConnectivityError
from pg_health.models import DbObject
from pg_health.registry import get_diagnostic

logger = logging.getLogger(__name__)

POLL_INTERVAL = 0.05

Task = tuple[PgContext, HostConnection]


def run_on_cluster(
    diagnostic: Diagnostic | str,
    cluster: ClusterHandle,
    contexts: PgContext | Iterable[PgContext] | None = None,
    exclude: ExclusionPredicate | None = None,
    *,
    parallel: bool = True,
    max_workers: int | None = None,
    timeout: float | None = None,
    cancel_event: threading.Event | None = None,
) -> list[DbObject]:
    """Run a diagnostic on the nodes its topology requires and merge the results.

    Results are ordered by context, then by node in handle order, then by row
    order. Objects found twice for the same context are reported once, except
    for diagnostics that run on all nodes, where each node's findings are kept.

    Args:
        diagnostic: Catalog entry or its name.
        cluster: Snapshot of the cluster nodes.
        contexts: One context or several; the default context if omitted.
        exclude: Objects for which this returns True are dropped.
        parallel: Query nodes concurrently; contexts on one node run in turn.
        max_workers: Upper bound on nodes queried at once.
        timeout: Seconds to wait for all queries before cancelling the running ones.
        cancel_event: Setting this event cancels the check.

    Returns:
        The merged list of domain objects.

    Raises:
        ConnectivityError: The primary is known but unreachable.
        ClusterUnavailableError: A node required by the topology is unreachable.
        CancellationError: The timeout expired or ``cancel_event`` was set.
    """
    diagnostic = get_diagnostic(diagnostic)
    contexts = _normalize_contexts(contexts)
    if timeout is not None and timeout <= 0:
        raise ValueError("timeout must be positive")
    if max_workers is not None and max_workers < 1:
        raise ValueError("max_workers must be at least 1")
    if cancel_event is not None and cancel_event.is_set():
        raise CancellationError(f"Diagnostic '{diagnostic.name}' was cancelled before it started")

    deadline = time.monotonic() + timeout if timeout is not None else None
    runner = _TaskRunner(diagnostic, exclude, parallel, max_workers, deadline, cancel_event)

    if diagnostic.topology is ExecutionTopology.PRIMARY_ONLY:
        return _run_on_primary(diagnostic, cluster, contexts, runner)
    if diagnostic.topology is ExecutionTopology.ALL_NODES_UNION:
        return _run_on_all_nodes(diagnostic, cluster, contexts, runner)
    return _run_on_any_node(diagnostic, cluster, contexts, runner)


def _normalize_contexts(contexts) -> list[PgContext]:
    if contexts is None:
        return [PgContext.of_default()]
    if isinstance(contexts, PgContext):
        return [contexts]
    contexts = list(contexts)
    if not contexts:
        raise ValueError("contexts cannot be empty")
    for context in contexts:
        if not isinstance(context, PgContext):
            raise TypeError(f"Expected PgContext, got {type(context).__name__}")
    return contexts


# -- Topologies ---------------------------------------------------------------


def _run_on_primary(diagnostic, cluster, contexts, runner) -> list[DbObject]:
    primary = cluster.primary()
    if primary is None:
        logger.info("No primary is known; skipping %s", diagnostic.name)
        return []
    if not primary.is_reachable:
        raise ConnectivityError(f"Primary {primary.name} is unreachable", primary.name)
    logger.debug("%s selected primary %s", diagnostic.name, primary.name)
    tasks = [(context, primary) for context in contexts]
    return _merge(tasks, runner.run(contexts, [primary]), per_node=False)


def _run_on_any_node(diagnostic, cluster, contexts, runner) -> list[DbObject]:
    tried = []
    for node in cluster.nodes_in_order():
        if not node.is_reachable:
            logger.debug("%s skips unreachable host %s", diagnostic.name, node.name)
            tried.append(node.name)
            continue
        logger.debug("%s selected %s", diagnostic.name, node.name)
        tasks = [(context, node) for context in contexts]
        try:
            slots = runner.run(contexts, [node])
        except ConnectivityError as e:
            logger.warning("%s failed on %s, trying next host: %s", diagnostic.name, node.name, e)
            tried.append(node.name)
            continue
        return _merge(tasks, slots, per_node=False)
    raise ClusterUnavailableError(diagnostic.name, tried, "no host answered")


def _run_on_all_nodes(diagnostic, cluster, contexts, runner) -> list[DbObject]:
    nodes = cluster.nodes_in_order()
    if not nodes:
        raise ClusterUnavailableError(diagnostic.name, [], "cluster has no hosts")
    unreachable = [n.name for n in nodes if not n.is_reachable]
    if unreachable:
        raise ClusterUnavailableError(diagnostic.name, unreachable)
    tasks = [(context, node) for context in contexts for node in nodes]
    try:
        slots = runner.run(contexts, nodes)
    except ConnectivityError as e:
        raise ClusterUnavailableError(diagnostic.name, [e.host], str(e)) from e
    return _merge(tasks, slots, per_node=True)


def _merge(tasks: list[Task], slots: list[list[DbObject]], per_node: bool) -> list[DbObject]:
    seen = set()
    merged = []
    for (context, node), objects in zip(tasks, slots):
        for obj in objects:
            key = (context, node.name, obj.natural_key) if per_node else (context, obj.natural_key)
            if key in seen:
                continue
            seen.add(key)
            merged.append(obj)
    return merged


# -- Execution ----------------------------------------------------------------


class _TaskRunner:
    """Run a diagnostic for several contexts on several nodes.

    Each node gets one worker that queries its contexts one after another,
    since a connection runs a single statement at a time. Result slots follow
    context order, then node order.
    """

    def __init__(self, diagnostic, exclude, parallel, max_workers, deadline, cancel_event):
        self.diagnostic = diagnostic
        self.exclude = exclude
        self.parallel = parallel
        self.max_workers = max_workers
        self.deadline = deadline
        self.cancel_event = cancel_event

    def run(self, contexts: list[PgContext], nodes: list[HostConnection]) -> list[list[DbObject]]:
        stop = threading.Event()
        workers = min(self.max_workers or len(nodes), len(nodes)) if self.parallel else 1
        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="pg-health")
        futures = []
        try:
            for node in nodes:
                futures.append(executor.submit(self._run_node, node, contexts, stop))

            pending = set(futures)
            while pending:
                self._check_cancelled()
                done, pending = wait(pending, timeout=self._wait_time(), return_when=FIRST_EXCEPTION)
                # Node order keeps the raised error deterministic when several nodes fail.
                for future in futures:
                    if future in done:
                        future.result()
        except Exception:
            stop.set()
            self._cancel_until_done(futures, nodes)
            executor.shutdown(wait=True)
            raise
        executor.shutdown(wait=True)

        per_node = [future.result() for future in futures]
        return [per_node[n][c] for c in range(len(contexts)) for n in range(len(nodes))]

    def _run_node(self, node: HostConnection, contexts: list[PgContext], stop: threading.Event):
        results = []
        for context in contexts:
            if stop.is_set():
                raise CancellationError(f"Diagnostic '{self.diagnostic.name}' stopped before querying {node.name}")
            results.append(
                run_on_host(self.diagnostic, node.connection, context, self.exclude, host=node.name)
            )
        return results

    def _wait_time(self) -> float:
        if self.deadline is None:
            return POLL_INTERVAL
        return max(0.0, min(POLL_INTERVAL, self.deadline - time.monotonic()))

    def _check_cancelled(self):
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise CancellationError(f"Diagnostic '{self.diagnostic.name}' was cancelled")
        if self.deadline is not None and time.monotonic() >= self.deadline:
            raise CancellationError(f"Diagnostic '{self.diagnostic.name}' timed out")

    def _cancel_until_done(self, futures, nodes: list[HostConnection]):
        # A worker may start its next statement just after a cancel; keep cancelling until it returns.
        pending = {future: node for future, node in zip(futures, nodes) if not future.done()}
        while pending:
            for future, node in pending.items():
                if not future.running():
                    continue
                try:
                    node.connection.cancel()
                except psycopg2.Error as e:
                    logger.debug("Could not cancel query on %s: %s", node.name, e)
            wait(pending, timeout=POLL_INTERVAL)
            pending = {future: node for future, node in pending.items() if not future.done()}
