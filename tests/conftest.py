"""Shared fixtures and fakes for pg-health tests."""

from __future__ import annotations

import threading
from datetime import datetime, timezone

import psycopg2
import psycopg2.extensions
import pytest

from pg_health.connection import ClusterHandle, HostConnection, PgHost
from pg_health.models import CheckResult, IndexWithSize, ScanReport, Table, UnusedIndex


class FakeInfo:
    def __init__(self, host: str, port: int = 5432, dbname: str = "testdb"):
        self.host = host
        self.port = port
        self.dbname = dbname


class FakeCursor:
    def __init__(self, conn: FakeConnection, cursor_factory=None):
        self.conn = conn
        self.cursor_factory = cursor_factory
        self._rows: list = []

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def execute(self, sql, params=None):
        conn = self.conn
        with conn.lock:
            conn.executed.append((sql, params))
        if conn.closed:
            raise psycopg2.InterfaceError("connection already closed")

        if "pg_is_in_recovery" in sql:
            self._rows = [(conn.in_recovery,)]
            return
        if "version()" in sql:
            if conn.version_error is not None:
                raise conn.version_error
            self._rows = [("PostgreSQL 17.0 on x86_64-pc-linux-gnu",)]
            return
        if "stats_reset" in sql:
            self._rows = [(conn.stats_reset,)]
            return

        # Like libpq, one statement at a time per connection.
        with conn.busy:
            statement = threading.Event()
            with conn.lock:
                conn.running = statement
                cancelled_before = conn.cancel_calls > 0
            try:
                self._rows = self._run_statement(conn, statement, sql, params)
            finally:
                with conn.lock:
                    conn.running = None
            with conn.lock:
                conn.completed += 1
                if cancelled_before:
                    conn.finished_after_cancel += 1

    @staticmethod
    def _run_statement(conn, statement, sql, params):
        if conn.block:
            conn.started.set()
            statement.wait(5)
            raise psycopg2.extensions.QueryCanceledError("canceling statement due to user request")
        if conn.delay and statement.wait(conn.delay):
            raise psycopg2.extensions.QueryCanceledError("canceling statement due to user request")
        if conn.error is not None:
            raise conn.error
        rows = conn.rows(sql, params) if callable(conn.rows) else conn.rows
        return [dict(r) for r in rows]

    def fetchall(self):
        return list(self._rows)

    def fetchone(self):
        return self._rows[0] if self._rows else None


class FakeConnection:
    """Stands in for a psycopg2 connection and records every executed query.

    ``rows`` is a list of row dicts returned for any diagnostic query, or a
    callable ``(sql, params) -> rows``.
    """

    def __init__(
        self,
        name: str = "localhost",
        rows=None,
        error: Exception | None = None,
        in_recovery: bool = False,
        delay: float = 0.0,
        block: bool = False,
        stats_reset=None,
        version_error: Exception | None = None,
    ):
        self.info = FakeInfo(name)
        self.rows = rows if rows is not None else []
        self.error = error
        self.in_recovery = in_recovery
        self.delay = delay
        self.block = block
        self.stats_reset = stats_reset
        self.version_error = version_error
        self.closed = 0
        self.executed: list[tuple[str, dict | None]] = []
        self.cancel_calls = 0
        self.completed = 0
        self.finished_after_cancel = 0
        self.running: threading.Event | None = None
        self.started = threading.Event()
        self.lock = threading.Lock()
        self.busy = threading.Lock()

    def cursor(self, cursor_factory=None):
        if self.closed:
            raise psycopg2.InterfaceError("connection already closed")
        return FakeCursor(self, cursor_factory)

    def cancel(self):
        """Interrupt the running statement only, as PQcancel does."""
        with self.lock:
            self.cancel_calls += 1
            if self.running is not None:
                self.running.set()

    def close(self):
        self.closed = 1

    def set_session(self, **kwargs):
        self.session = kwargs

    @property
    def diagnostic_queries(self) -> list[tuple[str, dict | None]]:
        """Executed queries excluding version, recovery and statistics lookups."""
        return [(sql, p) for sql, p in self.executed if p is not None]


def make_node(name: str, rows=None, primary: bool = False, reachable: bool = True, **kwargs) -> HostConnection:
    """Factory for a cluster node backed by a FakeConnection."""
    conn = FakeConnection(name, rows=rows, in_recovery=not primary, **kwargs) if reachable else None
    return HostConnection(PgHost(name), conn, primary)


def table_rows(*names: str) -> list[dict]:
    return [{"table_name": n, "table_size": 8192} for n in names]


def unused_index_rows(*pairs: tuple[str, str]) -> list[dict]:
    return [
        {"table_name": t, "index_name": i, "index_size": 16384, "index_scans": 0}
        for t, i in pairs
    ]


def rows_by_schema(mapping: dict[str, list[dict]]):
    """Rows callable answering per bound schema name."""
    return lambda sql, params: mapping.get(params["schema_name"], [])


@pytest.fixture
def cluster_factory():
    """Build a ClusterHandle from node specs: (name, rows, primary)."""

    def build(*specs, **kwargs) -> ClusterHandle:
        return ClusterHandle.of(make_node(name, rows, primary, **kwargs) for name, rows, primary in specs)

    return build


@pytest.fixture
def empty_report() -> ScanReport:
    """ScanReport with no results."""
    return ScanReport(
        database="testdb",
        hosts=["pg1:5432"],
        timestamp=datetime(2026, 1, 27, 12, 0, 0, tzinfo=timezone.utc),
        schemas=["public"],
        pg_version="PostgreSQL 17.0",
        primary_host="pg1:5432",
    )


@pytest.fixture
def sample_report() -> ScanReport:
    """ScanReport with findings, a passing check, an error and a skipped check."""
    report = ScanReport(
        database="testdb",
        hosts=["pg1:5432", "pg2:5432"],
        timestamp=datetime(2026, 1, 27, 12, 0, 0, tzinfo=timezone.utc),
        schemas=["public"],
        pg_version="PostgreSQL 17.0",
        primary_host="pg1:5432",
    )

    report.results.append(CheckResult(
        check_name="tables_without_primary_key",
        description="Tables without a primary key",
        topology="primary_only",
        findings=[Table("orders", 8192), Table("audit_log", 0)],
    ))

    report.results.append(CheckResult(
        check_name="unused_indexes",
        description="Indexes that are never or rarely scanned",
        topology="all_nodes_union",
        findings=[UnusedIndex("orders", "i_orders_created", 16384, 0)],
    ))

    report.results.append(CheckResult(
        check_name="invalid_indexes",
        description="Indexes left invalid by a failed concurrent build",
        topology="primary_only",
    ))

    report.results.append(CheckResult(
        check_name="bloated_tables",
        description="Tables whose bloat exceeds the threshold",
        topology="primary_only",
        error="QueryExecutionError: permission denied for view pg_stats",
    ))

    report.results.append(CheckResult(
        check_name="sequence_overflow",
        description="Sequences close to their maximum value",
        topology="primary_only",
        skipped=True,
        skip_reason="no primary known",
    ))

    return report


@pytest.fixture
def sized_index() -> IndexWithSize:
    return IndexWithSize("orders", "i_orders_customer", 32768)
