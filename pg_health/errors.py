"""Exception types raised by the diagnostic engine."""

from __future__ import annotations

from collections.abc import Sequence


class PgHealthError(Exception):
    """Base class for all pg-health failures."""


class ConnectivityError(PgHealthError):
    """A node is unreachable or its connection was lost mid-query."""

    def __init__(self, message: str, host: str = ""):
        super().__init__(message)
        self.host = host


class QueryExecutionError(PgHealthError):
    """The database rejected or failed on a rendered diagnostic query."""

    def __init__(self, diagnostic: str, host: str, message: str):
        super().__init__(f"Diagnostic '{diagnostic}' failed on host '{host or '?'}': {message}")
        self.diagnostic = diagnostic
        self.host = host


class ExtractionError(PgHealthError):
    """A result row did not have the shape its extractor expects."""

    def __init__(self, message: str, diagnostic: str = "", row: object = None):
        prefix = f"Diagnostic '{diagnostic}': " if diagnostic else ""
        super().__init__(prefix + message)
        self.diagnostic = diagnostic
        self.row = row


class ClusterUnavailableError(PgHealthError):
    """A diagnostic that must query every node could not reach all of them."""

    def __init__(self, diagnostic: str, hosts: Sequence[str], message: str = ""):
        detail = message or "required hosts are unreachable"
        super().__init__(f"Diagnostic '{diagnostic}': {detail} ({', '.join(hosts) or 'no hosts'})")
        self.diagnostic = diagnostic
        self.hosts = list(hosts)


class CancellationError(PgHealthError):
    """The caller cancelled the check or its timeout expired."""
