"""Run one diagnostic against a single database connection."""

from __future__ import annotations

import logging
from collections.abc import Callable

import psycopg2
import psycopg2.extensions
import psycopg2.extras

from pg_health.context import PgContext
from pg_health.diagnostics import Diagnostic
from pg_health.errors import (
    CancellationError,
    ConnectivityError,
    ExtractionError,
    QueryExecutionError,
)
from pg_health.extractors import get_extractor
from pg_health.models import DbObject
from pg_health.registry import get_diagnostic
from pg_health.templating import render

logger = logging.getLogger(__name__)

ExclusionPredicate = Callable[[DbObject], bool]


def run_on_host(
    diagnostic: Diagnostic | str,
    connection,
    context: PgContext | None = None,
    exclude: ExclusionPredicate | None = None,
    *,
    host: str = "",
) -> list[DbObject]:
    """Execute a diagnostic on one connection and return the objects it found.

    Args:
        diagnostic: Catalog entry or its name.
        connection: Open psycopg2 connection.
        context: Schema and thresholds to bind; the default context if omitted.
        exclude: Objects for which this returns True are dropped.
        host: Node name used in log and error messages.

    Returns:
        Domain objects in query row order. An empty list means nothing was found.

    Raises:
        CancellationError: The query was cancelled on the server.
        ConnectivityError: The connection is closed or was lost.
        QueryExecutionError: The server rejected the query.
        ExtractionError: A row did not have the expected shape.
    """
    diagnostic = get_diagnostic(diagnostic)
    context = context or PgContext.of_default()
    sql, params = render(diagnostic, context)
    extract = get_extractor(diagnostic.result_type)

    logger.debug("Running %s on %s with %s", diagnostic.name, host or "?", context)
    try:
        with connection.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
            cur.execute(sql, params)
            rows = cur.fetchall()
    except psycopg2.extensions.QueryCanceledError as e:
        raise CancellationError(f"Diagnostic '{diagnostic.name}' was cancelled on {host or '?'}") from e
    except (psycopg2.OperationalError, psycopg2.InterfaceError) as e:
        raise ConnectivityError(f"Lost connection to {host or '?'}: {str(e).strip()}", host) from e
    except psycopg2.Error as e:
        raise QueryExecutionError(diagnostic.name, host, str(e).strip()) from e

    objects = []
    for row in rows:
        try:
            obj = extract(row, context)
        except ExtractionError as e:
            raise ExtractionError(str(e), diagnostic=diagnostic.name, row=row) from e
        if exclude is not None and exclude(obj):
            continue
        objects.append(obj)
    logger.debug("%s on %s returned %d object(s)", diagnostic.name, host or "?", len(objects))
    return objects
