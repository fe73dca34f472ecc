"""Bind a context's values into a diagnostic's query."""

from __future__ import annotations

from typing import Any

from pg_health.context import PgContext
from pg_health.diagnostics import Diagnostic
from pg_health.sql_templates import get_query


def render(diagnostic: Diagnostic, context: PgContext) -> tuple[str, dict[str, Any]]:
    """Return the query text and the named parameters for one execution.

    Values are passed to psycopg2 as bound parameters and never formatted into
    the SQL text. Only the parameters the diagnostic declares are included.
    """
    sql = get_query(diagnostic.sql_file)
    params = {name: getattr(context, name) for name in diagnostic.params.names}
    return sql, params
