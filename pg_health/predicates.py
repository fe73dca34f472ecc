"""Exclusion predicates for diagnostic results.

Every predicate takes a domain object and returns True when the object must be
left out of the results.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable

from pg_health.context import PgContext, not_negative, valid_percent
from pg_health.models import (
    DbObject,
    DuplicatedForeignKeys,
    DuplicatedIndexes,
    IndexWithSize,
    Table,
)

ExclusionPredicate = Callable[[DbObject], bool]

FLYWAY_TABLES = ("flyway_schema_history",)
LIQUIBASE_TABLES = ("databasechangelog", "databasechangeloglock")


def _names(names: str | Iterable[str], argument_name: str) -> frozenset[str]:
    if isinstance(names, str):
        names = [names]
    result = set()
    for name in names:
        if not name or not name.strip():
            raise ValueError(f"{argument_name} cannot contain blank names")
        result.add(name.strip().lower())
    return frozenset(result)


def _qualified(context: PgContext | None, names, argument_name: str) -> frozenset[str]:
    context = context or PgContext.of_default()
    return frozenset(context.enrich_with_schema(n).lower() for n in _names(names, argument_name))


def skip_tables_by_name(context: PgContext | None, names: str | Iterable[str]) -> ExclusionPredicate:
    """Exclude objects that belong to one of the named tables."""
    to_skip = _qualified(context, names, "names")

    def predicate(obj: DbObject) -> bool:
        table_name = getattr(obj, "table_name", None)
        return table_name is not None and table_name.lower() in to_skip

    return predicate


def skip_indexes_by_name(context: PgContext | None, names: str | Iterable[str]) -> ExclusionPredicate:
    """Exclude indexes by name; a group of duplicated indexes is excluded if any member matches."""
    to_skip = _qualified(context, names, "names")

    def predicate(obj: DbObject) -> bool:
        if isinstance(obj, DuplicatedIndexes):
            return any(name.lower() in to_skip for name in obj.index_names)
        index_name = getattr(obj, "index_name", None)
        return index_name is not None and index_name.lower() in to_skip

    return predicate


def skip_by_sequence_name(context: PgContext | None, names: str | Iterable[str]) -> ExclusionPredicate:
    to_skip = _qualified(context, names, "names")

    def predicate(obj: DbObject) -> bool:
        sequence_name = getattr(obj, "sequence_name", None)
        return bool(sequence_name) and sequence_name.lower() in to_skip

    return predicate


def skip_by_column_name(names: str | Iterable[str]) -> ExclusionPredicate:
    """Exclude columns by name, and objects whose column list contains one of them."""
    to_skip = _names(names, "names")

    def predicate(obj: DbObject) -> bool:
        column_name = getattr(obj, "column_name", None)
        if column_name is not None:
            return column_name.lower() in to_skip
        return any(c.column_name.lower() in to_skip for c in getattr(obj, "columns", ()))

    return predicate


def skip_by_constraint_name(names: str | Iterable[str]) -> ExclusionPredicate:
    to_skip = _names(names, "names")

    def predicate(obj: DbObject) -> bool:
        if isinstance(obj, DuplicatedForeignKeys):
            return any(fk.constraint_name.lower() in to_skip for fk in obj.foreign_keys)
        constraint_name = getattr(obj, "constraint_name", None)
        return constraint_name is not None and constraint_name.lower() in to_skip

    return predicate


def skip_db_objects_by_name(names: str | Iterable[str]) -> ExclusionPredicate:
    """Exclude objects by their fully qualified name, whatever their type."""
    to_skip = _names(names, "names")
    return lambda obj: obj.name.lower() in to_skip


def skip_small_tables(threshold: int) -> ExclusionPredicate:
    """Exclude tables smaller than ``threshold`` bytes."""
    threshold = not_negative(threshold, "threshold")
    return lambda obj: isinstance(obj, Table) and obj.table_size < threshold


def skip_small_indexes(threshold: int) -> ExclusionPredicate:
    """Exclude indexes smaller than ``threshold`` bytes; duplicates are measured by their total size."""
    threshold = not_negative(threshold, "threshold")

    def predicate(obj: DbObject) -> bool:
        if isinstance(obj, DuplicatedIndexes):
            return obj.total_size < threshold
        return isinstance(obj, IndexWithSize) and obj.index_size < threshold

    return predicate


def skip_bloat_under_threshold(size_threshold: int, percentage_threshold: float) -> ExclusionPredicate:
    """Exclude bloated objects under either threshold. Objects without bloat figures pass."""
    size_threshold = not_negative(size_threshold, "size_threshold")
    percentage_threshold = valid_percent(percentage_threshold, "percentage_threshold")

    def predicate(obj: DbObject) -> bool:
        if size_threshold == 0 and percentage_threshold == 0.0:
            return False
        if not hasattr(obj, "bloat_size") or not hasattr(obj, "bloat_percentage"):
            return False
        return obj.bloat_size < size_threshold or obj.bloat_percentage < percentage_threshold

    return predicate


def skip_flyway_tables(context: PgContext | None = None) -> ExclusionPredicate:
    return skip_tables_by_name(context, FLYWAY_TABLES)


def skip_liquibase_tables(context: PgContext | None = None) -> ExclusionPredicate:
    return skip_tables_by_name(context, LIQUIBASE_TABLES)


def any_of(*predicates: ExclusionPredicate | None) -> ExclusionPredicate | None:
    """Combine predicates; an object is excluded if any of them excludes it."""
    predicates = tuple(p for p in predicates if p is not None)
    if not predicates:
        return None
    if len(predicates) == 1:
        return predicates[0]
    return lambda obj: any(p(obj) for p in predicates)
