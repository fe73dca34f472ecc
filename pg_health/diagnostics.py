"""Catalog of structural diagnostics and their execution metadata."""

from __future__ import annotations

import enum
from dataclasses import dataclass

from pg_health.models import (
    AnyObject,
    Column,
    ColumnWithSerialType,
    ColumnWithType,
    Constraint,
    DuplicatedForeignKeys,
    DuplicatedIndexes,
    ForeignKey,
    Index,
    IndexWithBloat,
    IndexWithColumns,
    SequenceState,
    StoredFunction,
    Table,
    TableWithBloat,
    TableWithColumns,
    TableWithMissingIndex,
    UnusedIndex,
)


class ExecutionTopology(enum.Enum):
    """Which cluster nodes a diagnostic must be run against."""

    ANY_NODE = "any_node"
    PRIMARY_ONLY = "primary_only"
    ALL_NODES_UNION = "all_nodes_union"


class QueryParams(enum.Enum):
    """Context values bound into a diagnostic's query."""

    SCHEMA = ("schema_name",)
    BLOAT = ("schema_name", "bloat_percentage_threshold")
    REMAINING = ("schema_name", "remaining_percentage_threshold")

    @property
    def names(self) -> tuple[str, ...]:
        return self.value


@dataclass(frozen=True)
class Diagnostic:
    """One catalog entry.

    Attributes:
        name: Unique, stable, lower-case identifier.
        sql_file: Name of the query file in the template store.
        static: Meaningful on an empty database (structure only).
        runtime: Needs live statistics from a database under load.
        topology: Nodes the diagnostic must be run against.
        params: Context values the query binds.
        result_type: Domain object class produced for each row.
        description: Human-readable summary.
    """

    name: str
    sql_file: str
    static: bool
    runtime: bool
    topology: ExecutionTopology
    params: QueryParams
    result_type: type
    description: str

    def __post_init__(self):
        if not (self.static or self.runtime):
            raise ValueError(f"Diagnostic '{self.name}' must be static, runtime or both")
        if self.topology is ExecutionTopology.ALL_NODES_UNION and not self.runtime:
            raise ValueError(f"Diagnostic '{self.name}' runs on all nodes and must be runtime")

    @property
    def is_across_cluster(self) -> bool:
        return self.topology is ExecutionTopology.ALL_NODES_UNION

    @property
    def kind(self) -> str:
        if self.static and self.runtime:
            return "both"
        return "static" if self.static else "runtime"

    def __str__(self):
        return self.name


# -- Constructor helpers ------------------------------------------------------


def _static(name, result_type, description, topology=ExecutionTopology.PRIMARY_ONLY):
    return Diagnostic(name, name + ".sql", True, False, topology, QueryParams.SCHEMA, result_type, description)


def _runtime(name, result_type, description, topology=ExecutionTopology.PRIMARY_ONLY, params=QueryParams.SCHEMA):
    return Diagnostic(name, name + ".sql", False, True, topology, params, result_type, description)


def _both(name, result_type, description):
    return Diagnostic(
        name, name + ".sql", True, True, ExecutionTopology.PRIMARY_ONLY, QueryParams.SCHEMA, result_type, description
    )


def _bloat(name, result_type, description):
    return _runtime(name, result_type, description, params=QueryParams.BLOAT)


def _remaining(name, result_type, description):
    return _runtime(name, result_type, description, params=QueryParams.REMAINING)


def _cluster(name, result_type, description):
    return _runtime(name, result_type, description, topology=ExecutionTopology.ALL_NODES_UNION)


def _any_node(name, result_type, description):
    return _static(name, result_type, description, topology=ExecutionTopology.ANY_NODE)


# -- Catalog ------------------------------------------------------------------

CATALOG: tuple[Diagnostic, ...] = (
    _bloat("bloated_indexes", IndexWithBloat, "Indexes whose bloat exceeds the threshold"),
    _bloat("bloated_tables", TableWithBloat, "Tables whose bloat exceeds the threshold"),
    _static("duplicated_indexes", DuplicatedIndexes, "Indexes that completely duplicate each other"),
    _static("foreign_keys_without_index", ForeignKey, "Foreign keys not covered by an index"),
    _static("indexes_with_null_values", IndexWithColumns, "Indexes on nullable columns"),
    _static("intersected_indexes", DuplicatedIndexes, "Indexes that partially cover each other"),
    _both("invalid_indexes", Index, "Indexes left invalid by a failed concurrent build"),
    _cluster("tables_with_missing_indexes", TableWithMissingIndex, "Tables read mostly by sequential scans"),
    _static("tables_without_primary_key", Table, "Tables without a primary key"),
    _cluster("unused_indexes", UnusedIndex, "Indexes that are never or rarely scanned"),
    _any_node("tables_without_description", Table, "Tables without a comment"),
    _any_node("columns_without_description", Column, "Columns without a comment"),
    _static("columns_with_json_type", Column, "Columns of type json instead of jsonb"),
    _static("columns_with_serial_types", ColumnWithSerialType, "Non-primary-key columns of serial types"),
    _any_node("functions_without_description", StoredFunction, "Functions and procedures without a comment"),
    _static("indexes_with_boolean", IndexWithColumns, "Indexes containing boolean columns"),
    _both("not_valid_constraints", Constraint, "Constraints created NOT VALID and never validated"),
    _static("btree_indexes_on_array_columns", IndexWithColumns, "B-tree indexes on array columns"),
    _remaining("sequence_overflow", SequenceState, "Sequences close to their maximum value"),
    _static("primary_keys_with_serial_types", ColumnWithSerialType, "Primary keys of serial types"),
    _static("duplicated_foreign_keys", DuplicatedForeignKeys, "Foreign keys that completely duplicate each other"),
    _static("intersected_foreign_keys", DuplicatedForeignKeys, "Foreign keys that partially cover each other"),
    _any_node("possible_object_name_overflow", AnyObject, "Object names at the identifier length limit"),
    _static("tables_not_linked_to_others", Table, "Tables without foreign keys in or out"),
    _static(
        "foreign_keys_with_unmatched_column_type",
        ForeignKey,
        "Foreign keys whose column types differ from the referenced columns",
    ),
    _static("tables_with_zero_or_one_column", TableWithColumns, "Tables with at most one column"),
    _any_node(
        "objects_not_following_naming_convention", AnyObject, "Objects whose names need quoting or break conventions"
    ),
    _any_node(
        "columns_not_following_naming_convention", Column, "Columns whose names need quoting or break conventions"
    ),
    _static("primary_keys_with_varchar", IndexWithColumns, "Primary keys on varchar columns"),
    _static("columns_with_fixed_length_varchar", Column, "Columns declared as varchar(n)"),
    _static(
        "indexes_with_unnecessary_where_clause",
        IndexWithColumns,
        "Partial indexes filtering NULLs on a NOT NULL column",
    ),
    _static(
        "primary_keys_that_most_likely_natural_keys",
        IndexWithColumns,
        "Primary keys built on business columns",
    ),
    _static("columns_with_money_type", Column, "Columns of type money"),
    _static(
        "indexes_with_timestamp_in_the_middle",
        IndexWithColumns,
        "Multi-column indexes with a timestamp column not in last position",
    ),
    _static(
        "columns_with_timestamp_or_timetz_type",
        ColumnWithType,
        "Columns of type timestamp or timetz instead of timestamptz",
    ),
    _static(
        "tables_where_primary_key_columns_not_first",
        Table,
        "Tables whose primary key columns are not declared first",
    ),
    _static(
        "tables_where_all_columns_nullable_except_pk",
        Table,
        "Tables where every column except the primary key is nullable",
    ),
)
