"""Map raw result rows to domain objects, one extractor per result type."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

from pg_health.context import PgContext
from pg_health.errors import ExtractionError
from pg_health.models import (
    AnyObject,
    Column,
    ColumnWithSerialType,
    ColumnWithType,
    Constraint,
    DbObject,
    DuplicatedForeignKeys,
    DuplicatedIndexes,
    ForeignKey,
    Index,
    IndexWithBloat,
    IndexWithColumns,
    IndexWithSize,
    PgObjectType,
    SequenceState,
    StoredFunction,
    Table,
    TableWithBloat,
    TableWithColumns,
    TableWithMissingIndex,
    UnusedIndex,
)

Extractor = Callable[[Mapping[str, Any], PgContext], DbObject]

_EXTRACTORS: dict[type, Extractor] = {}


def get_extractor(result_type: type) -> Extractor:
    """Return the row extractor registered for a domain object class.

    Raises:
        KeyError: if nothing is registered for ``result_type``.
    """
    try:
        return _EXTRACTORS[result_type]
    except KeyError:
        raise KeyError(f"No extractor registered for {result_type.__name__}") from None


def extractor(result_type: type):
    """Register a row extractor; shape errors surface as ExtractionError."""

    def decorator(func):
        def extract(row: Mapping[str, Any], context: PgContext) -> DbObject:
            try:
                return func(row, context)
            except ExtractionError:
                raise
            except (KeyError, TypeError, ValueError, AttributeError) as exc:
                raise ExtractionError(
                    f"Cannot extract {result_type.__name__} from row: {exc}", row=row
                ) from exc

        extract.__name__ = func.__name__
        extract.__doc__ = func.__doc__
        _EXTRACTORS[result_type] = extract
        return extract

    return decorator


# -- Column helpers -----------------------------------------------------------


def _text(row: Mapping[str, Any], key: str) -> str:
    if key not in row:
        raise ExtractionError(f"Missing column '{key}'", row=row)
    value = row[key]
    if not isinstance(value, str):
        raise ExtractionError(f"Column '{key}' should be text, got {type(value).__name__}", row=row)
    return value


def _int(row: Mapping[str, Any], key: str) -> int:
    if key not in row:
        raise ExtractionError(f"Missing column '{key}'", row=row)
    value = row[key]
    if value is None:
        return 0
    if isinstance(value, bool):
        raise ExtractionError(f"Column '{key}' should be numeric, got bool", row=row)
    return int(value)


def _float(row: Mapping[str, Any], key: str) -> float:
    if key not in row:
        raise ExtractionError(f"Missing column '{key}'", row=row)
    value = row[key]
    if value is None or isinstance(value, bool):
        raise ExtractionError(f"Column '{key}' should be numeric, got {value!r}", row=row)
    return float(value)


def _bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in ("t", "true"):
        return True
    if isinstance(value, str) and value.lower() in ("f", "false"):
        return False
    raise ValueError(f"not a boolean: {value!r}")


def _array(row: Mapping[str, Any], key: str) -> list:
    if key not in row:
        raise ExtractionError(f"Missing column '{key}'", row=row)
    value = row[key]
    if not isinstance(value, (list, tuple)):
        raise ExtractionError(f"Column '{key}' should be an array, got {type(value).__name__}", row=row)
    return list(value)


def parse_columns(table_name: str, raw_columns: list[str]) -> tuple[Column, ...]:
    """Parse ``"column_name,true"`` pairs as aggregated by the index and key queries."""
    columns = []
    for raw in raw_columns:
        column_name, sep, not_null = raw.rpartition(",")
        if not sep:
            raise ValueError(f"malformed column entry: {raw!r}")
        columns.append(Column(table_name, column_name, _bool(not_null)))
    return tuple(columns)


def _table_name(row, context) -> str:
    return context.enrich_with_schema(_text(row, "table_name"))


def _column(row, context) -> Column:
    return Column(_table_name(row, context), _text(row, "column_name"), _bool(row["column_not_null"]))


# -- Tables -------------------------------------------------------------------


@extractor(Table)
def extract_table(row, context):
    return Table(_table_name(row, context), _int(row, "table_size"))


@extractor(TableWithBloat)
def extract_table_with_bloat(row, context):
    return TableWithBloat(
        _table_name(row, context),
        _int(row, "table_size"),
        _int(row, "bloat_size"),
        _float(row, "bloat_percentage"),
    )


@extractor(TableWithMissingIndex)
def extract_table_with_missing_index(row, context):
    return TableWithMissingIndex(
        _table_name(row, context),
        _int(row, "table_size"),
        _int(row, "seq_scans"),
        _int(row, "index_scans"),
    )


@extractor(TableWithColumns)
def extract_table_with_columns(row, context):
    table_name = _table_name(row, context)
    return TableWithColumns(
        table_name,
        _int(row, "table_size"),
        parse_columns(table_name, _array(row, "columns")),
    )


# -- Columns ------------------------------------------------------------------


@extractor(Column)
def extract_column(row, context):
    return _column(row, context)


@extractor(ColumnWithType)
def extract_column_with_type(row, context):
    column = _column(row, context)
    return ColumnWithType(column.table_name, column.column_name, column.not_null, _text(row, "column_type"))


@extractor(ColumnWithSerialType)
def extract_column_with_serial_type(row, context):
    column = _column(row, context)
    return ColumnWithSerialType(
        column.table_name,
        column.column_name,
        column.not_null,
        _text(row, "column_type"),
        context.enrich_with_schema(_text(row, "sequence_name")),
    )


# -- Indexes ------------------------------------------------------------------


def _index_args(row, context) -> tuple[str, str]:
    return _table_name(row, context), context.enrich_with_schema(_text(row, "index_name"))


@extractor(Index)
def extract_index(row, context):
    return Index(*_index_args(row, context))


@extractor(IndexWithBloat)
def extract_index_with_bloat(row, context):
    return IndexWithBloat(
        *_index_args(row, context),
        _int(row, "index_size"),
        _int(row, "bloat_size"),
        _float(row, "bloat_percentage"),
    )


@extractor(UnusedIndex)
def extract_unused_index(row, context):
    return UnusedIndex(*_index_args(row, context), _int(row, "index_size"), _int(row, "index_scans"))


@extractor(IndexWithColumns)
def extract_index_with_columns(row, context):
    table_name, index_name = _index_args(row, context)
    return IndexWithColumns(
        table_name,
        index_name,
        _int(row, "index_size"),
        parse_columns(table_name, _array(row, "columns")),
    )


@extractor(DuplicatedIndexes)
def extract_duplicated_indexes(row, context):
    table_name = _table_name(row, context)
    names = _array(row, "index_names")
    sizes = _array(row, "index_sizes")
    if len(names) != len(sizes):
        raise ExtractionError("index_names and index_sizes differ in length", row=row)
    indexes = tuple(
        IndexWithSize(table_name, context.enrich_with_schema(name), int(size or 0))
        for name, size in zip(names, sizes)
    )
    return DuplicatedIndexes(table_name, indexes)


# -- Constraints --------------------------------------------------------------


@extractor(Constraint)
def extract_constraint(row, context):
    return Constraint(_table_name(row, context), _text(row, "constraint_name"), _text(row, "constraint_type"))


def _foreign_key(row, context, prefix: str = "") -> ForeignKey:
    table_name = _table_name(row, context)
    name_key = f"{prefix}constraint_name" if prefix else "constraint_name"
    columns_key = f"{prefix}columns" if prefix else "columns"
    return ForeignKey(
        table_name,
        _text(row, name_key),
        columns=parse_columns(table_name, _array(row, columns_key)),
    )


@extractor(ForeignKey)
def extract_foreign_key(row, context):
    return _foreign_key(row, context)


@extractor(DuplicatedForeignKeys)
def extract_duplicated_foreign_keys(row, context):
    first = _foreign_key(row, context)
    second = _foreign_key(row, context, prefix="duplicate_")
    return DuplicatedForeignKeys(first.table_name, (first, second))


# -- Other objects ------------------------------------------------------------


@extractor(StoredFunction)
def extract_stored_function(row, context):
    signature = row.get("function_signature") or ""
    return StoredFunction(context.enrich_with_schema(_text(row, "function_name")), signature)


@extractor(SequenceState)
def extract_sequence_state(row, context):
    return SequenceState(
        context.enrich_with_schema(_text(row, "sequence_name")),
        _text(row, "data_type"),
        _float(row, "remaining_percentage"),
    )


@extractor(AnyObject)
def extract_any_object(row, context):
    object_type = PgObjectType(_text(row, "object_type"))
    name = _text(row, "object_name")
    # Constraint names are table-scoped and stay unqualified.
    if object_type is not PgObjectType.CONSTRAINT:
        name = context.enrich_with_schema(name)
    return AnyObject(name, object_type)
