"""Data models for database objects found by diagnostics and for scan results."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import ClassVar

from pg_health.context import not_blank, not_negative, valid_percent


class PgObjectType(enum.Enum):
    TABLE = "table"
    INDEX = "index"
    COLUMN = "column"
    CONSTRAINT = "constraint"
    SEQUENCE = "sequence"
    FUNCTION = "function"
    PROCEDURE = "procedure"
    VIEW = "view"
    MATERIALIZED_VIEW = "materialized view"


class DbObject:
    """Mixin for every value object produced by a diagnostic.

    ``name`` is the schema-qualified object name; ``natural_key`` identifies the
    object for deduplication and is stable across repeated runs.
    """

    @property
    def name(self) -> str:
        raise NotImplementedError

    @property
    def natural_key(self) -> tuple:
        return (type(self).__name__, self.name)


# -- Tables -------------------------------------------------------------------


@dataclass(frozen=True)
class Table(DbObject):
    object_type: ClassVar[PgObjectType] = PgObjectType.TABLE

    table_name: str
    table_size: int = 0

    def __post_init__(self):
        not_blank(self.table_name, "table_name")
        not_negative(self.table_size, "table_size")

    @property
    def name(self) -> str:
        return self.table_name


@dataclass(frozen=True)
class TableWithBloat(Table):
    bloat_size: int = 0
    bloat_percentage: float = 0.0

    def __post_init__(self):
        super().__post_init__()
        not_negative(self.bloat_size, "bloat_size")
        valid_percent(self.bloat_percentage, "bloat_percentage")


@dataclass(frozen=True)
class TableWithMissingIndex(Table):
    seq_scans: int = 0
    index_scans: int = 0

    def __post_init__(self):
        super().__post_init__()
        not_negative(self.seq_scans, "seq_scans")
        not_negative(self.index_scans, "index_scans")


@dataclass(frozen=True)
class TableWithColumns(Table):
    columns: tuple[Column, ...] = ()


# -- Columns ------------------------------------------------------------------


@dataclass(frozen=True)
class Column(DbObject):
    object_type: ClassVar[PgObjectType] = PgObjectType.COLUMN

    table_name: str
    column_name: str
    not_null: bool = False

    def __post_init__(self):
        not_blank(self.table_name, "table_name")
        not_blank(self.column_name, "column_name")

    @property
    def name(self) -> str:
        return self.column_name

    @property
    def natural_key(self) -> tuple:
        return (type(self).__name__, self.table_name, self.column_name)

    @property
    def nullable(self) -> bool:
        return not self.not_null


@dataclass(frozen=True)
class ColumnWithType(Column):
    column_type: str = ""


@dataclass(frozen=True)
class ColumnWithSerialType(Column):
    serial_type: str = ""
    sequence_name: str = ""

    def __post_init__(self):
        super().__post_init__()
        not_blank(self.serial_type, "serial_type")
        not_blank(self.sequence_name, "sequence_name")


# -- Indexes ------------------------------------------------------------------


@dataclass(frozen=True)
class Index(DbObject):
    object_type: ClassVar[PgObjectType] = PgObjectType.INDEX

    table_name: str
    index_name: str

    def __post_init__(self):
        not_blank(self.table_name, "table_name")
        not_blank(self.index_name, "index_name")

    @property
    def name(self) -> str:
        return self.index_name

    @property
    def natural_key(self) -> tuple:
        return (type(self).__name__, self.table_name, self.index_name)


@dataclass(frozen=True)
class IndexWithSize(Index):
    index_size: int = 0

    def __post_init__(self):
        super().__post_init__()
        not_negative(self.index_size, "index_size")


@dataclass(frozen=True)
class IndexWithBloat(IndexWithSize):
    bloat_size: int = 0
    bloat_percentage: float = 0.0

    def __post_init__(self):
        super().__post_init__()
        not_negative(self.bloat_size, "bloat_size")
        valid_percent(self.bloat_percentage, "bloat_percentage")


@dataclass(frozen=True)
class UnusedIndex(IndexWithSize):
    index_scans: int = 0

    def __post_init__(self):
        super().__post_init__()
        not_negative(self.index_scans, "index_scans")


@dataclass(frozen=True)
class IndexWithColumns(IndexWithSize):
    columns: tuple[Column, ...] = ()


@dataclass(frozen=True)
class DuplicatedIndexes(DbObject):
    """Two or more indexes on one table that cover each other."""

    object_type: ClassVar[PgObjectType] = PgObjectType.INDEX

    table_name: str
    indexes: tuple[IndexWithSize, ...]

    def __post_init__(self):
        not_blank(self.table_name, "table_name")
        if len(self.indexes) < 2:
            raise ValueError("indexes should contain at least two items")
        if any(i.table_name != self.table_name for i in self.indexes):
            raise ValueError("Table name is not the same within given indexes")

    @property
    def name(self) -> str:
        return ",".join(self.index_names)

    @property
    def index_names(self) -> list[str]:
        return [i.index_name for i in self.indexes]

    @property
    def total_size(self) -> int:
        return sum(i.index_size for i in self.indexes)

    @property
    def natural_key(self) -> tuple:
        return (type(self).__name__, self.table_name, tuple(self.index_names))


# -- Constraints --------------------------------------------------------------


@dataclass(frozen=True)
class Constraint(DbObject):
    object_type: ClassVar[PgObjectType] = PgObjectType.CONSTRAINT

    table_name: str
    constraint_name: str
    constraint_type: str = ""

    def __post_init__(self):
        not_blank(self.table_name, "table_name")
        not_blank(self.constraint_name, "constraint_name")

    @property
    def name(self) -> str:
        return self.constraint_name

    @property
    def natural_key(self) -> tuple:
        return (type(self).__name__, self.table_name, self.constraint_name)


@dataclass(frozen=True)
class ForeignKey(Constraint):
    constraint_type: str = "f"
    columns: tuple[Column, ...] = ()

    def __post_init__(self):
        super().__post_init__()
        if not self.columns:
            raise ValueError("columns cannot be empty")


@dataclass(frozen=True)
class DuplicatedForeignKeys(DbObject):
    object_type: ClassVar[PgObjectType] = PgObjectType.CONSTRAINT

    table_name: str
    foreign_keys: tuple[ForeignKey, ...]

    def __post_init__(self):
        not_blank(self.table_name, "table_name")
        if len(self.foreign_keys) < 2:
            raise ValueError("foreign_keys should contain at least two items")

    @property
    def name(self) -> str:
        return ",".join(fk.constraint_name for fk in self.foreign_keys)

    @property
    def natural_key(self) -> tuple:
        return (
            type(self).__name__,
            self.table_name,
            tuple(fk.constraint_name for fk in self.foreign_keys),
        )


# -- Other objects ------------------------------------------------------------


@dataclass(frozen=True)
class StoredFunction(DbObject):
    object_type: ClassVar[PgObjectType] = PgObjectType.FUNCTION

    function_name: str
    function_signature: str = ""

    def __post_init__(self):
        not_blank(self.function_name, "function_name")

    @property
    def name(self) -> str:
        return self.function_name

    @property
    def natural_key(self) -> tuple:
        # Overloaded functions share a name and differ by signature.
        return (type(self).__name__, self.function_name, self.function_signature)


@dataclass(frozen=True)
class SequenceState(DbObject):
    object_type: ClassVar[PgObjectType] = PgObjectType.SEQUENCE

    sequence_name: str
    data_type: str
    remaining_percentage: float

    def __post_init__(self):
        not_blank(self.sequence_name, "sequence_name")
        not_blank(self.data_type, "data_type")
        valid_percent(self.remaining_percentage, "remaining_percentage")

    @property
    def name(self) -> str:
        return self.sequence_name


@dataclass(frozen=True)
class AnyObject(DbObject):
    """A database object of arbitrary type, e.g. one whose name breaks a convention."""

    object_name: str
    object_type: PgObjectType

    def __post_init__(self):
        not_blank(self.object_name, "object_name")

    @property
    def name(self) -> str:
        return self.object_name

    @property
    def natural_key(self) -> tuple:
        return (type(self).__name__, self.object_type.value, self.object_name)


# -- Scan results -------------------------------------------------------------


@dataclass
class CheckResult:
    check_name: str
    description: str
    topology: str = ""
    findings: list[DbObject] = field(default_factory=list)
    error: str | None = None
    skipped: bool = False
    skip_reason: str = ""


@dataclass
class ScanReport:
    database: str
    hosts: list[str]
    timestamp: datetime
    schemas: list[str] = field(default_factory=list)
    results: list[CheckResult] = field(default_factory=list)
    pg_version: str = ""
    primary_host: str = ""

    @property
    def findings(self) -> list[DbObject]:
        all_findings = []
        for r in self.results:
            all_findings.extend(r.findings)
        return all_findings

    @property
    def checks_total(self) -> int:
        return sum(1 for r in self.results if not r.skipped)

    @property
    def checks_passed(self) -> int:
        return sum(1 for r in self.results if not r.findings and not r.error and not r.skipped)

    @property
    def checks_failed(self) -> int:
        return sum(1 for r in self.results if r.findings and not r.error)

    @property
    def checks_errored(self) -> int:
        return sum(1 for r in self.results if r.error)

    @property
    def checks_skipped(self) -> int:
        return sum(1 for r in self.results if r.skipped)
