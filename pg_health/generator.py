"""Generate migrations that create the missing indexes on foreign keys."""

from __future__ import annotations

import enum
from collections.abc import Iterable
from dataclasses import dataclass

from pg_health.models import ForeignKey

# See https://www.postgresql.org/docs/current/limits.html
MAX_IDENTIFIER_LENGTH = 63

_DELIMITER = "_"
_IDX = "idx"
_WITHOUT_NULLS = "without_nulls"


class IdxPosition(enum.Enum):
    PREFIX = "prefix"
    SUFFIX = "suffix"
    NONE = "none"


@dataclass(frozen=True)
class GeneratingOptions:
    """How the ``create index`` statements are written.

    Attributes:
        concurrently: Build indexes without locking the table.
        exclude_nulls: Add ``where <column> is not null`` for nullable columns.
        break_lines: Put the ``on <table>`` clause on its own indented line.
        indentation: Spaces before the ``on`` clause, 0 to 8.
        uppercase_for_keywords: Write SQL keywords in capitals.
        name_without_nulls: Mark partial indexes with ``without_nulls`` in the name.
        idx_position: Where ``idx`` goes in the generated index name.
    """

    concurrently: bool = True
    exclude_nulls: bool = True
    break_lines: bool = True
    indentation: int = 4
    uppercase_for_keywords: bool = False
    name_without_nulls: bool = True
    idx_position: IdxPosition = IdxPosition.SUFFIX

    def __post_init__(self):
        if not 0 <= self.indentation <= 8:
            raise ValueError("indentation should be in the range [0, 8]")
        if not isinstance(self.idx_position, IdxPosition):
            raise TypeError(f"idx_position must be an IdxPosition, got {type(self.idx_position).__name__}")

    @property
    def needs_idx(self) -> bool:
        return self.idx_position is not IdxPosition.NONE


def _java_string_hash(value: str) -> int:
    # Stable across processes, unlike hash(); matches names generated by other pg-index-health tools.
    h = 0
    for ch in value:
        h = (31 * h + ord(ch)) & 0xFFFFFFFF
    return h - 0x100000000 if h >= 0x80000000 else h


class IndexNameGenerator:
    """Build a name for an index covering the columns of a foreign key."""

    def __init__(self, foreign_key: ForeignKey, options: GeneratingOptions):
        self.options = options
        self.table_name = foreign_key.table_name.partition(".")[2] or foreign_key.table_name
        self.columns_part = _DELIMITER.join(c.column_name for c in foreign_key.columns)
        self.add_without_nulls = (
            options.name_without_nulls
            and options.exclude_nulls
            and any(c.nullable for c in foreign_key.columns)
        )

    def full_name(self) -> str:
        return self._with_idx(self._with_without_nulls(self._main_part()))

    def truncated_name(self) -> str:
        """Return a name that fits into ``MAX_IDENTIFIER_LENGTH``."""
        remaining = MAX_IDENTIFIER_LENGTH
        if self.options.needs_idx:
            remaining -= len(_IDX) + len(_DELIMITER)

        main_part = self._main_part()
        if len(main_part) > remaining:
            h = _java_string_hash(self.columns_part)
            columns_part = f"n{abs(h)}" if h < 0 else str(h)
            remaining -= len(_DELIMITER) + len(columns_part)
            name = self.table_name[:remaining] + _DELIMITER + columns_part
            remaining -= len(self.table_name)
        else:
            name = main_part
            remaining -= len(main_part)

        if remaining > len(_WITHOUT_NULLS):
            name = self._with_without_nulls(name)
        return self._with_idx(name)

    def _main_part(self) -> str:
        return self.table_name + _DELIMITER + self.columns_part

    def _with_without_nulls(self, name: str) -> str:
        return name + _DELIMITER + _WITHOUT_NULLS if self.add_without_nulls else name

    def _with_idx(self, name: str) -> str:
        if self.options.idx_position is IdxPosition.SUFFIX:
            return name + _DELIMITER + _IDX
        if self.options.idx_position is IdxPosition.PREFIX:
            return _IDX + _DELIMITER + name
        return name


def generate_index_on_foreign_key(foreign_key: ForeignKey, options: GeneratingOptions | None = None) -> str:
    """Return a ``create index if not exists`` statement covering the foreign key columns.

    A name longer than ``MAX_IDENTIFIER_LENGTH`` is truncated, and the full
    name is kept in a leading comment.
    """
    if not isinstance(foreign_key, ForeignKey):
        raise TypeError(f"Expected ForeignKey, got {type(foreign_key).__name__}")
    options = options or GeneratingOptions()
    names = IndexNameGenerator(foreign_key, options)

    def kw(keyword: str) -> str:
        return keyword.upper() if options.uppercase_for_keywords else keyword

    separator = "\n" if options.break_lines else " "
    parts = []
    full_name = names.full_name()
    truncate = len(full_name) > MAX_IDENTIFIER_LENGTH
    if truncate:
        parts.append(f"/* {full_name} */{separator}")

    parts.append(kw("create index "))
    if options.concurrently:
        parts.append(kw("concurrently "))
    parts.append(kw("if not exists "))
    parts.append(names.truncated_name() if truncate else full_name)
    parts.append(separator)
    if options.break_lines:
        parts.append(" " * options.indentation)
    parts.append(kw("on ") + foreign_key.table_name)
    parts.append(" (" + ", ".join(c.column_name for c in foreign_key.columns) + ")")

    nullable = [c.column_name for c in foreign_key.columns if c.nullable]
    if options.exclude_nulls and nullable:
        parts.append(kw(" where ") + " and ".join(name + kw(" is not null") for name in nullable))
    return "".join(parts) + ";"


def generate_migrations(
    foreign_keys: Iterable[ForeignKey], options: GeneratingOptions | None = None
) -> list[str]:
    """One statement per foreign key, in input order, without repeats."""
    statements = []
    for foreign_key in foreign_keys:
        statement = generate_index_on_foreign_key(foreign_key, options)
        if statement not in statements:
            statements.append(statement)
    return statements
