"""Packaged SQL query files for the diagnostic catalog."""

from __future__ import annotations

import functools
from pathlib import Path

SQL_DIR = Path(__file__).parent / "sql"


@functools.lru_cache(maxsize=None)
def get_query(sql_file: str) -> str:
    """Return the text of a packaged query file.

    Raises:
        FileNotFoundError: if no query file has that name.
    """
    path = SQL_DIR / sql_file
    if path.parent != SQL_DIR or not path.is_file():
        raise FileNotFoundError(f"No SQL query file named '{sql_file}' in {SQL_DIR}")
    return path.read_text(encoding="utf-8")


def available_queries() -> list[str]:
    return sorted(p.name for p in SQL_DIR.glob("*.sql"))
