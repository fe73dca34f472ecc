"""Statistics reset information needed to interpret runtime diagnostics."""

from __future__ import annotations

from datetime import datetime, timezone


def get_last_stats_reset(conn) -> datetime | None:
    """Return when statistics of the current database were last reset, if ever."""
    with conn.cursor() as cur:
        cur.execute(
            "SELECT stats_reset FROM pg_catalog.pg_stat_database WHERE datname = current_database()"
        )
        row = cur.fetchone()
    return row[0] if row else None


def stats_reset_message(host: str, reset_at: datetime | None, now: datetime | None = None) -> str:
    """Describe how much history runtime diagnostics on ``host`` are based on."""
    if reset_at is None:
        return f"Statistics on {host} have never been reset"
    now = now or datetime.now(timezone.utc)
    days = max((now - reset_at).days, 0)
    return f"Statistics on {host} were last reset at {reset_at.isoformat()} ({days} day(s) ago)"
