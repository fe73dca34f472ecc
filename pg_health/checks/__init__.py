"""Run diagnostics against one host or a whole cluster."""

from pg_health.checks.cluster import run_on_cluster
from pg_health.checks.host import run_on_host

__all__ = ["run_on_cluster", "run_on_host"]
