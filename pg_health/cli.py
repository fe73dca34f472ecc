"""CLI entry point for pg-health."""

from __future__ import annotations

import argparse
import logging
import os
import sys
from datetime import datetime

from pg_health import __version__

# File extensions per output format
_FORMAT_EXT = {"json": ".json", "text": ".txt"}

_KNOWN_COMMANDS = {"scan", "list-checks"}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pg-health",
        description="Check a PostgreSQL database or cluster for structural problems.",
    )
    parser.add_argument("--version", action="version", version=f"pg-health {__version__}")

    subparsers = parser.add_subparsers(dest="command", help="Available commands (default: scan)")

    # -- scan --
    scan_parser = subparsers.add_parser("scan", help="Run diagnostics against a database or cluster")
    _add_connection_args(scan_parser)
    _add_scope_args(scan_parser)
    _add_output_args(scan_parser)
    scan_parser.add_argument("--config", "-c", help="Path to pg-health.yaml (default: search cwd, then home)")
    scan_parser.add_argument(
        "--verbose", "-v", action="count", default=0, help="Print progress (-vv for debug logging)"
    )

    # -- list-checks --
    list_parser = subparsers.add_parser("list-checks", help="List all available diagnostics")
    list_parser.add_argument(
        "--mode",
        choices=["static", "runtime", "all"],
        default="all",
        help="Filter diagnostics by kind (default: all)",
    )

    return parser


def _add_connection_args(parser: argparse.ArgumentParser):
    grp = parser.add_argument_group("connection")
    grp.add_argument(
        "--dsn",
        help="Connection URI; several hosts allowed (postgresql://h1:5432,h2:5432/db)",
    )
    grp.add_argument(
        "--host",
        "-H",
        action="append",
        default=None,
        help="Database host as host or host:port; repeat for each cluster node",
    )
    grp.add_argument("--port", "-p", type=int, default=5432, help="Database port (default: 5432)")
    grp.add_argument("--dbname", "-d", default=None, help="Database name")
    grp.add_argument("--user", "-U", default=None, help="Database user")
    grp.add_argument("--password", "-W", default=None, help="Database password")


def _add_scope_args(parser: argparse.ArgumentParser):
    grp = parser.add_argument_group("scope")
    grp.add_argument("--schemas", help="Comma-separated list of schemas to check (default: public)")
    grp.add_argument("--bloat-threshold", type=float, default=None, help="Minimal bloat percentage to report")
    grp.add_argument(
        "--remaining-threshold",
        type=float,
        default=None,
        help="Report sequences with less remaining capacity (percent)",
    )
    grp.add_argument(
        "--mode",
        choices=["static", "runtime", "all"],
        default="all",
        help="Which diagnostics to run (default: all)",
    )
    grp.add_argument("--exclude", help="Comma-separated diagnostic names to skip")
    grp.add_argument("--include-only", help="Comma-separated diagnostic names to run exclusively")
    grp.add_argument("--timeout", type=float, default=None, help="Seconds allowed per diagnostic")
    grp.add_argument("--no-parallel", action="store_true", help="Query cluster nodes one at a time")


def _add_output_args(parser: argparse.ArgumentParser):
    grp = parser.add_argument_group("output")
    grp.add_argument(
        "--format",
        "-f",
        choices=["text", "json"],
        default="text",
        help="Report format (default: text)",
    )
    grp.add_argument(
        "--output",
        "-o",
        help="Output file path (default: stdout for text, ./reports/<dbname>_<timestamp>.json for json)",
    )


def main(argv: list[str] | None = None):
    parser = build_parser()

    # Default to "scan" when no subcommand is given but arguments are present
    raw_args = argv if argv is not None else sys.argv[1:]
    if raw_args and raw_args[0] not in _KNOWN_COMMANDS and raw_args[0] not in ("--version", "--help", "-h"):
        raw_args = ["scan"] + list(raw_args)
    elif not raw_args:
        parser.print_help()
        sys.exit(1)

    args = parser.parse_args(raw_args)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    if args.command == "list-checks":
        _cmd_list_checks(args)
    elif args.command == "scan":
        _cmd_scan(args)


def _cmd_list_checks(args):
    from pg_health.registry import select_diagnostics

    kind = args.mode if args.mode != "all" else None
    diagnostics = select_diagnostics(kind=kind)

    if not diagnostics:
        print("No diagnostics found.")
        return

    for group in ("static", "runtime", "both"):
        members = [d for d in diagnostics if d.kind == group]
        if not members:
            continue
        print(f"\n[{group}]")
        for d in members:
            print(f"  {d.name:45s} {d.topology.value:16s} {d.description}")


def _split(value: str | None) -> list[str] | None:
    if value is None:
        return None
    return [v.strip() for v in value.split(",") if v.strip()]


def _configure_logging(verbosity: int):
    level = logging.WARNING
    if verbosity >= 2:
        level = logging.DEBUG
    elif verbosity == 1:
        level = logging.INFO
    logging.basicConfig(level=level, stream=sys.stderr, format="%(levelname)s %(name)s: %(message)s")


def _cmd_scan(args):
    from pg_health.config import load_config, merge_cli_with_config
    from pg_health.connection import close_cluster
    from pg_health.errors import ConnectivityError
    from pg_health.predicates import any_of
    from pg_health.registry import all_diagnostics, select_diagnostics
    from pg_health.scanner import run_scan

    _configure_logging(args.verbose)

    try:
        config = load_config(args.config)
        exclude = set(_split(args.exclude) or [])
        include_only = _split(args.include_only)
        check_cfg, contexts, exec_cfg = merge_cli_with_config(
            config,
            args.mode,
            cli_exclude=exclude,
            cli_include_only=set(include_only) if include_only is not None else None,
            cli_schemas=_split(args.schemas),
            cli_bloat_threshold=args.bloat_threshold,
            cli_remaining_threshold=args.remaining_threshold,
            cli_timeout=args.timeout,
            cli_no_parallel=args.no_parallel,
        )
    except (FileNotFoundError, ValueError, TypeError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    known = {d.name for d in all_diagnostics()}
    for name in sorted((check_cfg.include_only or set()) | check_cfg.exclude):
        if name not in known:
            print(f"Warning: unknown diagnostic '{name}'", file=sys.stderr)

    kind = args.mode if args.mode != "all" else None
    diagnostics = select_diagnostics(kind, check_cfg.exclude, check_cfg.include_only)
    predicate = any_of(*(config.exclusions.to_predicate(c) for c in contexts))

    cluster = _connect(args)
    try:
        report = run_scan(
            cluster,
            contexts,
            diagnostics,
            predicate,
            database=args.dbname or _dbname(cluster),
            verbose=args.verbose > 0,
            parallel=exec_cfg.parallel,
            max_workers=exec_cfg.max_workers,
            timeout=exec_cfg.timeout,
        )
    except ConnectivityError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        close_cluster(cluster)

    output = _render_report(report, args.format)
    _write_output(output, args, dbname=report.database)


def _connect(args):
    """Connect to every requested host, exiting with a hint when none is reachable."""
    from pg_health.connection import (
        PgHost,
        connect_cluster,
        connect_from_url,
        parse_hosts,
    )

    try:
        if args.dsn and args.dsn.startswith(("postgresql://", "postgres://", "jdbc:postgresql://")):
            cluster = connect_from_url(args.dsn, user=args.user, password=args.password)
        elif args.dsn:
            cluster = _connect_keyword_dsn(args.dsn)
        else:
            hosts = []
            for raw in args.host or ["localhost"]:
                parsed = parse_hosts(f"postgresql://{raw}")[0]
                hosts.append(parsed if ":" in raw else PgHost(parsed.host, args.port))
            cluster = connect_cluster(hosts, dbname=args.dbname, user=args.user, password=args.password)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    if not any(node.is_reachable for node in cluster):
        print("Error: Could not connect to database.", file=sys.stderr)
        for node in cluster:
            print(f"       {node.name}: {node.error}", file=sys.stderr)
        first = cluster.nodes_in_order()[0] if len(cluster) else None
        _print_connection_hint(first.error if first else "", first.name if first else "localhost:5432")
        sys.exit(1)
    return cluster


def _connect_keyword_dsn(dsn: str):
    import psycopg2

    from pg_health.connection import ClusterHandle, HostConnection, PgHost, connect, is_primary

    try:
        conn = connect(dsn=dsn)
    except psycopg2.OperationalError as e:
        print("Error: Could not connect to database.", file=sys.stderr)
        print(f"       {str(e).strip()}", file=sys.stderr)
        _print_connection_hint(str(e), "the configured host")
        sys.exit(1)
    host = PgHost(conn.info.host or "localhost", int(conn.info.port or 5432))
    return ClusterHandle.of([HostConnection(host, conn, is_primary(conn))])


def _print_connection_hint(error_msg: str, where: str):
    if "no password supplied" in error_msg:
        print("\nHint: Use --password to provide a password, or set PGPASSWORD environment variable.", file=sys.stderr)
    elif "does not exist" in error_msg:
        print("\nHint: Check that the database name is correct.", file=sys.stderr)
    elif "Connection refused" in error_msg or "could not connect" in error_msg.lower():
        print(f"\nHint: Check that PostgreSQL is running on {where}.", file=sys.stderr)


def _dbname(cluster) -> str:
    for node in cluster:
        if node.is_reachable:
            return node.connection.info.dbname
    return ""


def _write_output(output: str, args, dbname: str = ""):
    """Write report to file (with timestamped name) or stdout."""
    if args.output:
        path = _make_output_path(args.output, args.format, dbname)
    elif args.format == "text":
        sys.stdout.write(output)
        return
    else:
        path = _make_default_output_path(args.format, dbname)

    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)
    with open(path, "w") as f:
        f.write(output)
    print(f"Report written to {path}", file=sys.stderr)


def _make_default_output_path(fmt: str, dbname: str) -> str:
    """Generate a default output path: ./reports/<dbname>_<timestamp>.<ext>."""
    ts = datetime.now().strftime("%Y%m%d_%H%M%S")
    ext = _FORMAT_EXT.get(fmt, "")
    name = dbname or "pg-health"
    return os.path.join("reports", f"{name}_{ts}{ext}")


def _make_output_path(user_path: str, fmt: str, dbname: str = "") -> str:
    """Insert a timestamp into the output filename.

    If the user provides a path like ``report.json``, the result is
    ``report_20260127_131504.json``.  If they provide a bare directory,
    the file is placed there with an auto-generated name.
    """
    ts = datetime.now().strftime("%Y%m%d_%H%M%S")
    ext = _FORMAT_EXT.get(fmt, "")
    name = dbname or "pg-health"

    if os.path.isdir(user_path):
        return os.path.join(user_path, f"{name}_{ts}{ext}")

    base, existing_ext = os.path.splitext(user_path)
    if not existing_ext:
        existing_ext = ext
    return f"{base}_{ts}{existing_ext}"


def _render_report(report, fmt: str) -> str:
    if fmt == "json":
        from pg_health.reporters.json_reporter import render
    elif fmt == "text":
        from pg_health.reporters.text_reporter import render
    else:
        raise ValueError(f"Unknown format: {fmt}")
    return render(report)
