"""Database connection management and cluster snapshots."""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable
from dataclasses import dataclass, replace
from typing import Any
from urllib.parse import parse_qs, unquote

import psycopg2
import psycopg2.extras

logger = logging.getLogger(__name__)

DEFAULT_PORT = 5432
_URL_PREFIXES = ("postgresql://", "postgres://", "jdbc:postgresql://")


@dataclass(frozen=True)
class PgHost:
    host: str
    port: int = DEFAULT_PORT

    def __post_init__(self):
        if not self.host or not self.host.strip():
            raise ValueError("host cannot be blank")
        if not 0 < int(self.port) < 65536:
            raise ValueError(f"port must be in range 1..65535, got {self.port}")

    @property
    def name(self) -> str:
        return f"{self.host}:{self.port}"

    def __str__(self):
        return self.name


@dataclass(frozen=True)
class HostConnection:
    """One node of a cluster snapshot.

    ``connection`` is None when the node could not be reached when the
    snapshot was taken.
    """

    host: PgHost
    connection: Any = None
    is_primary: bool = False
    error: str = ""

    @property
    def is_reachable(self) -> bool:
        return self.connection is not None and not getattr(self.connection, "closed", False)

    @property
    def name(self) -> str:
        return self.host.name


@dataclass(frozen=True)
class ClusterHandle:
    """Immutable, ordered view of the nodes of a cluster, primary first.

    A handle without a primary describes a cluster that is failing over;
    refreshing the topology produces a new handle.
    """

    nodes: tuple[HostConnection, ...] = ()

    def __post_init__(self):
        primaries = [n for n in self.nodes if n.is_primary]
        if len(primaries) > 1:
            raise ValueError(
                "At most one node can be primary, got " + ", ".join(n.name for n in primaries)
            )
        names = [n.name for n in self.nodes]
        if len(names) != len(set(names)):
            raise ValueError(f"Hosts must be unique: {names}")

    @classmethod
    def of(cls, nodes: Iterable[HostConnection]) -> ClusterHandle:
        nodes = list(nodes)
        ordered = [n for n in nodes if n.is_primary] + [n for n in nodes if not n.is_primary]
        return cls(tuple(ordered))

    def primary(self) -> HostConnection | None:
        for node in self.nodes:
            if node.is_primary:
                return node
        return None

    def replicas(self) -> tuple[HostConnection, ...]:
        return tuple(n for n in self.nodes if not n.is_primary)

    def nodes_in_order(self) -> tuple[HostConnection, ...]:
        return self.nodes

    def with_primary(self, host_name: str | None) -> ClusterHandle:
        """Return a new handle with ``host_name`` as primary, or no primary if None."""
        if host_name is not None and host_name not in {n.name for n in self.nodes} | {
            n.host.host for n in self.nodes
        }:
            raise ValueError(f"Unknown host: {host_name}")
        return ClusterHandle.of(
            replace(n, is_primary=host_name is not None and host_name in (n.name, n.host.host))
            for n in self.nodes
        )

    def __len__(self):
        return len(self.nodes)

    def __iter__(self):
        return iter(self.nodes)


def parse_hosts(url: str) -> list[PgHost]:
    """Extract the hosts of a multi-host URL such as ``postgresql://h1:5432,h2:5433/db``."""
    if not url or not url.strip():
        raise ValueError("url cannot be blank")
    url = url.strip()
    if not url.startswith(_URL_PREFIXES):
        raise ValueError(f"url must start with one of {', '.join(_URL_PREFIXES)}: {url}")
    if url.startswith("jdbc:"):
        url = url[len("jdbc:"):]
    netloc = url.split("://", 1)[1].split("/", 1)[0].split("?", 1)[0]
    if "@" in netloc:
        netloc = netloc.rsplit("@", 1)[1]
    hosts = []
    for part in netloc.split(","):
        if not part:
            raise ValueError(f"Empty host in url: {url}")
        host, _, port = part.partition(":")
        if port and not port.isdigit():
            raise ValueError(f"Invalid port '{port}' in url: {url}")
        pg_host = PgHost(host, int(port) if port else DEFAULT_PORT)
        if pg_host not in hosts:
            hosts.append(pg_host)
    return hosts


def _url_connect_params(url: str) -> dict[str, Any]:
    """Return dbname, user and password carried by a multi-host URL."""
    if url.startswith("jdbc:"):
        url = url[len("jdbc:"):]
    netloc, _, path = url.split("://", 1)[1].partition("/")
    path, _, query = path.partition("?")
    params: dict[str, Any] = {}
    if path:
        params["dbname"] = unquote(path)
    if "@" in netloc:
        user, sep, password = netloc.rsplit("@", 1)[0].partition(":")
        if user:
            params["user"] = unquote(user)
        if sep and password:
            params["password"] = unquote(password)
    for key, values in parse_qs(query).items():
        if key in ("user", "password") and key not in params:
            params[key] = values[-1]
    return params


def connect(
    host: str | None = None,
    port: int | None = None,
    dbname: str | None = None,
    user: str | None = None,
    password: str | None = None,
    dsn: str | None = None,
    connect_timeout: int | None = None,
) -> psycopg2.extensions.connection:
    """Create a read-only autocommit connection from explicit args or a DSN string.

    Falls back to standard PG* environment variables.
    """
    params: dict[str, Any] = {}
    if connect_timeout:
        params["connect_timeout"] = connect_timeout
    if dsn:
        conn = psycopg2.connect(dsn, **params)
    else:
        if host:
            params["host"] = host
        if port:
            params["port"] = port
        if dbname:
            params["dbname"] = dbname
        if user:
            params["user"] = user
        if password:
            params["password"] = password
        elif os.environ.get("PGPASSWORD"):
            params["password"] = os.environ["PGPASSWORD"]
        conn = psycopg2.connect(**params)

    conn.set_session(readonly=True, autocommit=True)
    return conn


def is_primary(conn) -> bool:
    """Return True unless the server is a standby in recovery."""
    with conn.cursor() as cur:
        cur.execute("SELECT pg_catalog.pg_is_in_recovery()")
        return not cur.fetchone()[0]


def connect_cluster(
    hosts: Iterable[PgHost],
    dbname: str | None = None,
    user: str | None = None,
    password: str | None = None,
    connect_timeout: int | None = 10,
    connect_fn=connect,
) -> ClusterHandle:
    """Connect to every host and take a snapshot of the cluster.

    A host that cannot be reached stays in the handle with no connection.
    """
    nodes = []
    for pg_host in hosts:
        try:
            conn = connect_fn(
                host=pg_host.host,
                port=pg_host.port,
                dbname=dbname,
                user=user,
                password=password,
                connect_timeout=connect_timeout,
            )
        except psycopg2.OperationalError as e:
            logger.warning("Host %s is unreachable: %s", pg_host, str(e).strip())
            nodes.append(HostConnection(pg_host, error=str(e).strip()))
            continue
        primary = is_primary(conn)
        logger.debug("Host %s is %s", pg_host, "primary" if primary else "replica")
        nodes.append(HostConnection(pg_host, conn, primary))

    primaries = [n for n in nodes if n.is_primary]
    if len(primaries) > 1:
        # Split brain; treat the cluster as having no known primary.
        logger.warning("Several hosts report being primary: %s", ", ".join(n.name for n in primaries))
        nodes = [replace(n, is_primary=False) for n in nodes]
    return ClusterHandle.of(nodes)


def connect_from_url(url: str, user=None, password=None, connect_timeout: int | None = 10) -> ClusterHandle:
    params = _url_connect_params(url.strip())
    return connect_cluster(
        parse_hosts(url),
        dbname=params.get("dbname"),
        user=user or params.get("user"),
        password=password or params.get("password"),
        connect_timeout=connect_timeout,
    )


def close_cluster(cluster: ClusterHandle):
    for node in cluster:
        if node.is_reachable:
            node.connection.close()


def get_pg_version(conn) -> str:
    """Return the PostgreSQL server version string."""
    with conn.cursor() as cur:
        cur.execute("SELECT version()")
        return cur.fetchone()[0]
