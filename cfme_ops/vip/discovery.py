"""Region discovery from the primary VMDB.

No inventory is required: the primary knows its standbys (repl_nodes) and
every appliance in the region (miq_servers).
"""
from __future__ import annotations

import logging
import shlex
from typing import Iterable, Optional

import paramiko

from ..common.errors import ConfigurationError, DiscoveryError, RemoteCommandError
from ..common.models import Host, HostRole
from ..common.remote import Connector
from .config import CutoverConfig
from .models import Topology

logger = logging.getLogger("cfme.vip.discovery")

RECOVERY_QUERY = "SELECT pg_is_in_recovery();"
STANDBY_QUERY = "SELECT conninfo FROM repl_nodes WHERE type='standby';"
SERVERS_QUERY = "SELECT hostname FROM miq_servers;"


def psql_command(query: str, cfg: CutoverConfig) -> str:
    """Tuples-only, unaligned, quiet psql call with the appliance's login environment."""
    env = ""
    if cfg.db_password:
        env = f"PGUSER={shlex.quote(cfg.db_username)} PGPASSWORD={shlex.quote(cfg.db_password)} "
    return f". /etc/profile && {env}psql -d {shlex.quote(cfg.db_name)} -tAq -c {shlex.quote(query)}"


def parse_conninfo_host(conninfo: str) -> Optional[str]:
    """Pull the host out of a libpq conninfo string ("host=10.0.0.2 user=root ...")."""
    params = {}
    for token in conninfo.split():
        key, sep, value = token.partition("=")
        if sep:
            params[key.strip()] = value.strip().strip("'\"")
    return params.get("host") or params.get("hostaddr")


def _unique(addresses: Iterable[str]) -> list[str]:
    seen: list[str] = []
    for addr in addresses:
        if addr and addr not in seen:
            seen.append(addr)
    return seen


def _query(session, query: str, cfg: CutoverConfig) -> list[str]:
    try:
        result = session.run(psql_command(query, cfg))
    except RemoteCommandError as e:
        raise DiscoveryError(f"Query failed on primary {session.host}: {query} ({e})") from e
    return [line.strip() for line in result.stdout_lines]


def discover_topology(primary_ip: str, cfg: CutoverConfig, connector: Connector) -> Topology:
    """Build the Topology from the live primary. Any failure is fatal."""
    if not primary_ip:
        raise ConfigurationError("Required parameter current_primary_ip is not provided")

    logger.info("Discovering region from primary %s", primary_ip)
    try:
        with connector(primary_ip) as session:
            in_recovery = _query(session, RECOVERY_QUERY, cfg)
            if in_recovery != ["f"]:
                state = in_recovery[0] if in_recovery else "no answer"
                raise DiscoveryError(
                    f"Unable to connect to primary. {primary_ip} is not a primary "
                    f"(pg_is_in_recovery: {state})"
                )

            standby_rows = _query(session, STANDBY_QUERY, cfg)
            standbys = []
            for row in standby_rows:
                addr = parse_conninfo_host(row)
                if addr is None:
                    raise DiscoveryError(f"No host in standby conninfo: {row!r}")
                if addr == primary_ip:
                    logger.warning("repl_nodes lists the primary %s as a standby; ignoring", addr)
                    continue
                standbys.append(addr)

            servers = _query(session, SERVERS_QUERY, cfg)
    except (paramiko.SSHException, OSError) as e:
        raise DiscoveryError(f"Unable to connect to primary {primary_ip}: {e}") from e

    topology = Topology(
        primary=Host(primary_ip, HostRole.PRIMARY),
        standbys=tuple(Host(a, HostRole.STANDBY) for a in _unique(standbys)),
        consumers=tuple(Host(a, HostRole.CONSUMER) for a in _unique(servers)),
    )
    logger.info("Topology: primary=%s standbys=%s appliances=%s",
                primary_ip,
                [h.address for h in topology.standbys],
                [h.address for h in topology.consumers])
    return topology
