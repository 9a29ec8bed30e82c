"""keepalived convergence on the VMDB tier.

Per host (concurrently): package → keepalived.conf → check script → firewalld.
keepalived is restarted when the package, config or check script changed, or
when the running instance is stopped or predates them. Then a barrier: settle,
re-read addresses from every database host, verify the VIP sits on the
primary and nowhere else.
"""
from __future__ import annotations

import asyncio
import logging
import re
import shlex
from typing import Awaitable, Optional

from ..common.errors import ConvergenceError, VipMissingOnPrimaryError, VipOnStandbyError
from ..common.models import Host
from ..common.remote import Connector, file_mtime, service_predates
from .config import CutoverConfig
from .keepalived import (
    CHECK_SCRIPT,
    CHECK_SCRIPT_MODE,
    CHECK_SCRIPT_SETYPE,
    KEEPALIVED_CONF,
    KEEPALIVED_PACKAGE,
    KEEPALIVED_SERVICE,
    VRRP_RICH_RULE,
    render_check_script,
    render_keepalived_conf,
)
from .models import ConvergenceResult, HostConvergence, Topology

logger = logging.getLogger("cfme.vip.convergence")

_INET_RE = re.compile(r"\binet\s+(\d{1,3}(?:\.\d{1,3}){3})(?:/\d+)?")


# ---------------------------------------------------------------------------
# Per-host steps
# ---------------------------------------------------------------------------

def ensure_package_latest(session, package: str) -> bool:
    """yum install (absent) or update (present). Returns True if the installed version changed."""
    before = session.run(f"rpm -q {package}", check=False)
    verb = "update" if before.ok else "install"
    session.run(f"yum -y {verb} {package}", become=True)
    after = session.run(f"rpm -q {package}")
    changed = (before.stdout.strip() if before.ok else None) != after.stdout.strip()
    if changed:
        logger.info("[%s] %s now %s", session.host, package, after.stdout.strip())
    return changed


def ensure_file(session, path: str, content: str, mode: int = 0o644) -> bool:
    """Write *content* to *path* only if it differs. Returns True if written."""
    current = session.read_file(path, become=True)
    if current == content:
        return False
    session.write_file(path, content, mode=mode, become=True)
    logger.info("[%s] updated %s", session.host, path)
    return True


def ensure_firewall_rule(session, rich_rule: str) -> bool:
    quoted = shlex.quote(rich_rule)
    present = session.run(f"firewall-cmd --permanent --query-rich-rule={quoted}", become=True, check=False)
    if present.ok:
        return False
    session.run(f"firewall-cmd --permanent --add-rich-rule={quoted}", become=True)
    session.run(f"firewall-cmd --add-rich-rule={quoted}", become=True)
    logger.info("[%s] firewalld now accepts VRRP", session.host)
    return True


def read_ipv4_addresses(session) -> list[str]:
    result = session.run("ip -4 -o addr show")
    return _INET_RE.findall(result.stdout)


def package_installed_at(session, package: str) -> Optional[int]:
    result = session.run(f"rpm -q --qf '%{{INSTALLTIME}}' {package}", check=False)
    value = result.stdout.strip()
    return int(value) if result.ok and value.isdigit() else None


def converge_host(session, topology: Topology, host: Host, cfg: CutoverConfig) -> HostConvergence:
    state = HostConvergence(host=host.address)
    state.package_changed = ensure_package_latest(session, KEEPALIVED_PACKAGE)
    state.config_changed = ensure_file(session, KEEPALIVED_CONF, render_keepalived_conf(topology, host, cfg))
    state.check_script_changed = ensure_file(session, CHECK_SCRIPT, render_check_script(cfg), mode=CHECK_SCRIPT_MODE)
    # Relabel every run; an earlier failure may have left the script unlabelled
    session.run(f"chcon -t {CHECK_SCRIPT_SETYPE} {CHECK_SCRIPT}", become=True)
    state.firewall_changed = ensure_firewall_rule(session, VRRP_RICH_RULE)

    changed = state.package_changed or state.config_changed or state.check_script_changed
    if not changed and service_predates(
        session, KEEPALIVED_SERVICE,
        package_installed_at(session, KEEPALIVED_PACKAGE),
        file_mtime(session, KEEPALIVED_CONF, become=True),
        file_mtime(session, CHECK_SCRIPT, become=True),
    ):
        logger.warning("[%s] keepalived is stopped or older than its config; restarting", host.address)
        changed = True

    if changed:
        session.run(f"systemctl restart {KEEPALIVED_SERVICE}", become=True)
        session.run(f"systemctl enable {KEEPALIVED_SERVICE}", become=True)
        state.restarted = True
        logger.info("[%s] keepalived restarted", host.address)
    else:
        session.run(f"systemctl enable --now {KEEPALIVED_SERVICE}", become=True)
        logger.info("[%s] keepalived already converged", host.address)
    return state


def _converge_one(connector: Connector, topology: Topology, host: Host, cfg: CutoverConfig) -> HostConvergence:
    with connector(host.address) as session:
        return converge_host(session, topology, host, cfg)


def _addresses_of(connector: Connector, address: str) -> list[str]:
    with connector(address) as session:
        return read_ipv4_addresses(session)


# ---------------------------------------------------------------------------
# Verification
# ---------------------------------------------------------------------------

def verify_vip_placement(topology: Topology, addresses: dict[str, list[str]], vip: str) -> None:
    """Standbys first: a duplicated VIP is reported even when the primary also holds it."""
    for standby in topology.standbys:
        if vip in addresses.get(standby.address, []):
            raise VipOnStandbyError(vip, standby.address)
    if vip not in addresses.get(topology.primary.address, []):
        raise VipMissingOnPrimaryError(vip, topology.primary.address)


async def _fan_out(calls: dict[str, Awaitable]) -> dict:
    results = await asyncio.gather(*calls.values(), return_exceptions=True)
    values, failures = {}, {}
    for host, outcome in zip(calls.keys(), results):
        if isinstance(outcome, Exception):
            logger.error("[%s] %s", host, outcome)
            failures[host] = outcome
        elif isinstance(outcome, BaseException):
            raise outcome
        else:
            values[host] = outcome
    if failures:
        raise ConvergenceError(failures)
    return values


async def converge_vip(topology: Topology, cfg: CutoverConfig, connector: Connector) -> ConvergenceResult:
    """Converge keepalived on primary + standbys, then verify VIP placement."""
    cfg.require_vip()
    db_hosts = topology.db_hosts
    logger.info("Converging keepalived on %d VMDB host(s) for VIP %s",
                len(db_hosts), cfg.virtual_ip)

    states = await _fan_out({
        h.address: asyncio.to_thread(_converge_one, connector, topology, h, cfg) for h in db_hosts
    })

    # Barrier: every host has converged before anyone is checked
    logger.info("Pausing %.0fs for keepalived to settle", cfg.settle_seconds)
    await asyncio.sleep(cfg.settle_seconds)

    addresses = await _fan_out({
        h.address: asyncio.to_thread(_addresses_of, connector, h.address) for h in db_hosts
    })
    verify_vip_placement(topology, addresses, cfg.virtual_ip)
    logger.info("VIP %s is bound on primary %s only", cfg.virtual_ip, topology.primary.address)

    return ConvergenceResult(
        vip=cfg.virtual_ip,
        hosts=[states[h.address] for h in db_hosts],
        addresses=addresses,
    )
