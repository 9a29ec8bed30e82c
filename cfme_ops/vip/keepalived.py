"""keepalived.conf and health-check script rendering (jinja2)."""
from __future__ import annotations

import ipaddress
import socket
from pathlib import Path

from jinja2 import Template

from ..common.errors import ConfigurationError
from ..common.models import Host
from .config import CutoverConfig
from .models import Topology

TEMPLATE_DIR = Path(__file__).parent / "templates"

KEEPALIVED_PACKAGE = "keepalived"
KEEPALIVED_SERVICE = "keepalived"
KEEPALIVED_CONF = "/etc/keepalived/keepalived.conf"
CHECK_SCRIPT = "/usr/local/bin/keepalived_check_pgsql_primary.sh"
CHECK_SCRIPT_MODE = 0o755
CHECK_SCRIPT_SETYPE = "keepalived_unconfined_script_exec_t"
VRRP_RICH_RULE = 'rule protocol value="vrrp" accept'

PRIMARY_PRIORITY = 150
STANDBY_BASE_PRIORITY = 100


def _template(name: str) -> Template:
    with open(TEMPLATE_DIR / name, "r") as tfh:
        return Template(tfh.read(), trim_blocks=True, lstrip_blocks=True, keep_trailing_newline=True)


def priority_for(topology: Topology, host: Host) -> int:
    """Primary ranks highest; standbys step down in discovery order."""
    if host.address == topology.primary.address:
        return PRIMARY_PRIORITY
    for index, standby in enumerate(topology.standbys):
        if standby.address == host.address:
            return STANDBY_BASE_PRIORITY - index
    raise ValueError(f"{host.address} is not a database host in this topology")


def unicast_address(address: str) -> str:
    """keepalived only takes IPs for unicast peers; resolve discovered hostnames."""
    try:
        return str(ipaddress.IPv4Address(address))
    except ValueError:
        pass
    try:
        return socket.gethostbyname(address)
    except OSError as e:
        raise ConfigurationError(f"Cannot resolve {address} to an IPv4 address for unicast VRRP: {e}") from e


def render_keepalived_conf(topology: Topology, host: Host, cfg: CutoverConfig) -> str:
    is_primary = host.address == topology.primary.address
    peers = [h.address for h in topology.db_hosts if h.address != host.address]
    source = host.address
    if cfg.vrrp_use_unicast:
        source = unicast_address(host.address)
        peers = [unicast_address(p) for p in peers]
    return _template("keepalived.conf.j2").render(
        router_name=f"vmdb_{host.address.replace('.', '_')}",
        check_script=CHECK_SCRIPT,
        state="MASTER" if is_primary else "BACKUP",
        vrrp_interface=cfg.vrrp_interface,
        router_id=cfg.vrrp_router_id,
        priority=priority_for(topology, host),
        unicast=cfg.vrrp_use_unicast,
        host=source,
        peers=peers,
        vrrp_pass=cfg.effective_vrrp_pass,
        vip=cfg.virtual_ip,
        vrrp_vip_interface=cfg.vrrp_vip_interface,
    )


def render_check_script(cfg: CutoverConfig) -> str:
    return _template("keepalived_check_pgsql_primary.sh.j2").render(db_name=cfg.db_name)
