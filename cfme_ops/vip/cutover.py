"""Region → VIP cutover.

Flow: discover (inventory) → converge keepalived (keepalived) → repoint
appliances (appliance_db_config). Each phase runs only if the previous one
succeeded; discovery always runs since the later phases need its Topology.
"""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Iterable, Optional

from ..common.audit import audit_event
from ..common.config import OpsConfig
from ..common.errors import ConfigurationError, OpsError
from ..common.remote import Connector, ssh_connector
from .config import CutoverConfig
from .consumers import repoint_consumers
from .convergence import converge_vip
from .discovery import discover_topology
from .models import CutoverReport

logger = logging.getLogger("cfme.vip.cutover")

TAG_INVENTORY = "inventory"
TAG_KEEPALIVED = "keepalived"
TAG_APPLIANCE_DB_CONFIG = "appliance_db_config"
ALL_TAGS = frozenset({TAG_INVENTORY, TAG_KEEPALIVED, TAG_APPLIANCE_DB_CONFIG})


def parse_tags(raw: Optional[Iterable[str]]) -> frozenset[str]:
    if not raw:
        return ALL_TAGS
    tags = frozenset(t.strip() for item in raw for t in item.split(",") if t.strip())
    unknown = tags - ALL_TAGS
    if unknown:
        raise ConfigurationError(f"Unknown tag(s): {', '.join(sorted(unknown))}")
    return tags


async def convert_region_to_vip(
    cfg: CutoverConfig,
    connector: Optional[Connector] = None,
    ops_cfg: Optional[OpsConfig] = None,
    tags: Optional[Iterable[str]] = None,
) -> CutoverReport:
    """Run the cutover. Fatal errors propagate; per-appliance failures land in the report."""
    connector = connector or ssh_connector()
    ops_cfg = ops_cfg or OpsConfig()
    selected = parse_tags(tags)

    # Validate every required input before touching the network
    cfg.require_primary()
    if selected & {TAG_KEEPALIVED, TAG_APPLIANCE_DB_CONFIG}:
        cfg.require_vip()

    t0 = time.monotonic()
    audit_event(ops_cfg, "cutover_started", {
        "primary": cfg.current_primary_ip, "vip": cfg.virtual_ip, "tags": sorted(selected),
    })
    try:
        topology = await asyncio.to_thread(discover_topology, cfg.current_primary_ip, cfg, connector)
        audit_event(ops_cfg, "cutover_topology", topology.summary())
        report = CutoverReport(topology=topology)

        if TAG_KEEPALIVED in selected:
            report.convergence = await converge_vip(topology, cfg, connector)
            audit_event(ops_cfg, "cutover_converged", {
                "vip": cfg.virtual_ip,
                "owner": report.convergence.vip_owner,
                "restarted": report.convergence.restarted_hosts,
            })
        else:
            logger.info("Skipping keepalived phase (tag not selected)")

        if TAG_APPLIANCE_DB_CONFIG in selected:
            report.consumers = await repoint_consumers(topology, cfg.virtual_ip, connector, cfg.db_profile)
        else:
            logger.info("Skipping appliance database.yml phase (tag not selected)")
    except OpsError as e:
        logger.error("Cutover aborted: %s", e)
        audit_event(ops_cfg, "cutover_failed", {"primary": cfg.current_primary_ip, "error": str(e)})
        raise

    elapsed = time.monotonic() - t0
    audit_event(ops_cfg, "cutover_complete", {
        "vip": cfg.virtual_ip,
        "seconds": round(elapsed, 1),
        "appliances_ok": [c.host for c in report.consumers if c.success],
        "appliances_failed": {c.host: c.error for c in report.failed_consumers},
    })
    logger.info("Cutover finished in %.0fs (%d appliance failure(s))",
                elapsed, len(report.failed_consumers))
    return report
