"""Appliance reboot controller.

Flow: probe needs-restarting → decide (force overrides) → dispatch delayed
reboot → wait for port 22 to drop → wait for port 22 to return.
"""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Optional, Union

import paramiko

from ..common.audit import audit_event
from ..common.config import OpsConfig
from ..common.errors import OpsError
from ..common.models import Host, HostState
from ..common.probe import STARTED, STOPPED, PortProbe, port_open, wait_for_port
from ..common.remote import Connector, ssh_connector
from .config import RebootConfig
from .models import ProbeVerdict, RebootAction, RebootOutcome

logger = logging.getLogger("cfme.reboot")

RC_RESTART_ADVISED = 1
RC_NOT_RUN = -1  # the probe never produced an exit status


def classify_probe(rc: int) -> ProbeVerdict:
    """Map a needs-restarting exit status to a verdict.

    Only the verdict differs between "restart advised" and "tool unusable";
    both still require a reboot.
    """
    if rc == 0:
        return ProbeVerdict.CLEAN
    if rc == RC_RESTART_ADVISED:
        return ProbeVerdict.RESTART_ADVISED
    return ProbeVerdict.TOOL_UNAVAILABLE


def reboot_required(verdict: ProbeVerdict, force: bool) -> bool:
    return force or verdict != ProbeVerdict.CLEAN


def _run_probe(session, cfg: RebootConfig) -> int:
    try:
        result = session.run(f"{cfg.probe_command} > /dev/null", check=False)
    except (paramiko.SSHException, OSError) as e:
        logger.warning("[%s] reboot probe could not run: %s", session.host, e)
        return RC_NOT_RUN
    return result.rc


def _probe_and_dispatch(host: str, cfg: RebootConfig, force: bool,
                        connector: Connector) -> tuple[int, ProbeVerdict, bool]:
    with connector(host) as session:
        rc = _run_probe(session, cfg)
        verdict = classify_probe(rc)
        if verdict == ProbeVerdict.TOOL_UNAVAILABLE:
            logger.warning("[%s] %s exited %d; treating as restart advisable",
                           host, cfg.probe_command, rc)
        required = reboot_required(verdict, force)
        if required:
            logger.info("[%s] dispatching reboot (probe=%s, force=%s)", host, verdict.value, force)
            session.run_detached(cfg.reboot_command, become=True)
    return rc, verdict, required


async def decide_and_reboot(
    host: Union[str, Host],
    force: Optional[bool] = None,
    cfg: Optional[RebootConfig] = None,
    ops_cfg: Optional[OpsConfig] = None,
    connector: Optional[Connector] = None,
    probe: PortProbe = port_open,
) -> RebootOutcome:
    """Reboot *host* if needs-restarting advises it or *force* is set, and wait for it."""
    cfg = cfg or RebootConfig()
    ops_cfg = ops_cfg or OpsConfig()
    connector = connector or ssh_connector()
    force = cfg.force if force is None else force
    target = host if isinstance(host, Host) else Host(address=host)

    t0 = time.monotonic()
    try:
        rc, verdict, required = await asyncio.to_thread(
            _probe_and_dispatch, target.address, cfg, force, connector,
        )

        if not required:
            logger.info("[%s] no reboot required", target.address)
            audit_event(ops_cfg, "reboot_skipped", {"host": target.address, "probe_rc": rc})
            return RebootOutcome(host=target.address, action=RebootAction.SKIPPED,
                                 verdict=verdict, probe_rc=rc, forced=force)

        audit_event(ops_cfg, "reboot_started", {
            "host": target.address, "probe_rc": rc, "verdict": verdict.value, "force": force,
        })
        await wait_for_port(target.address, cfg.port, STOPPED,
                            timeout=cfg.down_timeout_s, interval=cfg.poll_interval_s, probe=probe)
        target.state = HostState.DOWN
        await wait_for_port(target.address, cfg.port, STARTED,
                            timeout=cfg.up_timeout_s, delay=cfg.up_delay_s,
                            interval=cfg.poll_interval_s, probe=probe)
        target.state = HostState.UP
    except (OpsError, paramiko.SSHException, OSError) as e:
        audit_event(ops_cfg, "reboot_failed", {"host": target.address, "error": str(e)})
        raise

    elapsed = time.monotonic() - t0
    logger.info("[%s] appliance is back after %.0fs", target.address, elapsed)
    audit_event(ops_cfg, "reboot_complete", {"host": target.address, "seconds": round(elapsed, 1)})
    return RebootOutcome(host=target.address, action=RebootAction.REBOOTED,
                         verdict=verdict, probe_rc=rc, forced=force, elapsed_s=elapsed)
