#!/usr/bin/env python3
"""
CFME ops command line
=====================
Safe appliance reboots and VMDB virtual-IP cutover for CloudForms/ManageIQ.

Usage:
    cfme-ops reboot 10.0.0.3 [--force]
    cfme-ops convert-to-vip --primary 10.0.0.1 --vip 10.0.0.9 [--unicast]
    cfme-ops convert-to-vip --vars-file region.yml --tags keepalived

Settings not given on the command line come from the environment or a
local .env (CFME_SSH_*, CFME_REBOOT_*, VMDB_*, VRRP_*, CFME_AUDIT_URL).
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from dataclasses import replace
from typing import Optional, Sequence

import paramiko

from .common.config import OpsConfig, SSHConfig
from .common.errors import OpsError
from .common.logs import setup_logging
from .common.remote import ssh_connector
from .reboot.config import RebootConfig
from .reboot.controller import decide_and_reboot
from .vip.config import CutoverConfig
from .vip.cutover import convert_region_to_vip
from .vip.discovery import discover_topology

logger = logging.getLogger("cfme.cli")

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_PARTIAL = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="cfme-ops", description="CloudForms/ManageIQ appliance operations")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug output on the console")
    parser.add_argument("--ssh-user", help="SSH user (default: $CFME_SSH_USER or root)")
    parser.add_argument("--ssh-key", help="SSH private key (default: $CFME_SSH_KEY_PATH)")
    parser.add_argument("--log-dir", help="Log directory (default: $CFME_LOG_DIR or ./logs)")
    sub = parser.add_subparsers(dest="command", required=True)

    reboot = sub.add_parser("reboot", help="Reboot an appliance if needs-restarting advises it")
    reboot.add_argument("host", help="Appliance address")
    reboot.add_argument("--force", action="store_true", default=None, help="Reboot regardless of needs-restarting")
    reboot.add_argument("--down-timeout", type=float, help="Seconds to wait for ssh to go down")
    reboot.add_argument("--up-timeout", type=float, help="Seconds to wait for the appliance to return")
    reboot.add_argument("--up-delay", type=float, help="Grace seconds before probing for the return")
    reboot.add_argument("--poll-interval", type=float, help="Seconds between port probes")

    vip = sub.add_parser("convert-to-vip", help="Move the region's VMDB behind a keepalived VIP")
    vip.add_argument("--vars-file", help="YAML file with playbook-style variables")
    vip.add_argument("--primary", dest="current_primary_ip", help="Current primary VMDB address")
    vip.add_argument("--vip", dest="virtual_ip", help="Virtual IP to deploy")
    vip.add_argument("--profile", dest="db_profile", help="database.yml profile to update (default production)")
    vip.add_argument("--unicast", dest="vrrp_use_unicast", action="store_true", default=None,
                     help="Use unicast VRRP (networks without multicast)")
    vip.add_argument("--vrrp-interface", help="Interface carrying VRRP traffic")
    vip.add_argument("--vip-interface", dest="vrrp_vip_interface", help="Interface the VIP is added to")
    vip.add_argument("--vrrp-pass", help="VRRP verification password")
    vip.add_argument("--tags", action="append",
                     help="Phases to run: inventory, keepalived, appliance_db_config (comma separated)")
    vip.add_argument("--discover-only", action="store_true", help="Print the discovered topology and stop")
    return parser


def _ssh_config(args: argparse.Namespace) -> SSHConfig:
    cfg = SSHConfig()
    if args.ssh_user:
        cfg = replace(cfg, user=args.ssh_user)
    if args.ssh_key:
        cfg = replace(cfg, key_path=args.ssh_key)
    return cfg


def _run_reboot(args: argparse.Namespace, ops_cfg: OpsConfig) -> int:
    cfg = RebootConfig()
    changes = {
        "down_timeout_s": args.down_timeout,
        "up_timeout_s": args.up_timeout,
        "up_delay_s": args.up_delay,
        "poll_interval_s": args.poll_interval,
    }
    cfg = replace(cfg, **{k: v for k, v in changes.items() if v is not None})
    outcome = asyncio.run(decide_and_reboot(
        args.host, force=args.force, cfg=cfg, ops_cfg=ops_cfg,
        connector=ssh_connector(_ssh_config(args)),
    ))
    print(f"{outcome.host}: {outcome.action.value} (needs-restarting: {outcome.verdict.value}, "
          f"rc={outcome.probe_rc}, forced={outcome.forced})")
    return EXIT_OK


def _run_cutover(args: argparse.Namespace, ops_cfg: OpsConfig) -> int:
    cfg = CutoverConfig.from_yaml(args.vars_file) if args.vars_file else CutoverConfig()
    cfg = cfg.override(
        current_primary_ip=args.current_primary_ip,
        virtual_ip=args.virtual_ip,
        db_profile=args.db_profile,
        vrrp_use_unicast=args.vrrp_use_unicast,
        vrrp_interface=args.vrrp_interface,
        vrrp_vip_interface=args.vrrp_vip_interface,
        vrrp_pass=args.vrrp_pass,
    )
    connector = ssh_connector(_ssh_config(args))

    if args.discover_only:
        cfg.require_primary()
        topology = discover_topology(cfg.current_primary_ip, cfg, connector)
        for group, hosts in topology.summary().items():
            print(f"[{group}]")
            for host in hosts:
                print(host)
        return EXIT_OK

    report = asyncio.run(convert_region_to_vip(cfg, connector, ops_cfg, args.tags))
    if report.convergence is not None:
        print(f"VIP {report.convergence.vip} bound on {report.topology.primary.address}")
    for result in report.consumers:
        status = "ok" if result.success else f"FAILED: {result.error}"
        changed = " (changed)" if result.changed else ""
        print(f"{result.host}: {status}{changed}")
    return EXIT_OK if report.success else EXIT_PARTIAL


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    ops_cfg = OpsConfig()
    if args.log_dir:
        ops_cfg = replace(ops_cfg, log_dir=args.log_dir)
    setup_logging(ops_cfg, verbose=args.verbose)

    try:
        if args.command == "reboot":
            return _run_reboot(args, ops_cfg)
        return _run_cutover(args, ops_cfg)
    except OpsError as e:
        logger.error("%s", e)
        return EXIT_FATAL
    except (paramiko.SSHException, OSError) as e:
        logger.error("SSH failure: %s", e)
        return EXIT_FATAL


if __name__ == "__main__":
    sys.exit(main())
