"""Repoint appliances' database.yml at the VIP.

Each appliance is handled independently: one failing host is reported in its
ConsumerResult and never stops the others.
"""
from __future__ import annotations

import asyncio
import copy
import logging
from typing import Any, Mapping

import yaml

from ..common.remote import Connector, file_mtime, service_predates
from .models import ConsumerResult, Topology

logger = logging.getLogger("cfme.vip.consumers")

DATABASE_YML = "/var/www/miq/vmdb/config/database.yml"
CFME_SERVICES = ("evm-watchdog", "evmserverd")


def deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Recursive merge: nested mappings merge key by key, anything else is replaced.

    Neither input is mutated.
    """
    merged = copy.deepcopy(dict(base))
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def load_database_yml(text: str) -> dict[str, Any]:
    document = yaml.safe_load(text)
    if not isinstance(document, dict):
        raise ValueError(f"{DATABASE_YML} is not a mapping of database profiles")
    return document


def dump_database_yml(document: Mapping[str, Any]) -> str:
    return yaml.safe_dump(dict(document), default_flow_style=False, indent=4, allow_unicode=True)


def repoint_document(document: Mapping[str, Any], vip: str, profile: str) -> dict[str, Any]:
    """Set ``document[profile]["host"] = vip`` and keep every other field and profile."""
    return deep_merge(document, {profile: {"host": vip}})


def repoint_host(session, vip: str, profile: str) -> ConsumerResult:
    result = ConsumerResult(host=session.host, success=False)
    text = session.read_file(DATABASE_YML, become=True)
    if text is None:
        raise FileNotFoundError(f"{DATABASE_YML} not found")
    current = load_database_yml(text)
    if profile not in current:
        logger.warning("[%s] no %r profile in database.yml; creating one with only host",
                       session.host, profile)

    updated = repoint_document(current, vip, profile)
    if updated == current:
        written = file_mtime(session, DATABASE_YML, become=True)
        stale = [s for s in CFME_SERVICES if service_predates(session, s, written)]
        if not stale:
            logger.info("[%s] database.yml already points %s at %s", session.host, profile, vip)
            result.success = True
            return result
        # An earlier run wrote the file but never got the services restarted
        logger.warning("[%s] database.yml is current but %s predate it; restarting",
                       session.host, ", ".join(stale))
    else:
        session.write_file(DATABASE_YML, dump_database_yml(updated), mode=0o644, become=True)
        result.changed = True
        logger.info("[%s] database.yml %s.host -> %s", session.host, profile, vip)

    # Services only restart after a successful write
    for service in CFME_SERVICES:
        session.run(f"systemctl restart {service}", become=True)
        result.restarted_services.append(service)
    result.success = True
    return result


def _repoint_one(connector: Connector, address: str, vip: str, profile: str) -> ConsumerResult:
    try:
        with connector(address) as session:
            return repoint_host(session, vip, profile)
    except Exception as e:
        logger.error("[%s] database.yml update failed: %s", address, e)
        return ConsumerResult(host=address, success=False, error=str(e))


async def repoint_consumers(topology: Topology, vip: str, connector: Connector,
                            db_profile: str = "production") -> list[ConsumerResult]:
    """Rewrite database.yml on every appliance concurrently; returns one result per host."""
    if not topology.consumers:
        logger.info("No appliances to update")
        return []
    logger.info("Pointing %d appliance(s) at VIP %s (profile %s)",
                len(topology.consumers), vip, db_profile)
    results = await asyncio.gather(*(
        asyncio.to_thread(_repoint_one, connector, h.address, vip, db_profile)
        for h in topology.consumers
    ))
    failed = [r.host for r in results if not r.success]
    if failed:
        logger.warning("database.yml update failed on: %s", ", ".join(failed))
    return list(results)
