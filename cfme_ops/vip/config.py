"""Cutover configuration: env vars, .env, or a YAML vars file.

Keys mirror the playbook variables: vmdb_current_primary_ip, vmdb_username,
vmdb_password, vmdb_database_to_update, vmdb_virtual_ip, vrrp_interface,
vrrp_vip_interface, vrrp_pass, vrrp_use_unicast.
"""

from __future__ import annotations

import ipaddress
import os
from dataclasses import dataclass, field, fields, replace
from typing import Any

import yaml

from ..common.config import env_bool
from ..common.errors import ConfigurationError


def default_vrrp_pass(vip: str) -> str:
    """192.168.0.1 -> 192_168_0_1"""
    return vip.replace(".", "_")


@dataclass(frozen=True)
class CutoverConfig:
    """Immutable cutover settings."""

    current_primary_ip: str = field(default_factory=lambda: os.getenv("VMDB_CURRENT_PRIMARY_IP", ""))
    virtual_ip: str = field(default_factory=lambda: os.getenv("VMDB_VIRTUAL_IP", ""))

    # VMDB access on the primary
    db_username: str = field(default_factory=lambda: os.getenv("VMDB_USERNAME", "root"))
    db_password: str = field(default_factory=lambda: os.getenv("VMDB_PASSWORD", ""))
    db_name: str = field(default_factory=lambda: os.getenv("VMDB_DATABASE_NAME", "vmdb_production"))
    db_profile: str = field(default_factory=lambda: os.getenv("VMDB_DATABASE_TO_UPDATE", "production"))

    # keepalived / VRRP
    vrrp_interface: str = field(default_factory=lambda: os.getenv("VRRP_INTERFACE", "eth0"))
    vrrp_vip_interface: str = field(default_factory=lambda: os.getenv("VRRP_VIP_INTERFACE", "eth0"))
    vrrp_pass: str = field(default_factory=lambda: os.getenv("VRRP_PASS", ""))
    vrrp_use_unicast: bool = field(default_factory=lambda: env_bool("VRRP_USE_UNICAST"))
    vrrp_router_id: int = field(default_factory=lambda: int(os.getenv("VRRP_ROUTER_ID", "51")))
    settle_seconds: float = field(default_factory=lambda: float(os.getenv("KEEPALIVED_SETTLE_SECONDS", "10")))

    @property
    def effective_vrrp_pass(self) -> str:
        return self.vrrp_pass or default_vrrp_pass(self.virtual_ip)

    def override(self, **changes: Any) -> CutoverConfig:
        """Return a copy with every non-None value in *changes* applied."""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})

    # -- validation -----------------------------------------------------------

    def require_primary(self) -> None:
        if not self.current_primary_ip:
            raise ConfigurationError("Required parameter current_primary_ip is not provided")

    def require_vip(self) -> None:
        if not self.virtual_ip:
            raise ConfigurationError("Required parameter vmdb_virtual_ip is not provided")
        try:
            ipaddress.IPv4Address(self.virtual_ip)
        except ValueError as e:
            raise ConfigurationError(f"vmdb_virtual_ip is not a valid IPv4 address: {e}") from e

    # -- loaders --------------------------------------------------------------

    @classmethod
    def from_env(cls) -> CutoverConfig:
        """Create config from environment, raising on a missing primary."""
        cfg = cls()
        cfg.require_primary()
        return cfg

    @classmethod
    def from_yaml(cls, path: str) -> CutoverConfig:
        """Load playbook-style variables; anything absent falls back to the environment."""
        with open(path, "r") as f:
            raw: dict[str, Any] = yaml.safe_load(f) or {}
        if not isinstance(raw, dict):
            raise ConfigurationError(f"{path}: expected a mapping of variables")
        mapping = {
            "vmdb_current_primary_ip": "current_primary_ip",
            "current_primary_ip": "current_primary_ip",
            "vmdb_virtual_ip": "virtual_ip",
            "vmdb_username": "db_username",
            "vmdb_password": "db_password",
            "vmdb_database_name": "db_name",
            "vmdb_database_to_update": "db_profile",
            "vrrp_interface": "vrrp_interface",
            "vrrp_vip_interface": "vrrp_vip_interface",
            "vrrp_pass": "vrrp_pass",
            "vrrp_use_unicast": "vrrp_use_unicast",
            "vrrp_router_id": "vrrp_router_id",
            "keepalived_settle_seconds": "settle_seconds",
        }
        types = {f.name: f.type for f in fields(cls)}
        values: dict[str, Any] = {}
        for key, value in raw.items():
            name = mapping.get(key)
            if name is None or value is None:
                continue
            if types[name] in ("bool", bool) and isinstance(value, str):
                value = value.strip().lower() in ("1", "true", "yes", "on")
            elif types[name] in ("int", int):
                value = int(value)
            elif types[name] in ("float", float):
                value = float(value)
            elif types[name] in ("str", str):
                value = str(value)
            values[name] = value
        return cls(**values)
