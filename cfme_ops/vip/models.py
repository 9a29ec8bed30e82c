"""Cutover data models."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from ..common.models import Host, HostRole


@dataclass(frozen=True)
class Topology:
    """Region layout discovered from the primary VMDB. Built once, never mutated."""

    primary: Host
    standbys: tuple[Host, ...] = ()
    consumers: tuple[Host, ...] = ()

    @property
    def db_hosts(self) -> tuple[Host, ...]:
        return (self.primary, *self.standbys)

    def roles_of(self, address: str) -> list[HostRole]:
        """A host may sit in more than one group (e.g. a VMDB appliance that also runs evmserverd)."""
        roles = []
        if self.primary.address == address:
            roles.append(HostRole.PRIMARY)
        if any(h.address == address for h in self.standbys):
            roles.append(HostRole.STANDBY)
        if any(h.address == address for h in self.consumers):
            roles.append(HostRole.CONSUMER)
        return roles

    def summary(self) -> dict[str, list[str]]:
        return {
            "primary": [self.primary.address],
            "standby": [h.address for h in self.standbys],
            "nonvmdb": [h.address for h in self.consumers],
        }


@dataclass
class HostConvergence:
    host: str
    package_changed: bool = False
    config_changed: bool = False
    check_script_changed: bool = False
    firewall_changed: bool = False
    restarted: bool = False

    @property
    def changed(self) -> bool:
        return (self.package_changed or self.config_changed
                or self.check_script_changed or self.firewall_changed)


@dataclass
class ConvergenceResult:
    vip: str
    hosts: list[HostConvergence] = field(default_factory=list)
    addresses: dict[str, list[str]] = field(default_factory=dict)

    @property
    def restarted_hosts(self) -> list[str]:
        return [h.host for h in self.hosts if h.restarted]

    @property
    def vip_owner(self) -> Optional[str]:
        owners = [host for host, addrs in self.addresses.items() if self.vip in addrs]
        return owners[0] if len(owners) == 1 else None


@dataclass
class ConsumerResult:
    host: str
    success: bool
    changed: bool = False
    restarted_services: list[str] = field(default_factory=list)
    error: str = ""


@dataclass
class CutoverReport:
    topology: Topology
    convergence: Optional[ConvergenceResult] = None
    consumers: list[ConsumerResult] = field(default_factory=list)

    @property
    def failed_consumers(self) -> list[ConsumerResult]:
        return [c for c in self.consumers if not c.success]

    @property
    def success(self) -> bool:
        return not self.failed_consumers
