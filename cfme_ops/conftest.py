"""
Shared pytest fixtures for cfme_ops tests.
An in-memory fleet of fake appliances stands in for SSH; no real hosts needed.
Each fake host interprets the commands the orchestration code issues and
records file writes and service restarts against a shared logical clock.
"""

import itertools
import re
import shlex
from dataclasses import dataclass, field
from typing import Callable, Optional

import pytest

from cfme_ops.common.config import OpsConfig
from cfme_ops.common.errors import RemoteCommandError
from cfme_ops.common.remote import CommandResult
from cfme_ops.vip.config import CutoverConfig


# ---------------------------------------------------------------------------
# Fake appliance
# ---------------------------------------------------------------------------

@dataclass
class FakeAppliance:
    address: str
    clock: Callable[[], int]
    files: dict = field(default_factory=dict)
    modes: dict = field(default_factory=dict)
    written_at: dict = field(default_factory=dict)
    packages: dict = field(default_factory=dict)           # name -> installed version string
    repo_versions: dict = field(default_factory=lambda: {"keepalived": "keepalived-2.1.5-6.el8.x86_64"})
    rich_rules: set = field(default_factory=set)
    addresses: list = field(default_factory=list)
    restarts: dict = field(default_factory=dict)           # service -> [tick, ...]
    started: dict = field(default_factory=dict)            # running service -> tick it became active
    installed_at: dict = field(default_factory=dict)       # package -> tick of install/upgrade
    enabled: set = field(default_factory=set)
    selinux_types: dict = field(default_factory=dict)
    psql: dict = field(default_factory=dict)               # query substring -> (rc, stdout)
    needs_restarting_rc: int = 0
    detached: list = field(default_factory=list)
    commands: list = field(default_factory=list)
    fail_on: Optional[str] = None                          # substring that makes a command exit 1
    unreachable: bool = False

    def restart_count(self, service: str) -> int:
        return len(self.restarts.get(service, []))

    def execute(self, command: str) -> tuple:
        self.commands.append(command)
        if self.fail_on and self.fail_on in command:
            return 1, "", f"simulated failure: {self.fail_on}"

        if "psql" in command:
            for needle, (rc, out) in self.psql.items():
                if needle in command:
                    return rc, out, ""
            return 1, "", "ERROR: relation does not exist"
        if "needs-restarting" in command:
            return self.needs_restarting_rc, "", ""
        m = re.search(r"ActiveEnterTimestamp --value (\S+)\)", command)
        if m:
            service = m.group(1)
            if service in self.started:
                return 0, f"{self.started[service]}\n", ""
            return 1, "", ""
        if command.startswith("stat -c %Y "):
            path = shlex.split(command)[3]
            if path in self.files:
                return 0, f"{self.written_at.get(path, 0)}\n", ""
            return 1, "", f"stat: cannot statx '{path}': No such file or directory"
        if command.startswith("cat "):
            path = shlex.split(command)[1]
            if path in self.files:
                return 0, self.files[path], ""
            return 1, "", f"cat: {path}: No such file or directory"
        if command.startswith("rpm -q "):
            name = command.split()[-1]
            if "--qf" in command and name in self.packages:
                return 0, f"{self.installed_at.get(name, 0)}", ""
            if name in self.packages:
                return 0, self.packages[name] + "\n", ""
            return 1, f"package {name} is not installed\n", ""
        if command.startswith("yum -y "):
            name = command.split()[-1]
            version = self.repo_versions.get(name, f"{name}-1.0-1.x86_64")
            if self.packages.get(name) != version:
                self.packages[name] = version
                self.installed_at[name] = self.clock()
            return 0, "Complete!\n", ""
        m = re.match(r"firewall-cmd (--permanent )?--(query|add)-rich-rule=(.*)$", command)
        if m:
            rule = shlex.split(m.group(3))[0]
            if m.group(2) == "query":
                return (0, "yes\n", "") if rule in self.rich_rules else (1, "no\n", "")
            self.rich_rules.add(rule)
            return 0, "success\n", ""
        if command.startswith("chcon -t "):
            _, _, setype, path = command.split()
            self.selinux_types[path] = setype
            return 0, "", ""
        if command.startswith("systemctl "):
            parts = command.split()
            service = parts[-1]
            if parts[1] == "restart":
                tick = self.clock()
                self.restarts.setdefault(service, []).append(tick)
                self.started[service] = tick
            elif parts[1] == "enable":
                self.enabled.add(service)
                if "--now" in parts and service not in self.started:
                    self.started[service] = self.clock()
            return 0, "", ""
        if command == "ip -4 -o addr show":
            lines = ["1: lo    inet 127.0.0.1/8 scope host lo\\       valid_lft forever preferred_lft forever"]
            for i, addr in enumerate(self.addresses):
                scope = "global" if i == 0 else "global secondary"
                lines.append(f"2: eth0    inet {addr}/24 brd 10.0.0.255 scope {scope} eth0\\       "
                             "valid_lft forever preferred_lft forever")
            return 0, "\n".join(lines) + "\n", ""
        return 0, "", ""


class FakeSession:
    """Duck-types SSHSession over a FakeAppliance."""

    def __init__(self, appliance: FakeAppliance) -> None:
        self.appliance = appliance
        self.host = appliance.address

    def __enter__(self):
        if self.appliance.unreachable:
            raise OSError(f"[Errno 113] No route to host: {self.host}")
        return self

    def __exit__(self, *exc_info) -> None:
        pass

    def run(self, command, become=False, check=True, timeout=None):
        rc, out, err = self.appliance.execute(command)
        if rc != 0 and check:
            raise RemoteCommandError(self.host, command, rc, err)
        return CommandResult(host=self.host, command=command, rc=rc, stdout=out, stderr=err)

    def run_detached(self, command, become=False):
        if self.appliance.fail_on and self.appliance.fail_on in command:
            raise RemoteCommandError(self.host, command, 255, "connection reset")
        self.appliance.detached.append(command)

    def read_file(self, path, become=False):
        return self.appliance.files.get(path)

    def write_file(self, path, content, mode=0o644, become=False):
        if self.appliance.fail_on and self.appliance.fail_on in path:
            raise RemoteCommandError(self.host, f"install {path}", 1, "Read-only file system")
        self.appliance.files[path] = content
        self.appliance.modes[path] = mode
        self.appliance.written_at[path] = self.appliance.clock()


class FakeFleet:
    def __init__(self) -> None:
        self._ticks = itertools.count(1)
        self.hosts: dict = {}

    def tick(self) -> int:
        return next(self._ticks)

    def add(self, address: str, **kwargs) -> FakeAppliance:
        appliance = FakeAppliance(address=address, clock=self.tick, **kwargs)
        self.hosts[address] = appliance
        return appliance

    def __getitem__(self, address: str) -> FakeAppliance:
        return self.hosts[address]

    def connector(self, address: str) -> FakeSession:
        if address not in self.hosts:
            raise OSError(f"[Errno 111] Connection refused: {address}")
        return FakeSession(self.hosts[address])


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

SAMPLE_DATABASE_YML = """\
base:
    adapter: postgresql
    encoding: utf8
    pool: 5
    wait_timeout: 5
production:
    adapter: postgresql
    database: vmdb_production
    host: 10.0.0.1
    password: v2:{c2VjcmV0}
    pool: 5
    username: root
test:
    database: vmdb_test
    host: localhost
    username: root
"""


@pytest.fixture
def fleet():
    return FakeFleet()


@pytest.fixture
def region(fleet):
    """primary 10.0.0.1, standby 10.0.0.2, appliance 10.0.0.3; VIP 10.0.0.9 lands on the primary."""
    primary = fleet.add(
        "10.0.0.1",
        addresses=["10.0.0.1", "10.0.0.9"],
        psql={
            "pg_is_in_recovery": (0, "f\n"),
            "repl_nodes": (0, "host=10.0.0.2 user=root dbname=vmdb_production\n"),
            "miq_servers": (0, "10.0.0.3\n"),
        },
    )
    fleet.add("10.0.0.2", addresses=["10.0.0.2"])
    fleet.add("10.0.0.3", addresses=["10.0.0.3"],
              files={"/var/www/miq/vmdb/config/database.yml": SAMPLE_DATABASE_YML},
              started={"evm-watchdog": 0, "evmserverd": 0})
    return primary


@pytest.fixture
def cutover_cfg():
    return CutoverConfig(
        current_primary_ip="10.0.0.1",
        virtual_ip="10.0.0.9",
        db_username="root",
        db_password="",
        db_name="vmdb_production",
        db_profile="production",
        vrrp_interface="eth0",
        vrrp_vip_interface="eth0",
        vrrp_pass="",
        vrrp_use_unicast=False,
        vrrp_router_id=51,
        settle_seconds=0,
    )


@pytest.fixture
def ops_cfg(tmp_path):
    return OpsConfig(log_dir=str(tmp_path / "logs"), log_retention_days=1, audit_url="", audit_token="")
