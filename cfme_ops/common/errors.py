"""Exception taxonomy shared by the reboot and cutover procedures."""
from __future__ import annotations


class OpsError(RuntimeError):
    """Base class for every error raised by cfme_ops."""


class ConfigurationError(OpsError):
    """A required input is missing or malformed. Raised before any network action."""


class RemoteCommandError(OpsError):
    """A checked remote command exited non-zero."""

    def __init__(self, host: str, command: str, rc: int, stderr: str = "") -> None:
        self.host = host
        self.command = command
        self.rc = rc
        self.stderr = stderr
        detail = f": {stderr.strip()}" if stderr and stderr.strip() else ""
        super().__init__(f"[{host}] command exited {rc}: {command}{detail}")


class DiscoveryError(OpsError):
    """Topology discovery against the primary failed. Always fatal."""


class ConvergenceError(OpsError):
    """One or more database-tier hosts failed to converge."""

    def __init__(self, failures: dict[str, BaseException]) -> None:
        self.failures = failures
        hosts = ", ".join(f"{h} ({e})" for h, e in failures.items())
        super().__init__(f"keepalived convergence failed on: {hosts}")


class VipPlacementError(OpsError):
    """The VIP is not bound where it should be after convergence."""

    def __init__(self, vip: str, host: str, message: str) -> None:
        self.vip = vip
        self.host = host
        super().__init__(message)


class VipMissingOnPrimaryError(VipPlacementError):
    def __init__(self, vip: str, host: str) -> None:
        super().__init__(
            vip, host,
            f"VIP {vip} is not present on the primary {host}. "
            "Please verify state of keepalived service on primary DB",
        )


class VipOnStandbyError(VipPlacementError):
    def __init__(self, vip: str, host: str) -> None:
        super().__init__(
            vip, host,
            f"VIP {vip} is present on standby host {host}. Please verify state of "
            "keepalived service and ensure appliances can communicate with VRRP.\n\n"
            "Do you need to enable vrrp_use_unicast=true?",
        )


class HostTimeoutError(OpsError, TimeoutError):
    """A host's port did not reach the expected state in time."""

    def __init__(self, host: str, port: int, state: str, timeout: float) -> None:
        self.host = host
        self.port = port
        self.state = state
        self.timeout = timeout
        super().__init__(
            f"{host}:{port} did not become {state} within {timeout:g}s"
        )
