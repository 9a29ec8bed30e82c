"""Shared plumbing: config, errors, logging, SSH sessions, port probes, audit."""
from .config import OpsConfig, SSHConfig
from .errors import (
    ConfigurationError,
    ConvergenceError,
    DiscoveryError,
    HostTimeoutError,
    OpsError,
    RemoteCommandError,
    VipMissingOnPrimaryError,
    VipOnStandbyError,
    VipPlacementError,
)
from .models import Host, HostRole, HostState
from .remote import CommandResult, SSHSession

__all__ = [
    "OpsConfig",
    "SSHConfig",
    "OpsError",
    "ConfigurationError",
    "RemoteCommandError",
    "DiscoveryError",
    "ConvergenceError",
    "VipPlacementError",
    "VipMissingOnPrimaryError",
    "VipOnStandbyError",
    "HostTimeoutError",
    "Host",
    "HostRole",
    "HostState",
    "CommandResult",
    "SSHSession",
]
