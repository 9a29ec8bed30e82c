"""Reboot configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from ..common.config import env_bool


@dataclass(frozen=True)
class RebootConfig:
    """Immutable reboot settings. Waits are independently tunable."""

    force: bool = field(default_factory=lambda: env_bool("FORCE_REBOOT"))
    probe_command: str = field(default_factory=lambda: os.getenv("CFME_REBOOT_PROBE_COMMAND", "needs-restarting -r"))
    dispatch_delay_s: int = field(default_factory=lambda: int(os.getenv("CFME_REBOOT_DISPATCH_DELAY", "5")))
    port: int = field(default_factory=lambda: int(os.getenv("CFME_REBOOT_PORT", "22")))

    # Wait for the port to drop
    down_timeout_s: float = field(default_factory=lambda: float(os.getenv("CFME_REBOOT_DOWN_TIMEOUT", "300")))
    # Wait for the port to come back
    up_timeout_s: float = field(default_factory=lambda: float(os.getenv("CFME_REBOOT_UP_TIMEOUT", "300")))
    up_delay_s: float = field(default_factory=lambda: float(os.getenv("CFME_REBOOT_UP_DELAY", "15")))
    poll_interval_s: float = field(default_factory=lambda: float(os.getenv("CFME_REBOOT_POLL_INTERVAL", "1")))

    @property
    def reboot_command(self) -> str:
        # The sleep lets the dispatching SSH command return before the host drops
        return f"( /bin/sleep {self.dispatch_delay_s} ; shutdown -r now )"
