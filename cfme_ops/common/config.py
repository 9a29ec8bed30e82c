"""Shared configuration: all values from env vars (and a local .env file)."""
from __future__ import annotations

import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()


def env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class SSHConfig:
    """How the control node reaches appliances."""

    user: str = field(default_factory=lambda: os.getenv("CFME_SSH_USER", "root"))
    key_path: str = field(default_factory=lambda: os.getenv("CFME_SSH_KEY_PATH", "~/.ssh/id_rsa"))
    known_hosts: str = field(default_factory=lambda: os.getenv("CFME_SSH_KNOWN_HOSTS", "~/.ssh/known_hosts"))
    port: int = field(default_factory=lambda: int(os.getenv("CFME_SSH_PORT", "22")))
    timeout_s: float = field(default_factory=lambda: float(os.getenv("CFME_SSH_TIMEOUT", "10")))

    @property
    def is_root(self) -> bool:
        return self.user == "root"


@dataclass(frozen=True)
class OpsConfig:
    """Logging and audit settings common to every procedure."""

    log_dir: str = field(default_factory=lambda: os.getenv("CFME_LOG_DIR", "logs"))
    log_retention_days: int = field(default_factory=lambda: int(os.getenv("CFME_LOG_RETENTION_DAYS", "7")))
    audit_url: str = field(default_factory=lambda: os.getenv("CFME_AUDIT_URL", ""))
    audit_token: str = field(default_factory=lambda: os.getenv("CFME_AUDIT_TOKEN", ""))
