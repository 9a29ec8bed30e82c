"""SSH command execution against appliances (paramiko).

Every orchestration function takes a ``Connector`` (a callable mapping a host
address to a session usable as a context manager) so the transport can be
swapped out in tests.
"""
from __future__ import annotations

import logging
import os
import shlex
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from functools import partial
from typing import Callable, Optional

import paramiko

from .config import SSHConfig
from .errors import RemoteCommandError

logger = logging.getLogger("cfme.remote")


@dataclass
class CommandResult:
    host: str
    command: str
    rc: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.rc == 0

    @property
    def stdout_lines(self) -> list[str]:
        return [line for line in self.stdout.splitlines() if line.strip()]


class SSHSession:
    """One SSH connection to one appliance."""

    def __init__(self, host: str, cfg: Optional[SSHConfig] = None) -> None:
        self.host = host
        self.cfg = cfg or SSHConfig()
        self._client: Optional[paramiko.SSHClient] = None

    # -- connection -----------------------------------------------------------

    def connect(self) -> "SSHSession":
        client = paramiko.SSHClient()
        # Never blindly accept host keys; seed with: ssh-keyscan <host> >> known_hosts
        known_hosts = os.path.expanduser(self.cfg.known_hosts)
        if os.path.exists(known_hosts):
            client.load_host_keys(known_hosts)
        client.set_missing_host_key_policy(paramiko.RejectPolicy())
        client.connect(
            hostname=self.host,
            port=self.cfg.port,
            username=self.cfg.user,
            key_filename=os.path.expanduser(self.cfg.key_path),
            timeout=self.cfg.timeout_s,
        )
        self._client = client
        logger.debug("Connected to %s as %s", self.host, self.cfg.user)
        return self

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def __enter__(self) -> "SSHSession":
        return self.connect()

    def __exit__(self, *exc_info) -> None:
        self.close()

    @property
    def client(self) -> paramiko.SSHClient:
        if self._client is None:
            raise RuntimeError(f"SSH session to {self.host} is not connected")
        return self._client

    # -- commands -------------------------------------------------------------

    def _wrap(self, command: str, become: bool) -> str:
        if become and not self.cfg.is_root:
            return f"sudo -n sh -c {shlex.quote(command)}"
        return command

    def run(self, command: str, become: bool = False, check: bool = True,
            timeout: Optional[float] = None) -> CommandResult:
        """Run *command* and wait for it. Raises RemoteCommandError on non-zero when *check*."""
        wrapped = self._wrap(command, become)
        logger.debug("[%s] $ %s", self.host, wrapped)
        _, stdout, stderr = self.client.exec_command(wrapped, timeout=timeout or self.cfg.timeout_s)
        # Drain both streams at once; a full stderr window stalls the remote side
        with ThreadPoolExecutor(max_workers=1) as pool:
            pending_err = pool.submit(stderr.read)
            out = stdout.read().decode(errors="replace")
            err = pending_err.result().decode(errors="replace")
        rc = stdout.channel.recv_exit_status()
        result = CommandResult(host=self.host, command=command, rc=rc, stdout=out, stderr=err)
        if rc != 0:
            logger.debug("[%s] rc=%d stderr=%s", self.host, rc, err.strip())
            if check:
                raise RemoteCommandError(self.host, command, rc, err)
        return result

    def run_detached(self, command: str, become: bool = False) -> None:
        """Launch *command* in the background and return without waiting for it."""
        launcher = f"nohup sh -c {shlex.quote(self._wrap(command, become))} > /dev/null 2>&1 &"
        self.run(launcher)

    # -- files ----------------------------------------------------------------

    def read_file(self, path: str, become: bool = False) -> Optional[str]:
        """Return the file contents, or None when the file does not exist."""
        result = self.run(f"cat {shlex.quote(path)}", become=become, check=False)
        if result.ok:
            return result.stdout
        if "No such file" in result.stderr:
            return None
        raise RemoteCommandError(self.host, result.command, result.rc, result.stderr)

    def write_file(self, path: str, content: str, mode: int = 0o644, become: bool = False) -> None:
        """Upload *content* to a temp file and install it at *path* with *mode*."""
        tmp = f"/tmp/.cfme-ops-{uuid.uuid4().hex}"
        sftp = self.client.open_sftp()
        try:
            with sftp.file(tmp, "w") as fh:
                fh.write(content)
        finally:
            sftp.close()
        self.run(
            f"install -m {mode:04o} {shlex.quote(tmp)} {shlex.quote(path)} && rm -f {shlex.quote(tmp)}",
            become=become,
        )
        logger.debug("[%s] wrote %s (%d bytes, mode %04o)", self.host, path, len(content), mode)


def file_mtime(session, path: str, become: bool = False) -> Optional[int]:
    """Epoch seconds of the last modification of *path*, or None if it is absent."""
    result = session.run(f"stat -c %Y {shlex.quote(path)}", become=become, check=False)
    value = result.stdout.strip()
    return int(value) if result.ok and value.isdigit() else None


def service_active_since(session, unit: str) -> Optional[int]:
    """Epoch seconds at which *unit* last entered the active state, or None if it is not running."""
    result = session.run(
        f"ts=$(systemctl show -p ActiveEnterTimestamp --value {shlex.quote(unit)}) "
        f'&& [ -n "$ts" ] && systemctl is-active --quiet {shlex.quote(unit)} && date -d "$ts" +%s',
        check=False,
    )
    value = result.stdout.strip()
    return int(value) if result.ok and value.isdigit() else None


def service_predates(session, unit: str, *stamps: Optional[int]) -> bool:
    """True if *unit* is stopped or was started before the newest of *stamps*.

    A running unit that started in the same second as the newest stamp counts
    as current.
    """
    started = service_active_since(session, unit)
    if started is None:
        return True
    newest = max((s for s in stamps if s is not None), default=0)
    return started < newest


Connector = Callable[[str], SSHSession]


def ssh_connector(cfg: Optional[SSHConfig] = None) -> Connector:
    """Default connector: a fresh paramiko session per host."""
    return partial(SSHSession, cfg=cfg or SSHConfig())
