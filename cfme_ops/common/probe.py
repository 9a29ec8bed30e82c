"""TCP port probes run from the control node (never from the target itself)."""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable

from .errors import HostTimeoutError

logger = logging.getLogger("cfme.probe")

STARTED = "started"
STOPPED = "stopped"

PortProbe = Callable[[str, int, float], Awaitable[bool]]


async def port_open(host: str, port: int, timeout: float = 5.0) -> bool:
    """Return True if a TCP connection to host:port succeeds within *timeout*."""
    try:
        _, writer = await asyncio.wait_for(asyncio.open_connection(host, port), timeout=timeout)
    except (OSError, asyncio.TimeoutError):
        return False
    writer.close()
    try:
        await writer.wait_closed()
    except OSError:
        pass
    return True


async def wait_for_port(
    host: str,
    port: int = 22,
    state: str = STARTED,
    timeout: float = 300.0,
    delay: float = 0.0,
    interval: float = 1.0,
    connect_timeout: float = 5.0,
    probe: PortProbe = port_open,
) -> float:
    """Poll until host:port is *state* ("started" or "stopped").

    *delay* is slept before the first probe and does not count against
    *timeout*. Returns the seconds spent polling; raises HostTimeoutError.
    """
    if state not in (STARTED, STOPPED):
        raise ValueError(f"state must be {STARTED!r} or {STOPPED!r}, got {state!r}")
    want_open = state == STARTED

    if delay > 0:
        logger.debug("Waiting %.0fs before probing %s:%d", delay, host, port)
        await asyncio.sleep(delay)

    t0 = time.monotonic()
    deadline = t0 + timeout
    while True:
        is_open = await probe(host, port, connect_timeout)
        if is_open == want_open:
            elapsed = time.monotonic() - t0
            logger.info("%s:%d is %s (%.1fs)", host, port, state, elapsed)
            return elapsed
        if time.monotonic() >= deadline:
            raise HostTimeoutError(host, port, state, timeout)
        await asyncio.sleep(interval)
