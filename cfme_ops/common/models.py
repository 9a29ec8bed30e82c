"""Host data model shared by both procedures."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class HostRole(str, Enum):
    PRIMARY = "primary"
    STANDBY = "standby"
    CONSUMER = "appliance-consumer"


class HostState(str, Enum):
    UNKNOWN = "unknown"
    UP = "up"        # management port accepts connections
    DOWN = "down"    # management port refuses / times out


@dataclass
class Host:
    address: str
    role: Optional[HostRole] = None
    state: HostState = HostState.UNKNOWN

    def __str__(self) -> str:
        return self.address
