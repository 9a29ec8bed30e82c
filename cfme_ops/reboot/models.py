"""Reboot data models."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ProbeVerdict(str, Enum):
    CLEAN = "CLEAN"                         # rc 0, nothing to do
    RESTART_ADVISED = "RESTART_ADVISED"     # rc 1, core libs / kernel updated
    TOOL_UNAVAILABLE = "TOOL_UNAVAILABLE"   # any other rc, tool missing or broken


class RebootAction(str, Enum):
    SKIPPED = "skipped"
    REBOOTED = "rebooted"


@dataclass
class RebootOutcome:
    host: str
    action: RebootAction
    verdict: ProbeVerdict
    probe_rc: int
    forced: bool = False
    elapsed_s: float = 0.0

    @property
    def rebooted(self) -> bool:
        return self.action == RebootAction.REBOOTED
