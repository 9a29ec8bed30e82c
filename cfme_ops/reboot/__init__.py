"""Appliance reboot: needs-restarting heuristic, delayed reboot, port-22 wait."""
from .config import RebootConfig
from .controller import classify_probe, decide_and_reboot
from .models import ProbeVerdict, RebootAction, RebootOutcome

__all__ = [
    "RebootConfig",
    "decide_and_reboot",
    "classify_probe",
    "ProbeVerdict",
    "RebootAction",
    "RebootOutcome",
]
