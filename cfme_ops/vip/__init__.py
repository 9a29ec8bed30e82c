"""VMDB virtual-IP cutover: discovery, keepalived convergence, appliance repointing."""
from .config import CutoverConfig
from .consumers import deep_merge, repoint_consumers
from .convergence import converge_vip
from .cutover import convert_region_to_vip
from .discovery import discover_topology
from .models import ConsumerResult, ConvergenceResult, CutoverReport, HostConvergence, Topology

__all__ = [
    "CutoverConfig",
    "discover_topology",
    "converge_vip",
    "repoint_consumers",
    "deep_merge",
    "convert_region_to_vip",
    "Topology",
    "HostConvergence",
    "ConvergenceResult",
    "ConsumerResult",
    "CutoverReport",
]
