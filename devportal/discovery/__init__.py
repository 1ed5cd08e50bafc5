"""devportal.discovery — locate a GrayJay dev server on the local network.

Exports:
    DiscoveredDevice     — frozen dataclass for a candidate device
    ProbeResult          — outcome of a single HTTP probe
    SubnetProber         — batched HTTP sweep of the local /24
    MulticastDiscovery   — zeroconf browser for the sync service
    DeviceDiscovery      — manual → mDNS → scan orchestration
"""

from __future__ import annotations

from devportal.discovery.mdns import MulticastDiscovery
from devportal.discovery.models import DiscoveredDevice, ProbeResult
from devportal.discovery.orchestrator import DeviceDiscovery
from devportal.discovery.scanner import SubnetProber

__all__ = [
    "DiscoveredDevice",
    "ProbeResult",
    "SubnetProber",
    "MulticastDiscovery",
    "DeviceDiscovery",
]
