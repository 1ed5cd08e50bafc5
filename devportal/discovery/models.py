"""Discovery data structures."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class DiscoveredDevice:
    """A GrayJay dev server candidate found via mDNS, scan, or manual entry.

    Instances are never mutated; use :func:`dataclasses.replace` to derive a
    device with a different ``available`` flag.
    """

    host: str
    control_port: int
    name: str | None = None
    service_port: int | None = None
    available: bool = False
    discovery_method: str = "mdns"  # "mdns", "scan", "manual"

    def __post_init__(self) -> None:
        if not self.host:
            raise ValueError("DiscoveredDevice.host must not be empty")

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.control_port}"


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of one HTTP probe against ``host:port``."""

    host: str
    port: int
    available: bool
    response_time_ms: int | None = None

    def __post_init__(self) -> None:
        if self.available and (self.response_time_ms is None or self.response_time_ms < 0):
            raise ValueError("available ProbeResult needs a non-negative response_time_ms")
