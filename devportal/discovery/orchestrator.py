"""Discovery orchestrator — manual override, then mDNS, then subnet scan.

Ordering is the only ranking: the first device found is the one used.
"""

from __future__ import annotations

import dataclasses
import logging

from devportal.config import HarnessConfig
from devportal.discovery.mdns import MulticastDiscovery
from devportal.discovery.models import DiscoveredDevice
from devportal.discovery.scanner import SubnetProber
from devportal.errors import NoDeviceFound

logger = logging.getLogger(__name__)


class DeviceDiscovery:
    """Resolve one dev server endpoint for a test session."""

    def __init__(
        self,
        config: HarnessConfig,
        multicast: MulticastDiscovery | None = None,
        prober: SubnetProber | None = None,
    ) -> None:
        self.config = config
        self.multicast = multicast or MulticastDiscovery(config)
        self.prober = prober or SubnetProber(config)

    async def discover(
        self,
        manual_host: str | None = None,
        manual_port: int | None = None,
    ) -> list[DiscoveredDevice]:
        """Return reachable devices in discovery order (possibly empty)."""
        port = manual_port or self.config.control_port

        if manual_host:
            logger.info("Using manually specified IP: %s:%d", manual_host, port)
            return [
                DiscoveredDevice(
                    host=manual_host,
                    control_port=port,
                    available=True,
                    discovery_method="manual",
                )
            ]

        if not self.config.skip_mdns:
            devices = await self.multicast.discover()
            if devices:
                chosen = await self._accept_multicast(devices[0], port)
                if chosen is not None:
                    rest = [dataclasses.replace(d, control_port=port) for d in devices[1:]]
                    return [chosen, *rest]
        else:
            logger.info("Skipping mDNS discovery")

        logger.info("Falling back to network scan")
        results = await self.prober.scan(port)
        return [
            DiscoveredDevice(
                host=r.host,
                control_port=r.port,
                available=True,
                discovery_method="scan",
            )
            for r in results
        ]

    async def resolve(
        self,
        manual_host: str | None = None,
        manual_port: int | None = None,
    ) -> DiscoveredDevice:
        """First device of :meth:`discover`; raises :class:`NoDeviceFound` if none."""
        devices = await self.discover(manual_host, manual_port)
        if not devices:
            raise NoDeviceFound()
        device = devices[0]
        if len(devices) > 1:
            logger.info("%d devices found, using the first (%s)", len(devices), device.host)
        return device

    async def _accept_multicast(self, device: DiscoveredDevice, port: int) -> DiscoveredDevice | None:
        """Mark the advertised device available.

        Trusts the advertisement unless ``verify_multicast`` is set, in which
        case the control port must answer on the marker path first.
        """
        device = dataclasses.replace(device, control_port=port)
        if self.config.verify_multicast:
            probe = await self.prober.probe_host(device.host, port, self.config.priority_timeout)
            if not probe.available:
                logger.warning("mDNS device %s does not answer on port %d", device.host, port)
                return None
        return dataclasses.replace(device, available=True)
