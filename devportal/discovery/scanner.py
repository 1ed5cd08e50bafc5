"""Subnet prober — HTTP fallback discovery for GrayJay dev servers.

Checks a short priority list (loopback, local addresses, the well-known
default dev server IP) first, then sweeps the local /24 in fixed-size
batches.  Batches run one after another; probes inside a batch run
concurrently, which bounds the number of sockets open at once.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable

import httpx

from devportal.config import HarnessConfig
from devportal.discovery.models import ProbeResult
from devportal.discovery.network import chunked, get_local_ipv4_addresses, subnet_hosts
from devportal.errors import NoNetworkInterface

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


class SubnetProber:
    """Concurrent HTTP probe of the marker endpoint across the local subnet."""

    def __init__(
        self,
        config: HarnessConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config
        self._transport = transport
        self._progress_callbacks: list[ProgressCallback] = []

    def on_progress(self, callback: ProgressCallback) -> None:
        """Register a callback receiving ``(done_batches, total_batches)``."""
        self._progress_callbacks.append(callback)

    # ------------------------------------------------------------------ #
    # Public API                                                           #
    # ------------------------------------------------------------------ #

    async def scan(self, port: int | None = None) -> list[ProbeResult]:
        """Find hosts answering on the marker path.

        Returns only available results.  An empty list means nothing was
        found *or* no usable network interface exists; callers treat both
        the same way.
        """
        port = self.config.control_port if port is None else port
        try:
            local_ips = self.local_addresses()
        except NoNetworkInterface as exc:
            logger.error("%s", exc)
            return []

        logger.info("Local IPs: %s", ", ".join(local_ips))

        found = await self.probe_priority_hosts(local_ips, port)
        if found:
            for r in found:
                logger.info("Found dev server at http://%s:%d (%dms)", r.host, r.port, r.response_time_ms)
            return found

        logger.info("Priority hosts not found, scanning subnet of %s", local_ips[0])
        found = await self.scan_hosts(subnet_hosts(local_ips[0]), port, self.config.scan_timeout)
        if found:
            logger.info("Found %d dev server(s) on the subnet", len(found))
        else:
            logger.warning("No GrayJay dev servers found on the network")
        return found

    def local_addresses(self) -> list[str]:
        """Local IPv4 addresses; raises :class:`NoNetworkInterface` if none."""
        local_ips = get_local_ipv4_addresses()
        if not local_ips:
            raise NoNetworkInterface("No network interfaces found")
        return local_ips

    def priority_hosts(self, local_ips: list[str]) -> list[str]:
        hosts = ["localhost", "127.0.0.1", self.config.default_device_host, *local_ips]
        return list(dict.fromkeys(h for h in hosts if h))

    async def probe_priority_hosts(self, local_ips: list[str], port: int) -> list[ProbeResult]:
        hosts = self.priority_hosts(local_ips)
        logger.info("Checking priority hosts: %s", ", ".join(hosts))
        results = await self._probe_batch(hosts, port, self.config.priority_timeout)
        return [r for r in results if r.available]

    async def scan_hosts(self, hosts: list[str], port: int, timeout: float) -> list[ProbeResult]:
        """Probe *hosts* in sequential batches, returning every available one."""
        batches = chunked(hosts, self.config.scan_batch_size)
        found: list[ProbeResult] = []
        for index, batch in enumerate(batches, start=1):
            results = await self._probe_batch(batch, port, timeout)
            found.extend(r for r in results if r.available)
            logger.debug("Scan progress: %d%%", round(index / len(batches) * 100))
            self._report_progress(index, len(batches))
        return found

    async def probe_host(self, host: str, port: int, timeout: float) -> ProbeResult:
        """Probe a single host with its own client."""
        results = await self._probe_batch([host], port, timeout)
        return results[0]

    async def probe(self, client: httpx.AsyncClient, host: str, port: int) -> ProbeResult:
        """GET the marker path once.  Any HTTP response counts as available."""
        url = f"http://{host}:{port}{self.config.marker_path}"
        started = time.monotonic()
        try:
            await client.get(url)
        except httpx.HTTPError:
            return ProbeResult(host=host, port=port, available=False)
        elapsed = max(0, int((time.monotonic() - started) * 1000))
        logger.debug("HTTP probe OK: %s (%dms)", url, elapsed)
        return ProbeResult(host=host, port=port, available=True, response_time_ms=elapsed)

    # ------------------------------------------------------------------ #
    # Internal helpers                                                     #
    # ------------------------------------------------------------------ #

    async def _probe_batch(self, hosts: list[str], port: int, timeout: float) -> list[ProbeResult]:
        """Probe one batch concurrently; returns after every probe settled."""
        async with httpx.AsyncClient(
            timeout=timeout,
            transport=self._transport,
            follow_redirects=False,
        ) as client:
            results = await asyncio.gather(
                *(self.probe(client, host, port) for host in hosts),
                return_exceptions=True,
            )
        probes: list[ProbeResult] = []
        for host, r in zip(hosts, results):
            if isinstance(r, ProbeResult):
                probes.append(r)
            else:
                logger.debug("Probe of %s failed: %s", host, r)
                probes.append(ProbeResult(host=host, port=port, available=False))
        return probes

    def _report_progress(self, done: int, total: int) -> None:
        for cb in self._progress_callbacks:
            try:
                cb(done, total)
            except Exception:
                logger.exception("Error in progress callback")
