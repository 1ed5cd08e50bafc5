"""Multicast DNS discovery of GrayJay devices.

GrayJay's sync service advertises ``_gsync._tcp.local.`` (port 12315).  The
dev server runs on the same host on a separately configured port, so the
advertisement only tells us *where* to look; whether the dev server is
actually up is left to the caller.
"""

from __future__ import annotations

import asyncio
import logging

from devportal.config import HarnessConfig
from devportal.discovery.models import DiscoveredDevice

logger = logging.getLogger(__name__)

try:
    from zeroconf import IPVersion, ServiceStateChange, Zeroconf
    from zeroconf.asyncio import AsyncServiceBrowser, AsyncServiceInfo, AsyncZeroconf
except ImportError:
    AsyncZeroconf = None  # type: ignore[assignment,misc]
    AsyncServiceBrowser = None  # type: ignore[assignment,misc]
    AsyncServiceInfo = None  # type: ignore[assignment,misc]

_RESOLVE_TIMEOUT_MS = 1000


class MulticastDiscovery:
    """Browse for the sync service during a fixed discovery window."""

    def __init__(self, config: HarnessConfig) -> None:
        self.config = config
        self.service_type = config.service_type
        self.window = config.mdns_window
        self._found: dict[str, DiscoveredDevice] = {}
        self._pending: set[asyncio.Task] = set()

    async def discover(self) -> list[DiscoveredDevice]:
        """Collect advertising hosts for ``window`` seconds.

        Never raises for multicast problems: a missing ``zeroconf`` package
        or an unusable multicast socket logs a warning and yields ``[]``.
        """
        self._found = {}
        if AsyncZeroconf is None:
            logger.warning("zeroconf not installed — mDNS discovery disabled")
            return []

        logger.info("Discovering GrayJay devices via mDNS (%s)", self.service_type)
        aiozc = None
        browser = None
        try:
            aiozc = AsyncZeroconf()
            browser = AsyncServiceBrowser(
                aiozc.zeroconf,
                [self.service_type],
                handlers=[self._on_state_change],
            )
            await asyncio.sleep(self.window)
        except OSError as exc:
            logger.warning("mDNS unavailable: %s", exc)
        except Exception as exc:
            logger.warning("mDNS discovery error: %s", exc)
        finally:
            await self._shutdown(aiozc, browser)

        devices = list(self._found.values())
        if devices:
            logger.info("Found %d device(s) via mDNS", len(devices))
        else:
            logger.warning("No GrayJay devices broadcasting sync service")
        return devices

    # ── Internal ───────────────────────────────────────────────────

    def _on_state_change(
        self,
        zeroconf: Zeroconf,
        service_type: str,
        name: str,
        state_change: ServiceStateChange,
    ) -> None:
        if state_change is not ServiceStateChange.Added:
            return
        task = asyncio.ensure_future(self._resolve(zeroconf, service_type, name))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _resolve(self, zeroconf: Zeroconf, service_type: str, name: str) -> None:
        info = AsyncServiceInfo(service_type, name)
        if not await info.async_request(zeroconf, _RESOLVE_TIMEOUT_MS):
            logger.debug("mDNS: could not resolve %s", name)
            return
        self._on_service_found(
            name=name,
            addresses=info.parsed_addresses(IPVersion.V4Only),
            port=info.port,
            server=info.server,
        )

    def _on_service_found(
        self,
        name: str,
        addresses: list[str],
        port: int | None,
        server: str | None = None,
    ) -> DiscoveredDevice | None:
        """Record one advertisement; the advertised server name stands in for a missing address."""
        host = addresses[0] if addresses else (server or "").rstrip(".")
        if not host:
            logger.debug("mDNS: %s advertised no address, skipping", name)
            return None
        if host in self._found:
            return self._found[host]

        display = name.replace(f".{self.service_type}", "") or "GrayJay"
        device = DiscoveredDevice(
            host=host,
            control_port=self.config.control_port,
            name=display,
            service_port=port,
            available=False,
            discovery_method="mdns",
        )
        self._found[host] = device
        logger.info("Found: %s at %s:%s", display, host, port)
        return device

    async def _shutdown(self, aiozc, browser) -> None:
        """Stop browsing, let in-flight lookups finish, then close the sockets."""
        try:
            if browser is not None:
                await browser.async_cancel()
            if self._pending:
                _, still_pending = await asyncio.wait(
                    set(self._pending), timeout=_RESOLVE_TIMEOUT_MS / 1000
                )
                for task in still_pending:
                    task.cancel()
        finally:
            self._pending.clear()
            if aiozc is not None:
                await aiozc.async_close()
