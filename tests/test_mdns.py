"""Tests for mDNS discovery of the GrayJay sync service."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

from devportal.config import HarnessConfig
from devportal.discovery.mdns import MulticastDiscovery

SERVICE = "_gsync._tcp.local."


def _config(**kwargs) -> HarnessConfig:
    return HarnessConfig(mdns_window=0.01, **kwargs)


class TestServiceFound:
    def test_device_from_advertisement(self):
        disc = MulticastDiscovery(_config())
        dev = disc._on_service_found(f"Pixel 7.{SERVICE}", ["192.168.3.55"], 12315)
        assert dev is not None
        assert dev.host == "192.168.3.55"
        assert dev.name == "Pixel 7"
        assert dev.service_port == 12315
        assert dev.control_port == 11337
        assert dev.available is False
        assert dev.discovery_method == "mdns"

    def test_control_port_from_config_not_advertisement(self):
        disc = MulticastDiscovery(_config(control_port=12000))
        dev = disc._on_service_found(f"tv.{SERVICE}", ["192.168.3.56"], 12315)
        assert dev.control_port == 12000
        assert dev.service_port == 12315

    def test_falls_back_to_server_name(self):
        disc = MulticastDiscovery(_config())
        dev = disc._on_service_found(f"phone.{SERVICE}", [], 12315, server="android-1234.local.")
        assert dev.host == "android-1234.local"

    def test_no_address_skipped(self):
        disc = MulticastDiscovery(_config())
        assert disc._on_service_found(f"ghost.{SERVICE}", [], 12315, server=None) is None
        assert disc._found == {}

    def test_duplicates_collapsed(self):
        disc = MulticastDiscovery(_config())
        disc._on_service_found(f"a.{SERVICE}", ["192.168.3.55"], 12315)
        disc._on_service_found(f"a.{SERVICE}", ["192.168.3.55"], 12315)
        assert len(disc._found) == 1


class TestDiscover:
    async def test_zeroconf_missing_returns_empty(self):
        with patch("devportal.discovery.mdns.AsyncZeroconf", None):
            devices = await MulticastDiscovery(_config()).discover()
        assert devices == []

    async def test_multicast_unavailable_returns_empty(self):
        with patch(
            "devportal.discovery.mdns.AsyncZeroconf",
            MagicMock(side_effect=OSError("No multicast route")),
        ):
            devices = await MulticastDiscovery(_config()).discover()
        assert devices == []

    async def test_collects_and_releases_resources(self):
        disc = MulticastDiscovery(_config())
        aiozc = MagicMock()
        aiozc.async_close = AsyncMock()
        browser = MagicMock()
        browser.async_cancel = AsyncMock()

        def fake_browser(zc, types, handlers):
            assert types == [SERVICE]
            assert handlers == [disc._on_state_change]
            disc._on_service_found(f"Pixel.{SERVICE}", ["192.168.3.55"], 12315)
            disc._on_service_found(f"Shield.{SERVICE}", ["192.168.3.60"], 12315)
            return browser

        with patch("devportal.discovery.mdns.AsyncZeroconf", return_value=aiozc), \
                patch("devportal.discovery.mdns.AsyncServiceBrowser", side_effect=fake_browser):
            devices = await disc.discover()

        assert [d.host for d in devices] == ["192.168.3.55", "192.168.3.60"]
        browser.async_cancel.assert_awaited_once()
        aiozc.async_close.assert_awaited_once()

    async def test_browser_error_still_closes(self):
        aiozc = MagicMock()
        aiozc.async_close = AsyncMock()
        with patch("devportal.discovery.mdns.AsyncZeroconf", return_value=aiozc), \
                patch("devportal.discovery.mdns.AsyncServiceBrowser", side_effect=RuntimeError("boom")):
            devices = await MulticastDiscovery(_config()).discover()
        assert devices == []
        aiozc.async_close.assert_awaited_once()

    async def test_rediscovery_starts_fresh(self):
        disc = MulticastDiscovery(_config())
        disc._on_service_found(f"old.{SERVICE}", ["192.168.3.99"], 12315)
        with patch("devportal.discovery.mdns.AsyncZeroconf", None):
            assert await disc.discover() == []
