"""Tests for the session driver state machine."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from devportal.assets import AssetServer
from devportal.config import HarnessConfig
from devportal.discovery.orchestrator import DeviceDiscovery
from devportal.errors import MissingArtifacts, NoDeviceFound
from devportal.session import SessionDriver, SessionState

S = SessionState
HAPPY_PATH = [
    S.IDLE,
    S.DISCOVERING,
    S.SERVING_ASSETS,
    S.PORTAL_LOADING,
    S.INJECTING,
    S.INVOKING_METHODS,
    S.DONE,
]


class MockControlPlane:
    """Records requests and answers like a GrayJay dev server."""

    def __init__(self, inject_error=None, call_status=200):
        self.requests: list[httpx.Request] = []
        self.inject_error = inject_error
        self.call_status = call_status

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path == "/dev":
            return httpx.Response(200, text="<html>portal</html>")
        if path == "/plugin/updateTestPlugin":
            if self.inject_error is not None:
                raise self.inject_error(request)
            return httpx.Response(200, text="")
        if path == "/plugin/remoteCall":
            if self.call_status != 200:
                return httpx.Response(self.call_status, text="ScriptException")
            method = request.url.params["method"]
            if method == "getHome":
                return httpx.Response(200, json={"results": [{"name": "a"}, {"name": "b"}], "hasMore": False})
            return httpx.Response(200, json={"ok": True})
        return httpx.Response(404)


def _config(dist_dir, **kwargs) -> HarnessConfig:
    return HarnessConfig(
        artifact_dir=str(dist_dir),
        local_server_host="127.0.0.1",
        local_server_port=0,
        settle_delay=0,
        **kwargs,
    )


def _driver(config, plane, discovery=None) -> SessionDriver:
    assets = AssetServer(config, advertise_host="127.0.0.1")
    return SessionDriver(
        config,
        discovery=discovery,
        assets=assets,
        transport=httpx.MockTransport(plane),
    )


class TestHappyPath:
    async def test_manual_ip_end_to_end(self, dist_dir, manifest):
        plane = MockControlPlane()
        driver = _driver(_config(dist_dir), plane)
        seen_states: list[SessionState] = []
        driver.on_state(seen_states.append)

        try:
            report = await driver.run(manual_host="10.0.0.5", manual_port=11337)

            assert report.history == HAPPY_PATH
            assert seen_states == HAPPY_PATH[1:]
            assert driver.state is S.DONE
            assert report.device.host == "10.0.0.5"
            assert report.device.discovery_method == "manual"
            assert report.plugin_name == "Example Source"
            assert report.plugin_version == "3"
            assert report.injection.success is True
            assert all(r.success for r in report.method_results.values())
            assert list(report.method_results) == ["enable", "getHome"]
            assert report.home_items == 2
            assert all(step.passed for step in report.steps)
            # server keeps running for reloads
            assert driver.assets.running
        finally:
            await driver.close()
        assert not driver.assets.running

        assert {r.url.host for r in plane.requests} == {"10.0.0.5"}
        assert {r.url.port for r in plane.requests} == {11337}
        inject = next(r for r in plane.requests if r.url.path == "/plugin/updateTestPlugin")
        body = json.loads(inject.content)
        assert body["config"] == manifest
        assert body["url"] == report.script_url
        assert report.script_url.startswith("http://127.0.0.1:")
        assert report.script_url.endswith("/script.js")
        calls = [r for r in plane.requests if r.url.path == "/plugin/remoteCall"]
        assert [r.url.params["method"] for r in calls] == ["enable", "getHome"]
        assert {r.url.params["id"] for r in calls} == {manifest["id"]}

    async def test_portal_loaded_before_inject(self, dist_dir):
        plane = MockControlPlane()
        driver = _driver(_config(dist_dir), plane)
        try:
            await driver.run(manual_host="10.0.0.5")
        finally:
            await driver.close()
        paths = [r.url.path for r in plane.requests]
        assert paths.index("/dev") < paths.index("/plugin/updateTestPlugin")


class TestSoftFailures:
    async def test_connection_reset_on_inject_still_done(self, dist_dir):
        def reset(request):
            return httpx.ReadError("Connection reset by peer", request=request)

        driver = _driver(_config(dist_dir), MockControlPlane(inject_error=reset))
        try:
            report = await driver.run(manual_host="10.0.0.5")
        finally:
            await driver.close()
        assert report.state is S.DONE
        assert report.injection.status == "connection_closed"
        assert report.step("inject").status == "warning"
        assert report.step("invoke_methods").passed

    async def test_failing_methods_reported_not_raised(self, dist_dir):
        driver = _driver(_config(dist_dir), MockControlPlane(call_status=500))
        try:
            report = await driver.run(manual_host="10.0.0.5")
        finally:
            await driver.close()
        assert report.state is S.DONE
        assert report.passed_count == 0
        assert report.home_items is None
        assert report.step("invoke_methods").status == "failed"
        assert "0/2" in report.step("invoke_methods").detail


class TestFatal:
    async def test_no_device_found(self, dist_dir):
        discovery = MagicMock(spec=DeviceDiscovery)
        discovery.resolve = AsyncMock(side_effect=NoDeviceFound())
        plane = MockControlPlane()
        driver = _driver(_config(dist_dir), plane, discovery=discovery)

        with pytest.raises(NoDeviceFound):
            await driver.run()

        assert driver.report.history == [S.IDLE, S.DISCOVERING, S.FAILED]
        assert driver.report.step("discover").status == "failed"
        assert not driver.assets.running
        assert plane.requests == []

    async def test_missing_artifacts(self, tmp_path):
        plane = MockControlPlane()
        driver = _driver(_config(tmp_path / "dist"), plane)

        with pytest.raises(MissingArtifacts):
            await driver.run(manual_host="10.0.0.5")

        assert driver.report.history == [S.IDLE, S.DISCOVERING, S.SERVING_ASSETS, S.FAILED]
        assert driver.state is S.FAILED
        assert plane.requests == []

    async def test_missing_manifest_stops_server(self, tmp_path):
        dist = tmp_path / "dist"
        dist.mkdir()
        (dist / "script.js").write_text("")
        driver = _driver(_config(dist), MockControlPlane())

        with pytest.raises(MissingArtifacts, match="Config file not found"):
            await driver.run(manual_host="10.0.0.5")
        assert driver.state is S.FAILED
        assert not driver.assets.running
