"""Test session driver.

Runs one plugin test session against a single device:

  1. Discover the dev server (manual IP, mDNS, or subnet scan)
  2. Serve the build output from the local asset server
  3. Load the dev portal so its JavaScript initializes
  4. Inject the plugin (script URL + manifest)
  5. Call a fixed smoke-test sequence of plugin methods
  6. Report

Only discovery and asset serving are fatal.  Every later step records a
pass/fail :class:`StepReport` and the session still reaches ``DONE``.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Callable

import httpx

from devportal.assets import AssetServer
from devportal.config import HarnessConfig
from devportal.discovery.models import DiscoveredDevice
from devportal.discovery.orchestrator import DeviceDiscovery
from devportal.errors import HarnessError
from devportal.portal.client import DevPortalClient
from devportal.portal.results import (
    InjectionPayload,
    InjectionResult,
    RemoteCallResult,
    listing_items,
    parse_listing,
)

logger = logging.getLogger(__name__)

# Methods whose result is a content listing (array or pager object).
LISTING_METHODS = ("getHome",)


class SessionState(str, enum.Enum):
    IDLE = "idle"
    DISCOVERING = "discovering"
    SERVING_ASSETS = "serving_assets"
    PORTAL_LOADING = "portal_loading"
    INJECTING = "injecting"
    INVOKING_METHODS = "invoking_methods"
    DONE = "done"
    FAILED = "failed"


@dataclass
class StepReport:
    name: str
    status: str = "pending"  # pending, running, passed, warning, failed
    detail: str = ""

    @property
    def passed(self) -> bool:
        return self.status == "passed"


@dataclass
class SessionReport:
    state: SessionState = SessionState.IDLE
    device: DiscoveredDevice | None = None
    plugin_name: str = ""
    plugin_version: str = ""
    script_url: str = ""
    portal_url: str = ""
    injection: InjectionResult | None = None
    method_results: dict[str, RemoteCallResult] = field(default_factory=dict)
    home_items: int | None = None
    steps: list[StepReport] = field(default_factory=list)
    history: list[SessionState] = field(default_factory=lambda: [SessionState.IDLE])
    error: str = ""

    @property
    def passed_count(self) -> int:
        return sum(1 for r in self.method_results.values() if r.success)

    def step(self, name: str) -> StepReport | None:
        for s in self.steps:
            if s.name == name:
                return s
        return None


class SessionDriver:
    """Sequences discovery, asset serving, injection and smoke tests.

    The asset server stays up after :meth:`run` returns so the developer can
    keep reloading from the portal; call :meth:`close` to release it.
    """

    def __init__(
        self,
        config: HarnessConfig,
        discovery: DeviceDiscovery | None = None,
        assets: AssetServer | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config
        self.discovery = discovery or DeviceDiscovery(config)
        self.assets = assets or AssetServer(config)
        self._transport = transport
        self._client: DevPortalClient | None = None
        self._state_callbacks: list[Callable[[SessionState], None]] = []
        self._step_callbacks: list[Callable[[StepReport], None]] = []
        self.report = SessionReport()

    # ── Callbacks ──────────────────────────────────────────────────

    def on_state(self, callback: Callable[[SessionState], None]) -> None:
        """Register a callback for state transitions."""
        self._state_callbacks.append(callback)

    def on_step(self, callback: Callable[[StepReport], None]) -> None:
        """Register a callback for step status updates."""
        self._step_callbacks.append(callback)

    @property
    def state(self) -> SessionState:
        return self.report.state

    @property
    def client(self) -> DevPortalClient | None:
        return self._client

    # ── Session ────────────────────────────────────────────────────

    async def run(
        self,
        manual_host: str | None = None,
        manual_port: int | None = None,
    ) -> SessionReport:
        report = self.report = SessionReport()
        steps = {
            "discover": StepReport("discover", detail="Discovering dev server"),
            "serve_assets": StepReport("serve_assets", detail="Starting local server"),
            "load_portal": StepReport("load_portal", detail="Loading dev portal"),
            "inject": StepReport("inject", detail="Injecting plugin"),
            "invoke_methods": StepReport("invoke_methods", detail="Testing plugin methods"),
        }
        report.steps = list(steps.values())
        current = steps["discover"]

        try:
            self._transition(SessionState.DISCOVERING)
            self._update_step(current, "running")
            device = await self.discovery.resolve(manual_host, manual_port)
            report.device = device
            self._update_step(
                current, "passed",
                f"{device.host}:{device.control_port} ({device.discovery_method})",
            )

            self._transition(SessionState.SERVING_ASSETS)
            current = steps["serve_assets"]
            self._update_step(current, "running")
            await self.assets.start()
            manifest = self.assets.load_manifest()
            report.plugin_name = str(manifest.get("name", ""))
            report.plugin_version = str(manifest.get("version", ""))
            report.script_url = self.assets.url_for(self.config.script_name)
            self._update_step(current, "passed", self.assets.base_url)
            logger.info("Plugin: %s v%s", report.plugin_name, report.plugin_version)

            self._client = DevPortalClient(
                device.host,
                device.control_port,
                timeout=self.config.inject_timeout,
                transport=self._transport,
            )
            report.portal_url = self._client.portal_url

            self._transition(SessionState.PORTAL_LOADING)
            current = steps["load_portal"]
            self._update_step(current, "running")
            loaded = await self._client.load_portal(
                self.config.settle_delay, timeout=self.config.portal_timeout
            )
            self._update_step(
                current,
                "passed" if loaded else "warning",
                "Portal ready" if loaded else "Could not pre-load dev portal",
            )

            self._transition(SessionState.INJECTING)
            current = steps["inject"]
            self._update_step(current, "running")
            payload = InjectionPayload(script_url=report.script_url, manifest=manifest)
            report.injection = await self._client.inject(payload)
            if report.injection.success:
                status = "passed"
            elif report.injection.soft_failure:
                status = "warning"
            else:
                status = "failed"
            self._update_step(current, status, f"{report.injection.status}: {report.injection.detail}")

            self._transition(SessionState.INVOKING_METHODS)
            current = steps["invoke_methods"]
            self._update_step(current, "running")
            await self._run_smoke_tests(str(manifest.get("id", "")))
            total = len(report.method_results)
            self._update_step(
                current,
                "passed" if report.passed_count == total else "failed",
                f"{report.passed_count}/{total} methods succeeded",
            )

            self._transition(SessionState.DONE)
        except Exception as exc:
            report.error = str(exc)
            if not isinstance(exc, HarnessError):
                logger.exception("Session failed during %s", current.name)
            self._update_step(current, "failed", str(exc))
            self._transition(SessionState.FAILED)
            await self.close()
            raise
        return report

    async def close(self) -> None:
        """Stop the asset server and close the control-plane client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        await self.assets.stop()

    # ── Internal ───────────────────────────────────────────────────

    async def _run_smoke_tests(self, plugin_id: str) -> None:
        for method in self.config.smoke_methods:
            result = await self._client.invoke(plugin_id, method)
            self.report.method_results[method] = result
            if result.success and method in LISTING_METHODS and result.result is not None:
                items = listing_items(parse_listing(result.result))
                self.report.home_items = len(items)
                logger.info("%s(): %d item(s)", method, len(items))

    def _transition(self, state: SessionState) -> None:
        logger.debug("Session state: %s -> %s", self.report.state.value, state.value)
        self.report.state = state
        self.report.history.append(state)
        for cb in self._state_callbacks:
            try:
                cb(state)
            except Exception:
                logger.exception("Error in session state callback")

    def _update_step(self, step: StepReport, status: str, detail: str = "") -> None:
        """Update step status and notify callbacks."""
        step.status = status
        if detail:
            step.detail = detail
        for cb in self._step_callbacks:
            try:
                cb(step)
            except Exception:
                logger.exception("Error in session step callback")
