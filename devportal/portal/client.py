"""GrayJay dev server control-plane client.

Wraps the three endpoints the harness needs:

  GET  /dev                                  — dev portal page
  POST /plugin/updateTestPlugin              — load a plugin from a URL
  POST /plugin/remoteCall?id=<id>&method=<m> — call a plugin method

The device is a best-effort developer target, so the public methods never
raise on network or HTTP failures; they return result objects instead.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from devportal.errors import ProtocolError, RequestTimeout, TransportError
from devportal.portal.results import (
    CONNECTION_CLOSED,
    INJECTED,
    REJECTED,
    TIMEOUT,
    InjectionPayload,
    InjectionResult,
    RemoteCallResult,
)

logger = logging.getLogger(__name__)

PORTAL_PATH = "/dev"
INJECT_PATH = "/plugin/updateTestPlugin"
REMOTE_CALL_PATH = "/plugin/remoteCall"


class DevPortalClient:
    """Async client for one device's control plane.

    A single :class:`httpx.AsyncClient` is reused across calls.  Call
    :meth:`aclose` (or use as an async context manager) when done.
    """

    def __init__(
        self,
        host: str,
        port: int = 11337,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.host = host
        self.port = port
        self.base_url = f"http://{host}:{port}"
        self.timeout = timeout
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "DevPortalClient":
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.aclose()

    @property
    def portal_url(self) -> str:
        return f"{self.base_url}{PORTAL_PATH}"

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    async def load_portal(self, settle_delay: float = 10.0, timeout: float | None = None) -> bool:
        """Fetch the portal once so its JS initializes, then wait *settle_delay*.

        There is no readiness signal; the delay is a plain wait.
        """
        try:
            response = await self._client.get(PORTAL_PATH, timeout=timeout or self.timeout)
        except httpx.TimeoutException:
            logger.warning("Dev portal load timeout")
            return False
        except httpx.HTTPError as exc:
            logger.warning("Could not pre-load dev portal: %s", exc)
            return False

        if response.status_code != 200:
            logger.warning("Dev portal returned %d", response.status_code)
            return False

        logger.info("Dev portal responded, waiting %.0fs for JavaScript to initialize", settle_delay)
        if settle_delay > 0:
            await asyncio.sleep(settle_delay)
        return True

    async def inject(self, payload: InjectionPayload) -> InjectionResult:
        """Load the plugin at ``payload.script_url`` on the device."""
        logger.info("Injecting plugin to %s (script %s)", self.base_url, payload.script_url)
        try:
            response = await self._post(INJECT_PATH, payload.to_json())
        except RequestTimeout as exc:
            logger.warning("Injection request timed out (dev server may be processing)")
            return InjectionResult(success=False, status=TIMEOUT, detail=str(exc))
        except TransportError as exc:
            logger.warning(
                "Injection connection closed: %s — the plugin may still have loaded, check %s",
                exc, self.portal_url,
            )
            return InjectionResult(success=False, status=CONNECTION_CLOSED, detail=str(exc))
        except ProtocolError as exc:
            logger.error("Failed to inject plugin (%s)", exc)
            return InjectionResult(success=False, status=REJECTED, detail=str(exc))

        logger.info("Plugin injected successfully")
        return InjectionResult(success=True, status=INJECTED, detail=response.text or "No content")

    async def invoke(self, device_id: str, method: str, args: list[Any] | None = None) -> RemoteCallResult:
        """Call *method* on the injected plugin and return its result."""
        body = {"args": args if isinstance(args, list) else []}
        params = {"id": device_id or "", "method": method}
        try:
            response = await self._post(REMOTE_CALL_PATH, body, params=params)
        except (TransportError, ProtocolError) as exc:
            logger.warning("%s() failed: %s", method, exc)
            return RemoteCallResult(success=False, error=str(exc) or type(exc).__name__)

        try:
            result: Any = response.json()
        except ValueError:
            result = response.text
        logger.info("%s() executed successfully", method)
        return RemoteCallResult(success=True, result=result)

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    async def _post(
        self,
        path: str,
        data: dict[str, Any],
        params: dict[str, str] | None = None,
    ) -> httpx.Response:
        url = f"{self.base_url}{path}"
        try:
            response = await self._client.post(path, json=data, params=params)
        except httpx.TimeoutException as exc:
            raise RequestTimeout(f"Timeout talking to {url}: {exc}") from exc
        except httpx.RequestError as exc:
            raise TransportError(f"Cannot reach {url}: {exc}") from exc
        if not response.is_success:
            raise ProtocolError(response.status_code, response.text)
        return response
