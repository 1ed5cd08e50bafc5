"""Local asset server for the plugin build output.

Serves ``dist/`` over plain HTTP so the device can fetch the script and
manifest:

  GET  /            — the manifest (``config.json``)
  GET  /<path>      — any other file under the artifact directory

Every response carries ``Access-Control-Allow-Origin: *`` because the dev
portal fetches cross-origin.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Any
from urllib.parse import unquote

from aiohttp import web

from devportal.config import HarnessConfig
from devportal.discovery.network import get_local_ipv4_addresses
from devportal.errors import AssetPathForbidden, MissingArtifacts

logger = logging.getLogger(__name__)

CONTENT_TYPES: dict[str, str] = {
    ".json": "application/json",
    ".js": "application/javascript",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".html": "text/html",
}
DEFAULT_CONTENT_TYPE = "application/octet-stream"
CORS_HEADERS = {"Access-Control-Allow-Origin": "*"}


def content_type_for(path: str | Path) -> str:
    return CONTENT_TYPES.get(Path(path).suffix.lower(), DEFAULT_CONTENT_TYPE)


def resolve_asset_path(root: str | Path, request_path: str, index_name: str) -> Path:
    """Map a request path onto a file under *root*.

    Pure string handling; nothing on disk is touched.  Raises
    :class:`AssetPathForbidden` when the normalized path leaves *root*
    or contains a NUL byte.
    """
    root_str = os.path.normpath(os.path.abspath(str(root)))
    path = unquote(request_path.split("?", 1)[0])
    if "\x00" in path:
        raise AssetPathForbidden(f"{request_path!r} contains a NUL byte")
    relative = index_name if path in ("", "/") else path.lstrip("/\\")
    candidate = os.path.normpath(os.path.join(root_str, relative))
    try:
        inside = os.path.commonpath([root_str, candidate]) == root_str
    except ValueError:  # different drives
        inside = False
    if not inside:
        raise AssetPathForbidden(f"{request_path!r} resolves outside {root_str}")
    return Path(candidate)


class AssetServer:
    """aiohttp server over a read-only artifact directory."""

    def __init__(
        self,
        config: HarnessConfig,
        root: str | Path | None = None,
        advertise_host: str | None = None,
    ) -> None:
        self.config = config
        self.root = Path(root) if root is not None else config.artifact_path
        self.host = config.local_server_host
        self.port = config.local_server_port
        self._advertise_host = advertise_host
        self._runner: web.AppRunner | None = None

    # ── Lifecycle ──────────────────────────────────────────────────

    async def start(self) -> None:
        if not self.root.is_dir():
            raise MissingArtifacts(f"{self.root} directory not found")
        if self._runner is not None:
            return

        runner = web.AppRunner(self.make_app(), access_log=None)
        await runner.setup()
        try:
            await web.TCPSite(runner, self.host, self.port).start()
        except OSError:
            await runner.cleanup()
            raise
        self._runner = runner
        logger.info("Asset server running at %s (serving %s)", self.base_url, self.root)

    async def stop(self) -> None:
        """Release the listening socket."""
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
            logger.info("Asset server stopped")

    async def __aenter__(self) -> "AssetServer":
        await self.start()
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.stop()

    def make_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/{tail:.*}", self.handle)
        return app

    # ── URLs ───────────────────────────────────────────────────────

    @property
    def running(self) -> bool:
        return self._runner is not None

    @property
    def bound_port(self) -> int:
        """Actual listening port (differs from config when it is 0)."""
        if self._runner is not None:
            for address in self._runner.addresses:
                if isinstance(address, tuple) and len(address) >= 2:
                    return int(address[1])
        return self.port

    @property
    def advertise_host(self) -> str:
        if self._advertise_host is None:
            local_ips = get_local_ipv4_addresses()
            self._advertise_host = local_ips[0] if local_ips else "localhost"
        return self._advertise_host

    @property
    def base_url(self) -> str:
        return f"http://{self.advertise_host}:{self.bound_port}"

    def url_for(self, name: str) -> str:
        return f"{self.base_url}/{name.lstrip('/')}"

    # ── Manifest ───────────────────────────────────────────────────

    def load_manifest(self) -> dict[str, Any]:
        path = self.root / self.config.manifest_name
        if not path.is_file():
            raise MissingArtifacts(f"Config file not found: {path}")
        try:
            with open(path, encoding="utf-8") as f:
                manifest = json.load(f)
        except ValueError as exc:
            raise MissingArtifacts(f"Config file is not valid JSON: {path} ({exc})") from exc
        if not isinstance(manifest, dict):
            raise MissingArtifacts(f"Config file must contain a JSON object: {path}")
        return manifest

    # ── Request handling ───────────────────────────────────────────

    async def handle(self, request: web.Request) -> web.Response:
        try:
            path = resolve_asset_path(self.root, request.raw_path, self.config.manifest_name)
        except AssetPathForbidden:
            logger.warning("Forbidden asset request: %s", request.raw_path)
            return web.Response(status=403, text="Forbidden", headers=CORS_HEADERS)

        try:
            data = await self._read_file(path)
        except OSError:
            logger.debug("Asset not found: %s", path)
            return web.Response(status=404, text="Not Found", headers=CORS_HEADERS)

        return web.Response(
            status=200,
            body=data,
            content_type=content_type_for(path),
            headers=CORS_HEADERS,
        )

    @staticmethod
    async def _read_file(path: Path) -> bytes:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, path.read_bytes)
