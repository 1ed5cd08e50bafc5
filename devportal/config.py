"""Configuration for the devportal harness."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path

logger = logging.getLogger(__name__)

_TRUE_VALUES = {"1", "true", "yes", "on"}

# env var → (field name, type)
_ENV_OVERRIDES: dict[str, tuple[str, type]] = {
    "DEVPORTAL_DEV_PORT": ("control_port", int),
    "DEVPORTAL_LOCAL_PORT": ("local_server_port", int),
    "DEVPORTAL_LOCAL_HOST": ("local_server_host", str),
    "DEVPORTAL_DEFAULT_DEVICE": ("default_device_host", str),
    "DEVPORTAL_SKIP_MDNS": ("skip_mdns", bool),
    "DEVPORTAL_DIST": ("artifact_dir", str),
    "DEVPORTAL_SETTLE_DELAY": ("settle_delay", float),
    "DEVPORTAL_MDNS_WINDOW": ("mdns_window", float),
}


@dataclass
class HarnessConfig:
    """Harness configuration — every port, timeout and file name in one place.

    Timeouts and delays are in seconds.
    """

    # Device / control plane
    control_port: int = 11337
    sync_service_port: int = 12315
    service_type: str = "_gsync._tcp.local."
    default_device_host: str = "100.100.1.57"  # common GrayJay dev server IP
    marker_path: str = "/dev"

    # Local asset server
    local_server_host: str = "0.0.0.0"
    local_server_port: int = 3000
    artifact_dir: str = "dist"
    manifest_name: str = "config.json"
    script_name: str = "script.js"

    # Discovery
    skip_mdns: bool = False
    verify_multicast: bool = False
    mdns_window: float = 3.0
    priority_timeout: float = 1.0
    scan_timeout: float = 0.5
    scan_batch_size: int = 25

    # Session
    inject_timeout: float = 10.0
    portal_timeout: float = 10.0
    settle_delay: float = 10.0
    smoke_methods: list[str] = field(default_factory=lambda: ["enable", "getHome"])

    @classmethod
    def load(cls, path: str | Path) -> HarnessConfig:
        path = Path(path)
        if path.exists():
            with open(path) as f:
                data = json.load(f)
            known = {f.name for f in fields(cls)}
            filtered = {k: v for k, v in data.items() if k in known}
            return cls(**filtered)
        logger.warning("Config not found at %s, using defaults", path)
        return cls()

    def apply_env(self, environ: dict[str, str] | None = None) -> HarnessConfig:
        """Overlay ``DEVPORTAL_*`` environment variables onto this config."""
        environ = os.environ if environ is None else environ
        for var, (name, kind) in _ENV_OVERRIDES.items():
            raw = environ.get(var)
            if raw is None or raw == "":
                continue
            try:
                if kind is bool:
                    value = raw.strip().lower() in _TRUE_VALUES
                else:
                    value = kind(raw)
            except ValueError:
                logger.warning("Ignoring invalid %s=%r", var, raw)
                continue
            setattr(self, name, value)
        return self

    @property
    def artifact_path(self) -> Path:
        return Path(self.artifact_dir).resolve()
