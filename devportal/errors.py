"""Error taxonomy for the test-injection harness.

Fatal errors (:class:`NoDeviceFound`, :class:`MissingArtifacts`) abort the
session and carry remediation hints for the CLI to print.  Soft errors
(:class:`TransportError`, :class:`ProtocolError`) never leave the
control-plane client; they are folded into result objects.
"""

from __future__ import annotations


class HarnessError(Exception):
    """Base error for harness failures."""


class NoNetworkInterface(HarnessError):
    """Raised when no non-loopback IPv4 address is available."""


class NoDeviceFound(HarnessError):
    """Raised when neither mDNS nor the subnet scan found a dev server."""

    DEFAULT_HINTS = (
        "GrayJay app is running",
        "Dev mode is enabled in GrayJay settings",
        "Your device is on the same network",
    )

    def __init__(self, message: str = "No dev servers found", hints: tuple[str, ...] | None = None) -> None:
        super().__init__(message)
        self.hints = tuple(hints) if hints is not None else self.DEFAULT_HINTS


class MissingArtifacts(HarnessError):
    """Raised when the build output directory or manifest is absent."""

    DEFAULT_HINTS = ('Run "npm run build" first',)

    def __init__(self, message: str, hints: tuple[str, ...] | None = None) -> None:
        super().__init__(message)
        self.hints = tuple(hints) if hints is not None else self.DEFAULT_HINTS


class AssetPathForbidden(HarnessError):
    """Raised when a requested asset path escapes the artifact directory."""


class TransportError(HarnessError):
    """Raised when a control-plane request fails below HTTP (reset, refused)."""


class RequestTimeout(TransportError):
    """Raised when the control plane does not answer within the timeout."""


class ProtocolError(HarnessError):
    """Raised on a non-2xx control-plane response."""

    def __init__(self, status_code: int, body: str = "") -> None:
        super().__init__(f"HTTP {status_code}: {body}" if body else f"HTTP {status_code}")
        self.status_code = status_code
        self.body = body
