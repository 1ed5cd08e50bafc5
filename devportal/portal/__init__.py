"""devportal.portal — client for the GrayJay dev server control plane."""

from __future__ import annotations

from devportal.portal.client import DevPortalClient
from devportal.portal.results import (
    InjectionPayload,
    InjectionResult,
    ListResult,
    RawList,
    RemoteCallResult,
    listing_items,
    parse_listing,
)

__all__ = [
    "DevPortalClient",
    "InjectionPayload",
    "InjectionResult",
    "ListResult",
    "RawList",
    "RemoteCallResult",
    "listing_items",
    "parse_listing",
]
