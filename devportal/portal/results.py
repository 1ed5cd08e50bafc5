"""Result types returned by the control-plane client.

The client never raises for a failed request; every call produces one of
these values instead.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Union

INJECTED = "injected"
CONNECTION_CLOSED = "connection_closed"
TIMEOUT = "timeout"
REJECTED = "rejected"


@dataclass(frozen=True)
class InjectionPayload:
    """Body of ``POST /plugin/updateTestPlugin``."""

    script_url: str
    manifest: dict[str, Any] = field(default_factory=dict)

    def to_json(self) -> dict[str, Any]:
        return {"url": self.script_url, "config": self.manifest}


@dataclass
class InjectionResult:
    """Outcome of an injection attempt.

    ``connection_closed`` and ``timeout`` are soft: the device may have
    loaded the plugin before dropping the connection.
    """

    success: bool
    status: str
    detail: str = ""

    @property
    def soft_failure(self) -> bool:
        return self.status in (CONNECTION_CLOSED, TIMEOUT)


@dataclass
class RemoteCallResult:
    """Outcome of one ``remoteCall`` invocation."""

    success: bool
    result: Any = None
    error: str | None = None

    def preview(self, limit: int = 100) -> str:
        text = self.result if isinstance(self.result, str) else json.dumps(self.result)
        return text if len(text) <= limit else f"{text[:limit]}..."


# ------------------------------------------------------------------ #
# Listing normalization                                                #
# ------------------------------------------------------------------ #


@dataclass(frozen=True)
class RawList:
    """A bare JSON array returned by a listing method."""

    items: list[Any] = field(default_factory=list)


@dataclass(frozen=True)
class ListResult:
    """A pager object: ``{"results": [...], "hasMore": bool}``."""

    results: list[Any] = field(default_factory=list)
    has_more: bool = False


Listing = Union[ListResult, RawList]


def parse_listing(value: Any) -> Listing:
    """Normalize a listing method's result (e.g. ``getHome``).

    A JSON array becomes :class:`RawList`; an object becomes
    :class:`ListResult` using its ``results`` array (empty when absent or
    not a list); anything else is an empty :class:`RawList`.
    """
    if isinstance(value, list):
        return RawList(items=value)
    if isinstance(value, dict):
        results = value.get("results")
        return ListResult(
            results=results if isinstance(results, list) else [],
            has_more=bool(value.get("hasMore", False)),
        )
    return RawList()


def listing_items(listing: Listing) -> list[Any]:
    if isinstance(listing, ListResult):
        return listing.results
    return listing.items
