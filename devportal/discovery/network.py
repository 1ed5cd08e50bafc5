"""Local network helpers: interface addresses and subnet enumeration."""

from __future__ import annotations

import ipaddress
import logging
import socket
from typing import Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def get_local_ipv4_addresses() -> list[str]:
    """Return this machine's non-loopback IPv4 addresses, in discovery order."""
    candidates: list[str] = []

    # Route-based lookup: no packets are sent for a UDP connect.
    try:
        s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            s.settimeout(2)
            s.connect(("8.8.8.8", 80))
            candidates.append(s.getsockname()[0])
        finally:
            s.close()
    except OSError:
        logger.debug("No default route for LAN address lookup")

    try:
        infos = socket.getaddrinfo(socket.gethostname(), None, socket.AF_INET)
        candidates.extend(info[4][0] for info in infos)
    except (socket.gaierror, OSError):
        logger.debug("Hostname did not resolve to an IPv4 address")

    addresses: list[str] = []
    for ip in candidates:
        try:
            addr = ipaddress.IPv4Address(ip)
        except ValueError:
            continue
        if addr.is_loopback or addr.is_unspecified or ip in addresses:
            continue
        addresses.append(ip)
    return addresses


def subnet_hosts(ip: str) -> list[str]:
    """Every host of the /24 containing *ip*, skipping ``.0`` and ``.255``."""
    addr = ipaddress.IPv4Address(ip)
    prefix = ".".join(str(addr).split(".")[:3])
    return [f"{prefix}.{i}" for i in range(1, 255)]


def chunked(items: Sequence[T], size: int) -> list[list[T]]:
    """Split *items* into consecutive batches of at most *size*."""
    if size < 1:
        raise ValueError("batch size must be >= 1")
    return [list(items[i:i + size]) for i in range(0, len(items), size)]
