"""Client fingerprinting for rate limit partitioning."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Mapping

UNKNOWN_ADDRESS = "unknown-ip"

# Only the edge-set header is trusted by default. X-Real-IP and X-Forwarded-For
# are client-controlled unless a trusted proxy overwrites them.
DEFAULT_ADDRESS_HEADERS: tuple[str, ...] = ("CF-Connecting-IP",)
PROXY_ADDRESS_HEADERS: tuple[str, ...] = ("CF-Connecting-IP", "X-Real-IP", "X-Forwarded-For")


@dataclass(frozen=True)
class Fingerprint:
    """Client identity: network address plus user agent."""

    address: str
    agent: str

    @property
    def key(self) -> str:
        return f"{self.address}::{self.agent}"

    def __str__(self) -> str:
        return self.key


def _first_address(value: str) -> str:
    # X-Forwarded-For lists the original client first.
    return value.split(",")[0].strip()


def extract_fingerprint(
    headers: Mapping[str, str],
    *,
    client_host: str | None = None,
    address_headers: Iterable[str] = DEFAULT_ADDRESS_HEADERS,
) -> Fingerprint:
    """Derive a stable fingerprint from request headers.

    Pure function: never performs I/O and never raises for missing headers.
    The address comes from the first non-empty header in ``address_headers``,
    then ``client_host``, then ``"unknown-ip"``. A missing user agent becomes
    the empty string.

    Args:
        headers: Request headers (any mapping; lookup is case-insensitive).
        client_host: Socket peer address, when known.
        address_headers: Ordered header names carrying the client address.

    Returns:
        Fingerprint for the request.

    Examples:
        >>> extract_fingerprint({"CF-Connecting-IP": "1.2.3.4", "User-Agent": "ua"}).key
        '1.2.3.4::ua'
        >>> extract_fingerprint({}).key
        'unknown-ip::'
    """
    lowered = {name.lower(): value for name, value in headers.items()}

    address = ""
    for header in address_headers:
        value = lowered.get(header.lower())
        if value and _first_address(value):
            address = _first_address(value)
            break
    if not address:
        address = client_host or UNKNOWN_ADDRESS

    agent = (lowered.get("user-agent") or "").strip()
    return Fingerprint(address=address, agent=agent)
