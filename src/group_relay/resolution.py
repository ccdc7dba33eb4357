"""Derive a group key from connection request metadata."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Mapping

GROUP_CODE_PATTERN = re.compile(r"^[A-Za-z0-9\-_.]{1,32}$")
_IPV4_PATTERN = re.compile(r"^(\d{1,3})\.(\d{1,3})\.(\d{1,3})\.(\d{1,3})$")

NEUTRAL_GROUP = "public"
UNKNOWN_ADDRESS_GROUP = "ip:unknown"


@dataclass(frozen=True)
class ConnectRequest:
    """Transport-independent view of an incoming connection request."""

    query: Mapping[str, str] = field(default_factory=dict)
    headers: Mapping[str, str] = field(default_factory=dict)
    peer_host: str | None = None


def client_address(request: ConnectRequest, *, trust_forwarded_for: bool = True) -> str:
    """Best-effort apparent address of the client, or an empty string."""

    if trust_forwarded_for:
        forwarded = request.headers.get("x-forwarded-for") or ""
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return (request.peer_host or "").strip()


def address_bucket(address: str) -> str:
    """Map an address onto a /24 (IPv4) or /48 (anything else) bucket key."""

    address = address.strip().lower()
    if not address:
        return UNKNOWN_ADDRESS_GROUP
    if address.startswith("::ffff:") and _IPV4_PATTERN.match(address[7:]):
        address = address[7:]
    match = _IPV4_PATTERN.match(address)
    if match:
        return "ip:" + ".".join(match.groups()[:3])
    if address.startswith("[") and "]" in address:
        address = address[1 : address.index("]")]
    address = address.split("%", 1)[0]
    return "ip6:" + ":".join(address.split(":")[:4])


def resolve_group_key(
    request: ConnectRequest,
    *,
    require_code: bool,
    trust_forwarded_for: bool = True,
) -> str:
    """Return the group key for ``request``.

    An explicit ``g`` code wins; otherwise all uncoded connections share
    one neutral group when ``require_code`` is set, or are bucketed by
    network address.
    """

    code = request.query.get("g") or ""
    if code and GROUP_CODE_PATTERN.fullmatch(code):
        return f"code:{code.lower()}"
    if require_code:
        return NEUTRAL_GROUP
    return address_bucket(client_address(request, trust_forwarded_for=trust_forwarded_for))
