"""Request utility functions."""

import ipaddress
from dataclasses import dataclass
from typing import Sequence

from fastapi import Request

from superadmin.core.config import settings

USER_AGENT_MAX_LENGTH = 512


@dataclass(frozen=True)
class RequestContext:
    """Caller details recorded with every audit entry."""

    ip_address: str
    user_agent: str


def is_trusted_proxy(host: str | None, trusted_proxies: Sequence[str]) -> bool:
    if not host or not trusted_proxies:
        return False
    try:
        address = ipaddress.ip_address(host.strip())
    except ValueError:
        return False
    return any(address in ipaddress.ip_network(network, strict=False) for network in trusted_proxies)


def get_client_ip(request: Request, trusted_proxies: Sequence[str] | None = None) -> str:
    """
    Extract real client IP, respecting proxy headers from trusted proxies only.

    Forwarding headers are read only when the direct peer is listed in
    TRUSTED_PROXIES; any other peer is identified by its own address.

    When the peer is trusted, checks headers in order:
    1. X-Forwarded-For: the rightmost hop that is not itself a trusted proxy
    2. X-Real-IP (single IP from nginx)
    3. Direct connection IP
    """
    trusted = settings.TRUSTED_PROXIES if trusted_proxies is None else trusted_proxies
    peer = request.client.host if request.client else None

    if is_trusted_proxy(peer, trusted):
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            hops = [hop.strip() for hop in forwarded.split(",") if hop.strip()]
            for hop in reversed(hops):
                if not is_trusted_proxy(hop, trusted):
                    return hop
            if hops:
                return hops[0]

        # X-Real-IP is typically set by nginx
        real_ip = request.headers.get("X-Real-IP")
        if real_ip and real_ip.strip():
            return real_ip.strip()

    return peer or "unknown"


def get_user_agent(request: Request) -> str:
    return request.headers.get("User-Agent", "unknown")[:USER_AGENT_MAX_LENGTH]


def get_request_context(request: Request) -> RequestContext:
    return RequestContext(ip_address=get_client_ip(request), user_agent=get_user_agent(request))
