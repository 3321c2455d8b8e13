"""Derive the limiter identifier for an incoming HTTP request."""

from __future__ import annotations

from fastapi import Request

UNKNOWN_CLIENT = "unknown"


def resolve_client_identifier(request: Request, *, trust_proxy_headers: bool) -> str:
    """Return the caller's IP address as a rate limit identifier.

    Proxy headers are only honoured when the service sits behind a proxy that
    overwrites them; otherwise any client could pick its own bucket.

    Args:
        request: Incoming request.
        trust_proxy_headers: Whether X-Forwarded-For / X-Real-IP are trusted.

    Returns:
        Client IP string, or "unknown" when no address is available.
    """
    if trust_proxy_headers:
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            # First hop is the original client; the rest is the proxy chain.
            first_hop = forwarded_for.split(",")[0].strip()
            if first_hop:
                return first_hop

        real_ip = request.headers.get("X-Real-IP")
        if real_ip and real_ip.strip():
            return real_ip.strip()

    if request.client and request.client.host:
        return request.client.host

    return UNKNOWN_CLIENT
