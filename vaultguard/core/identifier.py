"""Caller identifier resolution.

Derives the string used as the lockout / write budget key from request
headers. Resolution never fails: callers without any identifying header all
share the configured sentinel identifier (one bucket for every anonymous
caller).
"""

from __future__ import annotations

from typing import Mapping

from vaultguard.core.config import settings


def resolve_identifier(
    headers: Mapping[str, str],
    *,
    trusted_ip_header: str | None = None,
    forwarded_for_header: str | None = None,
    sentinel: str | None = None,
) -> str:
    """Resolve the caller identifier from request headers.

    Precedence:
    1. The trusted edge-injected client IP header, if non-empty.
    2. The first comma-separated entry of the forwarded-for header, trimmed.
    3. The sentinel identifier.

    Args:
        headers: Request headers. Starlette ``Headers`` are matched
            case-insensitively; plain mappings are matched case-insensitively
            as a fallback.
        trusted_ip_header: Override for ``settings.app.trusted_ip_header``.
        forwarded_for_header: Override for ``settings.app.forwarded_for_header``.
        sentinel: Override for ``settings.app.unknown_identifier``.

    Returns:
        Non-empty identifier string.

    Examples:
        >>> resolve_identifier({"CF-Connecting-IP": "9.9.9.9", "X-Forwarded-For": "1.1.1.1"})
        '9.9.9.9'
        >>> resolve_identifier({"X-Forwarded-For": "1.1.1.1, 2.2.2.2"})
        '1.1.1.1'
        >>> resolve_identifier({})
        'unknown'
    """
    trusted_ip_header = trusted_ip_header or settings.app.trusted_ip_header
    forwarded_for_header = forwarded_for_header or settings.app.forwarded_for_header
    sentinel = sentinel or settings.app.unknown_identifier

    edge_ip = (_get_header(headers, trusted_ip_header) or "").strip()
    if edge_ip:
        return edge_ip

    forwarded_for = _get_header(headers, forwarded_for_header)
    if forwarded_for:
        first_hop = forwarded_for.split(",")[0].strip()
        if first_hop:
            return first_hop

    return sentinel


def _get_header(headers: Mapping[str, str], name: str) -> str | None:
    value = headers.get(name)
    if value is not None:
        return value

    lowered = name.lower()
    for key, candidate in headers.items():
        if key.lower() == lowered:
            return candidate
    return None
