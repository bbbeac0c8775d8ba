"""Client identity resolution from proxy-chain headers.

Precedence (first present wins):
1. X-Forwarded-For (first entry of a comma-separated chain)
2. CF-Connecting-IP (Cloudflare)
3. X-Real-IP (nginx)

Callers map an unresolved identity to UNKNOWN_CLIENT, a single shared
bucket, rather than skipping rate limiting.
"""

from typing import Mapping, Optional

from starlette.datastructures import Headers
from starlette.requests import Request

UNKNOWN_CLIENT = "unknown"

CLIENT_IP_HEADERS = ("x-forwarded-for", "cf-connecting-ip", "x-real-ip")


def get_client_ip(headers: Mapping[str, str]) -> Optional[str]:
    """Extract a best-effort client IP from request headers.

    Args:
        headers: Starlette Headers or any mapping of header names to values
            (names are matched case-insensitively)

    Returns:
        Client IP string, or None if no identifying header is present
    """
    if not isinstance(headers, Headers):
        headers = {name.lower(): value for name, value in headers.items()}

    for name in CLIENT_IP_HEADERS:
        value = headers.get(name)
        if not value:
            continue
        if name == "x-forwarded-for":
            value = value.split(",")[0]
        value = value.strip()
        if value:
            return value
    return None


def get_client_key(request: Request) -> str:
    """Rate limit key for a request: its resolved IP or UNKNOWN_CLIENT."""
    return get_client_ip(request.headers) or UNKNOWN_CLIENT
