# File: sparkle_api/core/network.py

"""
Client address helpers: validation, anonymisation, extraction from a request.
"""

import ipaddress
import re
from typing import Optional

from fastapi import Request

_IPV4_RE = re.compile(r"^(\d{1,3}\.){3}\d{1,3}$")
_IPV6_RE = re.compile(r"^([\da-f]{1,4}:){7}[\da-f]{1,4}$", re.IGNORECASE)


def is_valid_ip(ip: str) -> bool:
    """
    True for a dotted-quad IPv4 address or a fully expanded IPv6 address.

    Compressed IPv6 forms (``::1``, ``fe80::1``) are rejected.
    """
    if not ip:
        return False
    if _IPV4_RE.match(ip):
        return all(0 <= int(part) <= 255 for part in ip.split("."))
    return bool(_IPV6_RE.match(ip))


def anonymize_ip(ip: Optional[str]) -> str:
    """Zero the host part of an address: last IPv4 octet, last four IPv6 groups."""
    if not ip:
        return ""
    if "." in ip:
        parts = ip.split(".")
        parts[-1] = "0"
        return ".".join(parts)
    if ":" in ip:
        return ":".join(ip.split(":")[:4]) + "::"
    return ""


def _raw_client_address(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.headers.get("x-real-ip") or (request.client.host if request.client else "")


def get_client_ip(request: Request) -> Optional[str]:
    candidate = _raw_client_address(request)
    return candidate if is_valid_ip(candidate) else None


def client_key(request: Request) -> str:
    """
    Identify the caller for rate limiting.

    Any parseable address (compressed IPv6 included) is keyed on its
    exploded form; anything else falls back to the raw value.
    """
    candidate = _raw_client_address(request)
    try:
        return ipaddress.ip_address(candidate).exploded
    except ValueError:
        return candidate or "unknown"
