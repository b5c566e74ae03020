from __future__ import annotations

import ipaddress
import re
from urllib.parse import urlsplit, urlunsplit

from pagepersona.core.errors import InvalidRequest


DEFAULT_PORTS = {"http": 80, "https": 443}

PRIVATE_HOST_PATTERNS = [
    re.compile(r"^localhost$", re.IGNORECASE),
    re.compile(r"\.localhost$", re.IGNORECASE),
    re.compile(r"\.local$", re.IGNORECASE),
    re.compile(r"\.internal$", re.IGNORECASE),
]


def normalize_url(url: str) -> str:
    """Return a canonical http(s) URL or raise :class:`InvalidRequest`."""

    raw = (url or "").strip()
    if not raw:
        raise InvalidRequest("url is required")
    if not re.match(r"^[a-zA-Z][a-zA-Z0-9+.-]*://", raw):
        raw = f"https://{raw}"

    try:
        parts = urlsplit(raw)
        port = parts.port
    except ValueError as exc:
        raise InvalidRequest("Invalid URL format") from exc

    scheme = parts.scheme.lower()
    if scheme not in DEFAULT_PORTS:
        raise InvalidRequest("Only http and https URLs are supported")

    host = (parts.hostname or "").lower()
    if not host:
        raise InvalidRequest("Invalid URL format")

    netloc = host
    if ":" in host:
        netloc = f"[{host}]"
    if port is not None and port != DEFAULT_PORTS[scheme]:
        netloc = f"{netloc}:{port}"

    path = parts.path or "/"
    return urlunsplit((scheme, netloc, path, parts.query, ""))


def is_private_host(host: str) -> bool:
    host = (host or "").strip("[]").lower()
    if not host:
        return True
    if any(pattern.search(host) for pattern in PRIVATE_HOST_PATTERNS):
        return True
    try:
        address = ipaddress.ip_address(host)
    except ValueError:
        return False
    return (
        address.is_private
        or address.is_loopback
        or address.is_link_local
        or address.is_reserved
        or address.is_unspecified
    )


def ensure_public_url(url: str) -> str:
    """Normalize ``url`` and reject loopback and private network targets."""

    normalized = normalize_url(url)
    if is_private_host(urlsplit(normalized).hostname or ""):
        raise InvalidRequest("Private or internal URLs are not allowed")
    return normalized
