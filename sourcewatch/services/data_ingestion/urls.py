"""
URL canonicalization.

Every source URL and every article URL passes through canonicalize_url
before it is compared or stored, so dedup can rely on exact equality.
"""

from typing import Optional
from urllib.parse import parse_qsl, urlencode, urljoin, urlsplit, urlunsplit

from sourcewatch.services.data_ingestion.base import InvalidSourceUrlError

# Query parameters that only carry campaign attribution
TRACKING_PARAMS = {"fbclid", "gclid"}
TRACKING_PREFIXES = ("utm_",)

_DEFAULT_PORTS = {"http": 80, "https": 443}


def _is_tracking_param(name: str) -> bool:
    lowered = name.lower()
    return lowered in TRACKING_PARAMS or lowered.startswith(TRACKING_PREFIXES)


def canonicalize_url(url: str, base: Optional[str] = None) -> str:
    """
    Normalize a URL for storage and comparison.

    Args:
        url: Absolute URL, or relative when `base` is given
        base: Base URL used to resolve relative references

    Returns:
        The URL with scheme and host lowercased, default port and fragment
        removed, an empty path rendered as "/" and tracking parameters dropped.

    Raises:
        InvalidSourceUrlError: If the result is not an absolute http(s) URL
    """
    raw = (url or "").strip()
    if base:
        raw = urljoin(base, raw)

    try:
        parts = urlsplit(raw)
        port = parts.port
    except ValueError as e:
        raise InvalidSourceUrlError(f"Invalid URL: {url!r}") from e

    scheme = parts.scheme.lower()
    if scheme not in _DEFAULT_PORTS or not parts.hostname:
        raise InvalidSourceUrlError(f"Invalid URL: {url!r}")

    host = parts.hostname.lower()
    if ":" in host:
        host = f"[{host}]"
    netloc = host
    if port is not None and port != _DEFAULT_PORTS[scheme]:
        netloc = f"{host}:{port}"
    if parts.username or parts.password:
        userinfo = parts.username or ""
        if parts.password:
            userinfo += f":{parts.password}"
        netloc = f"{userinfo}@{netloc}"

    query = urlencode(
        [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if not _is_tracking_param(k)]
    )

    return urlunsplit((scheme, netloc, parts.path or "/", query, ""))


def hostname_label(url: str) -> str:
    """Display label for a URL: its hostname without a leading "www."."""
    host = (urlsplit(url).hostname or "").lower()
    if host.startswith("www."):
        host = host[4:]
    return host or "Unknown Source"


def origin_of(url: str) -> str:
    """Scheme and authority of a URL, e.g. https://example.com:8443."""
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc.rsplit('@', 1)[-1]}"
