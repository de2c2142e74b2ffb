"""
URL normalization for job deduplication.

Canonicalizes job URLs so the same posting reached through tracking links,
mixed-case hosts or explicit default ports maps to one source_url, and pulls
ATS tenant identifiers (e.g. a Greenhouse board token) out of board URLs.
"""

import logging
from typing import Optional
from urllib.parse import urlsplit, urlunsplit

logger = logging.getLogger(__name__)

DEFAULT_PORTS = {"http": 80, "https": 443}

GREENHOUSE_BOARD_HOSTS = {"boards.greenhouse.io", "job-boards.greenhouse.io"}
GREENHOUSE_API_HOST = "boards-api.greenhouse.io"


def normalize(url: str) -> str:
    """
    Normalize a URL for deduplication.

    Strips query string and fragment, lowercases scheme and host, drops
    default ports and trailing slashes. Returns the input unchanged if it
    cannot be parsed.

    Args:
        url: Raw URL

    Returns:
        Canonical URL string
    """
    try:
        parts = urlsplit(url.strip())
        if not parts.scheme or not parts.hostname:
            return url

        scheme = parts.scheme.lower()
        host = parts.hostname.lower()
        if ":" in host:
            host = f"[{host}]"
        port = parts.port
        if port is not None and DEFAULT_PORTS.get(scheme) != port:
            host = f"{host}:{port}"

        path = parts.path.rstrip("/")
        return urlunsplit((scheme, host, path, "", ""))
    except ValueError as e:
        # Invalid port or malformed netloc
        logger.debug(f"[url_normalizer] Could not parse {url!r}: {e}")
        return url


def _host_and_segments(url: str) -> Optional[tuple]:
    try:
        parts = urlsplit(url.strip())
    except ValueError:
        return None
    if not parts.hostname:
        return None
    segments = [s for s in parts.path.split("/") if s]
    return parts.hostname.lower(), segments


def extract_greenhouse_company_id(url: str) -> Optional[str]:
    """
    Extract the Greenhouse board token from a board or API URL.

    boards.greenhouse.io/{id}/... and job-boards.greenhouse.io/{id}/... use the
    first path segment; boards-api.greenhouse.io requires /v1/boards/{id}/...
    """
    parsed = _host_and_segments(url)
    if not parsed:
        return None
    host, segments = parsed

    if host in GREENHOUSE_BOARD_HOSTS:
        return segments[0] if segments else None

    if host == GREENHOUSE_API_HOST:
        if len(segments) >= 3 and segments[0] == "v1" and segments[1] == "boards":
            return segments[2]
        return None

    return None


def extract_ats_company_id(url: str) -> Optional[str]:
    """Extract the ATS tenant/company identifier from a known ATS URL."""
    return extract_greenhouse_company_id(url)


def is_greenhouse_url(url: str) -> bool:
    parsed = _host_and_segments(url)
    if not parsed:
        return False
    host = parsed[0]
    return host in GREENHOUSE_BOARD_HOSTS or host == GREENHOUSE_API_HOST


def greenhouse_board_url(company_id: str) -> str:
    """Canonical public board URL for a Greenhouse board token."""
    return f"https://boards.greenhouse.io/{company_id}"
