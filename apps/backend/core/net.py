"""
Outbound HTTP client for job pages and ATS APIs.

Thin wrapper over httpx with the crawler user agent, per-call timeouts and
request logging. No retries: a failed fetch is reported to the caller, which
decides what the failure means for the item being processed.
"""
import logging
import socket
import time
from typing import Dict, Optional

import httpx

logger = logging.getLogger(__name__)

DEFAULT_UA = "Mozilla/5.0 (compatible; ArcataBot/1.0)"
DEFAULT_TIMEOUT = 30.0

_UNKNOWN_HOST_MARKERS = (
    "name or service not known",
    "nodename nor servname",
    "getaddrinfo failed",
    "temporary failure in name resolution",
    "no address associated with hostname",
)


def is_unknown_host_error(error: Exception) -> bool:
    """Check whether a connect error was caused by DNS resolution failure."""
    if not isinstance(error, httpx.ConnectError):
        return False
    cause = error.__cause__ or error.__context__
    if isinstance(cause, socket.gaierror):
        return True
    message = str(error).lower()
    return any(marker in message for marker in _UNKNOWN_HOST_MARKERS)


class HTTPClient:
    """HTTP client with crawler identity and per-request timeouts"""

    def __init__(
        self,
        user_agent: str = DEFAULT_UA,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """
        Initialize HTTP client.

        Args:
            user_agent: User-Agent header sent with every request
            transport: Optional httpx transport (used to stub the network in tests)
        """
        self.user_agent = user_agent
        self.transport = transport

    def _get_headers(self, custom_headers: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {
            "User-Agent": self.user_agent,
            "Accept": "text/html,application/xhtml+xml,application/json;q=0.9,*/*;q=0.8",
            "Accept-Language": "en-US,en;q=0.5",
        }
        if custom_headers:
            headers.update(custom_headers)
        return headers

    def get(
        self,
        url: str,
        timeout: float = DEFAULT_TIMEOUT,
        headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        """
        GET a URL, following redirects.

        Raises:
            httpx.TimeoutException, httpx.TransportError on network failures.
            Non-2xx responses are returned, not raised.
        """
        start_time = time.time()
        with httpx.Client(
            timeout=httpx.Timeout(timeout),
            follow_redirects=True,
            transport=self.transport,
        ) as client:
            try:
                response = client.get(url, headers=self._get_headers(headers))
            except httpx.TimeoutException as e:
                logger.error(f"[net] Timeout fetching {url}: {e}")
                raise
            except httpx.TransportError as e:
                logger.error(f"[net] Transport error fetching {url}: {e}")
                raise

        elapsed_ms = int((time.time() - start_time) * 1000)
        logger.info(f"[net] GET {response.status_code} {url} ({len(response.content)} bytes, {elapsed_ms}ms)")
        return response
