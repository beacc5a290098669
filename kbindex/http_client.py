"""
HTTP client with retry and exponential backoff.

Used by any provider that makes outbound calls on the knowledge base's
behalf (currently the Workers AI embedding provider). Retries network
errors, 5xx responses and 429 rate limits; other 4xx responses fail
immediately.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

import httpx

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 3
DEFAULT_BACKOFF_BASE = 0.5  # seconds
MAX_RETRY_AFTER = 60.0  # seconds
DEFAULT_TIMEOUT = 30.0


class HttpRequestError(Exception):
    """Base class for outbound request failures."""


class NetworkError(HttpRequestError):
    """Connection failed, timed out, or the transport broke."""


class RateLimitError(HttpRequestError):
    def __init__(self, retry_after: float | None = None):
        self.retry_after = retry_after
        suffix = f" (retry after {retry_after:.1f}s)" if retry_after else ""
        super().__init__(f"Rate limited{suffix}")


class ServerError(HttpRequestError):
    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        super().__init__(message)


class ClientError(HttpRequestError):
    """4xx other than 429. Never retried."""

    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        super().__init__(message)


def _retry_after_seconds(response: httpx.Response) -> float | None:
    value = response.headers.get("Retry-After")
    if not value:
        return None
    try:
        return min(float(value), MAX_RETRY_AFTER)
    except ValueError:
        return None


def _error_for_response(response: httpx.Response) -> HttpRequestError:
    status = response.status_code
    if status == 429:
        return RateLimitError(_retry_after_seconds(response))
    if status >= 500:
        return ServerError(status, f"Server error {status}: {response.text[:200]}")
    return ClientError(status, f"HTTP error {status}: {response.text[:200]}")


def is_retryable(error: Exception) -> bool:
    return isinstance(error, (NetworkError, RateLimitError, ServerError))


class RetryingClient:
    """
    Thin wrapper over httpx.Client that retries transient failures.

    Delay before attempt n+1 is `backoff_base * 2**n`, or the server's
    Retry-After (capped at 60s) for 429 responses.
    """

    def __init__(
        self,
        *,
        base_url: str = "",
        headers: dict[str, str] | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = DEFAULT_MAX_RETRIES,
        backoff_base: float = DEFAULT_BACKOFF_BASE,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        self._client = httpx.Client(
            base_url=base_url,
            headers=headers or {},
            timeout=timeout,
            transport=transport,
        )
        self._max_retries = max_retries
        self._backoff_base = backoff_base
        self._sleep = sleep

    def request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send a request, retrying transient failures.

        Raises:
            ClientError: on a non-429 4xx response (no retry)
            NetworkError, RateLimitError, ServerError: when retries are exhausted
        """
        last_error: HttpRequestError | None = None
        for attempt in range(self._max_retries):
            try:
                response = self._client.request(method, url, **kwargs)
            except httpx.TransportError as e:
                last_error = NetworkError(str(e) or type(e).__name__)
            else:
                if response.is_success:
                    return response
                last_error = _error_for_response(response)
                if not is_retryable(last_error):
                    raise last_error

            if attempt < self._max_retries - 1:
                delay = self._backoff_base * (2 ** attempt)
                if isinstance(last_error, RateLimitError) and last_error.retry_after:
                    delay = last_error.retry_after
                logger.info(
                    "Request %s %s attempt %d failed, retrying in %.1fs: %s",
                    method, url, attempt + 1, delay, last_error,
                )
                self._sleep(delay)

        assert last_error is not None
        logger.warning(
            "Request %s %s failed after %d attempts: %s",
            method, url, self._max_retries, last_error,
        )
        raise last_error

    def post(self, url: str, **kwargs: Any) -> httpx.Response:
        return self.request("POST", url, **kwargs)

    def get(self, url: str, **kwargs: Any) -> httpx.Response:
        return self.request("GET", url, **kwargs)

    def close(self) -> None:
        self._client.close()
