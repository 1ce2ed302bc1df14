"""
HTTP transport with tagged results and bounded retry.

Timeouts, user cancellation and network failures are reported as distinct
`FetchStatus` values instead of exceptions, because the retry policy treats
them differently: cancellation stops immediately, the others are retried.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Optional, Tuple

import aiohttp

from strata.exceptions import DownloadCancelledError, FetchError
from strata.media.cancellation import CancellationToken

log = logging.getLogger(__name__)

_connection_pool: aiohttp.ClientSession | None = None
_pool_lock = asyncio.Lock()


async def get_connection_pool(max_connections: int = 8) -> aiohttp.ClientSession:
    """
    Gets or creates a shared aiohttp ClientSession for all fetches.

    This function ensures that only one connection pool is created for the
    lifetime of the application run.
    """
    global _connection_pool
    async with _pool_lock:
        if _connection_pool and not _connection_pool.closed:
            return _connection_pool

        connector = aiohttp.TCPConnector(
            limit=max_connections * 2,
            limit_per_host=max_connections,
            ttl_dns_cache=600,  # 10 minutes
            keepalive_timeout=30,
            enable_cleanup_closed=True,
            force_close=False,
        )
        timeout = aiohttp.ClientTimeout(total=None, sock_connect=15, sock_read=90)
        _connection_pool = aiohttp.ClientSession(
            connector=connector,
            timeout=timeout,
            headers={
                "Accept-Encoding": "gzip, deflate, br",
            },
        )
        log.debug(f"Created fetch pool with limit_per_host={max_connections}")

    return _connection_pool


async def close_connection_pool() -> None:
    """Closes the shared global connection pool."""
    global _connection_pool
    async with _pool_lock:
        if _connection_pool and not _connection_pool.closed:
            await _connection_pool.close()
            _connection_pool = None
            log.debug("Shared fetch connection pool closed.")


class FetchStatus(Enum):
    SUCCESS = "success"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"
    NETWORK_ERROR = "network_error"


@dataclass
class FetchResult:
    """Outcome of a fetch. `data` is only meaningful on success."""

    status: FetchStatus
    url: str
    data: bytes = b""
    status_code: Optional[int] = None
    error: Optional[str] = None
    attempts: int = 1

    @property
    def ok(self) -> bool:
        return self.status is FetchStatus.SUCCESS

    @property
    def cancelled(self) -> bool:
        return self.status is FetchStatus.CANCELLED

    @property
    def text(self) -> str:
        return self.data.decode("utf-8", errors="replace")

    def unwrap(self) -> bytes:
        """
        Returns the body, raising for anything but success.

        Raises:
            DownloadCancelledError: If the fetch was cancelled.
            FetchError: On timeout or network failure.
        """
        if self.status is FetchStatus.SUCCESS:
            return self.data
        if self.status is FetchStatus.CANCELLED:
            raise DownloadCancelledError(f"Request to {self.url} was cancelled.")
        raise FetchError(self.describe(), result=self)

    def describe(self) -> str:
        if self.status is FetchStatus.TIMEOUT:
            return f"Request to {self.url} timed out after {self.attempts} attempt(s)."
        if self.status is FetchStatus.NETWORK_ERROR:
            detail = f"HTTP {self.status_code}" if self.status_code else self.error
            return f"Request to {self.url} failed: {detail}"
        return f"Request to {self.url}: {self.status.value}"


@dataclass
class ByteStream:
    """An open response body. `total` is 0 when the server sends no length."""

    total: int
    chunks: AsyncIterator[bytes]


class Fetcher:
    """Fetches resources over HTTP with per-attempt timeouts and capped backoff."""

    def __init__(
        self,
        attempts: int = 3,
        timeout: float = 20.0,
        backoff_base: float = 1.0,
        backoff_max: float = 8.0,
        chunk_size: int = 131072,
        max_connections: int = 8,
    ):
        self.attempts = attempts
        self.timeout = timeout
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self.chunk_size = chunk_size
        self.max_connections = max_connections

    @classmethod
    def from_config(cls, config) -> "Fetcher":
        return cls(
            attempts=config.fetch_attempts,
            timeout=config.fetch_timeout,
            backoff_base=config.fetch_backoff_base,
            backoff_max=config.fetch_backoff_max,
            chunk_size=config.chunk_size,
        )

    def backoff_delay(self, attempt: int) -> float:
        """Delay after the given 1-based failed attempt, capped at `backoff_max`."""
        return min(self.backoff_base * (2 ** (attempt - 1)), self.backoff_max)

    async def _request(self, url: str) -> Tuple[int, bytes]:
        """Performs a single GET and returns `(status, body)`."""
        session = await get_connection_pool(self.max_connections)
        async with session.get(url, allow_redirects=True) as response:
            body = await response.read()
            return response.status, body

    @asynccontextmanager
    async def open_stream(self, url: str) -> AsyncIterator[ByteStream]:
        """Opens a streaming GET. Raises `aiohttp.ClientError` on HTTP errors."""
        session = await get_connection_pool(self.max_connections)
        async with session.get(url, allow_redirects=True) as response:
            response.raise_for_status()
            total = int(response.headers.get("Content-Length", 0) or 0)
            yield ByteStream(total, response.content.iter_chunked(self.chunk_size))

    async def fetch(
        self,
        url: str,
        token: Optional[CancellationToken] = None,
        timeout: Optional[float] = None,
    ) -> FetchResult:
        """Performs one attempt, racing the request against the cancellation token."""
        if token is not None and token.cancelled:
            return FetchResult(FetchStatus.CANCELLED, url)

        request = asyncio.ensure_future(
            asyncio.wait_for(self._request(url), timeout or self.timeout)
        )
        waiters = {request}
        cancel_waiter = None
        if token is not None:
            cancel_waiter = asyncio.ensure_future(token.wait())
            waiters.add(cancel_waiter)

        try:
            await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for waiter in waiters:
                if not waiter.done():
                    waiter.cancel()

        # Cancellation wins even if the request finished in the same tick.
        if cancel_waiter is not None and token.cancelled:
            if request.done() and not request.cancelled():
                request.exception()  # retrieved so it is not reported as unhandled
            return FetchResult(FetchStatus.CANCELLED, url)

        try:
            status, body = request.result()
        except asyncio.TimeoutError:
            return FetchResult(FetchStatus.TIMEOUT, url, error="timeout")
        except (aiohttp.ClientError, OSError) as e:
            return FetchResult(FetchStatus.NETWORK_ERROR, url, error=str(e))

        if status >= 400:
            return FetchResult(
                FetchStatus.NETWORK_ERROR, url, status_code=status, error=f"HTTP {status}"
            )
        return FetchResult(FetchStatus.SUCCESS, url, data=body, status_code=status)

    async def fetch_with_retry(
        self,
        url: str,
        token: Optional[CancellationToken] = None,
        attempts: Optional[int] = None,
        timeout: Optional[float] = None,
        fixed_delay: Optional[float] = None,
    ) -> FetchResult:
        """
        Fetches `url`, retrying timeouts and network errors.

        Args:
            attempts: Maximum attempts (defaults to the fetcher's setting).
            timeout: Per-attempt timeout in seconds.
            fixed_delay: Wait this long between attempts instead of backing off.

        Returns:
            The last `FetchResult`. A cancellation returns immediately.
        """
        max_attempts = attempts or self.attempts
        result = FetchResult(FetchStatus.NETWORK_ERROR, url, error="not attempted")
        for attempt in range(1, max_attempts + 1):
            result = await self.fetch(url, token, timeout)
            result.attempts = attempt
            if result.ok or result.cancelled:
                return result

            log.debug(
                f"Fetch attempt {attempt}/{max_attempts} for '{url}' failed: "
                f"{result.status.value} ({result.error}). Retrying..."
            )
            if attempt < max_attempts:
                delay = (
                    fixed_delay if fixed_delay is not None else self.backoff_delay(attempt)
                )
                if token is None:
                    await asyncio.sleep(delay)
                elif not await token.sleep(delay):
                    return FetchResult(FetchStatus.CANCELLED, url, attempts=attempt)
        return result
