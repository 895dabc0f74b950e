"""
HTTP(S) transport built on requests. Blocking requests run in a worker
thread; progress is handed back to the event loop thread.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Optional

import requests

from bundlespy.bundlespy_exceptions import TransportError
from bundlespy.bundlespy_logger import BundlespyLogger
from bundlespy.transport.base import ProgressCallback, Transport, TransportResponse
from bundlespy.transport.payload_cache import PayloadCache


class HttpTransport(Transport):
    """
    Streams resources over HTTP(S), optionally backed by a PayloadCache.
    """

    def __init__(
        self,
        logger: BundlespyLogger,
        timeout: float = 30.0,
        chunk_size: int = 64 * 1024,
        cache: Optional[PayloadCache] = None,
        session: Optional[requests.Session] = None,
    ):
        self.logger = logger
        self.timeout = timeout
        self.chunk_size = chunk_size
        self.cache = cache
        self.session = session or requests.Session()

    @asynccontextmanager
    async def fetch(
        self,
        url: str,
        content_hash: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
        cache_key: Optional[str] = None,
    ) -> AsyncIterator[TransportResponse]:
        loop = asyncio.get_running_loop()

        def report(expected: int, received: int) -> None:
            if on_progress is not None:
                loop.call_soon_threadsafe(on_progress, expected, received)

        use_cache = self.cache is not None and content_hash is not None and cache_key is not None
        payload = None
        if use_cache:
            payload = await self._cache_call(url, self.cache.get, cache_key, content_hash)

        from_cache = payload is not None
        if from_cache:
            report(len(payload), len(payload))
        else:
            payload = await asyncio.to_thread(self._download, url, report)
            if use_cache:
                await self._cache_call(url, self.cache.put, cache_key, content_hash, payload)

        response = TransportResponse(url, payload, from_cache=from_cache)
        try:
            yield response
        finally:
            response.close()

    def _download(self, url: str, report: Callable[[int, int], None]) -> bytes:
        self.logger.log(f"GET {url}", logging.DEBUG)
        try:
            with self.session.get(url, stream=True, timeout=self.timeout) as response:
                if not 200 <= response.status_code < 300:
                    raise TransportError(
                        url, f"HTTP {response.status_code}", status_code=response.status_code
                    )

                expected = self._content_length(response)
                report(expected, 0)

                chunks = []
                received = 0
                for chunk in response.iter_content(chunk_size=self.chunk_size):
                    if not chunk:
                        continue
                    chunks.append(chunk)
                    received += len(chunk)
                    # Content-Length can under-report for encoded bodies
                    expected = max(expected, received)
                    report(expected, received)

                return b"".join(chunks)
        except requests.Timeout as e:
            raise TransportError(url, f"timed out: {e}") from e
        except requests.RequestException as e:
            raise TransportError(url, str(e)) from e

    @staticmethod
    def _content_length(response: requests.Response) -> int:
        # A missing or malformed header means the size is not known yet
        try:
            return max(int(response.headers.get("Content-Length") or 0), 0)
        except ValueError:
            return 0

    @staticmethod
    async def _cache_call(url: str, func: Callable[..., Any], *args: Any) -> Any:
        try:
            return await asyncio.to_thread(func, *args)
        except OSError as e:
            raise TransportError(url, f"cache error: {e}") from e
