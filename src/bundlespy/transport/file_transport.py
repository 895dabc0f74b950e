"""
Transport for local content roots given as file:// URLs or plain paths.
"""

import asyncio
import logging
import pathlib
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional
from urllib.parse import unquote, urlparse
from urllib.request import url2pathname

from bundlespy.bundlespy_exceptions import TransportError
from bundlespy.bundlespy_logger import BundlespyLogger
from bundlespy.transport.base import ProgressCallback, Transport, TransportResponse


class FileTransport(Transport):
    def __init__(self, logger: BundlespyLogger):
        self.logger = logger

    @staticmethod
    def to_path(url: str) -> pathlib.Path:
        if url.startswith("file://"):
            return pathlib.Path(url2pathname(unquote(urlparse(url).path)))
        return pathlib.Path(url)

    @asynccontextmanager
    async def fetch(
        self,
        url: str,
        content_hash: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
        cache_key: Optional[str] = None,
    ) -> AsyncIterator[TransportResponse]:
        path = self.to_path(url)
        self.logger.log(f"Reading {path}", logging.DEBUG)
        try:
            size = path.stat().st_size
            if on_progress is not None:
                on_progress(size, 0)
            payload = await asyncio.to_thread(path.read_bytes)
        except OSError as e:
            raise TransportError(url, str(e)) from e

        if on_progress is not None:
            on_progress(len(payload), len(payload))

        response = TransportResponse(url, payload)
        try:
            yield response
        finally:
            response.close()
