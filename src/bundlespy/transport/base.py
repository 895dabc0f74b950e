"""
Transport contract used by the distribution core.

The core only relies on this contract: a transport fetches a named resource
and yields its payload inside an async context, and a payload can be opened
as a raw bundle resource exposing asset extraction and release.
"""

import io
import zipfile
from abc import ABC, abstractmethod
from typing import Any, AsyncContextManager, Callable, List, Optional

from bundlespy.bundlespy_exceptions import BundlespyException

# on_progress(expected_bytes, received_bytes), always invoked on the event loop thread
ProgressCallback = Callable[[int, int], None]


class RawBundleResource(ABC):
    """
    A loaded bundle as produced by the transport.
    """

    @abstractmethod
    def extract_asset(self, name: str) -> Optional[Any]:
        """
        Returns the named asset, or None if the bundle does not contain it.
        """

    @abstractmethod
    def release(self, immediate: bool = False) -> None:
        """
        Releases the bundle. With immediate=True, assets already extracted
        from it are released as well.
        """


class ZipBundleResource(RawBundleResource):
    """
    A bundle stored as a zip archive whose members are its assets. Extracted
    assets are plain bytes owned by the caller, so release ignores immediate.
    """

    def __init__(self, payload: bytes):
        self._archive: Optional[zipfile.ZipFile] = zipfile.ZipFile(io.BytesIO(payload))

    @property
    def released(self) -> bool:
        return self._archive is None

    def asset_names(self) -> List[str]:
        if self._archive is None:
            raise BundlespyException("Bundle resource has been released")
        return self._archive.namelist()

    def extract_asset(self, name: str) -> Optional[bytes]:
        if self._archive is None:
            raise BundlespyException("Bundle resource has been released")
        try:
            return self._archive.read(name)
        except KeyError:
            return None

    def release(self, immediate: bool = False) -> None:
        if self._archive is None:
            return
        self._archive.close()
        self._archive = None


class TransportResponse:
    """
    The raw result of one fetch. Only valid inside the fetch context.
    """

    def __init__(self, url: str, payload: bytes, from_cache: bool = False):
        self.url = url
        self._payload: Optional[bytes] = payload
        self.from_cache = from_cache

    @property
    def payload(self) -> bytes:
        if self._payload is None:
            raise BundlespyException(f"Response for {self.url} has been released")
        return self._payload

    def open_bundle(self) -> RawBundleResource:
        """
        Materializes the payload as a bundle resource.

        Raises:
            BundlespyException: If the payload is not a readable bundle
        """
        try:
            return ZipBundleResource(self.payload)
        except zipfile.BadZipFile as e:
            raise BundlespyException(f"Payload from {self.url} is not a valid bundle: {e}") from e

    def close(self) -> None:
        self._payload = None


class Transport(ABC):
    """
    Fetches resources by URL.
    """

    @abstractmethod
    def fetch(
        self,
        url: str,
        content_hash: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
        cache_key: Optional[str] = None,
    ) -> AsyncContextManager[TransportResponse]:
        """
        Fetches the resource at url. Use as ``async with transport.fetch(url) as response``;
        the response is released when the block exits.

        Args:
            url: Location of the resource
            content_hash: Expected content hash, if known. Transports with a native
                cache use it as the cache identity.
            on_progress: Called with (expected_bytes, received_bytes) as data arrives
            cache_key: Stable name of the resource for the native cache

        Raises:
            TransportError: On network failure, non-2xx response or timeout
        """
