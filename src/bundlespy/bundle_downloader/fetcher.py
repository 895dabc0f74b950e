"""
Single-bundle fetcher implementation.
"""

import logging
from typing import Optional

from bundlespy.bundlespy_exceptions import (
    BundlespyException,
    FetchFailed,
    HashMismatch,
    TransportError,
)
from bundlespy.bundlespy_logger import BundlespyLogger
from bundlespy.bundlespy_types import BundleHandle, FetchStatus
from bundlespy.bundlespy_utils import ResourceUtils
from bundlespy.transport import Transport

# Progress reported while a fetch is still running never reaches 1.0
_MAX_IN_FLIGHT_FRACTION = 0.99


class BundleFetcher:
    """
    Downloads one bundle and verifies it against its manifest hash.

    Byte counters and progress_fraction can be read at any time while
    start() is running. progress_fraction never decreases, and it is exactly
    1.0 only after a successful fetch; on failure it keeps its last value.
    """

    def __init__(
        self,
        bundle_name: str,
        expected_hash: str,
        url: str,
        transport: Transport,
        logger: BundlespyLogger,
        hash_algorithm: str = "sha256",
    ):
        """
        Args:
            bundle_name: Name of the bundle in the manifest
            expected_hash: Content hash the manifest declares for the bundle
            url: Location of the bundle resource
            transport: Transport used for the download
            logger: Logger for progress and error messages
            hash_algorithm: hashlib algorithm the manifest hashes were computed with
        """
        self.bundle_name = bundle_name
        self.expected_hash = expected_hash
        self.url = url
        self.transport = transport
        self.logger = logger
        self.hash_algorithm = hash_algorithm

        self.status = FetchStatus.PENDING
        self.error: Optional[FetchFailed] = None
        self._expected_bytes = 0
        self._received_bytes = 0
        self._progress = 0.0
        self._handle: Optional[BundleHandle] = None

    @property
    def expected_bytes(self) -> int:
        return self._expected_bytes

    @property
    def received_bytes(self) -> int:
        return self._received_bytes

    @property
    def progress_fraction(self) -> float:
        return self._progress

    def is_done(self) -> bool:
        return self.status in (FetchStatus.COMPLETED, FetchStatus.FAILED)

    def _on_progress(self, expected: int, received: int) -> None:
        if self.status != FetchStatus.IN_PROGRESS:
            return
        self._expected_bytes = max(self._expected_bytes, expected, received)
        self._received_bytes = max(self._received_bytes, received)
        if self._expected_bytes > 0:
            fraction = min(self._received_bytes / self._expected_bytes, _MAX_IN_FLIGHT_FRACTION)
            self._progress = max(self._progress, fraction)

    async def start(self) -> BundleHandle:
        """
        Runs the fetch to completion.

        Returns:
            The verified bundle handle

        Raises:
            TransportError: If the transport failed
            HashMismatch: If the payload does not match the manifest hash
            FetchFailed: If the payload could not be opened as a bundle, or the
                fetch aborted for any other reason
        """
        if self.status != FetchStatus.PENDING:
            raise BundlespyException(f"Fetcher for {self.bundle_name} has already been started")

        self.status = FetchStatus.IN_PROGRESS
        self.logger.log(f"Downloading {self.bundle_name} from {self.url}", logging.INFO)

        try:
            async with self.transport.fetch(
                self.url,
                content_hash=self.expected_hash,
                on_progress=self._on_progress,
                cache_key=self.bundle_name,
            ) as response:
                payload = response.payload
                actual_hash = ResourceUtils.compute_hash(payload, self.hash_algorithm)
                if actual_hash != self.expected_hash:
                    raise HashMismatch(self.bundle_name, self.expected_hash, actual_hash)
                try:
                    resource = response.open_bundle()
                except BundlespyException as e:
                    raise FetchFailed(self.bundle_name, e.message) from e
        except TransportError as e:
            error = TransportError(self.bundle_name, e.cause, e.status_code)
            self._record_failure(error)
            raise error from e
        except FetchFailed as e:
            self._record_failure(e)
            raise
        except BundlespyException as e:
            error = FetchFailed(self.bundle_name, e.message)
            self._record_failure(error)
            raise error from e
        except Exception as e:
            error = FetchFailed(self.bundle_name, f"{type(e).__name__}: {e}")
            self._record_failure(error)
            raise error from e

        self._handle = BundleHandle(self.bundle_name, self.expected_hash, resource)
        self._expected_bytes = max(self._expected_bytes, len(payload))
        self._received_bytes = len(payload)
        self._progress = 1.0
        self.status = FetchStatus.COMPLETED
        self.logger.log(
            f"Successfully downloaded {self.bundle_name} ({len(payload)} bytes)", logging.INFO
        )
        return self._handle

    def _record_failure(self, error: FetchFailed) -> None:
        self.status = FetchStatus.FAILED
        self.error = error
        self.logger.log(str(error), logging.ERROR)

    @property
    def handle(self) -> BundleHandle:
        """
        The verified bundle handle.

        Raises:
            FetchFailed: If the fetch failed or has not completed
        """
        if self.status == FetchStatus.FAILED:
            raise self.error
        if self._handle is None:
            raise FetchFailed(self.bundle_name, f"fetch is {self.status.value}")
        return self._handle

    def take_handle(self) -> BundleHandle:
        """
        Hands ownership of the handle to the caller; the fetcher forgets it.
        """
        handle = self.handle
        self._handle = None
        return handle

    def release(self) -> None:
        """
        Releases the handle if the fetcher still owns it.
        """
        if self._handle is not None:
            self._handle.release()
            self._handle = None
