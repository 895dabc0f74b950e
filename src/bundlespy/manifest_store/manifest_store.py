"""
Holds the single authoritative manifest of a content root.
"""

import asyncio
import logging
from typing import List, Optional

from pydantic import ValidationError

from bundlespy.bundlespy_exceptions import (
    ManifestInvalid,
    ManifestNotReady,
    UnknownBundle,
)
from bundlespy.bundlespy_logger import BundlespyLogger
from bundlespy.manifest_models import BundleManifest
from bundlespy.transport import Transport


class ManifestStore:
    """
    Fetches and holds the manifest.

    The manifest is fetched at most once at a time: begin_load() returns the
    outstanding load task if there is one. A failed load leaves the store not
    ready and is never retried internally; calling begin_load() again starts
    a fresh attempt.
    """

    def __init__(self, manifest_url: str, transport: Transport, logger: BundlespyLogger):
        """
        Args:
            manifest_url: Location of the manifest resource
            transport: Transport used for the fetch
            logger: Logger for progress and error messages
        """
        self.manifest_url = manifest_url
        self.transport = transport
        self.logger = logger
        self._manifest: Optional[BundleManifest] = None
        self._load_task: Optional[asyncio.Task] = None
        self.last_error: Optional[BaseException] = None

    def begin_load(self) -> "asyncio.Task[BundleManifest]":
        """
        Starts fetching the manifest unless a fetch is already outstanding or
        has already succeeded. Must be called from a running event loop.

        Returns:
            The task performing (or having performed) the load
        """
        if self._load_task is not None:
            if not self._load_task.done() or self._manifest is not None:
                return self._load_task

        self.last_error = None
        self._load_task = asyncio.get_running_loop().create_task(self._load())
        self._load_task.add_done_callback(self._on_load_done)
        return self._load_task

    async def _load(self) -> BundleManifest:
        self.logger.log(f"Fetching manifest from {self.manifest_url}", logging.INFO)
        async with self.transport.fetch(self.manifest_url) as response:
            try:
                manifest = BundleManifest.from_json(response.payload)
            except ValidationError as e:
                raise ManifestInvalid(f"Invalid manifest at {self.manifest_url}: {e}") from e

        self._manifest = manifest
        self.logger.log(
            f"Manifest ready with {len(manifest.bundles)} bundles", logging.INFO
        )
        return manifest

    def _on_load_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self.last_error = error
            self.logger.log(
                f"Failed to load manifest from {self.manifest_url}: {error}", logging.ERROR
            )

    async def wait_until_ready(self) -> BundleManifest:
        """
        Waits for the manifest, starting a load if none has been started.

        Raises:
            TransportError: If the manifest could not be fetched
            ManifestInvalid: If the fetched manifest is empty or inconsistent
        """
        if self._manifest is not None:
            return self._manifest
        if self._load_task is None:
            self.begin_load()
        # Waiters going away must not cancel the shared load
        return await asyncio.shield(self._load_task)

    def is_ready(self) -> bool:
        return self._manifest is not None

    @property
    def manifest(self) -> BundleManifest:
        if self._manifest is None:
            raise ManifestNotReady()
        return self._manifest

    def bundle_names(self) -> List[str]:
        return self.manifest.bundle_names()

    def hash_of(self, bundle_name: str) -> str:
        content_hash = self.manifest.hash_of(bundle_name)
        if content_hash is None:
            raise UnknownBundle(bundle_name)
        return content_hash

    def dependencies_of(self, bundle_name: str) -> List[str]:
        """
        Direct dependencies of a bundle, in manifest-declared order.

        Raises:
            ManifestNotReady: If the manifest has not been loaded
            UnknownBundle: If the manifest does not list the bundle
        """
        dependencies = self.manifest.dependencies_of(bundle_name)
        if dependencies is None:
            raise UnknownBundle(bundle_name)
        return dependencies

    def all_dependencies(self, bundle_name: str) -> List[str]:
        dependencies = self.manifest.all_dependencies(bundle_name)
        if dependencies is None:
            raise UnknownBundle(bundle_name)
        return dependencies

    def dispose(self) -> None:
        """
        Drops the manifest and abandons a load still in flight. The store is
        not ready again until a new load succeeds.
        """
        if self._load_task is not None and not self._load_task.done():
            self._load_task.cancel()
        self._manifest = None
        self._load_task = None
        self.last_error = None
