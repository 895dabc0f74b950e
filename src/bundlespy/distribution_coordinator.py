"""
This file contains the main interface of bundlespy: the DistributionCoordinator
owns the manifest, runs bulk downloads with aggregate progress, and keeps one
DependencyLoader per group for on-demand loading.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

from bundlespy.bundle_downloader import BundleFetcher
from bundlespy.bundlespy_config import BundlespyConfig
from bundlespy.bundlespy_exceptions import (
    BulkDownloadFailed,
    BundlespyException,
    UnknownGroup,
)
from bundlespy.bundlespy_logger import BundlespyLogger
from bundlespy.bundlespy_utils import ResourceUtils, SizeUnit
from bundlespy.dependency_loader import DependencyLoader
from bundlespy.dependency_loader.loader import LoadCallback
from bundlespy.manifest_store import ManifestStore
from bundlespy.transport import Transport, create_transport


class DistributionCoordinator:
    """
    Top-level entry point. One instance per content root; pass it to whatever
    needs bundles instead of reaching for a global.

    Example:
        coordinator = DistributionCoordinator(config, logger)
        async with coordinator.session():
            await coordinator.load("level1", "level1/env")
            tree = coordinator.get_asset("level1", "level1/env", "Tree", cache=True)
    """

    def __init__(
        self,
        config: BundlespyConfig,
        logger: BundlespyLogger,
        transport: Optional[Transport] = None,
    ):
        """
        Args:
            config: Content root, platform and transport settings
            logger: Logger shared by every component
            transport: Transport to use; chosen from the content root if omitted
        """
        self.config = config
        self.logger = logger
        self.transport = transport or create_transport(config, logger)
        self.manifest_store = ManifestStore(config.get_manifest_url(), self.transport, logger)

        self.content_bytes = 0
        self.downloaded_bytes = 0
        self.progress = 0.0

        self._bulk_running = False
        self._loaders: Dict[str, DependencyLoader] = {}

    def create_fetcher(self, bundle_name: str) -> BundleFetcher:
        """
        Builds a fetcher for a manifest bundle.

        Raises:
            ManifestNotReady: If the manifest has not been loaded
            UnknownBundle: If the manifest does not list the bundle
        """
        return BundleFetcher(
            bundle_name,
            self.manifest_store.hash_of(bundle_name),
            self.config.get_bundle_url(bundle_name),
            self.transport,
            self.logger,
            hash_algorithm=self.config.hash_algorithm,
        )

    async def bulk_download(self, group: Optional[str] = None) -> List[str]:
        """
        Downloads every bundle in the manifest (or in one group) concurrently.

        Aggregate counters are refreshed every poll_interval seconds. A failed
        bundle does not stop its siblings; failures are reported together once
        every fetcher has finished. The downloaded bundles are released at the
        end, leaving only what the transport caches natively.

        Returns:
            Names of the downloaded bundles

        Raises:
            BulkDownloadFailed: If any bundle failed, with the reason per bundle
        """
        if self._bulk_running:
            raise BundlespyException("A bulk download is already running")

        self._bulk_running = True
        try:
            return await self._run_bulk_download(group)
        finally:
            self._bulk_running = False

    async def _run_bulk_download(self, group: Optional[str]) -> List[str]:
        manifest = await self.manifest_store.wait_until_ready()
        names = manifest.bundles_in_group(group) if group is not None else manifest.bundle_names()

        self.logger.log(f"Starting download of {len(names)} bundles", logging.INFO)
        fetchers = {name: self.create_fetcher(name) for name in names}
        loop = asyncio.get_running_loop()
        tasks = {name: loop.create_task(fetcher.start()) for name, fetcher in fetchers.items()}

        self.progress = 0.0
        try:
            while True:
                self._update_progress(fetchers)
                pending = [task for task in tasks.values() if not task.done()]
                if not pending:
                    break
                await asyncio.wait(pending, timeout=self.config.poll_interval)
        finally:
            for name, task in tasks.items():
                self._release_when_done(task, fetchers[name])

        failures = {}
        for name, task in tasks.items():
            if task.cancelled():
                failures[name] = "cancelled"
                continue
            error = task.exception()
            if error is not None:
                failures[name] = getattr(error, "reason", str(error))

        self.logger.log(
            f"Download summary: {len(names) - len(failures)} completed, {len(failures)} failed",
            logging.INFO,
        )
        if failures:
            raise BulkDownloadFailed(failures)
        return names

    def _update_progress(self, active: Dict[str, BundleFetcher]) -> None:
        fetchers = list(active.values())
        self.content_bytes = sum(f.expected_bytes for f in fetchers)
        self.downloaded_bytes = sum(f.received_bytes for f in fetchers)
        if fetchers:
            # Unweighted mean: every bundle counts the same whatever its size
            self.progress = sum(f.progress_fraction for f in fetchers) / len(fetchers)
        else:
            self.progress = 1.0

    @staticmethod
    def _release_when_done(task: asyncio.Task, fetcher: BundleFetcher) -> None:
        def release(done: asyncio.Task) -> None:
            if not done.cancelled():
                done.exception()
            fetcher.release()

        if task.done():
            release(task)
        else:
            task.add_done_callback(release)

    def get_content_size(self, unit: SizeUnit = SizeUnit.KB) -> float:
        """
        Total expected size of the current (or last) bulk download.
        """
        return ResourceUtils.convert_size(self.content_bytes, unit)

    def get_downloaded_size(self, unit: SizeUnit = SizeUnit.KB) -> float:
        return ResourceUtils.convert_size(self.downloaded_bytes, unit)

    def get_download_progress(self) -> int:
        """
        Bulk download progress as a percentage, 0..100.
        """
        return int(round(self.progress * 100))

    async def load(
        self,
        group: str,
        bundle_name: str,
        on_load_start: Optional[LoadCallback] = None,
        on_load_completed: Optional[LoadCallback] = None,
    ) -> None:
        """
        Loads a bundle and its dependency closure into a group, creating the
        group on first use (or afresh after it was disposed).

        Raises:
            TransportError, ManifestInvalid: If the manifest could not be loaded
            UnknownBundle: If the manifest does not list the bundle
            DependencyLoadFailed: If a bundle of the closure failed to load
        """
        if not group or not bundle_name:
            raise BundlespyException("group and bundle_name must be non-empty")

        await self.manifest_store.wait_until_ready()

        loader = self._loaders.get(group)
        if loader is None or loader.disposed:
            loader = DependencyLoader(group, self.manifest_store, self.create_fetcher, self.logger)
            self._loaders[group] = loader

        await loader.load_closure(bundle_name, on_load_start, on_load_completed)

    def get_loader(self, group: str) -> DependencyLoader:
        loader = self._loaders.get(group)
        if loader is None:
            raise UnknownGroup(group)
        return loader

    def groups(self) -> List[str]:
        return [group for group, loader in self._loaders.items() if not loader.disposed]

    def get_asset(self, group: str, bundle_name: str, asset_name: str, cache: bool = False) -> Any:
        """
        Raises:
            UnknownGroup: If nothing was ever loaded for the group
            GroupDisposed: If the group has been disposed
            BundleNotLoaded: If the bundle is not loaded in the group
            AssetNotFound: If the bundle does not contain the asset
        """
        return self.get_loader(group).get_asset(bundle_name, asset_name, cache)

    def dispose(self, group: str) -> None:
        self.get_loader(group).dispose()

    def reset(self) -> None:
        """
        Disposes every group and drops the manifest, returning the coordinator
        to its freshly constructed state.
        """
        if self._bulk_running:
            raise BundlespyException("Cannot reset while a bulk download is running")
        for loader in self._loaders.values():
            loader.dispose()
        self._loaders = {}
        self.manifest_store.dispose()
        self.content_bytes = 0
        self.downloaded_bytes = 0
        self.progress = 0.0

    @asynccontextmanager
    async def session(self) -> AsyncIterator["DistributionCoordinator"]:
        """
        Starts loading the manifest and resets the coordinator on exit.
        """
        self.manifest_store.begin_load()
        try:
            yield self
        finally:
            self.reset()
