"""
Dependency loader implementation.

One DependencyLoader exists per group ("scene"). It owns the group's cache
and the map of in-flight fetches that keeps concurrent loads of the same
bundle down to a single fetch.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from bundlespy.bundle_downloader import BundleFetcher
from bundlespy.bundlespy_exceptions import (
    AssetNotFound,
    BundleNotLoaded,
    BundlespyException,
    DependencyLoadFailed,
    GroupDisposed,
)
from bundlespy.bundlespy_logger import BundlespyLogger
from bundlespy.bundlespy_types import BundleHandle
from bundlespy.manifest_store import ManifestStore

FetcherFactory = Callable[[str], BundleFetcher]
LoadCallback = Callable[[str], None]


class LoadedGroupCache:
    """
    Bundles and extracted assets of one group. An asset is only cached while
    the bundle it came from is.
    """

    def __init__(self):
        self.bundles: Dict[str, BundleHandle] = {}
        self.assets: Dict[Tuple[str, str], Any] = {}

    def add_bundle(self, handle: BundleHandle) -> None:
        if handle.name in self.bundles:
            raise BundlespyException(f"Bundle {handle.name} is already cached")
        self.bundles[handle.name] = handle

    def get_bundle(self, bundle_name: str) -> Optional[BundleHandle]:
        return self.bundles.get(bundle_name)

    def get_asset(self, bundle_name: str, asset_name: str) -> Optional[Any]:
        return self.assets.get((bundle_name, asset_name))

    def put_asset(self, bundle_name: str, asset_name: str, asset: Any) -> None:
        if bundle_name not in self.bundles:
            raise BundlespyException(f"Bundle {bundle_name} is not cached")
        self.assets[(bundle_name, asset_name)] = asset

    def release_all(self) -> None:
        self.assets.clear()
        for handle in self.bundles.values():
            handle.release(immediate=True)
        self.bundles.clear()


class DependencyLoader:
    """
    Loads bundles together with everything they depend on, for one group.
    """

    def __init__(
        self,
        group: str,
        manifest_store: ManifestStore,
        fetcher_factory: FetcherFactory,
        logger: BundlespyLogger,
    ):
        """
        Args:
            group: Name of the group this loader caches for
            manifest_store: Ready manifest store answering dependency queries
            fetcher_factory: Builds a BundleFetcher for a bundle name
            logger: Logger for progress and error messages
        """
        self.group = group
        self.manifest_store = manifest_store
        self.fetcher_factory = fetcher_factory
        self.logger = logger
        self.cache = LoadedGroupCache()
        self._pending: Dict[str, asyncio.Task] = {}
        self._disposed = False

    @property
    def disposed(self) -> bool:
        return self._disposed

    def is_loaded(self, bundle_name: str) -> bool:
        return bundle_name in self.cache.bundles

    def loaded_bundles(self) -> List[str]:
        return list(self.cache.bundles.keys())

    def resolve_closure(self, root_bundle: str) -> List[str]:
        """
        Depth-first walk over the manifest's dependency lists. Each bundle
        appears once, after all of its dependencies; the root comes last.

        Raises:
            ManifestNotReady: If the manifest has not been loaded
            UnknownBundle: If the root or a dependency is not in the manifest
        """
        ordered: List[str] = []
        visited: Set[str] = {root_bundle}
        stack = [(root_bundle, iter(self.manifest_store.dependencies_of(root_bundle)))]
        while stack:
            name, deps = stack[-1]
            dep = next(deps, None)
            if dep is None:
                stack.pop()
                ordered.append(name)
            elif dep not in visited:
                visited.add(dep)
                stack.append((dep, iter(self.manifest_store.dependencies_of(dep))))
        return ordered

    async def load_closure(
        self,
        root_bundle: str,
        on_load_start: Optional[LoadCallback] = None,
        on_load_completed: Optional[LoadCallback] = None,
    ) -> None:
        """
        Loads root_bundle and its transitive dependencies into the group cache.

        Bundles are loaded one after another in closure order, so a bundle is
        only started once everything it depends on is cached. A bundle that
        another caller is already fetching for this group is waited on, not
        fetched again. Bundles cached before a failure stay cached.

        Args:
            root_bundle: The bundle to make usable
            on_load_start: Called with a bundle name when this call starts fetching it
            on_load_completed: Called with a bundle name once it is in the cache

        Raises:
            DependencyLoadFailed: If any bundle of the closure failed to load
            GroupDisposed: If the group was disposed before the load finished
        """
        self._check_not_disposed()
        closure = self.resolve_closure(root_bundle)

        for name in closure:
            self._check_not_disposed()
            if self.is_loaded(name):
                continue
            try:
                await self._load_bundle(name, on_load_start)
            except GroupDisposed:
                raise
            except BundlespyException as e:
                self.logger.log(
                    f"Loading {root_bundle} in group {self.group} failed at {name}: {e}",
                    logging.ERROR,
                )
                raise DependencyLoadFailed(name, e) from e
            if on_load_completed is not None:
                on_load_completed(name)

        self.logger.log(
            f"Loaded {root_bundle} with {len(closure) - 1} dependencies in group {self.group}",
            logging.INFO,
        )

    async def _load_bundle(self, bundle_name: str, on_load_start: Optional[LoadCallback]) -> None:
        task = self._pending.get(bundle_name)
        if task is None:
            if on_load_start is not None:
                on_load_start(bundle_name)
            task = asyncio.get_running_loop().create_task(self._fetch(bundle_name))
            self._pending[bundle_name] = task
            task.add_done_callback(lambda _: self._pending.pop(bundle_name, None))
        else:
            self.logger.log(
                f"Joining in-flight load of {bundle_name} in group {self.group}", logging.DEBUG
            )
        # A caller that stops waiting leaves the fetch running; the cache keeps the result
        await asyncio.shield(task)

    async def _fetch(self, bundle_name: str) -> None:
        fetcher = self.fetcher_factory(bundle_name)
        await fetcher.start()
        if self._disposed:
            fetcher.release()
            raise GroupDisposed(self.group)
        self.cache.add_bundle(fetcher.take_handle())

    def get_asset(self, bundle_name: str, asset_name: str, cache: bool = False) -> Any:
        """
        Extracts an asset from a bundle loaded in this group.

        Args:
            bundle_name: Bundle holding the asset
            asset_name: Name of the asset inside the bundle
            cache: Keep the extracted asset and return the kept instance next time

        Raises:
            GroupDisposed: If the group has been disposed
            BundleNotLoaded: If the bundle is not loaded in this group
            AssetNotFound: If the bundle does not contain the asset
        """
        self._check_not_disposed()
        handle = self.cache.get_bundle(bundle_name)
        if handle is None:
            raise BundleNotLoaded(self.group, bundle_name)

        if cache:
            cached = self.cache.get_asset(bundle_name, asset_name)
            if cached is not None:
                return cached

        asset = handle.extract_asset(asset_name)
        if asset is None:
            raise AssetNotFound(bundle_name, asset_name)

        if cache:
            self.cache.put_asset(bundle_name, asset_name, asset)
        return asset

    def dispose(self) -> None:
        """
        Releases every bundle of the group. Later asset requests fail with
        GroupDisposed; fetches still in flight release their result on arrival.
        """
        if self._disposed:
            return
        self._disposed = True
        count = len(self.cache.bundles)
        self.cache.release_all()
        self.logger.log(f"Disposed group {self.group} ({count} bundles released)", logging.INFO)

    def _check_not_disposed(self) -> None:
        if self._disposed:
            raise GroupDisposed(self.group)
