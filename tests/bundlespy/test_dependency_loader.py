"""
Tests for DependencyLoader closure loading, single-flight and caching.
"""

import asyncio

import pytest

from bundlespy.bundlespy_exceptions import (
    AssetNotFound,
    BundlespyException,
    BundleNotLoaded,
    DependencyLoadFailed,
    GroupDisposed,
    HashMismatch,
    ManifestNotReady,
    TransportError,
    UnknownBundle,
)
from bundlespy.dependency_loader import DependencyLoader, LoadedGroupCache
from tests.test_utils import bundle_url, create_test_context, make_bundle

ENV = bundle_url("level1/env")
SHARED = bundle_url("level1/shared")
CORE = bundle_url("common/core")


async def create_loader(context, group="level1"):
    await context.coordinator.manifest_store.wait_until_ready()
    return DependencyLoader(
        group,
        context.coordinator.manifest_store,
        context.coordinator.create_fetcher,
        context.logger,
    )


@pytest.mark.asyncio
async def test_resolve_closure_orders_dependencies_first():
    with create_test_context() as context:
        loader = await create_loader(context)
        assert loader.resolve_closure("level1/env") == ["common/core", "level1/shared", "level1/env"]
        assert loader.resolve_closure("common/core") == ["common/core"]


@pytest.mark.asyncio
async def test_resolve_closure_visits_diamond_once():
    bundles = {
        "top": (make_bundle({"A": b"a"}), ["left", "right"]),
        "left": (make_bundle({"B": b"b"}), ["base"]),
        "right": (make_bundle({"C": b"c"}), ["base"]),
        "base": (make_bundle({"D": b"d"}), []),
    }
    with create_test_context(bundles) as context:
        loader = await create_loader(context, "diamond")
        assert loader.resolve_closure("top") == ["base", "left", "right", "top"]

        await loader.load_closure("top")
        assert context.transport.fetch_count(bundle_url("base")) == 1
        assert sorted(loader.loaded_bundles()) == ["base", "left", "right", "top"]


@pytest.mark.asyncio
async def test_resolve_closure_requires_manifest():
    with create_test_context() as context:
        loader = DependencyLoader(
            "level1",
            context.coordinator.manifest_store,
            context.coordinator.create_fetcher,
            context.logger,
        )
        with pytest.raises(ManifestNotReady):
            loader.resolve_closure("level1/env")


@pytest.mark.asyncio
async def test_load_closure_unknown_bundle():
    with create_test_context() as context:
        loader = await create_loader(context)
        with pytest.raises(UnknownBundle):
            await loader.load_closure("level9/env")


@pytest.mark.asyncio
async def test_dependencies_finish_before_dependent_starts():
    with create_test_context() as context:
        loader = await create_loader(context)
        await loader.load_closure("level1/env")

        events = context.transport.events
        assert context.transport.index_of("finish", CORE) < context.transport.index_of("start", SHARED)
        assert context.transport.index_of("finish", SHARED) < context.transport.index_of("start", ENV)
        assert events[-1] == ("finish", ENV)
        assert loader.get_asset("level1/env", "Tree") == b"tree-mesh"


@pytest.mark.asyncio
async def test_asset_unavailable_until_closure_loaded():
    with create_test_context() as context:
        loader = await create_loader(context)
        gate = asyncio.Event()
        context.transport.gates[SHARED] = gate

        task = asyncio.ensure_future(loader.load_closure("level1/env"))
        await asyncio.sleep(0.01)

        assert loader.is_loaded("common/core")
        assert not loader.is_loaded("level1/shared")
        assert context.transport.fetch_count(ENV) == 0
        with pytest.raises(BundleNotLoaded):
            loader.get_asset("level1/env", "Tree")

        gate.set()
        await task
        assert loader.get_asset("level1/env", "Tree") == b"tree-mesh"


@pytest.mark.asyncio
async def test_concurrent_loads_fetch_each_bundle_once():
    with create_test_context() as context:
        loader = await create_loader(context)
        gate = asyncio.Event()
        context.transport.gates[CORE] = gate

        first = asyncio.ensure_future(loader.load_closure("level1/env"))
        second = asyncio.ensure_future(loader.load_closure("level1/env"))
        third = asyncio.ensure_future(loader.load_closure("level1/shared"))
        await asyncio.sleep(0.01)
        gate.set()
        await asyncio.gather(first, second, third)

        assert context.transport.fetch_count(CORE) == 1
        assert context.transport.fetch_count(SHARED) == 1
        assert context.transport.fetch_count(ENV) == 1


@pytest.mark.asyncio
async def test_groups_do_not_share_caches():
    with create_test_context() as context:
        first = await create_loader(context, "first")
        second = await create_loader(context, "second")

        await first.load_closure("level1/shared")
        await second.load_closure("level1/shared")

        assert context.transport.fetch_count(SHARED) == 2
        first.dispose()
        assert second.get_asset("level1/shared", "Material") == b"shared-material"


@pytest.mark.asyncio
async def test_failure_keeps_partial_progress_and_retry_loads_missing():
    with create_test_context() as context:
        loader = await create_loader(context)
        context.transport.failures[SHARED] = "connection reset"

        with pytest.raises(DependencyLoadFailed) as exc_info:
            await loader.load_closure("level1/env")

        assert exc_info.value.bundle_name == "level1/shared"
        assert isinstance(exc_info.value.cause, TransportError)
        assert loader.is_loaded("common/core")
        assert not loader.is_loaded("level1/shared")
        # The dependent is never started once a dependency failed
        assert context.transport.fetch_count(ENV) == 0

        del context.transport.failures[SHARED]
        await loader.load_closure("level1/env")

        assert context.transport.fetch_count(CORE) == 1
        assert context.transport.fetch_count(SHARED) == 2
        assert context.transport.fetch_count(ENV) == 1


@pytest.mark.asyncio
async def test_hash_mismatch_leaves_bundle_out_of_cache():
    with create_test_context() as context:
        loader = await create_loader(context)
        context.transport.payloads[ENV] = make_bundle({"Tree": b"tampered"})

        with pytest.raises(DependencyLoadFailed) as exc_info:
            await loader.load_closure("level1/env")

        assert isinstance(exc_info.value.cause, HashMismatch)
        assert not loader.is_loaded("level1/env")
        assert loader.is_loaded("level1/shared")
        with pytest.raises(BundleNotLoaded):
            loader.get_asset("level1/env", "Tree")


@pytest.mark.asyncio
async def test_get_asset_cache():
    with create_test_context() as context:
        loader = await create_loader(context)
        await loader.load_closure("level1/env")

        first = loader.get_asset("level1/env", "Tree", cache=True)
        second = loader.get_asset("level1/env", "Tree", cache=True)
        assert first is second
        assert loader.cache.get_asset("level1/env", "Tree") is first

        loader.get_asset("level1/env", "Rock")
        assert loader.cache.get_asset("level1/env", "Rock") is None

        with pytest.raises(AssetNotFound):
            loader.get_asset("level1/env", "Missing")


@pytest.mark.asyncio
async def test_dispose_releases_bundles():
    with create_test_context() as context:
        loader = await create_loader(context)
        await loader.load_closure("level1/env")
        handles = list(loader.cache.bundles.values())
        loader.get_asset("level1/env", "Tree", cache=True)

        loader.dispose()

        assert loader.disposed
        assert all(handle.released for handle in handles)
        assert loader.cache.bundles == {}
        assert loader.cache.assets == {}
        with pytest.raises(GroupDisposed):
            loader.get_asset("level1/env", "Tree")
        with pytest.raises(GroupDisposed):
            await loader.load_closure("level1/env")


@pytest.mark.asyncio
async def test_dispose_during_load_releases_late_result():
    with create_test_context() as context:
        loader = await create_loader(context)
        gate = asyncio.Event()
        context.transport.gates[CORE] = gate

        task = asyncio.ensure_future(loader.load_closure("level1/env"))
        await asyncio.sleep(0.01)
        loader.dispose()
        gate.set()

        with pytest.raises(GroupDisposed):
            await task
        assert loader.cache.bundles == {}


@pytest.mark.asyncio
async def test_load_callbacks():
    with create_test_context() as context:
        loader = await create_loader(context)
        await loader.load_closure("common/core")

        started, completed = [], []
        await loader.load_closure("level1/env", started.append, completed.append)

        assert started == ["level1/shared", "level1/env"]
        assert completed == ["level1/shared", "level1/env"]


@pytest.mark.asyncio
async def test_resolve_closure_long_chain():
    depth = 1500
    bundles = {"chain/b0": (make_bundle({"A0": b"a"}), [])}
    for i in range(1, depth):
        bundles[f"chain/b{i}"] = (make_bundle({f"A{i}": b"a"}), [f"chain/b{i - 1}"])
    with create_test_context(bundles) as context:
        loader = await create_loader(context, "chain")
        closure = loader.resolve_closure(f"chain/b{depth - 1}")
        assert len(closure) == depth
        assert closure[0] == "chain/b0"
        assert closure[-1] == f"chain/b{depth - 1}"


class TestLoadedGroupCache:
    def test_asset_requires_bundle(self):
        cache = LoadedGroupCache()
        with pytest.raises(BundlespyException):
            cache.put_asset("level1/env", "Tree", b"tree")
