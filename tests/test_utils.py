"""
Helpers shared by the bundlespy tests: in-memory bundles and manifests, and a
fake transport whose fetches can be held open to control completion order.
"""

import asyncio
import hashlib
import io
import json
import zipfile
from contextlib import asynccontextmanager, contextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Dict, Iterator, List, Optional, Sequence, Set, Tuple

from bundlespy import BundlespyConfig, BundlespyLogger, DistributionCoordinator
from bundlespy.bundlespy_exceptions import TransportError
from bundlespy.transport import ProgressCallback, Transport, TransportResponse

CONTENT_ROOT = "https://cdn.example.com/bundles"
PLATFORM_ID = "linux-x64"
MANIFEST_URL = f"{CONTENT_ROOT}/{PLATFORM_ID}.json"


def bundle_url(name: str) -> str:
    return f"{CONTENT_ROOT}/{name}"


def make_bundle(assets: Dict[str, bytes]) -> bytes:
    """Builds a bundle payload: a zip archive with one member per asset."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for name, data in assets.items():
            archive.writestr(name, data)
    return buffer.getvalue()


def sha256(payload: bytes) -> str:
    return hashlib.sha256(payload).hexdigest()


def make_manifest(bundles: Dict[str, Tuple[bytes, Sequence[str]]]) -> bytes:
    """
    Builds a manifest document for bundles given as name -> (payload, dependencies).
    """
    document = {
        "_description": "test manifest",
        "platform": PLATFORM_ID,
        "bundles": {
            name: {"hash": sha256(payload), "dependencies": list(deps)}
            for name, (payload, deps) in bundles.items()
        },
    }
    return json.dumps(document).encode("utf-8")


class FakeTransport(Transport):
    """
    Serves payloads from memory.

    - failures: url -> reason, fetches of these urls raise TransportError
    - gates: url -> asyncio.Event, the fetch reports partial progress and
      waits for the event before completing
    - partial: url -> bytes reported as received while gated
    - cancelled: urls whose fetch is cancelled from inside the transport
    - events: ("start" | "finish" | "fail", url) in the order they happened
    """

    def __init__(self, payloads: Optional[Dict[str, bytes]] = None):
        self.payloads: Dict[str, bytes] = dict(payloads or {})
        self.failures: Dict[str, str] = {}
        self.cancelled: Set[str] = set()
        self.gates: Dict[str, asyncio.Event] = {}
        self.partial: Dict[str, int] = {}
        self.events: List[Tuple[str, str]] = []
        self.fetch_log: List[str] = []
        self.closed: List[str] = []

    def fetch_count(self, url: str) -> int:
        return self.fetch_log.count(url)

    def index_of(self, kind: str, url: str) -> int:
        return self.events.index((kind, url))

    @asynccontextmanager
    async def fetch(
        self,
        url: str,
        content_hash: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
        cache_key: Optional[str] = None,
    ) -> AsyncIterator[TransportResponse]:
        self.fetch_log.append(url)
        self.events.append(("start", url))
        await asyncio.sleep(0)

        if url in self.cancelled:
            raise asyncio.CancelledError()
        if url in self.failures:
            self.events.append(("fail", url))
            raise TransportError(url, self.failures[url])
        payload = self.payloads.get(url)
        if payload is None:
            self.events.append(("fail", url))
            raise TransportError(url, "HTTP 404", status_code=404)

        if on_progress is not None:
            on_progress(len(payload), self.partial.get(url, 0))
        gate = self.gates.get(url)
        if gate is not None:
            await gate.wait()
        if on_progress is not None:
            on_progress(len(payload), len(payload))
        self.events.append(("finish", url))

        response = TransportResponse(url, payload)
        try:
            yield response
        finally:
            response.close()
            self.closed.append(url)


@dataclass
class BundleTestContext:
    config: BundlespyConfig
    logger: BundlespyLogger
    transport: FakeTransport
    coordinator: DistributionCoordinator


def level1_bundles() -> Dict[str, Tuple[bytes, Sequence[str]]]:
    """
    level1/env depends on level1/shared, which depends on common/core.
    """
    return {
        "common/core": (make_bundle({"Shader": b"core-shader"}), []),
        "level1/shared": (make_bundle({"Material": b"shared-material"}), ["common/core"]),
        "level1/env": (make_bundle({"Tree": b"tree-mesh", "Rock": b"rock-mesh"}), ["level1/shared"]),
    }


@contextmanager
def create_test_context(
    bundles: Optional[Dict[str, Tuple[bytes, Sequence[str]]]] = None, **config_overrides
) -> Iterator[BundleTestContext]:
    """
    Coordinator wired to a FakeTransport serving the given bundles and their manifest.
    """
    bundles = level1_bundles() if bundles is None else bundles
    payloads = {bundle_url(name): payload for name, (payload, _) in bundles.items()}
    payloads[MANIFEST_URL] = make_manifest(bundles)

    params = {"content_root": CONTENT_ROOT, "platform_id": PLATFORM_ID, "poll_interval": 0.01}
    params.update(config_overrides)
    config = BundlespyConfig.from_dict(params)
    logger = BundlespyLogger()
    transport = FakeTransport(payloads)
    coordinator = DistributionCoordinator(config, logger, transport=transport)
    yield BundleTestContext(config, logger, transport, coordinator)
