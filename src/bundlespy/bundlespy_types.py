"""
Types shared across the bundlespy components.
"""

from enum import Enum
from typing import Any, Optional

from bundlespy.bundlespy_exceptions import BundlespyException
from bundlespy.transport.base import RawBundleResource


class FetchStatus(str, Enum):
    """Lifecycle of a single bundle fetch."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class BundleHandle:
    """
    A loaded bundle, validated against the content hash the manifest declares
    for it. Assets extracted from a handle are only valid until it is released.
    """

    def __init__(self, name: str, content_hash: str, resource: RawBundleResource):
        self.name = name
        self.content_hash = content_hash
        self._resource: Optional[RawBundleResource] = resource

    @property
    def released(self) -> bool:
        return self._resource is None

    def extract_asset(self, asset_name: str) -> Optional[Any]:
        if self._resource is None:
            raise BundlespyException(f"Bundle {self.name} has been released")
        return self._resource.extract_asset(asset_name)

    def release(self, immediate: bool = True) -> None:
        if self._resource is None:
            return
        resource, self._resource = self._resource, None
        resource.release(immediate)

    def __repr__(self) -> str:
        return f"BundleHandle(name={self.name}, hash={self.content_hash}, released={self.released})"
