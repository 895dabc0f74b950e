"""
This module contains the exceptions raised by the bundlespy framework.
"""

from typing import Dict, Optional


class BundlespyException(Exception):
    """
    Exceptions raised by the bundlespy framework.
    """

    def __init__(self, message: str):
        """
        Initializes the exception with the given message.
        """
        super().__init__(message)
        self.message = message


class BundlespyConfigError(BundlespyException):
    """Invalid or incomplete configuration."""


class ManifestNotReady(BundlespyException):
    """The manifest has not been loaded yet."""

    def __init__(self, message: str = "Manifest has not been loaded yet"):
        super().__init__(message)


class ManifestInvalid(BundlespyException):
    """The fetched manifest is empty or internally inconsistent."""


class UnknownBundle(BundlespyException):
    def __init__(self, bundle_name: str):
        super().__init__(f"Bundle is not listed in the manifest: {bundle_name}")
        self.bundle_name = bundle_name


class FetchFailed(BundlespyException):
    """
    A single bundle could not be fetched. Subclasses say why.
    """

    def __init__(self, bundle_name: str, reason: str):
        super().__init__(f"Failed to fetch {bundle_name}: {reason}")
        self.bundle_name = bundle_name
        self.reason = reason


class TransportError(FetchFailed):
    """
    Network failure, non-2xx response or timeout reported by the transport.
    """

    def __init__(self, bundle_name: str, cause: str, status_code: Optional[int] = None):
        super().__init__(bundle_name, cause)
        self.cause = cause
        self.status_code = status_code


class HashMismatch(FetchFailed):
    def __init__(self, bundle_name: str, expected: str, actual: str):
        super().__init__(
            bundle_name, f"content hash mismatch (expected {expected}, got {actual})"
        )
        self.expected = expected
        self.actual = actual


class DependencyLoadFailed(BundlespyException):
    """
    A bundle in a dependency closure failed to load. Bundles that loaded
    before the failure stay cached.
    """

    def __init__(self, bundle_name: str, cause: BaseException):
        super().__init__(f"Failed to load {bundle_name}: {cause}")
        self.bundle_name = bundle_name
        self.cause = cause


class BulkDownloadFailed(BundlespyException):
    """
    Raised once every fetcher of a bulk download has finished and at least
    one of them failed.
    """

    def __init__(self, failures: Dict[str, str]):
        names = ", ".join(sorted(failures))
        super().__init__(f"{len(failures)} bundle(s) failed to download: {names}")
        self.failures = failures


class UnknownGroup(BundlespyException):
    def __init__(self, group: str):
        super().__init__(f"No bundles have been loaded for group: {group}")
        self.group = group


class BundleNotLoaded(BundlespyException):
    def __init__(self, group: str, bundle_name: str):
        super().__init__(f"Bundle {bundle_name} is not loaded in group {group}")
        self.group = group
        self.bundle_name = bundle_name


class GroupDisposed(BundlespyException):
    def __init__(self, group: str):
        super().__init__(f"Group has been disposed: {group}")
        self.group = group


class AssetNotFound(BundlespyException):
    def __init__(self, bundle_name: str, asset_name: str):
        super().__init__(f"Asset {asset_name} not found in bundle {bundle_name}")
        self.bundle_name = bundle_name
        self.asset_name = asset_name
