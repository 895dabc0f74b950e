"""
Transports for fetching manifests and bundles.

This package handles:
1. The transport contract the distribution core depends on
2. HTTP(S) downloads with progress reporting
3. Local filesystem content roots
4. The native payload cache keyed by content hash
"""

from .base import (
    ProgressCallback,
    RawBundleResource,
    Transport,
    TransportResponse,
    ZipBundleResource,
)
from .factory import create_transport
from .file_transport import FileTransport
from .http_transport import HttpTransport
from .payload_cache import PayloadCache

__all__ = [
    "ProgressCallback",
    "RawBundleResource",
    "Transport",
    "TransportResponse",
    "ZipBundleResource",
    "create_transport",
    "FileTransport",
    "HttpTransport",
    "PayloadCache",
]
