"""
Manifest models for bundle distribution.

This package provides Pydantic data models for parsing and validating the
manifest that lists every bundle of a build, its content hash and its
dependencies on other bundles.
"""

from .bundle_manifest import (
    BundleEntry,
    BundleManifest,
)

__all__ = [
    "BundleEntry",
    "BundleManifest",
]
