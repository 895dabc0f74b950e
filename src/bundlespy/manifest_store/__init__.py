"""
Manifest acquisition.

This package handles:
1. Fetching the manifest resource exactly once per load attempt
2. Validating it into an immutable BundleManifest
3. Answering readiness and dependency queries
"""

from .manifest_store import ManifestStore

__all__ = ["ManifestStore"]
