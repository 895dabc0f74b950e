"""
Per-group dependency loading.

This package handles:
1. Resolving the transitive dependency closure of a bundle
2. Loading the closure dependencies-first, one fetch per bundle per group
3. Caching loaded bundles and extracted assets for the group
4. Releasing everything a group holds on disposal
"""

from .loader import DependencyLoader, LoadedGroupCache

__all__ = ["DependencyLoader", "LoadedGroupCache"]
