"""
Defines the default locations bundlespy uses on the local filesystem.
"""

import os
import pathlib


class BundlespySettings:
    """
    Provides the various settings for bundlespy.
    """

    _home_directory = os.path.join(str(pathlib.Path.home()), ".bundlespy")
    _global_cache_directory = os.path.join(_home_directory, "bundle_cache")

    @staticmethod
    def get_global_cache_directory() -> str:
        """
        Returns the directory used by the native transport cache when
        caching is enabled without an explicit directory.
        """
        os.makedirs(BundlespySettings._global_cache_directory, exist_ok=True)
        return BundlespySettings._global_cache_directory
