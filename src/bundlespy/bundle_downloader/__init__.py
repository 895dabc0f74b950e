"""
Bundle downloader.

This package handles:
1. Downloading a single bundle through the transport
2. Tracking expected and received bytes while the download runs
3. Verifying the payload against the manifest content hash
4. Materializing the verified payload as a BundleHandle
"""

from .fetcher import BundleFetcher

__all__ = ["BundleFetcher"]
