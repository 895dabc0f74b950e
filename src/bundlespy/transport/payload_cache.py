"""
Native transport cache keyed by resource name and content hash.
"""

import logging
import os
import pathlib
import tempfile
from typing import Optional

from bundlespy.bundlespy_logger import BundlespyLogger
from bundlespy.bundlespy_utils import ResourceUtils


class PayloadCache:
    """
    Stores payloads at <cache_dir>/<key>/<content hash>. Entries are verified
    against their hash on read; a corrupt entry is removed and treated as a miss.
    """

    def __init__(self, cache_dir: str, hash_algorithm: str, logger: BundlespyLogger):
        self.cache_dir = pathlib.Path(cache_dir)
        self.hash_algorithm = hash_algorithm
        self.logger = logger

    def _path_for(self, key: str, content_hash: str) -> pathlib.Path:
        return self.cache_dir / key / content_hash

    def get(self, key: str, content_hash: str) -> Optional[bytes]:
        path = self._path_for(key, content_hash)
        if not path.is_file():
            return None

        payload = path.read_bytes()
        if ResourceUtils.compute_hash(payload, self.hash_algorithm) != content_hash:
            self.logger.log(f"Discarding corrupt cache entry {path}", logging.WARNING)
            path.unlink()
            return None

        self.logger.log(f"Cache hit for {key} ({content_hash})", logging.DEBUG)
        return payload

    def put(self, key: str, content_hash: str, payload: bytes) -> bool:
        """
        Stores the payload if it matches the hash. Returns whether it was stored.
        """
        if ResourceUtils.compute_hash(payload, self.hash_algorithm) != content_hash:
            return False

        path = self._path_for(key, content_hash)
        path.parent.mkdir(parents=True, exist_ok=True)
        # One temp file per writer
        with tempfile.NamedTemporaryFile(
            dir=path.parent, prefix=path.name + ".", suffix=".tmp", delete=False
        ) as tmp:
            tmp.write(payload)
        try:
            os.replace(tmp.name, path)
        except OSError:
            os.unlink(tmp.name)
            raise
        return True
