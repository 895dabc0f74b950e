"""
Configuration parameters for bundlespy.
"""

import dataclasses
import pathlib
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

try:
    import tomllib
except ModuleNotFoundError:
    # Python < 3.11
    import tomli as tomllib

from bundlespy.bundlespy_exceptions import BundlespyConfigError
from bundlespy.bundlespy_settings import BundlespySettings
from bundlespy.bundlespy_utils import PlatformUtils, ResourceUtils


@dataclass
class BundlespyConfig:
    """
    Configuration parameters
    """

    content_root: str
    platform_id: Optional[str] = None
    manifest_name: Optional[str] = None
    hash_algorithm: str = "sha256"
    poll_interval: float = 0.05
    request_timeout: float = 30.0
    chunk_size: int = 64 * 1024
    use_cache: bool = False
    cache_dir: Optional[str] = None

    def __post_init__(self):
        if not self.content_root:
            raise BundlespyConfigError("content_root must be set")
        if self.poll_interval <= 0:
            raise BundlespyConfigError("poll_interval must be positive")
        if self.request_timeout <= 0:
            raise BundlespyConfigError("request_timeout must be positive")
        if self.chunk_size <= 0:
            raise BundlespyConfigError("chunk_size must be positive")
        if self.platform_id is None:
            self.platform_id = PlatformUtils.get_platform_id().value

    @classmethod
    def from_dict(cls, env: Dict[str, Any]) -> "BundlespyConfig":
        """
        Create a BundlespyConfig instance from a dictionary
        """
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = sorted(set(env) - known)
        if unknown:
            raise BundlespyConfigError(f"Unknown configuration keys: {', '.join(unknown)}")
        return cls(**env)

    @classmethod
    def from_toml(cls, path: Union[str, pathlib.Path]) -> "BundlespyConfig":
        """
        Load the [bundlespy] section of a TOML file.

        Raises:
            BundlespyConfigError: If the file cannot be read or the section is missing
        """
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as e:
            raise BundlespyConfigError(f"Failed to load {path}: {e}") from e

        section = data.get("bundlespy")
        if not isinstance(section, dict):
            raise BundlespyConfigError(f"No [bundlespy] section in {path}")
        return cls.from_dict(section)

    def get_manifest_url(self) -> str:
        """
        The manifest lives at <content_root>/<manifest_name>, named after the
        platform unless configured otherwise.
        """
        name = self.manifest_name or f"{self.platform_id}.json"
        return ResourceUtils.join_url(self.content_root, name)

    def get_bundle_url(self, bundle_name: str) -> str:
        return ResourceUtils.join_url(self.content_root, bundle_name)

    def get_cache_dir(self) -> Optional[str]:
        if not self.use_cache:
            return None
        return self.cache_dir or BundlespySettings.get_global_cache_directory()
