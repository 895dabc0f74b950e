"""
This file contains various utility functions like platform detection,
resource location and size conversion.
"""

import hashlib
import platform
from enum import Enum, IntEnum

from bundlespy.bundlespy_exceptions import BundlespyException


class PlatformId(str, Enum):
    """
    Platform identifiers. Bundles are built per platform and
    the manifest of each build is named after its platform.
    """

    WIN_x86 = "win-x86"
    WIN_x64 = "win-x64"
    WIN_arm64 = "win-arm64"
    OSX = "osx"
    OSX_x64 = "osx-x64"
    OSX_arm64 = "osx-arm64"
    LINUX_x86 = "linux-x86"
    LINUX_x64 = "linux-x64"
    LINUX_arm64 = "linux-arm64"


class SizeUnit(IntEnum):
    """
    Units accepted by the progress query surface: 0=byte, 1=KB, 2=MB, 3=GB
    """

    BYTE = 0
    KB = 1
    MB = 2
    GB = 3


class PlatformUtils:
    """
    This class provides utilities for platform detection and identification.
    """

    @staticmethod
    def get_platform_id() -> PlatformId:
        """
        Returns the platform id for the current system
        """
        system = platform.system()
        machine = platform.machine().lower()
        bitness = platform.architecture()[0]

        if system == "Windows":
            system_name = "win"
        elif system == "Darwin":
            system_name = "osx"
        elif system == "Linux":
            system_name = "linux"
        else:
            raise BundlespyException("Unknown platform: " + system)

        if machine in ("amd64", "x86_64"):
            arch = "x64" if bitness == "64bit" else "x86"
        elif machine in ("arm64", "aarch64"):
            arch = "arm64"
        elif machine in ("i386", "i686", "x86"):
            arch = "x86"
        else:
            raise BundlespyException("Unknown machine: " + machine)

        return PlatformId(f"{system_name}-{arch}")


class ResourceUtils:
    """
    Utilities for composing resource locations and checking payloads.
    """

    @staticmethod
    def join_url(content_root: str, name: str) -> str:
        """
        Joins a content root and a relative resource name with exactly one "/".
        """
        return content_root.rstrip("/") + "/" + name.lstrip("/")

    @staticmethod
    def compute_hash(payload: bytes, algorithm: str) -> str:
        """
        Returns the hex digest of the payload with the given hashlib algorithm.
        """
        try:
            digest = hashlib.new(algorithm)
        except ValueError as e:
            raise BundlespyException(f"Unsupported hash algorithm: {algorithm}") from e
        digest.update(payload)
        return digest.hexdigest()

    @staticmethod
    def convert_size(num_bytes: int, unit: SizeUnit) -> float:
        return num_bytes / (1024 ** int(unit))


def group_of(bundle_name: str) -> str:
    """
    Returns the group a bundle belongs to by naming convention: the part of
    the name before the first "/". Names without a "/" are their own group.
    """
    return bundle_name.split("/", 1)[0]
