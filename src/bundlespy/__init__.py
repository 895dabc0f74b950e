"""
This module exports the DistributionCoordinator class and the main types of bundlespy
"""

from . import bundlespy_types as Types
from .bundlespy_config import BundlespyConfig
from .bundlespy_logger import BundlespyLogger
from .distribution_coordinator import DistributionCoordinator

__all__ = ["DistributionCoordinator", "BundlespyConfig", "BundlespyLogger", "Types"]
