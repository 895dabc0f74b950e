"""
Chooses a transport for a configured content root.
"""

from bundlespy.bundlespy_config import BundlespyConfig
from bundlespy.bundlespy_logger import BundlespyLogger
from bundlespy.transport.base import Transport
from bundlespy.transport.file_transport import FileTransport
from bundlespy.transport.http_transport import HttpTransport
from bundlespy.transport.payload_cache import PayloadCache


def create_transport(config: BundlespyConfig, logger: BundlespyLogger) -> Transport:
    """
    http(s) content roots get an HttpTransport (with the native cache when
    enabled); everything else is read from the local filesystem.
    """
    if config.content_root.startswith(("http://", "https://")):
        cache = None
        cache_dir = config.get_cache_dir()
        if cache_dir is not None:
            cache = PayloadCache(cache_dir, config.hash_algorithm, logger)
        return HttpTransport(
            logger,
            timeout=config.request_timeout,
            chunk_size=config.chunk_size,
            cache=cache,
        )
    return FileTransport(logger)
