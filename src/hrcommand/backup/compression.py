"""gzip compression of encoded snapshots.

gzip carries a CRC32 and the uncompressed length in its trailer, so a
truncated or altered stream is detected on decompression. The header mtime
is pinned to 0 to keep output deterministic.
"""

import gzip
import logging
import zlib

from .errors import CompressionError, CorruptionError

logger = logging.getLogger(__name__)


class Compressor:
    """Compress/decompress snapshot bytes.

    Args:
        level: gzip compression level (0-9).
    """

    def __init__(self, level: int = 6):
        if not 0 <= level <= 9:
            raise ValueError("Compression level must be between 0 and 9.")
        self.level = level

    def compress(self, data: bytes) -> bytes:
        try:
            return gzip.compress(data, compresslevel=self.level, mtime=0)
        except (OSError, zlib.error, MemoryError) as e:
            raise CompressionError(f"Compression failed: {e}") from e

    def decompress(self, data: bytes) -> bytes:
        """Reverse compress().

        Raises:
            CorruptionError: The stream is not valid gzip or is truncated.
                Input reaching this point has already passed authentication,
                so this indicates a bug in the writer rather than tampering.
        """
        try:
            return gzip.decompress(data)
        except (OSError, EOFError, zlib.error) as e:
            logger.error("Authenticated payload failed to decompress: %s", e)
            raise CorruptionError(f"Backup payload is not valid compressed data: {e}") from e
