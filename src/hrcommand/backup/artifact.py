"""Backup artifact framing and file I/O.

Artifact layout (all offsets in bytes):

    0   4   magic "HRCB"
    4   1   format_version
    5   16  salt
    21  12  nonce
    33  4   KDF parameters (see KdfParams)
    37  ..  ciphertext, last 16 bytes are the GCM tag

The 37 header bytes are the associated data of the AEAD.
"""

import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from .backup_crypto import NONCE_LENGTH, SALT_LENGTH, TAG_LENGTH, KdfParams
from .cancellation import check_cancelled
from .errors import FormatError, IoError

logger = logging.getLogger(__name__)

MAGIC = b"HRCB"
FORMAT_VERSION = 1
SUPPORTED_FORMAT_VERSIONS = frozenset({1})

HEADER_SIZE = len(MAGIC) + 1 + SALT_LENGTH + NONCE_LENGTH + KdfParams.PACKED_SIZE
MIN_ARTIFACT_SIZE = HEADER_SIZE + TAG_LENGTH

_VERSION_OFFSET = len(MAGIC)
_SALT_OFFSET = _VERSION_OFFSET + 1
_NONCE_OFFSET = _SALT_OFFSET + SALT_LENGTH
_KDF_OFFSET = _NONCE_OFFSET + NONCE_LENGTH


@dataclass(frozen=True)
class ArtifactHeader:
    """Fixed-width header preceding the ciphertext."""

    salt: bytes
    nonce: bytes
    kdf_params: KdfParams
    format_version: int = FORMAT_VERSION
    magic: bytes = MAGIC

    def pack(self) -> bytes:
        if len(self.salt) != SALT_LENGTH:
            raise ValueError(f"Salt must be {SALT_LENGTH} bytes.")
        if len(self.nonce) != NONCE_LENGTH:
            raise ValueError(f"Nonce must be {NONCE_LENGTH} bytes.")
        return (
            self.magic
            + bytes([self.format_version])
            + self.salt
            + self.nonce
            + self.kdf_params.pack()
        )

    @classmethod
    def unpack(cls, data: bytes) -> "ArtifactHeader":
        """Parse and validate the header at the start of ``data``.

        Raises:
            FormatError: Too short, unknown magic, unsupported version, or
                KDF parameters outside the accepted bounds.
        """
        if len(data) < MIN_ARTIFACT_SIZE:
            raise FormatError("File is too short to be an HR Command Center backup.")
        magic = data[:_VERSION_OFFSET]
        if magic != MAGIC:
            raise FormatError("Not an HR Command Center backup file (bad magic).")
        version = data[_VERSION_OFFSET]
        if version not in SUPPORTED_FORMAT_VERSIONS:
            raise FormatError(f"Unsupported backup format version: {version}")
        return cls(
            salt=bytes(data[_SALT_OFFSET:_NONCE_OFFSET]),
            nonce=bytes(data[_NONCE_OFFSET:_KDF_OFFSET]),
            kdf_params=KdfParams.unpack(bytes(data[_KDF_OFFSET:HEADER_SIZE])),
            format_version=version,
            magic=bytes(magic),
        )


@dataclass(frozen=True)
class ParsedArtifact:
    header: ArtifactHeader
    header_bytes: bytes
    ciphertext: bytes


class ArtifactWriter:
    """Persists artifacts atomically.

    The artifact is written to a temporary file beside the destination,
    fsynced, and only then renamed over the destination. On any failure or
    cancellation the temporary file is removed and the destination is left
    untouched.
    """

    TEMP_SUFFIX = ".partial"

    def write(
        self,
        destination: Union[str, Path],
        header_bytes: bytes,
        ciphertext: bytes,
        cancel_token=None,
    ) -> int:
        """Write header + ciphertext to ``destination``. Returns bytes written."""
        destination = Path(destination)
        tmp_path: Optional[Path] = None
        try:
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{destination.name}.",
                suffix=self.TEMP_SUFFIX,
                dir=str(destination.parent),
            )
            tmp_path = Path(tmp_name)
            with os.fdopen(fd, "wb") as fh:
                fh.write(header_bytes)
                fh.write(ciphertext)
                fh.flush()
                os.fsync(fh.fileno())
            check_cancelled(cancel_token)
            os.replace(tmp_path, destination)
            tmp_path = None
        except OSError as e:
            raise IoError(f"Could not write backup to {destination}: {e}") from e
        finally:
            if tmp_path is not None:
                self._discard(tmp_path)

        size = len(header_bytes) + len(ciphertext)
        logger.info("Backup artifact written: %s (%d bytes)", destination, size)
        return size

    @staticmethod
    def _discard(path: Path) -> None:
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError:
            logger.warning("Could not remove temporary backup file %s", path, exc_info=True)


class ArtifactReader:
    """Reads an artifact file and splits it into header, AAD and ciphertext."""

    def read(self, source: Union[str, Path]) -> ParsedArtifact:
        """
        Raises:
            IoError: The file cannot be read.
            FormatError: The header is invalid (checked before any crypto).
        """
        source = Path(source)
        try:
            data = source.read_bytes()
        except OSError as e:
            raise IoError(f"Could not read backup {source}: {e}") from e
        return self.parse(data)

    @staticmethod
    def parse(data: bytes) -> ParsedArtifact:
        header = ArtifactHeader.unpack(data)
        return ParsedArtifact(
            header=header,
            header_bytes=bytes(data[:HEADER_SIZE]),
            ciphertext=bytes(data[HEADER_SIZE:]),
        )

