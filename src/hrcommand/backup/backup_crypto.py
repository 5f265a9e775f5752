"""Backup encryption using AES-256-GCM with Argon2id key derivation.

- Argon2id (memory-hard) turns the password + a fresh 16-byte salt into a
  256-bit key. Its cost parameters are stored in the artifact header, so
  raising the defaults later never orphans older backups.
- AES-256-GCM encrypts the compressed snapshot under a fresh 12-byte nonce.
  The packed header is passed as associated data: altering any header byte
  invalidates the 16-byte tag.

Keys are returned as bytearrays so callers can scrub() them once done.
"""

import logging
import os
import struct
from dataclasses import dataclass
from typing import Union

from cryptography.exceptions import InvalidTag, UnsupportedAlgorithm
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.argon2 import Argon2id

from .errors import AuthenticationError, FormatError, KeyDerivationError

logger = logging.getLogger(__name__)

KEY_LENGTH = 32    # 256 bits for AES-256
SALT_LENGTH = 16   # 128-bit salt
NONCE_LENGTH = 12  # 96-bit nonce for GCM
TAG_LENGTH = 16    # 128-bit GCM tag


@dataclass(frozen=True)
class KdfParams:
    """Argon2id cost parameters, packed into 4 header bytes.

    Layout (big-endian): time_cost u8, memory_cost_mib u16, parallelism u8.

    unpack() rejects an out-of-range block with FormatError before any key
    is derived. A flipped bit that pushes a cost out of bounds is therefore
    reported as a format error, not as an authentication failure; in-range
    changes still fail the tag check because the header is associated data.
    """

    time_cost: int = 2
    memory_cost_mib: int = 19
    parallelism: int = 1

    PACKED_FORMAT = ">BHB"
    PACKED_SIZE = 4

    # Bounds accepted when reading an artifact. A header outside them is
    # rejected before any memory is committed to key derivation.
    MIN_TIME_COST = 1
    MAX_TIME_COST = 64
    MIN_MEMORY_MIB = 1
    MAX_MEMORY_MIB = 4096
    MIN_PARALLELISM = 1
    MAX_PARALLELISM = 16

    def validate(self) -> "KdfParams":
        """Return self, or raise FormatError if any cost is out of bounds."""
        if not self.MIN_TIME_COST <= self.time_cost <= self.MAX_TIME_COST:
            raise FormatError(f"KDF time cost out of range: {self.time_cost}")
        if not self.MIN_MEMORY_MIB <= self.memory_cost_mib <= self.MAX_MEMORY_MIB:
            raise FormatError(f"KDF memory cost out of range: {self.memory_cost_mib} MiB")
        if not self.MIN_PARALLELISM <= self.parallelism <= self.MAX_PARALLELISM:
            raise FormatError(f"KDF parallelism out of range: {self.parallelism}")
        return self

    def pack(self) -> bytes:
        self.validate()
        return struct.pack(
            self.PACKED_FORMAT, self.time_cost, self.memory_cost_mib, self.parallelism
        )

    @classmethod
    def unpack(cls, block: bytes) -> "KdfParams":
        if len(block) != cls.PACKED_SIZE:
            raise FormatError("KDF parameter block has the wrong size.")
        time_cost, memory_cost_mib, parallelism = struct.unpack(cls.PACKED_FORMAT, block)
        return cls(time_cost, memory_cost_mib, parallelism).validate()

    def to_dict(self) -> dict:
        return {
            "time_cost": self.time_cost,
            "memory_cost_mib": self.memory_cost_mib,
            "parallelism": self.parallelism,
        }


class KeyDeriver:
    """Derive the 256-bit backup key from a password with Argon2id."""

    @staticmethod
    def derive(password: str, salt: bytes, params: KdfParams) -> bytearray:
        """Derive a key. A wrong password is not detected here.

        Raises:
            KeyDerivationError: Not enough memory, or this OpenSSL build
                does not provide Argon2id.
        """
        params.validate()
        try:
            kdf = Argon2id(
                salt=salt,
                length=KEY_LENGTH,
                iterations=params.time_cost,
                lanes=params.parallelism,
                memory_cost=params.memory_cost_mib * 1024,  # KiB
            )
            return bytearray(kdf.derive(password.encode("utf-8")))
        except MemoryError as e:
            raise KeyDerivationError("Not enough memory to derive the backup key.") from e
        except UnsupportedAlgorithm as e:
            raise KeyDerivationError("Argon2id is not available in this cryptography build.") from e


class BackupCrypto:
    """AES-256-GCM encryption/decryption of compressed snapshots."""

    @staticmethod
    def generate_salt() -> bytes:
        return os.urandom(SALT_LENGTH)

    @staticmethod
    def generate_nonce() -> bytes:
        return os.urandom(NONCE_LENGTH)

    @staticmethod
    def encrypt(key: Union[bytes, bytearray], nonce: bytes, plaintext: bytes, aad: bytes) -> bytes:
        """Encrypt and authenticate. Returns ciphertext with the tag appended."""
        return AESGCM(key).encrypt(nonce, plaintext, aad)

    @staticmethod
    def decrypt(key: Union[bytes, bytearray], nonce: bytes, ciphertext: bytes, aad: bytes) -> bytes:
        """Verify the tag and decrypt.

        Raises:
            AuthenticationError: Wrong password, or ciphertext/header altered.
                No plaintext is produced on this path.
        """
        try:
            return AESGCM(key).decrypt(nonce, ciphertext, aad)
        except InvalidTag:
            raise AuthenticationError() from None


def scrub(buffer) -> None:
    """Overwrite a mutable buffer with zeros (best effort)."""
    if isinstance(buffer, bytearray):
        buffer[:] = bytes(len(buffer))
