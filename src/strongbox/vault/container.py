"""Vault container format.

Single file, little-endian, fixed order:

    magic         4 bytes   b"SBX1"
    version       1 byte
    kdf_memory    4 bytes   u32 (KiB)
    kdf_time      4 bytes   u32
    kdf_parallel  1 byte    u8
    salt         16 bytes
    nonce        12 bytes
    ciphertext+tag          remaining

The header (magic through salt) is stored in the clear so the key can be
derived before decryption, and its encoded bytes are the associated data
of the cipher, so editing any header field breaks authentication.
"""

import struct
from dataclasses import dataclass
from typing import Tuple

from .cipher import NONCE_LENGTH, TAG_LENGTH
from .exceptions import InvalidParameters, MalformedContainer, UnsupportedVersion
from .kdf import SALT_LENGTH, KdfParams

MAGIC = b"SBX1"
FORMAT_VERSION = 1
SUPPORTED_VERSIONS = (FORMAT_VERSION,)

# magic, version, kdf_memory, kdf_time, kdf_parallel
_FIXED = struct.Struct("<4sBIIB")

HEADER_LENGTH = _FIXED.size + SALT_LENGTH
MIN_CONTAINER_LENGTH = HEADER_LENGTH + NONCE_LENGTH + TAG_LENGTH


@dataclass(frozen=True)
class VaultHeader:
    """Unencrypted container header."""
    kdf_params: KdfParams
    salt: bytes
    version: int = FORMAT_VERSION

    def to_bytes(self) -> bytes:
        """Encode the header; this is also the cipher's associated data."""
        if len(self.salt) != SALT_LENGTH:
            raise InvalidParameters(f"salt must be {SALT_LENGTH} bytes")
        params = self.kdf_params.validate()
        return _FIXED.pack(
            MAGIC,
            self.version,
            params.memory_cost,
            params.time_cost,
            params.parallelism,
        ) + bytes(self.salt)


def read_header(data: bytes) -> VaultHeader:
    """
    Parse only the header of a container.

    Raises:
        MalformedContainer: Too short, bad magic or out-of-range KDF fields
        UnsupportedVersion: Unknown format version
    """
    # Checked before the length: another version may use another layout
    if len(data) > 4 and data[:4] == MAGIC and data[4] not in SUPPORTED_VERSIONS:
        raise UnsupportedVersion(data[4])
    if len(data) < HEADER_LENGTH:
        raise MalformedContainer("Container too short to hold a header")

    magic, version, memory, time_cost, parallel = _FIXED.unpack_from(data, 0)
    if magic != MAGIC:
        raise MalformedContainer("Not a vault container (magic bytes mismatch)")
    try:
        params = KdfParams(
            memory_cost=memory, time_cost=time_cost, parallelism=parallel
        ).validate()
    except InvalidParameters as e:
        raise MalformedContainer(f"Invalid KDF parameters in header: {e}") from None

    salt = bytes(data[_FIXED.size:HEADER_LENGTH])
    return VaultHeader(kdf_params=params, salt=salt, version=version)


def encode(header: VaultHeader, nonce: bytes, ciphertext_with_tag: bytes) -> bytes:
    """Assemble a container: header || nonce || ciphertext+tag."""
    if len(nonce) != NONCE_LENGTH:
        raise InvalidParameters(f"nonce must be {NONCE_LENGTH} bytes")
    if len(ciphertext_with_tag) < TAG_LENGTH:
        raise InvalidParameters("ciphertext is shorter than the authentication tag")
    return header.to_bytes() + bytes(nonce) + bytes(ciphertext_with_tag)


def decode(data: bytes) -> Tuple[VaultHeader, bytes, bytes]:
    """
    Split a container into (header, nonce, ciphertext_with_tag).

    Raises:
        MalformedContainer: Length, magic or field checks failed
        UnsupportedVersion: Unknown format version
    """
    header = read_header(data)
    if len(data) < MIN_CONTAINER_LENGTH:
        raise MalformedContainer("Container truncated: missing nonce or tag")
    nonce = bytes(data[HEADER_LENGTH:HEADER_LENGTH + NONCE_LENGTH])
    ciphertext = bytes(data[HEADER_LENGTH + NONCE_LENGTH:])
    return header, nonce, ciphertext
