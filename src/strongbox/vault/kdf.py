# Vault - Key Derivation
#
# Master password + salt + KDF parameters -> 256-bit key (Argon2id).
# The parameters travel in the container header, so a vault stays
# decryptable after the defaults below are raised.

import os
from dataclasses import dataclass
from typing import Union

from argon2.exceptions import HashingError
from argon2.low_level import ARGON2_VERSION, Type, hash_secret_raw

from .exceptions import InvalidParameters
from .secure_memory import SecretBuffer

KEY_LENGTH = 32  # 256 bits for ChaCha20-Poly1305
SALT_LENGTH = 16  # 128-bit salt, unique per vault

# Accepted parameter ranges. The header stores parallelism in one byte
# and memory/time as u32.
MIN_TIME_COST = 1
MAX_TIME_COST = 64
MIN_PARALLELISM = 1
MAX_PARALLELISM = 255
MAX_MEMORY_COST = 4 * 1024 * 1024  # KiB (4 GiB)


@dataclass(frozen=True)
class KdfParams:
    """
    Argon2id cost profile.

    Attributes:
        memory_cost: Memory in KiB (at least 8 * parallelism)
        time_cost: Number of passes over memory
        parallelism: Number of lanes
    """
    memory_cost: int = 64 * 1024
    time_cost: int = 3
    parallelism: int = 1

    def validate(self) -> "KdfParams":
        """Return self, or raise InvalidParameters if any cost is out of range."""
        for field_name in ("memory_cost", "time_cost", "parallelism"):
            value = getattr(self, field_name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise InvalidParameters(f"{field_name} must be an integer")

        if not MIN_PARALLELISM <= self.parallelism <= MAX_PARALLELISM:
            raise InvalidParameters(
                f"parallelism must be between {MIN_PARALLELISM} and {MAX_PARALLELISM}"
            )
        if not MIN_TIME_COST <= self.time_cost <= MAX_TIME_COST:
            raise InvalidParameters(
                f"time_cost must be between {MIN_TIME_COST} and {MAX_TIME_COST}"
            )
        min_memory = 8 * self.parallelism
        if not min_memory <= self.memory_cost <= MAX_MEMORY_COST:
            raise InvalidParameters(
                f"memory_cost must be between {min_memory} and {MAX_MEMORY_COST} KiB"
            )
        return self

    def to_dict(self) -> dict:
        return {
            "memory_cost": self.memory_cost,
            "time_cost": self.time_cost,
            "parallelism": self.parallelism,
        }


DEFAULT_KDF_PARAMS = KdfParams()


def generate_salt() -> bytes:
    """Generate cryptographically random salt."""
    return os.urandom(SALT_LENGTH)


def derive_key(
    master_password: Union[str, bytes],
    salt: bytes,
    params: KdfParams = DEFAULT_KDF_PARAMS,
) -> SecretBuffer:
    """
    Derive the vault key from the master password using Argon2id.

    Deterministic: the same password, salt and parameters always give the
    same key. A wrong password is not detected here; it yields a different
    key and fails authentication later.

    Args:
        master_password: User's master password (str is UTF-8 encoded)
        salt: Per-vault random salt (SALT_LENGTH bytes)
        params: Argon2id cost profile

    Returns:
        SecretBuffer holding KEY_LENGTH bytes; wipe it when done

    Raises:
        InvalidParameters: Out-of-range costs, a bad salt length, a password
            that is not encodable as UTF-8, or Argon2 failing (e.g. it could
            not allocate memory_cost)
    """
    params.validate()
    if len(salt) != SALT_LENGTH:
        raise InvalidParameters(f"salt must be {SALT_LENGTH} bytes")

    if isinstance(master_password, str):
        try:
            secret = master_password.encode("utf-8")
        except UnicodeEncodeError:
            raise InvalidParameters("master password is not valid Unicode text") from None
    else:
        secret = bytes(master_password)

    try:
        raw = hash_secret_raw(
            secret=secret,
            salt=bytes(salt),
            time_cost=params.time_cost,
            memory_cost=params.memory_cost,
            parallelism=params.parallelism,
            hash_len=KEY_LENGTH,
            type=Type.ID,
            version=ARGON2_VERSION,
        )
    except HashingError as e:
        raise InvalidParameters(f"Key derivation rejected parameters: {e}") from e

    return SecretBuffer(raw)
