# Vault Module - Local Secret Vault Engine
#
# Single encrypted file per vault
# Master password with Argon2id key derivation, ChaCha20-Poly1305 payload

from .container import VaultHeader
from .entry_store import EntryListing, EntryStore, EntryView
from .exceptions import (
    AlreadyExists,
    AlreadyUnlocked,
    AuthenticationFailed,
    DuplicateName,
    EntryNotFound,
    InvalidEntry,
    InvalidParameters,
    MalformedContainer,
    NotFound,
    UnsupportedVersion,
    VaultBusy,
    VaultError,
    VaultIOError,
    VaultLocked,
    VaultNotFound,
    WrongPasswordOrCorrupted,
)
from .kdf import DEFAULT_KDF_PARAMS, KdfParams
from .session import VaultSession
from .vault_manager import (
    VaultInfo,
    VaultManager,
    VaultState,
    create_vault,
    read_vault_info,
    unlock_vault,
)

__all__ = [
    # Engine API
    "create_vault",
    "unlock_vault",
    "read_vault_info",
    "VaultManager",
    "VaultSession",
    "VaultState",
    "VaultInfo",
    "VaultHeader",
    "KdfParams",
    "DEFAULT_KDF_PARAMS",
    "EntryStore",
    "EntryView",
    "EntryListing",
    # Errors
    "VaultError",
    "AlreadyExists",
    "NotFound",
    "VaultNotFound",
    "EntryNotFound",
    "WrongPasswordOrCorrupted",
    "MalformedContainer",
    "UnsupportedVersion",
    "InvalidParameters",
    "InvalidEntry",
    "DuplicateName",
    "VaultLocked",
    "VaultBusy",
    "AlreadyUnlocked",
    "VaultIOError",
    "AuthenticationFailed",
]
