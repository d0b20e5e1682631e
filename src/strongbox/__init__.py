# Strongbox - Local Secret Vault
#
# A master password unlocks a single encrypted file of named credentials.
# No plaintext secret is ever written to disk.

__version__ = "0.1.0"
__description__ = "Local-only encrypted credential vault engine"

from .vault import (
    DEFAULT_KDF_PARAMS,
    AlreadyExists,
    AlreadyUnlocked,
    DuplicateName,
    EntryNotFound,
    EntryView,
    InvalidEntry,
    InvalidParameters,
    KdfParams,
    MalformedContainer,
    NotFound,
    UnsupportedVersion,
    VaultBusy,
    VaultError,
    VaultIOError,
    VaultLocked,
    VaultManager,
    VaultNotFound,
    VaultSession,
    WrongPasswordOrCorrupted,
    create_vault,
    read_vault_info,
    unlock_vault,
)

__all__ = [
    "__version__",
    "create_vault",
    "unlock_vault",
    "read_vault_info",
    "VaultManager",
    "VaultSession",
    "EntryView",
    "KdfParams",
    "DEFAULT_KDF_PARAMS",
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
]
