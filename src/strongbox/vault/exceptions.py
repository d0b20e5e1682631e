"""
Vault Exception Classes

Every failure the engine reports is a subclass of VaultError. Decryption
problems are collapsed into WrongPasswordOrCorrupted before they leave
the engine; AuthenticationFailed never reaches callers of unlock_vault().
"""


class VaultError(Exception):
    """Base exception for vault operations"""
    pass


class AlreadyExists(VaultError):
    """Raised when creating a vault at a path that already holds one"""
    pass


class NotFound(VaultError):
    """Raised when a vault file or an entry does not exist"""
    pass


class VaultNotFound(NotFound):
    """Raised when no container exists at the given path"""
    pass


class EntryNotFound(NotFound, KeyError):
    """Raised when an entry name is not present in the store"""

    def __str__(self):
        return Exception.__str__(self)


class WrongPasswordOrCorrupted(VaultError):
    """Raised when a vault cannot be decrypted.

    Deliberately does not say whether the password was wrong or the
    file was tampered with.
    """

    def __init__(self, message: str = "Wrong master password or corrupted vault"):
        super().__init__(message)


class MalformedContainer(VaultError):
    """Raised when container bytes fail length, magic or field checks"""
    pass


class UnsupportedVersion(VaultError):
    """Raised when the container format version is unknown"""

    def __init__(self, version: int):
        super().__init__(f"Unsupported vault format version: {version}")
        self.version = version


class InvalidParameters(VaultError, ValueError):
    """Raised when KDF or cipher parameters are out of range"""
    pass


class InvalidEntry(VaultError, ValueError):
    """Raised when an entry field fails validation"""
    pass


class DuplicateName(VaultError):
    """Raised when adding an entry whose name is already taken"""

    def __init__(self, name: str):
        super().__init__(f"An entry named {name!r} already exists")
        self.name = name


class VaultLocked(VaultError):
    """Raised when a session operation is attempted after lock/close"""

    def __init__(self, message: str = "Vault is locked. Unlock vault first."):
        super().__init__(message)


class VaultBusy(VaultError):
    """Raised when another process holds the vault lock"""
    pass


class AlreadyUnlocked(VaultError):
    """Raised when this process already has an open session on the path"""
    pass


class VaultIOError(VaultError):
    """Raised when reading or writing the vault file fails.

    The originating OSError is chained as __cause__.
    """
    pass


class AuthenticationFailed(VaultError):
    """Raised by the cipher when the tag does not verify"""
    pass
