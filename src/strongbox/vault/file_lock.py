# Vault - Inter-process Lock
#
# Advisory exclusive lock on a sidecar "<vault>.lock" file. The container
# itself is replaced on every save (new inode), so it cannot carry the
# lock. Non-blocking: contention raises VaultBusy immediately.

import logging
import os
import sys
from pathlib import Path
from typing import IO, Optional, Union

from .exceptions import VaultBusy, VaultIOError

logger = logging.getLogger(__name__)

LOCK_SUFFIX = ".lock"

if sys.platform == "win32":
    import msvcrt
else:
    import fcntl


def lock_path_for(vault_path: Union[str, Path]) -> Path:
    vault_path = Path(vault_path)
    return vault_path.with_name(vault_path.name + LOCK_SUFFIX)


class VaultFileLock:
    """
    Exclusive advisory lock guarding one vault file.

    Usage:
        with VaultFileLock(path):
            ...  # no other process can unlock or save this vault
    """

    def __init__(self, vault_path: Union[str, Path]):
        self.vault_path = Path(vault_path)
        self.lock_path = lock_path_for(self.vault_path)
        self._handle: Optional[IO[bytes]] = None

    @property
    def is_held(self) -> bool:
        return self._handle is not None

    def acquire(self) -> "VaultFileLock":
        if self._handle is not None:
            return self

        try:
            handle = open(self.lock_path, "a+b")
        except OSError as e:
            raise VaultIOError(f"Cannot open lock file {self.lock_path}: {e.strerror}") from e

        try:
            if sys.platform == "win32":
                handle.seek(0)
                msvcrt.locking(handle.fileno(), msvcrt.LK_NBLCK, 1)
            else:
                fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError as e:
            handle.close()
            raise VaultBusy(f"Vault is in use by another process: {self.vault_path}") from e

        try:
            os.chmod(self.lock_path, 0o600)
        except OSError:
            logger.debug("Could not restrict permissions on %s", self.lock_path)

        self._handle = handle
        logger.debug("Acquired vault lock %s", self.lock_path)
        return self

    def release(self) -> None:
        """Release the lock. The lock file is left in place."""
        handle, self._handle = self._handle, None
        if handle is None:
            return
        try:
            if sys.platform == "win32":
                handle.seek(0)
                msvcrt.locking(handle.fileno(), msvcrt.LK_UNLCK, 1)
            else:
                fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
        except OSError:
            logger.warning("Failed to unlock %s; closing handle", self.lock_path)
        finally:
            handle.close()
        logger.debug("Released vault lock %s", self.lock_path)

    def __enter__(self) -> "VaultFileLock":
        return self.acquire()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()
