# Vault Manager - Encrypted Credential Vault
#
# Single-file vault: Argon2id key derivation, ChaCha20-Poly1305 over the
# JSON entry list, header bound as associated data.
# Lifecycle: ABSENT -> create() -> CREATED -> unlock() -> UNLOCKED
#            -> session.close() / lock() / process exit -> CREATED

import atexit
import logging
import os
import tempfile
import threading
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, Optional, Union

from ..core.audit_log import AuditLogger, EventSeverity, EventType, get_audit_logger
from . import container
from .cipher import AuthenticatedCipher
from .entry_store import EntryStore
from .exceptions import (
    AlreadyExists,
    AlreadyUnlocked,
    AuthenticationFailed,
    InvalidParameters,
    VaultBusy,
    VaultIOError,
    VaultNotFound,
    WrongPasswordOrCorrupted,
)
from .file_lock import VaultFileLock
from .kdf import KdfParams, derive_key, generate_salt
from .secure_memory import SecretBuffer
from .session import VaultSession

logger = logging.getLogger(__name__)

PathLike = Union[str, "os.PathLike[str]"]

# Open sessions in this process, keyed by resolved vault path
_sessions_lock = threading.Lock()
_open_sessions: Dict[str, Optional[VaultSession]] = {}


def _session_key(path: Path) -> str:
    return os.path.normcase(str(path.resolve()))


def close_all_sessions() -> None:
    """Close every open session in this process (registered with atexit)."""
    with _sessions_lock:
        sessions = [s for s in _open_sessions.values() if s is not None]
    for session in sessions:
        try:
            session.close()
        except Exception:
            logger.exception("Failed to close vault session %s", session.path)


atexit.register(close_all_sessions)


class VaultState(str, Enum):
    ABSENT = "absent"
    CREATED = "created"
    UNLOCKED = "unlocked"


@dataclass(frozen=True)
class VaultInfo:
    """Public metadata of a vault file (readable without the password)."""
    path: Path
    version: int
    kdf_params: KdfParams
    size_bytes: int


class VaultManager:
    """
    Creates, unlocks and persists one vault file.

    Security:
    - Key derived with Argon2id from the master password and a per-vault salt
    - Whole entry list encrypted with ChaCha20-Poly1305, fresh nonce per save
    - Header (version, KDF parameters, salt) authenticated as associated data
    - Wrong password and tampering reported as one error
    - Master password and key never stored
    - Audit logging for all vault access (no secrets in the log)
    """

    def __init__(
        self,
        vault_path: PathLike,
        config=None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        """
        Args:
            vault_path: Path to the vault file (resolved by the caller)
            config: VaultConfig; loaded from the environment if None
            audit_logger: Defaults to the process-wide audit logger
        """
        if config is None:
            from ..core.config import load_config

            config = load_config()

        self.vault_path = Path(vault_path)
        self.config = config
        self.logger = audit_logger or get_audit_logger()
        self._session: Optional[VaultSession] = None

    # ── State ────────────────────────────────────────────────────────

    def exists(self) -> bool:
        """True if a container is present (0-byte files are not valid vaults)."""
        try:
            return self.vault_path.is_file() and self.vault_path.stat().st_size > 0
        except OSError:
            return False

    @property
    def state(self) -> VaultState:
        if self._session is not None and self._session.is_open:
            return VaultState.UNLOCKED
        return VaultState.CREATED if self.exists() else VaultState.ABSENT

    @property
    def session(self) -> Optional[VaultSession]:
        if self._session is not None and self._session.is_open:
            return self._session
        return None

    def info(self) -> VaultInfo:
        """Read header metadata without decrypting."""
        data = self._read()
        header = container.read_header(data)
        return VaultInfo(
            path=self.vault_path,
            version=header.version,
            kdf_params=header.kdf_params,
            size_bytes=len(data),
        )

    # ── Create ───────────────────────────────────────────────────────

    def create(self, master_password: str, kdf_params: Optional[KdfParams] = None) -> None:
        """
        Create a new vault holding an empty entry list.

        Args:
            master_password: User's master password
            kdf_params: Cost profile (default: config.kdf_params)

        Raises:
            AlreadyExists: A container is already present
            InvalidParameters: KDF parameters out of range
            VaultBusy: Another process holds the vault lock
            VaultIOError: The file could not be written
        """
        params = (kdf_params or self.config.kdf_params).validate()

        if self.exists():
            raise AlreadyExists(f"Vault already exists: {self.vault_path}")

        try:
            self.vault_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise VaultIOError(f"Cannot create vault directory: {e.strerror}") from e

        with VaultFileLock(self.vault_path):
            # Re-check under the lock; another process may have won the race
            if self.exists():
                raise AlreadyExists(f"Vault already exists: {self.vault_path}")

            header = container.VaultHeader(kdf_params=params, salt=generate_salt())
            nonce = AuthenticatedCipher.generate_nonce()
            with derive_key(master_password, header.salt, params) as key, \
                    EntryStore().to_json() as plaintext:
                ciphertext = AuthenticatedCipher.seal(
                    key.view(), nonce, header.to_bytes(), plaintext.view()
                )
            self._write_atomic(container.encode(header, nonce, ciphertext))

        self.logger.log_event(
            event_type=EventType.VAULT_CREATED,
            severity=EventSeverity.INFO,
            message="Vault initialized with master password",
            details={"path": str(self.vault_path), "kdf_params": params.to_dict()},
        )

    # ── Unlock / lock ────────────────────────────────────────────────

    def unlock(self, master_password: str) -> VaultSession:
        """
        Decrypt the vault and return a session handle.

        Raises:
            VaultNotFound: No container at the path
            AlreadyUnlocked: This process already has a session on the path
            VaultBusy: Another process holds the vault lock
            MalformedContainer / UnsupportedVersion: Unreadable container
            WrongPasswordOrCorrupted: Authentication or key derivation failed
            VaultIOError: The file could not be read
        """
        if not self.exists():
            raise VaultNotFound(f"Vault does not exist: {self.vault_path}")

        session_key = _session_key(self.vault_path)
        with _sessions_lock:
            if session_key in _open_sessions:
                raise AlreadyUnlocked(f"Vault is already unlocked in this process: {self.vault_path}")
            _open_sessions[session_key] = None  # reserved while deriving

        file_lock = VaultFileLock(self.vault_path)
        key: Optional[SecretBuffer] = None
        try:
            try:
                file_lock.acquire()
            except VaultBusy:
                self.logger.log_event(
                    event_type=EventType.VAULT_UNLOCK_FAILED,
                    severity=EventSeverity.ALERT,
                    message="Vault unlock refused: locked by another process",
                    details={"path": str(self.vault_path)},
                )
                raise

            header, nonce, ciphertext = container.decode(self._read())
            try:
                key = derive_key(master_password, header.salt, header.kdf_params)
            except InvalidParameters as e:
                # Header costs are not authenticated yet; a forged kdf_memory
                # that Argon2 cannot allocate is reported like any other corruption
                self.logger.log_event(
                    event_type=EventType.VAULT_UNLOCK_FAILED,
                    severity=EventSeverity.INVESTIGATE,
                    message="Vault unlock failed: key derivation failed",
                    details={"path": str(self.vault_path), "kdf_params": header.kdf_params.to_dict()},
                )
                raise WrongPasswordOrCorrupted() from e
            try:
                plaintext = AuthenticatedCipher.open(
                    key.view(), nonce, header.to_bytes(), ciphertext
                )
            except AuthenticationFailed:
                self.logger.log_event(
                    event_type=EventType.VAULT_UNLOCK_FAILED,
                    severity=EventSeverity.INVESTIGATE,
                    message="Vault unlock failed: wrong password or corrupted vault",
                    details={"path": str(self.vault_path)},
                )
                raise WrongPasswordOrCorrupted() from None

            with SecretBuffer.take(plaintext) as buf:
                store = EntryStore.from_json(buf.view())

            session = VaultSession(
                manager=self,
                header=header,
                key=key,
                store=store,
                file_lock=file_lock,
                used_nonces={nonce},
            )
        except BaseException:
            if key is not None:
                key.wipe()
            file_lock.release()
            with _sessions_lock:
                _open_sessions.pop(session_key, None)
            raise

        with _sessions_lock:
            _open_sessions[session_key] = session
        self._session = session

        self.logger.log_event(
            event_type=EventType.VAULT_UNLOCKED,
            severity=EventSeverity.INFO,
            message="Vault unlocked successfully",
            details={"path": str(self.vault_path), "entries": len(store)},
        )
        return session

    def lock(self) -> None:
        """Close the session opened through this manager, if any."""
        if self._session is not None:
            self._session.close()

    def _session_closed(self, session: VaultSession) -> None:
        session_key = _session_key(self.vault_path)
        with _sessions_lock:
            if _open_sessions.get(session_key) is session:
                del _open_sessions[session_key]
        if self._session is session:
            self._session = None

    # ── File I/O ─────────────────────────────────────────────────────

    def _read(self) -> bytes:
        try:
            with open(self.vault_path, "rb") as fh:
                return fh.read()
        except FileNotFoundError:
            raise VaultNotFound(f"Vault does not exist: {self.vault_path}") from None
        except OSError as e:
            raise VaultIOError(f"Cannot read vault: {e.strerror}") from e

    def _write_atomic(self, data: bytes) -> None:
        """
        Write data to a temp file in the vault's directory, then replace
        the vault with it. A failure before the replace leaves the old file
        untouched and removes the temp file.
        """
        directory = self.vault_path.parent
        try:
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.vault_path.name}.", suffix=".tmp", dir=directory
            )
        except OSError as e:
            self._log_write_failure(e)
            raise VaultIOError(f"Cannot create temporary file: {e.strerror}") from e

        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(data)
                fh.flush()
                if self.config.fsync:
                    os.fsync(fh.fileno())
            os.replace(tmp_name, self.vault_path)
        except BaseException as e:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            except OSError:
                logger.warning("Could not remove temporary file %s", tmp_name)
            if isinstance(e, OSError):
                self._log_write_failure(e)
                raise VaultIOError(f"Failed to write vault: {e.strerror or e}") from e
            raise

        if self.config.fsync:
            self._fsync_directory(directory)
        logger.debug("Wrote %d bytes to %s", len(data), self.vault_path)

    @staticmethod
    def _fsync_directory(directory: Path) -> None:
        if os.name != "posix":
            return
        try:
            dir_fd = os.open(directory, os.O_RDONLY)
        except OSError:
            return
        try:
            os.fsync(dir_fd)
        except OSError:
            logger.debug("Directory fsync not supported for %s", directory)
        finally:
            os.close(dir_fd)

    def _log_write_failure(self, error: OSError) -> None:
        self.logger.log_event(
            event_type=EventType.VAULT_ERROR,
            severity=EventSeverity.CRITICAL,
            message=f"Failed to write vault: {error.strerror or error}",
            details={"path": str(self.vault_path)},
        )


# ── Engine API ───────────────────────────────────────────────────────


def create_vault(
    path: PathLike,
    master_password: str,
    kdf_params: Optional[KdfParams] = None,
    config=None,
) -> None:
    """Create a new, empty vault at path."""
    VaultManager(path, config=config).create(master_password, kdf_params)


def unlock_vault(path: PathLike, master_password: str, config=None) -> VaultSession:
    """Unlock the vault at path and return its session handle."""
    return VaultManager(path, config=config).unlock(master_password)


def read_vault_info(path: PathLike) -> VaultInfo:
    """Read a vault's header metadata without the password."""
    return VaultManager(path).info()

