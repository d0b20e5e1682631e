# Vault - Unlocked Session
#
# Handle returned by unlock_vault(). Owns the derived key, the decrypted
# entry store and the inter-process lock until close(). Every operation
# raises VaultLocked once the session is closed.

import logging
from typing import TYPE_CHECKING, Optional, Set

from ..core.audit_log import EventType
from . import container
from .cipher import AuthenticatedCipher
from .entry_store import Entry, EntryListing, EntryStore, EntryView
from .exceptions import InvalidEntry, VaultLocked
from .file_lock import VaultFileLock
from .kdf import KdfParams, derive_key, generate_salt
from .secure_memory import SecretBuffer

if TYPE_CHECKING:
    from .vault_manager import VaultManager

logger = logging.getLogger(__name__)

_UNSET = object()


class VaultSession:
    """
    An unlocked vault.

    Changes are held in memory until save(), which re-encrypts the whole
    store under a fresh nonce and atomically replaces the file.

        with unlock_vault("v.bin", password) as session:
            session.add_entry("github", "alice", "s3cr3t!")
            session.save()
    """

    def __init__(
        self,
        manager: "VaultManager",
        header: container.VaultHeader,
        key: SecretBuffer,
        store: EntryStore,
        file_lock: VaultFileLock,
        used_nonces: Optional[Set[bytes]] = None,
    ):
        self._manager = manager
        self._header = header
        self._key = key
        self._store = store
        self._file_lock = file_lock
        self._used_nonces: Set[bytes] = set(used_nonces or ())
        self._dirty = False
        self._closed = False

    # ── State ────────────────────────────────────────────────────────

    @property
    def path(self):
        return self._manager.vault_path

    @property
    def is_open(self) -> bool:
        return not self._closed

    @property
    def has_unsaved_changes(self) -> bool:
        return self._dirty

    @property
    def kdf_params(self) -> KdfParams:
        return self._header.kdf_params

    def _require_open(self) -> None:
        if self._closed:
            raise VaultLocked()

    def _audit(self, event_type: EventType, message: str, **details) -> None:
        details.setdefault("path", str(self.path))
        self._manager.logger.log_vault_event(event_type, message, details=details)

    # ── Entries ──────────────────────────────────────────────────────

    def add_entry(
        self,
        name: str,
        username: Optional[str] = None,
        password: Optional[str] = None,
        notes: Optional[str] = None,
        url: Optional[str] = None,
    ) -> EntryView:
        """
        Add a credential. Raises DuplicateName if name is taken (the
        existing entry is left untouched) and InvalidEntry for a missing
        name or password.
        """
        self._require_open()
        if password is None:
            raise InvalidEntry("Entry password is required")

        view = self._store.add(
            Entry(name=name, username=username, password=password, notes=notes, url=url)
        )
        self._dirty = True
        self._audit(EventType.VAULT_ENTRY_ADDED, f"Entry added: {name}", entry_id=view.id)
        return view

    def get_entry(self, name: str) -> EntryView:
        """Return the named entry (with password) or raise EntryNotFound."""
        self._require_open()
        view = self._store.get(name)
        self._audit(EventType.VAULT_ENTRY_ACCESSED, f"Entry accessed: {name}", entry_id=view.id)
        return view

    def list_entries(self) -> EntryListing:
        """
        Lazy, restartable listing of entries in insertion order.

        Iterating or measuring the listing after close() raises VaultLocked.
        """
        self._require_open()
        return self._store.list(guard=self._require_open)

    def update_entry(
        self,
        name: str,
        *,
        new_name=_UNSET,
        username=_UNSET,
        password=_UNSET,
        notes=_UNSET,
        url=_UNSET,
    ) -> EntryView:
        """
        Change fields of an existing entry. Omitted fields keep their
        value; pass None to clear an optional field.
        """
        self._require_open()
        changes = {
            "name": new_name,
            "username": username,
            "password": password,
            "notes": notes,
            "url": url,
        }

        def mutator(entry: Entry) -> None:
            for attr, value in changes.items():
                if value is not _UNSET:
                    setattr(entry, attr, value)

        view = self._store.update(name, mutator)
        self._dirty = True
        self._audit(
            EventType.VAULT_ENTRY_UPDATED,
            f"Entry updated: {view.name}",
            entry_id=view.id,
            fields=sorted(k for k, v in changes.items() if v is not _UNSET),
        )
        return view

    def remove_entry(self, name: str) -> None:
        self._require_open()
        self._store.remove(name)
        self._dirty = True
        self._audit(EventType.VAULT_ENTRY_REMOVED, f"Entry removed: {name}")

    # ── Persistence ──────────────────────────────────────────────────

    def _fresh_nonce(self) -> bytes:
        nonce = AuthenticatedCipher.generate_nonce()
        while nonce in self._used_nonces:
            nonce = AuthenticatedCipher.generate_nonce()
        self._used_nonces.add(nonce)
        return nonce

    def save(self) -> None:
        """
        Re-encrypt the whole store under a fresh nonce and atomically
        replace the vault file.

        Raises:
            VaultLocked: Session already closed
            VaultIOError: Write failed; the previous file is intact
        """
        self._require_open()
        nonce = self._fresh_nonce()
        associated_data = self._header.to_bytes()

        with self._store.to_json() as plaintext:
            ciphertext = AuthenticatedCipher.seal(
                self._key.view(), nonce, associated_data, plaintext.view()
            )

        self._manager._write_atomic(container.encode(self._header, nonce, ciphertext))
        self._dirty = False
        self._audit(EventType.VAULT_SAVED, "Vault saved", entries=len(self._store))

    def rekey(self, new_master_password: str, kdf_params: Optional[KdfParams] = None) -> None:
        """
        Re-derive the key from a new master password (and optionally new
        KDF parameters) under a fresh salt, then save immediately.

        On failure the session keeps the old key and the file is unchanged.
        """
        self._require_open()
        params = (kdf_params or self._header.kdf_params).validate()
        new_header = container.VaultHeader(kdf_params=params, salt=generate_salt())
        new_key = derive_key(new_master_password, new_header.salt, params)

        old_header, old_key, old_nonces = self._header, self._key, self._used_nonces
        self._header, self._key, self._used_nonces = new_header, new_key, set()
        try:
            self.save()
        except BaseException:
            self._header, self._key, self._used_nonces = old_header, old_key, old_nonces
            new_key.wipe()
            raise

        old_key.wipe()
        self._audit(EventType.VAULT_REKEYED, "Vault re-keyed", kdf_params=params.to_dict())

    # ── Lock ─────────────────────────────────────────────────────────

    def close(self) -> None:
        """Wipe key and entries and release the vault. Idempotent."""
        if self._closed:
            return
        self._closed = True
        if self._dirty:
            logger.warning("Closing %s with unsaved changes; they are discarded", self.path)
        try:
            self._key.wipe()
            self._store.wipe()
        finally:
            self._file_lock.release()
            self._manager._session_closed(self)
        self._audit(EventType.VAULT_LOCKED, "Vault locked")

    lock = close

    def __enter__(self) -> "VaultSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "open" if self.is_open else "closed"
        return f"<VaultSession {self.path} {state}>"
