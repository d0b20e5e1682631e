# Vault - Entry Store
#
# In-memory, decrypted view of the vault: name -> Entry, insertion order
# preserved. Knows nothing about files or keys; the session persists it.

import json
import uuid
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterator, List, Optional

from .exceptions import DuplicateName, EntryNotFound, InvalidEntry, MalformedContainer
from .secure_memory import SecretBuffer

_FIELDS = ("id", "name", "username", "password", "url", "notes", "created_at", "updated_at")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class Entry:
    """One credential record (mutable; only lives inside the store)."""
    name: str
    password: str = field(repr=False)
    username: Optional[str] = None
    url: Optional[str] = None
    notes: Optional[str] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: str = field(default_factory=_now)
    updated_at: str = ""

    def __post_init__(self):
        if not self.updated_at:
            self.updated_at = self.created_at

    def validate(self) -> "Entry":
        if not isinstance(self.name, str) or not self.name:
            raise InvalidEntry("Entry name must be a non-empty string")
        if not isinstance(self.password, str):
            raise InvalidEntry("Entry password must be a string")
        for optional in ("username", "url", "notes"):
            value = getattr(self, optional)
            if value is not None and not isinstance(value, str):
                raise InvalidEntry(f"Entry {optional} must be a string or None")
        for text_field in ("name", "password", "username", "url", "notes"):
            value = getattr(self, text_field)
            if value is None:
                continue
            try:
                value.encode("utf-8")
            except UnicodeEncodeError:
                # Lone surrogates cannot be serialized to the JSON payload
                raise InvalidEntry(f"Entry {text_field} is not valid Unicode text") from None
        return self

    def view(self) -> "EntryView":
        return EntryView(**asdict(self))


@dataclass(frozen=True)
class EntryView:
    """Read-only copy of an entry handed to callers."""
    id: str
    name: str
    password: str = field(repr=False)
    username: Optional[str] = None
    url: Optional[str] = None
    notes: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""

    def to_dict(self, include_password: bool = False) -> Dict[str, Any]:
        data = asdict(self)
        if not include_password:
            data.pop("password")
        return data


class EntryListing:
    """
    Lazy, restartable sequence over a store's entries.

    Each iteration walks the names present when it starts, in insertion
    order, and builds views one at a time. If a guard is given it is called
    before every step, so a listing outliving its session raises instead of
    looking empty.
    """

    def __init__(self, store: "EntryStore", guard: Optional[Callable[[], None]] = None):
        self._store = store
        self._guard = guard

    def _check(self) -> None:
        if self._guard is not None:
            self._guard()

    def __iter__(self) -> Iterator[EntryView]:
        self._check()
        for name in list(self._store._entries):
            self._check()
            entry = self._store._entries.get(name)
            if entry is not None:
                yield entry.view()

    def __len__(self) -> int:
        self._check()
        return len(self._store)

    def __bool__(self) -> bool:
        return len(self) > 0

    def __repr__(self) -> str:
        return f"<EntryListing count={len(self._store)}>"


class EntryStore:
    """Ordered collection of uniquely named entries."""

    def __init__(self, entries: Optional[List[Entry]] = None):
        self._entries: Dict[str, Entry] = {}
        for entry in entries or []:
            self.add(entry)

    def add(self, entry: Entry) -> EntryView:
        """Insert entry; DuplicateName leaves the store untouched."""
        entry.validate()
        if entry.name in self._entries:
            raise DuplicateName(entry.name)
        self._entries[entry.name] = entry
        return entry.view()

    def get(self, name: str) -> EntryView:
        try:
            return self._entries[name].view()
        except KeyError:
            raise EntryNotFound(f"No entry named {name!r}") from None

    def update(self, name: str, mutator: Callable[[Entry], None]) -> EntryView:
        """
        Apply mutator to a copy of the named entry and commit the result.

        The mutator may change any field except id and created_at,
        including the name (a rename keeps the entry's position). Nothing
        is changed if the mutator raises or the result is invalid.
        """
        current = self._entries.get(name)
        if current is None:
            raise EntryNotFound(f"No entry named {name!r}")

        candidate = replace(current)
        mutator(candidate)
        candidate.id = current.id
        candidate.created_at = current.created_at
        candidate.updated_at = _now()
        candidate.validate()

        if candidate.name != name:
            if candidate.name in self._entries:
                raise DuplicateName(candidate.name)
            self._entries = {
                (candidate.name if key == name else key): value
                for key, value in self._entries.items()
            }
        self._entries[candidate.name] = candidate
        return candidate.view()

    def remove(self, name: str) -> None:
        try:
            del self._entries[name]
        except KeyError:
            raise EntryNotFound(f"No entry named {name!r}") from None

    def list(self, guard: Optional[Callable[[], None]] = None) -> EntryListing:
        return EntryListing(self, guard)

    def names(self) -> List[str]:
        return list(self._entries)

    def wipe(self) -> None:
        """Drop every entry, blanking the secret fields first."""
        for entry in self._entries.values():
            entry.password = ""
            entry.notes = None
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    # ── Serialization ────────────────────────────────────────────────

    def to_json(self) -> SecretBuffer:
        """Serialize to UTF-8 JSON inside a wipeable buffer."""
        payload = {
            "entries": [
                {key: getattr(entry, key) for key in _FIELDS}
                for entry in self._entries.values()
            ]
        }
        return SecretBuffer(json.dumps(payload, ensure_ascii=False).encode("utf-8"))

    @classmethod
    def from_json(cls, data) -> "EntryStore":
        """
        Rebuild a store from to_json() output.

        Raises:
            MalformedContainer: Payload is not the expected structure
        """
        try:
            payload = json.loads(data)
        except ValueError:
            raise MalformedContainer("Vault payload is not valid JSON") from None

        if not isinstance(payload, dict) or not isinstance(payload.get("entries"), list):
            raise MalformedContainer("Vault payload has no entry list")

        store = cls()
        for raw in payload["entries"]:
            if not isinstance(raw, dict):
                raise MalformedContainer("Vault entry is not an object")
            try:
                entry = Entry(**{key: raw[key] for key in _FIELDS if key in raw})
                store.add(entry)
            except (TypeError, InvalidEntry, DuplicateName) as e:
                raise MalformedContainer(f"Invalid vault entry: {e}") from None
        return store
