# Vault - Secret Memory Handling
#
# Key material and decrypted plaintext live in bytearrays that are
# overwritten before they are released. Python may still hold transient
# immutable copies (str passwords, bytes returned by C extensions), so
# this is best-effort scrubbing, not a guarantee.

import ctypes
from typing import Optional, Union

BytesLike = Union[bytes, bytearray, memoryview]


def wipe(buf: Optional[bytearray]) -> None:
    """Overwrite a bytearray with zeros in place."""
    if not buf:
        return
    length = len(buf)
    try:
        ctypes.memset(ctypes.addressof(ctypes.c_char.from_buffer(buf)), 0, length)
    except (TypeError, ValueError, BufferError):
        # ctypes unavailable for this buffer; overwrite through the slice
        buf[:] = bytes(length)


class SecretBuffer:
    """
    Wipeable container for key material and plaintext.

    Use as a context manager so the bytes are zeroed on every exit path:

        with SecretBuffer(derive_key(...)) as key:
            cipher.seal(key.view(), ...)
    """

    __slots__ = ("_data", "_wiped")

    def __init__(self, data: BytesLike = b""):
        self._data = bytearray(data)
        self._wiped = False
        if isinstance(data, bytearray):
            wipe(data)

    @classmethod
    def take(cls, data: bytearray) -> "SecretBuffer":
        """Adopt *data* without copying it."""
        buf = cls()
        buf._data = data
        return buf

    def view(self) -> bytearray:
        """Return the underlying buffer. Do not keep references to it."""
        if self._wiped:
            raise ValueError("SecretBuffer has been wiped")
        return self._data

    def wipe(self) -> None:
        if self._wiped:
            return
        wipe(self._data)
        self._data = bytearray()
        self._wiped = True

    @property
    def wiped(self) -> bool:
        return self._wiped

    def __len__(self) -> int:
        return len(self._data)

    def __enter__(self) -> "SecretBuffer":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.wipe()

    def __del__(self):
        self.wipe()

    def __repr__(self) -> str:
        return f"<SecretBuffer len={len(self._data)} wiped={self._wiped}>"
