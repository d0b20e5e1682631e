# Vault - Authenticated Cipher
#
# ChaCha20-Poly1305 (96-bit nonce, 128-bit tag) over the serialized
# entry collection, with the container header as associated data.

import os
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import ChaCha20Poly1305

from .exceptions import AuthenticationFailed, InvalidParameters
from .kdf import KEY_LENGTH

NONCE_LENGTH = 12  # 96-bit nonce
TAG_LENGTH = 16  # 128-bit Poly1305 tag


class AuthenticatedCipher:
    """
    Seals and opens the vault payload.

    Flow:
    1. Vault Manager draws a fresh nonce for every save
    2. seal() encrypts the plaintext and binds the header (associated data)
    3. open() verifies the tag before returning any plaintext

    The nonce must never repeat under the same key.
    """

    @staticmethod
    def generate_nonce() -> bytes:
        """Generate a random nonce (must be unique per encryption)."""
        return os.urandom(NONCE_LENGTH)

    @staticmethod
    def _check(key, nonce) -> None:
        if len(key) != KEY_LENGTH:
            raise InvalidParameters(f"key must be {KEY_LENGTH} bytes")
        if len(nonce) != NONCE_LENGTH:
            raise InvalidParameters(f"nonce must be {NONCE_LENGTH} bytes")

    @staticmethod
    def seal(key, nonce: bytes, associated_data: Optional[bytes], plaintext) -> bytes:
        """
        Encrypt plaintext and append the authentication tag.

        Args:
            key: 256-bit key (bytes or bytearray)
            nonce: NONCE_LENGTH bytes, never reused under this key
            associated_data: Authenticated but unencrypted bytes (the header)
            plaintext: Data to encrypt

        Returns:
            ciphertext || tag
        """
        AuthenticatedCipher._check(key, nonce)
        return ChaCha20Poly1305(key).encrypt(nonce, plaintext, associated_data)

    @staticmethod
    def open(key, nonce: bytes, associated_data: Optional[bytes], ciphertext_with_tag: bytes) -> bytearray:
        """
        Verify and decrypt ciphertext_with_tag.

        Returns:
            Plaintext in a bytearray so the caller can wipe it

        Raises:
            AuthenticationFailed: Tag mismatch (wrong key, or any change to
                ciphertext, tag, nonce or associated data)
        """
        AuthenticatedCipher._check(key, nonce)
        if len(ciphertext_with_tag) < TAG_LENGTH:
            raise AuthenticationFailed("Ciphertext shorter than authentication tag")
        try:
            plaintext = ChaCha20Poly1305(key).decrypt(nonce, bytes(ciphertext_with_tag), associated_data)
        except InvalidTag:
            raise AuthenticationFailed("Authentication tag verification failed") from None
        return bytearray(plaintext)
