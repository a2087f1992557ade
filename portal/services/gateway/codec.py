"""
Secret Codec
------------
Symmetric encryption of stored endpoint secrets (AES-256-GCM).

Stored form:  "v1:" + urlsafe_b64(nonce[12] || ciphertext || tag[16])

Every encrypt() draws a fresh random nonce, so encrypting the same secret
twice yields different ciphertexts. The key is passed in explicitly at
construction; the codec holds no other state and performs no I/O.
"""

import base64
import binascii
import secrets

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from portal.services.shared.errors import CryptoError

KEY_BYTES     = 32   # AES-256
NONCE_BYTES   = 12
TAG_BYTES     = 16
VERSION_PREFIX = "v1:"


def _decode_key(key: str) -> bytes:
    text = (key or "").strip()
    if text.startswith("base64:"):
        text = text[len("base64:"):]
    try:
        raw = base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError):
        raise CryptoError("Encryption key is not valid base64") from None
    if len(raw) < KEY_BYTES:
        raise CryptoError(f"Encryption key must be at least {KEY_BYTES * 8} bits")
    return raw[:KEY_BYTES]


class SecretCodec:
    """AEAD codec for endpoint secrets under one process-wide key."""

    def __init__(self, key: str):
        self._aead = AESGCM(_decode_key(key))

    @staticmethod
    def generate_key() -> str:
        """Return a new random 256-bit key as base64 text (suitable for APP_KEY)."""
        return base64.b64encode(secrets.token_bytes(KEY_BYTES)).decode()

    def encrypt(self, plaintext: str) -> str:
        if not isinstance(plaintext, str):
            raise CryptoError("Only text secrets can be encrypted")
        nonce = secrets.token_bytes(NONCE_BYTES)
        sealed = self._aead.encrypt(nonce, plaintext.encode("utf-8"), None)
        return VERSION_PREFIX + base64.urlsafe_b64encode(nonce + sealed).decode()

    def decrypt(self, ciphertext: str) -> str:
        if not isinstance(ciphertext, str) or not ciphertext.startswith(VERSION_PREFIX):
            raise CryptoError("Unrecognised ciphertext format")
        try:
            blob = base64.urlsafe_b64decode(ciphertext[len(VERSION_PREFIX):].encode())
        except (binascii.Error, ValueError):
            raise CryptoError("Ciphertext is not valid base64") from None
        if len(blob) < NONCE_BYTES + TAG_BYTES:
            raise CryptoError("Ciphertext is truncated")

        nonce, sealed = blob[:NONCE_BYTES], blob[NONCE_BYTES:]
        try:
            plain = self._aead.decrypt(nonce, sealed, None)
        except InvalidTag:
            # wrong key or tampered payload; do not chain the original exception
            raise CryptoError("Ciphertext could not be authenticated") from None
        try:
            return plain.decode("utf-8")
        except UnicodeDecodeError:
            raise CryptoError("Decrypted secret is not valid UTF-8") from None

    def __repr__(self) -> str:
        return "SecretCodec(key='***')"
