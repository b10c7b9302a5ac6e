"""Field-level encryption for tokens stored in DynamoDB.

Tokens are sealed with XChaCha20-Poly1305 under a 32-byte key and stored as
a JSON object ``{"nonce": ..., "data": ...}`` with unpadded base64 values.
"""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import asdict, dataclass

from nacl import exceptions as nacl_exceptions
from nacl import utils as nacl_utils
from nacl.bindings import (
    crypto_aead_xchacha20poly1305_ietf_decrypt,
    crypto_aead_xchacha20poly1305_ietf_encrypt,
    crypto_aead_xchacha20poly1305_ietf_KEYBYTES,
    crypto_aead_xchacha20poly1305_ietf_NPUBBYTES,
)

from oncallbot.errors import CryptoError


def encode_no_pad(raw: bytes) -> str:
    return base64.b64encode(raw).decode("ascii").rstrip("=")


def decode_no_pad(text: str) -> bytes:
    padded = text + "=" * (-len(text) % 4)
    try:
        return base64.b64decode(padded, validate=True)
    except (binascii.Error, ValueError) as e:
        raise CryptoError(f"Failed to decode base64: {e}") from e


@dataclass
class EncryptedData:
    nonce: str
    data: str

    def to_json(self) -> str:
        return json.dumps(asdict(self))

    @classmethod
    def from_json(cls, text: str) -> "EncryptedData":
        try:
            payload = json.loads(text)
            return cls(nonce=str(payload["nonce"]), data=str(payload["data"]))
        except (json.JSONDecodeError, KeyError, TypeError) as e:
            raise CryptoError(f"Malformed encrypted payload: {e}") from e


class Encryptor:
    """Symmetric encryptor bound to one key."""

    def __init__(self, key: str | bytes):
        raw = key.encode("utf-8") if isinstance(key, str) else bytes(key)
        if len(raw) != crypto_aead_xchacha20poly1305_ietf_KEYBYTES:
            raise CryptoError(
                f"Encryption key must be {crypto_aead_xchacha20poly1305_ietf_KEYBYTES} bytes, got {len(raw)}"
            )
        self._key = raw

    @classmethod
    def from_base64(cls, key_base64: str) -> "Encryptor":
        return cls(decode_no_pad(key_base64))

    def encrypt(self, plaintext: str) -> EncryptedData:
        nonce = nacl_utils.random(crypto_aead_xchacha20poly1305_ietf_NPUBBYTES)
        try:
            sealed = crypto_aead_xchacha20poly1305_ietf_encrypt(
                plaintext.encode("utf-8"), None, nonce, self._key
            )
        except nacl_exceptions.CryptoError as e:
            raise CryptoError(f"Failed to encrypt: {e}") from e
        return EncryptedData(nonce=encode_no_pad(nonce), data=encode_no_pad(sealed))

    def decrypt(self, encrypted: EncryptedData) -> str:
        nonce = decode_no_pad(encrypted.nonce)
        sealed = decode_no_pad(encrypted.data)
        if len(nonce) != crypto_aead_xchacha20poly1305_ietf_NPUBBYTES:
            raise CryptoError(f"Invalid nonce length {len(nonce)}")
        try:
            plaintext = crypto_aead_xchacha20poly1305_ietf_decrypt(sealed, None, nonce, self._key)
        except nacl_exceptions.CryptoError as e:
            raise CryptoError("Failed to decrypt: authentication failed") from e
        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as e:
            raise CryptoError("Decrypted token is not valid UTF-8") from e

    def encrypt_to_json(self, plaintext: str) -> str:
        return self.encrypt(plaintext).to_json()

    def decrypt_from_json(self, text: str) -> str:
        return self.decrypt(EncryptedData.from_json(text))
