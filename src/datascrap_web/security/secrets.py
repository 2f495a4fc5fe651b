from __future__ import annotations

import base64
import binascii
import os
from dataclasses import dataclass

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

HKDF_INFO = b"datascrap:cookies:v1"
NONCE_SIZE = 12


class SecretError(ValueError):
    pass


@dataclass(frozen=True)
class SecretBox:
    aesgcm: AESGCM

    def encrypt(self, plaintext: str, aad: bytes) -> str:
        nonce = os.urandom(NONCE_SIZE)
        ciphertext = self.aesgcm.encrypt(nonce, plaintext.encode("utf-8"), aad)
        return base64.urlsafe_b64encode(nonce + ciphertext).decode("utf-8").rstrip("=")

    def decrypt(self, blob_b64: str, aad: bytes) -> str:
        try:
            data = base64.urlsafe_b64decode(_pad_b64(blob_b64))
        except (binascii.Error, ValueError) as exc:
            raise SecretError("cookie is not valid base64url") from exc
        if len(data) <= NONCE_SIZE:
            raise SecretError("cookie is too short")
        nonce = data[:NONCE_SIZE]
        ciphertext = data[NONCE_SIZE:]
        try:
            plaintext = self.aesgcm.decrypt(nonce, ciphertext, aad)
        except InvalidTag as exc:
            raise SecretError("cookie failed authentication") from exc
        return plaintext.decode("utf-8")


def load_secret_box(secret_key_b64: str) -> SecretBox:
    if not secret_key_b64:
        raise SecretError("Session key is not set. Set DATASCRAP_SESSION_KEY.")

    try:
        master = base64.urlsafe_b64decode(_pad_b64(secret_key_b64))
    except (binascii.Error, ValueError) as exc:
        raise SecretError("Session key is not valid base64url") from exc

    if len(master) != 32:
        raise SecretError("Session key must be 32 bytes (base64url encoded)")

    hkdf = HKDF(algorithm=hashes.SHA256(), length=32, salt=None, info=HKDF_INFO)
    return SecretBox(aesgcm=AESGCM(hkdf.derive(master)))


def generate_secret_key() -> str:
    return base64.urlsafe_b64encode(os.urandom(32)).decode("utf-8")


def _pad_b64(value: str) -> str:
    padding = "=" * (-len(value) % 4)
    return value + padding
