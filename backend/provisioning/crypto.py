from __future__ import annotations

"""
AES-256-GCM helpers for tenant integration credentials.
Ciphertext, IV and tag are stored as separate base64 columns; the 128-bit tag is
appended to the ciphertext before the authenticated decrypt call.
"""

import base64
import binascii
import json
import os
from dataclasses import dataclass
from typing import Any

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .errors import DecryptionError

KEY_BYTES = 32
IV_BYTES = 12
TAG_BYTES = 16


@dataclass(frozen=True)
class EncryptedPayload:
    ciphertext: str
    iv: str
    tag: str


def decrypt_credentials(encrypted_data: str, iv: str, tag: str, key_base64: str) -> str:
    """
    Recovers the UTF-8 plaintext for an encrypted credential.
    Raises DecryptionError when the tag does not verify (tampered data or wrong
    key) or when any input is not valid base64.
    """
    key = _b64decode(key_base64, "key")
    if len(key) != KEY_BYTES:
        raise DecryptionError("Encryption key must be 256 bits.")
    iv_bytes = _b64decode(iv, "iv")
    if len(iv_bytes) != IV_BYTES:
        raise DecryptionError("Initialization vector must be 96 bits.")
    ciphertext = _b64decode(encrypted_data, "ciphertext")
    tag_bytes = _b64decode(tag, "tag")
    if len(tag_bytes) != TAG_BYTES:
        raise DecryptionError("Authentication tag must be 128 bits.")

    try:
        plaintext = AESGCM(key).decrypt(iv_bytes, ciphertext + tag_bytes, None)
    except InvalidTag as exc:
        raise DecryptionError("Authentication tag verification failed.") from exc
    except ValueError as exc:
        raise DecryptionError(f"Credential could not be decrypted: {exc}") from exc
    try:
        return plaintext.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise DecryptionError("Decrypted credential is not UTF-8.") from exc


def decrypt_credential_payload(
    encrypted_data: str, iv: str, tag: str, key_base64: str
) -> dict[str, Any]:
    """Decrypts a credential and parses it as a JSON object."""
    plaintext = decrypt_credentials(encrypted_data, iv, tag, key_base64)
    try:
        payload = json.loads(plaintext)
    except json.JSONDecodeError as exc:
        raise DecryptionError("Decrypted credential is not valid JSON.") from exc
    if not isinstance(payload, dict):
        raise DecryptionError("Decrypted credential must be a JSON object.")
    return payload


def encrypt_credentials(
    plaintext: str, key_base64: str, iv: bytes | None = None
) -> EncryptedPayload:
    key = _b64decode(key_base64, "key")
    if len(key) != KEY_BYTES:
        raise ValueError("Encryption key must be 256 bits.")
    iv_bytes = iv if iv is not None else os.urandom(IV_BYTES)
    sealed = AESGCM(key).encrypt(iv_bytes, plaintext.encode("utf-8"), None)
    return EncryptedPayload(
        ciphertext=_b64encode(sealed[:-TAG_BYTES]),
        iv=_b64encode(iv_bytes),
        tag=_b64encode(sealed[-TAG_BYTES:]),
    )


def _b64decode(value: str, label: str) -> bytes:
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError, TypeError) as exc:
        raise DecryptionError(f"Invalid base64 {label}.") from exc


def _b64encode(raw: bytes) -> str:
    return base64.b64encode(raw).decode("ascii")
