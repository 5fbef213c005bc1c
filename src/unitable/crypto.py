# src/unitable/crypto.py
"""
AES-256-GCM envelope for field-level encryption.

Envelope format (all hex):

    <iv>:<auth tag>:<ciphertext>

The key is SHA-256 of the configured secret; each call draws a fresh 16-byte
IV. `decrypt` never raises: any malformed envelope, wrong secret or tampered
tag yields None and a WARNING record.
"""

from __future__ import annotations

import hashlib
import json
import os
from typing import Any, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from unitable.logging import get_logger, log_exception

_logger = get_logger(__name__)

IV_BYTES = 16
TAG_BYTES = 16


def derive_key(secret: str) -> bytes:
    return hashlib.sha256(secret.encode("utf-8")).digest()


def encrypt(text: str, secret: str) -> str:
    """Encrypt a UTF-8 string into an `iv:tag:ciphertext` envelope."""
    iv = os.urandom(IV_BYTES)
    sealed = AESGCM(derive_key(secret)).encrypt(iv, text.encode("utf-8"), None)
    # cryptography appends the tag to the ciphertext
    ciphertext, tag = sealed[:-TAG_BYTES], sealed[-TAG_BYTES:]
    return f"{iv.hex()}:{tag.hex()}:{ciphertext.hex()}"


def decrypt(envelope: str, secret: str) -> Optional[str]:
    """Open an envelope produced by `encrypt`; None when it cannot be opened."""
    try:
        iv_hex, tag_hex, ct_hex = envelope.split(":")
        iv, tag, ciphertext = bytes.fromhex(iv_hex), bytes.fromhex(tag_hex), bytes.fromhex(ct_hex)
        if len(iv) != IV_BYTES or len(tag) != TAG_BYTES:
            raise ValueError("bad iv or tag length")
        plain = AESGCM(derive_key(secret)).decrypt(iv, ciphertext + tag, None)
        return plain.decode("utf-8")
    except (ValueError, AttributeError, InvalidTag, UnicodeDecodeError) as e:
        log_exception(_logger, "Decryption failed", e)
        return None


def encrypt_field(value: Any, secret: str) -> str:
    """JSON-encode any value, then encrypt it."""
    return encrypt(json.dumps(value, default=str), secret)


def decrypt_field(opaque: str, secret: str) -> Optional[Any]:
    plain = decrypt(opaque, secret)
    if plain is None:
        return None
    try:
        return json.loads(plain)
    except json.JSONDecodeError as e:
        log_exception(_logger, "Decrypted field is not valid JSON", e)
        return None
