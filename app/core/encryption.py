"""
AES-256-GCM encryption for user-supplied provider API keys.

Ciphertext layout (base64): 12-byte nonce | 16-byte tag | encrypted payload.
"""

import base64
import os

from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from app.core.settings import get_settings

NONCE_SIZE = 12
TAG_SIZE = 16


def _get_key(key_base64: str | None = None) -> bytes:
    if key_base64 is None:
        key_base64 = get_settings().encryption_key_base64
    try:
        key = base64.b64decode(key_base64 or "", validate=True)
    except ValueError:
        raise ValueError("ENCRYPTION_KEY_BASE64 is not valid base64")
    if len(key) != 32:
        raise ValueError("ENCRYPTION_KEY_BASE64 must decode to 32 bytes")
    return key


def encrypt_secret(plaintext: str, key_base64: str | None = None) -> str:
    aesgcm = AESGCM(_get_key(key_base64))
    nonce = os.urandom(NONCE_SIZE)
    # cryptography appends the tag to the ciphertext; store it up front instead
    sealed = aesgcm.encrypt(nonce, plaintext.encode("utf-8"), None)
    encrypted, tag = sealed[:-TAG_SIZE], sealed[-TAG_SIZE:]
    return base64.b64encode(nonce + tag + encrypted).decode("ascii")


def decrypt_secret(payload: str, key_base64: str | None = None) -> str:
    """
    Raises:
        ValueError: If the payload is malformed or was not sealed with this key
    """
    aesgcm = AESGCM(_get_key(key_base64))
    raw = base64.b64decode(payload)
    if len(raw) < NONCE_SIZE + TAG_SIZE:
        raise ValueError("Encrypted payload is too short")
    nonce = raw[:NONCE_SIZE]
    tag = raw[NONCE_SIZE : NONCE_SIZE + TAG_SIZE]
    encrypted = raw[NONCE_SIZE + TAG_SIZE :]
    try:
        decrypted = aesgcm.decrypt(nonce, encrypted + tag, None)
    except Exception as exc:
        raise ValueError("Failed to decrypt secret") from exc
    return decrypted.decode("utf-8")
