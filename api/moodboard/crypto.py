"""Cryptographic utilities for stored credentials, tokens and webhook signatures."""

import base64
import binascii
import hashlib
import hmac
import os
import secrets
from typing import Mapping, Optional
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from moodboard.config import settings
from moodboard.logging_config import logger

IV_LENGTH = 12
TAG_LENGTH = 16


class DecryptionError(Exception):
    """Raised when a stored secret cannot be decrypted (tampered or wrong key)."""


def _derive_key(secret: Optional[str]) -> bytes:
    material = secret if secret else settings.encryption_key
    return hashlib.sha256(str(material or "").encode("utf-8")).digest()


def encrypt_string(plaintext: str, secret: Optional[str] = None) -> str:
    """Encrypt a string with AES-256-GCM.

    The key is the SHA-256 digest of ``secret`` (defaults to ``ENCRYPTION_KEY``).

    Args:
        plaintext: Text to encrypt
        secret: Optional secret overriding the configured key

    Returns:
        base64(iv ‖ tag ‖ ciphertext)
    """
    iv = os.urandom(IV_LENGTH)
    sealed = AESGCM(_derive_key(secret)).encrypt(iv, plaintext.encode("utf-8"), None)
    # AESGCM appends the tag; stored layout keeps it in front of the ciphertext
    ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
    return base64.b64encode(iv + tag + ciphertext).decode("ascii")


def decrypt_string(token: str, secret: Optional[str] = None) -> str:
    """Decrypt a value produced by :func:`encrypt_string`.

    Raises:
        DecryptionError: If the token is malformed, tampered with or the key is wrong
    """
    try:
        raw = base64.b64decode(token, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecryptionError("Invalid ciphertext encoding") from e

    if len(raw) < IV_LENGTH + TAG_LENGTH:
        raise DecryptionError("Ciphertext too short")

    iv = raw[:IV_LENGTH]
    tag = raw[IV_LENGTH:IV_LENGTH + TAG_LENGTH]
    ciphertext = raw[IV_LENGTH + TAG_LENGTH:]

    try:
        plaintext = AESGCM(_derive_key(secret)).decrypt(iv, ciphertext + tag, None)
    except InvalidTag as e:
        logger.warning("Credential decryption failed")
        raise DecryptionError("Authentication tag mismatch") from e

    return plaintext.decode("utf-8")


def generate_token(length: int = 32) -> str:
    """Generate a cryptographically secure random token.

    Args:
        length: Length of the token in bytes (default 32 = 256 bits)

    Returns:
        URL-safe token string
    """
    return secrets.token_urlsafe(length)


def verify_shopify_hmac(params: Mapping[str, str], secret: str) -> bool:
    """Verify the ``hmac`` query parameter Shopify attaches to OAuth redirects.

    Every parameter except ``hmac`` and ``signature`` is sorted by key and
    joined as ``key=value`` pairs with ``&``.
    """
    provided = params.get("hmac")
    if not provided or not secret:
        return False

    message = "&".join(
        f"{key}={params[key]}"
        for key in sorted(params)
        if key not in ("hmac", "signature")
    )
    digest = hmac.new(secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha256).hexdigest()
    return hmac.compare_digest(digest, provided)
