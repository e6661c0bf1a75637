"""
security.crypto
~~~~~~~~~~~~~~~~

AES‑GCM helpers used to seal patient payloads before they are printed in a
QR code.  The implementation uses the `cryptography` package and keeps the
surface small:

* :func:`load_key` / :func:`derive_key` turn the configured secret into a
  256‑bit key.
* :func:`encrypt_data` / :func:`decrypt_data` operate on ``bytes``.
* :func:`seal` / :func:`unseal` wrap the two above into a printable token
  (url‑safe base64 of ``nonce || ciphertext || tag``).

The key is never embedded in the code; it comes from the
``HEDERA_HEALTH_QR_KEY`` environment variable or is passed in explicitly.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import os
import string
from typing import Tuple

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..config import settings
from ..errors import ConfigurationError, DecodeError


# --------------------------------------------------------------------------- #
# Key handling
# --------------------------------------------------------------------------- #

def _generate_random_bytes(n: int) -> bytes:
    """Return ``n`` cryptographically‑secure random bytes."""
    return os.urandom(n)


def _is_hex_key(secret: str) -> bool:
    return len(secret) == settings.AES_GCM_KEY_SIZE * 2 and all(
        c in string.hexdigits for c in secret
    )


def derive_key(
    passphrase: str,
    salt: bytes = settings.KEY_DERIVATION_SALT,
    iterations: int = settings.PBKDF2_ITERATIONS,
) -> bytes:
    """
    Stretch a passphrase into a 256‑bit key using PBKDF2-HMAC-SHA256.
    """
    return hashlib.pbkdf2_hmac(
        "sha256",
        passphrase.encode("utf-8"),
        salt,
        iterations,
        dklen=settings.AES_GCM_KEY_SIZE,
    )


def load_key(secret: str | None = None) -> bytes:
    """
    Resolve the QR encryption key.

    *secret* defaults to the value of :data:`settings.QR_SECRET_ENV_VAR`.
    A 64 character hex string is used as the raw key, anything else is
    treated as a passphrase and run through :func:`derive_key`.

    Raises :class:`ConfigurationError` if no secret is available.
    """
    if secret is None:
        secret = os.getenv(settings.QR_SECRET_ENV_VAR)
    if not secret:
        raise ConfigurationError(
            f"{settings.QR_SECRET_ENV_VAR} must be set before using crypto functions."
        )
    if _is_hex_key(secret):
        return bytes.fromhex(secret)
    return derive_key(secret)


# --------------------------------------------------------------------------- #
# Public API
# --------------------------------------------------------------------------- #

def encrypt_data(
    plaintext: bytes, key: bytes, nonce: bytes | None = None
) -> Tuple[bytes, bytes]:
    """
    Encrypt ``plaintext`` using AES‑GCM.

    Parameters
    ----------
    plaintext : bytes
        The data to encrypt.
    key : bytes
        32‑byte key, see :func:`load_key`.
    nonce : bytes | None
        Optional 12‑byte nonce.  If omitted a random nonce is generated.

    Returns
    -------
    Tuple[bytes, bytes]
        ``(ciphertext, nonce)``; the ciphertext carries the GCM tag at its end.
    """
    if nonce is None:
        nonce = _generate_random_bytes(settings.AES_GCM_NONCE_SIZE)
    aesgcm = AESGCM(key)
    ciphertext = aesgcm.encrypt(nonce, plaintext, None)
    return ciphertext, nonce


def decrypt_data(ciphertext: bytes, nonce: bytes, key: bytes) -> bytes:
    """
    Decrypt ``ciphertext`` using AES‑GCM.

    Raises :class:`cryptography.exceptions.InvalidTag` if the data was
    tampered with or the key is wrong.
    """
    aesgcm = AESGCM(key)
    return aesgcm.decrypt(nonce, ciphertext, None)


def seal(plaintext: bytes, key: bytes) -> str:
    """Encrypt *plaintext* and return a printable, url‑safe token."""
    ciphertext, nonce = encrypt_data(plaintext, key)
    return base64.urlsafe_b64encode(nonce + ciphertext).decode("ascii")


def unseal(token: str, key: bytes) -> bytes:
    """
    Reverse :func:`seal`.

    Any failure (bad base64, truncated token, wrong key, tampering) is
    reported as :class:`DecodeError` with reason ``"corrupt"``.
    """
    try:
        raw = base64.urlsafe_b64decode(token.encode("ascii"))
    except (binascii.Error, ValueError, UnicodeEncodeError) as exc:
        raise DecodeError("corrupt") from exc
    # nonce plus at least the 16 byte tag
    if len(raw) < settings.AES_GCM_NONCE_SIZE + 16:
        raise DecodeError("corrupt")
    nonce, ciphertext = raw[: settings.AES_GCM_NONCE_SIZE], raw[settings.AES_GCM_NONCE_SIZE :]
    try:
        return decrypt_data(ciphertext, nonce, key)
    except InvalidTag as exc:
        raise DecodeError("corrupt") from exc
