"""
Cryptographic utilities for otpvault.

Key derivation  : Argon2id (argon2-cffi)
Encryption      : AES-256-GCM (authenticated encryption)

Datafile blob layout::

    [ nonce (12 bytes) | ciphertext+tag ]

The nonce doubles as the Argon2 salt, so a fresh nonce on every save also
means a fresh key.
"""

import logging
import secrets
from typing import Union

from argon2.low_level import Type, hash_secret_raw
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from core.errors import CorruptStore, WrongPassword

logger = logging.getLogger(__name__)

# ── Constants ────────────────────────────────────────────────────────────────

NONCE_SIZE = 12         # 96-bit nonce (GCM recommendation), also the KDF salt
KEY_SIZE = 32           # 256-bit AES key
TAG_SIZE = 16           # 128-bit GCM tag
ARGON2_TIME_COST = 3
ARGON2_MEMORY_COST = 65536   # KiB, i.e. 64 MiB
ARGON2_PARALLELISM = 4

Buffer = Union[bytes, bytearray]


# ── Memory hygiene ────────────────────────────────────────────────────────────

def wipe(buf: bytearray) -> None:
    """Overwrite a mutable buffer with zeros in place (best-effort)."""
    for i in range(len(buf)):
        buf[i] = 0


# ── Key derivation ────────────────────────────────────────────────────────────

def derive_key(password: Buffer, salt: bytes, length: int = KEY_SIZE) -> bytearray:
    """
    Derive a 256-bit key from ``password`` using Argon2id.

    Args:
        password: Datafile password bytes.
        salt:     12-byte nonce read from (or written to) the datafile.
        length:   Key length, must equal :data:`KEY_SIZE`.

    Returns:
        Mutable 32-byte key; callers wipe it when done.

    Raises:
        ValueError: If ``length`` is not the AES-256 key size.
    """
    if length != KEY_SIZE:
        raise ValueError(f"Key length must be {KEY_SIZE} bytes, got {length}")
    return bytearray(
        hash_secret_raw(
            secret=bytes(password),
            salt=bytes(salt),
            time_cost=ARGON2_TIME_COST,
            memory_cost=ARGON2_MEMORY_COST,
            parallelism=ARGON2_PARALLELISM,
            hash_len=length,
            type=Type.ID,
        )
    )


def generate_nonce() -> bytes:
    """Return a cryptographically random 12-byte nonce."""
    return secrets.token_bytes(NONCE_SIZE)


# ── AES-256-GCM encryption / decryption ──────────────────────────────────────

def encrypt_with_password(plaintext: Buffer, password: Buffer) -> bytes:
    """
    Derive a key from *password* and a fresh nonce, then seal *plaintext*.

    Args:
        plaintext: Serialized entries.
        password:  Datafile password.

    Returns:
        Nonce + ciphertext + tag.
    """
    nonce = generate_nonce()
    key = derive_key(password, nonce)
    try:
        ciphertext = AESGCM(bytes(key)).encrypt(nonce, bytes(plaintext), None)
    finally:
        wipe(key)
    return nonce + ciphertext


def decrypt_with_password(blob: bytes, password: Buffer) -> bytearray:
    """
    Open a blob produced by :func:`encrypt_with_password`.

    Args:
        blob:     nonce + ciphertext + tag.
        password: Datafile password.

    Returns:
        Decrypted plaintext as a mutable buffer.

    Raises:
        CorruptStore:  If the blob is too short to hold a nonce and data.
        WrongPassword: If authentication fails (wrong password or tampered
            data; the two cases are not distinguished).
    """
    if len(blob) < NONCE_SIZE + 1:
        raise CorruptStore("insufficient data in datafile")
    nonce = blob[:NONCE_SIZE]
    ciphertext = blob[NONCE_SIZE:]
    key = derive_key(password, nonce)
    try:
        return bytearray(AESGCM(bytes(key)).decrypt(nonce, ciphertext, None))
    except InvalidTag:
        logger.debug("AEAD authentication failed")
        raise WrongPassword() from None
    finally:
        wipe(key)
