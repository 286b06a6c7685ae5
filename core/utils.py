"""
Utility helpers for otpvault.
"""

import base64
import binascii
import re

from core.crypto import wipe
from core.errors import InvalidName, InvalidSecret
from core.totp import MAX_DIGITS, MIN_DIGITS

MAX_NAME_LEN = 20
_SEPARATORS = str.maketrans("", "", "- =\n\r\t")


# ── Base32 ────────────────────────────────────────────────────────────────────

def normalize_secret(secret: str) -> str:
    """
    Normalise a base32 secret: uppercase, drop separators and padding.

    Args:
        secret: Raw user-supplied secret string.

    Returns:
        Uppercase unpadded base32 string.

    Raises:
        InvalidSecret: If nothing is left, or the string is not valid base32
            (alphabet A-Z and 2-7, legal unpadded length).
    """
    secret = secret.upper().translate(_SEPARATORS)
    if not secret:
        raise InvalidSecret("Secret is empty.")
    # Base32 alphabet: A-Z and 2-7
    if not re.fullmatch(r"[A-Z2-7]+", secret):
        raise InvalidSecret(
            "Invalid base32 (valid characters: 2-7 and A-Z; ignored: spaces and dashes)."
        )
    try:
        raw = _b32decode(secret)
    except binascii.Error as exc:
        raise InvalidSecret(f"Invalid base32 secret: {exc}") from None
    wipe(raw)
    return secret


def decode_secret(secret: str) -> bytearray:
    """
    Decode a base32-encoded secret string to raw bytes.

    Args:
        secret: Base32 secret (spaces, dashes and padding are stripped).

    Returns:
        Raw key material in a mutable buffer, so it can be wiped.

    Raises:
        InvalidSecret: On invalid base32 input.
    """
    return _b32decode(normalize_secret(secret))


def encode_secret(raw: bytes) -> str:
    """Encode raw bytes as a base32 string (no padding)."""
    return base64.b32encode(bytes(raw)).decode("ascii").rstrip("=")


def _b32decode(secret: str) -> bytearray:
    # Pad to multiple of 8; b32decode rejects lengths that cannot be unpadded base32
    pad = (8 - len(secret) % 8) % 8
    return bytearray(base64.b32decode(secret + "=" * pad))


# ── Validation ────────────────────────────────────────────────────────────────

def validate_name(name: str, max_len: int = MAX_NAME_LEN, force: bool = False) -> str:
    """
    Check an entry name before it reaches the datafile.

    ``force`` lifts the length limit only; ':' and '%' are always refused
    because they break the otpauth label.
    """
    if not name:
        raise InvalidName("Name must have content.")
    if ":" in name or "%" in name:
        raise InvalidName(f"Entry '{name}' contains ':' or '%'")
    if not force and len(name) > max_len:
        raise InvalidName(f"Name longer than {max_len}")
    return name


def validate_digits(digits: int) -> int:
    if digits not in range(MIN_DIGITS, MAX_DIGITS + 1):
        raise ValueError(f"Digits must be {MIN_DIGITS} to {MAX_DIGITS}.")
    return digits
