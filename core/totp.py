"""
TOTP (Time-based One-Time Password) implementation following RFC 6238.

Produces codes identical to Google Authenticator.
"""

import hmac
import struct
import time
from enum import Enum
from typing import TYPE_CHECKING, Optional, Union

from core.errors import UnsupportedAlgorithm

if TYPE_CHECKING:
    from core.credential import Credential

PERIOD = 30
MIN_DIGITS = 5
MAX_DIGITS = 8


class Algorithm(str, Enum):
    """Supported HMAC algorithms."""

    SHA1 = "SHA1"
    SHA256 = "SHA256"
    SHA512 = "SHA512"

    @classmethod
    def parse(cls, name: Union[str, "Algorithm"]) -> "Algorithm":
        """Look up an algorithm by (case-insensitive) name."""
        if isinstance(name, Algorithm):
            return name
        try:
            return cls(str(name).strip().upper())
        except ValueError:
            raise UnsupportedAlgorithm(
                f"Unsupported algorithm '{name}'. Supported: SHA1, SHA256, SHA512."
            ) from None


_ALG_MAP: dict[str, str] = {
    Algorithm.SHA1: "sha1",
    Algorithm.SHA256: "sha256",
    Algorithm.SHA512: "sha512",
}


def _hotp_value(secret_bytes: bytes, counter: int, digits: int, algorithm: str) -> str:
    """
    Core HOTP computation (RFC 4226 §5).

    Args:
        secret_bytes: Raw decoded secret.
        counter:      8-byte counter value.
        digits:       Number of OTP digits (5 to 8).
        algorithm:    Hash algorithm name (sha1 / sha256 / sha512).

    Returns:
        Zero-padded OTP string.
    """
    msg = struct.pack(">Q", counter)
    digest = hmac.new(bytes(secret_bytes), msg, algorithm).digest()

    # Dynamic truncation
    offset = digest[-1] & 0x0F
    code = (
        (digest[offset] & 0x7F) << 24
        | (digest[offset + 1] & 0xFF) << 16
        | (digest[offset + 2] & 0xFF) << 8
        | (digest[offset + 3] & 0xFF)
    )
    otp = code % (10**digits)
    return str(otp).zfill(digits)


def generate_totp(
    secret_bytes: Union[bytes, bytearray],
    digits: int = 6,
    algorithm: Union[Algorithm, str] = Algorithm.SHA1,
    offset: int = 0,
    period: int = PERIOD,
    timestamp: Optional[float] = None,
) -> str:
    """
    Generate a TOTP code.

    Args:
        secret_bytes: Raw (already base32-decoded) secret bytes.
        digits:       Number of digits in the OTP (default 6).
        algorithm:    HMAC algorithm (default SHA1 for GA compatibility).
        offset:       Time steps relative to now; 1 gives the next code.
        period:       Time step in seconds (default 30).
        timestamp:    Override Unix timestamp (uses time.time() if None).

    Returns:
        OTP string, zero-padded to ``digits`` characters.

    Raises:
        UnsupportedAlgorithm: If ``algorithm`` is not SHA1/SHA256/SHA512.
        ValueError:           If ``digits`` is outside 5 to 8.
    """
    if not MIN_DIGITS <= digits <= MAX_DIGITS:
        raise ValueError(f"Digits must be between {MIN_DIGITS} and {MAX_DIGITS}.")
    alg_name = _ALG_MAP[Algorithm.parse(algorithm)]
    t = timestamp if timestamp is not None else time.time()
    counter = int(t) // period + offset
    return _hotp_value(secret_bytes, counter, digits, alg_name)


def code_for(
    credential: "Credential",
    offset: int = 0,
    timestamp: Optional[float] = None,
) -> str:
    """Generate the TOTP code of a stored credential."""
    return generate_totp(
        credential.secret,
        digits=credential.digits,
        algorithm=credential.algorithm,
        offset=offset,
        timestamp=timestamp,
    )


def remaining_seconds(period: int = PERIOD, timestamp: Optional[float] = None) -> int:
    """Return seconds until the current TOTP window expires."""
    t = timestamp if timestamp is not None else time.time()
    return period - (int(t) % period)
