"""
Parse and build otpauth:// URIs (Google Authenticator Key URI Format).

Reference: https://github.com/google/google-authenticator/wiki/Key-Uri-Format

Only the subset the datafile can hold is accepted: ``totp`` with a 30 s
period, 5 to 8 digits and SHA1/SHA256/SHA512. The whole label is the entry
name; the ``issuer`` parameter is written for other apps but ignored on read.
"""

import logging
import urllib.parse
from dataclasses import dataclass, field
from typing import List

from core.credential import Credential
from core.errors import InvalidSecret
from core.totp import PERIOD, Algorithm
from core.utils import normalize_secret, validate_digits, validate_name

logger = logging.getLogger(__name__)


@dataclass
class OTPAuthURI:
    """Parsed representation of an otpauth:// URI."""

    name: str           # full label, used as entry name
    secret: str         # normalised base32 secret
    algorithm: Algorithm = Algorithm.SHA1
    digits: int = 6
    issuer_seen: bool = False
    ignored_keys: List[str] = field(default_factory=list)

    def to_credential(self) -> Credential:
        return Credential.from_base32(self.name, self.secret, self.digits, self.algorithm)


def _single(params: dict, key: str, what: str) -> str:
    values = params[key]
    if len(values) > 1:
        raise ValueError(f"Multiple {what} (key '{key}').")
    return values[0]


def parse_otpauth_uri(uri: str) -> OTPAuthURI:
    """
    Parse and validate an ``otpauth://`` URI.

    Args:
        uri: Full otpauth URI string.

    Returns:
        Populated :class:`OTPAuthURI` dataclass.

    Raises:
        ValueError: If the URI is malformed or contains invalid values
            (:class:`~core.errors.InvalidName`, :class:`~core.errors.InvalidSecret`
            and :class:`~core.errors.UnsupportedAlgorithm` are subclasses).
    """
    uri = uri.strip()

    parsed = urllib.parse.urlparse(uri)

    if parsed.scheme.lower() != "otpauth":
        raise ValueError(f"Expected 'otpauth' scheme, got '{parsed.scheme}'.")

    otp_type = parsed.netloc.lower()
    if otp_type != "totp":
        raise ValueError(f"Unsupported OTP type '{otp_type}'. Expected totp.")

    # Label is the path component (strip leading slash)
    name = urllib.parse.unquote(parsed.path[1:])
    validate_name(name, force=True)

    params = urllib.parse.parse_qs(parsed.query, keep_blank_values=True)

    if "secret" not in params:
        raise InvalidSecret("Missing 'secret' parameter in otpauth URI.")
    secret = normalize_secret(_single(params, "secret", "secrets"))

    if "period" in params and _single(params, "period", "periods") != str(PERIOD):
        raise ValueError(f"Unsupported period (not {PERIOD}).")

    digits = 6
    if "digits" in params:
        raw_digits = _single(params, "digits", "TOTP lengths")
        try:
            digits = validate_digits(int(raw_digits))
        except ValueError:
            raise ValueError(f"TOTP length (key 'digits') not 5-8, but: {raw_digits}") from None

    algorithm = Algorithm.SHA1
    if "algorithm" in params:
        algorithm = Algorithm.parse(_single(params, "algorithm", "hashes"))

    known = {"secret", "period", "digits", "algorithm", "issuer"}
    ignored = sorted(key for key in params if key not in known)
    for key in ignored:
        logger.debug("otpauth key '%s' unsupported, ignored", key)

    return OTPAuthURI(
        name=name,
        secret=secret,
        algorithm=algorithm,
        digits=digits,
        issuer_seen="issuer" in params,
        ignored_keys=ignored,
    )


def build_otpauth_uri(credential: Credential) -> str:
    """Build an otpauth:// URI for a stored credential."""
    label = urllib.parse.quote(credential.name, safe="")
    params = {
        "secret": credential.secret_b32,
        "algorithm": credential.algorithm.value,
        "digits": str(credential.digits),
        "period": str(PERIOD),
        "issuer": credential.name,
    }
    query = urllib.parse.urlencode(params, quote_via=urllib.parse.quote, safe="")
    return f"otpauth://totp/{label}?{query}"
