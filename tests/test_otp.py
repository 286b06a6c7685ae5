"""Tests for core.totp and core.utils."""

import pytest

from core.credential import Credential
from core.errors import InvalidName, InvalidSecret, UnsupportedAlgorithm
from core.totp import (
    Algorithm,
    code_for,
    generate_totp,
    remaining_seconds,
)
from core.utils import (
    decode_secret,
    encode_secret,
    normalize_secret,
    validate_digits,
    validate_name,
)


# ── RFC 4226 Appendix D test vectors ─────────────────────────────────────────
# Secret: "12345678901234567890" (as bytes); counter N is time step N
RFC_SECRET = b"12345678901234567890"
RFC_SECRET_B32 = "GEZDGNBVGY3TQOJQGEZDGNBVGY3TQOJQ"
RFC_HOTP_EXPECTED = [
    "755224", "287082", "359152", "969429", "338314",
    "254676", "287922", "162583", "399871", "520489",
]


@pytest.mark.parametrize("counter,expected", list(enumerate(RFC_HOTP_EXPECTED)))
def test_rfc4226_vectors_as_time_steps(counter: int, expected: str) -> None:
    code = generate_totp(RFC_SECRET, digits=6, timestamp=float(counter * 30))
    assert code == expected, f"counter={counter}: got {code}, expected {expected}"


# ── RFC 6238 TOTP test vectors ────────────────────────────────────────────────
# Source: RFC 6238, Appendix B
# Secrets vary by algorithm per the RFC

_TOTP_VECTORS = [
    # (timestamp, algorithm,  secret_bytes,          expected)
    (59,          Algorithm.SHA1,   b"12345678901234567890",                      "94287082"),
    (59,          Algorithm.SHA256, b"12345678901234567890123456789012",          "46119246"),
    (59,          Algorithm.SHA512, b"1234567890123456789012345678901234567890123456789012345678901234", "90693936"),
    (1111111109,  Algorithm.SHA1,   b"12345678901234567890",                      "07081804"),
    (1111111109,  Algorithm.SHA256, b"12345678901234567890123456789012",          "68084774"),
    (1111111109,  Algorithm.SHA512, b"1234567890123456789012345678901234567890123456789012345678901234", "25091201"),
    (1111111111,  Algorithm.SHA1,   b"12345678901234567890",                      "14050471"),
    (1234567890,  Algorithm.SHA1,   b"12345678901234567890",                      "89005924"),
    (2000000000,  Algorithm.SHA1,   b"12345678901234567890",                      "69279037"),
    (20000000000, Algorithm.SHA1,   b"12345678901234567890",                      "65353130"),
    (20000000000, Algorithm.SHA256, b"12345678901234567890123456789012",          "77737706"),
    (20000000000, Algorithm.SHA512, b"1234567890123456789012345678901234567890123456789012345678901234", "47863826"),
]


@pytest.mark.parametrize("ts,alg,secret,expected", _TOTP_VECTORS)
def test_totp_rfc6238_vectors(
    ts: int, alg: Algorithm, secret: bytes, expected: str
) -> None:
    code = generate_totp(secret, digits=8, algorithm=alg, timestamp=float(ts))
    assert code == expected, f"TOTP ts={ts} {alg}: got {code}, expected {expected}"


def test_rfc_vector_from_base32_secret() -> None:
    cred = Credential.from_base32("rfc", RFC_SECRET_B32, digits=8)
    assert code_for(cred, timestamp=59.0) == "94287082"


# ── Offsets, digits, algorithms ───────────────────────────────────────────────

def test_offset_selects_next_window() -> None:
    assert generate_totp(RFC_SECRET, digits=8, offset=1, timestamp=29.0) == "94287082"
    assert generate_totp(RFC_SECRET, digits=8, offset=-1, timestamp=89.0) == "94287082"


def test_same_window_same_code() -> None:
    a = generate_totp(RFC_SECRET, timestamp=1111111080.0)
    b = generate_totp(RFC_SECRET, timestamp=1111111109.0)
    c = generate_totp(RFC_SECRET, timestamp=1111111110.0)
    assert a == b
    assert a != c


@pytest.mark.parametrize("alg", list(Algorithm))
@pytest.mark.parametrize("digits", [5, 6, 7])
def test_short_codes_are_suffix_of_eight_digits(alg: Algorithm, digits: int) -> None:
    long_code = generate_totp(RFC_SECRET, digits=8, algorithm=alg, timestamp=1234567890.0)
    short = generate_totp(RFC_SECRET, digits=digits, algorithm=alg, timestamp=1234567890.0)
    assert len(short) == digits
    assert short == long_code[-digits:]


def test_algorithm_by_name() -> None:
    assert generate_totp(RFC_SECRET, 8, "sha256", timestamp=59.0) == generate_totp(
        RFC_SECRET, 8, Algorithm.SHA256, timestamp=59.0
    )


def test_unsupported_algorithm() -> None:
    with pytest.raises(UnsupportedAlgorithm):
        generate_totp(RFC_SECRET, algorithm="MD5", timestamp=0.0)


@pytest.mark.parametrize("digits", [4, 9])
def test_digits_out_of_range(digits: int) -> None:
    with pytest.raises(ValueError):
        generate_totp(RFC_SECRET, digits=digits, timestamp=0.0)


def test_bytearray_secret_accepted() -> None:
    assert generate_totp(bytearray(RFC_SECRET), 8, timestamp=59.0) == "94287082"


# ── Remaining seconds ─────────────────────────────────────────────────────────

def test_remaining_seconds_range() -> None:
    rem = remaining_seconds(period=30)
    assert 0 < rem <= 30


def test_remaining_seconds_at_boundary() -> None:
    # At exactly t=0 (multiple of 30), remaining should be 30
    assert remaining_seconds(period=30, timestamp=0.0) == 30

    # At t=29, remaining should be 1
    assert remaining_seconds(period=30, timestamp=29.0) == 1


# ── Secret normalisation ──────────────────────────────────────────────────────

def test_normalize_secret_lowercase_spaced_input() -> None:
    clean = "JB2WEBV5TDMV6HUK3Q"
    assert normalize_secret("jb2w ebv5t dmv6huk3q") == clean
    assert decode_secret("jb2w-ebv5t-dmv6huk3q\n") == decode_secret(clean)


def test_normalize_secret_strips_padding() -> None:
    assert normalize_secret("JBSWY3DPEHPK3PXP====") == "JBSWY3DPEHPK3PXP"


@pytest.mark.parametrize("bad", ["JBSW1Y3DP", "JBSWY0DP", "JBSWY3D8", "JBSW9Y3D", "ABC!"])
def test_normalize_secret_rejects_illegal_characters(bad: str) -> None:
    with pytest.raises(InvalidSecret):
        normalize_secret(bad)


@pytest.mark.parametrize("bad", ["", " - = ", "A", "ABC", "ABCDEF"])
def test_normalize_secret_rejects_empty_and_bad_lengths(bad: str) -> None:
    with pytest.raises(InvalidSecret):
        normalize_secret(bad)


def test_decode_secret_roundtrip() -> None:
    raw = b"\x00\x01\x02\x03\x04\x05\x06\x07\x08\x09"
    encoded = encode_secret(raw)
    assert "=" not in encoded
    assert decode_secret(encoded) == raw


# ── Names and digits ──────────────────────────────────────────────────────────

@pytest.mark.parametrize("name", ["git:hub", "50%off", ""])
def test_validate_name_rejects(name: str) -> None:
    with pytest.raises(InvalidName):
        validate_name(name, force=True)


def test_validate_name_length() -> None:
    with pytest.raises(InvalidName):
        validate_name("x" * 21)
    assert validate_name("x" * 21, force=True) == "x" * 21
    assert validate_name("x" * 30, max_len=30) == "x" * 30


def test_validate_digits() -> None:
    assert validate_digits(5) == 5
    with pytest.raises(ValueError):
        validate_digits(9)


# ── Credential ────────────────────────────────────────────────────────────────

def test_credential_wipe() -> None:
    cred = Credential.from_base32("a", RFC_SECRET_B32)
    assert bytes(cred.secret) == RFC_SECRET
    cred.wipe()
    assert cred.secret == bytearray(len(RFC_SECRET))


def test_credential_algorithm_from_text() -> None:
    cred = Credential.from_base32("a", RFC_SECRET_B32, digits=7, algorithm="sha512")
    assert cred.algorithm is Algorithm.SHA512
    assert cred.secret_b32 == RFC_SECRET_B32


def test_credential_rejects_bad_digits() -> None:
    with pytest.raises(ValueError):
        Credential.from_base32("a", RFC_SECRET_B32, digits=4)
