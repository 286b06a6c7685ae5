"""
Exception hierarchy for otpvault.

Every error raised on purpose by the vault derives from :class:`VaultError`.
Filesystem failures are not wrapped: they surface as the built-in
:class:`OSError`.
"""


class VaultError(Exception):
    """Base class for all otpvault errors."""


# ── Datafile ──────────────────────────────────────────────────────────────────

class WrongPassword(VaultError):
    """
    The datafile could not be authenticated.

    Raised for a wrong password *and* for tampered ciphertext; the two are
    reported with the same message.
    """

    def __init__(self, message: str = "password error") -> None:
        super().__init__(message)


class CorruptStore(VaultError):
    """The datafile is truncated or its contents cannot be decoded."""


# ── Entry data ────────────────────────────────────────────────────────────────

class UnsupportedAlgorithm(VaultError, ValueError):
    """The hash algorithm is not one of SHA1, SHA256 or SHA512."""


class InvalidSecret(VaultError, ValueError):
    """The secret is empty or not valid base32."""


class InvalidName(VaultError, ValueError):
    """The entry name is empty, too long or contains ':' or '%'."""


# ── Collection ────────────────────────────────────────────────────────────────

class DuplicateName(VaultError, KeyError):
    """An entry with this name already exists."""

    def __str__(self) -> str:
        return f"Entry '{self.args[0]}' already exists"


class NotFound(VaultError, KeyError):
    """No entry with this name exists."""

    def __str__(self) -> str:
        return f"Entry '{self.args[0]}' not found"
