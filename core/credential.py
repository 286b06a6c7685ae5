"""
In-memory representation of one stored TOTP secret.
"""

from dataclasses import dataclass, field
from typing import Union

from core.crypto import wipe
from core.totp import Algorithm
from core.utils import decode_secret, encode_secret, validate_digits


@dataclass
class Credential:
    """A named TOTP secret; ``secret`` holds the decoded key material."""

    name: str
    secret: bytearray = field(repr=False)
    digits: int = 6
    algorithm: Algorithm = Algorithm.SHA1

    def __post_init__(self) -> None:
        if not isinstance(self.secret, bytearray):
            self.secret = bytearray(self.secret)
        self.digits = validate_digits(int(self.digits))
        self.algorithm = Algorithm.parse(self.algorithm)

    @classmethod
    def from_base32(
        cls,
        name: str,
        text: str,
        digits: int = 6,
        algorithm: Union[Algorithm, str] = Algorithm.SHA1,
    ) -> "Credential":
        """Build a credential from user-entered base32 text."""
        return cls(name=name, secret=decode_secret(text), digits=digits, algorithm=algorithm)

    @property
    def secret_b32(self) -> str:
        """Unpadded base32 form of the secret, for export and reveal."""
        return encode_secret(self.secret)

    def renamed(self, name: str) -> "Credential":
        """Return a copy under a new name, sharing no buffers with ``self``."""
        return Credential(name, bytearray(self.secret), self.digits, self.algorithm)

    def wipe(self) -> None:
        """Zero the secret in place."""
        wipe(self.secret)
