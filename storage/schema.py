"""
Plaintext schema of the datafile.

The decrypted datafile is UTF-8 JSON::

    {
      "version": 3,
      "entries": {
        "<name>": {"secret": "<base32>", "digits": 6, "algorithm": "SHA1"}
      }
    }

Older releases wrote other layouts. Those are recognised only to tell the
user which release to migrate with; they are never loaded.
"""

import json
import logging
from typing import Callable, Dict, List, Tuple

from core.credential import Credential
from core.crypto import wipe
from core.errors import CorruptStore, VaultError
from core.totp import Algorithm

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 3


# ── Current schema ────────────────────────────────────────────────────────────

def encode_entries(entries: Dict[str, Credential]) -> bytearray:
    """Serialize the collection (sorted by name) to a mutable UTF-8 buffer."""
    data = {
        "version": SCHEMA_VERSION,
        "entries": {
            name: {
                "secret": cred.secret_b32,
                "digits": cred.digits,
                "algorithm": cred.algorithm.value,
            }
            for name, cred in sorted(entries.items())
        },
    }
    return bytearray(json.dumps(data, separators=(",", ":")).encode("utf-8"))


def _decode_current(doc: object) -> Dict[str, Credential]:
    if not isinstance(doc, dict) or doc.get("version") != SCHEMA_VERSION:
        raise ValueError("not a version 3 document")
    raw_entries = doc["entries"]
    if not isinstance(raw_entries, dict):
        raise ValueError("entries is not a mapping")
    entries: Dict[str, Credential] = {}
    try:
        for name, item in raw_entries.items():
            if not isinstance(item["digits"], int):
                raise ValueError("digits is not an integer")
            entries[name] = Credential.from_base32(
                name, item["secret"], item["digits"], item["algorithm"]
            )
    except Exception:
        for cred in entries.values():
            cred.wipe()
        raise
    return entries


# ── Legacy schemas (diagnostic only) ──────────────────────────────────────────

def _check_legacy_v2(doc: object) -> None:
    # {"<name>": {"secret": str, "digits": "6", "algorithm": "SHA1"}}
    if not isinstance(doc, dict) or not doc or "version" in doc:
        raise ValueError("not a version 2 document")
    for item in doc.values():
        if not isinstance(item["secret"], str) or not isinstance(item["digits"], str):
            raise ValueError("not a version 2 entry")
        Algorithm.parse(item["algorithm"])


def _check_legacy_v1(doc: object) -> None:
    # {"<name>": {"secret": str, "digits": 6}}, SHA1 only
    if not isinstance(doc, dict) or not doc or "version" in doc:
        raise ValueError("not a version 1 document")
    for item in doc.values():
        if set(item) != {"secret", "digits"} or not isinstance(item["digits"], int):
            raise ValueError("not a version 1 entry")


# Most recent first; each entry names the release able to read that layout.
LEGACY_SCHEMAS: List[Tuple[str, Callable[[object], None]]] = [
    ("2.x", _check_legacy_v2),
    ("1.x", _check_legacy_v1),
]


# ── Decoding ──────────────────────────────────────────────────────────────────

def decode_entries(plaintext: bytearray) -> Dict[str, Credential]:
    """
    Decode an authenticated plaintext into a name → :class:`Credential` map.

    Raises:
        CorruptStore: If the plaintext is not the current schema. When it
            matches an older layout, the message names the release to
            migrate with.
    """
    try:
        doc = json.loads(bytes(plaintext).decode("utf-8"))
    except (UnicodeDecodeError, ValueError):
        raise CorruptStore("invalid entries data") from None

    try:
        return _decode_current(doc)
    except (KeyError, TypeError, ValueError, VaultError) as exc:
        logger.debug("Current schema rejected: %s", exc)

    for release, check in LEGACY_SCHEMAS:
        try:
            check(doc)
        except (AttributeError, KeyError, TypeError, ValueError, VaultError):
            continue
        logger.info("Datafile matches the layout of release %s", release)
        raise CorruptStore(
            f"datafile was written by an older, incompatible version; "
            f"migrate it with otpvault {release} before use"
        )
    raise CorruptStore("invalid entries data")


def decode_and_wipe(plaintext: bytearray) -> Dict[str, Credential]:
    """:func:`decode_entries`, zeroing ``plaintext`` on every exit path."""
    try:
        return decode_entries(plaintext)
    finally:
        wipe(plaintext)
