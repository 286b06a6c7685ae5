"""
Encrypted single-file datastore for TOTP secrets.

File layout
-----------
    [ nonce (12 bytes) | AES-256-GCM ciphertext + 16-byte tag ]

The nonce is also the Argon2id salt. Every save draws a new one, so the key
changes on every write. The plaintext is the JSON document described in
:mod:`storage.schema`.

The file is written atomically (temp file + rename) with mode 0600 inside a
0700 directory.
"""

import hmac
import logging
import os
import re
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Union

from core import crypto
from core.config import Config
from core.credential import Credential
from core.errors import CorruptStore, DuplicateName, NotFound, WrongPassword
from core.utils import MAX_NAME_LEN, validate_name
from storage.schema import decode_and_wipe, encode_entries

logger = logging.getLogger(__name__)

FILE_MODE = 0o600
DIR_MODE = 0o700


class PasswordPrompter(Protocol):
    """What the store needs from the terminal."""

    def read_password(self, prompt: str) -> bytearray:
        """Existing password: piped stdin if available, else a hidden prompt."""

    def read_new_password(self, prompt: str) -> bytearray:
        """A hidden prompt on the terminal, never stdin."""

    def info(self, message: str) -> None: ...

    def warn(self, message: str) -> None: ...


# ── Data model ────────────────────────────────────────────────────────────────

@dataclass
class Store:
    """An unlocked datafile: its path, its password and the entries."""

    path: Path
    password: bytearray = field(repr=False)
    entries: Dict[str, Credential] = field(default_factory=dict)
    max_name_len: int = MAX_NAME_LEN

    def __enter__(self) -> "Store":
        return self

    def __exit__(self, *exc_info) -> None:
        self.wipe()

    # ── Lookup ────────────────────────────────────────────────────────────

    def get(self, name: str) -> Credential:
        try:
            return self.entries[name]
        except KeyError:
            raise NotFound(name) from None

    def __contains__(self, name: str) -> bool:
        return name in self.entries

    def names(self, pattern: Optional[str] = None, case_sensitive: bool = False) -> List[str]:
        """Sorted names, optionally filtered by a regular expression search."""
        if not pattern:
            return sorted(self.entries)
        regex = re.compile(pattern, 0 if case_sensitive else re.IGNORECASE)
        return sorted(name for name in self.entries if regex.search(name))

    # ── Mutation ──────────────────────────────────────────────────────────

    def add(self, credential: Credential, overwrite: bool = False, force: bool = False) -> bool:
        """
        Insert ``credential``; return True if it replaced an existing entry.

        Raises:
            InvalidName:   If the name is unusable (``force`` lifts the length
                           limit only).
            DuplicateName: If the name exists and ``overwrite`` is False.
        """
        validate_name(credential.name, self.max_name_len, force)
        old = self.entries.get(credential.name)
        if old is not None and not overwrite:
            raise DuplicateName(credential.name)
        self.entries[credential.name] = credential
        if old is not None and old is not credential:
            old.wipe()
        return old is not None

    def delete(self, name: str) -> None:
        self.get(name).wipe()
        del self.entries[name]

    def rename(self, name: str, new_name: str, force: bool = False) -> None:
        """Move entry ``name`` to ``new_name``, which must not exist yet."""
        if not force:
            validate_name(name, self.max_name_len)
        validate_name(new_name, self.max_name_len, force)
        old = self.get(name)
        if new_name in self.entries:
            raise DuplicateName(new_name)
        self.entries[new_name] = old.renamed(new_name)
        del self.entries[name]
        old.wipe()

    # ── Cleanup ───────────────────────────────────────────────────────────

    def wipe(self) -> None:
        """Zero the password and every secret held by this store."""
        crypto.wipe(self.password)
        for cred in self.entries.values():
            cred.wipe()


# ── Password setup ────────────────────────────────────────────────────────────

def create_password(prompter: PasswordPrompter, retries: int = 3) -> bytearray:
    """
    Ask for a new non-empty password twice, up to ``retries`` times.

    Raises:
        WrongPassword: When every attempt was empty or mismatched.
    """
    for attempt in range(retries, 0, -1):
        retry = ", retry" if attempt > 1 else ""
        pwd = prompter.read_new_password("New database password: ")
        if not pwd:
            prompter.warn("Password can't be empty" + retry)
            continue
        confirm = prompter.read_new_password("Confirm database password: ")
        try:
            if hmac.compare_digest(bytes(pwd), bytes(confirm)):
                return pwd
        finally:
            crypto.wipe(confirm)
        crypto.wipe(pwd)
        prompter.warn("Passwords not the same" + retry)
    raise WrongPassword("no password set, too many attempts")


# ── Open / save ───────────────────────────────────────────────────────────────

def open_store(config: Config, prompter: PasswordPrompter) -> Store:
    """
    Unlock the datafile at ``config.store_path``.

    A missing file is a first run: a password is set up and an empty
    datafile is written immediately.

    Raises:
        CorruptStore:  File too short, or the plaintext is not the current
                       schema.
        WrongPassword: Authentication failed, or no new password was set.
        OSError:       The file could not be read or written.
    """
    path = Path(config.store_path)
    if not path.exists():
        logger.info("No datafile at %s, initializing", path)
        prompter.info(f"Initializing database file {path}")
        store = Store(
            path,
            create_password(prompter, config.password_retries),
            max_name_len=config.max_name_len,
        )
        try:
            save_store(store)
        except BaseException:
            store.wipe()
            raise
        return store

    blob = path.read_bytes()
    if len(blob) < crypto.NONCE_SIZE + 1:
        raise CorruptStore(f"insufficient data in {path}")

    password = prompter.read_password("Enter database password: ")
    try:
        entries = decode_and_wipe(crypto.decrypt_with_password(blob, password))
    except BaseException:
        crypto.wipe(password)
        raise
    logger.info("Opened %s with %d entries", path, len(entries))
    return Store(path, password, entries, max_name_len=config.max_name_len)


def save_store(store: Store) -> None:
    """
    Re-encrypt ``store`` under a fresh nonce and atomically replace the file.

    Raises:
        OSError: On any filesystem failure; the previous file is untouched.
    """
    plaintext = encode_entries(store.entries)
    try:
        blob = crypto.encrypt_with_password(plaintext, store.password)
    finally:
        crypto.wipe(plaintext)
    _atomic_write(store.path, blob)
    logger.info("Saved %d entries to %s", len(store.entries), store.path)


def change_password(
    store: Store, prompter: PasswordPrompter, retries: int = 3
) -> None:
    """Set a new password for ``store`` and save it under that password."""
    new_password = create_password(prompter, retries)
    crypto.wipe(store.password)
    store.password = new_password
    save_store(store)


# ── Internals ─────────────────────────────────────────────────────────────────

def _atomic_write(path: Union[str, Path], data: bytes) -> None:
    path = Path(path)
    path.parent.mkdir(mode=DIR_MODE, parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
            fh.flush()
            os.fsync(fh.fileno())
        os.chmod(tmp, FILE_MODE)
        os.replace(tmp, path)
    except BaseException:
        try:
            os.unlink(tmp)
        except FileNotFoundError:
            pass
        raise
