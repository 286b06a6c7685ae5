"""
Runtime configuration for otpvault.

One :class:`Config` is built by ``main.py`` and passed down to the store and
the terminal helpers; nothing reads process-wide state after that.
"""

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from core.utils import MAX_NAME_LEN

APP_NAME = "otpvault"
VERSION = "3.0.0"
DATAFILE_ENV = "OTPVAULT_DATAFILE"
PASSWORD_RETRIES = 3


def program_name(argv0: Optional[str] = None) -> str:
    """Return the invoked program's base name (``otpvault`` by default)."""
    name = Path(argv0 if argv0 is not None else sys.argv[0]).name
    return name or APP_NAME


def default_store_path(prog: Optional[str] = None) -> Path:
    """
    Default datafile location.

    ``$OTPVAULT_DATAFILE`` if set, otherwise ``~/.<prog>.enc`` so that copies
    of the binary under different names keep separate datafiles.
    """
    env = os.environ.get(DATAFILE_ENV)
    if env:
        return Path(env).expanduser()
    return Path.home() / f".{program_name(prog)}.enc"


def _stream_is_tty(stream) -> bool:
    try:
        return stream.isatty()
    except (AttributeError, ValueError):
        return False


@dataclass
class Config:
    """Options shared by the CLI, the store and the terminal helpers."""

    store_path: Path = field(default_factory=default_store_path)
    redirected: bool = field(default_factory=lambda: not _stream_is_tty(sys.stdout))
    max_name_len: int = MAX_NAME_LEN
    password_retries: int = PASSWORD_RETRIES
    color: bool = field(
        default_factory=lambda: _stream_is_tty(sys.stderr) and "NO_COLOR" not in os.environ
    )
