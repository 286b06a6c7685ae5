"""
Terminal I/O for otpvault: password and secret prompts, messages, and the
once-per-second redraw loop used by the live code displays.

Everything interactive goes to stderr so that stdout only ever carries plain
results (codes, names, URIs) when it is redirected.
"""

import getpass
import logging
import shutil
import sys
import threading
import time
from typing import Callable, List, Optional, Sequence, TextIO

from core.config import Config
from core.errors import InvalidSecret, VaultError
from core.totp import PERIOD, remaining_seconds
from core.utils import normalize_secret
from ui.styles import palette_for

logger = logging.getLogger(__name__)


class TerminalError(VaultError):
    """The terminal cannot show the requested output."""


class TerminalPrompter:
    """Reads passwords and secrets and writes status lines to stderr."""

    def __init__(
        self,
        config: Config,
        stdin: Optional[TextIO] = None,
        stderr: Optional[TextIO] = None,
        getpass_func: Callable[..., str] = getpass.getpass,
    ) -> None:
        self._config = config
        self._stdin = stdin if stdin is not None else sys.stdin
        self._stderr = stderr if stderr is not None else sys.stderr
        self._getpass = getpass_func
        self.palette = palette_for(config.color)

    # ── Passwords ────────────────────────────────────────────────────────

    def read_password(self, prompt: str) -> bytearray:
        """Read the password from piped stdin, falling back to a hidden prompt."""
        p = self.palette
        if not self._config.redirected:
            self.write(f"Database: {p.blue}{self._config.store_path}{p.reset}")
        if not self._isatty(self._stdin):
            data = self._read_piped()
            # One trailing newline comes from echo/printf, not from the password
            if data.endswith(b"\n"):
                data.pop()
            if data.endswith(b"\r"):
                data.pop()
            if data:
                logger.debug("Password read from piped stdin")
                return data
        return self.read_new_password(prompt)

    def _read_piped(self) -> bytearray:
        # Raw bytes: the password need not be valid UTF-8
        buffer = getattr(self._stdin, "buffer", None)
        if buffer is not None:
            return bytearray(buffer.read())
        return bytearray(self._stdin.read().encode("utf-8"))

    def read_new_password(self, prompt: str) -> bytearray:
        """Hidden prompt on the controlling terminal."""
        p = self.palette
        text = self._getpass(f"{p.yellow}{prompt}{p.reset}", stream=self._stderr)
        return bytearray(text.encode("utf-8"))

    # ── Other input ──────────────────────────────────────────────────────

    def confirm(self, prompt: str) -> bool:
        p = self.palette
        self._stderr.write(f"{p.yellow}{prompt}{p.reset}")
        self._stderr.flush()
        answer = self._stdin.readline()
        return answer[:1] in ("y", "Y")

    def ask_secret(self) -> Optional[str]:
        """
        Prompt until a valid base32 secret is entered.

        Returns None when the user enters nothing (or stdin is exhausted).
        """
        p = self.palette
        while True:
            self._stderr.write(
                f"{p.yellow}Enter base32 Secret{p.reset} [empty field to cancel]: "
            )
            self._stderr.flush()
            line = self._stdin.readline()
            if not line.strip():
                return None
            try:
                return normalize_secret(line)
            except InvalidSecret as exc:
                self.error(str(exc))

    # ── Output ───────────────────────────────────────────────────────────

    def write(self, text: str, end: str = "\n") -> None:
        self._stderr.write(text + end)
        self._stderr.flush()

    def info(self, message: str) -> None:
        self.write(f"{self.palette.green}{message}{self.palette.reset}")

    def warn(self, message: str) -> None:
        self.write(f"{self.palette.red}{message}{self.palette.reset}")

    def error(self, message: str) -> None:
        self.write(f"{self.palette.red}{message}{self.palette.reset}")

    def fatal(self, context: str, exc: BaseException) -> None:
        p = self.palette
        self.write(f"{p.red}{context}: {p.yellow}{exc}{p.reset}")

    def clear(self) -> None:
        if self.palette.clear:
            self.write(self.palette.clear, end="")

    @staticmethod
    def _isatty(stream: TextIO) -> bool:
        try:
            return stream.isatty()
        except (AttributeError, ValueError):
            return False


# ── Redraw loop ───────────────────────────────────────────────────────────────

def run_refresh_loop(
    render: Callable[[int], None],
    on_exit: Callable[[], None],
    stop: Optional[threading.Event] = None,
    tick: float = 1.0,
    clock: Callable[[], float] = time.time,
) -> None:
    """
    Call ``render(seconds_left)`` every ``tick`` until ``stop`` is set or
    Ctrl-C is pressed; ``on_exit`` runs exactly once on every way out.
    """
    stop = stop if stop is not None else threading.Event()
    try:
        while not stop.is_set():
            render(remaining_seconds(PERIOD, clock()))
            stop.wait(tick)
    except KeyboardInterrupt:
        logger.debug("Display loop interrupted")
    finally:
        on_exit()


# ── Code grid ─────────────────────────────────────────────────────────────────

class CodeGrid:
    """Column layout for ``show``: ``CODE [NEXT] NAME`` cells across the terminal."""

    def __init__(
        self,
        count: int,
        name_width: int,
        show_next: bool = False,
        size: Optional[Sequence[int]] = None,
    ) -> None:
        width, height = size if size is not None else shutil.get_terminal_size()
        self.count = count
        self.name_width = name_width
        self.show_next = show_next
        cell = 8 + 1 + (8 + 1 if show_next else 0) + name_width + 1
        self.cols = (width + 1) // cell
        if self.cols < 1:
            raise TerminalError("Terminal too narrow to properly display entries")
        if count > self.cols * (height - 1):
            raise TerminalError("Terminal height too low, select fewer entries with REGEX")

    def header(self) -> str:
        if self.show_next:
            hdr, pad = "   TOTP  nextTOTP - Name", " " * (self.name_width - 6)
        else:
            hdr, pad = "   TOTP - Name", " " * (self.name_width - 4)
        return hdr + (pad + hdr) * (min(self.cols, self.count) - 1)

    def rows(self, cells: List[str]) -> List[str]:
        return [" ".join(cells[i : i + self.cols]) for i in range(0, len(cells), self.cols)]

    def cell(self, code: str, next_code: str, name: str, palette) -> str:
        tag = name[: self.name_width].ljust(self.name_width)
        if self.show_next:
            return f"{palette.green}{code:>8}{palette.magenta}{next_code:>8}{palette.reset} {tag}"
        return f"{palette.green}{code:>8}{palette.reset} {tag}"
