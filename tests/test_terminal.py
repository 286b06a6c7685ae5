"""Tests for ui.terminal and ui.styles."""

import io
import threading
from pathlib import Path

import pytest

from core.config import Config
from ui.styles import COLOR_PALETTE, PLAIN_PALETTE, palette_for
from ui.terminal import CodeGrid, TerminalError, TerminalPrompter, run_refresh_loop


def make_term(stdin: str = "", hidden=("typed",), color: bool = False) -> TerminalPrompter:
    answers = iter(hidden)
    config = Config(store_path=Path("otp.enc"), redirected=True, color=color)
    return TerminalPrompter(
        config,
        stdin=io.StringIO(stdin),
        stderr=io.StringIO(),
        getpass_func=lambda prompt, stream=None: next(answers),
    )


# ── Passwords ─────────────────────────────────────────────────────────────────

def test_piped_password_drops_trailing_newline() -> None:
    assert make_term("s3cret pw\n").read_password("pw: ") == bytearray(b"s3cret pw")


def test_piped_password_keeps_non_utf8_bytes() -> None:
    config = Config(store_path=Path("otp.enc"), redirected=True, color=False)
    stdin = io.TextIOWrapper(io.BytesIO(b"\xff\xfepw\n"), encoding="utf-8")
    term = TerminalPrompter(config, stdin=stdin, stderr=io.StringIO())
    assert term.read_password("pw: ") == bytearray(b"\xff\xfepw")


def test_empty_pipe_falls_back_to_hidden_prompt() -> None:
    assert make_term("").read_password("pw: ") == bytearray(b"typed")


def test_new_password_ignores_stdin() -> None:
    term = make_term("piped\n", hidden=("fresh",))
    assert term.read_new_password("New: ") == bytearray(b"fresh")


# ── Other input ───────────────────────────────────────────────────────────────

@pytest.mark.parametrize("answer,expected", [("y\n", True), ("Yes\n", True), ("n\n", False), ("", False)])
def test_confirm(answer: str, expected: bool) -> None:
    assert make_term(answer).confirm("Sure? [y/N] ") is expected


def test_ask_secret_retries_until_valid() -> None:
    term = make_term("not base32 1!\njbsw y3dp ehpk 3pxp\n")
    assert term.ask_secret() == "JBSWY3DPEHPK3PXP"
    assert "Invalid base32" in term._stderr.getvalue()


def test_ask_secret_empty_cancels() -> None:
    assert make_term("\n").ask_secret() is None
    assert make_term("").ask_secret() is None


# ── Output ────────────────────────────────────────────────────────────────────

def test_plain_output_has_no_escapes() -> None:
    term = make_term()
    term.error("Entry 'x' not found")
    term.clear()
    assert term._stderr.getvalue() == "Entry 'x' not found\n"


def test_palette_for() -> None:
    assert palette_for(True) is COLOR_PALETTE
    assert palette_for(False) is PLAIN_PALETTE
    assert make_term(color=True).palette.red.startswith("\033[")


# ── Redraw loop ───────────────────────────────────────────────────────────────

def test_refresh_loop_runs_until_stopped() -> None:
    stop = threading.Event()
    seen = []
    exits = []

    def render(left: int) -> None:
        seen.append(left)
        if len(seen) == 3:
            stop.set()

    run_refresh_loop(render, lambda: exits.append(True), stop=stop, tick=0, clock=lambda: 29.0)
    assert seen == [1, 1, 1]
    assert exits == [True]


def test_refresh_loop_interrupt_runs_finalizer() -> None:
    exits = []

    def render(left: int) -> None:
        raise KeyboardInterrupt

    run_refresh_loop(render, lambda: exits.append(True), tick=0)
    assert exits == [True]


def test_refresh_loop_error_runs_finalizer_and_propagates() -> None:
    exits = []

    def render(left: int) -> None:
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        run_refresh_loop(render, lambda: exits.append(True), tick=0)
    assert exits == [True]


# ── Code grid ─────────────────────────────────────────────────────────────────

def test_grid_columns() -> None:
    grid = CodeGrid(3, 20, size=(80, 24))
    assert grid.cols == 2
    assert grid.header() == "   TOTP - Name" + " " * 16 + "   TOTP - Name"
    cells = [grid.cell("123456", "", n, PLAIN_PALETTE) for n in ("a", "b", "c")]
    rows = grid.rows(cells)
    assert len(rows) == 2
    assert rows[0].startswith("  123456 a")


def test_grid_with_next_code() -> None:
    grid = CodeGrid(1, 20, show_next=True, size=(80, 24))
    cell = grid.cell("123456", "654321", "name", PLAIN_PALETTE)
    assert cell == "  123456  654321 name" + " " * 16


def test_grid_too_narrow() -> None:
    with pytest.raises(TerminalError, match="narrow"):
        CodeGrid(1, 20, size=(20, 24))


def test_grid_too_short() -> None:
    with pytest.raises(TerminalError, match="height"):
        CodeGrid(5, 20, size=(80, 3))
