"""
ANSI colour palettes for otpvault's terminal output.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class Palette:
    """Escape sequences used when writing to stderr."""

    red: str = "\033[1m\033[31m"
    green: str = "\033[1m\033[32m"
    yellow: str = "\033[1m\033[33m"
    blue: str = "\033[1m\033[34m"
    magenta: str = "\033[1m\033[35m"
    reset: str = "\033[0m"
    clear: str = "\033c"


COLOR_PALETTE = Palette()

# Redirected stderr or NO_COLOR: no escapes at all
PLAIN_PALETTE = Palette(
    red="", green="", yellow="", blue="", magenta="", reset="", clear=""
)


def palette_for(color: bool) -> Palette:
    return COLOR_PALETTE if color else PLAIN_PALETTE
