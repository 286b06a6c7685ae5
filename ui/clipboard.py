"""
System clipboard access through Qt.

A process owns its X11/Wayland clipboard selection only while it runs, so
:func:`copy_code` keeps a minimal Qt event loop alive until the code expires,
then clears the clipboard (unless something else was copied meanwhile).
"""

import logging
import signal
import sys

from PyQt6.QtCore import QTimer
from PyQt6.QtGui import QGuiApplication

logger = logging.getLogger(__name__)


def copy_code(code: str, hold_seconds: int) -> None:
    """Put ``code`` on the clipboard for ``hold_seconds`` or until Ctrl-C."""
    app = QGuiApplication.instance() or QGuiApplication(sys.argv[:1])
    clipboard = app.clipboard()
    clipboard.setText(code)

    def _clear_and_quit() -> None:
        if clipboard.text() == code:
            clipboard.setText("")
        app.quit()

    QTimer.singleShot(max(hold_seconds, 0) * 1000, _clear_and_quit)

    # Qt blocks Python signal handlers; a short ticker lets SIGINT through
    previous = signal.signal(signal.SIGINT, lambda *_: _clear_and_quit())
    ticker = QTimer()
    ticker.timeout.connect(lambda: None)
    ticker.start(200)
    try:
        app.exec()
    finally:
        ticker.stop()
        signal.signal(signal.SIGINT, previous)
    logger.debug("Clipboard released")
