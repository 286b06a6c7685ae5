"""
QR code image reader for ``otpvault import --qr``.

Uses OpenCV to load the image and pyzbar to decode it. Both are optional
(``pip install otpvault[qr]``); a clear error is raised when they are missing.
"""

import logging
import os
from typing import List

logger = logging.getLogger(__name__)


def _check_deps() -> tuple[bool, str]:
    """Return (available, message) for optional scanning deps."""
    try:
        import cv2  # noqa: F401
        from pyzbar import pyzbar  # noqa: F401
        return True, ""
    except ImportError as exc:
        return False, str(exc)


def scan_image_file(path: str) -> List[str]:
    """
    Decode every otpauth:// QR code in an image file.

    Args:
        path: Path to the image file.

    Returns:
        Decoded otpauth URIs in the order pyzbar reports them (may be empty).

    Raises:
        RuntimeError:      If dependencies are unavailable.
        FileNotFoundError: If the image file does not exist.
        ValueError:        If OpenCV cannot read the image.
    """
    available, msg = _check_deps()
    if not available:
        raise RuntimeError(
            f"QR scanning requires opencv-python and pyzbar: {msg}"
        )

    import cv2
    from pyzbar import pyzbar

    if not os.path.isfile(path):
        raise FileNotFoundError(f"Image not found: {path}")

    img = cv2.imread(path)
    if img is None:
        raise ValueError(f"Could not read image: {path}")

    uris = []
    for code in pyzbar.decode(img):
        if code.type != "QRCODE":
            continue
        data = code.data.decode("utf-8", errors="ignore")
        if data.startswith("otpauth://"):
            uris.append(data)
        else:
            logger.debug("Skipping non-otpauth QR code in %s", path)
    return uris
