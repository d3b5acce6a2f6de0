import io
from typing import Optional

import cv2
import numpy as np
import qrcode
from qrcode.constants import ERROR_CORRECT_M


def render_png(payload: str, box_size: int = 8, border: int = 4) -> bytes:
    qr = qrcode.QRCode(
        error_correction=ERROR_CORRECT_M,
        box_size=box_size,
        border=border,
    )
    qr.add_data(payload)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def decode_png(image: bytes) -> Optional[str]:
    """Return the QR payload found in an encoded image, or None."""
    if not image:
        return None
    arr = np.frombuffer(image, dtype=np.uint8)
    frame = cv2.imdecode(arr, cv2.IMREAD_GRAYSCALE)
    if frame is None:
        return None
    try:
        data, _points, _ = cv2.QRCodeDetector().detectAndDecode(frame)
    except cv2.error:
        return None
    return data or None
