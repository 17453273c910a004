"""
QR rendering for gold bar secrets, team join codes and assignment cards.
"""
import base64
import io
import json

import qrcode
from qrcode.image.pil import PilImage


def render_png(payload: str) -> bytes:
    qr = qrcode.QRCode(
        version=None,
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=10,
        border=4,
    )
    qr.add_data(payload)
    qr.make(fit=True)
    img = qr.make_image(image_factory=PilImage, fill_color="black", back_color="white")
    buffer = io.BytesIO()
    img.save(buffer, format='PNG')
    return buffer.getvalue()


def render_data_url(payload) -> str:
    """PNG data URL for a string payload; dicts are JSON-encoded first."""
    if not isinstance(payload, str):
        payload = json.dumps(payload)
    encoded = base64.b64encode(render_png(payload)).decode('ascii')
    return f"data:image/png;base64,{encoded}"
