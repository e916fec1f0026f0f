"""
QR Rendering

Turns a provisioning URI into a QR code an authenticator app can scan.
SVG output keeps this free of any raster imaging library.
"""

import base64
from io import BytesIO, StringIO

import qrcode
from qrcode.constants import ERROR_CORRECT_L
from qrcode.image.svg import SvgPathImage


def _build(uri: str) -> qrcode.QRCode:
    qr = qrcode.QRCode(
        version=None,
        error_correction=ERROR_CORRECT_L,
        box_size=10,
        border=4,
    )
    qr.add_data(uri)
    qr.make(fit=True)
    return qr


def provisioning_qr_data_uri(uri: str) -> str:
    """
    Render a provisioning URI as an inline SVG image.

    Args:
        uri: otpauth:// URI

    Returns:
        "data:image/svg+xml;base64,..." suitable for an <img> src
    """
    img = _build(uri).make_image(image_factory=SvgPathImage)
    buffer = BytesIO()
    img.save(buffer)
    encoded = base64.b64encode(buffer.getvalue()).decode('ascii')
    return f"data:image/svg+xml;base64,{encoded}"


def provisioning_qr_ascii(uri: str) -> str:
    """ASCII-art QR code for terminals."""
    out = StringIO()
    _build(uri).print_ascii(out=out)
    return out.getvalue()
