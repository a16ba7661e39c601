"""
QR renderer: opaque payment payload -> PNG bitmap.

Pure and deterministic; no network. Uses the `qrcode` package with the
Pillow image factory.
"""
from __future__ import annotations

import base64
import io
from dataclasses import dataclass
from typing import Optional

import qrcode
from qrcode.constants import ERROR_CORRECT_H, ERROR_CORRECT_L, ERROR_CORRECT_M, ERROR_CORRECT_Q
from qrcode.exceptions import DataOverflowError

from core.settings import QRSettings, payment_settings
from domain.payment.exceptions import EncodingError


_ERROR_CORRECTION = {
    "L": ERROR_CORRECT_L,
    "M": ERROR_CORRECT_M,
    "Q": ERROR_CORRECT_Q,
    "H": ERROR_CORRECT_H,
}


@dataclass(frozen=True)
class QRImage:
    png: bytes
    pixel_size: int
    modules: int

    @property
    def media_type(self) -> str:
        return "image/png"

    @property
    def data_uri(self) -> str:
        return "data:image/png;base64," + base64.b64encode(self.png).decode("ascii")


def render(payload: str, options: Optional[QRSettings] = None) -> QRImage:
    """Encode `payload` as a PNG QR code.

    Raises:
        EncodingError: payload is empty or exceeds QR capacity
    """
    if not payload:
        raise EncodingError(payload_length=0)
    opts = options or payment_settings.qr

    qr = qrcode.QRCode(
        version=None,
        error_correction=_ERROR_CORRECTION[opts.error_correction],
        box_size=opts.box_size,
        border=opts.border,
    )
    try:
        qr.add_data(payload)
        qr.make(fit=True)
    except (DataOverflowError, ValueError) as exc:
        raise EncodingError(payload_length=len(payload)) from exc

    image = qr.make_image(fill_color=opts.fill_color, back_color=opts.back_color)
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return QRImage(png=buffer.getvalue(), pixel_size=image.pixel_size, modules=qr.modules_count)
