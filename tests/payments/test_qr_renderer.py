import pytest

from core.settings import QRSettings
from domain.payment.exceptions import EncodingError
from infrastructure.external.qr import render


PAYLOAD = "00020101021238570010A000000727012700069704220113VQRQ00001234560208QRIBFTTA53037045405150005802VN62150811DH1234567896304ABCD"


def test_render_produces_png():
    image = render(PAYLOAD)

    assert image.png.startswith(b"\x89PNG\r\n\x1a\n")
    assert image.media_type == "image/png"
    assert image.data_uri.startswith("data:image/png;base64,")
    assert image.modules >= 21


def test_render_is_deterministic():
    assert render(PAYLOAD).png == render(PAYLOAD).png


def test_render_honours_options():
    small = render(PAYLOAD, QRSettings(box_size=2, border=1))
    large = render(PAYLOAD, QRSettings(box_size=10, border=4))

    assert small.pixel_size == (small.modules + 2) * 2
    assert large.pixel_size > small.pixel_size


def test_empty_payload_is_rejected():
    with pytest.raises(EncodingError) as exc_info:
        render("")
    assert exc_info.value.details == {"payload_length": 0}


def test_oversized_payload_is_rejected():
    with pytest.raises(EncodingError):
        render("x" * 5000, QRSettings(error_correction="H"))
