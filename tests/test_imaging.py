import base64
import io

import pytest
from PIL import Image

from conftest import make_image
from fabricai.client.imaging import ImageProcessingError, normalize_image


def decode(normalized):
    return Image.open(io.BytesIO(base64.b64decode(normalized.base64)))


def test_large_image_is_fitted_and_reencoded():
    normalized = normalize_image(make_image("PNG", size=(2048, 1024)))

    assert (normalized.width, normalized.height) == (1024, 512)
    image = decode(normalized)
    assert image.format == "JPEG"
    assert image.size == (1024, 512)
    assert normalized.data_uri.startswith("data:image/jpeg;base64,")


def test_small_image_keeps_its_size():
    normalized = normalize_image(make_image("WEBP", size=(300, 200)))
    assert (normalized.width, normalized.height) == (300, 200)


def test_exif_orientation_is_applied():
    buffer = io.BytesIO()
    exif = Image.Exif()
    exif[0x0112] = 6  # rotated 90 degrees clockwise
    Image.new("RGB", (200, 100), (10, 120, 10)).save(buffer, format="JPEG", exif=exif)

    normalized = normalize_image(buffer.getvalue())

    assert (normalized.width, normalized.height) == (100, 200)


def test_transparency_is_flattened():
    buffer = io.BytesIO()
    Image.new("RGBA", (40, 40), (0, 0, 0, 0)).save(buffer, format="PNG")

    image = decode(normalize_image(buffer.getvalue())).convert("RGB")

    assert image.getpixel((20, 20)) == pytest.approx((255, 255, 255), abs=3)


def test_rejects_empty_oversized_and_unknown_files():
    with pytest.raises(ImageProcessingError, match="empty"):
        normalize_image(b"")
    with pytest.raises(ImageProcessingError, match="too large"):
        normalize_image(make_image(), max_bytes=10)
    with pytest.raises(ImageProcessingError, match="Unsupported image format"):
        normalize_image(b"definitely not an image")
