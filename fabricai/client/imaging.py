# imaging.py
"""
Upload normalization: every photo is decoded, turned upright, fitted within
1024px and re-encoded as JPEG before it is sent to the gateway.
"""

import base64
import io
from dataclasses import dataclass

import pillow_heif
from PIL import Image, ImageOps, UnidentifiedImageError

pillow_heif.register_heif_opener()

MAX_EDGE = 1024
JPEG_QUALITY = 90
MAX_INPUT_BYTES = 15 * 1024 * 1024


class ImageProcessingError(Exception):
    pass


@dataclass
class NormalizedImage:
    base64: str
    width: int
    height: int

    @property
    def data_uri(self) -> str:
        return f"data:image/jpeg;base64,{self.base64}"


def _flatten(img: Image.Image) -> Image.Image:
    """Drops transparency onto a white background and returns an RGB image."""
    if img.mode in ("RGBA", "LA") or (img.mode == "P" and "transparency" in img.info):
        rgba = img.convert("RGBA")
        background = Image.new("RGB", rgba.size, (255, 255, 255))
        background.paste(rgba, mask=rgba.split()[-1])
        return background
    if img.mode != "RGB":
        return img.convert("RGB")
    return img


def normalize_image(
    data: bytes,
    max_edge: int = MAX_EDGE,
    quality: int = JPEG_QUALITY,
    max_bytes: int = MAX_INPUT_BYTES,
) -> NormalizedImage:
    if not data:
        raise ImageProcessingError("The selected file is empty.")
    if len(data) > max_bytes:
        raise ImageProcessingError(f"The image is too large (max {max_bytes // (1024 * 1024)} MB).")

    try:
        with Image.open(io.BytesIO(data)) as img:
            img = ImageOps.exif_transpose(img)
            img = _flatten(img)
            img.thumbnail((max_edge, max_edge), Image.LANCZOS)

            buffer = io.BytesIO()
            img.save(buffer, format="JPEG", quality=quality)
            width, height = img.size
    except UnidentifiedImageError:
        raise ImageProcessingError("Unsupported image format.")
    except (OSError, ValueError) as e:
        raise ImageProcessingError(f"Could not process the image: {e}")

    return NormalizedImage(
        base64=base64.b64encode(buffer.getvalue()).decode("ascii"),
        width=width,
        height=height,
    )
