"""Image decode/encode at the engine boundary (Pillow)."""

import base64
import io

import numpy as np
from PIL import Image, UnidentifiedImageError

from scramblery.engine.buffer import PixelBuffer
from scramblery.engine.errors import InvalidBuffer


def probe_size(path: str) -> tuple[int, int]:
    """Read (width, height) from the file header without decoding pixels."""
    try:
        with Image.open(path) as img:
            return img.size
    except UnidentifiedImageError as e:
        raise InvalidBuffer(f"not a recognised image: {path}") from e


def decode_image(path: str) -> PixelBuffer:
    """Decode any Pillow-readable image file into an RGBA buffer."""
    try:
        with Image.open(path) as img:
            rgba = img.convert("RGBA")
    except UnidentifiedImageError as e:
        raise InvalidBuffer(f"not a recognised image: {path}") from e
    return PixelBuffer(np.array(rgba, dtype=np.uint8))


def decode_bytes(data: bytes) -> PixelBuffer:
    """Decode an in-memory encoded image (PNG, JPEG, ...) into RGBA."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            rgba = img.convert("RGBA")
    except UnidentifiedImageError as e:
        raise InvalidBuffer("payload is not a recognised image") from e
    return PixelBuffer(np.array(rgba, dtype=np.uint8))


def encode_png(buffer: PixelBuffer) -> bytes:
    """Encode an RGBA buffer to PNG bytes (lossless, keeps alpha)."""
    img = Image.fromarray(buffer.pixels)
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def encode_png_b64(buffer: PixelBuffer) -> str:
    """PNG bytes as ASCII base64, ready for JSON transport."""
    return base64.b64encode(encode_png(buffer)).decode("ascii")


def decode_raw_b64(width: int, height: int, data: str) -> PixelBuffer:
    """Raw base64 RGBA bytes → buffer (length checked by PixelBuffer)."""
    try:
        raw = base64.b64decode(data, validate=True)
    except (ValueError, TypeError) as e:
        raise InvalidBuffer("pixel data is not valid base64") from e
    return PixelBuffer.from_bytes(width, height, raw)
