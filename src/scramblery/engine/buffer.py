"""RGBA pixel buffer — the unit every effect reads and writes.

Backed by a (height, width, 4) uint8 array. The flat channel layout is
row-major: pixel (x, y) channel c lives at (y * width + x) * 4 + c.
"""

import numpy as np

from scramblery.engine.errors import InvalidBuffer, OutOfBounds

CHANNELS = 4


class PixelBuffer:
    """Width x height RGBA pixels.

    Point access (get/set) raises OutOfBounds; rectangle access
    (extract_rect/blit) clips to the buffer instead.
    """

    def __init__(self, pixels: np.ndarray):
        if not isinstance(pixels, np.ndarray):
            raise InvalidBuffer(
                f"expected ndarray, got {type(pixels).__name__}"
            )
        if pixels.ndim != 3 or pixels.shape[2] != CHANNELS:
            raise InvalidBuffer(f"expected (H, W, 4) pixels, got {pixels.shape}")
        if pixels.shape[0] == 0 or pixels.shape[1] == 0:
            raise InvalidBuffer(
                f"zero-size buffer: {pixels.shape[1]}x{pixels.shape[0]}"
            )
        if pixels.dtype != np.uint8:
            raise InvalidBuffer(f"expected uint8 pixels, got {pixels.dtype}")
        self.pixels = pixels

    @classmethod
    def from_bytes(cls, width: int, height: int, data) -> "PixelBuffer":
        """Wrap a flat RGBA byte sequence. Length must be width*height*4."""
        if width <= 0 or height <= 0:
            raise InvalidBuffer(f"zero-size buffer: {width}x{height}")
        expected = width * height * CHANNELS
        if len(data) != expected:
            raise InvalidBuffer(
                f"byte length {len(data)} does not match {width}x{height}x4 = {expected}"
            )
        flat = np.frombuffer(bytes(data), dtype=np.uint8)
        return cls(flat.reshape(height, width, CHANNELS).copy())

    @classmethod
    def blank(
        cls, width: int, height: int, rgba: tuple[int, int, int, int] = (0, 0, 0, 0)
    ) -> "PixelBuffer":
        if width <= 0 or height <= 0:
            raise InvalidBuffer(f"zero-size buffer: {width}x{height}")
        pixels = np.empty((height, width, CHANNELS), dtype=np.uint8)
        pixels[:, :] = rgba
        return cls(pixels)

    @property
    def width(self) -> int:
        return self.pixels.shape[1]

    @property
    def height(self) -> int:
        return self.pixels.shape[0]

    @property
    def channels(self) -> np.ndarray:
        """Flat row-major RGBA view (shares memory with the buffer)."""
        return self.pixels.reshape(-1)

    @staticmethod
    def index_of(x: int, y: int, width: int, channel: int = 0) -> int:
        return (y * width + x) * CHANNELS + channel

    def _check_point(self, x: int, y: int):
        if not (0 <= x < self.width and 0 <= y < self.height):
            raise OutOfBounds(
                f"pixel ({x}, {y}) outside {self.width}x{self.height} buffer"
            )

    def get(self, x: int, y: int) -> tuple[int, int, int, int]:
        self._check_point(x, y)
        r, g, b, a = self.pixels[y, x]
        return int(r), int(g), int(b), int(a)

    def set(self, x: int, y: int, r: int, g: int, b: int, a: int):
        self._check_point(x, y)
        self.pixels[y, x] = (r, g, b, a)

    def _clip(self, x: int, y: int, w: int, h: int) -> tuple[int, int, int, int]:
        x0 = max(0, x)
        y0 = max(0, y)
        x1 = min(self.width, x + w)
        y1 = min(self.height, y + h)
        return x0, y0, x1, y1

    def extract_rect(self, x: int, y: int, w: int, h: int) -> "PixelBuffer | None":
        """Copy out the w x h rectangle at (x, y), clipped to the buffer.

        Returns None when nothing of the rectangle overlaps the buffer.
        """
        x0, y0, x1, y1 = self._clip(x, y, w, h)
        if x1 <= x0 or y1 <= y0:
            return None
        return PixelBuffer(self.pixels[y0:y1, x0:x1].copy())

    def blit(self, sub: "PixelBuffer", x: int, y: int):
        """Write sub's pixels with its top-left at (x, y), clipping silently."""
        x0, y0, x1, y1 = self._clip(x, y, sub.width, sub.height)
        if x1 <= x0 or y1 <= y0:
            return
        self.pixels[y0:y1, x0:x1] = sub.pixels[y0 - y : y1 - y, x0 - x : x1 - x]

    def copy(self) -> "PixelBuffer":
        return PixelBuffer(self.pixels.copy())

    def to_bytes(self) -> bytes:
        return self.pixels.tobytes()

    def __eq__(self, other) -> bool:
        if not isinstance(other, PixelBuffer):
            return NotImplemented
        return self.pixels.shape == other.pixels.shape and bool(
            np.array_equal(self.pixels, other.pixels)
        )

    __hash__ = None

    def __repr__(self) -> str:
        return f"PixelBuffer({self.width}x{self.height})"
