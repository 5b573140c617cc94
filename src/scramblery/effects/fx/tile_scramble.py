"""Tile Scramble — cut the image into a grid of tiles and shuffle them."""

from dataclasses import dataclass

import numpy as np

from scramblery.engine.buffer import PixelBuffer
from scramblery.engine.determinism import make_rng
from scramblery.engine.errors import InvalidParameter
from scramblery.engine.region import RegionMask

EFFECT_ID = "fx.tile_scramble"
EFFECT_NAME = "Scramble Image"
EFFECT_CATEGORY = "scramble"

PARAMS: dict = {
    "tile_count": {
        "type": "int",
        "min": 1,
        "max": 150,
        "default": 4,
        "label": "Tiles",
        "curve": "linear",
        "unit": "count",
        "description": "Grid divisor — higher values cut more, smaller tiles",
    }
}


@dataclass
class Tile:
    origin_x: int
    origin_y: int
    pixels: PixelBuffer

    @property
    def width(self) -> int:
        return self.pixels.width

    @property
    def height(self) -> int:
        return self.pixels.height


def tile_size(width: int, height: int, tile_count: int) -> tuple[int, int]:
    """Tile dimensions for a divisor, never smaller than 1x1."""
    return max(1, width // tile_count), max(1, height // tile_count)


def grid_origins(width: int, height: int, tile_w: int, tile_h: int) -> list[tuple[int, int]]:
    """Row-major tile origins covering the whole buffer."""
    return [(x, y) for y in range(0, height, tile_h) for x in range(0, width, tile_w)]


def split_tiles(buffer: PixelBuffer, tile_w: int, tile_h: int) -> list[Tile]:
    """Extract tiles in grid order. Right/bottom tiles may be ragged."""
    return [
        Tile(x, y, buffer.extract_rect(x, y, tile_w, tile_h))
        for x, y in grid_origins(buffer.width, buffer.height, tile_w, tile_h)
    ]


def scramble(
    buffer: PixelBuffer, tile_count: int, rng: np.random.Generator
) -> PixelBuffer:
    """Return a copy of ``buffer`` with its tiles uniformly shuffled.

    Tiles are written back onto the same grid origins in permuted order,
    so a ragged edge tile can land on a full slot (leaving the rest of that
    slot as it was) or a full tile on a ragged slot (clipped on write).
    """
    if isinstance(tile_count, bool) or not isinstance(tile_count, (int, np.integer)):
        raise InvalidParameter(f"tile_count must be an integer, got {tile_count!r}")
    if tile_count < 1:
        raise InvalidParameter(f"tile_count must be >= 1, got {tile_count}")

    tile_w, tile_h = tile_size(buffer.width, buffer.height, int(tile_count))
    tiles = split_tiles(buffer, tile_w, tile_h)
    order = rng.permutation(len(tiles))

    output = buffer.copy()
    for tile, slot in zip((tiles[i] for i in order), tiles):
        output.blit(tile.pixels, slot.origin_x, slot.origin_y)
    return output


def apply(
    buffer: PixelBuffer,
    params: dict,
    *,
    seed: int,
    region: RegionMask | None = None,
) -> PixelBuffer:
    """Shuffle tiles. The container restores pixels outside ``region``."""
    tile_count = params.get("tile_count", PARAMS["tile_count"]["default"])
    if isinstance(tile_count, float) and tile_count.is_integer():
        tile_count = int(tile_count)
    return scramble(buffer, tile_count, make_rng(seed))
