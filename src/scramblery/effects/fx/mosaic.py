"""Mosaic — flood each grid cell with its top-left pixel."""

import numpy as np

from scramblery.engine.buffer import PixelBuffer
from scramblery.engine.errors import InvalidParameter
from scramblery.engine.region import RegionMask

EFFECT_ID = "fx.mosaic"
EFFECT_NAME = "Scramble Mosaic"
EFFECT_CATEGORY = "scramble"

PARAMS: dict = {
    "cell_size": {
        "type": "int",
        "min": 1,
        "max": 150,
        "default": 8,
        "label": "Cell Size",
        "curve": "linear",
        "unit": "px",
        "description": "Side length of each mosaic block",
    }
}


def mosaic(buffer: PixelBuffer, cell_size: int) -> PixelBuffer:
    """Return a copy where every cell_size x cell_size block takes the
    RGBA value of its grid-aligned top-left pixel. Edge blocks are clipped.
    """
    if isinstance(cell_size, bool) or not isinstance(cell_size, (int, np.integer)):
        raise InvalidParameter(f"cell_size must be an integer, got {cell_size!r}")
    if cell_size < 1:
        raise InvalidParameter(f"cell_size must be >= 1, got {cell_size}")

    h, w = buffer.height, buffer.width
    # Map every row/column to the origin of the block containing it
    rows = (np.arange(h) // cell_size) * cell_size
    cols = (np.arange(w) // cell_size) * cell_size
    return PixelBuffer(buffer.pixels[rows[:, np.newaxis], cols[np.newaxis, :]])


def apply(
    buffer: PixelBuffer,
    params: dict,
    *,
    seed: int,
    region: RegionMask | None = None,
) -> PixelBuffer:
    """Mosaic is deterministic; ``seed`` is accepted for the common signature."""
    cell_size = params.get("cell_size", PARAMS["cell_size"]["default"])
    if isinstance(cell_size, float) and cell_size.is_integer():
        cell_size = int(cell_size)
    return mosaic(buffer, cell_size)
