"""Noise — per-pixel random colour or pixel swap, optionally inside a region."""

import math

import numpy as np

from scramblery.engine.buffer import PixelBuffer
from scramblery.engine.determinism import make_rng
from scramblery.engine.errors import InvalidParameter
from scramblery.engine.region import RegionMask

EFFECT_ID = "fx.noise"
EFFECT_NAME = "Noise"
EFFECT_CATEGORY = "noise"

RANDOM_COLOR = "random_color"
PIXEL_SWAP = "pixel_swap"
MODES = (RANDOM_COLOR, PIXEL_SWAP)

PARAMS: dict = {
    "ratio": {
        "type": "float",
        "min": 0.0,
        "max": 1.0,
        "default": 0.3,
        "label": "Ratio",
        "curve": "linear",
        "unit": "%",
        "description": "Probability that any given pixel is replaced",
    },
    "mode": {
        "type": "choice",
        "options": list(MODES),
        "default": RANDOM_COLOR,
        "label": "Mode",
        "description": "Fresh random colour, or colour copied from a random pixel",
    },
}


def apply_noise(
    buffer: PixelBuffer,
    ratio: float,
    mask: RegionMask | None,
    mode: str,
    rng: np.random.Generator,
) -> PixelBuffer:
    """Return a noised copy of ``buffer``.

    Each in-mask pixel draws u in [0, 1); pixels with u < ratio get the
    mode's treatment. Alpha is never touched. Pixel swaps run in row-major
    order over the buffer being written, so a donor that was already
    swapped earlier in the pass hands on its new colour. Donor indices are
    always pixel-aligned.
    """
    if isinstance(ratio, bool) or not isinstance(ratio, (int, float)):
        raise InvalidParameter(f"ratio must be a number, got {ratio!r}")
    if math.isnan(ratio) or not 0.0 <= ratio <= 1.0:
        raise InvalidParameter(f"ratio must be within [0, 1], got {ratio}")
    if mode not in MODES:
        raise InvalidParameter(f"unknown noise mode: {mode!r}")

    output = buffer.pixels.reshape(-1, 4).copy()

    if mask is None or mask.is_whole:
        candidates = np.arange(output.shape[0])
    else:
        candidates = np.flatnonzero(mask.to_array(buffer.width, buffer.height))

    draws = rng.random(candidates.shape[0])
    hit = candidates[draws < ratio]

    if hit.size:
        if mode == RANDOM_COLOR:
            output[hit, :3] = rng.integers(0, 256, (hit.size, 3), dtype=np.uint8)
        else:
            donors = rng.integers(0, output.shape[0], hit.size)
            # hit is ascending, so this walks the pixels in row-major order
            for target, donor in zip(hit.tolist(), donors.tolist()):
                output[target, :3] = output[donor, :3]

    return PixelBuffer(output.reshape(buffer.height, buffer.width, 4))


def apply(
    buffer: PixelBuffer,
    params: dict,
    *,
    seed: int,
    region: RegionMask | None = None,
) -> PixelBuffer:
    ratio = params.get("ratio", PARAMS["ratio"]["default"])
    mode = str(params.get("mode", PARAMS["mode"]["default"]))
    return apply_noise(buffer, ratio, region, mode, make_rng(seed))
