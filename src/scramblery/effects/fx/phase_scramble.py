"""Phase scramble — randomise Fourier phase, keep the magnitude spectrum.

Each RGB channel is padded to a power-of-two square, transformed with a 2D
FFT, and every coefficient's phase is pulled towards a random angle by
``intensity``. Conjugate pairs are kept conjugate so the inverse transform
stays real. Overall colour and texture statistics survive; shapes do not.
"""

import math

import numpy as np

from scramblery.engine.buffer import PixelBuffer
from scramblery.engine.determinism import make_rng
from scramblery.engine.errors import InvalidBuffer, InvalidParameter
from scramblery.engine.region import RegionMask

EFFECT_ID = "fx.phase_scramble"
EFFECT_NAME = "Phase Scramble"
EFFECT_CATEGORY = "scramble"

# padding name -> np.pad mode
PADDING_MODES = {
    "zero": "constant",
    "reflect": "symmetric",
    "wrap": "wrap",
}

PARAMS: dict = {
    "intensity": {
        "type": "float",
        "min": 0.0,
        "max": 1.0,
        "default": 1.0,
        "label": "Intensity",
        "curve": "linear",
        "unit": "%",
        "description": "How far each phase moves towards a random angle",
    },
    "padding": {
        "type": "choice",
        "options": list(PADDING_MODES),
        "default": "reflect",
        "label": "Padding",
        "description": "How the image is extended to a square FFT size",
    },
}


def padded_size(size: int) -> int:
    """Smallest power of two >= size."""
    if size < 1:
        raise InvalidBuffer(f"cannot pad a dimension of {size}")
    return 1 << (size - 1).bit_length()


def pad_channels(rgb: np.ndarray, size: int, padding: str) -> np.ndarray:
    """Pad an (H, W, C) array to (size, size, C), image anchored top-left."""
    h, w = rgb.shape[:2]
    mode = PADDING_MODES.get(padding)
    if mode is None:
        raise InvalidParameter(f"unknown padding: {padding!r}")
    return np.pad(rgb, ((0, size - h), (0, size - w), (0, 0)), mode=mode)


def scramble_phase(
    spectrum: np.ndarray, intensity: float, rng: np.random.Generator
) -> np.ndarray:
    """Move the phase of a square (n, n) spectrum towards random angles.

    new_phase = phase + intensity * wrap(random - phase), with the wrapped
    difference in [-pi, pi). Magnitudes are untouched, and each coefficient's
    mirror at ((-y) % n, (-x) % n) is set to its conjugate.
    """
    n = spectrum.shape[0]
    ys, xs = np.indices((n, n))
    sym_y = (-ys) % n
    sym_x = (-xs) % n
    # One member of each conjugate pair gets a fresh phase
    canonical = (ys < sym_y) | ((ys == sym_y) & (xs <= sym_x))

    magnitude = np.abs(spectrum)
    phase = np.angle(spectrum)
    random_phase = rng.uniform(0.0, 2.0 * math.pi, (n, n))
    dphase = (random_phase - phase + math.pi) % (2.0 * math.pi) - math.pi
    scrambled = magnitude * np.exp(1j * (phase + intensity * dphase))

    return np.where(canonical, scrambled, np.conj(scrambled[sym_y, sym_x]))


def phase_scramble(
    buffer: PixelBuffer, intensity: float, padding: str, rng: np.random.Generator
) -> PixelBuffer:
    """Return a copy with each RGB channel phase-scrambled. Alpha is kept."""
    if isinstance(intensity, bool) or not isinstance(intensity, (int, float)):
        raise InvalidParameter(f"intensity must be a number, got {intensity!r}")
    if math.isnan(intensity) or not 0.0 <= intensity <= 1.0:
        raise InvalidParameter(f"intensity must be within [0, 1], got {intensity}")
    if padding not in PADDING_MODES:
        raise InvalidParameter(f"unknown padding: {padding!r}")

    h, w = buffer.height, buffer.width
    n = padded_size(max(h, w))
    rgb = buffer.pixels[:, :, :3].astype(np.float64) / 255.0
    padded = pad_channels(rgb, n, padding)

    output = buffer.pixels.copy()
    for c in range(3):
        spectrum = np.fft.fft2(padded[:, :, c])
        restored = np.fft.ifft2(scramble_phase(spectrum, intensity, rng)).real
        channel = np.clip(restored[:h, :w], 0.0, 1.0)
        output[:, :, c] = np.rint(channel * 255.0).astype(np.uint8)
    return PixelBuffer(output)


def apply(
    buffer: PixelBuffer,
    params: dict,
    *,
    seed: int,
    region: RegionMask | None = None,
) -> PixelBuffer:
    intensity = params.get("intensity", PARAMS["intensity"]["default"])
    padding = str(params.get("padding", PARAMS["padding"]["default"]))
    return phase_scramble(buffer, intensity, padding, make_rng(seed))
