"""Raw control value → typed effect parameters.

The front-end has a single slider (1-150) shared by every operation. Its
meaning depends on the operation, so it is converted here, at the boundary,
and effects only ever see a typed value.
"""

import math

from scramblery.engine.errors import InvalidParameter

CONTROL_MIN = 1
CONTROL_MAX = 150
RATIO_SCALE = 100.0


def _clamp_control(raw) -> float:
    if isinstance(raw, bool):
        raise InvalidParameter("control value must be a number, got bool")
    if isinstance(raw, str):
        try:
            raw = float(raw.strip())
        except ValueError:
            raise InvalidParameter(f"control value is not a number: {raw!r}") from None
    if not isinstance(raw, (int, float)):
        raise InvalidParameter(
            f"control value must be a number, got {type(raw).__name__}"
        )
    if math.isnan(raw) or math.isinf(raw):
        raise InvalidParameter("control value must be finite")
    return max(float(CONTROL_MIN), min(float(CONTROL_MAX), float(raw)))


def control_to_tile_count(raw) -> int:
    """Tile divisor: larger values give more, smaller tiles."""
    return int(_clamp_control(raw))


def control_to_cell_size(raw) -> int:
    """Mosaic block side length in pixels."""
    return int(_clamp_control(raw))


def control_to_ratio(raw) -> float:
    """Per-pixel probability. Slider values above 100 saturate at 1.0."""
    return min(1.0, _clamp_control(raw) / RATIO_SCALE)


# Which typed parameter each effect takes from the shared control
CONTROL_BINDINGS = {
    "fx.tile_scramble": ("tile_count", control_to_tile_count),
    "fx.mosaic": ("cell_size", control_to_cell_size),
    "fx.noise": ("ratio", control_to_ratio),
    "fx.phase_scramble": ("intensity", control_to_ratio),
}


def params_from_control(effect_id: str, raw) -> dict:
    """Build the params dict for ``effect_id`` from one raw control value."""
    binding = CONTROL_BINDINGS.get(effect_id)
    if binding is None:
        raise InvalidParameter(f"effect {effect_id} has no control binding")
    name, convert = binding
    return {name: convert(raw)}
