"""Region masks — restrict where an effect is allowed to touch pixels."""

import enum
import math
from dataclasses import dataclass

import numpy as np

from scramblery.engine.errors import InvalidParameter


class RegionKind(str, enum.Enum):
    CIRCLE = "circle"
    WHOLE = "whole"


@dataclass(frozen=True)
class RegionMask:
    """A circle (centre + radius) or the whole image.

    Circle membership is strict: a pixel exactly ``radius`` away from the
    centre is outside, so a zero-radius circle selects nothing.
    """

    kind: RegionKind = RegionKind.WHOLE
    center_x: float = 0.0
    center_y: float = 0.0
    radius: float = 0.0

    def __post_init__(self):
        if not isinstance(self.kind, RegionKind):
            try:
                object.__setattr__(self, "kind", RegionKind(self.kind))
            except ValueError:
                raise InvalidParameter(f"unknown region kind: {self.kind!r}") from None
        for name in ("center_x", "center_y", "radius"):
            value = getattr(self, name)
            if not isinstance(value, (int, float)) or isinstance(value, bool):
                raise InvalidParameter(f"region {name} must be a number")
            if math.isnan(value) or math.isinf(value):
                raise InvalidParameter(f"region {name} must be finite")
        if self.radius < 0:
            raise InvalidParameter(f"negative radius: {self.radius}")

    @classmethod
    def whole(cls) -> "RegionMask":
        return cls(RegionKind.WHOLE)

    @classmethod
    def circle(cls, center_x: float, center_y: float, radius: float) -> "RegionMask":
        return cls(RegionKind.CIRCLE, center_x, center_y, radius)

    @property
    def is_whole(self) -> bool:
        return self.kind is RegionKind.WHOLE

    @property
    def is_empty(self) -> bool:
        return self.kind is RegionKind.CIRCLE and self.radius == 0

    def contains(self, x: float, y: float) -> bool:
        if self.is_whole:
            return True
        return math.hypot(x - self.center_x, y - self.center_y) < self.radius

    def to_array(self, width: int, height: int) -> np.ndarray:
        """Boolean (height, width) array, True where a pixel is inside."""
        if self.is_whole:
            return np.ones((height, width), dtype=bool)
        xs = np.arange(width, dtype=np.float64) - self.center_x
        ys = np.arange(height, dtype=np.float64) - self.center_y
        return np.hypot(xs[np.newaxis, :], ys[:, np.newaxis]) < self.radius

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "center_x": self.center_x,
            "center_y": self.center_y,
            "radius": self.radius,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "RegionMask":
        if not isinstance(data, dict):
            raise InvalidParameter("region must be an object")
        kind = data.get("kind", RegionKind.CIRCLE.value)
        if kind == RegionKind.WHOLE.value:
            return cls.whole()
        if kind != RegionKind.CIRCLE.value:
            raise InvalidParameter(f"unknown region kind: {kind!r}")
        try:
            return cls.circle(
                data["center_x"], data["center_y"], data.get("radius", 0.0)
            )
        except KeyError as e:
            raise InvalidParameter(f"region missing {e.args[0]}") from None


def coerce_region(region) -> RegionMask | None:
    """Accept a RegionMask, its dict form, or None."""
    if region is None or isinstance(region, RegionMask):
        return region
    return RegionMask.from_dict(region)
