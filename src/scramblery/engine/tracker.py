"""Pointer gesture → circular region, plus the outline preview shown while dragging.

Press sets the centre, dragging grows the radius, release finalizes it.
The preview is redrawn from the displayed buffer on every move, so
strokes from earlier moves never accumulate.
"""

import enum
import logging
import math

import numpy as np

from scramblery.engine.buffer import PixelBuffer
from scramblery.engine.region import RegionMask

logger = logging.getLogger(__name__)

# Outline style for the drag preview
PREVIEW_RGB = (255.0, 0.0, 0.0)
PREVIEW_ALPHA = 0.5
PREVIEW_LINE_WIDTH = 3.0


class TrackerState(str, enum.Enum):
    IDLE = "idle"
    DRAGGING = "dragging"


class PointerRegionTracker:
    """Idle → Dragging → Idle state machine. Reusable across gestures."""

    def __init__(self):
        self.state = TrackerState.IDLE
        self.center_x = 0.0
        self.center_y = 0.0
        self.radius = 0.0

    @property
    def is_dragging(self) -> bool:
        return self.state is TrackerState.DRAGGING

    def _current(self) -> RegionMask:
        return RegionMask.circle(self.center_x, self.center_y, self.radius)

    def _distance_to(self, x: float, y: float) -> float:
        return math.hypot(x - self.center_x, y - self.center_y)

    def press(self, x: float, y: float) -> RegionMask:
        """Start a gesture at (x, y). Pressing mid-drag restarts from the new point."""
        if self.is_dragging:
            logger.debug("press while dragging, restarting gesture at (%s, %s)", x, y)
        self.state = TrackerState.DRAGGING
        self.center_x = float(x)
        self.center_y = float(y)
        self.radius = 0.0
        return self._current()

    def move(self, x: float, y: float) -> RegionMask | None:
        """Live preview mask while dragging; None when idle."""
        if not self.is_dragging:
            return None
        self.radius = self._distance_to(x, y)
        return self._current()

    def release(self, x: float, y: float) -> RegionMask | None:
        """Finalize the region at (x, y) and return to idle; None when idle."""
        if not self.is_dragging:
            return None
        self.radius = self._distance_to(x, y)
        self.state = TrackerState.IDLE
        return self._current()

    def reset(self):
        self.state = TrackerState.IDLE
        self.radius = 0.0


def render_region_preview(original: PixelBuffer, region: RegionMask | None) -> PixelBuffer:
    """Return a copy of ``original`` with the region outline drawn on top.

    Pure: ``original`` is never modified. WHOLE, empty or missing regions
    produce a plain copy.
    """
    if region is None or region.is_whole or region.radius <= 0:
        return original.copy()

    h, w = original.height, original.width
    xs = np.arange(w, dtype=np.float32) - region.center_x
    ys = np.arange(h, dtype=np.float32) - region.center_y
    dist = np.hypot(xs[np.newaxis, :], ys[:, np.newaxis])
    stroke = np.abs(dist - region.radius) <= PREVIEW_LINE_WIDTH / 2.0

    output = original.pixels.copy()
    if not stroke.any():
        return PixelBuffer(output)

    # Source-over composite of a half-transparent red stroke
    px = output[stroke].astype(np.float32)
    px[:, :3] = px[:, :3] * (1.0 - PREVIEW_ALPHA) + np.array(PREVIEW_RGB) * PREVIEW_ALPHA
    px[:, 3] = 255.0 * PREVIEW_ALPHA + px[:, 3] * (1.0 - PREVIEW_ALPHA)
    output[stroke] = np.clip(np.rint(px), 0, 255).astype(np.uint8)
    return PixelBuffer(output)
