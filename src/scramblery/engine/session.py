"""Image session — owns the one buffer currently on display.

Every operation runs on a scratch copy and is swapped in only on success,
so a rejected or failed operation leaves the displayed image exactly as it
was. The imported original is kept for ``revert``.
"""

import logging

from scramblery.effects import registry
from scramblery.engine import codec, pipeline
from scramblery.engine.buffer import PixelBuffer
from scramblery.engine.errors import InvalidBuffer
from scramblery.engine.params import params_from_control
from scramblery.engine.region import RegionMask, coerce_region
from scramblery.engine.tracker import PointerRegionTracker, render_region_preview

logger = logging.getLogger(__name__)


class ImageSession:
    def __init__(self, project_seed: int = 0):
        self.project_seed = project_seed
        self.original: PixelBuffer | None = None
        self.current: PixelBuffer | None = None
        self.tracker = PointerRegionTracker()
        self.armed: tuple[str, dict] | None = None
        self.last_region: RegionMask | None = None

    @property
    def has_image(self) -> bool:
        return self.current is not None

    def _require_image(self) -> PixelBuffer:
        if self.current is None:
            raise InvalidBuffer("no image loaded")
        return self.current

    # --- loading -----------------------------------------------------------

    def load_buffer(self, buffer: PixelBuffer):
        """Replace (never merge) the displayed image."""
        self.original = buffer.copy()
        self.current = buffer.copy()
        self.tracker.reset()
        self.armed = None
        self.last_region = None
        logger.info("Loaded %dx%d image", buffer.width, buffer.height)

    def load_path(self, path: str) -> PixelBuffer:
        buffer = codec.decode_image(path)
        self.load_buffer(buffer)
        return buffer

    def clear(self):
        self.original = None
        self.current = None
        self.tracker.reset()
        self.armed = None
        self.last_region = None

    def revert(self) -> PixelBuffer:
        """Back to the imported original."""
        self._require_image()
        self.current = self.original.copy()
        return self.current

    # --- operations --------------------------------------------------------

    @staticmethod
    def resolve_params(effect_id: str, params: dict | None = None, value=None) -> dict:
        """Merge explicit params with a raw control value, if one is given."""
        resolved = dict(params or {})
        if value is not None:
            resolved.update(params_from_control(effect_id, value))
        return resolved

    def apply(
        self,
        effect_id: str,
        params: dict | None = None,
        region: RegionMask | dict | None = None,
    ) -> PixelBuffer:
        current = self._require_image()
        effect_params = dict(params or {})
        region = coerce_region(region)
        if region is not None:
            effect_params["_region"] = region
        result = pipeline.run_effect(
            current, effect_id, effect_params, self.project_seed
        )
        self.current = result
        return result

    def apply_chain(self, chain: list[dict]) -> PixelBuffer:
        current = self._require_image()
        result = pipeline.apply_chain(current, chain, self.project_seed)
        self.current = result
        return result

    def arm_region(self, effect_id: str, params: dict | None = None):
        """Queue an effect to run when the next pointer gesture is released."""
        self._require_image()
        registry.require(effect_id)
        self.armed = (effect_id, dict(params or {}))
        self.tracker.reset()

    def disarm(self):
        self.armed = None
        self.tracker.reset()

    # --- pointer gestures --------------------------------------------------

    def preview(self, region: RegionMask | None = None) -> PixelBuffer:
        """Display buffer with the region outline; the session is not modified."""
        current = self._require_image()
        return render_region_preview(current, region)

    def pointer_press(self, x: float, y: float) -> RegionMask:
        self._require_image()
        return self.tracker.press(x, y)

    def pointer_move(self, x: float, y: float) -> RegionMask | None:
        return self.tracker.move(x, y)

    def pointer_release(self, x: float, y: float) -> tuple[RegionMask | None, bool]:
        """Finish the gesture. Returns (region, applied).

        When an effect is armed it runs over the final region; it stays
        armed so the next gesture repeats it.
        """
        region = self.tracker.release(x, y)
        if region is None:
            return None, False
        self.last_region = region
        if self.armed is None:
            return region, False
        effect_id, params = self.armed
        self.apply(effect_id, params, region)
        return region, True
