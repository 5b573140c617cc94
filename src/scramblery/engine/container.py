"""Effect container — wraps pure effect functions with validation + region composite."""

import logging
import math

import numpy as np
import sentry_sdk

from scramblery.engine.buffer import PixelBuffer
from scramblery.engine.determinism import derive_seed
from scramblery.engine.errors import (
    EffectFailed,
    InvalidBuffer,
    InvalidParameter,
    ScrambleryError,
)
from scramblery.engine.region import coerce_region

logger = logging.getLogger(__name__)


def _capture_with_context(e: Exception, effect_id: str, extra: dict):
    """Capture exception to Sentry with effect-level context and fingerprint dedup."""
    with sentry_sdk.new_scope() as scope:
        scope.set_tag("effect_id", effect_id)
        scope.fingerprint = ["effect-crash", effect_id, type(e).__name__]
        scope.set_context("effect", extra)
        sentry_sdk.capture_exception(e, scope=scope)


class EffectContainer:
    """Container that wraps an effect's apply() function.

    Pipeline: validate → process (on a scratch copy) → region composite
    Effect authors write only the processing stage. The input buffer is
    never modified, whether the effect succeeds or fails.
    """

    def __init__(self, effect_fn, effect_id: str):
        self.effect_fn = effect_fn
        self.effect_id = effect_id
        self.last_error: Exception | None = None

    def process(
        self,
        buffer: PixelBuffer,
        params: dict,
        *,
        project_seed: int,
    ) -> PixelBuffer:
        self.last_error = None

        if not isinstance(buffer, PixelBuffer):
            raise InvalidBuffer(
                f"expected PixelBuffer, got {type(buffer).__name__}"
            )

        # 1. Compute deterministic seed
        user_seed = params.get("seed", 0)
        if isinstance(user_seed, bool) or not isinstance(user_seed, int):
            raise InvalidParameter(f"seed must be an integer, got {user_seed!r}")
        seed = derive_seed(project_seed, self.effect_id, user_seed)

        # 2. Extract container params (pop so effect doesn't see them)
        # Sanitize NaN/Inf values — drop them so effect uses its default
        effect_params = {
            k: v
            for k, v in params.items()
            if not (isinstance(v, float) and (math.isnan(v) or math.isinf(v)))
        }
        effect_params.pop("seed", None)
        region = coerce_region(effect_params.pop("_region", None))

        # Context for Sentry (PII-safe: keys only, no values)
        sentry_ctx = {
            "param_keys": list(effect_params.keys()),
            "seed": seed,
            "size": [buffer.width, buffer.height],
            "region": region.kind.value if region is not None else None,
        }

        # 3. Run effect (the pure function) on a scratch copy
        try:
            wet = self.effect_fn(
                buffer.copy(), effect_params, seed=seed, region=region
            )
        except ScrambleryError as e:
            self.last_error = e
            logger.info("Effect %s rejected input: %s", self.effect_id, e)
            raise
        except Exception as e:
            self.last_error = e
            _capture_with_context(e, self.effect_id, sentry_ctx)
            logger.error(
                "Effect %s failed: %s",
                self.effect_id,
                type(e).__name__,
            )
            logger.debug("Effect %s exception detail: %s", self.effect_id, e)
            raise EffectFailed(self.effect_id, e) from e

        # 4. Validate effect output
        try:
            if not isinstance(wet, PixelBuffer):
                raise TypeError(
                    f"Effect returned {type(wet).__name__}, expected PixelBuffer"
                )
            if wet.pixels.shape != buffer.pixels.shape:
                raise ValueError(
                    f"Effect returned shape {wet.pixels.shape}, "
                    f"expected {buffer.pixels.shape}"
                )
        except (TypeError, ValueError) as e:
            self.last_error = e
            _capture_with_context(e, self.effect_id, sentry_ctx)
            logger.error(
                "Effect %s produced invalid output: %s",
                self.effect_id,
                type(e).__name__,
            )
            logger.debug("Effect %s output error detail: %s", self.effect_id, e)
            raise EffectFailed(self.effect_id, e) from e

        # 5. Restore pixels outside the region
        if region is None or region.is_whole:
            return wet
        inside = region.to_array(buffer.width, buffer.height)
        output = np.where(inside[:, :, np.newaxis], wet.pixels, buffer.pixels)
        return PixelBuffer(output.astype(np.uint8, copy=False))
