"""Effect pipeline — runs one effect, or a short chain of them, over a buffer.

Includes auto-disable for effects that fail unexpectedly several times in a
row, and rolling timing stats per effect.
"""

import logging
import threading
import time
from collections import defaultdict, deque

import sentry_sdk

from scramblery.effects import registry
from scramblery.engine.buffer import PixelBuffer
from scramblery.engine.container import EffectContainer
from scramblery.engine.errors import EffectFailed, InvalidParameter

logger = logging.getLogger(__name__)

# Maximum effects in a single chain
MAX_CHAIN_DEPTH = 10

# Per-effect timing threshold (milliseconds)
EFFECT_WARN_MS = 250

# Auto-disable threshold: consecutive unexpected failures before disabling
DISABLE_THRESHOLD = 3

_health_lock = threading.Lock()
_failure_counts: dict[str, int] = defaultdict(int)
_disabled_effects: set[str] = set()

# Rolling timing stats per effect
_effect_timing: dict[str, deque] = defaultdict(lambda: deque(maxlen=100))


def _record_failure(effect_id: str) -> bool:
    """Record a failure. Returns True if effect was just disabled."""
    with _health_lock:
        _failure_counts[effect_id] += 1
        if (
            _failure_counts[effect_id] >= DISABLE_THRESHOLD
            and effect_id not in _disabled_effects
        ):
            _disabled_effects.add(effect_id)
            return True
    return False


def _record_success(effect_id: str):
    """Reset consecutive failure counter on success."""
    with _health_lock:
        _failure_counts[effect_id] = 0


def get_effect_health() -> dict:
    """Side-channel: returns current health state."""
    with _health_lock:
        return {
            "failure_counts": dict(_failure_counts),
            "disabled_effects": sorted(_disabled_effects),
        }


def reset_effect_health(effect_id: str | None = None):
    """Reset health tracking. If effect_id given, reset just that effect."""
    with _health_lock:
        if effect_id:
            _failure_counts.pop(effect_id, None)
            _disabled_effects.discard(effect_id)
        else:
            _failure_counts.clear()
            _disabled_effects.clear()


def record_timing(effect_id: str, elapsed_ms: float):
    """Record a timing sample for an effect."""
    _effect_timing[effect_id].append(elapsed_ms)


def get_effect_stats() -> dict[str, dict]:
    """Return p50/p95/max per effect."""
    result = {}
    for eid, samples in _effect_timing.items():
        s = sorted(samples)
        result[eid] = {
            "p50": s[len(s) // 2] if s else 0,
            "p95": s[int(len(s) * 0.95)] if len(s) >= 20 else None,
            "max": max(s) if s else 0,
            "samples": len(s),
        }
    return result


def flush_timing():
    """Clear all timing stats."""
    _effect_timing.clear()


def run_effect(
    buffer: PixelBuffer,
    effect_id: str,
    params: dict,
    project_seed: int = 0,
) -> PixelBuffer:
    """Run a single registered effect and return the new buffer.

    Raises:
        InvalidParameter: unknown or auto-disabled effect, or bad params.
        InvalidBuffer: unusable input buffer.
        EffectFailed: the effect crashed; ``buffer`` is untouched.
    """
    effect_info = registry.require(effect_id)

    with _health_lock:
        if effect_id in _disabled_effects:
            raise InvalidParameter(f"effect {effect_id} is disabled after repeated failures")
        prior_failures = _failure_counts.get(effect_id, 0)
    if prior_failures > 0:
        sentry_sdk.add_breadcrumb(
            category="effect",
            message=f"Processing {effect_id} (prior failures: {prior_failures})",
            level="warning",
        )

    container = EffectContainer(effect_info["fn"], effect_id)
    t0 = time.monotonic()
    try:
        output = container.process(buffer, dict(params), project_seed=project_seed)
    except EffectFailed:
        if _record_failure(effect_id):
            logger.warning(
                "Effect %s auto-disabled after %d consecutive failures",
                effect_id,
                DISABLE_THRESHOLD,
            )
        raise
    elapsed_ms = (time.monotonic() - t0) * 1000

    record_timing(effect_id, elapsed_ms)
    _record_success(effect_id)

    if elapsed_ms > EFFECT_WARN_MS:
        logger.warning(
            "Effect %s took %.0fms (>%dms warn threshold) on %dx%d",
            effect_id,
            elapsed_ms,
            EFFECT_WARN_MS,
            buffer.width,
            buffer.height,
        )
    return output


def apply_chain(
    buffer: PixelBuffer,
    chain: list[dict],
    project_seed: int = 0,
) -> PixelBuffer:
    """Apply an ordered chain of effects.

    Args:
        buffer:       Input buffer (not modified).
        chain:        List of effect instances, each:
                      {"effect_id": str, "params": dict, "enabled": bool}.
        project_seed: Project-level seed for determinism.

    Returns:
        The output buffer. If any step fails, the exception propagates and
        no partial result is returned.
    """
    if len(chain) > MAX_CHAIN_DEPTH:
        raise InvalidParameter(
            f"Chain depth {len(chain)} exceeds maximum {MAX_CHAIN_DEPTH}"
        )

    output = buffer
    for effect_instance in chain:
        if not effect_instance.get("enabled", True):
            continue
        output = run_effect(
            output,
            effect_instance.get("effect_id"),
            effect_instance.get("params", {}),
            project_seed,
        )
    return output if output is not buffer else buffer.copy()
