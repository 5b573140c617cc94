"""Effect registry — id → (apply fn, PARAMS, display metadata)."""

from typing import Callable

from scramblery.engine.buffer import PixelBuffer
from scramblery.engine.errors import InvalidParameter
from scramblery.engine.params import CONTROL_BINDINGS

EffectFn = Callable[..., PixelBuffer]

_REGISTRY: dict[str, dict] = {}


def register(effect_id: str, fn: EffectFn, params: dict, name: str, category: str):
    """Register an effect. Re-registering an id replaces the previous entry."""
    binding = CONTROL_BINDINGS.get(effect_id)
    _REGISTRY[effect_id] = {
        "fn": fn,
        "params": params,
        "name": name,
        "category": category,
        # Param driven by the shared slider, if any
        "control": binding[0] if binding else None,
    }


def get(effect_id: str) -> dict | None:
    return _REGISTRY.get(effect_id)


def require(effect_id: str) -> dict:
    """Like get(), but an unknown id is a parameter error."""
    info = _REGISTRY.get(effect_id)
    if info is None:
        raise InvalidParameter(f"unknown effect: {effect_id}")
    return info


def list_all() -> list[dict]:
    """Registered effects without their functions, safe to send over the wire."""
    return [
        {"id": eid, **{k: v for k, v in info.items() if k != "fn"}}
        for eid, info in _REGISTRY.items()
    ]


def _auto_register():
    from scramblery.effects.fx import mosaic, noise, phase_scramble, tile_scramble

    for mod in (tile_scramble, mosaic, noise, phase_scramble):
        register(
            mod.EFFECT_ID, mod.apply, mod.PARAMS, mod.EFFECT_NAME, mod.EFFECT_CATEGORY
        )


_auto_register()
