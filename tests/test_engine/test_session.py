"""Tests for ImageSession — displayed-image ownership and pointer workflow."""

from unittest.mock import patch

import numpy as np
import pytest

from scramblery.effects import registry
from scramblery.engine.buffer import PixelBuffer
from scramblery.engine.errors import EffectFailed, InvalidBuffer, InvalidParameter
from scramblery.engine.pipeline import reset_effect_health
from scramblery.engine.region import RegionMask
from scramblery.engine.session import ImageSession


def _buffer(w=40, h=30, seed=12):
    rng = np.random.default_rng(seed)
    return PixelBuffer(rng.integers(0, 256, (h, w, 4), dtype=np.uint8))


@pytest.fixture
def session():
    s = ImageSession(project_seed=7)
    s.load_buffer(_buffer())
    return s


def test_new_session_has_no_image():
    s = ImageSession()
    assert not s.has_image
    with pytest.raises(InvalidBuffer, match="no image"):
        s.apply("fx.mosaic", {"cell_size": 2})
    with pytest.raises(InvalidBuffer):
        s.revert()
    with pytest.raises(InvalidBuffer):
        s.pointer_press(1, 1)
    with pytest.raises(InvalidBuffer):
        s.arm_region("fx.noise")


def test_load_buffer_copies(session):
    buf = _buffer(8, 8)
    session.load_buffer(buf)
    buf.pixels[:] = 0
    assert session.current != buf
    assert session.original == session.current
    assert session.current is not session.original


def test_load_replaces_and_resets(session):
    session.arm_region("fx.noise", {"ratio": 0.5})
    session.pointer_press(5, 5)
    session.load_buffer(_buffer(10, 10))
    assert session.armed is None
    assert not session.tracker.is_dragging
    assert (session.current.width, session.current.height) == (10, 10)


def test_load_path(sample_image_path):
    s = ImageSession()
    buf = s.load_path(str(sample_image_path))
    assert (buf.width, buf.height) == (64, 48)
    assert s.current == buf


def test_apply_replaces_current(session):
    before = session.current
    out = session.apply("fx.mosaic", {"cell_size": 4})
    assert session.current is out
    assert out != before


def test_apply_with_region_limits_changes(session):
    before = session.current.copy()
    region = RegionMask.circle(20, 15, 6)
    session.apply("fx.noise", {"ratio": 1.0}, region)
    outside = ~region.to_array(40, 30)
    np.testing.assert_array_equal(
        session.current.pixels[outside], before.pixels[outside]
    )


def test_rejected_apply_keeps_current(session):
    before = session.current.copy()
    with pytest.raises(InvalidParameter):
        session.apply("fx.tile_scramble", {"tile_count": 0})
    with pytest.raises(InvalidParameter):
        session.apply("fx.nope", {})
    assert session.current == before


def test_crashed_apply_keeps_current(session):
    def _crash(buffer, params, *, seed, region=None):
        buffer.pixels[:] = 0
        raise RuntimeError("boom")

    registry.register("test.session_crash", _crash, {}, "Crash", "test")
    before = session.current.copy()
    try:
        with patch("scramblery.engine.container._capture_with_context"):
            with pytest.raises(EffectFailed):
                session.apply("test.session_crash")
    finally:
        registry._REGISTRY.pop("test.session_crash", None)
        reset_effect_health()
    assert session.current == before


def test_effects_accumulate_then_revert(session):
    original = session.original.copy()
    session.apply("fx.tile_scramble", {"tile_count": 4})
    session.apply("fx.mosaic", {"cell_size": 3})
    assert session.current != original
    assert session.revert() == original
    assert session.current is not session.original


def test_apply_chain(session):
    out = session.apply_chain(
        [
            {"effect_id": "fx.tile_scramble", "params": {"tile_count": 2}},
            {"effect_id": "fx.mosaic", "params": {"cell_size": 2}},
        ]
    )
    assert session.current is out


def test_clear(session):
    session.clear()
    assert not session.has_image
    assert session.original is None


def test_resolve_params_from_control_value():
    assert ImageSession.resolve_params("fx.noise", None, 40) == {"ratio": 0.4}
    assert ImageSession.resolve_params("fx.mosaic", {"cell_size": 3}) == {
        "cell_size": 3
    }
    assert ImageSession.resolve_params(
        "fx.noise", {"mode": "pixel_swap"}, 100
    ) == {"mode": "pixel_swap", "ratio": 1.0}


def test_unarmed_release_reports_region_only(session):
    before = session.current.copy()
    session.pointer_press(10, 10)
    session.pointer_move(12, 10)
    region, applied = session.pointer_release(15, 10)
    assert region == RegionMask.circle(10, 10, 5)
    assert applied is False
    assert session.last_region == region
    assert session.current == before


def test_armed_release_applies_inside_region(session):
    before = session.current.copy()
    session.arm_region("fx.noise", {"ratio": 1.0, "mode": "pixel_swap"})
    session.pointer_press(20, 15)
    region, applied = session.pointer_release(20, 23)
    assert applied is True
    inside = region.to_array(40, 30)
    np.testing.assert_array_equal(
        session.current.pixels[~inside], before.pixels[~inside]
    )
    assert session.current != before


def test_armed_effect_stays_armed(session):
    session.arm_region("fx.mosaic", {"cell_size": 4})
    session.pointer_press(5, 5)
    session.pointer_release(10, 5)
    assert session.armed == ("fx.mosaic", {"cell_size": 4})
    session.disarm()
    assert session.armed is None


def test_arm_unknown_effect(session):
    with pytest.raises(InvalidParameter):
        session.arm_region("fx.nope")
    assert session.armed is None


def test_release_without_press(session):
    assert session.pointer_release(3, 3) == (None, False)
    assert session.pointer_move(3, 3) is None


def test_preview_does_not_touch_session(session):
    before = session.current.copy()
    region = session.pointer_press(20, 15)
    assert session.preview(region) == before
    preview = session.preview(session.pointer_move(20, 25))
    assert preview != before
    assert session.current == before
