"""Tests for PixelBuffer — indexing, clipping, validation."""

import numpy as np
import pytest

from scramblery.engine.buffer import PixelBuffer
from scramblery.engine.errors import InvalidBuffer, OutOfBounds

pytestmark = pytest.mark.smoke


def _numbered(w=4, h=3):
    """Each pixel's R channel holds its linear index."""
    pixels = np.zeros((h, w, 4), dtype=np.uint8)
    pixels[:, :, 0] = np.arange(w * h, dtype=np.uint8).reshape(h, w)
    pixels[:, :, 3] = 255
    return PixelBuffer(pixels)


def test_dimensions():
    buf = _numbered(5, 2)
    assert buf.width == 5
    assert buf.height == 2
    assert len(buf.channels) == 5 * 2 * 4


def test_flat_index_layout():
    buf = _numbered(4, 3)
    for y in range(3):
        for x in range(4):
            idx = PixelBuffer.index_of(x, y, buf.width)
            assert idx == (y * 4 + x) * 4
            assert buf.channels[idx] == y * 4 + x
            assert buf.channels[idx + 3] == 255


def test_channels_is_a_view():
    buf = _numbered()
    buf.channels[PixelBuffer.index_of(1, 1, buf.width, channel=2)] = 99
    assert buf.get(1, 1)[2] == 99


def test_get_set_roundtrip():
    buf = PixelBuffer.blank(3, 3)
    buf.set(2, 1, 10, 20, 30, 40)
    assert buf.get(2, 1) == (10, 20, 30, 40)
    assert buf.get(0, 0) == (0, 0, 0, 0)


@pytest.mark.parametrize("x,y", [(-1, 0), (0, -1), (3, 0), (0, 3)])
def test_point_access_out_of_bounds(x, y):
    buf = PixelBuffer.blank(3, 3)
    with pytest.raises(OutOfBounds):
        buf.get(x, y)
    with pytest.raises(OutOfBounds):
        buf.set(x, y, 1, 2, 3, 4)


def test_from_bytes():
    data = bytes(range(2 * 2 * 4))
    buf = PixelBuffer.from_bytes(2, 2, data)
    assert buf.get(1, 0) == (4, 5, 6, 7)
    assert buf.get(0, 1) == (8, 9, 10, 11)
    assert buf.to_bytes() == data


def test_from_bytes_length_mismatch():
    with pytest.raises(InvalidBuffer, match="byte length"):
        PixelBuffer.from_bytes(2, 2, bytes(15))


@pytest.mark.parametrize("w,h", [(0, 4), (4, 0), (0, 0)])
def test_zero_size_rejected(w, h):
    with pytest.raises(InvalidBuffer):
        PixelBuffer.blank(w, h)
    with pytest.raises(InvalidBuffer):
        PixelBuffer(np.zeros((h, w, 4), dtype=np.uint8))


def test_wrong_shape_and_dtype_rejected():
    with pytest.raises(InvalidBuffer):
        PixelBuffer(np.zeros((4, 4, 3), dtype=np.uint8))
    with pytest.raises(InvalidBuffer):
        PixelBuffer(np.zeros((4, 4, 4), dtype=np.float32))
    with pytest.raises(InvalidBuffer):
        PixelBuffer([[0, 0, 0, 0]])


def test_invalid_buffer_is_value_error():
    with pytest.raises(ValueError):
        PixelBuffer.blank(0, 1)


def test_extract_rect_inside():
    buf = _numbered(4, 3)
    sub = buf.extract_rect(1, 1, 2, 2)
    assert (sub.width, sub.height) == (2, 2)
    assert sub.get(0, 0)[0] == 5
    assert sub.get(1, 1)[0] == 10


def test_extract_rect_clips_at_edges():
    buf = _numbered(4, 3)
    sub = buf.extract_rect(3, 2, 5, 5)
    assert (sub.width, sub.height) == (1, 1)
    assert sub.get(0, 0)[0] == 11


def test_extract_rect_is_a_copy():
    buf = _numbered()
    sub = buf.extract_rect(0, 0, 2, 2)
    sub.set(0, 0, 200, 200, 200, 200)
    assert buf.get(0, 0)[0] == 0


def test_extract_rect_fully_outside_is_empty():
    buf = _numbered(4, 3)
    before = buf.copy()
    assert buf.extract_rect(10, 10, 2, 2) is None
    assert buf.extract_rect(-5, 0, 3, 3) is None
    assert buf.extract_rect(0, 0, 0, 2) is None
    assert buf == before


def test_blit_inside():
    buf = PixelBuffer.blank(4, 4)
    patch = PixelBuffer.blank(2, 2, (9, 9, 9, 9))
    buf.blit(patch, 1, 1)
    assert buf.get(1, 1) == (9, 9, 9, 9)
    assert buf.get(2, 2) == (9, 9, 9, 9)
    assert buf.get(0, 0) == (0, 0, 0, 0)
    assert buf.get(3, 3) == (0, 0, 0, 0)


def test_blit_clips_right_bottom():
    buf = PixelBuffer.blank(4, 4)
    patch = _numbered(3, 3)
    buf.blit(patch, 2, 2)
    assert buf.get(2, 2)[0] == 0
    assert buf.get(3, 3)[0] == 4
    assert buf.get(1, 1) == (0, 0, 0, 0)


def test_blit_clips_negative_origin():
    buf = PixelBuffer.blank(4, 4)
    patch = _numbered(3, 3)
    buf.blit(patch, -1, -1)
    # patch pixel (1, 1) lands on (0, 0)
    assert buf.get(0, 0)[0] == 4
    assert buf.get(1, 1)[0] == 8


def test_blit_fully_outside_is_noop():
    buf = _numbered(4, 3)
    before = buf.copy()
    buf.blit(PixelBuffer.blank(2, 2, (1, 1, 1, 1)), 50, 50)
    assert buf == before


def test_copy_and_equality():
    buf = _numbered()
    dup = buf.copy()
    assert dup == buf
    dup.set(0, 0, 1, 1, 1, 1)
    assert dup != buf
    assert buf != PixelBuffer.blank(2, 2)
