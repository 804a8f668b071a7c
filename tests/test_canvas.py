import pytest

import tilepaint as tp


def test_scanline_layout():
    raw = tp.render_scanlines(3, 2, lambda x, y: (x, y, 7, 255))
    assert len(raw) == 2 * (1 + 3 * 4)
    assert raw[0] == 0 and raw[13] == 0
    assert raw[1:13] == bytes([0, 0, 7, 255, 1, 0, 7, 255, 2, 0, 7, 255])
    assert raw[14:26] == bytes([0, 1, 7, 255, 1, 1, 7, 255, 2, 1, 7, 255])


def test_visits_every_pixel_row_major():
    seen = []

    def fn(x, y):
        seen.append((x, y))
        return (0, 0, 0, 255)

    tp.render_scanlines(4, 3, fn)
    assert seen == [(x, y) for y in range(3) for x in range(4)]


def test_channels_saturate():
    raw = tp.render_scanlines(1, 1, lambda x, y: (-40, 300, 128, 1000))
    assert raw == bytes([0, 0, 255, 128, 255])


def test_non_finite_channels_rejected():
    with pytest.raises(ValueError, match="NaN or infinite"):
        tp.render_scanlines(1, 1, lambda x, y: (float("nan"), 0, 0, 255))
    with pytest.raises(ValueError, match="NaN or infinite"):
        tp.make_png(2, 1, lambda x, y: (0, float("inf"), 0, 255))


def test_float_channels_round_half_up():
    raw = tp.render_scanlines(1, 1, lambda x, y: (0.5, 1.49, 254.5, 2.5))
    assert raw == bytes([0, 1, 1, 255, 3])


@pytest.mark.parametrize("width,height", [(0, 5), (5, -1), (0, 0)])
def test_invalid_geometry(width, height):
    calls = []
    with pytest.raises(tp.InvalidGeometryError):
        tp.render_scanlines(width, height, lambda x, y: calls.append((x, y)))
    assert calls == []


def test_wrong_channel_count():
    with pytest.raises(ValueError):
        tp.render_scanlines(2, 2, lambda x, y: (1, 2, 3))


def test_pixel_fn_errors_propagate():
    def fn(x, y):
        if (x, y) == (1, 1):
            raise RuntimeError("boom")
        return (0, 0, 0, 255)

    with pytest.raises(RuntimeError, match="boom"):
        tp.make_png(2, 2, fn)
