import gc
import logging
import time

import numpy as np
import pytest

from conftest import HEIGHT, WIDTH, fresh
from fractalfield import (
    Direction,
    InvalidDimensionsError,
    NonFinitePositionError,
    RasterEngine,
    Viewport,
    ordered_range,
)


def rows_of(field, start, stop):
    return field.to_rgb()[start:stop]


def cols_of(field, start, stop):
    return field.to_rgb()[:, start:stop]


def test_ordered_range_directions():
    assert list(ordered_range(2, 5)) == [2, 3, 4]
    assert list(ordered_range(5, 2)) == [4, 3, 2]
    assert list(ordered_range(3, 3)) == []
    assert list(Direction.DESCENDING.span(0, 3)) == [2, 1, 0]
    assert list(Direction.ASCENDING.span(0, 3)) == [0, 1, 2]


@pytest.mark.parametrize("width,height", [(0, 10), (10, 0)])
def test_rejects_empty_field(width, height):
    with pytest.raises(InvalidDimensionsError):
        RasterEngine(width, height)


def test_rejects_non_finite_start():
    with pytest.raises(NonFinitePositionError):
        RasterEngine(4, 4, float("nan"), 0.0, 1.0)


def test_construction_renders_the_viewport(engine):
    assert (engine.width, engine.height) == (WIDTH, HEIGHT)
    assert engine.snapshot() == fresh(engine.viewport)
    assert engine.cells_r().shape == (WIDTH * HEIGHT,)


def test_update_is_idempotent(engine):
    engine.update()
    first = engine.snapshot()
    engine.update()
    assert engine.snapshot() == first


def test_recompute_direction_does_not_change_result(engine):
    before = engine.snapshot()
    engine.recompute(Direction.DESCENDING.span(0, HEIGHT), Direction.DESCENDING.span(0, WIDTH))
    assert engine.snapshot() == before


@pytest.mark.parametrize("offset", [-4, -1, 3, 7])
def test_vertical_pan_shifts_rows_and_recomputes_band(engine, offset):
    before = engine.snapshot()
    center_x = engine.pan_vertical(offset)
    assert center_x == engine.viewport.center_x
    after = engine.snapshot()
    reference = fresh(engine.viewport)
    mag = abs(offset)

    if offset < 0:
        np.testing.assert_array_equal(rows_of(after, mag, HEIGHT), rows_of(before, 0, HEIGHT - mag))
        np.testing.assert_array_equal(rows_of(after, 0, mag), rows_of(reference, 0, mag))
    else:
        np.testing.assert_array_equal(rows_of(after, 0, HEIGHT - mag), rows_of(before, mag, HEIGHT))
        np.testing.assert_array_equal(rows_of(after, HEIGHT - mag, HEIGHT), rows_of(reference, HEIGHT - mag, HEIGHT))


@pytest.mark.parametrize("offset", [-5, -1, 2, 9])
def test_horizontal_pan_shifts_columns_and_recomputes_band(engine, offset):
    before = engine.snapshot()
    center_y = engine.pan_horizontal(offset)
    assert center_y == engine.viewport.center_y
    after = engine.snapshot()
    reference = fresh(engine.viewport)
    mag = abs(offset)

    if offset < 0:
        np.testing.assert_array_equal(cols_of(after, mag, WIDTH), cols_of(before, 0, WIDTH - mag))
        np.testing.assert_array_equal(cols_of(after, 0, mag), cols_of(reference, 0, mag))
    else:
        np.testing.assert_array_equal(cols_of(after, 0, WIDTH - mag), cols_of(before, mag, WIDTH))
        np.testing.assert_array_equal(cols_of(after, WIDTH - mag, WIDTH), cols_of(reference, WIDTH - mag, WIDTH))


def test_pan_sequence_then_update_matches_full_render(engine):
    for offset in (3, -2, 5):
        engine.pan_vertical(offset)
        engine.pan_horizontal(-offset)
    engine.update()
    assert engine.snapshot() == fresh(engine.viewport)


def test_pan_coordinates_follow_viewport_rule(engine):
    start = engine.viewport
    assert engine.pan_vertical(-2) == start.center_x + 0.1 * -2 / start.zoom_factor
    assert engine.pan_horizontal(3) == start.center_y + 0.1 * 3 / start.zoom_factor


def test_zero_pan_is_a_no_op(engine):
    before = engine.snapshot()
    viewport = engine.viewport
    assert engine.pan_vertical(0) == viewport.center_x
    assert engine.pan_horizontal(0) == viewport.center_y
    assert engine.snapshot() == before
    assert engine.viewport == viewport


@pytest.mark.parametrize("offset", [HEIGHT, -HEIGHT, 3 * HEIGHT])
def test_oversized_vertical_pan_recomputes_everything(engine, offset, caplog):
    with caplog.at_level(logging.DEBUG, logger="fractalfield"):
        engine.pan_vertical(offset)
    assert engine.snapshot() == fresh(engine.viewport)
    assert "recomputing all" in caplog.text


@pytest.mark.parametrize("offset", [WIDTH, -WIDTH - 1])
def test_oversized_horizontal_pan_recomputes_everything(engine, offset):
    engine.pan_horizontal(offset)
    assert engine.snapshot() == fresh(engine.viewport)


def test_pan_offset_must_be_integral(engine):
    with pytest.raises(TypeError):
        engine.pan_vertical(1.5)


def test_zoom_recomputes_and_round_trips(engine):
    original = engine.viewport.zoom_factor
    zoomed = engine.zoom_in()
    assert zoomed == pytest.approx(original * 1.1)
    assert engine.snapshot() == fresh(engine.viewport)
    assert engine.zoom_out() == pytest.approx(original)
    assert engine.snapshot() == fresh(engine.viewport)


def test_failed_zoom_leaves_field_untouched():
    with RasterEngine(6, 4, 0.0, 0.0, 1.7e308) as session:
        before = session.snapshot()
        with pytest.raises(NonFinitePositionError):
            session.zoom_in()
        assert session.snapshot() == before
        assert session.viewport == Viewport(0.0, 0.0, 1.7e308)


def test_async_pans_are_serialized(engine):
    futures = [engine.pan_vertical_async(2), engine.pan_horizontal_async(-3), engine.pan_vertical_async(-1)]
    results = [future.result(timeout=60) for future in futures]
    viewport = engine.viewport
    assert results[0] == pytest.approx(viewport.center_x - 0.1 * -1 / viewport.zoom_factor)
    assert results[1] == viewport.center_y
    assert results[2] == viewport.center_x
    engine.update()
    assert engine.snapshot() == fresh(viewport)


def test_async_errors_surface_through_future(engine):
    future = engine.pan_vertical_async(0.5)
    with pytest.raises(TypeError):
        future.result(timeout=60)


def test_closed_engine_rejects_async_work():
    session = RasterEngine(4, 4)
    session.close()
    with pytest.raises(RuntimeError):
        session.pan_vertical_async(1)


def test_reading_yields_read_only_planes(engine):
    with engine.reading() as (r, g, b):
        assert r.shape == g.shape == b.shape == (WIDTH * HEIGHT,)
        with pytest.raises(ValueError):
            g[0] = 1
        np.testing.assert_array_equal(r, engine.snapshot().r)


def test_boundary_planes_are_detached_from_later_pans(engine):
    planes = [engine.cells_r(), engine.cells_g(), engine.cells_b()]
    kept = [plane.copy() for plane in planes]
    engine.pan_vertical(3)
    engine.pan_horizontal(-4)
    for plane, before in zip(planes, kept):
        np.testing.assert_array_equal(plane, before)
    np.testing.assert_array_equal(engine.cells_g(), engine.snapshot().g)


@pytest.mark.parametrize("rows,cols", [
    (range(-2, 0), range(WIDTH)),
    (range(HEIGHT - 1, HEIGHT + 1), range(WIDTH)),
    (range(HEIGHT), range(-1, 3)),
    (range(HEIGHT), Direction.DESCENDING.span(WIDTH - 2, WIDTH + 1)),
])
def test_recompute_rejects_rectangles_outside_the_field(engine, rows, cols):
    before = engine.snapshot()
    with pytest.raises(IndexError):
        engine.recompute(rows, cols)
    assert engine.snapshot() == before
    assert engine.snapshot() == fresh(engine.viewport)


def test_unclosed_engine_shuts_down_its_worker():
    session = RasterEngine(6, 4)
    session.pan_vertical_async(1).result(timeout=60)
    executor = session._executor
    del session
    for _ in range(100):
        gc.collect()
        if executor._shutdown:
            break
        time.sleep(0.05)
    assert executor._shutdown
