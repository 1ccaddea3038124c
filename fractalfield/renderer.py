"""Escape-time kernel and the two-band color mapping."""

from __future__ import annotations

from typing import Optional, Sequence

import numpy as np
import tensorflow as tf

from .viewport import Viewport

MAX_ITER = 51
ESCAPE_RADIUS = 2.0

# Fixed framing of the pixel grid relative to the viewport center.
REAL_SHIFT = 1.5
IMAG_SHIFT = 0.5

_LOG2 = np.log(np.float64(2.0))

_VECTOR = tf.TensorSpec(shape=[None], dtype=tf.float64)


@tf.function
def _escape_step(
    zr: tf.Tensor,
    zi: tf.Tensor,
    cr: tf.Tensor,
    ci: tf.Tensor,
    ns: tf.Tensor,
    active: tf.Tensor,
) -> tuple[tf.Tensor, tf.Tensor, tf.Tensor, tf.Tensor]:
    """Advance ``z <- z^2 + c`` for the points that have not escaped yet."""

    cross = zr * zi
    zr_new = (zr * zr - zi * zi) + cr
    zi_new = (cross + cross) + ci
    zr = tf.where(active, zr_new, zr)
    zi = tf.where(active, zi_new, zi)
    ns = ns + tf.cast(active, tf.int32)
    magnitude = tf.sqrt(zr * zr + zi * zi)
    radius = tf.constant(ESCAPE_RADIUS, dtype=tf.float64)
    active = tf.logical_and(active, magnitude < radius)
    return zr, zi, ns, active


@tf.function(input_signature=(_VECTOR, _VECTOR))
def _escape_run(cr: tf.Tensor, ci: tf.Tensor) -> tuple[tf.Tensor, tf.Tensor]:
    """Iterate every point up to ``MAX_ITER`` times; return counts and final ``|z|``."""

    max_iterations = tf.constant(MAX_ITER, dtype=tf.int32)
    i = tf.constant(0, dtype=tf.int32)
    zr = tf.zeros_like(cr)
    zi = tf.zeros_like(ci)
    ns = tf.zeros_like(cr, dtype=tf.int32)
    active = tf.ones_like(ns, dtype=tf.bool)

    def cond(i, zr, zi, ns, active):
        return tf.logical_and(tf.less(i, max_iterations), tf.reduce_any(active))

    def body(i, zr, zi, ns, active):
        zr, zi, ns, active = _escape_step(zr, zi, cr, ci, ns, active)
        return i + 1, zr, zi, ns, active

    _, zr, zi, ns, _ = tf.while_loop(cond, body, (i, zr, zi, ns, active))
    return ns, tf.sqrt(zr * zr + zi * zi)


def plane_coordinates(
    rows: Sequence[int],
    cols: Sequence[int],
    width: int,
    height: int,
    viewport: Viewport,
) -> tuple[np.ndarray, np.ndarray]:
    """Map pixel indices to real/imaginary coordinates, one value per cell.

    The returned arrays have shape ``(len(rows), len(cols))``. Each cell is
    computed from its own indices only, so a pixel gets the same coordinate
    whatever rectangle it is evaluated in.
    """

    zoom = np.float64(viewport.zoom_factor)
    col_values = np.asarray(cols, dtype=np.float64)
    row_values = np.asarray(rows, dtype=np.float64)
    real = (col_values / np.float64(width) - REAL_SHIFT) / zoom + np.float64(viewport.center_x)
    imaginary = (row_values / np.float64(height) - IMAG_SHIFT) / zoom + np.float64(viewport.center_y)
    real_grid, imag_grid = np.meshgrid(real, imaginary)
    return np.ascontiguousarray(real_grid), np.ascontiguousarray(imag_grid)


def escape_quotient(
    rows: Sequence[int],
    cols: Sequence[int],
    width: int,
    height: int,
    viewport: Viewport,
    *,
    device: Optional[str] = None,
) -> np.ndarray:
    """Smoothed escape-time quotient for every pixel of a rectangle.

    Points that never leave the escape radius get exactly ``1.0``; the others
    get ``(iter + 1 - ln(ln|z|) / ln 2) / MAX_ITER``, which removes the banding
    of the raw iteration count.
    """

    real, imaginary = plane_coordinates(rows, cols, width, height, viewport)
    shape = real.shape
    if real.size == 0:
        return np.zeros(shape, dtype=np.float64)

    with tf.device(device if device is not None else "/CPU:0"):
        cr = tf.convert_to_tensor(real.reshape(-1), dtype=tf.float64)
        ci = tf.convert_to_tensor(imaginary.reshape(-1), dtype=tf.float64)
        ns, magnitude = _escape_run(cr, ci)

    ns = ns.numpy()
    magnitude = magnitude.numpy()
    quotient = np.ones(ns.shape, dtype=np.float64)
    escaped = ns < MAX_ITER
    if np.any(escaped):
        escaped_abs = np.ascontiguousarray(magnitude[escaped])
        with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
            smoothed = ns[escaped].astype(np.float64) + 1.0 - np.log(np.log(escaped_abs)) / _LOG2
        quotient[escaped] = smoothed / np.float64(MAX_ITER)
    return quotient.reshape(shape)


def quotient_to_rgb(quotient: np.ndarray) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Two-band gradient: black inside, dark green below 0.5, white-green above."""

    with np.errstate(invalid="ignore"):
        scaled = np.nan_to_num(quotient * 255.0, nan=0.0, posinf=255.0, neginf=0.0)
    level = np.floor(np.clip(scaled, 0.0, 255.0)).astype(np.uint8)

    inside = quotient == 1.0
    bright = np.logical_and(quotient > 0.5, ~inside)
    dark = ~(inside | bright)

    r = np.where(bright, level, 0).astype(np.uint8)
    g = np.where(bright, 255, np.where(dark, level, 0)).astype(np.uint8)
    b = r.copy()
    return r, g, b


def color_region(
    rows: Sequence[int],
    cols: Sequence[int],
    width: int,
    height: int,
    viewport: Viewport,
    *,
    device: Optional[str] = None,
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Color every pixel of the rectangle ``rows x cols``, in the given order."""

    quotient = escape_quotient(rows, cols, width, height, viewport, device=device)
    return quotient_to_rgb(quotient)


def color_at(
    pixel_row: int,
    pixel_col: int,
    width: int,
    height: int,
    viewport: Viewport,
    *,
    device: Optional[str] = None,
) -> tuple[int, int, int]:
    """RGB triple of a single pixel."""

    r, g, b = color_region([pixel_row], [pixel_col], width, height, viewport, device=device)
    return int(r[0, 0]), int(g[0, 0]), int(b[0, 0])
