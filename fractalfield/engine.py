"""Full and incremental recompute of the pixel field under pan and zoom."""

from __future__ import annotations

import logging
import operator
import threading
import weakref
from concurrent.futures import Future, ThreadPoolExecutor
from contextlib import contextmanager
from enum import Enum
from typing import Callable, Iterator, Optional

import numpy as np

from .field import PixelField
from .renderer import color_region
from .telemetry import timed
from .viewport import Viewport

logger = logging.getLogger(__name__)

DEFAULT_STRIP_ROWS = 64


class Direction(Enum):
    """Order in which an axis of a recompute rectangle is visited."""

    ASCENDING = 1
    DESCENDING = -1

    def span(self, start: int, stop: int) -> range:
        """Indices of ``[start, stop)`` in this direction."""

        if self is Direction.ASCENDING:
            return range(start, stop)
        return range(stop - 1, start - 1, -1)


def ordered_range(start: int, end: int) -> range:
    """Ascending ``[start, end)`` when ``start <= end``, else ``[end, start)`` descending."""

    if start <= end:
        return Direction.ASCENDING.span(start, end)
    return Direction.DESCENDING.span(end, start)


class RasterEngine:
    """A rendering session: one viewport and the pixel field that mirrors it.

    Every public operation holds the session lock until the field is consistent
    with the viewport again, so pans, zooms and boundary reads never interleave.
    A pan moves the retained pixels in place and recomputes only the band it
    exposes; zoom and :meth:`update` recompute the whole field.

    The async pans run on a worker thread created on first use. It is shut down
    by :meth:`close` (or leaving the ``with`` block), and otherwise when the
    engine is garbage collected.
    """

    def __init__(
        self,
        width: int,
        height: int,
        center_x: float = 0.0,
        center_y: float = 0.0,
        zoom: float = 1.0,
        *,
        device: Optional[str] = None,
        strip_rows: int = DEFAULT_STRIP_ROWS,
    ) -> None:
        if strip_rows < 1:
            raise ValueError(f"strip_rows must be at least 1, got {strip_rows}")
        self._field = PixelField(width, height)
        self._viewport = Viewport(center_x, center_y, zoom)
        self._device = device
        self._strip_rows = int(strip_rows)
        self._lock = threading.RLock()
        self._executor: Optional[ThreadPoolExecutor] = None
        self._closed = False
        logger.debug("Allocated %dx%d field at %s", self.width, self.height, self._viewport)
        self.update()

    def __repr__(self) -> str:
        return f"RasterEngine({self.width}x{self.height}, {self._viewport!r})"

    @property
    def width(self) -> int:
        return self._field.width

    @property
    def height(self) -> int:
        return self._field.height

    @property
    def viewport(self) -> Viewport:
        with self._lock:
            return self._viewport.copy()

    def recompute(self, rows: range, cols: range) -> None:
        """Recolor every pixel of ``rows x cols``, visiting rows in strips in the given order."""

        with self._lock:
            self._field.check_region(rows, cols)
            for start in range(0, len(rows), self._strip_rows):
                strip = rows[start:start + self._strip_rows]
                r, g, b = color_region(
                    strip, cols, self.width, self.height, self._viewport, device=self._device
                )
                self._field.write_region(strip, cols, r, g, b)

    def _recompute_all(self) -> None:
        self.recompute(range(self.height), range(self.width))

    def update(self) -> None:
        with self._lock, timed("update", logger):
            self._recompute_all()

    def zoom_in(self) -> float:
        with self._lock, timed("zoom_in", logger):
            zoom = self._viewport.zoom_in()
            self._recompute_all()
            return zoom

    def zoom_out(self) -> float:
        with self._lock, timed("zoom_out", logger):
            zoom = self._viewport.zoom_out()
            self._recompute_all()
            return zoom

    def pan_vertical(self, offset: int) -> float:
        """Pan by ``offset`` pixel rows (negative is up); return the new ``center_x``."""

        offset = operator.index(offset)
        with self._lock, timed(f"pan_vertical({offset})", logger):
            if offset == 0:
                return self._viewport.center_x
            center_x = self._viewport.pan_vertical(offset)
            self._shift_rows(offset)
            return center_x

    def pan_horizontal(self, offset: int) -> float:
        """Pan by ``offset`` pixel columns (positive is right); return the new ``center_y``."""

        offset = operator.index(offset)
        with self._lock, timed(f"pan_horizontal({offset})", logger):
            if offset == 0:
                return self._viewport.center_y
            center_y = self._viewport.pan_horizontal(offset)
            self._shift_cols(offset)
            return center_y

    def _shift_rows(self, offset: int) -> None:
        width, height = self.width, self.height
        mag = abs(offset)
        if mag >= height:
            logger.debug("Vertical pan of %d rows covers the %d-row field, recomputing all", mag, height)
            self._recompute_all()
            return

        retained = (height - mag) * width
        if offset < 0:
            self._field.copy_band(0, retained, mag * width)
            stale = Direction.ASCENDING.span(0, mag)
        else:
            self._field.copy_band(mag * width, height * width, 0)
            stale = Direction.DESCENDING.span(height - mag, height)
        self.recompute(stale, range(width))

    def _shift_cols(self, offset: int) -> None:
        width, height = self.width, self.height
        mag = abs(offset)
        if mag >= width:
            logger.debug("Horizontal pan of %d columns covers the %d-column field, recomputing all", mag, width)
            self._recompute_all()
            return

        self._field.shift_columns(offset)
        if offset < 0:
            stale = Direction.ASCENDING.span(0, mag)
        else:
            stale = Direction.DESCENDING.span(width - mag, width)
        self.recompute(range(height), stale)

    def _submit(self, operation: Callable[[int], float], offset: int) -> Future:
        with self._lock:
            if self._closed:
                raise RuntimeError("engine is closed")
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="fractalfield")
                weakref.finalize(self, self._executor.shutdown, wait=False)
            return self._executor.submit(operation, offset)

    def pan_vertical_async(self, offset: int) -> Future:
        """Run :meth:`pan_vertical` on the worker thread; the future yields ``center_x``."""

        return self._submit(self.pan_vertical, offset)

    def pan_horizontal_async(self, offset: int) -> Future:
        """Run :meth:`pan_horizontal` on the worker thread; the future yields ``center_y``."""

        return self._submit(self.pan_horizontal, offset)

    @contextmanager
    def reading(self) -> Iterator[tuple[np.ndarray, np.ndarray, np.ndarray]]:
        """Hold the session lock and yield read-only R, G, B planes."""

        with self._lock:
            yield self._field.planes()

    def cells_r(self) -> np.ndarray:
        """Copy of the R plane taken between operations."""

        with self._lock:
            return self._field.r.copy()

    def cells_g(self) -> np.ndarray:
        """Copy of the G plane taken between operations."""

        with self._lock:
            return self._field.g.copy()

    def cells_b(self) -> np.ndarray:
        """Copy of the B plane taken between operations."""

        with self._lock:
            return self._field.b.copy()

    def snapshot(self) -> PixelField:
        """Independent copy of the current field."""

        with self._lock:
            return self._field.copy()

    def to_rgb(self) -> np.ndarray:
        with self._lock:
            return self._field.to_rgb()

    def close(self) -> None:
        with self._lock:
            self._closed = True
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=True)

    def __enter__(self) -> RasterEngine:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
