"""Row-major RGB byte planes holding the rendered state."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

import numpy as np

from .errors import InvalidDimensionsError


def _valid_dimension(value: object) -> bool:
    return isinstance(value, (int, np.integer)) and not isinstance(value, bool) and value > 0


@dataclass(eq=False)
class PixelField:
    """Three parallel ``uint8`` planes of length ``width * height``.

    Pixel ``(row, col)`` lives at ``row * width + col`` in every plane.
    """

    width: int
    height: int
    r: np.ndarray = field(init=False, repr=False)
    g: np.ndarray = field(init=False, repr=False)
    b: np.ndarray = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if not (_valid_dimension(self.width) and _valid_dimension(self.height)):
            raise InvalidDimensionsError(self.width, self.height)
        self.width = int(self.width)
        self.height = int(self.height)
        size = self.width * self.height
        self.r = np.zeros(size, dtype=np.uint8)
        self.g = np.zeros(size, dtype=np.uint8)
        self.b = np.zeros(size, dtype=np.uint8)

    @property
    def size(self) -> int:
        return self.width * self.height

    def _planes(self) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        return self.r, self.g, self.b

    def index(self, row: int, col: int) -> int:
        if not (0 <= row < self.height and 0 <= col < self.width):
            raise IndexError(f"pixel ({row}, {col}) outside {self.width}x{self.height} field")
        return row * self.width + col

    def get(self, row: int, col: int) -> tuple[int, int, int]:
        idx = self.index(row, col)
        return int(self.r[idx]), int(self.g[idx]), int(self.b[idx])

    def set(self, row: int, col: int, rgb: tuple[int, int, int]) -> None:
        idx = self.index(row, col)
        for plane, value in zip(self._planes(), rgb):
            plane[idx] = value

    def copy_band(self, src_start: int, src_end: int, dst_start: int) -> None:
        """Move ``[src_start, src_end)`` to ``dst_start`` in every plane.

        Overlapping ranges behave like ``memmove``: the destination receives the
        source as it was before the call.
        """

        length = src_end - src_start
        if length <= 0:
            return
        if src_start < 0 or src_end > self.size or dst_start < 0 or dst_start + length > self.size:
            raise IndexError(
                f"band [{src_start}, {src_end}) -> {dst_start} outside field of {self.size} pixels"
            )
        for plane in self._planes():
            # numpy buffers overlapping slice assignments.
            plane[dst_start:dst_start + length] = plane[src_start:src_end]

    def shift_columns(self, offset: int) -> None:
        """Set ``pixel[row, col] = pixel[row, col + offset]`` for every retained column.

        A negative offset moves content right (columns ``[0, |offset|)`` become
        stale), a positive offset moves it left (the last ``offset`` columns become
        stale). Stale columns keep their old bytes until recomputed.
        """

        mag = abs(offset)
        if offset == 0 or mag >= self.width:
            return
        for plane in self._planes():
            grid = plane.reshape(self.height, self.width)
            if offset < 0:
                grid[:, mag:] = grid[:, :self.width - mag]
            else:
                grid[:, :self.width - mag] = grid[:, mag:]

    def check_region(self, rows: Sequence[int], cols: Sequence[int]) -> None:
        """Raise ``IndexError`` unless every row and column lies inside the field."""

        for name, indices, limit in (("row", rows, self.height), ("column", cols, self.width)):
            if len(indices) and not (0 <= min(indices) and max(indices) < limit):
                raise IndexError(
                    f"{name} indices {min(indices)}..{max(indices)} outside {self.width}x{self.height} field"
                )

    def write_region(
        self,
        rows: Sequence[int],
        cols: Sequence[int],
        r: np.ndarray,
        g: np.ndarray,
        b: np.ndarray,
    ) -> None:
        """Store ``(len(rows), len(cols))`` color blocks at the given pixel indices."""

        self.check_region(rows, cols)
        row_idx = np.asarray(rows, dtype=np.intp)
        col_idx = np.asarray(cols, dtype=np.intp)
        target = np.ix_(row_idx, col_idx)
        for plane, values in zip(self._planes(), (r, g, b)):
            plane.reshape(self.height, self.width)[target] = values

    def planes(self) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Read-only views of the R, G and B planes."""

        views = []
        for plane in self._planes():
            view = plane.view()
            view.flags.writeable = False
            views.append(view)
        return tuple(views)

    def to_rgb(self) -> np.ndarray:
        """Interleave the planes into a ``(height, width, 3)`` image array."""

        return np.stack(
            [plane.reshape(self.height, self.width) for plane in self._planes()],
            axis=-1,
        )

    def copy(self) -> PixelField:
        clone = PixelField(self.width, self.height)
        for dst, src in zip(clone._planes(), self._planes()):
            dst[:] = src
        return clone

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PixelField):
            return NotImplemented
        return (
            self.width == other.width
            and self.height == other.height
            and all(np.array_equal(a, b) for a, b in zip(self._planes(), other._planes()))
        )
