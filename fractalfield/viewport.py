"""Fractal-plane position of the rendered field."""

from __future__ import annotations

import math
from dataclasses import astuple, dataclass, replace

from .errors import NonFinitePositionError

PAN_STEP = 0.1
ZOOM_STEP = 1.1


def _checked(name: str, value: float) -> float:
    if not math.isfinite(value):
        raise NonFinitePositionError(name, value)
    return value


@dataclass
class Viewport:
    """Center of the view in the fractal plane and its magnification.

    ``center_x`` is the real part and moves with vertical pans (negative offset
    is up); ``center_y`` is the imaginary part and moves with horizontal pans
    (positive offset is right). One unit of pan offset moves the center by
    ``PAN_STEP / zoom_factor`` so the visual pan speed does not depend on zoom.
    """

    center_x: float = 0.0
    center_y: float = 0.0
    zoom_factor: float = 1.0

    def __post_init__(self) -> None:
        self.center_x = _checked("center_x", float(self.center_x))
        self.center_y = _checked("center_y", float(self.center_y))
        self.zoom_factor = self._checked_zoom(float(self.zoom_factor))

    @staticmethod
    def _checked_zoom(value: float) -> float:
        if not math.isfinite(value) or value <= 0.0:
            raise NonFinitePositionError("zoom_factor", value)
        return value

    def pan_step(self, offset: int) -> float:
        return PAN_STEP * offset / self.zoom_factor

    def pan_horizontal(self, offset: int) -> float:
        self.center_y = _checked("center_y", self.center_y + self.pan_step(offset))
        return self.center_y

    def pan_vertical(self, offset: int) -> float:
        self.center_x = _checked("center_x", self.center_x + self.pan_step(offset))
        return self.center_x

    def zoom_in(self) -> float:
        self.zoom_factor = self._checked_zoom(self.zoom_factor * ZOOM_STEP)
        return self.zoom_factor

    def zoom_out(self) -> float:
        self.zoom_factor = self._checked_zoom(self.zoom_factor / ZOOM_STEP)
        return self.zoom_factor

    def copy(self) -> Viewport:
        return replace(self)

    def as_tuple(self) -> tuple[float, float, float]:
        return astuple(self)
