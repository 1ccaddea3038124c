"""Public API for the incremental Mandelbrot raster field."""

from .engine import DEFAULT_STRIP_ROWS, Direction, RasterEngine, ordered_range
from .errors import FieldError, InvalidDimensionsError, NonFinitePositionError
from .field import PixelField
from .renderer import ESCAPE_RADIUS, MAX_ITER, color_at, color_region, escape_quotient
from .telemetry import install_crash_hook, setup_logging, timed
from .viewport import PAN_STEP, ZOOM_STEP, Viewport

__all__ = [
    "DEFAULT_STRIP_ROWS",
    "Direction",
    "ESCAPE_RADIUS",
    "FieldError",
    "InvalidDimensionsError",
    "MAX_ITER",
    "NonFinitePositionError",
    "PAN_STEP",
    "PixelField",
    "RasterEngine",
    "Viewport",
    "ZOOM_STEP",
    "color_at",
    "color_region",
    "escape_quotient",
    "install_crash_hook",
    "ordered_range",
    "setup_logging",
    "timed",
]
