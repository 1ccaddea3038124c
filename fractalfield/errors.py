"""Exceptions raised by the raster field."""

from __future__ import annotations


class FieldError(Exception):
    """Base class for every error raised by :mod:`fractalfield`."""


class InvalidDimensionsError(FieldError, ValueError):
    """The requested raster cannot be allocated."""

    def __init__(self, width: object, height: object) -> None:
        super().__init__(f"field dimensions must be positive integers, got {width!r}x{height!r}")
        self.width = width
        self.height = height


class NonFinitePositionError(FieldError, ArithmeticError):
    """A viewport component is, or would become, NaN or infinite."""

    def __init__(self, name: str, value: float) -> None:
        super().__init__(f"viewport {name} is out of range: {value!r}")
        self.name = name
        self.value = value
