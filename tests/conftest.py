import pytest

from fractalfield import RasterEngine

WIDTH = 24
HEIGHT = 18


@pytest.fixture
def engine():
    with RasterEngine(WIDTH, HEIGHT, -0.25, 0.1, 1.3, strip_rows=5) as session:
        yield session


def fresh(viewport, width=WIDTH, height=HEIGHT):
    """Field fully computed from scratch at ``viewport``."""

    with RasterEngine(width, height, *viewport.as_tuple()) as session:
        return session.snapshot()
