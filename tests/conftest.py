"""
Shared test fixtures for grip-plate composition tests.
"""
import sys
import warnings
from dataclasses import replace
from pathlib import Path

# Suppress trimesh internal RuntimeWarning for degenerate cross-sections.
warnings.filterwarnings(
    "ignore",
    message="invalid value encountered in divide",
    category=RuntimeWarning,
    module=r"trimesh\.triangles",
)

import pytest

# Add src/ to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from gripplate.contracts import (
    Bounds2D,
    CompositionRequest,
    Distribution,
    InlayLayer,
    InlaySettings,
    PatternSettings,
    PlateSettings,
    PolygonalSource,
)
from gripplate.shapes import Shape


@pytest.fixture
def plate_bounds():
    """Bounds of the default 300x300 plate."""
    return Bounds2D.centered_square(300.0)


@pytest.fixture
def square_unit():
    """A 20x20 polygonal pattern unit (extruded to depth 1)."""
    return PolygonalSource(shapes=(Shape.square(20.0),))


@pytest.fixture
def grid_settings():
    """Plain grid on the default plate: no clipping, no margin."""
    return replace(
        PlateSettings(),
        pattern=PatternSettings(
            margin=0.0,
            spacing=5.0,
            distribution=Distribution.GRID,
            clip_to_outline=False,
        ),
    )


@pytest.fixture
def make_request(square_unit):
    """Build a CompositionRequest with a square pattern unit by default."""

    def _make(settings=None, outline=(), inlays=(), pattern=square_unit):
        return CompositionRequest(
            settings=settings or PlateSettings(),
            outline_shapes=tuple(outline),
            pattern=pattern,
            inlays=tuple(inlays),
        )

    return _make


@pytest.fixture
def square_inlay():
    """A 40x40 inlay square whose raw bounds start at the origin."""
    shape = Shape.from_points([(0, 0), (40, 0), (40, 40), (0, 40)])
    return InlayLayer(shapes=(shape,), settings=InlaySettings(), name="logo")
