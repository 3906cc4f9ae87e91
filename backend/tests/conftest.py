"""
conftest.py — Shared pytest fixtures for the outline pipeline test suite.

No broker, database or network fixtures are defined here.  All tests are pure
unit tests; raster tests draw their images into ``tmp_path`` with Pillow.

Import-path bootstrapping:
    The ``backend/`` directory is inserted into sys.path so that all
    ``scaffold_outline.*`` imports resolve regardless of where pytest is invoked.
"""

import sys
import os
import pytest

# ---------------------------------------------------------------------------
# Ensure ``backend/`` is on the import path before any package imports occur.
# ---------------------------------------------------------------------------
_BACKEND_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _BACKEND_DIR not in sys.path:
    sys.path.insert(0, _BACKEND_DIR)


# ---------------------------------------------------------------------------
# Service fixtures (all services are stateless)
# ---------------------------------------------------------------------------

@pytest.fixture(scope="session")
def segment_cleaner():
    """SegmentCleaner with the default 1° collinear tolerance."""
    from scaffold_outline.services.segment_cleaner import SegmentCleaner
    return SegmentCleaner()


@pytest.fixture(scope="session")
def boundary_detector():
    from scaffold_outline.services.boundary_detector import BoundaryDetector
    return BoundaryDetector()


@pytest.fixture(scope="session")
def raster_detector():
    from scaffold_outline.services.raster_outline_detector import RasterOutlineDetector
    return RasterOutlineDetector()


@pytest.fixture(scope="session")
def wall_extractor():
    from scaffold_outline.services.wall_segment_extractor import WallSegmentExtractor
    return WallSegmentExtractor()


@pytest.fixture
def perf_tracker():
    """Fresh tracker so pipeline tests can assert exact counts."""
    from scaffold_outline.services.perf_monitor import PerformanceTracker
    return PerformanceTracker()


@pytest.fixture
def pipeline(perf_tracker):
    from scaffold_outline.services.cad_pipeline import CadProcessingPipeline
    return CadProcessingPipeline(perf_tracker=perf_tracker)


# ---------------------------------------------------------------------------
# Geometry fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(scope="session")
def make_rectangle():
    """
    Factory: four segments of an axis-aligned rectangle, counter-clockwise
    from (x, y): bottom, right, top, left.
    """
    from scaffold_outline.models.geometry import Segment

    def _make(x: float, y: float, width: float, height: float, layer: str = "WALL"):
        return [
            Segment(x, y, x + width, y, layer),
            Segment(x + width, y, x + width, y + height, layer),
            Segment(x + width, y + height, x, y + height, layer),
            Segment(x, y + height, x, y, layer),
        ]
    return _make


@pytest.fixture
def gapped_rectangle():
    """
    100 × 60 rectangle whose four walls each stop short of the corners, leaving
    1-unit gaps on both axes (corner gap distance √2 ≈ 1.41).

    After snapping (tolerance 5) each corner becomes the centroid of its two
    endpoints: (0.5, 0.5), (99.5, 0.5), (99.5, 59.5), (0.5, 59.5)
    → a 99 × 59 rectangle.
    """
    from scaffold_outline.models.geometry import Segment
    return [
        Segment(1, 0, 99, 0),      # bottom
        Segment(100, 1, 100, 59),  # right
        Segment(99, 60, 1, 60),    # top
        Segment(0, 59, 0, 1),      # left
    ]


@pytest.fixture
def drawing_image(tmp_path):
    """
    Factory: grayscale PNG on white paper with black outlines.

    ``shapes`` is a list of ("rect", (x0, y0, x1, y1)) or ("poly", [points]).
    """
    from PIL import Image, ImageDraw

    def _make(size=(400, 300), shapes=(), line_width=3, name="drawing.png"):
        img = Image.new("L", size, 255)
        draw = ImageDraw.Draw(img)
        for kind, coords in shapes:
            if kind == "rect":
                draw.rectangle(coords, outline=0, width=line_width)
            elif kind == "poly":
                pts = list(coords) + [coords[0]]
                draw.line(pts, fill=0, width=line_width)
        path = tmp_path / name
        img.save(path)
        return str(path)
    return _make
