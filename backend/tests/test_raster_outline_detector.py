"""
test_raster_outline_detector.py — Unit tests for the raster outline path.

Tests cover:
  - end-to-end detection on synthetic drawings (rectangle, L-shape, large image,
    transparent PNG)
  - best-effort failures returning None (blank page, missing file, non-image,
    thin bar)
  - mask helpers: dilation, border flood fill, largest component, Moore trace
  - polygon simplification, the bounding-box fallback and its rejection of
    collapsed or sliver outlines
  - fractional outline → drawing-unit boundary bridge
"""

import math

import numpy as np
import pytest
from PIL import Image, ImageDraw

from scaffold_outline.models.outline_schema import OutlinePoint
from scaffold_outline.services.geometry_primitives import polygon_area
from scaffold_outline.services.raster_outline_detector import (
    ImplausibleSegmentationError,
    dilate,
    flood_fill_from_border,
    keep_largest_component,
    outline_to_boundary,
    simplify_outline,
    trace_outer_contour,
)

RECT_CORNERS = [(0.2, 0.2), (0.8, 0.2), (0.8, 0.8), (0.2, 0.8)]


def _assert_near_corners(outline, corners, tol=0.03):
    """Every detected vertex is near one expected corner and vice versa."""
    pts = [(p.x_frac, p.y_frac) for p in outline]
    for cx, cy in corners:
        assert min(math.hypot(x - cx, y - cy) for x, y in pts) < tol
    for x, y in pts:
        assert min(math.hypot(x - cx, y - cy) for cx, cy in corners) < tol


# ===========================================================================
# Class 1: End-to-end detection
# ===========================================================================

class TestDetectOutline:

    def test_rectangle_drawing(self, raster_detector, drawing_image):
        """
        400 × 300 page, wall outline (80,60)-(320,240) → four corners near
        (0.2, 0.2), (0.8, 0.2), (0.8, 0.8), (0.2, 0.8).
        """
        path = drawing_image(shapes=[("rect", (80, 60, 320, 240))])
        outline = raster_detector.detect_outline(path)

        assert outline is not None
        assert len(outline) == 4
        _assert_near_corners(outline, RECT_CORNERS)

    def test_large_image_is_downscaled(self, raster_detector, drawing_image):
        """1000 × 800 → 500 × 400 working image; fractions are unchanged."""
        path = drawing_image(
            size=(1000, 800), shapes=[("rect", (200, 160, 800, 640))], line_width=6,
        )
        outline = raster_detector.detect_outline(path)

        assert outline is not None
        assert len(outline) == 4
        _assert_near_corners(outline, RECT_CORNERS)

    def test_l_shaped_building(self, raster_detector, drawing_image):
        """
        L-shape with the top-right 120 × 90 block cut out of a 240 × 180 box:
        6 vertices, roughly 32 400 / 120 000 ≈ 0.27 of the page (a little more
        after dilation).
        """
        l_shape = [(80, 60), (200, 60), (200, 150), (320, 150), (320, 240), (80, 240)]
        path = drawing_image(shapes=[("poly", l_shape)])
        outline = raster_detector.detect_outline(path)

        assert outline is not None
        assert len(outline) == 6
        area = polygon_area([(p.x_frac, p.y_frac) for p in outline])
        assert 0.25 < area < 0.33

    def test_transparent_background_reads_as_paper(self, raster_detector, tmp_path):
        img = Image.new("RGBA", (400, 300), (0, 0, 0, 0))
        ImageDraw.Draw(img).rectangle((80, 60, 320, 240), outline=(0, 0, 0, 255), width=3)
        path = tmp_path / "transparent.png"
        img.save(path)

        outline = raster_detector.detect_outline(str(path))

        assert outline is not None
        _assert_near_corners(outline, RECT_CORNERS)

    def test_frame_around_whole_page_rejected(self, raster_detector, drawing_image):
        """A border drawn on the page edge leaves no exterior to flood → 100 % building."""
        path = drawing_image(shapes=[("rect", (0, 0, 399, 299))])
        assert raster_detector.detect_outline(path) is None


# ===========================================================================
# Class 2: Best-effort failures
# ===========================================================================

class TestDetectionFailures:

    def test_blank_page_returns_none(self, raster_detector, drawing_image):
        """No wall pixels → building fraction 0 % → rejected."""
        assert raster_detector.detect_outline(drawing_image()) is None

    def test_missing_file_returns_none(self, raster_detector, tmp_path):
        assert raster_detector.detect_outline(str(tmp_path / "missing.png")) is None

    def test_non_image_returns_none(self, raster_detector, tmp_path):
        path = tmp_path / "notes.png"
        path.write_text("not an image")
        assert raster_detector.detect_outline(str(path)) is None

    def test_implausible_fraction_raised_by_pixel_stage(self, raster_detector):
        """An all-black page is 100 % building, above the 92 % ceiling."""
        gray = np.zeros((100, 100), dtype=np.uint8)
        with pytest.raises(ImplausibleSegmentationError) as exc_info:
            raster_detector.detect_outline_pixels(gray)
        assert exc_info.value.fraction == pytest.approx(1.0)

    def test_thin_bar_rejected(self, raster_detector, tmp_path):
        """
        A 400 × 12 bar on a 500 × 500 page passes the 2 % mask check after
        dilation, but its simplified outline and even that outline's bounding
        box enclose less than 2 % of the page → None.
        """
        img = Image.new("L", (500, 500), 255)
        ImageDraw.Draw(img).rectangle((50, 240, 450, 252), fill=0)
        path = tmp_path / "bar.png"
        img.save(path)

        assert raster_detector.detect_outline(str(path)) is None


# ===========================================================================
# Class 3: Mask helpers
# ===========================================================================

class TestMaskOperations:

    def test_dilate_single_pixel(self):
        """Radius 2 → a 5 × 5 square of 25 pixels."""
        mask = np.zeros((9, 9), dtype=bool)
        mask[4, 4] = True
        out = dilate(mask, 2)
        assert out.sum() == 25
        assert out[2:7, 2:7].all()

    def test_dilate_radius_zero_is_copy(self):
        mask = np.eye(5, dtype=bool)
        out = dilate(mask, 0)
        assert (out == mask).all()
        assert out is not mask

    def test_flood_fill_stops_at_closed_ring(self):
        """7 × 7 page, ring on rows/cols 1–5: exterior frame = 49 − 25 = 24 pixels."""
        walls = np.zeros((7, 7), dtype=bool)
        walls[1:6, 1:6] = True
        walls[2:5, 2:5] = False
        exterior = flood_fill_from_border(~walls)
        assert exterior.sum() == 24
        assert not exterior[3, 3]

    def test_flood_fill_without_passable_pixels(self):
        assert not flood_fill_from_border(np.zeros((4, 4), dtype=bool)).any()

    def test_keep_largest_component(self):
        mask = np.zeros((10, 10), dtype=bool)
        mask[0:2, 0:2] = True    # 4 px
        mask[5:8, 5:8] = True    # 9 px
        out = keep_largest_component(mask)
        assert out.sum() == 9
        assert out[6, 6] and not out[0, 0]

    def test_moore_trace_of_square_block(self):
        """3 × 3 block in a 5 × 5 mask → the 8 border pixels, starting top-left."""
        mask = np.zeros((5, 5), dtype=bool)
        mask[1:4, 1:4] = True
        contour = trace_outer_contour(mask)
        assert contour[0] == (1, 1)
        assert len(contour) == 8
        assert (2, 2) not in contour
        assert contour[1] == (2, 1)

    def test_moore_trace_empty_and_isolated(self):
        assert trace_outer_contour(np.zeros((3, 3), dtype=bool)) == []
        single = np.zeros((3, 3), dtype=bool)
        single[1, 1] = True
        assert trace_outer_contour(single) == [(1, 1)]


# ===========================================================================
# Class 4: Polygon simplification
# ===========================================================================

class TestSimplifyOutline:

    def test_clean_rectangle_unchanged(self):
        rect = [(50, 50), (350, 50), (350, 250), (50, 250)]
        assert simplify_outline(rect, 400, 300) == [(50.0, 50.0), (350.0, 50.0), (350.0, 250.0), (50.0, 250.0)]

    def test_star_forced_to_bounding_box(self):
        """20 alternating-radius vertices exceed the 8-vertex limit."""
        star = []
        for k in range(20):
            r = 120 if k % 2 == 0 else 60
            a = math.radians(k * 18)
            star.append((200 + r * math.cos(a), 150 + r * math.sin(a)))
        out = simplify_outline(star, 400, 300)

        assert len(out) == 4
        xs = sorted({x for x, _ in out})
        ys = sorted({y for _, y in out})
        assert len(xs) == 2 and len(ys) == 2
        assert xs[0] == pytest.approx(80.0)
        assert xs[1] == pytest.approx(320.0)

    def test_small_triangle_uses_bounding_box(self):
        """
        Area 5 000 < 5 % of 400 × 300 = 6 000 → box (10,10)-(110,110),
        whose 10 000 clears the 2 % floor of 2 400.
        """
        out = simplify_outline([(10, 10), (110, 10), (10, 110)], 400, 300)
        assert out == [(10, 10), (110, 10), (110, 110), (10, 110)]

    def test_tiny_triangle_rejected(self):
        """Area 450 → box 30 × 30 = 900 < 2 400 (2 % of the page)."""
        with pytest.raises(ImplausibleSegmentationError) as exc_info:
            simplify_outline([(10, 10), (40, 10), (10, 40)], 400, 300)
        assert exc_info.value.fraction == pytest.approx(900 / 120_000)

    def test_sliver_box_rejected(self):
        """
        380 × 4 strip: the 4-pixel edges fall under the 15-pixel minimum, the
        area 1 520 triggers the box fallback and the box is still 1 520 < 2 400.
        """
        sliver = [(10, 10), (390, 10), (390, 14), (10, 14)]
        with pytest.raises(ImplausibleSegmentationError) as exc_info:
            simplify_outline(sliver, 400, 300)
        assert exc_info.value.fraction == pytest.approx(1520 / 120_000)

    @pytest.mark.parametrize("contour", [
        [(10, 10), (10, 10), (300, 200)],
        [(120, 80), (120, 80)],
    ], ids=["two-distinct", "one-distinct"])
    def test_collapsed_contour_rejected(self, contour):
        """Fewer than 3 distinct points left after duplicate removal."""
        with pytest.raises(ImplausibleSegmentationError):
            simplify_outline(contour, 400, 300)

    def test_near_horizontal_edge_snapped(self):
        """A 4-pixel rise over 300 pixels is squared onto y = 52."""
        quad = [(50, 50), (350, 54), (350, 250), (50, 250)]
        out = simplify_outline(quad, 400, 300)
        assert out[0][1] == out[1][1] == 52.0


# ===========================================================================
# Class 5: Boundary bridge
# ===========================================================================

class TestOutlineToBoundary:

    def test_scales_and_flips_y(self):
        """Image top edge (y_frac 0) lands at the drawing's top (y = height)."""
        outline = [
            OutlinePoint(x_frac=0.0, y_frac=0.0),
            OutlinePoint(x_frac=1.0, y_frac=0.0),
            OutlinePoint(x_frac=1.0, y_frac=1.0),
            OutlinePoint(x_frac=0.0, y_frac=1.0),
        ]
        loop = outline_to_boundary(outline, 100.0, 50.0)
        assert loop.points == [(0.0, 50.0), (100.0, 50.0), (100.0, 0.0), (0.0, 0.0)]
        assert loop.area == pytest.approx(5000.0)
        assert loop.perimeter == pytest.approx(300.0)

    def test_too_few_points_rejected(self):
        with pytest.raises(ValueError):
            outline_to_boundary([OutlinePoint(x_frac=0, y_frac=0)] * 2, 10, 10)
