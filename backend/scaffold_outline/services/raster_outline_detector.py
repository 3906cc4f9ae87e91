"""
Raster Outline Detector — building footprint from an architectural drawing image.

Pipeline (deterministic, no learned models):
  1. Downscale to WORK_SIZE_PX on the longest side, grayscale
  2. Threshold → wall mask
  3. Separable box dilation (closes door / window gaps in wall lines)
  4. Flood fill non-wall pixels from the border → exterior
  5. Building = not exterior; reject implausible pixel fractions
  6. Keep the largest 4-connected component
  7. Fill interior holes
  8. Moore boundary tracing → raw contour
  9. Douglas–Peucker, two escalating passes
 10. Snap near-axis edges to true horizontal / vertical
 11. Remove duplicate points, merge collinear vertices
 12. Drop short edges (residual interior detail)
 13. Bounding-box fallback for over-complex or undersized polygons

Output points are fractions of the working image so results do not depend on
the source resolution. Detection is best-effort: every failure returns None.
"""
import logging
import math
from typing import Optional, Sequence

import numpy as np
from PIL import Image, UnidentifiedImageError
from scipy import ndimage
from shapely.geometry import LineString

from scaffold_outline.config import (
    AXIS_SNAP_FLOOR_PX,
    AXIS_SNAP_MIN_EDGE_PX,
    AXIS_SNAP_RATIO,
    AXIS_SNAP_SLOPE_RATIO,
    COLLINEAR_ABSOLUTE_CROSS,
    COLLINEAR_NORMALIZED_CROSS,
    DILATION_RADIUS_PX,
    DP_FIRST_PASS_FLOOR_PX,
    DP_FIRST_PASS_RATIO,
    DP_SECOND_PASS_FLOOR_PX,
    DP_SECOND_PASS_RATIO,
    DP_SECOND_PASS_TRIGGER,
    MAX_BUILDING_FRACTION,
    MAX_OUTLINE_VERTICES,
    MIN_BUILDING_FRACTION,
    MIN_CONTOUR_POINTS,
    MIN_EDGE_RATIO,
    MIN_OUTLINE_AREA_RATIO,
    MIN_WORK_SIDE_PX,
    WALL_THRESHOLD,
    WORK_SIZE_PX,
)
from scaffold_outline.models.geometry import BoundaryLoop, Point
from scaffold_outline.models.outline_schema import OutlinePoint
from scaffold_outline.services.geometry_primitives import (
    bounding_box_polygon,
    distance,
    polygon_area,
    polygon_perimeter,
    signed_polygon_area,
)
from scaffold_outline.services.perf_monitor import timed

logger = logging.getLogger("scaffold-outline.raster")

# Moore neighbourhood, clockwise in image coordinates (y down): E SE S SW W NW N NE
_MOORE_DX = (1, 1, 0, -1, -1, -1, 0, 1)
_MOORE_DY = (0, 1, 1, 1, 0, -1, -1, -1)
_WEST = 4


class ImplausibleSegmentationError(ValueError):
    """Building pixels cover too little or too much of the image to be a footprint."""
    def __init__(self, fraction: float):
        self.fraction = fraction
        super().__init__(
            f"IMPLAUSIBLE_SEGMENTATION: building covers {fraction * 100:.1f}% of the image "
            f"(expected {MIN_BUILDING_FRACTION * 100:.0f}%–{MAX_BUILDING_FRACTION * 100:.0f}%)"
        )


class RasterOutlineDetector:
    """Stateless; safe to share between worker threads."""

    @timed
    def detect_outline(self, file_path: str) -> Optional[list[OutlinePoint]]:
        """
        Detect the building footprint in an image.

        Returns:
            Polygon vertices as fractions of image width / height, or None when
            the image cannot be read or no plausible footprint is found.
        """
        try:
            gray = self._load_working_image(file_path)
            points = self.detect_outline_pixels(gray)
        except ImplausibleSegmentationError as e:
            logger.warning(f"Outline detection skipped: {e}")
            return None
        except (OSError, UnidentifiedImageError, ValueError) as e:
            logger.warning(f"Outline detection failed for {file_path}: {e}")
            return None

        if points is None:
            return None
        h, w = gray.shape
        return [
            OutlinePoint(x_frac=min(max(x / w, 0.0), 1.0), y_frac=min(max(y / h, 0.0), 1.0))
            for x, y in points
        ]

    def detect_outline_pixels(self, gray: np.ndarray) -> Optional[list[Point]]:
        """Run steps 2–13 on a grayscale working image; returns pixel coordinates."""
        h, w = gray.shape

        # ── 2. Binary threshold ──────────────────────────────────────────
        walls = gray < WALL_THRESHOLD

        # ── 3. Dilate to close wall gaps ─────────────────────────────────
        walls = dilate(walls, DILATION_RADIUS_PX)

        # ── 4–5. Exterior flood fill; building = not exterior ────────────
        building = ~flood_fill_from_border(~walls)
        fraction = float(building.sum()) / (w * h)
        logger.info(f"Building fraction: {fraction * 100:.1f}% ({int(building.sum())}px)")
        if fraction < MIN_BUILDING_FRACTION or fraction > MAX_BUILDING_FRACTION:
            raise ImplausibleSegmentationError(fraction)

        # ── 6. Largest connected component ───────────────────────────────
        building = keep_largest_component(building)

        # ── 7. Fill interior holes ───────────────────────────────────────
        building = ndimage.binary_fill_holes(building)

        # ── 8. Trace outer contour ───────────────────────────────────────
        contour = trace_outer_contour(building)
        if len(contour) < MIN_CONTOUR_POINTS:
            logger.warning(f"Contour too short: {len(contour)}")
            return None
        logger.info(f"Raw contour: {len(contour)} points")

        # ── 9. Douglas–Peucker, two passes ───────────────────────────────
        short_side = min(w, h)
        epsilon = max(DP_FIRST_PASS_FLOOR_PX, short_side * DP_FIRST_PASS_RATIO)
        simplified = douglas_peucker(contour, epsilon)
        logger.info(f"Douglas-Peucker (first pass): {len(simplified)} pts (eps={epsilon:.1f})")
        if len(simplified) > DP_SECOND_PASS_TRIGGER:
            epsilon = max(DP_SECOND_PASS_FLOOR_PX, short_side * DP_SECOND_PASS_RATIO)
            simplified = douglas_peucker(contour, epsilon)
            logger.info(f"Douglas-Peucker (second pass): {len(simplified)} pts (eps={epsilon:.1f})")
        if len(simplified) < 3:
            return None

        # ── 10–13. Axis snapping, cleanup, bounding-box fallback ─────────
        return simplify_outline(simplified, w, h)

    # ── Image loading ────────────────────────────────────────────────────────

    @staticmethod
    def _load_working_image(file_path: str) -> np.ndarray:
        with Image.open(file_path) as img:
            img.load()
            orig_w, orig_h = img.size
            if img.mode in ("RGBA", "LA", "P"):
                # Transparent background reads as white paper
                rgba = img.convert("RGBA")
                canvas = Image.new("RGBA", rgba.size, (255, 255, 255, 255))
                img = Image.alpha_composite(canvas, rgba)
            scale = min(1.0, WORK_SIZE_PX / max(orig_w, orig_h, 1))
            w = max(MIN_WORK_SIDE_PX, round(orig_w * scale))
            h = max(MIN_WORK_SIDE_PX, round(orig_h * scale))
            logger.info(f"Outline detection: orig={orig_w}x{orig_h}, work={w}x{h}")
            gray = img.convert("L")
            if (w, h) != (orig_w, orig_h):
                gray = gray.resize((w, h), Image.Resampling.LANCZOS)
            return np.asarray(gray, dtype=np.uint8)


# ── Mask operations ──────────────────────────────────────────────────────────


def dilate(mask: np.ndarray, radius: int) -> np.ndarray:
    """Square box dilation as a horizontal then a vertical 1-D maximum filter."""
    if radius <= 0:
        return mask.copy()
    size = 2 * radius + 1
    out = ndimage.maximum_filter1d(mask.astype(np.uint8), size=size, axis=1, mode="constant", cval=0)
    out = ndimage.maximum_filter1d(out, size=size, axis=0, mode="constant", cval=0)
    return out.astype(bool)


def flood_fill_from_border(passable: np.ndarray) -> np.ndarray:
    """Pixels of ``passable`` 4-connected to any image border pixel."""
    labels, count = ndimage.label(passable)
    if count == 0:
        return np.zeros_like(passable, dtype=bool)
    border = np.concatenate([labels[0, :], labels[-1, :], labels[:, 0], labels[:, -1]])
    border_labels = np.unique(border[border > 0])
    return np.isin(labels, border_labels)


def keep_largest_component(mask: np.ndarray) -> np.ndarray:
    labels, count = ndimage.label(mask)
    if count <= 1:
        return mask.astype(bool)
    sizes = np.bincount(labels.ravel())
    sizes[0] = 0
    return labels == int(np.argmax(sizes))


def trace_outer_contour(mask: np.ndarray) -> list[Point]:
    """
    Moore-neighbour boundary trace from the topmost-leftmost set pixel.

    Stops on return to the start pixel, on an isolated pixel, or after
    2 × pixel-count steps.
    """
    h, w = mask.shape
    filled = np.argwhere(mask)
    if len(filled) == 0:
        return []
    start_y, start_x = (int(v) for v in filled[0])

    def is_building(x: int, y: int) -> bool:
        return 0 <= x < w and 0 <= y < h and bool(mask[y, x])

    contour: list[Point] = []
    cx, cy = start_x, start_y
    back_dir = _WEST  # left of the start pixel is background
    for _ in range(2 * w * h):
        contour.append((cx, cy))
        for i in range(8):
            d = (back_dir + 1 + i) % 8
            nx, ny = cx + _MOORE_DX[d], cy + _MOORE_DY[d]
            if is_building(nx, ny):
                cx, cy = nx, ny
                back_dir = (d + 4) % 8
                break
        else:
            break
        if (cx, cy) == (start_x, start_y):
            break
    return contour


# ── Polygon simplification ───────────────────────────────────────────────────


def douglas_peucker(points: Sequence[Point], epsilon: float) -> list[Point]:
    if len(points) <= 2:
        return list(points)
    line = LineString(points).simplify(epsilon, preserve_topology=False)
    return [(float(x), float(y)) for x, y in line.coords]


def snap_to_axes(points: Sequence[Point], threshold: float) -> list[Point]:
    """Force near-horizontal / near-vertical edges exactly onto the axis."""
    out = [list(p) for p in points]
    n = len(out)
    for i in range(n):
        j = (i + 1) % n
        dx = abs(out[j][0] - out[i][0])
        dy = abs(out[j][1] - out[i][1])
        length = math.hypot(dx, dy)
        if length < AXIS_SNAP_MIN_EDGE_PX:
            continue
        if dy / length < AXIS_SNAP_SLOPE_RATIO and dy < threshold:
            avg = round((out[i][1] + out[j][1]) / 2)
            out[i][1] = out[j][1] = avg
        elif dx / length < AXIS_SNAP_SLOPE_RATIO and dx < threshold:
            avg = round((out[i][0] + out[j][0]) / 2)
            out[i][0] = out[j][0] = avg
    return [(float(x), float(y)) for x, y in out]


def remove_duplicate_points(points: Sequence[Point]) -> list[Point]:
    """Drop consecutive repeats and a closing point equal to the first."""
    if len(points) <= 1:
        return list(points)
    out = [points[0]]
    for p in points[1:]:
        if p != out[-1]:
            out.append(p)
    if len(out) > 1 and out[0] == out[-1]:
        out.pop()
    return out


def merge_collinear_points(points: Sequence[Point]) -> list[Point]:
    """Keep only vertices where the outline turns noticeably."""
    if len(points) <= 3:
        return list(points)
    n = len(points)
    out = [points[0]]
    for i in range(1, n):
        prev, curr, nxt = out[-1], points[i], points[(i + 1) % n]
        dx1, dy1 = curr[0] - prev[0], curr[1] - prev[1]
        dx2, dy2 = nxt[0] - curr[0], nxt[1] - curr[1]
        cross = dx1 * dy2 - dy1 * dx2
        len1 = math.hypot(dx1, dy1)
        len2 = math.hypot(dx2, dy2)
        normalized = abs(cross) / (len1 * len2) if len1 > 0 and len2 > 0 else abs(cross)
        if normalized > COLLINEAR_NORMALIZED_CROSS or abs(cross) > COLLINEAR_ABSOLUTE_CROSS:
            out.append(curr)
    if len(out) < 3:
        return [points[0], points[n // 2], points[-1]]
    return out


def drop_short_edges(points: Sequence[Point], min_edge: float) -> list[Point]:
    """Keep the start vertex of every edge at least ``min_edge`` long."""
    kept: list[Point] = []
    n = len(points)
    for i in range(n):
        curr, nxt = points[i], points[(i + 1) % n]
        if distance(curr, nxt) >= min_edge and (not kept or kept[-1] != curr):
            kept.append(curr)
    return kept


def simplify_outline(points: Sequence[Point], width: int, height: int) -> list[Point]:
    """
    Steps 10–13: axis snapping, duplicate / collinear cleanup, short-edge
    removal and the bounding-box fallback.

    Returns at most MAX_OUTLINE_VERTICES points enclosing at least
    MIN_BUILDING_FRACTION of the image. Raises ImplausibleSegmentationError
    when fewer than 3 distinct points survive or when even the bounding box
    falls below that area.
    """
    short_side = min(width, height)

    snap_thresh = max(AXIS_SNAP_FLOOR_PX, short_side * AXIS_SNAP_RATIO)
    pts = snap_to_axes(points, snap_thresh)
    pts = remove_duplicate_points(pts)
    pts = merge_collinear_points(pts)

    filtered = drop_short_edges(pts, short_side * MIN_EDGE_RATIO)
    if len(filtered) < 3:
        logger.warning(
            f"After filtering short edges, only {len(filtered)} points remain, using unfiltered"
        )
        pts = remove_duplicate_points(pts)
    else:
        pts = filtered
    pts = merge_collinear_points(pts)
    if len(set(pts)) < 3:
        logger.warning(f"Only {len(set(pts))} distinct points remain after simplification")
        raise ImplausibleSegmentationError(0.0)

    if len(pts) > MAX_OUTLINE_VERTICES:
        logger.warning(f"Still {len(pts)} vertices after simplification, forcing to bounding box")
        pts = bounding_box_polygon(pts)

    min_area = width * height * MIN_OUTLINE_AREA_RATIO
    area = polygon_area(pts)
    if area < min_area:
        logger.warning(f"Polygon area too small: {area:.0f} < {min_area:.0f}, using bounding box")
        pts = bounding_box_polygon(pts)
        area = polygon_area(pts)
        if area < width * height * MIN_BUILDING_FRACTION:
            raise ImplausibleSegmentationError(area / (width * height))

    logger.info(f"Final polygon: {len(pts)} vertices")
    return pts


# ── Bridge to the wall extractor ─────────────────────────────────────────────


def outline_to_boundary(
    points: Sequence[OutlinePoint],
    width_units: float,
    height_units: float,
) -> BoundaryLoop:
    """
    Scale a fractional outline to drawing units.

    Image rows grow downward; the result is flipped so +Y points up like a
    CAD drawing, with (0, 0) at the image's bottom-left corner.
    """
    if len(points) < 3:
        raise ValueError(f"Outline needs at least 3 points, got {len(points)}")
    coords = [(p.x_frac * width_units, (1.0 - p.y_frac) * height_units) for p in points]
    signed = signed_polygon_area(coords)
    return BoundaryLoop(
        points=coords,
        area=abs(signed),
        perimeter=polygon_perimeter(coords),
        signed_area=signed,
    )
