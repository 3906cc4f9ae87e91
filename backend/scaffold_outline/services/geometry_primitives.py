"""Planar geometry helpers shared by the vector and raster outline paths."""
import math
from typing import Iterable, Sequence

from scaffold_outline.models.geometry import BoundsInfo, Point, Segment


def distance(a: Point, b: Point) -> float:
    return math.hypot(b[0] - a[0], b[1] - a[1])


def signed_polygon_area(points: Sequence[Point]) -> float:
    """Shoelace area; positive for counter-clockwise order (y up)."""
    if len(points) < 3:
        return 0.0
    area = 0.0
    n = len(points)
    for i in range(n):
        x1, y1 = points[i]
        x2, y2 = points[(i + 1) % n]
        area += x1 * y2 - x2 * y1
    return area / 2.0


def polygon_area(points: Sequence[Point]) -> float:
    return abs(signed_polygon_area(points))


def polygon_perimeter(points: Sequence[Point]) -> float:
    n = len(points)
    if n < 2:
        return 0.0
    return sum(distance(points[i], points[(i + 1) % n]) for i in range(n))


def bounds_of_points(points: Iterable[Point]) -> BoundsInfo:
    xs, ys = [], []
    for x, y in points:
        xs.append(x)
        ys.append(y)
    if not xs:
        return BoundsInfo()
    return BoundsInfo(min(xs), min(ys), max(xs), max(ys))


def bounds_of_segments(segments: Iterable[Segment]) -> BoundsInfo:
    return bounds_of_points(p for seg in segments for p in (seg.start, seg.end))


def bounding_box_polygon(points: Sequence[Point]) -> list[Point]:
    """Axis-aligned rectangle around ``points``: (min,min), (max,min), (max,max), (min,max)."""
    b = bounds_of_points(points)
    return [
        (b.min_x, b.min_y),
        (b.max_x, b.min_y),
        (b.max_x, b.max_y),
        (b.min_x, b.max_y),
    ]


def cross(o: Point, a: Point, b: Point) -> float:
    return (a[0] - o[0]) * (b[1] - o[1]) - (a[1] - o[1]) * (b[0] - o[0])


def directions_parallel(angle_a: float, angle_b: float, tolerance: float) -> bool:
    """True when two directions (radians) agree within ``tolerance``, forward or reversed."""
    diff = abs(angle_a - angle_b) % (2 * math.pi)
    if diff > math.pi:
        diff = 2 * math.pi - diff
    return diff <= tolerance or abs(diff - math.pi) <= tolerance


def direction_degrees(start: Point, end: Point) -> float:
    """Direction in degrees within [0, 360): 0 = +X, 90 = +Y."""
    deg = math.degrees(math.atan2(end[1] - start[1], end[0] - start[0]))
    if deg < 0:
        deg += 360.0
    if deg >= 360.0:
        deg -= 360.0
    return deg


def convex_hull(points: Sequence[Point]) -> list[int]:
    """
    Graham scan. Returns indices into ``points`` of the hull vertices in
    counter-clockwise order, starting from the lowest (then leftmost) point.
    Collinear boundary points are dropped.
    """
    if len(points) < 3:
        return list(range(len(points)))

    pivot = min(range(len(points)), key=lambda i: (points[i][1], points[i][0]))
    px, py = points[pivot]

    others = [i for i in range(len(points)) if i != pivot]
    others.sort(key=lambda i: (
        math.atan2(points[i][1] - py, points[i][0] - px),
        distance(points[pivot], points[i]),
    ))

    hull = [pivot]
    for i in others:
        while len(hull) >= 2 and cross(points[hull[-2]], points[hull[-1]], points[i]) <= 0:
            hull.pop()
        hull.append(i)
    return hull
