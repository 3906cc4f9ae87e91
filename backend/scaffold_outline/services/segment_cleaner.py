"""
Segment Cleaner — normalization and deduplication of raw drawing segments.

After the vector extraction step has produced straight segments:
  A) Remove segments below the minimum length threshold (noise, hatching)
  B) Snap endpoints within tolerance (closes small gaps at wall joints)
  C) Merge collinear adjacent segments
  D) Remove duplicate overlapping segments
  E) Remove disconnected fragments not attached to the main structure

Never raises: a result with too few segments is reported by the next stage.
"""
import logging
import math
from collections import deque
from dataclasses import dataclass, field
from typing import Optional

from scaffold_outline.config import (
    CLEANING_FLOORS,
    COLLINEAR_ANGLE_TOLERANCE_DEG,
    DEFAULT_UNIT,
    MAX_MERGE_PASSES,
    MAX_SNAP_PASSES,
    MIN_LENGTH_RATIO,
    SNAP_TOLERANCE_RATIO,
    ZERO_LENGTH_EPSILON,
)
from scaffold_outline.models.geometry import BoundsInfo, Point, Segment
from scaffold_outline.services.geometry_primitives import directions_parallel, distance
from scaffold_outline.services.perf_monitor import timed

logger = logging.getLogger("scaffold-outline.cleaner")


@dataclass
class CleaningResult:
    segments: list[Segment]
    removed_count: dict[str, int] = field(default_factory=lambda: {
        "too_short": 0,
        "merged": 0,
        "duplicates": 0,
        "disconnected": 0,
    })


def cleaning_tolerances(bounds: BoundsInfo, unit: str) -> tuple[float, float]:
    """
    Adaptive (min_length, snap_tolerance) for a drawing.

    Snap is 0.1 % and min length 0.5 % of the largest extent, never below the
    per-unit floors (5 mm / 10 mm for millimeter drawings).
    """
    snap_floor, length_floor = CLEANING_FLOORS.get(unit, CLEANING_FLOORS[DEFAULT_UNIT])
    extent = bounds.max_extent
    snap_tol = max(snap_floor, extent * SNAP_TOLERANCE_RATIO)
    min_length = max(length_floor, extent * MIN_LENGTH_RATIO)
    logger.info(
        f"Cleaning tolerances: snap={snap_tol:.3f}, min_length={min_length:.3f} "
        f"(drawing extent: {extent:.1f} {unit})"
    )
    return min_length, snap_tol


def _centroid(points: list[Point]) -> Point:
    first = points[0]
    if all(p == first for p in points):
        return first
    return (
        sum(p[0] for p in points) / len(points),
        sum(p[1] for p in points) / len(points),
    )


def _endpoints_touch(a: Segment, b: Segment, tolerance: float) -> bool:
    return (
        distance(a.start, b.start) <= tolerance
        or distance(a.start, b.end) <= tolerance
        or distance(a.end, b.start) <= tolerance
        or distance(a.end, b.end) <= tolerance
    )


class SegmentCleaner:
    """Stateless; one instance can serve concurrent requests."""

    def __init__(self, angle_tolerance_deg: float = COLLINEAR_ANGLE_TOLERANCE_DEG):
        self.angle_tolerance = math.radians(angle_tolerance_deg)

    @timed
    def clean(
        self,
        raw_segments: list[Segment],
        min_length: float = 5.0,
        snap_tolerance: float = 5.0,
    ) -> CleaningResult:
        """
        Clean and normalize raw segments.

        Args:
            raw_segments: Straight segments from the vector extraction step.
            min_length: Segments shorter than this are treated as noise.
            snap_tolerance: Endpoints closer than this are the same location.

        Returns:
            CleaningResult with the cleaned segments and per-stage removal counts.
        """
        result = CleaningResult(segments=[])
        removed = result.removed_count
        logger.info(
            f"Cleaning {len(raw_segments)} raw segments "
            f"(min_length={min_length}, snap={snap_tolerance})"
        )

        # ── A) Minimum length ─────────────────────────────────────────────
        segments = [s for s in raw_segments if s.length >= min_length]
        removed["too_short"] = len(raw_segments) - len(segments)

        # ── B) Endpoint snapping ──────────────────────────────────────────
        # Snapping can shorten a segment below min_length or collapse it
        before = len(segments)
        segments = [
            s for s in self.snap_endpoints(segments, snap_tolerance)
            if s.length >= min_length
        ]
        removed["too_short"] += before - len(segments)

        # ── C) Collinear merge ────────────────────────────────────────────
        before = len(segments)
        segments = self.merge_collinear(segments, snap_tolerance)
        removed["merged"] = before - len(segments)

        # ── D) Duplicates ─────────────────────────────────────────────────
        before = len(segments)
        segments = self.remove_duplicates(segments, snap_tolerance)
        removed["duplicates"] = before - len(segments)

        # ── E) Disconnected fragments ─────────────────────────────────────
        before = len(segments)
        segments = self.remove_disconnected(segments, snap_tolerance)
        removed["disconnected"] = before - len(segments)

        logger.info(
            f"Cleaned: {len(segments)} segments (removed: {removed['too_short']} short, "
            f"{removed['merged']} merged, {removed['duplicates']} duplicates, "
            f"{removed['disconnected']} disconnected)"
        )
        result.segments = segments
        return result

    # ── B) Snap endpoints ────────────────────────────────────────────────────

    def snap_endpoints(self, segments: list[Segment], tolerance: float) -> list[Segment]:
        """
        Replace every endpoint by the centroid of its proximity cluster.

        Each pass seeds clusters at the current centroids and absorbs later
        centroids within tolerance of the seed. Passes repeat until no two
        centroids lie within tolerance, so snapped output snaps to itself.
        """
        points: list[Point] = []
        for seg in segments:
            points.append(seg.start)
            points.append(seg.end)

        groups: list[list[int]] = [[i] for i in range(len(points))]
        centers: list[Point] = list(points)
        for _ in range(MAX_SNAP_PASSES):
            next_groups: list[list[int]] = []
            next_centers: list[Point] = []
            assigned = [False] * len(groups)
            for i, seed in enumerate(centers):
                if assigned[i]:
                    continue
                assigned[i] = True
                members = list(groups[i])
                for j in range(i + 1, len(groups)):
                    if not assigned[j] and distance(seed, centers[j]) <= tolerance:
                        members.extend(groups[j])
                        assigned[j] = True
                next_groups.append(members)
                next_centers.append(_centroid([points[m] for m in members]))
            changed = len(next_groups) < len(groups)
            groups, centers = next_groups, next_centers
            if not changed:
                break
        else:
            logger.warning(f"Endpoint snapping hit the {MAX_SNAP_PASSES}-pass cap")

        snapped: list[Point] = list(points)
        for members, center in zip(groups, centers):
            for m in members:
                snapped[m] = center

        out = []
        for i, seg in enumerate(segments):
            moved = Segment.from_points(snapped[2 * i], snapped[2 * i + 1], seg.layer)
            if moved.length > ZERO_LENGTH_EPSILON:
                out.append(moved)
        return out

    # ── C) Merge collinear ───────────────────────────────────────────────────

    def merge_collinear(self, segments: list[Segment], tolerance: float) -> list[Segment]:
        """Fuse collinear segments that share an endpoint until nothing changes."""
        for _ in range(MAX_MERGE_PASSES):
            changed = False
            result = []
            used = [False] * len(segments)
            for i in range(len(segments)):
                if used[i]:
                    continue
                used[i] = True
                current = segments[i]
                extended = True
                while extended:
                    extended = False
                    for j in range(len(segments)):
                        if used[j]:
                            continue
                        merged = self._try_merge(current, segments[j], tolerance)
                        if merged is not None:
                            current = merged
                            used[j] = True
                            extended = changed = True
                result.append(current)
            segments = result
            if not changed:
                return segments
        logger.warning(f"Collinear merge hit the {MAX_MERGE_PASSES}-pass cap")
        return segments

    def _try_merge(self, a: Segment, b: Segment, tolerance: float) -> Optional[Segment]:
        if not _endpoints_touch(a, b, tolerance):
            return None
        if not directions_parallel(a.angle, b.angle, self.angle_tolerance):
            return None

        # Span the two most distant of the four endpoints
        points = [a.start, a.end, b.start, b.end]
        best = (0.0, points[0], points[1])
        for i in range(4):
            for j in range(i + 1, 4):
                d = distance(points[i], points[j])
                if d > best[0]:
                    best = (d, points[i], points[j])
        return Segment.from_points(best[1], best[2], a.layer)

    # ── D) Remove duplicates ─────────────────────────────────────────────────

    def remove_duplicates(self, segments: list[Segment], tolerance: float) -> list[Segment]:
        kept: list[Segment] = []
        for seg in segments:
            duplicate = False
            for other in kept:
                same = distance(seg.start, other.start) + distance(seg.end, other.end)
                flipped = distance(seg.start, other.end) + distance(seg.end, other.start)
                if min(same, flipped) < tolerance * 2:
                    duplicate = True
                    break
            if not duplicate:
                kept.append(seg)
        return kept

    # ── E) Remove disconnected fragments ─────────────────────────────────────

    def remove_disconnected(self, segments: list[Segment], tolerance: float) -> list[Segment]:
        """Keep only the largest group of segments connected through shared endpoints."""
        if len(segments) <= 1:
            return segments

        adjacency: list[list[int]] = [[] for _ in segments]
        for i in range(len(segments)):
            for j in range(i + 1, len(segments)):
                if _endpoints_touch(segments[i], segments[j], tolerance):
                    adjacency[i].append(j)
                    adjacency[j].append(i)

        visited = [False] * len(segments)
        components: list[list[int]] = []
        for i in range(len(segments)):
            if visited[i]:
                continue
            visited[i] = True
            component = []
            queue = deque([i])
            while queue:
                current = queue.popleft()
                component.append(current)
                for neighbor in adjacency[current]:
                    if not visited[neighbor]:
                        visited[neighbor] = True
                        queue.append(neighbor)
            components.append(component)

        if len(components) <= 1:
            return segments

        largest = set(max(components, key=len))
        logger.info(
            f"Found {len(components)} connected components. Keeping largest with "
            f"{len(largest)} segments, removing {len(segments) - len(largest)} disconnected."
        )
        return [seg for i, seg in enumerate(segments) if i in largest]
