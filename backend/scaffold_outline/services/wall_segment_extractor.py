"""
Wall Segment Extractor — dimensioned walls from an ordered boundary loop.

Walks the boundary (wrapping from the last point back to the first) and emits
one wall per edge with its exact length and direction, then looks for the
building height:
  a) Z range of 3D line endpoints
  b) Vertical dimension labeled as a height (GL, 高さ, H=, eave, ...)
  c) Any vertical dimension with a plausible building height
  d) Unknown: None plus a note asking the user to enter it

Everything returned is in millimeters regardless of the drawing unit.
"""
import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from scaffold_outline.config import (
    DEFAULT_UNIT,
    HEIGHT_KEYWORDS,
    MAX_BUILDING_HEIGHT_MM,
    MIN_BUILDING_HEIGHT_MM,
    UNIT_TO_MM,
)
from scaffold_outline.models.cad_entities import DimensionEntity
from scaffold_outline.models.geometry import BoundaryLoop
from scaffold_outline.models.outline_schema import ExtractionResult, PointMm, WallSegment
from scaffold_outline.services.geometry_primitives import direction_degrees, distance

logger = logging.getLogger("scaffold-outline.walls")

HEIGHT_UNKNOWN_NOTE = "Height data not found in CAD file. Please enter building height manually."


def unit_multiplier(unit: str) -> float:
    return UNIT_TO_MM.get(unit, UNIT_TO_MM[DEFAULT_UNIT])


def round_mm(value: float) -> int:
    """Whole millimeters, halves rounded up (2.5 → 3) rather than to even."""
    return int(Decimal(value).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _fmt(value: float) -> str:
    return f"{value:g}"


class WallSegmentExtractor:

    def extract(
        self,
        boundary: BoundaryLoop,
        dimensions: Optional[list[DimensionEntity]] = None,
        unit: str = DEFAULT_UNIT,
        z_range: Optional[tuple[float, float]] = None,
    ) -> ExtractionResult:
        """
        Convert the outer boundary into wall segments.

        Args:
            boundary: Ordered closed polygon in drawing units.
            dimensions: Dimension annotations from the drawing, used for height.
            unit: Drawing unit ('mm', 'cm' or 'm').
            z_range: (min_z, max_z) over 3D line endpoints, when present.
        """
        points = boundary.points
        to_mm = unit_multiplier(unit)
        logger.info(f"Extracting wall segments from boundary with {len(points)} points")

        walls: list[WallSegment] = []
        perimeter = 0.0
        for i, start in enumerate(points):
            end = points[(i + 1) % len(points)]
            length = distance(start, end)
            perimeter += length
            walls.append(WallSegment(
                id=i + 1,
                start=PointMm(x=start[0] * to_mm, y=start[1] * to_mm),
                end=PointMm(x=end[0] * to_mm, y=end[1] * to_mm),
                length=round_mm(length * to_mm),
                angle=round(direction_degrees(start, end), 2) % 360.0,
            ))

        height, note = self.building_height(dimensions or [], unit, z_range)
        height_mm = round_mm(height * to_mm) if height is not None else None
        perimeter_mm = round_mm(perimeter * to_mm)

        logger.info(
            f"Extracted {len(walls)} wall segments, perimeter={perimeter_mm}mm, "
            f"height={height_mm if height_mm is not None else 'unknown'}mm"
        )
        return ExtractionResult(
            wall_segments=walls,
            perimeter_total=perimeter_mm,
            building_height=height_mm,
            height_note=note,
        )

    def building_height(
        self,
        dimensions: list[DimensionEntity],
        unit: str,
        z_range: Optional[tuple[float, float]] = None,
    ) -> tuple[Optional[float], str]:
        """Returns (height in drawing units or None, human-readable note)."""
        # ── a) Z-coordinate range ────────────────────────────────────────
        if z_range is not None:
            min_z, max_z = z_range
            if max_z > min_z:
                z_height = max_z - min_z
                logger.info(f"Building height from Z-coordinates: {z_height} {unit}")
                return z_height, (
                    f"Height extracted from 3D Z-coordinates: {_fmt(z_height)}{unit} "
                    f"(Z range: {_fmt(min_z)} to {_fmt(max_z)})"
                )

        vertical = [d for d in dimensions if d.is_vertical]
        keywords = [kw.upper() for kw in HEIGHT_KEYWORDS]

        # ── b) Vertical dimension labeled as a height ────────────────────
        for dim in vertical:
            text = dim.text.upper()
            if any(kw in text for kw in keywords) and dim.value and dim.value > 0:
                logger.info(f"Building height from dimension entity: {dim.value} {unit} (text: {dim.text})")
                return dim.value, (
                    f"Height extracted from dimension entity: {_fmt(dim.value)}{unit} "
                    f"(label: \"{dim.text}\")"
                )

        # ── c) Any vertical dimension in the plausible range ─────────────
        to_mm = unit_multiplier(unit)
        for dim in vertical:
            if dim.value and dim.value > 0:
                value_mm = dim.value * to_mm
                if MIN_BUILDING_HEIGHT_MM <= value_mm <= MAX_BUILDING_HEIGHT_MM:
                    logger.info(f"Building height (best guess from vertical dim): {dim.value} {unit}")
                    return dim.value, (
                        f"Height possibly from vertical dimension: {_fmt(dim.value)}{unit}. "
                        f"Please verify."
                    )

        # ── d) Unknown ───────────────────────────────────────────────────
        logger.warning("Building height not found in CAD file")
        return None, HEIGHT_UNKNOWN_NOTE
