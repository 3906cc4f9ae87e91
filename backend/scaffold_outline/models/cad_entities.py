"""
Closed set of CAD entity variants handed over by the vector extraction step.

Each variant carries only the fields it needs. ``linearize_entities`` is the
single place where curved entities become straight ``Segment``s, so the
cleaner and boundary detector only ever see segments.
"""
import math
import re
from dataclasses import dataclass, field
from typing import Optional, Union

from scaffold_outline.config import (
    ARC_SEGMENTS_PER_TURN,
    DEFAULT_UNIT,
    MIN_ARC_SEGMENTS,
    VERTICAL_DIMENSION_RATIO,
)
from scaffold_outline.models.geometry import Point, Segment

_NUMBER_PATTERN = re.compile(r"\d+\.?\d*")


@dataclass(frozen=True)
class LineEntity:
    start: Point
    end: Point
    layer: str = ""
    z_values: tuple[float, ...] = ()


@dataclass(frozen=True)
class PolylineEntity:
    points: tuple[Point, ...]
    closed: bool = False
    layer: str = ""


@dataclass(frozen=True)
class ArcEntity:
    center: Point
    radius: float
    start_angle: float  # degrees
    end_angle: float    # degrees
    layer: str = ""


@dataclass(frozen=True)
class SplineEntity:
    """Spline already sampled into an ordered point chain."""
    points: tuple[Point, ...]
    layer: str = ""


@dataclass(frozen=True)
class DimensionEntity:
    text: str
    start: Point
    end: Point
    value: Optional[float] = None
    layer: str = ""

    @property
    def is_vertical(self) -> bool:
        dx = abs(self.end[0] - self.start[0])
        dy = abs(self.end[1] - self.start[1])
        return dy > dx * VERTICAL_DIMENSION_RATIO

    @classmethod
    def from_label(cls, text: str, start: Point, end: Point,
                   measurement: Optional[float] = None, layer: str = "") -> "DimensionEntity":
        """Build a dimension, preferring the measured value over the first number in the label."""
        value = measurement if measurement and measurement > 0 else None
        if value is None:
            match = _NUMBER_PATTERN.search(text or "")
            if match:
                value = float(match.group(0))
        return cls(text=text or "", start=start, end=end, value=value, layer=layer)


CadEntity = Union[LineEntity, PolylineEntity, ArcEntity, SplineEntity, DimensionEntity]


@dataclass
class LinearizedGeometry:
    segments: list[Segment] = field(default_factory=list)
    dimensions: list[DimensionEntity] = field(default_factory=list)


def _chain_segments(points: tuple[Point, ...], layer: str, closed: bool = False) -> list[Segment]:
    segments = []
    for i in range(len(points) - 1):
        seg = Segment.from_points(points[i], points[i + 1], layer)
        if seg.length > 0:
            segments.append(seg)
    if closed and len(points) >= 3:
        seg = Segment.from_points(points[-1], points[0], layer)
        if seg.length > 0:
            segments.append(seg)
    return segments


def arc_to_segments(arc: ArcEntity) -> list[Segment]:
    """Approximate an arc with chords; a full turn uses ARC_SEGMENTS_PER_TURN chords."""
    if arc.radius <= 0:
        return []
    start = math.radians(arc.start_angle)
    end = math.radians(arc.end_angle)
    if end <= start:
        end += 2 * math.pi
    sweep = end - start
    count = max(MIN_ARC_SEGMENTS, math.ceil(sweep / (2 * math.pi) * ARC_SEGMENTS_PER_TURN))

    cx, cy = arc.center
    points = []
    for i in range(count + 1):
        a = start + sweep * i / count
        points.append((cx + arc.radius * math.cos(a), cy + arc.radius * math.sin(a)))
    return _chain_segments(tuple(points), arc.layer)


def entity_to_segments(entity: CadEntity) -> list[Segment]:
    if isinstance(entity, LineEntity):
        seg = Segment.from_points(entity.start, entity.end, entity.layer)
        return [seg] if seg.length > 0 else []
    elif isinstance(entity, PolylineEntity):
        return _chain_segments(entity.points, entity.layer, closed=entity.closed)
    elif isinstance(entity, ArcEntity):
        return arc_to_segments(entity)
    elif isinstance(entity, SplineEntity):
        return _chain_segments(entity.points, entity.layer)
    elif isinstance(entity, DimensionEntity):
        return []
    raise TypeError(f"Unsupported CAD entity: {type(entity).__name__}")


def linearize_entities(entities: list[CadEntity]) -> LinearizedGeometry:
    """Split entities into straight segments and dimension annotations."""
    result = LinearizedGeometry()
    for entity in entities:
        if isinstance(entity, DimensionEntity):
            result.dimensions.append(entity)
        else:
            result.segments.extend(entity_to_segments(entity))
    return result


@dataclass
class DrawingExtraction:
    """Everything the outline pipeline needs from one vector drawing."""
    segments: list[Segment]
    dimensions: list[DimensionEntity]
    unit: str = DEFAULT_UNIT
    layers: list[str] = field(default_factory=list)
    z_range: Optional[tuple[float, float]] = None  # (min_z, max_z) of 3D lines

    @classmethod
    def from_entities(cls, entities: list[CadEntity], unit: str = DEFAULT_UNIT) -> "DrawingExtraction":
        geometry = linearize_entities(entities)
        layers: list[str] = []
        z_values: list[float] = []
        for entity in entities:
            if entity.layer not in layers:
                layers.append(entity.layer)
            if isinstance(entity, LineEntity):
                z_values.extend(entity.z_values)
        return cls(
            segments=geometry.segments,
            dimensions=geometry.dimensions,
            unit=unit,
            layers=layers,
            z_range=(min(z_values), max(z_values)) if z_values else None,
        )
