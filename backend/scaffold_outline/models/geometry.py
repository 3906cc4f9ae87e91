"""
Core geometry records shared by the vector and raster paths.

All records are created fresh per processing request. Cleaning stages replace
``Segment`` lists rather than mutating them, so segments are frozen.
"""
import math
from dataclasses import dataclass, field
from typing import Optional

Point = tuple[float, float]


@dataclass(frozen=True)
class Segment:
    x1: float
    y1: float
    x2: float
    y2: float
    layer: str = ""

    @property
    def length(self) -> float:
        return math.hypot(self.x2 - self.x1, self.y2 - self.y1)

    @property
    def start(self) -> Point:
        return (self.x1, self.y1)

    @property
    def end(self) -> Point:
        return (self.x2, self.y2)

    @property
    def angle(self) -> float:
        """Direction from start to end in radians."""
        return math.atan2(self.y2 - self.y1, self.x2 - self.x1)

    @classmethod
    def from_points(cls, start: Point, end: Point, layer: str = "") -> "Segment":
        return cls(start[0], start[1], end[0], end[1], layer)

    def to_dict(self) -> dict:
        return {"x1": self.x1, "y1": self.y1, "x2": self.x2, "y2": self.y2}


@dataclass
class BoundsInfo:
    min_x: float = 0.0
    min_y: float = 0.0
    max_x: float = 0.0
    max_y: float = 0.0

    @property
    def width(self) -> float:
        return abs(self.max_x - self.min_x)

    @property
    def height(self) -> float:
        return abs(self.max_y - self.min_y)

    @property
    def max_extent(self) -> float:
        return max(self.width, self.height)

    @property
    def diagonal(self) -> float:
        return math.hypot(self.width, self.height)

    def to_dict(self) -> dict:
        return {
            "min_x": round(self.min_x, 2),
            "min_y": round(self.min_y, 2),
            "max_x": round(self.max_x, 2),
            "max_y": round(self.max_y, 2),
            "width": round(self.width, 2),
            "height": round(self.height, 2),
        }


@dataclass
class GraphNode:
    id: int
    x: float
    y: float
    edges: list[int] = field(default_factory=list)  # indices into the edge list


@dataclass
class GraphEdge:
    id: int
    node1: int
    node2: int
    length: float
    angle: float  # radians, node1 → node2


@dataclass
class PlanarGraph:
    nodes: list[GraphNode]
    edges: list[GraphEdge]


@dataclass
class BoundaryLoop:
    """Closed polygon; the first point is not repeated at the end."""
    points: list[Point]
    area: float                 # absolute enclosed area
    perimeter: float
    signed_area: float = 0.0    # positive = counter-clockwise
    node_ids: Optional[list[int]] = None

    @property
    def is_counter_clockwise(self) -> bool:
        return self.signed_area > 0

    def to_dict(self) -> dict:
        return {
            "points": [{"x": round(x, 3), "y": round(y, 3)} for x, y in self.points],
            "area": round(self.area, 3),
            "perimeter": round(self.perimeter, 3),
        }
