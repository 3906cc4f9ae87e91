"""
Output contract handed to the quantity calculator.

Lengths are always millimeters. ``building_height`` is ``None`` when the
drawing carries no usable height; the calculator must ask the user instead of
substituting a default.
"""
from typing import Literal, Optional

from pydantic import BaseModel, Field


class OutlinePoint(BaseModel):
    """Raster outline vertex as a fraction of image width / height."""
    x_frac: float = Field(..., ge=0.0, le=1.0)
    y_frac: float = Field(..., ge=0.0, le=1.0)


class PointMm(BaseModel):
    x: float
    y: float


class WallSegment(BaseModel):
    id: int = Field(..., description="1-based position along the boundary")
    start: PointMm
    end: PointMm
    length: float = Field(..., description="Wall length in mm, rounded to whole mm")
    angle: float = Field(..., description="Degrees 0-360, 0 = +X, counter-clockwise positive")


class GeometryLine(BaseModel):
    x1: float
    y1: float
    x2: float
    y2: float


class ExtractionResult(BaseModel):
    wall_segments: list[WallSegment]
    perimeter_total: float = Field(..., description="Sum of wall lengths in mm")
    building_height: Optional[float] = Field(None, description="mm, or None when unknown")
    height_note: str
    unit: Literal["mm"] = "mm"
    all_geometry: Optional[list[GeometryLine]] = Field(
        None, description="Cleaned drawing lines in mm, for reference rendering only"
    )


class CleaningStats(BaseModel):
    too_short: int = 0
    merged: int = 0
    duplicates: int = 0
    disconnected: int = 0


class ExtractionInfo(BaseModel):
    raw_segment_count: int
    cleaned_segment_count: int
    graph_nodes: int = 0
    graph_edges: int = 0
    loops_found: int = 0
    outer_boundary_points: int = 0
    wall_segment_count: int = 0
    unit: str
    used_hull_fallback: bool = False
    cleaning_stats: CleaningStats


class CadProcessingResult(BaseModel):
    success: bool
    data: Optional[ExtractionResult] = None
    extraction_info: Optional[ExtractionInfo] = None
    error: Optional[str] = None
