"""
Outline pipeline configuration — single source of truth for thresholds,
tolerances and unit tables.

Import from here in all services rather than hardcoding values.
"""
from __future__ import annotations

import os

# ── Units ──────────────────────────────────────────────────────────────────────
# Multiplier from drawing unit to millimeters.
UNIT_TO_MM: dict[str, float] = {
    "mm": 1.0,
    "cm": 10.0,
    "m": 1000.0,
}

# DXF $INSUNITS header codes → drawing unit
INSUNITS_TO_UNIT: dict[int, str] = {
    4: "mm",
    5: "cm",
    6: "m",
}

DEFAULT_UNIT: str = "mm"


# ── Segment cleaning ───────────────────────────────────────────────────────────

# Adaptive tolerances as a ratio of the drawing's largest extent
SNAP_TOLERANCE_RATIO: float = 0.001    # 0.1 % of extent
MIN_LENGTH_RATIO: float = 0.005        # 0.5 % of extent

# Per-unit floors: (snap_tolerance, min_length) in drawing units
CLEANING_FLOORS: dict[str, tuple[float, float]] = {
    "mm": (5.0, 10.0),
    "cm": (0.5, 1.0),
    "m":  (0.005, 0.01),
}

# Two segments are collinear when their directions agree within this angle
COLLINEAR_ANGLE_TOLERANCE_DEG: float = 1.0

# Segments shorter than this after snapping are dropped as collapsed
ZERO_LENGTH_EPSILON: float = 0.001

# Hard cap on collinear-merge passes
MAX_MERGE_PASSES: int = 1000

# Hard cap on endpoint re-clustering passes
MAX_SNAP_PASSES: int = 100


# ── Graph boundary detection ───────────────────────────────────────────────────

# Loops with |area| at or below this are degenerate back-and-forth walks
MIN_LOOP_AREA: float = 0.1

# Walk cap = LOOP_STEP_FACTOR × edges + LOOP_STEP_MARGIN
LOOP_STEP_FACTOR: int = 2
LOOP_STEP_MARGIN: int = 10


# ── Raster outline detection ───────────────────────────────────────────────────

WORK_SIZE_PX: int = 500               # longest side of the working image
MIN_WORK_SIDE_PX: int = 10
WALL_THRESHOLD: int = 160             # gray < threshold → wall pixel
DILATION_RADIUS_PX: int = 4

# Plausible building-pixel band (fraction of the whole image)
MIN_BUILDING_FRACTION: float = 0.02
MAX_BUILDING_FRACTION: float = 0.92

MIN_CONTOUR_POINTS: int = 8

# Douglas–Peucker: ratios of the shorter image side, with pixel floors
DP_FIRST_PASS_RATIO: float = 0.10
DP_FIRST_PASS_FLOOR_PX: float = 15.0
DP_SECOND_PASS_RATIO: float = 0.15
DP_SECOND_PASS_FLOOR_PX: float = 20.0
DP_SECOND_PASS_TRIGGER: int = 12      # run the second pass above this many points

# Axis snapping
AXIS_SNAP_SLOPE_RATIO: float = 0.15
AXIS_SNAP_RATIO: float = 0.08
AXIS_SNAP_FLOOR_PX: float = 10.0
AXIS_SNAP_MIN_EDGE_PX: float = 2.0

# Collinear vertex merge (normalized cross product, absolute cross product)
COLLINEAR_NORMALIZED_CROSS: float = 0.1
COLLINEAR_ABSOLUTE_CROSS: float = 2.0

MIN_EDGE_RATIO: float = 0.05          # edges shorter than 5 % of shorter side are dropped
MAX_OUTLINE_VERTICES: int = 8         # above this → bounding box
MIN_OUTLINE_AREA_RATIO: float = 0.05  # below 5 % of image area → bounding box


# ── CAD linearization ──────────────────────────────────────────────────────────

ARC_SEGMENTS_PER_TURN: int = 16
MIN_ARC_SEGMENTS: int = 4
SPLINE_SEGMENTS: int = 20

# A dimension is vertical when dy > VERTICAL_DIMENSION_RATIO × dx
VERTICAL_DIMENSION_RATIO: float = 3.0


# ── Building height ────────────────────────────────────────────────────────────

HEIGHT_KEYWORDS: list[str] = [
    "GL", "高さ", "height", "H=", "FL", "階高", "建物高",
    "軒高", "最高高さ", "棟高", "eave", "ridge",
]

# Plausible building height range for unlabeled vertical dimensions (mm)
MIN_BUILDING_HEIGHT_MM: float = 2_500.0
MAX_BUILDING_HEIGHT_MM: float = 100_000.0


# ── Workers ────────────────────────────────────────────────────────────────────

CELERY_BROKER_URL: str = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/0")
CELERY_RESULT_BACKEND: str = os.getenv("CELERY_RESULT_BACKEND", "redis://localhost:6379/1")

# Per-task time limits (seconds)
TASK_SOFT_TIME_LIMIT: int = 120
TASK_TIME_LIMIT: int = 300
