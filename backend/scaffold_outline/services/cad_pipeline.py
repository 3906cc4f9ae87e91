"""
CAD Processing Pipeline — drawing file to dimensioned building walls.

Vector path:
  Parse DXF → adaptive tolerances → clean → detect outer boundary →
  wall segments + height → CadProcessingResult

Raster path:
  Detect outline in image → scale to the given real-world size →
  wall segments (height unknown) → CadProcessingResult

Expected failures (empty drawing, too little geometry, no closed outline,
unreadable file) come back as ``success=False`` with a readable error; they
are never raised to the caller.
"""
import logging
import time
from typing import Optional

from scaffold_outline.models.cad_entities import DrawingExtraction
from scaffold_outline.models.geometry import Segment
from scaffold_outline.models.outline_schema import (
    CadProcessingResult,
    CleaningStats,
    ExtractionInfo,
    GeometryLine,
)
from scaffold_outline.services.boundary_detector import BoundaryDetector, InsufficientGeometryError
from scaffold_outline.services.geometry_primitives import bounds_of_segments
from scaffold_outline.services.perf_monitor import PerformanceTracker, tracker as default_tracker
from scaffold_outline.services.raster_outline_detector import (
    RasterOutlineDetector,
    outline_to_boundary,
)
from scaffold_outline.services.segment_cleaner import SegmentCleaner, cleaning_tolerances
from scaffold_outline.services.wall_segment_extractor import WallSegmentExtractor, unit_multiplier

logger = logging.getLogger("scaffold-outline.pipeline")


def _failure(error: str, info: Optional[ExtractionInfo] = None) -> CadProcessingResult:
    return CadProcessingResult(success=False, data=None, extraction_info=info, error=error)


class CadProcessingPipeline:

    def __init__(
        self,
        cleaner: Optional[SegmentCleaner] = None,
        boundary_detector: Optional[BoundaryDetector] = None,
        wall_extractor: Optional[WallSegmentExtractor] = None,
        raster_detector: Optional[RasterOutlineDetector] = None,
        perf_tracker: Optional[PerformanceTracker] = None,
    ):
        self.cleaner = cleaner or SegmentCleaner()
        self.boundary_detector = boundary_detector or BoundaryDetector()
        self.wall_extractor = wall_extractor or WallSegmentExtractor()
        self.raster_detector = raster_detector or RasterOutlineDetector()
        self.tracker = perf_tracker or default_tracker

    # ── Vector path ──────────────────────────────────────────────────────────

    def process(self, file_path: str, drawing_id: str = "") -> CadProcessingResult:
        """Run the complete vector pipeline on a DXF file."""
        import ezdxf
        from scaffold_outline.services.dxf_extractor import (
            DxfGeometryExtractor,
            UnsupportedDrawingFormatError,
        )

        logger.info(f"CAD processing start: {file_path}", extra={"drawing_id": drawing_id})
        start = time.perf_counter()
        try:
            with self.tracker.stage("extract", drawing_id):
                extraction = DxfGeometryExtractor().extract(file_path)
        except UnsupportedDrawingFormatError as e:
            self._finish(start, success=False)
            return _failure(str(e))
        except (OSError, ezdxf.DXFStructureError) as e:
            logger.warning(f"Failed to read DXF file {file_path}: {e}", extra={"drawing_id": drawing_id})
            self._finish(start, success=False)
            return _failure(f"Failed to read DXF file: {e}")

        return self._run_vector(extraction, drawing_id, start)

    def process_extraction(self, extraction: DrawingExtraction, drawing_id: str = "") -> CadProcessingResult:
        """Run the pipeline on geometry that was already extracted."""
        return self._run_vector(extraction, drawing_id, time.perf_counter())

    def _run_vector(self, extraction: DrawingExtraction, drawing_id: str, start: float) -> CadProcessingResult:
        raw_count = len(extraction.segments)
        logger.info(
            f"Parsed: {raw_count} segments, {len(extraction.dimensions)} dimensions, "
            f"unit={extraction.unit}, has_z={extraction.z_range is not None}",
            extra={"drawing_id": drawing_id},
        )

        if raw_count == 0:
            self._finish(start, success=False)
            return _failure(
                "No structural geometry found in CAD file. "
                "The file may contain only text/annotations."
            )

        # ── Clean ────────────────────────────────────────────────────────
        min_length, snap_tol = cleaning_tolerances(bounds_of_segments(extraction.segments), extraction.unit)
        with self.tracker.stage("clean", drawing_id):
            cleaned = self.cleaner.clean(extraction.segments, min_length, snap_tol)
        stats = CleaningStats(**cleaned.removed_count)
        info = ExtractionInfo(
            raw_segment_count=raw_count,
            cleaned_segment_count=len(cleaned.segments),
            unit=extraction.unit,
            cleaning_stats=stats,
        )

        if len(cleaned.segments) < 3:
            self._finish(start, success=False)
            return _failure(
                f"Insufficient geometry after cleaning ({len(cleaned.segments)} segments remain "
                f"of {raw_count}). Need at least 3 segments to form a building outline.",
                info,
            )

        # ── Outer boundary ───────────────────────────────────────────────
        try:
            with self.tracker.stage("boundary", drawing_id):
                detection = self.boundary_detector.detect(cleaned.segments, snap_tol)
        except InsufficientGeometryError as e:
            info.graph_nodes = e.node_count
            info.graph_edges = e.edge_count
            self._finish(start, success=False)
            return _failure(f"Boundary detection failed: {e}", info)

        # ── Walls + height ───────────────────────────────────────────────
        with self.tracker.stage("walls", drawing_id):
            result = self.wall_extractor.extract(
                detection.outer_boundary,
                extraction.dimensions,
                extraction.unit,
                extraction.z_range,
            )
        result.all_geometry = self._geometry_mm(cleaned.segments, extraction.unit)

        info.graph_nodes = len(detection.graph.nodes)
        info.graph_edges = len(detection.graph.edges)
        info.loops_found = detection.loops_found
        info.outer_boundary_points = len(detection.outer_boundary.points)
        info.wall_segment_count = len(result.wall_segments)
        info.used_hull_fallback = detection.used_hull_fallback

        logger.info(
            f"CAD processing complete: {len(result.wall_segments)} walls, "
            f"perimeter={result.perimeter_total}mm, "
            f"height={result.building_height if result.building_height is not None else 'unknown'}mm, "
            f"all_geometry={len(result.all_geometry)} segments",
            extra={"drawing_id": drawing_id},
        )
        self._finish(start, success=True)
        return CadProcessingResult(success=True, data=result, extraction_info=info)

    @staticmethod
    def _geometry_mm(segments: list[Segment], unit: str) -> list[GeometryLine]:
        to_mm = unit_multiplier(unit)
        return [
            GeometryLine(x1=s.x1 * to_mm, y1=s.y1 * to_mm, x2=s.x2 * to_mm, y2=s.y2 * to_mm)
            for s in segments
        ]

    # ── Raster path ──────────────────────────────────────────────────────────

    def process_raster_outline(
        self,
        file_path: str,
        width_mm: float,
        height_mm: float,
        drawing_id: str = "",
    ) -> CadProcessingResult:
        """
        Detect the footprint in an image and dimension it.

        ``width_mm`` / ``height_mm`` are the real-world extent the whole image
        covers; the image carries no scale of its own.
        """
        start = time.perf_counter()
        if width_mm <= 0 or height_mm <= 0:
            self._finish(start, success=False)
            return _failure(f"Image extent must be positive (got {width_mm} x {height_mm} mm)")

        with self.tracker.stage("raster_outline", drawing_id):
            outline = self.raster_detector.detect_outline(file_path)
        if outline is None:
            self._finish(start, success=False)
            return _failure("No building outline detected in image.")

        boundary = outline_to_boundary(outline, width_mm, height_mm)
        with self.tracker.stage("walls", drawing_id):
            result = self.wall_extractor.extract(boundary, [], "mm")

        info = ExtractionInfo(
            raw_segment_count=0,
            cleaned_segment_count=0,
            outer_boundary_points=len(boundary.points),
            wall_segment_count=len(result.wall_segments),
            unit="mm",
            cleaning_stats=CleaningStats(),
        )
        logger.info(
            f"Raster outline complete: {len(result.wall_segments)} walls, "
            f"perimeter={result.perimeter_total}mm",
            extra={"drawing_id": drawing_id},
        )
        self._finish(start, success=True)
        return CadProcessingResult(success=True, data=result, extraction_info=info)

    def _finish(self, start: float, success: bool) -> None:
        self.tracker.record_drawing_complete(round((time.perf_counter() - start) * 1000, 2), success)
