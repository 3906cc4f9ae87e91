"""
DXF Geometry Extractor — reads a vector drawing into CAD entity variants.

Handles:
- LINE, LWPOLYLINE, POLYLINE, ARC, SPLINE, DIMENSION in model space
- INSERT block references, exploded with their insert transform
- Drawing unit from the $INSUNITS header (mm when absent or unsupported)
- Z range of 3D lines (used for the building height)

DWG / JWW files must be converted to DXF before they reach this module.

Dependencies:
  - ezdxf
"""
import logging
import os
from typing import Iterable, Optional

import ezdxf

from scaffold_outline.config import DEFAULT_UNIT, INSUNITS_TO_UNIT, SPLINE_SEGMENTS
from scaffold_outline.models.cad_entities import (
    ArcEntity,
    CadEntity,
    DimensionEntity,
    DrawingExtraction,
    LineEntity,
    PolylineEntity,
    SplineEntity,
)

logger = logging.getLogger("scaffold-outline.dxf")

SUPPORTED_EXTENSIONS = (".dxf",)

# Nested block references deeper than this are ignored
MAX_BLOCK_DEPTH = 8


class UnsupportedDrawingFormatError(ValueError):
    """Raised for drawing formats this extractor cannot read directly (DWG, JWW, ...)."""
    def __init__(self, extension: str):
        self.extension = extension
        super().__init__(
            f"Unsupported drawing format: {extension or '(none)'}. "
            f"Convert to .dxf before outline extraction."
        )


def _xy(vec) -> tuple[float, float]:
    return (float(vec[0]), float(vec[1]))


def _layer(entity, inherited: str = "") -> str:
    layer = entity.dxf.get("layer", "") or ""
    # Block content on layer 0 takes the layer of its INSERT
    if inherited and layer in ("", "0"):
        return inherited
    return layer or "default"


class DxfGeometryExtractor:

    def extract(self, file_path: str) -> DrawingExtraction:
        """
        Read a DXF file.

        Raises:
            UnsupportedDrawingFormatError: the file is not a .dxf.
            IOError: the file cannot be opened.
            ezdxf.DXFStructureError: the file is not a valid DXF.
        """
        ext = os.path.splitext(file_path)[1].lower()
        if ext not in SUPPORTED_EXTENSIONS:
            raise UnsupportedDrawingFormatError(ext)

        doc = ezdxf.readfile(file_path)
        return self.extract_from_doc(doc)

    def extract_from_doc(self, doc) -> DrawingExtraction:
        """Core extraction from an ezdxf Document object."""
        unit = self.detect_unit(doc)
        msp = doc.modelspace()

        entities: list[CadEntity] = []
        source_count = 0
        for entity in msp:
            source_count += 1
            entities.extend(self._convert(entity))

        extraction = DrawingExtraction.from_entities(entities, unit)
        logger.info(
            f"DXF extracted: {source_count} entities → {len(extraction.segments)} segments, "
            f"{len(extraction.dimensions)} dimensions, {len(extraction.layers)} layers, "
            f"unit={unit}, has_z={extraction.z_range is not None}"
        )
        return extraction

    @staticmethod
    def detect_unit(doc) -> str:
        try:
            insunits = int(doc.header.get("$INSUNITS", 0))
        except (TypeError, ValueError):
            return DEFAULT_UNIT
        return INSUNITS_TO_UNIT.get(insunits, DEFAULT_UNIT)

    # ── Entity conversion ────────────────────────────────────────────────────

    def _convert(self, entity, inherited_layer: str = "", depth: int = 0) -> list[CadEntity]:
        try:
            dxf_type = entity.dxftype()
            layer = _layer(entity, inherited_layer)

            if dxf_type == "LINE":
                return [self._line(entity, layer)]

            elif dxf_type == "LWPOLYLINE":
                points = tuple((float(x), float(y)) for x, y in entity.get_points("xy"))
                return [PolylineEntity(points=points, closed=bool(entity.closed), layer=layer)]

            elif dxf_type == "POLYLINE":
                if entity.is_poly_face_mesh or entity.is_polygon_mesh:
                    return []
                points = tuple(_xy(p) for p in entity.points())
                return [PolylineEntity(points=points, closed=bool(entity.is_closed), layer=layer)]

            elif dxf_type == "ARC":
                return [ArcEntity(
                    center=_xy(entity.dxf.center),
                    radius=float(entity.dxf.radius),
                    start_angle=float(entity.dxf.start_angle),
                    end_angle=float(entity.dxf.end_angle),
                    layer=layer,
                )]

            elif dxf_type == "SPLINE":
                tool = entity.construction_tool()
                points = tuple(_xy(p) for p in tool.approximate(segments=SPLINE_SEGMENTS))
                return [SplineEntity(points=points, layer=layer)]

            elif dxf_type == "DIMENSION":
                return [self._dimension(entity, layer)]

            elif dxf_type == "INSERT":
                if depth >= MAX_BLOCK_DEPTH:
                    logger.debug(f"Skipping INSERT nested deeper than {MAX_BLOCK_DEPTH}")
                    return []
                return list(self._explode(entity.virtual_entities(), layer, depth + 1))

        except Exception as e:
            # Never crash on a single entity
            logger.debug(f"Error processing {entity.dxftype()} entity: {e}")
        return []

    def _explode(self, children: Iterable, layer: str, depth: int) -> Iterable[CadEntity]:
        for child in children:
            yield from self._convert(child, layer, depth)

    @staticmethod
    def _line(entity, layer: str) -> LineEntity:
        start = entity.dxf.start
        end = entity.dxf.end
        z_values: tuple[float, ...] = ()
        if start.z != 0 or end.z != 0:
            z_values = (float(start.z), float(end.z))
        return LineEntity(start=_xy(start), end=_xy(end), layer=layer, z_values=z_values)

    @staticmethod
    def _dimension(entity, layer: str) -> DimensionEntity:
        text = (entity.dxf.get("text", "") or "").strip()
        if text == "<>":
            text = ""

        # Linear dimensions measure between defpoint2 and defpoint3
        start = entity.dxf.get("defpoint2")
        if start is None:
            start = entity.dxf.get("defpoint")
        end = entity.dxf.get("defpoint3")
        if end is None:
            end = start

        measurement: Optional[float] = None
        try:
            value = entity.get_measurement()
            if isinstance(value, (int, float)):
                measurement = float(value)
        except Exception as e:
            logger.debug(f"Dimension measurement unavailable: {e}")

        return DimensionEntity.from_label(
            text,
            _xy(start) if start is not None else (0.0, 0.0),
            _xy(end) if end is not None else (0.0, 0.0),
            measurement=measurement,
            layer=layer,
        )
