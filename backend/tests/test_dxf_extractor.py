"""
test_dxf_extractor.py — Unit tests for DxfGeometryExtractor.

Drawings are built in memory with ezdxf and saved into ``tmp_path``; the
whole module is skipped when ezdxf is not installed.

Tests cover:
  - drawing unit from $INSUNITS
  - LWPOLYLINE, ARC, SPLINE linearization
  - INSERT block references (transform and layer inheritance)
  - 3D line Z range and DIMENSION entities
  - unsupported formats and unreadable files
"""

import pytest

ezdxf = pytest.importorskip("ezdxf")

from scaffold_outline.services.dxf_extractor import (  # noqa: E402
    DxfGeometryExtractor,
    UnsupportedDrawingFormatError,
)


@pytest.fixture
def extractor():
    return DxfGeometryExtractor()


@pytest.fixture
def new_doc():
    """Factory: empty R2010 drawing with the given $INSUNITS code (4 = mm)."""
    def _make(insunits=4):
        doc = ezdxf.new("R2010")
        doc.header["$INSUNITS"] = insunits
        return doc
    return _make


class TestUnits:

    @pytest.mark.parametrize("code,unit", [(4, "mm"), (5, "cm"), (6, "m"), (0, "mm"), (1, "mm")])
    def test_insunits_mapping(self, extractor, new_doc, code, unit):
        """Inches (1) and unitless (0) fall back to millimeters."""
        assert extractor.detect_unit(new_doc(code)) == unit


class TestEntityConversion:

    def test_closed_lwpolyline_from_file(self, extractor, new_doc, tmp_path):
        doc = new_doc()
        doc.modelspace().add_lwpolyline(
            [(0, 0), (10_000, 0), (10_000, 6_000), (0, 6_000)],
            close=True,
            dxfattribs={"layer": "A-WALL"},
        )
        path = tmp_path / "plan.dxf"
        doc.saveas(path)

        extraction = extractor.extract(str(path))

        assert extraction.unit == "mm"
        assert len(extraction.segments) == 4
        assert extraction.layers == ["A-WALL"]
        assert sum(s.length for s in extraction.segments) == pytest.approx(32_000.0)

    def test_arc_is_linearized(self, extractor, new_doc):
        doc = new_doc()
        doc.modelspace().add_arc(center=(0, 0), radius=1_000, start_angle=0, end_angle=180)
        extraction = extractor.extract_from_doc(doc)
        assert len(extraction.segments) == 8

    def test_spline_sampled_into_twenty_segments(self, extractor, new_doc):
        doc = new_doc()
        doc.modelspace().add_open_spline([(0, 0), (100, 200), (300, 100), (400, 300)])
        extraction = extractor.extract_from_doc(doc)
        assert len(extraction.segments) == 20

    def test_block_reference_is_transformed(self, extractor, new_doc):
        """Block line (0,0)-(1000,0) inserted at (500,500) → (500,500)-(1500,500)."""
        doc = new_doc()
        block = doc.blocks.new(name="WALL_RUN")
        block.add_line((0, 0), (1_000, 0))
        doc.modelspace().add_blockref("WALL_RUN", (500, 500), dxfattribs={"layer": "BUILDING"})

        extraction = extractor.extract_from_doc(doc)

        assert len(extraction.segments) == 1
        seg = extraction.segments[0]
        assert seg.start == pytest.approx((500.0, 500.0))
        assert seg.end == pytest.approx((1_500.0, 500.0))
        assert seg.layer == "BUILDING"

    def test_3d_lines_give_z_range(self, extractor, new_doc):
        doc = new_doc()
        msp = doc.modelspace()
        msp.add_line((0, 0, 0), (10_000, 0, 0))
        msp.add_line((0, 0, 0), (0, 0, 3_000))
        extraction = extractor.extract_from_doc(doc)

        assert extraction.z_range == (0.0, 3_000.0)
        assert len(extraction.segments) == 1

    def test_flat_drawing_has_no_z_range(self, extractor, new_doc):
        doc = new_doc()
        doc.modelspace().add_line((0, 0), (100, 0))
        assert extractor.extract_from_doc(doc).z_range is None

    def test_vertical_dimension(self, extractor, new_doc):
        doc = new_doc()
        msp = doc.modelspace()
        msp.add_linear_dim(
            base=(-500, 1_500), p1=(0, 0), p2=(0, 3_000), angle=90, text="GL+3000",
        ).render()

        extraction = extractor.extract_from_doc(doc)

        assert len(extraction.dimensions) == 1
        dim = extraction.dimensions[0]
        assert dim.text == "GL+3000"
        assert dim.is_vertical
        assert dim.value == pytest.approx(3_000.0)
        assert extraction.segments == []


class TestExtractionErrors:

    def test_dwg_rejected(self, extractor, tmp_path):
        with pytest.raises(UnsupportedDrawingFormatError) as exc_info:
            extractor.extract(str(tmp_path / "plan.dwg"))
        assert exc_info.value.extension == ".dwg"
        assert "Convert to .dxf" in str(exc_info.value)

    def test_missing_file(self, extractor, tmp_path):
        with pytest.raises(IOError):
            extractor.extract(str(tmp_path / "missing.dxf"))
