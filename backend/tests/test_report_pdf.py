"""Tests for the ReportLab PDF renderer."""

import base64
from datetime import datetime
from io import BytesIO

import pytest
from PIL import Image

from inspection_report.engine.annotations import (
    add_damage_point, add_inspection_photo, upsert_tire_measurement,
)
from inspection_report.models.schemas import (
    BodyInspection, CompanySettings, InspectionItem, InspectionRecord,
    TireInspection, VehicleHistory, VehicleInfo,
)
from inspection_report.services import report as pdf_report
from inspection_report.services.diagram import PlaceholderDiagramRenderer
from inspection_report.services.report_composer import compose_report


def _png_uri(color=(30, 60, 90), mode="RGB"):
    buf = BytesIO()
    Image.new(mode, (120, 80), color).save(buf, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buf.getvalue()).decode()


async def _sections(**overrides):
    photos = ()
    for _ in range(3):
        photos = add_inspection_photo(photos, _png_uri())
    fields = dict(
        id="insp-9",
        vehicle_info=VehicleInfo(plate="KLM 456", brand="Renault", owner_name="Eva <Ruiz> & Co",
                                 vehicle_photo=_png_uri()),
        vehicle_history=VehicleHistory(mileage="12000"),
        inspection_date=datetime(2026, 10, 1, 8, 0),
        items=[InspectionItem(category="Motor y Soportes", item="Base Motor Der", status="bad")],
        body_inspection=BodyInspection(points=add_damage_point((), 0.4, 0.5, label="Guardabarros")),
        tire_inspection=TireInspection(measurements=upsert_tire_measurement((), "front-right", 2.1)),
        inspection_photos=list(photos),
        diagnosis_suggestions=["Cambiar pastillas de freno"],
    )
    fields.update(overrides)
    company = CompanySettings(company_name="Taller Dos", company_logo=_png_uri(),
                              watermark_logo=_png_uri((0, 0, 0), "RGBA"),
                              report_template="colombia")
    return await compose_report(InspectionRecord(**fields), company,
                                renderers=[PlaceholderDiagramRenderer()],
                                generated_at=datetime(2026, 10, 19))


class TestGenerateReportBytes:
    @pytest.mark.asyncio
    async def test_full_report_is_pdf(self):
        pdf = pdf_report.generate_report_bytes(await _sections())
        assert pdf.startswith(b"%PDF")
        assert len(pdf) > 2000

    @pytest.mark.asyncio
    async def test_minimal_report(self):
        sections = await compose_report(InspectionRecord(id="empty"), CompanySettings(),
                                        renderers=[PlaceholderDiagramRenderer()])
        assert pdf_report.generate_report_bytes(sections).startswith(b"%PDF")

    @pytest.mark.asyncio
    async def test_placeholder_slots_render(self):
        sections = await _sections(
            vehicle_info=VehicleInfo(plate="ZZZ111", vehicle_photo="/does/not/exist.jpg"),
        )
        assert pdf_report.generate_report_bytes(sections).startswith(b"%PDF")


class TestGenerateReport:
    @pytest.mark.asyncio
    async def test_writes_file(self, tmp_path, monkeypatch):
        monkeypatch.setattr(pdf_report, "OUTPUT_DIR", str(tmp_path))
        path = pdf_report.generate_report(await _sections(), plate="KLM 456")
        assert path.startswith(str(tmp_path))
        assert "KLM456" in path
        with open(path, "rb") as f:
            assert f.read(4) == b"%PDF"


def test_fade_lightens_image():
    buf = BytesIO()
    Image.new("RGB", (10, 10), (0, 0, 0)).save(buf, format="PNG")
    faded = Image.open(BytesIO(pdf_report._fade(buf.getvalue()))).convert("RGB")
    assert faded.getpixel((5, 5))[0] > 200
