"""Tests for report composition (section order, omission rules, images)."""

import base64
from datetime import datetime
from io import BytesIO
from unittest.mock import AsyncMock

import pytest
from PIL import Image

from inspection_report.config import settings
from inspection_report.engine.annotations import (
    add_damage_point, add_inspection_photo, upsert_tire_measurement,
)
from inspection_report.errors import MissingInspectionError
from inspection_report.models.report import PLACEHOLDER, EmbeddedImage, SectionKey
from inspection_report.models.schemas import (
    BatteryStatus, BodyInspection, BrakeFluidLevel, CompanySettings, InspectionItem,
    InspectionPhoto, InspectionRecord, MonthYear, OverallStatus, TaxStatus, TechnicalExpiry,
    TireInspection, VehicleHistory, VehicleInfo,
)
from inspection_report.services.report_composer import (
    ComposerState, ReportComposer, compose_report, history_rows, paginate_photos,
    report_title,
)


# ──────────────────────────────────────────────────────────────
# FIXTURES
# ──────────────────────────────────────────────────────────────

def _png_uri():
    buf = BytesIO()
    Image.new("RGB", (10, 10), (255, 255, 255)).save(buf, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buf.getvalue()).decode()


class _StubRenderer:
    async def render(self, request):
        return EmbeddedImage(mime_type="image/png", data=b"\x89PNG\r\n\x1a\nstub")


RENDERERS = [_StubRenderer()]
GENERATED_AT = datetime(2026, 10, 19, 9, 30)


def _record(**overrides):
    fields = dict(
        id="insp-1",
        vehicle_info=VehicleInfo(plate="ABC123", brand="Mazda", model="3", year="2020",
                                 owner_name="Ana Pérez", body_type="sedan"),
        inspection_date=datetime(2026, 10, 18, 14, 5),
        inspector_name="Luis",
    )
    fields.update(overrides)
    return InspectionRecord(**fields)


async def _compose(record, company=None, **kwargs):
    kwargs.setdefault("renderers", RENDERERS)
    kwargs.setdefault("reader", AsyncMock())
    return await compose_report(record, company or CompanySettings(),
                                generated_at=GENERATED_AT, **kwargs)


def _keys(sections):
    return [s.key for s in sections]


def _section(sections, key):
    return next(s for s in sections if s.key == key)


# ──────────────────────────────────────────────────────────────
# ORDER & OMISSION
# ──────────────────────────────────────────────────────────────

class TestSectionOrder:
    @pytest.mark.asyncio
    async def test_minimal_record(self):
        sections = await _compose(_record())
        assert _keys(sections) == [
            SectionKey.HEADER,
            SectionKey.INGRESS,
            SectionKey.VEHICLE_INFO,
            SectionKey.VEHICLE_PHOTO,
            SectionKey.SUGGESTED_PRICE,
            SectionKey.DIAGNOSIS,
            SectionKey.CHECKLIST_LIGHTS_EXTERIOR,
            SectionKey.CHECKLIST_ENGINE_MOUNTS,
            SectionKey.CHECKLIST_INTERIOR,
            SectionKey.VERDICT,
            SectionKey.DISCLAIMER,
        ]

    @pytest.mark.asyncio
    async def test_full_record(self):
        pts = add_damage_point((), 0.3, 0.4, label="Puerta")
        ms = upsert_tire_measurement((), "front-left", 3.2)
        photos = add_inspection_photo((), _png_uri(), photo_id="p1")
        record = _record(
            vehicle_history=VehicleHistory(mileage="45000"),
            body_inspection=BodyInspection(points=pts),
            tire_inspection=TireInspection(
                measurements=ms,
                battery_status=BatteryStatus(percentage=80),
                brake_fluid_level=BrakeFluidLevel(level=2),
            ),
            inspection_photos=list(photos),
        )
        keys = _keys(await _compose(record))
        assert keys.index(SectionKey.VEHICLE_HISTORY) == keys.index(SectionKey.SUGGESTED_PRICE) + 1
        assert keys[keys.index(SectionKey.CHECKLIST_INTERIOR) + 1:] == [
            SectionKey.BODY_DIAGRAM,
            SectionKey.TIRE_DIAGRAM,
            SectionKey.BATTERY,
            SectionKey.BRAKE_FLUID,
            SectionKey.PHOTOS,
            SectionKey.VERDICT,
            SectionKey.DISCLAIMER,
        ]

    @pytest.mark.asyncio
    async def test_disclaimer_repeats_on_every_page(self):
        sections = await _compose(_record())
        assert sections[-1].repeat_on_every_page
        assert sum(1 for s in sections if s.repeat_on_every_page) == 1


class TestBodyDiagram:
    @pytest.mark.asyncio
    async def test_omitted_without_points(self):
        sections = await _compose(_record(body_inspection=BodyInspection()))
        assert SectionKey.BODY_DIAGRAM not in _keys(sections)

    @pytest.mark.asyncio
    async def test_point_count_and_rows(self):
        pts = ()
        for i in range(3):
            pts = add_damage_point(pts, 0.1 * i, 0.5, label="" if i else "Capó")
        sections = await _compose(_record(body_inspection=BodyInspection(points=pts)))
        body = _section(sections, SectionKey.BODY_DIAGRAM)
        assert body.body["point_count"] == 3
        assert [p["number"] for p in body.body["points"]] == [1, 2, 3]
        assert body.body["points"][0]["label"] == "Capó"
        assert body.body["points"][1]["label"] == "Sin descripción"
        assert body.body["points"][1]["observation"] == "Sin observación"
        assert body.image("diagram").has_image


class TestTireDiagram:
    @pytest.mark.asyncio
    async def test_omitted_without_measurements(self):
        sections = await _compose(_record(tire_inspection=TireInspection()))
        assert SectionKey.TIRE_DIAGRAM not in _keys(sections)

    @pytest.mark.asyncio
    async def test_rows_use_severity(self):
        ms = upsert_tire_measurement((), "rear-right", 1.0)
        ms = upsert_tire_measurement(ms, "front-left", 5.0)
        sections = await _compose(_record(tire_inspection=TireInspection(measurements=ms)))
        rows = _section(sections, SectionKey.TIRE_DIAGRAM).body["rows"]
        assert [r["position"] for r in rows] == ["front-left", "rear-right"]
        assert rows[0]["band"] == "good"
        assert rows[1]["band"] == "critical"
        assert rows[1]["value"] == "1.00"

    @pytest.mark.asyncio
    async def test_battery_without_measurements(self):
        tires = TireInspection(battery_status=BatteryStatus(percentage=55))
        keys = _keys(await _compose(_record(tire_inspection=tires)))
        assert SectionKey.BATTERY in keys
        assert SectionKey.TIRE_DIAGRAM not in keys


# ──────────────────────────────────────────────────────────────
# PHOTOS
# ──────────────────────────────────────────────────────────────

class TestPhotos:
    def test_paginate_sorts_by_label(self):
        photos = ()
        for i in range(3):
            photos = add_inspection_photo(photos, f"/p{i}.jpg", photo_id=f"p{i}")
        photos = (photos[2].model_copy(update={"label": 9}),) + photos[:2]
        pages = paginate_photos(photos)
        assert [[p.label for p in page] for page in pages] == [[1, 2], [9]]

    @pytest.mark.asyncio
    async def test_five_photos_three_pages(self):
        photos = ()
        for i in range(5):
            photos = add_inspection_photo(photos, _png_uri(), photo_id=f"p{i}")
        sections = await _compose(_record(inspection_photos=list(photos)))
        pages = [s for s in sections if s.key == SectionKey.PHOTOS]
        assert [len(s.body["photos"]) for s in pages] == [2, 2, 1]
        assert pages[-1].body["empty_slots"] == 1
        assert [p["label"] for s in pages for p in s.body["photos"]] == [1, 2, 3, 4, 5]
        assert all(s.new_page for s in pages)

    @pytest.mark.asyncio
    async def test_unreadable_photo_is_placeholder(self):
        reader = AsyncMock()
        reader.read_file.side_effect = FileNotFoundError("missing")
        photos = add_inspection_photo((), "/gone.jpg", photo_id="p0")
        sections = await _compose(_record(inspection_photos=list(photos)), reader=reader)
        slot = _section(sections, SectionKey.PHOTOS).image("photo_1")
        assert slot.image is PLACEHOLDER
        assert not slot.has_image

    @pytest.mark.asyncio
    async def test_duplicate_photo_ids_keep_their_own_images(self):
        def _uri(color):
            buf = BytesIO()
            Image.new("RGB", (10, 10), color).save(buf, format="PNG")
            return "data:image/png;base64," + base64.b64encode(buf.getvalue()).decode()

        photos = [InspectionPhoto(id="dup", uri=_uri((255, 0, 0)), label=1),
                  InspectionPhoto(id="dup", uri=_uri((0, 0, 255)), label=2)]
        sections = await _compose(_record(inspection_photos=photos))
        page = _section(sections, SectionKey.PHOTOS)
        first = Image.open(BytesIO(page.image("photo_1").image.data)).convert("RGB")
        second = Image.open(BytesIO(page.image("photo_2").image.data)).convert("RGB")
        assert first.getpixel((5, 5)) == (255, 0, 0)
        assert second.getpixel((5, 5)) == (0, 0, 255)


# ──────────────────────────────────────────────────────────────
# IMAGES & FAILURE ISOLATION
# ──────────────────────────────────────────────────────────────

class TestImageIsolation:
    @pytest.mark.asyncio
    async def test_vehicle_photo_failure_does_not_abort(self):
        reader = AsyncMock()
        reader.read_file.side_effect = PermissionError("denied")
        record = _record(vehicle_info=VehicleInfo(plate="XYZ987", vehicle_photo="/car.jpg"))
        sections = await _compose(record, reader=reader)
        photo = _section(sections, SectionKey.VEHICLE_PHOTO)
        assert photo.image("vehicle_photo").image is PLACEHOLDER
        assert photo.body["has_photo"] is False
        assert _keys(sections)[-1] == SectionKey.DISCLAIMER

    @pytest.mark.asyncio
    async def test_missing_logo_is_none(self):
        sections = await _compose(_record())
        header = _section(sections, SectionKey.HEADER)
        assert header.image("logo").image is None
        assert header.image("watermark").image is None

    @pytest.mark.asyncio
    async def test_inline_logo_embedded(self):
        company = CompanySettings(company_name="Taller Uno", company_logo=_png_uri())
        header = _section(await _compose(_record(), company), SectionKey.HEADER)
        assert header.image("logo").has_image
        assert header.body["company_name"] == "Taller Uno"

    @pytest.mark.asyncio
    async def test_file_images_fit_their_profiles(self):
        def _encoded(fmt):
            buf = BytesIO()
            Image.new("RGB", (2000, 1500), (90, 140, 60)).save(buf, format=fmt)
            return buf.getvalue()

        files = {"/logo.png": _encoded("PNG"), "/mark.jpg": _encoded("JPEG"),
                 "/car.jpg": _encoded("JPEG")}
        reader = AsyncMock()
        reader.read_file.side_effect = lambda path: files[path]
        company = CompanySettings(company_logo="/logo.png", watermark_logo="/mark.jpg")
        record = _record(vehicle_info=VehicleInfo(plate="XYZ987", vehicle_photo="/car.jpg"))
        sections = await _compose(record, company, reader=reader)

        header = _section(sections, SectionKey.HEADER)
        vehicle = _section(sections, SectionKey.VEHICLE_PHOTO)
        for slot, limit in ((header.image("logo"), settings.logo_max_size),
                            (header.image("watermark"), settings.watermark_max_size),
                            (vehicle.image("vehicle_photo"), settings.photo_max_size)):
            assert slot.has_image
            width, height = Image.open(BytesIO(slot.image.data)).size
            assert width <= limit[0] and height <= limit[1]
        assert len(header.image("watermark").image.data) < len(files["/mark.jpg"])

    @pytest.mark.asyncio
    async def test_unexpected_renderer_error_is_placeholder(self):
        class _Broken:
            async def render(self, request):
                raise RuntimeError("boom")

        pts = add_damage_point((), 0.5, 0.5)
        sections = await _compose(_record(body_inspection=BodyInspection(points=pts)),
                                  renderers=[_Broken()])
        assert _section(sections, SectionKey.BODY_DIAGRAM).image("diagram").image is PLACEHOLDER


# ──────────────────────────────────────────────────────────────
# CONTENT
# ──────────────────────────────────────────────────────────────

class TestContent:
    def test_report_title_by_template(self):
        assert report_title(CompanySettings(report_template="colombia")) == \
            "INSPECCIÓN TÉCNICO MECÁNICA VEHICULAR"
        assert report_title(CompanySettings()) == "REPORTE DE INSPECCIÓN VEHICULAR"

    @pytest.mark.asyncio
    async def test_default_company_name(self):
        header = _section(await _compose(_record()), SectionKey.HEADER)
        assert header.body["company_name"] == "MTinspector"

    def test_history_rows(self):
        rows = dict(history_rows(VehicleHistory(
            governor_tax=TaxStatus(status="DEBE", amount="120000"),
            mobility_tax=TaxStatus(status="AL DIA"),
            soat_expiry=MonthYear(month="Marzo", year="2027"),
            technical_expiry=TechnicalExpiry(applies="No"),
            fuel_type="Otro", other_fuel_type="GNV",
        )))
        assert rows["Imp. Gobernación"] == "DEBE - $120000"
        assert rows["Imp. Movilidad"] == "AL DIA"
        assert rows["SOAT"] == "Marzo 2027"
        assert rows["Técnicomecánica"] == "No aplica"
        assert rows["Combustible"] == "Otro (GNV)"
        assert rows["Kilometraje"] == "N/A"

    @pytest.mark.asyncio
    async def test_diagnosis_empty_state(self):
        diagnosis = _section(await _compose(_record(diagnosis_suggestions=["  "])),
                             SectionKey.DIAGNOSIS)
        assert diagnosis.body["suggestions"] == []
        assert diagnosis.body["empty_message"]

    @pytest.mark.asyncio
    async def test_checklist_statuses(self):
        items = [
            InspectionItem(category="Luces y Exterior", item="Luces altas", status="bad"),
            InspectionItem(category="Luces y Exterior", item="Espejo derecho", status="good"),
        ]
        sections = await _compose(_record(items=items))
        lights = _section(sections, SectionKey.CHECKLIST_LIGHTS_EXTERIOR)
        rows = {r["item"]: r for r in lights.body["rows"]}
        assert rows["Luces altas"]["status_label"] == "MALO"
        assert rows["Luz Placa trasera"]["status_label"] == "PENDIENTE"
        assert rows["Espejo derecho"]["status_label"] == "BUENO"
        assert lights.body["rows"][0]["item"] == "Luz Placa trasera"
        assert lights.new_page

    @pytest.mark.asyncio
    async def test_verdict_prefers_inspection_result(self):
        record = _record(inspection_result="rejected", overall_status=OverallStatus.APPROVED)
        verdict = _section(await _compose(record), SectionKey.VERDICT)
        assert verdict.body["label"] == "RECHAZADO"

    @pytest.mark.asyncio
    async def test_verdict_counts(self):
        items = [
            InspectionItem(item="Radio", status="good"),
            InspectionItem(item="Consola", status="needs_attention"),
            InspectionItem(item="Antena", status="bad"),
            InspectionItem(item="Sunroof", status="not_applicable"),
            InspectionItem(item="Visera"),
        ]
        verdict = _section(await _compose(_record(items=items)), SectionKey.VERDICT)
        assert verdict.body["counts"] == {
            "good": 1, "attention": 1, "bad": 1, "not_applicable": 1, "total": 5,
        }
        assert verdict.body["label"] == "PENDIENTE"


# ──────────────────────────────────────────────────────────────
# LIFECYCLE
# ──────────────────────────────────────────────────────────────

class TestLifecycle:
    @pytest.mark.asyncio
    async def test_missing_record_raises(self):
        with pytest.raises(MissingInspectionError):
            await compose_report(None, CompanySettings())

    @pytest.mark.asyncio
    async def test_states(self):
        composer = ReportComposer(_record(), renderers=RENDERERS, generated_at=GENERATED_AT)
        assert composer.state == ComposerState.IDLE
        await composer.compose()
        assert composer.state == ComposerState.DONE

    @pytest.mark.asyncio
    async def test_single_use(self):
        composer = ReportComposer(_record(), renderers=RENDERERS, generated_at=GENERATED_AT)
        await composer.compose()
        with pytest.raises(RuntimeError):
            await composer.compose()

    @pytest.mark.asyncio
    async def test_deterministic(self):
        first = await _compose(_record())
        second = await _compose(_record())
        assert first == second
