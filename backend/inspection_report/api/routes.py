from __future__ import annotations

import asyncio
import logging
import math
from io import BytesIO
from typing import Optional

from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import StreamingResponse

from inspection_report.engine.annotations import (
    add_damage_point, remove_damage_point, upsert_tire_measurement,
)
from inspection_report.engine.severity import classify
from inspection_report.errors import MissingInspectionError, ValidationError
from inspection_report.models.report import ReportSection
from inspection_report.models.schemas import (
    DamagePointRemoval, DamagePointRequest, ReportRequest, TireMeasurementRequest,
)
from inspection_report.services.diagram import OverlaySnapshotCapturer
from inspection_report.services.report import generate_report_bytes
from inspection_report.services.report_composer import compose_report

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1")
capturer = OverlaySnapshotCapturer()


async def _compose(request: ReportRequest) -> list[ReportSection]:
    try:
        return await compose_report(request.inspection, request.company, capturer=capturer)
    except MissingInspectionError as e:
        logger.info("Report requested without inspection record")
        raise HTTPException(status_code=400, detail=f"Could not generate report: {e}")


@router.post("/reports/sections", response_model=list[ReportSection])
async def report_sections(request: ReportRequest):
    """Compose the report and return its ordered sections (images base64)."""
    return await _compose(request)


@router.post("/reports/pdf")
async def report_pdf(request: ReportRequest):
    """Compose the report and stream it as a PDF."""
    sections = await _compose(request)
    pdf = await asyncio.to_thread(generate_report_bytes, sections)

    plate = request.inspection.vehicle_info.plate if request.inspection else ""
    stem = "".join(c for c in plate.upper() if c.isalnum()) or "vehiculo"
    return StreamingResponse(
        BytesIO(pdf),
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="inspeccion_{stem}.pdf"'},
    )


@router.get("/severity")
async def severity(value: Optional[str] = Query(None, description="Tread depth in mm")):
    """Severity band for a tread reading; non-numeric input maps to 'unknown'."""
    parsed = None
    if value is not None:
        try:
            parsed = float(value.strip().replace(",", "."))
        except ValueError:
            parsed = None
    if parsed is not None and not math.isfinite(parsed):
        parsed = None
    band = classify(parsed)
    return {"value": parsed, "key": band.key, "color": band.color, "label": band.label}


@router.post("/annotations/damage-points")
async def create_damage_point(request: DamagePointRequest):
    points = add_damage_point(request.points, request.x, request.y,
                              label=request.label, observation=request.observation)
    return {"points": points}


@router.delete("/annotations/damage-points/{number}")
async def delete_damage_point(number: int, request: DamagePointRemoval):
    return {"points": remove_damage_point(request.points, number)}


@router.put("/annotations/tires/{position}")
async def put_tire_measurement(position: str, request: TireMeasurementRequest):
    try:
        measurements = upsert_tire_measurement(request.measurements, position, request.value)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return {"measurements": measurements}
