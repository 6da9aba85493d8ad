#!/usr/bin/env python3
"""
Generate a sample inspection report for visual review.

Builds a representative inspection (damage points, tire readings, battery,
checklist, photos) and renders it either directly or through a running API.

Usage:
    # Direct import (no server needed):
    python3 scripts/generate_sample_report.py --photos path/to/a.jpg path/to/b.jpg

    # Against a running API:
    python3 scripts/generate_sample_report.py --api http://localhost:8000
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from datetime import datetime

import httpx

# Add backend to path for direct import mode
SCRIPT_DIR = os.path.dirname(os.path.abspath(__file__))
BACKEND_DIR = os.path.join(os.path.dirname(SCRIPT_DIR), "backend")
sys.path.insert(0, BACKEND_DIR)

from inspection_report.engine.annotations import (  # noqa: E402
    add_damage_point, add_inspection_photo, upsert_tire_measurement,
)
from inspection_report.models.schemas import (  # noqa: E402
    BatteryStatus, BodyInspection, BrakeFluidLevel, CompanySettings, InspectionItem,
    InspectionRecord, ReportRequest, TireInspection, VehicleHistory, VehicleInfo,
)


# ──────────────────────────────────────────────────────────────────
# SAMPLE INSPECTION
# ──────────────────────────────────────────────────────────────────

def build_sample(photo_paths: list[str]) -> ReportRequest:
    points = add_damage_point((), 0.18, 0.55, "Puerta delantera", "Rayón profundo")
    points = add_damage_point(points, 0.62, 0.40, "Capó", "Abolladura leve")
    points = add_damage_point(points, 0.85, 0.62, "Bómper trasero")

    tires = upsert_tire_measurement((), "front-left", 4.8)
    tires = upsert_tire_measurement(tires, "front-right", 2.6)
    tires = upsert_tire_measurement(tires, "rear-left", 1.2)
    tires = upsert_tire_measurement(tires, "rear-right", 3.9)

    photos = ()
    for path in photo_paths:
        photos = add_inspection_photo(photos, os.path.abspath(path), "Registro general")

    record = InspectionRecord(
        id="sample-001",
        vehicle_info=VehicleInfo(
            plate="HTR482", brand="Chevrolet", model="Onix", year="2021",
            color="Gris", owner_name="Carlos Gómez", owner_phone="3001234567",
            body_type="sedan",
        ),
        vehicle_history=VehicleHistory(mileage="38500", engine_displacement="1400",
                                       fuel_type="Gasolina", registration_city="Bogotá"),
        inspection_date=datetime.now(),
        inspector_name="Inspector de prueba",
        items=[
            InspectionItem(category="Luces y Exterior", item="Luces altas", status="good"),
            InspectionItem(category="Luces y Exterior", item="Stop izquiero", status="bad",
                           notes="Bombillo fundido"),
            InspectionItem(category="Motor y Soportes", item="Fugas Aceite Motor",
                           status="needs_attention"),
        ],
        body_inspection=BodyInspection(points=points),
        tire_inspection=TireInspection(
            measurements=tires,
            battery_status=BatteryStatus(percentage=72, observations="Bornes limpios"),
            brake_fluid_level=BrakeFluidLevel(level=2),
        ),
        inspection_photos=list(photos),
        diagnosis_suggestions=["Revisar llanta trasera izquierda", "Cambiar bombillo de stop"],
        suggested_price="$52.000.000",
    )
    company = CompanySettings(company_name="MTinspector", report_template="colombia")
    return ReportRequest(inspection=record, company=company)


async def run_direct(request: ReportRequest) -> str:
    from inspection_report.services.diagram import OverlaySnapshotCapturer
    from inspection_report.services.report import generate_report
    from inspection_report.services.report_composer import compose_report

    sections = await compose_report(request.inspection, request.company,
                                    capturer=OverlaySnapshotCapturer())
    return generate_report(sections, plate=request.inspection.vehicle_info.plate)


async def run_api(request: ReportRequest, api_base: str) -> str:
    async with httpx.AsyncClient(timeout=120) as client:
        resp = await client.post(f"{api_base}/api/v1/reports/pdf",
                                 json=request.model_dump(mode="json"))
        resp.raise_for_status()
    path = os.path.join(os.getcwd(), f"inspeccion_{request.inspection.vehicle_info.plate}.pdf")
    with open(path, "wb") as f:
        f.write(resp.content)
    return path


async def main():
    parser = argparse.ArgumentParser(description="Generate a sample vehicle inspection report")
    parser.add_argument("--api", default=None, help="API base URL (e.g., http://localhost:8000)")
    parser.add_argument("--photos", nargs="*", default=[], help="Photo files to attach")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    request = build_sample(args.photos)
    print(f"\nSample inspection report")
    print(f"Mode: {'API' if args.api else 'Direct Import'}")
    if args.api:
        path = await run_api(request, args.api)
    else:
        path = await run_direct(request)
    print(f"Written: {path}")


if __name__ == "__main__":
    asyncio.run(main())
