from __future__ import annotations

from inspection_report.models.report import (
    EmbeddedImage, PLACEHOLDER, ReportSection, SectionImage, SectionKey,
)
from inspection_report.models.schemas import (
    DamagePoint, TireMeasurement, TirePosition, InspectionRecord, CompanySettings,
)

__all__ = [
    "EmbeddedImage", "PLACEHOLDER", "ReportSection", "SectionImage", "SectionKey",
    "DamagePoint", "TireMeasurement", "TirePosition", "InspectionRecord", "CompanySettings",
]
