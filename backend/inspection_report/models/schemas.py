from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class TirePosition(str, Enum):
    FRONT_LEFT = "front-left"
    FRONT_RIGHT = "front-right"
    REAR_LEFT = "rear-left"
    REAR_RIGHT = "rear-right"


class ItemStatus(str, Enum):
    GOOD = "good"
    BAD = "bad"
    NEEDS_ATTENTION = "needs_attention"
    NOT_APPLICABLE = "not_applicable"


class OverallStatus(str, Enum):
    APPROVED = "approved"
    REJECTED = "rejected"
    CONDITIONAL = "conditional"
    PENDING = "pending"


# ──────────────────────────────────────────────────────────────────
# ANNOTATIONS
# ──────────────────────────────────────────────────────────────────

class DamagePoint(BaseModel):
    """One marked defect on the body diagram (normalized coordinates)."""
    model_config = ConfigDict(frozen=True)

    x: float
    y: float
    number: int = Field(..., ge=1)
    label: str = ""
    observation: Optional[str] = None


class TireMeasurement(BaseModel):
    """One tread-depth reading bound to a fixed wheel position."""
    model_config = ConfigDict(frozen=True)

    position: TirePosition
    x: float
    y: float
    title: str
    value: float


class BatteryStatus(BaseModel):
    percentage: float = Field(..., ge=0, le=100)
    observations: str = ""


class BrakeFluidLevel(BaseModel):
    level: float
    observations: str = ""


class BodyInspection(BaseModel):
    points: tuple[DamagePoint, ...] = ()
    vehicle_type: str = "sedan"
    captured_image: Optional[str] = None  # data URI / file URI of the last on-screen snapshot


class TireInspection(BaseModel):
    measurements: tuple[TireMeasurement, ...] = ()
    vehicle_type: str = "sedan"
    captured_image: Optional[str] = None
    battery_status: Optional[BatteryStatus] = None
    brake_fluid_level: Optional[BrakeFluidLevel] = None


class InspectionPhoto(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    uri: str
    label: int = Field(..., ge=1)
    observations: str = ""
    timestamp: Optional[datetime] = None


# ──────────────────────────────────────────────────────────────────
# INSPECTION RECORD
# ──────────────────────────────────────────────────────────────────

class VehicleInfo(BaseModel):
    id: str = ""
    plate: str = ""
    brand: str = ""
    model: str = ""
    year: str = ""
    color: str = ""
    vin: Optional[str] = None
    owner_name: str = ""
    owner_phone: str = ""
    body_type: Optional[str] = None  # sedan, suv, pickup
    vehicle_photo: Optional[str] = None


class TaxStatus(BaseModel):
    status: Literal["AL DIA", "DEBE"] = "AL DIA"
    amount: Optional[str] = None


class MonthYear(BaseModel):
    month: str = ""
    year: str = ""


class TechnicalExpiry(BaseModel):
    applies: Literal["Si", "No"] = "Si"
    month: str = ""
    year: str = ""


class VehicleHistory(BaseModel):
    """RUNT / SIMIT vehicle-history record produced by the lookup collaborator."""
    simit_fines: str = ""
    pignoracion: Optional[Literal["Si", "No"]] = None
    timbre_value: str = ""
    governor_tax: Optional[TaxStatus] = None
    mobility_tax: Optional[TaxStatus] = None
    soat_expiry: Optional[MonthYear] = None
    technical_expiry: Optional[TechnicalExpiry] = None
    engine_displacement: str = ""
    fuel_type: Optional[Literal["Gasolina", "Diesel", "Hibrido", "Otro"]] = None
    other_fuel_type: Optional[str] = None
    mileage: str = ""
    registration_city: str = ""
    fasecolda_reports: Optional[Literal["Con Reportes", "Sin reportes"]] = None


class InspectionItem(BaseModel):
    id: str = ""
    category: str = ""
    item: str
    status: Optional[ItemStatus] = None
    notes: Optional[str] = None


class InspectionRecord(BaseModel):
    id: str
    vehicle_info: VehicleInfo = Field(default_factory=VehicleInfo)
    vehicle_history: Optional[VehicleHistory] = None
    inspection_date: Optional[datetime] = None
    inspector_name: str = ""
    items: list[InspectionItem] = []
    overall_status: OverallStatus = OverallStatus.PENDING
    notes: Optional[str] = None
    body_inspection: Optional[BodyInspection] = None
    tire_inspection: Optional[TireInspection] = None
    inspection_photos: list[InspectionPhoto] = []
    ingress_date: Optional[str] = None
    ingress_time: Optional[str] = None
    diagnosis_suggestions: list[str] = []
    suggested_price: Optional[str] = None
    inspection_result: Optional[Literal["approved", "rejected"]] = None


class CompanySettings(BaseModel):
    company_name: str = ""
    inspector_name: str = ""
    company_logo: Optional[str] = None
    watermark_logo: Optional[str] = None
    company_address: Optional[str] = None
    company_phone: Optional[str] = None
    company_email: Optional[str] = None
    report_template: Optional[str] = None  # "colombia" switches the report title


# ──────────────────────────────────────────────────────────────────
# API REQUESTS
# ──────────────────────────────────────────────────────────────────

class ReportRequest(BaseModel):
    inspection: Optional[InspectionRecord] = None
    company: CompanySettings = Field(default_factory=CompanySettings)


class DamagePointRequest(BaseModel):
    points: list[DamagePoint] = []
    x: float
    y: float
    label: str = ""
    observation: Optional[str] = None


class DamagePointRemoval(BaseModel):
    points: list[DamagePoint] = []


class TireMeasurementRequest(BaseModel):
    measurements: list[TireMeasurement] = []
    value: float | str
