"""
Report composition: inspection record -> ordered list of report sections.

One ``ReportComposer`` is built per generation request and walks
IDLE -> COLLECTING -> ASSEMBLING -> DONE:

  COLLECTING   every image the report embeds (company logo, watermark,
               vehicle photo, body + tire diagrams, each inspection photo)
               is resolved concurrently; the composer waits for all of
               them, a failed one becomes a placeholder slot.
  ASSEMBLING   sections are built in fixed order, optional ones only when
               their sub-record has content.

Section order:
   1. header              9. checklist: engine & mounts   (new page)
   2. ingress            10. checklist: interior          (new page)
   3. vehicle_info       11. body_diagram    (>= 1 damage point)
   4. vehicle_photo      12. tire_diagram    (>= 1 measurement)
   5. suggested_price    13. battery         (status recorded)
   6. vehicle_history    14. brake_fluid     (level recorded)
   7. diagnosis          15. photos, 2 per page, sorted by label
   8. checklist: lights  16. verdict
      & exterior         17. disclaimer (repeated on every page)

The only fatal condition is a missing inspection record.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Optional, Sequence

from inspection_report.config import settings
from inspection_report.engine.annotations import TIRE_SLOTS
from inspection_report.engine.severity import classify
from inspection_report.errors import MissingInspectionError
from inspection_report.models.report import (
    EmbeddedImage, PLACEHOLDER, ReportSection, SectionImage, SectionKey,
)
from inspection_report.models.schemas import (
    CompanySettings, InspectionItem, InspectionPhoto, InspectionRecord,
    ItemStatus, OverallStatus, VehicleHistory,
)
from inspection_report.services.diagram import (
    DiagramKind, DiagramRenderer, DiagramRequest, SnapshotCapturer,
    default_renderers, normalize_body_style, render_diagram,
)
from inspection_report.services.images import (
    ImageReader, LOGO, PHOTO, WATERMARK, resolve_image,
)

logger = logging.getLogger(__name__)

PHOTOS_PER_PAGE = 2
NOT_AVAILABLE = "N/A"

MONTHS_ES = (
    "enero", "febrero", "marzo", "abril", "mayo", "junio", "julio",
    "agosto", "septiembre", "octubre", "noviembre", "diciembre",
)


class ComposerState(str, Enum):
    IDLE = "idle"
    COLLECTING = "collecting"
    ASSEMBLING = "assembling"
    DONE = "done"


# ──────────────────────────────────────────────────────────────────
# FIXED CHECKLIST
# ──────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ChecklistGroup:
    key: SectionKey
    title: str
    items: tuple[str, ...]


CHECKLIST_GROUPS = (
    ChecklistGroup(SectionKey.CHECKLIST_LIGHTS_EXTERIOR, "Luces y Exterior", (
        "Luz Placa trasera", "Luces altas", "Luces bajas", "Luces medias",
        "Direccional del Der", "Direccional Del Izq", "Luces Freno", "Luces reversa",
        "Stop derecho", "Stop izquiero", "Tercer Stop", "Exploradora derecha",
        "Exploradora izquierda", "Farola derecha", "Farola izquiera",
        "Puntas Chasis del Der", "Puntas Chasis del Izq", "Puntas Chasis tras Der",
        "Puntas Chasis tras Izq",
    )),
    ChecklistGroup(SectionKey.CHECKLIST_ENGINE_MOUNTS, "Motor y Soportes", (
        "Base Motor Der", "Base Motor Izq", "Fugas Aceite Motor",
        "Fugas Aceite caja transmsion",
    )),
    ChecklistGroup(SectionKey.CHECKLIST_INTERIOR, "Interior del Vehículo", (
        "Consola", "Radio", "Guantera", "Cojineria", "Forros", "Tapetes", "Visera",
        "Descansabrazos", "Reposa cabezas", "Sunroof", "Antena",
        "Elevavidrios delanteross", "Elevavidrios traseros",
    )),
)

STATUS_DISPLAY: dict[Optional[ItemStatus], tuple[str, str]] = {
    ItemStatus.GOOD: ("BUENO", "#4CAF50"),
    ItemStatus.BAD: ("MALO", "#FF0000"),
    ItemStatus.NEEDS_ATTENTION: ("ATENCIÓN", "#FF9800"),
    ItemStatus.NOT_APPLICABLE: ("N/A", "#9E9E9E"),
    None: ("PENDIENTE", "#9E9E9E"),
}

VERDICT_DISPLAY = {
    "approved": ("APROBADO", "#4CAF50"),
    "rejected": ("RECHAZADO", "#FF0000"),
    "conditional": ("CONDICIONAL", "#FF9800"),
    "pending": ("PENDIENTE", "#9E9E9E"),
}

DISCLAIMER_LINES = (
    "Este documento es generado automáticamente por el sistema de inspección vehicular.",
    "La inspección es visual y no destructiva; refleja el estado del vehículo en la fecha indicada.",
    "No constituye garantía sobre el funcionamiento futuro del vehículo ni de sus componentes.",
)


# ──────────────────────────────────────────────────────────────────
# FORMATTING HELPERS
# ──────────────────────────────────────────────────────────────────

def _or_na(value: Any) -> str:
    if value is None:
        return NOT_AVAILABLE
    text = str(value).strip()
    return text or NOT_AVAILABLE


def format_date_es(dt: Optional[datetime]) -> str:
    """'19 de octubre de 2026' (es-CO long date)."""
    if dt is None:
        return NOT_AVAILABLE
    return f"{dt.day} de {MONTHS_ES[dt.month - 1]} de {dt.year}"


def status_display(status: Optional[ItemStatus]) -> tuple[str, str]:
    return STATUS_DISPLAY.get(status, STATUS_DISPLAY[None])


def report_title(company: CompanySettings) -> str:
    if (company.report_template or "").lower() == "colombia":
        return "INSPECCIÓN TÉCNICO MECÁNICA VEHICULAR"
    return "REPORTE DE INSPECCIÓN VEHICULAR"


def history_rows(history: VehicleHistory) -> list[list[str]]:
    """RUNT grid rows: [label, value]."""
    def tax(t) -> str:
        if t is None:
            return NOT_AVAILABLE
        if t.status == "DEBE" and t.amount:
            return f"{t.status} - ${t.amount}"
        return t.status

    soat = NOT_AVAILABLE
    if history.soat_expiry and history.soat_expiry.month and history.soat_expiry.year:
        soat = f"{history.soat_expiry.month} {history.soat_expiry.year}"

    tech = NOT_AVAILABLE
    te = history.technical_expiry
    if te is not None:
        if te.applies == "No":
            tech = "No aplica"
        elif te.month and te.year:
            tech = f"{te.month} {te.year}"

    fuel = _or_na(history.fuel_type)
    if history.fuel_type == "Otro" and history.other_fuel_type:
        fuel = f"{fuel} ({history.other_fuel_type})"

    return [
        ["Multas SIMIT", _or_na(history.simit_fines)],
        ["Pignoración", _or_na(history.pignoracion)],
        ["Timbre", _or_na(history.timbre_value)],
        ["Imp. Gobernación", tax(history.governor_tax)],
        ["Imp. Movilidad", tax(history.mobility_tax)],
        ["SOAT", soat],
        ["Técnicomecánica", tech],
        ["Cilindraje", _or_na(history.engine_displacement)],
        ["Combustible", fuel],
        ["Kilometraje", _or_na(history.mileage)],
        ["Matrícula", _or_na(history.registration_city)],
        ["Fasecolda", _or_na(history.fasecolda_reports)],
    ]


def checklist_counts(items: Sequence[InspectionItem]) -> dict[str, int]:
    return {
        "good": sum(1 for i in items if i.status == ItemStatus.GOOD),
        "attention": sum(1 for i in items if i.status == ItemStatus.NEEDS_ATTENTION),
        "bad": sum(1 for i in items if i.status == ItemStatus.BAD),
        "not_applicable": sum(1 for i in items if i.status == ItemStatus.NOT_APPLICABLE),
        "total": len(items),
    }


def paginate_photos(photos: Sequence[InspectionPhoto],
                    per_page: int = PHOTOS_PER_PAGE) -> list[list[InspectionPhoto]]:
    """Stable sort by numeric label, then fixed-size pages."""
    ordered = sorted(photos, key=lambda p: p.label)
    return [ordered[i:i + per_page] for i in range(0, len(ordered), per_page)]


# ──────────────────────────────────────────────────────────────────
# COMPOSER
# ──────────────────────────────────────────────────────────────────

class ReportComposer:
    """Single-use composer bound to one snapshot of an inspection record."""

    def __init__(
        self,
        record: Optional[InspectionRecord],
        company: Optional[CompanySettings] = None,
        *,
        reader: Optional[ImageReader] = None,
        capturer: Optional[SnapshotCapturer] = None,
        renderers: Optional[Sequence[DiagramRenderer]] = None,
        generated_at: Optional[datetime] = None,
    ):
        if record is None:
            raise MissingInspectionError()
        self.record = record
        self.company = company or CompanySettings()
        self.reader = reader
        self.renderers = tuple(renderers) if renderers else default_renderers(capturer, reader)
        self.generated_at = generated_at or datetime.now()
        self.state = ComposerState.IDLE
        self._photo_pages = paginate_photos(record.inspection_photos)
        self._images: dict[str, Optional[EmbeddedImage]] = {}

    def _transition(self, state: ComposerState) -> None:
        logger.debug("Report %s: %s -> %s", self.record.id, self.state.value, state.value)
        self.state = state

    async def compose(self) -> list[ReportSection]:
        if self.state != ComposerState.IDLE:
            raise RuntimeError("ReportComposer instances are single-use")
        logger.info("Composing report for inspection %s (plate %s)",
                    self.record.id, self.record.vehicle_info.plate or "-")

        self._transition(ComposerState.COLLECTING)
        self._images = await self._collect_images()

        self._transition(ComposerState.ASSEMBLING)
        sections = self._assemble()

        self._transition(ComposerState.DONE)
        logger.info("Report for inspection %s: %d sections", self.record.id, len(sections))
        return sections

    # ── COLLECTING ──

    def _body_style(self) -> str:
        rec = self.record
        style = rec.vehicle_info.body_type
        if not style and rec.body_inspection is not None:
            style = rec.body_inspection.vehicle_type
        return normalize_body_style(style)

    def _image_jobs(self) -> dict[str, Awaitable[Optional[EmbeddedImage]]]:
        rec = self.record
        jobs: dict[str, Awaitable[Optional[EmbeddedImage]]] = {
            "logo": resolve_image(self.company.company_logo, LOGO, self.reader),
            "watermark": resolve_image(self.company.watermark_logo, WATERMARK, self.reader),
            "vehicle_photo": resolve_image(rec.vehicle_info.vehicle_photo, PHOTO, self.reader),
        }
        style = self._body_style()
        if rec.body_inspection is not None and rec.body_inspection.points:
            jobs["body_diagram"] = render_diagram(
                DiagramRequest(DiagramKind.BODY, style, rec.body_inspection), self.renderers)
        if rec.tire_inspection is not None and rec.tire_inspection.measurements:
            jobs["tire_diagram"] = render_diagram(
                DiagramRequest(DiagramKind.TIRE, style, rec.tire_inspection), self.renderers)
        for page_no, page in enumerate(self._photo_pages, start=1):
            for idx, photo in enumerate(page, start=1):
                # Keyed by slot; photo ids are not guaranteed unique
                jobs[f"photo:{page_no}:{idx}"] = resolve_image(photo.uri, PHOTO, self.reader)
        return jobs

    async def _collect_images(self) -> dict[str, Optional[EmbeddedImage]]:
        jobs = self._image_jobs()
        names = list(jobs)
        results = await asyncio.gather(*jobs.values(), return_exceptions=True)
        images: dict[str, Optional[EmbeddedImage]] = {}
        for name, result in zip(names, results):
            if isinstance(result, BaseException):
                logger.warning("Image %s failed unexpectedly: %s", name, result)
                images[name] = PLACEHOLDER
            else:
                images[name] = result
        return images

    # ── ASSEMBLING ──

    def _assemble(self) -> list[ReportSection]:
        builders = [
            self._header,
            self._ingress,
            self._vehicle_info,
            self._vehicle_photo,
            self._suggested_price,
            self._vehicle_history,
            self._diagnosis,
            *[lambda g=group: self._checklist(g) for group in CHECKLIST_GROUPS],
            self._body_diagram,
            self._tire_diagram,
            self._battery,
            self._brake_fluid,
        ]
        sections: list[ReportSection] = []
        for build in builders:
            section = build()
            if section is not None:
                sections.append(section)
        sections.extend(self._photo_sections())
        sections.append(self._verdict())
        sections.append(self._disclaimer())
        return sections

    def _header(self) -> ReportSection:
        c = self.company
        return ReportSection(
            key=SectionKey.HEADER,
            title=report_title(c),
            body={
                "company_name": c.company_name or settings.default_company_name,
                "company_address": c.company_address,
                "company_phone": c.company_phone,
                "company_email": c.company_email,
                "subtitle": "Certificado de Revisión Técnico Mecánica",
                "generated_on": format_date_es(self.generated_at),
            },
            images=(
                SectionImage(slot="logo", image=self._images.get("logo")),
                SectionImage(slot="watermark", image=self._images.get("watermark")),
            ),
        )

    def _ingress(self) -> ReportSection:
        rec = self.record
        date = rec.ingress_date or format_date_es(rec.inspection_date)
        time = rec.ingress_time
        if not time and rec.inspection_date is not None:
            time = rec.inspection_date.strftime("%H:%M")
        return ReportSection(
            key=SectionKey.INGRESS,
            title="Ingreso del Vehículo",
            body={
                "rows": [
                    ["Fecha de ingreso", _or_na(date)],
                    ["Hora de ingreso", _or_na(time)],
                    ["Inspector", _or_na(rec.inspector_name or self.company.inspector_name)],
                ],
            },
        )

    def _vehicle_info(self) -> ReportSection:
        v = self.record.vehicle_info
        return ReportSection(
            key=SectionKey.VEHICLE_INFO,
            title="Información del Vehículo",
            body={
                "rows": [
                    ["Placa", _or_na(v.plate)],
                    ["Marca", _or_na(v.brand)],
                    ["Modelo", _or_na(v.model)],
                    ["Año", _or_na(v.year)],
                    ["Color", _or_na(v.color)],
                    ["VIN", _or_na(v.vin)],
                    ["Propietario", _or_na(v.owner_name)],
                    ["Teléfono", _or_na(v.owner_phone)],
                    ["Carrocería", self._body_style().upper()],
                ],
            },
        )

    def _vehicle_photo(self) -> ReportSection:
        image = self._images.get("vehicle_photo")
        slot = SectionImage(slot="vehicle_photo", image=image,
                            caption=self.record.vehicle_info.plate)
        return ReportSection(
            key=SectionKey.VEHICLE_PHOTO,
            title="Foto del Vehículo",
            body={"has_photo": slot.has_image},
            images=(slot,),
        )

    def _suggested_price(self) -> ReportSection:
        return ReportSection(
            key=SectionKey.SUGGESTED_PRICE,
            title="Precio Sugerido",
            body={"price": _or_na(self.record.suggested_price)},
        )

    def _vehicle_history(self) -> Optional[ReportSection]:
        history = self.record.vehicle_history
        if history is None:
            return None
        return ReportSection(
            key=SectionKey.VEHICLE_HISTORY,
            title="Historial del Vehículo (RUNT)",
            body={"rows": history_rows(history)},
        )

    def _diagnosis(self) -> ReportSection:
        suggestions = [s.strip() for s in self.record.diagnosis_suggestions if s and s.strip()]
        return ReportSection(
            key=SectionKey.DIAGNOSIS,
            title="Sugerencias de Diagnóstico",
            body={
                "suggestions": suggestions,
                "empty_message": "No se registraron sugerencias de diagnóstico.",
            },
        )

    def _checklist(self, group: ChecklistGroup) -> ReportSection:
        by_name = {i.item: i for i in self.record.items}
        names = list(group.items)
        # Extra items filed under this group's category by title
        names += [
            i.item for i in self.record.items
            if i.category.strip().lower() == group.title.lower() and i.item not in group.items
        ]
        rows = []
        for name in names:
            item = by_name.get(name)
            status = item.status if item else None
            label, color = status_display(status)
            rows.append({
                "item": name,
                "status": status.value if status else None,
                "status_label": label,
                "color": color,
                "notes": (item.notes if item and item.notes else ""),
            })
        return ReportSection(
            key=group.key,
            title=group.title,
            body={"rows": rows},
            new_page=True,
        )

    def _body_diagram(self) -> Optional[ReportSection]:
        body = self.record.body_inspection
        if body is None or not body.points:
            return None
        points = sorted(body.points, key=lambda p: p.number)
        return ReportSection(
            key=SectionKey.BODY_DIAGRAM,
            title="Inspección de Carrocería",
            body={
                "body_style": self._body_style().upper(),
                "point_count": len(points),
                "points": [
                    {
                        "number": p.number,
                        "label": p.label or "Sin descripción",
                        "observation": p.observation or "Sin observación",
                    }
                    for p in points
                ],
                "legend": "Los números rojos indican los puntos de inspección donde se "
                          "encontraron daños o condiciones que requieren atención.",
            },
            images=(SectionImage(slot="diagram", image=self._images.get("body_diagram")),),
            new_page=True,
        )

    def _tire_diagram(self) -> Optional[ReportSection]:
        tires = self.record.tire_inspection
        if tires is None or not tires.measurements:
            return None
        order = {pos: i for i, pos in enumerate(TIRE_SLOTS)}
        rows = []
        for m in sorted(tires.measurements, key=lambda m: order[m.position]):
            band = classify(m.value)
            rows.append({
                "position": m.position.value,
                "title": m.title,
                "value": f"{m.value:.2f}",
                "band": band.key,
                "band_label": band.label,
                "color": band.color,
            })
        return ReportSection(
            key=SectionKey.TIRE_DIAGRAM,
            title="Inspección de Llantas",
            body={"measurement_count": len(rows), "rows": rows},
            images=(SectionImage(slot="diagram", image=self._images.get("tire_diagram")),),
            new_page=True,
        )

    def _battery(self) -> Optional[ReportSection]:
        tires = self.record.tire_inspection
        if tires is None or tires.battery_status is None:
            return None
        status = tires.battery_status
        return ReportSection(
            key=SectionKey.BATTERY,
            title="Estado de la Batería",
            body={
                "percentage": status.percentage,
                "rows": [
                    ["Carga", f"{status.percentage:.0f}%"],
                    ["Observaciones", status.observations or "Sin observaciones"],
                ],
            },
        )

    def _brake_fluid(self) -> Optional[ReportSection]:
        tires = self.record.tire_inspection
        if tires is None or tires.brake_fluid_level is None:
            return None
        fluid = tires.brake_fluid_level
        return ReportSection(
            key=SectionKey.BRAKE_FLUID,
            title="Nivel de Líquido de Frenos",
            body={
                "level": fluid.level,
                "rows": [
                    ["Nivel", f"{fluid.level:g}"],
                    ["Observaciones", fluid.observations or "Sin observaciones"],
                ],
            },
        )

    def _photo_sections(self) -> list[ReportSection]:
        pages = self._photo_pages
        sections = []
        for page_no, page in enumerate(pages, start=1):
            images = tuple(
                SectionImage(
                    slot=f"photo_{idx}",
                    image=self._images.get(f"photo:{page_no}:{idx}"),
                    caption=f"Foto {photo.label}",
                )
                for idx, photo in enumerate(page, start=1)
            )
            sections.append(ReportSection(
                key=SectionKey.PHOTOS,
                title="Registro Fotográfico",
                body={
                    "page": page_no,
                    "page_count": len(pages),
                    "photos": [
                        {"label": p.label, "observations": p.observations or ""}
                        for p in page
                    ],
                    "empty_slots": PHOTOS_PER_PAGE - len(page),
                },
                images=images,
                new_page=True,
            ))
        return sections

    def _verdict(self) -> ReportSection:
        rec = self.record
        if rec.inspection_result:
            result = rec.inspection_result
        else:
            result = OverallStatus(rec.overall_status).value
        label, color = VERDICT_DISPLAY.get(result, VERDICT_DISPLAY["pending"])
        return ReportSection(
            key=SectionKey.VERDICT,
            title="Resultado de la Inspección",
            body={
                "result": result,
                "label": label,
                "color": color,
                "counts": checklist_counts(rec.items),
                "notes": rec.notes or "",
                "signatures": {
                    "inspector": rec.inspector_name or self.company.inspector_name or "Inspector",
                    "owner": rec.vehicle_info.owner_name or "Propietario",
                },
            },
            new_page=True,
        )

    def _disclaimer(self) -> ReportSection:
        return ReportSection(
            key=SectionKey.DISCLAIMER,
            title="Aviso Legal",
            body={
                "lines": list(DISCLAIMER_LINES),
                "generated_on": self.generated_at.strftime("%d/%m/%Y"),
                "validity": f"Documento válido por {settings.report_validity_days} días "
                            f"desde la fecha de inspección.",
            },
            repeat_on_every_page=True,
        )


async def compose_report(
    record: Optional[InspectionRecord],
    company: Optional[CompanySettings] = None,
    *,
    reader: Optional[ImageReader] = None,
    capturer: Optional[SnapshotCapturer] = None,
    renderers: Optional[Sequence[DiagramRenderer]] = None,
    generated_at: Optional[datetime] = None,
) -> list[ReportSection]:
    """Compose the full ordered section list for one inspection.

    Raises:
        MissingInspectionError: ``record`` is None; nothing is resolved.
    """
    composer = ReportComposer(
        record, company,
        reader=reader, capturer=capturer, renderers=renderers,
        generated_at=generated_at,
    )
    return await composer.compose()
