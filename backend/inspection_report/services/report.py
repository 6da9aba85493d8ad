"""
PDF renderer for composed inspection reports.
Uses ReportLab to lay out the ordered section list produced by
``services.report_composer``; it makes no content decisions of its own.

Every page carries:
  - the company watermark (from the header section), faded, behind content
  - a footer with the first disclaimer line, generation date, validity
    note and page number

Sections flagged ``new_page`` start on a fresh page.  Image slots whose
image is missing render a "Sin imagen" box, failed ones an
"Imagen no disponible" box.
"""

from __future__ import annotations

import logging
import os
import uuid
from datetime import datetime
from io import BytesIO
from typing import Callable, Optional, Sequence
from xml.sax.saxutils import escape

from PIL import Image as PILImage
from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import inch
from reportlab.lib.utils import ImageReader
from reportlab.platypus import (
    SimpleDocTemplate, Paragraph, Spacer, Table, TableStyle, PageBreak,
    HRFlowable, KeepTogether, Image as RLImage,
)

from inspection_report.config import settings
from inspection_report.models.report import ReportSection, SectionImage, SectionKey

logger = logging.getLogger(__name__)

OUTPUT_DIR = settings.output_dir

# ── Palette ──
BLUE = colors.HexColor('#1C3D5A')           # Primary
DARK = colors.HexColor('#2D2D2D')           # Body text
GREY = colors.HexColor('#7A7A7A')           # Secondary text
LIGHT_BG = colors.HexColor('#F7F6F3')       # Row shading
GRID_COLOR = colors.HexColor('#DCDAD5')     # Dividers
PLACEHOLDER_BG = colors.HexColor('#F1F1F1')
WHITE = colors.white

PAGE_W, PAGE_H = letter
MARGIN = 0.85 * inch
CONTENT_W = PAGE_W - 2 * MARGIN

WATERMARK_STRENGTH = 0.12


# ──────────────────────────────────────────────────────────────────
# PAGE DECORATION (drawn on canvas)
# ──────────────────────────────────────────────────────────────────

def _fade(image_bytes: bytes, strength: float = WATERMARK_STRENGTH) -> Optional[bytes]:
    """Blend an image toward white so it can sit behind body text."""
    try:
        img = PILImage.open(BytesIO(image_bytes)).convert("RGBA")
    except (OSError, ValueError) as exc:
        logger.warning("Watermark not drawable: %s", exc)
        return None
    white = PILImage.new("RGBA", img.size, (255, 255, 255, 255))
    flat = PILImage.alpha_composite(white, img).convert("RGB")
    faded = PILImage.blend(white.convert("RGB"), flat, strength)
    buf = BytesIO()
    faded.save(buf, format="PNG")
    return buf.getvalue()


def _make_page_decorator(watermark: Optional[bytes],
                         footer_lines: Sequence[str]) -> Callable:
    reader = ImageReader(BytesIO(watermark)) if watermark else None

    def _decorate(canvas, doc):
        canvas.saveState()

        # ── Watermark ──
        if reader is not None:
            iw, ih = reader.getSize()
            scale = min(CONTENT_W * 0.8 / iw, PAGE_H * 0.5 / ih)
            w, h = iw * scale, ih * scale
            canvas.drawImage(reader, (PAGE_W - w) / 2, (PAGE_H - h) / 2,
                             width=w, height=h, mask='auto')

        # ── Footer ──
        canvas.setStrokeColor(GRID_COLOR)
        canvas.setLineWidth(0.25)
        canvas.line(doc.leftMargin, 48, PAGE_W - doc.rightMargin, 48)
        canvas.setFillColor(colors.HexColor('#999999'))
        canvas.setFont('Helvetica', 6.5)
        y = 38
        for line in footer_lines:
            canvas.drawString(doc.leftMargin, y, line)
            y -= 9
        canvas.setFont('Helvetica', 7)
        canvas.drawRightString(PAGE_W - doc.rightMargin, 38, f"{doc.page}")
        canvas.restoreState()

    return _decorate


# ──────────────────────────────────────────────────────────────────
# STYLES
# ──────────────────────────────────────────────────────────────────

def _get_styles():
    styles = getSampleStyleSheet()
    styles.add(ParagraphStyle(
        name='ReportTitle', fontSize=17, fontName='Helvetica-Bold',
        spaceAfter=4, textColor=DARK, alignment=TA_CENTER, leading=22,
    ))
    styles.add(ParagraphStyle(
        name='Subtitle', fontSize=10, fontName='Helvetica',
        alignment=TA_CENTER, textColor=GREY, leading=13,
    ))
    styles.add(ParagraphStyle(
        name='CompanyName', fontSize=12, fontName='Helvetica-Bold',
        textColor=BLUE, leading=15,
    ))
    styles.add(ParagraphStyle(
        name='SectionHeader', fontSize=13, fontName='Helvetica-Bold',
        textColor=DARK, leading=17,
    ))
    styles.add(ParagraphStyle(
        name='Body', fontSize=9.5, fontName='Helvetica',
        spaceAfter=4, leading=13, textColor=DARK,
    ))
    styles.add(ParagraphStyle(
        name='Cell', fontSize=8.5, fontName='Helvetica',
        leading=10.5, textColor=DARK,
    ))
    styles.add(ParagraphStyle(
        name='Caption', fontSize=8, fontName='Helvetica-Bold',
        textColor=DARK, alignment=TA_CENTER, leading=10,
    ))
    styles.add(ParagraphStyle(
        name='NoteText', fontSize=8, fontName='Helvetica',
        textColor=GREY, spaceAfter=3, leading=11,
    ))
    styles.add(ParagraphStyle(
        name='Disclaimer', fontSize=7.5, fontName='Helvetica',
        textColor=colors.HexColor('#999999'), alignment=TA_CENTER, leading=10,
    ))
    styles.add(ParagraphStyle(
        name='Verdict', fontSize=22, fontName='Helvetica-Bold',
        textColor=WHITE, alignment=TA_CENTER, leading=26,
    ))
    return styles


# ──────────────────────────────────────────────────────────────────
# TABLE, IMAGE & SECTION HELPERS
# ──────────────────────────────────────────────────────────────────

def _p(text, style) -> Paragraph:
    return Paragraph(escape(str(text)), style)


def _section_header(text, styles):
    t = Table([[_p(text, styles['SectionHeader'])]], colWidths=[CONTENT_W])
    t.setStyle(TableStyle([
        ('TOPPADDING', (0, 0), (-1, -1), 10),
        ('BOTTOMPADDING', (0, 0), (-1, -1), 4),
        ('LEFTPADDING', (0, 0), (-1, -1), 0),
        ('RIGHTPADDING', (0, 0), (-1, -1), 0),
        ('LINEBELOW', (0, 0), (-1, -1), 1, BLUE),
    ]))
    return t


def _make_kv_table(data: list[list[str]], styles, col_widths=None) -> Table:
    """Key-value table with alternating row shading."""
    if col_widths is None:
        col_widths = [2.2 * inch, CONTENT_W - 2.2 * inch]
    rows = [[_p(k, styles['Cell']), _p(v, styles['Cell'])] for k, v in data]
    t = Table(rows, colWidths=col_widths)
    style_cmds = [
        ('BOTTOMPADDING', (0, 0), (-1, -1), 4),
        ('TOPPADDING', (0, 0), (-1, -1), 4),
        ('LEFTPADDING', (0, 0), (-1, -1), 6),
        ('RIGHTPADDING', (0, 0), (-1, -1), 6),
        ('LINEBELOW', (0, 0), (-1, -2), 0.25, GRID_COLOR),
        ('LINEBELOW', (0, -1), (-1, -1), 0.5, GRID_COLOR),
        ('VALIGN', (0, 0), (-1, -1), 'TOP'),
    ]
    for i in range(len(rows)):
        if i % 2 == 1:
            style_cmds.append(('BACKGROUND', (0, i), (-1, i), LIGHT_BG))
    t.setStyle(TableStyle(style_cmds))
    return t


def _make_data_table(header: list[str], rows: list[list], styles,
                     col_widths=None, extra_cmds=None) -> Table:
    """Data table with a blue header row."""
    ncols = len(header)
    if col_widths is None:
        col_widths = [CONTENT_W / ncols] * ncols
    head_style = ParagraphStyle('HeadCell', parent=styles['Cell'],
                                fontName='Helvetica-Bold', textColor=WHITE)
    data = [[_p(h, head_style) for h in header]]
    for row in rows:
        data.append([c if isinstance(c, Paragraph) else _p(c, styles['Cell']) for c in row])
    t = Table(data, colWidths=col_widths, repeatRows=1)
    style_cmds = [
        ('BACKGROUND', (0, 0), (-1, 0), BLUE),
        ('BOTTOMPADDING', (0, 0), (-1, -1), 4),
        ('TOPPADDING', (0, 0), (-1, -1), 4),
        ('LEFTPADDING', (0, 0), (-1, -1), 6),
        ('RIGHTPADDING', (0, 0), (-1, -1), 6),
        ('LINEBELOW', (0, 1), (-1, -2), 0.25, GRID_COLOR),
        ('LINEBELOW', (0, -1), (-1, -1), 0.5, GRID_COLOR),
        ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
    ]
    for i in range(1, len(data)):
        if i % 2 == 0:
            style_cmds.append(('BACKGROUND', (0, i), (-1, i), LIGHT_BG))
    style_cmds.extend(extra_cmds or [])
    t.setStyle(TableStyle(style_cmds))
    return t


def _status_cell(label: str, color: str, styles) -> Paragraph:
    sty = ParagraphStyle('StatusCell', parent=styles['Cell'], fontName='Helvetica-Bold',
                         textColor=colors.HexColor(color))
    return _p(label, sty)


def _image_from_bytes(image_bytes: bytes, width: float, height: float) -> RLImage:
    """Convert raw PNG/JPEG bytes to a ReportLab Image flowable."""
    buf = BytesIO(image_bytes)
    return RLImage(buf, width=width, height=height)


def _placeholder_box(text: str, width: float, height: float, styles) -> Table:
    sty = ParagraphStyle('PlaceholderText', parent=styles['NoteText'], alignment=TA_CENTER)
    t = Table([[_p(text, sty)]], colWidths=[width], rowHeights=[height])
    t.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (-1, -1), PLACEHOLDER_BG),
        ('BOX', (0, 0), (-1, -1), 0.5, GRID_COLOR),
        ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
    ]))
    return t


def _slot_flowable(slot: Optional[SectionImage], max_w: float, max_h: float, styles):
    """Image scaled into the box, or the matching placeholder box."""
    if slot is None or slot.image is None:
        return _placeholder_box("Sin imagen", max_w, max_h, styles)
    if slot.image.is_placeholder:
        return _placeholder_box("Imagen no disponible", max_w, max_h, styles)
    try:
        iw, ih = ImageReader(BytesIO(slot.image.data)).getSize()
    except (OSError, ValueError) as exc:
        logger.warning("Image slot %s not drawable: %s", slot.slot, exc)
        return _placeholder_box("Imagen no disponible", max_w, max_h, styles)
    scale = min(max_w / iw, max_h / ih)
    return _image_from_bytes(slot.image.data, iw * scale, ih * scale)


# ──────────────────────────────────────────────────────────────────
# SECTION RENDERERS
# ──────────────────────────────────────────────────────────────────

def _render_header(story, styles, section: ReportSection):
    body = section.body
    contact = [v for v in (body.get("company_address"), body.get("company_phone"),
                           body.get("company_email")) if v]
    info = [_p(body.get("company_name", ""), styles['CompanyName'])]
    info += [_p(line, styles['NoteText']) for line in contact]

    logo = section.image("logo")
    if logo is not None and logo.has_image:
        left = _slot_flowable(logo, 1.6 * inch, 0.8 * inch, styles)
        t = Table([[left, info]], colWidths=[1.8 * inch, CONTENT_W - 1.8 * inch])
    else:
        t = Table([[info]], colWidths=[CONTENT_W])
    t.setStyle(TableStyle([
        ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
        ('LEFTPADDING', (0, 0), (-1, -1), 0),
    ]))
    story.append(t)
    story.append(Spacer(1, 10))
    story.append(_p(section.title, styles['ReportTitle']))
    story.append(_p(body.get("subtitle", ""), styles['Subtitle']))
    story.append(Spacer(1, 6))
    story.append(HRFlowable(width="100%", thickness=0.5, color=GRID_COLOR))


def _render_rows(story, styles, section: ReportSection):
    story.append(_section_header(section.title, styles))
    story.append(Spacer(1, 6))
    story.append(_make_kv_table(section.body.get("rows", []), styles))


def _render_vehicle_photo(story, styles, section: ReportSection):
    story.append(_section_header(section.title, styles))
    story.append(Spacer(1, 6))
    story.append(_slot_flowable(section.image("vehicle_photo"),
                                CONTENT_W * 0.7, 3.2 * inch, styles))


def _render_suggested_price(story, styles, section: ReportSection):
    story.append(_section_header(section.title, styles))
    story.append(Spacer(1, 6))
    story.append(_p(section.body.get("price", "N/A"), styles['Body']))


def _render_diagnosis(story, styles, section: ReportSection):
    story.append(_section_header(section.title, styles))
    story.append(Spacer(1, 6))
    suggestions = section.body.get("suggestions") or []
    if not suggestions:
        story.append(_p(section.body.get("empty_message", ""), styles['NoteText']))
        return
    for s in suggestions:
        story.append(Paragraph(f"• {escape(s)}", styles['Body']))


def _render_checklist(story, styles, section: ReportSection):
    story.append(_section_header(section.title, styles))
    story.append(Spacer(1, 6))
    rows = [
        [r["item"], _status_cell(r["status_label"], r["color"], styles), r["notes"]]
        for r in section.body.get("rows", [])
    ]
    story.append(_make_data_table(
        ["Elemento", "Estado", "Observaciones"], rows, styles,
        col_widths=[2.4 * inch, 1.1 * inch, CONTENT_W - 3.5 * inch],
    ))


def _render_body_diagram(story, styles, section: ReportSection):
    body = section.body
    story.append(_section_header(section.title, styles))
    story.append(Spacer(1, 6))
    story.append(_p(f"Tipo de vehículo: {body.get('body_style', '')} | "
                    f"Puntos registrados: {body.get('point_count', 0)}", styles['NoteText']))
    story.append(_slot_flowable(section.image("diagram"), CONTENT_W, CONTENT_W * 0.5, styles))
    story.append(Spacer(1, 6))
    story.append(_p(body.get("legend", ""), styles['NoteText']))
    rows = [[str(p["number"]), p["label"], p["observation"]] for p in body.get("points", [])]
    story.append(_make_data_table(
        ["Punto", "Descripción", "Observación"], rows, styles,
        col_widths=[0.7 * inch, 2.2 * inch, CONTENT_W - 2.9 * inch],
    ))


def _render_tire_diagram(story, styles, section: ReportSection):
    story.append(_section_header(section.title, styles))
    story.append(Spacer(1, 6))
    story.append(_slot_flowable(section.image("diagram"), CONTENT_W, CONTENT_W * 0.6, styles))
    story.append(Spacer(1, 6))
    rows = [
        [r["title"], r["value"], _status_cell(r["band_label"], r["color"], styles)]
        for r in section.body.get("rows", [])
    ]
    story.append(_make_data_table(["Llanta", "Profundidad (mm)", "Estado"], rows, styles))


def _render_photos(story, styles, section: ReportSection):
    body = section.body
    story.append(_section_header(
        f"{section.title} ({body.get('page', 1)}/{body.get('page_count', 1)})", styles))
    story.append(Spacer(1, 8))
    cell_w = CONTENT_W / 2 - 6
    cells = []
    for img, photo in zip(section.images, body.get("photos", [])):
        cell = [_slot_flowable(img, cell_w, 3.0 * inch, styles),
                Spacer(1, 4), _p(img.caption, styles['Caption'])]
        if photo.get("observations"):
            cell.append(_p(photo["observations"], styles['NoteText']))
        cells.append(cell)
    while len(cells) < 2:
        cells.append("")
    t = Table([cells], colWidths=[CONTENT_W / 2, CONTENT_W / 2])
    t.setStyle(TableStyle([('VALIGN', (0, 0), (-1, -1), 'TOP')]))
    story.append(t)


def _render_verdict(story, styles, section: ReportSection):
    body = section.body
    story.append(_section_header(section.title, styles))
    story.append(Spacer(1, 8))
    badge = Table([[_p(body.get("label", ""), styles['Verdict'])]], colWidths=[CONTENT_W])
    badge.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (-1, -1), colors.HexColor(body.get("color", "#9E9E9E"))),
        ('TOPPADDING', (0, 0), (-1, -1), 10),
        ('BOTTOMPADDING', (0, 0), (-1, -1), 10),
    ]))
    story.append(badge)
    story.append(Spacer(1, 10))

    counts = body.get("counts", {})
    story.append(_make_kv_table([
        ["Elementos en buen estado", str(counts.get("good", 0))],
        ["Requieren atención", str(counts.get("attention", 0))],
        ["En mal estado", str(counts.get("bad", 0))],
        ["No aplica", str(counts.get("not_applicable", 0))],
        ["Total evaluado", str(counts.get("total", 0))],
    ], styles))
    if body.get("notes"):
        story.append(Spacer(1, 8))
        story.append(_p("Observaciones generales", styles['CompanyName']))
        story.append(_p(body["notes"], styles['Body']))

    sigs = body.get("signatures", {})
    sig_w = CONTENT_W / 2 - 20
    line = HRFlowable(width=sig_w, thickness=0.75, color=DARK)
    sig_table = Table([
        [Spacer(1, 40), Spacer(1, 40)],
        [line, HRFlowable(width=sig_w, thickness=0.75, color=DARK)],
        [_p("Firma del Inspector", styles['Caption']), _p("Firma del Propietario", styles['Caption'])],
        [_p(sigs.get("inspector", ""), styles['Disclaimer']),
         _p(sigs.get("owner", ""), styles['Disclaimer'])],
    ], colWidths=[CONTENT_W / 2, CONTENT_W / 2])
    story.append(Spacer(1, 16))
    story.append(KeepTogether([sig_table]))


def _render_disclaimer(story, styles, section: ReportSection):
    story.append(Spacer(1, 18))
    story.append(HRFlowable(width="100%", thickness=0.25, color=GRID_COLOR))
    story.append(Spacer(1, 4))
    for line in section.body.get("lines", []):
        story.append(_p(line, styles['Disclaimer']))


SECTION_RENDERERS = {
    SectionKey.HEADER: _render_header,
    SectionKey.INGRESS: _render_rows,
    SectionKey.VEHICLE_INFO: _render_rows,
    SectionKey.VEHICLE_PHOTO: _render_vehicle_photo,
    SectionKey.SUGGESTED_PRICE: _render_suggested_price,
    SectionKey.VEHICLE_HISTORY: _render_rows,
    SectionKey.DIAGNOSIS: _render_diagnosis,
    SectionKey.CHECKLIST_LIGHTS_EXTERIOR: _render_checklist,
    SectionKey.CHECKLIST_ENGINE_MOUNTS: _render_checklist,
    SectionKey.CHECKLIST_INTERIOR: _render_checklist,
    SectionKey.BODY_DIAGRAM: _render_body_diagram,
    SectionKey.TIRE_DIAGRAM: _render_tire_diagram,
    SectionKey.BATTERY: _render_rows,
    SectionKey.BRAKE_FLUID: _render_rows,
    SectionKey.PHOTOS: _render_photos,
    SectionKey.VERDICT: _render_verdict,
    SectionKey.DISCLAIMER: _render_disclaimer,
}


def _footer_lines(sections: Sequence[ReportSection]) -> list[str]:
    for section in sections:
        if section.repeat_on_every_page:
            lines = section.body.get("lines") or [""]
            return [
                lines[0],
                f"Fecha de generación: {section.body.get('generated_on', '')} - "
                f"{section.body.get('validity', '')}",
            ]
    return []


def _watermark_bytes(sections: Sequence[ReportSection]) -> Optional[bytes]:
    for section in sections:
        if section.key == SectionKey.HEADER:
            slot = section.image("watermark")
            if slot is not None and slot.has_image:
                return _fade(slot.image.data)
    return None


def _build_story(sections: Sequence[ReportSection]) -> list:
    styles = _get_styles()
    story = []
    for section in sections:
        if section.new_page and story:
            story.append(PageBreak())
        elif story:
            story.append(Spacer(1, 12))
        SECTION_RENDERERS[section.key](story, styles, section)
    return story


# ──────────────────────────────────────────────────────────────────
# PUBLIC API
# ──────────────────────────────────────────────────────────────────

def generate_report_bytes(sections: Sequence[ReportSection]) -> bytes:
    """Lay out the composed sections and return the PDF as bytes."""
    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer, pagesize=letter,
        topMargin=0.7 * inch, bottomMargin=0.9 * inch,
        leftMargin=MARGIN, rightMargin=MARGIN,
        title="Reporte de Inspección Vehicular",
    )
    decorate = _make_page_decorator(_watermark_bytes(sections), _footer_lines(sections))
    doc.build(_build_story(sections), onFirstPage=decorate, onLaterPages=decorate)
    logger.info("Rendered inspection PDF: %d sections, %d bytes",
                len(sections), buffer.tell())
    return buffer.getvalue()


def generate_report(sections: Sequence[ReportSection], plate: str = "") -> str:
    """Render the PDF into OUTPUT_DIR. Returns the file path."""
    os.makedirs(OUTPUT_DIR, exist_ok=True)
    report_id = str(uuid.uuid4())[:8]
    stem = "".join(c for c in plate.upper() if c.isalnum()) or "vehiculo"
    stamp = datetime.now().strftime("%Y%m%d")
    filepath = os.path.join(OUTPUT_DIR, f"{settings.default_company_name}_{stem}_{stamp}_{report_id}.pdf")
    with open(filepath, 'wb') as f:
        f.write(generate_report_bytes(sections))
    return filepath
