"""
Annotated vehicle diagrams for report embedding.

A report needs exactly one raster per diagram (body damage, tire tread):
"the base vehicle silhouette for the body style with every current
annotation drawn on top".  Two renderers produce it, asked in order until
one is available:

  1. SnapshotDiagramRenderer: the snapshot the inspector last saw on
     screen (stored on the sub-record), or a fresh one from a
     ``SnapshotCapturer`` collaborator.  Markers are already baked in.
  2. PlaceholderDiagramRenderer: a plain card labeled with the body style
     ("SEDAN", "SUV", "PICKUP").  Points are not redrawn; this is a
     degraded, non-failing fallback.

``OverlaySnapshotCapturer`` is the Pillow implementation of the capture
collaborator: it draws the same markers and leader lines as the live
overlay, using ``engine.leader_lines`` so screen and document match.
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from enum import Enum
from io import BytesIO
from typing import Optional, Protocol, Sequence, Union

from PIL import Image, ImageDraw, ImageFont

from inspection_report.config import settings
from inspection_report.engine.leader_lines import compute_leader_line
from inspection_report.engine.severity import classify
from inspection_report.models.report import EmbeddedImage, PLACEHOLDER
from inspection_report.models.schemas import BodyInspection, TireInspection
from inspection_report.services.images import (
    ImageProfile, ImageReader, resolve_image, sniff_mime_type,
)

logger = logging.getLogger(__name__)

BODY_STYLES = ("sedan", "suv", "pickup")
DEFAULT_BODY_STYLE = "sedan"

SNAPSHOT = ImageProfile("diagram", 1400, 1000, 90)

MARKER_RED = (255, 0, 0)
WHITE = (255, 255, 255)
OUTLINE = (90, 90, 90)
CARD_BG = (248, 249, 250)
GREY_TEXT = (108, 117, 125)


class DiagramKind(str, Enum):
    BODY = "body"
    TIRE = "tire"


SubRecord = Union[BodyInspection, TireInspection]


@dataclass(frozen=True)
class DiagramRequest:
    kind: DiagramKind
    body_style: str
    sub_record: SubRecord

    @property
    def annotation_count(self) -> int:
        if isinstance(self.sub_record, BodyInspection):
            return len(self.sub_record.points)
        return len(self.sub_record.measurements)

    @property
    def captured_image(self) -> Optional[str]:
        return self.sub_record.captured_image


def normalize_body_style(style: Optional[str]) -> str:
    style = (style or "").strip().lower()
    return style if style in BODY_STYLES else DEFAULT_BODY_STYLE


def _load_font(size: int, bold: bool = False):
    name = "DejaVuSans-Bold.ttf" if bold else "DejaVuSans.ttf"
    try:
        return ImageFont.truetype(name, size)
    except OSError:
        return ImageFont.load_default(size=size)


def _png_bytes(img: Image.Image) -> bytes:
    buf = BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


# ──────────────────────────────────────────────────────────────────
# CAPTURE COLLABORATORS
# ──────────────────────────────────────────────────────────────────

class SnapshotCapturer(Protocol):
    async def capture(self, request: DiagramRequest) -> Optional[bytes]:
        """Raster of the currently rendered diagram, or None if unavailable."""
        ...


class NullSnapshotCapturer:
    """Capture is never available (headless generation with no overlay)."""

    async def capture(self, request: DiagramRequest) -> Optional[bytes]:
        return None


class OverlaySnapshotCapturer:
    """Draws base silhouette + markers with Pillow."""

    def __init__(self, assets_dir: str | None = None,
                 label_offset: tuple[float, float] | None = None):
        self.assets_dir = assets_dir or settings.assets_dir
        self.label_offset = label_offset or tuple(settings.tire_label_offset)

    async def capture(self, request: DiagramRequest) -> Optional[bytes]:
        if request.annotation_count == 0:
            return None
        return await asyncio.to_thread(self.render_png, request)

    def render_png(self, request: DiagramRequest) -> bytes:
        if request.kind == DiagramKind.BODY:
            size = tuple(settings.body_diagram_size)
        else:
            size = tuple(settings.tire_diagram_size)
        img = self._base_image(request, size)
        draw = ImageDraw.Draw(img)
        if isinstance(request.sub_record, BodyInspection):
            draw_body_markers(draw, request.sub_record, img.size)
        else:
            draw_tire_markers(draw, request.sub_record, img.size, self.label_offset)
        return _png_bytes(img.convert("RGB"))

    def _asset_path(self, request: DiagramRequest) -> str:
        if request.kind == DiagramKind.TIRE:
            name = "vehicle-skeleton.png"
        else:
            name = f"{normalize_body_style(request.body_style)}.png"
        return os.path.join(self.assets_dir, name)

    def _base_image(self, request: DiagramRequest, size: tuple[int, int]) -> Image.Image:
        path = self._asset_path(request)
        if os.path.isfile(path):
            try:
                base = Image.open(path).convert("RGBA")
                canvas = Image.new("RGBA", size, WHITE + (255,))
                base.thumbnail(size, Image.LANCZOS)
                # resizeMode="contain": centred, aspect preserved
                canvas.alpha_composite(base, ((size[0] - base.width) // 2,
                                              (size[1] - base.height) // 2))
                return canvas
            except OSError as exc:
                logger.warning("Vehicle asset %s unreadable (%s); drawing outline", path, exc)
        return draw_silhouette(request.kind, size)


def draw_silhouette(kind: DiagramKind, size: tuple[int, int]) -> Image.Image:
    """Minimal vehicle outline used when no silhouette asset is installed."""
    w, h = size
    img = Image.new("RGBA", size, WHITE + (255,))
    d = ImageDraw.Draw(img)
    if kind == DiagramKind.TIRE:
        # Top view: chassis with four wheels at the fixed tire anchors
        d.rounded_rectangle([w * 0.28, h * 0.08, w * 0.72, h * 0.92],
                            radius=int(w * 0.06), outline=OUTLINE, width=3)
        d.line([(w * 0.5, h * 0.32), (w * 0.5, h * 0.68)], fill=OUTLINE, width=2)
        d.line([(w * 0.22, h * 0.32), (w * 0.78, h * 0.32)], fill=OUTLINE, width=2)
        d.line([(w * 0.22, h * 0.68), (w * 0.78, h * 0.68)], fill=OUTLINE, width=2)
        for cx, cy in ((0.22, 0.32), (0.78, 0.32), (0.22, 0.68), (0.78, 0.68)):
            d.rounded_rectangle([w * cx - w * 0.03, h * cy - h * 0.09,
                                 w * cx + w * 0.03, h * cy + h * 0.09],
                                radius=6, fill=(60, 60, 60))
    else:
        # Side view
        d.rounded_rectangle([w * 0.06, h * 0.45, w * 0.94, h * 0.75],
                            radius=int(h * 0.08), outline=OUTLINE, width=3)
        d.polygon([(w * 0.25, h * 0.45), (w * 0.35, h * 0.22),
                   (w * 0.65, h * 0.22), (w * 0.78, h * 0.45)],
                  outline=OUTLINE, width=3)
        for cx in (0.24, 0.76):
            r = h * 0.11
            d.ellipse([w * cx - r, h * 0.75 - r, w * cx + r, h * 0.75 + r],
                      fill=(60, 60, 60), outline=OUTLINE)
    return img


def draw_body_markers(draw: ImageDraw.ImageDraw, body: BodyInspection,
                      size: tuple[int, int]) -> None:
    """Numbered red circles, white border, centred on each damage point."""
    w, h = size
    font = _load_font(12, bold=True)
    r = 10
    for point in body.points:
        cx, cy = point.x * w, point.y * h
        draw.ellipse([cx - r, cy - r, cx + r, cy + r],
                     fill=MARKER_RED, outline=WHITE, width=2)
        draw.text((cx, cy), str(point.number), fill=WHITE, font=font, anchor="mm")


def _hex_to_rgb(color: str) -> tuple[int, int, int]:
    color = color.lstrip("#")
    return (int(color[0:2], 16), int(color[2:4], 16), int(color[4:6], 16))


def draw_tire_markers(draw: ImageDraw.ImageDraw, tires: TireInspection,
                      size: tuple[int, int],
                      label_offset: tuple[float, float]) -> None:
    """Dot + leader line + colored label box (title, value to 2 decimals)."""
    w, h = size
    title_font = _load_font(9, bold=True)
    value_font = _load_font(11, bold=True)
    for m in tires.measurements:
        color = _hex_to_rgb(classify(m.value).color)
        line = compute_leader_line(m.x, m.y, w, h, offset=label_offset)
        end_x, end_y = line.endpoint()

        draw.line([(line.x, line.y), (end_x, end_y)], fill=color, width=2)
        draw.ellipse([line.x - 4, line.y - 4, line.x + 4, line.y + 4],
                     fill=color, outline=WHITE, width=1)

        left, top = line.label_x - 8, line.label_y - 8
        title_w = draw.textlength(m.title, font=title_font)
        box_w = max(50, title_w + 8)
        draw.rounded_rectangle([left, top, left + box_w, top + 30],
                               radius=8, fill=color)
        draw.text((left + box_w / 2, top + 9), m.title, fill=WHITE,
                  font=title_font, anchor="mm")
        draw.text((left + box_w / 2, top + 21), f"{m.value:.2f}", fill=WHITE,
                  font=value_font, anchor="mm")


# ──────────────────────────────────────────────────────────────────
# RENDERERS
# ──────────────────────────────────────────────────────────────────

class DiagramRenderer(Protocol):
    async def render(self, request: DiagramRequest) -> Optional[EmbeddedImage]:
        """An image for the request, or None when this renderer is unavailable."""
        ...


class SnapshotDiagramRenderer:
    def __init__(self, capturer: Optional[SnapshotCapturer] = None,
                 reader: Optional[ImageReader] = None):
        self.capturer = capturer or NullSnapshotCapturer()
        self.reader = reader

    async def render(self, request: DiagramRequest) -> Optional[EmbeddedImage]:
        if request.captured_image:
            stored = await resolve_image(request.captured_image, SNAPSHOT, self.reader)
            if stored is not None and not stored.is_placeholder:
                return stored
            logger.warning("Stored %s snapshot unusable; requesting a fresh capture",
                           request.kind.value)

        try:
            raw = await self.capturer.capture(request)
        except Exception as exc:
            logger.warning("%s snapshot capture failed: %s", request.kind.value, exc)
            return None
        if not raw:
            return None
        mime = sniff_mime_type(raw)
        if mime is None:
            logger.warning("%s snapshot capture returned unknown format", request.kind.value)
            return None
        return EmbeddedImage(mime_type=mime, data=raw)


class PlaceholderDiagramRenderer:
    def __init__(self, size: tuple[int, int] = (700, 350)):
        self.size = size

    async def render(self, request: DiagramRequest) -> Optional[EmbeddedImage]:
        return EmbeddedImage(mime_type="image/png",
                             data=render_placeholder_png(request.body_style, self.size))


def render_placeholder_png(body_style: Optional[str], size: tuple[int, int] = (700, 350)) -> bytes:
    w, h = size
    img = Image.new("RGB", size, CARD_BG)
    d = ImageDraw.Draw(img)
    d.rounded_rectangle([4, 4, w - 5, h - 5], radius=16, outline=(224, 224, 224), width=3)
    d.text((w / 2, h / 2 - 12), normalize_body_style(body_style).upper(),
           fill=(44, 62, 80), font=_load_font(48, bold=True), anchor="mm")
    d.text((w / 2, h / 2 + 34), "Diagrama no disponible",
           fill=GREY_TEXT, font=_load_font(16), anchor="mm")
    return _png_bytes(img)


def default_renderers(capturer: Optional[SnapshotCapturer] = None,
                      reader: Optional[ImageReader] = None) -> tuple[DiagramRenderer, ...]:
    return (SnapshotDiagramRenderer(capturer, reader), PlaceholderDiagramRenderer())


async def render_diagram(
    request: DiagramRequest,
    renderers: Sequence[DiagramRenderer],
) -> Optional[EmbeddedImage]:
    """First available renderer wins; no image at all without annotations."""
    if request.annotation_count == 0:
        return None
    for renderer in renderers:
        try:
            image = await renderer.render(request)
        except Exception as exc:
            logger.warning("%s renderer %s failed: %s", request.kind.value,
                           type(renderer).__name__, exc)
            continue
        if image is not None and not image.is_placeholder:
            logger.debug("%s diagram rendered by %s", request.kind.value,
                         type(renderer).__name__)
            return image
    return PLACEHOLDER
