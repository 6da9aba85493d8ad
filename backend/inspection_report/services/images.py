"""
Image embedding pipeline for report generation.

Inspection images arrive through several acquisition paths (camera,
gallery, bundled assets, on-screen snapshots) as data URIs, ``file://``
URIs, plain paths, http(s) URLs or raw bytes.  ``parse_image_ref`` turns
any of those into one tagged reference, and ``resolve_image`` is the single
dispatch that turns a reference into an ``EmbeddedImage``:

  - EmptyImage   -> None (caller renders its "no image" fallback)
  - InlineImage  -> passed through, MIME sniffed from the bytes (declared
                    prefix only when the content is unrecognized)
  - FileImage / RemoteImage -> read, decoded with Pillow, downscaled into
    the profile's bounding box and re-encoded at the profile's quality

Any read/decode/encode failure is logged as an ``ImageResolutionWarning``
and comes back as ``PLACEHOLDER``; it never aborts report generation.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import logging
import mimetypes
from dataclasses import dataclass
from io import BytesIO
from pathlib import Path
from typing import Optional, Protocol, Union
from urllib.parse import unquote, urlparse

import httpx
from PIL import Image, ImageOps, UnidentifiedImageError

from inspection_report.config import settings
from inspection_report.errors import ImageResolutionWarning
from inspection_report.models.report import EmbeddedImage, PLACEHOLDER

logger = logging.getLogger(__name__)


# ──────────────────────────────────────────────────────────────────
# PROFILES
# ──────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ImageProfile:
    """Bounding box + JPEG quality for one image role in the report."""
    name: str
    max_width: int
    max_height: int
    quality: int


LOGO = ImageProfile("logo", *settings.logo_max_size, settings.logo_quality)
WATERMARK = ImageProfile("watermark", *settings.watermark_max_size, settings.watermark_quality)
PHOTO = ImageProfile("photo", *settings.photo_max_size, settings.photo_quality)


# ──────────────────────────────────────────────────────────────────
# REFERENCES
# ──────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class InlineImage:
    data: bytes
    mime_type: Optional[str] = None


@dataclass(frozen=True)
class FileImage:
    path: str


@dataclass(frozen=True)
class RemoteImage:
    url: str


@dataclass(frozen=True)
class EmptyImage:
    pass


ImageRef = Union[InlineImage, FileImage, RemoteImage, EmptyImage]

EMPTY = EmptyImage()


def _parse_data_uri(value: str) -> InlineImage:
    """Split ``data:<mime>;base64,<payload>`` into bytes + declared MIME."""
    header, sep, payload = value.partition(",")
    if not sep:
        raise ImageResolutionWarning("data URI", "missing ',' separator")
    meta = header[len("data:"):]
    parts = meta.split(";")
    declared = parts[0].strip().lower() or None
    try:
        if "base64" in parts[1:]:
            data = base64.b64decode(payload, validate=False)
        else:
            data = unquote(payload).encode("latin-1")
    except (binascii.Error, ValueError) as exc:
        raise ImageResolutionWarning("data URI", f"undecodable payload ({exc})") from exc
    return InlineImage(data=data, mime_type=declared)


def parse_image_ref(value: Union[str, bytes, ImageRef, None]) -> ImageRef:
    """Classify a heterogeneous image reference exactly once.

    Raises:
        ImageResolutionWarning: the value is a data URI whose payload cannot
            be decoded.
    """
    if isinstance(value, (InlineImage, FileImage, RemoteImage, EmptyImage)):
        return value
    if value is None:
        return EMPTY
    if isinstance(value, (bytes, bytearray)):
        return InlineImage(bytes(value)) if value else EMPTY

    text = value.strip()
    if not text:
        return EMPTY
    lowered = text.lower()
    if lowered.startswith("data:"):
        return _parse_data_uri(text)
    if lowered.startswith(("http://", "https://")):
        return RemoteImage(text)
    if lowered.startswith("file://"):
        return FileImage(unquote(urlparse(text).path))
    return FileImage(text)


# ──────────────────────────────────────────────────────────────────
# MIME DETECTION
# ──────────────────────────────────────────────────────────────────

_MAGIC = (
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
    (b"BM", "image/bmp"),
)


def sniff_mime_type(data: bytes) -> Optional[str]:
    """MIME type from the leading bytes of an encoded image."""
    for magic, mime in _MAGIC:
        if data.startswith(magic):
            return mime
    if len(data) >= 12 and data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    return None


def detect_mime_type(data: bytes, name: Optional[str] = None) -> Optional[str]:
    """Content first, then the file extension."""
    mime = sniff_mime_type(data)
    if mime:
        return mime
    if name:
        guessed, _ = mimetypes.guess_type(name)
        if guessed and guessed.startswith("image/"):
            return guessed
    return None


# ──────────────────────────────────────────────────────────────────
# OPTIMIZATION (Pillow)
# ──────────────────────────────────────────────────────────────────

def _has_alpha(img: Image.Image) -> bool:
    return img.mode in ("RGBA", "LA") or (img.mode == "P" and "transparency" in img.info)


def optimize_image(data: bytes, profile: ImageProfile, source: str = "image") -> EmbeddedImage:
    """Downscale into the profile box and re-encode.

    Images with transparency (logos, watermarks) stay PNG; everything else
    becomes a JPEG at the profile's quality.

    Raises:
        ImageResolutionWarning: Pillow cannot decode or encode the bytes.
    """
    try:
        img = Image.open(BytesIO(data))
        img.load()
    except Image.DecompressionBombError as exc:
        raise ImageResolutionWarning(source, f"image too large ({exc})") from exc
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        raise ImageResolutionWarning(source, f"cannot decode image ({exc})") from exc

    try:
        img = ImageOps.exif_transpose(img)
        img.thumbnail((profile.max_width, profile.max_height), Image.LANCZOS)

        buf = BytesIO()
        if _has_alpha(img):
            img.convert("RGBA").save(buf, format="PNG", optimize=True)
            mime = "image/png"
        else:
            img.convert("RGB").save(buf, format="JPEG", quality=profile.quality, optimize=True)
            mime = "image/jpeg"
    except (OSError, ValueError) as exc:
        raise ImageResolutionWarning(source, f"cannot re-encode image ({exc})") from exc

    logger.debug("Optimized %s for %s: %d -> %d bytes (%dx%d)",
                 source, profile.name, len(data), buf.tell(), img.width, img.height)
    return EmbeddedImage(mime_type=mime, data=buf.getvalue())


# ──────────────────────────────────────────────────────────────────
# READER COLLABORATOR
# ──────────────────────────────────────────────────────────────────

class ImageReader(Protocol):
    async def read_file(self, path: str) -> bytes: ...

    async def fetch(self, url: str) -> bytes: ...


class DefaultImageReader:
    """Reads local files in a worker thread and remote URLs with httpx."""

    def __init__(self, timeout: float | None = None):
        self.timeout = timeout if timeout is not None else settings.image_fetch_timeout

    async def read_file(self, path: str) -> bytes:
        return await asyncio.to_thread(Path(path).read_bytes)

    async def fetch(self, url: str) -> bytes:
        async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
            resp = await client.get(url)
            resp.raise_for_status()
            return resp.content


# ──────────────────────────────────────────────────────────────────
# PUBLIC API
# ──────────────────────────────────────────────────────────────────

def _embed_inline(ref: InlineImage) -> EmbeddedImage:
    if not ref.data:
        raise ImageResolutionWarning("inline image", "empty payload")
    declared = ref.mime_type if ref.mime_type and ref.mime_type.startswith("image/") else None
    sniffed = sniff_mime_type(ref.data)
    if sniffed and declared and sniffed != declared:
        # Some capture paths label every file image/jpeg
        logger.debug("Inline image declared %s but content is %s", declared, sniffed)
    mime = sniffed or declared
    if not mime:
        raise ImageResolutionWarning("inline image", "unknown image format")
    return EmbeddedImage(mime_type=mime, data=ref.data)


async def _read(ref: Union[FileImage, RemoteImage], reader: ImageReader) -> tuple[bytes, str]:
    if isinstance(ref, RemoteImage):
        source = ref.url
        try:
            data = await reader.fetch(ref.url)
        except Exception as exc:
            raise ImageResolutionWarning(source, f"fetch failed ({exc})") from exc
    else:
        source = ref.path
        try:
            data = await reader.read_file(ref.path)
        except Exception as exc:
            raise ImageResolutionWarning(source, f"read failed ({exc})") from exc
    if not data:
        raise ImageResolutionWarning(source, "empty file")
    if detect_mime_type(data, source) is None:
        raise ImageResolutionWarning(source, "not a recognized image format")
    return data, source


async def resolve_image(
    ref: Union[ImageRef, str, bytes, None],
    profile: ImageProfile = PHOTO,
    reader: Optional[ImageReader] = None,
) -> Optional[EmbeddedImage]:
    """Resolve one image reference into an embeddable image.

    Returns:
        None for an empty reference, ``PLACEHOLDER`` when the reference
        could not be resolved, otherwise the embedded image.
    """
    try:
        ref = parse_image_ref(ref)
        if isinstance(ref, EmptyImage):
            return None
        if isinstance(ref, InlineImage):
            return _embed_inline(ref)
        data, source = await _read(ref, reader or DefaultImageReader())
        return optimize_image(data, profile, source=source)
    except ImageResolutionWarning as warning:
        logger.warning("Image skipped for %s slot: %s", profile.name, warning)
        return PLACEHOLDER
