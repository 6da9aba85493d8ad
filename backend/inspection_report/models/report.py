from __future__ import annotations

import base64
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class EmbeddedImage(BaseModel):
    """A resolved image ready for a document: raw bytes plus MIME type.

    The module-level ``PLACEHOLDER`` instance stands for an image that was
    referenced but could not be resolved.
    """
    model_config = ConfigDict(frozen=True, ser_json_bytes="base64")

    mime_type: str = ""
    data: bytes = b""
    placeholder: bool = False

    @property
    def is_placeholder(self) -> bool:
        return self.placeholder or not self.data

    def to_data_uri(self) -> str:
        if self.is_placeholder:
            return ""
        return f"data:{self.mime_type};base64,{base64.b64encode(self.data).decode('ascii')}"


PLACEHOLDER = EmbeddedImage(placeholder=True)


class SectionKey(str, Enum):
    HEADER = "header"
    INGRESS = "ingress"
    VEHICLE_INFO = "vehicle_info"
    VEHICLE_PHOTO = "vehicle_photo"
    SUGGESTED_PRICE = "suggested_price"
    VEHICLE_HISTORY = "vehicle_history"
    DIAGNOSIS = "diagnosis"
    CHECKLIST_LIGHTS_EXTERIOR = "checklist_lights_exterior"
    CHECKLIST_ENGINE_MOUNTS = "checklist_engine_mounts"
    CHECKLIST_INTERIOR = "checklist_interior"
    BODY_DIAGRAM = "body_diagram"
    TIRE_DIAGRAM = "tire_diagram"
    BATTERY = "battery"
    BRAKE_FLUID = "brake_fluid"
    PHOTOS = "photos"
    VERDICT = "verdict"
    DISCLAIMER = "disclaimer"


class SectionImage(BaseModel):
    """One image slot of a section.

    ``image`` is None when nothing was referenced, ``PLACEHOLDER`` when the
    reference failed to resolve; either way the slot renders its fallback.
    """
    model_config = ConfigDict(frozen=True)

    slot: str
    image: Optional[EmbeddedImage] = None
    caption: str = ""

    @property
    def has_image(self) -> bool:
        return self.image is not None and not self.image.is_placeholder


class ReportSection(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: SectionKey
    title: str
    body: dict[str, Any] = Field(default_factory=dict)
    images: tuple[SectionImage, ...] = ()
    new_page: bool = False
    repeat_on_every_page: bool = False

    def image(self, slot: str) -> Optional[SectionImage]:
        for img in self.images:
            if img.slot == slot:
                return img
        return None
