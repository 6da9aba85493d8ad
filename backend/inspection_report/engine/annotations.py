"""
Pure helpers for the annotations embedded in an inspection record.

Collections are immutable tuples: every helper returns a new tuple and
never touches its input, so the UI layer owns dispatch and persistence.

Damage points carry a sequence number that is both the marker text on the
diagram and the row ordering key in the report. Numbers are always a
dense 1..N run in rendering order.

Tire measurements are keyed by one of four fixed wheel positions; a new
reading for an occupied position replaces the old one.
"""

from __future__ import annotations

import math
import uuid
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence, Union

from inspection_report.engine.severity import MAX_TREAD_DEPTH
from inspection_report.errors import ValidationError
from inspection_report.models.schemas import (
    DamagePoint, InspectionPhoto, TireMeasurement, TirePosition,
)


@dataclass(frozen=True)
class TireSlot:
    position: TirePosition
    x: float
    y: float
    title: str


# Fixed anchors on the top-view vehicle skeleton (normalized)
TIRE_SLOTS: dict[TirePosition, TireSlot] = {
    TirePosition.FRONT_LEFT: TireSlot(TirePosition.FRONT_LEFT, 0.22, 0.32, "Llanta DIzquierda"),
    TirePosition.FRONT_RIGHT: TireSlot(TirePosition.FRONT_RIGHT, 0.78, 0.32, "Llanta DDerecha"),
    TirePosition.REAR_LEFT: TireSlot(TirePosition.REAR_LEFT, 0.22, 0.68, "Llanta TIzquierda"),
    TirePosition.REAR_RIGHT: TireSlot(TirePosition.REAR_RIGHT, 0.78, 0.68, "Llanta TDerecha"),
}

# Tap tolerance (px) when snapping a touch to a wheel
TAP_TOLERANCE_PX = 80.0


# ──────────────────────────────────────────────────────────────────
# DAMAGE POINTS
# ──────────────────────────────────────────────────────────────────

def _renumber(points: Iterable[DamagePoint]) -> tuple[DamagePoint, ...]:
    return tuple(
        p if p.number == i else p.model_copy(update={"number": i})
        for i, p in enumerate(points, start=1)
    )


def add_damage_point(
    points: Sequence[DamagePoint],
    x: float,
    y: float,
    label: str = "",
    observation: Optional[str] = None,
) -> tuple[DamagePoint, ...]:
    """Append a damage point numbered ``len(points) + 1``.

    ``x``/``y`` must already be normalized by the caller; values outside
    [0, 1] are kept as-is (raw touch coordinates can overshoot the image).
    """
    point = DamagePoint(
        x=float(x), y=float(y),
        number=len(points) + 1,
        label=label or "",
        observation=observation,
    )
    return tuple(points) + (point,)


def remove_damage_point(
    points: Sequence[DamagePoint],
    number: int,
) -> tuple[DamagePoint, ...]:
    """Remove the point with sequence ``number`` and renumber the rest 1..N."""
    return _renumber(p for p in points if p.number != number)


def update_damage_point(
    points: Sequence[DamagePoint],
    number: int,
    label: Optional[str] = None,
    observation: Optional[str] = None,
) -> tuple[DamagePoint, ...]:
    """Replace the label/observation of one point; numbering is untouched."""
    updates = {}
    if label is not None:
        updates["label"] = label
    if observation is not None:
        updates["observation"] = observation
    return tuple(
        p.model_copy(update=updates) if p.number == number else p
        for p in points
    )


# ──────────────────────────────────────────────────────────────────
# TIRE MEASUREMENTS
# ──────────────────────────────────────────────────────────────────

def parse_tread_value(value: Union[float, int, str, None]) -> float:
    """Validate a tread reading and return it as a float.

    Accepts numbers and numeric strings; a comma decimal separator ("3,5")
    is accepted because that is what the depth gauge keyboard produces.

    Raises:
        ValidationError: not a finite number in [0, 6.34].
    """
    if value is None or isinstance(value, bool):
        raise ValidationError(f"Tread value is required (0 - {MAX_TREAD_DEPTH}).")
    if isinstance(value, str):
        try:
            v = float(value.strip().replace(",", "."))
        except ValueError:
            raise ValidationError(f"Tread value {value!r} is not numeric.") from None
    else:
        try:
            v = float(value)
        except (TypeError, ValueError):
            raise ValidationError(f"Tread value {value!r} is not numeric.") from None
    if not math.isfinite(v):
        raise ValidationError(f"Tread value {value!r} is not a finite number.")
    if v < 0 or v > MAX_TREAD_DEPTH:
        raise ValidationError(
            f"Tread value {v} out of range; enter a value between 0 and {MAX_TREAD_DEPTH}."
        )
    return v


def upsert_tire_measurement(
    measurements: Sequence[TireMeasurement],
    position: Union[TirePosition, str],
    value: Union[float, int, str],
) -> tuple[TireMeasurement, ...]:
    """Insert or replace the reading at ``position``.

    Validation happens before anything is built, so a rejected value never
    produces a new collection.
    """
    try:
        pos = TirePosition(position)
    except ValueError:
        raise ValidationError(f"Unknown tire position {position!r}.") from None
    v = parse_tread_value(value)

    slot = TIRE_SLOTS[pos]
    new = TireMeasurement(position=pos, x=slot.x, y=slot.y, title=slot.title, value=v)

    result: list[TireMeasurement] = []
    replaced = False
    for m in measurements:
        if m.position == pos:
            if not replaced:
                result.append(new)
                replaced = True
            continue
        result.append(m)
    if not replaced:
        result.append(new)
    return tuple(result)


def remove_tire_measurement(
    measurements: Sequence[TireMeasurement],
    position: Union[TirePosition, str],
) -> tuple[TireMeasurement, ...]:
    try:
        pos = TirePosition(position)
    except ValueError:
        raise ValidationError(f"Unknown tire position {position!r}.") from None
    return tuple(m for m in measurements if m.position != pos)


def nearest_tire_position(
    x_px: float,
    y_px: float,
    width: float,
    height: float,
    tolerance: float = TAP_TOLERANCE_PX,
) -> Optional[TirePosition]:
    """Snap a tap on the tire diagram to the closest wheel, if close enough."""
    best: Optional[TirePosition] = None
    best_dist = math.inf
    for slot in TIRE_SLOTS.values():
        dist = math.hypot(x_px - slot.x * width, y_px - slot.y * height)
        if dist < best_dist:
            best_dist = dist
            best = slot.position
    if best_dist < tolerance:
        return best
    return None


# ──────────────────────────────────────────────────────────────────
# INSPECTION PHOTOS
# ──────────────────────────────────────────────────────────────────

def add_inspection_photo(
    photos: Sequence[InspectionPhoto],
    uri: str,
    observations: str = "",
    photo_id: Optional[str] = None,
) -> tuple[InspectionPhoto, ...]:
    """Append a photograph labeled ``len(photos) + 1``."""
    photo = InspectionPhoto(
        id=photo_id or uuid.uuid4().hex[:12],
        uri=uri,
        label=len(photos) + 1,
        observations=observations,
    )
    return tuple(photos) + (photo,)


def relabel_inspection_photo(
    photos: Sequence[InspectionPhoto],
    photo_id: str,
    label: Union[int, str],
) -> tuple[InspectionPhoto, ...]:
    """Change a photo's numeric label; labels stay positive and unique."""
    try:
        new_label = int(str(label).strip())
    except ValueError:
        raise ValidationError(f"Photo label {label!r} is not an integer.") from None
    if new_label <= 0:
        raise ValidationError("Photo label must be a positive integer.")
    if any(p.label == new_label and p.id != photo_id for p in photos):
        raise ValidationError(f"Label {new_label} is already used by another photo.")
    if not any(p.id == photo_id for p in photos):
        raise ValidationError(f"Unknown photo {photo_id!r}.")
    return tuple(
        p.model_copy(update={"label": new_label}) if p.id == photo_id else p
        for p in photos
    )
