"""
Tread-depth severity bands.

A continuous tire reading (mm of useful tread, 0-6.34) maps to one of five
discrete bands. The same band drives the marker color on the live overlay
and the textual classification printed in the report, so the boundaries
below are a visible contract:

    value < 1.40            critical   red      CRÍTICO
    1.40 <= value <= 2.8    attention  orange   ATENCIÓN
    2.8  <  value <= 4.5    regular    yellow   REGULAR
    4.5  <  value <= 6.34   good       green    BUENO
    missing / NaN / > 6.34  unknown    blue     N/A
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional

MAX_TREAD_DEPTH = 6.34

CRITICAL_BELOW = 1.40
ATTENTION_MAX = 2.8
REGULAR_MAX = 4.5


@dataclass(frozen=True)
class SeverityBand:
    key: str
    color: str   # hex, as drawn on the overlay and in the report
    label: str


CRITICAL = SeverityBand("critical", "#FF0000", "CRÍTICO")
ATTENTION = SeverityBand("attention", "#FF9800", "ATENCIÓN")
REGULAR = SeverityBand("regular", "#FFD600", "REGULAR")
GOOD = SeverityBand("good", "#4CAF50", "BUENO")
UNKNOWN = SeverityBand("unknown", "#2196F3", "N/A")

ALL_BANDS = (CRITICAL, ATTENTION, REGULAR, GOOD, UNKNOWN)


def classify(value: Optional[float]) -> SeverityBand:
    """Map a tread reading to its severity band. Total: never raises."""
    if value is None or isinstance(value, bool):
        return UNKNOWN
    try:
        v = float(value)
    except (TypeError, ValueError):
        return UNKNOWN
    if not math.isfinite(v):
        return UNKNOWN
    if v < CRITICAL_BELOW:
        return CRITICAL
    if v <= ATTENTION_MAX:
        return ATTENTION
    if v <= REGULAR_MAX:
        return REGULAR
    if v <= MAX_TREAD_DEPTH:
        return GOOD
    return UNKNOWN
