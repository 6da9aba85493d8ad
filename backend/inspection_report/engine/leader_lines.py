"""
Leader-line geometry for tire measurement labels.

Each measurement dot gets a label box at a fixed pixel offset from the dot.
The offset is NOT scaled with the diagram: the label box has a fixed visual
size, so the connector keeps the same length on a phone screen and in the
embedded report diagram.

The connector is drawn as a horizontal segment of ``length`` pixels whose
origin is pinned at the dot and which is rotated about that origin by
``angle_degrees``. Screen y grows downwards, so a negative dy (label above
the dot) gives a negative angle.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

DEFAULT_LABEL_OFFSET = (35.0, -25.0)


@dataclass(frozen=True)
class LeaderLine:
    x: float            # dot, diagram pixels
    y: float
    label_x: float      # label anchor, diagram pixels
    label_y: float
    length: float
    angle_degrees: float

    def endpoint(self) -> tuple[float, float]:
        """Far end of the connector after rotating about the pinned origin."""
        rad = math.radians(self.angle_degrees)
        return (
            self.x + self.length * math.cos(rad),
            self.y + self.length * math.sin(rad),
        )


def denormalize(x: float, y: float, width: float, height: float) -> tuple[float, float]:
    """Normalized [0,1] diagram coordinates -> pixels."""
    return (x * width, y * height)


def leader_line_from_pixels(
    px: float,
    py: float,
    offset: tuple[float, float] = DEFAULT_LABEL_OFFSET,
) -> LeaderLine:
    dx, dy = offset
    label_x = px + dx
    label_y = py + dy
    length = math.sqrt((label_x - px) ** 2 + (label_y - py) ** 2)
    angle = math.atan2(label_y - py, label_x - px) * 180 / math.pi
    return LeaderLine(
        x=px, y=py,
        label_x=label_x, label_y=label_y,
        length=length, angle_degrees=angle,
    )


def compute_leader_line(
    x: float,
    y: float,
    width: float,
    height: float,
    offset: tuple[float, float] = DEFAULT_LABEL_OFFSET,
) -> LeaderLine:
    """Compute the connector for a measurement at normalized (x, y).

    Args:
        x, y: Normalized measurement coordinates.
        width, height: Rendered diagram size in pixels.
        offset: Fixed (dx, dy) pixel offset of the label anchor.
    """
    px, py = denormalize(x, y, width, height)
    return leader_line_from_pixels(px, py, offset)
