from __future__ import annotations

from inspection_report.engine.annotations import (
    add_damage_point,
    remove_damage_point,
    upsert_tire_measurement,
    remove_tire_measurement,
)
from inspection_report.engine.leader_lines import compute_leader_line
from inspection_report.engine.severity import classify

__all__ = [
    "add_damage_point",
    "remove_damage_point",
    "upsert_tire_measurement",
    "remove_tire_measurement",
    "compute_leader_line",
    "classify",
]
