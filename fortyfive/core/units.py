"""Unit conversion utilities

Canonical storage units: kg, cm, kcal, hours, ms, bpm.
"""
import math
from typing import Optional

# Values below these are taken to be metres, not centimetres.
WAIST_METRES_THRESHOLD = 2.0
HEIGHT_METRES_THRESHOLD = 3.0


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero (2.5 -> 3, -2.5 -> -3)."""
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


def lb_to_kg(lb: Optional[float]) -> Optional[float]:
    if lb is None:
        return None
    return lb * 0.45359237


def kg_to_lb(kg: Optional[float]) -> Optional[float]:
    if kg is None:
        return None
    return round(kg * 2.20462, 1)


def to_kg(value: float | int | None, unit: str | None) -> float | None:
    if value is None or not isinstance(value, (int, float)):
        return None
    if unit and unit.lower() in ("lb", "lbs", "pound", "pounds"):
        return lb_to_kg(float(value))
    return float(value)


def to_cm(value: float | int | None, unit: str | None) -> float | None:
    """Convert a length to centimetres when the unit is known; pass through otherwise."""
    if value is None or not isinstance(value, (int, float)):
        return None
    u = unit.lower() if unit else None
    if u in ("m", "meter", "meters", "metre", "metres"):
        return float(value) * 100.0
    if u in ("in", "inch", "inches"):
        return float(value) * 2.54
    if u in ("ft", "foot", "feet"):
        return float(value) * 30.48
    return float(value)


def to_kcal(value: float | int | None, unit: str | None) -> float | None:
    if value is None or not isinstance(value, (int, float)):
        return None
    if unit and unit.lower() in ("kj", "kilojoule", "kilojoules"):
        return float(value) / 4.184
    return float(value)


def to_hours(value: float | int | None, unit: str | None) -> float | None:
    if value is None or not isinstance(value, (int, float)):
        return None
    u = unit.lower() if unit else None
    if u in ("min", "mins", "minute", "minutes"):
        return float(value) / 60.0
    if u in ("s", "sec", "secs", "second", "seconds"):
        return float(value) / 3600.0
    return float(value)


def normalize_waist_cm(waist: Optional[float]) -> Optional[float]:
    """Waist readings under 2.0 come from sources reporting metres."""
    if waist is None:
        return None
    if waist < WAIST_METRES_THRESHOLD:
        return waist * 100
    return waist


def normalize_height_cm(height: Optional[float]) -> Optional[float]:
    """Height readings under 3.0 come from sources reporting metres."""
    if height is None:
        return None
    if height < HEIGHT_METRES_THRESHOLD:
        return height * 100
    return height
