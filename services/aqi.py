"""EPA breakpoint tables and AQI computation.

Breakpoints follow EPA-454/B-18-007 (PM2.5 24-hour, O3 8-hour, CO 8-hour).
Everything here is pure and safe to call from any thread.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import ROUND_DOWN, Decimal
from typing import Sequence, Tuple


class BreakpointLookupError(ValueError):
    """Raised when a concentration inside a table's range matches no row."""


@dataclass(frozen=True)
class Breakpoint:
    aqi_low: int
    aqi_high: int
    c_low: float
    c_high: float


BreakpointTable = Tuple[Breakpoint, ...]


def validate_table(rows: Sequence[Breakpoint]) -> BreakpointTable:
    """Return ``rows`` as a table after checking ordering and overlap."""
    if not rows:
        raise ValueError("Breakpoint table is empty.")
    for row in rows:
        if row.c_high < row.c_low or row.aqi_high < row.aqi_low:
            raise ValueError(f"Breakpoint {row!r} has an inverted range.")
    for previous, current in zip(rows, rows[1:]):
        if current.c_low <= previous.c_high:
            raise ValueError(
                f"Concentration ranges overlap at {previous.c_high} / {current.c_low}."
            )
        if current.aqi_low <= previous.aqi_high:
            raise ValueError(
                f"AQI ranges overlap at {previous.aqi_high} / {current.aqi_low}."
            )
    return tuple(rows)


# µg/m³
PM25_BREAKPOINTS: BreakpointTable = validate_table(
    [
        Breakpoint(0, 50, 0.0, 12.0),
        Breakpoint(51, 100, 12.1, 35.4),
        Breakpoint(101, 150, 35.5, 55.4),
        Breakpoint(151, 200, 55.5, 150.4),
        Breakpoint(201, 300, 150.5, 250.4),
        Breakpoint(301, 400, 250.5, 350.4),
        Breakpoint(401, 500, 350.5, 500.4),
    ]
)

# ppm
O3_BREAKPOINTS: BreakpointTable = validate_table(
    [
        Breakpoint(0, 50, 0.000, 0.054),
        Breakpoint(51, 100, 0.055, 0.070),
        Breakpoint(101, 150, 0.071, 0.085),
        Breakpoint(151, 200, 0.086, 0.105),
        Breakpoint(201, 300, 0.106, 0.200),
    ]
)

# ppm
CO_BREAKPOINTS: BreakpointTable = validate_table(
    [
        Breakpoint(0, 50, 0.0, 4.4),
        Breakpoint(51, 100, 4.5, 9.4),
        Breakpoint(101, 150, 9.5, 12.4),
        Breakpoint(151, 200, 12.5, 15.4),
        Breakpoint(201, 300, 15.5, 30.4),
        Breakpoint(301, 400, 30.5, 40.4),
        Breakpoint(401, 500, 40.5, 50.4),
    ]
)

MAX_AQI = 500


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _truncate(value: float, places: int) -> float:
    if not math.isfinite(value) or abs(value) >= 1e15:
        return value
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(repr(value)).quantize(quantum, rounding=ROUND_DOWN))


def individual_aqi(concentration: float, table: BreakpointTable) -> int:
    """Interpolate one pollutant's AQI from its breakpoint table."""
    if math.isnan(concentration) or concentration < 0:
        return 0

    for bp in table:
        if bp.c_low <= concentration <= bp.c_high:
            break
    else:
        if concentration > table[-1].c_high:
            return MAX_AQI
        if concentration < table[0].c_low:
            return 0
        raise BreakpointLookupError(
            f"Concentration {concentration} falls between breakpoint rows."
        )

    if bp.c_high == bp.c_low:
        return bp.aqi_low

    slope = (bp.aqi_high - bp.aqi_low) / (bp.c_high - bp.c_low)
    return _round_half_up(slope * (concentration - bp.c_low) + bp.aqi_low)


def _individual_indexes(
    pm25_ugm3: float, o3_ppm: float, co_ppm: float
) -> Tuple[Tuple[str, int], ...]:
    # Reporting rule: truncate, never round, before the lookup.
    return (
        ("pm25", individual_aqi(_truncate(pm25_ugm3, 1), PM25_BREAKPOINTS)),
        ("o3", individual_aqi(_truncate(o3_ppm, 3), O3_BREAKPOINTS)),
        ("co", individual_aqi(_truncate(co_ppm, 1), CO_BREAKPOINTS)),
    )


def overall_aqi(pm25_ugm3: float, o3_ppm: float, co_ppm: float) -> int:
    """Overall AQI: the maximum of the individual pollutant indexes."""
    return max(value for _, value in _individual_indexes(pm25_ugm3, o3_ppm, co_ppm))


def dominant_pollutant(pm25_ugm3: float, o3_ppm: float, co_ppm: float) -> str:
    indexes = _individual_indexes(pm25_ugm3, o3_ppm, co_ppm)
    best = max(value for _, value in indexes)
    return next(name for name, value in indexes if value == best)


@dataclass(frozen=True)
class AqiCategory:
    text: str
    cls: str
    value_range: str
    meaning: str


AQI_CATEGORIES: Tuple[AqiCategory, ...] = (
    AqiCategory(
        "Good",
        "good",
        "0 - 50",
        "Air quality is satisfactory and air pollution poses little or no risk.",
    ),
    AqiCategory(
        "Moderate",
        "mod",
        "51 - 100",
        "Air quality is acceptable; a very small number of unusually sensitive "
        "people may be affected by some pollutants.",
    ),
    AqiCategory(
        "Unhealthy for Sensitive Groups",
        "warn",
        "101 - 150",
        "Members of sensitive groups may experience health effects. The general "
        "public is less likely to be affected.",
    ),
    AqiCategory(
        "Unhealthy",
        "bad",
        "151 - 200",
        "Some members of the general public may experience health effects; "
        "sensitive groups may experience more serious effects.",
    ),
    AqiCategory(
        "Very Unhealthy",
        "bad",
        "201 - 300",
        "Health alert: the risk of health effects is increased for everyone.",
    ),
    AqiCategory(
        "Hazardous",
        "bad",
        "301 and higher",
        "Health warning of emergency conditions: everyone is more likely to be affected.",
    ),
)

_CATEGORY_UPPER_BOUNDS = (50, 100, 150, 200, 300)


def category_index(aqi: float) -> int:
    if math.isnan(aqi):
        return 0
    for index, upper in enumerate(_CATEGORY_UPPER_BOUNDS):
        if aqi <= upper:
            return index
    return len(_CATEGORY_UPPER_BOUNDS)


def aqi_category(aqi: float) -> AqiCategory:
    return AQI_CATEGORIES[category_index(aqi)]


def is_concerning(index: int) -> bool:
    """Categories above "Moderate" count as concerning."""
    return index > 1
