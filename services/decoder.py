"""Canonical decoding of raw device samples.

Unit spaces are kept apart on purpose: the store carries O3 in ppb (under the
``o3_ppm`` key), the AQI engine needs ppm, and readings keep ppb for display.
Missing or malformed numeric leaves decode as ``0.0`` (see
``models.schemas._coerce_number``), so decoding a mapping never raises.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any, Optional

from models.records import AmbientConditions, DecodedSample, SensorReading
from models.schemas import RawDeviceSample
from services.aqi import overall_aqi

logger = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
PPB_PER_PPM = 1000.0


def parse_timestamp(value: str) -> datetime:
    candidate = value.strip()
    if not candidate:
        raise ValueError("Timestamp is empty.")

    if candidate.endswith("Z"):
        candidate = candidate[:-1] + "+00:00"

    try:
        parsed = datetime.fromisoformat(candidate)
    except ValueError as exc:
        raise ValueError("Invalid timestamp format") from exc

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)

    return parsed.astimezone(timezone.utc)


def _sample_timestamp(raw: RawDeviceSample) -> datetime:
    try:
        return parse_timestamp(raw.timestamp)
    except ValueError:
        logger.debug(
            "Sample timestamp unusable, defaulting to epoch",
            extra={"reason": raw.timestamp or "missing"},
        )
        return EPOCH


def decode_sample(raw: Mapping[str, Any]) -> DecodedSample:
    """Decode a device document into a reading and its ambient conditions."""
    sample = RawDeviceSample.model_validate(dict(raw) if isinstance(raw, Mapping) else {})
    gases = sample.gases
    particulates = sample.particulates
    environment = sample.environment

    o3_ppb = gases.o3_ppm
    aqi = overall_aqi(particulates.pm25_mgm3, o3_ppb / PPB_PER_PPM, gases.co_ppm)
    glp = gases.lpg if gases.lpg is not None else gases.glp

    reading = SensorReading(
        aqi=aqi,
        co2=gases.air_quality_ppm,
        o3=o3_ppb,
        co=gases.co_ppm,
        glp=glp if glp is not None else 0.0,
        natural_gas=gases.natural_gas,
        pm1=particulates.pm1_ugm3,
        pm25=particulates.pm25_mgm3,
        rh=environment.humidity,
        timestamp=_sample_timestamp(sample),
    )
    conditions = AmbientConditions(
        temperature_c=environment.temperature,
        humidity=environment.humidity,
        pressure=f"{environment.pressure:.1f} hPa",
        aqi=aqi,
    )
    return DecodedSample(reading=reading, conditions=conditions)


def decode_reading(raw: Mapping[str, Any]) -> SensorReading:
    return decode_sample(raw).reading


def extract_numeric(raw: Any, field_path: str) -> Optional[float]:
    """Follow a dotted path into a raw document and return a numeric leaf."""
    node = raw
    for part in field_path.split("."):
        if not isinstance(node, Mapping) or part not in node:
            return None
        node = node[part]
    if isinstance(node, bool) or not isinstance(node, (int, float)):
        return None
    try:
        value = float(node)
    except OverflowError:
        return None
    if math.isnan(value):
        return None
    return value
