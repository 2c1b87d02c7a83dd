"""Pydantic schemas for raw device documents and persisted alerts."""

from __future__ import annotations

import math
from collections.abc import Mapping
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator


def _coerce_number(value: Any) -> float:
    """Default table for numeric leaves: anything unusable becomes ``0.0``."""
    if isinstance(value, bool) or value is None:
        return 0.0
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            return 0.0
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return 0.0
    else:
        return 0.0
    return number if math.isfinite(number) else 0.0


def _coerce_group(value: Any) -> Any:
    return dict(value) if isinstance(value, Mapping) else {}


class _Group(BaseModel):
    model_config = ConfigDict(extra="ignore")

    @field_validator("*", mode="before")
    @classmethod
    def _numeric_leaf(cls, value: Any, info: ValidationInfo) -> Any:
        if value is None and cls.model_fields[info.field_name].default is None:
            return None
        return _coerce_number(value)


class EnvironmentGroup(_Group):
    temperature: float = 0.0
    humidity: float = 0.0
    pressure: float = 0.0


class GasesGroup(_Group):
    co_ppm: float = 0.0
    # Device firmware writes ppb under this key.
    o3_ppm: float = 0.0
    lpg: Optional[float] = None
    glp: Optional[float] = None
    natural_gas: float = 0.0
    air_quality_ppm: float = 0.0


class ParticulatesGroup(_Group):
    pm1_ugm3: float = 0.0
    # Device firmware writes µg/m³ under this key.
    pm25_mgm3: float = 0.0


class RawDeviceSample(BaseModel):
    """Permissive view over a device document as written to the store."""

    model_config = ConfigDict(extra="ignore")

    timestamp: str = ""
    environment: EnvironmentGroup = Field(default_factory=EnvironmentGroup)
    gases: GasesGroup = Field(default_factory=GasesGroup)
    particulates: ParticulatesGroup = Field(default_factory=ParticulatesGroup)

    @field_validator("environment", "gases", "particulates", mode="before")
    @classmethod
    def _mapping_group(cls, value: Any) -> Any:
        return _coerce_group(value)

    @field_validator("timestamp", mode="before")
    @classmethod
    def _timestamp_text(cls, value: Any) -> str:
        return value if isinstance(value, str) else ""


class AlertClass(str, Enum):
    """Presentation class attached to an alert."""

    good = "good"
    mod = "mod"
    warn = "warn"
    bad = "bad"


class AlertRecord(BaseModel):
    """Immutable alert entry appended to the alert log."""

    model_config = ConfigDict(frozen=True)

    id: str
    ts: datetime = Field(..., description="Wall-clock time the alert was emitted.")
    type: str
    level: str
    value: float
    message: str
    cls: AlertClass
