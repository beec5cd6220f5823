from __future__ import annotations

import os
from enum import Enum
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, model_validator


class SmoothingLevel(str, Enum):
    NONE = "none"
    LIGHT = "light"
    NORMAL = "normal"
    HEAVY = "heavy"


class Sensitivity(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    CUSTOM = "custom"


# Weight given to the previous rolling baseline when blending in new data.
SMOOTHING_FACTORS = {
    SmoothingLevel.NONE: 0.0,
    SmoothingLevel.LIGHT: 0.85,
    SmoothingLevel.NORMAL: 0.70,
    SmoothingLevel.HEAVY: 0.50,
}

# Deviation jump (in std devs) a number must exceed to count as surging.
SURGE_THRESHOLDS = {
    Sensitivity.LOW: 2.5,
    Sensitivity.NORMAL: 2.0,
    Sensitivity.HIGH: 1.5,
}


class Settings(BaseModel):
    """Immutable analysis settings, passed into each computation call."""

    model_config = ConfigDict(frozen=True)

    smoothing: SmoothingLevel = SmoothingLevel.NORMAL
    sensitivity: Sensitivity = Sensitivity.NORMAL
    custom_sensitivity: Optional[float] = None

    @model_validator(mode="after")
    def _custom_needs_value(self) -> "Settings":
        if self.sensitivity == Sensitivity.CUSTOM:
            if self.custom_sensitivity is None or self.custom_sensitivity <= 0:
                raise ValueError("custom sensitivity requires a positive custom_sensitivity")
        return self

    @property
    def smoothing_factor(self) -> float:
        return SMOOTHING_FACTORS[self.smoothing]

    @property
    def surge_threshold(self) -> float:
        if self.sensitivity == Sensitivity.CUSTOM:
            return float(self.custom_sensitivity)
        return SURGE_THRESHOLDS[self.sensitivity]


def get_db_path() -> str:
    return os.getenv("DB_PATH", "./data/cyclewatch.sqlite")


def load_settings() -> Settings:
    """
    Build Settings from the environment (.env is loaded first).

      CYCLEWATCH_SMOOTHING           none | light | normal | heavy
      CYCLEWATCH_SENSITIVITY         low | normal | high | custom
      CYCLEWATCH_CUSTOM_SENSITIVITY  float, only read for custom
    """
    load_dotenv()
    smoothing = os.getenv("CYCLEWATCH_SMOOTHING", SmoothingLevel.NORMAL.value).strip().lower()
    sensitivity = os.getenv("CYCLEWATCH_SENSITIVITY", Sensitivity.NORMAL.value).strip().lower()
    custom = os.getenv("CYCLEWATCH_CUSTOM_SENSITIVITY", "").strip()

    try:
        return Settings(
            smoothing=SmoothingLevel(smoothing),
            sensitivity=Sensitivity(sensitivity),
            custom_sensitivity=float(custom) if custom else None,
        )
    except ValueError as e:
        raise ValueError(f"Invalid cyclewatch settings in environment: {e}") from e
