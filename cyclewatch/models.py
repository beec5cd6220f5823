from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from enum import Enum, IntEnum
from typing import Any, ClassVar, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

# Powerball rules: 5 primary numbers from 1-69 plus one secondary from 1-26.
PRIMARY_MAX = 69
SECONDARY_MAX = 26
PRIMARY_PER_DRAW = 5
WINDOW_SIZE = 20


class BaselineType(str, Enum):
    INITIAL = "initial"
    ROLLING = "rolling"
    PRELIMINARY = "preliminary"


class CyclePhase(IntEnum):
    COLLECTING = 0
    ACTIVE = 1
    CLOSED = 2


class ShiftTrigger(str, Enum):
    LONG_TERM_DRIFT = "long_term_drift"
    SHORT_TERM_SURGE = "short_term_surge"
    BASELINE_DIVERGENCE = "baseline_divergence"
    CORRELATION_BREAKDOWN = "correlation_breakdown"
    NEW_DOMINANCE = "new_dominance"


class ShiftSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Classification(str, Enum):
    HOT = "hot"
    WARM = "warm"
    STABLE = "stable"
    COOL = "cool"
    COLD = "cold"


class Trend(str, Enum):
    RISING = "rising"
    STABLE = "stable"
    FALLING = "falling"


class BallType(str, Enum):
    PRIMARY = "primary"
    SECONDARY = "secondary"


def _as_date(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, str):
        return date.fromisoformat(value[:10])
    return value


class Draw(BaseModel):
    """One recorded draw. Primary numbers are kept ascending."""

    model_config = ConfigDict(frozen=True)

    id: str = ""
    draw_date: date
    primary: Tuple[int, ...]
    secondary: int
    multiplier: Optional[int] = None
    source: str = "api"

    @model_validator(mode="before")
    @classmethod
    def _default_id(cls, data: Any) -> Any:
        if isinstance(data, dict):
            data = dict(data)
            data["draw_date"] = _as_date(data.get("draw_date"))
            if not data.get("id") and isinstance(data["draw_date"], date):
                data["id"] = f"drawing_{data['draw_date']:%Y%m%d}"
        return data

    @field_validator("primary", mode="before")
    @classmethod
    def _check_primary(cls, v: Any) -> Tuple[int, ...]:
        if not isinstance(v, (list, tuple, set, frozenset)):
            raise ValueError(f"primary numbers must be a list, got {type(v).__name__}")
        try:
            nums = sorted(int(n) for n in v)
        except (TypeError, ValueError) as e:
            raise ValueError(f"primary numbers must be integers: {v!r}") from e
        if len(nums) != PRIMARY_PER_DRAW:
            raise ValueError(f"expected {PRIMARY_PER_DRAW} primary numbers, got {len(nums)}")
        if len(set(nums)) != len(nums):
            raise ValueError(f"primary numbers must be unique: {nums}")
        out_of_range = [n for n in nums if not 1 <= n <= PRIMARY_MAX]
        if out_of_range:
            raise ValueError(f"primary numbers out of range 1-{PRIMARY_MAX}: {out_of_range}")
        return tuple(nums)

    @field_validator("secondary")
    @classmethod
    def _check_secondary(cls, v: int) -> int:
        if not 1 <= v <= SECONDARY_MAX:
            raise ValueError(f"secondary number {v} out of range 1-{SECONDARY_MAX}")
        return v


@dataclass(frozen=True)
class DateRange:
    start_date: date
    end_date: date


@dataclass(frozen=True)
class Statistics:
    mean: float
    std_dev: float
    median: float
    min: int
    max: int
    # goodness of fit against an even spread, None for an all-zero map
    chi2: Optional[float] = None
    chi2_p: Optional[float] = None


@dataclass(frozen=True)
class Baseline:
    """Statistical snapshot over a contiguous draw window. Never mutated."""

    id: str
    cycle_id: str
    type: BaselineType
    window: DateRange
    draw_count: int
    primary_freq: Dict[int, int]
    secondary_freq: Dict[int, int]
    pair_freq: Dict[str, int]
    hot_primary: Tuple[int, ...]
    cold_primary: Tuple[int, ...]
    never_drawn_primary: Tuple[int, ...]
    hot_secondary: Tuple[int, ...]
    never_drawn_secondary: Tuple[int, ...]
    statistics: Statistics
    smoothing_factor: Optional[float] = None
    created_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "cycle_id": self.cycle_id,
            "type": self.type.value,
            "window": {
                "start_date": self.window.start_date.isoformat(),
                "end_date": self.window.end_date.isoformat(),
            },
            "draw_count": self.draw_count,
            "primary_freq": {str(k): v for k, v in self.primary_freq.items()},
            "secondary_freq": {str(k): v for k, v in self.secondary_freq.items()},
            "pair_freq": dict(self.pair_freq),
            "hot_primary": list(self.hot_primary),
            "cold_primary": list(self.cold_primary),
            "never_drawn_primary": list(self.never_drawn_primary),
            "hot_secondary": list(self.hot_secondary),
            "never_drawn_secondary": list(self.never_drawn_secondary),
            "statistics": {
                "mean": self.statistics.mean,
                "std_dev": self.statistics.std_dev,
                "median": self.statistics.median,
                "min": self.statistics.min,
                "max": self.statistics.max,
                "chi2": self.statistics.chi2,
                "chi2_p": self.statistics.chi2_p,
            },
            "smoothing_factor": self.smoothing_factor,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Baseline":
        return cls(
            id=d["id"],
            cycle_id=d["cycle_id"],
            type=BaselineType(d["type"]),
            window=DateRange(
                start_date=date.fromisoformat(d["window"]["start_date"]),
                end_date=date.fromisoformat(d["window"]["end_date"]),
            ),
            draw_count=d["draw_count"],
            primary_freq={int(k): v for k, v in d["primary_freq"].items()},
            secondary_freq={int(k): v for k, v in d["secondary_freq"].items()},
            pair_freq=dict(d["pair_freq"]),
            hot_primary=tuple(d["hot_primary"]),
            cold_primary=tuple(d["cold_primary"]),
            never_drawn_primary=tuple(d["never_drawn_primary"]),
            hot_secondary=tuple(d["hot_secondary"]),
            never_drawn_secondary=tuple(d["never_drawn_secondary"]),
            statistics=Statistics(**d["statistics"]),
            smoothing_factor=d.get("smoothing_factor"),
            created_at=datetime.fromisoformat(d["created_at"]),
        )


# ---------------------------------------------------------------------------
# Cycle phase states. Each phase carries exactly the baselines it can have.
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CollectingState:
    preliminary: Optional[Baseline] = None
    phase: ClassVar[CyclePhase] = CyclePhase.COLLECTING


@dataclass(frozen=True)
class ActiveState:
    initial: Baseline
    rolling: Baseline
    previous_rolling: Optional[Baseline] = None
    phase: ClassVar[CyclePhase] = CyclePhase.ACTIVE


@dataclass(frozen=True)
class ClosedState:
    phase: ClassVar[CyclePhase] = CyclePhase.CLOSED


CycleState = Union[CollectingState, ActiveState, ClosedState]


@dataclass(frozen=True)
class Cycle:
    id: str
    start_date: date
    state: CycleState = field(default_factory=CollectingState)
    draw_count: int = 0
    name: Optional[str] = None
    end_date: Optional[date] = None
    notes: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.now)
    closed_at: Optional[datetime] = None

    @property
    def phase(self) -> CyclePhase:
        return self.state.phase

    @property
    def is_open(self) -> bool:
        return self.phase != CyclePhase.CLOSED

    @property
    def preliminary(self) -> Optional[Baseline]:
        return self.state.preliminary if isinstance(self.state, CollectingState) else None

    @property
    def initial(self) -> Optional[Baseline]:
        return self.state.initial if isinstance(self.state, ActiveState) else None

    @property
    def rolling(self) -> Optional[Baseline]:
        return self.state.rolling if isinstance(self.state, ActiveState) else None

    @property
    def previous_rolling(self) -> Optional[Baseline]:
        return self.state.previous_rolling if isinstance(self.state, ActiveState) else None

    @property
    def active_baseline(self) -> Optional[Baseline]:
        """Baseline the presentation layer and pick generator should use."""
        return self.rolling or self.preliminary


@dataclass(frozen=True)
class PatternShift:
    id: str
    cycle_id: str
    trigger: ShiftTrigger
    draw_id: str
    severity: ShiftSeverity
    details: Dict[str, Any]
    detected_at: datetime = field(default_factory=datetime.now)
    dismissed: bool = False
    dismissed_at: Optional[datetime] = None
    triggered_new_cycle: bool = False

    def dismiss(self, when: Optional[datetime] = None) -> "PatternShift":
        return replace(self, dismissed=True, dismissed_at=when or datetime.now())

    def mark_triggered_new_cycle(self) -> "PatternShift":
        return replace(self, triggered_new_cycle=True)


@dataclass(frozen=True)
class NumberStats:
    number: int
    ball_type: BallType
    frequency: int
    expected_freq: float
    deviation: float
    percentile: int
    classification: Classification
    trend: Trend = Trend.STABLE
    companions: Tuple[int, ...] = ()


@dataclass(frozen=True)
class Pick:
    id: str
    cycle_id: str
    primary: Tuple[int, ...]
    secondary: int
    target_draw_date: date
    sum_total: int
    odd_count: int
    is_auto_pick: bool = True
    is_preliminary: bool = False
    explanation: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.now)
    match_count: Optional[int] = None
    secondary_match: Optional[bool] = None
    evaluated_at: Optional[datetime] = None

    @property
    def is_evaluated(self) -> bool:
        return self.evaluated_at is not None


def sort_chronologically(draws: List[Draw]) -> List[Draw]:
    return sorted(draws, key=lambda d: (d.draw_date, d.id))
