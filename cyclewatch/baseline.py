"""
Baseline construction.

Three kinds of baseline share one builder:

  Initial      first 20 draws of a cycle, built once and locked
  Preliminary  1-19 draws, rebuilt on every draw while the cycle is collecting
  Rolling      latest 20 draws, rebuilt every 5 draws after draw 20 and
               optionally smoothed against the previous rolling baseline
"""

from __future__ import annotations

import logging
import math
import uuid
from datetime import datetime
from typing import Dict, List, Optional

import numpy as np

from cyclewatch import audit
from cyclewatch.config import SMOOTHING_FACTORS, SmoothingLevel
from cyclewatch.cooccurrence import compute_pairs
from cyclewatch.errors import EmptyInput, InvalidWindow
from cyclewatch.models import (
    PRIMARY_MAX,
    SECONDARY_MAX,
    WINDOW_SIZE,
    Baseline,
    BaselineType,
    DateRange,
    Draw,
    Statistics,
    sort_chronologically,
)

logger = logging.getLogger(__name__)

HOT_PERCENTILE = 80   # top 20%
COLD_PERCENTILE = 20  # bottom 20%
RECALC_EVERY = 5


def _round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def calculate_statistics(freq: Dict[int, int]) -> Statistics:
    """Mean, population std dev, median, min, max and chi-square fit over the frequency values."""
    if not freq:
        return Statistics(mean=0.0, std_dev=0.0, median=0.0, min=0, max=0)
    values = np.array(sorted(freq.values()), dtype=float)
    fit = audit.chi_square_uniform(freq)
    return Statistics(
        mean=float(values.mean()),
        std_dev=float(values.std()),  # ddof=0, no Bessel correction
        median=float(np.median(values)),
        min=int(values[0]),
        max=int(values[-1]),
        chi2=fit["chi2"],
        chi2_p=fit["p"],
    )


def smooth_frequencies(new_freq: Dict[int, int], prev_freq: Dict[int, int], factor: float) -> Dict[int, int]:
    """smoothed = round(prev * factor + new * (1 - factor)), per number."""
    return {
        n: _round_half_up(prev_freq.get(n, 0) * factor + new * (1 - factor))
        for n, new in new_freq.items()
    }


def should_recalculate_rolling(draw_count: int) -> bool:
    """True at draws 25, 30, 35, ...; never during the first 20."""
    if draw_count <= WINDOW_SIZE:
        return False
    return (draw_count - WINDOW_SIZE) % RECALC_EVERY == 0


class BaselineCalculator:

    def create_initial(self, cycle_id: str, draws: List[Draw]) -> Baseline:
        if not draws:
            raise EmptyInput(BaselineType.INITIAL.value, expected=f"exactly {WINDOW_SIZE}")
        if len(draws) != WINDOW_SIZE:
            raise InvalidWindow(BaselineType.INITIAL.value, len(draws), f"exactly {WINDOW_SIZE}")
        return self._build(cycle_id, sort_chronologically(draws), BaselineType.INITIAL)

    def create_preliminary(self, cycle_id: str, draws: List[Draw]) -> Baseline:
        if not draws:
            raise EmptyInput(BaselineType.PRELIMINARY.value, expected=f"1-{WINDOW_SIZE - 1}")
        if len(draws) >= WINDOW_SIZE:
            raise InvalidWindow(BaselineType.PRELIMINARY.value, len(draws), f"1-{WINDOW_SIZE - 1}")
        return self._build(cycle_id, sort_chronologically(draws), BaselineType.PRELIMINARY)

    def create_rolling(
        self,
        cycle_id: str,
        draws: List[Draw],
        previous_rolling: Optional[Baseline] = None,
        smoothing: SmoothingLevel = SmoothingLevel.NONE,
    ) -> Baseline:
        if not draws:
            raise EmptyInput(BaselineType.ROLLING.value, expected=f"at least {WINDOW_SIZE}")
        if len(draws) < WINDOW_SIZE:
            raise InvalidWindow(BaselineType.ROLLING.value, len(draws), f"at least {WINDOW_SIZE}")

        window = sort_chronologically(draws)[-WINDOW_SIZE:]
        primary = audit.primary_frequency(window)
        secondary = audit.secondary_frequency(window)

        factor: Optional[float] = None
        if previous_rolling is not None and smoothing != SmoothingLevel.NONE:
            factor = SMOOTHING_FACTORS[smoothing]
            primary = smooth_frequencies(primary, previous_rolling.primary_freq, factor)
            secondary = smooth_frequencies(secondary, previous_rolling.secondary_freq, factor)
            logger.debug("[BASELINE] Smoothed rolling frequencies with factor %.2f against %s",
                         factor, previous_rolling.id)

        return self._build(
            cycle_id,
            window,
            BaselineType.ROLLING,
            primary_freq=primary,
            secondary_freq=secondary,
            smoothing_factor=factor,
        )

    def _build(
        self,
        cycle_id: str,
        draws: List[Draw],
        baseline_type: BaselineType,
        primary_freq: Optional[Dict[int, int]] = None,
        secondary_freq: Optional[Dict[int, int]] = None,
        smoothing_factor: Optional[float] = None,
    ) -> Baseline:
        # draws are chronological here
        if primary_freq is None:
            primary_freq = audit.primary_frequency(draws)
        if secondary_freq is None:
            secondary_freq = audit.secondary_frequency(draws)

        baseline = Baseline(
            id=str(uuid.uuid4()),
            cycle_id=cycle_id,
            type=baseline_type,
            window=DateRange(start_date=draws[0].draw_date, end_date=draws[-1].draw_date),
            draw_count=len(draws),
            primary_freq=primary_freq,
            secondary_freq=secondary_freq,
            pair_freq=compute_pairs(draws),
            hot_primary=tuple(audit.top_by_percentile(primary_freq, HOT_PERCENTILE)),
            cold_primary=tuple(audit.bottom_by_percentile(primary_freq, COLD_PERCENTILE)),
            never_drawn_primary=tuple(audit.never_drawn(primary_freq, PRIMARY_MAX)),
            hot_secondary=tuple(audit.top_by_percentile(secondary_freq, HOT_PERCENTILE)),
            never_drawn_secondary=tuple(audit.never_drawn(secondary_freq, SECONDARY_MAX)),
            statistics=calculate_statistics(primary_freq),
            smoothing_factor=smoothing_factor,
            created_at=datetime.now(),
        )
        logger.info("[BASELINE] %s baseline %s: %d draws (%s to %s)",
                    baseline_type.value, baseline.id, baseline.draw_count,
                    baseline.window.start_date, baseline.window.end_date)
        return baseline

    calculate_statistics = staticmethod(calculate_statistics)
    should_recalculate_rolling = staticmethod(should_recalculate_rolling)
