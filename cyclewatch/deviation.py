from __future__ import annotations

import math
from typing import Dict, List, Optional

from cyclewatch.baseline import calculate_statistics
from cyclewatch.cooccurrence import top_companions
from cyclewatch.models import (
    PRIMARY_MAX,
    PRIMARY_PER_DRAW,
    SECONDARY_MAX,
    BallType,
    Baseline,
    Classification,
    NumberStats,
    Trend,
)

# (lower bound, inclusive?, class), checked top to bottom; anything below is COLD.
CLASS_THRESHOLDS = [
    (1.5, False, Classification.HOT),
    (0.5, True, Classification.WARM),
    (-0.5, True, Classification.STABLE),
    (-1.5, True, Classification.COOL),
]
TREND_DELTA = 2
COMPANION_COUNT = 5


def deviation(frequency: float, mean: float, std_dev: float) -> float:
    """z-score of a frequency; 0 for a distribution with no spread."""
    if std_dev == 0:
        return 0.0
    return (frequency - mean) / std_dev


def classify(dev: float) -> Classification:
    for bound, inclusive, cls in CLASS_THRESHOLDS:
        if dev > bound or (inclusive and dev == bound):
            return cls
    return Classification.COLD


def percentile(frequency: int, all_freqs: Dict[int, int]) -> int:
    """Share of values strictly below `frequency`, as 1-100."""
    if not all_freqs:
        return 50
    less = sum(1 for v in all_freqs.values() if v < frequency)
    rank = int(math.floor(100.0 * less / len(all_freqs) + 0.5))
    return min(100, max(1, rank))


def trend(number: int, current: Baseline, previous: Optional[Baseline]) -> Trend:
    if previous is None:
        return Trend.STABLE
    diff = current.primary_freq.get(number, 0) - previous.primary_freq.get(number, 0)
    if diff > TREND_DELTA:
        return Trend.RISING
    if diff < -TREND_DELTA:
        return Trend.FALLING
    return Trend.STABLE


def number_stats(baseline: Baseline, previous: Optional[Baseline] = None) -> List[NumberStats]:
    """
    Derived view of every primary number in a baseline, most frequent first.

    Nothing here is persisted; call again whenever the baseline changes.
    Pass the prior baseline to get rising/falling trends.
    """
    mean = baseline.statistics.mean
    std_dev = baseline.statistics.std_dev
    expected = baseline.draw_count * PRIMARY_PER_DRAW / float(PRIMARY_MAX)

    stats = []
    for number, freq in baseline.primary_freq.items():
        dev = deviation(freq, mean, std_dev)
        stats.append(NumberStats(
            number=number,
            ball_type=BallType.PRIMARY,
            frequency=freq,
            expected_freq=expected,
            deviation=dev,
            percentile=percentile(freq, baseline.primary_freq),
            classification=classify(dev),
            trend=trend(number, baseline, previous),
            companions=tuple(top_companions(number, baseline.pair_freq, COMPANION_COUNT)),
        ))
    stats.sort(key=lambda s: (-s.frequency, s.number))
    return stats


def secondary_stats(baseline: Baseline) -> List[NumberStats]:
    summary = calculate_statistics(baseline.secondary_freq)
    expected = baseline.draw_count / float(SECONDARY_MAX)

    stats = []
    for number, freq in baseline.secondary_freq.items():
        dev = deviation(freq, summary.mean, summary.std_dev)
        stats.append(NumberStats(
            number=number,
            ball_type=BallType.SECONDARY,
            frequency=freq,
            expected_freq=expected,
            deviation=dev,
            percentile=percentile(freq, baseline.secondary_freq),
            classification=classify(dev),
        ))
    stats.sort(key=lambda s: (-s.frequency, s.number))
    return stats

