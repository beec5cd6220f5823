import pytest

from cyclewatch.baseline import BaselineCalculator
from cyclewatch.deviation import classify, deviation, number_stats, percentile, secondary_stats, trend
from cyclewatch.models import BallType, Classification, Trend

from conftest import baseline_from_freq


@pytest.mark.parametrize("dev, expected", [
    (3.0, Classification.HOT),
    (1.5001, Classification.HOT),
    (1.5, Classification.WARM),
    (0.5, Classification.WARM),
    (0.4999, Classification.STABLE),
    (-0.5, Classification.STABLE),
    (-0.5001, Classification.COOL),
    (-1.5, Classification.COOL),
    (-1.5001, Classification.COLD),
    (-4.0, Classification.COLD),
])
def test_classification_boundaries(dev, expected):
    assert classify(dev) == expected


def test_deviation_without_spread_is_zero():
    assert deviation(7, 7.0, 0.0) == 0.0
    assert deviation(9, 5.0, 2.0) == pytest.approx(2.0)
    assert classify(deviation(7, 7.0, 0.0)) == Classification.STABLE


def test_percentile():
    freqs = {1: 0, 2: 0, 3: 5, 4: 10}
    assert percentile(10, freqs) == 75
    assert percentile(0, freqs) == 1
    # 1 of 8 below -> 12.5 rounds up
    assert percentile(1, {n: (0 if n == 1 else 1) for n in range(1, 9)}) == 13
    assert percentile(3, {}) == 50


def test_trend():
    previous = baseline_from_freq({1: 5, 2: 5, 3: 5})
    current = baseline_from_freq({1: 8, 2: 7, 3: 2})
    assert trend(1, current, previous) == Trend.RISING
    assert trend(2, current, previous) == Trend.STABLE
    assert trend(3, current, previous) == Trend.FALLING
    assert trend(1, current, None) == Trend.STABLE


def test_number_stats_from_identical_draws(identical_draws):
    b0 = BaselineCalculator().create_initial("c1", identical_draws)
    stats = number_stats(b0)

    assert len(stats) == 69
    assert [s.number for s in stats[:5]] == [1, 2, 3, 4, 5]
    first = stats[0]
    assert first.ball_type == BallType.PRIMARY
    assert first.frequency == 20
    assert first.classification == Classification.HOT
    assert first.companions == (2, 3, 4, 5)
    assert first.expected_freq == pytest.approx(100 / 69)
    assert first.trend == Trend.STABLE

    rest = {s.number: s for s in stats[5:]}
    assert all(s.classification == Classification.STABLE for s in rest.values())
    assert rest[6].companions == ()
    assert rest[6].percentile == 1


def test_number_stats_trend_against_previous():
    previous = baseline_from_freq({10: 1})
    current = baseline_from_freq({10: 6})
    by_number = {s.number: s for s in number_stats(current, previous)}
    assert by_number[10].trend == Trend.RISING
    assert by_number[11].trend == Trend.STABLE


def test_secondary_stats(identical_draws):
    b0 = BaselineCalculator().create_initial("c1", identical_draws)
    stats = secondary_stats(b0)
    assert len(stats) == 26
    assert stats[0].number == 7
    assert stats[0].ball_type == BallType.SECONDARY
    assert stats[0].classification == Classification.HOT
    assert stats[0].expected_freq == pytest.approx(20 / 26)
