import math

import pytest

from cyclewatch import audit
from cyclewatch.baseline import (
    BaselineCalculator,
    calculate_statistics,
    should_recalculate_rolling,
    smooth_frequencies,
)
from cyclewatch.config import SmoothingLevel
from cyclewatch.errors import EmptyInput, InvalidWindow
from cyclewatch.models import BaselineType

from conftest import baseline_from_freq, make_draw, make_draws


@pytest.fixture
def calc():
    return BaselineCalculator()


def test_initial_from_identical_draws(calc, identical_draws):
    b0 = calc.create_initial("c1", identical_draws)

    assert b0.type == BaselineType.INITIAL
    assert b0.draw_count == 20
    assert b0.smoothing_factor is None
    assert all(b0.primary_freq[n] == 20 for n in range(1, 6))
    assert all(b0.primary_freq[n] == 0 for n in range(6, 70))
    # 14 hot slots: the five drawn numbers, then zero-count ties by ascending number
    assert b0.hot_primary == tuple(range(1, 15))
    assert b0.cold_primary == tuple(range(6, 20))
    assert b0.never_drawn_primary == tuple(range(6, 70))
    assert b0.hot_secondary == (1, 2, 3, 4, 5, 7)
    assert 7 not in b0.never_drawn_secondary
    assert b0.pair_freq["1-2"] == 20
    assert len(b0.pair_freq) == 10
    assert b0.statistics.mean == pytest.approx(100 / 69)
    assert b0.statistics.median == 0
    assert (b0.statistics.min, b0.statistics.max) == (0, 20)
    assert b0.statistics.chi2 > 1000
    assert b0.statistics.chi2_p < 1e-6
    assert b0.window.start_date == identical_draws[0].draw_date
    assert b0.window.end_date == identical_draws[-1].draw_date


@pytest.mark.parametrize("n", [19, 21])
def test_initial_requires_exactly_twenty(calc, n):
    with pytest.raises(InvalidWindow):
        calc.create_initial("c1", make_draws(n))


def test_empty_input_is_an_invalid_window(calc):
    with pytest.raises(EmptyInput):
        calc.create_preliminary("c1", [])
    with pytest.raises(InvalidWindow):
        calc.create_rolling("c1", [])


@pytest.mark.parametrize("n", [1, 7, 19])
def test_preliminary_window(calc, n):
    b = calc.create_preliminary("c1", make_draws(n))
    assert b.type == BaselineType.PRELIMINARY
    assert b.draw_count == n
    assert sum(b.primary_freq.values()) == 5 * n


@pytest.mark.parametrize("n", [20, 25])
def test_preliminary_rejects_full_windows(calc, n):
    with pytest.raises(InvalidWindow) as exc:
        calc.create_preliminary("c1", make_draws(n))
    assert exc.value.got == n


def test_rolling_requires_twenty(calc):
    with pytest.raises(InvalidWindow) as exc:
        calc.create_rolling("c1", make_draws(19))
    assert exc.value.got == 19


def test_rolling_uses_latest_twenty(calc, random_draws):
    rolling = calc.create_rolling("c1", list(reversed(random_draws)))
    assert rolling.draw_count == 20
    assert rolling.primary_freq == audit.primary_frequency(random_draws[-20:])
    assert rolling.window.start_date == random_draws[10].draw_date
    assert rolling.window.end_date == random_draws[-1].draw_date


def test_no_smoothing_matches_raw_frequencies(calc, random_draws):
    previous = baseline_from_freq({n: 9 for n in range(1, 70)})
    rolling = calc.create_rolling("c1", random_draws, previous, SmoothingLevel.NONE)

    assert rolling.primary_freq == audit.primary_frequency(random_draws[-20:])
    assert rolling.secondary_freq == audit.secondary_frequency(random_draws[-20:])
    assert rolling.smoothing_factor is None


def test_first_rolling_is_never_smoothed(calc, random_draws):
    rolling = calc.create_rolling("c1", random_draws, None, SmoothingLevel.HEAVY)
    assert rolling.smoothing_factor is None
    assert rolling.primary_freq == audit.primary_frequency(random_draws[-20:])


def test_smoothed_rolling_derives_sets_from_smoothed_values(calc, identical_draws):
    previous = baseline_from_freq({60: 20}, secondary_freq={26: 20})
    rolling = calc.create_rolling("c1", identical_draws, previous, SmoothingLevel.HEAVY)

    assert rolling.smoothing_factor == 0.5
    assert rolling.primary_freq[1] == 10
    assert rolling.primary_freq[60] == 10
    assert rolling.secondary_freq[7] == 10
    assert rolling.secondary_freq[26] == 10
    assert 60 in rolling.hot_primary
    assert 60 not in rolling.never_drawn_primary
    assert rolling.statistics.max == 10
    # pairs come from the raw window
    assert rolling.pair_freq["1-2"] == 20


def test_smooth_frequencies():
    assert smooth_frequencies({1: 10, 2: 0}, {1: 0, 2: 10}, 0.7) == {1: 3, 2: 7}
    # halves round up
    assert smooth_frequencies({1: 3}, {1: 2}, 0.5) == {1: 3}
    assert smooth_frequencies({1: 4}, {}, 0.85) == {1: 1}


def test_statistics():
    stats = calculate_statistics({1: 1, 2: 2, 3: 3, 4: 4})
    assert stats.mean == pytest.approx(2.5)
    assert stats.std_dev == pytest.approx(math.sqrt(1.25))
    assert stats.median == pytest.approx(2.5)
    assert (stats.min, stats.max) == (1, 4)
    # expected 2.5 each: (2.25 + 0.25 + 0.25 + 2.25) / 2.5
    assert stats.chi2 == pytest.approx(2.0)

    odd = calculate_statistics({1: 9, 2: 1, 3: 4})
    assert odd.median == 4


def test_statistics_of_empty_map():
    stats = calculate_statistics({})
    assert (stats.mean, stats.std_dev, stats.median, stats.min, stats.max) == (0.0, 0.0, 0.0, 0, 0)
    assert stats.chi2 is None and stats.chi2_p is None


def test_recalculation_cadence():
    assert [should_recalculate_rolling(n) for n in range(20, 26)] == [False] * 5 + [True]
    assert should_recalculate_rolling(30)
    assert not should_recalculate_rolling(5)
    assert not should_recalculate_rolling(0)


def test_rolling_is_idempotent(calc, random_draws):
    previous = calc.create_rolling("c1", random_draws[:20])
    a = calc.create_rolling("c1", random_draws[:25], previous, SmoothingLevel.NORMAL)
    b = calc.create_rolling("c1", random_draws[:25], previous, SmoothingLevel.NORMAL)
    assert a.primary_freq == b.primary_freq
    assert a.hot_primary == b.hot_primary


def test_out_of_order_draws_build_the_same_window(calc):
    draws = [make_draw(i, [i + 1, i + 2, i + 3, i + 4, i + 5]) for i in range(20)]
    assert calc.create_initial("c1", draws[::-1]).primary_freq == calc.create_initial("c1", draws).primary_freq
