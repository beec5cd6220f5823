import random
import uuid
from datetime import date, timedelta

import pytest

from cyclewatch import audit
from cyclewatch.baseline import calculate_statistics
from cyclewatch.models import (
    PRIMARY_MAX,
    SECONDARY_MAX,
    Baseline,
    BaselineType,
    DateRange,
    Draw,
)

START = date(2024, 1, 1)


def make_draw(day, primary, secondary=7):
    return Draw(draw_date=START + timedelta(days=3 * day), primary=primary, secondary=secondary)


def make_draws(n, seed=1, first_day=0):
    rng = random.Random(seed)
    return [
        make_draw(first_day + i, rng.sample(range(1, PRIMARY_MAX + 1), 5), rng.randint(1, SECONDARY_MAX))
        for i in range(n)
    ]


def baseline_from_freq(primary_freq, pair_freq=None, secondary_freq=None,
                       btype=BaselineType.ROLLING, cycle_id="cycle-1", draw_count=20):
    primary = {n: primary_freq.get(n, 0) for n in range(1, PRIMARY_MAX + 1)}
    secondary = {n: (secondary_freq or {}).get(n, 0) for n in range(1, SECONDARY_MAX + 1)}
    return Baseline(
        id=str(uuid.uuid4()),
        cycle_id=cycle_id,
        type=btype,
        window=DateRange(START, START + timedelta(days=57)),
        draw_count=draw_count,
        primary_freq=primary,
        secondary_freq=secondary,
        pair_freq=dict(pair_freq or {}),
        hot_primary=tuple(audit.top_by_percentile(primary, 80)),
        cold_primary=tuple(audit.bottom_by_percentile(primary, 20)),
        never_drawn_primary=tuple(audit.never_drawn(primary, PRIMARY_MAX)),
        hot_secondary=tuple(audit.top_by_percentile(secondary, 80)),
        never_drawn_secondary=tuple(audit.never_drawn(secondary, SECONDARY_MAX)),
        statistics=calculate_statistics(primary),
    )


@pytest.fixture
def random_draws():
    return make_draws(30, seed=42)


@pytest.fixture
def identical_draws():
    return [make_draw(i, [1, 2, 3, 4, 5], 7) for i in range(20)]
