from __future__ import annotations

import math
from typing import Any, Dict, Iterable, List

import numpy as np

from cyclewatch.models import PRIMARY_MAX, SECONDARY_MAX, Draw

RANGES = {
    "primary": {"min": 1, "max": PRIMARY_MAX},
    "secondary": {"min": 1, "max": SECONDARY_MAX},
}

def freq_counts(nums: Iterable[int], min_n: int, max_n: int) -> Dict[int, int]:
    """Count each number in [min_n, max_n]; every key starts at 0, out of range values are ignored."""
    counts = {n: 0 for n in range(min_n, max_n + 1)}
    for n in nums:
        if min_n <= n <= max_n:
            counts[n] += 1
    return counts

def compute_frequency(draws: List[Draw], number_space_size: int, secondary: bool = False) -> Dict[int, int]:
    if secondary:
        nums: Iterable[int] = (d.secondary for d in draws)
    else:
        nums = (n for d in draws for n in d.primary)
    return freq_counts(nums, 1, number_space_size)

def primary_frequency(draws: List[Draw]) -> Dict[int, int]:
    return compute_frequency(draws, RANGES["primary"]["max"])

def secondary_frequency(draws: List[Draw]) -> Dict[int, int]:
    return compute_frequency(draws, RANGES["secondary"]["max"], secondary=True)

def top_by_percentile(freq: Dict[int, int], percentile: int) -> List[int]:
    """
    Top (100 - percentile)% of numbers by count, returned ascending.
    percentile=80 returns the top 20%.

    Ties at the cutoff are broken by ascending number so the result does not
    depend on dict or sort order.
    """
    if not freq:
        return []
    ranked = sorted(freq.items(), key=lambda kv: (-kv[1], kv[0]))
    cutoff = math.ceil(len(freq) * (100 - percentile) / 100)
    return sorted(n for n, _ in ranked[:cutoff])

def bottom_by_percentile(freq: Dict[int, int], percentile: int) -> List[int]:
    """Bottom percentile% of numbers by count, ascending-number tie-break, returned ascending."""
    if not freq:
        return []
    ranked = sorted(freq.items(), key=lambda kv: (kv[1], kv[0]))
    cutoff = math.ceil(len(freq) * percentile / 100)
    return sorted(n for n, _ in ranked[:cutoff])

def never_drawn(freq: Dict[int, int], max_number: int) -> List[int]:
    return [n for n in range(1, max_number + 1) if freq.get(n) == 0]

def chi_square_uniform(freq: Dict[int, int]) -> Dict[str, Any]:
    """
    Goodness of fit of a frequency map against an even spread.

    p uses the Wilson-Hilferty normal approximation with len(freq) - 1 degrees
    of freedom. Both values are None when there is nothing to test.
    """
    observed = np.array(list(freq.values()), dtype=float)
    if observed.size < 2 or observed.sum() == 0:
        return {"chi2": None, "p": None}
    expected = observed.sum() / observed.size
    chi2 = float(np.sum((observed - expected) ** 2) / expected)

    dof = observed.size - 1
    spread = 2.0 / (9 * dof)
    z = ((chi2 / dof) ** (1.0 / 3) - (1 - spread)) / math.sqrt(spread)
    return {"chi2": chi2, "p": 0.5 * math.erfc(z / math.sqrt(2))}
