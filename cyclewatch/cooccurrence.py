from __future__ import annotations

from collections import Counter
from itertools import combinations
from typing import Dict, List, Tuple

from cyclewatch.models import Draw


def pair_key(a: int, b: int) -> str:
    """Order-independent pair key: pair_key(34, 12) == "12-34"."""
    lo, hi = (a, b) if a < b else (b, a)
    return f"{lo}-{hi}"


def split_key(key: str) -> Tuple[int, int]:
    lo, hi = key.split("-")
    return int(lo), int(hi)


def compute_pairs(draws: List[Draw]) -> Dict[str, int]:
    """Count every unordered primary pair, C(5,2) = 10 per draw."""
    counter: Counter = Counter()
    for draw in draws:
        for a, b in combinations(draw.primary, 2):
            counter[pair_key(a, b)] += 1
    return dict(counter)


def pair_frequency(a: int, b: int, pair_freq: Dict[str, int]) -> int:
    return pair_freq.get(pair_key(a, b), 0)


def top_companions(number: int, pair_freq: Dict[str, int], k: int) -> List[int]:
    """Numbers that most often share a draw with `number`, highest count first."""
    companions = []
    for key, count in pair_freq.items():
        lo, hi = split_key(key)
        if lo == number:
            companions.append((hi, count))
        elif hi == number:
            companions.append((lo, count))
    companions.sort(key=lambda c: (-c[1], c[0]))
    return [n for n, _ in companions[:k]]


def top_pairs(pair_freq: Dict[str, int], k: int) -> List[Tuple[str, int]]:
    ranked = sorted(pair_freq.items(), key=lambda kv: (-kv[1], split_key(kv[0])))
    return ranked[:k]
