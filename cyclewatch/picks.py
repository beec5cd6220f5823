"""
Pick Generator
Builds a recommended selection from a baseline's frequency and companion data.
NOT predictions - weighted sampling over historical pattern analysis.
"""

from __future__ import annotations

import logging
import random
import uuid
from datetime import date, datetime
from typing import Dict, List, Optional

from cyclewatch.cooccurrence import top_companions
from cyclewatch.models import (
    PRIMARY_MAX,
    PRIMARY_PER_DRAW,
    SECONDARY_MAX,
    Baseline,
    BaselineType,
    Pick,
)

logger = logging.getLogger(__name__)

BASELINE_LABELS = {
    BaselineType.INITIAL: "initial",
    BaselineType.ROLLING: "rolling",
    BaselineType.PRELIMINARY: "preliminary",
}

DISCLAIMER = "Historical frequency only, not a prediction. Every number has equal odds in each draw."


class PickGenerator:

    def __init__(self, rng: Optional[random.Random] = None,
                 frequency_weight: float = 0.6, companion_weight: float = 0.4):
        self.rng = rng or random.Random()
        self.frequency_weight = frequency_weight
        self.companion_weight = companion_weight

    def score_numbers(self, baseline: Baseline) -> Dict[int, float]:
        """
        score = 0.6 * freq/maxFreq + 0.4 * (avg freq of top-5 companions)/maxFreq

        With no frequency data at all every number scores 1.0.
        """
        max_freq = float(baseline.statistics.max)
        if max_freq == 0:
            return {n: 1.0 for n in range(1, PRIMARY_MAX + 1)}

        scores = {}
        for number, freq in baseline.primary_freq.items():
            companions = top_companions(number, baseline.pair_freq, 5)
            companion_score = 0.0
            if companions:
                avg = sum(baseline.primary_freq.get(c, 0) for c in companions) / len(companions)
                companion_score = avg / max_freq
            scores[number] = (freq / max_freq) * self.frequency_weight + companion_score * self.companion_weight
        return scores

    def select_primary(self, scores: Dict[int, float], count: int = PRIMARY_PER_DRAW) -> List[int]:
        """Weighted sampling without replacement; uniform fill once the remaining weight is gone."""
        remaining = dict(sorted(scores.items()))
        selected: List[int] = []

        while len(selected) < count and remaining:
            total = sum(remaining.values())
            if total <= 0:
                fill = self.rng.sample(sorted(remaining), min(count - len(selected), len(remaining)))
                selected.extend(fill)
                break

            r = self.rng.random() * total
            winner = None
            for number, score in remaining.items():
                if score <= 0:
                    continue
                winner = number
                r -= score
                if r < 0:
                    break
            # float drift can leave r at ~0 after the loop; winner is then the last scored number
            selected.append(winner)
            del remaining[winner]

        return sorted(selected)

    def select_secondary(self, secondary_freq: Dict[int, int]) -> int:
        total = sum(secondary_freq.values())
        if total == 0:
            return self.rng.randint(1, SECONDARY_MAX)

        r = self.rng.random() * total
        chosen = None
        for number, freq in sorted(secondary_freq.items()):
            if freq <= 0:
                continue
            chosen = number
            r -= freq
            if r < 0:
                break
        return chosen

    def generate(self, cycle_id: str, baseline: Baseline, target_draw_date: date,
                 is_preliminary: bool = False) -> Pick:
        primary = self.select_primary(self.score_numbers(baseline))
        secondary = self.select_secondary(baseline.secondary_freq)

        pick = Pick(
            id=str(uuid.uuid4()),
            cycle_id=cycle_id,
            primary=tuple(primary),
            secondary=secondary,
            target_draw_date=target_draw_date,
            sum_total=sum(primary),
            odd_count=sum(1 for n in primary if n % 2),
            is_auto_pick=True,
            is_preliminary=is_preliminary or baseline.type == BaselineType.PRELIMINARY,
            explanation=self.explain(primary, secondary, baseline),
            created_at=datetime.now(),
        )
        logger.info("[PICKS] %s + %d for %s", list(pick.primary), pick.secondary, target_draw_date)
        return pick

    @staticmethod
    def explain(primary: List[int], secondary: int, baseline: Baseline) -> str:
        hot = set(baseline.hot_primary)
        hot_count = sum(1 for n in primary if n in hot)
        avg_freq = sum(baseline.primary_freq.get(n, 0) for n in primary) / len(primary)
        return (f"Auto-pick based on {BASELINE_LABELS[baseline.type]} baseline: "
                f"{hot_count} hot numbers, average frequency: {avg_freq:.1f}. "
                f"Secondary {secondary} weighted by its frequency. {DISCLAIMER}")
