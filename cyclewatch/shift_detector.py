"""
PATTERN SHIFT DETECTION

Compares the locked initial baseline (B0) with the current rolling baseline
(Bn), and Bn with the rolling baseline it replaced (Bprev). Five independent
rules; each yields at most one PatternShift, so one check yields 0-5 alerts.
"""

from __future__ import annotations

import logging
import math
import uuid
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from cyclewatch.config import Settings
from cyclewatch.cooccurrence import top_pairs
from cyclewatch.deviation import deviation
from cyclewatch.errors import MissingReference
from cyclewatch.models import PRIMARY_MAX, Baseline, PatternShift, ShiftSeverity, ShiftTrigger

logger = logging.getLogger(__name__)

SEVERITY_LEVELS = {
    ShiftSeverity.LOW: {
        "label": "Minor shift",
        "color": "#fbbf24",
        "action": "Monitor",
    },
    ShiftSeverity.MEDIUM: {
        "label": "Pattern shift",
        "color": "#ff8c00",
        "action": "Review cycle baselines",
    },
    ShiftSeverity.HIGH: {
        "label": "MAJOR PATTERN SHIFT",
        "color": "#ff4444",
        "action": "Consider starting a new cycle",
    },
}

TRIGGER_LABELS = {
    ShiftTrigger.LONG_TERM_DRIFT: "Long-term drift",
    ShiftTrigger.SHORT_TERM_SURGE: "Short-term surge",
    ShiftTrigger.BASELINE_DIVERGENCE: "Baseline divergence",
    ShiftTrigger.CORRELATION_BREAKDOWN: "Correlation breakdown",
    ShiftTrigger.NEW_DOMINANCE: "New dominance",
}

DRIFT_MIN_COUNT = 5
SURGE_MIN_COUNT = 3
DIVERGENCE_OVERLAP_PCT = 50.0
DIVERGENCE_HIGH_PCT = 30.0
TOP_PAIR_COUNT = 5
BROKEN_PAIR_RATIO = 0.25
BROKEN_MIN_COUNT = 3
DOMINANCE_REFERENCE_SHARE = 0.3
DEFAULT_SURGE_THRESHOLD = 2.0

Finding = Tuple[ShiftTrigger, ShiftSeverity, Dict[str, Any]]


def hot_overlap(hot_a: Iterable[int], hot_b: Iterable[int]) -> Optional[float]:
    """Jaccard overlap of two hot sets as a percentage; None when both are empty."""
    a, b = set(hot_a), set(hot_b)
    union = a | b
    if not union:
        return None
    return len(a & b) / len(union) * 100


def _ranked(freq: Dict[int, int]) -> List[Tuple[int, int]]:
    return sorted(freq.items(), key=lambda kv: (-kv[1], kv[0]))


def detect_long_term_drift(b0: Baseline, bn: Baseline) -> Optional[Finding]:
    """5+ of B0's hot numbers now sit below Bn's mean frequency."""
    mean = bn.statistics.mean
    drifted = [n for n in b0.hot_primary if bn.primary_freq.get(n, 0) < mean]
    if len(drifted) < DRIFT_MIN_COUNT:
        return None

    if len(drifted) >= 8:
        severity = ShiftSeverity.HIGH
    elif len(drifted) >= 6:
        severity = ShiftSeverity.MEDIUM
    else:
        severity = ShiftSeverity.LOW
    return ShiftTrigger.LONG_TERM_DRIFT, severity, {
        "drifted_count": len(drifted),
        "drifted_numbers": drifted,
        "mean_frequency": mean,
    }


def detect_short_term_surge(bn: Baseline, previous: Baseline,
                            threshold: float = DEFAULT_SURGE_THRESHOLD) -> Optional[Finding]:
    """3+ numbers whose deviation jumped by more than `threshold` since the previous rolling baseline."""
    jumps: Dict[int, float] = {}
    for number, freq in bn.primary_freq.items():
        now = deviation(freq, bn.statistics.mean, bn.statistics.std_dev)
        before = deviation(previous.primary_freq.get(number, 0),
                           previous.statistics.mean, previous.statistics.std_dev)
        jump = now - before
        if jump > threshold:
            jumps[number] = round(jump, 4)

    if len(jumps) < SURGE_MIN_COUNT:
        return None
    severity = ShiftSeverity.HIGH if len(jumps) >= 5 else ShiftSeverity.MEDIUM
    return ShiftTrigger.SHORT_TERM_SURGE, severity, {
        "surged_count": len(jumps),
        "surged_numbers": sorted(jumps),
        "deviation_jumps": {str(n): j for n, j in sorted(jumps.items())},
        "threshold": threshold,
    }


def detect_baseline_divergence(b0: Baseline, bn: Baseline) -> Optional[Finding]:
    overlap = hot_overlap(b0.hot_primary, bn.hot_primary)
    if overlap is None or overlap >= DIVERGENCE_OVERLAP_PCT:
        return None
    severity = ShiftSeverity.HIGH if overlap < DIVERGENCE_HIGH_PCT else ShiftSeverity.MEDIUM
    return ShiftTrigger.BASELINE_DIVERGENCE, severity, {
        "overlap_percentage": round(overlap, 2),
        "b0_hot": list(b0.hot_primary),
        "bn_hot": list(bn.hot_primary),
        "common_hot": sorted(set(b0.hot_primary) & set(bn.hot_primary)),
    }


def detect_correlation_breakdown(b0: Baseline, bn: Baseline) -> Optional[Finding]:
    """B0's five strongest pairs have mostly stopped co-occurring in Bn."""
    if len(b0.pair_freq) < TOP_PAIR_COUNT:
        return None
    top = top_pairs(b0.pair_freq, TOP_PAIR_COUNT)
    broken = [key for key, count in top if bn.pair_freq.get(key, 0) < count * BROKEN_PAIR_RATIO]
    if len(broken) < BROKEN_MIN_COUNT:
        return None
    severity = ShiftSeverity.HIGH if len(broken) >= 4 else ShiftSeverity.MEDIUM
    return ShiftTrigger.CORRELATION_BREAKDOWN, severity, {
        "broken_count": len(broken),
        "broken_pairs": broken,
        "b0_top_pairs": [key for key, _ in top],
    }


def detect_new_dominance(b0: Baseline, bn: Baseline) -> Optional[Finding]:
    """One of Bn's two most frequent numbers was outside B0's top 30%."""
    reference_count = math.ceil(PRIMARY_MAX * DOMINANCE_REFERENCE_SHARE)
    reference = {n for n, _ in _ranked(b0.primary_freq)[:reference_count]}
    bn_top2 = _ranked(bn.primary_freq)[:2]
    if len(bn_top2) < 2:
        return None

    newcomers = [n for n, _ in bn_top2 if n not in reference]
    if not newcomers:
        return None
    severity = ShiftSeverity.HIGH if len(newcomers) == 2 else ShiftSeverity.MEDIUM
    return ShiftTrigger.NEW_DOMINANCE, severity, {
        "new_dominant_numbers": newcomers,
        "bn_top2": [{"number": n, "frequency": f} for n, f in bn_top2],
        "b0_top30_count": reference_count,
    }


class PatternShiftDetector:

    def detect(
        self,
        initial: Optional[Baseline],
        rolling: Optional[Baseline],
        previous: Optional[Baseline] = None,
        draw_id: str = "",
        settings: Optional[Settings] = None,
    ) -> List[PatternShift]:
        if initial is None:
            raise MissingReference("Shift detection needs the cycle's initial baseline")
        if rolling is None:
            raise MissingReference("Shift detection needs a rolling baseline")

        threshold = settings.surge_threshold if settings is not None else DEFAULT_SURGE_THRESHOLD

        findings: List[Optional[Finding]] = [
            detect_long_term_drift(initial, rolling),
            detect_short_term_surge(rolling, previous, threshold) if previous is not None else None,
            detect_baseline_divergence(initial, rolling),
            detect_correlation_breakdown(initial, rolling),
            detect_new_dominance(initial, rolling),
        ]

        detected_at = datetime.now()
        shifts = [
            PatternShift(
                id=str(uuid.uuid4()),
                cycle_id=rolling.cycle_id,
                trigger=trigger,
                draw_id=draw_id,
                severity=severity,
                details=details,
                detected_at=detected_at,
            )
            for trigger, severity, details in filter(None, findings)
        ]
        for shift in shifts:
            logger.info("[SHIFTS] %s", describe(shift))
        return shifts


def describe(shift: PatternShift) -> str:
    level = SEVERITY_LEVELS[shift.severity]
    return (f"{TRIGGER_LABELS[shift.trigger]} ({shift.severity.value}) at {shift.draw_id or 'unknown draw'}"
            f" - {level['label']}: {level['action']}")
