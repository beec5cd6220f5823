import pytest

from cyclewatch.config import Sensitivity, Settings
from cyclewatch.errors import MissingReference
from cyclewatch.models import ShiftSeverity, ShiftTrigger
from cyclewatch.shift_detector import (
    PatternShiftDetector,
    describe,
    detect_baseline_divergence,
    detect_correlation_breakdown,
    detect_long_term_drift,
    detect_new_dominance,
    detect_short_term_surge,
    hot_overlap,
)

from conftest import baseline_from_freq

TOP_PAIRS = {"1-2": 8, "3-4": 8, "5-6": 8, "7-8": 8, "9-10": 8}


def hot_initial(**kwargs):
    # hot set is exactly 1..14
    return baseline_from_freq({n: 10 for n in range(1, 15)}, **kwargs)


def flat(value=1, **kwargs):
    return baseline_from_freq({n: value for n in range(1, 70)}, **kwargs)


@pytest.mark.parametrize("zeroed, expected", [
    (4, None),
    (5, ShiftSeverity.LOW),
    (6, ShiftSeverity.MEDIUM),
    (7, ShiftSeverity.MEDIUM),
    (8, ShiftSeverity.HIGH),
    (14, ShiftSeverity.HIGH),
])
def test_long_term_drift_severity(zeroed, expected):
    freq = {n: 1 for n in range(1, 70)}
    for n in range(1, 15):
        freq[n] = 0 if n <= zeroed else 4
    finding = detect_long_term_drift(hot_initial(), baseline_from_freq(freq))

    if expected is None:
        assert finding is None
        return
    trigger, severity, details = finding
    assert trigger == ShiftTrigger.LONG_TERM_DRIFT
    assert severity == expected
    assert details["drifted_count"] == zeroed
    assert details["drifted_numbers"] == list(range(1, zeroed + 1))


def spiked(count, value=10):
    freq = {n: 1 for n in range(1, 70)}
    for n in range(1, count + 1):
        freq[n] = value
    return baseline_from_freq(freq)


@pytest.mark.parametrize("count, expected", [
    (2, None),
    (3, ShiftSeverity.MEDIUM),
    (5, ShiftSeverity.HIGH),
])
def test_short_term_surge(count, expected):
    finding = detect_short_term_surge(spiked(count), flat())
    if expected is None:
        assert finding is None
        return
    trigger, severity, details = finding
    assert trigger == ShiftTrigger.SHORT_TERM_SURGE
    assert severity == expected
    assert details["surged_numbers"] == list(range(1, count + 1))
    assert set(details["deviation_jumps"]) == {str(n) for n in range(1, count + 1)}
    assert details["threshold"] == 2.0


def test_surge_threshold_is_configurable():
    assert detect_short_term_surge(spiked(3), flat(), threshold=5.0) is None
    assert detect_short_term_surge(spiked(3), flat(), threshold=1.5) is not None


def test_hot_overlap_is_symmetric():
    a, b = range(1, 15), list(range(1, 9)) + list(range(15, 21))
    assert hot_overlap(a, b) == hot_overlap(b, a) == pytest.approx(40.0)
    assert hot_overlap([], []) is None


def test_divergence():
    b0 = hot_initial()
    disjoint = baseline_from_freq({n: 10 for n in range(56, 70)})
    partial = baseline_from_freq({n: 10 for n in list(range(1, 9)) + list(range(15, 21))})

    trigger, severity, details = detect_baseline_divergence(b0, disjoint)
    assert trigger == ShiftTrigger.BASELINE_DIVERGENCE
    assert severity == ShiftSeverity.HIGH
    assert details["overlap_percentage"] == 0
    assert details["common_hot"] == []

    _, severity, details = detect_baseline_divergence(b0, partial)
    assert severity == ShiftSeverity.MEDIUM
    assert details["common_hot"] == list(range(1, 9))

    assert detect_baseline_divergence(b0, hot_initial()) is None


@pytest.mark.parametrize("kept, expected", [
    (["1-2", "3-4", "5-6"], None),
    (["1-2", "3-4"], ShiftSeverity.MEDIUM),
    (["1-2"], ShiftSeverity.HIGH),
    ([], ShiftSeverity.HIGH),
])
def test_correlation_breakdown(kept, expected):
    b0 = flat(pair_freq=TOP_PAIRS)
    bn = flat(pair_freq={key: 8 for key in kept})
    finding = detect_correlation_breakdown(b0, bn)
    if expected is None:
        assert finding is None
        return
    trigger, severity, details = finding
    assert trigger == ShiftTrigger.CORRELATION_BREAKDOWN
    assert severity == expected
    assert details["broken_count"] == 5 - len(kept)
    assert sorted(details["b0_top_pairs"]) == sorted(TOP_PAIRS)


def test_correlation_breakdown_needs_five_pairs():
    b0 = flat(pair_freq={"1-2": 8, "3-4": 8, "5-6": 8, "7-8": 8})
    assert detect_correlation_breakdown(b0, flat()) is None


def test_correlation_pair_below_quarter_counts_as_broken():
    b0 = flat(pair_freq=TOP_PAIRS)
    # 8 * 0.25 = 2; a count of 2 still holds, 1 breaks
    holding = flat(pair_freq={"1-2": 2, "3-4": 2, "5-6": 2, "7-8": 1})
    assert detect_correlation_breakdown(b0, holding) is None
    breaking = flat(pair_freq={"1-2": 2, "3-4": 2, "5-6": 1, "7-8": 1})
    assert detect_correlation_breakdown(b0, breaking)[2]["broken_pairs"] == ["5-6", "7-8", "9-10"]


def test_new_dominance():
    b0 = baseline_from_freq({n: 5 for n in range(1, 22)})

    _, severity, details = detect_new_dominance(b0, baseline_from_freq({50: 10, 1: 9}))
    assert severity == ShiftSeverity.MEDIUM
    assert details["new_dominant_numbers"] == [50]
    assert details["b0_top30_count"] == 21

    trigger, severity, details = detect_new_dominance(b0, baseline_from_freq({50: 10, 60: 9}))
    assert trigger == ShiftTrigger.NEW_DOMINANCE
    assert severity == ShiftSeverity.HIGH
    assert details["bn_top2"] == [{"number": 50, "frequency": 10}, {"number": 60, "frequency": 9}]

    assert detect_new_dominance(b0, baseline_from_freq({1: 10, 2: 9})) is None


def test_detector_without_previous_never_reports_surge():
    detector = PatternShiftDetector()
    shifts = detector.detect(hot_initial(pair_freq=TOP_PAIRS), spiked(5), None, "drawing_20240301")
    triggers = {s.trigger for s in shifts}
    assert ShiftTrigger.SHORT_TERM_SURGE not in triggers
    assert len(triggers) == len(shifts) <= 4
    assert all(s.draw_id == "drawing_20240301" for s in shifts)
    assert all(not s.dismissed for s in shifts)


def test_all_five_rules_can_fire_together():
    b0 = hot_initial(pair_freq=TOP_PAIRS)
    # five spikes outside B0's top 30%, everything else flat at 1, no pairs left
    freq = {n: 1 for n in range(1, 70)}
    for n in range(56, 61):
        freq[n] = 10
    bn = baseline_from_freq(freq)

    shifts = PatternShiftDetector().detect(b0, bn, flat(), "drawing_20240301")
    by_trigger = {s.trigger: s.severity for s in shifts}

    assert len(shifts) == 5
    assert by_trigger == {
        ShiftTrigger.LONG_TERM_DRIFT: ShiftSeverity.HIGH,
        ShiftTrigger.SHORT_TERM_SURGE: ShiftSeverity.HIGH,
        # hot(Bn) is 56..60 plus 1..9: 9 shared of 19
        ShiftTrigger.BASELINE_DIVERGENCE: ShiftSeverity.MEDIUM,
        ShiftTrigger.CORRELATION_BREAKDOWN: ShiftSeverity.HIGH,
        ShiftTrigger.NEW_DOMINANCE: ShiftSeverity.HIGH,
    }
    assert len({s.id for s in shifts}) == 5


def test_detector_applies_sensitivity():
    detector = PatternShiftDetector()
    b0, bn, previous = hot_initial(), spiked(3), flat()

    normal = detector.detect(b0, bn, previous)
    strict = detector.detect(b0, bn, previous, settings=Settings(sensitivity=Sensitivity.CUSTOM,
                                                               custom_sensitivity=5.0))
    assert ShiftTrigger.SHORT_TERM_SURGE in {s.trigger for s in normal}
    assert ShiftTrigger.SHORT_TERM_SURGE not in {s.trigger for s in strict}


def test_identical_baselines_raise_nothing():
    b0 = hot_initial(pair_freq=TOP_PAIRS)
    assert PatternShiftDetector().detect(b0, b0, b0) == []


def test_detector_requires_both_baselines():
    detector = PatternShiftDetector()
    with pytest.raises(MissingReference):
        detector.detect(None, flat())
    with pytest.raises(MissingReference):
        detector.detect(flat(), None)


def test_describe_and_dismiss():
    shift = PatternShiftDetector().detect(hot_initial(), baseline_from_freq({n: 10 for n in range(56, 70)}),
                                          draw_id="drawing_20240301")[0]
    assert "drawing_20240301" in describe(shift)
    dismissed = shift.dismiss()
    assert dismissed.dismissed and dismissed.dismissed_at is not None
    assert not shift.dismissed
    assert shift.mark_triggered_new_cycle().triggered_new_cycle
