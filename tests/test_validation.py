from datetime import date

from cyclewatch.models import Draw, Pick
from cyclewatch.validation import evaluate_pick, validate_pick


def test_typical_pick_is_valid():
    result = validate_pick([10, 23, 31, 44, 52], 7)
    assert result.is_valid
    assert result.warnings == []
    assert result.message == "Valid pick"


def test_hard_rule_violations():
    result = validate_pick([1, 1, 70, 4], 30)
    assert not result.is_valid
    assert len(result.errors) == 4
    assert result.message.startswith("Invalid: ")


def test_unusual_shapes_are_warnings():
    result = validate_pick([1, 2, 3, 4, 5], 7)
    assert result.is_valid
    assert len(result.warnings) == 2
    assert result.warnings[0].startswith("Sum total 15")
    assert "4 consecutive numbers" in result.warnings[1]
    assert result.message.startswith("Valid with warnings: ")

    odd_heavy = validate_pick([11, 33, 35, 47, 59], 7)
    assert [w.split(" ")[0] for w in odd_heavy.warnings] == ["Sum", "Odd"]


def test_evaluate_pick():
    pick = Pick(id="p1", cycle_id="c1", primary=(1, 2, 3, 4, 5), secondary=7,
                target_draw_date=date(2024, 1, 6), sum_total=15, odd_count=3)
    draw = Draw(draw_date=date(2024, 1, 6), primary=[1, 2, 30, 40, 50], secondary=7)

    scored = evaluate_pick(pick, draw)
    assert scored.match_count == 2
    assert scored.secondary_match is True
    assert scored.is_evaluated
    assert not pick.is_evaluated
