from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import List, Sequence

from cyclewatch.models import PRIMARY_MAX, PRIMARY_PER_DRAW, SECONDARY_MAX, Draw, Pick

SUM_RANGE = (120, 180)
ODD_RANGE = (2, 3)


@dataclass
class ValidationResult:
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    @property
    def message(self) -> str:
        if self.is_valid and not self.warnings:
            return "Valid pick"
        if self.is_valid:
            return "Valid with warnings: " + ", ".join(self.warnings)
        return "Invalid: " + ", ".join(self.errors)


def validate_pick(primary: Sequence[int], secondary: int) -> ValidationResult:
    """Hard rule violations go to errors; unusual-but-legal shapes go to warnings."""
    result = ValidationResult()

    if len(primary) != PRIMARY_PER_DRAW:
        result.errors.append(f"Must select exactly {PRIMARY_PER_DRAW} primary numbers (got {len(primary)})")
    if len(set(primary)) != len(primary):
        result.errors.append("Primary numbers must be unique (no duplicates)")
    for n in primary:
        if not 1 <= n <= PRIMARY_MAX:
            result.errors.append(f"Primary number {n} is out of range (must be 1-{PRIMARY_MAX})")
    if not 1 <= secondary <= SECONDARY_MAX:
        result.errors.append(f"Secondary number must be between 1-{SECONDARY_MAX} (got {secondary})")

    if result.errors:
        return result

    total = sum(primary)
    if not SUM_RANGE[0] <= total <= SUM_RANGE[1]:
        result.warnings.append(f"Sum total {total} is outside typical range ({SUM_RANGE[0]}-{SUM_RANGE[1]})")

    odd = sum(1 for n in primary if n % 2)
    if not ODD_RANGE[0] <= odd <= ODD_RANGE[1]:
        result.warnings.append(f"Odd count {odd} is outside typical range ({ODD_RANGE[0]}-{ODD_RANGE[1]})")

    ordered = sorted(primary)
    consecutive = sum(1 for a, b in zip(ordered, ordered[1:]) if b == a + 1)
    if consecutive >= 3:
        result.warnings.append(f"Pick contains {consecutive} consecutive numbers (unusual pattern)")

    return result


def evaluate_pick(pick: Pick, draw: Draw) -> Pick:
    """Score a pick against the draw it targeted."""
    return replace(
        pick,
        match_count=len(set(pick.primary) & set(draw.primary)),
        secondary_match=pick.secondary == draw.secondary,
        evaluated_at=datetime.now(),
    )
