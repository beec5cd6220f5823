from __future__ import annotations

from typing import Optional


class CycleWatchError(Exception):
    """Base class for recoverable cycle/baseline errors."""


class InvalidWindow(CycleWatchError):
    """Wrong number of draws for the requested baseline type."""

    def __init__(self, baseline_type: str, got: int, expected: str):
        self.baseline_type = baseline_type
        self.got = got
        self.expected = expected
        super().__init__(f"{baseline_type} baseline requires {expected} draws, got {got}")


class EmptyInput(InvalidWindow):
    def __init__(self, baseline_type: str, expected: str = "at least 1"):
        super().__init__(baseline_type, 0, expected)


class MissingReference(CycleWatchError):
    """Shift detection requested without the baselines it compares."""


class CycleConflict(CycleWatchError):
    def __init__(self, cycle_id: str, phase: Optional[str] = None):
        self.cycle_id = cycle_id
        self.phase = phase
        super().__init__(f"Cycle {cycle_id} is still open ({phase}); close it before starting a new one")


class InvalidTransition(CycleWatchError):
    pass
