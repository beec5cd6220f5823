"""
Cycle orchestration.

Drives a cycle through COLLECTING -> ACTIVE -> CLOSED as draws arrive. Each
new draw runs through a fixed, ordered pipeline of steps:

  1. preliminary   COLLECTING, fewer than 20 draws: rebuild Bp from all draws
  2. initialize    COLLECTING, 20+ draws: lock B0 from the first 20, build the
                   first Bn from the same draws, drop Bp, go ACTIVE
  3. rolling       ACTIVE, cadence hit (25, 30, ...): new Bn from the latest 20,
                   smoothed against the current Bn
  4. shifts        a new Bn was built in this pass: compare B0 / Bn / Bprev

A step only runs when its condition holds for the cycle as left by the steps
before it. When a step raises, the draw still counts toward the cycle and keeps
whatever the earlier steps built (a new Bn survives a failed shift check); the
failing step and the ones after it are skipped, the error is recorded and the
batch moves on.
Initialization is re-attempted on any later draw while the cycle is still
collecting with 20+ draws.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import Callable, Iterable, List, Optional, Tuple

from cyclewatch.baseline import BaselineCalculator, should_recalculate_rolling
from cyclewatch.config import Settings, SmoothingLevel
from cyclewatch.errors import CycleConflict, InvalidTransition
from cyclewatch.models import (
    WINDOW_SIZE,
    ActiveState,
    Baseline,
    ClosedState,
    CollectingState,
    Cycle,
    CyclePhase,
    Draw,
    PatternShift,
    sort_chronologically,
)
from cyclewatch.shift_detector import PatternShiftDetector

logger = logging.getLogger(__name__)


@dataclass
class StepContext:
    cycle: Cycle
    draw: Draw
    draws: List[Draw]
    settings: Settings
    baselines: List[Baseline] = field(default_factory=list)
    shifts: List[PatternShift] = field(default_factory=list)
    discarded: List[str] = field(default_factory=list)
    steps_run: List[str] = field(default_factory=list)
    rolling_updated: bool = False


@dataclass
class StepOutcome:
    draw_id: str
    draw_count: int
    phase_before: CyclePhase
    phase_after: CyclePhase
    steps: List[str] = field(default_factory=list)
    baselines: List[Baseline] = field(default_factory=list)
    shifts: List[PatternShift] = field(default_factory=list)
    discarded: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class BatchResult:
    cycle: Cycle
    outcomes: List[StepOutcome] = field(default_factory=list)
    skipped: List[Tuple[str, str]] = field(default_factory=list)  # (draw_id, reason)

    @property
    def baselines(self) -> List[Baseline]:
        return [b for o in self.outcomes for b in o.baselines]

    @property
    def shifts(self) -> List[PatternShift]:
        return [s for o in self.outcomes for s in o.shifts]

    @property
    def discarded_baseline_ids(self) -> List[str]:
        return [d for o in self.outcomes for d in o.discarded]

    @property
    def errors(self) -> List[Tuple[str, str]]:
        return [(o.draw_id, o.error) for o in self.outcomes if o.error is not None]


@dataclass(frozen=True)
class Step:
    name: str
    applies: Callable[[StepContext], bool]
    run: Callable[[StepContext], None]


class CycleOrchestrator:

    def __init__(self, calculator: Optional[BaselineCalculator] = None,
                 detector: Optional[PatternShiftDetector] = None):
        self.calculator = calculator or BaselineCalculator()
        self.detector = detector or PatternShiftDetector()
        self.pipeline: List[Step] = [
            Step("preliminary", self._needs_preliminary, self._update_preliminary),
            Step("initialize", self._needs_initial, self._initialize),
            Step("rolling", self._needs_rolling, self._update_rolling),
            Step("shifts", lambda ctx: ctx.rolling_updated, self._detect_shifts),
        ]

    # ------------------------------------------------------------------
    # Cycle lifecycle
    # ------------------------------------------------------------------

    def start_cycle(self, existing: Iterable[Cycle], start_date: date,
                    name: Optional[str] = None, notes: Optional[str] = None) -> Cycle:
        """New COLLECTING cycle; refuses while another cycle is still open."""
        for cycle in existing:
            if cycle.is_open:
                raise CycleConflict(cycle.id, cycle.phase.name)
        cycle = Cycle(id=str(uuid.uuid4()), start_date=start_date, name=name, notes=notes)
        logger.info("[ORCHESTRATOR] Started cycle %s from %s", cycle.id, start_date)
        return cycle

    def close_cycle(self, cycle: Cycle, end_date: Optional[date] = None) -> Cycle:
        if not cycle.is_open:
            raise InvalidTransition(f"Cycle {cycle.id} is already closed")
        now = datetime.now()
        logger.info("[ORCHESTRATOR] Closing cycle %s (%s, %d draws)",
                    cycle.id, cycle.phase.name, cycle.draw_count)
        return replace(cycle, state=ClosedState(), end_date=end_date or now.date(), closed_at=now)

    def replace_cycle(self, current: Cycle, start_date: date,
                      shift: Optional[PatternShift] = None,
                      name: Optional[str] = None) -> Tuple[Cycle, Cycle, Optional[PatternShift]]:
        """Close `current` and start a fresh cycle, optionally crediting the shift that prompted it."""
        closed = self.close_cycle(current, end_date=start_date)
        fresh = self.start_cycle([closed], start_date, name=name)
        if shift is not None:
            shift = shift.mark_triggered_new_cycle()
        return closed, fresh, shift

    # ------------------------------------------------------------------
    # Draw processing
    # ------------------------------------------------------------------

    def process_draws(self, cycle: Cycle, history: List[Draw], new_draws: List[Draw],
                      settings: Optional[Settings] = None) -> BatchResult:
        """
        Apply `new_draws` to `cycle` one at a time in date order.

        `history` holds the draws already applied to the cycle. The returned
        result carries the final cycle plus every baseline and shift produced;
        persisting them is up to the caller.
        """
        settings = settings or Settings()
        result = BatchResult(cycle=cycle)

        if not new_draws:
            return result
        if not cycle.is_open:
            result.skipped = [(d.id, "cycle closed") for d in new_draws]
            logger.info("[ORCHESTRATOR] Cycle %s is closed; ignoring %d draws", cycle.id, len(new_draws))
            return result

        draws = sort_chronologically(history)
        if len(draws) != cycle.draw_count:
            logger.warning("[ORCHESTRATOR] Cycle %s counts %d draws but %d were supplied",
                           cycle.id, cycle.draw_count, len(draws))
        seen = {d.id for d in draws}

        logger.info("[ORCHESTRATOR] Processing %d draws for cycle %s", len(new_draws), cycle.id)
        for draw in sort_chronologically(new_draws):
            if draw.id in seen:
                result.skipped.append((draw.id, "duplicate"))
                continue
            if draw.draw_date < cycle.start_date:
                result.skipped.append((draw.id, "before cycle start"))
                continue
            if draws and draw.draw_date < draws[-1].draw_date:
                result.skipped.append((draw.id, "out of order"))
                continue

            seen.add(draw.id)
            draws.append(draw)
            cycle, outcome = self.process_draw(cycle, draw, draws, settings)
            result.outcomes.append(outcome)

        result.cycle = cycle
        logger.info("[ORCHESTRATOR] Finished: cycle %s at %d draws (%s), %d shifts, %d errors",
                    cycle.id, cycle.draw_count, cycle.phase.name, len(result.shifts), len(result.errors))
        return result

    def process_draw(self, cycle: Cycle, draw: Draw, draws: List[Draw],
                     settings: Settings) -> Tuple[Cycle, StepOutcome]:
        """
        Run the pipeline for one draw. `draws` must already end with `draw`.

        Steps only touch the context once their work has succeeded, so when a
        step raises the context still holds everything the earlier steps
        produced; that is what gets returned.
        """
        counted = replace(cycle, draw_count=cycle.draw_count + 1)
        ctx = StepContext(cycle=counted, draw=draw, draws=list(draws), settings=settings)
        outcome = StepOutcome(draw_id=draw.id, draw_count=counted.draw_count,
                              phase_before=cycle.phase, phase_after=cycle.phase)

        for step in self.pipeline:
            if not step.applies(ctx):
                continue
            try:
                step.run(ctx)
            except Exception as e:
                logger.exception("[ORCHESTRATOR] Draw %s (count=%d) failed in step %s: %s",
                                 draw.id, counted.draw_count, step.name, e)
                outcome.error = f"{type(e).__name__}: {e}"
                break
            ctx.steps_run.append(step.name)

        outcome.phase_after = ctx.cycle.phase
        outcome.steps = ctx.steps_run
        outcome.baselines = ctx.baselines
        outcome.shifts = ctx.shifts
        outcome.discarded = ctx.discarded
        if not ctx.steps_run:
            logger.debug("[ORCHESTRATOR] Draw %s (count=%d): no baseline update needed",
                         draw.id, counted.draw_count)
        return ctx.cycle, outcome

    # ------------------------------------------------------------------
    # Pipeline steps
    # ------------------------------------------------------------------

    @staticmethod
    def _needs_preliminary(ctx: StepContext) -> bool:
        return ctx.cycle.phase == CyclePhase.COLLECTING and ctx.cycle.draw_count < WINDOW_SIZE

    @staticmethod
    def _needs_initial(ctx: StepContext) -> bool:
        return ctx.cycle.phase == CyclePhase.COLLECTING and ctx.cycle.draw_count >= WINDOW_SIZE

    @staticmethod
    def _needs_rolling(ctx: StepContext) -> bool:
        return ctx.cycle.phase == CyclePhase.ACTIVE and should_recalculate_rolling(ctx.cycle.draw_count)

    def _update_preliminary(self, ctx: StepContext) -> None:
        cycle = ctx.cycle
        preliminary = self.calculator.create_preliminary(cycle.id, ctx.draws[:cycle.draw_count])
        if cycle.preliminary is not None:
            ctx.discarded.append(cycle.preliminary.id)
        ctx.cycle = replace(cycle, state=CollectingState(preliminary=preliminary))
        ctx.baselines.append(preliminary)

    def _initialize(self, ctx: StepContext) -> None:
        cycle = ctx.cycle
        first = ctx.draws[:WINDOW_SIZE]
        initial = self.calculator.create_initial(cycle.id, first)
        # no predecessor, so the first rolling baseline is never smoothed
        rolling = self.calculator.create_rolling(cycle.id, first, None, SmoothingLevel.NONE)

        if cycle.preliminary is not None:
            ctx.discarded.append(cycle.preliminary.id)
        ctx.cycle = replace(cycle, state=ActiveState(initial=initial, rolling=rolling))
        ctx.baselines.extend([initial, rolling])
        logger.info("[ORCHESTRATOR] Cycle %s locked B0 %s and is now ACTIVE", cycle.id, initial.id)

    def _update_rolling(self, ctx: StepContext) -> None:
        cycle = ctx.cycle
        state = cycle.state
        rolling = self.calculator.create_rolling(
            cycle.id,
            ctx.draws[-WINDOW_SIZE:],
            state.rolling,
            ctx.settings.smoothing,
        )
        ctx.cycle = replace(cycle, state=ActiveState(
            initial=state.initial,
            rolling=rolling,
            previous_rolling=state.rolling,
        ))
        ctx.baselines.append(rolling)
        ctx.rolling_updated = True

    def _detect_shifts(self, ctx: StepContext) -> None:
        cycle = ctx.cycle
        shifts = self.detector.detect(
            initial=cycle.initial,
            rolling=cycle.rolling,
            previous=cycle.previous_rolling,
            draw_id=ctx.draw.id,
            settings=ctx.settings,
        )
        if shifts:
            logger.info("[ORCHESTRATOR] Detected %d pattern shifts at draw %s", len(shifts), ctx.draw.id)
        ctx.shifts.extend(shifts)
