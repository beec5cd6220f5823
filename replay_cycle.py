"""
Replay stored draws through the current cycle and report where it stands.

Usage:
    python replay_cycle.py [rows.json] [--start YYYY-MM-DD]

rows.json (optional) is a list of raw Socrata-style rows to ingest first.
If no cycle is open, one is started at --start (default: first stored draw).
"""

import argparse
import json
import logging
from datetime import date

from cyclewatch import db
from cyclewatch.config import load_settings
from cyclewatch.deviation import number_stats
from cyclewatch.orchestrator import CycleOrchestrator
from cyclewatch.parse import parse_rows
from cyclewatch.picks import PickGenerator
from cyclewatch.shift_detector import describe

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")


def main():
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("rows", nargs="?", help="JSON file of raw draw rows to ingest")
    parser.add_argument("--start", help="start date for a new cycle (YYYY-MM-DD)")
    args = parser.parse_args()

    settings = load_settings()
    db.init_db()

    if args.rows:
        with open(args.rows) as f:
            draws = parse_rows(json.load(f))
        print(f"Ingested {db.upsert_draws(draws)} draws from {args.rows}")

    orchestrator = CycleOrchestrator()
    cycle = db.get_current_cycle()
    if cycle is None:
        stored = db.get_draws()
        if not stored and not args.start:
            print("No draws stored and no --start given; nothing to do.")
            return
        start = date.fromisoformat(args.start) if args.start else stored[0].draw_date
        cycle = orchestrator.start_cycle(db.get_cycles(), start)
        db.save_cycle(cycle)

    cycle_draws = db.get_draws(start_date=cycle.start_date)
    history, new = cycle_draws[:cycle.draw_count], cycle_draws[cycle.draw_count:]
    result = orchestrator.process_draws(cycle, history, new, settings)
    db.record_batch(result)
    cycle = result.cycle

    print(f"\nCycle {cycle.id}: {cycle.phase.name}, {cycle.draw_count} draws since {cycle.start_date}")
    for draw_id, error in result.errors:
        print(f"  ! {draw_id}: {error}")
    for shift in result.shifts:
        print(f"  * {describe(shift)}")

    baseline = cycle.active_baseline
    if baseline is None:
        return

    stats = baseline.statistics
    if stats.chi2 is not None:
        print(f"\nChi-square vs even spread: {stats.chi2:.1f} (p={stats.chi2_p:.3f})")
    print(f"\nTop numbers in {baseline.type.value} baseline ({baseline.draw_count} draws):")
    for s in number_stats(baseline, cycle.previous_rolling)[:10]:
        print(f"  {s.number:2d}  freq={s.frequency:2d}  dev={s.deviation:+.2f}  "
              f"{s.classification.value:<6} p{s.percentile:<3d} {s.trend.value}")

    pick = PickGenerator().generate(cycle.id, baseline, date.today())
    db.save_pick(pick)
    print(f"\nPick: {list(pick.primary)} + {pick.secondary}\n  {pick.explanation}")


if __name__ == "__main__":
    main()
