from __future__ import annotations

import json
import logging
import os
import sqlite3
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional

from cyclewatch.config import get_db_path
from cyclewatch.models import (
    ActiveState,
    Baseline,
    BaselineType,
    ClosedState,
    CollectingState,
    Cycle,
    CyclePhase,
    Draw,
    PatternShift,
    Pick,
    ShiftSeverity,
    ShiftTrigger,
)

logger = logging.getLogger(__name__)


def connect() -> sqlite3.Connection:
    path = get_db_path()
    folder = os.path.dirname(path)
    if folder:
        os.makedirs(folder, exist_ok=True)
    conn = sqlite3.connect(path)
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    return conn


def init_db() -> None:
    conn = connect()
    try:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS draws (
                id TEXT PRIMARY KEY,
                draw_date TEXT NOT NULL,   -- ISO date
                n1 INTEGER NOT NULL,
                n2 INTEGER NOT NULL,
                n3 INTEGER NOT NULL,
                n4 INTEGER NOT NULL,
                n5 INTEGER NOT NULL,
                secondary INTEGER NOT NULL,
                multiplier INTEGER,
                source TEXT NOT NULL DEFAULT 'api'
            );
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS cycles (
                id TEXT PRIMARY KEY,
                name TEXT,
                start_date TEXT NOT NULL,
                end_date TEXT,
                phase INTEGER NOT NULL,    -- CyclePhase value
                draw_count INTEGER NOT NULL DEFAULT 0,
                initial_id TEXT,
                rolling_id TEXT,
                previous_rolling_id TEXT,
                preliminary_id TEXT,
                notes TEXT,
                created_at TEXT NOT NULL,
                closed_at TEXT
            );
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS baselines (
                id TEXT PRIMARY KEY,
                cycle_id TEXT NOT NULL,
                type TEXT NOT NULL,
                created_at TEXT NOT NULL,
                data TEXT NOT NULL         -- Baseline.to_dict() as JSON
            );
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS pattern_shifts (
                id TEXT PRIMARY KEY,
                cycle_id TEXT NOT NULL,
                trigger TEXT NOT NULL,
                severity TEXT NOT NULL,
                draw_id TEXT NOT NULL,
                detected_at TEXT NOT NULL,
                details TEXT,
                dismissed BOOLEAN DEFAULT 0,
                dismissed_at TEXT,
                triggered_new_cycle BOOLEAN DEFAULT 0
            );
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS picks (
                id TEXT PRIMARY KEY,
                cycle_id TEXT NOT NULL,
                numbers TEXT NOT NULL,     -- JSON list of primary numbers
                secondary INTEGER NOT NULL,
                target_draw_date TEXT NOT NULL,
                sum_total INTEGER NOT NULL,
                odd_count INTEGER NOT NULL,
                is_auto_pick BOOLEAN DEFAULT 1,
                is_preliminary BOOLEAN DEFAULT 0,
                explanation TEXT,
                created_at TEXT NOT NULL,
                match_count INTEGER,
                secondary_match BOOLEAN,
                evaluated_at TEXT
            );
            """
        )
        conn.execute("CREATE INDEX IF NOT EXISTS idx_draws_date ON draws(draw_date);")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_baselines_cycle ON baselines(cycle_id, type, created_at);")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_shifts_cycle ON pattern_shifts(cycle_id, detected_at DESC);")
        conn.commit()
    finally:
        conn.close()


def _iso(value: Optional[Any]) -> Optional[str]:
    return value.isoformat() if value is not None else None


# ---------------------------------------------------------------------------
# Draws
# ---------------------------------------------------------------------------

def upsert_draws(draws: Iterable[Draw]) -> int:
    rows = [
        (d.id, d.draw_date.isoformat(), *d.primary, d.secondary, d.multiplier, d.source)
        for d in draws
    ]
    conn = connect()
    try:
        cur = conn.cursor()
        cur.executemany(
            """
            INSERT OR REPLACE INTO draws
            (id, draw_date, n1, n2, n3, n4, n5, secondary, multiplier, source)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            rows,
        )
        conn.commit()
        return cur.rowcount
    finally:
        conn.close()


def get_draws(start_date: Optional[date] = None, end_date: Optional[date] = None) -> List[Draw]:
    """Draws oldest first, optionally limited to [start_date, end_date]."""
    query = "SELECT id, draw_date, n1, n2, n3, n4, n5, secondary, multiplier, source FROM draws WHERE 1=1"
    params: List[Any] = []
    if start_date is not None:
        query += " AND draw_date >= ?"
        params.append(start_date.isoformat())
    if end_date is not None:
        query += " AND draw_date <= ?"
        params.append(end_date.isoformat())
    query += " ORDER BY draw_date ASC"

    conn = connect()
    try:
        cur = conn.cursor()
        cur.execute(query, params)
        return [
            Draw(id=row[0], draw_date=row[1], primary=list(row[2:7]), secondary=row[7],
                 multiplier=row[8], source=row[9])
            for row in cur.fetchall()
        ]
    finally:
        conn.close()


# ---------------------------------------------------------------------------
# Baselines
# ---------------------------------------------------------------------------

def save_baseline(baseline: Baseline) -> None:
    conn = connect()
    try:
        conn.execute(
            "INSERT OR REPLACE INTO baselines (id, cycle_id, type, created_at, data) VALUES (?, ?, ?, ?, ?)",
            (baseline.id, baseline.cycle_id, baseline.type.value,
             baseline.created_at.isoformat(), json.dumps(baseline.to_dict())),
        )
        conn.commit()
    finally:
        conn.close()


def get_baseline(baseline_id: Optional[str]) -> Optional[Baseline]:
    if not baseline_id:
        return None
    conn = connect()
    try:
        cur = conn.cursor()
        cur.execute("SELECT data FROM baselines WHERE id = ?", (baseline_id,))
        row = cur.fetchone()
        return Baseline.from_dict(json.loads(row[0])) if row else None
    finally:
        conn.close()


def delete_baseline(baseline_id: str) -> None:
    conn = connect()
    try:
        conn.execute("DELETE FROM baselines WHERE id = ?", (baseline_id,))
        conn.commit()
    finally:
        conn.close()


def get_rolling_history(cycle_id: str) -> List[Baseline]:
    """Rolling baselines for a cycle, newest first."""
    conn = connect()
    try:
        cur = conn.cursor()
        cur.execute(
            "SELECT data FROM baselines WHERE cycle_id = ? AND type = ? ORDER BY created_at DESC",
            (cycle_id, BaselineType.ROLLING.value),
        )
        return [Baseline.from_dict(json.loads(row[0])) for row in cur.fetchall()]
    finally:
        conn.close()


# ---------------------------------------------------------------------------
# Cycles
# ---------------------------------------------------------------------------

def save_cycle(cycle: Cycle) -> None:
    state = cycle.state
    conn = connect()
    try:
        conn.execute(
            """
            INSERT OR REPLACE INTO cycles
            (id, name, start_date, end_date, phase, draw_count, initial_id, rolling_id,
             previous_rolling_id, preliminary_id, notes, created_at, closed_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                cycle.id,
                cycle.name,
                cycle.start_date.isoformat(),
                _iso(cycle.end_date),
                int(cycle.phase),
                cycle.draw_count,
                state.initial.id if isinstance(state, ActiveState) else None,
                state.rolling.id if isinstance(state, ActiveState) else None,
                state.previous_rolling.id if isinstance(state, ActiveState) and state.previous_rolling else None,
                state.preliminary.id if isinstance(state, CollectingState) and state.preliminary else None,
                cycle.notes,
                cycle.created_at.isoformat(),
                _iso(cycle.closed_at),
            ),
        )
        conn.commit()
    finally:
        conn.close()


_CYCLE_COLUMNS = ("id, name, start_date, end_date, phase, draw_count, initial_id, rolling_id, "
                  "previous_rolling_id, preliminary_id, notes, created_at, closed_at")


def _cycle_from_row(row) -> Cycle:
    (cycle_id, name, start_date, end_date, phase, draw_count, initial_id, rolling_id,
     previous_rolling_id, preliminary_id, notes, created_at, closed_at) = row

    phase = CyclePhase(phase)
    if phase == CyclePhase.ACTIVE:
        initial, rolling = get_baseline(initial_id), get_baseline(rolling_id)
        if initial is None or rolling is None:
            raise ValueError(f"Active cycle {cycle_id} is missing its baselines")
        state = ActiveState(initial=initial, rolling=rolling,
                            previous_rolling=get_baseline(previous_rolling_id))
    elif phase == CyclePhase.COLLECTING:
        state = CollectingState(preliminary=get_baseline(preliminary_id))
    else:
        state = ClosedState()

    return Cycle(
        id=cycle_id,
        name=name,
        start_date=date.fromisoformat(start_date),
        end_date=date.fromisoformat(end_date) if end_date else None,
        state=state,
        draw_count=draw_count,
        notes=notes,
        created_at=datetime.fromisoformat(created_at),
        closed_at=datetime.fromisoformat(closed_at) if closed_at else None,
    )


def get_cycles() -> List[Cycle]:
    """All cycles, newest first."""
    conn = connect()
    try:
        cur = conn.cursor()
        cur.execute(f"SELECT {_CYCLE_COLUMNS} FROM cycles ORDER BY created_at DESC")
        rows = cur.fetchall()
    finally:
        conn.close()
    return [_cycle_from_row(row) for row in rows]


def get_cycle(cycle_id: str) -> Optional[Cycle]:
    conn = connect()
    try:
        cur = conn.cursor()
        cur.execute(f"SELECT {_CYCLE_COLUMNS} FROM cycles WHERE id = ?", (cycle_id,))
        row = cur.fetchone()
    finally:
        conn.close()
    return _cycle_from_row(row) if row else None


def get_current_cycle() -> Optional[Cycle]:
    """The single collecting or active cycle, if any."""
    for cycle in get_cycles():
        if cycle.is_open:
            return cycle
    return None


def delete_cycle(cycle_id: str) -> None:
    """Bulk cleanup: the cycle with all of its baselines, shifts and picks."""
    conn = connect()
    try:
        for table in ("baselines", "pattern_shifts", "picks"):
            conn.execute(f"DELETE FROM {table} WHERE cycle_id = ?", (cycle_id,))
        conn.execute("DELETE FROM cycles WHERE id = ?", (cycle_id,))
        conn.commit()
    finally:
        conn.close()
    logger.info("[DB] Deleted cycle %s and its records", cycle_id)


# ---------------------------------------------------------------------------
# Pattern shifts
# ---------------------------------------------------------------------------

def save_shift(shift: PatternShift) -> None:
    conn = connect()
    try:
        conn.execute(
            """
            INSERT OR REPLACE INTO pattern_shifts
            (id, cycle_id, trigger, severity, draw_id, detected_at, details,
             dismissed, dismissed_at, triggered_new_cycle)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                shift.id,
                shift.cycle_id,
                shift.trigger.value,
                shift.severity.value,
                shift.draw_id,
                shift.detected_at.isoformat(),
                json.dumps(shift.details),
                int(shift.dismissed),
                _iso(shift.dismissed_at),
                int(shift.triggered_new_cycle),
            ),
        )
        conn.commit()
    finally:
        conn.close()


def get_shifts(cycle_id: Optional[str] = None, active_only: bool = False,
               severity: Optional[ShiftSeverity] = None, limit: int = 100) -> List[PatternShift]:
    query = ("SELECT id, cycle_id, trigger, severity, draw_id, detected_at, details, dismissed, "
             "dismissed_at, triggered_new_cycle FROM pattern_shifts WHERE 1=1")
    params: List[Any] = []

    if cycle_id:
        query += " AND cycle_id = ?"
        params.append(cycle_id)
    if active_only:
        query += " AND dismissed = 0"
    if severity:
        query += " AND severity = ?"
        params.append(severity.value)

    query += " ORDER BY detected_at DESC LIMIT ?"
    params.append(limit)

    conn = connect()
    try:
        cur = conn.cursor()
        cur.execute(query, params)
        rows = cur.fetchall()
    finally:
        conn.close()

    return [
        PatternShift(
            id=row[0],
            cycle_id=row[1],
            trigger=ShiftTrigger(row[2]),
            severity=ShiftSeverity(row[3]),
            draw_id=row[4],
            detected_at=datetime.fromisoformat(row[5]),
            details=json.loads(row[6]) if row[6] else {},
            dismissed=bool(row[7]),
            dismissed_at=datetime.fromisoformat(row[8]) if row[8] else None,
            triggered_new_cycle=bool(row[9]),
        )
        for row in rows
    ]


def dismiss_shift(shift_id: str) -> bool:
    """Mark a shift as dismissed."""
    conn = connect()
    try:
        cur = conn.cursor()
        cur.execute(
            "UPDATE pattern_shifts SET dismissed = 1, dismissed_at = ? WHERE id = ?",
            (datetime.now().isoformat(), shift_id),
        )
        conn.commit()
        return cur.rowcount > 0
    finally:
        conn.close()


def mark_shift_triggered_new_cycle(shift_id: str) -> bool:
    conn = connect()
    try:
        cur = conn.cursor()
        cur.execute("UPDATE pattern_shifts SET triggered_new_cycle = 1 WHERE id = ?", (shift_id,))
        conn.commit()
        return cur.rowcount > 0
    finally:
        conn.close()


# ---------------------------------------------------------------------------
# Picks
# ---------------------------------------------------------------------------

def save_pick(pick: Pick) -> None:
    conn = connect()
    try:
        conn.execute(
            """
            INSERT OR REPLACE INTO picks
            (id, cycle_id, numbers, secondary, target_draw_date, sum_total, odd_count,
             is_auto_pick, is_preliminary, explanation, created_at, match_count,
             secondary_match, evaluated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                pick.id,
                pick.cycle_id,
                json.dumps(list(pick.primary)),
                pick.secondary,
                pick.target_draw_date.isoformat(),
                pick.sum_total,
                pick.odd_count,
                int(pick.is_auto_pick),
                int(pick.is_preliminary),
                pick.explanation,
                pick.created_at.isoformat(),
                pick.match_count,
                None if pick.secondary_match is None else int(pick.secondary_match),
                _iso(pick.evaluated_at),
            ),
        )
        conn.commit()
    finally:
        conn.close()


def get_picks(cycle_id: Optional[str] = None, unevaluated_only: bool = False) -> List[Pick]:
    query = ("SELECT id, cycle_id, numbers, secondary, target_draw_date, sum_total, odd_count, "
             "is_auto_pick, is_preliminary, explanation, created_at, match_count, secondary_match, "
             "evaluated_at FROM picks WHERE 1=1")
    params: List[Any] = []
    if cycle_id:
        query += " AND cycle_id = ?"
        params.append(cycle_id)
    if unevaluated_only:
        query += " AND evaluated_at IS NULL"
    query += " ORDER BY target_draw_date DESC"

    conn = connect()
    try:
        cur = conn.cursor()
        cur.execute(query, params)
        rows = cur.fetchall()
    finally:
        conn.close()

    return [
        Pick(
            id=row[0],
            cycle_id=row[1],
            primary=tuple(json.loads(row[2])),
            secondary=row[3],
            target_draw_date=date.fromisoformat(row[4]),
            sum_total=row[5],
            odd_count=row[6],
            is_auto_pick=bool(row[7]),
            is_preliminary=bool(row[8]),
            explanation=row[9],
            created_at=datetime.fromisoformat(row[10]),
            match_count=row[11],
            secondary_match=None if row[12] is None else bool(row[12]),
            evaluated_at=datetime.fromisoformat(row[13]) if row[13] else None,
        )
        for row in rows
    ]


# ---------------------------------------------------------------------------
# Orchestrator results
# ---------------------------------------------------------------------------

def record_batch(result) -> Dict[str, int]:
    """Persist everything a BatchResult produced and the cycle's new state."""
    for baseline in result.baselines:
        save_baseline(baseline)
    # only preliminary baselines are ever discarded
    for baseline_id in result.discarded_baseline_ids:
        delete_baseline(baseline_id)
    for shift in result.shifts:
        save_shift(shift)
    save_cycle(result.cycle)

    summary = {
        "baselines": len(result.baselines),
        "discarded": len(result.discarded_baseline_ids),
        "shifts": len(result.shifts),
        "errors": len(result.errors),
    }
    logger.info("[DB] Recorded batch for cycle %s: %s", result.cycle.id, summary)
    return summary
