from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from pydantic import ValidationError

from cyclewatch.models import Draw

logger = logging.getLogger(__name__)

SECONDARY_FIELDS = ["powerball", "mega_ball", "bonus_ball"]
MULTIPLIER_FIELDS = ["multiplier", "power_play"]


def parse_winning_numbers_field(s: str) -> Tuple[List[int], Optional[int]]:
    """
    Socrata datasets store winning_numbers like:
      '01 04 13 21 35' (5 main numbers, bonus in separate field)
    or '01 04 13 21 35 12' (5 main + bonus together)
    We'll parse into ([main...], bonus or None)
    """
    parts = [p.strip() for p in s.replace(",", " ").split() if p.strip()]
    nums = [int(p) for p in parts]
    if len(nums) < 5:
        raise ValueError(f"Unexpected winning_numbers format: {s}")
    main = nums[:5]
    bonus = nums[5] if len(nums) >= 6 else None
    return main, bonus


def normalize_date(s: str) -> str:
    # Socrata often returns ISO strings. We'll store ISO date-only where possible.
    # Example: '2010-02-03T00:00:00.000'
    try:
        dt = datetime.fromisoformat(s.replace('Z', '+00:00'))
        return dt.date().isoformat()
    except ValueError:
        return s[:10]


def draw_from_row(row: Dict[str, Any], source: str = "api") -> Draw:
    """Turn one raw feed row into a Draw. Raises ValueError for unusable rows."""
    wn = row.get("winning_numbers", "")
    if not wn:
        raise ValueError("Row has no winning_numbers")
    main, secondary = parse_winning_numbers_field(str(wn))

    if secondary is None:
        for field_name in SECONDARY_FIELDS:
            value = row.get(field_name)
            if value not in (None, ""):
                secondary = int(value)
                break
    if secondary is None:
        raise ValueError(f"Row has no secondary number: {row}")

    multiplier = None
    for field_name in MULTIPLIER_FIELDS:
        value = row.get(field_name)
        if value not in (None, ""):
            try:
                multiplier = int(value)
                break
            except (ValueError, TypeError):
                continue

    return Draw(
        draw_date=normalize_date(str(row.get("draw_date", ""))),
        primary=main,
        secondary=secondary,
        multiplier=multiplier,
        source=source,
    )


def parse_rows(rows: Iterable[Dict[str, Any]], source: str = "api") -> List[Draw]:
    """Parse every usable row, dropping duplicates by draw id. Bad rows are logged and skipped."""
    draws: Dict[str, Draw] = {}
    skipped = 0
    for row in rows:
        try:
            draw = draw_from_row(row, source=source)
        except (ValueError, ValidationError) as e:
            skipped += 1
            logger.warning("[PARSE] Skipping row %s: %s", row.get("draw_date"), e)
            continue
        draws.setdefault(draw.id, draw)
    if skipped:
        logger.info("[PARSE] Parsed %d draws, skipped %d rows", len(draws), skipped)
    return sorted(draws.values(), key=lambda d: d.draw_date)
