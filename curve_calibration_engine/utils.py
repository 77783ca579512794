from __future__ import annotations

import re
import pandas as pd
from typing import List, Tuple
from functools import lru_cache


_TENOR_RE = re.compile(r"^(\d+)([DWMY])$")


def yearfrac(start: pd.Timestamp, end: pd.Timestamp, convention: str = "ACT/365F") -> float:
    """
    Year fraction between two dates under a day count convention.

    Supported:
    - ACT/365, ACT/365F
    - ACT/360
    - 30/360, 30/360US (US bond basis)
    """
    start = pd.Timestamp(start)
    end = pd.Timestamp(end)

    convention = convention.upper().replace(" ", "")
    if end < start:
        raise ValueError(f"end < start: {start=} {end=}")

    if convention in ("ACT/365", "ACT/365F"):
        return (end - start).days / 365.0

    if convention == "ACT/360":
        return (end - start).days / 360.0

    if convention in ("30/360", "30/360US"):
        y1, m1, d1 = start.year, start.month, start.day
        y2, m2, d2 = end.year, end.month, end.day

        if d1 == 31:
            d1 = 30
        if d2 == 31 and d1 == 30:
            d2 = 30

        return ((y2 - y1) * 360 + (m2 - m1) * 30 + (d2 - d1)) / 360.0

    raise ValueError(f"Unsupported day count convention: {convention}")


def parse_tenor(tenor: str) -> Tuple[int, str]:
    """'3M' -> (3, 'M'). Units: D, W, M, Y."""
    m = _TENOR_RE.match(str(tenor).strip().upper())
    if m is None:
        raise ValueError(f"Invalid tenor: {tenor!r}")
    return int(m.group(1)), m.group(2)


def tenor_months(tenor: str) -> int:
    n, unit = parse_tenor(tenor)
    if unit == "M":
        return n
    if unit == "Y":
        return 12 * n
    raise ValueError(f"Tenor {tenor!r} is not a whole number of months")


def add_tenor(date: pd.Timestamp, tenor: str) -> pd.Timestamp:
    """
    Calendar date arithmetic only (no business day adjustment).
    In production: adjust with holiday calendars.
    """
    n, unit = parse_tenor(tenor)
    date = pd.Timestamp(date)
    if unit == "D":
        return date + pd.Timedelta(days=n)
    if unit == "W":
        return date + pd.Timedelta(weeks=n)
    if unit == "M":
        return date + pd.DateOffset(months=n)
    return date + pd.DateOffset(years=n)


def accrual_schedule(start: pd.Timestamp, end: pd.Timestamp, frequency: str) -> List[Tuple[pd.Timestamp, pd.Timestamp]]:
    """
    Regular accrual periods from start to end, rolled forward from start.
    A final short stub is kept when the frequency does not divide the tenor.
    """
    start = pd.Timestamp(start)
    end = pd.Timestamp(end)
    if end <= start:
        raise ValueError("Schedule end must be after start.")

    months = tenor_months(frequency)
    if months <= 0:
        raise ValueError("Frequency must be positive.")

    periods: List[Tuple[pd.Timestamp, pd.Timestamp]] = []
    k = 1
    prev = start
    while True:
        # roll from start to avoid day-of-month drift
        d = start + pd.DateOffset(months=months * k)
        if d >= end:
            periods.append((prev, end))
            break
        periods.append((prev, d))
        prev = d
        k += 1
    return periods


@lru_cache(maxsize=10_000)
def cached_schedule(start: pd.Timestamp, end: pd.Timestamp, frequency: str) -> Tuple[Tuple[pd.Timestamp, pd.Timestamp], ...]:
    """Cache schedules by (start, end, frequency)."""
    return tuple(accrual_schedule(pd.Timestamp(start), pd.Timestamp(end), str(frequency)))


def spot_date(val_date: pd.Timestamp, lag_days: int = 2) -> pd.Timestamp:
    """
    Simplified spot date: valuation date + lag_days (calendar days).
    """
    return pd.Timestamp(val_date) + pd.Timedelta(days=lag_days)
