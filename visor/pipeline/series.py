from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date

import pandas as pd

from ..utils import coerce_float, parse_date


@dataclass(frozen=True)
class DayChange:
    date: date
    change: float


def _field(point, name: str):
    if isinstance(point, dict):
        return point.get(name)
    return getattr(point, name, None)


def _require_ascending(series: pd.Series) -> pd.Series:
    if not series.index.is_monotonic_increasing:
        raise ValueError("series must be sorted ascending by date")
    return series


def points_to_series(points, field: str, date_field: str = "date") -> pd.Series:
    """Index one numeric field of daily points by date.

    Callers own ordering: points must already be ascending by date, anything
    else raises ``ValueError`` instead of being re-sorted.
    """
    points = list(points or [])
    if not points:
        return pd.Series(dtype=float, index=pd.DatetimeIndex([]))
    index = pd.DatetimeIndex([pd.Timestamp(parse_date(_field(p, date_field))) for p in points])
    values = [coerce_float(_field(p, field)) for p in points]
    return _require_ascending(pd.Series(values, index=index, dtype=float))


def _as_series(values) -> pd.Series:
    if isinstance(values, pd.Series):
        return values.astype(float)
    return pd.Series([coerce_float(v) for v in (values or [])], dtype=float)


def cumulative(values) -> pd.Series:
    return _as_series(values).cumsum()


def endpoint_delta(values) -> float:
    s = _as_series(values)
    if s.empty:
        return 0.0
    return float(s.iloc[-1] - s.iloc[0])


def percent_change(first: float, last: float) -> float:
    # 0 instead of inf/nan keeps display stable when the base is zero.
    if first == 0:
        return 0.0
    return float((last - first) / first * 100)


def series_percent_change(values) -> float:
    s = _as_series(values)
    if s.empty:
        return 0.0
    return percent_change(float(s.iloc[0]), float(s.iloc[-1]))


def daily_deltas(values) -> pd.Series:
    """Change of each point against the one before, labelled with the later point."""
    s = _as_series(values)
    if s.size < 2:
        return s.iloc[0:0]
    return s.diff().iloc[1:]


def _extreme_value(values, pick) -> DayChange | None:
    s = _as_series(values)
    if s.empty:
        return None
    pos = int(pick(s.to_numpy()))  # argmax/argmin return the first occurrence
    label = s.index[pos]
    day = label.date() if isinstance(label, pd.Timestamp) else label
    return DayChange(date=day, change=float(s.iloc[pos]))


def best_day(values) -> DayChange | None:
    return _extreme_value(daily_deltas(values), lambda arr: arr.argmax())


def worst_day(values) -> DayChange | None:
    return _extreme_value(daily_deltas(values), lambda arr: arr.argmin())


def average_daily_change(values) -> float:
    deltas = daily_deltas(values)
    if deltas.empty:
        return 0.0
    return float(deltas.mean())


def y_domain(values) -> tuple[float, float]:
    s = _as_series(values)
    if s.empty:
        return (-1.0, 1.0)
    lo = float(s.min())
    hi = float(s.max())
    pad = max((hi - lo) * 0.1, abs(hi) * 0.1)
    if pad == 0:
        pad = 1.0
    return (lo - pad, hi + pad)


def days_in_range(first, last) -> int:
    first_dt = pd.Timestamp(first)
    last_dt = pd.Timestamp(last)
    days = math.floor((last_dt - first_dt) / pd.Timedelta(days=1))
    return max(1, days)


def estimate_avg_entry_price(first_btc: float, first_usd: float, current_btc: float, current_usd: float) -> float:
    """Rough average BTC entry price.

    Heuristic only: first-day USD value over first-day BTC amount, or the
    current ratio when the first day held no BTC. It is not reconciled against
    trade fills and will drift from true cost basis whenever BTC was bought or
    sold inside the window.
    """
    if first_btc > 0:
        return first_usd / first_btc
    if current_btc > 0:
        return current_usd / current_btc
    return 0.0


def goal_progress(current: float, goal: float | None) -> dict | None:
    if not goal or goal <= 0:
        return None
    return {
        "goal": goal,
        "progress_pct": min(current / goal * 100, 100.0),
        "remaining": max(0.0, goal - current),
    }


def _day_change_dict(day: DayChange | None):
    return None if day is None else {"date": day.date.isoformat(), "change": day.change}


def summarize_equity(points: list, recent_points: int = 30) -> dict:
    usd = points_to_series(points, "equity_usd")
    btc = points_to_series(points, "equity_btc")
    if usd.empty:
        return {
            "has_data": False,
            "points": [],
            "recent_points": [],
            "usd_return_pct": 0.0,
            "btc_return_pct": 0.0,
            "change_7d_pct": 0.0,
            "change_period_pct": 0.0,
            "first_point": None,
            "last_point": None,
            "y_domain_usd": y_domain(usd),
        }
    change_7d = 0.0
    if usd.size >= 8:
        change_7d = percent_change(float(usd.iloc[-8]), float(usd.iloc[-1]))
    usd_return = series_percent_change(usd)
    return {
        "has_data": True,
        "points": points,
        "recent_points": points[-recent_points:],
        "usd_return_pct": usd_return,
        "btc_return_pct": series_percent_change(btc),
        "change_7d_pct": change_7d,
        "change_period_pct": usd_return if usd.size >= 2 else 0.0,
        "first_point": points[0],
        "last_point": points[-1],
        "y_domain_usd": y_domain(usd),
    }


def summarize_funding(points: list) -> dict:
    daily = points_to_series(points, "total_funding")
    if daily.empty:
        return {"has_data": False, "points": [], "y_domain": y_domain(daily), "stats": None}
    running = cumulative(daily)
    rows = []
    for point, (_, total) in zip(points, running.items()):
        rows.append(
            {
                "date": _field(point, "date"),
                "daily_funding": coerce_float(_field(point, "total_funding")),
                "cumulative_funding": float(total),
                "funding_paid": coerce_float(_field(point, "funding_paid")),
                "funding_received": coerce_float(_field(point, "funding_received")),
                "transaction_count": _field(point, "transaction_count") or 0,
                "symbols": list(_field(point, "symbols") or []),
                "is_positive": float(total) >= 0,
            }
        )
    return {
        "has_data": True,
        "points": rows,
        "y_domain": y_domain(running),
        "stats": {
            "min": float(running.min()),
            "max": float(running.max()),
            "positive_days": int((running > 0).sum()),
            "negative_days": int((running < 0).sum()),
            "neutral_days": int((running == 0).sum()),
            # Each day's funding is already that day's change in the running total.
            "best_day": _day_change_dict(_extreme_value(daily, lambda arr: arr.argmax())),
            "worst_day": _day_change_dict(_extreme_value(daily, lambda arr: arr.argmin())),
        },
    }


def summarize_btc(points: list, goal: float | None = None) -> dict:
    """BTC accumulation view derived from equity-curve points."""
    amounts = points_to_series(points, "equity_btc")
    if amounts.empty:
        return {"has_data": False, "timeseries": None, "summary": None}
    values = points_to_series(points, "equity_usd")
    first_btc, last_btc = float(amounts.iloc[0]), float(amounts.iloc[-1])
    first_usd, last_usd = float(values.iloc[0]), float(values.iloc[-1])

    btc_points = [
        {
            "date": _field(p, "date"),
            "btc_amount": coerce_float(_field(p, "equity_btc")),
            "btc_value_usd": coerce_float(_field(p, "equity_usd")),
            "pnl_cumulative": coerce_float(_field(p, "pnl_cumulative")),
        }
        for p in points
    ]
    avg_entry = estimate_avg_entry_price(first_btc, first_usd, last_btc, last_usd)
    cost_basis = avg_entry * last_btc
    unrealized = last_usd - cost_basis
    return {
        "has_data": True,
        "timeseries": {
            "points": btc_points,
            "current_btc": last_btc,
            "current_value_usd": last_usd,
            "total_change_btc": endpoint_delta(amounts),
            "total_change_pct": percent_change(first_btc, last_btc),
            "avg_daily_change": average_daily_change(amounts),
            "best_day": _day_change_dict(best_day(amounts)),
            "worst_day": _day_change_dict(worst_day(amounts)),
            "y_domain": y_domain(amounts),
        },
        "summary": {
            "current_btc": last_btc,
            "current_value_usd": last_usd,
            "avg_entry_price": avg_entry,
            "avg_entry_price_is_estimate": True,
            "cost_basis": cost_basis,
            "unrealized_pnl": unrealized,
            "unrealized_pnl_pct": unrealized / cost_basis * 100 if cost_basis > 0 else 0.0,
            "days_accumulating": days_in_range(amounts.index[0], amounts.index[-1]),
            "goal": goal_progress(last_btc, goal),
        },
    }
