from __future__ import annotations

from datetime import date, timedelta

from dateutil.relativedelta import relativedelta

from ..errors import ValidationError
from ..utils import coerce_float

PERIODS = ("24h", "7d", "30d", "90d", "1y", "all")

# Backend aggregates only cover today/week/month/all; longer windows read "all".
AGGREGATE_FOR_PERIOD = {
    "24h": "today",
    "7d": "week",
    "30d": "month",
    "90d": "all",
    "1y": "all",
    "all": "all",
}

# Funding summaries name the all-time aggregate "total".
_SUMMARY_FIELD = {"today": "today", "week": "week", "month": "month", "all": "total"}

_LOOKBACK_DAYS = {"24h": 1, "7d": 7, "30d": 30, "90d": 90}


def validate_period(period: str) -> str:
    if period not in PERIODS:
        raise ValidationError(f"period must be one of {'|'.join(PERIODS)}")
    return period


def period_date_range(period: str, today: date | None = None) -> tuple[date | None, date | None]:
    validate_period(period)
    end = today or date.today()
    if period == "all":
        return None, None
    if period == "1y":
        return end - relativedelta(years=1), end
    return end - timedelta(days=_LOOKBACK_DAYS[period]), end


def _get(item, key: str):
    if isinstance(item, dict):
        return item.get(key)
    return getattr(item, key, None)


def aggregate_value(item, aggregate: str) -> float:
    return coerce_float(_get(item, _SUMMARY_FIELD[aggregate]))


def select_aggregate(item, period: str, fallback_to_month: bool = False) -> float:
    """Pick the backend aggregate that matches ``period``.

    With ``fallback_to_month`` an "all" aggregate of exactly 0 reads the month
    figure instead (the cost view treats a zero lifetime total as missing).
    """
    aggregate = AGGREGATE_FOR_PERIOD[validate_period(period)]
    value = aggregate_value(item, aggregate)
    if aggregate == "all" and fallback_to_month and value == 0:
        return aggregate_value(item, "month")
    return value


def in_currency(summaries, currency: str | None):
    if currency is None:
        return list(summaries or [])
    return [s for s in summaries or [] if _get(s, "currency") == currency]


def funding_totals(summaries, currency: str = "USDT") -> dict:
    selected = in_currency(summaries, currency)
    return {agg: sum(aggregate_value(s, agg) for s in selected) for agg in ("today", "week", "month", "all")}


def funding_period_value(summaries, period: str, currency: str = "USDT") -> float:
    totals = funding_totals(summaries, currency)
    aggregate = AGGREGATE_FOR_PERIOD[validate_period(period)]
    value = totals[aggregate]
    if aggregate == "all" and value == 0:
        return totals["month"]
    return value


def funding_flows(summaries, period: str, currency: str = "USDT") -> dict:
    selected = in_currency(summaries, currency)
    values = [select_aggregate(s, period) for s in selected]
    received = sum(v for v in values if v > 0)
    paid = sum(-v for v in values if v < 0)
    return {
        "currency": currency,
        "period": period,
        "received": received,
        "paid": paid,
        "net": received - paid,
        "symbols": len(selected),
    }


def funding_waterfall(summaries, currency: str = "USDT") -> list[dict]:
    totals = funding_totals(summaries, currency)
    out = []
    for agg, label in (("today", "24h"), ("week", "7d"), ("month", "30d"), ("all", "all")):
        value = totals[agg]
        out.append({"aggregate": agg, "label": label, "value": value, "abs_value": abs(value), "is_positive": value >= 0})
    return out


def funding_trend(waterfall: list[dict]) -> dict:
    if len(waterfall) < 2:
        return {"direction": "neutral", "change": 0.0}
    change = waterfall[-1]["value"] - waterfall[0]["value"]
    direction = "positive" if change > 0 else "negative" if change < 0 else "neutral"
    return {"direction": direction, "change": change}


def rank_by_total(summaries) -> list:
    return sorted(summaries or [], key=lambda s: abs(aggregate_value(s, "all")), reverse=True)
