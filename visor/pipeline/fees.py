from __future__ import annotations

from ..utils import coerce_float


def blend_period_fees(maker_total: float, taker_total: float, period_total_fees: float) -> dict:
    """Split a period's fee total using the lifetime maker/taker mix.

    Proportional estimate, not a ledger replay: it assumes the maker/taker
    ratio was the same in the period as over the account's lifetime.
    """
    lifetime = maker_total + taker_total
    if lifetime == 0:
        return {"maker": 0.0, "taker": 0.0}
    return {
        "maker": period_total_fees * maker_total / lifetime,
        "taker": period_total_fees * taker_total / lifetime,
    }


def fee_mix_pct(maker_total: float, taker_total: float) -> dict:
    total = maker_total + taker_total
    if total <= 0:
        return {"maker_pct": 0.0, "taker_pct": 0.0}
    return {"maker_pct": maker_total / total * 100, "taker_pct": taker_total / total * 100}


def impact_on_pnl(total_fees: float, period_pnl: float) -> float:
    if period_pnl == 0:
        return 0.0
    return total_fees / abs(period_pnl) * 100


def total_costs(total_fees: float, period_funding: float) -> float:
    # Received funding is income, not a cost.
    return total_fees + (abs(period_funding) if period_funding < 0 else 0.0)


def _get(obj, key: str):
    if obj is None:
        return None
    if isinstance(obj, dict):
        return obj.get(key)
    return getattr(obj, key, None)


def fee_breakdown(fee_summary, tx_summary=None, period_funding: float = 0.0) -> dict:
    maker_total = coerce_float(_get(fee_summary, "maker_total"))
    taker_total = coerce_float(_get(fee_summary, "taker_total"))
    lifetime_fees = maker_total + taker_total
    period_fees = coerce_float(_get(tx_summary, "total_fees"))
    period_pnl = coerce_float(_get(tx_summary, "total_pnl"))
    display_fees = period_fees if period_fees > 0 else lifetime_fees

    blended = blend_period_fees(maker_total, taker_total, period_fees)
    return {
        "lifetime": {
            "maker_total": maker_total,
            "taker_total": taker_total,
            "total": lifetime_fees,
            **fee_mix_pct(maker_total, taker_total),
        },
        "period_fees": period_fees,
        "display_fees": display_fees,
        "period_maker": blended["maker"],
        "period_taker": blended["taker"],
        "chart": [
            {"name": "maker", "value": blended["maker"] or maker_total},
            {"name": "taker", "value": blended["taker"] or taker_total},
        ],
        "period_pnl": period_pnl,
        "impact_on_pnl_pct": impact_on_pnl(display_fees, period_pnl),
        "period_funding": period_funding,
        "total_costs": total_costs(display_fees, period_funding),
    }
