from __future__ import annotations

import asyncio
from dataclasses import dataclass

import pydantic
import structlog

from .api.client import BackendClient
from .api.envelopes import unwrap_data
from .api.schemas import DashboardSummary, EquityPoint, FeeSummary, FundingSummary, FundingTimeseries, TransactionSummary
from .errors import VisorError
from .pipeline import fees as fee_calc
from .pipeline import periods
from .pipeline import series
from .portfolios import PortfolioRegistry
from .utils import Listeners

log = structlog.get_logger()

SERIES_KINDS = ("equity", "funding", "fees", "btc")


@dataclass
class SeriesState:
    data: dict | None = None
    is_loading: bool = False
    error: str | None = None


def _percent_of_equity(pnl: float, equity: float) -> float:
    return pnl / equity * 100 if equity else 0.0


class Dashboard:
    """Fetch-and-derive calls, one per series type, keyed by the active portfolio.

    Each call records loading/error state under its kind and does not raise
    for backend or payload failures. An unknown period raises
    ``ValidationError`` before any request is made.
    A result that arrives after a newer call of the same kind, or after
    ``close()``, is dropped.
    """

    def __init__(self, client: BackendClient, registry: PortfolioRegistry, default_period: str = "30d"):
        self.client = client
        self.registry = registry
        self.default_period = default_period
        self.states = {kind: SeriesState() for kind in SERIES_KINDS}
        self._generations = dict.fromkeys(SERIES_KINDS, 0)
        self._closed = False
        self._listeners = Listeners()

    def subscribe(self, callback):
        return self._listeners.subscribe(callback)

    def close(self):
        self._closed = True

    def clear_error(self, kind: str):
        self.states[kind].error = None
        self._listeners.notify(kind, self.states[kind])

    def _params(self, **extra) -> dict:
        # No credential_id means the aggregate view across every portfolio.
        params = {"credential_id": self.registry.active_id}
        params.update(extra)
        return params

    async def _run(self, kind: str, loader) -> SeriesState:
        self._generations[kind] += 1
        generation = self._generations[kind]
        state = self.states[kind]

        def _stale():
            return self._closed or generation != self._generations[kind]

        if not self.registry.is_connected:
            state.data, state.error, state.is_loading = None, None, False
            self._listeners.notify(kind, state)
            return state

        state.is_loading = True
        state.error = None
        self._listeners.notify(kind, state)
        try:
            data = await loader()
        except VisorError as exc:
            if _stale():
                return state
            log.warning("series_fetch_failed", kind=kind, err=exc.message, status=exc.status)
            state.data, state.error = None, exc.message
        except (pydantic.ValidationError, ValueError, TypeError, AttributeError, KeyError) as exc:
            if _stale():
                return state
            log.error("series_payload_invalid", kind=kind, err=str(exc)[:500])
            state.data, state.error = None, "Invalid response from server"
        else:
            if _stale():
                return state
            state.data = data
        finally:
            if generation == self._generations[kind]:
                state.is_loading = False
        self._listeners.notify(kind, state)
        return state

    async def _equity_points(self, period: str) -> list[dict]:
        payload = await self.client.get(
            "/dashboard/equity-curve", self._params(period=period), fallback="Failed to load equity curve"
        )
        data = unwrap_data(payload, {})
        if not isinstance(data, dict):
            data = {}
        return [EquityPoint.model_validate(p).model_dump() for p in data.get("points") or []]

    async def fetch_equity(self, period: str | None = None) -> SeriesState:
        period = periods.validate_period(period or self.default_period)

        async def _load():
            points, summary_payload = await asyncio.gather(
                self._equity_points(period),
                self.client.get("/dashboard/summary", self._params(), fallback="Failed to load summary"),
            )
            summary = DashboardSummary.model_validate(unwrap_data(summary_payload, {}) or {})
            derived = series.summarize_equity(points)
            derived["period"] = period
            derived["summary"] = summary.model_dump()
            derived["pnl_pct"] = {
                "today": _percent_of_equity(summary.today_pnl, summary.current_equity_usd),
                "week": _percent_of_equity(summary.week_pnl, summary.current_equity_usd),
                "month": _percent_of_equity(summary.month_pnl, summary.current_equity_usd),
            }
            return derived

        return await self._run("equity", _load)

    async def _funding_summaries(self) -> list[FundingSummary]:
        payload = await self.client.get("/funding/summary", self._params(), fallback="Failed to load funding")
        return [FundingSummary.model_validate(item) for item in unwrap_data(payload, []) or []]

    async def fetch_funding(self, currency: str = "USDT", period: str | None = None, group_by: str = "day") -> SeriesState:
        period = periods.validate_period(period or self.default_period)
        start, end = periods.period_date_range(period)

        async def _load():
            summaries, ts_payload = await asyncio.gather(
                self._funding_summaries(),
                self.client.get(
                    "/funding/timeseries",
                    self._params(
                        currency=currency,
                        group_by=group_by,
                        start_date=start.isoformat() if start else None,
                        end_date=end.isoformat() if end else None,
                    ),
                    fallback="Failed to load funding timeseries",
                ),
            )
            timeseries = FundingTimeseries.model_validate(unwrap_data(ts_payload, {}) or {})
            derived = series.summarize_funding([p.model_dump() for p in timeseries.data])
            waterfall = periods.funding_waterfall(summaries, currency)
            derived.update(
                {
                    "period": period,
                    "currency": currency,
                    "flows": periods.funding_flows(summaries, period, currency),
                    "waterfall": waterfall,
                    "trend": periods.funding_trend(waterfall),
                    "by_symbol": [s.model_dump() for s in periods.rank_by_total(periods.in_currency(summaries, currency))],
                    "other_currencies": [s.model_dump() for s in summaries if s.currency != currency],
                    "backend_summary": timeseries.summary,
                }
            )
            return derived

        return await self._run("funding", _load)

    async def fetch_fees(self, period: str | None = None, funding_currency: str = "USDT") -> SeriesState:
        period = periods.validate_period(period or self.default_period)

        async def _load():
            fee_payload, tx_payload, summaries = await asyncio.gather(
                self.client.get("/fees/summary", self._params(), fallback="Failed to load fees"),
                self.client.get(
                    "/transactions/summary", self._params(period=period), fallback="Failed to load transaction summary"
                ),
                self._funding_summaries(),
            )
            fee_summary = FeeSummary.model_validate(unwrap_data(fee_payload, {}) or {})
            tx_data = unwrap_data(tx_payload)
            tx_summary = TransactionSummary.model_validate(tx_data) if tx_data else None
            period_funding = periods.funding_period_value(summaries, period, funding_currency)
            derived = fee_calc.fee_breakdown(fee_summary, tx_summary, period_funding)
            derived["period"] = period
            return derived

        return await self._run("fees", _load)

    async def fetch_btc(self, period: str | None = None, goal: float | None = None) -> SeriesState:
        period = periods.validate_period(period or self.default_period)

        async def _load():
            derived = series.summarize_btc(await self._equity_points(period), goal=goal)
            derived["period"] = period
            return derived

        return await self._run("btc", _load)
