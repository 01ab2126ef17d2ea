import asyncio
import unittest

import httpx

from backend_stub import BASE_URL, FakeBackend, portfolio
from visor.app import VisorApp
from visor.config import Settings
from visor.db import StateStore
from visor.errors import ValidationError


def _equity_payload(*rows):
    points = [{"date": d, "equityUSD": usd, "equityBTC": btc, "pnlCumulative": 0} for d, usd, btc in rows]
    return {"success": True, "data": {"points": points}}


EQUITY = _equity_payload(
    ("2026-04-01", 20000.0, 0.5),
    ("2026-04-02", 21000.0, 0.45),
    ("2026-04-05", 60000.0, 1.0),
)


class DashboardTestCase(unittest.IsolatedAsyncioTestCase):
    async def make_app(self, backend, login=True):
        store = StateStore(":memory:")
        app = VisorApp(Settings(api_base_url=BASE_URL), store=store, transport=backend.transport())
        self.addAsyncCleanup(app.aclose)
        if login:
            self.assertTrue(await app.login("me@example.com", "secret"))
        return app, store


class SeriesFetchTests(DashboardTestCase):
    async def test_btc_series_for_active_portfolio(self):
        backend = FakeBackend([portfolio("a"), portfolio("b")])
        backend.route("GET", "/dashboard/equity-curve", lambda req: httpx.Response(200, json=EQUITY))
        app, _ = await self.make_app(backend)
        app.set_active_portfolio("b")

        state = await app.dashboard.fetch_btc("30d", goal=2.0)
        self.assertIsNone(state.error)
        self.assertFalse(state.is_loading)
        self.assertEqual(state.data["period"], "30d")
        self.assertEqual(state.data["summary"]["current_btc"], 1.0)
        self.assertEqual(state.data["summary"]["goal"]["progress_pct"], 50.0)

        request = backend.calls[-1][2]
        self.assertEqual(request.url.params.get("credential_id"), "b")
        self.assertEqual(request.url.params.get("period"), "30d")

    async def test_global_view_requests_aggregate(self):
        backend = FakeBackend([portfolio("a")])
        backend.route("GET", "/dashboard/equity-curve", lambda req: httpx.Response(200, json=EQUITY))
        app, _ = await self.make_app(backend)
        app.set_active_portfolio(None)
        await app.dashboard.fetch_btc()
        self.assertNotIn("credential_id", backend.calls[-1][2].url.params)

    async def test_fees_blend_period_total(self):
        backend = FakeBackend([portfolio("a")])
        backend.route(
            "GET",
            "/fees/summary",
            lambda req: httpx.Response(200, json={"success": True, "data": {"maker_total": "30", "taker_total": "70"}}),
        )
        backend.route(
            "GET",
            "/transactions/summary",
            lambda req: httpx.Response(200, json={"success": True, "data": {"total_fees": 20, "total_pnl": -200}}),
        )
        backend.route(
            "GET",
            "/funding/summary",
            lambda req: httpx.Response(
                200,
                json={"success": True, "data": [{"symbol": "BTCUSDT", "currency": "USDT", "week": -5, "month": 3}]},
            ),
        )
        app, _ = await self.make_app(backend)
        state = await app.dashboard.fetch_fees("7d")
        self.assertIsNone(state.error)
        self.assertAlmostEqual(state.data["period_maker"], 6.0)
        self.assertAlmostEqual(state.data["period_taker"], 14.0)
        self.assertEqual(state.data["period_funding"], -5.0)
        self.assertEqual(state.data["total_costs"], 25.0)

    async def test_funding_series_sends_date_range(self):
        backend = FakeBackend([portfolio("a")])
        backend.route("GET", "/funding/summary", lambda req: httpx.Response(200, json={"success": True, "data": []}))
        backend.route(
            "GET",
            "/funding/timeseries",
            lambda req: httpx.Response(
                200,
                json={
                    "success": True,
                    "data": {
                        "currency": "USDT",
                        "group_by": "day",
                        "data": [
                            {"date": "2026-04-01", "total_funding": "2"},
                            {"date": "2026-04-02", "total_funding": "-3"},
                        ],
                    },
                },
            ),
        )
        app, _ = await self.make_app(backend)
        state = await app.dashboard.fetch_funding(period="7d")
        self.assertEqual([p["cumulative_funding"] for p in state.data["points"]], [2.0, -1.0])
        request = next(r for m, p, r in backend.calls if p == "/funding/timeseries")
        self.assertIn("start_date", request.url.params)
        self.assertEqual(request.url.params.get("group_by"), "day")

    async def test_backend_failure_becomes_error_state(self):
        backend = FakeBackend([portfolio("a")])
        backend.route(
            "GET", "/dashboard/equity-curve", lambda req: httpx.Response(500, json={"success": False, "error": "db down"})
        )
        app, _ = await self.make_app(backend)
        state = await app.dashboard.fetch_btc()
        self.assertEqual(state.error, "db down")
        self.assertIsNone(state.data)
        self.assertFalse(state.is_loading)
        app.dashboard.clear_error("btc")
        self.assertIsNone(app.dashboard.states["btc"].error)

    async def test_unsorted_points_are_reported(self):
        backend = FakeBackend([portfolio("a")])
        backend.route(
            "GET",
            "/dashboard/equity-curve",
            lambda req: httpx.Response(
                200, json=_equity_payload(("2026-04-02", 1.0, 0.1), ("2026-04-01", 2.0, 0.2))
            ),
        )
        app, _ = await self.make_app(backend)
        state = await app.dashboard.fetch_btc()
        self.assertEqual(state.error, "Invalid response from server")

    async def test_unexpected_equity_shape_is_no_data(self):
        backend = FakeBackend([portfolio("a")])
        backend.route(
            "GET",
            "/dashboard/equity-curve",
            lambda req: httpx.Response(200, json={"success": True, "data": [{"date": "2026-04-01"}]}),
        )
        app, _ = await self.make_app(backend)
        state = await app.dashboard.fetch_btc("30d")
        self.assertFalse(state.is_loading)
        self.assertIsNone(state.error)
        self.assertFalse(state.data["has_data"])

    async def test_malformed_points_leave_loading_cleared(self):
        backend = FakeBackend([portfolio("a")])
        backend.route(
            "GET",
            "/dashboard/equity-curve",
            lambda req: httpx.Response(200, json={"success": True, "data": {"points": ["2026-04-01"]}}),
        )
        app, _ = await self.make_app(backend)
        state = await app.dashboard.fetch_btc("30d")
        self.assertFalse(state.is_loading)
        self.assertEqual(state.error, "Invalid response from server")
        self.assertIsNone(state.data)

    async def test_invalid_period_fails_before_fetch(self):
        backend = FakeBackend([portfolio("a")])
        app, _ = await self.make_app(backend)
        before = len(backend.calls)
        with self.assertRaises(ValidationError):
            await app.dashboard.fetch_equity("2w")
        self.assertEqual(len(backend.calls), before)

    async def test_no_portfolios_means_no_data(self):
        backend = FakeBackend([])
        app, _ = await self.make_app(backend)
        state = await app.dashboard.fetch_btc()
        self.assertIsNone(state.data)
        self.assertIsNone(state.error)
        self.assertNotIn("/dashboard/equity-curve", backend.paths("GET"))

    async def test_superseded_fetch_is_dropped(self):
        backend = FakeBackend([portfolio("a")])
        gate = asyncio.Event()
        entered = asyncio.Event()
        slow_payload = _equity_payload(("2026-04-01", 1.0, 0.1))

        async def handler(request):
            if request.url.params.get("period") == "7d":
                entered.set()
                await gate.wait()
                return httpx.Response(200, json=slow_payload)
            return httpx.Response(200, json=EQUITY)

        backend.route("GET", "/dashboard/equity-curve", handler)
        app, _ = await self.make_app(backend)
        slow = asyncio.create_task(app.dashboard.fetch_btc("7d"))
        await entered.wait()
        await app.dashboard.fetch_btc("30d")
        gate.set()
        await slow
        self.assertEqual(app.dashboard.states["btc"].data["period"], "30d")


class AppTests(DashboardTestCase):
    async def test_login_loads_portfolios_and_logout_resets(self):
        backend = FakeBackend([portfolio("a"), portfolio("b")])
        app, store = await self.make_app(backend)
        self.assertEqual(app.portfolios.ids, ["a", "b"])
        self.assertEqual(store.get("visor_active_portfolio"), "a")

        app.logout()
        self.assertFalse(app.session.is_authenticated)
        self.assertEqual(app.portfolios.portfolios, [])
        self.assertIsNone(store.get("visor_active_portfolio"))
        self.assertIsNone(store.get("visor_jwt"))

    async def test_start_restores_session(self):
        backend = FakeBackend([portfolio("a")])
        store = StateStore(":memory:")
        store.set("visor_jwt", "tok-1")
        app = VisorApp(Settings(api_base_url=BASE_URL), store=store, transport=backend.transport())
        self.addAsyncCleanup(app.aclose)
        self.assertTrue(await app.start())
        self.assertEqual(app.portfolios.active_id, "a")

    async def test_failed_login_does_not_load(self):
        backend = FakeBackend([portfolio("a")])
        app, _ = await self.make_app(backend, login=False)
        self.assertFalse(await app.login("me@example.com", "nope"))
        self.assertEqual(backend.paths("GET"), [])


if __name__ == "__main__":
    unittest.main()
