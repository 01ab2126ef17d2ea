from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path

# Ensure repo root is on sys.path.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from visor.app import VisorApp
from visor.logging import setup_logging
from visor.pipeline.periods import PERIODS


def _strip_points(data: dict | None) -> dict | None:
    if not data:
        return data
    out = {k: v for k, v in data.items() if k not in ("points", "recent_points")}
    if isinstance(out.get("timeseries"), dict):
        out["timeseries"] = {k: v for k, v in out["timeseries"].items() if k != "points"}
    return out


async def _run(args) -> int:
    async with VisorApp() as app:
        if not app.session.is_authenticated:
            print("Not authenticated. Run: portfolios.py login <email>", file=sys.stderr)
            return 1
        if not app.portfolios.is_connected:
            print("No portfolios linked.", file=sys.stderr)
            return 1
        dash = app.dashboard
        await asyncio.gather(
            dash.fetch_equity(args.period),
            dash.fetch_funding(args.currency, args.period),
            dash.fetch_fees(args.period),
            dash.fetch_btc(args.period, goal=args.btc_goal),
        )
        report = {"active_portfolio": app.portfolios.active_id, "period": args.period}
        failed = False
        for kind, state in dash.states.items():
            data = state.data if args.full else _strip_points(state.data)
            report[kind] = {"error": state.error, "data": data}
            failed = failed or state.error is not None
        print(json.dumps(report, indent=2, default=str))
        return 1 if failed else 0


def main():
    ap = argparse.ArgumentParser(description="Print derived equity, funding, fee and BTC stats.")
    ap.add_argument("--period", default="30d", choices=PERIODS)
    ap.add_argument("--currency", default="USDT")
    ap.add_argument("--btc-goal", type=float, default=None)
    ap.add_argument("--full", action="store_true", help="include per-day points")
    ap.add_argument("--log-level", help="overrides LOG_LEVEL")
    args = ap.parse_args()
    setup_logging(args.log_level)
    sys.exit(asyncio.run(_run(args)))


if __name__ == "__main__":
    main()
