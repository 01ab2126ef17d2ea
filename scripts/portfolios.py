from __future__ import annotations

import argparse
import asyncio
import getpass
import json
import sys
from pathlib import Path

# Ensure repo root is on sys.path.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from visor.app import VisorApp
from visor.errors import VisorError
from visor.logging import setup_logging
from visor.utils import format_time_ago


def _print_portfolios(app: VisorApp):
    rows = []
    for p in app.portfolios.portfolios:
        rows.append(
            {
                "id": p.id,
                "label": p.label,
                "exchange": p.exchange,
                "active": p.id == app.portfolios.active_id,
                "api_key": p.api_key_masked,
                "last_sync": format_time_ago(p.last_sync_at) or None,
            }
        )
    print(json.dumps({"global_view": app.portfolios.global_view, "portfolios": rows}, indent=2))


async def _run(args) -> int:
    async with VisorApp() as app:
        if args.cmd == "login":
            password = args.password or getpass.getpass("Password: ")
            ok = await app.login(args.email, password)
            if not ok:
                print(f"Login failed: {app.session.error}", file=sys.stderr)
                return 1
            _print_portfolios(app)
            return 0
        if args.cmd == "logout":
            app.logout()
            return 0
        if not app.session.is_authenticated:
            print("Not authenticated. Run: portfolios.py login <email>", file=sys.stderr)
            return 1
        if args.cmd == "list":
            _print_portfolios(app)
        elif args.cmd == "use":
            app.set_active_portfolio(None if args.portfolio_id == "all" else args.portfolio_id)
            _print_portfolios(app)
        elif args.cmd == "add":
            secret = args.secret or getpass.getpass("Secret: ")
            await app.add_portfolio(args.label, args.api_key, secret, args.exchange)
            _print_portfolios(app)
        elif args.cmd == "rename":
            await app.update_portfolio(args.portfolio_id, label=args.label)
            _print_portfolios(app)
        elif args.cmd == "remove":
            await app.remove_portfolio(args.portfolio_id)
            _print_portfolios(app)
        elif args.cmd == "sync":
            if args.portfolio_id == "all":
                result = await app.portfolios.sync_all()
            else:
                result = await app.sync_portfolio(args.portfolio_id)
            print(json.dumps({"ok": result.ok, "error": result.error}))
            return 0 if result.ok else 1
    return 0


def main():
    ap = argparse.ArgumentParser(description="Manage linked exchange portfolios.")
    sub = ap.add_subparsers(dest="cmd", required=True)
    p_login = sub.add_parser("login")
    p_login.add_argument("email")
    p_login.add_argument("--password")
    sub.add_parser("logout")
    sub.add_parser("list")
    p_use = sub.add_parser("use")
    p_use.add_argument("portfolio_id", help="portfolio id or 'all'")
    p_add = sub.add_parser("add")
    p_add.add_argument("label")
    p_add.add_argument("api_key")
    p_add.add_argument("--secret")
    p_add.add_argument("--exchange")
    p_rename = sub.add_parser("rename")
    p_rename.add_argument("portfolio_id")
    p_rename.add_argument("label")
    p_remove = sub.add_parser("remove")
    p_remove.add_argument("portfolio_id")
    p_sync = sub.add_parser("sync")
    p_sync.add_argument("portfolio_id", help="portfolio id or 'all'")
    ap.add_argument("--log-level", help="overrides LOG_LEVEL")
    args = ap.parse_args()

    setup_logging(args.log_level)
    try:
        sys.exit(asyncio.run(_run(args)))
    except VisorError as exc:
        print(f"Error: {exc.message}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
