from __future__ import annotations

import httpx
import structlog

from .api.client import BackendClient
from .config import Settings
from .dashboard import Dashboard
from .db import StateStore
from .portfolios import PortfolioRegistry, SyncResult
from .session import Session

log = structlog.get_logger()


class VisorApp:
    """Owns one client session: store, HTTP client, session, registry, dashboard.

    Build it per application lifetime and tear it down with ``aclose()`` (or use
    it as an async context manager). Nothing here is module-level state.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        store: StateStore | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.settings = settings or Settings()
        self._owns_store = store is None
        self.store = store or StateStore(self.settings.state_path)
        self.client = BackendClient(
            self.settings.api_base_url,
            timeout=self.settings.http_timeout_seconds,
            transport=transport,
        )
        self.session = Session(self.client, self.store, self.settings.token_key)
        self.portfolios = PortfolioRegistry(
            self.client,
            self.store,
            self.settings.active_portfolio_key,
            default_exchange=self.settings.default_exchange,
        )
        self.dashboard = Dashboard(self.client, self.portfolios, self.settings.default_period)
        self.session.subscribe(self._on_session_change)

    def _on_session_change(self, session: Session):
        if not session.is_authenticated and self.portfolios.portfolios:
            self.portfolios.reset()

    async def start(self) -> bool:
        if self.session.restore():
            await self.portfolios.refresh()
        return self.session.is_authenticated

    async def aclose(self):
        self.dashboard.close()
        await self.portfolios.aclose()
        await self.client.aclose()
        if self._owns_store:
            self.store.close()

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()

    async def login(self, email: str, password: str) -> bool:
        ok = await self.session.login(email, password)
        if ok:
            await self.portfolios.refresh()
        return ok

    async def register(self, email: str, password: str) -> bool:
        ok = await self.session.register(email, password)
        if ok:
            await self.portfolios.refresh()
        return ok

    def logout(self):
        self.session.logout()

    async def refresh_portfolios(self):
        await self.portfolios.refresh()

    async def add_portfolio(self, label: str, api_key: str, secret: str, exchange: str | None = None):
        await self.portfolios.add(label, api_key, secret, exchange)

    async def update_portfolio(self, portfolio_id: str, **fields):
        await self.portfolios.update(portfolio_id, **fields)

    async def remove_portfolio(self, portfolio_id: str):
        await self.portfolios.remove(portfolio_id)

    def set_active_portfolio(self, portfolio_id: str | None):
        self.portfolios.set_active(portfolio_id)

    async def sync_portfolio(self, portfolio_id: str) -> SyncResult:
        return await self.portfolios.sync(portfolio_id)
