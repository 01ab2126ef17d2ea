from __future__ import annotations

import asyncio
from dataclasses import dataclass

import pydantic
import structlog

from .api.client import BackendClient
from .api.envelopes import classify_portfolio_envelope, unwrap_portfolio_list
from .api.schemas import Portfolio
from .db import StateStore
from .errors import Unauthenticated, ValidationError, VisorError
from .utils import Listeners

log = structlog.get_logger()


@dataclass
class SyncResult:
    portfolio_id: str | None
    ok: bool
    error: str | None = None


def _merge_sync_times(previous: list[Portfolio], incoming: list[Portfolio]) -> list[Portfolio]:
    # Ids stay unique (first occurrence wins) and last_sync_at never moves backwards.
    known = {p.id: p.last_sync_at for p in previous}
    seen = set()
    out = []
    for item in incoming:
        if item.id in seen:
            continue
        seen.add(item.id)
        prev_sync = known.get(item.id)
        if prev_sync is not None and (item.last_sync_at is None or item.last_sync_at < prev_sync):
            item = item.model_copy(update={"last_sync_at": prev_sync})
        out.append(item)
    return out


class PortfolioRegistry:
    """Portfolios known to the backend plus the single active selection.

    ``active_id is None`` means the aggregate view across all portfolios when
    ``global_view`` is set and portfolios exist; otherwise it means there is
    nothing to select. After every refresh and removal ``reconcile()`` repairs
    a selection that points at a missing record.
    """

    def __init__(
        self,
        client: BackendClient,
        store: StateStore,
        active_key: str = "visor_active_portfolio",
        default_exchange: str = "bybit",
    ):
        self.client = client
        self.store = store
        self.active_key = active_key
        self.default_exchange = default_exchange
        self.portfolios: list[Portfolio] = []
        self.active_id: str | None = store.get(active_key) or None
        self.global_view = False
        self.error: str | None = None
        self._in_flight = 0
        self._closed = False
        self._background: set[asyncio.Task] = set()
        self._listeners = Listeners()

    @property
    def is_loading(self) -> bool:
        return self._in_flight > 0

    @property
    def ids(self) -> list[str]:
        return [p.id for p in self.portfolios]

    @property
    def active_portfolio(self) -> Portfolio | None:
        return self.get(self.active_id) if self.active_id else None

    @property
    def is_connected(self) -> bool:
        return bool(self.portfolios)

    def get(self, portfolio_id: str) -> Portfolio | None:
        for p in self.portfolios:
            if p.id == portfolio_id:
                return p
        return None

    def subscribe(self, callback):
        return self._listeners.subscribe(callback)

    def _write_active(self, portfolio_id: str | None):
        self.active_id = portfolio_id
        if portfolio_id:
            self.store.set(self.active_key, portfolio_id)
        else:
            self.store.delete(self.active_key)

    def set_active(self, portfolio_id: str | None):
        self.global_view = portfolio_id is None and bool(self.portfolios)
        self._write_active(portfolio_id)
        self._listeners.notify(self)

    def reconcile(self) -> str | None:
        if not self.portfolios:
            self.global_view = False
            if self.active_id is not None:
                self._write_active(None)
        elif self.active_id is None:
            if not self.global_view:
                self._write_active(self.portfolios[0].id)
        elif self.active_id not in self.ids:
            self.global_view = False
            self._write_active(self.portfolios[0].id)
        return self.active_id

    async def refresh(self):
        """Replace the list from the backend. Never raises; failures leave it empty."""
        if self._closed:
            return
        self._in_flight += 1
        self._listeners.notify(self)
        merged: list[Portfolio] = []
        error = None
        try:
            payload = await self.client.get("/credentials", fallback="Failed to load portfolios")
            shape = classify_portfolio_envelope(payload)
            if shape == "unknown":
                log.warning("portfolio_envelope_unknown", payload_type=type(payload).__name__)
            items = [Portfolio.model_validate(raw) for raw in unwrap_portfolio_list(payload)]
            merged = _merge_sync_times(self.portfolios, items)
        except Unauthenticated:
            pass
        except (pydantic.ValidationError, TypeError) as exc:
            error = "Invalid response from server"
            log.error("portfolio_refresh_failed", err=str(exc)[:500])
        except VisorError as exc:
            error = exc.message
            log.error("portfolio_refresh_failed", err=exc.message, status=exc.status)
        finally:
            self._in_flight -= 1

        if self._closed:
            return
        # Overlapping refreshes: whichever completes last wins.
        self.portfolios = merged
        self.error = error
        self.reconcile()
        if error is None:
            log.info("portfolios_refreshed", count=len(self.portfolios), active_id=self.active_id)
        self._listeners.notify(self)

    async def add(self, label: str, api_key: str, secret: str, exchange: str | None = None):
        label = (label or "").strip()
        api_key = (api_key or "").strip()
        secret = (secret or "").strip()
        if not label or not api_key or not secret:
            raise ValidationError("Label, API key and secret are required")
        body = {
            "label": label,
            "exchange": exchange or self.default_exchange,
            "api_key": api_key,
            "secret": secret,
        }
        await self.client.post("/credentials", body, fallback="Failed to add portfolio")
        log.info("portfolio_added", label=label, exchange=body["exchange"])
        await self.refresh()

    async def update(self, portfolio_id: str, label: str | None = None, api_key: str | None = None, secret: str | None = None):
        body = {}
        for key, val in (("label", label), ("api_key", api_key), ("secret", secret)):
            if val is None:
                continue
            val = val.strip()
            if not val:
                raise ValidationError(f"{key} must not be empty")
            body[key] = val
        if not body:
            raise ValidationError("Nothing to update")
        await self.client.patch(f"/credentials/{portfolio_id}", body, fallback="Failed to update portfolio")
        log.info("portfolio_updated", portfolio_id=portfolio_id, fields=sorted(body))
        await self.refresh()

    async def remove(self, portfolio_id: str):
        await self.client.delete(f"/credentials/{portfolio_id}", fallback="Failed to remove portfolio")
        log.info("portfolio_removed", portfolio_id=portfolio_id)
        if self._closed:
            return
        self.portfolios = [p for p in self.portfolios if p.id != portfolio_id]
        if self.active_id == portfolio_id:
            self.global_view = False
            self._write_active(None)
        self.reconcile()
        self._listeners.notify(self)

    async def sync(self, portfolio_id: str) -> SyncResult:
        """Ask the backend to pull fresh exchange data. Best effort, never raises."""
        return await self._trigger(f"/credentials/{portfolio_id}/sync", portfolio_id)

    async def sync_all(self) -> SyncResult:
        return await self._trigger("/sync", None)

    async def _trigger(self, path: str, portfolio_id: str | None) -> SyncResult:
        try:
            await self.client.post(path, fallback="Failed to start sync")
        except VisorError as exc:
            log.error("portfolio_sync_failed", portfolio_id=portfolio_id, err=exc.message)
            return SyncResult(portfolio_id, False, exc.message)
        log.info("portfolio_sync_started", portfolio_id=portfolio_id)
        return SyncResult(portfolio_id, True)

    def sync_in_background(self, portfolio_id: str) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(self.sync(portfolio_id))
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    def reset(self):
        self.portfolios = []
        self.error = None
        self.reconcile()
        self._listeners.notify(self)

    async def aclose(self):
        self._closed = True
        if self._background:
            await asyncio.gather(*self._background)
