from __future__ import annotations

import pydantic
import structlog

from .api.client import BackendClient
from .api.envelopes import unwrap_data
from .api.schemas import User
from .db import StateStore
from .errors import RemoteError, VisorError
from .utils import Listeners

log = structlog.get_logger()


class Session:
    """Authenticated identity plus the bearer token that authorizes every call.

    The token is persisted under ``token_key`` so a restart can ``restore()`` it.
    ``is_authenticated`` only says a token is present; the backend decides
    whether it is still valid, and a 401 on any authenticated call logs out.
    """

    def __init__(self, client: BackendClient, store: StateStore, token_key: str = "visor_jwt"):
        self.client = client
        self.store = store
        self.token_key = token_key
        self.token: str | None = None
        self.user: User | None = None
        self.is_loading = False
        self.error: str | None = None
        self._generation = 0
        self._listeners = Listeners()
        client.token_provider = lambda: self.token
        client.on_unauthorized = self._expire

    @property
    def is_authenticated(self) -> bool:
        return bool(self.token)

    def subscribe(self, callback):
        return self._listeners.subscribe(callback)

    def restore(self) -> bool:
        self.token = self.store.get(self.token_key) or None
        self._listeners.notify(self)
        return self.is_authenticated

    async def login(self, email: str, password: str) -> bool:
        return await self._authenticate("/auth/login", email, password, "Invalid credentials")

    async def register(self, email: str, password: str) -> bool:
        return await self._authenticate("/auth/register", email, password, "Registration failed")

    async def _authenticate(self, path: str, email: str, password: str, fallback: str) -> bool:
        # Last call wins: a completion is dropped once a newer login/register/logout started.
        self._generation += 1
        generation = self._generation
        self.is_loading = True
        self.error = None
        self._listeners.notify(self)

        if not (email or "").strip() or not password:
            self._fail("Email and password are required")
            return False

        try:
            payload = await self.client.post(
                path, {"email": email.strip(), "password": password}, auth=False, fallback=fallback
            )
            data = unwrap_data(payload, {})
            token = data.get("token") if isinstance(data, dict) else None
            if not token:
                raise RemoteError(fallback)
            user_raw = data.get("user")
            user = User.model_validate(user_raw) if user_raw else None
        except pydantic.ValidationError:
            if generation == self._generation:
                self._fail("Invalid response from server")
            return False
        except VisorError as exc:
            if generation == self._generation:
                log.info("auth_failed", path=path, status=exc.status)
                self._fail(exc.message)
            return False

        if generation != self._generation:
            return False
        self.store.set(self.token_key, token)
        self.token = token
        self.user = user
        self.is_loading = False
        log.info("auth_succeeded", path=path, user_id=user.id if user else None)
        self._listeners.notify(self)
        return True

    def _fail(self, message: str):
        self._clear()
        self.error = message
        self._listeners.notify(self)

    def _clear(self):
        self.store.delete(self.token_key)
        self.token = None
        self.user = None
        self.is_loading = False
        self.error = None

    def logout(self):
        self._generation += 1
        was_authenticated = self.is_authenticated
        self._clear()
        if was_authenticated:
            log.info("logged_out")
        self._listeners.notify(self)

    def _expire(self):
        self.logout()
        self.error = "Session expired, please log in again"
        self._listeners.notify(self)

    async def fetch_user(self) -> User:
        payload = await self.client.get("/users/me", fallback="Failed to fetch user data")
        try:
            user = User.model_validate(unwrap_data(payload))
        except pydantic.ValidationError as exc:
            raise RemoteError("Invalid response from server") from exc
        self.user = user
        self._listeners.notify(self)
        return user

    def clear_error(self):
        self.error = None
        self._listeners.notify(self)
