import asyncio
import unittest

import httpx

from backend_stub import BASE_URL, FakeBackend
from visor.api.client import BackendClient
from visor.db import StateStore
from visor.errors import SessionExpired, Unauthenticated
from visor.session import Session


def _session(backend, store=None):
    store = store or StateStore(":memory:")
    client = BackendClient(BASE_URL, transport=backend.transport())
    return Session(client, store), store, client


class SessionTests(unittest.IsolatedAsyncioTestCase):
    async def test_login_stores_token_and_user(self):
        session, store, client = _session(FakeBackend())
        self.assertFalse(session.is_authenticated)
        ok = await session.login("me@example.com", "secret")
        self.assertTrue(ok)
        self.assertTrue(session.is_authenticated)
        self.assertEqual(session.user.email, "me@example.com")
        self.assertEqual(store.get("visor_jwt"), "tok-1")
        self.assertIsNone(session.error)
        await client.aclose()

    async def test_failed_login_keeps_backend_message_and_clears_state(self):
        backend = FakeBackend()
        session, store, client = _session(backend)
        await session.login("me@example.com", "secret")
        ok = await session.login("me@example.com", "wrong")
        self.assertFalse(ok)
        self.assertEqual(session.error, "Invalid email or password")
        self.assertFalse(session.is_authenticated)
        self.assertIsNone(store.get("visor_jwt"))
        await client.aclose()

    async def test_empty_fields_never_reach_backend(self):
        backend = FakeBackend()
        session, _, client = _session(backend)
        self.assertFalse(await session.register("", "secret"))
        self.assertFalse(await session.register("me@example.com", ""))
        self.assertEqual(backend.calls, [])
        self.assertIsNotNone(session.error)
        await client.aclose()

    async def test_duplicate_registration_fails(self):
        backend = FakeBackend()
        backend.route(
            "POST",
            "/auth/register",
            lambda req: httpx.Response(409, json={"success": False, "message": "email already registered"}),
        )
        session, _, client = _session(backend)
        self.assertFalse(await session.register("me@example.com", "secret"))
        self.assertEqual(session.error, "email already registered")
        await client.aclose()

    async def test_logout_is_idempotent(self):
        session, store, client = _session(FakeBackend())
        await session.login("me@example.com", "secret")
        session.logout()
        session.logout()
        self.assertFalse(session.is_authenticated)
        self.assertIsNone(session.user)
        self.assertEqual(store.keys(), [])
        await client.aclose()

    async def test_restore_reads_persisted_token(self):
        store = StateStore(":memory:")
        store.set("visor_jwt", "tok-1")
        session, _, client = _session(FakeBackend(), store)
        self.assertTrue(session.restore())
        user = await session.fetch_user()
        self.assertEqual(user.id, "u1")
        await client.aclose()

    async def test_unauthorized_identity_fetch_logs_out(self):
        store = StateStore(":memory:")
        store.set("visor_jwt", "stale-token")
        session, _, client = _session(FakeBackend(), store)
        session.restore()
        with self.assertRaises(SessionExpired):
            await session.fetch_user()
        self.assertFalse(session.is_authenticated)
        self.assertIsNone(store.get("visor_jwt"))
        self.assertEqual(session.error, "Session expired, please log in again")
        await client.aclose()

    async def test_authenticated_call_without_token_is_local(self):
        backend = FakeBackend()
        session, _, client = _session(backend)
        with self.assertRaises(Unauthenticated):
            await session.fetch_user()
        self.assertEqual(backend.calls, [])
        await client.aclose()

    async def test_last_login_wins(self):
        backend = FakeBackend()
        release_first = asyncio.Event()
        first_sent = asyncio.Event()

        async def slow_login(request):
            if b"first@example.com" in request.content:
                first_sent.set()
                await release_first.wait()
            email = "first@example.com" if b"first@" in request.content else "second@example.com"
            return httpx.Response(200, json={"data": {"token": f"tok-{email[0]}", "user": {"id": email, "email": email}}})

        backend.route("POST", "/auth/login", slow_login)
        session, store, client = _session(backend)
        first = asyncio.create_task(session.login("first@example.com", "x"))
        await first_sent.wait()
        second_ok = await session.login("second@example.com", "x")
        release_first.set()
        first_ok = await first
        self.assertTrue(second_ok)
        self.assertFalse(first_ok)
        self.assertEqual(session.user.email, "second@example.com")
        self.assertEqual(store.get("visor_jwt"), "tok-s")
        await client.aclose()

    async def test_subscribers_see_changes(self):
        session, _, client = _session(FakeBackend())
        seen = []
        unsubscribe = session.subscribe(lambda s: seen.append(s.is_authenticated))
        await session.login("me@example.com", "secret")
        unsubscribe()
        session.logout()
        self.assertEqual(seen[-1], True)
        await client.aclose()


if __name__ == "__main__":
    unittest.main()
