"""
Test doubles for HTTP endpoints, time, sleeping and bearer tokens.
"""
import asyncio
from datetime import datetime, timedelta, timezone

import httpx
from jose import jwt

from eventcore.config import settings


class FakeEndpoint:
    """
    Scripted HTTP endpoint behind httpx.MockTransport.

    responses is consumed in order; the last entry repeats. An entry is a
    status code or an exception instance to raise.
    """

    def __init__(self, *responses, body="ok"):
        self.responses = list(responses) or [200]
        self.body = body
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        index = min(len(self.requests) - 1, len(self.responses) - 1)
        outcome = self.responses[index]
        if isinstance(outcome, Exception):
            raise outcome
        return httpx.Response(outcome, text=self.body)

    def client_factory(self):
        transport = httpx.MockTransport(self.handler)
        return lambda: httpx.AsyncClient(transport=transport)


class FrozenClock:
    """Controllable clock for cooldown tests."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class RecordingSleep:
    """Stand-in for asyncio.sleep that records requested delays."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class GatedSleep:
    """Backoff sleep that parks every caller until released."""

    def __init__(self):
        self.released = asyncio.Event()
        self.waiting = 0

    async def __call__(self, seconds: float) -> None:
        self.waiting += 1
        await self.released.wait()


def mint_token(user_id, org_id, role="admin", email="ops@acme.test", expires_in=timedelta(minutes=30)):
    """Sign a bearer token the way the platform's auth provider does."""
    payload = {
        "sub": user_id,
        "org_id": org_id,
        "role": role,
        "email": email,
        "exp": datetime.now(timezone.utc) + expires_in,
    }
    payload = {key: value for key, value in payload.items() if value is not None}
    return jwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)
