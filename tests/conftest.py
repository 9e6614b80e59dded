"""Shared fixtures for the clinic-api test suite."""
from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any
from unittest.mock import MagicMock

import httpx
import pytest
import pytest_asyncio

from clinic_api.client import ApiClient
from clinic_api.config import Config, EnvironmentProfile, Settings
from clinic_api.credentials import MemoryCredentialStore

BASE_URL = "http://testserver/api/v1"
FUTURE = datetime(2099, 1, 1, tzinfo=timezone.utc)
PAST = datetime(2000, 1, 1, tzinfo=timezone.utc)


def ok(value: Any = None, message: str | None = None, **extra: Any) -> dict[str, Any]:
    """Success envelope."""
    body: dict[str, Any] = {"success": True, "value": value, **extra}
    if message is not None:
        body["message"] = message
    return body


def fail(title: str, status: int, code: str | None = None, message: str | None = None, **error: Any) -> dict[str, Any]:
    """Error envelope."""
    body: dict[str, Any] = {"success": False, "error": {"title": title, "status": status, "code": code, **error}}
    if message is not None:
        body["message"] = message
    return body


def token_value(access: str = "new-access", refresh: str = "new-refresh") -> dict[str, Any]:
    return {
        "tokens": {
            "access_token": {"token": access, "expires_at": "2099-01-01T00:00:00Z"},
            "refresh_token": {"token": refresh},
        }
    }


class FakeBackend:
    """Scripted clinic backend behind httpx.MockTransport.

    Protected routes answer 401 unless the bearer token equals ``valid_token``.
    Every handler yields to the event loop so concurrent calls interleave.
    """

    def __init__(self, valid_token: str = "new-access") -> None:
        self.valid_token = valid_token
        self.refresh_delay = 0.01
        self.refresh_reply: tuple[int, Any] = (200, ok(token_value()))
        self.refresh_error: BaseException | None = None
        self.routes: dict[tuple[str, str], tuple[int, Any]] = {}
        self.public: set[str] = set()
        self.requests: list[httpx.Request] = []
        self.refresh_requests: list[httpx.Request] = []

    def route(self, method: str, path: str, status: int, body: Any, public: bool = False) -> None:
        self.routes[(method, path)] = (status, body)
        if public:
            self.public.add(path)

    @property
    def refresh_calls(self) -> int:
        return len(self.refresh_requests)

    async def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.removeprefix("/api/v1")

        if path == "/auth/refresh":
            self.refresh_requests.append(request)
            await asyncio.sleep(self.refresh_delay)
            if self.refresh_error is not None:
                raise self.refresh_error
            status, body = self.refresh_reply
            return httpx.Response(status, json=body)

        self.requests.append(request)
        await asyncio.sleep(0)

        if path not in self.public and request.headers.get("Authorization") != f"Bearer {self.valid_token}":
            return httpx.Response(401, json=fail("Unauthorized", 401, "TOKEN_EXPIRED", message="Token expired"))

        status, body = self.routes.get((request.method, path), (404, fail("Not Found", 404, "NOT_FOUND")))
        return httpx.Response(status, json=body)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def fake_settings() -> Settings:
    return Settings(
        environment="development",
        base_url="",
        timeout=5.0,
        credentials_path="./test-cookies.txt",
        refresh_lifetime_days=30,
        default_page_size=20,
    )


@pytest.fixture
def fake_environments() -> dict[str, EnvironmentProfile]:
    return {
        "DEVELOPMENT": EnvironmentProfile(api_base_url=BASE_URL, secure_cookies=False),
        "PRODUCTION": EnvironmentProfile(api_base_url="https://api.clinic.test/api/v1/", secure_cookies=True),
    }


@pytest.fixture
def fake_config(fake_settings, fake_environments) -> Config:
    return Config(settings=fake_settings, environments=fake_environments)


@pytest.fixture
def store() -> MemoryCredentialStore:
    return MemoryCredentialStore()


@pytest.fixture
def expired_store(store) -> MemoryCredentialStore:
    """Store holding a pair whose access token the backend no longer accepts."""
    store.set("old-access", "old-refresh", PAST)
    return store


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def session_end() -> MagicMock:
    return MagicMock()


@pytest_asyncio.fixture
async def client(fake_config, expired_store, backend, session_end):
    c = ApiClient(
        fake_config,
        expired_store,
        on_session_end=session_end,
        transport=backend.transport(),
    )
    yield c
    await c.close()
