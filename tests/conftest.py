import os
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

TEST_ENV = {
    "ENVIRONMENT": "test",
    "CACHE_BACKEND": "auto",
    "EXTERNAL_TIMEOUT_SECONDS": "2",
}
UNSET_ENV = [
    "SUPABASE_URL",
    "NEXT_PUBLIC_SUPABASE_URL",
    "SUPABASE_SERVICE_ROLE_KEY",
    "FOUNDRY_ENDPOINT",
    "MANAGED_IDENTITY_CLIENT_ID",
]

# config.py reads the environment at import, so pin it before any app import.
for key, value in TEST_ENV.items():
    os.environ[key] = value
for key in UNSET_ENV:
    os.environ.pop(key, None)


class FakeClock:
    """Manually advanced UTC clock for cache expiry tests."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, minutes: float) -> None:
        self.now += timedelta(minutes=minutes)


class FixedVerifier:
    name = "fixed"

    def __init__(self, verdict: dict):
        self.verdict = verdict
        self.calls: list[str] = []

    async def verify(self, image_url: str) -> dict:
        self.calls.append(image_url)
        return dict(self.verdict)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings(monkeypatch):
    for key, value in TEST_ENV.items():
        monkeypatch.setenv(key, value)
    for key in UNSET_ENV:
        monkeypatch.delenv(key, raising=False)

    from config import Settings

    return Settings()


@pytest.fixture
def app(settings):
    from app import create_app

    return create_app(settings)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client
