"""Shared fixtures: fast settings, a controllable clock, in-memory services."""

from datetime import datetime, timedelta, timezone

import pytest

from authgate.core.config import Settings
from authgate.core.credentials import LocalCredential
from authgate.services.registry import build_services
from authgate.stores.memory import MemoryStorage


class FakeClock:
    """Starts at the real current time so JWT expiry checks still pass.

    Whole seconds, matching the resolution of issued token expiries.
    """

    def __init__(self) -> None:
        self.current = datetime.now(timezone.utc).replace(microsecond=0)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        STORE_BACKEND="memory",
        SECRET_KEY="test-secret-key",
        BCRYPT_ROUNDS=4,
        ACCESS_TOKEN_EXPIRE_MINUTES=60,
        REFRESH_TOKEN_EXPIRE_DAYS=7,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def services(settings, storage, clock):
    return build_services(settings, storage, clock=clock)


@pytest.fixture
def credential() -> LocalCredential:
    return LocalCredential(email="Alice@Example.com", password="correct horse battery")
