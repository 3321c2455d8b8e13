"""Pytest configuration and fixtures shared across all test modules.

Environment variables are set before any ``app`` import so the process-wide
settings object is built with test values.
"""

import os

# CRITICAL: Set these before any imports that might load settings
os.environ["APP_ENV"] = "testing"
os.environ.setdefault("APP_API_KEY_REQUIRED", "true")
os.environ.setdefault("APP_API_KEYS", "test-api-key-123,test-api-key-456")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from typing import Iterator

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.core.app_factory import create_app


class FakeClock:
    """Deterministic clock returning UNIX seconds."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.current = start

    def time(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def app(fake_clock: FakeClock) -> FastAPI:
    """Fresh application with its own limiters driven by the fake clock."""
    return create_app(clock=fake_clock.time)


@pytest.fixture
def client(app: FastAPI) -> Iterator[TestClient]:
    """Test client running the app lifespan (sweep threads started/stopped)."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def api_key_headers() -> dict[str, str]:
    return {"X-API-Key": "test-api-key-123"}
