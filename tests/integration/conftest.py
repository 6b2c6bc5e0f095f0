"""Fixtures for integration tests."""

from collections.abc import Iterator

import pytest
from aioresponses import aioresponses as aioresponses_cls
from pydantic import SecretStr

from suite_harness.config import ApiSettings

API_BASE_URL = "http://books.test/api"
TOKEN_URL = "http://login.test/oauth2/v2.0/token"


@pytest.fixture
def aioresponses() -> Iterator[aioresponses_cls]:
    """Intercept every aiohttp request made during the test."""
    with aioresponses_cls() as mocked:
        yield mocked


@pytest.fixture
def api_settings() -> ApiSettings:
    """Create API settings pointing at mocked endpoints."""
    return ApiSettings(
        base_url=API_BASE_URL,
        token_url=TOKEN_URL,
        client_id=SecretStr("test-client"),
        client_secret=SecretStr("test-secret"),
        scope="books.api/.default",
        request_timeout_ms=2_000,
    )
