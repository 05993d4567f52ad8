"""
Identity middleware tests
"""
import pytest
from unittest.mock import AsyncMock, Mock

from starlette.requests import Request

from analytics_backend.middleware.identity import IdentityMiddleware, dev_bypass_email


def make_request(headers=None) -> Request:
    raw_headers = [
        (key.lower().encode(), value.encode()) for key, value in (headers or {}).items()
    ]
    return Request({
        "type": "http",
        "method": "GET",
        "path": "/api/me",
        "headers": raw_headers,
        "query_string": b"",
    })


@pytest.fixture
def middleware():
    return IdentityMiddleware(app=Mock())


@pytest.fixture(autouse=True)
def clear_auth_env(monkeypatch):
    for name in ("SKIP_AUTH", "APP_ENV", "DEV_EMAIL"):
        monkeypatch.delenv(name, raising=False)


@pytest.mark.asyncio
async def test_email_header_is_lowercased(middleware):
    request = make_request({"X-Email": " Admin@Example.EDU "})
    call_next = AsyncMock(return_value="response")

    response = await middleware.dispatch(request, call_next)

    assert response == "response"
    assert request.state.email == "admin@example.edu"
    call_next.assert_awaited_once_with(request)


@pytest.mark.asyncio
async def test_missing_header_leaves_email_empty(middleware):
    request = make_request()
    await middleware.dispatch(request, AsyncMock())
    assert request.state.email == ""


@pytest.mark.asyncio
async def test_dev_bypass(middleware, monkeypatch):
    monkeypatch.setenv("SKIP_AUTH", "true")
    monkeypatch.setenv("DEV_EMAIL", "Dev@Example.edu")
    request = make_request()
    await middleware.dispatch(request, AsyncMock())
    assert request.state.email == "dev@example.edu"


@pytest.mark.asyncio
async def test_header_wins_over_dev_bypass(middleware, monkeypatch):
    monkeypatch.setenv("SKIP_AUTH", "true")
    monkeypatch.setenv("DEV_EMAIL", "dev@example.edu")
    request = make_request({"X-Email": "admin@example.edu"})
    await middleware.dispatch(request, AsyncMock())
    assert request.state.email == "admin@example.edu"


@pytest.mark.parametrize("skip_auth,app_env,expected", [
    ("true", "development", "dev@example.edu"),
    ("TRUE", "staging", "dev@example.edu"),
    ("true", "production", ""),
    ("false", "development", ""),
    ("", "development", ""),
])
def test_dev_bypass_email(monkeypatch, skip_auth, app_env, expected):
    monkeypatch.setenv("SKIP_AUTH", skip_auth)
    monkeypatch.setenv("APP_ENV", app_env)
    monkeypatch.setenv("DEV_EMAIL", "dev@example.edu")
    assert dev_bypass_email() == expected
