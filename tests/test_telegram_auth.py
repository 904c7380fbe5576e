"""Tests for Telegram WebApp init data validation and Turnstile verification."""

import json
import time
from urllib.parse import urlencode

import pytest

from src.config import settings
from src.webapp.middlewares.telegram_auth import TelegramAuthMiddleware
from src.webapp.utils.turnstile import verify_turnstile_token
from tests.test_routers import sign_init_data


@pytest.fixture
def middleware():
    return TelegramAuthMiddleware(app=None, bot_token=settings.BOT_TOKEN)


def test_valid_init_data(middleware):
    result = middleware.validate_telegram_data(sign_init_data({"id": 42, "username": "alice"}))

    assert result["valid"] is True
    assert result["user_id"] == 42
    assert result["user"]["username"] == "alice"


def test_tampered_init_data(middleware):
    init_data = sign_init_data({"id": 42})
    tampered = init_data.replace("42", "43", 1)

    assert middleware.validate_telegram_data(tampered)["valid"] is False


def test_expired_init_data(middleware):
    old = int(time.time()) - 2 * 86400
    assert middleware.validate_telegram_data(sign_init_data({"id": 42}, auth_date=old))["valid"] is False


def test_missing_hash(middleware):
    init_data = urlencode({"user": json.dumps({"id": 42}), "auth_date": str(int(time.time()))})
    assert middleware.validate_telegram_data(init_data)["valid"] is False


def test_excluded_paths(middleware):
    middleware.exclude_prefixes = ["/api/admin/"]
    assert middleware._should_skip_auth("/api/admin/raffles")
    assert not middleware._should_skip_auth("/api/raffles/1/join")


@pytest.mark.asyncio
async def test_turnstile_disabled_without_secret(monkeypatch):
    monkeypatch.setattr(settings, "TURNSTILE_SECRET_KEY", "")
    assert await verify_turnstile_token(None) is True


@pytest.mark.asyncio
async def test_turnstile_requires_token(monkeypatch):
    monkeypatch.setattr(settings, "TURNSTILE_SECRET_KEY", "secret")
    assert await verify_turnstile_token(None) is False
