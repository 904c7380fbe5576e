"""Tests for HTTP API: join, admin and cron endpoints."""

import hashlib
import hmac
import json
import time
from datetime import timedelta
from unittest.mock import AsyncMock
from urllib.parse import urlencode

import httpx
import pytest

from src.config import settings
from src.database.db import get_session
from src.database.repositories import ParticipantRepository, WinnerRepository
from src.webapp.app import setup_webapp

ADMIN_HEADERS = {"Authorization": f"Bearer {settings.ADMIN_API_TOKEN}"}
CRON_HEADERS = {"Authorization": f"Bearer {settings.CRON_SECRET}"}


def sign_init_data(user: dict, bot_token: str = settings.BOT_TOKEN, auth_date: int | None = None) -> str:
    """Собирает initData так же, как это делает Telegram"""
    fields = {
        "query_id": "AAE-test",
        "user": json.dumps(user, separators=(",", ":")),
        "auth_date": str(auth_date or int(time.time())),
    }
    data_check_string = "\n".join(f"{k}={v}" for k, v in sorted(fields.items()))
    secret_key = hmac.new(b"WebAppData", bot_token.encode(), hashlib.sha256).digest()
    fields["hash"] = hmac.new(secret_key, data_check_string.encode(), hashlib.sha256).hexdigest()
    return urlencode(fields)


def user_headers(user_id: int, ip: str, username: str | None = None) -> dict:
    user = {"id": user_id, "first_name": f"User{user_id}"}
    if username:
        user["username"] = username
    return {"X-Telegram-Init-Data": sign_init_data(user), "X-Forwarded-For": ip}


@pytest.fixture
async def client(session_factory):
    app = setup_webapp(None, session_factory=session_factory)

    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


@pytest.mark.asyncio
async def test_root(client):
    response = await client.get("/")
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_join_requires_telegram_auth(client, make_raffle):
    raffle = await make_raffle()

    response = await client.post(f"/api/raffles/{raffle.id}/join", json={})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_join_rejects_forged_init_data(client, make_raffle):
    raffle = await make_raffle()
    forged = sign_init_data({"id": 42}, bot_token="999:OTHER")

    response = await client.post(
        f"/api/raffles/{raffle.id}/join", json={}, headers={"X-Telegram-Init-Data": forged}
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_join_and_duplicate(client, session, make_raffle):
    raffle = await make_raffle()

    response = await client.post(f"/api/raffles/{raffle.id}/join", json={},
                                 headers=user_headers(42, "1.2.3.4", "alice"))
    assert response.status_code == 200
    assert response.json() == {"success": True, "joined": True, "participants_count": 1}

    response = await client.post(f"/api/raffles/{raffle.id}/join", json={},
                                 headers=user_headers(42, "5.6.7.8"))
    assert response.status_code == 409
    assert response.json()["detail"]["code"] == "AlreadyJoined"

    response = await client.post(f"/api/raffles/{raffle.id}/join", json={},
                                 headers=user_headers(43, "1.2.3.4"))
    assert response.status_code == 409
    assert response.json()["detail"]["code"] == "DuplicateNetworkAddress"

    participants = await ParticipantRepository(session).list_by_raffle(raffle.id)
    assert [(p.telegram_id, p.username, p.ip_address) for p in participants] == [(42, "alice", "1.2.3.4")]


@pytest.mark.asyncio
async def test_join_missing_and_ended(client, make_raffle):
    ended = await make_raffle(ends_in=timedelta(seconds=-1))

    response = await client.post("/api/raffles/9999/join", json={}, headers=user_headers(42, "1.1.1.1"))
    assert response.status_code == 404
    assert response.json()["detail"]["code"] == "NotFound"

    response = await client.post(f"/api/raffles/{ended.id}/join", json={}, headers=user_headers(42, "1.1.1.2"))
    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "RaffleEnded"


@pytest.mark.asyncio
async def test_join_failed_captcha(client, make_raffle, monkeypatch):
    raffle = await make_raffle()
    monkeypatch.setattr("src.webapp.routers.raffles.verify_turnstile_token", AsyncMock(return_value=False))

    response = await client.post(f"/api/raffles/{raffle.id}/join", json={"turnstile_token": "bad"},
                                 headers=user_headers(42, "1.2.3.4"))
    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "InvalidCaptcha"


@pytest.mark.asyncio
async def test_get_raffle_shows_joined_flag(client, make_raffle, add_participants):
    raffle = await make_raffle(prize_count=2)
    await add_participants(raffle.id, 1)  # telegram_id 1001

    response = await client.get(f"/api/raffles/{raffle.id}", headers=user_headers(1001, "9.9.9.9"))

    body = response.json()
    assert response.status_code == 200
    assert body["status"] == "open"
    assert body["participants_count"] == 1
    assert body["joined"] is True


@pytest.mark.asyncio
async def test_admin_requires_token(client):
    assert (await client.get("/api/admin/raffles")).status_code == 401
    response = await client.get("/api/admin/raffles", headers={"Authorization": "Bearer wrong"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_admin_create_and_update(client):
    response = await client.post("/api/admin/raffles", headers=ADMIN_HEADERS, json={
        "title": "Розыгрыш",
        "prize": "Кружка",
        "prize_count": 2,
        "ends_at": "2030-05-01T12:00:00+03:00",
    })
    assert response.status_code == 201
    created = response.json()
    assert created["ends_at"] == "2030-05-01T09:00:00Z"
    assert created["status"] == "open"

    response = await client.put(f"/api/admin/raffles/{created['id']}", headers=ADMIN_HEADERS,
                                json={"prize_count": 1})
    assert response.status_code == 200
    assert response.json()["prize_count"] == 1


@pytest.mark.asyncio
async def test_admin_create_validation(client):
    response = await client.post("/api/admin/raffles", headers=ADMIN_HEADERS, json={
        "title": "Розыгрыш", "prize": "Кружка", "prize_count": 0, "ends_at": "2030-05-01T12:00:00Z",
    })
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_admin_end_date_locked(client, make_raffle, add_participants):
    raffle = await make_raffle()
    await add_participants(raffle.id, 1)

    response = await client.put(f"/api/admin/raffles/{raffle.id}", headers=ADMIN_HEADERS,
                                json={"ends_at": "2031-01-01T00:00:00Z"})
    assert response.status_code == 409
    assert response.json()["detail"]["code"] == "EndDateLocked"


@pytest.mark.asyncio
async def test_admin_select_winners(client, make_raffle, add_participants):
    running = await make_raffle()
    ended = await make_raffle(ends_in=timedelta(seconds=-1), prize_count=2)
    await add_participants(ended.id, 3)

    response = await client.post(f"/api/admin/raffles/{running.id}/select-winners", headers=ADMIN_HEADERS)
    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "NotEnded"

    response = await client.post(f"/api/admin/raffles/{ended.id}/select-winners", headers=ADMIN_HEADERS)
    assert response.status_code == 200
    assert [w["position"] for w in response.json()] == [1, 2]

    response = await client.post(f"/api/admin/raffles/{ended.id}/select-winners", headers=ADMIN_HEADERS)
    assert response.status_code == 409
    assert response.json()["detail"]["code"] == "AlreadySelected"

    response = await client.get(f"/api/raffles/{ended.id}/winners", headers=user_headers(7, "7.7.7.7"))
    assert len(response.json()) == 2


@pytest.mark.asyncio
async def test_admin_stalled_and_delete(client, session, make_raffle, add_participants):
    stalled = await make_raffle(ends_in=timedelta(seconds=-1), prize_count=3)
    await add_participants(stalled.id, 1)

    response = await client.get("/api/admin/raffles/stalled", headers=ADMIN_HEADERS)
    assert [r["id"] for r in response.json()] == [stalled.id]
    assert response.json()[0]["status"] == "ended"

    response = await client.get(f"/api/admin/raffles/{stalled.id}/participants", headers=ADMIN_HEADERS)
    assert response.json()[0]["ip_address"] == "10.0.0.1"

    response = await client.delete(f"/api/admin/raffles/{stalled.id}", headers=ADMIN_HEADERS)
    assert response.status_code == 200

    response = await client.get(f"/api/admin/raffles/{stalled.id}", headers=ADMIN_HEADERS)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_cron_requires_secret(client):
    response = await client.post("/api/cron/check-raffles")
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_cron_runs_sweep(client, session, make_raffle, add_participants):
    raffle = await make_raffle(ends_in=timedelta(seconds=-1), prize_count=1)
    await add_participants(raffle.id, 2)

    response = await client.post("/api/cron/check-raffles", headers=CRON_HEADERS)

    assert response.status_code == 200
    assert response.json() == {"processed": [{"raffle_id": raffle.id, "winners_count": 1}]}
    assert await WinnerRepository(session).exists_for_raffle(raffle.id)


@pytest.fixture
async def bot_client(session_factory, mock_bot):
    app = setup_webapp(mock_bot, session_factory=session_factory)

    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


@pytest.mark.asyncio
async def test_subscription_check_requires_telegram_auth(bot_client):
    response = await bot_client.get("/api/subscription/check")
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_subscription_check_without_required_channels(bot_client):
    response = await bot_client.get("/api/subscription/check", headers=user_headers(42, "8.8.8.8"))

    assert response.status_code == 200
    assert response.json() == {"is_subscribed": True, "missing_channels": []}


@pytest.mark.asyncio
async def test_subscription_check_lists_missing_channels(bot_client, mock_bot, monkeypatch):
    monkeypatch.setattr(settings, "REQUIRED_CHANNELS", ["@news", "@chat"])
    check = AsyncMock(return_value=(False, [
        {"chat_id": -1001, "title": "Новости", "username": "news", "invite_link": None, "is_subscribed": True},
        {"chat_id": -1002, "title": "Чат", "username": "chat", "invite_link": "https://t.me/+abc", "is_subscribed": False},
    ]))
    monkeypatch.setattr("src.webapp.routers.subscription.check_all_subscriptions", check)

    response = await bot_client.get("/api/subscription/check", headers=user_headers(42, "8.8.8.8"))

    assert response.status_code == 200
    assert response.json() == {
        "is_subscribed": False,
        "missing_channels": [{"title": "Чат", "username": "chat", "invite_link": "https://t.me/+abc"}],
    }
    check.assert_awaited_once_with(mock_bot, 42)


@pytest.mark.asyncio
async def test_subscription_check_all_subscribed(bot_client, monkeypatch):
    monkeypatch.setattr(settings, "REQUIRED_CHANNELS", ["@news"])
    monkeypatch.setattr(
        "src.webapp.routers.subscription.check_all_subscriptions",
        AsyncMock(return_value=(True, [
            {"chat_id": -1001, "title": "Новости", "username": "news", "invite_link": None, "is_subscribed": True},
        ])),
    )

    response = await bot_client.get("/api/subscription/check", headers=user_headers(42, "8.8.8.8"))

    assert response.json() == {"is_subscribed": True, "missing_channels": []}


@pytest.mark.asyncio
async def test_subscription_check_telegram_error(bot_client, monkeypatch):
    monkeypatch.setattr(settings, "REQUIRED_CHANNELS", ["@news"])
    monkeypatch.setattr(
        "src.webapp.routers.subscription.check_all_subscriptions",
        AsyncMock(side_effect=RuntimeError("network down")),
    )

    response = await bot_client.get("/api/subscription/check", headers=user_headers(42, "8.8.8.8"))

    assert response.status_code == 502
