"""Pytest configuration and fixtures."""

import os

# Настройки должны быть заданы до первого импорта src.config.settings
os.environ["BOT_TOKEN"] = "123456:TEST-TOKEN"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["ADMIN_API_TOKEN"] = "test-admin-token"
os.environ["CRON_SECRET"] = "test-cron-secret"
os.environ["TURNSTILE_SECRET_KEY"] = ""
os.environ["CHANNEL_ID"] = ""
os.environ["REQUIRED_CHANNELS"] = ""
os.environ["ADMIN_IDS"] = "1001"
os.environ["DEBUG"] = "true"
os.environ["WEBAPP_PUBLIC_URL"] = "https://raffles.example.com"

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from src.database.db import Base
import src.database.models  # noqa: F401
from src.database.repositories import RaffleRepository, ParticipantRepository
from src.utils.helpers import utcnow


@pytest.fixture
async def engine(tmp_path):
    """Отдельная файловая SQLite БД на каждый тест (несколько соединений видят одни данные)"""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'raffles.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_raffle(session):
    """Создает розыгрыш; по умолчанию он завершится через час"""
    async def factory(ends_in=timedelta(hours=1), prize_count=1, max_participants=0,
                      title="Тестовый розыгрыш", prize="Наушники"):
        return await RaffleRepository(session).create(
            title=title,
            prize=prize,
            ends_at=utcnow() + ends_in,
            prize_count=prize_count,
            max_participants=max_participants,
        )
    return factory


@pytest.fixture
def add_participants(session):
    """Добавляет n участников с разными пользователями и IP"""
    async def factory(raffle_id, n, start=1):
        participants = ParticipantRepository(session)
        return [
            await participants.add(
                raffle_id=raffle_id,
                telegram_id=1000 + i,
                ip_address=f"10.0.0.{i}",
                username=f"user{i}",
            )
            for i in range(start, start + n)
        ]
    return factory


@pytest.fixture
def mock_bot():
    """Bot с замоканными методами отправки"""
    bot = MagicMock()
    bot.send_message = AsyncMock(return_value=MagicMock(message_id=555))
    bot.edit_message_text = AsyncMock()
    bot.get_me = AsyncMock(return_value=MagicMock(username="raffle_test_bot"))
    return bot
