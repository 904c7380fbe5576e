from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import declarative_base
from sqlalchemy import text
import logging

from src.config import settings


# Создаем базовый класс для моделей
Base = declarative_base()


def get_async_database_url(database_url: str) -> str:
    """
    Приводит URL базы данных к асинхронному драйверу.
    postgresql:// и postgres:// переводятся на asyncpg, остальные URL не меняются.
    """
    if database_url.startswith('postgres://'):
        database_url = database_url.replace('postgres://', 'postgresql://', 1)
    if database_url.startswith('postgresql://'):
        database_url = database_url.replace('postgresql:', 'postgresql+asyncpg:', 1)
    return database_url


def get_engine_options(database_url: str) -> dict:
    """Параметры движка в зависимости от СУБД"""
    if database_url.startswith('sqlite'):
        return {"echo": settings.DEBUG, "future": True}
    return {
        "echo": settings.DEBUG,
        "future": True,
        "pool_size": 20,  # Размер пула соединений
        "max_overflow": 40,  # Максимальное количество дополнительных соединений
        "pool_timeout": 30,  # Тайм-аут ожидания соединения из пула
        "pool_pre_ping": True,  # Проверка соединения перед использованием
        # Важно для PgBouncer (pool_mode transaction/statement): отключаем prepared statements
        "connect_args": {
            "statement_cache_size": 0,
        },
    }


# Создаем асинхронный движок (один на процесс)
async_database_url = get_async_database_url(settings.DATABASE_URL)

engine = create_async_engine(async_database_url, **get_engine_options(async_database_url))

# Создаем фабрику сессий
async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,  # Отключаем автоматический flush для более предсказуемого поведения
)

async def init_db():
    """
    Инициализирует базу данных и создает необходимые таблицы.
    """
    # Импортируем модели, чтобы они зарегистрировались в metadata
    import src.database.models  # noqa: F401

    try:
        logging.info("Инициализация базы данных")

        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
            await create_indexes(conn)

        logging.info("База данных инициализирована успешно")
        return async_session
    except Exception as e:
        logging.error(f"Ошибка при инициализации базы данных: {e}")
        raise

async def create_indexes(conn):
    """
    Создает индексы в базе данных для оптимизации запросов
    """
    try:
        # Поиск завершившихся розыгрышей планировщиком
        await conn.execute(text("CREATE INDEX IF NOT EXISTS idx_raffles_ends_at ON raffles(ends_at)"))

        # Подсчет участников и выборка для розыгрыша
        await conn.execute(text("CREATE INDEX IF NOT EXISTS idx_raffle_participants_raffle_id ON raffle_participants(raffle_id)"))

        # Проверка наличия победителей
        await conn.execute(text("CREATE INDEX IF NOT EXISTS idx_raffle_winners_raffle_id ON raffle_winners(raffle_id)"))

        logging.info("Индексы базы данных созданы успешно")
    except Exception as e:
        logging.warning(f"Ошибка при создании индексов: {e}")

async def get_session() -> AsyncSession:
    """
    Получение сессии базы данных.

    Yields:
        AsyncSession: Сессия для работы с базой данных
    """
    async with async_session() as session:
        try:
            yield session
        finally:
            await session.close()

async def close_db():
    """Закрывает пул соединений при завершении работы"""
    await engine.dispose()
    logging.info("Соединения с базой данных закрыты")
