from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.trustedhost import TrustedHostMiddleware
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from aiogram import Bot
from typing import Optional
import logging
import uvicorn
import asyncio

from src.config import settings
from src.database.db import async_session
from src.raffles.exceptions import RaffleError
from src.webapp.routers import raffles_router, admin_router, cron_router, subscription_router
from src.webapp.middlewares import TelegramAuthMiddleware, RateLimiterMiddleware, SubscriptionCheckMiddleware


async def raffle_error_handler(request: Request, exc: RaffleError) -> JSONResponse:
    """Переводит типизированные ошибки розыгрыша в HTTP-ответ"""
    if exc.status_code >= 500:
        logging.error(f"Ошибка при обработке {request.url.path}: {exc.code} {exc.__cause__}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.to_dict()})


def setup_webapp(bot: Optional[Bot],
                 session_factory: async_sessionmaker[AsyncSession] = async_session) -> FastAPI:
    """
    Настройка FastAPI приложения.

    Args:
        bot (Bot): Экземпляр бота Telegram (None - без уведомлений и проверки подписки)
        session_factory: Фабрика сессий для фоновых операций (проверка розыгрышей)

    Returns:
        FastAPI: Настроенное FastAPI приложение
    """
    app = FastAPI(
        title="Raffle Bot Web App",
        description="API розыгрышей для мини-приложения Telegram бота",
        version="1.0.0",
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None,
    )

    # Middleware выполняются в обратном порядке добавления:
    # последним добавлен - первым получает запрос

    # 1. Проверка подписки на обязательные каналы (после авторизации)
    app.add_middleware(
        SubscriptionCheckMiddleware,
        bot_instance=bot,
        api_path_prefix="/api/raffles/",
    )

    # 2. Проверка аутентификации Telegram WebApp
    app.add_middleware(
        TelegramAuthMiddleware,
        bot_token=settings.BOT_TOKEN,
        exclude_paths=["/docs", "/redoc", "/openapi.json", "/", "/favicon.ico"],
        exclude_prefixes=["/static/", "/api/admin/", "/api/cron/"]
    )

    # 3. Ограничение частоты запросов
    app.add_middleware(
        RateLimiterMiddleware,
        default_window_size=settings.RATE_LIMIT_DEFAULT["window_size"],
        default_max_requests=settings.RATE_LIMIT_DEFAULT["max_requests"],
        path_limits=settings.RATE_LIMIT_PATHS
    )

    # 4. Проверка источников запросов
    if not settings.DEBUG:
        allowed_hosts = [settings.WEBAPP_HOST, "localhost", "127.0.0.1"]
        if settings.WEBAPP_PUBLIC_URL:
            try:
                from urllib.parse import urlparse
                parsed_url = urlparse(settings.WEBAPP_PUBLIC_URL)
                if parsed_url.hostname:
                    allowed_hosts.append(parsed_url.hostname)
            except Exception as e:
                logging.warning(f"Ошибка при парсинге WEBAPP_PUBLIC_URL: {e}")

        app.add_middleware(TrustedHostMiddleware, allowed_hosts=allowed_hosts)

    # 5. Сжатие ответов для экономии трафика
    app.add_middleware(GZipMiddleware, minimum_size=1000)

    # 6. CORS middleware для разрешения запросов с определенных источников
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["*"],
        expose_headers=["X-RateLimit-Limit", "X-RateLimit-Remaining", "X-RateLimit-Reset"],
    )

    app.add_exception_handler(RaffleError, raffle_error_handler)

    # Добавляем бота и фабрику сессий в состояние приложения
    app.state.bot = bot
    app.state.session_factory = session_factory

    # Подключаем роутеры
    app.include_router(raffles_router)
    app.include_router(admin_router)
    app.include_router(cron_router)
    app.include_router(subscription_router)

    @app.get("/")
    async def root():
        return {"message": "Raffle Bot Web API is running", "version": "1.0.0"}

    logging.info("Веб-приложение настроено")

    return app

async def start_webapp(app: FastAPI, shutdown_event: Optional[asyncio.Event] = None) -> None:
    """
    Запуск веб-сервера с приложением FastAPI.

    Args:
        app (FastAPI): Экземпляр FastAPI приложения
        shutdown_event (asyncio.Event, optional): Событие для сигнализации остановки сервера
    """
    config = uvicorn.Config(
        app=app,
        host=settings.WEBAPP_HOST,
        port=settings.WEBAPP_PORT,
        log_level="info" if settings.DEBUG else "warning",
        access_log=settings.DEBUG,  # Отключаем логи доступа в продакшн
        proxy_headers=True,  # Доверяем заголовкам прокси
        forwarded_allow_ips="*"  # Разрешаем все IP для заголовков X-Forwarded-*
    )
    server = uvicorn.Server(config)

    if shutdown_event is None:
        logging.info(f"Веб-сервер запускается на {settings.WEBAPP_HOST}:{settings.WEBAPP_PORT}")
        await server.serve()
        return

    server_task = asyncio.create_task(server.serve(), name="webapp_server_task")
    logging.info(f"Веб-сервер запущен на {settings.WEBAPP_HOST}:{settings.WEBAPP_PORT}")

    # Создаем задачу для ожидания события завершения
    shutdown_task = asyncio.create_task(shutdown_event.wait(), name="webapp_shutdown_task")

    # Ждем либо завершения сервера, либо сигнала завершения
    done, pending = await asyncio.wait(
        [server_task, shutdown_task],
        return_when=asyncio.FIRST_COMPLETED
    )

    if server_task in done:
        shutdown_task.cancel()
        try:
            server_task.result()
            logging.info("Веб-сервер завершил работу")
        except Exception as e:
            logging.error(f"Веб-сервер завершился с ошибкой: {e}")
    else:
        logging.info("Получен сигнал завершения работы, останавливаем веб-сервер")
        server.should_exit = True
        await server_task
        logging.info("Веб-сервер остановлен")
