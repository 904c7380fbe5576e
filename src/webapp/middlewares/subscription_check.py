from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse
import logging
from typing import List

from src.config import settings
from src.bot.utils.subscription import check_all_subscriptions, get_missing_channels


class SubscriptionCheckMiddleware(BaseHTTPMiddleware):
    """
    Middleware для проверки подписки пользователя на обязательные каналы.
    Блокирует участие в розыгрышах для пользователей, не подписанных на каналы.
    Должен выполняться после TelegramAuthMiddleware (нужен request.state.user_id).
    """

    def __init__(
        self,
        app,
        bot_instance=None,
        api_path_prefix: str = "/api/raffles/",
        path_suffixes: List[str] = None,
    ):
        super().__init__(app)
        self.bot_instance = bot_instance
        self.api_path_prefix = api_path_prefix
        self.path_suffixes = path_suffixes or ["/join"]

    def _should_check(self, request: Request) -> bool:
        path = request.url.path
        if request.method != "POST" or not path.startswith(self.api_path_prefix):
            return False
        return any(path.endswith(suffix) for suffix in self.path_suffixes)

    async def dispatch(self, request: Request, call_next):
        """
        Проверяет подписку пользователя перед участием в розыгрыше.

        Args:
            request (Request): Объект запроса
            call_next: Следующий обработчик в цепочке middleware

        Returns:
            Response: Ответ сервера
        """
        if not self._should_check(request):
            return await call_next(request)

        # Проверяем, нужно ли проверять подписку (настройка REQUIRED_CHANNELS)
        if not settings.REQUIRED_CHANNELS:
            return await call_next(request)

        # Проверяем наличие экземпляра бота
        if not self.bot_instance:
            logging.error("Экземпляр бота не передан в SubscriptionCheckMiddleware")
            return await call_next(request)

        user_id = getattr(request.state, 'user_id', None)
        if not user_id:
            return JSONResponse(status_code=401, content={"detail": "Нет авторизации Telegram"})

        try:
            all_subscribed, channels = await check_all_subscriptions(self.bot_instance, user_id)
        except Exception as e:
            logging.error(f"Ошибка при проверке подписки пользователя {user_id}: {e}")
            # В случае ошибки пропускаем запрос (не блокируем)
            return await call_next(request)

        if not all_subscribed:
            return JSONResponse(
                status_code=403,
                content={
                    "detail": {
                        "code": "NotSubscribed",
                        "message": "Для участия в розыгрыше необходимо подписаться на все обязательные каналы.",
                        "missing_channels": get_missing_channels(channels),
                    }
                }
            )

        return await call_next(request)
