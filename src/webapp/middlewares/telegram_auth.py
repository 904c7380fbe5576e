import hmac
import hashlib
import time
from typing import List, Callable, Dict, Any
from urllib.parse import parse_qs
from fastapi import Request, status
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse
from src.config import settings
import logging
import json

logger = logging.getLogger(__name__)

class TelegramAuthMiddleware(BaseHTTPMiddleware):
    """
    Middleware для проверки авторизации Telegram WebApp.
    Реализует проверку подписи initData согласно официальной документации
    и кладет пользователя в request.state (user_id, telegram_user).
    """

    def __init__(
        self,
        app,
        bot_token: str = None,
        exclude_paths: List[str] = None,
        exclude_prefixes: List[str] = None,
        max_auth_age: int = 86400  # 24 часа
    ):
        super().__init__(app)
        self.bot_token = bot_token or settings.BOT_TOKEN

        if not self.bot_token:
            logger.error("BOT_TOKEN не указан для TelegramAuthMiddleware")
            raise ValueError("BOT_TOKEN обязателен для TelegramAuthMiddleware")

        # Секретный ключ WebApp: HMAC-SHA256 токена бота с ключом "WebAppData"
        self.secret_key = hmac.new(b"WebAppData", self.bot_token.encode(), hashlib.sha256).digest()
        self.exclude_paths = exclude_paths or ["/health", "/docs", "/openapi.json"]
        self.exclude_prefixes = exclude_prefixes or ["/static/"]
        self.max_auth_age = max_auth_age

    async def dispatch(self, request: Request, call_next: Callable):
        path = request.url.path

        if self._should_skip_auth(path):
            return await call_next(request)

        init_data_raw = request.headers.get("X-Telegram-Init-Data")
        if not init_data_raw:
            logger.warning(f"Отсутствует X-Telegram-Init-Data для {path}")
            return JSONResponse(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content={"detail": "Требуется авторизация Telegram"}
            )

        validation_result = self.validate_telegram_data(init_data_raw)
        if not validation_result["valid"]:
            logger.error(f"Ошибка валидации: {validation_result.get('error')}")
            return JSONResponse(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content={"detail": "Недействительные данные авторизации"}
            )

        # Установка пользователя в состояние запроса
        request.state.user_id = validation_result["user_id"]
        request.state.telegram_user = validation_result["user"]

        return await call_next(request)

    def _should_skip_auth(self, path: str) -> bool:
        """Проверяет исключения для путей"""
        if path in self.exclude_paths:
            return True
        return any(path.startswith(prefix) for prefix in self.exclude_prefixes)

    def build_data_check_string(self, parsed_data: Dict[str, List[str]]) -> str:
        """Строка для подписи: пары key=value без hash, отсортированные по ключу"""
        data_check_list = []
        for key, values in parsed_data.items():
            if key == "hash":
                continue
            # Используем первое значение для каждого ключа
            value = values[0] if values else ""
            data_check_list.append(f"{key}={value}")
        data_check_list.sort()
        return "\n".join(data_check_list)

    def validate_telegram_data(self, init_data_raw: str) -> Dict[str, Any]:
        """
        Валидирует данные Telegram WebApp согласно документации:
        https://core.telegram.org/bots/webapps#validating-data-received-via-the-mini-app
        """
        try:
            # Парсинг query-строки
            parsed_data = parse_qs(init_data_raw)

            # Проверка обязательных полей
            required = ["hash", "auth_date", "user"]
            for field in required:
                if field not in parsed_data or not parsed_data[field]:
                    return {"valid": False, "error": f"Отсутствует поле: {field}"}

            telegram_hash = parsed_data["hash"][0]
            auth_date = parsed_data["auth_date"][0]
            user_data = parsed_data["user"][0]

            # Проверка временной метки
            try:
                auth_time = int(auth_date)
                if time.time() - auth_time > self.max_auth_age:
                    return {"valid": False, "error": "Данные авторизации устарели"}
            except ValueError:
                return {"valid": False, "error": "Неверный формат времени авторизации"}

            # Генерация HMAC
            computed_hash = hmac.new(
                self.secret_key,
                self.build_data_check_string(parsed_data).encode(),
                hashlib.sha256
            ).hexdigest()

            # Безопасное сравнение хешей
            if not hmac.compare_digest(computed_hash, telegram_hash):
                return {"valid": False, "error": "Несовпадение хешей"}

            # Извлечение пользователя
            try:
                user = json.loads(user_data)
                user_id = user.get("id")
                if not user_id:
                    return {"valid": False, "error": "Отсутствует ID пользователя"}
            except json.JSONDecodeError:
                return {"valid": False, "error": "Ошибка парсинга данных пользователя"}

            return {"valid": True, "user_id": int(user_id), "user": user}

        except Exception as e:
            logger.error(f"Ошибка валидации: {str(e)}")
            return {"valid": False, "error": f"Системная ошибка: {str(e)}"}
