import random
import time
from typing import Deque, Dict, List, Callable, Tuple
from fastapi import Request, status
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse
import logging
from collections import defaultdict, deque

from src.utils.helpers import get_client_ip

class RateLimiter:
    """
    Скользящее окно запросов для каждого клиента.
    """

    def __init__(self, window_size: int = 60, max_requests: int = 30):
        self.window_size = window_size
        self.max_requests = max_requests
        self.clients: Dict[str, Deque[float]] = defaultdict(deque)

    def is_allowed(self, client_id: str) -> Tuple[bool, Dict]:
        """
        Проверяет, разрешено ли клиенту выполнить запрос, и учитывает его.

        Returns:
            Tuple[bool, Dict]: (разрешено, информация о лимите)
        """
        current_time = time.time()
        timestamps = self.clients[client_id]

        # Отбрасываем запросы за пределами окна
        while timestamps and current_time - timestamps[0] >= self.window_size:
            timestamps.popleft()

        if len(timestamps) >= self.max_requests:
            reset_time = timestamps[0] + self.window_size
            return False, {
                "limit": self.max_requests,
                "remaining": 0,
                "reset": reset_time,
                "time_remaining": round(max(0, reset_time - current_time), 2)
            }

        timestamps.append(current_time)
        return True, {
            "limit": self.max_requests,
            "remaining": self.max_requests - len(timestamps),
            "reset": timestamps[0] + self.window_size,
            "time_remaining": 0
        }

    def cleanup(self, max_idle_time: int = 3600):
        """Удаляет клиентов без запросов дольше max_idle_time секунд"""
        current_time = time.time()
        inactive_clients = [
            client_id for client_id, timestamps in self.clients.items()
            if not timestamps or current_time - timestamps[-1] > max_idle_time
        ]
        for client_id in inactive_clients:
            del self.clients[client_id]


class RateLimiterMiddleware(BaseHTTPMiddleware):
    """
    Middleware для ограничения частоты запросов.
    Клиент определяется по IP-адресу и User-Agent, для отдельных путей API
    можно задать свои лимиты.
    """

    def __init__(
        self,
        app,
        default_window_size: int = 60,
        default_max_requests: int = 30,
        exclude_paths: List[str] = None,
        path_limits: Dict[str, Tuple[int, int]] = None
    ):
        """
        Инициализирует middleware для ограничения частоты запросов.

        Args:
            app: FastAPI приложение
            default_window_size (int): Размер временного окна по умолчанию в секундах
            default_max_requests (int): Максимальное количество запросов по умолчанию
            exclude_paths (List[str], optional): Префиксы путей, которые не ограничиваются
            path_limits (Dict[str, Tuple[int, int]], optional): Специальные лимиты для отдельных путей
                в формате {путь: (окно_в_секундах, макс_запросов)}
        """
        super().__init__(app)

        self.exclude_paths = exclude_paths or ["/docs", "/redoc", "/openapi.json", "/api/cron/"]
        self.default_limiter = RateLimiter(default_window_size, default_max_requests)

        # Инициализируем специальные лимитеры для разных путей
        self.path_limiters = {}
        if path_limits:
            for path, (window, max_req) in path_limits.items():
                self.path_limiters[path] = RateLimiter(window, max_req)

    async def dispatch(self, request: Request, call_next: Callable):
        """
        Обрабатывает каждый HTTP запрос и проверяет ограничения частоты.

        Args:
            request (Request): Объект запроса
            call_next (Callable): Функция для передачи запроса дальше

        Returns:
            Response: Ответ от следующего обработчика или ошибка лимита
        """
        # Пропускаем пути, которые не ограничиваются
        for path in self.exclude_paths:
            if request.url.path.startswith(path):
                return await call_next(request)

        client_id = self._get_client_id(request)

        # Определяем, какой лимитер использовать
        limiter = self._get_limiter_for_path(request.url.path)

        # Проверяем, не превышен ли лимит
        allowed, limit_info = limiter.is_allowed(client_id)

        # Периодически очищаем неактивных клиентов (~1% запросов)
        if random.random() < 0.01:
            limiter.cleanup()

        if not allowed:
            logging.warning(f"Превышен лимит запросов для {client_id} на {request.url.path}")

            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={"detail": f"Превышен лимит запросов. Повторите через {limit_info['time_remaining']} секунд."},
                headers={"Retry-After": str(int(limit_info["time_remaining"]) + 1)}
            )

        # Если лимит не превышен, продолжаем обработку запроса
        response = await call_next(request)

        # Добавляем заголовки с информацией о лимите
        response.headers["X-RateLimit-Limit"] = str(limit_info["limit"])
        response.headers["X-RateLimit-Remaining"] = str(limit_info["remaining"])
        response.headers["X-RateLimit-Reset"] = str(int(limit_info["reset"]))

        return response

    def _get_client_id(self, request: Request) -> str:
        """
        Определяет идентификатор клиента: IP-адрес и хеш User-Agent.

        Args:
            request (Request): Объект запроса

        Returns:
            str: Идентификатор клиента
        """
        client_host = get_client_ip(request)

        # Добавляем User-Agent для большей точности идентификации
        user_agent = request.headers.get("User-Agent", "")
        user_agent_hash = hash(user_agent) % 10000 if user_agent else ""

        return f"ip:{client_host}:{user_agent_hash}"

    def _get_limiter_for_path(self, path: str) -> RateLimiter:
        """
        Выбирает подходящий лимитер для указанного пути.

        Args:
            path (str): Путь запроса

        Returns:
            RateLimiter: Лимитер для указанного пути
        """
        # Проверяем точные совпадения
        if path in self.path_limiters:
            return self.path_limiters[path]

        # Проверяем по префиксам
        for prefix, limiter in self.path_limiters.items():
            if path.startswith(prefix):
                return limiter

        # Используем лимитер по умолчанию, если не найдено соответствий
        return self.default_limiter
