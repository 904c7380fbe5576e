import logging
from typing import Optional

import aiohttp

from src.config import settings


async def verify_turnstile_token(token: Optional[str], remote_ip: Optional[str] = None) -> bool:
    """
    Проверяет токен Cloudflare Turnstile.

    Если TURNSTILE_SECRET_KEY не задан, проверка отключена (локальная разработка).

    Args:
        token (str): Токен, полученный виджетом на странице
        remote_ip (str, optional): IP пользователя

    Returns:
        bool: True, если проверка пройдена
    """
    if not settings.TURNSTILE_SECRET_KEY:
        logging.warning("TURNSTILE_SECRET_KEY не задан, проверка Turnstile пропущена")
        return True

    if not token:
        return False

    payload = {"secret": settings.TURNSTILE_SECRET_KEY, "response": token}
    if remote_ip:
        payload["remoteip"] = remote_ip

    try:
        timeout = aiohttp.ClientTimeout(total=settings.TURNSTILE_TIMEOUT)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.post(settings.TURNSTILE_VERIFY_URL, data=payload) as response:
                data = await response.json(content_type=None)
    except (aiohttp.ClientError, TimeoutError) as e:
        logging.error(f"Ошибка при проверке Turnstile: {e}")
        return False

    if not data.get("success"):
        logging.warning(f"Проверка Turnstile не пройдена: {data.get('error-codes')}")
        return False
    return True
