from aiogram.filters import BaseFilter
from aiogram.types import Message, CallbackQuery
from typing import Union
import logging

from src.config import settings


def is_admin(user_id: int) -> bool:
    """Проверяет, указан ли пользователь в ADMIN_IDS"""
    return user_id in settings.ADMIN_IDS


class AdminFilter(BaseFilter):
    """
    Фильтр для проверки, является ли пользователь администратором
    Администраторы задаются в настройке ADMIN_IDS
    """

    async def __call__(self, event: Union[Message, CallbackQuery]) -> bool:
        user_id = event.from_user.id if event.from_user else None
        if user_id is not None and is_admin(user_id):
            return True

        logging.warning(f"✗ Пользователь {user_id} НЕ является администратором")
        return False
