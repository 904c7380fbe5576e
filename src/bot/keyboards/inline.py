from aiogram.types import InlineKeyboardMarkup, InlineKeyboardButton, WebAppInfo
from aiogram.utils.keyboard import InlineKeyboardBuilder
import logging

from src.config import settings


def get_raffle_webapp_url(raffle_id: int) -> str:
    """URL страницы участия в розыгрыше"""
    base_url = (settings.WEBAPP_PUBLIC_URL or "").strip().rstrip('/')
    return f"{base_url}/raffle/{raffle_id}"


def get_raffle_keyboard(raffle_id: int) -> InlineKeyboardMarkup:
    """
    Клавиатура карточки розыгрыша с кнопкой участия.
    Telegram открывает WebApp только по https, иначе показываем обычную ссылку.
    """
    builder = InlineKeyboardBuilder()
    url = get_raffle_webapp_url(raffle_id)

    if url.startswith("https://"):
        builder.add(InlineKeyboardButton(
            text="🎲 Участвовать",
            web_app=WebAppInfo(url=url)
        ))
    else:
        logging.warning(f"⚠️ URL для WebApp должен начинаться с https://, получен: {url}")
        builder.add(InlineKeyboardButton(text="🎲 Участвовать", url=url))

    return builder.as_markup()
