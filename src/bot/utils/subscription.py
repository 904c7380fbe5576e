from aiogram import Bot
from aiogram.exceptions import TelegramAPIError, TelegramBadRequest, TelegramForbiddenError
from aiogram.types import ChatFullInfo
from aiogram.enums import ChatMemberStatus
import logging
from typing import List, Dict, Tuple, Any, Optional, Union

from src.config import settings

SUBSCRIBED_STATUSES = (
    ChatMemberStatus.CREATOR,
    ChatMemberStatus.ADMINISTRATOR,
    ChatMemberStatus.MEMBER,
    ChatMemberStatus.RESTRICTED,
)


def normalize_channel_identifier(channel_identifier: str) -> Union[str, int]:
    """
    Приводит идентификатор канала к виду, понятному Bot API.

    Args:
        channel_identifier (str): @username, t.me/username, https://t.me/username или числовой ID

    Returns:
        Union[str, int]: Числовой ID или @username
    """
    channel_identifier = channel_identifier.strip()
    if channel_identifier.lstrip('-').isdigit():
        return int(channel_identifier)
    if channel_identifier.startswith(('https://t.me/', 't.me/')):
        return '@' + channel_identifier.rstrip('/').split('/')[-1]
    if not channel_identifier.startswith('@'):
        return '@' + channel_identifier
    return channel_identifier


async def get_chat_info(bot: Bot, channel_identifier: str) -> Optional[ChatFullInfo]:
    """Получает информацию о канале, None если канал недоступен боту"""
    try:
        return await bot.get_chat(normalize_channel_identifier(channel_identifier))
    except TelegramAPIError as e:
        logging.error(f"Ошибка при получении информации о канале {channel_identifier}: {e}")
        return None


async def check_user_subscription(bot: Bot, user_id: int, chat_id: int) -> bool:
    """
    Проверяет, подписан ли пользователь на канал.
    Если бот не может проверить подписку (не админ канала, удален из канала),
    пользователь считается подписанным.
    """
    try:
        member = await bot.get_chat_member(chat_id, user_id)
    except (TelegramBadRequest, TelegramForbiddenError) as e:
        error_text = str(e).lower()
        if "user not found" in error_text or "participant_id_invalid" in error_text:
            return False
        logging.warning(f"Не удалось проверить подписку {user_id} на канал {chat_id}: {e}")
        return True

    return member.status in SUBSCRIBED_STATUSES


async def check_all_subscriptions(bot: Bot, user_id: int) -> Tuple[bool, List[Dict[str, Any]]]:
    """
    Проверяет подписку пользователя на все обязательные каналы.

    Args:
        bot (Bot): Экземпляр бота
        user_id (int): ID пользователя

    Returns:
        Tuple[bool, List[Dict[str, Any]]]: (все_подписки_активны, список_каналов_с_информацией)
    """
    if not settings.REQUIRED_CHANNELS:
        return True, []

    all_subscribed = True
    channels_info = []

    for channel_id in settings.REQUIRED_CHANNELS:
        chat_info = await get_chat_info(bot, channel_id)
        if not chat_info:
            continue

        is_subscribed = await check_user_subscription(bot, user_id, chat_info.id)
        channels_info.append({
            "chat_id": chat_info.id,
            "title": chat_info.title,
            "username": chat_info.username,
            "invite_link": chat_info.invite_link,
            "is_subscribed": is_subscribed
        })

        if not is_subscribed:
            all_subscribed = False

    return all_subscribed, channels_info


def get_missing_channels(channels_info: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Каналы, на которые пользователь не подписан, в виде для ответа API"""
    return [
        {"title": ch["title"], "username": ch["username"], "invite_link": ch["invite_link"]}
        for ch in channels_info if not ch["is_subscribed"]
    ]
