from aiogram import Bot, html
from aiogram.types import InlineKeyboardMarkup, InlineKeyboardButton
from typing import List, Optional
import logging

from src.config import settings
from src.database.models import Raffle, Winner


def format_end_date(raffle: Raffle) -> str:
    return raffle.ends_at.strftime("%d.%m.%Y %H:%M") + " UTC"


def format_announcement_message(raffle: Raffle) -> str:
    """Текст анонса розыгрыша для канала"""
    lines = [
        html.quote(raffle.announcement_text or "🎉 Новый розыгрыш"),
        "",
        html.bold(html.quote(raffle.title)),
    ]
    if raffle.description:
        lines += ["", html.quote(raffle.description)]
    lines += [
        "",
        f"🎁 Приз: {html.quote(raffle.prize)} ({raffle.prize_count} шт.)",
        f"👥 Количество победителей: {raffle.prize_count}",
    ]
    if raffle.max_participants:
        lines.append(f"🔒 Максимум участников: {raffle.max_participants}")
    lines += [
        f"⏰ Окончание: {format_end_date(raffle)}",
        "",
        "Для участия нажмите на кнопку ниже 👇",
    ]
    return "\n".join(lines)


def format_winners_message(raffle: Raffle, winners: List[Winner]) -> str:
    """Текст итогов розыгрыша для канала"""
    winners_list = ", ".join(html.quote(w.participant.display_name) for w in winners)
    return (
        f"🎉 {html.bold(html.quote(raffle.title))}\n\n"
        f"Розыгрыш окончен!\n\n"
        f"🎁 Приз: {html.quote(raffle.prize)}\n"
        f"🏆 Победители: {winners_list}"
    )


def format_winner_private_message(raffle: Raffle, winner: Winner) -> str:
    return (
        f"🎉 Поздравляем!\n\n"
        f"Вы стали победителем в розыгрыше \"{html.quote(raffle.title)}\"!\n\n"
        f"Ваш выигрыш: {html.quote(winner.prize)}"
    )


class TelegramNotifier:
    """
    Публикация анонсов и итогов розыгрышей через Telegram.
    Доставка не гарантируется: ошибки отправки пробрасываются вызывающему,
    а notify_winners логирует их и не влияет на уже записанных победителей.
    """

    def __init__(self, bot: Bot, channel_id: Optional[str] = None):
        self.bot = bot
        self.channel_id = channel_id if channel_id is not None else settings.CHANNEL_ID
        self._bot_username: Optional[str] = None

    async def get_bot_username(self) -> str:
        if self._bot_username is None:
            me = await self.bot.get_me()
            self._bot_username = me.username or ""
        return self._bot_username

    async def get_join_keyboard(self, raffle: Raffle) -> InlineKeyboardMarkup:
        username = await self.get_bot_username()
        return InlineKeyboardMarkup(
            inline_keyboard=[[
                InlineKeyboardButton(
                    text="🎲 Участвовать в розыгрыше",
                    url=f"https://t.me/{username}?start=raffle_{raffle.id}"
                )
            ]]
        )

    async def announce_raffle(self, raffle: Raffle) -> Optional[int]:
        """
        Публикует анонс розыгрыша в канале.

        Returns:
            Optional[int]: ID сообщения в канале или None, если канал не задан
        """
        if not self.channel_id:
            logging.warning(f"CHANNEL_ID не задан, анонс розыгрыша {raffle.id} не опубликован")
            return None

        message = await self.bot.send_message(
            chat_id=self.channel_id,
            text=format_announcement_message(raffle),
            parse_mode="HTML",
            reply_markup=await self.get_join_keyboard(raffle),
        )
        logging.info(f"Анонс розыгрыша {raffle.id} опубликован, сообщение {message.message_id}")
        return message.message_id

    async def announce_winners(self, raffle: Raffle, winners: List[Winner]) -> None:
        """Редактирует анонс в канале (если он есть) или публикует новое сообщение с итогами"""
        if not self.channel_id:
            logging.warning(f"CHANNEL_ID не задан, итоги розыгрыша {raffle.id} не опубликованы")
            return

        text = format_winners_message(raffle, winners)
        if raffle.announcement_message_id:
            await self.bot.edit_message_text(
                text=text,
                chat_id=self.channel_id,
                message_id=raffle.announcement_message_id,
                parse_mode="HTML",
            )
        else:
            await self.bot.send_message(chat_id=self.channel_id, text=text, parse_mode="HTML")
        logging.info(f"Итоги розыгрыша {raffle.id} опубликованы в канале")

    async def notify_winner_privately(self, raffle: Raffle, winner: Winner) -> None:
        telegram_id = winner.participant.telegram_id
        await self.bot.send_message(
            chat_id=telegram_id,
            text=format_winner_private_message(raffle, winner),
            parse_mode="HTML",
        )
        logging.info(f"Победитель {telegram_id} розыгрыша {raffle.id} уведомлен")


async def notify_winners(notifier: Optional[TelegramNotifier], raffle: Raffle, winners: List[Winner]) -> None:
    """
    Объявляет итоги и уведомляет каждого победителя.
    Любая ошибка логируется и не прерывает остальные отправки.
    """
    if notifier is None:
        logging.info(f"Уведомления для розыгрыша {raffle.id} отключены")
        return

    try:
        await notifier.announce_winners(raffle, winners)
    except Exception as e:
        logging.error(f"Не удалось опубликовать итоги розыгрыша {raffle.id}: {e}")

    for winner in winners:
        try:
            await notifier.notify_winner_privately(raffle, winner)
        except Exception as e:
            logging.error(
                f"Не удалось уведомить победителя {winner.participant.telegram_id} "
                f"розыгрыша {raffle.id}: {e}"
            )
