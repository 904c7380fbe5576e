from aiogram import Router
from aiogram.types import Message
from aiogram.filters import CommandStart, CommandObject, Command
import logging

from src.bot.keyboards.inline import get_raffle_keyboard
from src.database.db import get_session
from src.database.repositories import RaffleRepository, ParticipantRepository
from src.raffles.notifier import format_end_date
from src.utils.helpers import utcnow

router = Router(name="start_commands")

RAFFLE_PAYLOAD_PREFIX = "raffle_"

HELP_TEXT = (
    "🎲 Бот розыгрышей\n\n"
    "/raffles - активные розыгрыши\n"
    "/help - эта справка\n\n"
    "Чтобы участвовать, нажмите кнопку под анонсом в канале."
)


def parse_raffle_payload(payload: str | None) -> int | None:
    """Достает ID розыгрыша из deep-link параметра raffle_<id>"""
    if not payload or not payload.startswith(RAFFLE_PAYLOAD_PREFIX):
        return None
    try:
        return int(payload[len(RAFFLE_PAYLOAD_PREFIX):])
    except ValueError:
        return None


@router.message(CommandStart())
async def start_command(message: Message, command: CommandObject):
    """Обработчик команды /start, в том числе перехода по ссылке из анонса"""
    raffle_id = parse_raffle_payload(command.args)
    logging.info(f"/start от пользователя {message.from_user.id}, розыгрыш: {raffle_id}")

    if raffle_id is None:
        await message.answer(HELP_TEXT, parse_mode=None)
        return

    async for session in get_session():
        raffle = await RaffleRepository(session).get_by_id(raffle_id)
        if not raffle:
            await message.answer("❌ Розыгрыш не найден.", parse_mode=None)
            return

        if raffle.has_ended(utcnow()):
            await message.answer(f"🔴 Розыгрыш \"{raffle.title}\" уже завершен.", parse_mode=None)
            return

        participants_count = await ParticipantRepository(session).count(raffle_id)

        text = f"🎉 {raffle.title}\n\n"
        if raffle.description:
            text += f"{raffle.description}\n\n"
        text += f"🎁 Приз: {raffle.prize} ({raffle.prize_count} шт.)\n"
        text += f"👥 Участников: {participants_count}"
        if raffle.is_limited():
            text += f" из {raffle.max_participants}"
        text += f"\n⏰ Окончание: {format_end_date(raffle)}"

        await message.answer(text, parse_mode=None, reply_markup=get_raffle_keyboard(raffle.id))
        break


@router.message(Command("raffles"))
async def raffles_command(message: Message):
    """Список активных розыгрышей"""
    async for session in get_session():
        raffles = await RaffleRepository(session).list_active(utcnow())
        if not raffles:
            await message.answer("Сейчас нет активных розыгрышей.", parse_mode=None)
            return

        lines = ["🎲 Активные розыгрыши:\n"]
        for raffle in raffles:
            lines.append(f"#{raffle.id} {raffle.title} - до {format_end_date(raffle)}")
        lines.append("\nДля участия откройте анонс розыгрыша в канале.")
        await message.answer("\n".join(lines), parse_mode=None)
        break


@router.message(Command("help"))
async def help_command(message: Message):
    await message.answer(HELP_TEXT, parse_mode=None)
