from aiogram import Router, F
from aiogram.types import Message, CallbackQuery
from aiogram.filters import Command, CommandObject
from aiogram.exceptions import TelegramBadRequest
from datetime import datetime
import logging

from src.bot.keyboards.admin import (
    get_admin_keyboard,
    get_back_to_menu_keyboard,
    get_raffles_list_keyboard,
    get_raffle_details_keyboard,
    get_confirm_delete_keyboard,
)
from src.bot.filters.admin import AdminFilter
from src.bot.keyboards.callback_data import AdminCallback
from src.database.db import get_session
from src.database.repositories import RaffleRepository, ParticipantRepository, WinnerRepository
from src.raffles.exceptions import RaffleError
from src.raffles.manage import create_raffle, delete_raffle
from src.raffles.notifier import TelegramNotifier, notify_winners
from src.raffles.selector import select_winners
from src.utils.helpers import utcnow

# Роутер только для команд администратора
router = Router(name="admin_commands")

END_DATE_FORMAT = "%Y-%m-%d %H:%M"

CREATE_RAFFLE_HELP = (
    "➕ Создание розыгрыша\n\n"
    "Отправьте команду, каждое поле с новой строки:\n\n"
    "/create_raffle\n"
    "Название\n"
    "Описание (или -)\n"
    "Приз\n"
    "Количество призов\n"
    "Максимум участников (0 - без ограничения)\n"
    "Дата окончания ГГГГ-ММ-ДД ЧЧ:ММ (UTC)\n\n"
    "Пример:\n"
    "/create_raffle\n"
    "Новогодний розыгрыш\n"
    "Разыгрываем наушники среди подписчиков\n"
    "Наушники\n"
    "3\n"
    "0\n"
    "2026-12-31 18:00"
)


def parse_create_raffle_text(text: str) -> dict:
    """
    Разбирает аргументы команды /create_raffle.

    Raises:
        ValueError: если формат неверный
    """
    lines = [line.strip() for line in (text or "").strip().splitlines() if line.strip()]
    if len(lines) != 6:
        raise ValueError(f"Ожидается 6 строк, получено {len(lines)}")

    title, description, prize, prize_count, max_participants, ends_at = lines

    try:
        prize_count = int(prize_count)
        max_participants = int(max_participants)
    except ValueError:
        raise ValueError("Количество призов и максимум участников должны быть числами")

    try:
        ends_at = datetime.strptime(ends_at, END_DATE_FORMAT)
    except ValueError:
        raise ValueError("Дата окончания должна быть в формате ГГГГ-ММ-ДД ЧЧ:ММ")

    return {
        "title": title,
        "description": None if description == "-" else description,
        "prize": prize,
        "prize_count": prize_count,
        "max_participants": max_participants,
        "ends_at": ends_at,
    }


@router.message(Command("admin"), AdminFilter())
async def admin_command(message: Message):
    """Обработчик команды /admin"""
    logging.info(f"Вызвана административная панель пользователем {message.from_user.id}")
    await message.answer(
        "Панель администратора:",
        parse_mode=None,
        reply_markup=get_admin_keyboard()
    )


@router.message(Command("create_raffle"), AdminFilter())
async def create_raffle_command(message: Message, command: CommandObject):
    """Обработчик команды создания розыгрыша"""
    try:
        values = parse_create_raffle_text(command.args)
    except ValueError as e:
        await message.answer(f"❌ {e}\n\n{CREATE_RAFFLE_HELP}", parse_mode=None)
        return

    if values["ends_at"] <= utcnow():
        await message.answer("❌ Дата окончания должна быть в будущем.", parse_mode=None)
        return

    async for session in get_session():
        try:
            raffle = await create_raffle(session, created_by=message.from_user.id, **values)
        except RaffleError as e:
            await message.answer(f"❌ {e.message}", parse_mode=None)
            return

        try:
            message_id = await TelegramNotifier(message.bot).announce_raffle(raffle)
            if message_id:
                await RaffleRepository(session).set_announcement_message(raffle.id, message_id)
        except Exception as e:
            logging.error(f"Не удалось опубликовать анонс розыгрыша {raffle.id}: {e}")

        await message.answer(
            f"✅ Розыгрыш #{raffle.id} создан!\n\n"
            f"🎉 Название: {raffle.title}\n"
            f"🎁 Приз: {raffle.prize} ({raffle.prize_count} шт.)\n"
            f"⏰ Окончание: {raffle.ends_at.strftime(END_DATE_FORMAT)} UTC",
            parse_mode=None,
            reply_markup=get_back_to_menu_keyboard()
        )
        break


# Главный обработчик для всех admin callback
@router.callback_query(F.data.startswith("admin:"), AdminFilter())
async def handle_admin_callbacks(callback: CallbackQuery):
    """Главный обработчик для всех admin callback"""
    try:
        callback_data = AdminCallback.unpack(callback.data)
    except (TypeError, ValueError) as e:
        logging.error(f"❌ Ошибка парсинга callback {callback.data}: {e}")
        await callback.answer("❌ Ошибка обработки запроса", show_alert=True)
        return

    action = callback_data.action
    value = callback_data.value
    logging.info(f"🎯 Admin callback: action={action}, value={value}, user={callback.from_user.id}")

    if action == "list_raffles":
        await list_raffles_handler(callback)
    elif action == "list_stalled":
        await list_stalled_handler(callback)
    elif action == "create_raffle":
        await create_raffle_handler(callback)
    elif action == "raffle_details":
        await raffle_details_handler(callback, value)
    elif action == "draw_winners":
        await draw_winners_handler(callback, value)
    elif action == "confirm_delete":
        await confirm_delete_handler(callback, value)
    elif action == "delete_raffle":
        await delete_raffle_handler(callback, value)
    elif action == "back_to_menu":
        await back_to_menu_handler(callback)
    else:
        logging.warning(f"⚠️ Неизвестное действие: {action}")
        await callback.answer(f"⚠️ Действие {action} не реализовано", show_alert=True)


async def edit_panel(callback: CallbackQuery, text: str, reply_markup=None):
    """Редактирует сообщение панели; повторное нажатие той же кнопки не считается ошибкой"""
    try:
        await callback.message.edit_text(text, parse_mode=None, reply_markup=reply_markup)
    except TelegramBadRequest as e:
        if "message is not modified" not in str(e):
            raise


async def back_to_menu_handler(callback: CallbackQuery):
    """Обработчик возврата в главное меню админки"""
    await callback.answer()
    await edit_panel(callback, "Панель администратора:", get_admin_keyboard())


async def create_raffle_handler(callback: CallbackQuery):
    await callback.answer()
    await edit_panel(callback, CREATE_RAFFLE_HELP, get_back_to_menu_keyboard())


async def list_raffles_handler(callback: CallbackQuery):
    """Обработчик списка розыгрышей"""
    await callback.answer()

    async for session in get_session():
        raffles = await RaffleRepository(session).list_all()
        if not raffles:
            await edit_panel(callback, "📋 Розыгрышей пока нет.", get_back_to_menu_keyboard())
            return

        await edit_panel(
            callback,
            f"📋 Розыгрыши ({len(raffles)}):",
            get_raffles_list_keyboard(raffles)
        )
        break


async def list_stalled_handler(callback: CallbackQuery):
    """Завершившиеся розыгрыши, которым не хватило участников"""
    await callback.answer()

    async for session in get_session():
        raffles = await RaffleRepository(session).list_stalled(utcnow())
        if not raffles:
            await edit_panel(callback, "✅ Зависших розыгрышей нет.", get_back_to_menu_keyboard())
            return

        await edit_panel(
            callback,
            f"⚠️ Зависшие розыгрыши ({len(raffles)}):\n\n"
            f"Участников меньше, чем призов. Уменьшите количество призов "
            f"через API или удалите розыгрыш.",
            get_raffles_list_keyboard(raffles)
        )
        break


def parse_raffle_id(value: str | None) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


async def raffle_details_handler(callback: CallbackQuery, raffle_id_str: str | None):
    """Обработчик для деталей розыгрыша"""
    await callback.answer()

    raffle_id = parse_raffle_id(raffle_id_str)
    if raffle_id is None:
        await edit_panel(callback, "❌ Неверный ID розыгрыша.", get_back_to_menu_keyboard())
        return

    async for session in get_session():
        raffle = await RaffleRepository(session).get_by_id(raffle_id)
        if not raffle:
            await edit_panel(callback, "❌ Розыгрыш не найден.", get_back_to_menu_keyboard())
            return

        participants_count = await ParticipantRepository(session).count(raffle_id)
        winners = await WinnerRepository(session).list_by_raffle(raffle_id)
        now = utcnow()

        if winners:
            status_text = "🏆 Победители выбраны"
        elif raffle.has_ended(now):
            status_text = "🔴 Завершен, ожидает выбора победителей"
        else:
            status_text = "🟢 Активен"

        message_text = f"🎉 Розыгрыш #{raffle.id}\n\n"
        message_text += f"📝 Название: {raffle.title}\n"
        message_text += f"📄 Описание: {raffle.description or 'Нет описания'}\n"
        message_text += f"🎁 Приз: {raffle.prize} ({raffle.prize_count} шт.)\n"
        message_text += f"📊 Статус: {status_text}\n"
        message_text += f"👥 Участников: {participants_count}"
        if raffle.is_limited():
            message_text += f" из {raffle.max_participants}"
        message_text += f"\n⏰ Окончание: {raffle.ends_at.strftime(END_DATE_FORMAT)} UTC\n"

        if winners:
            message_text += "\n🏆 Победители:\n"
            for winner in winners:
                message_text += f"{winner.position}. {winner.participant.display_name}\n"

        can_draw = raffle.has_ended(now) and not winners
        await edit_panel(callback, message_text, get_raffle_details_keyboard(raffle.id, can_draw))
        break


async def draw_winners_handler(callback: CallbackQuery, raffle_id_str: str | None):
    """Выбор победителей вручную"""
    raffle_id = parse_raffle_id(raffle_id_str)
    if raffle_id is None:
        await callback.answer("❌ Неверный ID розыгрыша.", show_alert=True)
        return

    async for session in get_session():
        try:
            winners = await select_winners(session, raffle_id)
        except RaffleError as e:
            await callback.answer(f"❌ {e.message}", show_alert=True)
            return

        await callback.answer("✅ Победители выбраны")
        raffle = await RaffleRepository(session).get_by_id(raffle_id)
        await notify_winners(TelegramNotifier(callback.bot), raffle, winners)

        winners_text = "\n".join(f"{w.position}. {w.participant.display_name}" for w in winners)
        await edit_panel(
            callback,
            f"✅ Розыгрыш \"{raffle.title}\" завершен!\n\n🏆 Победители:\n{winners_text}",
            get_back_to_menu_keyboard()
        )
        break


async def confirm_delete_handler(callback: CallbackQuery, raffle_id_str: str | None):
    await callback.answer()
    raffle_id = parse_raffle_id(raffle_id_str)
    if raffle_id is None:
        await edit_panel(callback, "❌ Неверный ID розыгрыша.", get_back_to_menu_keyboard())
        return

    await edit_panel(
        callback,
        f"🗑 Удалить розыгрыш #{raffle_id} вместе с участниками и победителями?",
        get_confirm_delete_keyboard(raffle_id)
    )


async def delete_raffle_handler(callback: CallbackQuery, raffle_id_str: str | None):
    """Обработчик удаления розыгрыша"""
    raffle_id = parse_raffle_id(raffle_id_str)
    if raffle_id is None:
        await callback.answer("❌ Неверный ID розыгрыша.", show_alert=True)
        return

    async for session in get_session():
        try:
            await delete_raffle(session, raffle_id)
        except RaffleError as e:
            await callback.answer(f"❌ {e.message}", show_alert=True)
            return

        await callback.answer("✅ Розыгрыш удален")
        logging.info(f"Администратор {callback.from_user.id} удалил розыгрыш {raffle_id}")
        await edit_panel(callback, f"🗑 Розыгрыш #{raffle_id} удален.", get_back_to_menu_keyboard())
        break
