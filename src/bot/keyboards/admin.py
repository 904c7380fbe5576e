from aiogram.types import InlineKeyboardMarkup, InlineKeyboardButton
from typing import List

from src.database.models import Raffle
from .callback_data import AdminCallback


def get_admin_keyboard() -> InlineKeyboardMarkup:
    """
    Возвращает инлайн-клавиатуру для админ-панели

    Returns:
        InlineKeyboardMarkup: Инлайн-клавиатура для админ-панели
    """
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [InlineKeyboardButton(
                text="📋 Список розыгрышей",
                callback_data=AdminCallback(action="list_raffles").pack()
            )],
            [InlineKeyboardButton(
                text="⚠️ Зависшие розыгрыши",
                callback_data=AdminCallback(action="list_stalled").pack()
            )],
            [InlineKeyboardButton(
                text="➕ Создать розыгрыш",
                callback_data=AdminCallback(action="create_raffle").pack()
            )],
        ]
    )


def get_back_to_menu_keyboard() -> InlineKeyboardMarkup:
    """
    Возвращает инлайн-клавиатуру с кнопкой "Назад" для подразделов админ-панели
    """
    return InlineKeyboardMarkup(
        inline_keyboard=[[
            InlineKeyboardButton(
                text="◀️ Назад",
                callback_data=AdminCallback(action="back_to_menu").pack()
            )
        ]]
    )


def get_raffles_list_keyboard(raffles: List[Raffle]) -> InlineKeyboardMarkup:
    """Кнопка на каждый розыгрыш + "Назад" """
    keyboard_buttons = [
        [InlineKeyboardButton(
            text=f"#{raffle.id} {raffle.title}",
            callback_data=AdminCallback(action="raffle_details", value=str(raffle.id)).pack()
        )]
        for raffle in raffles
    ]
    keyboard_buttons.append([
        InlineKeyboardButton(
            text="◀️ Назад",
            callback_data=AdminCallback(action="back_to_menu").pack()
        )
    ])
    return InlineKeyboardMarkup(inline_keyboard=keyboard_buttons)


def get_raffle_details_keyboard(raffle_id: int, can_draw: bool) -> InlineKeyboardMarkup:
    keyboard_buttons = []
    if can_draw:
        keyboard_buttons.append([InlineKeyboardButton(
            text="🎲 Выбрать победителей",
            callback_data=AdminCallback(action="draw_winners", value=str(raffle_id)).pack()
        )])
    keyboard_buttons.append([InlineKeyboardButton(
        text="🗑 Удалить розыгрыш",
        callback_data=AdminCallback(action="confirm_delete", value=str(raffle_id)).pack()
    )])
    keyboard_buttons.append([InlineKeyboardButton(
        text="◀️ К списку",
        callback_data=AdminCallback(action="list_raffles").pack()
    )])
    return InlineKeyboardMarkup(inline_keyboard=keyboard_buttons)


def get_confirm_delete_keyboard(raffle_id: int) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [InlineKeyboardButton(
                text="✅ Да, удалить",
                callback_data=AdminCallback(action="delete_raffle", value=str(raffle_id)).pack()
            )],
            [InlineKeyboardButton(
                text="❌ Отмена",
                callback_data=AdminCallback(action="raffle_details", value=str(raffle_id)).pack()
            )],
        ]
    )
