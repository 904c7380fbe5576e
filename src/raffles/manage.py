from datetime import datetime
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from src.database.models import Raffle
from src.database.repositories import RaffleRepository, ParticipantRepository
from src.raffles.exceptions import RaffleNotFound, InvalidRaffleData, EndDateLocked, StoreFailure
from src.utils.helpers import to_naive_utc

EDITABLE_FIELDS = (
    "title", "description", "announcement_text", "prize",
    "prize_count", "max_participants", "ends_at", "announcement_message_id",
)


def validate_raffle_values(values: dict) -> dict:
    """Проверяет и нормализует поля розыгрыша (только переданные)"""
    if "title" in values and not (values["title"] or "").strip():
        raise InvalidRaffleData(message="Название розыгрыша не может быть пустым")
    if "prize" in values and not (values["prize"] or "").strip():
        raise InvalidRaffleData(message="Приз не может быть пустым")
    if "prize_count" in values and (values["prize_count"] is None or values["prize_count"] < 1):
        raise InvalidRaffleData(message="Количество призов должно быть не меньше 1")
    if "max_participants" in values and (values["max_participants"] is None or values["max_participants"] < 0):
        raise InvalidRaffleData(message="Максимум участников не может быть отрицательным")
    if "ends_at" in values:
        if not isinstance(values["ends_at"], datetime):
            raise InvalidRaffleData(message="Некорректная дата окончания")
        values["ends_at"] = to_naive_utc(values["ends_at"])
    return values


async def create_raffle(session: AsyncSession, title: str, prize: str, ends_at: datetime,
                        prize_count: int = 1, max_participants: int = 0,
                        description: str | None = None, announcement_text: str | None = None,
                        created_by: int | None = None) -> Raffle:
    """Создает розыгрыш после проверки параметров"""
    values = validate_raffle_values({
        "title": title,
        "prize": prize,
        "ends_at": ends_at,
        "prize_count": prize_count,
        "max_participants": max_participants,
    })
    try:
        raffle = await RaffleRepository(session).create(
            description=description,
            announcement_text=announcement_text,
            created_by=created_by,
            **values,
        )
    except SQLAlchemyError as e:
        logging.error(f"Ошибка БД при создании розыгрыша: {e}")
        raise StoreFailure() from e

    logging.info(f"Создан розыгрыш {raffle.id} \"{raffle.title}\", окончание {raffle.ends_at}")
    return raffle


async def update_raffle(session: AsyncSession, raffle_id: int, **values) -> Raffle:
    """
    Изменяет поля розыгрыша.
    Дату окончания нельзя менять, если в розыгрыше уже есть участники.
    """
    unknown = set(values) - set(EDITABLE_FIELDS)
    if unknown:
        raise InvalidRaffleData(raffle_id, f"Неизвестные поля: {', '.join(sorted(unknown))}")
    values = validate_raffle_values(values)

    raffles = RaffleRepository(session)
    try:
        raffle = await raffles.get_by_id(raffle_id)
        if raffle is None:
            raise RaffleNotFound(raffle_id)

        if "ends_at" in values and values["ends_at"] != raffle.ends_at:
            if await ParticipantRepository(session).count(raffle_id) > 0:
                raise EndDateLocked(raffle_id)

        raffle = await raffles.update(raffle_id, **values)
    except SQLAlchemyError as e:
        logging.error(f"Ошибка БД при изменении розыгрыша {raffle_id}: {e}")
        raise StoreFailure(raffle_id) from e

    logging.info(f"Розыгрыш {raffle_id} изменен: {sorted(values)}")
    return raffle


async def delete_raffle(session: AsyncSession, raffle_id: int) -> None:
    """Удаляет розыгрыш вместе с участниками и победителями"""
    try:
        deleted = await RaffleRepository(session).delete(raffle_id)
    except SQLAlchemyError as e:
        logging.error(f"Ошибка БД при удалении розыгрыша {raffle_id}: {e}")
        raise StoreFailure(raffle_id) from e

    if not deleted:
        raise RaffleNotFound(raffle_id)
    logging.info(f"Розыгрыш {raffle_id} удален")
