from datetime import datetime
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from src.database.models import Participant
from src.database.repositories import RaffleRepository, ParticipantRepository, WinnerRepository
from src.raffles.exceptions import (
    RaffleError,
    RaffleNotFound,
    RaffleEnded,
    RaffleFull,
    AlreadyJoined,
    DuplicateNetworkAddress,
    StoreFailure,
)
from src.utils.helpers import utcnow


async def _check_duplicates(participants: ParticipantRepository, raffle_id: int,
                            telegram_id: int, ip_address: str) -> None:
    """Проверки дубликатов: сначала IP, затем пользователь"""
    if await participants.has_address(raffle_id, ip_address):
        raise DuplicateNetworkAddress(raffle_id)
    if await participants.has_joined(raffle_id, telegram_id):
        raise AlreadyJoined(raffle_id)


async def attempt_join(
    session: AsyncSession,
    raffle_id: int,
    telegram_id: int,
    ip_address: str,
    username: str | None = None,
    first_name: str | None = None,
    last_name: str | None = None,
    now: datetime | None = None,
) -> Participant:
    """
    Пытается добавить пользователя в розыгрыш.

    Проверки выполняются по порядку, первая неудачная прерывает попытку:
    существование розыгрыша, время окончания и отсутствие победителей, IP,
    повторное участие, лимит участников.
    Проверки до вставки лишь ускоряют ответ: при гонке двух запросов
    окончательное решение принимают уникальные ограничения БД.

    Args:
        session (AsyncSession): Сессия базы данных
        raffle_id (int): ID розыгрыша
        telegram_id (int): Telegram ID пользователя
        ip_address (str): IP-адрес запроса
        username, first_name, last_name: Отображаемое имя пользователя
        now (datetime, optional): Текущее время (UTC), по умолчанию utcnow()

    Returns:
        Participant: Созданная запись участника

    Raises:
        RaffleError: Типизированная причина отказа
    """
    now = now or utcnow()
    raffles = RaffleRepository(session)
    participants = ParticipantRepository(session)

    try:
        raffle = await raffles.get_by_id(raffle_id)
        if raffle is None:
            raise RaffleNotFound(raffle_id)

        if raffle.has_ended(now):
            raise RaffleEnded(raffle_id)

        # Победители уже выбраны: участие закрыто независимо от переданного времени
        if await WinnerRepository(session).exists_for_raffle(raffle_id):
            raise RaffleEnded(raffle_id)

        await _check_duplicates(participants, raffle_id, telegram_id, ip_address)

        if raffle.is_limited():
            current_count = await participants.count(raffle_id)
            if current_count >= raffle.max_participants:
                raise RaffleFull(raffle_id)

        participant = await participants.add(
            raffle_id=raffle_id,
            telegram_id=telegram_id,
            ip_address=ip_address,
            username=username,
            first_name=first_name,
            last_name=last_name,
            joined_at=now,
        )
    except RaffleError:
        raise
    except IntegrityError as e:
        # Параллельный запрос успел вставить запись между проверкой и вставкой
        logging.warning(f"Гонка при участии пользователя {telegram_id} в розыгрыше {raffle_id}: {e.orig}")
        try:
            await _check_duplicates(participants, raffle_id, telegram_id, ip_address)
        except SQLAlchemyError as check_error:
            raise StoreFailure(raffle_id) from check_error
        raise StoreFailure(raffle_id) from e
    except SQLAlchemyError as e:
        logging.error(f"Ошибка БД при участии пользователя {telegram_id} в розыгрыше {raffle_id}: {e}")
        raise StoreFailure(raffle_id) from e

    logging.info(f"Пользователь {telegram_id} присоединился к розыгрышу {raffle_id} (IP: {ip_address})")
    return participant
