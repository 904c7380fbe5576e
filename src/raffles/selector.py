from datetime import datetime
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional, Sequence, TypeVar
import logging
import random
import secrets

from src.database.models import Winner
from src.database.repositories import RaffleRepository, ParticipantRepository, WinnerRepository
from src.raffles.exceptions import (
    RaffleError,
    RaffleNotFound,
    RaffleNotEnded,
    WinnersAlreadySelected,
    NoParticipants,
    InsufficientParticipants,
    StoreFailure,
)
from src.utils.helpers import utcnow

T = TypeVar('T')

# Криптографически стойкий источник случайности для перемешивания
_system_random = secrets.SystemRandom()


def shuffle(items: Sequence[T], rng: Optional[random.Random] = None) -> List[T]:
    """
    Возвращает новую равномерно случайную перестановку (тасование Фишера-Йетса).

    Args:
        items (Sequence[T]): Исходные элементы, не изменяются
        rng (random.Random, optional): Источник случайности, по умолчанию SystemRandom

    Returns:
        List[T]: Перемешанная копия
    """
    rng = rng or _system_random
    result = list(items)
    for i in range(len(result) - 1, 0, -1):
        j = rng.randrange(i + 1)
        result[i], result[j] = result[j], result[i]
    return result


async def select_winners(
    session: AsyncSession,
    raffle_id: int,
    now: datetime | None = None,
    rng: Optional[random.Random] = None,
) -> List[Winner]:
    """
    Выбирает победителей завершившегося розыгрыша ровно один раз.

    Предусловия проверяются по порядку: розыгрыш существует, время окончания наступило,
    победителей еще нет, есть участники, участников не меньше, чем призов.
    Выбор всё или ничего: победителей ровно prize_count, пачка пишется одной транзакцией.

    Returns:
        List[Winner]: Победители в порядке перестановки (с загруженным participant)

    Raises:
        RaffleError: Типизированная причина отказа
    """
    now = now or utcnow()
    raffles = RaffleRepository(session)
    participants_repo = ParticipantRepository(session)
    winners_repo = WinnerRepository(session)

    try:
        raffle = await raffles.get_by_id(raffle_id)
        if raffle is None:
            raise RaffleNotFound(raffle_id)

        if not raffle.has_ended(now):
            raise RaffleNotEnded(raffle_id)

        if await winners_repo.exists_for_raffle(raffle_id):
            raise WinnersAlreadySelected(raffle_id)

        participants = await participants_repo.list_by_raffle(raffle_id)
        if not participants:
            raise NoParticipants(raffle_id)

        if len(participants) < raffle.prize_count:
            raise InsufficientParticipants(
                raffle_id,
                f"Недостаточно участников для количества призов: "
                f"{len(participants)} из {raffle.prize_count}"
            )

        chosen = shuffle(participants, rng)[:raffle.prize_count]
        winners = [
            Winner(
                raffle_id=raffle_id,
                participant_id=participant.id,
                participant=participant,
                position=position,
                prize=raffle.prize,
                created_at=now,
            )
            for position, participant in enumerate(chosen, start=1)
        ]
        await winners_repo.add_batch(winners)
    except RaffleError:
        raise
    except IntegrityError as e:
        # Другой вызов успел записать свою пачку победителей
        logging.warning(f"Победители розыгрыша {raffle_id} уже записаны параллельным вызовом: {e.orig}")
        raise WinnersAlreadySelected(raffle_id) from e
    except SQLAlchemyError as e:
        logging.error(f"Ошибка БД при выборе победителей розыгрыша {raffle_id}: {e}")
        raise StoreFailure(raffle_id) from e

    logging.info(
        f"Розыгрыш {raffle_id}: выбрано {len(winners)} победителей из {len(participants)} участников: "
        f"{[w.participant.telegram_id for w in winners]}"
    )
    return winners
