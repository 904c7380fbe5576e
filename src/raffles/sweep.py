from dataclasses import dataclass, field
from datetime import datetime
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from typing import List, Optional
import logging

from src.database.db import async_session
from src.database.models import Raffle, Winner
from src.database.repositories import RaffleRepository
from src.raffles.exceptions import WinnersAlreadySelected, StoreFailure, STALLED_ERRORS
from src.raffles.notifier import TelegramNotifier, notify_winners
from src.raffles.selector import select_winners
from src.utils.helpers import utcnow


@dataclass
class SweepResult:
    """Розыгрыш, по которому в этом проходе выбраны победители"""
    raffle: Raffle
    winners: List[Winner] = field(default_factory=list)


async def run_sweep(
    session_factory: async_sessionmaker[AsyncSession] = async_session,
    notifier: Optional[TelegramNotifier] = None,
    now: datetime | None = None,
) -> List[SweepResult]:
    """
    Один проход планировщика: находит завершившиеся розыгрыши без победителей
    и выбирает победителей для каждого.

    Проход не хранит состояния между вызовами и может выполняться параллельно
    сам с собой: повторный выбор отсекается проверкой существующих победителей.
    Ошибка по одному розыгрышу не прерывает обработку остальных.

    Args:
        session_factory: Фабрика сессий БД
        notifier (TelegramNotifier, optional): Отправка итогов, None - без уведомлений
        now (datetime, optional): Текущее время (UTC)

    Returns:
        List[SweepResult]: Розыгрыши, разрешенные в этом проходе
    """
    now = now or utcnow()

    async with session_factory() as session:
        candidates = await RaffleRepository(session).list_ended_without_winners(now)

    if not candidates:
        logging.debug("Нет завершившихся розыгрышей без победителей")
        return []

    logging.info(f"Найдено завершившихся розыгрышей без победителей: {len(candidates)}")

    results: List[SweepResult] = []
    for raffle in candidates:
        try:
            async with session_factory() as session:
                winners = await select_winners(session, raffle.id, now=now)
        except WinnersAlreadySelected:
            logging.info(f"Розыгрыш {raffle.id} уже обработан параллельным вызовом")
            continue
        except STALLED_ERRORS as e:
            logging.warning(
                f"Розыгрыш {raffle.id} \"{raffle.title}\" не может быть разыгран ({e.code}: {e.message}). "
                f"Требуется решение администратора"
            )
            continue
        except StoreFailure as e:
            logging.error(f"Ошибка БД при обработке розыгрыша {raffle.id}, повтор в следующем проходе: {e.__cause__}")
            continue
        except Exception as e:
            logging.exception(f"Непредвиденная ошибка при обработке розыгрыша {raffle.id}: {e}")
            continue

        results.append(SweepResult(raffle=raffle, winners=winners))
        await notify_winners(notifier, raffle, winners)

    logging.info(f"Проход завершен, разыграно розыгрышей: {len(results)}")
    return results
