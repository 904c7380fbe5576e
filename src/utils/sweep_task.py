import asyncio
import logging
from typing import Optional

from src.config import settings
from src.raffles.notifier import TelegramNotifier
from src.raffles.sweep import run_sweep


async def schedule_sweep(notifier: Optional[TelegramNotifier] = None, interval: Optional[int] = None):
    """
    Периодически запускает проверку завершившихся розыгрышей.
    Пропущенный запуск безопасен: следующий проход подберет те же розыгрыши.

    Args:
        notifier (TelegramNotifier, optional): Отправка итогов победителям
        interval (int, optional): Интервал между проходами в секундах
    """
    interval = interval or settings.SWEEP_INTERVAL
    logging.info(f"Запущена периодическая проверка розыгрышей, интервал {interval} сек.")

    while True:
        try:
            results = await run_sweep(notifier=notifier)
            for result in results:
                logging.info(
                    f"Розыгрыш {result.raffle.id} \"{result.raffle.title}\" завершен, "
                    f"победителей: {len(result.winners)}"
                )
        except asyncio.CancelledError:
            logging.info("Задача проверки розыгрышей отменена")
            raise
        except Exception as e:
            # Проход целиком не удался (например, БД недоступна) - повторим на следующем тике
            logging.error(f"Ошибка в задаче проверки розыгрышей: {e}")

        await asyncio.sleep(interval)
