import asyncio
import logging
import sys
import argparse
import signal
import functools
from src.config import settings
from src.bot.bot import setup_bot, start_polling
from src.webapp.app import setup_webapp, start_webapp
from src.database.db import init_db, close_db
from src.raffles.notifier import TelegramNotifier
from src.raffles.sweep import run_sweep
from src.utils.sweep_task import schedule_sweep

# Глобальные переменные для хранения задач
background_tasks = []
shutdown_event = asyncio.Event()


def handle_shutdown_signal(sig):
    """Обработчик сигналов для корректного завершения работы приложения."""
    logging.info(f"Получен сигнал завершения: {sig}")
    shutdown_event.set()


def log_task_failure(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    if task.exception():
        logging.error(f"Задача {task.get_name()} завершилась с ошибкой: {task.exception()}")


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Запуск Raffle Bot")
    parser.add_argument("--url", help="HTTPS URL для WebApp (переопределяет настройку WEBAPP_PUBLIC_URL в .env)")
    parser.add_argument("--no-sweep", action="store_true", help="Не запускать периодическую проверку розыгрышей")
    parser.add_argument("--sweep-once", action="store_true", help="Выполнить одну проверку розыгрышей и выйти")
    return parser.parse_args(argv)


async def main():
    """Точка входа в приложение."""
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, functools.partial(handle_shutdown_signal, sig))
        except NotImplementedError:
            # Windows
            logging.info(f"Обработчик сигнала {sig} не зарегистрирован - не поддерживается платформой")

    args = parse_args()

    if args.url:
        settings.WEBAPP_PUBLIC_URL = args.url
        logging.info(f"WEBAPP_PUBLIC_URL переопределен из аргументов командной строки: {args.url}")

    logging.info("Запуск Raffle Bot")

    try:
        logging.info("Инициализация базы данных...")
        await init_db()

        logging.info("Настройка бота...")
        bot, dp = await setup_bot()
        notifier = TelegramNotifier(bot)

        if args.sweep_once:
            results = await run_sweep(notifier=notifier)
            logging.info(f"Разовая проверка завершена, разыграно розыгрышей: {len(results)}")
            await bot.session.close()
            return

        logging.info("Настройка веб-приложения...")
        app = setup_webapp(bot)
        logging.info(f"URL для WebApp: {settings.WEBAPP_PUBLIC_URL}")

        if settings.SWEEP_ENABLED and not args.no_sweep:
            sweep_task = asyncio.create_task(schedule_sweep(notifier=notifier), name="raffle_sweep_task")
            sweep_task.add_done_callback(log_task_failure)
            background_tasks.append(sweep_task)
            logging.info("Запущена задача проверки завершившихся розыгрышей")
        else:
            logging.info("Периодическая проверка отключена, используйте /api/cron/check-raffles")

        webapp_task = asyncio.create_task(start_webapp(app, shutdown_event=shutdown_event), name="webapp_task")
        webapp_task.add_done_callback(log_task_failure)
        background_tasks.append(webapp_task)

        logging.info("Бот запускается в режиме long polling")
        await start_polling(bot, dp, shutdown_event=shutdown_event)
        logging.info("Бот завершил работу")

        if not shutdown_event.is_set():
            logging.info("Ожидание сигнала завершения работы...")
            await shutdown_event.wait()

        await bot.session.close()
    finally:
        await shutdown()


async def shutdown():
    """Корректное завершение работы приложения."""
    logging.info("Завершение работы приложения...")
    shutdown_event.set()

    for task in background_tasks:
        if task and not task.done():
            task.cancel()
            try:
                await asyncio.wait_for(task, timeout=5.0)
            except asyncio.TimeoutError:
                logging.warning(f"Тайм-аут при отмене задачи {task.get_name()}")
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logging.error(f"Ошибка при отмене задачи {task.get_name()}: {e}")
    background_tasks.clear()

    await close_db()
    logging.info("Все фоновые задачи завершены")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logging.info("Принудительное завершение работы")
    except Exception as e:
        logging.exception(f"Необработанное исключение: {e}")
        sys.exit(1)
