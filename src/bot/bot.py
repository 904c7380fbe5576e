from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties
from aiogram.types import BotCommand
import logging
import asyncio

from src.config import settings

BOT_COMMANDS = [
    BotCommand(command="start", description="Начать"),
    BotCommand(command="raffles", description="Активные розыгрыши"),
    BotCommand(command="help", description="Справка"),
]


async def setup_bot() -> tuple[Bot, Dispatcher]:
    """
    Настройка и инициализация бота и диспетчера.

    Returns:
        tuple[Bot, Dispatcher]: Настроенные экземпляры бота и диспетчера
    """
    try:
        logging.info("Создание экземпляра бота...")
        bot = Bot(
            token=settings.BOT_TOKEN,
            default=DefaultBotProperties(parse_mode=None)  # Разметка задается явно в каждом сообщении
        )

        dp = Dispatcher()

        from .handlers import register_all_handlers
        register_all_handlers(dp)

        logging.info("Бот настроен и готов к запуску")

        return bot, dp
    except Exception as e:
        logging.exception(f"Ошибка при настройке бота: {e}")
        raise


async def set_bot_commands(bot: Bot) -> None:
    """Регистрирует список команд в меню бота"""
    try:
        await bot.set_my_commands(BOT_COMMANDS)
    except Exception as e:
        logging.warning(f"Не удалось установить команды бота: {e}")


async def start_polling(bot: Bot, dp: Dispatcher, shutdown_event: asyncio.Event | None = None) -> None:
    """
    Запуск бота в режиме long polling.

    Args:
        bot (Bot): Экземпляр бота
        dp (Dispatcher): Экземпляр диспетчера
        shutdown_event (asyncio.Event, optional): Событие для сигнализации остановки бота
    """
    try:
        logging.info("Запуск бота в режиме long polling")
        await set_bot_commands(bot)

        if not shutdown_event:
            await dp.start_polling(
                bot,
                allowed_updates=dp.resolve_used_update_types(),
                handle_signals=False
            )
            return

        polling_task = asyncio.create_task(
            dp.start_polling(
                bot,
                allowed_updates=dp.resolve_used_update_types(),
                handle_signals=False
            ),
            name="bot_polling_task"
        )
        shutdown_task = asyncio.create_task(shutdown_event.wait(), name="shutdown_wait_task")

        done, pending = await asyncio.wait(
            [polling_task, shutdown_task],
            return_when=asyncio.FIRST_COMPLETED
        )

        if polling_task in done:
            shutdown_task.cancel()
            polling_task.result()
            logging.info("Поллинг завершился")
        else:
            logging.info("Получен сигнал завершения работы, останавливаем поллинг")
            await dp.stop_polling()
            try:
                await polling_task
            except asyncio.CancelledError:
                pass
            logging.info("Поллинг остановлен")
    except Exception as e:
        logging.exception(f"Ошибка при запуске поллинга: {e}")
        raise
