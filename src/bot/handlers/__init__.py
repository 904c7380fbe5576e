from aiogram import Dispatcher
from .start import router as start_router
from .admin import router as admin_router
import logging

def register_all_handlers(dp: Dispatcher) -> None:
    """
    Регистрирует все обработчики сообщений в диспетчере.

    Args:
        dp (Dispatcher): Диспетчер, в котором регистрируются обработчики
    """
    logging.info("Регистрация обработчиков бота...")

    # Админский роутер первым: его команды защищены AdminFilter
    dp.include_router(admin_router)
    logging.info("Зарегистрирован роутер admin_commands")

    dp.include_router(start_router)
    logging.info("Зарегистрирован роутер start_commands")

    logging.info("Все обработчики зарегистрированы успешно")
