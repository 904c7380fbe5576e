"""
Пакет routers содержит модули маршрутизации для API FastAPI.
"""

from .raffles import router as raffles_router
from .admin import router as admin_router
from .cron import router as cron_router
from .subscription import router as subscription_router

__all__ = ['raffles_router', 'admin_router', 'cron_router', 'subscription_router']
