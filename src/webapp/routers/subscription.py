from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel
from typing import List, Dict, Any
import logging

from src.config import settings
from src.bot.utils.subscription import check_all_subscriptions, get_missing_channels
from src.webapp.routers.raffles import get_user_id


class SubscriptionCheckResponse(BaseModel):
    is_subscribed: bool
    missing_channels: List[Dict[str, Any]]


router = APIRouter(prefix="/api/subscription", tags=["subscription"])


@router.get("/check", response_model=SubscriptionCheckResponse)
async def check_subscription(request: Request):
    """
    Проверяет подписку пользователя на обязательные каналы.

    WebApp вызывает его до участия, чтобы заранее показать,
    на какие каналы нужно подписаться.
    """
    user_id = get_user_id(request)

    bot = getattr(request.app.state, "bot", None)
    if bot is None or not settings.REQUIRED_CHANNELS:
        return SubscriptionCheckResponse(is_subscribed=True, missing_channels=[])

    try:
        all_subscribed, channels = await check_all_subscriptions(bot, user_id)
    except Exception as e:
        logging.error(f"Ошибка при проверке подписки пользователя {user_id}: {e}")
        raise HTTPException(status_code=502, detail="Ошибка при проверке подписки")

    missing_channels = get_missing_channels(channels)
    if missing_channels:
        logging.info(f"Пользователь {user_id} не подписан на {len(missing_channels)} канал(ов)")

    return SubscriptionCheckResponse(is_subscribed=all_subscribed, missing_channels=missing_channels)
