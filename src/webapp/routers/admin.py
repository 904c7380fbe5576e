from fastapi import APIRouter, Depends, HTTPException, Request, Header, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Dict, Any, Optional
import hmac
import logging

from src.config import settings
from src.database.db import get_session
from src.database.repositories import RaffleRepository, ParticipantRepository, WinnerRepository
from src.raffles import manage
from src.raffles.exceptions import RaffleNotFound
from src.raffles.notifier import TelegramNotifier, notify_winners
from src.raffles.selector import select_winners
from src.utils.helpers import utcnow
from src.webapp.routers.schemas import (
    RaffleOut, CreateRaffleIn, UpdateRaffleIn, ParticipantOut, WinnerOut,
    raffle_to_out, participant_to_out, winner_to_out,
)


def check_bearer_token(authorization: Optional[str], expected: Optional[str]) -> bool:
    """Сравнивает заголовок Authorization: Bearer <token> с ожидаемым токеном"""
    if not expected or not authorization:
        return False
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer":
        return False
    return hmac.compare_digest(token.strip(), expected)


async def verify_admin_token(authorization: Optional[str] = Header(default=None)) -> None:
    if not check_bearer_token(authorization, settings.ADMIN_API_TOKEN):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


def get_notifier(request: Request) -> Optional[TelegramNotifier]:
    bot = getattr(request.app.state, "bot", None)
    return TelegramNotifier(bot) if bot is not None else None


router = APIRouter(prefix="/api/admin/raffles", tags=["admin"], dependencies=[Depends(verify_admin_token)])


@router.get("", response_model=List[RaffleOut])
async def admin_list(limit: int = 50, session: AsyncSession = Depends(get_session)):
    now = utcnow()
    participants = ParticipantRepository(session)
    items = await RaffleRepository(session).list_all(limit=limit)
    return [raffle_to_out(i, now, await participants.count(i.id)) for i in items]


@router.post("", response_model=RaffleOut, status_code=status.HTTP_201_CREATED)
async def admin_create(data: CreateRaffleIn, request: Request, session: AsyncSession = Depends(get_session)):
    raffle = await manage.create_raffle(session, **data.model_dump())

    # Публикуем анонс в канале; ошибка публикации не отменяет создание
    notifier = get_notifier(request)
    if notifier is not None:
        try:
            message_id = await notifier.announce_raffle(raffle)
            if message_id:
                await RaffleRepository(session).set_announcement_message(raffle.id, message_id)
                raffle.announcement_message_id = message_id
        except Exception as e:
            logging.error(f"Не удалось опубликовать анонс розыгрыша {raffle.id}: {e}")

    return raffle_to_out(raffle, utcnow())


@router.get("/stalled", response_model=List[RaffleOut])
async def admin_list_stalled(session: AsyncSession = Depends(get_session)):
    """Завершившиеся розыгрыши, где участников меньше, чем призов"""
    now = utcnow()
    participants = ParticipantRepository(session)
    items = await RaffleRepository(session).list_stalled(now)
    return [raffle_to_out(i, now, await participants.count(i.id)) for i in items]


@router.get("/{raffle_id}", response_model=RaffleOut)
async def admin_get(raffle_id: int, session: AsyncSession = Depends(get_session)):
    raffle = await RaffleRepository(session).get_by_id(raffle_id)
    if raffle is None:
        raise RaffleNotFound(raffle_id)
    return raffle_to_out(raffle, utcnow(), await ParticipantRepository(session).count(raffle_id))


@router.put("/{raffle_id}", response_model=RaffleOut)
async def admin_update(raffle_id: int, data: UpdateRaffleIn, session: AsyncSession = Depends(get_session)):
    raffle = await manage.update_raffle(session, raffle_id, **data.model_dump(exclude_unset=True))
    return raffle_to_out(raffle, utcnow(), await ParticipantRepository(session).count(raffle_id))


@router.delete("/{raffle_id}", response_model=Dict[str, Any])
async def admin_delete(raffle_id: int, session: AsyncSession = Depends(get_session)):
    await manage.delete_raffle(session, raffle_id)
    return {"success": True}


@router.get("/{raffle_id}/participants", response_model=List[ParticipantOut])
async def admin_participants(raffle_id: int, session: AsyncSession = Depends(get_session)):
    if await RaffleRepository(session).get_by_id(raffle_id) is None:
        raise RaffleNotFound(raffle_id)
    items = await ParticipantRepository(session).list_by_raffle(raffle_id)
    return [participant_to_out(p, include_ip=True) for p in items]


@router.get("/{raffle_id}/winners", response_model=List[WinnerOut])
async def admin_winners(raffle_id: int, session: AsyncSession = Depends(get_session)):
    if await RaffleRepository(session).get_by_id(raffle_id) is None:
        raise RaffleNotFound(raffle_id)
    winners = await WinnerRepository(session).list_by_raffle(raffle_id)
    return [winner_to_out(w) for w in winners]


@router.post("/{raffle_id}/select-winners", response_model=List[WinnerOut])
async def admin_select_winners(raffle_id: int, request: Request, session: AsyncSession = Depends(get_session)):
    """Ручной запуск выбора победителей; причины отказа возвращаются как есть"""
    winners = await select_winners(session, raffle_id)
    raffle = await RaffleRepository(session).get_by_id(raffle_id)
    await notify_winners(get_notifier(request), raffle, winners)
    return [winner_to_out(w) for w in winners]
