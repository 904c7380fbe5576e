from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Dict, Any

from src.database.db import get_session
from src.database.repositories import RaffleRepository, ParticipantRepository, WinnerRepository
from src.raffles.exceptions import RaffleNotFound
from src.raffles.gate import attempt_join
from src.utils.helpers import utcnow, get_client_ip
from src.webapp.routers.schemas import RaffleOut, JoinIn, WinnerOut, raffle_to_out, winner_to_out
from src.webapp.utils.turnstile import verify_turnstile_token


router = APIRouter(prefix="/api/raffles", tags=["raffles"])


def get_user_id(request: Request) -> int:
    # user_id берем из middleware TelegramAuthMiddleware -> request.state.user_id
    user_id = getattr(request.state, 'user_id', None)
    if not user_id:
        raise HTTPException(status_code=401, detail="Нет авторизации Telegram")
    return user_id


@router.get("/active", response_model=List[RaffleOut])
async def list_active(session: AsyncSession = Depends(get_session)):
    now = utcnow()
    participants = ParticipantRepository(session)
    items = await RaffleRepository(session).list_active(now)
    return [raffle_to_out(i, now, await participants.count(i.id)) for i in items]


@router.get("/{raffle_id}", response_model=RaffleOut)
async def get_raffle(raffle_id: int, request: Request, session: AsyncSession = Depends(get_session)):
    user_id = get_user_id(request)
    raffle = await RaffleRepository(session).get_by_id(raffle_id)
    if raffle is None:
        raise RaffleNotFound(raffle_id)

    participants = ParticipantRepository(session)
    return raffle_to_out(
        raffle, utcnow(),
        participants_count=await participants.count(raffle_id),
        joined=await participants.has_joined(raffle_id, user_id),
    )


@router.post("/{raffle_id}/join", response_model=Dict[str, Any])
async def join_raffle(raffle_id: int, data: JoinIn, request: Request,
                      session: AsyncSession = Depends(get_session)):
    user_id = get_user_id(request)
    telegram_user = getattr(request.state, 'telegram_user', None) or {}
    ip_address = get_client_ip(request)

    if not await verify_turnstile_token(data.turnstile_token, ip_address):
        raise HTTPException(
            status_code=400,
            detail={"code": "InvalidCaptcha", "message": "Проверка капчи не пройдена"}
        )

    await attempt_join(
        session,
        raffle_id=raffle_id,
        telegram_id=user_id,
        ip_address=ip_address,
        username=telegram_user.get("username"),
        first_name=telegram_user.get("first_name"),
        last_name=telegram_user.get("last_name"),
    )
    total = await ParticipantRepository(session).count(raffle_id)
    return {"success": True, "joined": True, "participants_count": total}


@router.get("/{raffle_id}/winners", response_model=List[WinnerOut])
async def list_winners(raffle_id: int, session: AsyncSession = Depends(get_session)):
    if await RaffleRepository(session).get_by_id(raffle_id) is None:
        raise RaffleNotFound(raffle_id)
    winners = await WinnerRepository(session).list_by_raffle(raffle_id)
    return [winner_to_out(w) for w in winners]
