from fastapi import APIRouter, HTTPException, Request, Header, status
from typing import Dict, Any, Optional

from src.config import settings
from src.database.db import async_session
from src.raffles.sweep import run_sweep
from src.webapp.routers.admin import check_bearer_token, get_notifier


router = APIRouter(prefix="/api/cron", tags=["cron"])


@router.post("/check-raffles", response_model=Dict[str, Any])
async def check_raffles(request: Request, authorization: Optional[str] = Header(default=None)):
    """Внешний периодический запуск проверки завершившихся розыгрышей"""
    if not check_bearer_token(authorization, settings.CRON_SECRET):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    session_factory = getattr(request.app.state, "session_factory", async_session)
    results = await run_sweep(session_factory=session_factory, notifier=get_notifier(request))

    return {
        "processed": [
            {"raffle_id": r.raffle.id, "winners_count": len(r.winners)}
            for r in results
        ]
    }
