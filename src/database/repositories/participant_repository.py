from datetime import datetime
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from src.database.models import Participant


class ParticipantRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, raffle_id: int, telegram_id: int, ip_address: str,
                  username: str | None = None, first_name: str | None = None,
                  last_name: str | None = None, joined_at: datetime | None = None) -> Participant:
        """
        Добавляет участника. Уникальность (розыгрыш, пользователь) и (розыгрыш, IP)
        проверяет БД: при нарушении пробрасывается IntegrityError, сессия откатывается.
        """
        participant = Participant(
            raffle_id=raffle_id,
            telegram_id=telegram_id,
            ip_address=ip_address,
            username=username,
            first_name=first_name,
            last_name=last_name,
        )
        if joined_at is not None:
            participant.joined_at = joined_at
        self.session.add(participant)
        try:
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        await self.session.refresh(participant)
        return participant

    async def has_joined(self, raffle_id: int, telegram_id: int) -> bool:
        result = await self.session.execute(
            select(func.count()).select_from(Participant).where(
                Participant.raffle_id == raffle_id,
                Participant.telegram_id == telegram_id
            )
        )
        return (result.scalar() or 0) > 0

    async def has_address(self, raffle_id: int, ip_address: str) -> bool:
        result = await self.session.execute(
            select(func.count()).select_from(Participant).where(
                Participant.raffle_id == raffle_id,
                Participant.ip_address == ip_address
            )
        )
        return (result.scalar() or 0) > 0

    async def count(self, raffle_id: int) -> int:
        result = await self.session.execute(
            select(func.count()).select_from(Participant).where(Participant.raffle_id == raffle_id)
        )
        return result.scalar() or 0

    async def list_by_raffle(self, raffle_id: int) -> List[Participant]:
        result = await self.session.execute(
            select(Participant).where(Participant.raffle_id == raffle_id).order_by(Participant.id)
        )
        return result.scalars().all()
