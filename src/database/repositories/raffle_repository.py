from datetime import datetime
from sqlalchemy import select, update, delete, func
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from src.database.models import Raffle, Participant, Winner


class RaffleRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, title: str, prize: str, ends_at: datetime, prize_count: int = 1,
                     max_participants: int = 0, description: str | None = None,
                     announcement_text: str | None = None, created_by: int | None = None) -> Raffle:
        raffle = Raffle(
            title=title,
            description=description,
            announcement_text=announcement_text,
            prize=prize,
            prize_count=prize_count,
            max_participants=max_participants,
            ends_at=ends_at,
            created_by=created_by,
        )
        self.session.add(raffle)
        await self.session.commit()
        await self.session.refresh(raffle)
        return raffle

    async def get_by_id(self, raffle_id: int) -> Optional[Raffle]:
        result = await self.session.execute(select(Raffle).where(Raffle.id == raffle_id))
        return result.scalar_one_or_none()

    async def update(self, raffle_id: int, **values) -> Optional[Raffle]:
        """Обновляет переданные поля розыгрыша"""
        if values:
            await self.session.execute(update(Raffle).where(Raffle.id == raffle_id).values(**values))
            await self.session.commit()
        raffle = await self.get_by_id(raffle_id)
        if raffle is not None:
            await self.session.refresh(raffle)
        return raffle

    async def set_announcement_message(self, raffle_id: int, message_id: int) -> None:
        await self.session.execute(
            update(Raffle).where(Raffle.id == raffle_id).values(announcement_message_id=message_id)
        )
        await self.session.commit()

    async def delete(self, raffle_id: int) -> bool:
        """
        Удаляет розыгрыш вместе с участниками и победителями одной транзакцией.
        На SQLite внешние ключи по умолчанию не каскадируются, поэтому дочерние записи удаляются явно.
        """
        try:
            await self.session.execute(delete(Winner).where(Winner.raffle_id == raffle_id))
            await self.session.execute(delete(Participant).where(Participant.raffle_id == raffle_id))
            result = await self.session.execute(delete(Raffle).where(Raffle.id == raffle_id))
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        return result.rowcount > 0

    async def list_all(self, limit: int = 50) -> List[Raffle]:
        result = await self.session.execute(select(Raffle).order_by(Raffle.id.desc()).limit(limit))
        return result.scalars().all()

    async def list_active(self, now: datetime) -> List[Raffle]:
        # Статус не хранится: активен тот, у кого время окончания еще не наступило
        result = await self.session.execute(
            select(Raffle).where(Raffle.ends_at > now).order_by(Raffle.ends_at)
        )
        return result.scalars().all()

    async def list_ended_without_winners(self, now: datetime) -> List[Raffle]:
        """Завершившиеся розыгрыши, по которым победители еще не выбраны"""
        has_winners = select(Winner.id).where(Winner.raffle_id == Raffle.id).exists()
        result = await self.session.execute(
            select(Raffle).where(Raffle.ends_at <= now, ~has_winners).order_by(Raffle.ends_at)
        )
        return result.scalars().all()

    async def list_stalled(self, now: datetime) -> List[Raffle]:
        """
        Завершившиеся розыгрыши без победителей, в которых участников меньше, чем призов.
        Сами они не разрешатся: нужен администратор (уменьшить prize_count или удалить розыгрыш).
        """
        has_winners = select(Winner.id).where(Winner.raffle_id == Raffle.id).exists()
        participants_count = (
            select(func.count(Participant.id))
            .where(Participant.raffle_id == Raffle.id)
            .correlate(Raffle)
            .scalar_subquery()
        )
        result = await self.session.execute(
            select(Raffle)
            .where(Raffle.ends_at <= now, ~has_winners, participants_count < Raffle.prize_count)
            .order_by(Raffle.ends_at)
        )
        return result.scalars().all()
