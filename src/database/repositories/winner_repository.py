from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from typing import List

from src.database.models import Winner


class WinnerRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def exists_for_raffle(self, raffle_id: int) -> bool:
        result = await self.session.execute(
            select(Winner.id).where(Winner.raffle_id == raffle_id).limit(1)
        )
        return result.first() is not None

    async def add_batch(self, winners: List[Winner]) -> List[Winner]:
        """
        Сохраняет всех победителей одной транзакцией: либо записываются все, либо ни один.
        Конкурентная пачка для того же розыгрыша падает с IntegrityError на (raffle_id, position).
        """
        self.session.add_all(winners)
        try:
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        return winners

    async def list_by_raffle(self, raffle_id: int) -> List[Winner]:
        result = await self.session.execute(
            select(Winner)
            .options(selectinload(Winner.participant))
            .where(Winner.raffle_id == raffle_id)
            .order_by(Winner.position)
        )
        return result.scalars().all()
