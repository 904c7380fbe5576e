from sqlalchemy import Column, String, Integer, BigInteger, DateTime, Text, CheckConstraint
from datetime import datetime

from src.database.db import Base
from src.utils.helpers import utcnow


class Raffle(Base):
    __tablename__ = "raffles"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    announcement_text = Column(Text, nullable=True)  # Текст-заголовок анонса в канале
    prize = Column(String, nullable=False)
    prize_count = Column(Integer, nullable=False, default=1)  # Количество победителей
    max_participants = Column(Integer, nullable=False, default=0)  # 0 = без ограничений
    ends_at = Column(DateTime, nullable=False)  # UTC
    announcement_message_id = Column(BigInteger, nullable=True)  # ID сообщения анонса в канале
    created_by = Column(BigInteger, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint('prize_count >= 1', name='ck_raffles_prize_count'),
        CheckConstraint('max_participants >= 0', name='ck_raffles_max_participants'),
    )

    def has_ended(self, now: datetime) -> bool:
        """Розыгрыш завершен, если текущее время >= времени окончания"""
        return now >= self.ends_at

    def is_open(self, now: datetime) -> bool:
        return not self.has_ended(now)

    def is_limited(self) -> bool:
        return self.max_participants > 0

    def __repr__(self) -> str:
        return f"<Raffle id={self.id} title={self.title!r} ends_at={self.ends_at}>"
