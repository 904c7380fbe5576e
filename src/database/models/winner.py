from sqlalchemy import Column, String, Integer, BigInteger, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from src.database.db import Base
from src.utils.helpers import utcnow


class Winner(Base):
    __tablename__ = "raffle_winners"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    raffle_id = Column(BigInteger, ForeignKey("raffles.id", ondelete="CASCADE"), nullable=False)
    participant_id = Column(BigInteger, ForeignKey("raffle_participants.id", ondelete="CASCADE"), nullable=False)
    position = Column(Integer, nullable=False)  # Порядковый номер в пачке победителей, начиная с 1
    prize = Column(String, nullable=False)  # Приз на момент розыгрыша
    created_at = Column(DateTime, default=utcnow, nullable=False)

    participant = relationship("Participant")

    __table_args__ = (
        # Вторая пачка победителей упрется в position=1 уже на уровне БД
        UniqueConstraint('raffle_id', 'position', name='uq_raffle_winner_position'),
        UniqueConstraint('raffle_id', 'participant_id', name='uq_raffle_winner_participant'),
    )
