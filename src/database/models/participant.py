from sqlalchemy import Column, String, Integer, BigInteger, DateTime, ForeignKey, UniqueConstraint

from src.database.db import Base
from src.utils.helpers import utcnow, display_name


class Participant(Base):
    __tablename__ = "raffle_participants"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    raffle_id = Column(BigInteger, ForeignKey("raffles.id", ondelete="CASCADE"), nullable=False)
    telegram_id = Column(BigInteger, nullable=False)
    username = Column(String, nullable=True)
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)
    ip_address = Column(String, nullable=False)
    joined_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint('raffle_id', 'telegram_id', name='uq_raffle_participant_user'),
        UniqueConstraint('raffle_id', 'ip_address', name='uq_raffle_participant_ip'),
    )

    @property
    def display_name(self) -> str:
        return display_name(self.username, self.first_name, self.last_name)
