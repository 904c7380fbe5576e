from datetime import datetime
from pydantic import BaseModel, Field
from typing import Optional

from src.database.models import Raffle, Participant, Winner


class RaffleOut(BaseModel):
    id: int
    title: str
    description: Optional[str] = None
    announcement_text: Optional[str] = None
    prize: str
    prize_count: int
    max_participants: int
    ends_at: str
    status: str  # open | ended
    participants_count: int = 0
    joined: Optional[bool] = None


class CreateRaffleIn(BaseModel):
    title: str = Field(min_length=1)
    description: Optional[str] = None
    announcement_text: Optional[str] = None
    prize: str = Field(min_length=1)
    prize_count: int = Field(default=1, ge=1)
    max_participants: int = Field(default=0, ge=0)
    ends_at: datetime


class UpdateRaffleIn(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    announcement_text: Optional[str] = None
    prize: Optional[str] = Field(default=None, min_length=1)
    prize_count: Optional[int] = Field(default=None, ge=1)
    max_participants: Optional[int] = Field(default=None, ge=0)
    ends_at: Optional[datetime] = None


class JoinIn(BaseModel):
    turnstile_token: Optional[str] = None


class ParticipantOut(BaseModel):
    id: int
    telegram_id: int
    username: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    ip_address: Optional[str] = None
    joined_at: str


class WinnerOut(BaseModel):
    position: int
    prize: str
    telegram_id: int
    name: str
    selected_at: str


def raffle_to_out(raffle: Raffle, now: datetime, participants_count: int = 0,
                  joined: Optional[bool] = None) -> RaffleOut:
    return RaffleOut(
        id=raffle.id, title=raffle.title, description=raffle.description,
        announcement_text=raffle.announcement_text, prize=raffle.prize,
        prize_count=raffle.prize_count, max_participants=raffle.max_participants,
        ends_at=raffle.ends_at.isoformat() + "Z",
        status="open" if raffle.is_open(now) else "ended",
        participants_count=participants_count, joined=joined,
    )


def participant_to_out(participant: Participant, include_ip: bool = False) -> ParticipantOut:
    return ParticipantOut(
        id=participant.id, telegram_id=participant.telegram_id, username=participant.username,
        first_name=participant.first_name, last_name=participant.last_name,
        ip_address=participant.ip_address if include_ip else None,
        joined_at=participant.joined_at.isoformat() + "Z",
    )


def winner_to_out(winner: Winner) -> WinnerOut:
    return WinnerOut(
        position=winner.position, prize=winner.prize,
        telegram_id=winner.participant.telegram_id, name=winner.participant.display_name,
        selected_at=winner.created_at.isoformat() + "Z",
    )
