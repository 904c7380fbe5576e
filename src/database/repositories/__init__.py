from src.database.repositories.raffle_repository import RaffleRepository
from src.database.repositories.participant_repository import ParticipantRepository
from src.database.repositories.winner_repository import WinnerRepository

__all__ = ["RaffleRepository", "ParticipantRepository", "WinnerRepository"]
