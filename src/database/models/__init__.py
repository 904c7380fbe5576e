from src.database.models.raffle import Raffle
from src.database.models.participant import Participant
from src.database.models.winner import Winner

__all__ = ["Raffle", "Participant", "Winner"]
