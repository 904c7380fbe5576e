"""
Типизированные ошибки жизненного цикла розыгрыша.

Каждая ошибка несет стабильный код (используется API и логами),
HTTP-статус для веб-слоя и сообщение для пользователя.
"""


class RaffleError(Exception):
    """Базовая ошибка модуля розыгрышей"""

    code = "RaffleError"
    status_code = 400
    default_message = "Ошибка при обработке розыгрыша"

    def __init__(self, raffle_id: int | None = None, message: str | None = None):
        self.raffle_id = raffle_id
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


class RaffleNotFound(RaffleError):
    code = "NotFound"
    status_code = 404
    default_message = "Розыгрыш не найден"


class RaffleEnded(RaffleError):
    code = "RaffleEnded"
    default_message = "Розыгрыш уже завершен"


class RaffleFull(RaffleError):
    code = "RaffleFull"
    default_message = "Достигнуто максимальное количество участников"


class AlreadyJoined(RaffleError):
    code = "AlreadyJoined"
    status_code = 409
    default_message = "Вы уже участвуете в этом розыгрыше"


class DuplicateNetworkAddress(RaffleError):
    code = "DuplicateNetworkAddress"
    status_code = 409
    default_message = "С этого IP адреса уже есть участник в розыгрыше"


class RaffleNotEnded(RaffleError):
    code = "NotEnded"
    default_message = "Розыгрыш еще не завершен"


class WinnersAlreadySelected(RaffleError):
    code = "AlreadySelected"
    status_code = 409
    default_message = "Победители уже выбраны"


class NoParticipants(RaffleError):
    code = "NoParticipants"
    default_message = "В розыгрыше нет участников"


class InsufficientParticipants(RaffleError):
    code = "InsufficientParticipants"
    default_message = "Недостаточно участников для количества призов"


class InvalidRaffleData(RaffleError):
    code = "InvalidRaffle"
    status_code = 422
    default_message = "Некорректные параметры розыгрыша"


class EndDateLocked(RaffleError):
    code = "EndDateLocked"
    status_code = 409
    default_message = "Нельзя изменить дату окончания: в розыгрыше уже есть участники"


class StoreFailure(RaffleError):
    code = "StoreFailure"
    status_code = 500
    default_message = "Ошибка базы данных"


# Исходы, которые планировщик считает штатными для отдельного розыгрыша
STALLED_ERRORS = (NoParticipants, InsufficientParticipants)
