from datetime import datetime, timezone
from typing import Optional

from starlette.requests import Request


def utcnow() -> datetime:
    """
    Текущее время в UTC без информации о часовом поясе.
    Все сравнения с датой окончания розыгрыша выполняются через эту функцию.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """
    Приводит дату к UTC без tzinfo (в таком виде даты хранятся в БД).

    Args:
        value (datetime): Дата с часовым поясом или без (тогда считается UTC)

    Returns:
        datetime: Дата в UTC без tzinfo
    """
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def get_client_ip(request: Request) -> str:
    """
    Определяет IP-адрес клиента.
    За прокси берется первый адрес из X-Forwarded-For.
    """
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        client_host = forwarded_for.split(",")[0].strip()
        if client_host:
            return client_host
    return request.client.host if request.client else "unknown"


def display_name(username: Optional[str], first_name: Optional[str], last_name: Optional[str] = None) -> str:
    """Имя участника для сообщений: @username, иначе имя и фамилия"""
    if username:
        return f"@{username}"
    full_name = " ".join(part for part in (first_name, last_name) if part)
    return full_name or "Аноним"
