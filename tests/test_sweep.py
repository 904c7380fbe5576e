"""Tests for the lifecycle sweep."""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.database.repositories import RaffleRepository, WinnerRepository
from src.raffles.notifier import TelegramNotifier
from src.raffles.selector import select_winners
from src.raffles.sweep import run_sweep
from src.utils.helpers import utcnow


@pytest.mark.asyncio
async def test_sweep_resolves_only_ready_raffles(session, session_factory, make_raffle, add_participants):
    ready = await make_raffle(ends_in=timedelta(minutes=-5), prize_count=2)
    await add_participants(ready.id, 3)
    stalled = await make_raffle(ends_in=timedelta(minutes=-5), prize_count=3)
    await add_participants(stalled.id, 1, start=10)
    running = await make_raffle(ends_in=timedelta(hours=1))
    await add_participants(running.id, 2, start=20)

    results = await run_sweep(session_factory=session_factory)

    assert [r.raffle.id for r in results] == [ready.id]
    assert len(results[0].winners) == 2

    winners = WinnerRepository(session)
    assert len(await winners.list_by_raffle(ready.id)) == 2
    assert await winners.list_by_raffle(stalled.id) == []
    assert await winners.list_by_raffle(running.id) == []

    stalled_list = await RaffleRepository(session).list_stalled(utcnow())
    assert [r.id for r in stalled_list] == [stalled.id]


@pytest.mark.asyncio
async def test_sweep_is_idempotent(session_factory, make_raffle, add_participants):
    raffle = await make_raffle(ends_in=timedelta(seconds=-1))
    await add_participants(raffle.id, 2)

    first = await run_sweep(session_factory=session_factory)
    second = await run_sweep(session_factory=session_factory)

    assert len(first) == 1
    assert second == []


@pytest.mark.asyncio
async def test_sweep_with_nothing_to_do(session_factory, make_raffle):
    await make_raffle()
    assert await run_sweep(session_factory=session_factory) == []


@pytest.mark.asyncio
async def test_sweep_notifies_winners(session_factory, make_raffle, add_participants, mock_bot):
    raffle = await make_raffle(ends_in=timedelta(seconds=-1), prize_count=2)
    await add_participants(raffle.id, 2)
    notifier = TelegramNotifier(mock_bot, channel_id="@raffles")

    await run_sweep(session_factory=session_factory, notifier=notifier)

    # Итоги в канал (анонса не было - новое сообщение) + два личных сообщения
    assert mock_bot.send_message.await_count == 3
    private_chats = {call.kwargs["chat_id"] for call in mock_bot.send_message.await_args_list[1:]}
    assert private_chats == {1001, 1002}


@pytest.mark.asyncio
async def test_notification_failure_keeps_winners(session, session_factory, make_raffle, add_participants):
    raffle = await make_raffle(ends_in=timedelta(seconds=-1), prize_count=1)
    await add_participants(raffle.id, 2)

    notifier = MagicMock()
    notifier.announce_winners = AsyncMock(side_effect=RuntimeError("telegram down"))
    notifier.notify_winner_privately = AsyncMock(side_effect=RuntimeError("blocked by user"))

    results = await run_sweep(session_factory=session_factory, notifier=notifier)

    assert len(results) == 1
    notifier.announce_winners.assert_awaited_once()
    notifier.notify_winner_privately.assert_awaited_once()
    assert await WinnerRepository(session).exists_for_raffle(raffle.id)


@pytest.mark.asyncio
async def test_failure_in_one_raffle_does_not_stop_others(session, session_factory, make_raffle, add_participants):
    empty = await make_raffle(ends_in=timedelta(minutes=-2))
    ready = await make_raffle(ends_in=timedelta(minutes=-1))
    await add_participants(ready.id, 1)

    results = await run_sweep(session_factory=session_factory)

    assert [r.raffle.id for r in results] == [ready.id]
    assert not await WinnerRepository(session).exists_for_raffle(empty.id)


@pytest.mark.asyncio
async def test_concurrent_sweeps(session, session_factory, make_raffle, add_participants):
    raffles = []
    for i in range(3):
        raffle = await make_raffle(ends_in=timedelta(minutes=-1 - i), prize_count=2)
        await add_participants(raffle.id, 3, start=i * 10 + 1)
        raffles.append(raffle)

    results = await asyncio.gather(
        run_sweep(session_factory=session_factory),
        run_sweep(session_factory=session_factory),
    )

    resolved = [r.raffle.id for sweep in results for r in sweep]
    assert sorted(resolved) == sorted(r.id for r in raffles)

    winners = WinnerRepository(session)
    for raffle in raffles:
        assert len(await winners.list_by_raffle(raffle.id)) == 2


@pytest.mark.asyncio
async def test_sweep_over_empty_ready_and_resolved(session, session_factory, make_raffle, add_participants):
    empty = await make_raffle(ends_in=timedelta(minutes=-3))
    ready = await make_raffle(ends_in=timedelta(minutes=-2), prize_count=2)
    await add_participants(ready.id, 3)
    done = await make_raffle(ends_in=timedelta(minutes=-1))
    await add_participants(done.id, 1, start=10)
    done_winners = await select_winners(session, done.id)
    done_ids = [(w.id, w.participant_id, w.position) for w in done_winners]

    results = await run_sweep(session_factory=session_factory)

    assert [r.raffle.id for r in results] == [ready.id]
    assert len(results[0].winners) == 2

    winners = WinnerRepository(session)
    assert await winners.list_by_raffle(empty.id) == []
    assert len(await winners.list_by_raffle(ready.id)) == 2
    after = await winners.list_by_raffle(done.id)
    assert [(w.id, w.participant_id, w.position) for w in after] == done_ids
