"""Tests for winner selection."""

import asyncio
import random
from collections import Counter
from datetime import datetime, timedelta

import pytest

from src.database.models import Raffle
from src.database.repositories import WinnerRepository
from src.raffles.exceptions import (
    RaffleNotFound,
    RaffleNotEnded,
    WinnersAlreadySelected,
    NoParticipants,
    InsufficientParticipants,
)
from src.raffles.selector import select_winners, shuffle


def test_shuffle_is_permutation():
    items = list(range(20))
    result = shuffle(items)

    assert sorted(result) == items
    assert items == list(range(20))  # исходный список не изменен


def test_shuffle_deterministic_with_seeded_rng():
    items = ["a", "b", "c", "d", "e"]
    assert shuffle(items, random.Random(7)) == shuffle(items, random.Random(7))


def test_shuffle_small_inputs():
    assert shuffle([]) == []
    assert shuffle(["only"]) == ["only"]


def test_shuffle_is_roughly_uniform():
    rng = random.Random(12345)
    counts = Counter(tuple(shuffle([1, 2, 3], rng)) for _ in range(6000))

    assert len(counts) == 6
    for count in counts.values():
        assert 800 < count < 1200


@pytest.mark.asyncio
async def test_select_three_of_five(session, make_raffle, add_participants):
    raffle = await make_raffle(ends_in=timedelta(seconds=-1), prize_count=3, prize="Стикерпак")
    participants = await add_participants(raffle.id, 5)

    winners = await select_winners(session, raffle.id)

    assert len(winners) == 3
    assert [w.position for w in winners] == [1, 2, 3]
    assert len({w.participant_id for w in winners}) == 3
    assert {w.participant_id for w in winners} <= {p.id for p in participants}
    assert all(w.prize == "Стикерпак" for w in winners)

    stored = await WinnerRepository(session).list_by_raffle(raffle.id)
    assert [w.participant_id for w in stored] == [w.participant_id for w in winners]


@pytest.mark.asyncio
async def test_select_all_participants_when_counts_match(session, make_raffle, add_participants):
    raffle = await make_raffle(ends_in=timedelta(seconds=-1), prize_count=2)
    await add_participants(raffle.id, 2)

    winners = await select_winners(session, raffle.id)
    assert len(winners) == 2


@pytest.mark.asyncio
async def test_select_missing_raffle(session):
    with pytest.raises(RaffleNotFound):
        await select_winners(session, 9999)


@pytest.mark.asyncio
async def test_select_before_end(session, make_raffle, add_participants):
    raffle = await make_raffle()
    await add_participants(raffle.id, 3)

    with pytest.raises(RaffleNotEnded):
        await select_winners(session, raffle.id, now=raffle.ends_at - timedelta(seconds=1))


@pytest.mark.asyncio
async def test_select_exactly_at_end(session, make_raffle, add_participants):
    raffle = await make_raffle()
    await add_participants(raffle.id, 3)

    winners = await select_winners(session, raffle.id, now=raffle.ends_at)
    assert len(winners) == 1
    assert winners[0].created_at == raffle.ends_at


@pytest.mark.asyncio
async def test_select_no_participants(session, make_raffle):
    raffle = await make_raffle(ends_in=timedelta(seconds=-1))

    with pytest.raises(NoParticipants):
        await select_winners(session, raffle.id)


@pytest.mark.asyncio
async def test_select_insufficient_participants(session, make_raffle, add_participants):
    raffle = await make_raffle(ends_in=timedelta(seconds=-1), prize_count=3)
    await add_participants(raffle.id, 2)

    with pytest.raises(InsufficientParticipants):
        await select_winners(session, raffle.id)

    assert not await WinnerRepository(session).exists_for_raffle(raffle.id)


@pytest.mark.asyncio
async def test_select_twice(session, make_raffle, add_participants):
    raffle = await make_raffle(ends_in=timedelta(seconds=-1), prize_count=2)
    await add_participants(raffle.id, 4)

    first = await select_winners(session, raffle.id)

    with pytest.raises(WinnersAlreadySelected):
        await select_winners(session, raffle.id)

    stored = await WinnerRepository(session).list_by_raffle(raffle.id)
    assert [w.id for w in stored] == [w.id for w in first]


@pytest.mark.asyncio
async def test_select_with_seeded_rng(session, make_raffle, add_participants):
    raffle = await make_raffle(ends_in=timedelta(seconds=-1), prize_count=2)
    participants = await add_participants(raffle.id, 5)

    winners = await select_winners(session, raffle.id, rng=random.Random(3))

    expected = shuffle(participants, random.Random(3))[:2]
    assert [w.participant_id for w in winners] == [p.id for p in expected]


@pytest.mark.asyncio
async def test_concurrent_selection_writes_one_batch(session_factory, make_raffle, add_participants):
    raffle = await make_raffle(ends_in=timedelta(seconds=-1), prize_count=2)
    await add_participants(raffle.id, 6)

    async def select():
        async with session_factory() as session:
            return await select_winners(session, raffle.id)

    results = await asyncio.gather(*(select() for _ in range(4)), return_exceptions=True)

    successes = [r for r in results if not isinstance(r, Exception)]
    failures = [r for r in results if isinstance(r, Exception)]
    assert len(successes) == 1
    assert all(isinstance(f, WinnersAlreadySelected) for f in failures)

    async with session_factory() as session:
        stored = await WinnerRepository(session).list_by_raffle(raffle.id)
    assert len(stored) == 2
    assert [w.participant_id for w in stored] == [w.participant_id for w in successes[0]]


def test_raffle_open_until_end():
    raffle = Raffle(title="t", prize="p", prize_count=1, max_participants=0, ends_at=datetime(2026, 1, 1, 12, 0))

    assert raffle.is_open(datetime(2026, 1, 1, 11, 59))
    assert not raffle.is_open(datetime(2026, 1, 1, 12, 0))
    assert raffle.has_ended(datetime(2026, 1, 1, 12, 0))
