"""Tests for the ledger facade: placement, listing, retention, stats queries."""

from datetime import datetime, timedelta, timezone

import pytest

from backend.core.ledger_types import ROLLUP_MODE, BetMode, Outcome
from backend.errors import ValidationError
from backend.services.ledger import Ledger


def _place(ledger, when, user="alice", mode=BetMode.SINGLE, odds="+100", model="Sharp", sport="NBA"):
    return ledger.place_bet(
        user_key=user, mode=mode, sport=sport, model=model,
        event=f"event @ {when.isoformat()}", odds=odds, placed_at=when,
    )


# ---------------------------------------------------------------------------
# Placement
# ---------------------------------------------------------------------------

def test_place_bet_is_ungraded_with_id(ledger, at):
    bet = _place(ledger, at(0))
    assert bet.id and len(bet.id) == 24
    assert bet.result is None
    assert bet.result_units is None
    assert bet.stake == 1.0
    assert bet.placed_at == at(0)


def test_place_bet_ids_are_unique(ledger, at):
    ids = {_place(ledger, at(i)).id for i in range(10)}
    assert len(ids) == 10


def test_place_bet_defaults_placement_to_now(ledger):
    before = datetime.now(timezone.utc)
    bet = ledger.place_bet("alice", BetMode.SGP, "NFL", "Sharp", "Bills ML", "-120")
    assert before - timedelta(seconds=1) <= bet.placed_at <= datetime.now(timezone.utc) + timedelta(seconds=1)


def test_place_bet_normalises_naive_and_offset_times(ledger):
    naive = ledger.place_bet("alice", BetMode.SINGLE, "NBA", "m", "e", "+100",
                             placed_at=datetime(2026, 1, 1, 12, 0))
    assert naive.placed_at == datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    eastern = timezone(timedelta(hours=-5))
    offset = ledger.place_bet("alice", BetMode.SINGLE, "NBA", "m", "e", "+100",
                              placed_at=datetime(2026, 1, 1, 8, 0, tzinfo=eastern))
    assert offset.placed_at == datetime(2026, 1, 1, 13, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize("stake", [0.0, -1.0])
def test_place_bet_rejects_non_positive_stake(ledger, stake):
    with pytest.raises(ValidationError):
        ledger.place_bet("alice", BetMode.SINGLE, "NBA", "m", "e", "+100", stake=stake)


@pytest.mark.parametrize("user", ["", "   "])
def test_blank_user_rejected(ledger, user):
    with pytest.raises(ValidationError):
        ledger.place_bet(user, BetMode.SINGLE, "NBA", "m", "e", "+100")
    with pytest.raises(ValidationError):
        ledger.list_bets(user)


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------

def test_list_newest_first_by_placement_time(ledger, at):
    # inserted out of chronological order
    for minute in (5, 1, 9, 3):
        _place(ledger, at(minute))
    listed = ledger.list_bets("alice")
    assert [b.placed_at for b in listed] == [at(9), at(5), at(3), at(1)]


def test_list_ties_broken_by_insertion_order(ledger, at):
    first = _place(ledger, at(0))
    second = _place(ledger, at(0))
    third = _place(ledger, at(0))
    assert [b.id for b in ledger.list_bets("alice")] == [third.id, second.id, first.id]


def test_list_respects_limit(ledger, at):
    for minute in range(6):
        _place(ledger, at(minute))
    listed = ledger.list_bets("alice", limit=2)
    assert [b.placed_at for b in listed] == [at(5), at(4)]
    assert ledger.list_bets("alice", limit=0) == []


def test_list_is_per_user(ledger, at):
    _place(ledger, at(0), user="alice")
    _place(ledger, at(1), user="bob")
    assert [b.user_key for b in ledger.list_bets("alice")] == ["alice"]
    assert [b.user_key for b in ledger.list_bets("bob")] == ["bob"]
    assert ledger.list_bets("carol") == []


# ---------------------------------------------------------------------------
# Retention
# ---------------------------------------------------------------------------

def test_retention_keeps_newest_fifteen(ledger, at):
    placed = [_place(ledger, at(minute)) for minute in range(20)]
    listed = ledger.list_bets("alice")

    assert len(listed) == 15
    assert [b.id for b in listed] == [b.id for b in reversed(placed[5:])]
    kept = {b.id for b in listed}
    assert not kept & {b.id for b in placed[:5]}


def test_retention_evicts_by_placement_time_not_insertion(ledger, at):
    # A back-dated bet inserted last is the oldest and goes first
    for minute in range(1, 16):
        _place(ledger, at(minute))
    backdated = _place(ledger, at(-60))
    listed = ledger.list_bets("alice")
    assert len(listed) == 15
    assert backdated.id not in {b.id for b in listed}


def test_retention_is_per_user(ledger, at):
    for minute in range(16):
        _place(ledger, at(minute), user="alice")
    _place(ledger, at(0), user="bob")
    assert len(ledger.list_bets("alice")) == 15
    assert len(ledger.list_bets("bob")) == 1


def test_evicted_bet_keeps_its_aggregate_contribution(ledger, at):
    oldest = _place(ledger, at(0), odds="+250")
    ledger.grade_bet("alice", oldest.id, Outcome.WIN)
    for minute in range(1, 20):
        _place(ledger, at(minute))

    assert oldest.id not in {b.id for b in ledger.list_bets("alice")}
    rollup = [r for r in ledger.get_stats("alice") if r.key.mode == ROLLUP_MODE]
    assert len(rollup) == 1
    assert (rollup[0].bets, rollup[0].wins) == (1, 1)
    assert rollup[0].units == pytest.approx(2.5)


def test_custom_keep_count(store, at):
    small = Ledger(store, keep=3)
    for minute in range(5):
        _place(small, at(minute))
    assert [b.placed_at for b in small.list_bets("alice")] == [at(4), at(3), at(2)]


def test_keep_must_be_positive(store):
    with pytest.raises(ValueError):
        Ledger(store, keep=0)


# ---------------------------------------------------------------------------
# Stats queries
# ---------------------------------------------------------------------------

def test_get_stats_filters(ledger, at):
    single = _place(ledger, at(0), mode=BetMode.SINGLE)
    sgp = _place(ledger, at(1), mode=BetMode.SGP)
    other_model = _place(ledger, at(2), mode=BetMode.SGP, model="Contrarian")
    for bet in (single, sgp, other_model):
        ledger.grade_bet("alice", bet.id, Outcome.WIN)

    rollups = ledger.get_stats("alice")
    assert {(r.key.model, r.key.mode) for r in rollups} == {("Sharp", "ALL"), ("Contrarian", "ALL")}
    by_model = {r.key.model: r for r in rollups}
    assert by_model["Sharp"].bets == 2
    assert by_model["Sharp"].units == pytest.approx(2.0)
    assert by_model["Contrarian"].bets == 1

    only_sgp = ledger.get_stats("alice", BetMode.SGP)
    assert {r.key.model for r in only_sgp} == {"Sharp", "Contrarian"}
    assert all(r.key.mode == "SGP" for r in only_sgp)

    assert ledger.get_stats("alice", BetMode.SGP_PLUS) == []
    assert ledger.get_stats("bob") == []


def test_ungraded_bets_create_no_stats(ledger, at):
    _place(ledger, at(0))
    assert ledger.get_stats("alice") == []
