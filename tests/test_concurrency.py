"""Concurrent grading must never lose an aggregate delta."""

from concurrent.futures import ThreadPoolExecutor

import pytest

from backend.core.ledger_types import ROLLUP_MODE, BetMode, Outcome

ROUNDS = 15  # odd: every wager ends on WIN


def _toggle(ledger, user, bet_id):
    for i in range(ROUNDS):
        ledger.grade_bet(user, bet_id, Outcome.WIN if i % 2 == 0 else Outcome.LOSS)


def test_concurrent_grading_same_aggregate_key(ledger, all_stats):
    a = ledger.place_bet("alice", BetMode.SINGLE, "MLB", "Sharp", "Yankees ML", "+150")
    b = ledger.place_bet("alice", BetMode.SINGLE, "MLB", "Sharp", "Dodgers ML", "-200")

    with ThreadPoolExecutor(max_workers=2) as pool:
        futures = [pool.submit(_toggle, ledger, "alice", bet.id) for bet in (a, b)]
        for f in futures:
            f.result()

    rows = {r.key.mode: r for r in all_stats(ledger, "alice")}
    assert set(rows) == {"Single", ROLLUP_MODE}
    for row in rows.values():
        assert (row.bets, row.wins, row.losses, row.pushes) == (2, 2, 0, 0)
        assert row.units == pytest.approx(1.5 + 0.5)
        assert row.roi_pct == pytest.approx(100.0)


def test_concurrent_users_do_not_interfere(ledger, all_stats):
    users = ["alice", "bob", "carol"]
    bets = {
        u: ledger.place_bet(u, BetMode.SGP_PLUS, "NFL", "Longshot", "3-leg SGP+", "+600")
        for u in users
    }

    with ThreadPoolExecutor(max_workers=len(users)) as pool:
        futures = [pool.submit(_toggle, ledger, u, bets[u].id) for u in users]
        for f in futures:
            f.result()

    for u in users:
        rows = all_stats(ledger, u)
        assert len(rows) == 2
        for row in rows:
            assert (row.bets, row.wins, row.losses) == (1, 1, 0)
            assert row.units == pytest.approx(6.0)


def test_concurrent_placement_and_grading(ledger):
    graded = ledger.place_bet("alice", BetMode.SGP, "NBA", "Sharp", "Jokic 30+", "+110")

    def place_many():
        for i in range(10):
            ledger.place_bet("alice", BetMode.SINGLE, "NBA", "Sharp", f"bet {i}", "-110")

    with ThreadPoolExecutor(max_workers=2) as pool:
        placing = pool.submit(place_many)
        grading = pool.submit(_toggle, ledger, "alice", graded.id)
        placing.result()
        grading.result()

    assert len(ledger.list_bets("alice")) == 11
    [rollup] = ledger.get_stats("alice")
    assert (rollup.bets, rollup.wins) == (1, 1)
    assert rollup.units == pytest.approx(1.1)
