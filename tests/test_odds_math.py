"""Tests for odds_math: American-odds parsing and unit settlement."""

import pytest

from backend.core.ledger_types import Outcome
from backend.core.odds_math import parse_american, units_for_outcome, win_profit


# ---------------------------------------------------------------------------
# parse_american
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("odds, expected", [
    ("+140",            140),
    ("-115",           -115),
    ("650",             650),
    ("Over 2.5 @ +120",   2),   # first signed integer wins
    ("  -200 ",        -200),
    ("+0",             None),   # zero is not a price
    ("even",           None),
    ("",               None),
    (None,             None),
])
def test_parse_american(odds, expected):
    assert parse_american(odds) == expected


# ---------------------------------------------------------------------------
# units_for_outcome
# ---------------------------------------------------------------------------

def test_plus_odds_win():
    assert units_for_outcome("+140", Outcome.WIN, 1.0) == pytest.approx(1.4)


def test_minus_odds_win():
    assert units_for_outcome("-140", Outcome.WIN, 1.0) == pytest.approx(0.7143, abs=1e-4)


@pytest.mark.parametrize("odds", ["+140", "-140", "garbage", ""])
def test_loss_costs_the_stake(odds):
    assert units_for_outcome(odds, Outcome.LOSS, 1.0) == -1.0
    assert units_for_outcome(odds, Outcome.LOSS, 2.5) == -2.5


@pytest.mark.parametrize("odds", ["+140", "-140", "garbage"])
def test_push_is_zero(odds):
    assert units_for_outcome(odds, Outcome.PUSH, 3.0) == 0.0


def test_ungraded_is_zero():
    assert units_for_outcome("+300", None, 1.0) == 0.0


def test_stake_scales_win():
    # 2u at +200 wins 4u; 2u at -200 wins 1u
    assert units_for_outcome("+200", Outcome.WIN, 2.0) == pytest.approx(4.0)
    assert units_for_outcome("-200", Outcome.WIN, 2.0) == pytest.approx(1.0)


@pytest.mark.parametrize("odds", ["", "N/A", "+0", "-0"])
def test_malformed_odds_win_credits_nothing(odds):
    assert units_for_outcome(odds, Outcome.WIN, 1.0) == 0.0


def test_win_profit_even_money():
    assert win_profit(100) == pytest.approx(1.0)
    assert win_profit(-100) == pytest.approx(1.0)
