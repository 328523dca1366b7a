"""American-odds arithmetic for the wager ledger.

Every function here is **pure**: no I/O, no logging, no side effects.
Import from this module; never reimplement payout math locally in services
or routes.

Design decisions
----------------
* Odds arrive as the free-form strings users typed into a slip (``"+140"``,
  ``"-115"``, ``"Over 2.5 @ +120"``).  The first signed integer in the
  string is taken as the price.
* A malformed price never raises.  Grading must keep working on bad
  historical rows, so a win against an unreadable price credits ``0.0``.
* Profit is expressed in stake units, so a 1u stake at ``+140`` that wins
  returns ``1.4`` and the same stake at ``-140`` returns ``100 / 140``.

Run tests with::

    pytest tests/test_odds_math.py -v
"""

from __future__ import annotations

import re
from typing import Final, Optional

from backend.core.ledger_types import Outcome

# ---------------------------------------------------------------------------
# Module-level constants
# ---------------------------------------------------------------------------

#: First signed integer anywhere in the odds string.
_AMERICAN_RE: Final[re.Pattern[str]] = re.compile(r"[+-]?\d+")

#: American odds are quoted per 100 staked / won.
_ODDS_BASE: Final[float] = 100.0

#: Stake assumed by the slip builder when none is supplied.
DEFAULT_STAKE: Final[float] = 1.0


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def parse_american(odds: Optional[str]) -> Optional[int]:
    """Extract a signed American price from ``odds``.

    Returns ``None`` when no integer is present or the integer is zero.

    Examples::

        >>> parse_american("+140")
        140
        >>> parse_american("-115")
        -115
        >>> parse_american("even") is None
        True
    """
    if not odds:
        return None
    match = _AMERICAN_RE.search(odds)
    if match is None:
        return None
    value = int(match.group(0))
    if value == 0:
        return None
    return value


# ---------------------------------------------------------------------------
# Settlement
# ---------------------------------------------------------------------------


def win_profit(american: int, stake: float = DEFAULT_STAKE) -> float:
    """Profit on a winning ``stake`` at a non-zero American price."""
    if american > 0:
        return stake * american / _ODDS_BASE
    return stake * _ODDS_BASE / abs(american)


def units_for_outcome(
    odds: Optional[str],
    outcome: Optional[Outcome],
    stake: float = DEFAULT_STAKE,
) -> float:
    """Signed profit/loss in units for a graded wager.

    Args:
        odds: American-odds string as stored on the wager.
        outcome: Graded outcome, or ``None`` for an ungraded/cleared wager.
        stake: Units risked.

    Returns:
        ``-stake`` on a loss, ``0.0`` on a push or when ungraded, and the
        price-derived profit on a win (``0.0`` if the price is unreadable).
    """
    if outcome is None or outcome is Outcome.PUSH:
        return 0.0
    if outcome is Outcome.LOSS:
        return -stake

    american = parse_american(odds)
    if american is None:
        return 0.0
    return win_profit(american, stake)
