"""Closed vocabularies and data-transfer objects for the wager ledger.

``mode`` and ``outcome`` are closed sets and are modelled as enums so a
typo can never create a new aggregate bucket.  ``sport`` and ``model`` stay
free-form string tags: new leagues and new strategy names appear without a
code change.

The DTOs here are what flows between the storage layer, the grading engine
and the HTTP layer.  They carry no persistence machinery and can be copied
freely across threads.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)

#: Synthetic mode value for the per-(user, model, sport) rollup row.
ROLLUP_MODE = "ALL"


class BetMode(str, Enum):
    """Bet-structure mode of a slip."""

    SINGLE = "Single"
    SGP = "SGP"
    SGP_PLUS = "SGP+"


class Outcome(str, Enum):
    """Graded result of a wager.  ``None`` stands for ungraded."""

    WIN = "win"
    LOSS = "loss"
    PUSH = "push"


_MODE_TOKENS = {m.value.upper(): m for m in BetMode}
_OUTCOME_TOKENS = {o.value: o for o in Outcome}


def normalize_mode(token: Optional[str]) -> BetMode:
    """Map a client-supplied mode token onto :class:`BetMode`.

    Matching is case-insensitive.  Unknown or blank tokens clamp to
    ``Single``.
    """
    cleaned = (token or "").strip().upper()
    mode = _MODE_TOKENS.get(cleaned)
    if mode is None:
        if cleaned:
            logger.warning("Unknown bet mode %r, defaulting to %s", token, BetMode.SINGLE.value)
        return BetMode.SINGLE
    return mode


def normalize_outcome(token: Optional[str]) -> Optional[Outcome]:
    """Map a client-supplied outcome token onto :class:`Outcome`.

    Blank tokens mean "clear the grade".  Unknown tokens are treated the
    same way rather than rejected.
    """
    cleaned = (token or "").strip().lower()
    if not cleaned:
        return None
    outcome = _OUTCOME_TOKENS.get(cleaned)
    if outcome is None:
        logger.warning("Unknown outcome token %r, clearing grade", token)
    return outcome


def normalize_mode_filter(token: Optional[str]) -> Optional[BetMode]:
    """Parse the ``mode`` filter of a stats query.

    Returns ``None`` for ``ALL``, blank or anything unrecognised, meaning
    "the ALL rollup rows".
    """
    cleaned = (token or "").strip().upper()
    return _MODE_TOKENS.get(cleaned)


# ---------------------------------------------------------------------------
# Data transfer objects
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class WagerRecord:
    """One placed bet and its current grading state.

    ``result`` and ``result_units`` are either both ``None`` (ungraded) or
    both set.  ``seq`` is the store-assigned insertion counter used to
    break ties between wagers with the same ``placed_at``.
    """

    user_key: str
    mode: BetMode
    sport: str
    model: str
    event: str
    odds: str
    placed_at: datetime
    stake: float = 1.0
    id: Optional[str] = None
    result: Optional[Outcome] = None
    result_units: Optional[float] = None
    seq: Optional[int] = None

    @property
    def is_graded(self) -> bool:
        return self.result is not None

    def set_grade(self, outcome: Optional[Outcome], units: float) -> None:
        if outcome is None:
            self.result = None
            self.result_units = None
        else:
            self.result = outcome
            self.result_units = units

    def sort_key(self) -> tuple:
        """Ascending key: oldest placement first, then insertion order."""
        return (self.placed_at, self.seq or 0)


@dataclass(frozen=True, slots=True, order=True)
class StatKey:
    """Identity of one aggregate cell.  ``mode`` is a BetMode value or ``ALL``."""

    user_key: str
    model: str
    sport: str
    mode: str


@dataclass(slots=True)
class StatRow:
    """Running tally for one :class:`StatKey`.

    ``bets == wins + losses + pushes`` must hold after every update.
    """

    key: StatKey
    wins: int = 0
    losses: int = 0
    pushes: int = 0
    bets: int = 0
    units: float = 0.0
    roi_pct: float = 0.0

    def recompute_roi(self) -> None:
        self.roi_pct = (self.units / self.bets) * 100.0 if self.bets > 0 else 0.0

    def bump(self, outcome: Outcome, delta: int) -> None:
        if outcome is Outcome.WIN:
            self.wins += delta
        elif outcome is Outcome.LOSS:
            self.losses += delta
        else:
            self.pushes += delta
