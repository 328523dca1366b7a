"""
Grading engine: applies a result transition to a wager and to its aggregates.

A wager moves between four states: ungraded (None), win, loss, push.  Any
state may move to any other, any number of times.  Each move is turned into
a ``Transition`` and the same transition is applied, as a signed delta, to
every aggregate row the wager feeds:

    (user, model, sport, <wager mode>)   exact row
    (user, model, sport, ALL)            rollup row

Aggregates are lifetime tallies.  They are never rebuilt from the stored
wagers on this path, so a wager evicted by retention keeps its contribution.

Delta rules
-----------
  bets     +1 only on the first grading (ungraded -> graded).  Never
           decremented; a cleared wager still counts as a bet.
  buckets  prev bucket -1, new bucket +1; nothing when prev == new.
           A cleared wager (graded -> ungraded) is re-booked as a push,
           the zero-unit bucket, so bets == wins + losses + pushes holds.
           That push is never taken back.  Grading the wager again is a
           fresh ungraded -> graded step, so win -> clear -> win leaves
           bets=2 wins=1 pushes=1 on a single wager.
  units    new_units - prev_units.
  roi_pct  units / bets * 100, or 0 with no bets.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from backend.core.ledger_types import ROLLUP_MODE, Outcome, StatKey, StatRow, WagerRecord
from backend.core.odds_math import units_for_outcome
from backend.services.ledger_store import LedgerStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Transition:
    """One wager moving from ``prev`` to ``new`` (None = ungraded)."""

    prev: Optional[Outcome]
    prev_units: float
    new: Optional[Outcome]
    new_units: float

    @classmethod
    def for_wager(cls, wager: WagerRecord, outcome: Optional[Outcome]) -> "Transition":
        return cls(
            prev=wager.result,
            prev_units=(wager.result_units or 0.0) if wager.result else 0.0,
            new=outcome,
            new_units=units_for_outcome(wager.odds, outcome, wager.stake),
        )

    @property
    def bets_delta(self) -> int:
        return 1 if self.prev is None and self.new is not None else 0

    @property
    def units_delta(self) -> float:
        return self.new_units - self.prev_units

    @property
    def is_clear(self) -> bool:
        return self.prev is not None and self.new is None


def stat_keys_for(wager: WagerRecord) -> Tuple[StatKey, ...]:
    """Every aggregate key a wager contributes to, in lock order."""
    base = (wager.user_key, wager.model, wager.sport)
    return tuple(sorted({
        StatKey(*base, wager.mode.value),
        StatKey(*base, ROLLUP_MODE),
    }))


def apply_transition(row: StatRow, transition: Transition) -> StatRow:
    """Apply ``transition`` to ``row`` in place and return it."""
    row.bets += transition.bets_delta

    if transition.prev != transition.new:
        if transition.prev is not None:
            row.bump(transition.prev, -1)
        if transition.new is not None:
            row.bump(transition.new, +1)
        elif transition.is_clear:
            row.bump(Outcome.PUSH, +1)

    row.units += transition.units_delta
    row.recompute_roi()
    return row


def grade_wager(
    store: LedgerStore,
    wager_id: str,
    user_key: str,
    outcome: Optional[Outcome],
) -> WagerRecord:
    """
    Set (or clear, with ``outcome=None``) the result of one wager.

    The wager update and both aggregate upserts share one unit of work:
    either all three land or none do.

    Raises:
        NotFoundError: no wager ``wager_id`` belongs to ``user_key``.
        StorageError: the store failed; nothing was written.
    """
    with store.transaction() as tx:
        wager = tx.get_wager_for_user(wager_id, user_key)
        transition = Transition.for_wager(wager, outcome)

        wager.set_grade(outcome, transition.new_units)
        tx.update_wager(wager)

        rows: List[StatRow] = [
            apply_transition(tx.get_or_create_stat(key), transition)
            for key in stat_keys_for(wager)
        ]
        for row in rows:
            tx.save_stat(row)

    logger.info(
        "Graded bet %s for %s: %s -> %s (%+.4fu)",
        wager_id, user_key,
        transition.prev.value if transition.prev else "ungraded",
        transition.new.value if transition.new else "ungraded",
        transition.units_delta,
    )
    return wager
