"""
Demo-account seeding.

A demo account is a fresh user whose history is copied from a real source
account so the dashboard charts have something to show.  Copied wagers get
new ids.  The demo user's aggregate rows are then rebuilt from every wager
it holds, the copies plus anything it already had.

This is the only code path that derives aggregates from stored wagers.  It
replays each graded wager through the same ``apply_transition`` the grading
engine uses, so the rebuilt rows obey the same invariants.
"""

import logging
import os
from dataclasses import replace
from typing import Dict, Optional

from backend.core.ledger_types import StatKey, StatRow
from backend.errors import ValidationError
from backend.services.grading import Transition, apply_transition, stat_keys_for
from backend.services.ledger_store import LedgerStore

logger = logging.getLogger(__name__)

DEFAULT_CLONE_LIMIT = 250


def is_demo_enabled() -> bool:
    return os.getenv("DEMO_MODE", "false").lower() == "true"


def demo_source_user() -> str:
    user = os.getenv("DEMO_SOURCE_USER_ID", "").strip()
    if not user:
        raise ValidationError("DEMO_SOURCE_USER_ID not set")
    return user


def demo_clone_limit() -> int:
    try:
        n = int(os.getenv("DEMO_CLONE_LIMIT", str(DEFAULT_CLONE_LIMIT)))
    except ValueError:
        return DEFAULT_CLONE_LIMIT
    return n if n > 0 else DEFAULT_CLONE_LIMIT


def seed_demo_account(
    store: LedgerStore,
    dst_user: str,
    src_user: Optional[str] = None,
    limit: Optional[int] = None,
) -> Dict:
    """
    Copy up to ``limit`` of ``src_user``'s newest wagers into ``dst_user``
    and rebuild ``dst_user``'s aggregates from all of its wagers, in one
    transaction.

    Returns a summary dict: bets copied, graded copies, stat rows written.
    """
    src_user = src_user or demo_source_user()
    limit = limit or demo_clone_limit()
    if not dst_user or dst_user == src_user:
        raise ValidationError("demo destination must be a different, non-empty user")

    with store.transaction() as tx:
        source = tx.list_recent(src_user, limit)
        tx.delete_stats_for_user(dst_user)

        # Oldest first so copies keep their relative insertion order
        clones = [
            tx.insert_wager(replace(bet, id=None, seq=None, user_key=dst_user))
            for bet in reversed(source)
        ]
        # Wagers the destination already held count too
        graded = [w for w in tx.list_recent(dst_user, None) if w.is_graded]

        keys = sorted({key for w in graded for key in stat_keys_for(w)})
        rows: Dict[StatKey, StatRow] = {key: tx.get_or_create_stat(key) for key in keys}
        for wager in graded:
            transition = Transition(
                prev=None, prev_units=0.0,
                new=wager.result, new_units=wager.result_units or 0.0,
            )
            for key in stat_keys_for(wager):
                apply_transition(rows[key], transition)

        for key in keys:
            tx.save_stat(rows[key])

    summary = {
        "user": dst_user,
        "source_user": src_user,
        "bets_copied": len(clones),
        "graded_copied": sum(1 for c in clones if c.is_graded),
        "stat_rows": len(rows),
    }
    logger.info("Demo account seeded: %s", summary)
    return summary
