"""
Wager ledger facade.

The four operations the HTTP layer calls:

  place_bet   insert an ungraded wager, then trim the user's history
  list_bets   newest-first history for one user
  grade_bet   set / change / clear a result (see services/grading.py)
  get_stats   lifetime aggregate rows for one user

Retention: only the newest ``keep`` wagers per user are stored (ordered by
placement time, then insertion order).  Trimming never touches aggregate
rows; stats are all-time.
"""

import logging
import os
from datetime import datetime, timezone
from functools import lru_cache
from typing import List, Optional

from backend.core.ledger_types import ROLLUP_MODE, BetMode, Outcome, StatRow, WagerRecord
from backend.core.odds_math import DEFAULT_STAKE
from backend.errors import ValidationError
from backend.models import get_session_factory
from backend.services.grading import grade_wager
from backend.services.ledger_store import InMemoryLedgerStore, LedgerStore, SQLLedgerStore

logger = logging.getLogger(__name__)

DEFAULT_KEEP = 15
DEFAULT_LIST_LIMIT = 100


def _require_user(user_key: str) -> str:
    if not user_key or not user_key.strip():
        raise ValidationError("user key is required")
    return user_key


def _to_utc(value: Optional[datetime]) -> datetime:
    if value is None:
        return datetime.now(timezone.utc)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Ledger:
    """Per-user wager history plus lifetime per-model statistics."""

    def __init__(self, store: LedgerStore, keep: int = DEFAULT_KEEP):
        if keep < 1:
            raise ValueError(f"keep must be >= 1, got {keep}")
        self.store = store
        self.keep = keep

    def place_bet(
        self,
        user_key: str,
        mode: BetMode,
        sport: str,
        model: str,
        event: str,
        odds: str,
        stake: float = DEFAULT_STAKE,
        placed_at: Optional[datetime] = None,
    ) -> WagerRecord:
        """Record a new ungraded wager and trim the user's history to ``keep``."""
        _require_user(user_key)
        if stake <= 0:
            raise ValidationError(f"stake must be positive, got {stake}")

        record = WagerRecord(
            user_key=user_key,
            mode=mode,
            sport=sport,
            model=model,
            event=event,
            odds=odds,
            stake=stake,
            placed_at=_to_utc(placed_at),
        )
        with self.store.transaction() as tx:
            stored = tx.insert_wager(record)

        logger.info(
            "Bet placed: %s %s/%s/%s %s @ %s (%.2fu) by %s",
            stored.id, stored.model, stored.sport, stored.mode.value,
            stored.event, stored.odds, stored.stake, user_key,
        )
        self.trim(user_key)
        return stored

    def trim(self, user_key: str) -> int:
        """Delete every wager older than the newest ``keep`` for ``user_key``."""
        with self.store.transaction() as tx:
            newest = tx.list_recent(user_key, self.keep)
            if not newest:
                return 0
            deleted = tx.delete_all_except(user_key, [w.id for w in newest])
        if deleted:
            logger.info("Trimmed %d old bet(s) for %s (keep=%d)", deleted, user_key, self.keep)
        return deleted

    def list_bets(self, user_key: str, limit: int = DEFAULT_LIST_LIMIT) -> List[WagerRecord]:
        _require_user(user_key)
        if limit < 1:
            return []
        with self.store.transaction() as tx:
            return tx.list_recent(user_key, limit)

    def grade_bet(self, user_key: str, wager_id: str, outcome: Optional[Outcome]) -> WagerRecord:
        """Grade, re-grade or (``outcome=None``) clear one wager."""
        _require_user(user_key)
        return grade_wager(self.store, wager_id, user_key, outcome)

    def get_stats(self, user_key: str, mode: Optional[BetMode] = None) -> List[StatRow]:
        """
        Aggregate rows for ``user_key``.

        ``mode=None`` returns the ALL rollup rows, one per (model, sport).
        A concrete mode returns only that mode's exact rows.
        """
        _require_user(user_key)
        wanted = mode.value if mode is not None else ROLLUP_MODE
        with self.store.transaction() as tx:
            return tx.list_stats(user_key, wanted)


# ---------------------------------------------------------------------------
# Wiring from environment
# ---------------------------------------------------------------------------

def _env_int(name: str, default: int) -> int:
    try:
        value = int(os.getenv(name, str(default)))
    except ValueError:
        logger.warning("%s is not an integer, using %d", name, default)
        return default
    return value if value >= 1 else default


def build_store_from_env() -> LedgerStore:
    """
    LEDGER_STORE=sql (default) uses DATABASE_URL.  LEDGER_STORE=memory is the
    explicit no-persistence mode; it is never chosen automatically.
    """
    kind = os.getenv("LEDGER_STORE", "sql").strip().lower()
    if kind == "memory":
        logger.warning("LEDGER_STORE=memory: bets and stats will not survive a restart")
        return InMemoryLedgerStore()
    if kind != "sql":
        raise ValueError(f"Unknown LEDGER_STORE {kind!r} (use 'sql' or 'memory')")

    return SQLLedgerStore(get_session_factory())


@lru_cache
def get_ledger() -> Ledger:
    return Ledger(build_store_from_env(), keep=_env_int("PAST_BETS_KEEP", DEFAULT_KEEP))


def list_limit_from_env() -> int:
    return _env_int("PAST_BETS_LIST_LIMIT", DEFAULT_LIST_LIMIT)
