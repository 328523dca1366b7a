"""
Storage backends for the wager ledger.

The grading engine and the ledger facade only ever talk to ``LedgerStore``.
Every read and write happens inside a unit of work::

    with store.transaction() as tx:
        bet = tx.get_wager_for_user(bet_id, user_key)   # row locked
        ...
        tx.update_wager(bet)
        tx.save_stat(row)

The unit of work commits when the ``with`` block exits normally and rolls
back on ANY exception, so a failed or cancelled request never leaves a
partial write behind.

Two implementations:
  SQLLedgerStore       - SQLAlchemy, one DB transaction per unit of work,
                         SELECT ... FOR UPDATE on wager and aggregate rows.
  InMemoryLedgerStore  - process-local dicts behind a single lock.  Only
                         used when LEDGER_STORE=memory is set explicitly
                         (degraded mode) and in tests.
"""

import logging
import secrets
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime, timezone
from itertools import count
from typing import Dict, Iterator, List, Optional, Sequence

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from backend.core.ledger_types import BetMode, Outcome, StatKey, StatRow, WagerRecord
from backend.errors import NotFoundError, StorageError
from backend.models import PastBet, UserModelStat

logger = logging.getLogger(__name__)


def new_wager_id() -> str:
    """24 hex characters, unguessable."""
    return secrets.token_hex(12)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# ---------------------------------------------------------------------------
# Interface
# ---------------------------------------------------------------------------

class LedgerTransaction(ABC):
    """Operations available inside one unit of work."""

    # --- wager records ---

    @abstractmethod
    def insert_wager(self, record: WagerRecord) -> WagerRecord:
        """Persist a new wager, assigning ``id`` (if absent) and ``seq``."""

    @abstractmethod
    def list_recent(self, user_key: str, limit: Optional[int]) -> List[WagerRecord]:
        """Up to ``limit`` wagers for ``user_key`` (all of them when None), newest first."""

    @abstractmethod
    def get_wager_for_user(self, wager_id: str, user_key: str) -> WagerRecord:
        """Fetch and lock one wager.  Raises NotFoundError unless owned by ``user_key``."""

    @abstractmethod
    def update_wager(self, record: WagerRecord) -> None:
        """Overwrite a previously stored wager."""

    @abstractmethod
    def delete_all_except(self, user_key: str, keep_ids: Sequence[str]) -> int:
        """Delete every wager of ``user_key`` not in ``keep_ids``; returns the count."""

    # --- aggregate rows ---

    @abstractmethod
    def get_or_create_stat(self, key: StatKey) -> StatRow:
        """Fetch and lock the aggregate row for ``key``, or a zeroed row if unseen."""

    @abstractmethod
    def save_stat(self, row: StatRow) -> None:
        """Upsert an aggregate row by key."""

    @abstractmethod
    def list_stats(self, user_key: str, mode: Optional[str] = None) -> List[StatRow]:
        """Aggregate rows for ``user_key``; all modes when ``mode`` is None."""

    @abstractmethod
    def delete_stats_for_user(self, user_key: str) -> int:
        """Drop every aggregate row for ``user_key`` (demo re-seeding only)."""


class LedgerStore(ABC):
    """Factory for units of work."""

    kind: str = "abstract"

    @abstractmethod
    def transaction(self) -> Iterator[LedgerTransaction]:
        """Context manager yielding a :class:`LedgerTransaction`."""

    def ping(self) -> bool:
        return True


# ---------------------------------------------------------------------------
# SQLAlchemy implementation
# ---------------------------------------------------------------------------

def _wager_from_row(row: PastBet) -> WagerRecord:
    return WagerRecord(
        id=row.id,
        seq=row.seq,
        user_key=row.user_key,
        mode=BetMode(row.mode),
        sport=row.sport,
        model=row.model,
        event=row.event,
        odds=row.odds,
        stake=row.stake,
        placed_at=_as_utc(row.date),
        result=Outcome(row.result) if row.result else None,
        result_units=row.result_units if row.result else None,
    )


def _stat_from_row(row: UserModelStat) -> StatRow:
    return StatRow(
        key=StatKey(row.user_key, row.model, row.sport, row.mode),
        wins=row.wins,
        losses=row.losses,
        pushes=row.pushes,
        bets=row.bets,
        units=row.units,
        roi_pct=row.roi_pct,
    )


class _SQLTransaction(LedgerTransaction):

    def __init__(self, db: Session):
        self.db = db
        self._wager_rows: Dict[str, PastBet] = {}
        self._stat_rows: Dict[StatKey, UserModelStat] = {}

    def insert_wager(self, record: WagerRecord) -> WagerRecord:
        stored = replace(record, id=record.id or new_wager_id())
        row = PastBet(
            id=stored.id,
            user_key=stored.user_key,
            mode=stored.mode.value,
            date=stored.placed_at,
            model=stored.model,
            sport=stored.sport,
            event=stored.event,
            odds=stored.odds,
            stake=stored.stake,
            result=stored.result.value if stored.result else None,
            result_units=stored.result_units if stored.result else None,
        )
        self.db.add(row)
        self.db.flush()
        self._wager_rows[stored.id] = row
        stored.seq = row.seq
        return stored

    def list_recent(self, user_key: str, limit: Optional[int]) -> List[WagerRecord]:
        rows = (
            self.db.query(PastBet)
            .filter(PastBet.user_key == user_key)
            .order_by(PastBet.date.desc(), PastBet.seq.desc())
            .limit(limit)
            .all()
        )
        return [_wager_from_row(r) for r in rows]

    def get_wager_for_user(self, wager_id: str, user_key: str) -> WagerRecord:
        row = (
            self.db.query(PastBet)
            .filter(PastBet.id == wager_id, PastBet.user_key == user_key)
            .with_for_update()
            .first()
        )
        if row is None:
            raise NotFoundError(wager_id)
        self._wager_rows[wager_id] = row
        return _wager_from_row(row)

    def update_wager(self, record: WagerRecord) -> None:
        row = self._wager_rows.get(record.id)
        if row is None:
            row = self.db.query(PastBet).filter(PastBet.id == record.id).with_for_update().first()
            if row is None:
                raise NotFoundError(record.id)
        row.mode = record.mode.value
        row.date = record.placed_at
        row.model = record.model
        row.sport = record.sport
        row.event = record.event
        row.odds = record.odds
        row.stake = record.stake
        row.result = record.result.value if record.result else None
        row.result_units = record.result_units if record.result else None
        self.db.flush()

    def delete_all_except(self, user_key: str, keep_ids: Sequence[str]) -> int:
        q = self.db.query(PastBet).filter(PastBet.user_key == user_key)
        if keep_ids:
            q = q.filter(PastBet.id.notin_(list(keep_ids)))
        deleted = q.delete(synchronize_session=False)
        for wager_id in list(self._wager_rows):
            if wager_id not in keep_ids:
                self._wager_rows.pop(wager_id)
        return deleted

    def _select_stat(self, key: StatKey) -> Optional[UserModelStat]:
        return (
            self.db.query(UserModelStat)
            .filter(
                UserModelStat.user_key == key.user_key,
                UserModelStat.model == key.model,
                UserModelStat.sport == key.sport,
                UserModelStat.mode == key.mode,
            )
            .with_for_update()
            .first()
        )

    def get_or_create_stat(self, key: StatKey) -> StatRow:
        row = self._stat_rows.get(key) or self._select_stat(key)
        if row is None:
            # Claim the key inside a savepoint; a concurrent creator makes
            # the insert fail on the unique constraint and we lock theirs.
            try:
                with self.db.begin_nested():
                    row = UserModelStat(
                        user_key=key.user_key, model=key.model, sport=key.sport, mode=key.mode,
                        wins=0, losses=0, pushes=0, bets=0, units=0.0, roi_pct=0.0,
                    )
                    self.db.add(row)
                    self.db.flush()
            except IntegrityError:
                logger.info("Aggregate row %s created concurrently, re-reading", key)
                row = self._select_stat(key)
                if row is None:
                    raise
        self._stat_rows[key] = row
        stat = _stat_from_row(row)
        return stat

    def save_stat(self, row: StatRow) -> None:
        orm = self._stat_rows.get(row.key) or self._select_stat(row.key)
        if orm is None:
            orm = UserModelStat(
                user_key=row.key.user_key, model=row.key.model,
                sport=row.key.sport, mode=row.key.mode,
            )
            self.db.add(orm)
        orm.wins = row.wins
        orm.losses = row.losses
        orm.pushes = row.pushes
        orm.bets = row.bets
        orm.units = row.units
        orm.roi_pct = row.roi_pct
        self.db.flush()
        self._stat_rows[row.key] = orm

    def list_stats(self, user_key: str, mode: Optional[str] = None) -> List[StatRow]:
        q = self.db.query(UserModelStat).filter(UserModelStat.user_key == user_key)
        if mode is not None:
            q = q.filter(UserModelStat.mode == mode)
        rows = q.order_by(UserModelStat.model, UserModelStat.sport, UserModelStat.mode).all()
        return [_stat_from_row(r) for r in rows]

    def delete_stats_for_user(self, user_key: str) -> int:
        deleted = (
            self.db.query(UserModelStat)
            .filter(UserModelStat.user_key == user_key)
            .delete(synchronize_session=False)
        )
        self._stat_rows = {k: v for k, v in self._stat_rows.items() if k.user_key != user_key}
        return deleted


class SQLLedgerStore(LedgerStore):
    """Transactional store over a SQLAlchemy session factory."""

    kind = "sql"

    def __init__(self, session_factory):
        self._session_factory = session_factory

    @contextmanager
    def transaction(self) -> Iterator[LedgerTransaction]:
        db = self._session_factory()
        try:
            with db.begin():
                yield _SQLTransaction(db)
        except SQLAlchemyError as exc:
            logger.error("Ledger transaction rolled back: %s", exc, exc_info=True)
            raise StorageError(f"ledger store unavailable: {type(exc).__name__}") from exc
        finally:
            db.close()

    def ping(self) -> bool:
        db = self._session_factory()
        try:
            db.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as exc:
            logger.error("Ledger store ping failed: %s", exc)
            return False
        finally:
            db.close()


# ---------------------------------------------------------------------------
# In-memory implementation
# ---------------------------------------------------------------------------

_DELETED = None


class _MemoryTransaction(LedgerTransaction):
    """Stages writes over the store's committed state; see InMemoryLedgerStore."""

    def __init__(self, store: "InMemoryLedgerStore"):
        self._store = store
        self._wagers: Dict[str, Dict[str, Optional[WagerRecord]]] = {}
        self._stats: Dict[StatKey, Optional[StatRow]] = {}

    def _user_view(self, user_key: str) -> Dict[str, WagerRecord]:
        merged = dict(self._store._wagers.get(user_key, {}))
        for wager_id, rec in self._wagers.get(user_key, {}).items():
            if rec is _DELETED:
                merged.pop(wager_id, None)
            else:
                merged[wager_id] = rec
        return merged

    def insert_wager(self, record: WagerRecord) -> WagerRecord:
        stored = replace(record, id=record.id or new_wager_id(), seq=next(self._store._seq))
        self._wagers.setdefault(stored.user_key, {})[stored.id] = replace(stored)
        return stored

    def list_recent(self, user_key: str, limit: Optional[int]) -> List[WagerRecord]:
        recs = sorted(self._user_view(user_key).values(), key=WagerRecord.sort_key, reverse=True)
        return [replace(r) for r in recs[:limit]]

    def get_wager_for_user(self, wager_id: str, user_key: str) -> WagerRecord:
        rec = self._user_view(user_key).get(wager_id)
        if rec is None:
            raise NotFoundError(wager_id)
        return replace(rec)

    def update_wager(self, record: WagerRecord) -> None:
        if record.id not in self._user_view(record.user_key):
            raise NotFoundError(record.id)
        self._wagers.setdefault(record.user_key, {})[record.id] = replace(record)

    def delete_all_except(self, user_key: str, keep_ids: Sequence[str]) -> int:
        keep = set(keep_ids)
        doomed = [wager_id for wager_id in self._user_view(user_key) if wager_id not in keep]
        staged = self._wagers.setdefault(user_key, {})
        for wager_id in doomed:
            staged[wager_id] = _DELETED
        return len(doomed)

    def _stat_view(self, key: StatKey) -> Optional[StatRow]:
        if key in self._stats:
            return self._stats[key]
        return self._store._stats.get(key)

    def get_or_create_stat(self, key: StatKey) -> StatRow:
        row = self._stat_view(key)
        if row is None:
            return StatRow(key=key)
        return replace(row)

    def save_stat(self, row: StatRow) -> None:
        self._stats[row.key] = replace(row)

    def list_stats(self, user_key: str, mode: Optional[str] = None) -> List[StatRow]:
        keys = {k for k in self._store._stats if k.user_key == user_key}
        keys |= {k for k in self._stats if k.user_key == user_key}
        out = []
        for key in sorted(keys, key=lambda k: (k.model, k.sport, k.mode)):
            row = self._stat_view(key)
            if row is None or (mode is not None and key.mode != mode):
                continue
            out.append(replace(row))
        return out

    def delete_stats_for_user(self, user_key: str) -> int:
        rows = self.list_stats(user_key)
        for row in rows:
            self._stats[row.key] = _DELETED
        return len(rows)

    def commit(self) -> None:
        for user_key, staged in self._wagers.items():
            committed = self._store._wagers.setdefault(user_key, {})
            for wager_id, rec in staged.items():
                if rec is _DELETED:
                    committed.pop(wager_id, None)
                else:
                    committed[wager_id] = rec
        for key, row in self._stats.items():
            if row is _DELETED:
                self._store._stats.pop(key, None)
            else:
                self._store._stats[key] = row


class InMemoryLedgerStore(LedgerStore):
    """
    Process-local store guarded by one lock.

    A unit of work holds the lock for its whole duration, so units of work
    are fully serialised.  Writes are staged and only applied when the
    ``with`` block exits cleanly.  Nothing survives a restart.
    """

    kind = "memory"

    def __init__(self):
        self._lock = threading.RLock()
        self._wagers: Dict[str, Dict[str, WagerRecord]] = {}
        self._stats: Dict[StatKey, StatRow] = {}
        self._seq = count(1)

    @contextmanager
    def transaction(self) -> Iterator[LedgerTransaction]:
        with self._lock:
            tx = _MemoryTransaction(self)
            yield tx
            tx.commit()
