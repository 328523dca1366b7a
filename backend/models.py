"""
Database models for the PropPicks wager ledger
SQLAlchemy ORM with PostgreSQL (SQLite for local runs and tests)
"""

from sqlalchemy import (
    create_engine,
    event,
    Column,
    Integer,
    String,
    Float,
    DateTime,
    Text,
    Index,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, sessionmaker
from datetime import datetime, timezone
from functools import lru_cache
import logging
import os
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# Load .env before reading DATABASE_URL
load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "postgresql://postgres@127.0.0.1:5432/proppicks")
DB_LOCK_TIMEOUT_SECONDS = float(os.getenv("DB_LOCK_TIMEOUT_SECONDS", "30"))

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def make_engine(url: str = DATABASE_URL, echo: bool = False):
    """
    Build an engine for ``url``.

    SQLite connections open every transaction with BEGIN IMMEDIATE so that
    concurrent writers serialise on the database lock instead of racing
    their read-modify-write cycles.
    """
    if url.startswith("sqlite"):
        eng = create_engine(
            url,
            echo=echo,
            connect_args={"check_same_thread": False, "timeout": DB_LOCK_TIMEOUT_SECONDS},
        )

        @event.listens_for(eng, "connect")
        def _disable_pysqlite_begin(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None

        @event.listens_for(eng, "begin")
        def _begin_immediate(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

        return eng

    # pool_pre_ping keeps pooled connections alive across idle periods
    return create_engine(url, pool_pre_ping=True, echo=echo)


def make_session_factory(eng):
    return sessionmaker(bind=eng, autoflush=False, expire_on_commit=False)


@lru_cache
def get_engine():
    return make_engine(DATABASE_URL)


@lru_cache
def get_session_factory():
    return make_session_factory(get_engine())


class PastBet(Base):
    """One placed bet, newest-N retained per user"""

    __tablename__ = "past_bets"

    # Insertion counter; breaks ties between bets placed at the same instant
    seq = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String(32), unique=True, index=True, nullable=False)
    user_key = Column(String(128), nullable=False, index=True)

    mode = Column(String(8), nullable=False)  # Single | SGP | SGP+
    date = Column(DateTime(timezone=True), nullable=False)
    model = Column(Text, nullable=False)
    sport = Column(Text, nullable=False)
    event = Column(Text, nullable=False)
    odds = Column(String(32), nullable=False)  # "+650" or "-115"
    stake = Column(Float, nullable=False, default=1.0)

    # Grading state: both NULL while ungraded
    result = Column(String(8))  # win | loss | push
    result_units = Column(Float)

    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __table_args__ = (Index("ix_past_bets_user_date_seq", "user_key", "date", "seq"),)


class UserModelStat(Base):
    """Lifetime running tally per (user, model, sport, mode); mode may be ALL"""

    __tablename__ = "user_model_stats"

    id = Column(Integer, primary_key=True, index=True)
    user_key = Column(String(128), nullable=False, index=True)
    model = Column(Text, nullable=False)
    sport = Column(Text, nullable=False)
    mode = Column(String(8), nullable=False)

    wins = Column(Integer, nullable=False, default=0)
    losses = Column(Integer, nullable=False, default=0)
    pushes = Column(Integer, nullable=False, default=0)
    bets = Column(Integer, nullable=False, default=0)
    units = Column(Float, nullable=False, default=0.0)
    roi_pct = Column(Float, nullable=False, default=0.0)  # units / bets * 100

    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        UniqueConstraint("user_key", "model", "sport", "mode", name="_user_model_sport_mode_uc"),
    )


def init_db(eng=None):
    """Initialize database tables"""
    Base.metadata.create_all(bind=eng or get_engine())
    logger.info("Database tables created")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    init_db()
